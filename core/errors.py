"""Domain exceptions raised by services and mapped to HTTP responses in api.main."""

from __future__ import annotations


class CoachingError(Exception):
    code = "ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(CoachingError):
    code = "AUTH_FAILED"
    status_code = 401


class UserTypeMismatchError(AuthError):
    code = "USER_TYPE_MISMATCH"
    status_code = 403

    def __init__(self, stored_type: str, requested_type: str):
        super().__init__(f"This account is registered as a {stored_type}, not as a {requested_type}")
        self.stored_type = stored_type
        self.requested_type = requested_type


class PermissionDenied(CoachingError):
    code = "FORBIDDEN"
    status_code = 403


class ValidationFailed(CoachingError):
    code = "VALIDATION_FAILED"
    status_code = 422


class NotFound(CoachingError):
    code = "NOT_FOUND"
    status_code = 404


class InvitationInvalid(CoachingError):
    code = "INVITATION_INVALID"
    status_code = 400


class InvitationExpired(InvitationInvalid):
    code = "INVITATION_EXPIRED"
    status_code = 410
