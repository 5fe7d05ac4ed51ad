import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool

from api.auth import AuthPrincipal, ensure_can_view_client, get_access_token, get_current_principal, require_roles
from api.deps import get_identity_provider, get_mailer, get_store
from api.ratelimit import limiter, sign_in_limit
from api.schemas import (
    AssignProgramOut,
    AwardResultOut,
    AwardRunOut,
    BackfillReportOut,
    CompletionOut,
    FireBadgeOut,
    InvitationCheckOut,
    InvitationListOut,
    InvitationOut,
    LifeHappensAllowanceOut,
    MessageOut,
    ProfileOut,
    SessionOut,
    UserEmailOut,
    WeeklyProgressOut,
)
from core.errors import AuthError, ValidationFailed
from core.services import activities, programs
from core.services.auth_machine import SIGN_OUT_SUCCESS, AuthActor
from core.services.fire_badges import award_current_week_badge, award_fire_badges, backfill_fire_badges, list_badges
from core.services.identity import IdentityClient, LocalIdentityProvider
from core.services.invitations import InvitationMailer, InvitationService
from core.services.weekly_progress import compute_weekly_progress
from core.store import SqlStore
from core.validators import (
    AssignProgramInput,
    AwardFireBadgesRequest,
    BackfillRequest,
    CardioActivityInput,
    CompleteWorkoutInput,
    InvitationCreateInput,
    LifeHappensInput,
    RestDayInput,
    RunActivityInput,
    ShareLinkInput,
    SignInInput,
    SignUpInput,
    UserEmailsRequest,
    WeeklyProgressRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

Store = Annotated[SqlStore, Depends(get_store)]
Provider = Annotated[LocalIdentityProvider, Depends(get_identity_provider)]
Principal = Annotated[AuthPrincipal, Depends(get_current_principal)]
Admin = Annotated[AuthPrincipal, Depends(require_roles("admin"))]
Client = Annotated[AuthPrincipal, Depends(require_roles("client"))]
Staff = Annotated[AuthPrincipal, Depends(require_roles("coach", "admin"))]


def _session_out(actor: AuthActor) -> SessionOut:
    ctx = actor.context
    session = ctx.session
    return SessionOut(
        access_token=session.access_token,
        expires_at=session.expires_at,
        user={"id": session.user.id, "email": session.user.email, "user_metadata": session.user.user_metadata},
        user_type=ctx.user_type,
        profile=ctx.profile,
    )


def _raise_auth_failure(actor: AuthActor, default: str) -> None:
    if actor.last_exception is not None:
        raise actor.last_exception
    raise AuthError(actor.context.error or default)


# -- auth --


@router.post("/auth/sign-up", response_model=SessionOut, status_code=201, tags=["auth"])
async def sign_up(body: SignUpInput, store: Store, provider: Provider, mailer: Annotated[InvitationMailer, Depends(get_mailer)]):
    invitations = InvitationService(store, mailer)
    if body.invitation_token:
        invitation = await run_in_threadpool(invitations.validate, body.invitation_token, email=body.email)
        if invitation.user_type != body.user_type:
            raise ValidationFailed(f"This invitation is for a {invitation.user_type} account")

    actor = AuthActor(IdentityClient(provider))
    await actor.start()
    await actor.sign_up(
        body.email,
        body.password,
        body.user_type,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    actor.stop()
    if not actor.is_authenticated:
        _raise_auth_failure(actor, "Failed to sign up")

    if body.invitation_token:
        await run_in_threadpool(invitations.accept, body.invitation_token, email=body.email)
    return _session_out(actor)


@router.post("/auth/sign-in", response_model=SessionOut, tags=["auth"])
@limiter.limit(sign_in_limit)
async def sign_in(request: Request, response: Response, body: SignInInput, provider: Provider):
    del request, response
    actor = AuthActor(IdentityClient(provider))
    await actor.start()
    await actor.sign_in(body.email, body.password, body.user_type)
    actor.stop()
    if not actor.is_authenticated:
        _raise_auth_failure(actor, "Failed to sign in")
    return _session_out(actor)


@router.post("/auth/sign-out", response_model=MessageOut, tags=["auth"])
async def sign_out(principal: Principal, provider: Provider):
    actor = AuthActor(IdentityClient(provider, access_token=principal.access_token))
    await actor.start()
    await actor.sign_out()
    actor.stop()
    if actor.context.error:
        return MessageOut(message=f"Signed out on this device, but the server sign-out failed: {actor.context.error}")
    return MessageOut(message=SIGN_OUT_SUCCESS)


@router.get("/auth/session", response_model=SessionOut, tags=["auth"])
async def current_session(provider: Provider, token: Annotated[str, Depends(get_access_token)]):
    actor = AuthActor(IdentityClient(provider, access_token=token))
    await actor.start()
    actor.stop()
    if not actor.is_authenticated:
        raise AuthError("Authentication failed")
    return _session_out(actor)


@router.get("/profiles/me", response_model=ProfileOut, tags=["auth"])
def my_profile(principal: Principal, provider: Provider):
    return provider.fetch_profile(principal.user_id)


# -- backend functions --


@router.post(
    "/functions/get_weekly_progress",
    response_model=WeeklyProgressOut,
    response_model_exclude_none=True,
    tags=["functions"],
)
def get_weekly_progress(principal: Principal, store: Store, body: Optional[WeeklyProgressRequest] = Body(default=None)):
    client_id = (body.client_id if body else None) or principal.user_id
    ensure_can_view_client(principal, client_id, store)
    return compute_weekly_progress(store, client_id).to_dict()


@router.post(
    "/functions/backfill-fire-badges",
    response_model=BackfillReportOut,
    response_model_exclude_none=True,
    tags=["functions"],
)
def run_backfill(admin: Admin, store: Store, body: Optional[BackfillRequest] = Body(default=None)):
    body = body or BackfillRequest()
    report = backfill_fire_badges(store, user_id=body.user_id, group_id=body.group_id, dry_run=body.dry_run)
    logger.info("backfill_requested", extra={"requested_by": admin.user_id, "success": report.success})
    return report.to_dict()


@router.post(
    "/functions/award-fire-badges",
    response_model=AwardRunOut,
    response_model_exclude_none=True,
    tags=["functions"],
)
def run_award(admin: Admin, store: Store, body: Optional[AwardFireBadgesRequest] = Body(default=None)):
    body = body or AwardFireBadgesRequest()
    report = award_fire_badges(
        store,
        group_id=body.group_id,
        week_start=body.week_start,
        is_automated_run=body.is_automated_run,
        process_previous_week=body.process_previous_week,
    )
    logger.info("award_requested", extra={"requested_by": admin.user_id, "success": report.success})
    return report.to_dict()


@router.post(
    "/fire-badges/current-week",
    response_model=AwardResultOut,
    response_model_exclude_none=True,
    tags=["badges"],
)
def award_fire_badge(client: Client, store: Store):
    return award_current_week_badge(store, client.user_id)


@router.get("/fire-badges", response_model=list[FireBadgeOut], tags=["badges"])
def my_fire_badges(principal: Principal, store: Store):
    return list_badges(store, principal.user_id)


# -- programs --


@router.post("/programs/{program_id}/assign", response_model=AssignProgramOut, tags=["programs"])
def assign_program_to_client(program_id: str, body: AssignProgramInput, staff: Staff, store: Store):
    return programs.assign_program(
        store,
        assigned_by=staff.user_id,
        program_id=program_id,
        client_id=body.client_id,
        start_date=body.start_date,
        is_admin=staff.user_type == "admin",
    )


# -- activities --


@router.post("/activities/run", response_model=CompletionOut, status_code=201, tags=["activities"])
def log_run(body: RunActivityInput, client: Client, store: Store):
    return activities.completion_payload(activities.log_run(store, client.user_id, body))


@router.post("/activities/cardio", response_model=CompletionOut, status_code=201, tags=["activities"])
def log_cardio(body: CardioActivityInput, client: Client, store: Store):
    return activities.completion_payload(activities.log_cardio(store, client.user_id, body))


@router.post("/activities/rest-day", response_model=CompletionOut, status_code=201, tags=["activities"])
def log_rest_day(body: RestDayInput, client: Client, store: Store):
    return activities.completion_payload(activities.log_rest_day(store, client.user_id, body))


@router.post("/activities/life-happens", response_model=CompletionOut, status_code=201, tags=["activities"])
def life_happens(body: LifeHappensInput, client: Client, store: Store):
    row = activities.use_life_happens_pass(store, client.user_id, workout_id=body.workout_id, notes=body.notes)
    return activities.completion_payload(row)


@router.get("/activities/life-happens/allowance", response_model=LifeHappensAllowanceOut, tags=["activities"])
def life_happens_allowance(client: Client, store: Store):
    return activities.life_happens_allowance(store, client.user_id)


@router.post("/workouts/{workout_id}/start", response_model=CompletionOut, tags=["activities"])
def start_workout(workout_id: str, client: Client, store: Store):
    return activities.completion_payload(activities.start_workout(store, client.user_id, workout_id))


@router.post("/completions/{completion_id}/complete", response_model=CompletionOut, tags=["activities"])
def complete_workout(completion_id: str, client: Client, store: Store, body: Optional[CompleteWorkoutInput] = Body(default=None)):
    body = body or CompleteWorkoutInput()
    row = activities.complete_workout(
        store,
        client.user_id,
        completion_id,
        completed_at=body.completed_at,
        duration=body.duration,
        distance=body.distance,
    )
    return activities.completion_payload(row)


# -- invitations --


def _invitations(store: Store, mailer: Annotated[InvitationMailer, Depends(get_mailer)]) -> InvitationService:
    return InvitationService(store, mailer)


Invitations = Annotated[InvitationService, Depends(_invitations)]


@router.post("/invitations", response_model=InvitationOut, status_code=201, tags=["invitations"])
def create_invitation(body: InvitationCreateInput, admin: Admin, invitations: Invitations):
    return invitations.create(body.email, body.user_type, invited_by=admin.user_id)


@router.post("/invitations/share-link", response_model=InvitationOut, status_code=201, tags=["invitations"])
def create_share_link(body: ShareLinkInput, admin: Admin, invitations: Invitations):
    return invitations.create_share_link(body.user_type, invited_by=admin.user_id)


@router.post("/invitations/{invitation_id}/resend", response_model=InvitationOut, tags=["invitations"])
def resend_invitation(invitation_id: str, admin: Admin, invitations: Invitations):
    return invitations.resend(invitation_id)


@router.get("/invitations", response_model=InvitationListOut, tags=["invitations"])
def list_invitations(admin: Admin, invitations: Invitations):
    return invitations.partition()


@router.get("/invitations/validate/{token}", response_model=InvitationCheckOut, tags=["invitations"])
def validate_invitation(token: str, invitations: Invitations, email: Optional[str] = None):
    invitation = invitations.validate(token, email=email)
    return {
        "valid": True,
        "user_type": invitation.user_type,
        "email": invitation.email,
        "is_share_link": bool(invitation.is_share_link),
        "expires_at": invitation.expires_at,
    }


# -- rpc --


@router.post("/rpc/get_user_emails", response_model=list[UserEmailOut], tags=["rpc"])
def get_user_emails(body: UserEmailsRequest, staff: Staff, store: Store) -> list[dict[str, Any]]:
    return store.get_user_emails(body.user_ids)
