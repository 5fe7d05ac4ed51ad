"""Authentication session state machine.

``transition`` is a pure function from (state, context, event) to the next
state, context and a tuple of effects. ``AuthActor`` is the async shell: it
applies transitions, runs at most one invoked service at a time and feeds
the outcome back as ``InvokeDone`` / ``InvokeError`` events.

Events that have no transition in the current state are ignored, which is
how a second ``SignIn`` during ``signingIn`` becomes a no-op.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Protocol

from core.errors import AuthError, UserTypeMismatchError

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    INITIALIZING = "initializing"
    CHECKING_SESSION = "checkingSession"
    UNAUTHENTICATED = "unauthenticated"
    SIGNING_IN = "signingIn"
    SIGNING_UP = "signingUp"
    AUTHENTICATED = "authenticated"
    FETCHING_PROFILE = "fetchingProfile"
    SIGNING_OUT = "signingOut"


GET_SESSION = "get_session"
SIGN_IN = "sign_in"
SIGN_UP = "sign_up"
SIGN_OUT = "sign_out"
FETCH_PROFILE = "fetch_profile"

SERVICE_BY_STATE: dict[AuthState, str] = {
    AuthState.CHECKING_SESSION: GET_SESSION,
    AuthState.SIGNING_IN: SIGN_IN,
    AuthState.SIGNING_UP: SIGN_UP,
    AuthState.SIGNING_OUT: SIGN_OUT,
    AuthState.FETCHING_PROFILE: FETCH_PROFILE,
}

SIGN_IN_SUCCESS = "Sign in successful!"
SIGN_UP_SUCCESS = "Registration successful! Please check your email to confirm your account."
SIGN_OUT_SUCCESS = "Logged out successfully"


# -- events --


@dataclass(frozen=True)
class CheckSession:
    pass


@dataclass(frozen=True)
class SetSession:
    session: Optional[Any]


@dataclass(frozen=True)
class SignIn:
    email: str
    password: str
    user_type: str


@dataclass(frozen=True)
class SignUp:
    email: str
    password: str
    user_type: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@dataclass(frozen=True)
class SignOut:
    pass


@dataclass(frozen=True)
class SetUserType:
    user_type: Optional[str]


@dataclass(frozen=True)
class SetProfile:
    profile: Any


@dataclass(frozen=True)
class InvokeDone:
    service: str
    data: Any = None


@dataclass(frozen=True)
class InvokeError:
    service: str
    error: Any = None


# -- context and effects --


@dataclass(frozen=True)
class AuthContext:
    user: Optional[Any] = None
    session: Optional[Any] = None
    user_type: Optional[str] = None
    profile: Optional[dict] = None
    error: Optional[str] = None
    loading: bool = True
    # Id of the user whose profile lookup already ran this session.
    profile_checked_for: Optional[str] = None


@dataclass(frozen=True)
class Invoke:
    service: str
    event: Any


@dataclass(frozen=True)
class Notify:
    level: str
    message: str


@dataclass(frozen=True)
class Transition:
    state: AuthState
    context: AuthContext
    effects: tuple = field(default_factory=tuple)
    changed: bool = True


def _message(error: Any, default: str) -> str:
    if isinstance(error, str):
        return error or default
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    text = str(error) if error is not None else ""
    return text or default


def _user_id(user: Any) -> Optional[str]:
    if user is None:
        return None
    if isinstance(user, dict):
        return user.get("id")
    return getattr(user, "id", None)


def _session_user(session: Any) -> Optional[Any]:
    if session is None:
        return None
    if isinstance(session, dict):
        return session.get("user")
    return getattr(session, "user", None)


def _enter(target: AuthState, ctx: AuthContext, trigger: Any, effects: list) -> AuthContext:
    if target is AuthState.INITIALIZING:
        return replace(ctx, loading=True)
    if target is AuthState.UNAUTHENTICATED:
        return replace(ctx, user=None, session=None, user_type=None, profile=None, loading=False, profile_checked_for=None)
    if target is AuthState.AUTHENTICATED:
        return replace(ctx, loading=False)
    if target in (AuthState.SIGNING_IN, AuthState.SIGNING_UP, AuthState.SIGNING_OUT):
        effects.append(Invoke(SERVICE_BY_STATE[target], trigger))
        return replace(ctx, loading=True, error=None)
    if target is AuthState.CHECKING_SESSION:
        effects.append(Invoke(GET_SESSION, trigger))
        return ctx
    if target is AuthState.FETCHING_PROFILE:
        effects.append(Invoke(FETCH_PROFILE, trigger))
        return replace(ctx, profile_checked_for=_user_id(ctx.user))
    return ctx


def _needs_profile(state: AuthState, ctx: AuthContext) -> bool:
    if state is not AuthState.AUTHENTICATED or ctx.user is None:
        return False
    if ctx.profile is not None or ctx.user_type is not None:
        return False
    return ctx.profile_checked_for != _user_id(ctx.user)


def _authenticated_with(session: Any, ctx: AuthContext) -> AuthContext:
    return replace(ctx, session=session, user=_session_user(session), loading=False)


def _step(state: AuthState, ctx: AuthContext, event: Any, effects: list) -> tuple[Optional[AuthState], AuthContext]:
    """Return (target, context). A None target with an unchanged context means no transition."""
    if isinstance(event, (InvokeDone, InvokeError)) and SERVICE_BY_STATE.get(state) != event.service:
        return None, ctx

    if state is AuthState.INITIALIZING:
        if isinstance(event, CheckSession):
            return AuthState.CHECKING_SESSION, ctx
        if isinstance(event, SetSession):
            if event.session is None:
                return AuthState.UNAUTHENTICATED, ctx
            return AuthState.AUTHENTICATED, _authenticated_with(event.session, ctx)

    elif state is AuthState.CHECKING_SESSION:
        if isinstance(event, InvokeDone):
            if event.data is None:
                return AuthState.UNAUTHENTICATED, ctx
            return AuthState.AUTHENTICATED, _authenticated_with(event.data, ctx)
        if isinstance(event, InvokeError):
            message = _message(event.error, "Failed to get session")
            effects.append(Notify("error", message))
            return AuthState.UNAUTHENTICATED, replace(ctx, error=message, loading=False)

    elif state is AuthState.UNAUTHENTICATED:
        if isinstance(event, SignIn):
            return AuthState.SIGNING_IN, ctx
        if isinstance(event, SignUp):
            return AuthState.SIGNING_UP, ctx
        if isinstance(event, SetSession) and event.session is not None:
            return AuthState.AUTHENTICATED, _authenticated_with(event.session, ctx)

    elif state in (AuthState.SIGNING_IN, AuthState.SIGNING_UP):
        signing_in = state is AuthState.SIGNING_IN
        if isinstance(event, InvokeDone):
            effects.append(Notify("success", SIGN_IN_SUCCESS if signing_in else SIGN_UP_SUCCESS))
            return AuthState.AUTHENTICATED, _authenticated_with(event.data, ctx)
        if isinstance(event, InvokeError):
            message = _message(event.error, "Failed to sign in" if signing_in else "Failed to sign up")
            effects.append(Notify("error", message))
            return AuthState.UNAUTHENTICATED, replace(ctx, error=message, loading=False)

    elif state is AuthState.AUTHENTICATED:
        if isinstance(event, SignOut):
            return AuthState.SIGNING_OUT, ctx
        if isinstance(event, SetUserType):
            return None, replace(ctx, user_type=event.user_type)
        if isinstance(event, SetProfile):
            return None, replace(ctx, profile=event.profile)
        if isinstance(event, SetSession):
            if event.session is None:
                return AuthState.UNAUTHENTICATED, ctx
            user = _session_user(event.session)
            if _user_id(user) != _user_id(ctx.user):
                # A different account: its profile and role are looked up afresh.
                return None, replace(
                    ctx, session=event.session, user=user, user_type=None, profile=None, profile_checked_for=None
                )
            return None, replace(ctx, session=event.session, user=user)

    elif state is AuthState.FETCHING_PROFILE:
        if isinstance(event, SetSession) and event.session is None:
            return AuthState.UNAUTHENTICATED, ctx
        if isinstance(event, InvokeDone):
            profile = event.data or {}
            user_type = profile.get("user_type") if isinstance(profile, dict) else getattr(profile, "user_type", None)
            return AuthState.AUTHENTICATED, replace(ctx, profile=event.data, user_type=user_type)
        if isinstance(event, InvokeError):
            message = _message(event.error, "Failed to fetch profile")
            effects.append(Notify("error", message))
            return AuthState.AUTHENTICATED, replace(ctx, error=message)

    elif state is AuthState.SIGNING_OUT:
        if isinstance(event, InvokeDone):
            effects.append(Notify("success", SIGN_OUT_SUCCESS))
            return AuthState.UNAUTHENTICATED, ctx
        if isinstance(event, InvokeError):
            message = _message(event.error, "Failed to sign out")
            effects.append(Notify("warning", f"Signed out on this device, but the server sign-out failed: {message}"))
            return AuthState.UNAUTHENTICATED, replace(ctx, error=message)

    return None, ctx


def transition(state: AuthState, ctx: AuthContext, event: Any) -> Transition:
    effects: list = []
    target, next_ctx = _step(state, ctx, event, effects)
    if target is None:
        if next_ctx is ctx:
            return Transition(state, ctx, (), changed=False)
        target = state
    else:
        next_ctx = _enter(target, next_ctx, event, effects)

    if _needs_profile(target, next_ctx):
        target = AuthState.FETCHING_PROFILE
        next_ctx = _enter(target, next_ctx, event, effects)
    return Transition(target, next_ctx, tuple(effects))


# -- actor --


class Notifier(Protocol):
    def notify(self, level: str, message: str) -> None: ...


class LoggingNotifier:
    def notify(self, level: str, message: str) -> None:
        log_level = logging.INFO if level == "success" else logging.WARNING
        logger.log(log_level, "auth_notification", extra={"notify_level": level, "notify_message": message})


class AuthActor:
    """Runs the machine against an identity client.

    ``send`` must be called from inside a running event loop because invoked
    services are scheduled as tasks; ``dispatch`` sends and then waits until
    no service is in flight.
    """

    def __init__(self, client, notifier: Optional[Notifier] = None):
        self.client = client
        self.notifier = notifier or LoggingNotifier()
        self.state = AuthState.INITIALIZING
        self.context = AuthContext()
        self.last_exception: Optional[Exception] = None
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe = None
        self._services = {
            GET_SESSION: self._get_session,
            SIGN_IN: self._sign_in,
            SIGN_UP: self._sign_up,
            SIGN_OUT: self._sign_out,
            FETCH_PROFILE: self._fetch_profile,
        }

    @property
    def is_authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    @property
    def is_initializing(self) -> bool:
        return self.state in (AuthState.INITIALIZING, AuthState.CHECKING_SESSION)

    def send(self, event: Any) -> bool:
        result = transition(self.state, self.context, event)
        if not result.changed:
            logger.debug("auth_event_ignored", extra={"state": self.state.value, "event": type(event).__name__})
            return False
        if result.state is not self.state:
            logger.debug("auth_transition", extra={"from_state": self.state.value, "to_state": result.state.value})
        self.state, self.context = result.state, result.context
        for effect in result.effects:
            if isinstance(effect, Notify):
                self.notifier.notify(effect.level, effect.message)
            elif isinstance(effect, Invoke):
                self._task = asyncio.get_running_loop().create_task(self._run(effect))
        return True

    async def dispatch(self, event: Any) -> bool:
        accepted = self.send(event)
        await self.settled()
        return accepted

    async def settled(self) -> None:
        while self._task is not None and not self._task.done():
            await self._task

    async def _run(self, effect: Invoke) -> None:
        try:
            data = await self._services[effect.service](effect.event)
        except Exception as exc:
            self.last_exception = exc
            logger.info("auth_service_failed", extra={"service": effect.service, "error": str(exc)})
            self.send(InvokeError(effect.service, exc))
        else:
            self.send(InvokeDone(effect.service, data))

    # -- lifecycle --

    async def start(self) -> None:
        """Subscribe to auth-state changes, then check for an existing session."""
        self._unsubscribe = self.client.on_auth_state_change(self._on_auth_state_change)
        await self.dispatch(CheckSession())

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_auth_state_change(self, event_name: str, session: Any) -> None:
        self.send(SetSession(session))

    async def sign_in(self, email: str, password: str, user_type: str) -> bool:
        return await self.dispatch(SignIn(email=email, password=password, user_type=user_type))

    async def sign_up(self, email: str, password: str, user_type: str, **metadata: Any) -> bool:
        return await self.dispatch(SignUp(email=email, password=password, user_type=user_type, **metadata))

    async def sign_out(self) -> bool:
        return await self.dispatch(SignOut())

    # -- invoked services --

    async def _get_session(self, event: Any) -> Any:
        return await self.client.get_current_session()

    async def _sign_in(self, event: SignIn) -> Any:
        session = await self.client.sign_in(event.email, event.password)
        stored_type = (_session_user(session).user_metadata or {}).get("user_type")
        if stored_type and stored_type != event.user_type:
            try:
                await self.client.sign_out()
            except Exception as exc:
                logger.warning("sign_out_after_type_mismatch_failed", extra={"error": str(exc)})
            raise UserTypeMismatchError(stored_type, event.user_type)
        return session

    async def _sign_up(self, event: SignUp) -> Any:
        metadata = {"user_type": event.user_type}
        if event.first_name:
            metadata["first_name"] = event.first_name
        if event.last_name:
            metadata["last_name"] = event.last_name
        return await self.client.sign_up(event.email, event.password, metadata)

    async def _sign_out(self, event: Any) -> None:
        await self.client.sign_out()

    async def _fetch_profile(self, event: Any) -> Any:
        user = self.context.user
        user_id = _user_id(user)
        if user_id is None:
            raise AuthError("No user to fetch profile for")
        try:
            return await self.client.fetch_profile(user_id)
        except Exception:
            metadata = getattr(user, "user_metadata", None) or {}
            if metadata.get("user_type"):
                logger.warning("profile_fetch_fell_back_to_metadata", extra={"user_id": user_id})
                return {"user_type": metadata["user_type"]}
            raise
