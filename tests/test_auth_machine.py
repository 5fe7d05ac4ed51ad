"""Tests for the authentication state machine and its async actor."""

from __future__ import annotations

import asyncio
import datetime as dt

from core.errors import AuthError, UserTypeMismatchError
from core.services.auth_machine import (
    FETCH_PROFILE,
    GET_SESSION,
    SIGN_IN,
    SIGN_IN_SUCCESS,
    SIGN_OUT,
    SIGN_OUT_SUCCESS,
    SIGN_UP_SUCCESS,
    AuthActor,
    AuthContext,
    AuthState,
    CheckSession,
    Invoke,
    InvokeDone,
    InvokeError,
    Notify,
    SetSession,
    SetUserType,
    SignIn,
    SignOut,
    transition,
)
from core.services.identity import IdentitySession, IdentityUser


def _session(user_type="client", user_id="u1"):
    metadata = {"user_type": user_type} if user_type else {}
    return IdentitySession(
        access_token="token",
        expires_at=dt.datetime(2030, 1, 1),
        user=IdentityUser(id=user_id, email="a@example.com", user_metadata=metadata),
    )


class FakeClient:
    def __init__(self, session=None, profile=None, sign_in_error=None, sign_out_error=None, profile_error=None, result=None):
        self.session = session
        self.result = result or _session()
        self.profile = profile if profile is not None else {"id": "u1", "user_type": "client"}
        self.sign_in_error = sign_in_error
        self.sign_out_error = sign_out_error
        self.profile_error = profile_error
        self.calls: list[str] = []
        self.listeners = []

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return lambda: self.listeners.remove(callback)

    async def get_current_session(self):
        self.calls.append("get_session")
        return self.session

    async def sign_in(self, email, password):
        self.calls.append("sign_in")
        await asyncio.sleep(0)
        if self.sign_in_error:
            raise self.sign_in_error
        self.session = self.result
        return self.result

    async def sign_up(self, email, password, metadata):
        self.calls.append("sign_up")
        self.session = _session(metadata["user_type"])
        return self.session

    async def sign_out(self):
        self.calls.append("sign_out")
        self.session = None
        if self.sign_out_error:
            raise self.sign_out_error

    async def fetch_profile(self, user_id):
        self.calls.append("fetch_profile")
        if self.profile_error:
            raise self.profile_error
        return self.profile


class RecordingNotifier:
    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def notify(self, level, message):
        self.messages.append((level, message))


def _run(coro):
    return asyncio.run(coro)


# -- pure transitions --


def test_check_session_invokes_get_session():
    result = transition(AuthState.INITIALIZING, AuthContext(), CheckSession())
    assert result.state is AuthState.CHECKING_SESSION
    assert result.effects == (Invoke(GET_SESSION, CheckSession()),)


def test_no_session_goes_unauthenticated():
    result = transition(AuthState.CHECKING_SESSION, AuthContext(), InvokeDone(GET_SESSION, None))
    assert result.state is AuthState.UNAUTHENTICATED
    assert result.context.loading is False
    assert result.context.user is None


def test_found_session_fetches_profile_once():
    session = _session()
    result = transition(AuthState.CHECKING_SESSION, AuthContext(), InvokeDone(GET_SESSION, session))
    assert result.state is AuthState.FETCHING_PROFILE
    assert result.context.session is session
    assert result.context.profile_checked_for == "u1"
    assert result.effects[-1].service == FETCH_PROFILE


def test_failed_profile_fetch_is_non_fatal_and_not_retried():
    ctx = AuthContext(user=_session().user, session=_session(), loading=False, profile_checked_for="u1")
    result = transition(AuthState.FETCHING_PROFILE, ctx, InvokeError(FETCH_PROFILE, AuthError("boom")))
    assert result.state is AuthState.AUTHENTICATED
    assert result.context.error == "boom"
    assert result.effects == (Notify("error", "boom"),)


def test_second_sign_in_while_signing_in_is_ignored():
    result = transition(AuthState.SIGNING_IN, AuthContext(), SignIn("a@example.com", "pw", "client"))
    assert result.changed is False
    assert result.state is AuthState.SIGNING_IN


def test_sign_out_ignored_when_unauthenticated():
    result = transition(AuthState.UNAUTHENTICATED, AuthContext(loading=False), SignOut())
    assert result.changed is False


def test_completion_from_other_service_is_ignored():
    result = transition(AuthState.SIGNING_IN, AuthContext(), InvokeDone(SIGN_OUT, None))
    assert result.changed is False


def test_sign_in_error_returns_to_unauthenticated_with_message():
    result = transition(AuthState.SIGNING_IN, AuthContext(), InvokeError(SIGN_IN, AuthError("Invalid login credentials")))
    assert result.state is AuthState.UNAUTHENTICATED
    assert result.context.error == "Invalid login credentials"
    assert result.effects == (Notify("error", "Invalid login credentials"),)


def test_sign_out_failure_still_clears_identity():
    ctx = AuthContext(user=_session().user, session=_session(), user_type="client", loading=False)
    result = transition(AuthState.SIGNING_OUT, ctx, InvokeError(SIGN_OUT, RuntimeError("network down")))
    assert result.state is AuthState.UNAUTHENTICATED
    assert result.context.session is None
    assert result.context.user_type is None
    assert result.context.error == "network down"
    assert result.effects[0].level == "warning"


def test_set_user_type_stays_authenticated():
    ctx = AuthContext(user=_session().user, session=_session(), loading=False)
    result = transition(AuthState.AUTHENTICATED, ctx, SetUserType("coach"))
    assert result.state is AuthState.AUTHENTICATED
    assert result.context.user_type == "coach"


def test_session_cleared_externally_signs_out():
    ctx = AuthContext(user=_session().user, session=_session(), user_type="client", loading=False)
    result = transition(AuthState.AUTHENTICATED, ctx, SetSession(None))
    assert result.state is AuthState.UNAUTHENTICATED
    assert result.context.user is None


# -- actor --


def test_actor_start_without_session():
    client = FakeClient()

    async def scenario():
        actor = AuthActor(client, RecordingNotifier())
        await actor.start()
        return actor

    actor = _run(scenario())
    assert actor.state is AuthState.UNAUTHENTICATED
    assert actor.context.loading is False
    assert client.calls == ["get_session"]


def test_actor_start_restores_session_and_profile():
    client = FakeClient(session=_session())

    async def scenario():
        actor = AuthActor(client, RecordingNotifier())
        await actor.start()
        return actor

    actor = _run(scenario())
    assert actor.is_authenticated
    assert actor.context.user_type == "client"
    assert client.calls == ["get_session", "fetch_profile"]


def test_actor_sign_in_success():
    client = FakeClient()
    notifier = RecordingNotifier()

    async def scenario():
        actor = AuthActor(client, notifier)
        await actor.start()
        await actor.sign_in("a@example.com", "pw", "client")
        return actor

    actor = _run(scenario())
    assert actor.is_authenticated
    assert actor.context.profile == {"id": "u1", "user_type": "client"}
    assert ("success", SIGN_IN_SUCCESS) in notifier.messages


def test_actor_sign_in_rejects_wrong_user_type():
    client = FakeClient(result=_session(user_type="coach"))
    notifier = RecordingNotifier()

    async def scenario():
        actor = AuthActor(client, notifier)
        await actor.start()
        await actor.sign_in("a@example.com", "pw", "client")
        return actor

    actor = _run(scenario())
    assert actor.state is AuthState.UNAUTHENTICATED
    assert actor.context.error == "This account is registered as a coach, not as a client"
    assert isinstance(actor.last_exception, UserTypeMismatchError)
    assert client.calls[-1] == "sign_out"
    assert notifier.messages[-1][0] == "error"


def test_actor_sign_in_bad_credentials():
    client = FakeClient(sign_in_error=AuthError("Invalid login credentials"))

    async def scenario():
        actor = AuthActor(client, RecordingNotifier())
        await actor.start()
        await actor.sign_in("a@example.com", "wrong", "client")
        return actor

    actor = _run(scenario())
    assert actor.state is AuthState.UNAUTHENTICATED
    assert actor.context.error == "Invalid login credentials"
    assert actor.context.loading is False


def test_actor_ignores_duplicate_sign_in():
    client = FakeClient()

    async def scenario():
        actor = AuthActor(client, RecordingNotifier())
        await actor.start()
        first = actor.send(SignIn("a@example.com", "pw", "client"))
        second = actor.send(SignIn("a@example.com", "pw", "client"))
        await actor.settled()
        return first, second

    first, second = _run(scenario())
    assert first is True
    assert second is False
    assert client.calls.count("sign_in") == 1


def test_actor_profile_failure_falls_back_to_metadata():
    client = FakeClient(profile_error=RuntimeError("profiles offline"))

    async def scenario():
        actor = AuthActor(client, RecordingNotifier())
        await actor.start()
        await actor.sign_in("a@example.com", "pw", "client")
        return actor

    actor = _run(scenario())
    assert actor.is_authenticated
    assert actor.context.user_type == "client"
    assert actor.context.profile == {"user_type": "client"}


def test_actor_profile_failure_without_metadata_stays_authenticated():
    client = FakeClient(session=_session(user_type=None), profile_error=RuntimeError("profiles offline"))

    async def scenario():
        actor = AuthActor(client, RecordingNotifier())
        await actor.start()
        return actor

    actor = _run(scenario())
    assert actor.is_authenticated
    assert actor.context.user_type is None
    assert actor.context.error == "profiles offline"
    assert client.calls.count("fetch_profile") == 1


def test_actor_sign_up_notifies():
    client = FakeClient()
    notifier = RecordingNotifier()

    async def scenario():
        actor = AuthActor(client, notifier)
        await actor.start()
        await actor.sign_up("new@example.com", "pw", "client", first_name="New")
        return actor

    actor = _run(scenario())
    assert actor.is_authenticated
    assert ("success", SIGN_UP_SUCCESS) in notifier.messages


def test_actor_sign_out_success_and_failure():
    async def scenario(client, notifier):
        actor = AuthActor(client, notifier)
        await actor.start()
        await actor.sign_out()
        return actor

    ok_notifier = RecordingNotifier()
    ok = _run(scenario(FakeClient(session=_session()), ok_notifier))
    assert ok.state is AuthState.UNAUTHENTICATED
    assert ("success", SIGN_OUT_SUCCESS) in ok_notifier.messages

    failed_notifier = RecordingNotifier()
    failed = _run(scenario(FakeClient(session=_session(), sign_out_error=RuntimeError("network down")), failed_notifier))
    assert failed.state is AuthState.UNAUTHENTICATED
    assert failed.context.session is None
    assert failed_notifier.messages[-1][0] == "warning"


def test_actor_follows_external_sign_out():
    client = FakeClient(session=_session())

    async def scenario():
        actor = AuthActor(client, RecordingNotifier())
        await actor.start()
        for listener in list(client.listeners):
            listener("SIGNED_OUT", None)
        return actor

    actor = _run(scenario())
    assert actor.state is AuthState.UNAUTHENTICATED


def test_session_for_another_user_refetches_profile():
    coach = _session(user_type="coach", user_id="A")
    ctx = AuthContext(
        user=coach.user,
        session=coach,
        user_type="coach",
        profile={"id": "A", "user_type": "coach"},
        loading=False,
        profile_checked_for="A",
    )
    newcomer = _session(user_type="client", user_id="B")
    result = transition(AuthState.AUTHENTICATED, ctx, SetSession(newcomer))
    assert result.state is AuthState.FETCHING_PROFILE
    assert result.context.user.id == "B"
    assert result.context.user_type is None
    assert result.context.profile is None
    assert result.context.profile_checked_for == "B"
    assert result.effects[-1].service == FETCH_PROFILE


def test_refreshed_session_for_same_user_keeps_profile():
    first = _session(user_id="A")
    ctx = AuthContext(user=first.user, session=first, user_type="client", profile={"id": "A"}, loading=False)
    refreshed = IdentitySession(access_token="rotated", expires_at=dt.datetime(2031, 1, 1), user=first.user)
    result = transition(AuthState.AUTHENTICATED, ctx, SetSession(refreshed))
    assert result.state is AuthState.AUTHENTICATED
    assert result.context.session.access_token == "rotated"
    assert result.context.profile == {"id": "A"}
    assert result.effects == ()


def test_sign_out_during_profile_fetch_is_not_lost():
    session = _session()
    ctx = AuthContext(user=session.user, session=session, loading=False, profile_checked_for="u1")
    result = transition(AuthState.FETCHING_PROFILE, ctx, SetSession(None))
    assert result.state is AuthState.UNAUTHENTICATED
    assert result.context.session is None

    late = transition(result.state, result.context, InvokeDone(FETCH_PROFILE, {"user_type": "client"}))
    assert late.changed is False


def test_actor_switching_accounts_takes_new_role():
    client = FakeClient(session=_session(user_type="coach", user_id="A"), profile={"id": "A", "user_type": "coach"})

    async def scenario():
        actor = AuthActor(client, RecordingNotifier())
        await actor.start()
        client.profile = {"id": "B", "user_type": "client"}
        for listener in list(client.listeners):
            listener("SIGNED_IN", _session(user_type="client", user_id="B"))
        await actor.settled()
        return actor

    actor = _run(scenario())
    assert actor.is_authenticated
    assert actor.context.user.id == "B"
    assert actor.context.user_type == "client"
    assert client.calls.count("fetch_profile") == 2


def test_actor_signs_in_after_checking_for_no_session():
    client = FakeClient()

    async def scenario():
        actor = AuthActor(client, RecordingNotifier())
        before = await actor.sign_in("a@example.com", "pw", "client")
        await actor.start()
        after = await actor.sign_in("a@example.com", "pw", "client")
        return actor, before, after

    actor, before, after = _run(scenario())
    assert before is False
    assert after is True
    assert actor.is_authenticated
    assert client.calls == ["get_session", "sign_in", "fetch_profile"]
