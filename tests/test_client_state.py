from __future__ import annotations

import logging

import pytest

from client.state import (
    INITIAL_STATE,
    AuthStore,
    ErrorCleared,
    LoggedOut,
    LoginFailed,
    LoginResponse,
    LoginStarted,
    LoginSucceeded,
    RefreshFailed,
    RefreshSucceeded,
    SessionRestored,
    SessionUser,
    reduce,
)

TOKENS = LoginResponse(
    access_token="access-1",
    expires_at=1_000,
    refresh_token="refresh-1",
    refresh_expires_at=2_000,
)
USER = SessionUser(id="u1", email="user@example.com", first_name="Test", last_name="User")


def test_login_started_sets_loading() -> None:
    state = reduce(INITIAL_STATE, LoginStarted(email="user@example.com"))
    assert state.loading is True
    assert state.error is None
    assert state.is_authenticated is False


def test_login_succeeded_populates_session() -> None:
    state = reduce(reduce(INITIAL_STATE, LoginStarted(email="x")), LoginSucceeded(TOKENS, USER))
    assert state.is_authenticated is True
    assert state.loading is False
    assert state.user == USER
    assert state.access_token == "access-1"
    assert state.refresh_expires_at == 2_000
    assert state.response() == TOKENS


def test_login_failed_keeps_message() -> None:
    state = reduce(reduce(INITIAL_STATE, LoginStarted(email="x")), LoginFailed("Invalid credentials"))
    assert state.loading is False
    assert state.error == "Invalid credentials"
    assert state.response() is None

    assert reduce(state, ErrorCleared()).error is None


def test_refresh_replaces_tokens_and_keeps_user() -> None:
    logged_in = reduce(INITIAL_STATE, LoginSucceeded(TOKENS, USER))
    newer = LoginResponse(
        access_token="access-2", expires_at=3_000, refresh_token="refresh-2", refresh_expires_at=4_000
    )
    state = reduce(logged_in, RefreshSucceeded(newer))
    assert state.user == USER
    assert (state.access_token, state.refresh_token) == ("access-2", "refresh-2")


def test_refresh_failed_records_error() -> None:
    logged_in = reduce(INITIAL_STATE, LoginSucceeded(TOKENS, USER))
    assert reduce(logged_in, RefreshFailed("Invalid refresh token")).error == "Invalid refresh token"


def test_session_restored_equals_login() -> None:
    assert reduce(INITIAL_STATE, SessionRestored(TOKENS, USER)) == reduce(
        INITIAL_STATE, LoginSucceeded(TOKENS, USER)
    )


def test_logout_returns_initial_state() -> None:
    logged_in = reduce(INITIAL_STATE, LoginSucceeded(TOKENS, USER))
    assert reduce(logged_in, LoggedOut()) == INITIAL_STATE


def test_unknown_event_is_rejected() -> None:
    with pytest.raises(TypeError):
        reduce(INITIAL_STATE, object())


def test_login_response_accepts_wire_aliases() -> None:
    wire = {
        "access_token": "a",
        "expiresAt": 1,
        "refresh_token": "r",
        "refreshExpiresAt": 2,
    }
    tokens = LoginResponse.model_validate(wire)
    assert tokens.model_dump(by_alias=True) == wire


# ---------------------------------------------------------------------------
# store
# ---------------------------------------------------------------------------


def test_store_notifies_subscribers_until_unsubscribed() -> None:
    store = AuthStore()
    seen = []
    unsubscribe = store.subscribe(lambda event, state: seen.append((type(event).__name__, state.is_authenticated)))

    store.dispatch(LoginSucceeded(TOKENS, USER))
    store.clear()
    unsubscribe()
    store.dispatch(LoginSucceeded(TOKENS, USER))

    assert seen == [("LoginSucceeded", True), ("LoggedOut", False)]
    assert store.state.is_authenticated is True


def test_failing_listener_does_not_block_others(caplog) -> None:
    store = AuthStore()
    seen = []

    def broken(event, state):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(lambda event, state: seen.append(event))

    # the application logger does not propagate to root, so listen on it directly
    client_log = logging.getLogger("usermgr.client")
    client_log.addHandler(caplog.handler)
    try:
        state = store.dispatch(LoginStarted(email="x"))
    finally:
        client_log.removeHandler(caplog.handler)

    assert state.loading is True
    assert len(seen) == 1
    assert "listener failed" in caplog.text
