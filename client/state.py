"""
Client-side auth state.

``AuthStore`` is the single mutable cell holding the current session.  It is
changed only through :meth:`AuthStore.dispatch`, which runs :func:`reduce`
over one of the event classes below and then notifies subscribers with
``(event, new_state)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

log = logging.getLogger("usermgr.client")


# ---------------------------------------------------------------------------
# Wire shapes
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """Body of a successful /auth/login or /auth/refresh call (epoch ms)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access_token: str
    expires_at: int = Field(alias="expiresAt")
    refresh_token: str
    refresh_expires_at: int = Field(alias="refreshExpiresAt")


class SessionUser(BaseModel):
    """Identity shown in the UI, read from the access token claims."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    email: str
    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    role: Literal["admin", "user"] = "user"


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthState:
    user: Optional[SessionUser] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    refresh_expires_at: Optional[int] = None
    loading: bool = False
    error: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token and self.user)

    def response(self) -> Optional[LoginResponse]:
        """The token part of the state in wire form, if authenticated."""
        if not (self.access_token and self.refresh_token):
            return None
        return LoginResponse(
            access_token=self.access_token,
            expires_at=self.expires_at or 0,
            refresh_token=self.refresh_token,
            refresh_expires_at=self.refresh_expires_at or 0,
        )


INITIAL_STATE = AuthState()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoginStarted:
    email: str


@dataclass(frozen=True)
class LoginSucceeded:
    response: LoginResponse
    user: SessionUser


@dataclass(frozen=True)
class LoginFailed:
    error: str


@dataclass(frozen=True)
class RefreshSucceeded:
    response: LoginResponse


@dataclass(frozen=True)
class RefreshFailed:
    error: str


@dataclass(frozen=True)
class SessionRestored:
    response: LoginResponse
    user: SessionUser


@dataclass(frozen=True)
class LoggedOut:
    pass


@dataclass(frozen=True)
class ErrorCleared:
    pass


AuthEvent = Union[
    LoginStarted,
    LoginSucceeded,
    LoginFailed,
    RefreshSucceeded,
    RefreshFailed,
    SessionRestored,
    LoggedOut,
    ErrorCleared,
]


def _with_tokens(state: AuthState, response: LoginResponse) -> AuthState:
    return replace(
        state,
        access_token=response.access_token,
        refresh_token=response.refresh_token,
        expires_at=response.expires_at,
        refresh_expires_at=response.refresh_expires_at,
        loading=False,
        error=None,
    )


def reduce(state: AuthState, event: AuthEvent) -> AuthState:
    """Pure state transition.  Unknown events are a programming error."""
    match event:
        case LoginStarted():
            return replace(state, loading=True, error=None)
        case LoginSucceeded(response=response, user=user) | SessionRestored(response=response, user=user):
            return _with_tokens(replace(state, user=user), response)
        case LoginFailed(error=error) | RefreshFailed(error=error):
            return replace(state, loading=False, error=error)
        case RefreshSucceeded(response=response):
            return _with_tokens(state, response)
        case LoggedOut():
            return INITIAL_STATE
        case ErrorCleared():
            return replace(state, error=None)
        case _:
            raise TypeError(f"unhandled auth event: {event!r}")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

Listener = Callable[[AuthEvent, AuthState], None]


class AuthStore:
    """Holds the current :class:`AuthState`; the only place it is replaced."""

    def __init__(self, state: AuthState = INITIAL_STATE):
        self._state = state
        self._listeners: list[Listener] = []

    @property
    def state(self) -> AuthState:
        return self._state

    def dispatch(self, event: AuthEvent) -> AuthState:
        self._state = reduce(self._state, event)
        for listener in list(self._listeners):
            try:
                listener(event, self._state)
            except Exception:
                # one broken subscriber must not stop the others
                log.exception("auth store listener failed on %s", type(event).__name__)
        return self._state

    def clear(self) -> AuthState:
        return self.dispatch(LoggedOut())

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
