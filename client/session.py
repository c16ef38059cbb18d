"""
Persistence of the client session across restarts.

The blob stored under ``auth_session`` is JSON::

    {"response": {access_token, expiresAt, refresh_token, refreshExpiresAt},
     "user": {id, email, firstName, lastName, role},
     "savedAt": <epoch ms>}

A blob older than five days is discarded on restore.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import timedelta
from typing import Callable, Optional

from pydantic import ValidationError

from client.state import (
    AuthEvent,
    AuthState,
    AuthStore,
    LoggedOut,
    LoginResponse,
    LoginSucceeded,
    RefreshSucceeded,
    SessionRestored,
    SessionUser,
)
from client.storage import Storage

log = logging.getLogger("usermgr.client")

SESSION_KEY = "auth_session"
MAX_SESSION_AGE = timedelta(days=5)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    def __init__(
        self,
        storage: Storage,
        store: AuthStore,
        *,
        max_age: timedelta = MAX_SESSION_AGE,
        clock: Callable[[], int] = _now_ms,
    ):
        self.storage = storage
        self.store = store
        self.max_age_ms = int(max_age.total_seconds() * 1000)
        self._clock = clock

    # -- wiring ----------------------------------------------------------------

    def attach(self) -> Callable[[], None]:
        """
        Keep the persisted blob in step with the store: save after every
        login or refresh, drop it on logout.  Returns the unsubscribe handle.
        """
        return self.store.subscribe(self._on_event)

    def _on_event(self, event: AuthEvent, state: AuthState) -> None:
        match event:
            case LoginSucceeded() | RefreshSucceeded():
                self.save(state)
            case LoggedOut():
                self.storage.remove(SESSION_KEY)
            case _:
                pass

    # -- operations ------------------------------------------------------------

    def save(self, state: AuthState) -> None:
        response = state.response()
        if response is None or state.user is None:
            return
        blob = {
            "response": response.model_dump(by_alias=True),
            "user": state.user.model_dump(by_alias=True),
            "savedAt": self._clock(),
        }
        self.storage.set(SESSION_KEY, json.dumps(blob))

    def restore(self) -> Optional[AuthState]:
        """
        Replay a persisted session into the store.

        Returns the restored state, or None when nothing usable was stored
        (absent, older than the age ceiling, or unreadable).  Stale and
        unreadable blobs are removed.
        """
        raw = self.storage.get(SESSION_KEY)
        if not raw:
            return None

        try:
            blob = json.loads(raw)
            saved_at = int(blob.get("savedAt") or 0)
            response = LoginResponse.model_validate(blob["response"])
            user = SessionUser.model_validate(blob["user"])
        except (ValueError, TypeError, KeyError, AttributeError, ValidationError):
            log.warning("discarding unreadable persisted session")
            self.storage.remove(SESSION_KEY)
            return None

        age_ms = self._clock() - saved_at
        if age_ms > self.max_age_ms:
            log.info("discarding persisted session older than %s", timedelta(milliseconds=self.max_age_ms))
            self.storage.remove(SESSION_KEY)
            return None

        # SessionRestored does not re-stamp savedAt, so the ceiling still holds
        return self.store.dispatch(SessionRestored(response=response, user=user))

    def clear(self) -> AuthState:
        self.storage.remove(SESSION_KEY)
        return self.store.clear()
