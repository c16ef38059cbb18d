"""
Bearer attachment and the refresh-on-401 retry protocol.

For every request sent through :meth:`AuthInterceptor.send`:

1. the current access token is attached as ``Authorization: Bearer …``;
2. any response other than 401 is returned untouched;
3. a 401 on the refresh call itself clears the session, no retry;
4. a 401 without a refresh token in the store clears the session;
5. otherwise the refresh endpoint is called once, the store is updated and
   the original request is re-sent once with the new access token;
6. if the refresh fails the session is cleared and the caller gets
   :class:`RefreshFailed` rather than the original 401.

Concurrent requests that hit 401 together share one in-flight refresh.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from client.state import AuthStore, LoginResponse, RefreshSucceeded

log = logging.getLogger("usermgr.client")

REFRESH_PATH = "/auth/refresh"


class ReauthenticationRequired(Exception):
    """The session is gone; the user has to log in again."""

    def __init__(self, message: str, response: Optional[httpx.Response] = None):
        super().__init__(message)
        self.response = response


class RefreshFailed(ReauthenticationRequired):
    """The refresh exchange itself was rejected or could not be completed."""


def _bearer(token: Optional[str]) -> Optional[str]:
    return f"Bearer {token}" if token else None


class AuthInterceptor:
    def __init__(
        self,
        http: httpx.AsyncClient,
        store: AuthStore,
        *,
        refresh_path: str = REFRESH_PATH,
        on_unauthenticated: Optional[Callable[[], None]] = None,
    ):
        self.http = http
        self.store = store
        self.refresh_path = refresh_path
        self.on_unauthenticated = on_unauthenticated
        self._inflight: Optional[asyncio.Task] = None
        # (access token the exchange was meant to replace, its failure)
        self._failed: Optional[tuple[str, RefreshFailed]] = None

    # -- helpers ---------------------------------------------------------------

    def _is_refresh_call(self, request: httpx.Request) -> bool:
        return request.url.path.endswith(self.refresh_path)

    @staticmethod
    def _authorize(request: httpx.Request, token: Optional[str]) -> httpx.Request:
        header = _bearer(token)
        if header:
            request.headers["Authorization"] = header
        return request

    @staticmethod
    def _clone(request: httpx.Request, token: str) -> httpx.Request:
        headers = httpx.Headers(request.headers)
        headers["Authorization"] = _bearer(token)
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=request.content,
            extensions=request.extensions,
        )

    def _sign_out(self, reason: str) -> None:
        log.info("session cleared: %s", reason)
        self.store.clear()
        if self.on_unauthenticated is not None:
            self.on_unauthenticated()

    # -- refresh ---------------------------------------------------------------

    async def _exchange(self, refresh_token: str) -> str:
        """POST the refresh token; update the store; return the new access token."""
        try:
            response = await self.http.post(self.refresh_path, json={"refresh_token": refresh_token})
        except httpx.HTTPError as exc:
            self._sign_out("refresh request failed")
            raise RefreshFailed(f"Token refresh failed: {exc}") from exc

        if response.status_code == 401:
            self._sign_out("refresh call rejected with 401")
            raise RefreshFailed("Token refresh was rejected", response)

        tokens = None
        message = "Token refresh failed"
        if response.is_success:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get("status") == "error":
                message = payload.get("message") or message
            else:
                try:
                    tokens = LoginResponse.model_validate(payload)
                except ValidationError:
                    tokens = None

        if tokens is None:
            self._sign_out("refresh rejected")
            raise RefreshFailed(message, response)

        self.store.dispatch(RefreshSucceeded(response=tokens))
        log.info("access token refreshed")
        return tokens.access_token

    async def _run_refresh(self, refresh_token: str, stale_token: Optional[str]) -> str:
        try:
            access_token = await self._exchange(refresh_token)
        except RefreshFailed as exc:
            if stale_token:
                self._failed = (stale_token, exc)
            raise
        else:
            self._failed = None
            return access_token
        finally:
            self._inflight = None

    @staticmethod
    def _retrieve_outcome(task: asyncio.Task) -> None:
        # mark the exception as seen even when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def refresh(self) -> str:
        """
        Refresh the access token, joining an exchange already in flight.
        Returns the new access token or raises :class:`ReauthenticationRequired`.
        """
        if self._inflight is None:
            refresh_token = self.store.state.refresh_token
            if not refresh_token:
                self._sign_out("no refresh token")
                raise ReauthenticationRequired("No refresh token available")
            self._inflight = asyncio.ensure_future(
                self._run_refresh(refresh_token, self.store.state.access_token)
            )
            self._inflight.add_done_callback(self._retrieve_outcome)
        # shield: one cancelled waiter must not cancel the shared exchange
        return await asyncio.shield(self._inflight)

    # -- protocol --------------------------------------------------------------

    async def send(self, request: httpx.Request) -> httpx.Response:
        # buffer the body so the request can be re-sent after a refresh
        await request.aread()
        sent_token = self.store.state.access_token
        self._authorize(request, sent_token)
        response = await self.http.send(request)

        if response.status_code != 401:
            return response

        await response.aread()
        if self._is_refresh_call(request):
            self._sign_out("refresh call rejected with 401")
            raise ReauthenticationRequired("Token refresh was rejected", response)

        if self._failed is not None and sent_token and self._failed[0] == sent_token:
            # the exchange meant to replace this token already failed and signed out
            failure = self._failed[1]
            raise RefreshFailed(str(failure), failure.response) from failure

        current = self.store.state.access_token
        if current and current != sent_token:
            # another request already refreshed while this one was in flight
            new_token = current
        elif self._inflight is None and not self.store.state.refresh_token:
            self._sign_out("401 without a refresh token")
            raise ReauthenticationRequired("Authentication required", response)
        else:
            new_token = await self.refresh()

        return await self.http.send(self._clone(request, new_token))
