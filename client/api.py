"""
Async client for the User Manager API.

    async with UserManagerClient("http://localhost:8000", storage=FileStorage(path)) as api:
        if api.restore() is None:
            await api.login("admin@example.com", "secret")
        page = await api.list_users(q="smith")

Every call except ``login`` goes through :class:`AuthInterceptor`, so an
expired access token is refreshed transparently.  When the session cannot be
recovered, :class:`ReauthenticationRequired` is raised and the optional
``on_unauthenticated`` callback fires.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import httpx
import jwt as _jwt  # PyJWT, used only to read claims for display
from pydantic import ValidationError

from client.interceptor import AuthInterceptor
from client.session import SessionStore
from client.state import (
    AuthState,
    AuthStore,
    LoginFailed,
    LoginResponse,
    LoginStarted,
    LoginSucceeded,
    SessionUser,
)
from client.storage import MemoryStorage, Storage

log = logging.getLogger("usermgr.client")


class LoginError(Exception):
    """Login was refused; ``message`` is what the server said."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def user_from_token(access_token: str) -> Optional[SessionUser]:
    """
    Build the display identity from the access token claims.

    The signature is NOT checked here: the server is the only party that
    trusts the token, the client merely shows what it says.
    """
    try:
        claims = _jwt.decode(access_token, options={"verify_signature": False})
        return SessionUser(
            id=str(claims["sub"]),
            email=claims.get("email", ""),
            first_name=claims.get("firstName") or "",
            last_name=claims.get("lastName") or "",
            role=claims.get("role", "user"),
        )
    except (_jwt.PyJWTError, KeyError, ValidationError):
        return None


class UserManagerClient:
    def __init__(
        self,
        base_url: str,
        *,
        storage: Optional[Storage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
        on_unauthenticated: Optional[Callable[[], None]] = None,
    ):
        self.http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.store = AuthStore()
        self.sessions = SessionStore(storage or MemoryStorage(), self.store)
        self._detach = self.sessions.attach()
        self.interceptor = AuthInterceptor(
            self.http, self.store, on_unauthenticated=on_unauthenticated
        )

    async def __aenter__(self) -> "UserManagerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._detach()
        await self.http.aclose()

    @property
    def state(self) -> AuthState:
        return self.store.state

    # -- session ---------------------------------------------------------------

    async def login(self, email: str, password: str) -> AuthState:
        """
        Log in and populate the session.  Raises :class:`LoginError` with the
        server's message ("Invalid credentials") on failure.
        """
        self.store.dispatch(LoginStarted(email=email))
        try:
            response = await self.http.post("/auth/login", json={"email": email, "password": password})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.store.dispatch(LoginFailed(error="Login failed"))
            raise LoginError("Login failed") from exc

        if isinstance(payload, dict) and payload.get("status") == "error":
            message = payload.get("message") or "Login failed"
            self.store.dispatch(LoginFailed(error=message))
            raise LoginError(message)

        try:
            tokens = LoginResponse.model_validate(payload)
        except ValidationError as exc:
            self.store.dispatch(LoginFailed(error="Login failed"))
            raise LoginError("Login failed") from exc

        user = user_from_token(tokens.access_token)
        if user is None:
            self.store.dispatch(LoginFailed(error="Login failed"))
            raise LoginError("Login failed")

        log.info("logged in as user_id=%s", user.id)
        return self.store.dispatch(LoginSucceeded(response=tokens, user=user))

    async def refresh(self) -> AuthState:
        """Force a token refresh (shares an exchange already in flight)."""
        await self.interceptor.refresh()
        return self.store.state

    def restore(self) -> Optional[AuthState]:
        return self.sessions.restore()

    def logout(self) -> AuthState:
        return self.sessions.clear()

    # -- transport -------------------------------------------------------------

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        request = self.http.build_request(method, url, **kwargs)
        return await self.interceptor.send(request)

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json()

    # -- users -----------------------------------------------------------------

    async def me(self) -> dict:
        return await self._json("GET", "/auth/me")

    async def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        q: Optional[str] = None,
        order: Optional[str] = None,
    ) -> dict:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if q:
            params["q"] = q
        if order:
            params["order"] = order
        return await self._json("GET", "/users", params=params)

    async def get_user(self, user_id: str) -> dict:
        return await self._json("GET", f"/users/{user_id}")

    async def create_user(self, user: dict) -> dict:
        return await self._json("POST", "/users", json=user)

    async def update_user(self, user_id: str, patch: dict) -> dict:
        return await self._json("PUT", f"/users/{user_id}", json=patch)

    async def delete_user(self, user_id: str) -> dict:
        return await self._json("DELETE", f"/users/{user_id}")

    async def bulk_delete(self, ids: list[str]) -> dict:
        return await self._json("POST", "/users/bulk-delete", json={"ids": ids})

    async def import_users(self, csv_content: bytes, filename: str = "users.csv") -> dict:
        files = {"file": (filename, csv_content, "text/csv")}
        return await self._json("POST", "/users/import", files=files)

