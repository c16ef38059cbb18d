# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Login and refresh-token exchange.

``AuthService`` only reads from the user store.  It never writes: a login
or a refresh leaves every credential record untouched.

Lifecycle of a client
---------------------
    Unauthenticated ──login()──▶ Authenticated ──refresh()──▶ Authenticated
           ▲                           │
           └──── any failure ──────────┘

Failures surface as :class:`InvalidCredentials` / :class:`InvalidRefreshToken`;
the router turns them into the ``{"status": "error", ...}`` envelope.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from core.logger import get_logger
from core.security import (
    TOKEN_TYPE_REFRESH,
    TokenError,
    TokenIssuer,
    verify_password,
)

log = get_logger("auth")


class UserLookup(Protocol):
    """The slice of the user store the auth core depends on."""

    def find_by_email(self, email: str): ...

    def find_by_id(self, user_id: str): ...


class AuthError(Exception):
    message = "Authentication failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidCredentials(AuthError):
    # Same message for "no such email" and "wrong password"
    message = "Invalid credentials"


class InvalidRefreshToken(AuthError):
    message = "Invalid refresh token"


@dataclass(frozen=True)
class AuthSession:
    """A freshly minted token pair plus the identity it was issued for."""

    user: dict
    access_token: str
    expires_at: int          # epoch milliseconds, from the token's own exp
    refresh_token: str
    refresh_expires_at: int  # epoch milliseconds


def public_identity(user) -> dict:
    """Everything about *user* that may leave the server – no password field."""
    return {
        "id": str(user.id),
        "email": user.email,
        "firstName": user.first_name or "",
        "lastName": user.last_name or "",
        "role": user.role,
        "isPasswordTemporary": bool(user.is_password_temporary),
    }


class AuthService:
    def __init__(self, users: UserLookup, issuer: TokenIssuer):
        self._users = users
        self._issuer = issuer

    # -- credential check -----------------------------------------------------

    def validate_user(self, email: str, password: str) -> Optional[dict]:
        """Return the public identity for a correct email/password pair, else None."""
        user = self._users.find_by_email(email)
        if user is None:
            log.info("login rejected: unknown email")
            return None
        if not verify_password(password, user.password):
            log.info("login rejected: password mismatch for user_id=%s", user.id)
            return None
        return public_identity(user)

    # -- token issuance -------------------------------------------------------

    def _expiry_ms(self, token: str) -> int:
        # Read exp back out of the signed token instead of recomputing now+ttl
        claims = self._issuer.decode(token) or {}
        return int(claims["exp"]) * 1000

    def issue_session(self, identity: dict) -> AuthSession:
        access_token = self._issuer.issue_access_token(
            {
                "sub": identity["id"],
                "email": identity["email"],
                "role": identity["role"],
                "firstName": identity["firstName"],
                "lastName": identity["lastName"],
            }
        )
        refresh_token = self._issuer.issue_refresh_token(identity["id"])
        return AuthSession(
            user=identity,
            access_token=access_token,
            expires_at=self._expiry_ms(access_token),
            refresh_token=refresh_token,
            refresh_expires_at=self._expiry_ms(refresh_token),
        )

    # -- public operations ----------------------------------------------------

    def login(self, email: str, password: str) -> AuthSession:
        identity = self.validate_user(email, password)
        if identity is None:
            raise InvalidCredentials()
        log.info("login ok: user_id=%s", identity["id"])
        return self.issue_session(identity)

    def refresh(self, refresh_token: str) -> AuthSession:
        """
        Exchange a refresh token for a brand-new access+refresh pair.

        Access tokens are rejected even when their signature is valid, so a
        leaked access token cannot be replayed here.
        """
        try:
            claims = self._issuer.verify(refresh_token)
        except TokenError as exc:
            log.info("refresh rejected: %s", exc)
            raise InvalidRefreshToken() from exc

        if claims.get("type") != TOKEN_TYPE_REFRESH:
            log.info("refresh rejected: token type %r", claims.get("type"))
            raise InvalidRefreshToken()

        user = self._users.find_by_id(claims["sub"])
        if user is None:
            log.info("refresh rejected: user_id=%s no longer exists", claims["sub"])
            raise InvalidRefreshToken()

        log.info("refresh ok: user_id=%s", user.id)
        return self.issue_session(public_identity(user))
