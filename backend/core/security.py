# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Central security module.  All cryptographic primitives and auth guards live
here.  No other module should touch raw crypto directly.

Responsibilities
----------------
1. Password hashing / verification          (salted SHA-256, "salt:hash")
2. JWT issuing / verification               (PyJWT / HS256)
3. FastAPI dependency guards                (get_current_user, require_admin,
                                             require_self_or_admin)
"""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import jwt as _jwt        # PyJWT
from passlib import pwd as _pwd
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from core.config import settings
from database import get_db
from models.user import User

# ---------------------------------------------------------------------------
# 1.  Password hashing  – stored as "<salt>:<sha256 hex>"
# ---------------------------------------------------------------------------
# The record format is shared with data written by earlier deployments, so
# the digest stays a single SHA-256 round over password + salt.  Salts come
# from the OS CSPRNG; they were previously derived from a millisecond
# timestamp, which collides under concurrent password changes.
# ---------------------------------------------------------------------------

_SALT_BYTES = 16
_TEMP_PASSWORD_LENGTH = 12


def generate_salt() -> str:
    """Return a fresh 128-bit random salt, hex-encoded (never contains ':')."""
    return secrets.token_hex(_SALT_BYTES)


def hash_password(password: str, salt: str) -> str:
    """Hex SHA-256 digest of ``password + salt``.  Pure and deterministic."""
    return hashlib.sha256((password + salt).encode("utf-8")).hexdigest()


def create_password_hash(password: str) -> str:
    """Hash *password* under a new salt and return the storable record."""
    salt = generate_salt()
    return f"{salt}:{hash_password(password, salt)}"


def create_credential(password: str) -> tuple[str, str]:
    """
    Issue a credential for *password*.

    Returns
    -------
    record    : str   "<salt>:<hash>" – goes into the users table
    plaintext : str   echoed once so it can be delivered out of band
    """
    return create_password_hash(password), password


def create_temporary_password(length: int = _TEMP_PASSWORD_LENGTH) -> tuple[str, str]:
    """:func:`create_credential` for a random password, for accounts created without one."""
    return create_credential(_pwd.genword(length=length, charset="ascii_72"))


def _split_record(stored: str) -> tuple[str, str]:
    parts = stored.split(":")
    if len(parts) == 1:
        # legacy rows: bare digest, no salt
        return "", parts[0]
    return parts[0], ":".join(parts[1:])


def verify_password(password: str, stored: str) -> bool:
    """
    Check *password* against a record produced by :func:`create_password_hash`.

    The digests are compared with :func:`hmac.compare_digest` so the time
    taken does not depend on where they first differ.  Any malformed input
    (non-hex digest, wrong length, non-string values) yields ``False``;
    this function never raises.
    """
    try:
        salt, expected_hex = _split_record(str(stored or ""))
        expected = bytes.fromhex(expected_hex)
        actual = bytes.fromhex(hash_password(str(password or ""), salt))
    except (TypeError, ValueError):
        return False
    if len(actual) != len(expected):
        return False
    return hmac.compare_digest(actual, expected)


# ---------------------------------------------------------------------------
# 2.  JWT – access / refresh tokens
# ---------------------------------------------------------------------------

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


class TokenError(Exception):
    """Base class for every token verification failure."""


class InvalidToken(TokenError):
    """Signature mismatch or a claim that fails validation."""


class ExpiredToken(TokenError):
    """The ``exp`` claim is in the past."""


class MalformedToken(TokenError):
    """Not a structurally valid JWT, or a required claim is missing."""


class TokenIssuer:
    """
    Mints and verifies the signed tokens handed out at login.

    Every token carries ``type`` (access / refresh), ``iat``, ``exp`` and a
    random ``jti``; the signing algorithm is recorded in the JWT header.
    """

    _REQUIRED_CLAIMS = ["sub", "type", "exp"]

    def __init__(
        self,
        secret: str,
        *,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
    ):
        self._secret = secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm

    def _sign(self, payload: dict, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        to_encode = dict(payload)
        to_encode["iat"] = now
        to_encode["exp"] = now + ttl
        # unique per token, so two pairs minted in the same second still differ
        to_encode["jti"] = secrets.token_hex(8)
        return _jwt.encode(to_encode, self._secret, algorithm=self.algorithm)

    def issue_access_token(self, claims: dict) -> str:
        """
        Sign an access token.  *claims* must contain ``sub`` (the user id);
        ``email``, ``role``, ``firstName`` and ``lastName`` are expected.
        """
        payload = dict(claims)
        payload["sub"] = str(payload["sub"])
        payload["type"] = TOKEN_TYPE_ACCESS
        return self._sign(payload, self.access_ttl)

    def issue_refresh_token(self, user_id) -> str:
        return self._sign({"sub": str(user_id), "type": TOKEN_TYPE_REFRESH}, self.refresh_ttl)

    @staticmethod
    def decode(token: str) -> Optional[dict]:
        """
        Read the claims WITHOUT checking the signature or expiry.

        Only for display purposes (e.g. turning ``exp`` into a timestamp);
        never base an access decision on the result.
        """
        try:
            return _jwt.decode(token, options={"verify_signature": False})
        except _jwt.PyJWTError:
            return None

    def verify(self, token: str) -> dict:
        """
        Verify signature and expiry and return the claims.

        Raises :class:`ExpiredToken`, :class:`InvalidToken` or
        :class:`MalformedToken`.
        """
        try:
            return _jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": self._REQUIRED_CLAIMS},
            )
        except _jwt.ExpiredSignatureError as exc:
            raise ExpiredToken("Token has expired") from exc
        # InvalidSignatureError subclasses DecodeError – keep it first
        except _jwt.InvalidSignatureError as exc:
            raise InvalidToken("Token signature mismatch") from exc
        except (_jwt.DecodeError, _jwt.MissingRequiredClaimError) as exc:
            raise MalformedToken("Token is malformed") from exc
        except _jwt.InvalidTokenError as exc:
            raise InvalidToken(str(exc) or "Invalid token") from exc


@lru_cache
def get_token_issuer() -> TokenIssuer:
    """Process-wide issuer built from settings."""
    return TokenIssuer(
        settings.secret_key,
        access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        algorithm=settings.jwt_algorithm,
    )


# ---------------------------------------------------------------------------
# 3.  FastAPI dependency guards
# ---------------------------------------------------------------------------

# The tokenUrl here is only used by the auto-generated OpenAPI docs;
# the actual login endpoint is POST /auth/login.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency: verify the bearer token, load the User row.  Returns the User
    ORM instance.

    Raises 401 if the token is invalid, expired, a refresh token, or the user
    no longer exists.  The client reacts to that 401 by refreshing.
    """
    try:
        payload = get_token_issuer().verify(token)
    except TokenError:
        raise _unauthorized()

    if payload.get("type") != TOKEN_TYPE_ACCESS:
        raise _unauthorized()

    user = db.query(User).filter(User.id == payload["sub"]).first()
    if not user:
        raise _unauthorized()
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Dependency: wraps :func:`get_current_user` and additionally asserts
    ``role == 'admin'``.  Raises 403 otherwise.
    """
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def require_self_or_admin(user_id: str, current_user: User = Depends(get_current_user)) -> User:
    """Dependency: the caller is an admin or the owner of ``{user_id}``."""
    if current_user.role != "admin" and str(current_user.id) != str(user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to update this user",
        )
    return current_user


# -- IP Address extraction ----------------------------------------------------


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.
    Checks X-Forwarded-For header first (for proxies), then falls back to client host.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (original client)
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"
