# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
/auth endpoints.

POST /auth/login and POST /auth/refresh answer HTTP 200 either way: a token
pair on success, ``{"status": "error", "message": ...}`` otherwise.  Clients
already depend on that envelope.  Only the protected endpoints below them
(and everything under /users) answer 401.

Login uses one message, "Invalid credentials", for an unknown email and for
a wrong password, so the endpoint cannot be used to probe for accounts.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from core.security import get_current_user, get_token_issuer
from models.user import User
from auth.service import AuthError, AuthService, AuthSession
from auth.schemas import (
    ChangePasswordRequest,
    ErrorEnvelope,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    UserInfoResponse,
)
from users.service import InvalidUserInput, UsersService

router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(UsersService(db), get_token_issuer())


def _token_pair(session: AuthSession) -> LoginResponse:
    return LoginResponse(
        access_token=session.access_token,
        expires_at=session.expires_at,
        refresh_token=session.refresh_token,
        refresh_expires_at=session.refresh_expires_at,
    )


@router.post("/login", response_model=LoginResponse | ErrorEnvelope)
def login(body: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    try:
        return _token_pair(auth.login(body.email, body.password))
    except AuthError as exc:
        return ErrorEnvelope(message=exc.message)


@router.post("/refresh", response_model=LoginResponse | ErrorEnvelope)
def refresh(body: RefreshRequest, auth: AuthService = Depends(get_auth_service)):
    """Trade a refresh token for a new pair; the old refresh token is not reused."""
    try:
        return _token_pair(auth.refresh(body.refresh_token))
    except AuthError as exc:
        return ErrorEnvelope(message=exc.message)


@router.get("/me", response_model=UserInfoResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    The current password is required even with a valid token.  A successful
    change clears the temporary flag.
    """
    try:
        UsersService(db).change_password(current_user, body.old_password, body.new_password)
    except InvalidUserInput as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return MessageResponse(detail="Password changed successfully")
