# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the auth endpoints."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# -- Requests --------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


# -- Responses -------------------------------------------------------------


class LoginResponse(BaseModel):
    """Returned by both /auth/login and /auth/refresh.  Timestamps in epoch ms."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str
    expires_at: int = Field(alias="expiresAt")
    refresh_token: str
    refresh_expires_at: int = Field(alias="refreshExpiresAt")


class ErrorEnvelope(BaseModel):
    """Credential failures are reported with HTTP 200 and this body."""

    status: Literal["error"] = "error"
    message: str


class MessageResponse(BaseModel):
    detail: str


class UserInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str = Field(serialization_alias="firstName")
    last_name: str = Field(serialization_alias="lastName")
    role: str
    is_password_temporary: bool = Field(serialization_alias="isPasswordTemporary")
