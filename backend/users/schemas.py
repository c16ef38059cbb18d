# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the user endpoints (camelCase on the wire)."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# -- Requests --------------------------------------------------------------


class CreateUserRequest(_WireModel):
    email: str
    first_name: str = ""
    last_name: str = ""
    password: Optional[str] = None  # omitted → temporary password is generated
    role: Literal["admin", "user"] = "user"


class UpdateUserRequest(_WireModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    password: Optional[str] = None  # "" means unchanged
    role: Optional[Literal["admin", "user"]] = None


class BulkDeleteRequest(_WireModel):
    ids: List[str] = []


# -- Responses -------------------------------------------------------------


class UserRow(_WireModel):
    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    is_password_temporary: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CreatedUserRow(UserRow):
    # Plaintext of a generated password – present exactly once, on creation
    temporary_password: Optional[str] = None


class UserPage(_WireModel):
    items: List[UserRow]
    total: int


class DeleteResponse(_WireModel):
    deleted: bool


class BulkDeleteResponse(_WireModel):
    deleted: int


class ImportRowError(_WireModel):
    line: Optional[int] = None
    error: str
    email: Optional[str] = None


class ImportedCredential(_WireModel):
    email: str
    temporary_password: str


class ImportResponse(_WireModel):
    created: int
    updated: int
    errors: List[ImportRowError]
    credentials: List[ImportedCredential]
