# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""User ORM model – the credential record plus profile fields."""

import uuid

from sqlalchemy import Column, String, Boolean, Enum, DateTime
from sqlalchemy.sql import func

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    # uuid4 string; doubles as the JWT ``sub`` claim
    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column("firstname", String(255), nullable=False, default="")
    last_name = Column("lastname", String(255), nullable=False, default="")
    # "<salt>:<sha256 hex>" – see core.security.create_password_hash
    password = Column(String(255), nullable=False)
    role = Column(Enum("admin", "user", name="user_role"), nullable=False, default="user")
    # Set when the password was generated by the system rather than chosen
    is_password_temporary = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
