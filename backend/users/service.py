# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
User store – lookup, search, create / update / delete and CSV import.

``UsersService`` also satisfies ``auth.service.UserLookup``; the auth core
only ever calls ``find_by_email`` and ``find_by_id`` on it.
"""

import csv
import io
import re
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.logger import get_logger
from core.security import create_password_hash, create_temporary_password, verify_password
from models.user import User

log = get_logger("users")

# ``order=field:DIR`` – whitelist of sortable fields, never raw SQL
_ORDER_FIELDS = {
    "firstName": User.first_name,
    "lastName": User.last_name,
    "email": User.email,
    "role": User.role,
    "createdAt": User.created_at,
}


# chosen passwords only; generated temporary passwords are not checked
_PASSWORD_RULES = (
    (lambda pw: len(pw) >= 8, "Password must be at least 8 characters"),
    (re.compile(r"[A-Z]").search, "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]").search, "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]").search, "Password must contain at least one digit"),
)


def password_policy_error(password: str) -> Optional[str]:
    """First unmet rule as a message, or None when *password* is acceptable."""
    for check, message in _PASSWORD_RULES:
        if not check(password):
            return message
    return None


class UserConflict(Exception):
    """The email address already belongs to another account."""


class InvalidUserInput(Exception):
    """The request cannot be processed as given (e.g. empty bulk delete)."""


class UsersService:
    def __init__(self, db: Session):
        self.db = db

    # -- lookups ---------------------------------------------------------------

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == str(user_id)).first()

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def search(
        self,
        page: int = 1,
        limit: int = 10,
        q: Optional[str] = None,
        order: Optional[str] = None,
    ) -> tuple[list[User], int]:
        """
        Case-insensitive search over email / first / last name.

        ``order`` takes the form ``field:ASC`` or ``field:DESC``; unknown
        fields fall back to ``email ASC`` so the page order stays stable.
        """
        page = max(page, 1)
        limit = max(limit, 1)

        query = self.db.query(User)
        if q:
            pattern = f"%{q}%"
            query = query.filter(
                or_(
                    User.email.ilike(pattern),
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                )
            )

        column = User.email
        descending = False
        if order:
            field, _, direction = order.partition(":")
            if field in _ORDER_FIELDS:
                column = _ORDER_FIELDS[field]
                descending = direction.upper() == "DESC"

        total = query.count()
        items = (
            query.order_by(column.desc() if descending else column.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    # -- mutations -------------------------------------------------------------

    def create(
        self,
        email: str,
        first_name: str = "",
        last_name: str = "",
        password: Optional[str] = None,
        role: str = "user",
    ) -> tuple[User, Optional[str]]:
        """
        Insert a user.  Without a password a temporary one is generated and
        returned (plaintext, once) as the second tuple element.
        """
        if self.find_by_email(email):
            raise UserConflict("User with this email already exists")

        temporary_password = None
        if password:
            record = create_password_hash(password)
            is_temporary = False
        else:
            record, temporary_password = create_temporary_password()
            is_temporary = True

        user = User(
            email=email,
            first_name=first_name or "",
            last_name=last_name or "",
            password=record,
            role=role or "user",
            is_password_temporary=is_temporary,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        log.info("user created: user_id=%s role=%s temporary_password=%s", user.id, user.role, is_temporary)
        return user, temporary_password

    def update(self, user_id: str, patch: dict) -> Optional[User]:
        """
        Apply *patch* (keys: email, first_name, last_name, password, role).

        A non-empty password is re-hashed and clears the temporary flag; an
        empty one means "no change".
        """
        user = self.find_by_id(user_id)
        if user is None:
            return None

        email = patch.get("email")
        if email:
            existing = self.find_by_email(email)
            if existing and existing.id != user.id:
                raise UserConflict("User with this email already exists")
            user.email = email

        for field in ("first_name", "last_name", "role"):
            if patch.get(field) is not None:
                setattr(user, field, patch[field])

        password = patch.get("password")
        if password:
            user.password = create_password_hash(password)
            user.is_password_temporary = False

        self.db.commit()
        self.db.refresh(user)
        return user

    def change_password(self, user: User, old_password: str, new_password: str) -> None:
        """Self-service change: the old password must match and the new one pass the policy."""
        if not verify_password(old_password, user.password):
            raise InvalidUserInput("Old password is incorrect")
        problem = password_policy_error(new_password)
        if problem:
            raise InvalidUserInput(problem)

        user.password = create_password_hash(new_password)
        user.is_password_temporary = False
        self.db.commit()
        log.info("password changed: user_id=%s", user.id)

    def delete_by_id(self, user_id: str) -> bool:
        deleted = self.db.query(User).filter(User.id == str(user_id)).delete()
        self.db.commit()
        return deleted > 0

    def bulk_delete(self, ids: list[str]) -> int:
        if not ids:
            raise InvalidUserInput("No ids provided for deletion")
        deleted = (
            self.db.query(User)
            .filter(User.id.in_([str(i) for i in ids]))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        log.info("bulk delete: requested=%d deleted=%d", len(ids), deleted)
        return deleted

    # -- CSV import ------------------------------------------------------------

    def import_csv(self, content: bytes) -> dict:
        """
        Import users from CSV.  Supported headers (case-insensitive):
        firstName, lastName, email.  Role and password columns are ignored.

        Existing emails get their names updated; new emails are created with
        a temporary password, reported under ``credentials`` so an admin can
        pass them on.  Row errors carry the 1-based file line (header = 1).
        """
        result = {"created": 0, "updated": 0, "errors": [], "credentials": []}

        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise InvalidUserInput("CSV file must be UTF-8 encoded")

        reader = csv.DictReader(io.StringIO(text))
        rows = []
        try:
            for row in reader:
                # skip blank lines
                if any((v or "").strip() for v in row.values() if isinstance(v, str)):
                    rows.append(row)
        except csv.Error as exc:
            result["errors"].append({"line": reader.line_num, "error": str(exc), "email": None})

        for index, row in enumerate(rows):
            columns = {(k or "").strip().lower(): (v or "") for k, v in row.items() if isinstance(v, str)}
            email = columns.get("email", "").strip()
            first_name = columns.get("firstname", "").strip()
            last_name = columns.get("lastname", "").strip()

            try:
                if not email:
                    raise InvalidUserInput("Missing email")
                existing = self.find_by_email(email)
                if existing:
                    self.update(existing.id, {"first_name": first_name, "last_name": last_name})
                    result["updated"] += 1
                else:
                    _, temporary_password = self.create(email, first_name, last_name)
                    result["created"] += 1
                    result["credentials"].append(
                        {"email": email, "temporaryPassword": temporary_password}
                    )
            except (InvalidUserInput, UserConflict) as exc:
                self.db.rollback()
                result["errors"].append({"line": index + 2, "error": str(exc), "email": email})

        log.info(
            "csv import: created=%d updated=%d errors=%d",
            result["created"], result["updated"], len(result["errors"]),
        )
        return result
