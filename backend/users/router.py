# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
User endpoints – listing, lifecycle management, CSV import, xlsx export.

Every endpoint requires a valid access token.  Read endpoints are open to
any authenticated user; create / delete / import / export need ``admin``;
updates are allowed for admins and for the account owner, but only an admin
may change a role.
"""

import io

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side

from database import get_db
from core.logger import get_logger
from core.security import get_current_user, require_admin, require_self_or_admin
from models.user import User
from users.service import InvalidUserInput, UserConflict, UsersService
from users.schemas import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    CreatedUserRow,
    CreateUserRequest,
    DeleteResponse,
    ImportResponse,
    UpdateUserRequest,
    UserPage,
    UserRow,
)

router = APIRouter(prefix="/users", tags=["users"])

log = get_logger("users")


def get_users_service(db: Session = Depends(get_db)) -> UsersService:
    return UsersService(db)


# ---------------------------------------------------------------------------
# GET /users  – paginated search
# ---------------------------------------------------------------------------


@router.get("", response_model=UserPage)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    q: str | None = Query(None, description="Substring of email, first or last name"),
    order: str | None = Query(None, description="field:ASC or field:DESC"),
    current_user: User = Depends(get_current_user),
    users: UsersService = Depends(get_users_service),
):
    items, total = users.search(page, limit, q, order)
    return UserPage(items=[UserRow.model_validate(u) for u in items], total=total)


# ---------------------------------------------------------------------------
# GET /users/export  – download every user as Excel
# ---------------------------------------------------------------------------
# Declared before /users/{user_id} so "export" is not taken for an id.

_HEADER_FONT  = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
_HEADER_FILL  = PatternFill(start_color="6C63FF", end_color="6C63FF", fill_type="solid")
_HEADER_ALIGN = Alignment(horizontal="center", vertical="center")
_THIN_BORDER  = Border(
    left=Side(style="thin", color="CCCCCC"),
    right=Side(style="thin", color="CCCCCC"),
    top=Side(style="thin", color="CCCCCC"),
    bottom=Side(style="thin", color="CCCCCC"),
)

_EXPORT_HEADERS = ["First name", "Last name", "Email", "Role", "Temporary password", "Created"]
_EXPORT_COL_MIN = [18, 18, 32, 10, 20, 20]


@router.get("/export")
def export_users(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Export all users (no password data) as an Excel file."""
    rows = db.query(User).order_by(User.email).all()

    wb = Workbook()
    ws = wb.active
    ws.title = "Users"

    ws.append(_EXPORT_HEADERS)
    for cell in ws[1]:
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _HEADER_ALIGN
        cell.border = _THIN_BORDER

    for row in rows:
        ws.append([
            row.first_name,
            row.last_name,
            row.email,
            row.role,
            "yes" if row.is_password_temporary else "no",
            row.created_at.strftime("%Y-%m-%d %H:%M:%S") if row.created_at else "",
        ])
        row_idx = ws.max_row
        for col_idx in range(1, len(_EXPORT_HEADERS) + 1):
            ws.cell(row=row_idx, column=col_idx).border = _THIN_BORDER

    for col_idx, min_w in enumerate(_EXPORT_COL_MIN, start=1):
        ws.column_dimensions[chr(64 + col_idx)].width = min_w

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    wb.close()

    log.info("users exported by admin_id=%s rows=%d", admin.id, len(rows))
    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="users.xlsx"'},
    )


# ---------------------------------------------------------------------------
# POST /users/import  – CSV upload
# ---------------------------------------------------------------------------


@router.post("/import", response_model=ImportResponse)
def import_users(
    file: UploadFile = File(...),
    admin: User = Depends(require_admin),
    users: UsersService = Depends(get_users_service),
):
    """
    Import users from a CSV file with a header row (firstName, lastName,
    email).  Returns counts, row-level errors and the temporary passwords of
    newly created accounts.
    """
    content = file.file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")
    try:
        result = users.import_csv(content)
    except InvalidUserInput as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return ImportResponse(**result)


# ---------------------------------------------------------------------------
# POST /users/bulk-delete
# ---------------------------------------------------------------------------


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete(
    body: BulkDeleteRequest,
    admin: User = Depends(require_admin),
    users: UsersService = Depends(get_users_service),
):
    if admin.id in body.ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete yourself")
    try:
        deleted = users.bulk_delete(body.ids)
    except InvalidUserInput as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return BulkDeleteResponse(deleted=deleted)


# ---------------------------------------------------------------------------
# POST /users  – create
# ---------------------------------------------------------------------------


@router.post("", response_model=CreatedUserRow, status_code=status.HTTP_201_CREATED)
def create_user(
    body: CreateUserRequest,
    admin: User = Depends(require_admin),
    users: UsersService = Depends(get_users_service),
):
    """
    Create a user account.  When no password is supplied a temporary one is
    generated and returned once in ``temporaryPassword``.
    """
    try:
        user, temporary_password = users.create(
            body.email,
            first_name=body.first_name,
            last_name=body.last_name,
            password=body.password,
            role=body.role,
        )
    except UserConflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    row = CreatedUserRow.model_validate(user)
    row.temporary_password = temporary_password
    return row


# ---------------------------------------------------------------------------
# GET /users/{id}
# ---------------------------------------------------------------------------


@router.get("/{user_id}", response_model=UserRow)
def get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    users: UsersService = Depends(get_users_service),
):
    user = users.find_by_id(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


# ---------------------------------------------------------------------------
# PUT /users/{id}  – admin, or the account owner
# ---------------------------------------------------------------------------


@router.put("/{user_id}", response_model=UserRow)
def update_user(
    user_id: str,
    body: UpdateUserRequest,
    current_user: User = Depends(require_self_or_admin),
    users: UsersService = Depends(get_users_service),
):
    """
    Update profile fields and/or the password.  A non-empty password clears
    the temporary-password flag; an empty one leaves the password alone.
    """
    patch = body.model_dump(exclude_unset=True)
    if "role" in patch and current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can change roles",
        )

    try:
        user = users.update(user_id, patch)
    except UserConflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


# ---------------------------------------------------------------------------
# DELETE /users/{id}
# ---------------------------------------------------------------------------


@router.delete("/{user_id}", response_model=DeleteResponse)
def delete_user(
    user_id: str,
    admin: User = Depends(require_admin),
    users: UsersService = Depends(get_users_service),
):
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete yourself",
        )
    return DeleteResponse(deleted=users.delete_by_id(user_id))
