"""
User service: lifecycle of the User aggregate (User + Address + Company).

Design notes
------------
- Email and username are unique across active *and* soft-deleted users.
  The existence check below produces the friendly error on the common
  path; the UNIQUE constraints on ``users.email`` / ``users.username`` are
  what actually guarantee it.  A concurrent create that slips past the
  check fails at flush with ``IntegrityError`` and is reported as the same
  ``DUPLICATE_USER`` error.
- Deleting a user only flips ``deleted``.  Soft-deleted users drop out of
  ``get_users`` but stay reachable by id and by keyword search.
- Address and Company are loaded with their user (``lazy="selectin"``),
  so every returned row can be handed straight to ``format_user``.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import logging
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import DUPLICATE_USER_MESSAGE, ErrorKind, ServiceError, not_found
from app.formatting import format_user
from app.models import MAX_ID, Address, Company, User, utcnow
from app.schemas import UserCreate

logger = logging.getLogger(__name__)

# Columns a PUT/PATCH body may touch; ``deleted`` and timestamps are not
# client-writable.
_UPDATABLE_COLUMNS: frozenset[str] = frozenset({"name", "username", "email", "phone", "website"})
_PATCHABLE_COLUMNS: frozenset[str] = _UPDATABLE_COLUMNS | {"password"}
_REQUIRED_COLUMNS: frozenset[str] = frozenset({"name", "username", "email"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _user_exists(
    db: AsyncSession,
    email: str | None,
    username: str | None,
    exclude_id: int | None = None,
) -> bool:
    """
    Return True when any user, deleted or not, already holds *email* or
    *username*.  *exclude_id* skips the user being modified.
    """
    clauses = []
    if email is not None:
        clauses.append(User.email == email)
    if username is not None:
        clauses.append(User.username == username)
    if not clauses:
        return False

    q = select(User.id).where(or_(*clauses))
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    result = await db.execute(q.limit(1))
    return result.scalar_one_or_none() is not None


async def _load_user(db: AsyncSession, user_id: int) -> User | None:
    # Out-of-range ids cannot match a row and would overflow the driver.
    if not 0 < user_id <= MAX_ID:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


def _address_columns(fields: dict[str, Any]) -> dict[str, Any]:
    """Flatten an address payload (``geo.lat`` / ``geo.lng``) to column names."""
    columns = dict(fields)
    geo = columns.pop("geo", None) or {}
    for key in ("lat", "lng"):
        if key in geo:
            columns[key] = geo[key]
    return columns


def _check_required(fields: dict[str, Any]) -> None:
    for column in _REQUIRED_COLUMNS & fields.keys():
        if fields[column] is None:
            raise ServiceError(ErrorKind.VALIDATION, f"'{column}' cannot be null")


async def _flush_user_write(
    db: AsyncSession,
    email: str | None,
    username: str | None,
    failure: ErrorKind,
    message: str,
    user_id: int | None = None,
) -> None:
    """
    Flush a pending user write and classify any storage failure.

    A constraint violation that coincides with an existing email/username
    is a lost uniqueness race and surfaces as ``DUPLICATE_USER``; every
    other storage error becomes *failure*.  The session is rolled back
    before the re-check because a failed flush leaves it unusable.
    """
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        if await _user_exists(db, email, username, exclude_id=user_id):
            logger.warning(
                "Uniqueness violation writing user (email=%r, username=%r): %s",
                email, username, exc.orig,
            )
            raise ServiceError(ErrorKind.DUPLICATE_USER, DUPLICATE_USER_MESSAGE) from exc
        logger.exception("Integrity error writing user (email=%r, username=%r)", email, username)
        raise ServiceError(failure, message) from exc
    except SQLAlchemyError as exc:
        logger.exception("Storage error writing user (email=%r, username=%r)", email, username)
        raise ServiceError(failure, message) from exc


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a user, with its address and company when supplied, and return
    the formatted user.

    Raises ``DUPLICATE_USER`` when the email or username is already taken,
    whether the clash is seen by the pre-insert check or by the storage
    constraint.
    """
    if await _user_exists(db, data.email, data.username):
        raise ServiceError(ErrorKind.DUPLICATE_USER, DUPLICATE_USER_MESSAGE)

    user = User(
        name=data.name,
        username=data.username,
        email=data.email,
        phone=data.phone,
        website=data.website,
        password=data.password if data.password is not None else "",
        deleted=False,
        # Always assigned so the relationships count as loaded after flush.
        address=None,
        company=None,
    )
    if data.address is not None:
        user.address = Address(**_address_columns(data.address.model_dump()))
    if data.company is not None:
        user.company = Company(**data.company.model_dump())

    db.add(user)
    await _flush_user_write(
        db, data.email, data.username, ErrorKind.PERSISTENCE, "Failed to create user"
    )
    logger.info("Created user %s (%s)", user.id, user.username)
    return format_user(user)


async def get_user(db: AsyncSession, user_id: int) -> dict | None:
    """
    Return the formatted user for *user_id*, or None when no row exists.

    Soft-deleted users are still returned.
    """
    user = await _load_user(db, user_id)
    if user is None:
        return None
    return format_user(user)


async def update_user(
    db: AsyncSession,
    user_id: int,
    user_fields: dict[str, Any],
    address_fields: dict[str, Any] | None = None,
    company_fields: dict[str, Any] | None = None,
) -> dict:
    """
    Replace the supplied top-level fields of a user and update its
    existing address/company with the supplied nested fields.

    Nested records are updated, never created: supplying address fields for
    a user without an address fails with ``UPDATE_FAILED``.
    """
    user = await _load_user(db, user_id)
    if user is None:
        raise not_found("User")

    fields = {k: v for k, v in user_fields.items() if k in _UPDATABLE_COLUMNS}
    _check_required(fields)
    if await _user_exists(db, fields.get("email"), fields.get("username"), exclude_id=user_id):
        raise ServiceError(ErrorKind.DUPLICATE_USER, DUPLICATE_USER_MESSAGE)

    for field, value in fields.items():
        setattr(user, field, value)

    if address_fields:
        if user.address is None:
            logger.error("User %s has no address to update", user_id)
            raise ServiceError(ErrorKind.UPDATE_FAILED, "Failed to update user")
        for field, value in _address_columns(address_fields).items():
            setattr(user.address, field, value)

    if company_fields:
        if user.company is None:
            logger.error("User %s has no company to update", user_id)
            raise ServiceError(ErrorKind.UPDATE_FAILED, "Failed to update user")
        for field, value in company_fields.items():
            setattr(user.company, field, value)

    # Nested-only edits do not dirty the user row itself.
    user.updated_at = utcnow()
    await _flush_user_write(
        db,
        fields.get("email"),
        fields.get("username"),
        ErrorKind.UPDATE_FAILED,
        "Failed to update user",
        user_id=user_id,
    )
    logger.info("Updated user %s", user_id)
    return format_user(user)


async def patch_user(db: AsyncSession, user_id: int, fields: dict[str, Any]) -> dict:
    """Merge *fields* into the user row; nested records are left untouched."""
    user = await _load_user(db, user_id)
    if user is None:
        raise not_found("User")

    changes = {k: v for k, v in fields.items() if k in _PATCHABLE_COLUMNS}
    _check_required(changes)
    if changes.get("password", "") is None:
        changes["password"] = ""
    if await _user_exists(db, changes.get("email"), changes.get("username"), exclude_id=user_id):
        raise ServiceError(ErrorKind.DUPLICATE_USER, DUPLICATE_USER_MESSAGE)

    for field, value in changes.items():
        setattr(user, field, value)

    await _flush_user_write(
        db,
        changes.get("email"),
        changes.get("username"),
        ErrorKind.PATCH_FAILED,
        "Failed to patch user",
        user_id=user_id,
    )
    logger.info("Patched user %s (%s)", user_id, ", ".join(sorted(changes)) or "no fields")
    return format_user(user)


async def delete_user(db: AsyncSession, user_id: int) -> dict:
    """
    Soft-delete *user_id*: set ``deleted`` and stamp ``updated_at``.

    Repeating the call on an already-deleted user only re-stamps the row.
    """
    user = await _load_user(db, user_id)
    if user is None:
        raise not_found("User")

    user.deleted = True
    user.updated_at = utcnow()
    await db.flush()
    logger.info("Soft-deleted user %s", user_id)
    return format_user(user)


async def get_users(db: AsyncSession) -> list[dict]:
    """Return every user that has not been soft-deleted, ordered by id."""
    q = select(User).where(User.deleted.is_(False)).order_by(User.id)
    result = await db.execute(q)
    return [format_user(u) for u in result.scalars().all()]


async def search_users(db: AsyncSession, keyword: str) -> list[dict]:
    """
    Return users whose email, name or username contains *keyword*.

    The match is case-insensitive and treats ``%`` / ``_`` literally.
    Soft-deleted users are *not* filtered out here, unlike ``get_users``.
    """
    if not keyword:
        raise ServiceError(ErrorKind.VALIDATION, "Keyword is required")

    q = (
        select(User)
        .where(
            or_(
                User.email.icontains(keyword, autoescape=True),
                User.name.icontains(keyword, autoescape=True),
                User.username.icontains(keyword, autoescape=True),
            )
        )
        .order_by(User.id)
    )
    result = await db.execute(q)
    return [format_user(u) for u in result.scalars().all()]
