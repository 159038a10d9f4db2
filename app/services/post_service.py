"""
Post service: business logic for the Post aggregate.

Design notes
------------
- Titles are unique.  As with users, the pre-insert existence check gives
  the friendly ``DUPLICATE_TITLE`` error and the UNIQUE constraint on
  ``posts.title`` is the real guarantee under concurrency.
- PUT (``replace_post``) is a full replace: title, body and author are all
  required.  PATCH (``patch_post``) merges only the supplied fields.
- Detail and page reads go through the cache-aside pattern; every write
  purges the page cache plus the detail entry of the post it touched.
- Pages are ordered by id so that offset pagination is stable.
"""
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.config import settings
from app.dependencies import clamp_page
from app.errors import DUPLICATE_TITLE_MESSAGE, ErrorKind, ServiceError, not_found
from app.formatting import format_post
from app.models import MAX_ID, Post
from app.schemas import PostCreate, PostReplace

logger = logging.getLogger(__name__)

_POST_COLUMNS: frozenset[str] = frozenset({"title", "body", "user_id"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _title_exists(db: AsyncSession, title: str | None, exclude_id: int | None = None) -> bool:
    if title is None:
        return False
    q = select(Post.id).where(Post.title == title)
    if exclude_id is not None:
        q = q.where(Post.id != exclude_id)
    result = await db.execute(q.limit(1))
    return result.scalar_one_or_none() is not None


async def _load_post(db: AsyncSession, post_id: int) -> Post | None:
    if not 0 < post_id <= MAX_ID:
        return None
    result = await db.execute(select(Post).where(Post.id == post_id))
    return result.scalar_one_or_none()


async def _flush_post_write(db: AsyncSession, title: str | None, post_id: int | None = None) -> None:
    """
    Flush a pending post write, reporting a title clash found by the
    storage constraint as ``DUPLICATE_TITLE``.
    """
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        if await _title_exists(db, title, exclude_id=post_id):
            logger.warning("Uniqueness violation writing post titled %r: %s", title, exc.orig)
            raise ServiceError(ErrorKind.DUPLICATE_TITLE, DUPLICATE_TITLE_MESSAGE) from exc
        logger.exception("Integrity error writing post %s", post_id)
        raise ServiceError(ErrorKind.PERSISTENCE, "Failed to save post") from exc


def _require(fields: dict[str, Any], *names: str) -> None:
    missing = [name for name in names if fields.get(name) in (None, "")]
    if missing:
        raise ServiceError(
            ErrorKind.VALIDATION, f"Missing required field(s): {', '.join(missing)}"
        )


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_post(db: AsyncSession, data: PostCreate) -> dict:
    """Create a post and return its formatted dict."""
    fields = data.model_dump()
    _require(fields, "title", "body", "user_id")

    if await _title_exists(db, data.title):
        raise ServiceError(ErrorKind.DUPLICATE_TITLE, DUPLICATE_TITLE_MESSAGE)

    post = Post(title=data.title, body=data.body, user_id=data.user_id)
    db.add(post)
    await _flush_post_write(db, data.title)

    await cache.invalidate_posts()
    logger.info("Created post %s by user %s", post.id, post.user_id)
    return format_post(post)


async def get_post(db: AsyncSession, post_id: int) -> dict | None:
    """Return the formatted post for *post_id*, or None when it does not exist."""
    cache_key = f"posts:detail:{post_id}"
    cached = await cache.get(cache_key)
    if cached:
        return cached

    post = await _load_post(db, post_id)
    if post is None:
        return None

    data = format_post(post)
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


async def _write_post(db: AsyncSession, post_id: int, changes: dict[str, Any]) -> dict:
    post = await _load_post(db, post_id)
    if post is None:
        raise not_found("Post")

    if await _title_exists(db, changes.get("title"), exclude_id=post_id):
        raise ServiceError(ErrorKind.DUPLICATE_TITLE, DUPLICATE_TITLE_MESSAGE)

    for field, value in changes.items():
        setattr(post, field, value)

    await _flush_post_write(db, changes.get("title"), post_id)
    await cache.invalidate_posts(post_id)
    return format_post(post)


async def replace_post(db: AsyncSession, post_id: int, data: PostReplace) -> dict:
    """Overwrite every client-writable field of *post_id* (PUT semantics)."""
    fields = data.model_dump()
    _require(fields, "title", "body", "user_id")
    result = await _write_post(db, post_id, fields)
    logger.info("Replaced post %s", post_id)
    return result


async def patch_post(db: AsyncSession, post_id: int, fields: dict[str, Any]) -> dict:
    """Merge the supplied *fields* into *post_id* (PATCH semantics)."""
    changes = {k: v for k, v in fields.items() if k in _POST_COLUMNS}
    # Present-but-null is a request to blank a NOT NULL column.
    nulls = [k for k, v in changes.items() if v is None]
    if nulls:
        raise ServiceError(ErrorKind.VALIDATION, f"Field(s) cannot be null: {', '.join(nulls)}")

    result = await _write_post(db, post_id, changes)
    logger.info("Patched post %s (%s)", post_id, ", ".join(sorted(changes)) or "no fields")
    return result


async def delete_post(db: AsyncSession, post_id: int) -> None:
    """Remove the post row permanently."""
    post = await _load_post(db, post_id)
    if post is None:
        raise not_found("Post")

    await db.delete(post)
    try:
        await db.flush()
    except SQLAlchemyError as exc:
        logger.exception("Storage error deleting post %s", post_id)
        raise ServiceError(ErrorKind.PERSISTENCE, "Failed to delete post") from exc

    await cache.invalidate_posts(post_id)
    logger.info("Deleted post %s", post_id)


async def get_posts(db: AsyncSession, page: int = 1, limit: int | None = None) -> list[dict]:
    """
    Return one page of posts ordered by id.

    No total is reported; a page shorter than *limit* marks the end of
    the data.  Out-of-range *page* / *limit* values are clamped.
    """
    page, limit = clamp_page(page, limit if limit is not None else settings.DEFAULT_PAGE_SIZE)

    cache_key = f"posts:list:{page}:{limit}"
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    q = (
        select(Post)
        .order_by(Post.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(q)
    posts = [format_post(p) for p in result.scalars().all()]

    await cache.set(cache_key, posts, ttl=settings.CACHE_TTL_LIST)
    return posts


async def search_posts(db: AsyncSession, keyword: str) -> list[dict]:
    """Return every post whose title contains *keyword* (case-insensitive)."""
    if not keyword:
        raise ServiceError(ErrorKind.VALIDATION, "Keyword is required")

    q = (
        select(Post)
        .where(Post.title.icontains(keyword, autoescape=True))
        .order_by(Post.id)
    )
    result = await db.execute(q)
    return [format_post(p) for p in result.scalars().all()]
