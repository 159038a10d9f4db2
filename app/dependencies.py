from fastapi import Query

from app.config import settings
from app.errors import ErrorKind, ServiceError

# Keeps (page - 1) * limit inside a BIGINT offset.
MAX_PAGE = 2**31 - 1


def clamp_page(page: int, limit: int) -> tuple[int, int]:
    """
    Normalise paging input: *page* lies in ``[1, MAX_PAGE]`` and *limit*
    in ``[1, settings.MAX_PAGE_SIZE]``.
    """
    return min(max(page, 1), MAX_PAGE), min(max(limit, 1), settings.MAX_PAGE_SIZE)


class PaginationParams:
    """
    Reusable FastAPI dependency that parses the ``page`` / ``limit`` query
    parameters of list endpoints.

    Usage in a router::

        @router.get("/posts")
        async def list_posts(pagination: PaginationParams = Depends()):
            ...

    Out-of-range values are clamped (see :func:`clamp_page`) rather than
    rejected, so ``?page=0`` reads the first page.
    """

    def __init__(
        self,
        page: int = Query(1, description="Page number (1-based)."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            description=f"Number of items returned per page (max {settings.MAX_PAGE_SIZE}).",
        ),
    ) -> None:
        self.page, self.limit = clamp_page(page, limit)


async def require_keyword(
    keyword: str | None = Query(None, description="Substring to search for."),
) -> str:
    """Return the ``keyword`` query parameter, rejecting a missing or empty one."""
    if not keyword:
        raise ServiceError(ErrorKind.VALIDATION, "Keyword is required")
    return keyword
