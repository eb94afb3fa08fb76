from typing import Literal

from fastapi import Query

from app.config import settings
from app.models import ArticleCategory


class PaginationParams:
    """
    Page / limit query parameters shared by every paginated listing.

    ``page`` is 1-based; ``limit`` is bounded to 1..100 by the schema and
    additionally clamped to ``settings.MAX_PAGE_SIZE``.  Out-of-range values
    are rejected with 422 before any query runs.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items per page (max 100).",
        ),
    ) -> None:
        self.page = page
        self.limit = min(limit, settings.MAX_PAGE_SIZE)


class ArticleQueryParams(PaginationParams):
    """
    Filter and sort parameters of the public article listing.

    ``sortBy`` and ``sortDirection`` are free strings on purpose: unknown
    values fall back to ``createdAt`` / ``DESC`` in the service layer
    instead of being rejected.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items per page (max 100).",
        ),
        search: str | None = Query(None, description="Case-insensitive match on title or body."),
        category: ArticleCategory | None = Query(None, description="Exact category."),
        tags: str | None = Query(None, description="Comma-separated tags; any match."),
        sort_by: str = Query("createdAt", alias="sortBy"),
        sort_direction: str = Query("DESC", alias="sortDirection"),
    ) -> None:
        super().__init__(page=page, limit=limit)
        self.search = search.strip() if search and search.strip() else None
        self.category = category
        self.tags = parse_tags(tags)
        self.sort_by = sort_by
        self.sort_direction = sort_direction


class AdminArticleQueryParams(ArticleQueryParams):
    """Admin listing: adds the ``publishedStatus`` filter."""

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items per page (max 100).",
        ),
        search: str | None = Query(None, description="Case-insensitive match on title or body."),
        category: ArticleCategory | None = Query(None, description="Exact category."),
        tags: str | None = Query(None, description="Comma-separated tags; any match."),
        sort_by: str = Query("createdAt", alias="sortBy"),
        sort_direction: str = Query("DESC", alias="sortDirection"),
        published_status: Literal["true", "false", "all"] = Query("all", alias="publishedStatus"),
    ) -> None:
        super().__init__(
            page=page,
            limit=limit,
            search=search,
            category=category,
            tags=tags,
            sort_by=sort_by,
            sort_direction=sort_direction,
        )
        self.published_status = published_status


def parse_tags(raw: str | None) -> list[str]:
    """Split a comma-separated tag filter, trimming and dropping blanks."""
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]
