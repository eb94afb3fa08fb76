"""
Article service: repository and query engine for the Article aggregate.

Design notes
------------
- Listings are built from one filtered ``SELECT``: a ``COUNT`` over it as a
  subquery gives ``total``, then the page is fetched with tags eager-loaded
  via ``selectinload`` (one extra query per page, no N+1).
- Unknown ``sortBy`` values fall back to ``createdAt`` and anything but
  ``ASC`` sorts descending; rows with equal sort keys are ordered by id so
  pages never overlap.
- The public listing and article detail go through the cache-aside layer.
  Cached payloads are viewer-independent; like/save flags are added
  afterwards with one batched lookup per relation.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency in the router layer.
"""
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Literal

from sqlalchemy import Select, asc, delete, desc, func, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.access import Viewer
from app.cache import cache
from app.config import settings
from app.exceptions import NotFoundError
from app.models import Article, ArticleCategory, ArticleLike, SavedArticle, Tag, article_tags
from app.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

PUBLIC_SORT_FIELDS = {
    "createdAt": Article.created_at,
    "title": Article.title,
    "likes": Article.likes,
    "updatedAt": Article.updated_at,
}

ADMIN_SORT_FIELDS = {
    **PUBLIC_SORT_FIELDS,
    "category": Article.category,
    "isPublished": Article.is_published,
}


def resolve_order(sort_by: str, sort_direction: str, allowed: dict) -> list:
    """
    Return ORDER BY expressions for *sort_by* / *sort_direction*.

    Never raises: an unknown field means ``createdAt`` and an unknown
    direction means descending.
    """
    column = allowed.get(sort_by, Article.created_at)
    direction = asc if (sort_direction or "").upper() == "ASC" else desc
    return [direction(column), direction(Article.id)]


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def build_filters(
    search: str | None = None,
    category: ArticleCategory | None = None,
    tags: list[str] | None = None,
    published: bool | None = None,
) -> list:
    conditions = []
    if published is not None:
        conditions.append(Article.is_published.is_(published))
    if search:
        conditions.append(
            or_(
                Article.title.icontains(search, autoescape=True),
                Article.body.icontains(search, autoescape=True),
            )
        )
    if category is not None:
        conditions.append(Article.category == category)
    if tags:
        conditions.append(Article.tags.any(Tag.name.in_(tags)))
    return conditions


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def article_to_dict(article: Article) -> dict:
    """Serialise an Article ORM instance (tags loaded) to its wire dict."""
    return {
        "id": str(article.id),
        "title": article.title,
        "body": article.body,
        "imageUrl": article.image_url,
        "category": article.category.value,
        "tags": [t.name for t in article.tags],
        "likes": article.likes,
        "isPublished": article.is_published,
        "createdAt": article.created_at.isoformat() if article.created_at else None,
        "updatedAt": article.updated_at.isoformat() if article.updated_at else None,
    }


async def annotate_for_viewer(
    db: AsyncSession, items: list[dict], user_id: uuid.UUID | None
) -> list[dict]:
    """
    Set ``currentUserHasLiked`` / ``currentUserHasSaved`` on every item.

    Anonymous viewers get False for both without touching the database.
    """
    if user_id is None or not items:
        for item in items:
            item["currentUserHasLiked"] = False
            item["currentUserHasSaved"] = False
        return items

    ids = [uuid.UUID(item["id"]) for item in items]
    liked = set(
        (
            await db.execute(
                select(ArticleLike.article_id).where(
                    ArticleLike.user_id == user_id, ArticleLike.article_id.in_(ids)
                )
            )
        ).scalars()
    )
    saved = set(
        (
            await db.execute(
                select(SavedArticle.article_id).where(
                    SavedArticle.user_id == user_id, SavedArticle.article_id.in_(ids)
                )
            )
        ).scalars()
    )
    for item, article_id in zip(items, ids):
        item["currentUserHasLiked"] = article_id in liked
        item["currentUserHasSaved"] = article_id in saved
    return items


def page_response(items: list[dict], total: int, page: int, limit: int) -> PaginatedResponse:
    return PaginatedResponse(
        data=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
    )


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------

async def paginate(
    db: AsyncSession, stmt: Select, order: list, page: int, limit: int
) -> tuple[list[Article], int]:
    """Run COUNT over *stmt* and fetch one ordered page with tags loaded."""
    total: int = (
        await db.execute(select(func.count()).select_from(stmt.subquery()))
    ).scalar_one()
    result = await db.execute(
        stmt.options(selectinload(Article.tags))
        .order_by(*order)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def load_article(db: AsyncSession, article_id: uuid.UUID) -> Article | None:
    """
    Fetch *article_id* with tags, overwriting any stale identity-map copy
    (counter updates are issued as SQL, not through the ORM object).
    """
    result = await db.execute(
        select(Article)
        .where(Article.id == article_id)
        .options(selectinload(Article.tags))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag ORM instances for each name in *tag_names*, creating any
    that do not yet exist.  All inserts are flushed within the caller's
    transaction.
    """
    tags: list[Tag] = []
    for name in tag_names:
        result = await db.execute(select(Tag).where(Tag.name == name))
        tag = result.scalar_one_or_none()
        if not tag:
            tag = Tag(name=name)
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags


async def _replace_tags(db: AsyncSession, article_id: uuid.UUID, tag_names: list[str]) -> None:
    await db.execute(delete(article_tags).where(article_tags.c.article_id == article_id))
    tags = await _resolve_tags(db, tag_names)
    if tags:
        await db.execute(
            insert(article_tags),
            [
                {"article_id": article_id, "tag_id": tag.id, "position": position}
                for position, tag in enumerate(tags)
            ],
        )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def list_published(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    category: ArticleCategory | None = None,
    tags: list[str] | None = None,
    sort_by: str = "createdAt",
    sort_direction: str = "DESC",
    viewer: Viewer | None = None,
) -> PaginatedResponse:
    """
    Published articles only, filtered / sorted / paginated, annotated with
    the viewer's like and save flags.
    """
    viewer = viewer or Viewer()
    cache_key = cache.list_key(
        page=page,
        limit=limit,
        search=search,
        category=category.value if category else None,
        tags=sorted(tags or []),
        sort_by=sort_by if sort_by in PUBLIC_SORT_FIELDS else "createdAt",
        sort_direction="ASC" if (sort_direction or "").upper() == "ASC" else "DESC",
    )
    cached = await cache.get(cache_key)
    if cached:
        response = PaginatedResponse.model_validate(cached)
    else:
        stmt = select(Article).where(*build_filters(search, category, tags, published=True))
        order = resolve_order(sort_by, sort_direction, PUBLIC_SORT_FIELDS)
        articles, total = await paginate(db, stmt, order, page, limit)
        response = page_response([article_to_dict(a) for a in articles], total, page, limit)
        await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)

    await annotate_for_viewer(db, response.data, viewer.user_id)
    return response


async def list_all(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    category: ArticleCategory | None = None,
    tags: list[str] | None = None,
    published_status: Literal["true", "false", "all"] = "all",
    sort_by: str = "createdAt",
    sort_direction: str = "DESC",
) -> PaginatedResponse:
    """Admin listing: drafts included unless ``published_status`` narrows it."""
    published = {"true": True, "false": False}.get(published_status)
    stmt = select(Article).where(*build_filters(search, category, tags, published=published))
    order = resolve_order(sort_by, sort_direction, ADMIN_SORT_FIELDS)
    articles, total = await paginate(db, stmt, order, page, limit)
    return page_response([article_to_dict(a) for a in articles], total, page, limit)


async def get_article(db: AsyncSession, article_id: uuid.UUID, viewer: Viewer | None = None) -> dict:
    """
    Return the article as seen by *viewer*.

    Drafts are only visible to admins; everyone else gets 404, the same as
    for an id that does not exist.
    """
    viewer = viewer or Viewer()
    cache_key = cache.detail_key(article_id)
    data = await cache.get(cache_key)
    if data is None:
        article = await load_article(db, article_id)
        if article is None:
            raise NotFoundError(f'Article with ID "{article_id}" not found.')
        data = article_to_dict(article)
        await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)

    if not data["isPublished"] and not viewer.is_admin:
        raise NotFoundError(f'Article with ID "{article_id}" not found.')

    await annotate_for_viewer(db, [data], viewer.user_id)
    return data


# ---------------------------------------------------------------------------
# Writes (admin)
# ---------------------------------------------------------------------------

async def create_article(db: AsyncSession, data: ArticleCreate) -> dict:
    article = Article(
        title=data.title,
        body=data.body,
        image_url=data.image_url,
        category=data.category,
        is_published=data.is_published,
    )
    db.add(article)
    await db.flush()
    await _replace_tags(db, article.id, data.tags)

    await cache.invalidate_article()
    logger.info("Created article %s (published=%s)", article.id, article.is_published)
    return article_to_dict(await load_article(db, article.id))


async def update_article(db: AsyncSession, article_id: uuid.UUID, data: ArticleUpdate) -> dict:
    """
    Partially update an article.  Only fields present in the payload change;
    a ``tags`` list replaces the previous tags.
    """
    article = await load_article(db, article_id)
    if article is None:
        raise NotFoundError(f'Article with ID "{article_id}" not found.')

    update_data = data.model_dump(exclude_unset=True)
    tag_names: list[str] | None = update_data.pop("tags", None)

    for field, value in update_data.items():
        # Only image_url may be cleared; null for required fields is ignored.
        if value is None and field != "image_url":
            continue
        setattr(article, field, value)

    if tag_names is not None:
        await _replace_tags(db, article_id, tag_names)
        # Tag links live in article_tags; touch the row so the edit is dated.
        article.updated_at = datetime.now(timezone.utc)

    await db.flush()
    await cache.invalidate_article(article_id)
    logger.info("Updated article %s fields %s", article_id, sorted(data.model_fields_set))
    return article_to_dict(await load_article(db, article_id))


async def delete_article(db: AsyncSession, article_id: uuid.UUID) -> None:
    """Hard delete; likes, saves and tag links go with it (FK cascade)."""
    result = await db.execute(delete(Article).where(Article.id == article_id))
    if result.rowcount == 0:
        raise NotFoundError(f'Article with ID "{article_id}" not found.')

    await cache.invalidate_article(article_id)
    logger.info("Deleted article %s", article_id)
