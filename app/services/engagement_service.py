"""
Engagement service: the like / save ledger.

A toggle flips the (user, article) relation and returns the article as the
user now sees it.  The ``likes`` counter is only moved by an atomic SQL
``UPDATE`` and only when the matching row was really deleted or inserted, so
it always equals the number of like records.

Each toggle locks the article row (``SELECT ... FOR UPDATE``) so toggles on
the same article queue up until the previous transaction commits.  Within
one process a keyed lock queues them before they reach the database.  The
returned article is read while the lock is still held.
"""
import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.access import Viewer
from app.cache import cache
from app.exceptions import NotFoundError
from app.models import Article, ArticleLike, SavedArticle, User
from app.schemas import PaginatedResponse
from app.services import article_service

logger = logging.getLogger(__name__)


class KeyedLock:
    """One ``asyncio.Lock`` per key, dropped again once nobody holds it."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


toggle_locks = KeyedLock()


async def _ensure_visible(db: AsyncSession, article_id: uuid.UUID, viewer: Viewer) -> None:
    result = await db.execute(
        select(Article.is_published).where(Article.id == article_id).with_for_update()
    )
    published = result.scalar_one_or_none()
    if published is None or (not published and not viewer.is_admin):
        raise NotFoundError(f'Article with ID "{article_id}" not found.')


async def _insert_once(db: AsyncSession, record) -> bool:
    """Insert *record* in a savepoint; False if the unique key already exists."""
    try:
        async with db.begin_nested():
            db.add(record)
    except IntegrityError:
        logger.debug("Concurrent insert of %s absorbed", type(record).__name__)
        return False
    return True


async def toggle_like(db: AsyncSession, article_id: uuid.UUID, user: User) -> dict:
    viewer = Viewer.of(user)
    async with toggle_locks.hold(("like", user.id, article_id)):
        await _ensure_visible(db, article_id, viewer)

        removed = await db.execute(
            delete(ArticleLike).where(
                ArticleLike.user_id == user.id, ArticleLike.article_id == article_id
            )
        )
        if removed.rowcount > 0:
            await db.execute(
                update(Article)
                .where(Article.id == article_id)
                .values(likes=case((Article.likes > 0, Article.likes - 1), else_=0))
            )
            logger.debug("User %s unliked article %s", user.id, article_id)
        elif await _insert_once(db, ArticleLike(user_id=user.id, article_id=article_id)):
            await db.execute(
                update(Article).where(Article.id == article_id).values(likes=Article.likes + 1)
            )
            logger.debug("User %s liked article %s", user.id, article_id)

        await db.flush()
        await cache.invalidate_article(article_id)
        return await article_service.get_article(db, article_id, viewer)


async def toggle_save(db: AsyncSession, article_id: uuid.UUID, user: User) -> dict:
    viewer = Viewer.of(user)
    async with toggle_locks.hold(("save", user.id, article_id)):
        await _ensure_visible(db, article_id, viewer)

        removed = await db.execute(
            delete(SavedArticle).where(
                SavedArticle.user_id == user.id, SavedArticle.article_id == article_id
            )
        )
        if removed.rowcount > 0:
            logger.debug("User %s unsaved article %s", user.id, article_id)
        elif await _insert_once(db, SavedArticle(user_id=user.id, article_id=article_id)):
            logger.debug("User %s saved article %s", user.id, article_id)

        await db.flush()
        return await article_service.get_article(db, article_id, viewer)


async def list_saved(db: AsyncSession, user: User, page: int = 1, limit: int = 10) -> PaginatedResponse:
    """The user's saved articles, most recently saved first."""
    stmt = (
        select(Article)
        .join(SavedArticle, SavedArticle.article_id == Article.id)
        .where(SavedArticle.user_id == user.id)
    )
    viewer = Viewer.of(user)
    if not viewer.is_admin:
        stmt = stmt.where(Article.is_published.is_(True))

    order = [SavedArticle.saved_at.desc(), SavedArticle.id.desc()]
    articles, total = await article_service.paginate(db, stmt, order, page, limit)
    items = [article_service.article_to_dict(a) for a in articles]
    await article_service.annotate_for_viewer(db, items, user.id)
    return article_service.page_response(items, total, page, limit)
