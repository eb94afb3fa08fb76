"""
Like / save ledger tests.

Properties checked through the HTTP API:
- toggling twice returns to the starting state and counter;
- concurrent toggles by the same user are applied one after the other;
- the counter always equals the number of like records and never drops
  below zero;
- at most one record per (user, article);
- deleting an article removes its likes and saves.
"""
import asyncio
import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Article, ArticleLike, SavedArticle
from app.services import auth_service
from app.services.user_service import create_user


async def _like_count(db: AsyncSession, article_id: str) -> int:
    return (
        await db.execute(
            select(func.count()).select_from(ArticleLike).where(ArticleLike.article_id == uuid.UUID(article_id))
        )
    ).scalar_one()


@pytest.mark.asyncio
async def test_like_then_unlike(async_client: AsyncClient, create_article, user_headers: dict):
    article = await create_article(title="Article A")

    resp = await async_client.post(f"/api/articles/{article['id']}/like", headers=user_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["likes"] == 1
    assert data["currentUserHasLiked"] is True

    resp = await async_client.post(f"/api/articles/{article['id']}/like", headers=user_headers)
    data = resp.json()
    assert data["likes"] == 0
    assert data["currentUserHasLiked"] is False


@pytest.mark.asyncio
async def test_likes_track_records_across_users(
    async_client: AsyncClient, create_article, user_headers: dict, admin_headers: dict, db_session: AsyncSession
):
    article = await create_article()

    await async_client.post(f"/api/articles/{article['id']}/like", headers=user_headers)
    resp = await async_client.post(f"/api/articles/{article['id']}/like", headers=admin_headers)
    assert resp.json()["likes"] == 2
    assert await _like_count(db_session, article["id"]) == 2

    resp = await async_client.post(f"/api/articles/{article['id']}/like", headers=user_headers)
    assert resp.json()["likes"] == 1
    assert resp.json()["currentUserHasLiked"] is False
    assert await _like_count(db_session, article["id"]) == 1


@pytest.mark.asyncio
async def test_concurrent_double_click_likes_then_unlikes(
    async_client: AsyncClient, create_article, user_headers: dict, db_session: AsyncSession
):
    article = await create_article()
    url = f"/api/articles/{article['id']}/like"

    first, second = await asyncio.gather(
        async_client.post(url, headers=user_headers),
        async_client.post(url, headers=user_headers),
    )

    assert first.status_code == second.status_code == 200
    outcomes = sorted((r.json()["likes"], r.json()["currentUserHasLiked"]) for r in (first, second))
    assert outcomes == [(0, False), (1, True)]
    assert await _like_count(db_session, article["id"]) == 0
    stored = (await db_session.execute(select(Article.likes).where(Article.id == uuid.UUID(article["id"])))).scalar_one()
    assert stored == 0


@pytest.mark.asyncio
async def test_like_flag_visible_only_to_liker(async_client: AsyncClient, create_article, user_headers: dict):
    article = await create_article()
    await async_client.post(f"/api/articles/{article['id']}/like", headers=user_headers)

    mine = (await async_client.get(f"/api/articles/{article['id']}", headers=user_headers)).json()
    anonymous = (await async_client.get(f"/api/articles/{article['id']}")).json()
    assert mine["currentUserHasLiked"] is True
    assert anonymous["currentUserHasLiked"] is False
    assert anonymous["likes"] == 1

    listing = (await async_client.get("/api/articles", headers=user_headers)).json()
    assert listing["data"][0]["currentUserHasLiked"] is True


@pytest.mark.asyncio
async def test_unlike_never_goes_below_zero(
    async_client: AsyncClient, create_article, user_headers: dict, db_session: AsyncSession
):
    article = await create_article()
    await async_client.post(f"/api/articles/{article['id']}/like", headers=user_headers)

    # Counter drifted to 0 while the record still exists.
    row = await db_session.get(Article, uuid.UUID(article["id"]))
    row.likes = 0
    await db_session.commit()

    resp = await async_client.post(f"/api/articles/{article['id']}/like", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["likes"] == 0
    assert resp.json()["currentUserHasLiked"] is False


@pytest.mark.asyncio
async def test_like_requires_authentication(async_client: AsyncClient, create_article):
    article = await create_article()
    resp = await async_client.post(f"/api/articles/{article['id']}/like")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_like_unknown_article_returns_404(async_client: AsyncClient, user_headers: dict):
    resp = await async_client.post(f"/api/articles/{uuid.uuid4()}/like", headers=user_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_like_draft_returns_404_for_user(async_client: AsyncClient, create_article, user_headers: dict):
    draft = await create_article(isPublished=False)
    resp = await async_client.post(f"/api/articles/{draft['id']}/like", headers=user_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_save_toggle_and_saved_list(async_client: AsyncClient, create_article, user_headers: dict):
    first = await create_article(title="First")
    second = await create_article(title="Second")

    resp = await async_client.post(f"/api/articles/{first['id']}/save", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["currentUserHasSaved"] is True
    assert resp.json()["likes"] == 0
    await async_client.post(f"/api/articles/{second['id']}/save", headers=user_headers)

    data = (await async_client.get("/api/articles/user/saved", headers=user_headers)).json()
    assert data["total"] == 2
    assert data["totalPages"] == 1
    # Most recently saved first.
    assert [a["title"] for a in data["data"]] == ["Second", "First"]
    assert all(a["currentUserHasSaved"] for a in data["data"])

    resp = await async_client.post(f"/api/articles/{first['id']}/save", headers=user_headers)
    assert resp.json()["currentUserHasSaved"] is False
    data = (await async_client.get("/api/articles/user/saved", headers=user_headers)).json()
    assert [a["title"] for a in data["data"]] == ["Second"]


@pytest.mark.asyncio
async def test_saved_list_paginates(async_client: AsyncClient, create_article, user_headers: dict):
    for i in range(3):
        article = await create_article(title=f"A{i}")
        await async_client.post(f"/api/articles/{article['id']}/save", headers=user_headers)

    data = (await async_client.get("/api/articles/user/saved?page=2&limit=2", headers=user_headers)).json()
    assert data["total"] == 3
    assert data["totalPages"] == 2
    assert [a["title"] for a in data["data"]] == ["A0"]


@pytest.mark.asyncio
async def test_saved_list_is_per_user(
    async_client: AsyncClient, create_article, user_headers: dict, admin_headers: dict
):
    article = await create_article()
    await async_client.post(f"/api/articles/{article['id']}/save", headers=admin_headers)

    data = (await async_client.get("/api/articles/user/saved", headers=user_headers)).json()
    assert data["total"] == 0


@pytest.mark.asyncio
async def test_saved_list_requires_authentication(async_client: AsyncClient):
    assert (await async_client.get("/api/articles/user/saved")).status_code == 401


@pytest.mark.asyncio
async def test_delete_article_cascades_engagement(
    async_client: AsyncClient, create_article, user_headers: dict, admin_headers: dict, db_session: AsyncSession
):
    article = await create_article()
    await async_client.post(f"/api/articles/{article['id']}/like", headers=user_headers)
    await async_client.post(f"/api/articles/{article['id']}/save", headers=user_headers)

    resp = await async_client.delete(f"/api/articles/{article['id']}", headers=admin_headers)
    assert resp.status_code == 204

    assert await _like_count(db_session, article["id"]) == 0
    saves = (
        await db_session.execute(select(func.count()).select_from(SavedArticle))
    ).scalar_one()
    assert saves == 0
    data = (await async_client.get("/api/articles/user/saved", headers=user_headers)).json()
    assert data["total"] == 0


@pytest.mark.asyncio
async def test_sort_by_likes(async_client: AsyncClient, create_article, db_session: AsyncSession):
    quiet = await create_article(title="Quiet")
    popular = await create_article(title="Popular")

    for n in range(2):
        user = await create_user(
            db_session, email=f"fan{n}@example.com", password="Password123!", first_name="Fan", last_name=str(n)
        )
        await db_session.commit()
        headers = {"Authorization": f"Bearer {auth_service.issue_token(user)}"}
        await async_client.post(f"/api/articles/{popular['id']}/like", headers=headers)

    data = (await async_client.get("/api/articles?sortBy=likes&sortDirection=DESC")).json()
    assert [a["title"] for a in data["data"]] == ["Popular", "Quiet"]
    assert data["data"][0]["likes"] == 2
    assert quiet["id"] == data["data"][1]["id"]
