import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.access import Viewer, get_current_user, public_viewer, require_admin
from app.database import get_db
from app.dependencies import AdminArticleQueryParams, ArticleQueryParams, PaginationParams
from app.models import User
from app.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse
from app.services import article_service, engagement_service

router = APIRouter(prefix="/articles", tags=["articles"])

# Fixed paths (/all, /user/saved) are declared before /{article_id}.


@router.get("", response_model=PaginatedResponse)
async def list_articles(
    params: ArticleQueryParams = Depends(),
    viewer: Viewer = Depends(public_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.list_published(
        db,
        page=params.page,
        limit=params.limit,
        search=params.search,
        category=params.category,
        tags=params.tags,
        sort_by=params.sort_by,
        sort_direction=params.sort_direction,
        viewer=viewer,
    )


@router.get("/all", response_model=PaginatedResponse)
async def list_all_articles(
    params: AdminArticleQueryParams = Depends(),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.list_all(
        db,
        page=params.page,
        limit=params.limit,
        search=params.search,
        category=params.category,
        tags=params.tags,
        published_status=params.published_status,
        sort_by=params.sort_by,
        sort_direction=params.sort_direction,
    )


@router.get("/user/saved", response_model=PaginatedResponse)
async def list_saved_articles(
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await engagement_service.list_saved(
        db, current_user, page=pagination.page, limit=pagination.limit
    )


@router.get("/{article_id}")
async def get_article(
    article_id: uuid.UUID,
    viewer: Viewer = Depends(public_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_article(db, article_id, viewer)


@router.post("", status_code=201)
async def create_article(
    data: ArticleCreate,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.create_article(db, data)


@router.patch("/{article_id}")
async def update_article(
    article_id: uuid.UUID,
    data: ArticleUpdate,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.update_article(db, article_id, data)


@router.delete("/{article_id}", status_code=204)
async def delete_article(
    article_id: uuid.UUID,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, article_id)
    return Response(status_code=204)


@router.post("/{article_id}/like")
async def toggle_like(
    article_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await engagement_service.toggle_like(db, article_id, current_user)


@router.post("/{article_id}/save")
async def toggle_save(
    article_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await engagement_service.toggle_save(db, article_id, current_user)
