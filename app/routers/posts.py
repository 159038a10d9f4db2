from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import PaginationParams, require_keyword
from app.errors import not_found
from app.schemas import PostCreate, PostPatch, PostReplace, PostResponse
from app.services import post_service

router = APIRouter(prefix="/api/posts", tags=["posts"])


@router.get("/search", response_model=list[PostResponse])
async def search_posts(keyword: str = Depends(require_keyword), db: AsyncSession = Depends(get_db)):
    return await post_service.search_posts(db, keyword)


@router.get("", response_model=list[PostResponse])
async def list_posts(pagination: PaginationParams = Depends(), db: AsyncSession = Depends(get_db)):
    return await post_service.get_posts(db, pagination.page, pagination.limit)


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(post_id: int, db: AsyncSession = Depends(get_db)):
    post = await post_service.get_post(db, post_id)
    if not post:
        raise not_found("Post")
    return post


@router.post("", status_code=201, response_model=PostResponse)
async def create_post(data: PostCreate, db: AsyncSession = Depends(get_db)):
    return await post_service.create_post(db, data)


@router.put("/{post_id}", response_model=PostResponse)
async def replace_post(post_id: int, data: PostReplace, db: AsyncSession = Depends(get_db)):
    return await post_service.replace_post(db, post_id, data)


@router.patch("/{post_id}", response_model=PostResponse)
async def patch_post(post_id: int, data: PostPatch, db: AsyncSession = Depends(get_db)):
    return await post_service.patch_post(db, post_id, data.model_dump(exclude_unset=True))


@router.delete("/{post_id}", status_code=204)
async def delete_post(post_id: int, db: AsyncSession = Depends(get_db)):
    await post_service.delete_post(db, post_id)
    return Response(status_code=204)
