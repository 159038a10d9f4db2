from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import require_keyword
from app.errors import not_found
from app.schemas import UserCreate, UserPatch, UserResponse, UserUpdate
from app.services import user_service

router = APIRouter(prefix="/api/users", tags=["users"])


# Declared before "/{user_id}" so "search" is not parsed as an id.
@router.get("/search", response_model=list[UserResponse])
async def search_users(keyword: str = Depends(require_keyword), db: AsyncSession = Depends(get_db)):
    return await user_service.search_users(db, keyword)


@router.get("", response_model=list[UserResponse])
async def list_users(db: AsyncSession = Depends(get_db)):
    return await user_service.get_users(db)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await user_service.get_user(db, user_id)
    if not user:
        raise not_found("User")
    return user


@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    return await user_service.create_user(db, data)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: int, data: UserUpdate, db: AsyncSession = Depends(get_db)):
    fields = data.model_dump(exclude_unset=True)
    address = fields.pop("address", None)
    company = fields.pop("company", None)
    return await user_service.update_user(db, user_id, fields, address, company)


@router.patch("/{user_id}", response_model=UserResponse)
async def patch_user(user_id: int, data: UserPatch, db: AsyncSession = Depends(get_db)):
    return await user_service.patch_user(db, user_id, data.model_dump(exclude_unset=True))


@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: int, db: AsyncSession = Depends(get_db)):
    await user_service.delete_user(db, user_id)
    return Response(status_code=204)
