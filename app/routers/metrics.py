from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.models import Post, User
from app.schemas import MetricsResponse
from app.cache import cache

router = APIRouter(prefix="/api/metrics", tags=["metrics"])

@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):

    total_users = (await db.execute(select(func.count()).select_from(User))).scalar_one()

    deleted_users = (
        await db.execute(select(func.count()).select_from(User).where(User.deleted.is_(True)))
    ).scalar_one()

    total_posts = (await db.execute(select(func.count()).select_from(Post))).scalar_one()

    active_users = total_users - deleted_users
    avg_posts = total_posts / active_users if active_users > 0 else 0

    return MetricsResponse(
        total_users=total_users,
        active_users=active_users,
        deleted_users=deleted_users,
        total_posts=total_posts,
        avg_posts_per_user=round(avg_posts, 2),
        cache_info=cache.stats,
    )
