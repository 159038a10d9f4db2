import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.cache import cache
from app.config import settings
from app.database import create_tables
from app.errors import install_error_handlers
from app.middleware import TimingMiddleware
from app.routers import metrics, posts, users

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    if settings.CREATE_TABLES_ON_STARTUP:
        await create_tables()
    await cache.connect()
    logger.info("Records API started (env=%s)", settings.APP_ENV)
    yield
    # Shutdown
    await cache.disconnect()


app = FastAPI(
    title="Records API",
    description="CRUD and keyword search over users and posts",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)

# Error mapping
install_error_handlers(app)

# Routers
app.include_router(users.router)
app.include_router(posts.router)
app.include_router(metrics.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
