"""FastAPI application for the photobook generation pipeline."""

import logging
from contextlib import asynccontextmanager

import asyncpg
from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .arq_pool import close_pool, set_pool
from .config import ASSET_BASE_URL, ASSETS_DIR, DATABASE_URL, LOG_FORMAT, REDIS_URL, get_database_dsn
from .logging import configure_logging
from .routes import books

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    configure_logging(json_format=LOG_FORMAT == "json")

    app.state.db_pool = None
    if DATABASE_URL:
        from .database.db import init_db

        await init_db()
        app.state.db_pool = await asyncpg.create_pool(get_database_dsn(), min_size=1, max_size=10)
        logger.info("Database initialized")
    else:
        logger.warning("DATABASE_URL not set - database not initialized")

    set_pool(await create_pool(RedisSettings.from_dsn(REDIS_URL)))
    logger.info("ARQ pool connected")

    yield

    await close_pool()
    if app.state.db_pool is not None:
        await app.state.db_pool.close()


app = FastAPI(
    title="Photobook API",
    description="""
Turn a child's photos into an illustrated storybook.

## Workflow
1. POST `/books` with the photo grid and book settings to start story generation
2. Poll GET `/books/{id}/status` until the story phase is `COMPLETED` or `FAILED`
3. Review pages via GET `/books/{id}/content`, edit and confirm each story page
4. POST `/books/{id}/illustrations` once every story page is confirmed
5. Poll status again until the illustration phase is `COMPLETED`, `PARTIAL` or `FAILED`
    """,
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(books.router, prefix="/books", tags=["Books"])

# Generated illustrations are served from the local asset store
if ASSET_BASE_URL.startswith("/"):
    app.mount(ASSET_BASE_URL, StaticFiles(directory=ASSETS_DIR, check_dir=False), name="assets")


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
