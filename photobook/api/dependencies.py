"""FastAPI dependency injection for services and repositories."""

from typing import Annotated, AsyncGenerator

import asyncpg
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .arq_pool import JobQueue, get_pool
from .auth.tokens import verify_token
from .database.repository import BookRepository
from .services.book_service import BookService

# Security scheme for bearer token authentication
security = HTTPBearer()


# Connection dependency - one pooled asyncpg connection per request
async def get_connection(request: Request) -> AsyncGenerator[asyncpg.Connection, None]:
    """Borrow a connection from the pool created in the app lifespan."""
    pool = getattr(request.app.state, "db_pool", None)
    if pool is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )
    async with pool.acquire() as conn:
        yield conn


# Repository - requires connection
def get_repository(
    conn: Annotated[asyncpg.Connection, Depends(get_connection)]
) -> BookRepository:
    """Get a BookRepository bound to the request's connection."""
    return BookRepository(conn)


def get_job_queue() -> JobQueue:
    """Get the enqueuer backed by the process-wide ARQ pool."""
    try:
        return JobQueue(get_pool())
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


# Service - depends on repository and queue
def get_book_service(
    repo: Annotated[BookRepository, Depends(get_repository)],
    queue: Annotated[JobQueue, Depends(get_job_queue)],
) -> BookService:
    """Get a BookService instance with injected repository and queue."""
    return BookService(repo, queue)


# Authentication dependency
async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> str:
    """Verify the bearer token and return the user id.

    Raises:
        HTTPException: 401 if token is invalid or expired
    """
    user_id = verify_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


# Type aliases for cleaner route signatures
Repository = Annotated[BookRepository, Depends(get_repository)]
Service = Annotated[BookService, Depends(get_book_service)]
CurrentUser = Annotated[str, Depends(get_current_user)]
