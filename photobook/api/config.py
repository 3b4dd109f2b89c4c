"""API and worker configuration constants.

Single source of truth for paths and settings used across the API layer and
the worker processes.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Base directories
API_DIR = Path(__file__).parent
PACKAGE_DIR = API_DIR.parent
PROJECT_DIR = PACKAGE_DIR.parent
DATA_DIR = PROJECT_DIR / "data"

# Database (SQLAlchemy-style URL; asyncpg gets the "+asyncpg"-free DSN)
DATABASE_URL = os.getenv("DATABASE_URL", "")

# Redis for the job queues
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")

# Durable storage for generated illustrations
ASSETS_DIR = Path(os.getenv("ASSETS_DIR", str(DATA_DIR / "assets")))
ASSET_BASE_URL = os.getenv("ASSET_BASE_URL", "/assets").rstrip("/")

# Queues
STORY_QUEUE_NAME = "photobook:story"
ILLUSTRATION_QUEUE_NAME = "photobook:illustration"

# Worker concurrency. Illustration is pinned to 1: the external image
# rate limit is the bottleneck, not local compute.
STORY_WORKER_CONCURRENCY = int(os.getenv("STORY_WORKER_CONCURRENCY", "5"))
ILLUSTRATION_WORKER_CONCURRENCY = 1

# Retry policy (attempts, base delay in seconds for exponential backoff)
STORY_JOB_ATTEMPTS = 3
STORY_JOB_BACKOFF_SECONDS = 5
ILLUSTRATION_JOB_ATTEMPTS = 3
ILLUSTRATION_JOB_BACKOFF_SECONDS = 10

# Job timeouts (seconds)
STORY_JOB_TIMEOUT = 300
ILLUSTRATION_JOB_TIMEOUT = 1800  # 16 pages + title at 12s pacing plus generation time

# Books stuck in an in-flight status longer than this are failed by the cron
STALE_GENERATING_MINUTES = 15
STALE_ILLUSTRATING_MINUTES = 45

# Page counts a book may request
ALLOWED_PAGE_COUNTS = (8, 12, 16)

# Structured logging output ("json" or "text")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")


def get_database_dsn() -> str:
    """Get PostgreSQL DSN in asyncpg format."""
    return DATABASE_URL.replace("+asyncpg", "")
