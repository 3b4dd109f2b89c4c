"""Pytest configuration for integration tests against a live Redis."""

import os

import pytest
import redis
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


@pytest.fixture(scope="session")
def redis_url():
    return os.getenv("REDIS_URL", "redis://localhost:6379")


@pytest.fixture(scope="session")
def redis_available(redis_url):
    """Check if Redis is available."""
    try:
        redis.Redis.from_url(redis_url).ping()
        return True
    except redis.ConnectionError:
        return False


@pytest.fixture(autouse=True)
def skip_if_no_redis(request, redis_available):
    """Skip tests marked with requires_redis if Redis is not reachable."""
    if request.node.get_closest_marker("requires_redis"):
        if not redis_available:
            pytest.skip("Redis not available")
