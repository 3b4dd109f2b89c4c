"""Unit tests for the ARQ workers, task wrappers and retry policy."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from arq import Retry

from photobook.api.services.illustration_generation import PageOutcome, PageOutcomeStatus
from photobook.api.services.status_machine import (
    ILLUSTRATING,
    ILLUSTRATION_FAILED,
    STORY_COMPLETED,
    STORY_FAILED,
    STORY_GENERATING,
)
from photobook.api.services.story_generation import StoryResult
from photobook.worker import (
    ILLUSTRATION_RETRY_POLICY,
    STORY_RETRY_POLICY,
    IllustrationWorkerSettings,
    RetryPolicy,
    StoryWorkerSettings,
    _cleanup_stale_redis_keys,
    cleanup_stale_books_task,
    generate_illustrations_task,
    generate_story_task,
    run_with_retry_policy,
)

TEST_BOOK_ID = "12345678-1234-5678-1234-567812345678"

STORY_PAYLOAD = {
    "user_id": "user-123",
    "book_id": TEST_BOOK_ID,
    "prompt_context": {"child_name": "Max", "book_title": "Max's Big Day"},
    "story_pages": [
        {
            "page_id": "page-1",
            "page_number": 1,
            "asset_id": "asset-1",
            "original_image_url": "https://img.example.com/1.jpg",
        }
    ],
}
ILLUSTRATION_PAYLOAD = {"user_id": "user-123", "book_id": TEST_BOOK_ID}


class TestRetryPolicy:
    """Tests for retry attempts and backoff."""

    def test_story_backoff_doubles(self):
        assert STORY_RETRY_POLICY.attempts == 3
        assert [STORY_RETRY_POLICY.delay_for(n) for n in (1, 2)] == [5, 10]

    def test_illustration_backoff_doubles(self):
        assert ILLUSTRATION_RETRY_POLICY.attempts == 3
        assert [ILLUSTRATION_RETRY_POLICY.delay_for(n) for n in (1, 2)] == [10, 20]

    @pytest.mark.asyncio
    async def test_failure_with_attempts_left_is_retried(self):
        """A failing attempt before the last should defer a retry."""
        attempt = AsyncMock(side_effect=TimeoutError("slow model"))
        policy = RetryPolicy(attempts=3, base_delay=5)

        with pytest.raises(Retry) as exc_info:
            await run_with_retry_policy({"job_try": 2}, policy, "StoryGeneration", TEST_BOOK_ID, attempt)

        assert exc_info.value.defer_score == 10_000

    @pytest.mark.asyncio
    async def test_last_attempt_reraises_original(self):
        """The final attempt's exception should reach arq unchanged."""
        attempt = AsyncMock(side_effect=TimeoutError("slow model"))
        policy = RetryPolicy(attempts=3, base_delay=5)

        with pytest.raises(TimeoutError, match="slow model"):
            await run_with_retry_policy({"job_try": 3}, policy, "StoryGeneration", TEST_BOOK_ID, attempt)

    @pytest.mark.asyncio
    async def test_success_returns_result(self):
        attempt = AsyncMock(return_value="done")

        result = await run_with_retry_policy({}, STORY_RETRY_POLICY, "StoryGeneration", TEST_BOOK_ID, attempt)

        assert result == "done"


class TestGenerateStoryTask:
    """Tests for the generate_story_task ARQ task."""

    @pytest.mark.asyncio
    async def test_runs_pipeline_with_validated_job(self):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(return_value=StoryResult(written=[1], missing=[]))
        ctx = {"job_id": "job-1", "job_try": 1, "story_pipeline": pipeline}

        result = await generate_story_task(ctx, STORY_PAYLOAD)

        job, job_id = pipeline.run.call_args[0]
        assert job.book_id == TEST_BOOK_ID
        assert job.story_pages[0].page_number == 1
        assert job_id == "job-1"
        assert result == {
            "book_id": TEST_BOOK_ID,
            "status": "completed",
            "pages_written": [1],
            "pages_missing": [],
        }

    @pytest.mark.asyncio
    async def test_stale_job_reports_skipped(self):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(return_value=None)

        result = await generate_story_task({"story_pipeline": pipeline}, STORY_PAYLOAD)

        assert result == {"book_id": TEST_BOOK_ID, "status": "skipped"}

    @pytest.mark.asyncio
    async def test_failure_schedules_retry(self):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(side_effect=ConnectionError("db gone"))

        with pytest.raises(Retry):
            await generate_story_task({"job_try": 1, "story_pipeline": pipeline}, STORY_PAYLOAD)


class TestGenerateIllustrationsTask:
    """Tests for the generate_illustrations_task ARQ task."""

    @pytest.mark.asyncio
    async def test_counts_page_outcomes(self):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(return_value=[
            PageOutcome(1, PageOutcomeStatus.ILLUSTRATED),
            PageOutcome(2, PageOutcomeStatus.ILLUSTRATED),
            PageOutcome(3, PageOutcomeStatus.FAILED),
        ])
        ctx = {"job_id": "job-2", "illustration_pipeline": pipeline}

        result = await generate_illustrations_task(ctx, ILLUSTRATION_PAYLOAD)

        assert result["status"] == "completed"
        assert result["pages"] == {"illustrated": 2, "failed": 1}

    @pytest.mark.asyncio
    async def test_last_attempt_reraises(self):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(side_effect=ConnectionError("db gone"))

        with pytest.raises(ConnectionError):
            await generate_illustrations_task(
                {"job_try": 3, "illustration_pipeline": pipeline}, ILLUSTRATION_PAYLOAD
            )


class TestWorkerSettings:
    """Tests for per-kind ARQ worker configuration."""

    def test_each_kind_has_its_own_queue(self):
        assert StoryWorkerSettings.queue_name == "photobook:story"
        assert IllustrationWorkerSettings.queue_name == "photobook:illustration"

    def test_registered_functions(self):
        assert StoryWorkerSettings.functions == [generate_story_task]
        assert IllustrationWorkerSettings.functions == [generate_illustrations_task]

    def test_concurrency_limits(self):
        """The illustration worker must run one job at a time."""
        assert StoryWorkerSettings.max_jobs == 5
        assert IllustrationWorkerSettings.max_jobs == 1

    def test_max_tries_match_retry_policy(self):
        assert StoryWorkerSettings.max_tries == 3
        assert IllustrationWorkerSettings.max_tries == 3

    def test_stale_cleanup_cron_runs_in_story_worker_only(self):
        assert len(StoryWorkerSettings.cron_jobs) == 1
        assert not hasattr(IllustrationWorkerSettings, "cron_jobs")

    def test_lifecycle_hooks(self):
        for settings in (StoryWorkerSettings, IllustrationWorkerSettings):
            assert settings.on_startup is not None
            assert settings.on_shutdown is not None


class TestCleanupStaleBooks:
    """Tests for cleanup_stale_books_task."""

    @pytest.fixture
    def run_cleanup(self, fake_repo, mock_pool):
        async def _run():
            with patch("photobook.worker.BookRepository", return_value=fake_repo):
                return await cleanup_stale_books_task({"db_pool": mock_pool})

        return _run

    @pytest.mark.asyncio
    async def test_fails_books_stuck_in_flight(self, fake_repo, run_cleanup):
        old = datetime.now(timezone.utc) - timedelta(hours=2)
        fake_repo.add_book("stuck-story", state=STORY_GENERATING)
        fake_repo.add_book("stuck-art", state=ILLUSTRATING)
        fake_repo.updated_at.update({"stuck-story": old, "stuck-art": old})

        result = await run_cleanup()

        assert result == {"cleaned": 2}
        assert fake_repo.state_of("stuck-story") == STORY_FAILED
        assert fake_repo.state_of("stuck-art") == ILLUSTRATION_FAILED

    @pytest.mark.asyncio
    async def test_recent_and_idle_books_are_untouched(self, fake_repo, run_cleanup):
        fake_repo.add_book("fresh", state=STORY_GENERATING)
        fake_repo.add_book("done", state=STORY_COMPLETED)
        fake_repo.updated_at["done"] = datetime.now(timezone.utc) - timedelta(days=3)

        result = await run_cleanup()

        assert result == {"cleaned": 0}
        assert fake_repo.state_of("fresh") == STORY_GENERATING
        assert fake_repo.state_of("done") == STORY_COMPLETED

    @pytest.mark.asyncio
    async def test_missing_pool_is_skipped(self):
        assert await cleanup_stale_books_task({}) == {"cleaned": 0}


class TestCleanupStaleRedisKeys:
    """Tests for _cleanup_stale_redis_keys.

    arq stores job data, retry counts and results under their own prefixes;
    only arq:in-progress:* markers from a crashed worker may be removed.
    """

    @pytest.mark.asyncio
    async def test_cleanup_only_deletes_in_progress_keys(self):
        mock_redis = AsyncMock()
        mock_redis.keys = AsyncMock(return_value=[
            b"arq:in-progress:job123",
            b"arq:in-progress:job456",
        ])

        await _cleanup_stale_redis_keys({"redis": mock_redis})

        mock_redis.keys.assert_awaited_once_with("arq:in-progress:*")
        assert mock_redis.delete.call_count == 2

    @pytest.mark.asyncio
    async def test_cleanup_skips_cron_in_progress_keys(self):
        mock_redis = AsyncMock()
        mock_redis.keys = AsyncMock(return_value=[
            b"arq:in-progress:job123",
            b"arq:in-progress:cron:cleanup_stale_books_task:123456",
        ])

        await _cleanup_stale_redis_keys({"redis": mock_redis})

        mock_redis.delete.assert_called_once_with(b"arq:in-progress:job123")

    @pytest.mark.asyncio
    async def test_cleanup_handles_missing_redis_context(self):
        await _cleanup_stale_redis_keys({})

    @pytest.mark.asyncio
    async def test_cleanup_handles_redis_errors(self):
        mock_redis = AsyncMock()
        mock_redis.keys = AsyncMock(side_effect=Exception("Redis connection lost"))

        await _cleanup_stale_redis_keys({"redis": mock_redis})
