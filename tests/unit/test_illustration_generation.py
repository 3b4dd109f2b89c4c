"""Unit tests for the illustration pipeline."""

from unittest.mock import AsyncMock, patch

import pytest

from photobook.api.models.jobs import IllustrationGenerationJob
from photobook.api.services.illustration_generation import (
    IllustrationPipeline,
    PageOutcome,
    PageOutcomeStatus,
    final_state,
)
from photobook.api.services.page_confirmation import PageConfirmationLedger
from photobook.api.services.status_machine import (
    ILLUSTRATING,
    ILLUSTRATION_COMPLETED,
    ILLUSTRATION_FAILED,
    ILLUSTRATION_PARTIAL,
    STORY_COMPLETED,
    transition,
)
from photobook.core.errors import IllustrationGenerationError, ImageGenerationError
from photobook.core.types import GeneratedImage, ReferenceImage

TEST_BOOK_ID = "12345678-1234-5678-1234-567812345678"
PACING_SECONDS = 12.0


class FakeClock:
    """Virtual time advanced only by the pipeline's pacing sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def book(fake_repo):
    """An ILLUSTRATING book with three confirmed story pages."""
    fake_repo.add_book(TEST_BOOK_ID, state=ILLUSTRATING, art_style="softWatercolor")
    for n, text in enumerate(["Max woke up.", "Max ate toast.", "Max went to bed."], start=1):
        fake_repo.add_page(TEST_BOOK_ID, n, text=text, text_confirmed=True)
    return fake_repo


@pytest.fixture
def image_client(clock):
    client = AsyncMock()
    client.calls = []
    client.references = []

    async def generate(prompt):
        client.calls.append((clock.now, prompt))
        return GeneratedImage(url=f"https://images.example.com/tmp/{len(client.calls)}.png")

    async def edit(prompt, reference):
        client.references.append(reference)
        return await generate(prompt)

    client.generate.side_effect = generate
    client.edit.side_effect = edit
    return client


@pytest.fixture
def asset_store():
    store = AsyncMock()
    store.store_image.side_effect = lambda image, key: f"/assets/{key}"
    store.fetch_reference.side_effect = lambda url, name: ReferenceImage(
        data=f"photo:{url}".encode(), filename=f"{name}.jpeg", content_type="image/jpeg"
    )
    return store


@pytest.fixture
def run_pipeline(book, mock_pool, image_client, asset_store, clock):
    async def _run():
        with patch(
            "photobook.api.services.illustration_generation.BookRepository", return_value=book
        ):
            pipeline = IllustrationPipeline(
                mock_pool,
                image_client,
                asset_store,
                pacing_seconds=PACING_SECONDS,
                sleep=clock.sleep,
            )
            return await pipeline.run(
                IllustrationGenerationJob(user_id="user-123", book_id=TEST_BOOK_ID), job_id="job-9"
            )

    return _run


class TestPacing:
    """Tests for the fixed delay before every image call."""

    @pytest.mark.asyncio
    async def test_consecutive_calls_are_separated_by_pacing_interval(self, image_client, run_pipeline):
        await run_pipeline()

        timestamps = [t for t, _ in image_client.calls]
        assert len(timestamps) == 3
        gaps = [b - a for a, b in zip(timestamps, timestamps[1:])]
        assert all(gap >= PACING_SECONDS for gap in gaps)

    @pytest.mark.asyncio
    async def test_first_call_is_also_paced(self, image_client, clock, run_pipeline):
        await run_pipeline()

        assert image_client.calls[0][0] == PACING_SECONDS
        assert clock.sleeps == [PACING_SECONDS] * 3

    @pytest.mark.asyncio
    async def test_skipped_pages_are_not_paced(self, book, clock, run_pipeline):
        book.pages["page-1"].generated_image_url = "/assets/books/x/generated/page_01.png"

        await run_pipeline()

        assert clock.sleeps == [PACING_SECONDS] * 2


class TestCompletion:
    """Tests for the final book status."""

    @pytest.mark.asyncio
    async def test_all_pages_illustrated(self, book, asset_store, run_pipeline):
        outcomes = await run_pipeline()

        assert [o.status for o in outcomes] == [PageOutcomeStatus.ILLUSTRATED] * 3
        assert book.state_of() == ILLUSTRATION_COMPLETED
        assert book.pages["page-2"].generated_image_url == (
            f"/assets/books/{TEST_BOOK_ID}/generated/page_02.png"
        )

    @pytest.mark.asyncio
    async def test_store_keys_are_deterministic_per_page(self, asset_store, run_pipeline):
        await run_pipeline()

        keys = [c.args[1] for c in asset_store.store_image.call_args_list]
        assert keys == [f"books/{TEST_BOOK_ID}/generated/page_{n:02d}.png" for n in (1, 2, 3)]

    @pytest.mark.asyncio
    async def test_pages_processed_in_page_number_order(self, fake_repo, image_client, run_pipeline):
        fake_repo.add_book(TEST_BOOK_ID, state=ILLUSTRATING)
        for n in (3, 1, 2):
            fake_repo.add_page(TEST_BOOK_ID, n, text=f"Text for page {n}.", text_confirmed=True)

        await run_pipeline()

        prompts = [p for _, p in image_client.calls]
        assert [f"Text for page {n}." in prompt for n, prompt in zip((1, 2, 3), prompts)] == [True] * 3

    @pytest.mark.asyncio
    async def test_title_page_gets_title_prompt_without_confirmation_gate(
        self, book, image_client, run_pipeline
    ):
        book.add_page(TEST_BOOK_ID, 0, is_title_page=True, text="Max's Big Day")

        await run_pipeline()

        first_prompt = image_client.calls[0][1]
        assert "TITLE PAGE" in first_prompt
        assert book.state_of() == ILLUSTRATION_COMPLETED


class TestPartialFailure:
    """Tests for per-page failure bookkeeping."""

    @pytest.mark.asyncio
    async def test_one_failed_page_yields_partial(self, book, image_client, clock, run_pipeline):
        async def generate(prompt):
            image_client.calls.append((clock.now, prompt))
            if "Max ate toast." in prompt:
                raise ImageGenerationError("content policy")
            return GeneratedImage(url="https://images.example.com/tmp/ok.png")

        image_client.generate.side_effect = generate

        outcomes = await run_pipeline()

        assert [o.status for o in outcomes] == [
            PageOutcomeStatus.ILLUSTRATED,
            PageOutcomeStatus.FAILED,
            PageOutcomeStatus.ILLUSTRATED,
        ]
        assert book.state_of() == ILLUSTRATION_PARTIAL
        assert book.pages["page-2"].generated_image_url is None
        assert "content policy" in book.pages["page-2"].illustration_error
        assert book.pages["page-3"].generated_image_url is not None

    @pytest.mark.asyncio
    async def test_resume_only_regenerates_missing_pages(self, book, image_client, run_pipeline):
        book.pages["page-1"].generated_image_url = "/assets/old/page_01.png"
        book.pages["page-3"].generated_image_url = "/assets/old/page_03.png"
        book.pages["page-2"].illustration_error = "ImageGenerationError: content policy"

        outcomes = await run_pipeline()

        assert len(image_client.calls) == 1
        assert "Max ate toast." in image_client.calls[0][1]
        assert outcomes[0].status == PageOutcomeStatus.ALREADY_ILLUSTRATED
        assert book.pages["page-1"].generated_image_url == "/assets/old/page_01.png"
        assert book.pages["page-2"].illustration_error is None
        assert book.state_of() == ILLUSTRATION_COMPLETED

    @pytest.mark.asyncio
    async def test_unconfirmed_page_is_not_illustrated(self, book, image_client, run_pipeline):
        book.pages["page-3"].text_confirmed = False

        outcomes = await run_pipeline()

        assert outcomes[2].status == PageOutcomeStatus.UNCONFIRMED
        assert len(image_client.calls) == 2
        assert book.state_of() == ILLUSTRATION_PARTIAL

    @pytest.mark.asyncio
    async def test_no_page_illustrated_fails_and_raises(self, book, image_client, run_pipeline):
        image_client.generate.side_effect = ImageGenerationError("no url")

        with pytest.raises(IllustrationGenerationError):
            await run_pipeline()

        assert book.state_of() == ILLUSTRATION_FAILED
        assert all(p.illustration_error for p in book.pages_of())

    @pytest.mark.asyncio
    async def test_store_failure_is_a_page_failure(self, book, asset_store, run_pipeline):
        asset_store.store_image.side_effect = [
            "/assets/p1.png",
            ConnectionError("download failed"),
            "/assets/p3.png",
        ]

        await run_pipeline()

        assert book.state_of() == ILLUSTRATION_PARTIAL
        assert "download failed" in book.pages["page-2"].illustration_error


class TestReferencePhotos:
    """Pages with a source photo are re-rendered from it."""

    @pytest.mark.asyncio
    async def test_photo_page_is_edited_from_downloaded_photo(
        self, book, image_client, asset_store, run_pipeline
    ):
        book.pages["page-1"].original_image_url = "https://img.example.com/1.jpg"

        outcomes = await run_pipeline()

        asset_store.fetch_reference.assert_awaited_once_with(
            "https://img.example.com/1.jpg", "page_01_original"
        )
        assert [r.data for r in image_client.references] == [b"photo:https://img.example.com/1.jpg"]
        assert image_client.edit.await_count == 1
        assert image_client.generate.await_count == 2
        assert outcomes[0].status == PageOutcomeStatus.ILLUSTRATED

    @pytest.mark.asyncio
    async def test_prompt_mentions_photo_only_when_one_is_attached(
        self, book, image_client, run_pipeline
    ):
        book.pages["page-1"].original_image_url = "https://img.example.com/1.jpg"

        await run_pipeline()

        prompts = [p for _, p in image_client.calls]
        assert "reference photo" in prompts[0]
        assert all("reference photo" not in p for p in prompts[1:])

    @pytest.mark.asyncio
    async def test_unreachable_photo_fails_the_page_without_calling_the_model(
        self, book, image_client, asset_store, clock, run_pipeline
    ):
        book.pages["page-2"].original_image_url = "https://img.example.com/gone.jpg"
        asset_store.fetch_reference.side_effect = ConnectionError("photo unreachable")

        outcomes = await run_pipeline()

        assert outcomes[1].status == PageOutcomeStatus.FAILED
        assert "photo unreachable" in book.pages["page-2"].illustration_error
        assert image_client.edit.await_count == 0
        assert clock.sleeps == [PACING_SECONDS] * 2
        assert book.state_of() == ILLUSTRATION_PARTIAL


class TestEditedTextIsRedrawn:
    """Editing an illustrated page between runs makes the next run redraw it."""

    @pytest.mark.asyncio
    async def test_edited_page_is_regenerated_with_new_text(self, book, image_client, run_pipeline):
        book.books[TEST_BOOK_ID].status, book.books[TEST_BOOK_ID].phase = ILLUSTRATION_PARTIAL
        page = book.pages["page-1"]
        page.text = "Old text."
        page.generated_image_url = "/assets/old/page_01.png"
        book.pages["page-2"].generated_image_url = "/assets/old/page_02.png"
        book.pages["page-3"].generated_image_url = "/assets/old/page_03.png"

        ledger = PageConfirmationLedger(book)
        await ledger.edit_page_text("page-1", "Brand new text.")
        await ledger.confirm_page("page-1")
        await transition(book, TEST_BOOK_ID, ILLUSTRATING, expected=ILLUSTRATION_PARTIAL)

        outcomes = await run_pipeline()

        assert outcomes[0].status == PageOutcomeStatus.ILLUSTRATED
        assert [s.status for s in outcomes[1:]] == [PageOutcomeStatus.ALREADY_ILLUSTRATED] * 2
        assert len(image_client.calls) == 1
        assert '"Brand new text."' in image_client.calls[0][1]
        assert book.pages["page-1"].generated_image_url == (
            f"/assets/books/{TEST_BOOK_ID}/generated/page_01.png"
        )
        assert book.state_of() == ILLUSTRATION_COMPLETED


class TestStaleJobs:
    """Tests for the idempotent no-op guard."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", [STORY_COMPLETED, ILLUSTRATION_COMPLETED, ILLUSTRATION_FAILED])
    async def test_book_not_illustrating_is_untouched(self, book, image_client, run_pipeline, state):
        book.books[TEST_BOOK_ID].status, book.books[TEST_BOOK_ID].phase = state
        before = [vars(p).copy() for p in book.pages_of()]

        assert await run_pipeline() is None

        assert image_client.calls == []
        assert [vars(p) for p in book.pages_of()] == before
        assert book.state_history == []

    @pytest.mark.asyncio
    async def test_missing_book_is_a_no_op(self, book, image_client, run_pipeline):
        del book.books[TEST_BOOK_ID]

        assert await run_pipeline() is None
        assert image_client.calls == []


class TestUnexpectedErrors:
    """Tests for errors outside the per-page loop."""

    @pytest.mark.asyncio
    async def test_marks_failed_and_reraises(self, book, run_pipeline):
        book.get_pages = AsyncMock(side_effect=ConnectionError("connection reset"))

        with pytest.raises(ConnectionError):
            await run_pipeline()

        assert book.state_of() == ILLUSTRATION_FAILED


class TestFinalState:
    """Tests for mapping page outcomes to a book state."""

    def test_mapping(self):
        ok = PageOutcome(1, PageOutcomeStatus.ILLUSTRATED)
        kept = PageOutcome(2, PageOutcomeStatus.ALREADY_ILLUSTRATED)
        failed = PageOutcome(3, PageOutcomeStatus.FAILED)

        assert final_state([ok, kept]) == ILLUSTRATION_COMPLETED
        assert final_state([ok, failed]) == ILLUSTRATION_PARTIAL
        assert final_state([failed]) == ILLUSTRATION_FAILED
