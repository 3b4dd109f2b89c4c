"""Book endpoints: creation, polling, page review and illustration trigger."""

from fastapi import APIRouter, HTTPException, status

from photobook.core.errors import (
    AssetNotFoundError,
    BookBusyError,
    BookNotFoundError,
    InvalidStatusTransition,
    PageNotConfirmableError,
    PageNotFoundError,
    PagesNotConfirmedError,
    PhotobookError,
    StaleStatusError,
)
from photobook.core.modules.illustration_styles import get_style_options

from ..dependencies import CurrentUser, Service
from ..models.enums import BookStatus
from ..models.requests import CreateBookRequest, UpdatePageRequest
from ..models.responses import (
    BookContentResponse,
    BookStatusResponse,
    JobAcceptedResponse,
    PageResponse,
)

router = APIRouter()

_ERROR_STATUS = (
    ((BookNotFoundError, PageNotFoundError), status.HTTP_404_NOT_FOUND),
    ((AssetNotFoundError,), status.HTTP_400_BAD_REQUEST),
    ((PageNotConfirmableError,), status.HTTP_422_UNPROCESSABLE_ENTITY),
    (
        (InvalidStatusTransition, StaleStatusError, BookBusyError, PagesNotConfirmedError),
        status.HTTP_409_CONFLICT,
    ),
)


def _http_error(error: PhotobookError) -> HTTPException:
    for error_types, status_code in _ERROR_STATUS:
        if isinstance(error, error_types):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def _queue_unavailable(error: RuntimeError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Could not queue generation job: {error}",
    )


@router.get(
    "/styles",
    summary="List illustration styles",
    description="The closed catalog of art styles a book can be illustrated in.",
)
async def list_styles():
    return get_style_options()


@router.post(
    "",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Create a book",
    description="Create a book from dropped photos and start story generation. Poll the status endpoint for progress.",
)
async def create_book(request: CreateBookRequest, service: Service, user_id: CurrentUser):
    """Create a book and enqueue its story generation."""
    try:
        book_id, job_id = await service.create_book(user_id, request)
    except PhotobookError as e:
        raise _http_error(e)
    except RuntimeError as e:
        raise _queue_unavailable(e)

    return JobAcceptedResponse(book_id=book_id, job_id=job_id, status=BookStatus.DRAFT)


@router.get(
    "/{book_id}/status",
    response_model=BookStatusResponse,
    summary="Poll book status",
)
async def get_book_status(book_id: str, service: Service, user_id: CurrentUser):
    try:
        return await service.get_status(user_id, book_id)
    except PhotobookError as e:
        raise _http_error(e)


@router.get(
    "/{book_id}/content",
    response_model=BookContentResponse,
    summary="Get book pages",
    description="Pages in page-number order with their text and image references.",
)
async def get_book_content(book_id: str, service: Service, user_id: CurrentUser):
    try:
        return await service.get_content(user_id, book_id)
    except PhotobookError as e:
        raise _http_error(e)


@router.patch(
    "/{book_id}/pages/{page_id}",
    response_model=PageResponse,
    summary="Edit a page",
    description="Changing the text clears confirmation unless text_confirmed=true is sent with it.",
)
async def update_page(
    book_id: str,
    page_id: str,
    request: UpdatePageRequest,
    service: Service,
    user_id: CurrentUser,
):
    try:
        return await service.update_page(user_id, book_id, page_id, request)
    except PhotobookError as e:
        raise _http_error(e)


@router.post(
    "/{book_id}/pages/{page_id}/confirm",
    response_model=PageResponse,
    summary="Confirm a page's text",
)
async def confirm_page(book_id: str, page_id: str, service: Service, user_id: CurrentUser):
    try:
        return await service.confirm_page(user_id, book_id, page_id)
    except PhotobookError as e:
        raise _http_error(e)


@router.post(
    "/{book_id}/illustrations",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start illustration",
    description="Requires every story page to be confirmed. Re-triggering a PARTIAL or FAILED book only regenerates missing pages.",
)
async def start_illustrations(book_id: str, service: Service, user_id: CurrentUser):
    try:
        job_id = await service.start_illustrations(user_id, book_id)
    except PhotobookError as e:
        raise _http_error(e)
    except RuntimeError as e:
        raise _queue_unavailable(e)

    return JobAcceptedResponse(book_id=book_id, job_id=job_id, status=BookStatus.ILLUSTRATING)
