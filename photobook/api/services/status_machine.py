"""
Book status state machine.

Status values are what the polling client sees. COMPLETED and FAILED occur in
both the story and illustration phases, so every state is a (status, phase)
pair and edges are defined on pairs. Writes are compare-and-set against the
state that was read, so a concurrent writer makes the transition fail instead
of being silently overwritten.
"""

from typing import NamedTuple, Optional

from photobook.core.errors import BookNotFoundError, InvalidStatusTransition, StaleStatusError

from ..database.repository import BookRepository
from ..logging import story_logger
from ..models.enums import BookPhase, BookStatus


class BookState(NamedTuple):
    status: BookStatus
    phase: BookPhase

    def __str__(self) -> str:
        return f"{self.status.value}({self.phase.value})"


DRAFT = BookState(BookStatus.DRAFT, BookPhase.STORY)
STORY_GENERATING = BookState(BookStatus.GENERATING, BookPhase.STORY)
STORY_COMPLETED = BookState(BookStatus.COMPLETED, BookPhase.STORY)
STORY_FAILED = BookState(BookStatus.FAILED, BookPhase.STORY)
ILLUSTRATING = BookState(BookStatus.ILLUSTRATING, BookPhase.ILLUSTRATION)
ILLUSTRATION_COMPLETED = BookState(BookStatus.COMPLETED, BookPhase.ILLUSTRATION)
ILLUSTRATION_PARTIAL = BookState(BookStatus.PARTIAL, BookPhase.ILLUSTRATION)
ILLUSTRATION_FAILED = BookState(BookStatus.FAILED, BookPhase.ILLUSTRATION)

TRANSITIONS: dict[BookState, frozenset[BookState]] = {
    DRAFT: frozenset({STORY_GENERATING}),
    # GENERATING -> GENERATING lets a retried job attempt re-enter the phase
    STORY_GENERATING: frozenset({STORY_GENERATING, STORY_COMPLETED, STORY_FAILED}),
    STORY_FAILED: frozenset({STORY_GENERATING}),
    STORY_COMPLETED: frozenset({ILLUSTRATING}),
    ILLUSTRATING: frozenset({ILLUSTRATION_COMPLETED, ILLUSTRATION_PARTIAL, ILLUSTRATION_FAILED}),
    ILLUSTRATION_PARTIAL: frozenset({ILLUSTRATING}),
    ILLUSTRATION_FAILED: frozenset({ILLUSTRATING}),
    ILLUSTRATION_COMPLETED: frozenset(),
}

# States in which a worker owns the book's pages
IN_FLIGHT_STATES = frozenset({STORY_GENERATING, ILLUSTRATING})


def can_transition(current: BookState, target: BookState) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


async def get_state(repo: BookRepository, book_id: str) -> BookState:
    """Read a book's current state.

    Raises:
        BookNotFoundError: If the book does not exist
    """
    state = await repo.get_state(book_id)
    if state is None:
        raise BookNotFoundError(book_id)
    return BookState(*state)


async def transition(
    repo: BookRepository,
    book_id: str,
    target: BookState,
    expected: Optional[BookState] = None,
) -> BookState:
    """
    Move a book to ``target`` along a defined edge.

    Args:
        repo: Repository bound to the connection (and transaction) to write on
        book_id: Book to transition
        target: State to move to
        expected: If given, the book must currently be in this state

    Returns:
        The state the book was in before the transition

    Raises:
        BookNotFoundError: If the book does not exist
        StaleStatusError: If the book is not in ``expected``, or changed
            between the read and the write
        InvalidStatusTransition: If no edge leads from the current state to ``target``
    """
    current = await get_state(repo, book_id)

    if expected is not None and current != expected:
        raise StaleStatusError(book_id, expected, target)

    if not can_transition(current, target):
        raise InvalidStatusTransition(book_id, current, target)

    if not await repo.compare_and_set_state(book_id, current, target):
        raise StaleStatusError(book_id, current, target)

    story_logger.status_changed(book_id, target.status.value, target.phase.value)
    return current
