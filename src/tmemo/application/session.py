"""
Review session controller.

Owns the deck for the lifetime of a session: picks the cards that are due,
feeds operator answers through the scheduler, and persists the whole deck
after every answer so a crash never loses a completed review.
"""

import dataclasses
import logging
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from tmemo.application.scheduler import FsrsScheduler
from tmemo.application.workload import smoothing_offset
from tmemo.domain.constants import SMOOTHING_MIN_STABILITY
from tmemo.domain.interfaces import DeckRepository, ReviewOperator
from tmemo.domain.models import CardState, Deck, Grade, ReviewLogEntry, SessionAction

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionSummary:
    """What happened during one call to ``ReviewSession.run``."""

    reviewed: int = 0
    grades: Counter = field(default_factory=Counter)
    requeued: int = 0
    buried: int = 0
    remaining: int = 0
    quit: bool = False

    @property
    def again(self) -> int:
        return self.grades[Grade.AGAIN]


class ReviewSession:
    def __init__(
        self,
        deck: Deck,
        scheduler: FsrsScheduler,
        repository: DeckRepository,
        clock: Callable[[], datetime] = utc_now,
        track_history: bool = True,
        new_limit: int | None = None,
        smooth_load: bool = False,
    ):
        self.deck = deck
        self.scheduler = scheduler
        self.repository = repository
        self.clock = clock
        self.track_history = track_history
        self.new_limit = new_limit
        self.smooth_load = smooth_load
        self.logger = logging.getLogger(__name__)

    def due_cards(self, now: datetime | None = None) -> list[CardState]:
        """
        Cards to review at ``now``, in presentation order.

        Scheduled cards come first, earliest due first with ties broken by id.
        New cards follow in deck order, capped by ``new_limit``. Orphaned and
        buried cards are left out.
        """
        now = now or self.clock()
        scheduled = [c for c in self.deck if not c.is_new and c.is_due(now)]
        scheduled.sort(key=lambda c: (c.due, c.id))

        new = [c for c in self.deck if c.is_new and c.is_due(now)]
        if self.new_limit is not None:
            new = new[: self.new_limit]
        return scheduled + new

    def grade(self, card_id: str, grade: Grade, now: datetime | None = None) -> CardState:
        """
        Apply one answer and persist the deck before returning.

        Raises:
            KeyError: No card with ``card_id``.
            DomainRangeViolation: The stored card breaks the scheduler invariants.
            PersistenceError: The deck could not be saved.
        """
        now = now or self.clock()
        card = self.deck[card_id]
        reviewed = self.scheduler.review(card, grade, now)
        if self.smooth_load and grade != Grade.AGAIN:
            reviewed = self._smooth(reviewed, now)

        if self.track_history:
            entry = ReviewLogEntry(grade=Grade(grade), reviewed_at=now)
            reviewed = dataclasses.replace(reviewed, history=card.history + (entry,))

        self.deck.put(reviewed)
        self.repository.save(self.deck)
        self.logger.debug(
            f"[review] {card_id} {Grade(grade).label}: {card.state.value} -> "
            f"{reviewed.state.value}, due {reviewed.due.isoformat()}"
        )
        return reviewed

    def bury(self, card_id: str) -> CardState:
        """
        Set a card aside until it is unburied, and persist the deck.

        Raises:
            KeyError: No card with ``card_id``.
            PersistenceError: The deck could not be saved.
        """
        buried = dataclasses.replace(self.deck[card_id], buried=True)
        self.deck.put(buried)
        self.repository.save(self.deck)
        self.logger.debug(f"[review] {card_id} buried")
        return buried

    def _smooth(self, card: CardState, now: datetime) -> CardState:
        if card.stability <= SMOOTHING_MIN_STABILITY:
            return card
        offset = smoothing_offset(self.deck, card, now)
        if not offset:
            return card
        return dataclasses.replace(card, due=card.due + timedelta(days=offset))

    def run(self, operator: ReviewOperator, limit: int | None = None) -> SessionSummary:
        """
        Present every due card to ``operator`` until the queue is empty or
        the operator quits. Cards answered Again come back at the end of the
        queue; buried cards leave it.
        """
        summary = SessionSummary()
        queue = deque(card.id for card in self.due_cards())
        if limit is not None:
            queue = deque(list(queue)[:limit])

        self.logger.info(f"Starting review of {len(queue)} cards")

        while queue:
            card_id = queue.popleft()
            card = self.deck[card_id]
            now = self.clock()

            operator.show_front(card, remaining=len(queue) + 1)
            operator.show_back(card)
            choice = operator.read_grade(self.scheduler.preview(card, now))
            if choice is None:
                queue.appendleft(card_id)
                summary.quit = True
                break
            if choice is SessionAction.BURY:
                self.bury(card_id)
                summary.buried += 1
                continue

            reviewed = self.grade(card_id, choice, now)
            summary.reviewed += 1
            summary.grades[Grade(choice)] += 1

            if reviewed.is_due(now):
                queue.append(card_id)
                summary.requeued += 1

        summary.remaining = len(queue)
        self.logger.info(
            f"Session finished: {summary.reviewed} reviewed, {summary.remaining} remaining"
        )
        return summary
