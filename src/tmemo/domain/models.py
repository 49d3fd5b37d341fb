"""
Domain models for tmemo.

These are pure data structures with no I/O or external dependencies.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any


class Grade(IntEnum):
    """Operator answer for a review (1=Again, 2=Hard, 3=Good, 4=Easy)."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


class SessionAction(str, Enum):
    """Operator answers that are not grades and leave the memory state untouched."""

    BURY = "bury"


class CardStatus(str, Enum):
    """Lifecycle state of a card."""

    NEW = "New"
    LEARNING = "Learning"
    REVIEW = "Review"
    RELEARNING = "Relearning"


class CardSyntax(str, Enum):
    """How a card was written in its source file."""

    INLINE = "inline"
    BLOCK = "block"


@dataclass(frozen=True)
class SourceSpan:
    """1-based, inclusive line range of a card in its source file."""

    start_line: int
    end_line: int

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"line {self.start_line}"
        return f"lines {self.start_line}-{self.end_line}"


@dataclass(frozen=True)
class CardCandidate:
    """
    A flashcard found in a markdown file.

    Attributes:
        source_path: File the card was read from.
        front: Question text.
        back: Answer text.
        span: Where the card sits in the file (diagnostics only).
        syntax: Inline (``front :: back``) or block (``:::`` delimited).
        heading: Heading breadcrumb, e.g. ``notes.md > Chapter``.
        cloze_index: Position of the cloze this card was expanded from, if any.
    """

    source_path: str
    front: str
    back: str
    span: SourceSpan
    syntax: CardSyntax = CardSyntax.INLINE
    heading: str = ""
    cloze_index: int | None = None


@dataclass(frozen=True)
class ReviewLogEntry:
    """A single answer given for a card."""

    grade: Grade
    reviewed_at: datetime


@dataclass(frozen=True)
class CardState:
    """
    Persisted scheduling state of one card.

    Attributes:
        id: Content-derived identity key.
        front: Question text as last extracted.
        back: Answer text as last extracted.
        source: Path of the file the card was last seen in.
        syntax: Card syntax in the source file.
        state: Lifecycle state.
        stability: Days until recall probability decays to 90%. None while New.
        difficulty: Intrinsic difficulty within the configured bounds. None while New.
        due: Next scheduled review. None while New.
        last_review: Most recent review, None if never reviewed.
        reps: Number of successful (non-Again) reviews.
        lapses: Number of Again answers given in Review or Relearning.
        elapsed_days: Whole days since last_review at the latest review.
        orphaned: True when the source text can no longer be found.
        buried: Set aside by the operator; never due until unburied.
        history: Review log, oldest first.
        extras: Unknown fields read from disk, written back untouched.
    """

    id: str
    front: str
    back: str
    source: str | None = None
    syntax: CardSyntax = CardSyntax.INLINE
    state: CardStatus = CardStatus.NEW
    stability: float | None = None
    difficulty: float | None = None
    due: datetime | None = None
    last_review: datetime | None = None
    reps: int = 0
    lapses: int = 0
    elapsed_days: int = 0
    orphaned: bool = False
    buried: bool = False
    history: tuple[ReviewLogEntry, ...] = ()
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def is_new(self) -> bool:
        return self.state is CardStatus.NEW

    def is_due(self, now: datetime) -> bool:
        """New cards are always eligible; orphans and buried cards never are."""
        if self.orphaned or self.buried:
            return False
        if self.is_new:
            return True
        return self.due is not None and self.due <= now


class Deck:
    """
    Ordered mapping of card identity to CardState.

    Insertion order is kept so that the persisted file diffs cleanly.
    """

    def __init__(
        self,
        cards: Iterable[CardState] = (),
        format_version: int = 1,
        extras: dict[str, Any] | None = None,
    ):
        self._cards: dict[str, CardState] = {}
        self.format_version = format_version
        self.extras: dict[str, Any] = dict(extras or {})
        for card in cards:
            self.add(card)

    def add(self, card: CardState) -> None:
        if card.id in self._cards:
            raise ValueError(f"duplicate card id {card.id!r}")
        self._cards[card.id] = card

    def put(self, card: CardState) -> None:
        """Insert or replace a card, keeping its original position."""
        self._cards[card.id] = card

    def get(self, card_id: str) -> CardState | None:
        return self._cards.get(card_id)

    def remove(self, card_id: str) -> CardState:
        return self._cards.pop(card_id)

    def copy(self) -> "Deck":
        return Deck(self._cards.values(), self.format_version, self.extras)

    def active(self) -> list[CardState]:
        return [c for c in self._cards.values() if not c.orphaned]

    def orphans(self) -> list[CardState]:
        return [c for c in self._cards.values() if c.orphaned]

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._cards

    def __getitem__(self, card_id: str) -> CardState:
        return self._cards[card_id]

    def __iter__(self) -> Iterator[CardState]:
        return iter(list(self._cards.values()))

    def __len__(self) -> int:
        return len(self._cards)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Deck):
            return NotImplemented
        return (
            list(self._cards.items()) == list(other._cards.items())
            and self.format_version == other.format_version
            and self.extras == other.extras
        )

    def __repr__(self) -> str:
        return f"Deck(cards={len(self._cards)}, orphans={len(self.orphans())})"
