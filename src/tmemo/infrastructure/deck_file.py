"""
JSON deck file.

Layout on disk::

    {
      "format_version": 1,
      "cards": [ {"id": "c_...", "front": "...", ...}, ... ]
    }

Fields this version does not know about, at the top level or on a card, are
kept on load and written back unchanged on save.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tmemo.domain.constants import DECK_FORMAT_VERSION
from tmemo.domain.exceptions import (
    DeckAlreadyInitializedError,
    DeckNotInitializedError,
    PersistenceError,
)
from tmemo.domain.interfaces import DeckRepository
from tmemo.domain.models import (
    CardState,
    CardStatus,
    CardSyntax,
    Deck,
    Grade,
    ReviewLogEntry,
)

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReviewLogRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    grade: int = Field(ge=1, le=4)
    reviewed_at: datetime

    @field_validator("reviewed_at")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class CardRecord(BaseModel):
    """One card as stored in the deck file."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    front: str
    back: str
    source: str | None = None
    syntax: CardSyntax = CardSyntax.INLINE
    state: CardStatus = CardStatus.NEW
    stability: float | None = None
    difficulty: float | None = None
    due: datetime | None = None
    last_review: datetime | None = None
    reps: int = Field(default=0, ge=0)
    lapses: int = Field(default=0, ge=0)
    elapsed_days: int = Field(default=0, ge=0)
    orphaned: bool = False
    buried: bool = False
    history: list[ReviewLogRecord] = Field(default_factory=list)

    @field_validator("due", "last_review")
    @classmethod
    def to_utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @classmethod
    def from_card(cls, card: CardState) -> "CardRecord":
        fields = {
            "id": card.id,
            "front": card.front,
            "back": card.back,
            "source": card.source,
            "syntax": card.syntax,
            "state": card.state,
            "stability": card.stability,
            "difficulty": card.difficulty,
            "due": card.due,
            "last_review": card.last_review,
            "reps": card.reps,
            "lapses": card.lapses,
            "elapsed_days": card.elapsed_days,
            "orphaned": card.orphaned,
            "buried": card.buried,
            "history": [
                {"grade": int(entry.grade), "reviewed_at": entry.reviewed_at}
                for entry in card.history
            ],
        }
        # Known fields win over any stale copy kept in extras.
        return cls.model_validate({**card.extras, **fields})

    def to_card(self) -> CardState:
        return CardState(
            id=self.id,
            front=self.front,
            back=self.back,
            source=self.source,
            syntax=self.syntax,
            state=self.state,
            stability=self.stability,
            difficulty=self.difficulty,
            due=self.due,
            last_review=self.last_review,
            reps=self.reps,
            lapses=self.lapses,
            elapsed_days=self.elapsed_days,
            orphaned=self.orphaned,
            buried=self.buried,
            history=tuple(
                ReviewLogEntry(grade=Grade(entry.grade), reviewed_at=entry.reviewed_at)
                for entry in self.history
            ),
            extras=dict(self.model_extra or {}),
        )


class DeckDocument(BaseModel):
    """Top-level deck file document. A missing format_version means version 1."""

    model_config = ConfigDict(extra="allow")

    format_version: int = Field(default=DECK_FORMAT_VERSION, ge=1)
    cards: list[CardRecord] = Field(default_factory=list)

    @classmethod
    def from_deck(cls, deck: Deck) -> "DeckDocument":
        return cls.model_validate(
            {
                **deck.extras,
                "format_version": deck.format_version,
                "cards": [CardRecord.from_card(card) for card in deck],
            }
        )

    def to_deck(self) -> Deck:
        return Deck(
            (record.to_card() for record in self.cards),
            format_version=self.format_version,
            extras=dict(self.model_extra or {}),
        )


class JsonDeckRepository(DeckRepository):
    """
    Deck stored as ``tmemodeck.json``.

    Every save writes a complete snapshot to a temporary file next to the
    deck, fsyncs it, and renames it over the deck file, so the file on disk
    is always either the previous or the new snapshot.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)

    @property
    def temp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def exists(self) -> bool:
        return self.path.is_file()

    def initialize(self) -> Deck:
        """Create an empty deck file. Refuses to overwrite an existing one."""
        if self.path.exists():
            raise DeckAlreadyInitializedError(self.path)
        deck = Deck()
        self.save(deck)
        self.logger.info(f"Initialized empty deck at {self.path}")
        return deck

    def load(self) -> Deck:
        if not self.path.exists():
            raise DeckNotInitializedError(self.path)

        try:
            raw = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(self.path, f"cannot read deck file: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(self.path, f"invalid JSON: {e}") from e

        try:
            document = DeckDocument.model_validate(data)
        except ValidationError as e:
            raise PersistenceError(self.path, f"invalid deck document: {e}") from e

        if document.format_version > DECK_FORMAT_VERSION:
            self.logger.warning(
                f"{self.path} has format version {document.format_version}, newer than "
                f"{DECK_FORMAT_VERSION}; unknown fields will be preserved"
            )

        try:
            deck = document.to_deck()
        except ValueError as e:
            raise PersistenceError(self.path, str(e)) from e

        self.logger.debug(f"Loaded {len(deck)} cards from {self.path}")
        return deck

    def save(self, deck: Deck) -> None:
        payload = self._serialize(deck)
        tmp = self.temp_path
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise PersistenceError(self.path, f"cannot write deck file: {e}") from e
        self.logger.debug(f"Saved {len(deck)} cards to {self.path}")

    def _serialize(self, deck: Deck) -> str:
        document: dict[str, Any] = DeckDocument.from_deck(deck).model_dump(mode="json")
        return json.dumps(document, indent=2, ensure_ascii=False) + "\n"
