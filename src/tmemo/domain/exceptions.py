"""Errors and diagnostics raised or reported by tmemo."""

from dataclasses import dataclass
from pathlib import Path

from .models import SourceSpan


class TmemoError(Exception):
    """Base class for errors that should stop the current command."""


class PersistenceError(TmemoError):
    """The deck file exists but cannot be read, parsed or written."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class DeckNotInitializedError(TmemoError):
    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"No deck found at {self.path}. Run 'tmemo init' first.")


class DeckAlreadyInitializedError(TmemoError):
    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"A deck has already been initialized at {self.path}.")


class ConfigurationError(TmemoError):
    """Settings from the environment, the config file or the command line are invalid."""


class DomainRangeViolation(TmemoError):
    """A card state handed to the scheduler breaks its invariants."""

    def __init__(self, card_id: str, message: str):
        self.card_id = card_id
        super().__init__(f"card {card_id}: {message}")


@dataclass(frozen=True)
class ParseWarning:
    """Malformed card syntax; the card was skipped."""

    source_path: str
    span: SourceSpan
    message: str

    def __str__(self) -> str:
        return f"{self.source_path} ({self.span}): {self.message}"


@dataclass(frozen=True)
class IdentityCollision:
    """Two candidates normalized to the same identity; the first one was kept."""

    card_id: str
    kept_path: str
    kept_span: SourceSpan
    dropped_path: str
    dropped_span: SourceSpan

    def __str__(self) -> str:
        return (
            f"duplicate card {self.card_id}: {self.dropped_path} ({self.dropped_span}) "
            f"repeats {self.kept_path} ({self.kept_span}); keeping the first"
        )
