# Domain Package
from .models import (
    CardCandidate,
    CardState,
    CardStatus,
    CardSyntax,
    Deck,
    Grade,
    ReviewLogEntry,
    SessionAction,
    SourceSpan,
)

__all__ = [
    "CardCandidate",
    "CardState",
    "CardStatus",
    "CardSyntax",
    "Deck",
    "Grade",
    "ReviewLogEntry",
    "SessionAction",
    "SourceSpan",
]
