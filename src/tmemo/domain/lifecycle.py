"""
Card lifecycle state machine.

Independent of the stability/difficulty math so both can be tested alone.
"""

from .models import CardStatus, Grade

_TRANSITIONS: dict[CardStatus, tuple[CardStatus, CardStatus]] = {
    # state: (on Again, on Hard/Good/Easy)
    CardStatus.NEW: (CardStatus.LEARNING, CardStatus.REVIEW),
    CardStatus.LEARNING: (CardStatus.LEARNING, CardStatus.REVIEW),
    CardStatus.REVIEW: (CardStatus.RELEARNING, CardStatus.REVIEW),
    CardStatus.RELEARNING: (CardStatus.RELEARNING, CardStatus.REVIEW),
}


def transition(state: CardStatus, grade: Grade) -> CardStatus:
    """Return the lifecycle state after answering ``grade`` in ``state``."""
    on_again, on_success = _TRANSITIONS[state]
    return on_again if grade == Grade.AGAIN else on_success


def is_lapse(state: CardStatus, grade: Grade) -> bool:
    """An Again answer on a card that had already graduated."""
    return grade == Grade.AGAIN and state in (CardStatus.REVIEW, CardStatus.RELEARNING)
