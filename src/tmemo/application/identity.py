"""Content-derived card identity.

A card's id depends only on its own front and back text. Moving a card or
editing the prose around it keeps the id; editing the card's text makes a
new card. Normalization collapses whitespace and nothing else: case and
markdown formatting are significant.
"""

import hashlib

from tmemo.application.utils.text import collapse_whitespace
from tmemo.domain.constants import CARD_ID_HEX_LEN, CARD_ID_PREFIX, IDENTITY_SEPARATOR
from tmemo.domain.models import CardCandidate


def normalize_card_text(text: str) -> str:
    return collapse_whitespace(text)


def card_identity(front: str, back: str) -> str:
    """Return the stable id for a card with the given front and back."""
    key = normalize_card_text(front) + IDENTITY_SEPARATOR + normalize_card_text(back)
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{CARD_ID_PREFIX}{digest[:CARD_ID_HEX_LEN]}"


def candidate_identity(candidate: CardCandidate) -> str:
    return card_identity(candidate.front, candidate.back)
