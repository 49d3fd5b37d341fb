"""
Deck reconciliation.

Merges the cards found by a vault scan into the persisted deck:

1. Cards present in both keep their scheduling state untouched.
2. Cards only in the scan are added as New.
3. Cards only in the deck are marked orphaned, never deleted.
4. Two scanned cards with the same identity: the first one wins.
"""

import dataclasses
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from tmemo.application.identity import candidate_identity
from tmemo.domain.exceptions import IdentityCollision
from tmemo.domain.models import CardCandidate, CardState, Deck

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of merging a scan into a deck."""

    deck: Deck
    added: list[str] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)
    restored: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    collisions: list[IdentityCollision] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.orphaned or self.restored or self.updated)


def reconcile(deck: Deck, candidates: Iterable[CardCandidate]) -> ReconcileResult:
    """
    Merge ``candidates`` into ``deck`` and return the next deck.

    The input deck is left untouched. Candidates must be in file-then-position
    order for the collision tie-break to be deterministic.
    """
    found: dict[str, CardCandidate] = {}
    collisions: list[IdentityCollision] = []

    for candidate in candidates:
        card_id = candidate_identity(candidate)
        first = found.get(card_id)
        if first is None:
            found[card_id] = candidate
            continue

        collision = IdentityCollision(
            card_id=card_id,
            kept_path=first.source_path,
            kept_span=first.span,
            dropped_path=candidate.source_path,
            dropped_span=candidate.span,
        )
        logger.warning(str(collision))
        collisions.append(collision)

    result = ReconcileResult(deck=Deck(format_version=deck.format_version, extras=deck.extras))
    result.collisions = collisions

    for card in deck:
        candidate = found.get(card.id)
        if candidate is None:
            if not card.orphaned:
                card = dataclasses.replace(card, orphaned=True)
                result.orphaned.append(card.id)
                logger.info(f"[reconcile] Orphaned {card.id} (last seen in {card.source})")
            result.deck.add(card)
            continue

        refreshed = _refresh_location(card, candidate)
        if card.orphaned:
            result.restored.append(card.id)
            logger.info(f"[reconcile] Restored {card.id} from {candidate.source_path}")
        elif refreshed != card:
            result.updated.append(card.id)
        result.deck.add(refreshed)

    for card_id, candidate in found.items():
        if card_id in deck:
            continue
        result.deck.add(
            CardState(
                id=card_id,
                front=candidate.front,
                back=candidate.back,
                source=candidate.source_path,
                syntax=candidate.syntax,
            )
        )
        result.added.append(card_id)

    logger.info(
        f"Reconciled: {len(result.added)} added, {len(result.orphaned)} orphaned, "
        f"{len(result.restored)} restored, {len(result.collisions)} duplicates"
    )
    return result


def _refresh_location(card: CardState, candidate: CardCandidate) -> CardState:
    """Update text and location; scheduling fields are never touched."""
    changes = {}
    if card.orphaned:
        changes["orphaned"] = False
    if card.source != candidate.source_path:
        changes["source"] = candidate.source_path
    if card.front != candidate.front:
        changes["front"] = candidate.front
    if card.back != candidate.back:
        changes["back"] = candidate.back
    if card.syntax != candidate.syntax:
        changes["syntax"] = candidate.syntax
    return dataclasses.replace(card, **changes) if changes else card
