"""
Spreading reviews over days.

Both functions only move due dates; stability, difficulty and history are
left alone. Days are calendar days in the time zone of the reference time.
"""

import dataclasses
import logging
import math
from collections import Counter
from datetime import date, datetime, timedelta

from tmemo.domain.models import CardState, Deck

logger = logging.getLogger(__name__)


def _day(value: datetime, now: datetime) -> date:
    return value.astimezone(now.tzinfo).date()


def _scheduled(deck: Deck) -> list[CardState]:
    return [c for c in deck if not c.is_new and not c.orphaned and not c.buried and c.due]


def smoothing_offset(deck: Deck, card: CardState, now: datetime) -> int:
    """
    Days to move ``card`` so it does not sit on a local peak of the workload.

    Returns -1 or 1 when a neighbouring day has fewer other cards due than
    the card's own day, preferring the earlier day on a tie, and 0 otherwise.
    The card never moves to today or earlier.
    """
    day = _day(card.due, now)
    load = Counter(_day(c.due, now) for c in _scheduled(deck) if c.id != card.id)
    today = load[day]
    before = load[day - timedelta(days=1)]
    after = load[day + timedelta(days=1)]

    earlier_allowed = day - timedelta(days=1) > _day(now, now)
    if earlier_allowed and today > before and after >= before:
        return -1
    if today > after:
        return 1
    return 0


def reschedule(
    deck: Deck, now: datetime, days: int, max_per_day: int = 1
) -> tuple[Deck, list[str]]:
    """
    Spread the cards due within the next ``days`` days, overdue ones
    included, so that no day holds more than ``max_per_day`` of them.

    The cap is raised to the average load when it could not otherwise be met.
    Each card moves as little as possible, earlier days first on a tie, and
    cards closest to their original day are placed first.

    Returns:
        A rescheduled copy of ``deck`` and the ids of the cards that moved,
        in deck order.
    """
    if days < 1:
        raise ValueError("days must be at least 1")
    if max_per_day < 1:
        raise ValueError("max_per_day must be at least 1")

    start = _day(now, now)
    pending = sorted(
        (c for c in _scheduled(deck) if (_day(c.due, now) - start).days < days),
        key=lambda c: (c.due, c.id),
    )
    cap = max(max_per_day, math.ceil(len(pending) / days))
    counts = [0] * days
    result = deck.copy()
    moved = []

    distance = 0
    while pending:
        unplaced = []
        for card in pending:
            index = (_day(card.due, now) - start).days
            for candidate in dict.fromkeys((index - distance, index + distance)):
                if 0 <= candidate < days and counts[candidate] < cap:
                    counts[candidate] += 1
                    if candidate != index:
                        due = card.due + timedelta(days=candidate - index)
                        result.put(dataclasses.replace(card, due=due))
                        moved.append(card.id)
                    break
            else:
                unplaced.append(card)
        pending = unplaced
        distance += 1

    logger.info(f"Rescheduled {len(moved)} cards over {days} days, at most {cap} per day")
    order = {card.id: i for i, card in enumerate(deck)}
    return result, sorted(moved, key=order.__getitem__)
