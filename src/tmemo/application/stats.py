"""
Deck statistics.

Pure computation over a Deck: no I/O, and the deck passed in is never
modified.
"""

import dataclasses
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from tmemo.application.scheduler import FsrsScheduler
from tmemo.domain.constants import SECONDS_PER_DAY
from tmemo.domain.models import CardState, CardStatus, Deck, Grade


@dataclass
class DeckSummary:
    """
    Snapshot of a deck at one point in time.

    Attributes:
        total: Every card, orphans included.
        by_state: Active cards per lifecycle state.
        due: Active scheduled cards due now (New cards not included).
        new: Active cards never reviewed.
        orphaned: Cards whose source text is gone.
        buried: Active cards set aside during review.
        reviews: Logged answers across all cards.
        mean_retrievability: Average recall probability of reviewed cards now.
    """

    total: int = 0
    by_state: dict[CardStatus, int] = field(default_factory=dict)
    due: int = 0
    new: int = 0
    orphaned: int = 0
    buried: int = 0
    reviews: int = 0
    mean_retrievability: float | None = None


@dataclass
class AccuracyBucket:
    """Correct answers out of all counted answers. ``days_ago`` is None for the total."""

    days_ago: int | None
    correct: int = 0
    total: int = 0

    @property
    def rate(self) -> float | None:
        if self.total == 0:
            return None
        return self.correct / self.total


def summarize(deck: Deck, scheduler: FsrsScheduler, now: datetime) -> DeckSummary:
    """
    Raises:
        DomainRangeViolation: A reviewed card has unusable scheduling fields.
    """
    summary = DeckSummary(total=len(deck))
    summary.by_state = {status: 0 for status in CardStatus}
    retrievabilities = []

    for card in deck:
        summary.reviews += len(card.history)
        if card.orphaned:
            summary.orphaned += 1
            continue

        summary.by_state[card.state] += 1
        summary.buried += int(card.buried)
        if card.is_new:
            summary.new += 1
            continue

        scheduler.check_card(card, now)
        if card.is_due(now):
            summary.due += 1
        elapsed = (now - card.last_review).total_seconds() / SECONDS_PER_DAY
        retrievabilities.append(scheduler.retrievability(elapsed, card.stability))

    if retrievabilities:
        summary.mean_retrievability = sum(retrievabilities) / len(retrievabilities)
    return summary


def accuracy(deck: Deck, now: datetime) -> tuple[AccuracyBucket, list[AccuracyBucket]]:
    """
    Share of non-Again answers in the review log.

    Only the first answer a card received on a calendar day counts; the
    retries after an Again that same day are ignored. Returns the overall
    bucket and one bucket per day with answers, most recent first.
    """
    overall = AccuracyBucket(days_ago=None)
    by_day: dict[int, AccuracyBucket] = {}
    today = now.date()

    for card in deck:
        seen_days = set()
        for entry in card.history:
            day = entry.reviewed_at.astimezone(now.tzinfo).date()
            if day in seen_days:
                continue
            seen_days.add(day)

            days_ago = (today - day).days
            bucket = by_day.setdefault(days_ago, AccuracyBucket(days_ago=days_ago))
            correct = entry.grade != Grade.AGAIN
            for b in (overall, bucket):
                b.total += 1
                b.correct += int(correct)

    return overall, [by_day[d] for d in sorted(by_day)]


def find_cards(deck: Deck, query: str) -> list[CardState]:
    """
    Cards whose front, back or source contains every word of ``query``.

    Matching is case-sensitive. An empty query matches every card.
    """
    words = query.split()
    matches = []
    for card in deck:
        haystack = (card.front, card.back, card.source or "")
        if all(any(word in text for text in haystack) for word in words):
            matches.append(card)
    return matches


def forecast(
    deck: Deck,
    scheduler: FsrsScheduler,
    now: datetime,
    days: int,
    seed: int = 0,
) -> list[int]:
    """
    Simulate ``days`` days of reviews and return the number of cards due on
    each day.

    Each due card is answered Good with probability equal to its current
    retrievability and Again otherwise (New cards use the target retention).
    A card is reviewed at most once per simulated day. The same seed always
    gives the same forecast.

    Raises:
        DomainRangeViolation: A stored card cannot be scheduled.
    """
    if days < 0:
        raise ValueError("days cannot be negative")

    rng = random.Random(seed)
    cards = {card.id: card for card in deck if not card.orphaned}
    for card in cards.values():
        scheduler.check_card(card, now)
    counts = []

    for i in range(days):
        day = now + timedelta(days=i)
        due_ids = sorted(
            (card_id for card_id, card in cards.items() if card.is_due(day)),
            key=lambda card_id: (cards[card_id].due or now, card_id),
        )
        counts.append(len(due_ids))

        for card_id in due_ids:
            card = cards[card_id]
            if card.is_new:
                recall = scheduler.params.target_retention
            else:
                elapsed = max((day - card.last_review).days, 1)
                recall = scheduler.retrievability(elapsed, card.stability)
            grade = Grade.GOOD if rng.random() < recall else Grade.AGAIN
            reviewed = scheduler.review(card, grade, day)
            if grade == Grade.AGAIN:
                # Retried the next simulated day rather than the same one.
                reviewed = dataclasses.replace(reviewed, due=day + timedelta(days=1))
            cards[card_id] = reviewed

    return counts


def grade_counts(deck: Deck) -> Counter:
    """Number of logged answers per grade."""
    counts: Counter = Counter({grade: 0 for grade in Grade})
    for card in deck:
        for entry in card.history:
            counts[entry.grade] += 1
    return counts
