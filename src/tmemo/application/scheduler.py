"""
FSRS v4 scheduler.

Pure computation: no I/O and no state beyond the parameter set. Every call to
``review`` maps (card, grade, now) to a new card deterministically.

Memory model:
    R(t, S) = (1 + FACTOR * t / S) ** DECAY
    I(S)    = S / FACTOR * (r ** (1 / DECAY) - 1)

where FACTOR is chosen so that R(S, S) == 0.9, i.e. stability is the number
of days until recall probability drops to 90%.
"""

import dataclasses
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from tmemo.domain.constants import (
    DEFAULT_TARGET_RETENTION,
    DIFFICULTY_MAX,
    DIFFICULTY_MIN,
    FSRS_DECAY,
    FSRS_DEFAULT_WEIGHTS,
    FSRS_FACTOR,
    FSRS_WEIGHT_COUNT,
    LAPSE_STABILITY_CAP,
    MAXIMUM_INTERVAL_DAYS,
    SECONDS_PER_DAY,
    STABILITY_MIN,
)
from tmemo.domain.exceptions import DomainRangeViolation
from tmemo.domain.lifecycle import is_lapse, transition
from tmemo.domain.models import CardState, Grade


@dataclass(frozen=True)
class FsrsParameters:
    """
    Tunable inputs of the scheduler.

    Attributes:
        weights: The 17 FSRS v4 model weights.
        target_retention: Recall probability at which a card becomes due.
        difficulty_min: Lower difficulty bound.
        difficulty_max: Upper difficulty bound.
        maximum_interval: Longest interval ever scheduled, in days.
    """

    weights: tuple[float, ...] = FSRS_DEFAULT_WEIGHTS
    target_retention: float = DEFAULT_TARGET_RETENTION
    difficulty_min: float = DIFFICULTY_MIN
    difficulty_max: float = DIFFICULTY_MAX
    maximum_interval: int = MAXIMUM_INTERVAL_DAYS

    def __post_init__(self):
        object.__setattr__(self, "weights", tuple(float(w) for w in self.weights))
        if len(self.weights) != FSRS_WEIGHT_COUNT:
            raise ValueError(
                f"expected {FSRS_WEIGHT_COUNT} FSRS weights, got {len(self.weights)}"
            )
        if not all(math.isfinite(w) for w in self.weights):
            raise ValueError("FSRS weights must be finite numbers")
        if not 0.0 < self.target_retention < 1.0:
            raise ValueError("target_retention must be between 0 and 1 (exclusive)")
        if not 0.0 < self.difficulty_min < self.difficulty_max:
            raise ValueError("difficulty bounds must satisfy 0 < min < max")
        if self.maximum_interval < 1:
            raise ValueError("maximum_interval must be at least 1 day")


class FsrsScheduler:
    """
    Computes the next memory state and due date of a card.

    Stateless apart from its parameters.
    """

    def __init__(self, params: FsrsParameters | None = None):
        self.params = params or FsrsParameters()
        self.w = self.params.weights

    # ---------- Forgetting curve ----------

    def retrievability(self, elapsed_days: float, stability: float) -> float:
        """Probability of recall after ``elapsed_days`` at ``stability``."""
        if stability <= 0:
            raise ValueError("stability must be positive")
        t = max(elapsed_days, 0.0)
        return (1.0 + FSRS_FACTOR * t / stability) ** FSRS_DECAY

    def next_interval(self, stability: float) -> int:
        """Whole days until retrievability decays to the target retention."""
        r = self.params.target_retention
        days = stability / FSRS_FACTOR * (r ** (1.0 / FSRS_DECAY) - 1.0)
        return int(min(max(round(days), 1), self.params.maximum_interval))

    # ---------- Review ----------

    def review(self, card: CardState, grade: Grade, now: datetime) -> CardState:
        """
        Apply one answer to ``card`` and return the updated card.

        Raises:
            DomainRangeViolation: ``card`` or ``now`` breaks the card invariants.
        """
        grade = self._check_grade(card, grade)
        self.check_card(card, now)

        if card.is_new:
            elapsed = 0
            stability = max(self._initial_stability(grade), STABILITY_MIN)
            difficulty = self._initial_difficulty(grade)
        else:
            elapsed = _elapsed_days(card.last_review, now)
            # Same-day reviews count as one day, as in the FSRS reference.
            r = self.retrievability(max(elapsed, 1), card.stability)
            if grade == Grade.AGAIN:
                stability = self._forget_stability(card.difficulty, card.stability, r)
            else:
                stability = max(
                    self._success_stability(card.difficulty, card.stability, r, grade),
                    STABILITY_MIN,
                )
            difficulty = self._next_difficulty(card.difficulty, grade)

        difficulty = self._clamp_difficulty(difficulty)

        if grade == Grade.AGAIN:
            due = now
        else:
            due = now + timedelta(days=self.next_interval(stability))

        return dataclasses.replace(
            card,
            state=transition(card.state, grade),
            stability=stability,
            difficulty=difficulty,
            due=due,
            last_review=now,
            reps=card.reps + (0 if grade == Grade.AGAIN else 1),
            lapses=card.lapses + (1 if is_lapse(card.state, grade) else 0),
            elapsed_days=elapsed,
        )

    def preview(self, card: CardState, now: datetime) -> dict[Grade, int]:
        """Interval in days each grade would schedule, without changing ``card``."""
        result = {}
        for grade in Grade:
            reviewed = self.review(card, grade, now)
            result[grade] = (reviewed.due - now).days
        return result

    # ---------- Model ----------

    def _initial_stability(self, grade: Grade) -> float:
        return self.w[grade - 1]

    def _initial_difficulty(self, grade: Grade) -> float:
        return self.w[4] - (grade - 3) * self.w[5]

    def _next_difficulty(self, difficulty: float, grade: Grade) -> float:
        d = difficulty - self.w[6] * (grade - 3)
        # Mean reversion towards the initial difficulty of a Good answer.
        return self.w[7] * self.w[4] + (1.0 - self.w[7]) * d

    def _success_stability(
        self, difficulty: float, stability: float, r: float, grade: Grade
    ) -> float:
        hard_penalty = self.w[15] if grade == Grade.HARD else 1.0
        easy_bonus = self.w[16] if grade == Grade.EASY else 1.0
        growth = (
            math.exp(self.w[8])
            * (11.0 - difficulty)
            * stability ** (-self.w[9])
            * (math.exp(self.w[10] * (1.0 - r)) - 1.0)
            * hard_penalty
            * easy_bonus
        )
        return stability * (growth + 1.0)

    def _forget_stability(self, difficulty: float, stability: float, r: float) -> float:
        post_lapse = (
            self.w[11]
            * difficulty ** (-self.w[12])
            * ((stability + 1.0) ** self.w[13] - 1.0)
            * math.exp(self.w[14] * (1.0 - r))
        )
        # Always strictly below S, floor included.
        return min(max(post_lapse, STABILITY_MIN), stability * LAPSE_STABILITY_CAP)

    def _clamp_difficulty(self, difficulty: float) -> float:
        return min(max(difficulty, self.params.difficulty_min), self.params.difficulty_max)

    # ---------- Invariants ----------

    def _check_grade(self, card: CardState, grade: Grade) -> Grade:
        try:
            return Grade(grade)
        except ValueError:
            raise DomainRangeViolation(card.id, f"invalid grade {grade!r}") from None

    def check_card(self, card: CardState, now: datetime) -> None:
        """
        Raises:
            DomainRangeViolation: ``card`` cannot be scheduled at ``now``.
        """
        if now.tzinfo is None:
            raise DomainRangeViolation(card.id, "review time must be timezone-aware")
        if card.reps < 0 or card.lapses < 0:
            raise DomainRangeViolation(card.id, "negative review counters")

        if card.is_new:
            if card.reps or card.last_review is not None:
                raise DomainRangeViolation(card.id, "New card already has review history")
            return

        if card.last_review is None:
            raise DomainRangeViolation(card.id, f"{card.state.value} card has no last review")
        if card.last_review.tzinfo is None:
            raise DomainRangeViolation(card.id, "last review time is not timezone-aware")
        s = card.stability
        if s is None or not math.isfinite(s) or s <= 0:
            raise DomainRangeViolation(card.id, f"stability out of range: {s!r}")
        d = card.difficulty
        lo, hi = self.params.difficulty_min, self.params.difficulty_max
        if d is None or not math.isfinite(d) or not lo <= d <= hi:
            raise DomainRangeViolation(card.id, f"difficulty out of range [{lo}, {hi}]: {d!r}")


def _elapsed_days(last_review: datetime, now: datetime) -> int:
    seconds = (now - last_review).total_seconds()
    return max(int(seconds // SECONDS_PER_DAY), 0)
