import pytest

from tmemo.domain.lifecycle import is_lapse, transition
from tmemo.domain.models import CardStatus, Grade

NEW, LEARNING, REVIEW, RELEARNING = (
    CardStatus.NEW,
    CardStatus.LEARNING,
    CardStatus.REVIEW,
    CardStatus.RELEARNING,
)


@pytest.mark.parametrize(
    "state, grade, expected",
    [
        (NEW, Grade.AGAIN, LEARNING),
        (NEW, Grade.HARD, REVIEW),
        (NEW, Grade.GOOD, REVIEW),
        (NEW, Grade.EASY, REVIEW),
        (LEARNING, Grade.AGAIN, LEARNING),
        (LEARNING, Grade.GOOD, REVIEW),
        (REVIEW, Grade.AGAIN, RELEARNING),
        (REVIEW, Grade.HARD, REVIEW),
        (RELEARNING, Grade.AGAIN, RELEARNING),
        (RELEARNING, Grade.EASY, REVIEW),
    ],
)
def test_transition(state, grade, expected):
    assert transition(state, grade) is expected


def test_new_is_never_reentered():
    for state in CardStatus:
        for grade in Grade:
            assert transition(state, grade) is not NEW


@pytest.mark.parametrize(
    "state, lapse",
    [(NEW, False), (LEARNING, False), (REVIEW, True), (RELEARNING, True)],
)
def test_again_is_a_lapse_only_after_graduation(state, lapse):
    assert is_lapse(state, Grade.AGAIN) is lapse
    assert is_lapse(state, Grade.GOOD) is False
