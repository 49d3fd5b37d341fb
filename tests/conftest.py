from datetime import datetime, timezone

import pytest

from tmemo.application.scheduler import FsrsScheduler
from tmemo.domain.models import CardState, CardStatus, Deck


@pytest.fixture
def mock_vault(tmp_path):
    """Creates a temporary directory holding markdown notes."""
    d = tmp_path / "MyVault"
    d.mkdir()
    return d


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config files
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def now():
    return datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler():
    return FsrsScheduler()


@pytest.fixture
def review_card(now):
    """A card in Review, last seen 10 days ago with 10 days of stability."""
    return CardState(
        id="c_review",
        front="Capital of France",
        back="Paris",
        source="geo.md",
        state=CardStatus.REVIEW,
        stability=10.0,
        difficulty=5.0,
        due=now,
        last_review=datetime(2024, 2, 20, 12, 0, tzinfo=timezone.utc),
        reps=3,
    )


@pytest.fixture
def small_deck(review_card):
    return Deck(
        [
            review_card,
            CardState(id="c_new1", front="2 + 2", back="4", source="math.md"),
            CardState(id="c_new2", front="3 * 3", back="9", source="math.md"),
        ]
    )
