import dataclasses
import json
import logging
from datetime import timezone
from unittest.mock import patch

import pytest

from tmemo.domain.exceptions import (
    DeckAlreadyInitializedError,
    DeckNotInitializedError,
    PersistenceError,
)
from tmemo.domain.models import CardStatus, Deck, Grade, ReviewLogEntry
from tmemo.infrastructure.deck_file import JsonDeckRepository


@pytest.fixture
def deck_path(tmp_path):
    return tmp_path / "tmemodeck.json"


@pytest.fixture
def repo(deck_path):
    return JsonDeckRepository(deck_path)


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")


CARD = {"id": "c_1", "front": "Q", "back": "A"}


# ---------- Initialization ----------


def test_load_without_deck(repo):
    assert not repo.exists()
    with pytest.raises(DeckNotInitializedError, match="tmemo init"):
        repo.load()


def test_initialize_creates_empty_deck(repo, deck_path):
    repo.initialize()

    assert repo.exists()
    assert json.loads(deck_path.read_text()) == {"format_version": 1, "cards": []}


def test_initialize_refuses_existing_deck(repo):
    repo.initialize()
    with pytest.raises(DeckAlreadyInitializedError):
        repo.initialize()


# ---------- Round trip ----------


def test_round_trip(repo, small_deck, review_card, now):
    history = (ReviewLogEntry(Grade.AGAIN, now), ReviewLogEntry(Grade.GOOD, now))
    small_deck.put(dataclasses.replace(review_card, history=history))

    repo.save(small_deck)
    loaded = repo.load()

    assert loaded == small_deck
    assert loaded["c_review"].state is CardStatus.REVIEW
    assert loaded["c_review"].last_review.tzinfo is not None


def test_saved_file_is_readable_json(repo, deck_path, review_card):
    repo.save(Deck([review_card]))
    data = json.loads(deck_path.read_text())

    assert data["format_version"] == 1
    card = data["cards"][0]
    assert card["id"] == "c_review"
    assert card["state"] == "Review"
    assert card["stability"] == 10.0
    assert card["due"].startswith("2024-03-01T12:00:00")


def test_unknown_fields_are_preserved(repo, deck_path):
    _write(
        deck_path,
        {
            "format_version": 1,
            "owner": "me",
            "cards": [{**CARD, "custom": [1, 2], "color": "red"}],
        },
    )

    deck = repo.load()
    assert deck["c_1"].extras == {"custom": [1, 2], "color": "red"}
    assert deck.extras == {"owner": "me"}

    repo.save(deck)
    data = json.loads(deck_path.read_text())
    assert data["owner"] == "me"
    assert data["cards"][0]["custom"] == [1, 2]
    assert data["cards"][0]["color"] == "red"


def test_buried_flag_round_trips(repo, deck_path, review_card):
    repo.save(Deck([dataclasses.replace(review_card, buried=True)]))

    assert json.loads(deck_path.read_text())["cards"][0]["buried"] is True
    assert repo.load()["c_review"].buried


def test_missing_format_version_is_version_one(repo, deck_path):
    _write(deck_path, {"cards": [CARD]})
    deck = repo.load()
    assert deck.format_version == 1
    assert deck["c_1"].state is CardStatus.NEW


def test_newer_format_version_loads_with_warning(repo, deck_path, caplog):
    _write(deck_path, {"format_version": 2, "cards": [CARD]})
    with caplog.at_level(logging.WARNING):
        deck = repo.load()

    assert len(deck) == 1
    assert "newer" in caplog.text


def test_naive_timestamps_are_read_as_utc(repo, deck_path):
    card = {
        **CARD,
        "state": "Review",
        "stability": 3.0,
        "difficulty": 5.0,
        "due": "2024-03-05T12:00:00",
        "last_review": "2024-03-01T12:00:00",
        "reps": 1,
    }
    _write(deck_path, {"format_version": 1, "cards": [card]})

    loaded = repo.load()["c_1"]
    assert loaded.due.tzinfo == timezone.utc
    assert loaded.last_review.hour == 12


# ---------- Failures ----------


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[]",
        '{"cards": {"id": "c_1"}}',
        '{"cards": [{"id": "c_1", "front": "Q"}]}',
        '{"cards": [{"id": "c_1", "front": "Q", "back": "A", "reps": -1}]}',
        '{"cards": [{"id": "c_1", "front": "Q", "back": "A", "state": "Done"}]}',
    ],
)
def test_corrupt_deck_raises(repo, deck_path, content):
    deck_path.write_text(content, encoding="utf-8")
    with pytest.raises(PersistenceError):
        repo.load()


def test_duplicate_ids_raise(repo, deck_path):
    _write(deck_path, {"format_version": 1, "cards": [CARD, CARD]})
    with pytest.raises(PersistenceError, match="duplicate"):
        repo.load()


def test_save_leaves_no_temp_file(repo, small_deck):
    repo.save(small_deck)
    assert not repo.temp_path.exists()


def test_failed_save_keeps_previous_snapshot(repo, deck_path, small_deck):
    repo.save(Deck())
    before = deck_path.read_text()

    with patch("tmemo.infrastructure.deck_file.os.replace", side_effect=OSError("boom")):
        with pytest.raises(PersistenceError, match="boom"):
            repo.save(small_deck)

    assert deck_path.read_text() == before
    assert not repo.temp_path.exists()
