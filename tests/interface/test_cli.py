"""Tests for CLI commands: init, update, review, find, stats, orphans and config."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from tmemo.domain.models import CardStatus
from tmemo.infrastructure.deck_file import JsonDeckRepository
from tmemo.interface.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(mock_home, monkeypatch):
    for name in (
        "TMEMO_ROOT",
        "TMEMO_NEW_LIMIT",
        "TMEMO_DECK_FILE",
        "TMEMO_TARGET_RETENTION",
        "TMEMO_SMOOTH_LOAD",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def vault(mock_vault):
    (mock_vault / "geo.md").write_text("# Geography\nCapital of France :: Paris\n")
    (mock_vault / "math.md").write_text("2 + 2 :: 4\n")
    return mock_vault


def _invoke(vault, *args, **kwargs):
    return runner.invoke(app, ["--root", str(vault), *args], **kwargs)


def _load(vault):
    return JsonDeckRepository(vault / "tmemodeck.json").load()


def _write_deck(vault, cards):
    deck = {"format_version": 1, "cards": cards}
    (vault / "tmemodeck.json").write_text(json.dumps(deck))


def _review_record(card_id, due, **changes):
    return {
        "id": card_id,
        "front": f"Question {card_id}",
        "back": "Answer",
        "state": "Review",
        "stability": 10.0,
        "difficulty": 5.0,
        "due": due.isoformat(),
        "last_review": (due - timedelta(days=10)).isoformat(),
        "reps": 2,
        **changes,
    }


# --- Help ---


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "tmemo" in result.stdout
    assert "init" in result.stdout
    assert "orphans" in result.stdout


# --- Init ---


def test_init_imports_cards(vault):
    result = _invoke(vault, "init")

    assert result.exit_code == 0, result.output
    assert "2 cards" in result.stdout
    deck = _load(vault)
    assert sorted(card.front for card in deck) == ["2 + 2", "Capital of France"]
    assert {card.source for card in deck} == {"geo.md", "math.md"}


def test_init_twice_fails(vault):
    _invoke(vault, "init")
    result = _invoke(vault, "init")

    assert result.exit_code == 1
    assert "already been initialized" in result.output


def test_commands_require_init(vault):
    for command in (["update"], ["review"], ["stats"], ["find", "x"], ["orphans", "list"]):
        result = _invoke(vault, *command)
        assert result.exit_code == 1, command
        assert "tmemo init" in result.output


# --- Update ---


def test_update_marks_removed_cards_orphaned(vault):
    _invoke(vault, "init")
    (vault / "math.md").write_text("Nothing here any more.\n")

    result = _invoke(vault, "update")

    assert result.exit_code == 0, result.output
    assert "1 orphaned" in result.stdout
    deck = _load(vault)
    assert len(deck) == 2
    assert [card.front for card in deck.orphans()] == ["2 + 2"]


def test_update_reports_malformed_cards(vault):
    _invoke(vault, "init")
    (vault / "broken.md").write_text("frontonly::\n")

    result = _invoke(vault, "update")

    assert result.exit_code == 0
    assert "1 malformed cards skipped" in result.stdout
    assert "broken.md" in result.stdout


def test_corrupt_deck_exits_with_error(vault):
    (vault / "tmemodeck.json").write_text("{broken")
    result = _invoke(vault, "update")

    assert result.exit_code == 1
    assert "invalid JSON" in result.output


@pytest.mark.parametrize("command", [["stats"], ["stats", "--json"], ["forecast", "--days", "2"]])
def test_corrupt_card_exits_with_error(mock_vault, command):
    due = datetime.now(timezone.utc)
    _write_deck(mock_vault, [_review_record("c_bad", due, stability=-1.0)])

    result = _invoke(mock_vault, *command)

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "c_bad" in result.output
    assert "stability out of range" in result.output


@pytest.mark.parametrize("command", [["init"], ["update"], ["stats"], ["config", "show"]])
def test_invalid_config_exits_with_error(vault, monkeypatch, command):
    monkeypatch.setenv("TMEMO_TARGET_RETENTION", "1.5")

    result = _invoke(vault, *command)

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Invalid configuration" in result.output
    assert "target_retention" in result.output


# --- Review ---


def test_review_grades_every_due_card(vault):
    _invoke(vault, "init")

    # Enter reveals the answer, then 3 (Good), for each of the two cards.
    result = _invoke(vault, "review", input="\n3\n\n3\n")

    assert result.exit_code == 0, result.output
    assert "Reviewed 2 cards" in result.stdout
    deck = _load(vault)
    for card in deck:
        assert card.state is CardStatus.REVIEW
        assert card.reps == 1
        assert len(card.history) == 1


def test_default_command_reviews(vault):
    _invoke(vault, "init")

    result = _invoke(vault, input="\nq\n")

    assert result.exit_code == 0, result.output
    assert "Reviewed 0 cards" in result.stdout
    assert all(card.state is CardStatus.NEW for card in _load(vault))


def test_review_with_nothing_due(mock_vault):
    _invoke(mock_vault, "init")
    result = _invoke(mock_vault, "review", "--no-scan")

    assert result.exit_code == 0
    assert "Nothing to review." in result.stdout


def test_review_new_limit(vault):
    _invoke(vault, "init")
    result = _invoke(vault, "review", "--new-limit", "1", input="\n4\n")

    assert result.exit_code == 0, result.output
    assert "Reviewed 1 cards" in result.stdout
    states = sorted(card.state.value for card in _load(vault))
    assert states == ["New", "Review"]


# --- Find / Stats / Forecast ---


def test_find(vault):
    _invoke(vault, "init")
    result = _invoke(vault, "find", "France")

    assert result.exit_code == 0
    assert "Capital of France" in result.stdout
    assert "2 + 2" not in result.stdout


def test_find_no_match(vault):
    _invoke(vault, "init")
    result = _invoke(vault, "find", "Spain")
    assert "No cards found." in result.stdout


def test_stats_json(vault):
    _invoke(vault, "init")
    _invoke(vault, "review", input="\n1\n\n3\n\n3\n")

    result = _invoke(vault, "stats", "--json")

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["total"] == 2
    assert data["reviews"] == 3
    assert data["grades"]["Again"] == 1
    assert data["accuracy"] == 0.5


def test_stats_text(vault):
    _invoke(vault, "init")
    result = _invoke(vault, "stats")

    assert result.exit_code == 0
    assert "Cards: 2" in result.stdout
    assert "No reviews logged yet." in result.stdout


def test_forecast(vault):
    _invoke(vault, "init")
    result = _invoke(vault, "forecast", "--days", "5")

    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert len(lines) == 5
    assert lines[0] == "0\t2"


def test_intervals(vault):
    _invoke(vault, "init")
    card_id = next(iter(_load(vault))).id

    result = _invoke(vault, "intervals", card_id)

    assert result.exit_code == 0
    assert "Again: now" in result.stdout
    assert "Good: 4d" in result.stdout


# --- Orphans ---


def test_orphans_list_and_prune(vault):
    _invoke(vault, "init")
    (vault / "math.md").unlink()
    _invoke(vault, "update")

    listed = _invoke(vault, "orphans", "list")
    assert "2 + 2" in listed.stdout
    assert "1 orphaned cards." in listed.stdout

    pruned = _invoke(vault, "orphans", "prune", "--force")
    assert pruned.exit_code == 0
    assert "Deleted 1 orphaned cards." in pruned.stdout
    deck = _load(vault)
    assert len(deck) == 1
    assert deck.orphans() == []


def test_orphans_prune_needs_confirmation(vault):
    _invoke(vault, "init")
    (vault / "math.md").unlink()
    _invoke(vault, "update")

    result = _invoke(vault, "orphans", "prune", input="n\n")

    assert result.exit_code == 1
    assert len(_load(vault)) == 2


# --- Config ---


def test_config_show(vault):
    result = _invoke(vault, "config", "show")

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["root"] == str(vault.resolve())
    assert data["deck_path"] == str(vault.resolve() / "tmemodeck.json")
    assert data["target_retention"] == 0.9


@patch("tmemo.interface.cli.resolve_config")
def test_verbose_flag_is_passed_to_config(mock_resolve_config, vault):
    mock_resolve_config.side_effect = RuntimeError("stop")
    runner.invoke(app, ["-vv", "--root", str(vault), "config", "show"])

    overrides = mock_resolve_config.call_args.args[0]
    assert overrides["verbose"] == 2
    assert overrides["root"] == vault


# --- Bury / Schedule ---


def test_review_bury_then_unbury(vault):
    _invoke(vault, "init")

    # Bury the first card, then quit on the second.
    result = _invoke(vault, "review", input="\nb\n\nq\n")

    assert result.exit_code == 0, result.output
    assert "1 buried" in result.stdout
    buried = [card for card in _load(vault) if card.buried]
    assert len(buried) == 1
    assert buried[0].state is CardStatus.NEW

    found = _invoke(vault, "find", buried[0].front)
    assert "Buried" in found.stdout

    result = _invoke(vault, "unbury")
    assert result.exit_code == 0
    assert "Unburied 1 cards." in result.stdout
    assert not any(card.buried for card in _load(vault))


def test_unbury_unknown_card(vault):
    _invoke(vault, "init")
    result = _invoke(vault, "unbury", "c_missing")

    assert result.exit_code == 1
    assert "No card c_missing" in result.output


def test_schedule_spreads_reviews(mock_vault):
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    _write_deck(mock_vault, [_review_record(f"c_{i}", today) for i in range(3)])

    result = _invoke(mock_vault, "schedule", "--days", "3", "--max-cards", "1")

    assert result.exit_code == 0, result.output
    assert "Moved 2 reviews" in result.stdout
    dues = sorted(card.due for card in _load(mock_vault))
    assert dues == [today + timedelta(days=i) for i in range(3)]


def test_schedule_requires_days(vault):
    _invoke(vault, "init")
    result = _invoke(vault, "schedule")
    assert result.exit_code != 0
