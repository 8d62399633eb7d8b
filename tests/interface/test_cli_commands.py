"""Tests for CLI commands: help, review, migrate, rank, forecast, history and config."""

import json

import pytest
from typer.testing import CliRunner

from mnemo.application.codec import iter_card_markers, parse_note_schedule
from mnemo.interface.cli import app

runner = CliRunner()


@pytest.fixture
def vault(mock_vault, mock_home):
    (mock_vault / "Hub.md").write_text("# Hub\n[[Cards]] [[Other]]\n", encoding="utf-8")
    (mock_vault / "Cards.md").write_text(
        "Q1::A1 <!--SR:!2024-05-01,3,250-->\nQ2::A2\n", encoding="utf-8"
    )
    (mock_vault / "Other.md").write_text("[[Hub]]\n", encoding="utf-8")
    return mock_vault


# --- Help ---


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "spaced-repetition scheduling" in result.stdout
    for command in ("review", "migrate", "rank", "forecast", "history", "config"):
        assert command in result.stdout


def test_cli_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "mnemo 0.3.0"


# --- Review ---


def test_review_card(vault):
    result = runner.invoke(
        app, ["review", "Cards.md", "-r", "good", "--vault", str(vault), "--line", "1"]
    )
    assert result.exit_code == 0, result.stdout
    assert "interval 8d, ease 250" in result.stdout

    text = (vault / "Cards.md").read_text(encoding="utf-8")
    (line_no, parsed), = iter_card_markers(text)
    assert line_no == 0
    assert parsed.slots[0].schedule.interval == 8
    assert parsed.slots[0].item_id.startswith("sr_")
    assert (vault / ".mnemo" / "review-history.json").is_file()


def test_review_note(vault):
    result = runner.invoke(app, ["review", "Other.md", "-r", "EASY", "--vault", str(vault)])
    assert result.exit_code == 0, result.stdout
    assert "interval 1d" in result.stdout
    assert parse_note_schedule((vault / "Other.md").read_text(encoding="utf-8")).item_id


def test_review_missing_document(vault):
    result = runner.invoke(app, ["review", "Nope.md", "-r", "good", "--vault", str(vault)])
    assert result.exit_code == 1
    assert "Document not found" in result.stdout


def test_review_line_out_of_range(vault):
    result = runner.invoke(
        app, ["review", "Cards.md", "-r", "good", "--vault", str(vault), "--line", "40"]
    )
    assert result.exit_code == 1
    assert "Cannot review card" in result.stdout


def test_review_rejects_unknown_response(vault):
    result = runner.invoke(app, ["review", "Cards.md", "-r", "again", "--vault", str(vault)])
    assert result.exit_code != 0


# --- Migrate ---


def test_migrate_dry_run(vault):
    before = (vault / "Cards.md").read_text(encoding="utf-8")
    result = runner.invoke(app, ["migrate", str(vault), "--dry-run"])
    assert result.exit_code == 0
    assert "[DRY RUN] Would assign 1 IDs." in result.stdout
    assert (vault / "Cards.md").read_text(encoding="utf-8") == before


def test_migrate(vault):
    result = runner.invoke(app, ["migrate", str(vault)])
    assert result.exit_code == 0
    assert "Migrated: assigned 1 IDs." in result.stdout

    result = runner.invoke(app, ["migrate", str(vault)])
    assert "Migrated: assigned 0 IDs." in result.stdout


# --- Rank ---


def test_rank_json(vault):
    result = runner.invoke(app, ["rank", str(vault), "--json"])
    assert result.exit_code == 0
    scores = json.loads(result.stdout)
    assert set(scores) == {"Hub.md", "Cards.md", "Other.md"}
    assert sum(scores.values()) == pytest.approx(1.0)
    assert max(scores, key=scores.get) == "Hub.md"


def test_rank_text(vault):
    result = runner.invoke(app, ["-v", "rank", str(vault), "--top", "2"])
    assert result.exit_code == 0
    assert "Notes: 3  Links: 3" in result.stdout
    assert len([line for line in result.stdout.splitlines() if line.startswith("  ")]) == 2


# --- Forecast ---


def test_forecast(vault):
    (vault / "Future.md").write_text(
        "Q::A <!--SR:!2099-01-01,30,250!2099-01-01,30,250-->\n", encoding="utf-8"
    )
    result = runner.invoke(app, ["forecast", str(vault)])
    assert result.exit_code == 0
    assert "Overdue: 1" in result.stdout
    assert "2099-01-01     2  ##" in result.stdout


def test_forecast_nothing_upcoming(vault):
    result = runner.invoke(app, ["forecast", str(vault)])
    assert result.exit_code == 0
    assert "Nothing scheduled." in result.stdout


# --- History ---


def test_history_after_review(vault):
    runner.invoke(app, ["review", "Cards.md", "-r", "hard", "--vault", str(vault), "--line", "1"])
    runner.invoke(app, ["review", "Cards.md", "-r", "reset", "--vault", str(vault), "--line", "1"])
    (_, parsed), = iter_card_markers((vault / "Cards.md").read_text(encoding="utf-8"))
    item_id = parsed.slots[0].item_id

    result = runner.invoke(app, ["history", item_id, "--vault", str(vault)])
    assert result.exit_code == 0
    assert f"{item_id}: 2 reviews, 1 lapses" in result.stdout

    result = runner.invoke(app, ["history", item_id, "--vault", str(vault), "--json"])
    data = json.loads(result.stdout)
    assert [e["response"] for e in data["history"]] == ["hard", "reset"]
    assert data["history"][1]["interval"] == 1


def test_history_unknown_item(vault):
    result = runner.invoke(app, ["history", "sr_missing", "--vault", str(vault)])
    assert result.exit_code == 1
    assert "No history for sr_missing" in result.stdout


# --- Config ---


def test_config_show_defaults(mock_home):
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["base_ease"] == 250
    assert data["scheduler"]["easy_bonus"] == 1.3
    assert data["history_path"].endswith("review-history.json")


def test_config_show_reads_toml_and_env(mock_home, monkeypatch):
    cfg = mock_home / ".config" / "mnemo"
    cfg.mkdir(parents=True)
    (cfg / "config.toml").write_text("base_ease = 230\nload_balance = false\n", encoding="utf-8")

    data = json.loads(runner.invoke(app, ["config", "show"]).stdout)
    assert data["base_ease"] == 230
    assert data["scheduler"]["load_balance"] is False

    monkeypatch.setenv("MNEMO_BASE_EASE", "260")
    data = json.loads(runner.invoke(app, ["config", "show"]).stdout)
    assert data["base_ease"] == 260


def test_config_rejects_invalid_value(mock_home, monkeypatch):
    monkeypatch.setenv("MNEMO_MIN_EASE", "0")
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code != 0


def test_config_rejects_base_ease_below_min_ease(mock_home, monkeypatch):
    monkeypatch.setenv("MNEMO_MIN_EASE", "200")
    monkeypatch.setenv("MNEMO_BASE_EASE", "150")
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code != 0
    assert "must be >= min_ease" in str(result.exception)


def test_migrate_reports_unreadable_documents(vault):
    (vault / "Latin.md").write_bytes("Caf\xe9 <!--SR:!2024-05-01,3,250-->".encode("latin-1"))
    result = runner.invoke(app, ["migrate", str(vault)])
    assert result.exit_code == 0
    assert "Scanned 1 scheduled items." in result.stdout
    assert "Migrated: assigned 1 IDs." in result.stdout
    assert "Errors: 1" in result.stdout
    assert "  Latin.md: " in result.stdout
