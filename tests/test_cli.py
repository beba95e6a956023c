import json
from pathlib import Path

from typer.testing import CliRunner

from replyclaw.cli.commands import app
from replyclaw.session import SessionEntry, SessionStore
from replyclaw.session.store import now_ms

runner = CliRunner()


def test_sessions_lists_store_entries(tmp_path: Path) -> None:
    store = tmp_path / "sessions.json"
    SessionStore(store).save({"+1555": SessionEntry(session_id="abc", updated_at=now_ms(), system_sent=True)})

    result = runner.invoke(app, ["sessions", "--store", str(store)])

    assert result.exit_code == 0
    assert "+1555" in result.output
    assert "abc" in result.output


def test_sessions_empty_store(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

    result = runner.invoke(app, ["sessions"])

    assert result.exit_code == 0
    assert "No sessions." in result.output


def test_reply_command_prints_static_reply(tmp_path: Path) -> None:
    cfg = tmp_path / "config.json"
    cfg.write_text(json.dumps({"inbound": {"reply": {"mode": "text", "text": "Hello {{From}}"}}}), encoding="utf-8")

    result = runner.invoke(app, ["reply", "-m", "hi", "--from", "+1555", "--config", str(cfg)])

    assert result.exit_code == 0
    assert "Hello +1555" in result.output


def test_reply_command_requires_reply_config(tmp_path: Path) -> None:
    result = runner.invoke(app, ["reply", "-m", "hi", "--config", str(tmp_path / "absent.json")])

    assert result.exit_code == 1
