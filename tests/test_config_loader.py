import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from replyclaw.agents import AgentKind
from replyclaw.config.loader import load_config, save_config
from replyclaw.config.schema import Config, ReplyConfig, SessionConfig


def _write(path: Path, data: dict) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_config_reads_camel_case(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "config.json",
        {
            "inbound": {
                "allowFrom": ["+1555"],
                "reply": {
                    "mode": "command",
                    "command": ["pi", "{{Body}}"],
                    "timeoutSeconds": 30,
                    "thinkingDefault": "max",
                    "agent": {"kind": "pi", "format": "json"},
                    "session": {"idleMinutes": 15, "sendSystemOnce": True, "resetTriggers": ["/new", "/reset"]},
                },
            },
            "queue": {"maxConcurrency": 2},
        },
    )

    config = load_config(path)

    reply = config.inbound.reply
    assert config.inbound.allow_from == ["+1555"]
    assert reply.timeout_seconds == 30
    assert reply.thinking_default == "high"
    assert reply.agent.kind is AgentKind.PI
    assert reply.agent.format == "json"
    assert reply.session.idle_minutes == 15
    assert reply.session.send_system_once is True
    assert reply.session.reset_triggers == ["/new", "/reset"]
    assert config.queue.max_concurrency == 2
    assert config.queue.warn_after_ms == 0


def test_load_config_migrates_legacy_shapes(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "config.json",
        {
            "inbound": {
                "transcribeAudio": ["whisper", "{{MediaPath}}"],
                "reply": {
                    "command": "pi {{Body}}",
                    "agent": "pi",
                    "session": {"resetTriggers": "/reset", "typingIntervalSeconds": 4},
                },
            }
        },
    )

    config = load_config(path)

    reply = config.inbound.reply
    assert config.inbound.transcribe_audio.command == ["whisper", "{{MediaPath}}"]
    assert reply.command == ["pi", "{{Body}}"]
    assert reply.agent.kind is AgentKind.PI
    assert reply.session.reset_triggers == ["/reset"]
    assert reply.session.scope == "per-sender"
    assert reply.typing_interval_seconds == 4


def test_invalid_config_falls_back_to_defaults(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    invalid = _write(tmp_path / "invalid.json", {"inbound": {"reply": {"thinkingDefault": "banana"}}})

    assert load_config(broken).inbound.reply is None
    assert load_config(invalid).inbound.reply is None


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.json")

    assert config.inbound.reply is None
    assert config.queue.max_concurrency == 1


def test_save_config_writes_camel_case(tmp_path: Path) -> None:
    path = tmp_path / "out" / "config.json"
    config = Config()
    config.inbound.reply = ReplyConfig(command=["pi", "{{Body}}"], session=SessionConfig(idle_minutes=5))

    save_config(config, path)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["inbound"]["reply"]["session"]["idleMinutes"] == 5
    assert data["inbound"]["reply"]["timeoutSeconds"] == 600
    assert load_config(path).inbound.reply.session.idle_minutes == 5


def test_schema_validators() -> None:
    assert SessionConfig(idle_minutes=0).idle_minutes == 1
    assert SessionConfig(scope="GLOBAL").scope == "global"
    assert ReplyConfig(verbose_default=True).verbose_default == "on"
    with pytest.raises(ValidationError):
        ReplyConfig(verbose_default="loud")
