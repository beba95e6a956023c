import json
from pathlib import Path

import pytest

from replyclaw.config.schema import SessionConfig
from replyclaw.session import AbortMemory, SessionEntry, SessionResolver, SessionStore, derive_session_key
from replyclaw.session.store import now_ms


def _resolver(tmp_path: Path, **overrides) -> SessionResolver:
    cfg = SessionConfig(store=str(tmp_path / "sessions.json"), **overrides)
    return SessionResolver(cfg)


def _seed(tmp_path: Path, entries: dict) -> Path:
    path = tmp_path / "sessions.json"
    path.write_text(json.dumps(entries), encoding="utf-8")
    return path


def test_resolver_reuses_fresh_session(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)

    first = resolver.resolve("hello", "+1555")
    second = resolver.resolve("again", "whatsapp:+1555")

    assert first.is_new_session is True
    assert second.is_new_session is False
    assert second.session_id == first.session_id
    stored = json.loads((tmp_path / "sessions.json").read_text(encoding="utf-8"))
    assert stored["+1555"]["sessionId"] == first.session_id


def test_reset_trigger_starts_new_session_and_strips_body(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    first = resolver.resolve("hello", "+1555")

    reset = resolver.resolve("/new tell me a joke", "+1555")
    bare = resolver.resolve("[Dec 4 17:35] /new", "+1555")

    assert reset.is_new_session is True
    assert reset.session_id != first.session_id
    assert reset.body_stripped == "tell me a joke"
    assert bare.is_new_session is True
    assert bare.body_stripped == ""


def test_stale_entry_gets_new_session_and_cleared_flags(tmp_path: Path) -> None:
    two_hours_ago = now_ms() - 2 * 60 * 60 * 1000
    _seed(
        tmp_path,
        {"+1555": {"sessionId": "old", "updatedAt": two_hours_ago, "systemSent": True, "thinkingLevel": "high"}},
    )

    state = _resolver(tmp_path, idle_minutes=60).resolve("hi", "+1555")

    assert state.is_new_session is True
    assert state.session_id != "old"
    assert state.entry.system_sent is False
    assert state.entry.thinking_level is None


def test_fresh_entry_keeps_flags_and_levels(tmp_path: Path) -> None:
    _seed(
        tmp_path,
        {
            "+1555": {
                "sessionId": "keep",
                "updatedAt": now_ms() - 1000,
                "systemSent": True,
                "abortedLastRun": True,
                "verboseLevel": "on",
            }
        },
    )

    state = _resolver(tmp_path).resolve("hi", "+1555")

    assert state.session_id == "keep"
    assert state.entry.system_sent is True
    assert state.entry.aborted_last_run is True
    assert state.entry.verbose_level == "on"


def test_probe_mode_writes_nothing_and_keeps_updated_at(tmp_path: Path) -> None:
    original = now_ms() - 30 * 60 * 1000
    path = _seed(tmp_path, {"+1555": {"sessionId": "sess1", "updatedAt": original}})
    before = path.read_text(encoding="utf-8")
    resolver = _resolver(tmp_path, idle_minutes=60, heartbeat_idle_minutes=10)

    state = resolver.resolve("ping", "+1555", probe=True)

    assert state.is_new_session is True
    assert path.read_text(encoding="utf-8") == before

    state.entry.system_sent = True
    state.persist()
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["+1555"]["updatedAt"] == original


def test_global_scope_shares_one_session(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path, scope="global")

    a = resolver.resolve("hi", "+1555")
    b = resolver.resolve("hi", "+1666")

    assert a.key == b.key == "global"
    assert a.session_id == b.session_id


def test_derive_session_key() -> None:
    assert derive_session_key("global", "+1555") == "global"
    assert derive_session_key("per-sender", "whatsapp:+1555") == "+1555"
    assert derive_session_key("per-sender", "12345@g.us") == "group:12345@g.us"
    assert derive_session_key("per-sender", None) == "unknown"


def test_store_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        SessionStore(path).load()


def test_store_save_is_atomic_and_most_recent(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "nested" / "sessions.json")
    store.save(
        {
            "+1222": SessionEntry(session_id="s1", updated_at=1000),
            "+1333": SessionEntry(session_id="s2", updated_at=2000),
        }
    )

    assert [p.name for p in (tmp_path / "nested").iterdir()] == ["sessions.json"]
    key, entry = store.most_recent()
    assert key == "+1333"
    assert entry.session_id == "s2"
    assert store.touch("+1222") is True
    assert store.touch("+1999") is False
    assert store.most_recent()[0] == "+1222"


def test_entry_touch_never_moves_backwards() -> None:
    entry = SessionEntry(session_id="s", updated_at=5000)

    entry.touch(now=1000)

    assert entry.updated_at == 5000


def test_abort_memory_evicts_oldest() -> None:
    memory = AbortMemory(max_entries=2)
    memory.set("a", True)
    memory.set("b", True)
    memory.set("c", True)

    assert len(memory) == 2
    assert memory.get("a") is False
    assert memory.get("c") is True
