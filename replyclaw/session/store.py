"""Session store: one JSON file mapping session keys to session entries."""

from __future__ import annotations

import json
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from loguru import logger

from replyclaw.utils.helpers import ensure_dir, normalize_e164

DEFAULT_IDLE_MINUTES = 60
DEFAULT_RESET_TRIGGER = "/new"

SessionScope = Literal["per-sender", "global"]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SessionEntry:
    """Persisted state of one conversation."""

    session_id: str
    updated_at: int  # epoch milliseconds
    system_sent: bool = False
    aborted_last_run: bool = False
    thinking_level: str | None = None
    verbose_level: str | None = None

    def is_fresh(self, idle_minutes: int, now: int | None = None) -> bool:
        current = now_ms() if now is None else now
        return current - self.updated_at <= idle_minutes * 60_000

    def touch(self, now: int | None = None) -> None:
        """Advance updated_at; it never moves backwards."""
        current = now_ms() if now is None else now
        self.updated_at = max(self.updated_at, current)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sessionId": self.session_id,
            "updatedAt": self.updated_at,
            "systemSent": self.system_sent,
            "abortedLastRun": self.aborted_last_run,
        }
        if self.thinking_level:
            data["thinkingLevel"] = self.thinking_level
        if self.verbose_level:
            data["verboseLevel"] = self.verbose_level
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionEntry":
        def _opt(value: Any) -> str | None:
            return str(value) if isinstance(value, str) and value else None

        try:
            updated_at = int(data.get("updatedAt") or 0)
        except (TypeError, ValueError):
            updated_at = 0
        return cls(
            session_id=str(data.get("sessionId") or ""),
            updated_at=updated_at,
            system_sent=bool(data.get("systemSent", False)),
            aborted_last_run=bool(data.get("abortedLastRun", False)),
            thinking_level=_opt(data.get("thinkingLevel")),
            verbose_level=_opt(data.get("verboseLevel")),
        )


def resolve_store_path(store: str | None = None) -> Path:
    """Resolve the configured store path, defaulting to ~/.replyclaw/sessions/sessions.json."""
    if store:
        return Path(store).expanduser()
    return Path.home() / ".replyclaw" / "sessions" / "sessions.json"


def is_group_sender(sender: str | None) -> bool:
    value = sender or ""
    return "@g.us" in value or value.startswith("group:")


def derive_session_key(scope: SessionScope | str, sender: str | None) -> str:
    """Map a conversation identity to its session key."""
    if scope == "global":
        return "global"
    raw = normalize_e164(sender)
    if not raw:
        return "unknown"
    if is_group_sender(raw):
        return raw if raw.startswith("group:") else f"group:{raw}"
    return raw


class SessionStore:
    """
    Whole-file JSON session store.

    Every load reads the full mapping and every save rewrites it; there is no
    locking between requests, so concurrent writers race and the last one wins.
    Read and write errors propagate to the caller.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def load(self) -> dict[str, SessionEntry]:
        """Load all entries. A missing file is an empty store."""
        if not self.path.exists():
            return {}
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return {}
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Session store {self.path} is not a JSON object")
        entries: dict[str, SessionEntry] = {}
        for key, value in data.items():
            if isinstance(value, dict):
                entries[str(key)] = SessionEntry.from_dict(value)
        return entries

    def save(self, entries: dict[str, SessionEntry]) -> None:
        """Atomically replace the store file with entries."""
        payload = json.dumps({key: entry.to_dict() for key, entry in entries.items()}, indent=2)
        ensure_dir(self.path.parent)
        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=str(self.path.parent),
                prefix=f"{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
                tmp_path = Path(tmp.name)
            tmp_path.replace(self.path)
        except Exception:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
            raise
        logger.debug(f"Saved {len(entries)} session(s) to {self.path}")

    def most_recent(self) -> tuple[str, SessionEntry] | None:
        """Return the most recently updated (key, entry), if any."""
        entries = self.load()
        if not entries:
            return None
        key = max(entries, key=lambda k: entries[k].updated_at)
        return key, entries[key]

    def touch(self, key: str) -> bool:
        """Refresh updated_at for one key. Returns False when the key is unknown."""
        entries = self.load()
        entry = entries.get(key)
        if entry is None:
            return False
        entry.touch()
        self.save(entries)
        return True
