"""Session resolution: map a conversation to its current session."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from loguru import logger

from replyclaw.auto_reply.directives import strip_structural_prefixes
from replyclaw.config.schema import SessionConfig
from replyclaw.session.store import (
    DEFAULT_RESET_TRIGGER,
    SessionEntry,
    SessionStore,
    derive_session_key,
    now_ms,
    resolve_store_path,
)


@dataclass
class SessionState:
    """A resolved session plus the store snapshot it was read from."""

    key: str
    entry: SessionEntry
    store: SessionStore
    entries: dict[str, SessionEntry] = field(default_factory=dict)
    is_new_session: bool = False
    body_stripped: str | None = None  # body with a reset trigger removed, if one matched
    probe: bool = False

    @property
    def session_id(self) -> str:
        return self.entry.session_id

    def persist(self) -> None:
        """
        Write the entry back as part of the whole mapping.

        Reply-mode writes refresh updated_at; probe-mode writes leave it alone.
        """
        if not self.probe:
            self.entry.touch()
        self.entries[self.key] = self.entry
        self.store.save(self.entries)


def match_reset_trigger(body: str | None, triggers: list[str]) -> tuple[bool, str | None]:
    """
    Check body against reset triggers.

    Returns (matched, remainder). Timestamp and sender wrappers are ignored
    so "[Dec 4 17:35] /new" still resets.
    """
    raw = body or ""
    trimmed = raw.strip()
    stripped = strip_structural_prefixes(raw).strip()
    for trigger in triggers:
        if not trigger:
            continue
        if trimmed == trigger or stripped == trigger:
            return True, ""
        prefix = f"{trigger} "
        if trimmed.startswith(prefix) or stripped.startswith(prefix):
            return True, stripped[len(trigger):].lstrip()
    return False, None


class SessionResolver:
    """
    Resolves sessions for inbound messages.

    A fresh entry (inside the idle window) is reused together with its flags
    and persisted directive levels; a stale or missing one is replaced with a
    new session id. Reset triggers always start a new session.
    """

    def __init__(self, config: SessionConfig, store: SessionStore | None = None):
        self.config = config
        self.store = store or SessionStore(resolve_store_path(config.store))
        self.reset_triggers = [t for t in config.reset_triggers if t] or [DEFAULT_RESET_TRIGGER]

    def idle_minutes(self, probe: bool = False) -> int:
        if probe and self.config.heartbeat_idle_minutes:
            return max(1, int(self.config.heartbeat_idle_minutes))
        return max(1, int(self.config.idle_minutes))

    def resolve(self, body: str | None, sender: str | None, *, probe: bool = False) -> SessionState:
        """
        Resolve the session for a message.

        Args:
            body: Raw inbound text (checked for reset triggers).
            sender: Sender identity used to derive the session key.
            probe: Liveness-check read; nothing is written here and later
                writes do not refresh updated_at.
        """
        is_reset, remainder = match_reset_trigger(body, self.reset_triggers)
        key = derive_session_key(self.config.scope, sender)
        entries = self.store.load()
        existing = entries.get(key)
        now = now_ms()
        fresh = existing is not None and existing.is_fresh(self.idle_minutes(probe), now=now)

        if not is_reset and fresh and existing is not None:
            entry = existing
            is_new = False
        else:
            updated_at = existing.updated_at if (probe and existing is not None) else now
            entry = SessionEntry(session_id=str(uuid.uuid4()), updated_at=updated_at)
            is_new = True
            reason = "reset trigger" if is_reset else ("idle expiry" if existing else "no prior session")
            logger.debug(f"New session {entry.session_id} for {key} ({reason})")

        state = SessionState(
            key=key,
            entry=entry,
            store=self.store,
            entries=entries,
            is_new_session=is_new,
            body_stripped=remainder if is_reset else None,
            probe=probe,
        )
        if not probe:
            state.persist()
        return state
