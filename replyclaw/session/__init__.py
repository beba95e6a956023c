"""Session management module for replyclaw."""

from replyclaw.session.abort_memory import AbortMemory
from replyclaw.session.resolver import SessionResolver, SessionState
from replyclaw.session.store import SessionEntry, SessionStore, derive_session_key

__all__ = [
    "AbortMemory",
    "SessionEntry",
    "SessionResolver",
    "SessionState",
    "SessionStore",
    "derive_session_key",
]
