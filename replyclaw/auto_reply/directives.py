"""Inline control directives: /think, /verbose and abort words."""

from __future__ import annotations

import re
from dataclasses import dataclass

from loguru import logger

from replyclaw.auto_reply.thinking import (
    THINK_LEVELS,
    VERBOSE_LEVELS,
    ThinkLevel,
    VerboseLevel,
    normalize_think_level,
    normalize_verbose_level,
)
from replyclaw.utils.helpers import normalize_e164

ABORT_TRIGGERS = frozenset({"stop", "esc", "abort", "wait", "exit"})
ABORT_ACK = "Agent was aborted."
CURRENT_MESSAGE_MARKER = "[Current message - respond to this]"

# Longest keyword first so "/thinking high" is not read as "/t hinking".
_THINK_RE = re.compile(r"/(?:thinking|think|t)\b\s*:?\s*([a-zA-Z-]+)\b", re.IGNORECASE)
_VERBOSE_RE = re.compile(r"/(?:verbose|v)\b\s*:?\s*([a-zA-Z-]+)\b", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")


@dataclass
class ThinkDirective:
    cleaned: str
    level: ThinkLevel | None = None
    raw_level: str | None = None
    has_directive: bool = False


@dataclass
class VerboseDirective:
    cleaned: str
    level: VerboseLevel | None = None
    raw_level: str | None = None
    has_directive: bool = False


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def extract_think_directive(body: str | None) -> ThinkDirective:
    """Strip the first /think directive from body."""
    if not body:
        return ThinkDirective(cleaned="")
    match = _THINK_RE.search(body)
    if not match:
        return ThinkDirective(cleaned=body.strip())
    raw = match.group(1)
    cleaned = _collapse(body[: match.start()] + body[match.end():])
    return ThinkDirective(
        cleaned=cleaned,
        level=normalize_think_level(raw),
        raw_level=raw,
        has_directive=True,
    )


def extract_verbose_directive(body: str | None) -> VerboseDirective:
    """Strip the first /verbose directive from body."""
    if not body:
        return VerboseDirective(cleaned="")
    match = _VERBOSE_RE.search(body)
    if not match:
        return VerboseDirective(cleaned=body.strip())
    raw = match.group(1)
    cleaned = _collapse(body[: match.start()] + body[match.end():])
    return VerboseDirective(
        cleaned=cleaned,
        level=normalize_verbose_level(raw),
        raw_level=raw,
        has_directive=True,
    )


def strip_structural_prefixes(text: str | None) -> str:
    """
    Remove wrapper text added by inbound adapters.

    Group batches carry history before a marker line, and every line may be
    prefixed by a timestamp (`[Dec 4 17:35]`) or a sender label (`Ann:`).
    """
    value = text or ""
    if CURRENT_MESSAGE_MARKER in value:
        value = value[value.index(CURRENT_MESSAGE_MARKER) + len(CURRENT_MESSAGE_MARKER):]
    value = re.sub(r"\[[^\]]+\]\s*", "", value)
    value = re.sub(r"^[ \t]*[A-Za-z0-9+()\-_. ]+:\s*", "", value, flags=re.MULTILINE)
    return _collapse(value)


def strip_mentions(text: str, self_id: str | None = None, mention_patterns: list[str] | None = None) -> str:
    """Remove @-mentions of the bot from a group message."""
    result = text
    for pattern in mention_patterns or []:
        try:
            result = re.sub(pattern, " ", result, flags=re.IGNORECASE)
        except re.error as e:
            logger.debug(f"Ignoring invalid mention pattern {pattern!r}: {e}")
    own = normalize_e164(self_id)
    if own:
        escaped = re.escape(own)
        result = re.sub(f"@?{escaped}", " ", result, flags=re.IGNORECASE)
    result = re.sub(r"@[0-9+]{5,}", " ", result)
    return _collapse(result)


def is_directive_only(
    remainder: str,
    *,
    is_group: bool = False,
    self_id: str | None = None,
    mention_patterns: list[str] | None = None,
) -> bool:
    """True when nothing but wrapper text and mentions is left after directives are stripped."""
    if not remainder:
        return True
    stripped = strip_structural_prefixes(remainder)
    if is_group:
        stripped = strip_mentions(stripped, self_id=self_id, mention_patterns=mention_patterns)
    return len(stripped) == 0


def is_abort_trigger(text: str | None) -> bool:
    if not text:
        return False
    return text.strip().lower() in ABORT_TRIGGERS


def unrecognized_think_text(raw_level: str | None) -> str:
    return f'Unrecognized thinking level "{raw_level or ""}". Valid levels: {", ".join(THINK_LEVELS)}.'


def unrecognized_verbose_text(raw_level: str | None) -> str:
    return f'Unrecognized verbose level "{raw_level or ""}". Valid levels: {", ".join(VERBOSE_LEVELS)}.'


def think_ack_text(level: ThinkLevel) -> str:
    return "Thinking disabled." if level == "off" else f"Thinking level set to {level}."


def verbose_ack_text(level: VerboseLevel) -> str:
    return "Verbose logging disabled." if level == "off" else "Verbose logging enabled."
