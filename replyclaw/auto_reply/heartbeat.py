"""Heartbeat: periodically poke the agent and forward anything it has to say."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from loguru import logger

from replyclaw.auto_reply.types import GetReplyOptions, MsgContext, ReplyPayload
from replyclaw.config.schema import Config
from replyclaw.session.store import SessionStore, derive_session_key, resolve_store_path

# Default interval: 30 minutes
DEFAULT_HEARTBEAT_MINUTES = 30

# Token that indicates "nothing to report"
HEARTBEAT_TOKEN = "HEARTBEAT_OK"

HEARTBEAT_PROMPT = f"HEARTBEAT ping. If nothing needs attention, reply with just: {HEARTBEAT_TOKEN}"

Sender = Callable[..., Awaitable[Any]]
ReplyResolver = Callable[[MsgContext, GetReplyOptions], Awaitable[ReplyPayload | list[ReplyPayload] | None]]


def strip_heartbeat_token(text: str | None) -> tuple[bool, str]:
    """
    Remove the heartbeat token from a reply.

    Returns:
        (should_skip, remaining_text); should_skip is True when nothing but
        the token (or whitespace) was returned.
    """
    if text is None or not text.strip():
        return True, ""
    remaining = text.replace(HEARTBEAT_TOKEN, "").strip()
    if not remaining:
        return True, ""
    return False, remaining


def resolve_reply_heartbeat_minutes(config: Config, override: int | None = None) -> int | None:
    """Heartbeat interval in minutes, or None when heartbeats are off."""
    reply = config.inbound.reply
    if reply is None or reply.mode != "command":
        return None
    if override is not None:
        return override if override > 0 else None
    minutes = reply.heartbeat_minutes
    if minutes is None:
        return DEFAULT_HEARTBEAT_MINUTES
    return minutes if minutes > 0 else None


def _session_store(config: Config) -> SessionStore | None:
    reply = config.inbound.reply
    if reply is None or reply.session is None:
        return None
    return SessionStore(resolve_store_path(reply.session.store))


def resolve_heartbeat_recipient(config: Config, to: str | None = None) -> str | None:
    """Explicit recipient, else the key of the most recently updated session."""
    if to:
        return to
    store = _session_store(config)
    if store is None:
        return None
    recent = store.most_recent()
    if recent is None:
        return None
    key, _ = recent
    return None if key in ("global", "unknown") or key.startswith("group:") else key


def _first_text(result: ReplyPayload | list[ReplyPayload] | None) -> tuple[str | None, str | None]:
    payloads = result if isinstance(result, list) else ([result] if result else [])
    texts = [p.text for p in payloads if p.text]
    media = next((m for p in payloads for m in p.all_media()), None)
    return ("\n\n".join(texts) if texts else None), media


async def run_heartbeat_once(
    config: Config,
    *,
    sender: Sender,
    reply_resolver: ReplyResolver,
    to: str | None = None,
) -> bool:
    """
    Run one heartbeat.

    The resolver is called in probe mode so a quiet heartbeat leaves the
    session untouched; the session is refreshed only after a real send.

    Returns:
        True when a message was sent.
    """
    recipient = resolve_heartbeat_recipient(config, to)
    if not recipient:
        logger.info("Heartbeat skipped: no recipient")
        return False

    ctx = MsgContext(body=HEARTBEAT_PROMPT, from_=recipient, to=recipient)
    result = await reply_resolver(ctx, GetReplyOptions(is_heartbeat=True))
    text, media_url = _first_text(result)
    should_skip, text = strip_heartbeat_token(text)
    if should_skip and not media_url:
        logger.info(f"Heartbeat: OK (nothing to send to {recipient})")
        return False

    await sender(recipient, text, media_url=media_url)
    logger.info(f"Heartbeat: sent alert to {recipient}")

    store = _session_store(config)
    reply = config.inbound.reply
    if store is not None and reply is not None and reply.session is not None:
        store.touch(derive_session_key(reply.session.scope, recipient))
    return True


class ReplyHeartbeatService:
    """Periodic heartbeat loop around run_heartbeat_once."""

    def __init__(
        self,
        config: Config,
        *,
        sender: Sender,
        reply_resolver: ReplyResolver,
        to: str | None = None,
        interval_minutes: int | None = None,
    ):
        self.config = config
        self.sender = sender
        self.reply_resolver = reply_resolver
        self.to = to
        self.interval_minutes = resolve_reply_heartbeat_minutes(config, interval_minutes)
        self._running = False
        self._task: asyncio.Task | None = None
        self._last_run_at: float | None = None
        self._next_run_at: float | None = None

    @property
    def enabled(self) -> bool:
        return self.interval_minutes is not None

    @property
    def interval_s(self) -> int:
        return (self.interval_minutes or 0) * 60

    async def start(self) -> None:
        """Start the heartbeat loop."""
        if not self.enabled:
            logger.info("Heartbeat disabled")
            return
        self._running = True
        self._next_run_at = time.time() + self.interval_s
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Heartbeat started (every {self.interval_minutes}m)")

    def stop(self) -> None:
        """Stop the heartbeat loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        self._next_run_at = None

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_s)
                if self._running:
                    await self.trigger_now()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Heartbeat error: {e}")

    async def trigger_now(self) -> bool:
        """Run a heartbeat immediately."""
        now = time.time()
        self._last_run_at = now
        if self._running:
            self._next_run_at = now + self.interval_s
        return await run_heartbeat_once(
            self.config,
            sender=self.sender,
            reply_resolver=self.reply_resolver,
            to=self.to,
        )

    def status(self) -> dict[str, Any]:
        def _to_ms(ts: float | None) -> int | None:
            return int(ts * 1000) if ts else None

        return {
            "enabled": self.enabled,
            "running": self._running,
            "interval_minutes": self.interval_minutes,
            "last_run_at_ms": _to_ms(self._last_run_at),
            "next_run_at_ms": _to_ms(self._next_run_at),
        }
