"""Message context and reply payload types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Literal


@dataclass
class MsgContext:
    """Provider-neutral view of one inbound message."""

    body: str = ""
    from_: str | None = None
    to: str | None = None
    message_sid: str | None = None
    media_path: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    transcript: str | None = None
    chat_type: Literal["direct", "group"] | None = None
    group_subject: str | None = None
    group_members: str | None = None
    sender_name: str | None = None


@dataclass
class ReplyPayload:
    """One outbound reply handed to a delivery channel."""

    text: str | None = None
    media_url: str | None = None
    media_urls: list[str] | None = None

    def all_media(self) -> list[str]:
        if self.media_urls:
            return list(self.media_urls)
        return [self.media_url] if self.media_url else []


@dataclass
class GetReplyOptions:
    """Per-call hooks for the reply engine."""

    on_reply_start: Callable[[], Awaitable[None]] | None = None
    on_partial_reply: Callable[[ReplyPayload], Awaitable[None]] | None = None
    is_heartbeat: bool = False
