"""Compose the agent-facing prompt from the inbound message and session state."""

from __future__ import annotations

import re
from dataclasses import dataclass

from replyclaw.auto_reply.thinking import ThinkLevel, normalize_think_level
from replyclaw.auto_reply.types import MsgContext

ABORTED_HINT = (
    "Note: The previous agent run was aborted by the user. "
    "Resume carefully or ask for clarification."
)
MEDIA_REPLY_HINT = (
    "To send an image back, add a line like: MEDIA:https://example.com/image.jpg "
    "(no spaces). Keep caption in the text body."
)


@dataclass
class ComposedBody:
    text: str
    think_level: ThinkLevel | None = None


def build_group_intro(subject: str | None, members: str | None) -> str:
    subject = (subject or "").strip()
    members = (members or "").strip()
    lines = [
        f'You are replying inside the WhatsApp group "{subject}".'
        if subject
        else "You are replying inside a WhatsApp group chat."
    ]
    if members:
        lines.append(f"Group members: {members}.")
    return " ".join(lines) + " Address the specific sender noted in the message context."


def build_media_note(ctx: MsgContext) -> str | None:
    """Single-line annotation describing inbound media, or None without media."""
    if not ctx.media_path:
        return None
    note = f"[media attached: {ctx.media_path}"
    if ctx.media_type:
        note += f" ({ctx.media_type})"
    if ctx.media_url:
        note += f" | {ctx.media_url}"
    return note + "]"


def compose_body(
    body: str,
    ctx: MsgContext,
    *,
    is_first_turn: bool,
    send_system_once: bool = False,
    aborted_last_run: bool = False,
    is_group: bool = False,
    session_intro: str = "",
    body_prefix: str = "",
    command_mode: bool = True,
    transcript: str | None = None,
    think_level: ThinkLevel | None = None,
) -> ComposedBody:
    """
    Build the prompt sent to the agent.

    Order: abort hint, group intro, session intro, body prefix, media note,
    media reply hint, body. Intros only go out on the first turn of a
    session; the prefix too when send_system_once is set.
    """
    message = body
    if command_mode and transcript:
        message = "\n\n".join(part for part in (message, f"Transcript:\n{transcript}") if part)

    media_note = build_media_note(ctx)
    if media_note:
        hint = MEDIA_REPLY_HINT if command_mode else None
        message = "\n".join(part for part in (media_note, hint, message) if part).strip()

    if body_prefix and (not send_system_once or is_first_turn):
        message = f"{body_prefix}{message}"

    blocks: list[str] = []
    if command_mode and aborted_last_run:
        blocks.append(ABORTED_HINT)
    if is_first_turn and is_group:
        blocks.append(build_group_intro(ctx.group_subject, ctx.group_members))
    if is_first_turn and session_intro:
        blocks.append(session_intro)
    blocks.append(message)
    text = "\n\n".join(blocks)

    # A bare level word left at the front (e.g. "high what's up") still counts.
    if think_level is None and text:
        parts = re.split(r"\s+", text.strip(), maxsplit=1)
        level = normalize_think_level(parts[0])
        if level:
            think_level = level
            text = parts[1].strip() if len(parts) > 1 else ""
    return ComposedBody(text=text, think_level=think_level)
