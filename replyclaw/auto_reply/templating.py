"""{{Placeholder}} templating for prompts, intros and static replies."""

from __future__ import annotations

import re
from typing import Any

from replyclaw.auto_reply.types import MsgContext

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")


def build_template_context(
    ctx: MsgContext,
    *,
    body: str | None = None,
    session_id: str | None = None,
    is_new_session: bool = False,
) -> dict[str, Any]:
    """Expose message fields under the placeholder names used in config."""
    effective_body = ctx.body if body is None else body
    return {
        "Body": effective_body,
        "BodyStripped": effective_body,
        "From": ctx.from_,
        "To": ctx.to,
        "MessageSid": ctx.message_sid,
        "MediaPath": ctx.media_path,
        "MediaUrl": ctx.media_url,
        "MediaType": ctx.media_type,
        "Transcript": ctx.transcript,
        "ChatType": ctx.chat_type,
        "GroupSubject": ctx.group_subject,
        "GroupMembers": ctx.group_members,
        "SenderName": ctx.sender_name,
        "SessionId": session_id,
        "IsNewSession": "true" if is_new_session else "false",
    }


def apply_template(template: str | None, context: dict[str, Any]) -> str:
    """Replace {{Name}} placeholders; unknown or empty names become ''."""
    if not template:
        return ""

    def _sub(match: re.Match[str]) -> str:
        value = context.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_sub, template)
