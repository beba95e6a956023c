"""Contract for the `pi` coding agent (also shipped as `tau`)."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from replyclaw.agents.base import (
    AgentKind,
    AgentMeta,
    AgentParseResult,
    AgentSpec,
    AgentToolResult,
    BuildArgsContext,
)

_MESSAGE_EVENTS = {"message", "message_end"}


def default_session_file(session_id: str) -> str:
    """Per-session transcript file handed to pi via --session."""
    return str(Path.home() / ".replyclaw" / "sessions" / "pi" / f"{session_id}.jsonl")


def _join_text_parts(content: Any) -> str:
    if not isinstance(content, list):
        return ""
    parts = [
        part["text"]
        for part in content
        if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str)
    ]
    return "\n".join(parts).strip()


def _infer_tool_name(msg: dict[str, Any]) -> str | None:
    for key in ("toolName", "name", "toolCallId", "tool_call_id"):
        value = msg.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    role = msg.get("role")
    if isinstance(role, str) and ":" in role:
        suffix = role.split(":", 1)[1].strip()
        if suffix:
            return suffix
    return None


def _derive_tool_meta(msg: dict[str, Any]) -> str | None:
    details = msg.get("details")
    if details is None:
        details = msg.get("arguments")
    if not isinstance(details, dict):
        return None

    def _number(value: Any) -> int | float | None:
        # bool is an int subclass; it is not a usable offset.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value

    path = details.get("path")
    if isinstance(path, str) and path:
        offset = _number(details.get("offset"))
        limit = _number(details.get("limit"))
        if offset is not None and limit is not None:
            return f"{path}:{offset}-{offset + limit}"
        return path
    command = details.get("command")
    if isinstance(command, str) and command:
        return command
    return None


def _read_message(line: str) -> dict[str, Any] | None:
    """Decode one event line; return its message when it is a completed one."""
    if not line.strip().startswith("{"):
        return None
    try:
        event = json.loads(line)
    except (json.JSONDecodeError, RecursionError):
        return None
    if not isinstance(event, dict):
        return None
    event_type = event.get("type")
    if not isinstance(event_type, str) or event_type not in _MESSAGE_EVENTS:
        return None
    msg = event.get("message")
    if not isinstance(msg, dict):
        return None
    role = msg.get("role")
    if not isinstance(role, str) or not role:
        return None
    return msg


def parse_pi_json(raw: str) -> AgentParseResult:
    """
    Parse pi's line-delimited JSON event stream.

    Only completed assistant messages and tool results are collected;
    streaming updates are ignored. Malformed lines are skipped.
    """
    result = AgentParseResult()
    last_assistant: dict[str, Any] | None = None
    last_pushed: str | None = None

    for line in re.split(r"\n+", raw or ""):
        msg = _read_message(line)
        if msg is None:
            continue
        role = msg["role"]
        content = msg.get("content")
        try:
            if role == "assistant" and isinstance(content, list):
                text = _join_text_parts(content)
                if text and text != last_pushed:
                    result.texts.append(text)
                    last_pushed = text
                    last_assistant = msg
            elif "tool" in role.lower() and content:
                text = _join_text_parts(content)
                if text:
                    result.tool_results.append(
                        AgentToolResult(
                            text=text,
                            tool_name=_infer_tool_name(msg),
                            meta=_derive_tool_meta(msg),
                        )
                    )
        except (TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Skipping malformed pi event: {e}")

    if last_assistant is not None and result.texts:
        usage = last_assistant.get("usage")
        result.meta = AgentMeta(
            model=last_assistant.get("model"),
            provider=last_assistant.get("provider"),
            stop_reason=last_assistant.get("stopReason"),
            usage=usage if isinstance(usage, dict) else None,
        )
    return result


class PiAgentSpec(AgentSpec):
    """pi runs non-interactively with -p and streams JSON events with --mode json."""

    kind = AgentKind.PI

    def is_invocation(self, argv: list[str]) -> bool:
        if not argv:
            return False
        base = re.sub(r"\.m?js$", "", Path(argv[0]).name, flags=re.IGNORECASE)
        return base in {"pi", "tau"}

    def build_args(self, ctx: BuildArgsContext) -> list[str]:
        argv = list(ctx.argv)
        body_pos = max(0, min(ctx.body_index, len(argv)))

        if "-p" not in argv and "--print" not in argv:
            argv.insert(body_pos, "-p")
            body_pos += 1
        if ctx.format == "json" and "--mode" not in argv:
            argv[body_pos:body_pos] = ["--mode", "json"]
            body_pos += 2
        if ctx.think_level and ctx.think_level != "off" and "--thinking" not in argv:
            argv[body_pos:body_pos] = ["--thinking", ctx.think_level]
            body_pos += 2
        if ctx.session_id and "--session" not in argv:
            session_args = self._session_args(ctx)
            argv[body_pos:body_pos] = session_args
            body_pos += len(session_args)

        if not (ctx.send_system_once and ctx.system_sent) and body_pos < len(argv) and argv[body_pos]:
            argv[body_pos] = "\n\n".join(part for part in (ctx.identity_prefix, argv[body_pos]) if part)
        return argv

    @staticmethod
    def _session_args(ctx: BuildArgsContext) -> list[str]:
        session_id = ctx.session_id or ""
        if ctx.is_new_session:
            template = ctx.session_arg_new or ["--session", default_session_file(session_id)]
        else:
            template = ctx.session_arg_resume or ["--session", default_session_file(session_id), "--continue"]
        return [arg.replace("{{SessionId}}", session_id) for arg in template]

    def parse_output(self, raw_stdout: str) -> AgentParseResult:
        return parse_pi_json(raw_stdout)
