"""Run the configured reply command and turn its output into payloads."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger

from replyclaw.agents import AgentMeta, AgentSpec, BuildArgsContext, detect_agent, get_agent_spec
from replyclaw.auto_reply.media import filter_media_by_size, split_media_from_output
from replyclaw.auto_reply.templating import apply_template
from replyclaw.auto_reply.types import ReplyPayload
from replyclaw.config.schema import ReplyConfig
from replyclaw.process import (
    CommandResult,
    CommandRunner,
    CommandTimeoutError,
    enqueue_command,
    run_command_with_timeout,
)
from replyclaw.utils.helpers import tail_text

_BODY_PLACEHOLDER_RE = re.compile(r"\{\{\s*Body\s*\}\}")

Enqueue = Callable[..., Awaitable[CommandResult]]
PartialReply = Callable[[ReplyPayload], Awaitable[None]]


@dataclass
class CommandReplyMeta:
    """Run metadata reported alongside the payloads."""

    duration_ms: int = 0
    queued_ms: int | None = None
    queued_ahead: int | None = None
    exit_code: int | None = None
    signal: str | None = None
    killed: bool = False
    agent_meta: AgentMeta | None = None


@dataclass
class CommandReplyResult:
    payloads: list[ReplyPayload] = field(default_factory=list)
    meta: CommandReplyMeta = field(default_factory=CommandReplyMeta)


def find_body_index(command: list[str]) -> int:
    """Index of the argument carrying {{Body}}, else the last argument."""
    for i, part in enumerate(command):
        if _BODY_PLACEHOLDER_RE.search(part):
            return i
    return max(0, len(command) - 1)


def resolve_agent_spec(reply: ReplyConfig, argv: list[str]) -> AgentSpec | None:
    if reply.agent and reply.agent.kind:
        return get_agent_spec(reply.agent.kind)
    return detect_agent(argv)


def format_tool_result(tool_name: str | None, meta: str | None, text: str) -> str:
    header = f"🛠️ {tool_name or 'tool'}"
    if meta:
        header += f" ({meta})"
    return f"{header}\n{text}" if text else header


def timeout_payload(timeout_seconds: int, partial: str) -> ReplyPayload:
    text = f"Command timed out after {timeout_seconds}s."
    if partial:
        text += f" Last output before timeout:\n{partial}"
    return ReplyPayload(text=text)


def _build_payload(text: str, max_mb: float | None) -> ReplyPayload | None:
    cleaned, media = split_media_from_output(text)
    media = filter_media_by_size(media, max_mb)
    if not cleaned and not media:
        return None
    return ReplyPayload(
        text=cleaned or None,
        media_url=media[0] if media else None,
        media_urls=media or None,
    )


async def _collect_payloads(
    spec: AgentSpec | None,
    result: CommandResult,
    meta: CommandReplyMeta,
    max_mb: float | None,
    verbose_level: str | None,
    on_partial_reply: PartialReply | None,
) -> list[ReplyPayload]:
    texts: list[str] = []
    payloads: list[ReplyPayload] = []
    if spec is not None:
        parsed = spec.parse_output(result.stdout)
        texts = list(parsed.texts)
        meta.agent_meta = parsed.meta
        if verbose_level == "on":
            for tool in parsed.tool_results:
                payload = ReplyPayload(text=format_tool_result(tool.tool_name, tool.meta, tool.text))
                if on_partial_reply is not None:
                    await on_partial_reply(payload)
                else:
                    payloads.append(payload)
    if not texts and result.stdout.strip():
        texts = [result.stdout.strip()]

    for text in texts:
        payload = _build_payload(text, max_mb)
        if payload is not None:
            payloads.append(payload)

    if result.code not in (0, None) and not texts:
        text = f"(command exited with code {result.code})"
        stderr = tail_text(result.stderr, 400)
        if stderr:
            text += f"\n{stderr}"
        logger.warning(f"Reply command exited with code {result.code}")
        payloads.append(ReplyPayload(text=text))
    return payloads


async def run_command_reply(
    reply: ReplyConfig,
    templating_ctx: dict[str, Any],
    *,
    timeout_ms: int,
    timeout_seconds: int,
    send_system_once: bool = False,
    is_new_session: bool = False,
    system_sent: bool = False,
    command_runner: CommandRunner = run_command_with_timeout,
    enqueue: Enqueue = enqueue_command,
    think_level: str | None = None,
    verbose_level: str | None = None,
    on_partial_reply: PartialReply | None = None,
) -> CommandReplyResult:
    """
    Invoke the reply command once.

    Failures never escape: timeouts, runner errors and unreadable output
    come back as a text payload so the sender always gets an answer.

    Args:
        reply: Reply config; `reply.command` is the argv template.
        templating_ctx: Values for {{Placeholder}} substitution.
        timeout_ms: Wall-clock limit handed to the runner.
        timeout_seconds: Same limit, as shown to the user on timeout.
        command_runner: Executes argv; raises CommandTimeoutError when killed.
        enqueue: Fairness queue; called as `enqueue(task, on_wait=...)`.
        think_level: Resolved thinking level forwarded to the agent.
        verbose_level: "on" surfaces tool results as extra payloads.
        on_partial_reply: When set, tool results are streamed here instead.

    Returns:
        Payloads plus run metadata.
    """
    if not reply.command:
        raise ValueError("reply.command is required in command mode")

    body_index = find_body_index(reply.command)
    argv = [apply_template(part, templating_ctx) for part in reply.command]
    spec = resolve_agent_spec(reply, argv)
    if spec is not None:
        agent_cfg = reply.agent
        session_cfg = reply.session
        identity = agent_cfg.identity_prefix if agent_cfg else None
        argv = spec.build_args(
            BuildArgsContext(
                argv=argv,
                body_index=body_index,
                is_new_session=is_new_session,
                session_id=templating_ctx.get("SessionId"),
                send_system_once=send_system_once,
                system_sent=system_sent,
                identity_prefix=apply_template(identity, templating_ctx) if identity else None,
                format=agent_cfg.format if agent_cfg else "text",
                think_level=think_level,
                session_arg_new=session_cfg.session_arg_new if session_cfg else None,
                session_arg_resume=session_cfg.session_arg_resume if session_cfg else None,
            )
        )

    meta = CommandReplyMeta()
    queue_wait: dict[str, int] = {}

    def on_wait(waited_ms: int, ahead: int) -> None:
        queue_wait["ms"] = waited_ms
        queue_wait["ahead"] = ahead

    started = time.monotonic()
    logger.debug(f"Running reply command: {argv[0]} ({len(argv)} args)")

    try:
        result = await enqueue(lambda: command_runner(argv, timeout_ms), on_wait=on_wait)
    except Exception as e:
        meta.duration_ms = int((time.monotonic() - started) * 1000)
        meta.queued_ms = queue_wait.get("ms")
        meta.queued_ahead = queue_wait.get("ahead")
        if isinstance(e, CommandTimeoutError) or getattr(e, "killed", False):
            partial = tail_text(getattr(e, "stdout", "") or "")
            meta.killed = True
            meta.exit_code = getattr(e, "code", None)
            meta.signal = getattr(e, "signal", None)
            logger.warning(f"Reply command timed out after {timeout_seconds}s")
            return CommandReplyResult(payloads=[timeout_payload(timeout_seconds, partial)], meta=meta)
        logger.error(f"Reply command failed: {e}")
        return CommandReplyResult(payloads=[ReplyPayload(text=f"Command failed: {e}")], meta=meta)

    meta.duration_ms = int((time.monotonic() - started) * 1000)
    meta.queued_ms = queue_wait.get("ms")
    meta.queued_ahead = queue_wait.get("ahead")
    meta.exit_code = result.code
    meta.signal = result.signal
    meta.killed = result.killed

    if result.killed:
        logger.warning(f"Reply command was killed after {meta.duration_ms}ms")
        return CommandReplyResult(payloads=[timeout_payload(timeout_seconds, tail_text(result.stdout))], meta=meta)

    try:
        payloads = await _collect_payloads(
            spec, result, meta, reply.media_max_mb, verbose_level, on_partial_reply
        )
    except Exception as e:
        logger.error(f"Reply command output could not be handled: {e}")
        return CommandReplyResult(payloads=[ReplyPayload(text=f"Command failed: {e}")], meta=meta)

    logger.info(
        f"Reply command finished in {meta.duration_ms}ms "
        f"(code {result.code}, {len(payloads)} payload(s))"
    )
    return CommandReplyResult(payloads=payloads, meta=meta)
