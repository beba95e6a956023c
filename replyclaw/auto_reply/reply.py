"""Reply engine: turns one inbound message into zero or more reply payloads."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from replyclaw.auto_reply.body import compose_body
from replyclaw.auto_reply.command_reply import Enqueue, run_command_reply
from replyclaw.auto_reply.directives import (
    ABORT_ACK,
    extract_think_directive,
    extract_verbose_directive,
    is_abort_trigger,
    is_directive_only,
    think_ack_text,
    unrecognized_think_text,
    unrecognized_verbose_text,
    verbose_ack_text,
)
from replyclaw.auto_reply.templating import apply_template, build_template_context
from replyclaw.auto_reply.transcription import is_audio, transcribe_inbound_audio
from replyclaw.auto_reply.types import GetReplyOptions, MsgContext, ReplyPayload
from replyclaw.config.schema import Config, ReplyConfig
from replyclaw.process import CommandRunner, enqueue_command, run_command_with_timeout
from replyclaw.session import AbortMemory, SessionResolver, SessionState, SessionStore
from replyclaw.session.store import is_group_sender
from replyclaw.utils.helpers import normalize_e164

DEFAULT_TYPING_INTERVAL_SECONDS = 8

ReplyResult = ReplyPayload | list[ReplyPayload] | None


class TypingIndicator:
    """Fires the typing callback once, then every interval while a command runs."""

    def __init__(self, callback: Callable[[], Awaitable[None]] | None, interval_s: float):
        self.callback = callback
        self.interval_s = interval_s
        self._started = False
        self._task: asyncio.Task | None = None

    async def _fire(self) -> None:
        if self.callback is None:
            return
        try:
            await self.callback()
        except Exception as e:
            logger.debug(f"Typing callback failed: {e}")

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        await self._fire()

    async def start_loop(self) -> None:
        if self.callback is None or self.interval_s <= 0 or self._task is not None:
            return
        self._started = True
        await self._fire()
        self._task = asyncio.create_task(self._loop())

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            await self._fire()

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class ReplyEngine:
    """
    Runs the reply pipeline for inbound messages.

    transcribe -> resolve session -> directives -> allow-list -> abort ->
    compose body -> static text or agent command. Every branch ends in a
    payload or None; only session-store IO errors propagate.
    """

    def __init__(
        self,
        config: Config,
        *,
        store: SessionStore | None = None,
        command_runner: CommandRunner = run_command_with_timeout,
        enqueue: Enqueue = enqueue_command,
        abort_memory: AbortMemory | None = None,
    ):
        self.config = config
        self.command_runner = command_runner
        self.enqueue = enqueue
        self.abort_memory = abort_memory if abort_memory is not None else AbortMemory()
        reply = config.inbound.reply
        self.resolver = (
            SessionResolver(reply.session, store=store) if reply is not None and reply.session is not None else None
        )

    def _typing_interval(self) -> float:
        reply = self.config.inbound.reply
        if reply is None or reply.mode != "command":
            return 0
        seconds = reply.typing_interval_seconds
        if seconds is None and reply.session is not None:
            seconds = reply.session.typing_interval_seconds
        return float(DEFAULT_TYPING_INTERVAL_SECONDS if seconds is None else seconds)

    def _is_allowed(self, sender: str, recipient: str, is_group: bool) -> bool:
        if sender and recipient and sender == recipient:
            logger.debug(f"Allowing same-phone mode: {sender}")
            return True
        allow_from = self.config.inbound.allow_from
        if is_group or not allow_from or "*" in allow_from:
            return True
        return sender in {normalize_e164(item) for item in allow_from}

    async def _transcribe(self, ctx: MsgContext) -> str | None:
        cfg = self.config.inbound.transcribe_audio
        if cfg is None or not is_audio(ctx.media_type):
            return None
        text = await transcribe_inbound_audio(cfg, ctx, self.command_runner)
        if text:
            ctx.body = text
            ctx.transcript = text
            logger.debug("Replaced body with audio transcript")
        return text

    def _directive_ack(
        self,
        state: SessionState | None,
        body: str,
        ctx: MsgContext,
        is_group: bool,
    ) -> tuple[ReplyPayload | None, str, str | None, str | None]:
        """
        Handle /think and /verbose.

        Returns (ack, cleaned_body, think_level, verbose_level); ack is set
        when the message carried nothing but directives.
        """
        think = extract_think_directive(body)
        verbose = extract_verbose_directive(think.cleaned)
        cleaned = verbose.cleaned
        mention_patterns = self.config.inbound.group_chat.mention_patterns
        only = is_directive_only(cleaned, is_group=is_group, self_id=ctx.to, mention_patterns=mention_patterns)

        if think.has_directive and only:
            if think.level is None:
                return ReplyPayload(text=unrecognized_think_text(think.raw_level)), cleaned, None, None
            parts = [think_ack_text(think.level)]
            if state is not None:
                state.entry.thinking_level = None if think.level == "off" else think.level
            if verbose.has_directive:
                if verbose.level is None:
                    parts.append(unrecognized_verbose_text(verbose.raw_level))
                else:
                    parts.append(verbose_ack_text(verbose.level))
                    if state is not None:
                        state.entry.verbose_level = None if verbose.level == "off" else verbose.level
            if state is not None:
                state.persist()
            return ReplyPayload(text=" ".join(parts)), cleaned, None, None

        if verbose.has_directive and only:
            if verbose.level is None:
                return ReplyPayload(text=unrecognized_verbose_text(verbose.raw_level)), cleaned, None, None
            if state is not None:
                state.entry.verbose_level = None if verbose.level == "off" else verbose.level
                state.persist()
            return ReplyPayload(text=verbose_ack_text(verbose.level)), cleaned, None, None

        return None, cleaned, think.level, verbose.level

    async def get_reply(self, ctx: MsgContext, opts: GetReplyOptions | None = None) -> ReplyResult:
        """
        Produce the reply for one inbound message.

        Returns None when nothing should be sent, a single payload, or a list
        when the agent produced several.
        """
        opts = opts or GetReplyOptions()
        reply = self.config.inbound.reply
        if reply is None:
            logger.debug("No inbound.reply configured; skipping auto-reply")
            return None

        typing = TypingIndicator(opts.on_reply_start, self._typing_interval())
        try:
            return await self._get_reply(ctx, opts, reply, typing)
        finally:
            typing.stop()

    async def _get_reply(
        self,
        ctx: MsgContext,
        opts: GetReplyOptions,
        reply: ReplyConfig,
        typing: TypingIndicator,
    ) -> ReplyResult:
        command_mode = reply.mode == "command"
        transcript = await self._transcribe(ctx)

        state: SessionState | None = None
        body = ctx.body or ""
        if self.resolver is not None:
            state = self.resolver.resolve(ctx.body, ctx.from_, probe=opts.is_heartbeat)
            if state.body_stripped is not None:
                body = state.body_stripped
        is_new_session = state.is_new_session if state else False
        system_sent = state.entry.system_sent if state else False
        aborted_last_run = state.entry.aborted_last_run if state else False

        is_group = ctx.chat_type == "group" or is_group_sender(ctx.from_)
        ack, body, inline_think, inline_verbose = self._directive_ack(state, body, ctx, is_group)
        if ack is not None:
            return ack

        think_level = inline_think or (state.entry.thinking_level if state else None) or reply.thinking_default
        verbose_level = inline_verbose or (state.entry.verbose_level if state else None) or reply.verbose_default

        sender = normalize_e164(ctx.from_)
        recipient = normalize_e164(ctx.to)
        if not self._is_allowed(sender, recipient, is_group):
            logger.debug(f"Skipping auto-reply: sender {sender or '<unknown>'} not in allow_from")
            return None

        abort_key = (state.key if state else None) or sender or recipient or None
        if state is None and abort_key:
            aborted_last_run = self.abort_memory.get(abort_key)

        if command_mode and is_abort_trigger(body):
            if state is not None:
                state.entry.aborted_last_run = True
                state.persist()
            elif abort_key:
                self.abort_memory.set(abort_key, True)
            logger.info(f"Abort requested by {sender or '<unknown>'}")
            return ReplyPayload(text=ABORT_ACK)

        if command_mode:
            await typing.start_loop()

        session_cfg = reply.session
        send_system_once = bool(session_cfg and session_cfg.send_system_once)
        is_first_turn = is_new_session or not system_sent
        session_id = state.session_id if state else None
        template_ctx = build_template_context(ctx, body=body, session_id=session_id, is_new_session=is_new_session)

        composed = compose_body(
            body,
            ctx,
            is_first_turn=is_first_turn,
            send_system_once=send_system_once,
            aborted_last_run=aborted_last_run,
            is_group=is_group,
            session_intro=apply_template(session_cfg.session_intro, template_ctx) if session_cfg else "",
            body_prefix=apply_template(reply.body_prefix, template_ctx),
            command_mode=command_mode,
            transcript=transcript,
            think_level=think_level,
        )
        think_level = composed.think_level

        if command_mode and aborted_last_run:
            if state is not None:
                state.entry.aborted_last_run = False
                state.persist()
            elif abort_key:
                self.abort_memory.set(abort_key, False)
        if state is not None and send_system_once and is_first_turn:
            state.entry.system_sent = True
            state.persist()

        template_ctx["Body"] = composed.text
        template_ctx["BodyStripped"] = composed.text

        if reply.mode == "text":
            if not reply.text:
                return None
            await typing.start()
            logger.debug("Using text auto-reply from config")
            return ReplyPayload(text=apply_template(reply.text, template_ctx), media_url=reply.media_url)

        command = reply.command
        if opts.is_heartbeat and reply.heartbeat_command:
            command = reply.heartbeat_command
        if not command:
            return None

        await typing.start()
        timeout_seconds = max(1, reply.timeout_seconds)
        result = await run_command_reply(
            reply.model_copy(update={"command": command}),
            template_ctx,
            timeout_ms=timeout_seconds * 1000,
            timeout_seconds=timeout_seconds,
            send_system_once=send_system_once,
            is_new_session=is_new_session,
            system_sent=system_sent,
            command_runner=self.command_runner,
            enqueue=self.enqueue,
            think_level=think_level,
            verbose_level=verbose_level,
            on_partial_reply=opts.on_partial_reply,
        )
        payloads = list(result.payloads)
        if not payloads:
            return None

        agent_meta = result.meta.agent_meta
        returned_id = agent_meta.session_id if agent_meta else None
        if state is not None and returned_id and returned_id != state.session_id:
            state.entry.session_id = returned_id
            state.persist()
            session_id = returned_id
            logger.debug(f"Session id updated from agent meta: {returned_id}")
        if agent_meta is not None:
            logger.debug(f"Agent meta: {agent_meta.to_dict()}")

        if verbose_level == "on" and is_new_session:
            payloads.insert(0, ReplyPayload(text=f"🧭 New session: {session_id or 'unknown'}"))
        return payloads[0] if len(payloads) == 1 else payloads
