"""Inbound voice-note transcription through a configured command."""

from __future__ import annotations

import mimetypes
import tempfile
from pathlib import Path

import httpx
from loguru import logger

from replyclaw.auto_reply.templating import apply_template, build_template_context
from replyclaw.auto_reply.types import MsgContext
from replyclaw.config.schema import TranscribeAudioConfig
from replyclaw.process import CommandRunner, CommandTimeoutError, run_command_with_timeout


def is_audio(media_type: str | None) -> bool:
    return bool(media_type) and media_type.lower().startswith("audio")


async def download_media(
    url: str,
    media_type: str | None = None,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None,
) -> Path:
    """Fetch remote media into a temp file and return its path."""
    if client is None:
        async with httpx.AsyncClient(follow_redirects=True) as owned:
            return await download_media(url, media_type, timeout, client=owned)

    response = await client.get(url, timeout=timeout)
    response.raise_for_status()
    suffix = mimetypes.guess_extension(media_type or "") or ".bin"
    with tempfile.NamedTemporaryFile(prefix="replyclaw-audio-", suffix=suffix, delete=False) as tmp:
        tmp.write(response.content)
        return Path(tmp.name)


async def transcribe_inbound_audio(
    config: TranscribeAudioConfig,
    ctx: MsgContext,
    runner: CommandRunner = run_command_with_timeout,
) -> str | None:
    """
    Transcribe the message's audio attachment.

    Remote-only media is downloaded first. Returns the transcript, or None
    when nothing usable came back; failures are logged, not raised.
    """
    if not config.command:
        return None

    downloaded: Path | None = None
    media_path = ctx.media_path
    try:
        if not media_path and ctx.media_url:
            try:
                downloaded = await download_media(ctx.media_url, ctx.media_type)
            except httpx.HTTPError as e:
                logger.warning(f"Failed to download audio for transcription: {e}")
                return None
            media_path = str(downloaded)
        if not media_path:
            return None

        template_ctx = build_template_context(ctx)
        template_ctx["MediaPath"] = media_path
        argv = [apply_template(part, template_ctx) for part in config.command]
        try:
            result = await runner(argv, max(1, config.timeout_seconds) * 1000)
        except CommandTimeoutError:
            logger.warning(f"Audio transcription timed out after {config.timeout_seconds}s")
            return None
        except OSError as e:
            logger.warning(f"Audio transcription failed to start: {e}")
            return None

        if result.code not in (0, None):
            logger.warning(f"Audio transcription exited with code {result.code}: {result.stderr.strip()[:300]}")
            return None
        text = result.stdout.strip()
        if text:
            logger.debug(f"Transcribed audio ({len(text)} chars)")
        return text or None
    finally:
        if downloaded is not None:
            downloaded.unlink(missing_ok=True)
