from pathlib import Path

import httpx

from replyclaw.auto_reply import transcription
from replyclaw.auto_reply.transcription import download_media, is_audio, transcribe_inbound_audio
from replyclaw.auto_reply.types import MsgContext
from replyclaw.config.schema import TranscribeAudioConfig
from replyclaw.process import CommandResult, CommandTimeoutError


class FakeRunner:
    def __init__(self, result: CommandResult | None = None, error: Exception | None = None) -> None:
        self.result = result or CommandResult(stdout="words\n", stderr="", code=0)
        self.error = error
        self.calls: list[tuple[list[str], int]] = []

    async def __call__(self, argv, timeout_ms):
        self.calls.append((argv, timeout_ms))
        if self.error is not None:
            raise self.error
        return self.result


CFG = TranscribeAudioConfig(command=["whisper", "{{MediaPath}}"], timeout_seconds=10)


def test_is_audio() -> None:
    assert is_audio("audio/ogg; codecs=opus")
    assert not is_audio("image/png")
    assert not is_audio(None)


async def test_transcribes_local_file() -> None:
    runner = FakeRunner()

    text = await transcribe_inbound_audio(CFG, MsgContext(media_path="/tmp/v.ogg", media_type="audio/ogg"), runner)

    assert text == "words"
    assert runner.calls == [(["whisper", "/tmp/v.ogg"], 10_000)]


async def test_failed_or_timed_out_transcription_returns_none() -> None:
    ctx = MsgContext(media_path="/tmp/v.ogg", media_type="audio/ogg")

    failed = await transcribe_inbound_audio(CFG, ctx, FakeRunner(CommandResult(stdout="", stderr="boom", code=1)))
    timed_out = await transcribe_inbound_audio(CFG, ctx, FakeRunner(error=CommandTimeoutError("slow")))

    assert failed is None
    assert timed_out is None


async def test_remote_audio_is_downloaded_and_cleaned_up(tmp_path: Path, monkeypatch) -> None:
    downloaded = tmp_path / "voice.ogg"

    async def fake_download(url, media_type=None, timeout=30.0, client=None):
        downloaded.write_bytes(b"OggS")
        return downloaded

    monkeypatch.setattr(transcription, "download_media", fake_download)
    runner = FakeRunner()

    text = await transcribe_inbound_audio(
        CFG, MsgContext(media_url="https://x.test/v.ogg", media_type="audio/ogg"), runner
    )

    assert text == "words"
    assert runner.calls[0][0] == ["whisper", str(downloaded)]
    assert not downloaded.exists()


async def test_download_failure_returns_none(monkeypatch) -> None:
    async def failing_download(url, media_type=None, timeout=30.0, client=None):
        raise httpx.ConnectError("down")

    monkeypatch.setattr(transcription, "download_media", failing_download)
    runner = FakeRunner()

    text = await transcribe_inbound_audio(CFG, MsgContext(media_url="https://x.test/v.ogg"), runner)

    assert text is None
    assert runner.calls == []


async def test_download_media_writes_response_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"audio-bytes")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        path = await download_media("https://x.test/v.ogg", "audio/ogg", client=client)

    try:
        assert path.read_bytes() == b"audio-bytes"
    finally:
        path.unlink(missing_ok=True)
