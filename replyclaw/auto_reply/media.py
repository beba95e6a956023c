"""Extract MEDIA:<token> lines from agent output."""

from __future__ import annotations

import re
from pathlib import Path

from loguru import logger

_MEDIA_LINE_RE = re.compile(r"^\s*MEDIA:(\S+)\s*$")
_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def is_url(value: str) -> bool:
    return bool(_URL_RE.match(value))


def split_media_from_output(raw: str | None) -> tuple[str, list[str]]:
    """
    Separate MEDIA tokens from text.

    A token is a whole line of the form `MEDIA:<value>` with no whitespace
    inside the value; any other line stays in the text.

    Returns:
        (text, media) with text trimmed.
    """
    text_lines: list[str] = []
    media: list[str] = []
    for line in (raw or "").splitlines():
        match = _MEDIA_LINE_RE.match(line)
        if match:
            media.append(match.group(1))
        else:
            text_lines.append(line)
    return "\n".join(text_lines).strip(), media


def filter_media_by_size(media: list[str], max_mb: float | None) -> list[str]:
    """
    Drop local files larger than max_mb.

    URLs always pass. Without a cap, local paths pass unchecked. With a cap,
    paths that cannot be resolved or stat'ed are dropped as well.
    """
    if not max_mb or max_mb <= 0:
        return list(media)
    max_bytes = int(max_mb * 1024 * 1024)
    kept: list[str] = []
    for item in media:
        if is_url(item):
            kept.append(item)
            continue
        try:
            size = Path(item.removeprefix("file://")).expanduser().stat().st_size
        except (OSError, ValueError, RuntimeError) as e:
            logger.warning(f"Dropping media {item}: {e}")
            continue
        if size > max_bytes:
            logger.warning(f"Dropping media {item}: {size} bytes exceeds {max_mb}MB cap")
            continue
        kept.append(item)
    return kept
