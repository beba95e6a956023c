"""Path and text helpers."""

import re
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if needed."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def normalize_e164(value: str | None) -> str:
    """Strip the `whatsapp:` transport prefix from a phone identifier."""
    return re.sub(r"^whatsapp:", "", (value or "").strip())


def tail_text(text: str | None, max_len: int = 800) -> str:
    """Return the trailing `max_len` characters of text, trimmed."""
    value = (text or "").strip()
    if len(value) <= max_len:
        return value
    return "..." + value[-max_len:].lstrip()
