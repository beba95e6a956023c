"""Utility helpers for replyclaw."""

from replyclaw.utils.helpers import ensure_dir, normalize_e164, tail_text

__all__ = ["ensure_dir", "normalize_e164", "tail_text"]
