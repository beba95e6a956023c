"""Think/verbose level normalization."""

from typing import Literal

ThinkLevel = Literal["off", "minimal", "low", "medium", "high"]
VerboseLevel = Literal["off", "on"]

THINK_LEVELS: tuple[str, ...] = ("off", "minimal", "low", "medium", "high")
VERBOSE_LEVELS: tuple[str, ...] = ("off", "on")

_THINK_ALIASES = {
    "off": "off",
    "min": "minimal",
    "minimal": "minimal",
    "low": "low",
    "thinkhard": "low",
    "think-hard": "low",
    "med": "medium",
    "medium": "medium",
    "harder": "medium",
    "thinkharder": "medium",
    "think-harder": "medium",
    "high": "high",
    "max": "high",
    "highest": "high",
    "ultra": "high",
    "ultrathink": "high",
}

_VERBOSE_ALIASES = {
    "off": "off",
    "false": "off",
    "no": "off",
    "0": "off",
    "on": "on",
    "true": "on",
    "yes": "on",
    "1": "on",
    "full": "on",
}


def normalize_think_level(raw: str | None) -> ThinkLevel | None:
    """Map user input to a canonical think level, or None when unrecognized."""
    if not raw:
        return None
    return _THINK_ALIASES.get(raw.strip().lower())  # type: ignore[return-value]


def normalize_verbose_level(raw: str | None) -> VerboseLevel | None:
    """Map user input to a canonical verbose level, or None when unrecognized."""
    if not raw:
        return None
    return _VERBOSE_ALIASES.get(raw.strip().lower())  # type: ignore[return-value]
