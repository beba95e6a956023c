"""Configuration loading utilities for replyclaw."""

import json
from pathlib import Path
from typing import Any

from loguru import logger

from replyclaw.config.schema import Config


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".replyclaw" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            data = _migrate_config(data)
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}; using default configuration")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json", exclude_none=True)
    data = convert_to_camel(data)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def _migrate_config(data: dict) -> dict:
    """Migrate old config formats to current."""
    if not isinstance(data, dict):
        return {}

    inbound = data.setdefault("inbound", {})
    if not isinstance(inbound, dict):
        inbound = {}
        data["inbound"] = inbound

    # transcribeAudio used to be a bare command list.
    transcribe = inbound.get("transcribeAudio")
    if isinstance(transcribe, list):
        inbound["transcribeAudio"] = {"command": transcribe}

    reply = inbound.get("reply")
    if isinstance(reply, dict):
        # A string command is split on whitespace, matching older configs.
        command = reply.get("command")
        if isinstance(command, str):
            reply["command"] = command.split()
        agent = reply.get("agent")
        if isinstance(agent, str):
            reply["agent"] = {"kind": agent}
        session = reply.get("session")
        if isinstance(session, dict):
            triggers = session.get("resetTriggers")
            if isinstance(triggers, str):
                session["resetTriggers"] = [triggers]
            session.setdefault("scope", "per-sender")
            # Typing interval moved from reply.session to reply.
            if "typingIntervalSeconds" in session and "typingIntervalSeconds" not in reply:
                reply["typingIntervalSeconds"] = session["typingIntervalSeconds"]

    queue = data.setdefault("queue", {})
    if isinstance(queue, dict):
        queue.setdefault("maxConcurrency", 1)
        queue.setdefault("warnAfterMs", 0)
    return data


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
