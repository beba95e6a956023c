"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from replyclaw.agents.base import AgentKind
from replyclaw.auto_reply.thinking import normalize_think_level, normalize_verbose_level


class AgentConfig(BaseModel):
    """Agent contract selection for command replies."""
    kind: AgentKind | None = None  # Auto-detected from the command when unset
    format: Literal["text", "json"] = "text"
    identity_prefix: str | None = None


class SessionConfig(BaseModel):
    """Conversation reuse policy for command replies."""
    scope: Literal["per-sender", "global"] = "per-sender"
    reset_triggers: list[str] = Field(default_factory=lambda: ["/new"])
    idle_minutes: int = 60
    heartbeat_idle_minutes: int | None = None
    store: str | None = None  # Path to sessions.json; defaults to ~/.replyclaw/sessions/sessions.json
    session_intro: str | None = None
    send_system_once: bool = False
    session_arg_new: list[str] | None = None
    session_arg_resume: list[str] | None = None
    typing_interval_seconds: int | None = None

    @field_validator("idle_minutes", mode="before")
    @classmethod
    def clamp_idle_minutes(cls, value: int | None) -> int:
        try:
            return max(1, int(value if value is not None else 60))
        except (TypeError, ValueError):
            return 60

    @field_validator("scope", mode="before")
    @classmethod
    def normalize_scope(cls, value: str) -> str:
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            if normalized:
                return normalized
        return "per-sender"


class ReplyConfig(BaseModel):
    """How inbound messages are answered."""
    mode: Literal["text", "command"] = "command"
    text: str | None = None  # Static reply template for text mode
    media_url: str | None = None
    command: list[str] = Field(default_factory=list)  # e.g. ["pi", "{{Body}}"]
    heartbeat_command: list[str] | None = None
    body_prefix: str | None = None
    timeout_seconds: int = 600
    typing_interval_seconds: int | None = None
    media_max_mb: float | None = None
    thinking_default: str | None = None
    verbose_default: str | None = None
    heartbeat_minutes: int | None = None
    agent: AgentConfig | None = None
    session: SessionConfig | None = None

    @field_validator("thinking_default", mode="before")
    @classmethod
    def normalize_thinking_default(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        level = normalize_think_level(str(value))
        if level is None:
            raise ValueError(f"invalid thinking level: {value}")
        return level

    @field_validator("verbose_default", mode="before")
    @classmethod
    def normalize_verbose_default(cls, value: str | bool | None) -> str | None:
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            return "on" if value else "off"
        level = normalize_verbose_level(str(value))
        if level is None:
            raise ValueError(f"invalid verbose level: {value}")
        return level


class TranscribeAudioConfig(BaseModel):
    """External command used to transcribe inbound voice notes."""
    command: list[str] = Field(default_factory=list)  # e.g. ["whisper-cli", "{{MediaPath}}"]
    timeout_seconds: int = 45


class GroupChatConfig(BaseModel):
    """Group chat handling."""
    mention_patterns: list[str] = Field(default_factory=list)


class InboundConfig(BaseModel):
    """Inbound message handling."""
    allow_from: list[str] = Field(default_factory=list)  # E.164 numbers, "*" allows all
    transcribe_audio: TranscribeAudioConfig | None = None
    group_chat: GroupChatConfig = Field(default_factory=GroupChatConfig)
    reply: ReplyConfig | None = None


class QueueConfig(BaseModel):
    """Process-wide agent command queue."""
    max_concurrency: int = Field(default=1, ge=1, le=64)
    warn_after_ms: int = Field(default=0, ge=0)


class Config(BaseSettings):
    """Root configuration for replyclaw."""
    inbound: InboundConfig = Field(default_factory=InboundConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)

    class Config:
        env_prefix = "REPLYCLAW_"
        env_nested_delimiter = "__"
