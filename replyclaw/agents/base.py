"""Agent contract shared by command-line agent integrations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class AgentKind(str, Enum):
    """Known command-line agents."""

    PI = "pi"


@dataclass
class AgentMeta:
    """Run metadata reported by the agent for its final assistant turn."""

    model: str | None = None
    provider: str | None = None
    stop_reason: str | None = None
    session_id: str | None = None
    usage: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "model": self.model,
            "provider": self.provider,
            "stop_reason": self.stop_reason,
            "session_id": self.session_id,
            "usage": self.usage,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class AgentToolResult:
    """Text emitted by a tool during the run."""

    text: str
    tool_name: str | None = None
    meta: str | None = None


@dataclass
class AgentParseResult:
    """Structured view over one agent invocation's stdout."""

    # Plural: agents may emit several assistant turns per prompt.
    texts: list[str] = field(default_factory=list)
    tool_results: list[AgentToolResult] = field(default_factory=list)
    meta: AgentMeta | None = None


@dataclass
class BuildArgsContext:
    """Inputs for turning a configured command into the final argv."""

    argv: list[str]
    body_index: int  # index of the prompt/body argument in argv
    is_new_session: bool
    session_id: str | None = None
    send_system_once: bool = False
    system_sent: bool = False
    identity_prefix: str | None = None
    format: Literal["text", "json"] | None = None
    think_level: str | None = None
    session_arg_new: list[str] | None = None
    session_arg_resume: list[str] | None = None


class AgentSpec(ABC):
    """
    Contract an agent integration implements.

    Each agent knows how to recognize its own command line, how to add the
    flags it needs for non-interactive runs, and how to read its output.
    """

    kind: AgentKind

    @abstractmethod
    def is_invocation(self, argv: list[str]) -> bool:
        """Return True when argv launches this agent."""

    @abstractmethod
    def build_args(self, ctx: BuildArgsContext) -> list[str]:
        """Return a new argv with the agent's required flags applied."""

    @abstractmethod
    def parse_output(self, raw_stdout: str) -> AgentParseResult:
        """Parse the agent's stdout."""
