"""Command-line agent contracts and their registry."""

from replyclaw.agents.base import (
    AgentKind,
    AgentMeta,
    AgentParseResult,
    AgentSpec,
    AgentToolResult,
    BuildArgsContext,
)
from replyclaw.agents.pi import PiAgentSpec

_SPECS: dict[AgentKind, AgentSpec] = {
    AgentKind.PI: PiAgentSpec(),
}


def get_agent_spec(kind: AgentKind | str) -> AgentSpec:
    """Look up the contract for an agent kind. Raises ValueError for unknown kinds."""
    return _SPECS[AgentKind(kind)]


def detect_agent(argv: list[str]) -> AgentSpec | None:
    """Find the contract whose command line matches argv, if any."""
    for spec in _SPECS.values():
        if spec.is_invocation(argv):
            return spec
    return None


__all__ = [
    "AgentKind",
    "AgentMeta",
    "AgentParseResult",
    "AgentSpec",
    "AgentToolResult",
    "BuildArgsContext",
    "PiAgentSpec",
    "detect_agent",
    "get_agent_spec",
]
