"""Agent command execution: runner and fairness queue."""

from replyclaw.process.command_queue import (
    CommandQueue,
    configure_command_queue,
    enqueue_command,
    get_command_queue,
)
from replyclaw.process.exec import (
    CommandResult,
    CommandRunner,
    CommandTimeoutError,
    run_command_with_timeout,
)

__all__ = [
    "CommandQueue",
    "CommandResult",
    "CommandRunner",
    "CommandTimeoutError",
    "configure_command_queue",
    "enqueue_command",
    "get_command_queue",
    "run_command_with_timeout",
]
