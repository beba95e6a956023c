import asyncio
import time

import pytest

from replyclaw.process import CommandTimeoutError, run_command_with_timeout


async def test_run_command_collects_output_and_exit_code() -> None:
    result = await run_command_with_timeout(["sh", "-c", "echo out; echo err 1>&2; exit 3"], 5000)

    assert result.stdout.strip() == "out"
    assert result.stderr.strip() == "err"
    assert result.code == 3
    assert result.killed is False
    assert result.signal is None


async def test_timeout_kills_process_and_keeps_partial_output() -> None:
    with pytest.raises(CommandTimeoutError) as excinfo:
        await run_command_with_timeout(["sh", "-c", "echo partial; exec sleep 5"], 500)

    err = excinfo.value
    assert "partial" in err.stdout
    assert err.killed is True
    assert err.signal == "SIGKILL"


async def test_signal_exit_is_reported() -> None:
    result = await run_command_with_timeout(["sh", "-c", "kill -TERM $$"], 5000)

    assert result.signal == "SIGTERM"


async def test_empty_argv_is_rejected() -> None:
    with pytest.raises(ValueError):
        await run_command_with_timeout([], 1000)


async def test_env_is_layered_over_current_environment() -> None:
    result = await run_command_with_timeout(["sh", "-c", "echo $REPLYCLAW_TEST_VAR"], 5000, env={"REPLYCLAW_TEST_VAR": "yes"})

    assert result.stdout.strip() == "yes"


async def test_timeout_applies_after_child_closes_its_output() -> None:
    started = time.monotonic()

    with pytest.raises(CommandTimeoutError) as excinfo:
        await asyncio.wait_for(
            run_command_with_timeout(["sh", "-c", "exec >&- 2>&-; sleep 5"], 300),
            timeout=3,
        )

    assert excinfo.value.killed is True
    assert time.monotonic() - started < 2.5
