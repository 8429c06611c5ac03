"""AgentRunner against real child processes.

Each test points the runner at a small shell script standing in for the
agent CLI.
"""

import asyncio
import sys
import time
from io import StringIO

import pytest
from rich.console import Console

from src.factory.config import RunConfiguration
from src.factory.console import Reporter
from src.factory.interrupts import InterruptController
from src.factory.runner.agent import AgentInterruptedError, AgentRunner


pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX process groups")


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _fake_agent(tmp_path, body):
    script = tmp_path / "fake-agent"
    script.write_text("#!/bin/sh\n" + body + "\n")
    script.chmod(0o755)
    return str(script)


@pytest.fixture
def controller():
    return InterruptController()


@pytest.fixture
def runner(controller):
    return AgentRunner(
        Reporter(Console(file=StringIO(), width=200, color_system=None)),
        interrupts=controller,
    )


def test_interrupt_stops_agent_that_ignores_terminate(tmp_path, runner, controller, monkeypatch):
    monkeypatch.setattr("src.factory.runner.agent.TERMINATE_GRACE_SECONDS", 0.5)
    config = RunConfiguration(
        requirement="x",
        agent_path=_fake_agent(tmp_path, "trap '' TERM\nsleep 20"),
        agent_timeout_seconds=15,
    )

    async def interrupted_call():
        asyncio.get_running_loop().call_later(0.5, controller.request)
        return await runner.invoke("x", False, config)

    started = time.monotonic()
    with pytest.raises(AgentInterruptedError):
        run_async(interrupted_call())

    assert time.monotonic() - started < 10


def test_successful_agent_output_is_captured(tmp_path, runner):
    config = RunConfiguration(
        requirement="x",
        agent_path=_fake_agent(
            tmp_path,
            """echo '{"type":"assistant","message":{"content":[{"type":"text","text":"done"}]}}'""",
        ),
    )

    result = run_async(runner.invoke("x", False, config))

    assert result.success is True
    assert result.output == "done"
