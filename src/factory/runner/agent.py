"""Agent CLI subprocess management.

Executes the coding-agent CLI as an async subprocess, renders its streamed
event output as it arrives, and maps the exit status to one of three
outcomes: success, failure (the calling stage decides what to do) or
interrupted (the whole run is cancelled).

Exactly one agent subprocess is live at a time. It runs in its own process
group so that signals reach anything it spawned, and the group is always
reaped before the invocation returns, including on timeout and on operator
interrupt.
"""

import asyncio
import logging
import os
import shlex
import signal
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from src.factory.config import RunConfiguration
from src.factory.console import Reporter
from src.factory.interrupts import InterruptController, get_controller
from src.factory.runner.stream import StreamDecoder, StreamRenderer


logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
INTERRUPT_EXIT_CODES = frozenset({130, 2})
EXIT_INSTRUCTION = "Once the work is completed, exit."
READ_CHUNK_SIZE = 4096
TERMINATE_GRACE_SECONDS = 5.0


class AgentOutcome(str, Enum):
    """How an agent invocation ended."""

    SUCCESS = "success"
    FAILURE = "failure"
    INTERRUPTED = "interrupted"


class AgentInterruptedError(Exception):
    """Raised when the agent was interrupted; cancels the whole run.

    Attributes:
        exit_code: The agent's exit code, if it exited on its own.
    """

    def __init__(self, exit_code: Optional[int] = None):
        self.exit_code = exit_code
        super().__init__(f"Agent interrupted (exit code {exit_code})")


def permission_args(config: RunConfiguration) -> List[str]:
    """Return the permission flags for the agent.

    Skip-all and the tool allowlist are mutually exclusive; skip-all wins.
    """
    if config.skip_permissions:
        return ["--dangerously-skip-permissions"]
    if config.allowed_tools:
        return ["--allowedTools", config.allowed_tools]
    return []


class AgentInvocation(BaseModel):
    """One call into the agent process. Never persisted.

    Attributes:
        prompt: The instruction text.
        continue_conversation: Resume the previous agent conversation.
        permission_args: Effective permission flags from the configuration.
        streaming: Request newline-delimited JSON events instead of text.
        agent_path: Executable to run.
    """

    prompt: str
    continue_conversation: bool = False
    permission_args: List[str] = Field(default_factory=list)
    streaming: bool = True
    agent_path: str = "claude"

    @classmethod
    def for_stage(
        cls, prompt: str, continuation: bool, config: RunConfiguration
    ) -> "AgentInvocation":
        """Build a streaming stage invocation with the exit instruction."""
        return cls(
            prompt=f"{prompt.rstrip()}. {EXIT_INSTRUCTION}",
            continue_conversation=continuation,
            permission_args=permission_args(config),
            streaming=True,
            agent_path=config.agent_path,
        )

    @classmethod
    def for_query(cls, prompt: str, config: RunConfiguration) -> "AgentInvocation":
        """Build a one-shot, plain-text classification request."""
        return cls(
            prompt=prompt,
            continue_conversation=False,
            permission_args=permission_args(config),
            streaming=False,
            agent_path=config.agent_path,
        )

    def to_args(self) -> List[str]:
        """Return the full argument list; the prompt is always last."""
        args = [self.agent_path, *self.permission_args]
        if self.continue_conversation:
            args.append("-c")
        args.append("--print")
        if self.streaming:
            args.extend(["--output-format", "stream-json", "--verbose"])
        args.append(self.prompt)
        return args


def classify_exit(exit_code: Optional[int], interrupted: bool) -> AgentOutcome:
    """Map an exit code to an outcome.

    A negative code means the child was killed by a signal; together with
    the agreed interrupt codes and an operator interrupt observed during
    the call, that is an interrupt rather than a failure.
    """
    if interrupted:
        return AgentOutcome.INTERRUPTED
    if exit_code is None:
        return AgentOutcome.FAILURE
    if exit_code in INTERRUPT_EXIT_CODES or exit_code < 0:
        return AgentOutcome.INTERRUPTED
    if exit_code == EXIT_SUCCESS:
        return AgentOutcome.SUCCESS
    return AgentOutcome.FAILURE


@dataclass
class AgentResult:
    """Result of an agent invocation.

    Attributes:
        success: True when the agent exited with code 0.
        output: The agent's reply text (text blocks when streaming).
        exit_code: Process exit code (-1 for timeout/OS errors).
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
    """

    success: bool
    output: str = ""
    exit_code: int = 0
    stderr: str = ""
    duration_seconds: float = 0.0


class AgentRunner:
    """Manages agent CLI subprocess execution.

    Attributes:
        reporter: Operator output; its console receives the rendered stream.
        interrupts: Controller that terminates the live child on interrupt.
    """

    def __init__(
        self,
        reporter: Reporter,
        interrupts: Optional[InterruptController] = None,
    ):
        self.reporter = reporter
        self.interrupts = interrupts or get_controller()

    async def invoke(
        self,
        prompt: str,
        continuation: bool,
        config: RunConfiguration,
    ) -> AgentResult:
        """Run one pipeline stage through the agent.

        Args:
            prompt: Stage instruction.
            continuation: Resume the previous conversation.
            config: Run configuration.

        Returns:
            AgentResult; success is False for any non-interrupt failure,
            including a missing agent binary and a timeout.

        Raises:
            AgentInterruptedError: If the agent was interrupted.
        """
        invocation = AgentInvocation.for_stage(prompt, continuation, config)
        args = invocation.to_args()

        if config.dry_run:
            self.reporter.dry_run(shlex.join(args))
            return AgentResult(success=True)

        self.reporter.info("Calling agent...")
        renderer = StreamRenderer(self.reporter.console)
        result = await self._execute(
            args,
            config,
            renderer=renderer,
            forward_stdin=config.interactive,
        )

        if result.success:
            self.reporter.success("Agent completed")
        else:
            self.reporter.error(f"Agent exited with code {result.exit_code}")
        return result

    async def query(self, prompt: str, config: RunConfiguration) -> AgentResult:
        """Send a one-shot classification request and capture the reply.

        Raises:
            AgentInterruptedError: If the agent was interrupted.
        """
        args = AgentInvocation.for_query(prompt, config).to_args()

        if config.dry_run:
            logger.info("Dry run, skipping agent query")
            return AgentResult(success=True)

        return await self._execute(args, config, renderer=None, forward_stdin=False)

    async def _execute(
        self,
        args: List[str],
        config: RunConfiguration,
        renderer: Optional[StreamRenderer],
        forward_stdin: bool,
    ) -> AgentResult:
        """Start the process, collect its output and map the exit status."""
        if self.interrupts.interrupted:
            raise AgentInterruptedError()

        start_time = time.monotonic()

        try:
            process = await self._start_process(args, forward_stdin)
        except OSError as exc:
            return self._handle_os_error(exc, args[0], start_time)

        loop = asyncio.get_running_loop()
        try:
            with self.interrupts.on_interrupt(lambda: self._terminate(process, loop)):
                stdout, stderr = await asyncio.wait_for(
                    self._collect_output(process, renderer),
                    timeout=config.agent_timeout_seconds,
                )
        except asyncio.TimeoutError:
            await self._reap(process)
            if self.interrupts.interrupted:
                self.reporter.error("Agent interrupted")
                raise AgentInterruptedError(process.returncode)
            return self._handle_timeout(config.agent_timeout_seconds, start_time)
        finally:
            await self._reap(process)

        duration = time.monotonic() - start_time
        exit_code = process.returncode
        outcome = classify_exit(exit_code, self.interrupts.interrupted)

        if outcome is AgentOutcome.INTERRUPTED:
            logger.error(
                "Agent interrupted",
                extra={"exit_code": exit_code, "duration": duration},
            )
            self.reporter.error("Agent interrupted")
            raise AgentInterruptedError(exit_code)

        return self._build_result(outcome, exit_code, stdout, stderr, duration)

    async def _start_process(
        self, args: List[str], forward_stdin: bool
    ) -> asyncio.subprocess.Process:
        """Launch the agent subprocess.

        Raises:
            OSError: If the executable cannot be found or started.
        """
        logger.info(
            "Starting agent",
            extra={
                "agent": args[0],
                "arg_count": len(args),
                "forward_stdin": forward_stdin,
            },
        )
        return await asyncio.create_subprocess_exec(
            *args,
            stdin=None if forward_stdin else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )

    async def _collect_output(
        self,
        process: asyncio.subprocess.Process,
        renderer: Optional[StreamRenderer],
    ) -> Tuple[str, str]:
        """Read stdout and stderr concurrently, then wait for exit.

        With a renderer, stdout is decoded as an event stream and rendered
        as it arrives; the returned stdout is the agent's captured text.
        Without one, stdout is returned verbatim.
        """
        raw_chunks: List[bytes] = []
        stderr_lines: List[str] = []

        async def read_stdout():
            if process.stdout is None:
                return
            decoder = StreamDecoder()
            while True:
                chunk = await process.stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                if renderer is None:
                    raw_chunks.append(chunk)
                    continue
                for event in decoder.feed(chunk):
                    renderer.handle_event(event)
            if renderer is not None:
                for event in decoder.flush():
                    renderer.handle_event(event)

        async def read_stderr():
            if process.stderr is None:
                return
            while True:
                raw_line = await process.stderr.readline()
                if not raw_line:
                    break
                line = raw_line.decode("utf-8", errors="replace").rstrip("\n")
                stderr_lines.append(line)
                logger.debug("agent stderr: %s", line)

        await asyncio.gather(read_stdout(), read_stderr())
        await process.wait()

        if renderer is not None:
            stdout = renderer.captured_output
        else:
            stdout = b"".join(raw_chunks).decode("utf-8", errors="replace")
        return stdout, "\n".join(stderr_lines)

    def _signal_group(self, process: asyncio.subprocess.Process, sig: int) -> None:
        """Send a signal to the agent's process group."""
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            pass

    def _terminate(
        self, process: asyncio.subprocess.Process, loop: asyncio.AbstractEventLoop
    ) -> None:
        """Ask a live child to stop, and kill it if it is still around after
        the grace period. Safe to call from a signal handler.
        """
        if process.returncode is not None:
            return
        logger.info("Terminating agent process group")
        self._signal_group(process, signal.SIGTERM)
        loop.call_soon_threadsafe(
            loop.call_later, TERMINATE_GRACE_SECONDS, self._kill, process
        )

    def _kill(self, process: asyncio.subprocess.Process) -> None:
        # the group may outlive its leader
        if process.returncode is None:
            logger.warning("Agent ignored terminate, killing it")
        self._signal_group(process, signal.SIGKILL)

    async def _reap(self, process: asyncio.subprocess.Process) -> None:
        """Make sure the child has exited: terminate the group, wait, then kill."""
        if process.returncode is not None:
            return
        self._signal_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            self._kill(process)
            await process.wait()

    def _handle_timeout(self, timeout_seconds: int, start_time: float) -> AgentResult:
        duration = time.monotonic() - start_time
        logger.error("Agent timed out after %ds", timeout_seconds)
        return AgentResult(
            success=False,
            exit_code=-1,
            stderr=f"Process timed out after {timeout_seconds}s",
            duration_seconds=duration,
        )

    def _handle_os_error(
        self, exc: OSError, executable: str, start_time: float
    ) -> AgentResult:
        """Return a failure result for OS-level errors (e.g., missing binary)."""
        duration = time.monotonic() - start_time
        logger.error("Failed to start %s: %s", executable, exc)
        return AgentResult(
            success=False,
            exit_code=-1,
            stderr=f"Failed to start {executable}: {exc}",
            duration_seconds=duration,
        )

    def _build_result(
        self,
        outcome: AgentOutcome,
        exit_code: Optional[int],
        stdout: str,
        stderr: str,
        duration: float,
    ) -> AgentResult:
        is_success = outcome is AgentOutcome.SUCCESS

        if is_success:
            logger.info("Agent completed successfully in %.1fs", duration)
        else:
            logger.error(
                "Agent failed with exit code %s in %.1fs",
                exit_code,
                duration,
            )

        return AgentResult(
            success=is_success,
            output=stdout,
            exit_code=exit_code if exit_code is not None else -1,
            stderr=stderr,
            duration_seconds=duration,
        )
