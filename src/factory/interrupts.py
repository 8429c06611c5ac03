"""Operator interrupt handling.

SIGINT and SIGTERM are routed to a single process-wide InterruptController.
Handlers are installed at most once per process, no matter how many runs
the orchestrator performs. While an agent subprocess is live, the runner
registers a terminate callback with the controller so an interrupt stops
the child immediately instead of waiting for it to notice.
"""

import logging
import signal
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional


logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130

_handlers_registered = False


class InterruptController:
    """Records operator interrupts and fans them out to live subprocesses.

    Attributes:
        interrupted: True once an interrupt has been requested in this run.
        signal_number: The signal that triggered the interrupt, if any.
    """

    def __init__(self) -> None:
        self.interrupted = False
        self.signal_number: Optional[int] = None
        self._callbacks: List[Callable[[], None]] = []

    def request(self, signal_number: Optional[int] = None) -> None:
        """Mark the run as interrupted and notify live subprocesses."""
        self.interrupted = True
        self.signal_number = signal_number
        for callback in list(self._callbacks):
            try:
                callback()
            except ProcessLookupError:
                # child already exited
                pass

    def reset(self) -> None:
        """Clear the interrupted flag at the start of a new run."""
        self.interrupted = False
        self.signal_number = None

    @contextmanager
    def on_interrupt(self, callback: Callable[[], None]) -> Iterator[None]:
        """Register a callback for the duration of a with-block."""
        self._callbacks.append(callback)
        try:
            yield
        finally:
            self._callbacks.remove(callback)


_controller = InterruptController()


def get_controller() -> InterruptController:
    """Return the process-wide interrupt controller."""
    return _controller


def _handle_signal(signal_number: int, frame: object) -> None:
    logger.warning("Received signal %d, interrupting run", signal_number)
    _controller.request(signal_number)


def install_signal_handlers() -> bool:
    """Install SIGINT/SIGTERM handlers once per process.

    Returns:
        True if handlers were installed by this call, False if they were
        already in place.
    """
    global _handlers_registered

    if _handlers_registered:
        return False

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    _handlers_registered = True
    logger.debug("Signal handlers installed")
    return True
