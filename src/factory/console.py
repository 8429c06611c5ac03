"""Operator-facing output and logging setup.

The Reporter prints the run header, step banners and status lines to a rich
Console and mirrors every line to the standard logger, so a configured log
file ends up holding a colour-free transcript of the run.
"""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from src.factory.config import RunConfiguration


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Configure the root logger for a CLI run.

    Args:
        log_file: Optional transcript path; receives DEBUG and above.
        verbose: Mirror DEBUG logging to stderr through rich.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root_logger.addHandler(file_handler)

    if verbose:
        stderr_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        stderr_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(stderr_handler)

    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class Reporter:
    """Prints pipeline progress for the operator.

    Attributes:
        console: The rich console all output is written to.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(highlight=False)

    def header(self, config: RunConfiguration) -> None:
        """Print the run header with the effective settings."""
        lines = Text()
        lines.append("SOFTWARE FACTORY PIPELINE", style="bold green")
        lines.append(
            f"\nReviews: {config.review_iterations} | "
            f"Adaptive: {config.adaptive_execution} | "
            f"Dry-run: {config.dry_run}"
        )
        if config.implementation_only:
            lines.append("\nImplementation-only mode", style="yellow")
        if config.skip_permissions:
            lines.append("\n⚠ Skip permissions: enabled", style="yellow")
        elif config.allowed_tools:
            lines.append(f"\nAllowed tools: {config.allowed_tools}")

        self.console.print()
        self.console.print(Panel(lines, border_style="green", expand=False))
        self.console.print()
        logger.info(
            "Run configuration",
            extra={
                "review_iterations": config.review_iterations,
                "adaptive_execution": config.adaptive_execution,
                "dry_run": config.dry_run,
                "implementation_only": config.implementation_only,
            },
        )

    def step(self, position: int, total: int, title: str) -> None:
        """Print a boxed step banner, e.g. STEP 3/9: CODE SIMPLIFICATION."""
        banner = Text()
        banner.append(f"STEP {position}/{total}:", style="bold green")
        banner.append(f" {title}")
        self.console.print()
        self.console.print(Panel(banner, border_style="cyan", expand=False))
        logger.info("STEP %d/%d: %s", position, total, title)

    def info(self, message: str) -> None:
        self._line(f"▶ {message}", "blue", logging.INFO)

    def success(self, message: str) -> None:
        self._line(f"✓ {message}", "green", logging.INFO)

    def warning(self, message: str) -> None:
        self._line(f"⚠ {message}", "yellow", logging.WARNING)

    def error(self, message: str) -> None:
        self._line(f"✗ {message}", "bold red", logging.ERROR)

    def skipped(self, message: str) -> None:
        text = Text("[SKIPPED] ", style="yellow")
        text.append(message)
        self.console.print(text)
        logger.info("[SKIPPED] %s", message)

    def dry_run(self, command: str) -> None:
        text = Text("[DRY-RUN] ", style="yellow")
        text.append(command)
        self.console.print(text)
        logger.info("[DRY-RUN] %s", command)

    def _line(self, message: str, style: str, level: int) -> None:
        self.console.print(Text(message, style=style))
        logger.log(level, message)
