"""Incremental parsing and rendering of the agent's event stream.

The agent writes newline-delimited JSON records. Output arrives in chunks
whose boundaries have nothing to do with record boundaries, so the decoder
keeps the trailing partial line (and any partial UTF-8 sequence) until the
next chunk completes it. Lines that are not JSON objects are dropped.

Record kinds that matter:
- {"type": "system", "subtype": "init", ...}: session banner, shown once
- {"type": "assistant", "message": {"content": [...]}} with content items
  of type "text" (agent reasoning, always shown) or "tool_use" (one-line
  summary, consecutive duplicates suppressed)
"""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from rich.console import Console
from rich.text import Text


logger = logging.getLogger(__name__)

MAX_DETAIL_LENGTH = 80

TOOL_STYLES: Dict[str, str] = {
    "Read": "cyan",
    "Write": "green",
    "Edit": "yellow",
    "MultiEdit": "yellow",
    "NotebookEdit": "yellow",
    "Bash": "magenta",
    "Grep": "blue",
    "Glob": "blue",
    "Task": "bright_magenta",
    "TodoWrite": "bright_black",
    "WebFetch": "bright_cyan",
    "WebSearch": "bright_cyan",
}


@dataclass
class SessionInit:
    """Session initialization record."""

    session_id: str = ""
    model: str = ""
    cwd: str = ""


@dataclass
class TextBlock:
    """A piece of agent reasoning or reply text."""

    text: str


@dataclass
class ToolUse:
    """A tool invocation by the agent."""

    name: str
    input: Dict[str, Any] = field(default_factory=dict)


StreamItem = Union[SessionInit, TextBlock, ToolUse]


def parse_event_line(line: str) -> Optional[Dict[str, Any]]:
    """Parse one serialized record, returning None for anything malformed."""
    stripped = line.strip()
    if not stripped:
        return None
    try:
        event = json.loads(stripped)
    except json.JSONDecodeError:
        logger.debug("Discarding non-JSON stream line", extra={"line": stripped[:200]})
        return None
    if not isinstance(event, dict):
        return None
    return event


class StreamDecoder:
    """Turns arbitrary byte chunks into complete, parsed event records."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        """Consume a chunk and return every record it completes."""
        text = self._pending + self._decoder.decode(chunk)
        lines = text.split("\n")
        self._pending = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> List[Dict[str, Any]]:
        """Parse whatever is left once the stream has ended."""
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return self._parse_lines([text])

    def _parse_lines(self, lines: List[str]) -> List[Dict[str, Any]]:
        events = []
        for line in lines:
            event = parse_event_line(line)
            if event is not None:
                events.append(event)
        return events


def interpret_event(event: Dict[str, Any]) -> List[StreamItem]:
    """Classify a parsed record into the items the renderer understands.

    Unknown record types and malformed content items yield nothing.
    """
    event_type = event.get("type")

    if event_type == "system":
        if event.get("subtype") != "init":
            return []
        return [
            SessionInit(
                session_id=str(event.get("session_id") or ""),
                model=str(event.get("model") or ""),
                cwd=str(event.get("cwd") or ""),
            )
        ]

    if event_type != "assistant":
        return []

    message = event.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []

    items: List[StreamItem] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            text = block.get("text")
            if isinstance(text, str):
                items.append(TextBlock(text=text))
        elif block_type == "tool_use":
            tool_input = block.get("input")
            items.append(
                ToolUse(
                    name=str(block.get("name") or "unknown"),
                    input=tool_input if isinstance(tool_input, dict) else {},
                )
            )
    return items


def _truncate(value: Any, limit: int = MAX_DETAIL_LENGTH) -> str:
    text = " ".join(str(value).split())
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def summarize_tool_use(tool: ToolUse) -> str:
    """Build the one-line summary for a tool invocation.

    Examples:
        Read src/app.py
        Bash: Run the unit tests
        Grep: def main
    """
    name = tool.name
    data = tool.input

    if name in ("Read", "Write", "Edit", "MultiEdit"):
        path = data.get("file_path") or data.get("path")
        return f"{name} {path}" if path else name
    if name == "NotebookEdit":
        path = data.get("notebook_path")
        return f"{name} {path}" if path else name
    if name == "Bash":
        detail = data.get("description") or data.get("command")
        return f"Bash: {_truncate(detail)}" if detail else "Bash"
    if name in ("Grep", "Glob"):
        pattern = data.get("pattern")
        if not pattern:
            return name
        location = data.get("path")
        suffix = f" in {location}" if location else ""
        return f"{name}: {_truncate(pattern)}{suffix}"
    if name == "Task":
        detail = data.get("description")
        return f"Task: {_truncate(detail)}" if detail else "Task"
    if name == "TodoWrite":
        todos = data.get("todos")
        count = len(todos) if isinstance(todos, list) else 0
        return f"TodoWrite: {count} items"
    if name == "WebFetch":
        url = data.get("url")
        return f"WebFetch: {_truncate(url)}" if url else name
    if name == "WebSearch":
        query = data.get("query")
        return f"WebSearch: {_truncate(query)}" if query else name
    return name


class StreamRenderer:
    """Prints stream items for the operator and captures the agent's text.

    Consecutive identical tool summaries are printed once. A text item
    clears that memory, since the next tool call follows new reasoning.

    Attributes:
        console: Destination for rendered output.
        texts: Every text block seen, in order.
    """

    def __init__(self, console: Console):
        self.console = console
        self.texts: List[str] = []
        self._session_announced = False
        self._last_tool_line: Optional[str] = None

    @property
    def captured_output(self) -> str:
        """The agent's reply text for this invocation."""
        return "\n".join(self.texts)

    def handle_event(self, event: Dict[str, Any]) -> None:
        for item in interpret_event(event):
            self.handle_item(item)

    def handle_item(self, item: StreamItem) -> None:
        if isinstance(item, SessionInit):
            self._render_session(item)
        elif isinstance(item, TextBlock):
            self._render_text(item)
        elif isinstance(item, ToolUse):
            self._render_tool(item)

    def _render_session(self, item: SessionInit) -> None:
        if self._session_announced:
            return
        self._session_announced = True
        self._last_tool_line = None
        banner = Text("● Agent session started", style="bold cyan")
        if item.model:
            banner.append(f" (model: {item.model})", style="cyan")
        self.console.print(banner)
        if item.cwd:
            self.console.print(Text(f"  cwd: {item.cwd}", style="bright_black"))

    def _render_text(self, item: TextBlock) -> None:
        self._last_tool_line = None
        if not item.text.strip():
            return
        self.texts.append(item.text)
        self.console.print(Text(item.text.rstrip()))

    def _render_tool(self, item: ToolUse) -> None:
        summary = summarize_tool_use(item)
        if summary == self._last_tool_line:
            return
        self._last_tool_line = summary
        style = TOOL_STYLES.get(item.name, "white")
        self.console.print(Text(f"  ⏺ {summary}", style=style))
