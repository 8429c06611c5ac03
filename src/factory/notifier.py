"""Update notifier.

Checks the package index for a newer release at most once per check
interval, caching the answer in a small JSON file in the temp directory.
Any failure (network, cache file, malformed response) is logged at debug
level and otherwise ignored; the notifier never disrupts a run.
"""

import json
import logging
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.text import Text


logger = logging.getLogger(__name__)

PACKAGE_INDEX_URL = "https://pypi.org/pypi/{package}/json"
CHECK_INTERVAL_SECONDS = 24 * 60 * 60
REQUEST_TIMEOUT_SECONDS = 5.0


def _version_parts(version: str) -> List[int]:
    parts = []
    for piece in version.strip().lstrip("v").split("."):
        digits = ""
        for char in piece:
            if not char.isdigit():
                break
            digits += char
        parts.append(int(digits) if digits else 0)
    return parts


def is_newer_version(latest: str, current: str) -> bool:
    """Compare dotted release numbers; pre-release suffixes are ignored.

    Example:
        >>> is_newer_version("2.10.0", "2.9.3")
        True
    """
    latest_parts = _version_parts(latest)
    current_parts = _version_parts(current)
    width = max(len(latest_parts), len(current_parts))
    latest_parts += [0] * (width - len(latest_parts))
    current_parts += [0] * (width - len(current_parts))
    return latest_parts > current_parts


class UpdateNotifier:
    """Tells the operator when a newer release is available.

    Attributes:
        package_name: Distribution name on the package index.
        current_version: Installed version.
        cache_file: Where the last answer is cached.
        check_interval: Seconds between index lookups.
    """

    def __init__(
        self,
        package_name: str,
        current_version: str,
        cache_file: Optional[Path] = None,
        check_interval: int = CHECK_INTERVAL_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.package_name = package_name
        self.current_version = current_version
        self.cache_file = cache_file or (
            Path(tempfile.gettempdir()) / f".{package_name}-update-check.json"
        )
        self.check_interval = check_interval
        self._transport = transport

    async def latest_version(self) -> Optional[str]:
        """Latest known release, from the cache when it is fresh enough."""
        cached = self._load_cache()
        if cached is not None and time.time() - cached.get("last_checked", 0) < self.check_interval:
            latest = cached.get("latest")
            return latest if isinstance(latest, str) else None

        latest = await self._fetch_latest_version()
        if latest is not None:
            self._save_cache(latest)
        return latest

    async def notify(self, console: Console) -> bool:
        """Print an update notice when a newer release exists.

        Returns:
            True if a notice was printed.
        """
        try:
            latest = await self.latest_version()
        except (httpx.HTTPError, OSError, ValueError, KeyError, TypeError) as exc:
            logger.debug("Update check failed", extra={"error": str(exc)})
            return False

        if not latest or not is_newer_version(latest, self.current_version):
            return False

        message = Text()
        message.append("Update available! ", style="bold")
        message.append(self.current_version, style="red")
        message.append(" → ")
        message.append(latest, style="green")
        message.append("\nRun to update: ")
        message.append(f"pip install -U {self.package_name}", style="cyan")
        console.print(Panel(message, border_style="yellow", expand=False))
        return True

    async def _fetch_latest_version(self) -> Optional[str]:
        url = PACKAGE_INDEX_URL.format(package=self.package_name)
        async with httpx.AsyncClient(
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            response = await client.get(url, headers={"Accept": "application/json"})

        if response.status_code != 200:
            logger.debug(
                "Package index lookup failed",
                extra={"status_code": response.status_code},
            )
            return None

        version = response.json()["info"]["version"]
        return str(version) if version else None

    def _load_cache(self) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(self.cache_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def _save_cache(self, latest: str) -> None:
        payload = {
            "current": self.current_version,
            "latest": latest,
            "last_checked": time.time(),
        }
        try:
            self.cache_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.debug("Could not write update cache", extra={"error": str(exc)})
