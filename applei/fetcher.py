"""
Out-of-process web content fetching.

Pages are rendered by an external headless-browser binary (a WebKit-based
extractor) that is run as a subprocess:

    <fetcher> <url> --mode <html|text|links|json|scripts> --wait <s> --timeout <s>

In ``json`` mode it prints a :class:`PageResult` document; every other mode
prints raw text. The rest of Applei only needs :func:`fetch_text`, which never
raises: a failed fetch is logged and reported as ``None``.
"""

from __future__ import annotations

import enum
import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urlparse

from .exceptions import FetchError

logger = logging.getLogger("applei")

__all__ = [
    "ContentFetcher",
    "FetchConfig",
    "LinkInfo",
    "OutputMode",
    "PageResult",
    "ScriptInfo",
    "SubprocessFetcher",
    "fetch_text",
    "resolve_fetcher",
]

DEFAULT_FETCHER_NAME = "swiftfejs"
_GRACE_SECONDS = 5.0


class OutputMode(str, enum.Enum):
    HTML = "html"
    TEXT = "text"
    LINKS = "links"
    JSON = "json"
    SCRIPTS = "scripts"


@dataclass(frozen=True)
class FetchConfig:
    """One fetch request."""

    url: str
    mode: OutputMode = OutputMode.TEXT
    wait_time: float = 2.0
    timeout: float = 15.0

    def __post_init__(self) -> None:
        parsed = urlparse(self.url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"Invalid URL (expected http/https): {self.url!r}")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.wait_time < 0:
            raise ValueError("wait_time must be >= 0")
        object.__setattr__(self, "mode", OutputMode(self.mode))

    def to_args(self) -> list[str]:
        return [
            self.url,
            "--mode",
            self.mode.value,
            "--wait",
            f"{self.wait_time:g}",
            "--timeout",
            f"{self.timeout:g}",
        ]


@dataclass(frozen=True)
class LinkInfo:
    text: str
    href: str


@dataclass(frozen=True)
class ScriptInfo:
    src: str
    type: str


@dataclass(frozen=True)
class PageResult:
    """Extracted page content as reported by the renderer."""

    title: str
    url: str
    content: str
    links: list[LinkInfo] | None = None
    scripts: list[ScriptInfo] | None = None
    metadata: dict[str, str] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageResult:
        links = data.get("links")
        scripts = data.get("scripts")
        metadata = data.get("metadata")
        return cls(
            title=str(data.get("title", "")),
            url=str(data.get("url", "")),
            content=str(data.get("content", "")),
            links=None
            if links is None
            else [LinkInfo(str(item.get("text", "")), str(item.get("href", ""))) for item in links],
            scripts=None
            if scripts is None
            else [
                ScriptInfo(str(item.get("src", "")), str(item.get("type", "text/javascript")))
                for item in scripts
            ],
            metadata=None if metadata is None else {str(k): str(v) for k, v in metadata.items()},
        )

    @classmethod
    def from_json(cls, payload: str) -> PageResult:
        """Parse the renderer's ``--mode json`` output.

        Raises:
            FetchError: If the payload is not a JSON object.
        """
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise FetchError(f"Fetcher returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise FetchError(f"Fetcher returned {type(data).__name__}, expected an object")
        return cls.from_dict(data)


class ContentFetcher(Protocol):
    def fetch(self, config: FetchConfig) -> PageResult: ...


class SubprocessFetcher:
    """Runs the external renderer binary and parses its stdout."""

    def __init__(self, executable: str) -> None:
        self.executable = executable

    def fetch(self, config: FetchConfig) -> PageResult:
        """Fetch a page.

        Raises:
            FetchError: Missing binary, timeout, non-zero exit or empty output.
        """
        args = [self.executable, *config.to_args()]
        hard_timeout = config.timeout + config.wait_time + _GRACE_SECONDS
        logger.debug("[Applei Fetch] Running %s", " ".join(args))
        try:
            result = subprocess.run(args, capture_output=True, text=True, timeout=hard_timeout)
        except FileNotFoundError as exc:
            raise FetchError(f"Fetcher not found: {self.executable}") from exc
        except subprocess.TimeoutExpired as exc:
            raise FetchError(f"Fetching {config.url} timed out after {hard_timeout:.0f}s") from exc
        except OSError as exc:
            raise FetchError(f"Could not run fetcher {self.executable}: {exc}") from exc

        if result.returncode != 0:
            diagnostics = (result.stderr or result.stdout or "").strip()
            raise FetchError(
                f"Fetcher exited with code {result.returncode}"
                + (f": {diagnostics}" if diagnostics else "")
            )

        output = result.stdout or ""
        if config.mode is OutputMode.JSON:
            return PageResult.from_json(output)
        if not output.strip():
            raise FetchError(f"Fetcher returned no content for {config.url}")
        return PageResult(title="", url=config.url, content=output.strip())


def resolve_fetcher(path: str | None = None) -> SubprocessFetcher | None:
    """Locate the renderer binary: explicit path first, then ``$PATH``."""
    if path:
        candidate = os.path.expanduser(path)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return SubprocessFetcher(candidate)
        logger.warning("[Applei Fetch] Fetcher not found or not executable at %s", candidate)
        return None
    found = shutil.which(DEFAULT_FETCHER_NAME)
    return SubprocessFetcher(found) if found else None


def fetch_text(
    fetcher: ContentFetcher | None,
    url: str,
    *,
    wait_time: float = 2.0,
    timeout: float = 15.0,
) -> str | None:
    """Fetch *url* as plain text, or ``None`` on any failure (logged as a warning)."""
    if fetcher is None:
        logger.warning("[Applei Fetch] No content fetcher configured; cannot fetch %s", url)
        return None
    try:
        config = FetchConfig(url=url, mode=OutputMode.TEXT, wait_time=wait_time, timeout=timeout)
        page = fetcher.fetch(config)
    except (FetchError, ValueError) as exc:
        logger.warning("[Applei Fetch] Failed to fetch %s: %s", url, exc)
        return None
    except Exception as exc:
        logger.warning(
            "[Applei Fetch] Fetcher %s raised %s: %s",
            type(fetcher).__name__,
            type(exc).__name__,
            exc,
        )
        return None
    return page.content or None
