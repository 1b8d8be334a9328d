"""
Runtime configuration for Applei.

``ChatConfig`` is immutable; use :meth:`ChatConfig.with_overrides` to derive a
validated copy (the CLI layers its flags over :meth:`ChatConfig.from_env`).
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .protocols import USE_CASES

logger = logging.getLogger("applei")

DEFAULT_INSTRUCTIONS = (
    "You are a helpful AI assistant running in a CLI environment. "
    "Provide clear, concise answers.\n"
    "Keep responses focused and practical. "
    "Be accurate and acknowledge uncertainty when appropriate."
)
DEFAULT_CONVERSATIONS_DIR = Path.home() / ".local" / "share" / "applei" / "conversations"

_ENV_PREFIX = "APPLEI_"


def clamp_temperature(value: float) -> float:
    """Clamp *value* into the closed interval [0.0, 1.0]."""
    return max(0.0, min(1.0, float(value)))


def normalize_use_case(value: str) -> str:
    """Accept ``contentTagging`` / ``content_tagging`` spellings for ``content-tagging``."""
    needle = value.strip().lower().replace("_", "-")
    if needle == "contenttagging":
        needle = "content-tagging"
    if needle not in USE_CASES:
        expected = ", ".join(USE_CASES)
        raise ValueError(f"Unknown model use case {value!r}; expected one of {expected}")
    return needle


@dataclass(frozen=True)
class ChatConfig:
    """Session, history and fetch settings."""

    use_case: str = "general"
    temperature: float = 0.7
    instructions: str = DEFAULT_INSTRUCTIONS
    max_history: int = 10
    keep_recent: int = 6
    max_content_chars: int = 12_000
    fetch_timeout: float = 15.0
    fetch_wait: float = 2.0
    fetcher_path: str | None = None
    conversations_dir: Path = field(default=DEFAULT_CONVERSATIONS_DIR)

    def __post_init__(self) -> None:
        object.__setattr__(self, "use_case", normalize_use_case(self.use_case))
        object.__setattr__(self, "temperature", clamp_temperature(self.temperature))
        object.__setattr__(self, "conversations_dir", Path(self.conversations_dir))
        if self.max_history < 1:
            raise ValueError("max_history must be >= 1")
        if self.keep_recent < 0:
            raise ValueError("keep_recent must be >= 0")
        if self.max_content_chars < 1:
            raise ValueError("max_content_chars must be >= 1")
        if self.fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be > 0")

    def with_overrides(self, **overrides: Any) -> ChatConfig:
        """Return a copy with non-``None`` overrides applied and validated."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ChatConfig:
        """Build a config from ``APPLEI_*`` environment variables.

        Malformed numeric values are logged and ignored rather than raised.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}

        for key, attr, cast in (
            ("TEMPERATURE", "temperature", float),
            ("MAX_CONTENT_CHARS", "max_content_chars", int),
            ("FETCH_TIMEOUT", "fetch_timeout", float),
        ):
            raw = env.get(_ENV_PREFIX + key)
            if raw is None or not raw.strip():
                continue
            try:
                overrides[attr] = cast(raw)
            except ValueError:
                logger.warning("[Applei Config] Ignoring invalid %s%s=%r", _ENV_PREFIX, key, raw)

        if env.get(_ENV_PREFIX + "MODEL"):
            overrides["use_case"] = env[_ENV_PREFIX + "MODEL"]
        if env.get(_ENV_PREFIX + "SYSTEM"):
            overrides["instructions"] = env[_ENV_PREFIX + "SYSTEM"]
        if env.get(_ENV_PREFIX + "FETCHER"):
            overrides["fetcher_path"] = env[_ENV_PREFIX + "FETCHER"]
        if env.get(_ENV_PREFIX + "CONVERSATIONS_DIR"):
            conversations_dir = Path(env[_ENV_PREFIX + "CONVERSATIONS_DIR"])
            overrides["conversations_dir"] = conversations_dir.expanduser()

        return cls().with_overrides(**overrides)
