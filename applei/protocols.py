"""
Model backend seam for Applei.

A backend opens sessions and streams replies. ``stream_generate`` yields
cumulative snapshots (the full reply so far, not deltas) and signals failure
by raising; :func:`classify_backend_error` maps whatever it raised to a
:class:`BackendGenerationError` kind such as ``context-overflow`` or
``refusal``. ``transcript`` returns a session's entries, first entry being
the instructions, so an overflowing session can be rebuilt from its head and
recent tail via ``create_session(..., transcript=...)``.

:class:`AppleFMBackend` serves Apple's on-device model through ``apple_fm_sdk``,
imported on first use. :func:`set_backend` installs a replacement, for
example a scripted backend in tests.
"""

from __future__ import annotations

import enum
import importlib
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol, cast, runtime_checkable

logger = logging.getLogger("applei")

__all__ = [
    "AppleFMBackend",
    "AppleFMSession",
    "Availability",
    "BackendGenerationError",
    "GenerationErrorKind",
    "ModelBackend",
    "USE_CASES",
    "UnavailableReason",
    "classify_backend_error",
    "get_backend",
    "set_backend",
]

USE_CASES = ("general", "content-tagging")


# ---------------------------------------------------------------------------
# Availability and error vocabulary
# ---------------------------------------------------------------------------


class UnavailableReason(str, enum.Enum):
    """Why the backend cannot serve requests at all."""

    DEVICE_INELIGIBLE = "device-ineligible"
    FEATURE_DISABLED = "feature-disabled"
    MODEL_NOT_READY = "model-not-ready"
    OTHER = "other"


@dataclass(frozen=True)
class Availability:
    """Result of :meth:`ModelBackend.availability`."""

    available: bool
    reason: UnavailableReason | None = None
    detail: str | None = None

    @classmethod
    def ok(cls) -> Availability:
        return cls(True)

    @classmethod
    def unavailable(cls, reason: UnavailableReason, detail: str | None = None) -> Availability:
        return cls(False, reason, detail)


class GenerationErrorKind(str, enum.Enum):
    """Failure categories a backend may report while generating."""

    CONTEXT_OVERFLOW = "context-overflow"
    REFUSAL = "refusal"
    ASSETS_UNAVAILABLE = "assets-unavailable"
    GUARDRAIL_VIOLATION = "guardrail-violation"
    UNSUPPORTED_GUIDE = "unsupported-guide"
    UNSUPPORTED_LOCALE = "unsupported-locale"
    DECODE_FAILURE = "decode-failure"
    RATE_LIMITED = "rate-limited"
    CONCURRENCY_LIMITED = "concurrency-limited"
    UNKNOWN = "unknown"


class BackendGenerationError(Exception):
    """Raised by backends for any generation failure."""

    def __init__(self, kind: GenerationErrorKind, detail: str = "") -> None:
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)
        self.kind = kind
        self.detail = detail


# Ordered: first marker found in the lowercased, space-free "<TypeName>: <message>" wins.
_ERROR_MARKERS: tuple[tuple[str, GenerationErrorKind], ...] = (
    ("exceededcontextwindowsize", GenerationErrorKind.CONTEXT_OVERFLOW),
    ("contextwindowsizeexceeded", GenerationErrorKind.CONTEXT_OVERFLOW),
    ("guardrailviolation", GenerationErrorKind.GUARDRAIL_VIOLATION),
    ("refusal", GenerationErrorKind.REFUSAL),
    ("assetsunavailable", GenerationErrorKind.ASSETS_UNAVAILABLE),
    ("unsupportedguide", GenerationErrorKind.UNSUPPORTED_GUIDE),
    ("unsupportedlanguageorlocale", GenerationErrorKind.UNSUPPORTED_LOCALE),
    ("decodingfailure", GenerationErrorKind.DECODE_FAILURE),
    ("ratelimited", GenerationErrorKind.RATE_LIMITED),
    ("concurrentrequests", GenerationErrorKind.CONCURRENCY_LIMITED),
)


def classify_backend_error(exc: BaseException) -> BackendGenerationError:
    """Normalize any exception raised during generation to a :class:`BackendGenerationError`."""
    if isinstance(exc, BackendGenerationError):
        return exc
    squashed = f"{type(exc).__name__}: {exc}".lower().replace("_", "").replace(" ", "")
    for marker, kind in _ERROR_MARKERS:
        if marker in squashed:
            return BackendGenerationError(kind, str(exc))
    return BackendGenerationError(GenerationErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}")


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ModelBackend(Protocol):
    """Structural interface for an on-device language model runtime."""

    def availability(self, use_case: str) -> Availability:
        """Report whether sessions for *use_case* can be created at all."""
        ...

    def create_session(
        self, use_case: str, instructions: str, transcript: Sequence[Any] | None = None
    ) -> Any:
        """Create an opaque session handle, optionally seeded from transcript entries."""
        ...

    def stream_generate(self, session: Any, prompt: str, temperature: float) -> AsyncIterator[Any]:
        """Yield the full response text generated so far, once per update."""
        ...

    def transcript(self, session: Any) -> Sequence[Any]:
        """Return the session's ordered transcript entries."""
        ...

    def prewarm(self, session: Any) -> None:
        """Best-effort latency optimization. May do nothing."""
        ...


# ---------------------------------------------------------------------------
# Apple FM concrete backend
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _import_apple_fm_sdk() -> Any:
    """Import ``apple_fm_sdk`` lazily so protocol import does not hard-require it."""
    return importlib.import_module("apple_fm_sdk")


def _unavailable_reason(raw_reason: Any) -> UnavailableReason:
    text = str(raw_reason).lower().replace("_", "").replace(" ", "")
    if "eligible" in text:
        return UnavailableReason.DEVICE_INELIGIBLE
    if "enabled" in text:
        return UnavailableReason.FEATURE_DISABLED
    if "notready" in text or "download" in text:
        return UnavailableReason.MODEL_NOT_READY
    return UnavailableReason.OTHER


class AppleFMSession:
    """Session handle wrapping ``apple_fm_sdk.LanguageModelSession``."""

    def __init__(self, raw: Any, use_case: str) -> None:
        self.raw = raw
        self.use_case = use_case

    def __repr__(self) -> str:
        return f"AppleFMSession(use_case={self.use_case!r}, id=0x{id(self):x})"


class AppleFMBackend:
    """
    Default backend that delegates to ``apple_fm_sdk``.

    One ``SystemLanguageModel`` is created per use case and reused across
    sessions.
    """

    def __init__(self) -> None:
        self._models: dict[str, Any] = {}

    def _model(self, use_case: str) -> Any:
        if use_case not in USE_CASES:
            raise ValueError(f"Unknown use case {use_case!r}; expected one of {USE_CASES}")
        if use_case not in self._models:
            fm = _import_apple_fm_sdk()
            use_case_enum = getattr(fm, "SystemLanguageModelUseCase", None)
            if use_case_enum is None:
                self._models[use_case] = fm.SystemLanguageModel()
            else:
                member = "CONTENT_TAGGING" if use_case == "content-tagging" else "GENERAL"
                self._models[use_case] = fm.SystemLanguageModel(
                    use_case=getattr(use_case_enum, member)
                )
        return self._models[use_case]

    def availability(self, use_case: str = "general") -> Availability:
        try:
            model = self._model(use_case)
        except ModuleNotFoundError as exc:
            return Availability.unavailable(UnavailableReason.OTHER, f"{type(exc).__name__}: {exc}")
        available, reason = model.is_available()
        if available:
            return Availability.ok()
        detail = None if reason is None else str(reason)
        return Availability.unavailable(_unavailable_reason(reason), detail)

    def create_session(
        self, use_case: str, instructions: str, transcript: Sequence[Any] | None = None
    ) -> AppleFMSession:
        fm = _import_apple_fm_sdk()
        model = self._model(use_case)
        if transcript is None:
            raw = fm.LanguageModelSession(model=model, instructions=instructions)
        else:
            seeded = fm.Transcript(entries=list(transcript))
            raw = fm.LanguageModelSession(model=model, transcript=seeded)
        return AppleFMSession(raw, use_case)

    async def stream_generate(
        self, session: AppleFMSession, prompt: str, temperature: float
    ) -> AsyncIterator[str]:
        fm = _import_apple_fm_sdk()
        options = fm.GenerationOptions(temperature=temperature)
        try:
            async for snapshot in session.raw.stream_response(prompt, options=options):
                yield str(snapshot)
        except BackendGenerationError:
            raise
        except Exception as exc:
            raise classify_backend_error(exc) from exc

    def transcript(self, session: AppleFMSession) -> Sequence[Any]:
        raw_transcript = session.raw.transcript
        return list(getattr(raw_transcript, "entries", raw_transcript))

    def prewarm(self, session: AppleFMSession) -> None:
        prewarm = getattr(session.raw, "prewarm", None)
        if callable(prewarm):
            prewarm()


# ---------------------------------------------------------------------------
# Module-level backend registry
# ---------------------------------------------------------------------------

_backend: Any = None


def set_backend(backend: Any) -> None:
    """Replace the active backend (module-level singleton)."""
    global _backend
    _backend = backend
    logger.info("[Applei] Backend set to %s", type(backend).__name__)


def get_backend() -> ModelBackend:
    """Return the currently active backend, creating the Apple FM default on first use."""
    global _backend
    if _backend is None:
        _backend = AppleFMBackend()
    return cast("ModelBackend", _backend)
