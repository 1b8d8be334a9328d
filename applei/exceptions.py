"""
Error taxonomy for Applei chat sessions.

Every backend failure is translated once, at the session-controller boundary,
into one of the :class:`ChatError` subclasses below. Callers only ever see
these types, each carrying a ``severity`` (``ERROR`` or ``WARNING``) and a
``recoverable`` flag so a CLI or UI can print one categorized line and decide
whether to keep going.
"""

from __future__ import annotations

import enum
from typing import NoReturn

from .protocols import BackendGenerationError, GenerationErrorKind, UnavailableReason

__all__ = [
    "ChatError",
    "ContextOverflowError",
    "FetchError",
    "GenerationFailedError",
    "InputRejectedError",
    "ModelUnavailableError",
    "SessionBusyError",
    "SessionClosedError",
    "Severity",
    "TransientGenerationError",
    "raise_unavailable",
    "translate_generation_error",
    "troubleshooting_message",
]


class Severity(str, enum.Enum):
    """How a failure should be presented to the user."""

    ERROR = "ERROR"
    WARNING = "WARNING"


class ChatError(RuntimeError):
    """Base class for every caller-visible Applei failure."""

    severity: Severity = Severity.ERROR
    recoverable: bool = False

    def __init__(self, message: str, *, partial_text: str = "") -> None:
        super().__init__(message)
        self.partial_text = partial_text

    @property
    def user_message(self) -> str:
        """Single human-readable line for terminals and dialogs."""
        return str(self).splitlines()[0] if str(self) else type(self).__name__


class ModelUnavailableError(ChatError):
    """The model backend is permanently unavailable. Not retryable."""

    def __init__(self, reason: UnavailableReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class ContextOverflowError(ChatError):
    """The context window was exceeded; the session has been condensed."""

    severity = Severity.WARNING
    recoverable = True


class TransientGenerationError(ChatError):
    """Rate-limited or concurrency-limited; the caller may resend later."""

    severity = Severity.WARNING
    recoverable = True

    def __init__(self, kind: GenerationErrorKind, message: str, *, partial_text: str = "") -> None:
        super().__init__(message, partial_text=partial_text)
        self.kind = kind


class InputRejectedError(ChatError):
    """Refusal, guardrail violation or unsupported input. Retrying won't help."""

    severity = Severity.WARNING

    def __init__(self, kind: GenerationErrorKind, message: str, *, partial_text: str = "") -> None:
        super().__init__(message, partial_text=partial_text)
        self.kind = kind


class GenerationFailedError(ChatError):
    """Generation failed for a reason the user must act on (assets, decoding, unknown)."""

    def __init__(self, kind: GenerationErrorKind, message: str, *, partial_text: str = "") -> None:
        super().__init__(message, partial_text=partial_text)
        self.kind = kind


class SessionBusyError(ChatError):
    """A second ``send()`` was attempted while one is still in flight."""

    severity = Severity.WARNING
    recoverable = True


class SessionClosedError(ChatError):
    """The controller has been torn down."""


class FetchError(ChatError):
    """Web content could not be fetched. Callers continue in degraded mode."""

    severity = Severity.WARNING
    recoverable = True


# ---------------------------------------------------------------------------
# Unavailability diagnostics
# ---------------------------------------------------------------------------

_UNAVAILABLE_MESSAGES: dict[UnavailableReason, str] = {
    UnavailableReason.DEVICE_INELIGIBLE: "Device not eligible for Apple Intelligence",
    UnavailableReason.FEATURE_DISABLED: (
        "Apple Intelligence not enabled. Enable in Settings > Apple Intelligence & Siri"
    ),
    UnavailableReason.MODEL_NOT_READY: "Model not ready. Please wait for download to complete",
    UnavailableReason.OTHER: "Model unavailable. Check your settings",
}


def troubleshooting_message(reason: UnavailableReason, detail: str | None = None) -> str:
    """Build the standard, user-actionable unavailability message."""
    lines = [_UNAVAILABLE_MESSAGES[reason]]
    if detail:
        lines.append(f"Reason: {detail}")
    lines.extend(
        [
            "",
            "Troubleshooting checklist:",
            "1. Use macOS 26+ on Apple Silicon (M-series).",
            "2. Enable Apple Intelligence in System Settings.",
            "3. Wait for the on-device model download to finish.",
            "4. Verify SDK import:",
            "   python -c \"import apple_fm_sdk as fm; "
            'print(fm.SystemLanguageModel().is_available())"',
        ]
    )
    return "\n".join(lines)


def raise_unavailable(
    reason: UnavailableReason,
    *,
    detail: str | None = None,
    exc: BaseException | None = None,
) -> NoReturn:
    """Raise :class:`ModelUnavailableError` with standardized diagnostics."""
    if detail is None and exc is not None:
        detail = f"{type(exc).__name__}: {exc}"
    error = ModelUnavailableError(reason, troubleshooting_message(reason, detail))
    if exc is not None:
        raise error from exc
    raise error


# ---------------------------------------------------------------------------
# Backend error translation
# ---------------------------------------------------------------------------

_INPUT_REJECTED = {
    GenerationErrorKind.REFUSAL: "Model refused to generate response",
    GenerationErrorKind.GUARDRAIL_VIOLATION: "Response violated safety guardrails",
    GenerationErrorKind.UNSUPPORTED_GUIDE: "Unsupported generation guide specified",
    GenerationErrorKind.UNSUPPORTED_LOCALE: "Unsupported language or locale",
}

_TRANSIENT = {
    GenerationErrorKind.RATE_LIMITED: "Rate limit exceeded. Please retry later",
    GenerationErrorKind.CONCURRENCY_LIMITED: "Too many concurrent requests. Please wait",
}

_FAILED = {
    GenerationErrorKind.ASSETS_UNAVAILABLE: "Required assets are unavailable",
    GenerationErrorKind.DECODE_FAILURE: "Failed to decode model response",
    GenerationErrorKind.UNKNOWN: "Unexpected generation error occurred",
}


def translate_generation_error(
    error: BackendGenerationError, *, partial_text: str = ""
) -> ChatError:
    """Map a backend generation failure onto the caller-visible taxonomy.

    Context overflow is not handled here: the controller owns the recovery
    and builds :class:`ContextOverflowError` itself after condensing.
    """
    kind = error.kind
    if kind in _INPUT_REJECTED:
        return InputRejectedError(kind, _INPUT_REJECTED[kind], partial_text=partial_text)
    if kind in _TRANSIENT:
        return TransientGenerationError(kind, _TRANSIENT[kind], partial_text=partial_text)
    if kind is GenerationErrorKind.CONTEXT_OVERFLOW:
        return ContextOverflowError(
            "Context window exceeded. Please resend your message.", partial_text=partial_text
        )
    message = _FAILED.get(kind, _FAILED[GenerationErrorKind.UNKNOWN])
    if error.detail:
        message = f"{message}: {error.detail}"
    return GenerationFailedError(kind, message, partial_text=partial_text)
