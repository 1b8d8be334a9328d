"""
Applei public API.

A conversation-session manager for Apple's on-device Foundation Model:
bounded history, streaming deltas, context-overflow recovery and web-content
prompt composition. ``apple_fm_sdk`` is imported lazily by the default
backend, so everything here imports without it.
"""

from __future__ import annotations

from .composer import compose_prompt, summary_prompt, truncate_content
from .condenser import condense_transcript
from .config import ChatConfig
from .exceptions import (
    ChatError,
    ContextOverflowError,
    FetchError,
    GenerationFailedError,
    InputRejectedError,
    ModelUnavailableError,
    SessionBusyError,
    SessionClosedError,
    Severity,
    TransientGenerationError,
)
from .history import Message, MessageStore, Role
from .persistence import ConversationStore
from .protocols import (
    AppleFMBackend,
    Availability,
    BackendGenerationError,
    GenerationErrorKind,
    ModelBackend,
    UnavailableReason,
    get_backend,
    set_backend,
)
from .session import SessionController, SessionState
from .streaming import StreamAccumulator

__all__ = [
    "AppleFMBackend",
    "Availability",
    "BackendGenerationError",
    "ChatConfig",
    "ChatError",
    "ContextOverflowError",
    "ConversationStore",
    "FetchError",
    "GenerationErrorKind",
    "GenerationFailedError",
    "InputRejectedError",
    "Message",
    "MessageStore",
    "ModelBackend",
    "ModelUnavailableError",
    "Role",
    "SessionBusyError",
    "SessionClosedError",
    "SessionController",
    "SessionState",
    "Severity",
    "StreamAccumulator",
    "TransientGenerationError",
    "UnavailableReason",
    "compose_prompt",
    "condense_transcript",
    "get_backend",
    "set_backend",
    "summary_prompt",
    "truncate_content",
]
