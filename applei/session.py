"""
Conversation session controller.

Owns exactly one live backend session plus the bounded display history, and
runs each turn through the streaming accumulator:

.. code-block:: python

    controller = SessionController(backend, ChatConfig(temperature=0.5))
    async for delta in controller.send("Hello"):
        print(delta, end="", flush=True)

State machine::

    uninitialized --(construct)--> ready --(close)--> torn_down
                                    ^  |
                                    +--+  send / reset / reconfigure / overflow recovery

The active backend session is never mutated by the controller; it is swapped
wholesale on reset, reconfiguration and context-overflow recovery.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
import weakref
from collections.abc import AsyncGenerator, Callable
from typing import Any

from .condenser import condense_transcript
from .config import ChatConfig
from .exceptions import (
    ChatError,
    ContextOverflowError,
    GenerationFailedError,
    SessionBusyError,
    SessionClosedError,
    raise_unavailable,
    translate_generation_error,
)
from .history import Message, MessageStore, Role
from .persistence import DEFAULT_CONVERSATION, ConversationStore
from .protocols import (
    GenerationErrorKind,
    ModelBackend,
    UnavailableReason,
    classify_backend_error,
    get_backend,
)
from .streaming import StreamAccumulator

logger = logging.getLogger("applei")

__all__ = ["SessionController", "SessionState"]


class SessionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    TORN_DOWN = "torn_down"


class SessionController:
    """
    Single-conversation orchestrator around a :class:`ModelBackend`.

    Args:
        backend: Model backend; defaults to :func:`applei.protocols.get_backend`.
        config: Session settings; defaults to ``ChatConfig()``.
        persistence: Optional snapshot store. When given, the history is saved
            (full replacement) after every completed turn and on reset.
        conversation: Snapshot name used with *persistence*.
        restore: Load the saved snapshot into the history on construction.

    Raises:
        ModelUnavailableError: The backend reports it cannot serve this use case.
    """

    def __init__(
        self,
        backend: ModelBackend | None = None,
        config: ChatConfig | None = None,
        *,
        persistence: ConversationStore | None = None,
        conversation: str = DEFAULT_CONVERSATION,
        restore: bool = False,
    ) -> None:
        self._backend = backend if backend is not None else get_backend()
        self._config = config if config is not None else ChatConfig()
        self._store = MessageStore(self._config.max_history)
        self._persistence = persistence
        self._conversation = conversation
        self._state = SessionState.UNINITIALIZED
        self._session: Any = None
        self._turns = 0
        self._active_turn: weakref.ref[AsyncGenerator[str, None]] | None = None
        self.last_response: str | None = None

        self._session = self._open_session()
        self._state = SessionState.READY

        if restore and persistence is not None:
            self._store.replace(persistence.load(conversation))

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Any:
        """The active backend session handle (``None`` once torn down)."""
        return self._session

    @property
    def config(self) -> ChatConfig:
        return self._config

    @property
    def history(self) -> list[Message]:
        return self._store.snapshot()

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def turn_count(self) -> int:
        return self._turns

    @property
    def message_count(self) -> int:
        return self._store.count()

    @property
    def busy(self) -> bool:
        """True while a ``send`` stream is running or suspended and still referenced."""
        if self._active_turn is None:
            return False
        if self._active_turn() is None:
            logger.debug("[Applei Session] Previous turn was abandoned; releasing it")
            self._active_turn = None
            return False
        return True

    @property
    def conversation(self) -> str:
        return self._conversation

    def status(self) -> dict[str, Any]:
        return {
            "model": self._config.use_case,
            "temperature": self._config.temperature,
            "message_count": self._store.count(),
            "turn_count": self._turns,
            "session_active": self._session is not None,
            "state": self._state.value,
            "conversation": self._conversation,
        }

    # ------------------------------------------------------------------
    # Session slot
    # ------------------------------------------------------------------

    def _open_session(self) -> Any:
        """Check availability and create a fresh session from the current config."""
        use_case = self._config.use_case
        try:
            availability = self._backend.availability(use_case)
        except Exception as exc:
            raise_unavailable(UnavailableReason.OTHER, exc=exc)
        if not availability.available:
            raise_unavailable(
                availability.reason or UnavailableReason.OTHER, detail=availability.detail
            )

        session = self._backend.create_session(use_case, self._config.instructions)
        logger.info("[Applei Session] Created %s session", use_case)
        self._prewarm(session)
        return session

    def _prewarm(self, session: Any) -> None:
        try:
            self._backend.prewarm(session)
        except Exception as exc:
            logger.debug("[Applei Session] Prewarm failed (ignored): %s", exc)

    def _condensed_session(self, session: Any) -> Any:
        """Build a replacement session from the first + most recent transcript entries."""
        try:
            entries = self._backend.transcript(session)
            condensed = condense_transcript(entries, self._config.keep_recent)
            replacement = self._backend.create_session(
                self._config.use_case, self._config.instructions, transcript=condensed
            )
            logger.info(
                "[Applei Session] Condensed transcript from %d to %d entries",
                len(entries),
                len(condensed),
            )
        except Exception as exc:
            logger.warning(
                "[Applei Session] Transcript condensation failed: %s. "
                "Falling back to clean session.",
                exc,
            )
            try:
                replacement = self._backend.create_session(
                    self._config.use_case, self._config.instructions
                )
            except Exception as create_exc:
                raise GenerationFailedError(
                    GenerationErrorKind.UNKNOWN,
                    f"Could not start a new session after context overflow: {create_exc}",
                ) from create_exc
        self._prewarm(replacement)
        return replacement

    def _ensure_ready(self) -> None:
        if self._state is not SessionState.READY:
            raise SessionClosedError("Session is closed")

    def save(self) -> None:
        """Write the current history snapshot, if a persistence store is attached."""
        if self._persistence is None:
            return
        try:
            self._persistence.save(self._store.snapshot(), self._conversation)
        except (OSError, ValueError) as exc:
            logger.warning("[Applei Session] Could not save conversation: %s", exc)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def send(self, prompt: str) -> AsyncGenerator[str, None]:
        """
        Run one turn and yield response deltas as they arrive.

        The user message is recorded before generation starts. The assistant
        reply is recorded only when the stream completes; on failure or
        cancellation the user message is left without a reply.

        A stream the caller drops without exhausting or closing it stops
        counting as in flight once it is garbage collected.

        Raises:
            SessionBusyError: Another ``send`` is still in flight.
            SessionClosedError: The controller has been closed.
            ContextOverflowError: The session was condensed; resend the prompt.
            TransientGenerationError: Rate/concurrency limited; caller may retry.
            InputRejectedError: Refusal, guardrail or unsupported input.
            GenerationFailedError: Any other generation failure.
        """
        handle: list[weakref.ref[AsyncGenerator[str, None]]] = []
        turn = self._run_turn(prompt, handle)
        handle.append(weakref.ref(turn))
        return turn

    async def _run_turn(
        self, prompt: str, handle: list[weakref.ref[AsyncGenerator[str, None]]]
    ) -> AsyncGenerator[str, None]:
        self._ensure_ready()
        if self.busy:
            raise SessionBusyError("A response is already being generated. Please wait")
        turn_ref = handle[0]
        self._active_turn = turn_ref
        try:
            self._store.append(Role.USER, prompt)
            session = self._session
            accumulator = StreamAccumulator()
            start_time = time.perf_counter()
            try:
                stream = self._backend.stream_generate(session, prompt, self._config.temperature)
                async with contextlib.aclosing(accumulator.consume(stream)) as deltas:
                    async for delta in deltas:
                        yield delta
            except (asyncio.CancelledError, GeneratorExit):
                logger.info(
                    "[Applei Session] Turn cancelled; discarding %d partial chars",
                    len(accumulator.partial_text),
                )
                raise
            except Exception as exc:
                raise self._handle_failure(session, exc, accumulator.partial_text) from exc

            final_text = accumulator.final_text()
            elapsed = time.perf_counter() - start_time
            logger.debug(
                "[Applei Session] Turn completed in %.3fs (%d chunks, %d chars)",
                elapsed,
                accumulator.chunk_count,
                len(final_text),
            )
            self._store.append(Role.ASSISTANT, final_text)
            self._turns += 1
            self.last_response = final_text
            self.save()
        finally:
            if self._active_turn is turn_ref:
                self._active_turn = None

    def _handle_failure(self, session: Any, exc: Exception, partial_text: str) -> ChatError:
        error = classify_backend_error(exc)
        if error.kind is GenerationErrorKind.CONTEXT_OVERFLOW:
            logger.warning(
                "[Applei Session] Context window exceeded. "
                "Creating new session with recent context..."
            )
            if self._session is session and self._state is SessionState.READY:
                self._session = self._condensed_session(session)
                self._turns = 0
            return ContextOverflowError(
                "Context window exceeded. Started a condensed session; please resend your message.",
                partial_text=partial_text,
            )
        translated = translate_generation_error(error, partial_text=partial_text)
        logger.info("[Applei Session] Generation failed (%s): %s", error.kind.value, error)
        return translated

    async def ask(self, prompt: str, on_delta: Callable[[str], Any] | None = None) -> str:
        """Run a full turn and return the final response text."""
        async for delta in self.send(prompt):
            if on_delta is not None:
                on_delta(delta)
        return self.last_response or ""

    # ------------------------------------------------------------------
    # Replacement points
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Clear the history and start a fresh session from the current config."""
        self._ensure_ready()
        if self.busy:
            raise SessionBusyError("Cannot reset while a response is being generated")
        self._session = self._open_session()
        self._store.clear()
        self._turns = 0
        self.last_response = None
        self.save()

    def reconfigure(
        self,
        *,
        use_case: str | None = None,
        instructions: str | None = None,
        temperature: float | None = None,
    ) -> None:
        """Apply new settings. A new session is created unless only the temperature changed."""
        self._ensure_ready()
        if self.busy:
            raise SessionBusyError("Cannot reconfigure while a response is being generated")
        new_config = self._config.with_overrides(
            use_case=use_case, instructions=instructions, temperature=temperature
        )
        needs_session = (new_config.use_case, new_config.instructions) != (
            self._config.use_case,
            self._config.instructions,
        )
        previous = self._config
        self._config = new_config
        if needs_session:
            try:
                self._session = self._open_session()
            except ChatError:
                self._config = previous
                raise
            self._turns = 0

    def close(self) -> None:
        """Release the session. Idempotent."""
        if self._state is SessionState.TORN_DOWN:
            return
        self._session = None
        self._state = SessionState.TORN_DOWN
        logger.debug("[Applei Session] Controller closed")

    async def __aenter__(self) -> SessionController:
        return self

    async def __aexit__(self, *args: object) -> None:
        self.close()
