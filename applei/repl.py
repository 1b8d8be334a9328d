"""
Interactive chat loop.

Input is read on a daemon thread (one line per request) and handed to the
event loop, so the loop itself never blocks on stdin. Each turn runs as its
own task; Ctrl+C cancels the running turn, or ends the loop when idle. Every
exit path goes through the same cleanup: save the conversation, close the
controller.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import threading
from collections.abc import Callable
from typing import Any

from . import console
from .composer import summary_prompt
from .exceptions import ChatError, ModelUnavailableError
from .fetcher import ContentFetcher, fetch_text
from .session import SessionController

logger = logging.getLogger("applei")

__all__ = [
    "COMMANDS",
    "HELP_TEXT",
    "InteractiveSession",
    "parse_command",
    "run_interactive",
    "stream_to_console",
]

COMMANDS = frozenset({"exit", "quit", "clear", "help", "status", "context", "fetch"})

HELP_TEXT = """
Available Commands:
  help              - Show this help message
  status            - Show current session status
  context           - Show recent conversation context
  clear             - Clear conversation history
  fetch <url>       - Fetch and analyze web content
  exit/quit         - Exit interactive mode
"""

PROMPT = "\n> "


def parse_command(line: str) -> tuple[str | None, str]:
    """Split *line* into ``(command, argument)``.

    The command word is case-insensitive. Input that does not start with a
    known command returns ``(None, line)`` and is treated as a prompt.
    """
    text = line.strip()
    parts = text.split(None, 1)
    if not parts:
        return None, ""
    command = parts[0].lower()
    if command not in COMMANDS:
        return None, text
    return command, parts[1].strip() if len(parts) > 1 else ""


async def stream_to_console(controller: SessionController, prompt: str) -> str:
    """Run one turn, printing deltas as they arrive; return the final text."""
    started = False
    async for delta in controller.send(prompt):
        if not started:
            console.write("")
            started = True
        console.write(delta, nl=False)
    console.write("\n", nl=False)
    return controller.last_response or ""


class _LineReader:
    """Reads one line on a daemon thread each time the loop asks for one."""

    def __init__(self, input_fn: Callable[[str], str], loop: asyncio.AbstractEventLoop) -> None:
        self._input_fn = input_fn
        self._loop = loop
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._wanted = threading.Event()
        self._closed = threading.Event()
        self._thread = threading.Thread(target=self._run, name="applei-repl-reader", daemon=True)
        self._started = False

    def _post(self, item: Any) -> None:
        if self._closed.is_set():
            return
        with contextlib.suppress(RuntimeError):
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def _run(self) -> None:
        while True:
            self._wanted.wait()
            self._wanted.clear()
            if self._closed.is_set():
                return
            try:
                line: Any = self._input_fn(PROMPT)
            except EOFError:
                self._post(None)
                return
            except Exception as exc:
                self._post(exc)
                return
            self._post(line)

    async def readline(self, stop: asyncio.Event) -> str | None:
        """Return the next line, or ``None`` on EOF or when *stop* is set first."""
        if not self._started:
            self._thread.start()
            self._started = True
        self._wanted.set()

        get_task = asyncio.ensure_future(self._queue.get())
        stop_task = asyncio.ensure_future(stop.wait())
        done, pending = await asyncio.wait(
            {get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        if get_task not in done:
            return None
        item = get_task.result()
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self._closed.set()
        self._wanted.set()


class InteractiveSession:
    """
    REPL over a :class:`SessionController`.

    Args:
        controller: The conversation to drive. Closed when the loop ends.
        fetcher: Content fetcher for the ``fetch <url>`` command.
        input_fn: Line reader (``input``-compatible); raise ``EOFError`` to end.
        install_signal_handlers: Route SIGINT to :meth:`interrupt`.
    """

    def __init__(
        self,
        controller: SessionController,
        *,
        fetcher: ContentFetcher | None = None,
        input_fn: Callable[[str], str] = input,
        install_signal_handlers: bool = True,
    ) -> None:
        self.controller = controller
        self.fetcher = fetcher
        self._input_fn = input_fn
        self._install_signal_handlers = install_signal_handlers
        self._stop: asyncio.Event | None = None
        self._current_turn: asyncio.Future[str] | None = None
        self._turn_interrupted = False
        self.exit_code = 0

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def interrupt(self) -> None:
        """Cancel the running turn, or stop the loop if no turn is running."""
        if self._current_turn is not None and not self._current_turn.done():
            self._turn_interrupted = True
            self._current_turn.cancel()
        elif self._stop is not None:
            self._stop.set()

    def _add_sigint_handler(self, loop: asyncio.AbstractEventLoop) -> bool:
        if not self._install_signal_handlers:
            return False
        try:
            loop.add_signal_handler(signal.SIGINT, self.interrupt)
        except (NotImplementedError, RuntimeError, ValueError) as exc:
            logger.debug("[Applei REPL] SIGINT handler unavailable: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self) -> int:
        loop = asyncio.get_running_loop()
        self._stop = asyncio.Event()
        reader = _LineReader(self._input_fn, loop)
        handler_installed = self._add_sigint_handler(loop)

        console.info("Applei CLI - Interactive Mode")
        console.info("Press Ctrl+C to cancel a response, or type 'exit'/'quit'")
        console.info("Type 'clear' to reset conversation")
        console.info("Type 'help' for commands")

        try:
            while not self._stop.is_set():
                line = await reader.readline(self._stop)
                if line is None:
                    break
                if not line.strip():
                    continue
                if not await self.handle_line(line):
                    break
        finally:
            reader.close()
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)
            self._cleanup()
        return self.exit_code

    def _cleanup(self) -> None:
        self.controller.save()
        self.controller.close()
        console.info("Goodbye!")

    async def handle_line(self, line: str) -> bool:
        """Process one line of input. Returns ``False`` when the loop should end."""
        command, argument = parse_command(line)
        if command is None:
            await self._run_turn(argument)
            return True
        if command in {"exit", "quit"}:
            return False
        if command == "clear":
            try:
                self.controller.reset()
            except ModelUnavailableError as exc:
                console.error(str(exc))
                self.exit_code = 2
                return False
            except ChatError as exc:
                console.report(exc)
                return True
            console.info("Conversation cleared")
        elif command == "help":
            console.write(HELP_TEXT)
        elif command == "status":
            self._print_status()
        elif command == "context":
            self._print_context()
        elif command == "fetch":
            await self._fetch_and_analyze(argument)
        return True

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _print_status(self) -> None:
        status = self.controller.status()
        console.info(f"Model: {status['model']}")
        console.info(f"Temperature: {status['temperature']}")
        console.info(f"Message count: {status['message_count']}")
        console.info(f"Turn count: {status['turn_count']}")
        console.info(f"Session active: {status['session_active']}")
        console.info(f"Conversation: {status['conversation']}")

    def _print_context(self) -> None:
        history = self.controller.history
        console.info(f"Recent conversation context ({len(history)} messages):")
        for index, message in enumerate(history, start=1):
            console.write(f"  {index}. {message.role.value}: {message.preview()}")

    async def _fetch_and_analyze(self, url: str) -> None:
        if not url:
            console.warning("Usage: fetch <url>")
            return
        config = self.controller.config
        console.info(f"Fetching {url}...")
        content = await asyncio.to_thread(
            fetch_text,
            self.fetcher,
            url,
            wait_time=config.fetch_wait,
            timeout=config.fetch_timeout,
        )
        if content is None:
            console.warning(f"Could not fetch content from {url}; skipping analysis")
            return
        console.info(f"Fetched {len(content)} characters")
        await self._run_turn(summary_prompt(content, max_chars=config.max_content_chars))

    async def _run_turn(self, prompt: str) -> None:
        task = asyncio.ensure_future(stream_to_console(self.controller, prompt))
        self._current_turn = task
        try:
            await task
        except asyncio.CancelledError:
            if not self._turn_interrupted:
                raise
            console.write("")
            console.warning("Response cancelled")
        except ChatError as exc:
            console.write("")
            console.report(exc)
        finally:
            self._current_turn = None
            self._turn_interrupted = False


def run_interactive(
    controller: SessionController,
    *,
    fetcher: ContentFetcher | None = None,
    input_fn: Callable[[str], str] = input,
) -> int:
    """Run the REPL to completion and return its exit code."""
    return asyncio.run(InteractiveSession(controller, fetcher=fetcher, input_fn=input_fn).run())
