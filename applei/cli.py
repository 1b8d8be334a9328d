"""
Applei CLI: chat with the on-device Apple Foundation Model from a terminal.

Registered as the `applei` console script via pyproject.toml.

    applei "What is Swift?"                             # single query
    applei --interactive                                # REPL
    applei --fetch-url https://example.com "summarize"  # fetch, then analyze
"""

from __future__ import annotations

import asyncio
import logging

import click

from . import console
from .composer import compose_prompt
from .config import ChatConfig, normalize_use_case
from .exceptions import ChatError, ModelUnavailableError, Severity
from .fetcher import fetch_text, resolve_fetcher
from .persistence import DEFAULT_CONVERSATION, ConversationStore
from .protocols import get_backend
from .repl import InteractiveSession, stream_to_console
from .session import SessionController

logger = logging.getLogger("applei")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNAVAILABLE = 2
EXIT_INTERRUPTED = 130

EPILOG = """\b
Examples:
  applei "What is Swift?"
  applei --fetch-url "https://example.com" "summarize this"
  applei --interactive

\b
Interactive Mode Commands:
  fetch <url>    Fetch and analyze web content
  context        Show recent conversation context
  clear          Reset conversation
  status         Show session info
  help           Show available commands
  exit/quit      Exit
"""


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_use_case(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return normalize_use_case(value)
    except ValueError:
        console.warning(f"Unknown model: {value}. Using default (general)")
        return "general"


def _build_config(
    use_case: str | None,
    temperature: float | None,
    instructions: str | None,
    fetcher_path: str | None,
    max_content_chars: int | None,
) -> ChatConfig:
    return ChatConfig.from_env().with_overrides(
        use_case=_resolve_use_case(use_case),
        temperature=temperature,
        instructions=instructions,
        fetcher_path=fetcher_path,
        max_content_chars=max_content_chars,
    )


def _run_single_turn(controller: SessionController, prompt: str) -> int:
    """Stream one response to stdout and map the outcome to an exit code."""
    try:
        asyncio.run(stream_to_console(controller, prompt))
    except ChatError as exc:
        console.write("")
        console.report(exc)
        return EXIT_FAILURE if exc.severity is Severity.ERROR else EXIT_OK
    except KeyboardInterrupt:
        console.write("")
        console.warning("Response cancelled")
        return EXIT_INTERRUPTED
    return EXIT_OK


@click.command(
    context_settings={"help_option_names": ["-h", "--help"]},
    epilog=EPILOG,
)
@click.version_option(package_name="applei")
@click.option("-i", "--interactive", is_flag=True, help="Start interactive mode.")
@click.option(
    "-m",
    "--model",
    "use_case",
    metavar="MODEL",
    help="Select model use case (general, content-tagging).",
)
@click.option(
    "-t",
    "--temperature",
    type=float,
    help="Sampling temperature, clamped to 0.0-1.0 (default: 0.7).",
)
@click.option("-s", "--system", "instructions", help="Custom system instructions.")
@click.option("--fetch-url", metavar="URL", help="Fetch web content and analyze it.")
@click.option(
    "--fetcher", "fetcher_path", metavar="PATH", help="Path to the page-rendering binary."
)
@click.option(
    "--max-content-chars",
    type=click.IntRange(min=1),
    help="Truncate fetched content to this many characters.",
)
@click.option(
    "--conversation",
    default=DEFAULT_CONVERSATION,
    show_default=True,
    help="Name of the saved conversation to use.",
)
@click.option("--no-save", is_flag=True, help="Do not load or save conversation history.")
@click.option("--list-conversations", is_flag=True, help="List saved conversations and exit.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.argument("prompt", nargs=-1)
@click.pass_context
def cli(
    ctx: click.Context,
    interactive: bool,
    use_case: str | None,
    temperature: float | None,
    instructions: str | None,
    fetch_url: str | None,
    fetcher_path: str | None,
    max_content_chars: int | None,
    conversation: str,
    no_save: bool,
    list_conversations: bool,
    verbose: bool,
    prompt: tuple[str, ...],
) -> None:
    """Applei: Apple Intelligence command line interface.

    Sends PROMPT to the on-device model and streams the answer, or starts an
    interactive session with --interactive.
    """
    _configure_logging(verbose)
    try:
        config = _build_config(use_case, temperature, instructions, fetcher_path, max_content_chars)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    logger.debug(
        "[Applei CLI] use_case=%s temperature=%.2f conversations_dir=%s",
        config.use_case,
        config.temperature,
        config.conversations_dir,
    )

    try:
        store = ConversationStore(config.conversations_dir)
        store.path_for(conversation)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--conversation") from exc

    if list_conversations:
        names = store.list_conversations()
        if not names:
            console.info("No saved conversations")
        for name in names:
            console.write(name)
        ctx.exit(EXIT_OK)

    prompt_text = " ".join(prompt).strip() or None
    if not interactive and fetch_url is None and prompt_text is None:
        click.echo(ctx.get_help())
        ctx.exit(EXIT_FAILURE)

    persistence = None if no_save else store
    try:
        controller = SessionController(
            get_backend(),
            config,
            persistence=persistence,
            conversation=conversation,
            restore=persistence is not None,
        )
    except ModelUnavailableError as exc:
        console.error(str(exc))
        ctx.exit(EXIT_UNAVAILABLE)

    fetcher = resolve_fetcher(config.fetcher_path)

    if interactive:
        session = InteractiveSession(controller, fetcher=fetcher)
        ctx.exit(asyncio.run(session.run()))

    try:
        if fetch_url is not None:
            console.info(f"Fetching {fetch_url}...")
            content = fetch_text(
                fetcher, fetch_url, wait_time=config.fetch_wait, timeout=config.fetch_timeout
            )
            if content is None:
                console.warning(f"Could not fetch content from {fetch_url}; skipping analysis")
                ctx.exit(EXIT_OK)
            console.info(f"Fetched {len(content)} characters")
            prompt_text = compose_prompt(content, prompt_text, max_chars=config.max_content_chars)

        ctx.exit(_run_single_turn(controller, prompt_text or ""))
    finally:
        controller.close()


def cli_entry() -> None:
    """Entry point for the console_scripts."""
    try:
        cli()
    except ModelUnavailableError as exc:
        click.secho(str(exc), fg="red", err=True)
        raise SystemExit(EXIT_UNAVAILABLE) from exc


if __name__ == "__main__":
    cli_entry()
