"""Categorized terminal output shared by the CLI and the interactive loop."""

from __future__ import annotations

import click

from .exceptions import ChatError, Severity


def error(message: str) -> None:
    click.secho("[ERROR] ", fg="red", err=True, nl=False)
    click.echo(message, err=True)


def warning(message: str) -> None:
    click.secho("[WARNING] ", fg="yellow", err=True, nl=False)
    click.echo(message, err=True)


def info(message: str) -> None:
    click.secho("[INFO] ", fg="cyan", nl=False)
    click.echo(message)


def report(exc: ChatError) -> None:
    """Print one line for *exc*, categorized by its severity."""
    if exc.severity is Severity.WARNING:
        warning(exc.user_message)
    else:
        error(exc.user_message)


def write(text: str, *, nl: bool = True) -> None:
    click.echo(text, nl=nl)
