"""
Turn fetched web content into analysis prompts.

Fetched pages can be far larger than the model's context window, so content
is trimmed to ``max_chars`` (at a whitespace boundary where possible) with a
visible marker before it is embedded in the prompt template.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("applei")

__all__ = [
    "DEFAULT_ANALYSIS_REQUEST",
    "DEFAULT_MAX_CONTENT_CHARS",
    "NO_CONTENT_NOTICE",
    "TRUNCATION_MARKER",
    "compose_prompt",
    "summary_prompt",
    "truncate_content",
]

DEFAULT_MAX_CONTENT_CHARS = 12_000
DEFAULT_ANALYSIS_REQUEST = "Please analyze and summarize this web content."
TRUNCATION_MARKER = "[... content truncated ...]"
NO_CONTENT_NOTICE = "(no content available: the page could not be fetched or was empty)"

# Only back off to a word boundary if it keeps at least this share of the budget.
_MIN_BOUNDARY_RATIO = 0.5


def truncate_content(text: str, max_chars: int) -> tuple[str, bool]:
    """
    Cut *text* to at most ``max_chars`` characters.

    Returns ``(content, truncated)``. When truncated, the content is the
    longest prefix ending at whitespace that fits (or a hard cut if no
    reasonable boundary exists) followed by ``TRUNCATION_MARKER`` on its own
    line.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be >= 1")
    if len(text) <= max_chars:
        return text, False

    head = text[:max_chars]
    if not text[max_chars].isspace():
        boundary = max(head.rfind(" "), head.rfind("\n"), head.rfind("\t"))
        if boundary >= int(max_chars * _MIN_BOUNDARY_RATIO):
            head = head[:boundary]
    head = head.rstrip()
    logger.debug("[Applei Composer] Truncated content from %d to %d chars", len(text), len(head))
    return f"{head}\n{TRUNCATION_MARKER}", True


def _content_block(fetched_text: str | None, max_chars: int) -> str:
    if fetched_text is None or not fetched_text.strip():
        return NO_CONTENT_NOTICE
    content, _ = truncate_content(fetched_text.strip(), max_chars)
    return content


def compose_prompt(
    fetched_text: str | None,
    instruction: str | None = None,
    *,
    max_chars: int = DEFAULT_MAX_CONTENT_CHARS,
) -> str:
    """Embed fetched text and the user's request in the analysis template."""
    request = (instruction or "").strip() or DEFAULT_ANALYSIS_REQUEST
    content = _content_block(fetched_text, max_chars)
    return f"Web Content:\n\n{content}\n\nAnalysis Request: {request}"


def summary_prompt(fetched_text: str | None, *, max_chars: int = DEFAULT_MAX_CONTENT_CHARS) -> str:
    """Prompt used by the interactive ``fetch <url>`` command."""
    return (
        "Please analyze this web content and provide a summary:\n\n"
        f"{_content_block(fetched_text, max_chars)}"
    )
