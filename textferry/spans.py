"""Markup protection: swap tags for placeholder tokens and back."""

from __future__ import annotations

import logging
import re
from typing import List, Sequence, Tuple

from .structures import ProtectedSpan, RestorationDiscrepancy

logger = logging.getLogger(__name__)

DEFAULT_MARKER = "CODE_PART"

SPAN_PATTERN = re.compile(
    r"<!--.*?(?:-->|$)"  # comments
    r"|<![A-Za-z][^<>]*>"  # declarations such as <!DOCTYPE html>
    r"|<\?.*?(?:\?>|$)"  # processing instructions
    r"|</?[A-Za-z][^<>]*>"  # start and end tags
    # a tag cut off by the end of the input, attributes only in name=value form
    r"|</?[A-Za-z][\w:-]*(?:\s+[\w:-]+=(?:\"[^\"]*\"|'[^']*'|[^\s<>]*))*\s*\Z",
    re.DOTALL,
)


def placeholder_for(index: int, marker: str = DEFAULT_MARKER) -> str:
    """Return the token standing in for the span with the given index."""

    return f"[{marker}_{index}]"


def _choose_marker(text: str) -> str:
    """Pick a marker whose tokens cannot already occur in the text."""

    marker = DEFAULT_MARKER
    suffix = 0
    while f"[{marker}_" in text:
        marker = f"{DEFAULT_MARKER}_{_alpha_suffix(suffix)}"
        suffix += 1
    if marker != DEFAULT_MARKER:
        logger.warning(
            "Input already contains '[%s_' text; using marker %s instead.",
            DEFAULT_MARKER,
            marker,
        )
    return marker


def _alpha_suffix(number: int) -> str:
    letters = ""
    number += 1
    while number:
        number, remainder = divmod(number - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def extract_spans(text: str) -> Tuple[str, List[ProtectedSpan]]:
    """Replace every markup span with a placeholder token.

    Matches are found in a single left-to-right pass; the content of a
    span is stored verbatim and never scanned again. Returns the working
    text and the span table ordered by index.
    """

    marker = _choose_marker(text)
    spans: List[ProtectedSpan] = []
    parts: List[str] = []
    cursor = 0

    for match in SPAN_PATTERN.finditer(text):
        index = len(spans)
        placeholder = placeholder_for(index, marker)
        content = match.group(0)
        spans.append(
            ProtectedSpan(
                index=index,
                content=content,
                original_position=match.start(),
                length=len(content),
                placeholder=placeholder,
            )
        )
        parts.append(text[cursor:match.start()])
        parts.append(placeholder)
        cursor = match.end()

    parts.append(text[cursor:])
    working_text = "".join(parts)
    logger.debug("Protected %d markup spans.", len(spans))
    return working_text, spans


def restore_spans(
    text: str,
    spans: Sequence[ProtectedSpan],
) -> Tuple[str, List[RestorationDiscrepancy]]:
    """Put the protected spans back in place of their placeholders.

    Spans are restored from the highest index down. A placeholder that the
    backend dropped is skipped and reported instead of raising.
    """

    restored = text
    discrepancies: List[RestorationDiscrepancy] = []

    for span in sorted(spans, key=lambda item: item.index, reverse=True):
        position = restored.find(span.placeholder)
        if position == -1:
            logger.warning(
                "Placeholder %s missing from translated text; skipping %r.",
                span.placeholder,
                span.content,
            )
            discrepancies.append(
                RestorationDiscrepancy(
                    index=span.index,
                    placeholder=span.placeholder,
                    content=span.content,
                )
            )
            continue
        restored = (
            restored[:position]
            + span.content
            + restored[position + len(span.placeholder):]
        )

    discrepancies.reverse()
    return restored, discrepancies
