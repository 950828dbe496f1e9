"""Text segmentation into size-bounded translation chunks."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Callable, List

from .errors import ConfigurationError
from .structures import Chunk

PARAGRAPH_BREAK = re.compile(r"[ \t\r\f\v]*\n[ \t\r\f\v]*\n\s*")
WORD_BREAK = re.compile(r"\s+")
SENTENCE_PATTERN = re.compile(
    r".+?(?:[。！？]+|[\.!?…‽]+[\"'”’»)]*(?:\s+|$|(?=[A-Z]))|$)", re.DOTALL
)


@dataclass
class _Unit:
    """An atomic piece of text plus the whitespace that followed it."""

    text: str
    gap: str = ""


def _split_on(pattern: re.Pattern[str], text: str) -> List[_Unit]:
    """Split text at separator matches, keeping each separator as a gap."""

    units: List[_Unit] = []
    cursor = 0
    for match in pattern.finditer(text):
        if match.start() > cursor:
            units.append(_Unit(text[cursor:match.start()], match.group(0)))
        elif units:
            units[-1].gap += match.group(0)
        cursor = match.end()
    if cursor < len(text):
        units.append(_Unit(text[cursor:]))
    return units


def _consume_pattern(pattern: re.Pattern[str], text: str) -> List[str]:
    """Split text by greedily consuming matches from the start of a string."""

    if not text:
        return []

    segments: List[str] = []
    index = 0
    length = len(text)
    while index < length:
        match = pattern.match(text, index)
        if not match:
            # If no match is found, consume the rest of the text.
            segments.append(text[index:])
            break
        end = match.end()
        if end == index:
            # Avoid zero-length loops by consuming at least one character.
            end += 1
        segments.append(text[index:end])
        index = end
    return segments


def _split_paragraphs(text: str) -> List[_Unit]:
    return _split_on(PARAGRAPH_BREAK, text)


def _split_sentences(text: str) -> List[_Unit]:
    """Split a paragraph into sentences, moving whitespace into the gaps."""

    units: List[_Unit] = []
    for raw in _consume_pattern(SENTENCE_PATTERN, text):
        core = raw.strip()
        leading = raw[: len(raw) - len(raw.lstrip())]
        trailing = raw[len(raw.rstrip()):] if core else ""
        if units:
            units[-1].gap += leading
        if not core:
            continue
        units.append(_Unit(core, trailing))
    return units


def _split_words(text: str) -> List[_Unit]:
    return _split_on(WORD_BREAK, text)


Splitter = Callable[[str], List[_Unit]]

_LEVELS: List[Splitter] = [_split_paragraphs, _split_sentences, _split_words]


def _atomise(text: str, gap: str, budget: int, level: int) -> List[_Unit]:
    """Break text into units no larger than the budget where possible.

    Each level is tried only for pieces that the coarser level left too
    large; a piece that is still too large once words are reached is kept
    whole.
    """

    if len(text) <= budget or level >= len(_LEVELS):
        return [_Unit(text, gap)]

    pieces = _LEVELS[level](text)
    if not pieces:
        return [_Unit(text, gap)]
    pieces[-1].gap += gap

    units: List[_Unit] = []
    for piece in pieces:
        units.extend(_atomise(piece.text, piece.gap, budget, level + 1))
    return units


def _joiner_size(gap: str) -> int:
    """Budget cost of a unit boundary; an empty gap still counts as one."""

    return max(len(gap), 1)


def _pack_units(units: List[_Unit], budget: int) -> List[Chunk]:
    """Greedily pack atomic units into chunks within the budget.

    Units are joined by their real gap, so a chunk is always a verbatim
    slice of the text.
    """

    chunks: List[Chunk] = []
    current = ""
    current_gap = ""
    current_size = 0

    def seal() -> None:
        chunks.append(
            Chunk(sequence_index=len(chunks), text=current, separator=current_gap)
        )

    for unit in units:
        if not current:
            current, current_gap = unit.text, unit.gap
            current_size = len(unit.text)
            continue
        size = current_size + _joiner_size(current_gap) + len(unit.text)
        if size <= budget:
            current = current + current_gap + unit.text
            current_gap = unit.gap
            current_size = size
            continue
        seal()
        current, current_gap = unit.text, unit.gap
        current_size = len(unit.text)

    if current:
        seal()
    return chunks


def split_text(text: str, max_size: int) -> List[Chunk]:
    """Split text into ordered chunks of at most ``max_size`` characters.

    Chunks break at paragraph, then sentence, then word boundaries. A
    single word longer than ``max_size`` becomes its own oversized chunk
    rather than being cut. Joining each chunk's leading whitespace, text
    and separator reproduces the input exactly.
    """

    if max_size <= 0:
        raise ConfigurationError("Maximum chunk size must be a positive number.")

    if len(text) <= max_size:
        return [Chunk(sequence_index=0, text=text)]

    leading = text[: len(text) - len(text.lstrip())]
    units = _atomise(text[len(leading):], "", max_size, 0)
    chunks = _pack_units(units, max_size)
    if not chunks:
        return [Chunk(sequence_index=0, text=text)]
    chunks[0] = replace(chunks[0], leading=leading)
    return chunks


def reassemble(texts: List[str], chunks: List[Chunk]) -> str:
    """Join translated chunk texts using the whitespace of their chunks."""

    return "".join(
        chunk.leading + translated + chunk.separator
        for translated, chunk in zip(texts, chunks)
    )
