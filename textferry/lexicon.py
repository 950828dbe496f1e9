"""Repeated-vocabulary lexicon: find, translate once, substitute."""

from __future__ import annotations

import logging
import re
import threading
from collections import Counter
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError, TranslationCancelled
from .providers import TranslationProvider
from .scheduler import BatchScheduler
from .structures import Chunk, Lexicon, TranslationResult, freeze_lexicon

logger = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"\b\w+\b")
PLACEHOLDER_WORD = re.compile(r"^CODE_PART(?:_[A-Z]+)?_\d+$")


def find_duplicate_words(text: str, min_length: int) -> List[str]:
    """Return words seen more than once and at least ``min_length`` long.

    Words are compared case-sensitively and listed in the order in which
    they were first seen a second time.
    """

    counts: Counter[str] = Counter()
    duplicates: Dict[str, None] = {}
    for match in WORD_PATTERN.finditer(text):
        word = match.group(0)
        counts[word] += 1
        if (
            counts[word] > 1
            and len(word) >= min_length
            and not PLACEHOLDER_WORD.match(word)
        ):
            duplicates.setdefault(word, None)
    return list(duplicates)


def build_lexicon(
    text: str,
    provider: TranslationProvider,
    *,
    target_language: str,
    source_language: str | None = None,
    min_word_length: int = 4,
    batch_size: int = 128,
    concurrency: int = 10,
    inter_batch_delay_ms: int = 100,
    stop_event: Optional[threading.Event] = None,
) -> Tuple[Lexicon, List[TranslationResult]]:
    """Translate every repeated word of ``text`` once.

    The vocabulary is cut into batches of ``batch_size`` words; each batch
    goes through a :class:`BatchScheduler`. A word whose translation fails
    maps to itself.
    """

    if batch_size <= 0:
        raise ConfigurationError("Lexicon batch size must be at least 1.")

    words = find_duplicate_words(text, min_word_length)
    logger.info("Found %d repeated words.", len(words))
    if not words:
        return freeze_lexicon({}), []

    stop_event = stop_event or threading.Event()
    scheduler = BatchScheduler(
        provider,
        source_language=source_language,
        target_language=target_language,
        concurrency=concurrency,
        inter_batch_delay_ms=inter_batch_delay_ms,
        stop_event=stop_event,
    )

    entries: Dict[str, str] = {}
    results: List[TranslationResult] = []
    batch_count = (len(words) + batch_size - 1) // batch_size

    for batch_number, start in enumerate(range(0, len(words), batch_size), 1):
        batch = words[start:start + batch_size]
        logger.info("Processing word batch %d/%d...", batch_number, batch_count)
        chunks = [
            Chunk(sequence_index=start + offset, text=word)
            for offset, word in enumerate(batch)
        ]
        for word, result in zip(batch, scheduler.translate_all(chunks)):
            translated = result.text.strip()
            entries[word] = word if result.failed or not translated else translated
            results.append(result)

        if start + batch_size < len(words) and inter_batch_delay_ms:
            if stop_event.wait(inter_batch_delay_ms / 1000):
                raise TranslationCancelled("Stopped between lexicon batches.")

    return freeze_lexicon(entries), results


def apply_lexicon(
    text: str,
    lexicon: Lexicon,
    skip_pattern: re.Pattern[str] | None = None,
) -> str:
    """Replace whole-word occurrences of lexicon entries.

    Entries are applied in insertion order. Regions of ``text`` matching
    ``skip_pattern`` are copied through untouched.
    """

    if not lexicon:
        return text

    if skip_pattern is None:
        return _substitute(text, lexicon)

    parts: List[str] = []
    cursor = 0
    for match in skip_pattern.finditer(text):
        parts.append(_substitute(text[cursor:match.start()], lexicon))
        parts.append(match.group(0))
        cursor = match.end()
    parts.append(_substitute(text[cursor:], lexicon))
    return "".join(parts)


def _substitute(text: str, lexicon: Lexicon) -> str:
    result = text
    for source, target in lexicon.items():
        if source == target:
            continue
        pattern = re.compile(rf"\b{re.escape(source)}\b")
        result = pattern.sub(lambda _match: target, result)
    return result
