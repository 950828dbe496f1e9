"""Core data structures for the textferry pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence

from .errors import ErrorCategory, ErrorRecord


Lexicon = Mapping[str, str]


def freeze_lexicon(entries: Mapping[str, str]) -> Lexicon:
    """Return a read-only view over a copy of the given entries."""

    return MappingProxyType(dict(entries))


EMPTY_LEXICON: Lexicon = freeze_lexicon({})


@dataclass(frozen=True)
class ProtectedSpan:
    """A markup substring shielded from translation behind a placeholder."""

    index: int
    content: str
    original_position: int
    length: int
    placeholder: str

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "content": self.content,
            "position": self.original_position,
            "length": self.length,
            "placeholder": self.placeholder,
        }


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of the working text, the unit of one translation call."""

    sequence_index: int
    text: str
    separator: str = ""
    leading: str = ""


@dataclass(frozen=True)
class TranslationReply:
    """What a translation provider returns for one call."""

    text: str
    latency_ms: int


@dataclass(frozen=True)
class TranslationResult:
    """Outcome of translating one chunk or one lexicon word."""

    sequence_index: int
    text: str
    duration_ms: int
    original_length: int
    translated_length: int
    failed: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class RestorationDiscrepancy:
    """A placeholder that was missing from the translated text."""

    index: int
    placeholder: str
    content: str


@dataclass
class RunMetrics:
    """Counters accumulated by the pipeline and reported once it finishes."""

    original_characters: int = 0
    translated_characters: int = 0
    output_characters: int = 0
    wall_clock_ms: int = 0
    translation_phase_ms: int = 0
    backend_latency_ms: int = 0
    chunk_count: int = 0
    window_count: int = 0
    failed_chunks: int = 0
    lexicon_words: int = 0
    failed_words: int = 0
    lexicon_latency_ms: int = 0
    span_count: int = 0
    protected_characters: int = 0
    placeholder_characters: int = 0
    discrepancies: List[RestorationDiscrepancy] = field(default_factory=list)
    errors: List[ErrorRecord] = field(default_factory=list)

    def record_window(self, results: Sequence[TranslationResult]) -> None:
        """Fold one completed window of chunk results into the totals."""

        self.window_count += 1
        for result in results:
            self.backend_latency_ms += result.duration_ms
            self.translated_characters += result.translated_length
            if result.failed:
                self.failed_chunks += 1
                self.errors.append(
                    ErrorRecord(
                        category=ErrorCategory.TRANSLATION,
                        message=f"Chunk {result.sequence_index + 1} left untranslated.",
                        details=result.error,
                    )
                )

    def record_lexicon(self, results: Sequence[TranslationResult]) -> None:
        """Fold the word translations of the lexicon build into the totals."""

        self.lexicon_words += len(results)
        for result in results:
            self.lexicon_latency_ms += result.duration_ms
            if result.failed:
                self.failed_words += 1
                self.errors.append(
                    ErrorRecord(
                        category=ErrorCategory.LEXICON,
                        message=f"Word {result.text!r} kept untranslated in the lexicon.",
                        details=result.error,
                    )
                )

    def record_discrepancies(
        self, discrepancies: Sequence[RestorationDiscrepancy]
    ) -> None:
        for discrepancy in discrepancies:
            self.discrepancies.append(discrepancy)
            self.errors.append(
                ErrorRecord(
                    category=ErrorCategory.RESTORATION,
                    message=(
                        f"Placeholder {discrepancy.placeholder} missing from the "
                        "translation; markup dropped."
                    ),
                    details=discrepancy.content,
                )
            )

    @property
    def character_ratio(self) -> float:
        if not self.original_characters:
            return 0.0
        return self.output_characters / self.original_characters

    @property
    def characters_reduced(self) -> int:
        """Characters saved by sending placeholders instead of markup."""

        return self.protected_characters - self.placeholder_characters

    @property
    def throughput(self) -> float:
        """Original characters per second of pure backend time."""

        if not self.backend_latency_ms:
            return 0.0
        return self.original_characters / (self.backend_latency_ms / 1000)
