"""High-level orchestration of the translation pipeline."""

from __future__ import annotations

import json
import logging
import pathlib
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .errors import (
    ConfigurationError,
    FatalInputError,
    OverwriteRefusedError,
    TextferryError,
)
from .lexicon import apply_lexicon, build_lexicon
from .providers import EchoTranslationProvider, TranslationProvider
from .scheduler import BatchScheduler
from .segmenter import reassemble, split_text
from .spans import SPAN_PATTERN, extract_spans, restore_spans
from .structures import (
    EMPTY_LEXICON,
    Chunk,
    Lexicon,
    ProtectedSpan,
    RunMetrics,
    TranslationResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOptions:
    """Tunable knobs of a pipeline run."""

    max_chunk_size: int = 5000
    concurrency: int = 10
    inter_batch_delay_ms: int = 100
    min_duplicate_word_length: int = 4
    lexicon_batch_size: int = 128
    enable_span_protection: bool = True
    enable_deduplication: bool = False
    source_language: str | None = "en"
    target_language: str = "vi"

    def validate(self) -> None:
        errors: list[str] = []
        if self.max_chunk_size <= 0:
            errors.append("max_chunk_size must be greater than zero.")
        if self.concurrency <= 0:
            errors.append("concurrency must be greater than zero.")
        if self.inter_batch_delay_ms < 0:
            errors.append("inter_batch_delay_ms cannot be negative.")
        if self.min_duplicate_word_length < 0:
            errors.append("min_duplicate_word_length cannot be negative.")
        if self.lexicon_batch_size <= 0:
            errors.append("lexicon_batch_size must be greater than zero.")
        if not self.target_language or not self.target_language.strip():
            errors.append("target_language is required.")
        if errors:
            bullet_list = "\n".join(f"- {message}" for message in errors)
            raise ConfigurationError("Invalid pipeline options:\n" + bullet_list)


class PipelineStage(Enum):
    IDLE = "idle"
    SPANS_EXTRACTED = "spans-extracted"
    LEXICON_BUILT = "lexicon-built"
    CHUNKED = "chunked"
    TRANSLATED = "translated"
    REASSEMBLED = "reassembled"
    SPANS_RESTORED = "spans-restored"
    LEXICON_APPLIED = "lexicon-applied"
    DONE = "done"


@dataclass
class PipelineResult:
    """Final text of a run plus everything needed to report on it."""

    output_text: str
    metrics: RunMetrics
    spans: List[ProtectedSpan] = field(default_factory=list)
    lexicon: Lexicon = field(default_factory=lambda: EMPTY_LEXICON)


class TranslationPipeline:
    """Coordinates span protection, chunking, translation, and restoration."""

    def __init__(
        self,
        provider: TranslationProvider,
        options: PipelineOptions | None = None,
        *,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.provider = provider
        self.options = options or PipelineOptions()
        self.options.validate()
        self.stop_event = stop_event or threading.Event()
        self.stage = PipelineStage.IDLE

    def _advance(self, stage: PipelineStage) -> None:
        logger.debug("Pipeline stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def run(self, input_text: str) -> PipelineResult:
        if not input_text or not input_text.strip():
            raise FatalInputError("Input text is empty; nothing to translate.")

        options = self.options
        metrics = RunMetrics(original_characters=len(input_text))
        start_time = time.perf_counter()
        self.stage = PipelineStage.IDLE

        spans: List[ProtectedSpan] = []
        working_text = input_text
        if options.enable_span_protection:
            working_text, spans = extract_spans(input_text)
            metrics.span_count = len(spans)
            metrics.protected_characters = sum(span.length for span in spans)
            metrics.placeholder_characters = sum(
                len(span.placeholder) for span in spans
            )
            self._advance(PipelineStage.SPANS_EXTRACTED)
            logger.info("Protected %d markup spans.", len(spans))

        lexicon: Lexicon = EMPTY_LEXICON
        if options.enable_deduplication:
            lexicon, word_results = build_lexicon(
                working_text,
                self.provider,
                source_language=options.source_language,
                target_language=options.target_language,
                min_word_length=options.min_duplicate_word_length,
                batch_size=options.lexicon_batch_size,
                concurrency=options.concurrency,
                inter_batch_delay_ms=options.inter_batch_delay_ms,
                stop_event=self.stop_event,
            )
            metrics.record_lexicon(word_results)
            self._advance(PipelineStage.LEXICON_BUILT)

        chunks = split_text(working_text, options.max_chunk_size)
        metrics.chunk_count = len(chunks)
        self._advance(PipelineStage.CHUNKED)
        logger.info("Split into %d chunks.", len(chunks))

        results = self._translate_chunks(chunks, metrics)
        self._advance(PipelineStage.TRANSLATED)

        translated_text = reassemble([result.text for result in results], chunks)
        self._advance(PipelineStage.REASSEMBLED)

        output_text = translated_text
        if options.enable_span_protection:
            output_text, discrepancies = restore_spans(translated_text, spans)
            metrics.record_discrepancies(discrepancies)
            self._advance(PipelineStage.SPANS_RESTORED)

        if options.enable_deduplication:
            output_text = apply_lexicon(
                output_text,
                lexicon,
                skip_pattern=SPAN_PATTERN if options.enable_span_protection else None,
            )
            self._advance(PipelineStage.LEXICON_APPLIED)

        metrics.output_characters = len(output_text)
        metrics.wall_clock_ms = int((time.perf_counter() - start_time) * 1000)
        self._advance(PipelineStage.DONE)

        return PipelineResult(
            output_text=output_text,
            metrics=metrics,
            spans=spans,
            lexicon=lexicon,
        )

    def _translate_chunks(
        self,
        chunks: Sequence[Chunk],
        metrics: RunMetrics,
    ) -> List[TranslationResult]:
        scheduler = BatchScheduler(
            self.provider,
            source_language=self.options.source_language,
            target_language=self.options.target_language,
            concurrency=self.options.concurrency,
            inter_batch_delay_ms=self.options.inter_batch_delay_ms,
            stop_event=self.stop_event,
        )
        phase_start = time.perf_counter()
        results = scheduler.translate_all(chunks, on_window=metrics.record_window)
        metrics.translation_phase_ms = int((time.perf_counter() - phase_start) * 1000)
        return results


def run(
    input_text: str,
    options: PipelineOptions | None = None,
    provider: TranslationProvider | None = None,
) -> PipelineResult:
    """Translate ``input_text`` in one call; defaults to the echo provider."""

    pipeline = TranslationPipeline(provider or EchoTranslationProvider(), options)
    return pipeline.run(input_text)


def read_input(input_path: pathlib.Path) -> str:
    try:
        return input_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FatalInputError(f"Could not read {input_path}: {exc}") from exc


def translate_file(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    *,
    provider: TranslationProvider,
    options: PipelineOptions | None = None,
    spans_path: pathlib.Path | None = None,
    lexicon_path: pathlib.Path | None = None,
    stop_event: Optional[threading.Event] = None,
) -> PipelineResult:
    """Translate one file; the output is written once, after a full run."""

    pipeline = TranslationPipeline(provider, options, stop_event=stop_event)
    text = read_input(input_path)
    result = pipeline.run(text)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(result.output_text, encoding="utf-8")

    if spans_path is not None:
        write_json(spans_path, [span.to_dict() for span in result.spans])
    if lexicon_path is not None:
        write_json(lexicon_path, dict(result.lexicon))
    return result


def write_json(path: pathlib.Path, payload: object) -> None:
    path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FatalInputError("Input file not found. Please provide a readable text file.")
    if not input_path.is_file():
        raise TextferryError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input file. Refusing to overwrite the source."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use the overwrite flag."
        )
