"""Bounded-window concurrent translation of ordered chunks."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

from .errors import BackendError, ConfigurationError, TranslationCancelled
from .providers import TranslationProvider
from .structures import Chunk, TranslationResult

logger = logging.getLogger(__name__)

WindowCallback = Callable[[Sequence[TranslationResult]], None]


class BatchScheduler:
    """Translates chunks in fixed-size windows of concurrent calls.

    All calls of a window are issued together and the whole window is
    waited on before the next one starts. Results are written into a
    pre-sized list at the position of their chunk, so completion order
    never changes output order.
    """

    def __init__(
        self,
        provider: TranslationProvider,
        *,
        target_language: str,
        source_language: str | None = None,
        concurrency: int = 10,
        inter_batch_delay_ms: int = 100,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        if concurrency <= 0:
            raise ConfigurationError("Concurrency must be at least 1.")
        if inter_batch_delay_ms < 0:
            raise ConfigurationError("Inter-batch delay cannot be negative.")
        self.provider = provider
        self.source_language = source_language
        self.target_language = target_language
        self.concurrency = concurrency
        self.inter_batch_delay_ms = inter_batch_delay_ms
        self.stop_event = stop_event or threading.Event()

    def translate_all(
        self,
        chunks: Sequence[Chunk],
        on_window: WindowCallback | None = None,
    ) -> List[TranslationResult]:
        """Translate every chunk and return results in chunk order.

        ``on_window`` runs on the calling thread after each window with
        that window's results.
        """

        results: List[Optional[TranslationResult]] = [None] * len(chunks)
        if not chunks:
            return []

        total = len(chunks)
        with ThreadPoolExecutor(
            max_workers=min(self.concurrency, total),
            thread_name_prefix="textferry",
        ) as executor:
            for start in range(0, total, self.concurrency):
                if self.stop_event.is_set():
                    raise TranslationCancelled(
                        f"Stopped before window starting at chunk {start + 1}."
                    )

                window = chunks[start:start + self.concurrency]
                futures = [
                    executor.submit(self._translate_one, chunk) for chunk in window
                ]
                for offset, future in enumerate(futures):
                    results[start + offset] = future.result()

                window_results = results[start:start + len(window)]
                for result in window_results:
                    logger.info(
                        "Chunk %d/%d %s in %.2fs (%d -> %d characters).",
                        result.sequence_index + 1,
                        total,
                        "failed" if result.failed else "completed",
                        result.duration_ms / 1000,
                        result.original_length,
                        result.translated_length,
                    )
                if on_window is not None:
                    on_window(window_results)  # type: ignore[arg-type]

                if start + self.concurrency < total:
                    self._pause()

        return results  # type: ignore[return-value]

    def _pause(self) -> None:
        """Idle between windows; a stop request cuts the wait short."""

        if not self.inter_batch_delay_ms:
            return
        if self.stop_event.wait(self.inter_batch_delay_ms / 1000):
            raise TranslationCancelled("Stopped while pacing between windows.")

    def _translate_one(self, chunk: Chunk) -> TranslationResult:
        try:
            reply = self.provider.translate(
                chunk.text,
                source_language=self.source_language,
                target_language=self.target_language,
            )
        except BackendError as exc:
            logger.warning(
                "Translation of chunk %d failed; keeping source text. (%s)",
                chunk.sequence_index + 1,
                exc,
            )
            return TranslationResult(
                sequence_index=chunk.sequence_index,
                text=chunk.text,
                duration_ms=0,
                original_length=len(chunk.text),
                translated_length=len(chunk.text),
                failed=True,
                error=str(exc),
            )

        text = keep_outer_whitespace(chunk.text, reply.text)
        return TranslationResult(
            sequence_index=chunk.sequence_index,
            text=text,
            duration_ms=reply.latency_ms,
            original_length=len(chunk.text),
            translated_length=len(text),
        )


def keep_outer_whitespace(source: str, translated: str) -> str:
    """Wrap ``translated`` in the leading and trailing whitespace of ``source``.

    Services often trim their replies.
    """

    core = source.strip()
    if not core:
        return source
    start = source.index(core)
    return source[:start] + translated.strip() + source[start + len(core):]
