"""Command line interface for textferry."""

from __future__ import annotations

import argparse
import logging
import pathlib
import re
import sys
from typing import Iterable, Optional

from .configuration import (
    TextferryConfig,
    get_settings,
    pipeline_options,
    validate_provider_settings,
)
from .errors import (
    ConfigurationError,
    FatalInputError,
    OverwriteRefusedError,
    TextferryError,
    TranslationCancelled,
)
from .providers import build_provider
from .translator import PipelineOptions, PipelineResult, translate_file, validate_paths

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="textferry",
        description=(
            "Translate long text files through a size-limited translation service, "
            "keeping markup intact."
        ),
    )
    parser.add_argument("input_file", help="Path to the UTF-8 text file to translate.")
    parser.add_argument(
        "-t",
        "--target-language",
        help="Destination language code (default from configuration).",
    )
    parser.add_argument(
        "-s",
        "--source-language",
        help="Source language code (default from configuration).",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the target language code.",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help=(
            "Translation provider identifier: openai, azure_openai, gemini, aws, "
            "google, or echo."
        ),
    )
    parser.add_argument(
        "-m",
        "--model",
        help="Provider-specific model or deployment identifier.",
    )
    parser.add_argument(
        "-c",
        "--max-chunk-size",
        type=int,
        help="Maximum characters per translation call.",
    )
    parser.add_argument(
        "-j",
        "--concurrency",
        type=int,
        help="Maximum translation calls in flight at once.",
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        help="Pause in milliseconds between windows of concurrent calls.",
    )
    parser.add_argument(
        "--dedupe",
        action="store_true",
        help="Translate repeated words once and substitute them afterwards.",
    )
    parser.add_argument(
        "--min-word-length",
        type=int,
        help="Minimum length of a repeated word to enter the lexicon.",
    )
    parser.add_argument(
        "--no-protect",
        action="store_true",
        help="Send markup to the translation service instead of shielding it.",
    )
    parser.add_argument(
        "--spans-file",
        help="Write the table of protected markup spans to this JSON file.",
    )
    parser.add_argument(
        "--lexicon-file",
        help="Write the repeated-word lexicon to this JSON file.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


def sanitise_language_for_filename(language: str) -> str:
    """Generate a filesystem-friendly suffix from a language descriptor."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(input_path: pathlib.Path, language: str) -> pathlib.Path:
    addition = sanitise_language_for_filename(language)
    return input_path.with_name(f"{input_path.stem}_{addition}{input_path.suffix}")


def configure_logging(*, verbose: bool, provider_debug: bool) -> None:
    level = logging.WARNING
    if verbose:
        level = logging.INFO
    if provider_debug:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=LOG_FORMAT)


def execute_translation(
    *,
    input_file: str,
    output_file: str | None,
    options: PipelineOptions,
    provider: str | None,
    model: str | None = None,
    settings: TextferryConfig | None = None,
    spans_file: str | None = None,
    lexicon_file: str | None = None,
    force_overwrite: bool = False,
    provider_debug: bool = False,
) -> tuple[int, PipelineResult | None, str | None]:
    """Execute a translation run and return the exit code, result, and message."""

    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(output_file).expanduser().resolve()
        if output_file
        else derive_output_path(input_path, options.target_language)
    )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
    except (OverwriteRefusedError, FatalInputError) as exc:
        return 1, None, str(exc)
    except TextferryError as exc:
        return 1, None, str(exc)

    try:
        translation_provider = build_provider(
            provider, settings=settings, model=model, debug=provider_debug
        )
        result = translate_file(
            input_path,
            output_path,
            provider=translation_provider,
            options=options,
            spans_path=pathlib.Path(spans_file) if spans_file else None,
            lexicon_path=pathlib.Path(lexicon_file) if lexicon_file else None,
        )
    except ConfigurationError as exc:
        return 1, None, str(exc)
    except FatalInputError as exc:
        return 1, None, str(exc)
    except TranslationCancelled as exc:
        return 2, None, str(exc)
    except TextferryError as exc:
        return 1, None, str(exc)
    except KeyboardInterrupt:
        return 2, None, "Translation interrupted by user."

    return 0, result, f"Output written to {output_path}"


def format_duration(ms: int) -> str:
    minutes, remainder = divmod(ms, 60_000)
    seconds, milliseconds = divmod(remainder, 1000)
    parts: list[str] = []
    if minutes:
        parts.append(f"{minutes}m")
    if seconds or minutes:
        parts.append(f"{seconds}s")
    parts.append(f"{milliseconds}ms")
    return " ".join(parts)


def print_summary(result: PipelineResult) -> None:
    """Output a friendly report once processing completes."""

    metrics = result.metrics
    print("\nSummary Report:")
    print("==============")
    print(
        f"  Chunks processed:     {metrics.chunk_count} "
        f"in {metrics.window_count} windows ({metrics.failed_chunks} untranslated)"
    )
    if metrics.lexicon_words:
        print(
            f"  Repeated words:       {metrics.lexicon_words} "
            f"({metrics.failed_words} untranslated)"
        )
    if metrics.span_count:
        print(
            f"  Protected spans:      {metrics.span_count} "
            f"({metrics.protected_characters:,} characters, "
            f"{metrics.characters_reduced:,} saved)"
        )
    print(f"  Original characters:  {metrics.original_characters:,}")
    print(f"  Output characters:    {metrics.output_characters:,}")
    print(f"  Character ratio:      {metrics.character_ratio:.2f}x")
    print(f"  Total time:           {format_duration(metrics.wall_clock_ms)}")
    print(
        "  Translation time:     "
        f"{format_duration(metrics.translation_phase_ms)} (including delays)"
    )
    print(f"  Pure API call time:   {format_duration(metrics.backend_latency_ms)}")
    if metrics.backend_latency_ms:
        print(f"  Average speed:        {round(metrics.throughput):,} chars/second")
    if metrics.errors:
        print("  Notes:")
        for record in metrics.errors:
            print(f"    - {record.message}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        settings = get_settings()
    except ConfigurationError as exc:
        print(exc)
        return 1

    provider_debug = bool(args.debug_provider or settings.TEXTFERRY_PROVIDER_DEBUG)
    configure_logging(verbose=args.verbose, provider_debug=provider_debug)

    provider = (args.provider or settings.LLM_PROVIDER).strip().lower()
    try:
        validate_provider_settings(settings, provider.replace("-", "_"))
        options = pipeline_options(
            settings,
            max_chunk_size=args.max_chunk_size,
            concurrency=args.concurrency,
            inter_batch_delay_ms=args.delay_ms,
            min_duplicate_word_length=args.min_word_length,
            source_language=args.source_language,
            target_language=args.target_language,
            enable_deduplication=True if args.dedupe else None,
            enable_span_protection=False if args.no_protect else None,
        )
    except ConfigurationError as exc:
        print(exc)
        return 1

    exit_code, result, message = execute_translation(
        input_file=args.input_file,
        output_file=args.output,
        options=options,
        provider=provider,
        model=args.model,
        settings=settings,
        spans_file=args.spans_file,
        lexicon_file=args.lexicon_file,
        force_overwrite=args.force,
        provider_debug=provider_debug,
    )

    if message:
        print(message)
    if result:
        print_summary(result)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
