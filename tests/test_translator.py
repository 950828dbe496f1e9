"""End-to-end tests for the translation pipeline."""

import json

import pytest

from textferry.errors import ConfigurationError, FatalInputError, OverwriteRefusedError
from textferry.errors import ErrorCategory
from textferry.structures import RunMetrics
from textferry.translator import (
    PipelineOptions,
    PipelineResult,
    PipelineStage,
    TranslationPipeline,
    run,
    translate_file,
    validate_paths,
)

from conftest import ScriptedProvider


FAST = dict(inter_batch_delay_ms=0, concurrency=3)


def test_echo_run_reproduces_markup_exactly():
    text = "<p>Hello <b>world</b>.</p>\n\n<p>Second paragraph here.</p>"

    result = run(text, PipelineOptions(max_chunk_size=20, **FAST))

    assert result.output_text == text
    assert result.metrics.span_count == 6
    assert result.metrics.discrepancies == []


def test_markup_never_reaches_the_backend():
    provider = ScriptedProvider()
    text = "<p>Hello there.</p> <p>General Kenobi.</p>"

    result = TranslationPipeline(provider, PipelineOptions(max_chunk_size=30, **FAST)).run(text)

    assert all("<" not in call for call in provider.calls)
    assert result.output_text == "<p>HELLO THERE.</p> <p>GENERAL KENOBI.</p>"


def test_failed_chunk_degrades_to_passthrough():
    provider = ScriptedProvider(fail_on={"Second sentence."})
    pipeline = TranslationPipeline(
        provider,
        PipelineOptions(max_chunk_size=17, enable_span_protection=False, **FAST),
    )

    result = pipeline.run("First sentence. Second sentence. Third sentence.")

    assert result.output_text == "FIRST SENTENCE. Second sentence. THIRD SENTENCE."
    assert result.metrics.failed_chunks == 1
    assert result.metrics.errors[0].category is ErrorCategory.TRANSLATION


def test_dropped_placeholder_is_reported_not_fatal():
    provider = ScriptedProvider(lambda text: text.replace("[CODE_PART_1]", ""))

    result = TranslationPipeline(provider, PipelineOptions(**FAST)).run("<i>a</i> b")

    assert result.output_text == "<i>a b"
    assert [d.index for d in result.metrics.discrepancies] == [1]
    assert result.metrics.errors[-1].category is ErrorCategory.RESTORATION


def test_deduplication_substitutes_untranslated_repeats():
    vocabulary = {"kitten": "meo con"}

    def backend(text):
        if text in vocabulary:
            return vocabulary[text]
        # the chunk backend leaves "kitten" untranslated
        return text.replace("small", "nho")

    provider = ScriptedProvider(backend)
    options = PipelineOptions(
        enable_deduplication=True, min_duplicate_word_length=4, **FAST
    )

    result = TranslationPipeline(provider, options).run(
        "<b>small kitten</b> and kitten"
    )

    assert dict(result.lexicon) == {"kitten": "meo con"}
    assert result.output_text == "<b>nho meo con</b> and meo con"
    assert result.metrics.lexicon_words == 1


def test_stages_end_in_done():
    pipeline = TranslationPipeline(ScriptedProvider(), PipelineOptions(**FAST))
    assert pipeline.stage is PipelineStage.IDLE

    pipeline.run("plain text")

    assert pipeline.stage is PipelineStage.DONE


def test_metrics_are_accumulated():
    text = "One. Two. Three. Four. Five."
    result = TranslationPipeline(
        ScriptedProvider(),
        PipelineOptions(max_chunk_size=5, concurrency=2, inter_batch_delay_ms=0),
    ).run(text)

    metrics = result.metrics
    assert metrics.chunk_count == 5
    assert metrics.window_count == 3
    assert metrics.original_characters == len(text)
    assert metrics.translated_characters == len(text.replace(" ", ""))
    assert metrics.output_characters == len(result.output_text)
    assert result.output_text == text.upper()


def test_prose_after_a_stray_angle_bracket_is_translated():
    result = TranslationPipeline(ScriptedProvider(), PipelineOptions(**FAST)).run(
        "When x<y the loop stops."
    )

    assert result.output_text == "WHEN X<Y THE LOOP STOPS."
    assert result.metrics.span_count == 0


def test_unspaced_sentences_survive_an_echo_round_trip():
    text = "Extend React.Component for views. " * 10

    result = run(text, PipelineOptions(max_chunk_size=100, **FAST))

    assert result.metrics.chunk_count > 1
    assert result.output_text == text


def test_outer_whitespace_survives_a_trimming_backend():
    provider = ScriptedProvider(lambda text: text.strip().upper())
    pipeline = TranslationPipeline(
        provider, PipelineOptions(enable_span_protection=False, **FAST)
    )

    assert pipeline.run("Title\n\nBody text.\n").output_text == "TITLE\n\nBODY TEXT.\n"


def test_leading_whitespace_survives_a_split_document():
    text = "\n\n  Opening line here. Closing line here.\n"

    result = run(text, PipelineOptions(max_chunk_size=20, **FAST))

    assert result.metrics.chunk_count == 2
    assert result.output_text == text


def test_result_lexicon_defaults_to_empty():
    result = PipelineResult(output_text="x", metrics=RunMetrics())

    assert dict(result.lexicon) == {}
    assert result.spans == []


@pytest.mark.parametrize("text", ["", "   \n\t"])
def test_empty_input_is_fatal(text):
    with pytest.raises(FatalInputError):
        run(text)


@pytest.mark.parametrize(
    "options",
    [
        PipelineOptions(max_chunk_size=0),
        PipelineOptions(concurrency=0),
        PipelineOptions(inter_batch_delay_ms=-5),
        PipelineOptions(target_language=" "),
    ],
)
def test_invalid_options_fail_fast(options):
    provider = ScriptedProvider()
    with pytest.raises(ConfigurationError):
        TranslationPipeline(provider, options)
    assert provider.calls == []


class TestTranslateFile:
    def test_writes_output_and_side_files(self, tmp_path):
        source = tmp_path / "input.txt"
        source.write_text("<p>word word</p> text", encoding="utf-8")
        output = tmp_path / "out.txt"
        spans_file = tmp_path / "code_parts.json"
        lexicon_file = tmp_path / "dict.json"

        translate_file(
            source,
            output,
            provider=ScriptedProvider(),
            options=PipelineOptions(enable_deduplication=True, **FAST),
            spans_path=spans_file,
            lexicon_path=lexicon_file,
        )

        assert output.read_text(encoding="utf-8") == "<p>WORD WORD</p> TEXT"
        spans = json.loads(spans_file.read_text(encoding="utf-8"))
        assert [span["content"] for span in spans] == ["<p>", "</p>"]
        assert json.loads(lexicon_file.read_text(encoding="utf-8")) == {"word": "WORD"}

    def test_unreadable_input_writes_nothing(self, tmp_path):
        source = tmp_path / "input.txt"
        source.write_bytes(b"\xff\xfe\xfa")
        output = tmp_path / "out.txt"

        with pytest.raises(FatalInputError):
            translate_file(source, output, provider=ScriptedProvider())

        assert not output.exists()

    def test_validate_paths(self, tmp_path):
        source = tmp_path / "input.txt"
        source.write_text("x", encoding="utf-8")
        existing = tmp_path / "out.txt"
        existing.write_text("old", encoding="utf-8")

        with pytest.raises(FatalInputError):
            validate_paths(tmp_path / "missing.txt", existing, force_overwrite=True)
        with pytest.raises(OverwriteRefusedError):
            validate_paths(source, source, force_overwrite=True)
        with pytest.raises(OverwriteRefusedError):
            validate_paths(source, existing, force_overwrite=False)
        validate_paths(source, existing, force_overwrite=True)
