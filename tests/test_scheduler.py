"""Tests for the bounded-window batch scheduler."""

import pytest

from textferry.errors import ConfigurationError, TranslationCancelled
from textferry.scheduler import BatchScheduler, keep_outer_whitespace
from textferry.structures import Chunk

from conftest import ScriptedProvider


def _chunks(count):
    return [Chunk(sequence_index=i, text=f"chunk {i}") for i in range(count)]


def test_order_is_preserved_under_random_latency():
    provider = ScriptedProvider(max_latency=0.02, seed=3)
    scheduler = BatchScheduler(
        provider, target_language="vi", concurrency=4, inter_batch_delay_ms=0
    )

    results = scheduler.translate_all(_chunks(23))

    assert [result.sequence_index for result in results] == list(range(23))
    assert [result.text for result in results] == [f"CHUNK {i}" for i in range(23)]
    assert not any(result.failed for result in results)


def test_concurrency_never_exceeds_window_size():
    provider = ScriptedProvider(max_latency=0.01)
    scheduler = BatchScheduler(
        provider, target_language="vi", concurrency=3, inter_batch_delay_ms=0
    )

    scheduler.translate_all(_chunks(12))

    assert provider.peak_in_flight <= 3
    assert len(provider.calls) == 12


def test_failed_chunk_falls_back_to_source_text():
    provider = ScriptedProvider(fail_on={"chunk 2"})
    scheduler = BatchScheduler(
        provider, target_language="vi", concurrency=2, inter_batch_delay_ms=0
    )

    results = scheduler.translate_all(_chunks(5))

    failed = results[2]
    assert failed.failed is True
    assert failed.text == "chunk 2"
    assert failed.translated_length == failed.original_length == len("chunk 2")
    assert "quota exceeded" in failed.error
    assert [result.text for i, result in enumerate(results) if i != 2] == [
        "CHUNK 0",
        "CHUNK 1",
        "CHUNK 3",
        "CHUNK 4",
    ]


def test_delay_between_windows_but_not_after_the_last(recording_event):
    scheduler = BatchScheduler(
        ScriptedProvider(),
        target_language="vi",
        concurrency=2,
        inter_batch_delay_ms=250,
        stop_event=recording_event,
    )

    scheduler.translate_all(_chunks(5))

    assert recording_event.waits == [0.25, 0.25]


def test_window_callback_receives_each_window_in_order():
    windows = []
    scheduler = BatchScheduler(
        ScriptedProvider(), target_language="vi", concurrency=3, inter_batch_delay_ms=0
    )

    scheduler.translate_all(_chunks(7), on_window=lambda results: windows.append(
        [result.sequence_index for result in results]
    ))

    assert windows == [[0, 1, 2], [3, 4, 5], [6]]


def test_stop_request_prevents_new_windows(recording_event):
    provider = ScriptedProvider()
    scheduler = BatchScheduler(
        provider,
        target_language="vi",
        concurrency=2,
        inter_batch_delay_ms=0,
        stop_event=recording_event,
    )

    def stop_after_first(_results):
        recording_event.set()

    with pytest.raises(TranslationCancelled):
        scheduler.translate_all(_chunks(6), on_window=stop_after_first)

    assert sorted(provider.calls) == ["chunk 0", "chunk 1"]


def test_empty_input_returns_empty_list():
    scheduler = BatchScheduler(ScriptedProvider(), target_language="vi")

    assert scheduler.translate_all([]) == []


@pytest.mark.parametrize(
    "kwargs",
    [{"concurrency": 0}, {"inter_batch_delay_ms": -1}],
)
def test_invalid_settings(kwargs):
    with pytest.raises(ConfigurationError):
        BatchScheduler(ScriptedProvider(), target_language="vi", **kwargs)


@pytest.mark.parametrize(
    "source, reply, expected",
    [
        ("\n  Hello.\n", "Xin chao.", "\n  Xin chao.\n"),
        ("Hello.", "  Xin chao.\n", "Xin chao."),
        ("   ", "anything", "   "),
    ],
)
def test_keep_outer_whitespace(source, reply, expected):
    assert keep_outer_whitespace(source, reply) == expected


def test_reply_is_rewrapped_in_the_chunk_whitespace():
    provider = ScriptedProvider(lambda text: text.strip().upper())
    scheduler = BatchScheduler(provider, target_language="vi", inter_batch_delay_ms=0)

    [result] = scheduler.translate_all([Chunk(sequence_index=0, text="  line one\n")])

    assert result.text == "  LINE ONE\n"
    assert result.translated_length == len("  LINE ONE\n")
