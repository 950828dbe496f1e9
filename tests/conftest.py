"""Shared fakes for the textferry test-suite."""

import os
import random
import sys
import threading
import time
from typing import Callable, List, Optional, Set

import pytest


_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from textferry.errors import BackendError  # noqa: E402
from textferry.providers import TranslationProvider  # noqa: E402


class ScriptedProvider(TranslationProvider):
    """Fake backend with random latency and scripted failures."""

    name = "scripted"

    def __init__(
        self,
        transform: Callable[[str], str] = str.upper,
        *,
        fail_on: Optional[Set[str]] = None,
        max_latency: float = 0.0,
        seed: int = 7,
    ) -> None:
        self.transform = transform
        self.fail_on = fail_on or set()
        self.max_latency = max_latency
        self._random = random.Random(seed)
        self._lock = threading.Lock()
        self.calls: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    def _translate_text(self, text, *, source_language, target_language):
        with self._lock:
            self.calls.append(text)
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            delay = self._random.uniform(0, self.max_latency)
        try:
            if delay:
                time.sleep(delay)
            if text in self.fail_on:
                raise BackendError(f"quota exceeded for {text!r}")
            return self.transform(text)
        finally:
            with self._lock:
                self.in_flight -= 1


class RecordingEvent(threading.Event):
    """An event that remembers every wait and never actually blocks."""

    def __init__(self) -> None:
        super().__init__()
        self.waits: List[float] = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        return self.is_set()


@pytest.fixture
def upper_provider():
    return ScriptedProvider()


@pytest.fixture
def recording_event():
    return RecordingEvent()
