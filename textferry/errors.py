"""Error definitions for the textferry pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises recoverable problems reported in run metrics."""

    TRANSLATION = auto()
    LEXICON = auto()
    RESTORATION = auto()


class TextferryError(Exception):
    """Base exception for all custom errors."""


class ConfigurationError(TextferryError):
    """Raised when options or provider settings are invalid."""


class FatalInputError(TextferryError):
    """Raised when the input is unreadable or empty."""


class BackendError(TextferryError):
    """Raised by a translation provider when a single call fails."""


class TranslationCancelled(TextferryError):
    """Raised when a stop was requested before the next window was issued."""


class OverwriteRefusedError(TextferryError):
    """Raised when attempting to overwrite an output without consent."""


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None
