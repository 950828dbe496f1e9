"""Chunked, markup-safe translation of long texts."""

from .translator import PipelineOptions, PipelineResult, TranslationPipeline, run

__all__ = ["PipelineOptions", "PipelineResult", "TranslationPipeline", "run"]
__version__ = "0.1.0"
