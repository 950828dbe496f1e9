"""Prepper-backed configuration loader for textferry."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import ConfigurationError
from .providers import canonical_provider_name
from .translator import PipelineOptions

APP_NAME = "Textferry"


class TextferryConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    LLM_PROVIDER: Literal[
        "azure_openai", "openai", "gemini", "aws", "google", "echo"
    ] = Field(
        default="openai",
        description="Translation backend selection.",
    )
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    GEMINI_API_KEY: str | None = Field(default=None, secret=True)
    AWS_ACCESS_KEY_ID: str | None = Field(default=None, secret=True)
    AWS_SECRET_ACCESS_KEY: str | None = Field(default=None, secret=True)
    AWS_REGION: str = Field(default="ap-southeast-1")
    GOOGLE_APPLICATION_CREDENTIALS: str | None = Field(
        default=None,
        description="Path to a Google Cloud service account key file.",
    )
    TEXTFERRY_MODEL: str | None = Field(default=None)
    TEXTFERRY_PROVIDER_DEBUG: bool = Field(default=False)

    TEXTFERRY_MAX_CHUNK_SIZE: int = Field(default=5000)
    TEXTFERRY_CONCURRENCY: int = Field(default=10)
    TEXTFERRY_INTER_BATCH_DELAY_MS: int = Field(default=100)
    TEXTFERRY_MIN_DUPLICATE_WORD_LENGTH: int = Field(default=4)
    TEXTFERRY_LEXICON_BATCH_SIZE: int = Field(default=128)
    TEXTFERRY_SOURCE_LANGUAGE: str | None = Field(default="en")
    TEXTFERRY_TARGET_LANGUAGE: str = Field(default="vi")

    @model_validator(mode="before")
    def _normalise_provider(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("LLM_PROVIDER")
            if isinstance(raw_value, str):
                data["LLM_PROVIDER"] = canonical_provider_name(raw_value) or "openai"
        return data


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    try:
        provenance = ProvenanceRecorder()
        combined = _load_discovered_yaml(app_dir=base_dir, provenance=provenance)
        _merge_env_sources(
            combined,
            provenance=provenance,
            app_dir=base_dir,
            schema=TextferryConfig,
        )

        model = TextferryConfig.validate(combined, provenance=provenance)

        return ConfigInstance(
            model=model,
            provenance=provenance,
            env_prefix=None,
            schema_cls=TextferryConfig,
        )
    except IoError as exc:
        raise ConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise ConfigurationError(f"Configuration schema error: {exc}") from exc
    except ValidationError as exc:
        issues = _format_validation_errors(exc.to_dict())
        raise ConfigurationError(issues) from exc


def _load_discovered_yaml(
    *,
    app_dir: Path,
    provenance: ProvenanceRecorder,
) -> dict[str, Any]:
    """Load YAML configuration files using Prepper's discovery rules."""

    result: dict[str, Any] = {}
    discovered = discover_file_paths(
        APP_NAME,
        "yaml",
        app_dir=app_dir,
        extra_paths=None,
    )
    for path, label in discovered:
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        source = _path_to_source(label, "yaml", path)
        merge_layer(result, parsed, provenance=provenance, source=source, layer="file")
    return result


def _merge_env_sources(
    target: dict[str, Any],
    *,
    provenance: ProvenanceRecorder,
    app_dir: Path,
    schema: type[SchemaModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.__field_infos__.keys())

    def merge_values(values: Mapping[str, str], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if key not in allowed:
                continue
            merge_layer(
                target,
                {key: value},
                provenance=provenance,
                source=f"env:{source_prefix}:{key}",
                layer="env",
            )

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        dotenv_content = dotenv_values(dotenv_path)
        merge_values(
            {k: v for k, v in dotenv_content.items() if v is not None},
            source_prefix=".env",
        )

    merge_values(
        {k: v for k, v in os.environ.items() if isinstance(v, str)},
        source_prefix="process",
    )


def validate_provider_settings(settings: TextferryConfig, provider: str) -> None:
    """Check that the credentials of the selected provider are present."""

    errors: list[str] = []
    provider = canonical_provider_name(provider) or provider

    if provider == "openai":
        if not settings.OPENAI_API_KEY:
            errors.append("OPENAI_API_KEY is required when LLM_PROVIDER is 'openai'.")
    elif provider == "azure_openai":
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": settings.AZURE_OPENAI_API_KEY,
                "AZURE_OPENAI_ENDPOINT": settings.AZURE_OPENAI_ENDPOINT,
                "AZURE_OPENAI_API_VERSION": settings.AZURE_OPENAI_API_VERSION,
                "AZURE_OPENAI_DEPLOYMENT_NAME": settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            }.items()
            if not value
        ]
        if missing:
            errors.append(
                "The following Azure OpenAI settings must be provided when "
                f"LLM_PROVIDER is 'azure_openai': {', '.join(missing)}."
            )
    elif provider == "gemini":
        if not settings.GEMINI_API_KEY:
            errors.append("GEMINI_API_KEY is required when LLM_PROVIDER is 'gemini'.")
    elif provider == "aws":
        if bool(settings.AWS_ACCESS_KEY_ID) != bool(settings.AWS_SECRET_ACCESS_KEY):
            errors.append(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together "
                "when LLM_PROVIDER is 'aws'."
            )
        if not settings.AWS_REGION:
            errors.append("AWS_REGION is required when LLM_PROVIDER is 'aws'.")
    elif provider == "google":
        if not settings.GOOGLE_APPLICATION_CREDENTIALS:
            errors.append(
                "GOOGLE_APPLICATION_CREDENTIALS is required when LLM_PROVIDER is "
                "'google'."
            )

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise ConfigurationError(
            "Configuration validation errors detected:\n" + bullet_list
        )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        origin = f" (source: {source})" if source else ""
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}{origin}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def pipeline_options(settings: TextferryConfig, **overrides: Any) -> PipelineOptions:
    """Build pipeline options from settings; non-None overrides win."""

    values: dict[str, Any] = {
        "max_chunk_size": settings.TEXTFERRY_MAX_CHUNK_SIZE,
        "concurrency": settings.TEXTFERRY_CONCURRENCY,
        "inter_batch_delay_ms": settings.TEXTFERRY_INTER_BATCH_DELAY_MS,
        "min_duplicate_word_length": settings.TEXTFERRY_MIN_DUPLICATE_WORD_LENGTH,
        "lexicon_batch_size": settings.TEXTFERRY_LEXICON_BATCH_SIZE,
        "source_language": settings.TEXTFERRY_SOURCE_LANGUAGE,
        "target_language": settings.TEXTFERRY_TARGET_LANGUAGE,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    options = PipelineOptions(**values)
    options.validate()
    return options


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> TextferryConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
