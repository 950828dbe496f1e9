"""Translation provider abstractions."""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from .errors import BackendError, ConfigurationError
from .structures import TranslationReply

if TYPE_CHECKING:  # pragma: no cover
    from .configuration import TextferryConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional translator. Translate the given text from "
    "{source} to {target}. Only provide the translated text without any "
    "explanations or additional information. Keep every [CODE_PART_X] style "
    "marker exactly as it appears, in the same position. Preserve line breaks."
)


class TranslationProvider(ABC):
    """Abstract adapter for translation backends.

    Subclasses implement :meth:`_translate_text`; :meth:`translate` times
    the call. Implementations must raise :class:`BackendError` for network,
    authentication, or quota failures.
    """

    name = "base"

    def translate(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
    ) -> TranslationReply:
        """Translate one piece of text and report how long the call took."""

        started = time.perf_counter()
        translated = self._translate_text(
            text,
            source_language=source_language,
            target_language=target_language,
        )
        latency_ms = int((time.perf_counter() - started) * 1000)
        return TranslationReply(text=translated, latency_ms=latency_ms)

    @abstractmethod
    def _translate_text(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
    ) -> str:
        """Return the translation of ``text``."""


class EchoTranslationProvider(TranslationProvider):
    """A provider that returns the original text (useful for testing)."""

    name = "echo"

    def _translate_text(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
    ) -> str:
        return text


class ChatModelTranslationProvider(TranslationProvider):
    """Shared plumbing for providers that prompt a large language model."""

    name = "chat"

    def __init__(
        self,
        settings: "TextferryConfig",
        *,
        model: str | None = None,
        debug: bool = False,
    ) -> None:
        self.settings = settings
        self.debug = debug
        self._client, default_model = self._build_client()
        self.model = model or settings.TEXTFERRY_MODEL or default_model

    def _build_client(self) -> tuple[Any, str]:
        """Return the SDK client and the model used when none is configured."""

        raise NotImplementedError

    def _system_prompt(self, source_language: str | None, target_language: str) -> str:
        return SYSTEM_PROMPT.format(
            source=source_language or "the detected language",
            target=target_language,
        )

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
        else:
            message = str(payload)
        logger.debug("[provider-debug] %s:\n%s", label, message)

    def _safe_dump_response(self, response: Any) -> Any:
        """Best-effort conversion of SDK objects into JSON-friendly data."""

        dump = getattr(response, "model_dump", None)
        if callable(dump):
            return dump()
        return str(response)

    def _strip_code_fence(self, text: str) -> str:
        """Remove leading/trailing markdown code fences if present."""

        stripped = text.strip()
        if not stripped.startswith("```"):
            return stripped

        # Drop opening fence and optional language hint.
        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped
        body = stripped[first_newline + 1 :]
        closing_index = body.rfind("```")
        if closing_index != -1:
            body = body[:closing_index]
        return body.strip()


class OpenAITranslationProvider(ChatModelTranslationProvider):
    """Translation provider that uses OpenAI chat models."""

    name = "openai"
    DEFAULT_MODEL = "gpt-4o-mini"

    def _build_client(self) -> tuple[Any, str]:
        api_key = self.settings.OPENAI_API_KEY
        if not api_key:
            raise ConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        from openai import OpenAI

        return OpenAI(api_key=api_key), self.DEFAULT_MODEL

    def _translate_text(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
    ) -> str:
        if not text.strip():
            return text

        system_prompt = self._system_prompt(source_language, target_language)
        self._log_debug("provider.request.system_prompt", system_prompt)
        self._log_debug("provider.request.text", text)

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                temperature=0.3,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": text},
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise BackendError(
                f"Translation service temporarily unavailable: {exc}"
            ) from exc
        self._log_debug("provider.response.raw", self._safe_dump_response(response))

        content = self._extract_content(response)
        return self._strip_code_fence(content)

    def _extract_content(self, response: Any) -> str:
        """Return the message text of the first usable choice."""

        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            if message is None:
                continue
            message_content = getattr(message, "content", None)
            if isinstance(message_content, list):
                parts: list[str] = []
                for part in message_content:
                    text_value = getattr(part, "text", None)
                    if text_value is None and isinstance(part, dict):
                        text_value = part.get("text")
                    if text_value:
                        parts.append(str(text_value))
                if parts:
                    return "\n".join(parts)
            elif message_content:
                return str(message_content)

        raise BackendError("Translation provider response empty or unrecognised.")


class AzureOpenAITranslationProvider(OpenAITranslationProvider):
    """Translation provider that talks to an Azure OpenAI deployment."""

    name = "azure_openai"

    def _build_client(self) -> tuple[Any, str]:
        settings = self.settings
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
            raise ConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )
        from openai import AzureOpenAI

        client = AzureOpenAI(
            api_key=settings.AZURE_OPENAI_API_KEY,
            api_version=settings.AZURE_OPENAI_API_VERSION,
            azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
        )
        return client, settings.AZURE_OPENAI_DEPLOYMENT_NAME  # type: ignore[return-value]


class GeminiTranslationProvider(ChatModelTranslationProvider):
    """Translation provider backed by Google's Gemini models (google-genai SDK)."""

    name = "gemini"
    DEFAULT_MODEL = "gemini-2.5-flash"

    def _build_client(self) -> tuple[Any, str]:
        api_key = self.settings.GEMINI_API_KEY
        if not api_key:
            raise ConfigurationError(
                "Gemini configuration missing. Set GEMINI_API_KEY or choose a "
                "different provider."
            )
        from google import genai

        return genai.Client(api_key=api_key), self.DEFAULT_MODEL

    def _translate_text(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
    ) -> str:
        if not text.strip():
            return text

        from google.genai import errors, types

        system_prompt = self._system_prompt(source_language, target_language)
        self._log_debug("provider.request.system_prompt", system_prompt)
        self._log_debug("provider.request.text", text)

        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=text,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=0.3,
                ),
            )
        except errors.APIError as exc:
            raise BackendError(f"Gemini request failed: {exc}") from exc
        self._log_debug("provider.response.raw", self._safe_dump_response(response))

        content = getattr(response, "text", None)
        if not content:
            raise BackendError("Gemini response empty or blocked.")
        return self._strip_code_fence(content)


class AWSTranslateProvider(TranslationProvider):
    """Amazon Translate through boto3.

    Without explicit keys boto3 falls back to its own credential chain
    (shared config, instance role).
    """

    name = "aws"

    def __init__(
        self,
        settings: "TextferryConfig",
        *,
        model: str | None = None,
        debug: bool = False,
    ) -> None:
        self.settings = settings
        self.debug = debug
        self._client = self._build_client()

    def _build_client(self) -> Any:
        settings = self.settings
        if bool(settings.AWS_ACCESS_KEY_ID) != bool(settings.AWS_SECRET_ACCESS_KEY):
            raise ConfigurationError(
                "AWS configuration incomplete. Set both AWS_ACCESS_KEY_ID and "
                "AWS_SECRET_ACCESS_KEY, or neither to use the default credential chain."
            )
        import boto3

        return boto3.client(
            "translate",
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )

    def _translate_text(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
    ) -> str:
        if not text.strip():
            return text

        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self._client.translate_text(
                Text=text,
                SourceLanguageCode=source_language or "auto",
                TargetLanguageCode=target_language,
            )
        except (BotoCoreError, ClientError) as exc:
            raise BackendError(f"AWS Translate request failed: {exc}") from exc
        if self.debug:
            logger.debug("[provider-debug] provider.response.raw:\n%s", response)
        return response["TranslatedText"]


class GoogleTranslateProvider(TranslationProvider):
    """Google Cloud Translation (basic, v2) with a service account key file."""

    name = "google"

    def __init__(
        self,
        settings: "TextferryConfig",
        *,
        model: str | None = None,
        debug: bool = False,
    ) -> None:
        self.settings = settings
        self.debug = debug
        self._client = self._build_client()

    def _build_client(self) -> Any:
        credentials_file = self.settings.GOOGLE_APPLICATION_CREDENTIALS
        if not credentials_file:
            raise ConfigurationError(
                "Google Translate configuration missing. Set "
                "GOOGLE_APPLICATION_CREDENTIALS to a service account key file."
            )
        from google.cloud import translate_v2

        return translate_v2.Client.from_service_account_json(credentials_file)

    def _translate_text(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
    ) -> str:
        if not text.strip():
            return text

        from google.api_core.exceptions import GoogleAPIError

        try:
            response = self._client.translate(
                text,
                target_language=target_language,
                source_language=source_language,
                format_="text",
            )
        except GoogleAPIError as exc:
            raise BackendError(f"Google Translate request failed: {exc}") from exc
        if self.debug:
            logger.debug("[provider-debug] provider.response.raw:\n%s", response)
        return response["translatedText"]


PROVIDER_ALIASES = {
    "echo": "echo",
    "noop": "echo",
    "mock": "echo",
    "openai": "openai",
    "gpt": "openai",
    "default": "openai",
    "azure_openai": "azure_openai",
    "azure": "azure_openai",
    "azureopenai": "azure_openai",
    "azure_open_ai": "azure_openai",
    "gemini": "gemini",
    "google_genai": "gemini",
    "aws": "aws",
    "aws_translate": "aws",
    "amazon": "aws",
    "google": "google",
    "google_translate": "google",
}

PROVIDERS: dict[str, type[TranslationProvider]] = {
    "openai": OpenAITranslationProvider,
    "azure_openai": AzureOpenAITranslationProvider,
    "gemini": GeminiTranslationProvider,
    "aws": AWSTranslateProvider,
    "google": GoogleTranslateProvider,
}


def canonical_provider_name(name: str | None) -> str | None:
    """Map a provider identifier or alias to its canonical name, or None."""

    normalized = (name or "openai").strip().lower().replace("-", "_")
    return PROVIDER_ALIASES.get(normalized)


def build_provider(
    name: str | None,
    *,
    settings: "TextferryConfig | None" = None,
    model: str | None = None,
    debug: bool = False,
) -> TranslationProvider:
    """Factory to create providers by name."""

    canonical = canonical_provider_name(name)
    if canonical is None:
        raise ConfigurationError(f"Unknown translation provider '{name}'.")
    if canonical == "echo":
        return EchoTranslationProvider()

    if settings is None:
        raise ConfigurationError(
            f"Provider '{canonical}' needs loaded settings for its credentials."
        )
    provider_cls = PROVIDERS[canonical]
    return provider_cls(settings, model=model, debug=debug)  # type: ignore[call-arg]
