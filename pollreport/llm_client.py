"""Generation providers for report writing and the shared chat client factory."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import google.generativeai as genai
import openai
from google.api_core import exceptions as google_exceptions
from openai import AsyncOpenAI

from pollreport.config import settings
from pollreport.errors import (
    ConfigurationError,
    ContentFilteredError,
    MalformedResponseError,
    UpstreamError,
    UpstreamRateLimitError,
    UpstreamTimeoutError,
)
from pollreport.services import logger as log_service


@dataclass(frozen=True)
class ReportPrompt:
    system: str
    user: str


@dataclass(frozen=True)
class GenerationConfig:
    max_tokens: int = 4000
    temperature: float | None = None


class GenerationProvider(Protocol):
    name: str
    model: str

    async def generate(self, prompt: ReportPrompt, config: GenerationConfig) -> str:
        """Return the generated text or raise an UpstreamError subclass."""
        ...


def get_chat_client(base_url: str, api_key: str) -> AsyncOpenAI:
    """OpenAI-compatible async client for an Azure AI inference endpoint.

    SDK-level retries are disabled; retry policy is applied by the caller.
    """
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url.rstrip("/"),
        default_headers={"api-key": api_key},
        default_query={"api-version": settings.azure_inference_api_version},
        max_retries=0,
    )


_CONTENT_FILTER_MARKERS = (
    "content_filter",
    "content management policy",
    "prompt filtered",
    "responsible ai",
)


def _looks_content_filtered(exc: openai.APIStatusError) -> bool:
    code = getattr(exc, "code", None)
    if isinstance(code, str) and "content_filter" in code:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _CONTENT_FILTER_MARKERS)


class AzureInferenceProvider:
    """Chat completions against an Azure-hosted model deployment."""

    name = "azure"

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        *,
        model: str,
        openai_client: Any | None = None,
    ):
        self.model = model
        self._client = openai_client or get_chat_client(endpoint, api_key)

    async def generate(self, prompt: ReportPrompt, config: GenerationConfig) -> str:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
            "max_tokens": config.max_tokens,
        }
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature

        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.RateLimitError as exc:
            self._log_failure(t0, exc)
            raise UpstreamRateLimitError(str(exc), status=429) from exc
        except openai.APITimeoutError as exc:
            self._log_failure(t0, exc)
            raise UpstreamTimeoutError(str(exc)) from exc
        except openai.APIStatusError as exc:
            self._log_failure(t0, exc)
            if _looks_content_filtered(exc):
                raise ContentFilteredError(str(exc), status=exc.status_code) from exc
            raise UpstreamError(str(exc), status=exc.status_code) from exc
        except openai.APIConnectionError as exc:
            self._log_failure(t0, exc)
            raise UpstreamError(str(exc)) from exc

        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=self.model,
            caller="report.azure",
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return self._extract_text(response)

    @staticmethod
    def _extract_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise MalformedResponseError("Azure response contained no choices")
        choice = choices[0]
        if getattr(choice, "finish_reason", None) == "content_filter":
            raise ContentFilteredError("Azure response was content filtered")
        message = getattr(choice, "message", None)
        text = getattr(message, "content", None) if message is not None else None
        if not isinstance(text, str) or not text.strip():
            raise MalformedResponseError("Azure response contained no message content")
        return text

    def _log_failure(self, t0: float, exc: Exception) -> None:
        log_service.log_llm_call(
            model=self.model,
            caller="report.azure",
            duration_ms=int((time.monotonic() - t0) * 1000),
            status="error",
            error=str(exc),
        )


_SAFETY_FINISH_REASONS = {"SAFETY", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"}


def _enum_name(value: Any) -> str:
    return getattr(value, "name", None) or str(value)


class GeminiProvider:
    """Google generative model API."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        model_factory: Callable[[str], Any] | None = None,
    ):
        self.model = model
        if model_factory is None:
            genai.configure(api_key=api_key)
            model_factory = self._build_model
        self._model_factory = model_factory

    def _build_model(self, system_instruction: str) -> Any:
        return genai.GenerativeModel(self.model, system_instruction=system_instruction)

    async def generate(self, prompt: ReportPrompt, config: GenerationConfig) -> str:
        model = self._model_factory(prompt.system)
        generation_config: dict[str, Any] = {"max_output_tokens": config.max_tokens}
        if config.temperature is not None:
            generation_config["temperature"] = config.temperature

        t0 = time.monotonic()
        try:
            response = await model.generate_content_async(
                prompt.user,
                generation_config=generation_config,
            )
        except (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests) as exc:
            self._log_failure(t0, exc)
            raise UpstreamRateLimitError(str(exc), status=429) from exc
        except google_exceptions.DeadlineExceeded as exc:
            self._log_failure(t0, exc)
            raise UpstreamTimeoutError(str(exc)) from exc
        except google_exceptions.GoogleAPICallError as exc:
            self._log_failure(t0, exc)
            raise UpstreamError(str(exc), status=getattr(exc, "code", None)) from exc

        usage = getattr(response, "usage_metadata", None)
        log_service.log_llm_call(
            model=self.model,
            caller="report.gemini",
            input_tokens=getattr(usage, "prompt_token_count", 0) or 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) or 0,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return self._extract_text(response)

    @staticmethod
    def _extract_text(response: Any) -> str:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback is not None else None
        if block_reason:
            raise ContentFilteredError(f"Gemini blocked the prompt: {_enum_name(block_reason)}")

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            raise MalformedResponseError("Gemini response contained no candidates")
        candidate = candidates[0]
        finish_reason = getattr(candidate, "finish_reason", None)
        if finish_reason is not None and _enum_name(finish_reason) in _SAFETY_FINISH_REASONS:
            raise ContentFilteredError(f"Gemini stopped generation: {_enum_name(finish_reason)}")

        content = getattr(candidate, "content", None)
        parts = getattr(content, "parts", None) or []
        text = "".join(getattr(part, "text", "") or "" for part in parts)
        if not text.strip():
            raise MalformedResponseError("Gemini response contained no text")
        return text

    def _log_failure(self, t0: float, exc: Exception) -> None:
        log_service.log_llm_call(
            model=self.model,
            caller="report.gemini",
            duration_ms=int((time.monotonic() - t0) * 1000),
            status="error",
            error=str(exc),
        )


PROVIDER_NAMES = ("azure", "gemini")


def default_provider_name() -> str:
    return (settings.default_provider or "azure").lower().strip()


def provider_model(name: str) -> str:
    return settings.gemini_report_model if name == "gemini" else settings.azure_report_model


def provider_configured(name: str) -> bool:
    if name == "azure":
        return bool(settings.azure_inference_sdk_endpoint and settings.azure_inference_sdk_key)
    if name == "gemini":
        return bool(settings.gemini_api_key)
    return False


def get_provider(name: str | None = None) -> GenerationProvider:
    """Build the generation provider, validating its credentials."""
    provider = (name or default_provider_name()).lower().strip()
    if provider not in PROVIDER_NAMES:
        raise ConfigurationError(f"Unknown generation provider '{provider}'.")
    if not provider_configured(provider):
        log_service.logger.error(f"Credentials for generation provider '{provider}' are not set")
        if provider == "azure":
            raise ConfigurationError("Missing Azure AI credentials.")
        raise ConfigurationError("Missing Gemini API key.")

    if provider == "gemini":
        return GeminiProvider(settings.gemini_api_key, model=settings.gemini_report_model)
    return AzureInferenceProvider(
        settings.azure_inference_sdk_endpoint,
        settings.azure_inference_sdk_key,
        model=settings.azure_report_model,
    )
