"""
Gemini model manager and analysis provider.

Supports two backends:
  1. Vertex AI SDK (production) - uses GOOGLE_CLOUD_PROJECT + service account
  2. google-generativeai (local dev) - uses GOOGLE_API_KEY

GeminiProvider.complete() is the only network call in the analysis pipeline.
SDK exceptions are converted into the provider errors from
dailydrop.analysis.errors so the engine can classify them without importing
google.api_core itself.
"""

from __future__ import annotations

import concurrent.futures
import os
from functools import lru_cache

from dailydrop.analysis.errors import (
    ConfigurationError,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from dailydrop.config import LLM_TIMEOUT_SECONDS
from dailydrop.infrastructure.settings import (
    GEMINI_LOCATION,
    GEMINI_MAX_TOKENS,
    GEMINI_MODEL,
    GEMINI_TEMPERATURE,
)
from dailydrop.observability.logging import get_logger
from dailydrop.observability.telemetry import counter

logger = get_logger(__name__)

# Which SDK produced the cached model: "vertexai" or "genai"
_backend: str | None = None


class GeminiInitializationError(RuntimeError):
    """Raised when Gemini model cannot be initialized."""


def has_llm_credentials() -> bool:
    """True when a provider credential is present in the environment.

    Read fresh on every call so .env loading and test monkeypatching apply.
    """
    return bool(os.getenv("GOOGLE_API_KEY") or os.getenv("GOOGLE_CLOUD_PROJECT"))


@lru_cache(maxsize=1)
def get_gemini_model():
    """
    Get or create shared Gemini model instance.

    Uses Vertex AI when GOOGLE_CLOUD_PROJECT is set, google-generativeai with
    GOOGLE_API_KEY otherwise.

    Returns:
        GenerativeModel: Shared Gemini model

    Raises:
        GeminiInitializationError: If model cannot be initialized
    """
    global _backend
    project = os.getenv("GOOGLE_CLOUD_PROJECT")
    location = os.getenv("GEMINI_LOCATION", "") or GEMINI_LOCATION or "us-central1"

    if project:
        try:
            import vertexai
            from vertexai.generative_models import GenerativeModel

            vertexai.init(project=project, location=location)
            model = GenerativeModel(GEMINI_MODEL)
            _backend = "vertexai"

            logger.info(
                "Initialized Gemini model (Vertex AI): project=%s, location=%s, model=%s",
                project,
                location,
                GEMINI_MODEL,
            )
            return model

        except ImportError:
            logger.info("Vertex AI SDK not installed, trying google-generativeai fallback")

    try:
        import google.generativeai as genai

        api_key = os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise GeminiInitializationError(
                "Neither vertexai nor GOOGLE_API_KEY available. "
                "Install google-cloud-aiplatform or set GOOGLE_API_KEY."
            )

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(GEMINI_MODEL)
        _backend = "genai"

        logger.info("Initialized Gemini model (google-generativeai): model=%s", GEMINI_MODEL)
        return model

    except ImportError as e:
        raise GeminiInitializationError(
            "No Gemini SDK available. Install google-cloud-aiplatform or google-generativeai."
        ) from e


def clear_model_cache() -> None:
    """
    Clear the cached model instance.

    Useful for testing or when credentials change.
    """
    get_gemini_model.cache_clear()
    logger.info("Cleared Gemini model cache")


def _response_text(response) -> str:
    # .text raises ValueError when the candidate was blocked or has no parts
    try:
        return response.text or ""
    except ValueError:
        return ""


def _is_api_key_error(exc: Exception) -> bool:
    """True when an InvalidArgument is really a rejected or missing API key.

    google-generativeai reports a bad key as HTTP 400 with reason
    API_KEY_INVALID instead of 401.
    """
    reason = (getattr(exc, "reason", None) or "").upper()
    if reason.startswith("API_KEY"):
        return True
    message = str(exc).lower()
    return "api key" in message or "api_key" in message


def _generate_with_timeout(model, prompt: str, timeout: float, **kwargs):
    """
    Run model.generate_content on a worker thread and wait at most timeout seconds.

    The Vertex SDK takes no per-request timeout, so the wait is bounded here for
    both backends. A timed-out worker is abandoned, not joined.
    """
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(model.generate_content, prompt, **kwargs)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            raise TimeoutError(f"Gemini call timed out after {timeout:.1f}s") from None
    finally:
        executor.shutdown(wait=False)


class GeminiProvider:
    """Sends one prompt to Gemini and returns the raw reply text."""

    name = "gemini"

    def complete(self, prompt: str, timeout: float = LLM_TIMEOUT_SECONDS) -> str:
        """
        Call Gemini once, with no retries.

        Raises:
            ConfigurationError: No usable SDK or credential
            ProviderAuthError: Unauthenticated / PermissionDenied, or InvalidArgument naming the API key
            ProviderTimeoutError: DeadlineExceeded, a socket timeout, or no reply within timeout
            ProviderRateLimitError: ResourceExhausted (429)
            ProviderUnavailableError: ServiceUnavailable, InternalServerError, connection errors
        """
        from google.api_core.exceptions import (
            DeadlineExceeded,
            InternalServerError,
            InvalidArgument,
            PermissionDenied,
            ResourceExhausted,
            ServiceUnavailable,
            Unauthenticated,
        )

        try:
            model = get_gemini_model()
        except GeminiInitializationError as e:
            logger.error("Gemini initialization failed: %s", e)
            raise ConfigurationError(str(e)) from e

        generation_config = {
            "temperature": GEMINI_TEMPERATURE,
            "max_output_tokens": GEMINI_MAX_TOKENS,
        }
        request_kwargs = {}
        if _backend == "genai":
            request_kwargs["request_options"] = {"timeout": timeout}

        try:
            response = _generate_with_timeout(
                model, prompt, timeout, generation_config=generation_config, **request_kwargs
            )
        except (Unauthenticated, PermissionDenied) as e:
            counter("analysis.llm.auth_error")
            logger.error("LLM rejected credentials: %s", e)
            raise ProviderAuthError(f"LLM authentication failed: {e}") from e
        except InvalidArgument as e:
            if not _is_api_key_error(e):
                raise
            counter("analysis.llm.auth_error")
            logger.error("LLM rejected API key: %s", e)
            raise ProviderAuthError(f"LLM API key rejected: {e}") from e
        except (DeadlineExceeded, TimeoutError) as e:
            counter("analysis.llm.timeout")
            logger.warning("LLM call timed out after %ss", timeout)
            raise ProviderTimeoutError(f"LLM call timed out: {e}") from e
        except ResourceExhausted as e:
            counter("analysis.llm.rate_limited")
            logger.warning("LLM rate limited (429): %s", e)
            raise ProviderRateLimitError(f"LLM rate limited: {e}") from e
        except (ServiceUnavailable, InternalServerError, ConnectionError) as e:
            counter("analysis.llm.service_unavailable")
            logger.warning("LLM service unavailable: %s", e)
            raise ProviderUnavailableError(f"LLM service unavailable: {e}") from e

        return _response_text(response)
