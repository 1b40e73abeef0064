"""
LLM invocation for analyses.

AnalysisEngine turns a rendered corpus into raw model text. It owns the
credential and minimum-data preconditions, the coaching prompt, and the retry
loop around a single provider call. Parsing the reply is the parser's job.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

from dailydrop.analysis.errors import (
    AnalysisTimeoutError,
    ConfigurationError,
    EmptyResponseError,
    ExhaustedRetriesError,
    InsufficientDataError,
    ProviderAuthError,
)
from dailydrop.analysis.types import AnalysisCorpus
from dailydrop.config import (
    ANALYSIS_DEADLINE_SECONDS,
    ANALYSIS_MAX_BULLETS,
    ANALYSIS_MIN_BULLETS,
    ANALYSIS_REQUIRED_DROPS,
    ANALYSIS_SUMMARY_MAX_WORDS,
    LLM_BACKOFF_BASE_SECONDS,
    LLM_BACKOFF_MAX_SECONDS,
    LLM_MAX_RETRIES,
    LLM_TIMEOUT_SECONDS,
)
from dailydrop.infrastructure.retry import (
    RetryDeadlineExceeded,
    RetryDisposition,
    RetryExhaustedError,
    RetryPolicy,
)
from dailydrop.llm.gemini import GeminiProvider, has_llm_credentials
from dailydrop.observability.logging import get_logger
from dailydrop.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)


class LLMProvider(Protocol):
    def complete(self, prompt: str, timeout: float) -> str: ...


NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    ConfigurationError,
    ProviderAuthError,
    EmptyResponseError,
)


def classify_provider_error(exc: Exception) -> RetryDisposition:
    """
    Decide whether a failed provider call is worth repeating.

    Auth, configuration and empty-reply failures are final. So is any
    exception carrying an HTTP 401/403 status_code. Everything else
    (timeouts, rate limits, 5xx, connection resets, unknown errors) is retried.
    """
    if isinstance(exc, NON_RETRYABLE_ERRORS):
        return RetryDisposition.NON_RETRYABLE

    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and status in (401, 403):
        return RetryDisposition.NON_RETRYABLE

    return RetryDisposition.RETRYABLE


class AnalysisEngine:
    """
    Sends a corpus to the LLM provider with retry and backoff.

    Usage:
        engine = AnalysisEngine()
        raw = engine.generate(corpus)
        engine.attempts  # provider calls made by the last generate()
    """

    ANALYSIS_PROMPT = """You are an expert life coach and therapist specializing in cognitive behavioral therapy (CBT), positive psychology, and personal development. You will analyze a series of journal entries and conversations to provide deep, actionable insights.

ANALYSIS TASK:
Analyze the following {drop_count} journal entries and their conversations to identify patterns, growth opportunities, and insights the person may not recognize about themselves.

REQUIRED OUTPUT FORMAT:
Your response must be structured exactly as follows:

SUMMARY: [One-line insight in {max_words} words or less - the most important takeaway]

ANALYSIS:
[Paragraph 1: Identify 2-3 key emotional or behavioral patterns you observe across entries]

[Paragraph 2: Highlight growth areas, blind spots, or recurring themes using CBT principles]

[Paragraph 3: Provide specific, actionable recommendations for continued growth]

INSIGHTS:
• [Key insight 1 - specific pattern or recommendation]
• [Key insight 2 - growth opportunity or strength]
• [Key insight 3 - actionable next step or mindset shift]
• [Key insight 4 - behavioral or emotional pattern] (optional)
• [Key insight 5 - deeper psychological insight] (optional)

GUIDELINES:
- Be direct, insightful, and encouraging
- Focus on patterns across multiple entries, not individual responses
- Use CBT frameworks to identify cognitive patterns and suggest reframes
- Highlight both strengths and growth opportunities
- Keep the analysis practical and actionable
- Maintain a supportive, non-judgmental tone
- Limit the analysis to exactly 3 paragraphs
- Provide {min_bullets}-{max_bullets} bullet points ({min_bullets} minimum, {max_bullets} maximum)

JOURNAL ENTRIES TO ANALYZE:

{entries}"""

    def __init__(
        self,
        provider: LLMProvider | None = None,
        *,
        max_retries: int = LLM_MAX_RETRIES,
        base_delay: float = LLM_BACKOFF_BASE_SECONDS,
        max_delay: float = LLM_BACKOFF_MAX_SECONDS,
        timeout_seconds: float = LLM_TIMEOUT_SECONDS,
        deadline_seconds: float | None = ANALYSIS_DEADLINE_SECONDS,
        required_count: int = ANALYSIS_REQUIRED_DROPS,
        sleep_fn: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        credentials_check: Callable[[], bool] = has_llm_credentials,
    ):
        self.provider = provider or GeminiProvider()
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout_seconds = timeout_seconds
        self.deadline_seconds = deadline_seconds
        self.required_count = required_count
        self.sleep_fn = sleep_fn
        self.clock = clock
        self.credentials_check = credentials_check
        self.attempts = 0

    def build_prompt(self, corpus: AnalysisCorpus) -> str:
        return self.ANALYSIS_PROMPT.format(
            drop_count=corpus.drop_count,
            max_words=ANALYSIS_SUMMARY_MAX_WORDS,
            min_bullets=ANALYSIS_MIN_BULLETS,
            max_bullets=ANALYSIS_MAX_BULLETS,
            entries=corpus.text,
        )

    def generate(self, corpus: AnalysisCorpus) -> str:
        """
        Get raw analysis text for a corpus.

        Returns:
            Non-empty model reply

        Raises:
            ConfigurationError: No provider credential (checked before any call)
            InsufficientDataError: Corpus covers fewer than required_count drops
            ProviderAuthError: Provider rejected the credential (single attempt)
            EmptyResponseError: Provider answered with no text (single attempt)
            ExhaustedRetriesError: Every attempt failed with a retryable error
            AnalysisTimeoutError: Overall deadline passed

        Side Effects:
            - Sets self.attempts
            - Sleeps between attempts
        """
        self.attempts = 0

        if not self.credentials_check():
            counter("analysis.llm.missing_credentials")
            logger.error("Deployment issue: no LLM credential (GOOGLE_API_KEY / GOOGLE_CLOUD_PROJECT)")
            raise ConfigurationError("API key required")

        if corpus.drop_count < self.required_count:
            raise InsufficientDataError(corpus.drop_count, self.required_count)

        prompt = self.build_prompt(corpus)
        policy = RetryPolicy(
            stage="analysis.llm",
            max_attempts=self.max_retries + 1,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            deadline_seconds=self.deadline_seconds,
            classify=classify_provider_error,
            sleep_fn=self.sleep_fn,
            clock=self.clock,
        )

        log_event(
            "analysis.llm.request",
            drop_count=corpus.drop_count,
            total_messages=corpus.total_messages,
            prompt_chars=len(prompt),
        )

        try:
            with time_block("analysis.llm.latency"):
                text = policy.execute(self._call_once, prompt, policy)
        except RetryExhaustedError as e:
            logger.error("LLM call failed after %d attempts: %s", e.attempts, e.last_error)
            raise ExhaustedRetriesError(retries=e.attempts - 1, last_error=e.last_error) from e
        except RetryDeadlineExceeded as e:
            logger.error("LLM call exceeded %.0fs deadline", self.deadline_seconds or 0)
            raise AnalysisTimeoutError(str(e)) from e
        finally:
            self.attempts = policy.attempts

        log_event("analysis.llm.response", attempts=self.attempts, response_chars=len(text))
        return text

    def _call_once(self, prompt: str, policy: RetryPolicy) -> str:
        # No single attempt may outlive the overall deadline
        timeout = self.timeout_seconds
        remaining = policy.remaining_seconds()
        if remaining is not None:
            timeout = min(timeout, remaining)
        text = self.provider.complete(prompt, timeout=timeout)
        if not text or not text.strip():
            counter("analysis.llm.empty_response")
            raise EmptyResponseError("LLM returned an empty response")
        return text
