"""
Module: errors
Purpose: Exception hierarchy for the analysis pipeline.
Dependencies: dailydrop.config (ANALYSIS_REQUIRED_DROPS)

Every exception carries an ErrorCategory and a short user-facing message.
Internal detail stays in str(exc) for logs; API responses only ever show
user_message.
"""

from __future__ import annotations

from enum import Enum

from dailydrop.config import ANALYSIS_REQUIRED_DROPS


class ErrorCategory(str, Enum):
    """User-facing failure category.

    Extends str so JSON serialization produces raw strings (e.g. "parse").
    """

    CONFIGURATION = "configuration"
    INSUFFICIENT_DATA = "insufficient_data"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    PARSE = "parse"
    STORAGE = "storage"
    DUPLICATE = "duplicate"
    COOLDOWN = "cooldown"
    INTEGRITY = "integrity"
    UNKNOWN = "unknown"


GENERIC_ERROR_MESSAGE = "Something went wrong while creating your analysis. Please try again."


def insufficient_entries_message(unanalyzed_count: int, required_count: int = ANALYSIS_REQUIRED_DROPS) -> str:
    return (
        f"You need at least {required_count} journal entries to create an analysis. "
        f"You currently have {unanalyzed_count} unanalyzed entries."
    )


class AnalysisError(Exception):
    """Base exception for analysis pipeline errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    default_user_message: str = GENERIC_ERROR_MESSAGE

    def __init__(self, message: str = "", *, user_message: str | None = None):
        super().__init__(message or self.default_user_message)
        self.user_message = user_message or self.default_user_message


class ConfigurationError(AnalysisError):
    """Service is missing credentials or is otherwise misconfigured."""

    category = ErrorCategory.CONFIGURATION
    default_user_message = (
        "The analysis service is not configured correctly. Please contact support."
    )


class InsufficientDataError(AnalysisError):
    """Too few unanalyzed drops to build an analysis."""

    category = ErrorCategory.INSUFFICIENT_DATA

    def __init__(self, unanalyzed_count: int, required_count: int = ANALYSIS_REQUIRED_DROPS):
        message = insufficient_entries_message(unanalyzed_count, required_count)
        super().__init__(message, user_message=message)
        self.unanalyzed_count = unanalyzed_count
        self.required_count = required_count


class UserNotFoundError(AnalysisError):
    category = ErrorCategory.NOT_FOUND
    default_user_message = "User not found."

    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


# ---------------------------------------------------------------------------
# Provider errors (normalized from SDK exceptions in dailydrop.llm.gemini)
# ---------------------------------------------------------------------------


class ProviderError(AnalysisError):
    """Transient LLM provider failure."""

    category = ErrorCategory.UNAVAILABLE
    default_user_message = (
        "Our analysis service is temporarily unavailable. Please try again in a few minutes."
    )


class ProviderAuthError(ProviderError):
    """Provider rejected our credentials. Operator-facing, never retried."""

    category = ErrorCategory.CONFIGURATION
    default_user_message = ConfigurationError.default_user_message


class ProviderTimeoutError(ProviderError):
    pass


class ProviderRateLimitError(ProviderError):
    pass


class ProviderUnavailableError(ProviderError):
    pass


class ExhaustedRetriesError(AnalysisError):
    """Every provider attempt failed with a retryable error."""

    category = ErrorCategory.UNAVAILABLE
    default_user_message = ProviderError.default_user_message

    def __init__(self, retries: int, last_error: Exception | None = None):
        super().__init__(f"LLM call failed after {retries} retries: {last_error}")
        self.retries = retries
        self.last_error = last_error


class AnalysisTimeoutError(AnalysisError):
    category = ErrorCategory.TIMEOUT
    default_user_message = "Analysis took too long to complete. Please try again with fewer entries."


# ---------------------------------------------------------------------------
# Response errors
# ---------------------------------------------------------------------------


PARSE_USER_MESSAGE = "Your analysis could not be completed. Please try again."


class EmptyResponseError(AnalysisError):
    """Provider answered without any text."""

    category = ErrorCategory.PARSE
    default_user_message = PARSE_USER_MESSAGE


class ResponseParseError(AnalysisError):
    """Base for every rule the response parser enforces."""

    category = ErrorCategory.PARSE
    default_user_message = PARSE_USER_MESSAGE


class UnparseableResponseError(ResponseParseError):
    pass


class MissingSectionError(ResponseParseError):
    def __init__(self, message: str, section: str):
        super().__init__(message)
        self.section = section


class SummaryTooLongError(ResponseParseError):
    def __init__(self, word_count: int, max_words: int):
        super().__init__(f"Summary has {word_count} words (max {max_words})")
        self.word_count = word_count
        self.max_words = max_words


class InvalidBulletCountError(ResponseParseError):
    def __init__(self, count: int, min_count: int, max_count: int):
        super().__init__(
            f"Insights section has {count} bullet points (expected {min_count}-{max_count})"
        )
        self.count = count


# ---------------------------------------------------------------------------
# Orchestrator errors
# ---------------------------------------------------------------------------


class StorageError(AnalysisError):
    category = ErrorCategory.STORAGE
    default_user_message = (
        "Unable to save your analysis. Please try again or contact support if the problem persists."
    )


class DuplicateAnalysisError(AnalysisError):
    """Another analysis for the same user is running or already consumed these drops."""

    category = ErrorCategory.DUPLICATE
    default_user_message = (
        "An analysis is already being processed. "
        "Please wait for it to complete before creating another."
    )


class CooldownError(AnalysisError):
    category = ErrorCategory.COOLDOWN

    def __init__(self, remaining_minutes: int):
        message = (
            f"Please wait {remaining_minutes} more minute"
            f"{'' if remaining_minutes == 1 else 's'} before creating another analysis."
        )
        super().__init__(message, user_message=message)
        self.remaining_minutes = remaining_minutes


class IntegrityCheckError(AnalysisError):
    category = ErrorCategory.INTEGRITY
    default_user_message = "Analysis data validation failed. Please try again or contact support."
