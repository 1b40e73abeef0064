"""
Module: types
Purpose: Shared result types for the analysis pipeline.
Dependencies: dailydrop.analysis.errors, dailydrop.journal.models

Leaf module so eligibility, aggregator, engine, parser and service can share
these types without importing each other.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from dailydrop.analysis.errors import AnalysisError, ErrorCategory
from dailydrop.journal.models import Analysis


@dataclass(frozen=True)
class EligibilityStatus:
    is_eligible: bool
    unanalyzed_count: int
    required_count: int

    @property
    def remaining(self) -> int:
        return max(0, self.required_count - self.unanalyzed_count)


@dataclass(frozen=True)
class AnalysisCorpus:
    """Rendered, size-bounded prompt text for one user's unanalyzed drops."""

    text: str
    drop_count: int
    total_messages: int
    truncated_entries: int = 0


class PipelineStage(str, Enum):
    """Pipeline stage reached during analysis creation.

    Extends str so JSON serialization produces raw strings (e.g. "parsing").
    """

    CHECKING_ELIGIBILITY = "checking_eligibility"
    AGGREGATING = "aggregating"
    INVOKING_LLM = "invoking_llm"
    PARSING = "parsing"
    PERSISTING = "persisting"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class AnalysisMetadata:
    user_id: str
    drop_count: int = 0
    processing_time_ms: int = 0
    retry_attempts: int = 0
    used_fallback: bool = False


@dataclass
class AnalysisResult:
    """Outcome of one create-analysis run. Never raised, always returned."""

    success: bool
    metadata: AnalysisMetadata
    analysis: Analysis | None = None
    error: str | None = None
    error_type: ErrorCategory | None = None
    stage: PipelineStage = PipelineStage.CHECKING_ELIGIBILITY
    failed_at: PipelineStage | None = None

    @classmethod
    def succeeded(cls, analysis: Analysis, metadata: AnalysisMetadata) -> AnalysisResult:
        return cls(
            success=True,
            analysis=analysis,
            metadata=metadata,
            stage=PipelineStage.COMPLETE,
        )

    @classmethod
    def failed(
        cls,
        error: AnalysisError,
        failed_at: PipelineStage,
        metadata: AnalysisMetadata,
    ) -> AnalysisResult:
        return cls(
            success=False,
            error=error.user_message,
            error_type=error.category,
            metadata=metadata,
            stage=PipelineStage.FAILED,
            failed_at=failed_at,
        )


@dataclass
class AnalysisPreview:
    """What an analysis would cover right now, without running one."""

    eligible: bool
    drop_count: int = 0
    total_messages: int = 0
    oldest_drop: datetime | None = None
    newest_drop: datetime | None = None
    error: str | None = None


@dataclass
class HealthStatus:
    healthy: bool
    checks: dict[str, bool] = field(default_factory=dict)


@dataclass
class AnalysisStats:
    total_analyses: int
    last_analysis_date: datetime | None
    unanalyzed_count: int
    is_eligible: bool
    in_progress: bool
