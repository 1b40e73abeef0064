"""
Analysis Service - orchestrates analysis creation for a user.

    check eligibility -> aggregate drops -> invoke LLM -> parse -> persist

Every dependency is injectable. Nothing raises past create_analysis_for_user:
each failure becomes an AnalysisResult with a user-facing message and an
ErrorCategory, while the internal detail goes to the log.
"""

from __future__ import annotations

import math
import sqlite3
import threading
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from dailydrop.analysis.aggregator import DropAggregator
from dailydrop.analysis.eligibility import EligibilityTracker
from dailydrop.analysis.engine import AnalysisEngine
from dailydrop.analysis.errors import (
    GENERIC_ERROR_MESSAGE,
    AnalysisError,
    CooldownError,
    DuplicateAnalysisError,
    ErrorCategory,
    InsufficientDataError,
    IntegrityCheckError,
    ResponseParseError,
    StorageError,
    UserNotFoundError,
)
from dailydrop.analysis.parser import ParsedAnalysis, ResponseParser, fallback_analysis
from dailydrop.analysis.repository import AnalysisRepository
from dailydrop.analysis.types import (
    AnalysisMetadata,
    AnalysisPreview,
    AnalysisResult,
    AnalysisStats,
    EligibilityStatus,
    HealthStatus,
    PipelineStage,
)
from dailydrop.config import ANALYSIS_COOLDOWN_MINUTES, ANALYSIS_FALLBACK_ENABLED
from dailydrop.journal.models import (
    Analysis,
    AnalysisCreate,
    DropWithConversation,
    ensure_utc,
    utc_now,
)
from dailydrop.llm.gemini import has_llm_credentials
from dailydrop.observability.logging import get_logger
from dailydrop.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)

HEALTH_CHECK_USER_ID = "health-check-user"

# Raw model text is logged on parse failures, capped at this many characters
RAW_RESPONSE_LOG_CHARS = 2000


class AnalysisService:
    """
    Service layer for analyses.

    Usage:
        service = AnalysisService()
        result = service.create_analysis_for_user(user_id)
        if not result.success:
            show(result.error)
    """

    def __init__(
        self,
        store=AnalysisRepository,
        tracker: EligibilityTracker | None = None,
        aggregator: DropAggregator | None = None,
        engine: AnalysisEngine | None = None,
        parser: ResponseParser | None = None,
        clock: Callable[[], datetime] = utc_now,
        fallback_enabled: bool = ANALYSIS_FALLBACK_ENABLED,
        cooldown_minutes: int = ANALYSIS_COOLDOWN_MINUTES,
    ):
        self.store = store
        self.tracker = tracker or EligibilityTracker(store)
        self.aggregator = aggregator or DropAggregator(store)
        self.engine = engine or AnalysisEngine()
        self.parser = parser or ResponseParser()
        self.clock = clock
        self.fallback_enabled = fallback_enabled
        self.cooldown_minutes = cooldown_minutes
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()

    # ------------------------------------------------------------------
    # In-flight guard
    # ------------------------------------------------------------------

    def _acquire(self, user_id: str) -> bool:
        with self._in_flight_lock:
            if user_id in self._in_flight:
                return False
            self._in_flight.add(user_id)
            return True

    def _release(self, user_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(user_id)

    def is_in_flight(self, user_id: str) -> bool:
        with self._in_flight_lock:
            return user_id in self._in_flight

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_analysis_for_user(self, user_id: str) -> AnalysisResult:
        """
        Run the full pipeline for one user.

        Returns:
            AnalysisResult; success=False carries error, error_type and failed_at

        Side Effects:
            - On success, writes the analysis, its drop links and the user's
              last_analysis_date in one transaction
            - Emits analysis.* telemetry
        """
        started = time.perf_counter()
        metadata = AnalysisMetadata(user_id=user_id)
        counter("analysis.requested")

        if not self._acquire(user_id):
            counter("analysis.duplicate_request")
            return self._failure(
                DuplicateAnalysisError(f"analysis already in flight for user {user_id}"),
                PipelineStage.CHECKING_ELIGIBILITY,
                metadata,
                started,
            )

        try:
            with time_block("analysis.pipeline.latency"):
                return self._run_pipeline(user_id, metadata, started)
        finally:
            self._release(user_id)

    def _run_pipeline(
        self, user_id: str, metadata: AnalysisMetadata, started: float
    ) -> AnalysisResult:
        stage = PipelineStage.CHECKING_ELIGIBILITY
        raw_response: str | None = None

        try:
            user = self.store.get_user(user_id)
            if user is None:
                raise UserNotFoundError(user_id)

            eligibility = self.tracker.check(user_id)
            metadata.drop_count = eligibility.unanalyzed_count
            if not eligibility.is_eligible:
                raise InsufficientDataError(
                    eligibility.unanalyzed_count, eligibility.required_count
                )
            self._check_cooldown(user_id)

            stage = PipelineStage.AGGREGATING
            drops = self.aggregator.collect(user_id)
            metadata.drop_count = len(drops)
            if len(drops) != eligibility.unanalyzed_count:
                logger.warning(
                    "Eligibility/aggregation mismatch for user %s: counted %d, aggregated %d",
                    user_id,
                    eligibility.unanalyzed_count,
                    len(drops),
                )
            if len(drops) < eligibility.required_count:
                raise InsufficientDataError(len(drops), eligibility.required_count)
            self._check_integrity(user_id, drops)
            corpus = self.aggregator.render(drops)

            stage = PipelineStage.INVOKING_LLM
            try:
                raw_response = self.engine.generate(corpus)
            finally:
                metadata.retry_attempts = max(0, getattr(self.engine, "attempts", 1) - 1)

            stage = PipelineStage.PARSING
            parsed = self._parse(user_id, raw_response)
            metadata.used_fallback = parsed.is_fallback

            stage = PipelineStage.PERSISTING
            analysis = self._persist(user_id, parsed, drops, user.last_analysis_date)

        except AnalysisError as e:
            return self._failure(e, stage, metadata, started)
        except sqlite3.Error as e:
            logger.error("Storage failure during %s for user %s: %s", stage.value, user_id, e)
            return self._failure(StorageError(str(e)), stage, metadata, started)
        except Exception as e:
            logger.exception("Unexpected failure during %s for user %s", stage.value, user_id)
            return self._failure(AnalysisError(str(e)), stage, metadata, started)

        metadata.processing_time_ms = self._elapsed_ms(started)
        counter("analysis.created")
        log_event(
            "analysis.created",
            user_id=user_id,
            analysis_id=analysis.id,
            drop_count=metadata.drop_count,
            retry_attempts=metadata.retry_attempts,
            used_fallback=metadata.used_fallback,
            processing_time_ms=metadata.processing_time_ms,
        )
        return AnalysisResult.succeeded(analysis, metadata)

    def _check_cooldown(self, user_id: str) -> None:
        if self.cooldown_minutes <= 0:
            return

        latest = self.store.get_user_analyses(user_id, limit=1, offset=0)
        if not latest:
            return

        cooldown = timedelta(minutes=self.cooldown_minutes)
        elapsed = ensure_utc(self.clock()) - ensure_utc(latest[0].created_at)
        if elapsed < cooldown:
            remaining = math.ceil((cooldown - elapsed).total_seconds() / 60)
            counter("analysis.cooldown_blocked")
            raise CooldownError(max(1, remaining))

    def _check_integrity(self, user_id: str, drops: Sequence[DropWithConversation]) -> None:
        """Reject drop sets that should never reach the model."""
        seen: set[int] = set()
        for drop in drops:
            if drop.user_id != user_id:
                raise IntegrityCheckError(f"drop {drop.id} belongs to another user")
            if drop.id in seen:
                raise IntegrityCheckError(f"drop {drop.id} aggregated twice")
            if not drop.text or not drop.text.strip():
                raise IntegrityCheckError(f"drop {drop.id} has no text")
            seen.add(drop.id)

    def _parse(self, user_id: str, raw_response: str) -> ParsedAnalysis:
        try:
            return self.parser.parse(raw_response)
        except ResponseParseError as e:
            counter("analysis.parse_error")
            logger.warning(
                "Could not parse analysis for user %s (%s): %s; raw response: %r",
                user_id,
                type(e).__name__,
                e,
                raw_response[:RAW_RESPONSE_LOG_CHARS],
            )
            if not self.fallback_enabled:
                raise
            counter("analysis.fallback_used")
            return fallback_analysis()

    def _persist(
        self,
        user_id: str,
        parsed: ParsedAnalysis,
        drops: Sequence[DropWithConversation],
        expected_last_analysis_date: datetime | None,
    ) -> Analysis:
        data = AnalysisCreate(
            user_id=user_id,
            content=parsed.content,
            summary=parsed.summary,
            bullet_points=parsed.bullet_points,
            is_fallback=parsed.is_fallback,
        )
        return self.store.create_analysis(
            data,
            [drop.id for drop in drops],
            expected_last_analysis_date=expected_last_analysis_date,
            analyzed_through=drops[-1].created_at,
        )

    def _failure(
        self,
        error: AnalysisError,
        stage: PipelineStage,
        metadata: AnalysisMetadata,
        started: float,
    ) -> AnalysisResult:
        metadata.processing_time_ms = self._elapsed_ms(started)
        counter(f"analysis.failed.{error.category.value}")

        if error.category is ErrorCategory.CONFIGURATION:
            logger.error("Deployment issue during %s: %s", stage.value, error)
        elif error.category in (
            ErrorCategory.INSUFFICIENT_DATA,
            ErrorCategory.COOLDOWN,
            ErrorCategory.DUPLICATE,
            ErrorCategory.NOT_FOUND,
        ):
            logger.info("Analysis not created for user %s: %s", metadata.user_id, error)
        else:
            logger.error(
                "Analysis failed at %s for user %s (%s): %s",
                stage.value,
                metadata.user_id,
                error.category.value,
                error,
            )

        log_event(
            "analysis.failed",
            user_id=metadata.user_id,
            stage=stage.value,
            category=error.category.value,
            processing_time_ms=metadata.processing_time_ms,
        )
        return AnalysisResult.failed(error, stage, metadata)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_eligibility(self, user_id: str) -> EligibilityStatus:
        return self.tracker.check(user_id)

    def preview_analysis(self, user_id: str) -> AnalysisPreview:
        """
        What an analysis would cover right now: eligibility and aggregation only.

        No LLM call and no writes.
        """
        try:
            eligibility = self.tracker.check(user_id)
            drops = self.aggregator.collect(user_id)
        except AnalysisError as e:
            return AnalysisPreview(eligible=False, error=e.user_message)
        except Exception as e:
            logger.error("Preview failed for user %s: %s", user_id, e)
            return AnalysisPreview(eligible=False, error=GENERIC_ERROR_MESSAGE)

        return AnalysisPreview(
            eligible=eligibility.is_eligible,
            drop_count=len(drops),
            total_messages=sum(len(drop.conversation) for drop in drops),
            oldest_drop=drops[0].created_at if drops else None,
            newest_drop=drops[-1].created_at if drops else None,
        )

    def health_check(self) -> HealthStatus:
        """
        Independent checks for the provider credential, the database and analysis storage.

        For monitoring only; never gates user requests.
        """
        credentials_check = getattr(self.engine, "credentials_check", has_llm_credentials)
        checks = {
            "llm_credentials": bool(credentials_check()),
            "database_connection": self._probe(
                "database_connection", lambda: self.store.get_user(HEALTH_CHECK_USER_ID)
            ),
            "storage_service": self._probe(
                "storage_service",
                lambda: self.store.get_user_analyses(HEALTH_CHECK_USER_ID, limit=1, offset=0),
            ),
        }
        healthy = all(checks.values())
        if not healthy:
            logger.warning("Analysis health check failed: %s", checks)
        return HealthStatus(healthy=healthy, checks=checks)

    @staticmethod
    def _probe(name: str, check: Callable[[], object]) -> bool:
        try:
            check()
        except Exception as e:
            logger.warning("Health check %s failed: %s", name, e)
            return False
        return True

    def get_analysis_stats(self, user_id: str) -> AnalysisStats:
        """
        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        eligibility = self.tracker.check(user_id)
        return AnalysisStats(
            total_analyses=self.store.count_user_analyses(user_id),
            last_analysis_date=user.last_analysis_date,
            unanalyzed_count=eligibility.unanalyzed_count,
            is_eligible=eligibility.is_eligible,
            in_progress=self.is_in_flight(user_id),
        )
