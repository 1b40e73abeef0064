"""
Analyses API endpoints.

Eligibility, creation, listing, preview and favorites for a user's analyses.
Handlers are plain `def` so FastAPI runs the blocking SQLite and LLM work in
its threadpool.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, StrictBool

from dailydrop.analysis.errors import ErrorCategory, UserNotFoundError
from dailydrop.analysis.repository import AnalysisRepository
from dailydrop.analysis.service import AnalysisService
from dailydrop.analysis.types import AnalysisMetadata
from dailydrop.api.auth import AuthenticatedUser, get_current_user
from dailydrop.config import API_LIST_LIMIT_DEFAULT, API_LIST_LIMIT_MAX
from dailydrop.journal.models import Analysis, DropWithQuestion
from dailydrop.observability.logging import get_logger

router = APIRouter(prefix="/api/analyses", tags=["analyses"])
logger = get_logger(__name__)

HTTP_STATUS_BY_CATEGORY: dict[ErrorCategory, int] = {
    ErrorCategory.INSUFFICIENT_DATA: 400,
    ErrorCategory.COOLDOWN: 400,
    ErrorCategory.INTEGRITY: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.DUPLICATE: 409,
    ErrorCategory.UNAVAILABLE: 503,
    ErrorCategory.TIMEOUT: 503,
    ErrorCategory.CONFIGURATION: 503,
}


def status_for_category(category: ErrorCategory | None) -> int:
    return HTTP_STATUS_BY_CATEGORY.get(category, 500) if category else 500


@lru_cache(maxsize=1)
def get_analysis_service() -> AnalysisService:
    """Process-wide service; overridden in tests via app.dependency_overrides."""
    return AnalysisService()


# ============================================================================
# Request/Response Models
# ============================================================================


class AnalysisResponse(BaseModel):
    id: int
    user_id: str
    summary: str
    content: str
    bullet_points: list[str]
    is_favorited: bool
    is_fallback: bool
    created_at: str

    @classmethod
    def from_analysis(cls, analysis: Analysis) -> AnalysisResponse:
        return cls(
            id=analysis.id,
            user_id=analysis.user_id,
            summary=analysis.summary,
            content=analysis.content,
            bullet_points=analysis.bullet_list,
            is_favorited=analysis.is_favorited,
            is_fallback=analysis.is_fallback,
            created_at=analysis.created_at.isoformat(),
        )


class AnalysisListResponse(BaseModel):
    analyses: list[AnalysisResponse]
    limit: int
    offset: int


class MetadataResponse(BaseModel):
    drop_count: int
    processing_time_ms: int
    retry_attempts: int
    used_fallback: bool

    @classmethod
    def from_metadata(cls, metadata: AnalysisMetadata) -> MetadataResponse:
        return cls(
            drop_count=metadata.drop_count,
            processing_time_ms=metadata.processing_time_ms,
            retry_attempts=metadata.retry_attempts,
            used_fallback=metadata.used_fallback,
        )


class CreateAnalysisResponse(BaseModel):
    success: bool
    analysis: AnalysisResponse | None = None
    error: str | None = None
    error_type: str | None = None
    metadata: MetadataResponse


class EligibilityResponse(BaseModel):
    is_eligible: bool
    unanalyzed_count: int
    required_count: int


class PreviewResponse(BaseModel):
    eligible: bool
    drop_count: int
    total_messages: int
    oldest_drop: str | None
    newest_drop: str | None
    error: str | None = None


class StatsResponse(BaseModel):
    total_analyses: int
    last_analysis_date: str | None
    unanalyzed_count: int
    is_eligible: bool
    in_progress: bool


class DropResponse(BaseModel):
    id: int
    question_text: str
    text: str
    message_count: int
    created_at: str

    @classmethod
    def from_drop(cls, drop: DropWithQuestion) -> DropResponse:
        return cls(
            id=drop.id,
            question_text=drop.question_text,
            text=drop.text,
            message_count=drop.message_count,
            created_at=drop.created_at.isoformat(),
        )


class FavoriteRequest(BaseModel):
    is_favorited: StrictBool = Field(
        validation_alias=AliasChoices("is_favorited", "isFavorited"),
    )


# ============================================================================
# Endpoints
# ============================================================================


def _owned_analysis(analysis_id: int, user: AuthenticatedUser) -> Analysis:
    analysis = AnalysisRepository.get_analysis(analysis_id)
    if analysis is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    if analysis.user_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    return analysis


@router.get("/eligibility", response_model=EligibilityResponse)
def get_eligibility(
    user: AuthenticatedUser = Depends(get_current_user),
    service: AnalysisService = Depends(get_analysis_service),
) -> EligibilityResponse:
    """How many unanalyzed drops the user has and whether that is enough."""
    status = service.get_eligibility(user.id)
    return EligibilityResponse(
        is_eligible=status.is_eligible,
        unanalyzed_count=status.unanalyzed_count,
        required_count=status.required_count,
    )


@router.post("", response_model=CreateAnalysisResponse, status_code=201)
def create_analysis(
    user: AuthenticatedUser = Depends(get_current_user),
    service: AnalysisService = Depends(get_analysis_service),
) -> Any:
    """
    Create an analysis from the user's unanalyzed drops.

    Failures return the same body shape with success=false and a status code
    chosen by error category.
    """
    result = service.create_analysis_for_user(user.id)
    body = CreateAnalysisResponse(
        success=result.success,
        analysis=AnalysisResponse.from_analysis(result.analysis) if result.analysis else None,
        error=result.error,
        error_type=result.error_type.value if result.error_type else None,
        metadata=MetadataResponse.from_metadata(result.metadata),
    )
    if result.success:
        return body

    return JSONResponse(
        status_code=status_for_category(result.error_type),
        content=body.model_dump(),
    )


@router.get("", response_model=AnalysisListResponse)
def list_analyses(
    user: AuthenticatedUser = Depends(get_current_user),
    limit: int = Query(API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
    offset: int = Query(0, ge=0),
) -> AnalysisListResponse:
    """The user's analyses, newest first."""
    try:
        analyses = AnalysisRepository.get_user_analyses(user.id, limit=limit, offset=offset)
    except Exception as e:
        logger.error("Failed to list analyses: %s", e)
        raise HTTPException(status_code=500, detail="Failed to list analyses") from None

    return AnalysisListResponse(
        analyses=[AnalysisResponse.from_analysis(a) for a in analyses],
        limit=limit,
        offset=offset,
    )


@router.get("/preview", response_model=PreviewResponse)
def preview_analysis(
    user: AuthenticatedUser = Depends(get_current_user),
    service: AnalysisService = Depends(get_analysis_service),
) -> PreviewResponse:
    """What an analysis would cover right now, without creating one."""
    preview = service.preview_analysis(user.id)
    return PreviewResponse(
        eligible=preview.eligible,
        drop_count=preview.drop_count,
        total_messages=preview.total_messages,
        oldest_drop=preview.oldest_drop.isoformat() if preview.oldest_drop else None,
        newest_drop=preview.newest_drop.isoformat() if preview.newest_drop else None,
        error=preview.error,
    )


@router.get("/health")
def analysis_health(
    service: AnalysisService = Depends(get_analysis_service),
) -> JSONResponse:
    """Per-check health of the analysis pipeline; 503 when any check fails."""
    health = service.health_check()
    return JSONResponse(
        status_code=200 if health.healthy else 503,
        content={"healthy": health.healthy, "checks": health.checks},
    )


@router.get("/stats", response_model=StatsResponse)
def analysis_stats(
    user: AuthenticatedUser = Depends(get_current_user),
    service: AnalysisService = Depends(get_analysis_service),
) -> StatsResponse:
    try:
        stats = service.get_analysis_stats(user.id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found") from None

    return StatsResponse(
        total_analyses=stats.total_analyses,
        last_analysis_date=stats.last_analysis_date.isoformat()
        if stats.last_analysis_date
        else None,
        unanalyzed_count=stats.unanalyzed_count,
        is_eligible=stats.is_eligible,
        in_progress=stats.in_progress,
    )


@router.get("/{analysis_id}", response_model=AnalysisResponse)
def get_analysis(
    analysis_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
) -> AnalysisResponse:
    return AnalysisResponse.from_analysis(_owned_analysis(analysis_id, user))


@router.put("/{analysis_id}/favorite", response_model=AnalysisResponse)
def update_favorite(
    analysis_id: int,
    request: FavoriteRequest,
    user: AuthenticatedUser = Depends(get_current_user),
) -> AnalysisResponse:
    """Set or clear the favorite flag, the only mutable field of an analysis."""
    _owned_analysis(analysis_id, user)

    updated = AnalysisRepository.update_analysis_favorite(analysis_id, request.is_favorited)
    if updated is None:
        raise HTTPException(status_code=404, detail="Analysis not found")

    logger.info("Analysis %s favorite=%s", analysis_id, request.is_favorited)
    return AnalysisResponse.from_analysis(updated)


@router.get("/{analysis_id}/drops", response_model=list[DropResponse])
def get_analysis_drops(
    analysis_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[DropResponse]:
    """Drops the analysis covered, oldest first."""
    _owned_analysis(analysis_id, user)
    return [DropResponse.from_drop(d) for d in AnalysisRepository.get_analysis_drops(analysis_id)]
