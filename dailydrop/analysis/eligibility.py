"""
Eligibility tracking - has a user written enough new drops for an analysis?

Eligibility is recomputed from (last_analysis_date, drop timestamps) on every
call; nothing is cached.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from dailydrop.analysis.types import EligibilityStatus
from dailydrop.config import ANALYSIS_REQUIRED_DROPS
from dailydrop.journal.models import User, ensure_utc
from dailydrop.observability.logging import get_logger

logger = get_logger(__name__)


class EligibilityStore(Protocol):
    def get_user(self, user_id: str) -> User | None: ...

    def list_drop_timestamps(self, user_id: str) -> list[datetime]: ...


def evaluate_eligibility(
    last_analysis_date: datetime | None,
    drop_created_ats: Iterable[datetime],
    required_count: int = ANALYSIS_REQUIRED_DROPS,
) -> EligibilityStatus:
    """
    Count drops created strictly after last_analysis_date.

    Every drop counts when the user has never been analyzed. Pure function.
    """
    if last_analysis_date is None:
        unanalyzed = sum(1 for _ in drop_created_ats)
    else:
        cutoff = ensure_utc(last_analysis_date)
        unanalyzed = sum(1 for created in drop_created_ats if ensure_utc(created) > cutoff)

    return EligibilityStatus(
        is_eligible=unanalyzed >= required_count,
        unanalyzed_count=unanalyzed,
        required_count=required_count,
    )


class EligibilityTracker:
    """Loads a user's drop timestamps and evaluates eligibility. Never raises."""

    def __init__(self, store: EligibilityStore, required_count: int = ANALYSIS_REQUIRED_DROPS):
        self.store = store
        self.required_count = required_count

    def not_eligible(self) -> EligibilityStatus:
        return EligibilityStatus(False, 0, self.required_count)

    def check(self, user_id: str) -> EligibilityStatus:
        if not isinstance(user_id, str) or not user_id.strip():
            return self.not_eligible()

        try:
            user = self.store.get_user(user_id)
            if user is None:
                return self.not_eligible()
            timestamps = self.store.list_drop_timestamps(user_id)
        except Exception as e:
            logger.warning("Eligibility check failed for user %s: %s", user_id, e)
            return self.not_eligible()

        return evaluate_eligibility(user.last_analysis_date, timestamps, self.required_count)
