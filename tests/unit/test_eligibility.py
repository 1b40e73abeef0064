"""
Unit tests for eligibility evaluation and the EligibilityTracker.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from dailydrop.analysis.eligibility import EligibilityTracker, evaluate_eligibility
from dailydrop.config import ANALYSIS_REQUIRED_DROPS
from dailydrop.journal.models import User

BASE = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def days(n: int) -> list[datetime]:
    return [BASE + timedelta(days=i) for i in range(n)]


class TestEvaluateEligibility:
    def test_never_analyzed_counts_every_drop(self):
        status = evaluate_eligibility(None, days(5))
        assert status.unanalyzed_count == 5
        assert status.required_count == ANALYSIS_REQUIRED_DROPS
        assert not status.is_eligible

    def test_exactly_required_count_is_eligible(self):
        status = evaluate_eligibility(None, days(ANALYSIS_REQUIRED_DROPS))
        assert status.is_eligible
        assert status.remaining == 0

    def test_one_below_required_count_is_not_eligible(self):
        status = evaluate_eligibility(None, days(ANALYSIS_REQUIRED_DROPS - 1))
        assert not status.is_eligible
        assert status.remaining == 1

    def test_drop_at_last_analysis_date_is_already_analyzed(self):
        """Only drops strictly after last_analysis_date count."""
        timestamps = days(4)
        status = evaluate_eligibility(timestamps[1], timestamps)
        assert status.unanalyzed_count == 2

    def test_adding_a_drop_never_decreases_count(self):
        timestamps = days(3)
        last = BASE + timedelta(hours=12)
        before = evaluate_eligibility(last, timestamps).unanalyzed_count
        after = evaluate_eligibility(last, timestamps + [BASE + timedelta(days=10)]).unanalyzed_count
        assert after == before + 1

    def test_naive_timestamps_are_treated_as_utc(self):
        naive_last = datetime(2026, 3, 2, 9, 0)
        status = evaluate_eligibility(naive_last, days(4))
        assert status.unanalyzed_count == 2

    def test_custom_required_count(self):
        status = evaluate_eligibility(None, days(3), required_count=3)
        assert status.is_eligible
        assert status.required_count == 3


class FakeStore:
    def __init__(self, users=None, timestamps=None, fail=False):
        self.users = users or {}
        self.timestamps = timestamps or {}
        self.fail = fail

    def get_user(self, user_id):
        if self.fail:
            raise RuntimeError("database unavailable")
        return self.users.get(user_id)

    def list_drop_timestamps(self, user_id):
        return self.timestamps.get(user_id, [])


class TestEligibilityTracker:
    @pytest.fixture
    def store(self):
        return FakeStore(
            users={"u1": User(id="u1", username="u1", last_analysis_date=BASE)},
            timestamps={"u1": days(10)},
        )

    def test_counts_drops_after_last_analysis(self, store):
        status = EligibilityTracker(store).check("u1")
        assert status.unanalyzed_count == 9
        assert status.is_eligible

    @pytest.mark.parametrize("user_id", ["missing", "", "   ", None, 42])
    def test_absent_or_malformed_user_is_not_eligible(self, store, user_id):
        status = EligibilityTracker(store).check(user_id)
        assert (status.is_eligible, status.unanalyzed_count, status.required_count) == (
            False,
            0,
            ANALYSIS_REQUIRED_DROPS,
        )

    def test_store_failure_does_not_raise(self):
        status = EligibilityTracker(FakeStore(fail=True)).check("u1")
        assert not status.is_eligible
        assert status.unanalyzed_count == 0

    def test_repeated_checks_agree(self, store):
        tracker = EligibilityTracker(store)
        assert tracker.check("u1") == tracker.check("u1")
