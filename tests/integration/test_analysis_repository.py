"""
Integration tests for the journal and analysis repositories against a real
SQLite database (one temp file per test).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from dailydrop.analysis.errors import (
    DuplicateAnalysisError,
    InsufficientDataError,
    IntegrityCheckError,
    UserNotFoundError,
)
from dailydrop.analysis.repository import AnalysisRepository
from dailydrop.infrastructure.database import get_db_connection
from dailydrop.journal.models import UNKNOWN_QUESTION, AnalysisCreate
from dailydrop.journal.repository import JournalRepository


def analysis_data(user_id: str = "user-1", summary: str = "A short headline") -> AnalysisCreate:
    return AnalysisCreate(
        user_id=user_id,
        content="Paragraph one.\n\nParagraph two.\n\nParagraph three.",
        summary=summary,
        bullet_points="• one\n• two\n• three",
    )


def row_count(table: str) -> int:
    with get_db_connection() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class TestJournalRepository:
    def test_create_and_get_user(self, db):
        JournalRepository.create_user(username="ana", user_id="user-1", email="ana@example.com")

        user = JournalRepository.get_user("user-1")

        assert user is not None
        assert user.username == "ana"
        assert user.last_analysis_date is None

    @pytest.mark.parametrize("user_id", ["", "   ", "missing"])
    def test_get_user_unknown_or_blank(self, db, user_id):
        assert JournalRepository.get_user(user_id) is None

    def test_messages_increment_count_and_keep_order(self, seed_user):
        drop = seed_user(drop_count=1, messages_per_drop=3)[0]

        stored = JournalRepository.get_drop(drop.id)
        messages = JournalRepository.get_messages(drop.id)

        assert stored.message_count == 3
        assert [m.text for m in messages] == [
            "message 1 on day 1",
            "message 2 on day 1",
            "message 3 on day 1",
        ]
        assert [m.from_user for m in messages] == [True, False, True]

    def test_drop_without_question_gets_placeholder_text(self, db):
        JournalRepository.create_user(username="ana", user_id="user-1")

        drop = JournalRepository.create_drop("user-1", "free writing")

        assert drop.question_text == UNKNOWN_QUESTION

    def test_naive_timestamps_are_stored_as_utc(self, db):
        JournalRepository.create_user(username="ana", user_id="user-1")

        drop = JournalRepository.create_drop("user-1", "entry", created_at=datetime(2026, 3, 1, 9, 0))

        assert drop.created_at == datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class TestUnanalyzedDrops:
    def test_all_drops_when_never_analyzed(self, seed_user):
        seed_user(drop_count=8)

        drops = AnalysisRepository.get_unanalyzed_drops("user-1")

        assert len(drops) == 8
        assert drops == sorted(drops, key=lambda d: d.created_at)

    def test_only_drops_after_last_analysis(self, seed_user):
        start = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
        JournalRepository.create_user(
            username="user-1", user_id="user-1", last_analysis_date=start + timedelta(days=2)
        )
        seed_user(drop_count=6, start=start, create_user=False)

        drops = AnalysisRepository.get_unanalyzed_drops("user-1")

        # The drop created exactly at last_analysis_date is already analyzed
        assert [d.created_at.day for d in drops] == [4, 5, 6]

    def test_unknown_user_has_no_unanalyzed_drops(self, db):
        assert AnalysisRepository.get_unanalyzed_drops("ghost") == []

    def test_with_conversations_attaches_ordered_messages(self, seed_user):
        seed_user(drop_count=2, messages_per_drop=2)

        drops = AnalysisRepository.get_unanalyzed_drops_with_conversations("user-1")

        assert len(drops) == 2
        for drop in drops:
            assert [m.drop_id for m in drop.conversation] == [drop.id, drop.id]
            assert drop.conversation[0].created_at < drop.conversation[1].created_at
            assert drop.question_text == "What gave you energy today?"

    def test_with_conversations_empty_conversation(self, seed_user):
        seed_user(drop_count=1, messages_per_drop=0)

        drops = AnalysisRepository.get_unanalyzed_drops_with_conversations("user-1")

        assert drops[0].conversation == []

    def test_with_conversations_unknown_user_raises(self, db):
        with pytest.raises(UserNotFoundError):
            AnalysisRepository.get_unanalyzed_drops_with_conversations("ghost")

    def test_other_users_drops_are_excluded(self, seed_user):
        seed_user("user-1", drop_count=3)
        seed_user("user-2", drop_count=5)

        assert len(AnalysisRepository.get_unanalyzed_drops("user-1")) == 3


class TestCreateAnalysis:
    def test_links_drops_and_resets_eligibility(self, seed_user):
        drops = seed_user(drop_count=8)
        assert AnalysisRepository.get_analysis_eligibility("user-1").is_eligible

        analysis = AnalysisRepository.create_analysis(
            analysis_data(), [d.id for d in drops], expected_last_analysis_date=None
        )

        assert analysis.id is not None
        assert [d.id for d in AnalysisRepository.get_analysis_drops(analysis.id)] == [
            d.id for d in drops
        ]
        user = AnalysisRepository.get_user("user-1")
        assert user.last_analysis_date is not None
        assert user.last_analysis_date >= drops[-1].created_at
        eligibility = AnalysisRepository.get_analysis_eligibility("user-1")
        assert eligibility.unanalyzed_count == 0
        assert not eligibility.is_eligible
        assert AnalysisRepository.get_unanalyzed_drops("user-1") == []

    def test_drops_written_afterwards_count_toward_next_analysis(self, seed_user):
        drops = seed_user(drop_count=7)
        AnalysisRepository.create_analysis(analysis_data(), [d.id for d in drops])

        JournalRepository.create_drop("user-1", "a new day")

        assert AnalysisRepository.get_analysis_eligibility("user-1").unanalyzed_count == 1

    def test_fewer_than_seven_drops_rejected(self, seed_user):
        drops = seed_user(drop_count=6)

        with pytest.raises(InsufficientDataError):
            AnalysisRepository.create_analysis(analysis_data(), [d.id for d in drops])
        assert row_count("analyses") == 0

    def test_duplicate_ids_count_once(self, seed_user):
        drops = seed_user(drop_count=6)
        ids = [d.id for d in drops] + [drops[0].id]

        with pytest.raises(InsufficientDataError):
            AnalysisRepository.create_analysis(analysis_data(), ids)

    def test_empty_drop_list_is_allowed(self, seed_user):
        seed_user(drop_count=0)

        analysis = AnalysisRepository.create_analysis(analysis_data(), [])

        assert AnalysisRepository.get_analysis_drops(analysis.id) == []

    def test_unknown_user(self, db):
        with pytest.raises(UserNotFoundError):
            AnalysisRepository.create_analysis(analysis_data("ghost"), [])

    def test_compare_and_set_loses_to_concurrent_analysis(self, seed_user):
        drops = seed_user(drop_count=8)
        ids = [d.id for d in drops]
        AnalysisRepository.create_analysis(analysis_data(), ids, expected_last_analysis_date=None)

        with pytest.raises(DuplicateAnalysisError):
            AnalysisRepository.create_analysis(
                analysis_data(summary="Second"), ids, expected_last_analysis_date=None
            )

        assert row_count("analyses") == 1
        assert row_count("analysis_drops") == 8

    def test_foreign_drop_rolls_back_everything(self, seed_user):
        mine = seed_user("user-1", drop_count=7)
        theirs = seed_user("user-2", drop_count=1)
        ids = [d.id for d in mine[:6]] + [theirs[0].id]

        with pytest.raises(IntegrityCheckError):
            AnalysisRepository.create_analysis(analysis_data(), ids)

        assert row_count("analyses") == 0
        assert row_count("analysis_drops") == 0
        assert AnalysisRepository.get_user("user-1").last_analysis_date is None

    def test_blank_fields_rejected_before_storage(self):
        with pytest.raises(ValidationError):
            AnalysisCreate(user_id="user-1", content="  ", summary="s", bullet_points="• a")


class TestReadAnalyses:
    def _create_three(self, seed_user):
        seed_user(drop_count=0)
        return [
            AnalysisRepository.create_analysis(analysis_data(summary=f"Headline {i}"), [])
            for i in range(3)
        ]

    def test_list_is_newest_first_with_pagination(self, seed_user):
        created = self._create_three(seed_user)

        first_page = AnalysisRepository.get_user_analyses("user-1", limit=2, offset=0)
        second_page = AnalysisRepository.get_user_analyses("user-1", limit=2, offset=2)

        assert [a.id for a in first_page] == [created[2].id, created[1].id]
        assert [a.id for a in second_page] == [created[0].id]
        assert AnalysisRepository.count_user_analyses("user-1") == 3

    def test_other_users_analyses_are_not_listed(self, seed_user):
        self._create_three(seed_user)
        seed_user("user-2", drop_count=0)

        assert AnalysisRepository.get_user_analyses("user-2") == []

    def test_favorite_toggle(self, seed_user):
        analysis = self._create_three(seed_user)[0]

        updated = AnalysisRepository.update_analysis_favorite(analysis.id, True)
        assert updated.is_favorited is True
        assert updated.summary == analysis.summary

        assert AnalysisRepository.update_analysis_favorite(analysis.id, False).is_favorited is False

    def test_favorite_missing_analysis(self, db):
        assert AnalysisRepository.update_analysis_favorite(9999, True) is None

    def test_get_missing_analysis(self, db):
        assert AnalysisRepository.get_analysis(9999) is None

    def test_analysis_drops_chronological(self, seed_user):
        drops = seed_user(drop_count=7)
        analysis = AnalysisRepository.create_analysis(
            analysis_data(), [d.id for d in reversed(drops)]
        )

        linked = AnalysisRepository.get_analysis_drops(analysis.id)

        assert [d.id for d in linked] == [d.id for d in drops]
