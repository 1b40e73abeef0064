"""
Analysis Repository - storage operations the analysis pipeline consumes.

Creating an analysis writes the analyses row, its analysis_drops links and the
user's advanced last_analysis_date in ONE transaction, so a partial failure
never leaves drops half-consumed.
"""

from __future__ import annotations

from datetime import datetime

from dailydrop.analysis.eligibility import EligibilityTracker
from dailydrop.analysis.errors import (
    DuplicateAnalysisError,
    InsufficientDataError,
    IntegrityCheckError,
    UserNotFoundError,
)
from dailydrop.analysis.types import EligibilityStatus
from dailydrop.config import ANALYSIS_REQUIRED_DROPS, API_LIST_LIMIT_DEFAULT
from dailydrop.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from dailydrop.journal.models import (
    Analysis,
    AnalysisCreate,
    DropWithConversation,
    DropWithQuestion,
    Message,
    User,
    ensure_utc,
    to_db_timestamp,
    utc_now,
)
from dailydrop.journal.repository import DROP_WITH_QUESTION_SELECT, JournalRepository
from dailydrop.observability.logging import get_logger
from dailydrop.observability.telemetry import counter

logger = get_logger(__name__)

# Sentinel: create_analysis skips the compare-and-set on last_analysis_date
UNCHECKED = object()


def _unanalyzed_drop_rows(conn, user: User) -> list[dict]:
    if user.last_analysis_date is None:
        rows = conn.execute(
            f"{DROP_WITH_QUESTION_SELECT} WHERE d.user_id = ? ORDER BY d.created_at ASC, d.id ASC",
            (user.id,),
        ).fetchall()
    else:
        rows = conn.execute(
            f"""{DROP_WITH_QUESTION_SELECT}
            WHERE d.user_id = ? AND d.created_at > ?
            ORDER BY d.created_at ASC, d.id ASC""",
            (user.id, to_db_timestamp(user.last_analysis_date)),
        ).fetchall()
    return [dict(row) for row in rows]


class AnalysisRepository:
    """
    Record store for the analysis pipeline.

    All methods are static; the class itself is passed to EligibilityTracker,
    DropAggregator and AnalysisService as their store.
    """

    @staticmethod
    def get_user(user_id: str) -> User | None:
        return JournalRepository.get_user(user_id)

    @staticmethod
    def list_drop_timestamps(user_id: str) -> list[datetime]:
        return JournalRepository.list_drop_timestamps(user_id)

    @staticmethod
    def get_analysis_eligibility(user_id: str) -> EligibilityStatus:
        return EligibilityTracker(AnalysisRepository).check(user_id)

    @staticmethod
    def get_unanalyzed_drops(user_id: str) -> list[DropWithQuestion]:
        """Drops created after the user's last analysis, oldest first. Empty for unknown users."""
        user = JournalRepository.get_user(user_id)
        if user is None:
            return []

        with get_db_connection() as conn:
            rows = _unanalyzed_drop_rows(conn, user)

        return [DropWithQuestion.from_db_row(row) for row in rows]

    @staticmethod
    def get_unanalyzed_drops_with_conversations(user_id: str) -> list[DropWithConversation]:
        """
        Unanalyzed drops with their full message transcripts, oldest first.

        Drops and messages are read on one connection.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = JournalRepository.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        with get_db_connection() as conn:
            rows = _unanalyzed_drop_rows(conn, user)
            drop_ids = [row["id"] for row in rows]
            conversations: dict[int, list[Message]] = {drop_id: [] for drop_id in drop_ids}

            if drop_ids:
                placeholders = ",".join("?" * len(drop_ids))
                message_rows = conn.execute(
                    f"""
                    SELECT * FROM messages
                    WHERE drop_id IN ({placeholders})
                    ORDER BY created_at ASC, id ASC
                    """,
                    drop_ids,
                ).fetchall()
                for message_row in message_rows:
                    message = Message.from_db_row(dict(message_row))
                    conversations[message.drop_id].append(message)

        drops = []
        for row in rows:
            drop = DropWithQuestion.from_db_row(row)
            drops.append(
                DropWithConversation(**drop.model_dump(), conversation=conversations[drop.id])
            )

        logger.info("Retrieved %d unanalyzed drops for user %s", len(drops), user_id)
        return drops

    @staticmethod
    @retry_on_db_lock()
    def create_analysis(
        data: AnalysisCreate,
        drop_ids: list[int],
        expected_last_analysis_date: datetime | None | object = UNCHECKED,
        analyzed_through: datetime | None = None,
    ) -> Analysis:
        """
        Persist an analysis, link its drops and advance the user's last_analysis_date.

        Args:
            data: Validated analysis fields
            drop_ids: Drops the analysis covers; empty only for administrative use
            expected_last_analysis_date: When given, the update only applies if the
                stored last_analysis_date still equals it (compare-and-set)
            analyzed_through: created_at of the newest analyzed drop; the new
                last_analysis_date is never earlier than it

        Returns:
            Created Analysis

        Raises:
            InsufficientDataError: drop_ids non-empty but below the required count
            UserNotFoundError: Unknown user
            DuplicateAnalysisError: Compare-and-set lost to a concurrent analysis
            IntegrityCheckError: A drop id does not belong to the user

        Side Effects:
            - Updates users.last_analysis_date
            - Inserts into analyses and analysis_drops
            - Single transaction; rolled back on any error
        """
        unique_drop_ids = list(dict.fromkeys(drop_ids))
        if unique_drop_ids and len(unique_drop_ids) < ANALYSIS_REQUIRED_DROPS:
            raise InsufficientDataError(len(unique_drop_ids), ANALYSIS_REQUIRED_DROPS)

        now = utc_now()
        new_last_analysis = now
        if analyzed_through is not None:
            new_last_analysis = max(now, ensure_utc(analyzed_through))

        with db_transaction() as conn:
            if expected_last_analysis_date is UNCHECKED:
                cursor = conn.execute(
                    "UPDATE users SET last_analysis_date = ? WHERE id = ?",
                    (to_db_timestamp(new_last_analysis), data.user_id),
                )
            else:
                expected = (
                    to_db_timestamp(expected_last_analysis_date)
                    if expected_last_analysis_date is not None
                    else None
                )
                cursor = conn.execute(
                    """
                    UPDATE users SET last_analysis_date = ?
                    WHERE id = ? AND COALESCE(last_analysis_date, '') = COALESCE(?, '')
                    """,
                    (to_db_timestamp(new_last_analysis), data.user_id, expected),
                )

            if cursor.rowcount == 0:
                exists = conn.execute(
                    "SELECT 1 FROM users WHERE id = ?", (data.user_id,)
                ).fetchone()
                if not exists:
                    raise UserNotFoundError(data.user_id)
                counter("analysis.duplicate_detected")
                raise DuplicateAnalysisError(
                    f"last_analysis_date changed for user {data.user_id} during analysis"
                )

            if unique_drop_ids:
                placeholders = ",".join("?" * len(unique_drop_ids))
                owned = conn.execute(
                    f"SELECT COUNT(*) FROM drops WHERE user_id = ? AND id IN ({placeholders})",
                    (data.user_id, *unique_drop_ids),
                ).fetchone()[0]
                if owned != len(unique_drop_ids):
                    raise IntegrityCheckError(
                        f"{len(unique_drop_ids) - owned} drop(s) do not belong to user {data.user_id}"
                    )

            cursor = conn.execute(
                """
                INSERT INTO analyses (
                    user_id, content, summary, bullet_points, created_at, is_favorited, is_fallback
                ) VALUES (?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    data.user_id,
                    data.content,
                    data.summary,
                    data.bullet_points,
                    to_db_timestamp(now),
                    int(data.is_fallback),
                ),
            )
            analysis_id = cursor.lastrowid

            conn.executemany(
                "INSERT INTO analysis_drops (analysis_id, drop_id, created_at) VALUES (?, ?, ?)",
                [(analysis_id, drop_id, to_db_timestamp(now)) for drop_id in unique_drop_ids],
            )

        logger.info(
            "Created analysis %s for user %s covering %d drops",
            analysis_id,
            data.user_id,
            len(unique_drop_ids),
        )
        return Analysis(
            id=analysis_id,
            user_id=data.user_id,
            content=data.content,
            summary=data.summary,
            bullet_points=data.bullet_points,
            created_at=now,
            is_fallback=data.is_fallback,
        )

    @staticmethod
    def get_user_analyses(
        user_id: str, limit: int = API_LIST_LIMIT_DEFAULT, offset: int = 0
    ) -> list[Analysis]:
        """Analyses for a user, newest first."""
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM analyses
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (user_id, limit, offset),
            ).fetchall()

        return [Analysis.from_db_row(dict(row)) for row in rows]

    @staticmethod
    def count_user_analyses(user_id: str) -> int:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM analyses WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row[0]

    @staticmethod
    def get_analysis(analysis_id: int) -> Analysis | None:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM analyses WHERE id = ?", (analysis_id,)).fetchone()

        return Analysis.from_db_row(dict(row)) if row else None

    @staticmethod
    @retry_on_db_lock()
    def update_analysis_favorite(analysis_id: int, is_favorited: bool) -> Analysis | None:
        """
        Set the favorite flag, the only mutable field of an analysis.

        Returns:
            Updated Analysis, or None if it does not exist
        """
        with db_transaction() as conn:
            cursor = conn.execute(
                "UPDATE analyses SET is_favorited = ? WHERE id = ?",
                (int(is_favorited), analysis_id),
            )

        if cursor.rowcount == 0:
            return None

        return AnalysisRepository.get_analysis(analysis_id)

    @staticmethod
    def get_analysis_drops(analysis_id: int) -> list[DropWithQuestion]:
        """Drops an analysis covered, oldest first."""
        with get_db_connection() as conn:
            rows = conn.execute(
                f"""{DROP_WITH_QUESTION_SELECT}
                JOIN analysis_drops ad ON ad.drop_id = d.id
                WHERE ad.analysis_id = ?
                ORDER BY d.created_at ASC, d.id ASC""",
                (analysis_id,),
            ).fetchall()

        return [DropWithQuestion.from_db_row(dict(row)) for row in rows]
