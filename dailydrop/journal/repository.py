"""
Journal Repository - CRUD operations for users, questions, drops and messages.

Only the operations the analysis pipeline and its tests need are provided.
Follows the database patterns in dailydrop/infrastructure/database.py.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from dailydrop.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from dailydrop.journal.models import (
    DropWithQuestion,
    Message,
    Question,
    User,
    ensure_utc,
    parse_db_timestamp,
    to_db_timestamp,
    utc_now,
)
from dailydrop.observability.logging import get_logger

logger = get_logger(__name__)

DROP_WITH_QUESTION_SELECT = """
    SELECT d.*, q.text AS question_text
    FROM drops d
    LEFT JOIN questions q ON q.id = d.question_id
"""


class JournalRepository:
    """
    Repository for journal records.

    All methods use connection pooling and proper transaction handling.
    """

    @staticmethod
    @retry_on_db_lock()
    def create_user(
        username: str,
        user_id: str | None = None,
        email: str | None = None,
        name: str | None = None,
        last_analysis_date: datetime | None = None,
    ) -> User:
        """
        Create a new user.

        Side Effects:
            - Inserts row into users table
        """
        user = User(
            id=user_id or str(uuid.uuid4()),
            username=username,
            email=email,
            name=name,
            last_analysis_date=last_analysis_date,
        )

        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO users (id, username, email, name, created_at, last_analysis_date)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user.id,
                    user.username,
                    user.email,
                    user.name,
                    to_db_timestamp(user.created_at),
                    to_db_timestamp(last_analysis_date) if last_analysis_date else None,
                ),
            )

        logger.info("Created user %s", user.id)
        return user

    @staticmethod
    def get_user(user_id: str) -> User | None:
        """
        Get a user by ID.

        Returns:
            User if found, None for unknown or malformed ids
        """
        if not isinstance(user_id, str) or not user_id.strip():
            return None

        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

        return User.from_db_row(dict(row)) if row else None

    @staticmethod
    @retry_on_db_lock()
    def create_question(text: str, category: str = "general") -> Question:
        now = utc_now()
        with db_transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO questions (text, category, created_at) VALUES (?, ?, ?)",
                (text, category, to_db_timestamp(now)),
            )
            question_id = cursor.lastrowid

        return Question(id=question_id, text=text, category=category, created_at=now)

    @staticmethod
    @retry_on_db_lock()
    def create_drop(
        user_id: str,
        text: str,
        question_id: int | None = None,
        created_at: datetime | None = None,
    ) -> DropWithQuestion:
        """
        Create a drop (journal entry) for a user.

        Args:
            created_at: Defaults to now; explicit values are used by imports and tests

        Side Effects:
            - Inserts row into drops table
            - Increments the question's usage_count
        """
        created = ensure_utc(created_at) if created_at else utc_now()

        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO drops (user_id, question_id, text, created_at, message_count)
                VALUES (?, ?, ?, ?, 0)
                """,
                (user_id, question_id, text, to_db_timestamp(created)),
            )
            drop_id = cursor.lastrowid
            if question_id is not None:
                conn.execute(
                    "UPDATE questions SET usage_count = usage_count + 1 WHERE id = ?",
                    (question_id,),
                )

        logger.debug("Created drop %s for user %s", drop_id, user_id)
        drop = JournalRepository.get_drop(drop_id)
        assert drop is not None
        return drop

    @staticmethod
    def get_drop(drop_id: int) -> DropWithQuestion | None:
        with get_db_connection() as conn:
            row = conn.execute(
                f"{DROP_WITH_QUESTION_SELECT} WHERE d.id = ?",
                (drop_id,),
            ).fetchone()

        return DropWithQuestion.from_db_row(dict(row)) if row else None

    @staticmethod
    def list_drop_timestamps(user_id: str) -> list[datetime]:
        """Creation timestamps of every drop the user owns, oldest first."""
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT created_at FROM drops WHERE user_id = ? ORDER BY created_at ASC",
                (user_id,),
            ).fetchall()

        return [parse_db_timestamp(row["created_at"]) for row in rows]

    @staticmethod
    @retry_on_db_lock()
    def create_message(
        drop_id: int,
        text: str,
        from_user: bool,
        created_at: datetime | None = None,
    ) -> Message:
        """
        Append a message to a drop's conversation.

        Side Effects:
            - Inserts row into messages table
            - Increments drops.message_count in the same transaction
        """
        created = ensure_utc(created_at) if created_at else utc_now()

        with db_transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO messages (drop_id, text, from_user, created_at) VALUES (?, ?, ?, ?)",
                (drop_id, text, int(from_user), to_db_timestamp(created)),
            )
            message_id = cursor.lastrowid
            conn.execute(
                "UPDATE drops SET message_count = message_count + 1 WHERE id = ?",
                (drop_id,),
            )

        return Message(
            id=message_id,
            drop_id=drop_id,
            text=text,
            from_user=from_user,
            created_at=created,
        )

    @staticmethod
    def get_messages(drop_id: int) -> list[Message]:
        """Conversation for a drop, in the order it happened."""
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE drop_id = ? ORDER BY created_at ASC, id ASC",
                (drop_id,),
            ).fetchall()

        return [Message.from_db_row(dict(row)) for row in rows]
