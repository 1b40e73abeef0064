"""
Journal domain models for DailyDrop.

Users answer a daily question with a drop, chat with the coach about it
(messages), and periodically receive an analysis built from their
unanalyzed drops.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_QUESTION = "Unknown question"


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_db_timestamp(value: datetime) -> str:
    """
    Serialize a datetime for storage.

    Always UTC with fixed microsecond precision, so lexical order in SQL
    equals chronological order.
    """
    return ensure_utc(value).isoformat(timespec="microseconds")


def parse_db_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


class User(BaseModel):
    id: str
    username: str
    email: str | None = None
    name: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    last_analysis_date: datetime | None = Field(
        default=None, description="Drops created at or before this are already analyzed"
    )

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> User:
        return cls(
            id=row["id"],
            username=row["username"],
            email=row.get("email"),
            name=row.get("name"),
            created_at=parse_db_timestamp(row.get("created_at")) or utc_now(),
            last_analysis_date=parse_db_timestamp(row.get("last_analysis_date")),
        )


class Question(BaseModel):
    id: int
    text: str
    is_active: bool = True
    category: str = "general"
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Question:
        return cls(
            id=row["id"],
            text=row["text"],
            is_active=bool(row.get("is_active", 1)),
            category=row.get("category") or "general",
            created_at=parse_db_timestamp(row.get("created_at")) or utc_now(),
        )


class Message(BaseModel):
    """One turn of the coach conversation attached to a drop."""

    id: int
    drop_id: int
    text: str
    from_user: bool
    created_at: datetime

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Message:
        return cls(
            id=row["id"],
            drop_id=row["drop_id"],
            text=row["text"],
            from_user=bool(row["from_user"]),
            created_at=parse_db_timestamp(row["created_at"]),
        )


class Drop(BaseModel):
    """
    A journal entry answering one daily question.

    Immutable once created except for message_count bookkeeping.
    """

    id: int
    user_id: str
    question_id: int | None = None
    text: str
    created_at: datetime
    message_count: int = 0

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Drop:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            question_id=row.get("question_id"),
            text=row["text"],
            created_at=parse_db_timestamp(row["created_at"]),
            message_count=row.get("message_count") or 0,
        )


class DropWithQuestion(Drop):
    question_text: str = UNKNOWN_QUESTION

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> DropWithQuestion:
        drop = Drop.from_db_row(row)
        return cls(
            **drop.model_dump(),
            question_text=row.get("question_text") or UNKNOWN_QUESTION,
        )


class DropWithConversation(DropWithQuestion):
    conversation: list[Message] = Field(default_factory=list)


class Analysis(BaseModel):
    """
    A generated analysis of a user's drops.

    Immutable except for the favorite flag. bullet_points holds newline
    separated "• " lines.
    """

    id: int
    user_id: str
    content: str
    summary: str
    bullet_points: str
    created_at: datetime = Field(default_factory=utc_now)
    is_favorited: bool = False
    is_fallback: bool = Field(
        default=False, description="Canned content substituted for an unparseable reply"
    )

    @property
    def bullet_list(self) -> list[str]:
        return [line for line in self.bullet_points.splitlines() if line.strip()]

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Analysis:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            content=row["content"],
            summary=row["summary"],
            bullet_points=row["bullet_points"],
            created_at=parse_db_timestamp(row["created_at"]) or utc_now(),
            is_favorited=bool(row.get("is_favorited", 0)),
            is_fallback=bool(row.get("is_fallback", 0)),
        )


class AnalysisCreate(BaseModel):
    """Input model for creating a new Analysis (without id/timestamps)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str
    content: str
    summary: str
    bullet_points: str
    is_fallback: bool = False

    @field_validator("user_id", "content", "summary", "bullet_points")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("field cannot be empty")
        return v


class AnalysisDrop(BaseModel):
    analysis_id: int
    drop_id: int
    created_at: datetime = Field(default_factory=utc_now)
