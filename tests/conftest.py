"""
Pytest configuration for DailyDrop tests

Provides a throwaway SQLite database per test, journal seeding helpers and a
scripted LLM provider so no test touches the network.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from dailydrop.infrastructure.database import init_database, reset_pool
from dailydrop.journal.repository import JournalRepository
from dailydrop.llm.gemini import clear_model_cache
from dailydrop.observability.telemetry import reset_telemetry

VALID_RESPONSE = """SUMMARY: You grow most when you name feelings before acting on them

ANALYSIS:
Across these entries you return to work pressure and to evenings that feel rushed.

When plans slip you tend to read it as personal failure, a classic all-or-nothing pattern.

Try scheduling one unstructured hour a week and noting what you feel before and after it.

INSIGHTS:
• You notice stress early but wait too long to act on it
• Conversations with friends consistently lift your mood
• Reframing setbacks as data rather than verdicts would ease self-criticism
"""


class FakeProvider:
    """LLM provider that replays scripted replies; exceptions in the script are raised."""

    def __init__(self, *responses):
        self.responses = list(responses) or [VALID_RESPONSE]
        self.calls = 0
        self.prompts: list[str] = []
        self.timeouts: list[float] = []

    def complete(self, prompt: str, timeout: float = 30) -> str:
        self.prompts.append(prompt)
        self.timeouts.append(timeout)
        self.calls += 1
        index = min(self.calls - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def reset_telemetry_state():
    reset_telemetry()
    yield
    reset_telemetry()


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh database file for one test; pool reopened against it."""
    db_path = tmp_path / "dailydrop-test.db"
    monkeypatch.setenv("DAILYDROP_DB_PATH", str(db_path))
    reset_pool()
    init_database()
    yield db_path
    reset_pool()


@pytest.fixture
def llm_credentials(monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
    clear_model_cache()
    yield
    clear_model_cache()


@pytest.fixture
def no_llm_credentials(monkeypatch):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)


@pytest.fixture
def seed_user(db):
    """
    Create a user with drops spaced a day apart, each with a short coach conversation.

    Returns a function: seed_user(user_id, drop_count=8, messages_per_drop=2, start=None)
    """
    question = JournalRepository.create_question("What gave you energy today?")

    def _seed(
        user_id: str = "user-1",
        drop_count: int = 8,
        messages_per_drop: int = 2,
        start: datetime | None = None,
        create_user: bool = True,
    ):
        if create_user:
            JournalRepository.create_user(username=user_id, user_id=user_id)

        first = start or datetime.now(UTC) - timedelta(days=drop_count + 1)
        drops = []
        for i in range(drop_count):
            created = first + timedelta(days=i)
            drop = JournalRepository.create_drop(
                user_id=user_id,
                text=f"Day {i + 1}: a long walk after work helped me reset and think about the week ahead.",
                question_id=question.id,
                created_at=created,
            )
            for j in range(messages_per_drop):
                JournalRepository.create_message(
                    drop.id,
                    text=f"message {j + 1} on day {i + 1}",
                    from_user=j % 2 == 0,
                    created_at=created + timedelta(minutes=j + 1),
                )
            drops.append(drop)
        return drops

    return _seed
