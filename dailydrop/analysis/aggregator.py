"""
Drop aggregation - loads a user's unanalyzed drops with their conversations
and renders them into a size-bounded corpus for the analysis prompt.

Budgeting keeps the newest content intact: entries are trimmed oldest first,
and the newest entry is only touched once every older one is at its minimum.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from dailydrop.analysis.types import AnalysisCorpus
from dailydrop.config import CORPUS_MAX_CHARS, CORPUS_MIN_ENTRY_CHARS
from dailydrop.journal.models import DropWithConversation
from dailydrop.observability.logging import get_logger
from dailydrop.observability.telemetry import counter

logger = get_logger(__name__)

ENTRY_SEPARATOR = "\n---\n\n"
TRUNCATION_MARKER = "\n[... entry truncated]\n"


class DropSource(Protocol):
    def get_unanalyzed_drops_with_conversations(
        self, user_id: str
    ) -> list[DropWithConversation]: ...


def render_entry(number: int, drop: DropWithConversation) -> str:
    lines = [
        f"ENTRY {number} ({drop.created_at.date().isoformat()}):",
        f'Question: "{drop.question_text}"',
        f'Initial Response: "{drop.text}"',
    ]
    if drop.conversation:
        lines.append("Conversation:")
        for message in drop.conversation:
            speaker = "User" if message.from_user else "Coach"
            lines.append(f'{speaker}: "{message.text}"')
    return "\n".join(lines) + "\n"


def _truncate(entry: str, limit: int) -> str:
    if len(entry) <= limit:
        return entry
    keep = max(0, limit - len(TRUNCATION_MARKER))
    return entry[:keep].rstrip() + TRUNCATION_MARKER


def _total_length(entries: Sequence[str]) -> int:
    if not entries:
        return 0
    return sum(len(e) for e in entries) + len(ENTRY_SEPARATOR) * (len(entries) - 1)


def build_corpus(
    drops: Sequence[DropWithConversation],
    max_chars: int = CORPUS_MAX_CHARS,
    min_entry_chars: int = CORPUS_MIN_ENTRY_CHARS,
) -> AnalysisCorpus:
    """
    Render drops (already oldest first) into one prompt corpus of at most max_chars.

    Over budget, trimming happens in three passes, each walking oldest to newest:
      1. entries longer than their fair share are cut toward it
      2. remaining entries are cut toward min_entry_chars
      3. the joined text loses characters from the front

    Returns:
        AnalysisCorpus with the text and how many entries were truncated
    """
    entries = [render_entry(i + 1, drop) for i, drop in enumerate(drops)]
    total_messages = sum(len(drop.conversation) for drop in drops)
    truncated: set[int] = set()

    excess = _total_length(entries) - max_chars
    if excess > 0 and entries:
        separators = len(ENTRY_SEPARATOR) * (len(entries) - 1)
        fair_share = max((max_chars - separators) // len(entries), min_entry_chars)

        for floor in (fair_share, min_entry_chars):
            for index, entry in enumerate(entries):
                if excess <= 0:
                    break
                if len(entry) <= floor:
                    continue
                target = max(floor, len(entry) - excess)
                trimmed = _truncate(entry, target)
                if trimmed == entry:
                    continue
                excess -= len(entry) - len(trimmed)
                entries[index] = trimmed
                truncated.add(index)

    text = ENTRY_SEPARATOR.join(entries)
    if len(text) > max_chars:
        # Every entry is at its minimum; keep the most recent tail
        marker = TRUNCATION_MARKER.lstrip()
        keep = max(max_chars - len(marker), 0)
        tail = text[len(text) - keep :] if keep else ""
        text = (marker + tail)[: max(max_chars, 0)]
        counter("analysis.corpus.front_cut")

    if truncated:
        counter("analysis.corpus.truncated")
        logger.info(
            "Corpus over budget: truncated %d of %d entries (max_chars=%d)",
            len(truncated),
            len(entries),
            max_chars,
        )

    return AnalysisCorpus(
        text=text,
        drop_count=len(drops),
        total_messages=total_messages,
        truncated_entries=len(truncated),
    )


class DropAggregator:
    """Collects unanalyzed drops for a user and renders the prompt corpus."""

    def __init__(self, store: DropSource, max_chars: int = CORPUS_MAX_CHARS):
        self.store = store
        self.max_chars = max_chars

    def collect(self, user_id: str) -> list[DropWithConversation]:
        """
        Unanalyzed drops with conversations, oldest first.

        Raises:
            UserNotFoundError: If user_id does not resolve to a user
        """
        drops = self.store.get_unanalyzed_drops_with_conversations(user_id)
        return sorted(drops, key=lambda d: (d.created_at, d.id))

    def render(self, drops: Sequence[DropWithConversation]) -> AnalysisCorpus:
        return build_corpus(drops, self.max_chars)
