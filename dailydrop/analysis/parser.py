"""
Response parsing for analyses.

The model's reply is free text. Parsing runs in two steps so each rule can be
tested on its own:

    raw text -> tokenize_sections() -> [Section] -> validate_sections() -> ParsedAnalysis

Headers are found by keyword and tolerate markdown decoration, so all of
these open a section:

    SUMMARY: ...        **Summary:** ...     **Summary**: ...
    ## Key Insights     Insights             __Analysis__
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from dailydrop.analysis.errors import (
    InvalidBulletCountError,
    MissingSectionError,
    SummaryTooLongError,
    UnparseableResponseError,
)
from dailydrop.config import ANALYSIS_MAX_BULLETS, ANALYSIS_MIN_BULLETS, ANALYSIS_SUMMARY_MAX_WORDS

BULLET = "•"

_HEADER_RE = re.compile(
    r"""^\s*
    (?P<hashes>\#{1,6}\s*)?
    (?P<open>\*\*|__)?\s*
    (?P<keyword>summary|headline|analysis|key\s+insights|insights|key\s+takeaways|takeaways|bullet\s+points)\b
    \s*(?P<close>\*\*|__)?
    \s*(?P<colon>:)?
    \s*(?P<close_after>\*\*|__)?
    \s*(?P<rest>.*?)\s*$""",
    re.IGNORECASE | re.VERBOSE,
)
_BULLET_RE = re.compile(r"^\s*(?:•|-|\*(?=\s))\s*(?P<text>.*)$")
_RULE_RE = re.compile(r"^(?:[-*_]\s*){3,}$")
_EXTRA_BLANK_LINES_RE = re.compile(r"\n{3,}")


class SectionKind(str, Enum):
    PREAMBLE = "preamble"
    SUMMARY = "summary"
    ANALYSIS = "analysis"
    INSIGHTS = "insights"


_KEYWORD_KINDS = {
    "summary": SectionKind.SUMMARY,
    "headline": SectionKind.SUMMARY,
    "analysis": SectionKind.ANALYSIS,
}


@dataclass(frozen=True)
class Section:
    kind: SectionKind
    body: str


@dataclass(frozen=True)
class ParsedAnalysis:
    summary: str
    content: str
    bullet_points: str
    is_fallback: bool = False

    @property
    def bullets(self) -> list[str]:
        return [line[len(BULLET) :].strip() for line in self.bullet_points.splitlines()]


def _match_header(line: str) -> tuple[SectionKind, str] | None:
    match = _HEADER_RE.match(line)
    if not match:
        return None

    rest = match.group("rest").strip("*_ ").strip()
    decorated = bool(
        match.group("hashes")
        or match.group("colon")
        or (match.group("open") and (match.group("close") or match.group("close_after")))
    )
    # "Analysis of your week..." is prose, not a header
    if not decorated and rest:
        return None

    keyword = " ".join(match.group("keyword").lower().split())
    return _KEYWORD_KINDS.get(keyword, SectionKind.INSIGHTS), rest


def tokenize_sections(raw_text: str) -> list[Section]:
    """
    Split raw model text into sections at recognized headers.

    Text before the first header becomes a PREAMBLE section. Text on the header
    line after the colon starts the section body.
    """
    sections: list[Section] = []
    kind = SectionKind.PREAMBLE
    lines: list[str] = []

    def flush() -> None:
        body = "\n".join(lines).strip()
        if kind is not SectionKind.PREAMBLE or body:
            sections.append(Section(kind, body))

    for line in (raw_text or "").splitlines():
        header = _match_header(line)
        if header is None:
            lines.append(line)
            continue
        flush()
        kind, rest = header
        lines = [rest] if rest else []

    flush()
    return sections


def extract_bullets(body: str) -> list[str]:
    """
    Bullet lines from an insights body, without their markers.

    A non-bullet line directly under a bullet is a wrapped continuation and
    joins it; a blank line or a horizontal rule ends the bullet.
    """
    bullets: list[str] = []
    continuing = False

    for line in body.splitlines():
        stripped = line.strip()
        # Markdown horizontal rules (---, ***, ___) end a bullet like a blank line
        if not stripped or _RULE_RE.match(stripped):
            continuing = False
            continue

        match = _BULLET_RE.match(stripped)
        if match:
            text = match.group("text").strip()
            if text:
                bullets.append(text)
                continuing = True
            continue

        if continuing:
            bullets[-1] = f"{bullets[-1]} {stripped}"

    return bullets


def _clean_summary(body: str) -> str:
    summary = " ".join(body.split())
    return summary.strip("*_\"' ").strip()


def validate_sections(
    sections: list[Section],
    max_summary_words: int = ANALYSIS_SUMMARY_MAX_WORDS,
    min_bullets: int = ANALYSIS_MIN_BULLETS,
    max_bullets: int = ANALYSIS_MAX_BULLETS,
) -> ParsedAnalysis:
    """
    Enforce the structural rules on tokenized sections.

    Raises:
        UnparseableResponseError: No recognized section header at all
        MissingSectionError: Analysis or summary absent/blank
        SummaryTooLongError: Summary over max_summary_words
        InvalidBulletCountError: Insights bullet count outside [min_bullets, max_bullets]
    """
    found: dict[SectionKind, str] = {}
    for section in sections:
        if section.kind is SectionKind.PREAMBLE:
            continue
        # First non-blank occurrence wins
        if not found.get(section.kind):
            found[section.kind] = section.body

    if not found:
        raise UnparseableResponseError("No section markers found in response")

    content = _EXTRA_BLANK_LINES_RE.sub("\n\n", found.get(SectionKind.ANALYSIS, "")).strip()
    if not content:
        raise MissingSectionError("Analysis section is required", section="analysis")

    summary = _clean_summary(found.get(SectionKind.SUMMARY, ""))
    if not summary:
        raise MissingSectionError("Summary section is required", section="summary")

    word_count = len(summary.split())
    if word_count > max_summary_words:
        raise SummaryTooLongError(word_count, max_summary_words)

    bullets = extract_bullets(found.get(SectionKind.INSIGHTS, ""))
    if not min_bullets <= len(bullets) <= max_bullets:
        raise InvalidBulletCountError(len(bullets), min_bullets, max_bullets)

    return ParsedAnalysis(
        summary=summary,
        content=content,
        bullet_points="\n".join(f"{BULLET} {b}" for b in bullets),
    )


def parse_analysis_response(raw_text: str) -> ParsedAnalysis:
    return validate_sections(tokenize_sections(raw_text))


class ResponseParser:
    """Parses model replies, optionally with non-default limits."""

    def __init__(
        self,
        max_summary_words: int = ANALYSIS_SUMMARY_MAX_WORDS,
        min_bullets: int = ANALYSIS_MIN_BULLETS,
        max_bullets: int = ANALYSIS_MAX_BULLETS,
    ):
        self.max_summary_words = max_summary_words
        self.min_bullets = min_bullets
        self.max_bullets = max_bullets

    def parse(self, raw_text: str) -> ParsedAnalysis:
        return validate_sections(
            tokenize_sections(raw_text),
            max_summary_words=self.max_summary_words,
            min_bullets=self.min_bullets,
            max_bullets=self.max_bullets,
        )


FALLBACK_SUMMARY = "Analysis completed with valuable insights"

FALLBACK_CONTENT = (
    "Your journal entries show thoughtful self-reflection and personal growth. The patterns "
    "in your responses indicate a developing awareness of your thoughts and emotions, which "
    "is a valuable foundation for continued growth.\n\n"
    "Across your entries, there are opportunities to explore deeper connections between your "
    "experiences and emotional responses. This awareness can help you build more intentional "
    "habits and responses to life's challenges.\n\n"
    "Continuing to engage in regular reflection, as you've been doing, will support your "
    "ongoing personal development. Consider focusing on identifying specific triggers and "
    "developing targeted strategies for growth areas you've identified."
)

FALLBACK_BULLETS = (
    "Strong foundation in self-reflection and awareness",
    "Opportunities for deeper emotional pattern recognition",
    "Continued journaling supports personal growth",
    "Consider identifying specific triggers and responses",
    "Build on existing strengths in self-awareness",
)


def fallback_analysis() -> ParsedAnalysis:
    """Canned analysis used only when fallback is enabled. Always flagged is_fallback."""
    return ParsedAnalysis(
        summary=FALLBACK_SUMMARY,
        content=FALLBACK_CONTENT,
        bullet_points="\n".join(f"{BULLET} {b}" for b in FALLBACK_BULLETS),
        is_fallback=True,
    )
