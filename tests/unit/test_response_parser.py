"""
Unit tests for the analysis response parser.

Covers header tolerance (plain, bold, markdown), bullet styles, and each
structural rule: summary length, bullet count and required sections.
"""

from __future__ import annotations

import pytest

from conftest import VALID_RESPONSE
from dailydrop.analysis.errors import (
    InvalidBulletCountError,
    MissingSectionError,
    ResponseParseError,
    SummaryTooLongError,
    UnparseableResponseError,
)
from dailydrop.analysis.parser import (
    FALLBACK_BULLETS,
    ResponseParser,
    Section,
    SectionKind,
    extract_bullets,
    fallback_analysis,
    parse_analysis_response,
    tokenize_sections,
)

ANALYSIS_BODY = (
    "You keep returning to the same worries about work.\n\n"
    "Naming the feeling first seems to help you.\n\n"
    "Keep a short evening check-in going."
)


def build_response(summary_header: str, analysis_header: str, insights_header: str, bullet: str = "•") -> str:
    return (
        f"{summary_header} You are kinder to others than to yourself\n\n"
        f"{analysis_header}\n{ANALYSIS_BODY}\n\n"
        f"{insights_header}\n"
        f"{bullet} Stress shows up first in your sleep\n"
        f"{bullet} Friends reliably restore your energy\n"
        f"{bullet} Small routines carry you through busy weeks\n"
    )


class TestHeaderStyles:
    def test_plain_headers(self):
        parsed = parse_analysis_response(VALID_RESPONSE)

        assert parsed.summary == "You grow most when you name feelings before acting on them"
        assert parsed.content.count("\n\n") == 2
        assert len(parsed.bullets) == 3
        assert parsed.is_fallback is False

    @pytest.mark.parametrize(
        "headers",
        [
            ("SUMMARY:", "ANALYSIS:", "INSIGHTS:"),
            ("**Summary:**", "**Analysis:**", "**Key Insights:**"),
            ("**Summary**:", "**Analysis**", "**Insights**"),
            ("## Summary:", "## Analysis", "## Key Insights"),
            ("Summary:", "Analysis", "Insights"),
            ("Headline:", "Analysis:", "Key Takeaways:"),
        ],
    )
    def test_decorated_headers_parse_identically(self, headers):
        parsed = parse_analysis_response(build_response(*headers))

        assert parsed.summary == "You are kinder to others than to yourself"
        assert parsed.content == ANALYSIS_BODY
        assert parsed.bullets == [
            "Stress shows up first in your sleep",
            "Friends reliably restore your energy",
            "Small routines carry you through busy weeks",
        ]

    @pytest.mark.parametrize("bullet", ["•", "-", "*"])
    def test_bullet_markers_are_normalized(self, bullet):
        parsed = parse_analysis_response(build_response("SUMMARY:", "ANALYSIS:", "INSIGHTS:", bullet))

        assert parsed.bullet_points.splitlines()[0] == "• Stress shows up first in your sleep"
        assert all(line.startswith("• ") for line in parsed.bullet_points.splitlines())

    def test_prose_starting_with_keyword_is_not_a_header(self):
        raw = VALID_RESPONSE.replace(
            "Across these entries",
            "Analysis of your week shows a pattern.\nAcross these entries",
        )
        parsed = parse_analysis_response(raw)

        assert parsed.content.startswith("Analysis of your week shows a pattern.")

    def test_preamble_before_first_header_is_ignored(self):
        parsed = parse_analysis_response("Here is your analysis!\n\n" + VALID_RESPONSE)

        assert parsed.summary.startswith("You grow most")
        assert "Here is your analysis" not in parsed.content

    def test_tokenize_keeps_preamble_and_header_line_text(self):
        sections = tokenize_sections("Intro line\nSUMMARY: short one\nANALYSIS:\nbody")

        assert sections == [
            Section(SectionKind.PREAMBLE, "Intro line"),
            Section(SectionKind.SUMMARY, "short one"),
            Section(SectionKind.ANALYSIS, "body"),
        ]


class TestExtractBullets:
    def test_wrapped_bullet_lines_join(self):
        body = "• First insight that wraps\n  onto a second line\n• Second\n• Third"

        assert extract_bullets(body) == [
            "First insight that wraps onto a second line",
            "Second",
            "Third",
        ]

    def test_blank_line_ends_a_bullet(self):
        body = "• One\n\nstray closing remark\n• Two"

        assert extract_bullets(body) == ["One", "Two"]

    def test_empty_markers_are_skipped(self):
        assert extract_bullets("•\n- \n• Real") == ["Real"]

    @pytest.mark.parametrize("rule", ["---", "***", "___", "- - -"])
    def test_horizontal_rules_are_not_bullets(self, rule):
        body = f"- One\n- Two\n{rule}\ntrailing note\n- Three"

        assert extract_bullets(body) == ["One", "Two", "Three"]

    def test_trailing_rule_after_five_insights_still_parses(self):
        raw = (
            "**Summary:** You rest better after hard conversations\n\n"
            f"**Analysis:**\n{ANALYSIS_BODY}\n\n"
            "**Insights:**\n- one\n- two\n- three\n- four\n- five\n\n---\n"
        )

        parsed = parse_analysis_response(raw)

        assert parsed.bullets == ["one", "two", "three", "four", "five"]


class TestValidationRules:
    def test_no_headers_is_unparseable(self):
        with pytest.raises(UnparseableResponseError):
            parse_analysis_response("I'm sorry, I can't help with that.")

    def test_missing_analysis_section(self):
        raw = "SUMMARY: Short headline\n\nINSIGHTS:\n• a\n• b\n• c\n"

        with pytest.raises(MissingSectionError) as exc_info:
            parse_analysis_response(raw)
        assert exc_info.value.section == "analysis"
        assert str(exc_info.value) == "Analysis section is required"

    def test_missing_summary_section(self):
        raw = f"ANALYSIS:\n{ANALYSIS_BODY}\n\nINSIGHTS:\n• a\n• b\n• c\n"

        with pytest.raises(MissingSectionError) as exc_info:
            parse_analysis_response(raw)
        assert exc_info.value.section == "summary"

    def test_summary_over_fifteen_words(self):
        long_summary = " ".join(["word"] * 20)
        raw = VALID_RESPONSE.replace(
            "You grow most when you name feelings before acting on them", long_summary
        )

        with pytest.raises(SummaryTooLongError) as exc_info:
            parse_analysis_response(raw)
        assert exc_info.value.word_count == 20
        assert exc_info.value.max_words == 15

    def test_summary_of_exactly_fifteen_words_passes(self):
        summary = " ".join(["word"] * 15)
        raw = VALID_RESPONSE.replace(
            "You grow most when you name feelings before acting on them", summary
        )

        assert parse_analysis_response(raw).summary == summary

    @pytest.mark.parametrize("count", [0, 2, 6])
    def test_bullet_count_out_of_range(self, count):
        bullets = "".join(f"• insight {i}\n" for i in range(count))
        raw = f"SUMMARY: Short headline\n\nANALYSIS:\n{ANALYSIS_BODY}\n\nINSIGHTS:\n{bullets}"

        with pytest.raises(InvalidBulletCountError) as exc_info:
            parse_analysis_response(raw)
        assert exc_info.value.count == count

    @pytest.mark.parametrize("count", [3, 4, 5])
    def test_bullet_count_in_range(self, count):
        bullets = "".join(f"• insight {i}\n" for i in range(count))
        raw = f"SUMMARY: Short headline\n\nANALYSIS:\n{ANALYSIS_BODY}\n\nINSIGHTS:\n{bullets}"

        assert len(parse_analysis_response(raw).bullets) == count

    def test_every_rule_failure_is_a_parse_error(self):
        with pytest.raises(ResponseParseError):
            parse_analysis_response("SUMMARY: only a summary")

    def test_custom_limits(self):
        parser = ResponseParser(max_summary_words=5)

        with pytest.raises(SummaryTooLongError):
            parser.parse(VALID_RESPONSE)


class TestFallback:
    def test_fallback_is_flagged_and_well_formed(self):
        parsed = fallback_analysis()

        assert parsed.is_fallback is True
        assert len(parsed.summary.split()) <= 15
        assert parsed.bullets == list(FALLBACK_BULLETS)
        assert parsed.content.count("\n\n") == 2
