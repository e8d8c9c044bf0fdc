"""Tests for response_parser.py."""

import logging

import pytest

from helpers import TURKISH_REPLY
from response_parser import (
    DEFAULT_INTERPRETATION,
    IMAGE_STYLE_SUFFIX,
    UNTITLED,
    build_image_prompt,
    fallback_title,
    match_label,
    parse_analysis,
    sanitize,
    split_tags,
)


# ── TestSanitize ────────────────────────────


class TestSanitize:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("**bold** and *italic*", "bold and italic"),
            ("# Heading\n## Sub", "Heading\nSub"),
            ("see [the link](http://example.com)", "see the link"),
            ("![a moon](moon.png)", "a moon"),
            ("`code`", "code"),
            ("__strong__ and _soft_", "strong and soft"),
            ("  padded  ", "padded"),
            ("**# Title**", "Title"),
        ],
    )
    def test_strips_markdown(self, raw, expected):
        assert sanitize(raw) == expected

    def test_leaves_plain_text_alone(self):
        assert sanitize("snake_case_name #hashtag 3 * 4") == "snake_case_name #hashtag 3  4"
        assert sanitize("Uçan ev, büyük deniz.") == "Uçan ev, büyük deniz."

    @pytest.mark.parametrize(
        "raw",
        ["***x***", "**# Title**", "# [**link**](u)", "_a_ __b__ `c`", "plain"],
    )
    def test_idempotent(self, raw):
        once = sanitize(raw)
        assert sanitize(once) == once

    def test_non_string(self):
        assert sanitize(None) == ""
        assert sanitize(42) == ""


# ── TestMatchLabel ──────────────────────────


class TestMatchLabel:
    @pytest.mark.parametrize(
        "line,expected",
        [
            ("BAŞLIK: Uçan Ev", ("title", "Uçan Ev")),
            ("başlık: Uçan Ev", ("title", "Uçan Ev")),
            ("**BAŞLIK:** Uçan Ev", ("title", "Uçan Ev")),
            ("## FAL: İyi haber", ("interpretation", "İyi haber")),
            ("- SYMBOLS: sea, boat", ("categories", "sea, boat")),
            ("Emotions:joy", ("moods", "joy")),
            ("AÇIKLAMA:", ("narrative", "")),
            ("GÖRSEL : mavi orman", ("visual", "mavi orman")),
            ("1. BAŞLIK: Uçan Ev", ("title", "Uçan Ev")),
            ("2) **FAL:** İyi haber", ("interpretation", "İyi haber")),
            ("10. Moods: calm", ("moods", "calm")),
        ],
    )
    def test_recognised(self, line, expected):
        assert match_label(line) == expected

    @pytest.mark.parametrize(
        "line",
        ["Note: not a label", "BAŞLIK Uçan Ev", "just text", "", "12: numbers"],
    )
    def test_not_recognised(self, line):
        assert match_label(line) is None


# ── TestParseAnalysis ───────────────────────


class TestParseAnalysis:
    def test_turkish_reply(self):
        result = parse_analysis(TURKISH_REPLY, "ignored")
        assert result["title"] == "Test Title"
        assert result["categories"] == ["water", "fire"]
        assert result["moods"] == ["joy"]
        assert result["interpretation"] == "all will be well"
        assert result["narrative"] == "a long description"
        assert result["visual"] == ""
        assert result["raw_output"] == TURKISH_REPLY

    def test_english_aliases_any_order(self):
        reply = (
            "Interpretation: change is coming\n"
            "Title: The Tower\n"
            "Moods: awe, dread\n"
            "Symbols: tower, storm\n"
            "Visual: a tower under violet lightning"
        )
        result = parse_analysis(reply)
        assert result["title"] == "The Tower"
        assert result["categories"] == ["tower", "storm"]
        assert result["moods"] == ["awe", "dread"]
        assert result["interpretation"] == "change is coming"
        assert result["visual"] == "a tower under violet lightning"

    def test_markdown_decorated_labels_and_values(self):
        reply = (
            "## **BAŞLIK:** *Uçan Ev*\n"
            "- **SEMBOLLER:** ev, gökyüzü\n"
            "**DUYGULAR:** `merak`\n"
        )
        result = parse_analysis(reply)
        assert result["title"] == "Uçan Ev"
        assert result["categories"] == ["ev", "gökyüzü"]
        assert result["moods"] == ["merak"]

    def test_numbered_list_reply(self):
        reply = (
            "1. BAŞLIK: Kayıp Anahtar\n"
            "2. SEMBOLLER: anahtar, kapı\n"
            "3. DUYGULAR: endişe\n"
            "4. FAL: yeni bir başlangıç\n"
        )
        result = parse_analysis(reply)
        assert result["title"] == "Kayıp Anahtar"
        assert result["categories"] == ["anahtar", "kapı"]
        assert result["moods"] == ["endişe"]
        assert result["interpretation"] == "yeni bir başlangıç"

    def test_multiline_narrative_ends_at_blank_line(self):
        reply = (
            "AÇIKLAMA: I walked into the sea.\n"
            "The water was warm.\n"
            "\n"
            "stray commentary\n"
            "FAL: good things"
        )
        result = parse_analysis(reply)
        assert result["narrative"] == "I walked into the sea.\nThe water was warm."
        assert result["interpretation"] == "good things"

    def test_multiline_narrative_ends_at_next_label(self):
        result = parse_analysis("DESCRIPTION: one\ntwo\nTITLE: T")
        assert result["narrative"] == "one\ntwo"
        assert result["title"] == "T"

    def test_bare_label_takes_next_line(self):
        result = parse_analysis("BAŞLIK:\nUçan Ev\nSEMBOLLER: ev")
        assert result["title"] == "Uçan Ev"
        assert result["categories"] == ["ev"]

    def test_bare_label_skips_blank_line(self):
        assert parse_analysis("FAL:\n\nGood omen")["interpretation"] == "Good omen"

    def test_single_line_field_takes_one_line(self):
        result = parse_analysis("FAL: first line\nsecond line")
        assert result["interpretation"] == "first line"

    def test_tags_capped_at_five(self):
        result = parse_analysis("SYMBOLS: a, b, , c, d, e, f, g")
        assert result["categories"] == ["a", "b", "c", "d", "e"]

    def test_first_non_empty_capture_wins(self):
        assert parse_analysis("TITLE: First\nTITLE: Second")["title"] == "First"
        assert parse_analysis("TITLE:\nTITLE: Second")["title"] == "Second"

    def test_fallbacks_without_labels(self, caplog):
        with caplog.at_level(logging.WARNING, logger="response_parser"):
            result = parse_analysis("I cannot help with that.", "I was flying over a city. Then I fell.")
        assert result["title"] == "I was flying over a city"
        assert result["categories"] == []
        assert result["moods"] == []
        assert result["interpretation"] == DEFAULT_INTERPRETATION
        assert result["narrative"] == ""
        assert "no recognised labels" in caplog.text

    def test_fallback_title_truncated(self):
        result = parse_analysis("", "x" * 100)
        assert result["title"] == "x" * 60

    @pytest.mark.parametrize("raw", [None, "", 123, ["BAŞLIK: x"]])
    def test_empty_or_non_string_reply(self, raw):
        result = parse_analysis(raw)
        assert result["title"] == UNTITLED
        assert result["interpretation"] == DEFAULT_INTERPRETATION
        assert result["raw_output"] == ""

    def test_never_raises_on_garbage(self):
        garbage = "::::\n**\n# \n[](\n- : \nBAŞLIK"
        result = parse_analysis(garbage, None)
        assert result["title"] == UNTITLED


# ── TestHelpers ─────────────────────────────


class TestHelpers:
    def test_split_tags(self):
        assert split_tags("a, , b,") == ["a", "b"]
        assert split_tags("") == []
        assert split_tags("*x*, y", limit=1) == ["x"]

    def test_fallback_title(self):
        assert fallback_title("**Hello** world! more") == "Hello world"
        assert fallback_title("   ") == UNTITLED
        assert fallback_title(None) == UNTITLED

    def test_image_prompt_prefers_visual(self):
        parsed = {"visual": "a blue forest.", "narrative": "ignored"}
        assert build_image_prompt(parsed, "also ignored") == (
            f"Dream visualization: a blue forest. {IMAGE_STYLE_SUFFIX}"
        )

    def test_image_prompt_fallbacks(self):
        assert build_image_prompt({"visual": "", "narrative": "a cat"}).startswith(
            "Dream visualization: a cat. "
        )
        assert build_image_prompt({}, "  my dream  ").startswith("Dream visualization: my dream. ")
