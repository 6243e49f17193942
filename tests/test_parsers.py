"""
Tests for autoblog.parsers.

Covers:
    - Ok / ParseError tagged results
    - parse_topic_selection() and parse_post_metadata() JSON contracts
    - Evaluator verdict parsing with its fallback patterns
    - parse_tool_post() labelled blocks
    - extract_outline_points()
"""

import json

import pytest

from autoblog.parsers import (
    Ok,
    ParseError,
    extract_outline_points,
    parse_evaluation,
    parse_json_object,
    parse_post_metadata,
    parse_satisfaction_score,
    parse_satisfactory_flag,
    parse_tool_post,
    parse_topic_selection,
)


def _metadata(**overrides):
    data = {
        "title": "Edge AI in 2025",
        "meta_description": "Why inference is moving to the edge.",
        "image_prompt": "A glowing chip on a circuit board",
        "tags": ["edge", "ai", " inference "],
        "category": 3,
    }
    data.update(overrides)
    return json.dumps(data)


# ===========================================================================
# JSON
# ===========================================================================


class TestParseJsonObject:
    """Decoding of structured responses."""

    def test_plain_object(self):
        result = parse_json_object('{"a": 1}')
        assert isinstance(result, Ok)
        assert result.value == {"a": 1}

    def test_fenced_object(self):
        result = parse_json_object('```json\n{"a": 1}\n```')
        assert result.ok
        assert result.value == {"a": 1}

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty(self, raw):
        result = parse_json_object(raw)
        assert isinstance(result, ParseError)
        assert result.reason == "empty response"

    def test_invalid_json_keeps_raw(self):
        result = parse_json_object("{not json")
        assert not result.ok
        assert result.raw == "{not json"
        assert "invalid JSON" in result.reason

    def test_array_is_rejected(self):
        result = parse_json_object("[1, 2]")
        assert not result.ok
        assert "list" in result.reason


# ===========================================================================
# Topic selection
# ===========================================================================


class TestParseTopicSelection:
    """Topic selector contract."""

    def test_valid(self):
        raw = json.dumps(
            {
                "title": "  eBPF for Observability ",
                "hook_description": "Kernel-level tracing without agents.",
                "search_queries": ["ebpf tracing", "", "cilium hubble"],
            }
        )
        result = parse_topic_selection(raw)
        assert result.ok
        assert result.value.title == "eBPF for Observability"
        assert result.value.search_queries == ["ebpf tracing", "cilium hubble"]

    @pytest.mark.parametrize(
        "payload, field",
        [
            ({"hook_description": "x", "search_queries": []}, "title"),
            ({"title": "x", "search_queries": []}, "hook_description"),
            ({"title": "x", "hook_description": "y"}, "search_queries"),
            ({"title": "  ", "hook_description": "y", "search_queries": []}, "title"),
        ],
    )
    def test_missing_field(self, payload, field):
        result = parse_topic_selection(json.dumps(payload))
        assert not result.ok
        assert field in result.reason


# ===========================================================================
# Metadata
# ===========================================================================


class TestParsePostMetadata:
    """Metadata extractor contract."""

    def test_valid(self):
        result = parse_post_metadata(_metadata(), read_time_minutes=4)
        assert result.ok
        metadata = result.value
        assert metadata.category == 3
        assert metadata.read_time_minutes == 4
        assert metadata.tags == ["edge", "ai", "inference"]

    @pytest.mark.parametrize("category", ["3", 3.0, True, None])
    def test_category_must_be_integer(self, category):
        result = parse_post_metadata(_metadata(category=category), read_time_minutes=1)
        assert not result.ok
        assert "category" in result.reason

    @pytest.mark.parametrize("field", ["title", "meta_description", "image_prompt", "tags"])
    def test_missing_field(self, field):
        data = json.loads(_metadata())
        del data[field]
        result = parse_post_metadata(json.dumps(data), read_time_minutes=1)
        assert not result.ok
        assert field in result.reason


# ===========================================================================
# Evaluator verdict
# ===========================================================================


class TestSatisfactionScore:
    """Primary and fallback score patterns."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("SATISFACTION_SCORE: 7", (7.0, "satisfaction_score")),
            ("**SATISFACTION_SCORE:** 8.5", (8.5, "satisfaction_score")),
            ("Overall score: 6", (6.0, "score")),
            ("Rating = 5", (5.0, "rating")),
            ("I'd give this 4/10 overall.", (4.0, "out_of_ten")),
        ],
    )
    def test_patterns(self, text, expected):
        result = parse_satisfaction_score(text)
        assert result.ok
        assert result.value == expected

    def test_out_of_range_falls_through(self):
        """A 0-100 score is ignored and the next pattern is tried."""
        result = parse_satisfaction_score("SATISFACTION_SCORE: 85\nThat is 7/10 in short.")
        assert result.value == (7.0, "out_of_ten")

    def test_no_score(self):
        assert not parse_satisfaction_score("Looks fine to me.").ok


class TestSatisfactoryFlag:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("IS_SATISFACTORY: YES", True),
            ("IS_SATISFACTORY: no", False),
            ("**IS_SATISFACTORY:** true", True),
        ],
    )
    def test_values(self, text, expected):
        assert parse_satisfactory_flag(text).value is expected

    def test_missing(self):
        assert not parse_satisfactory_flag("SATISFACTION_SCORE: 9").ok


class TestParseEvaluation:
    """Verdicts never fail to build."""

    def test_full_reply(self):
        verdict = parse_evaluation("SATISFACTION_SCORE: 9\nIS_SATISFACTORY: YES", 0)
        assert verdict.score == 9
        assert verdict.is_satisfactory is True
        assert verdict.score_was_parsed

    def test_synthesized_score(self):
        """No score at all: previous score plus one, not satisfactory."""
        verdict = parse_evaluation("Needs more examples.", previous_score=0)
        assert verdict.score == 1
        assert verdict.score_source == "synthesized"
        assert verdict.is_satisfactory is False
        assert verdict.feedback == "Needs more examples."


# ===========================================================================
# Tool post
# ===========================================================================


TOOL_REPLY = """TOOL_NAME: Perplexity Pages
TITLE: Perplexity Pages Turns Research Into Articles
DESCRIPTION: Publish researched pages in minutes.
IMAGE_DESCRIPTION: A clean editor with citations in the margin
TAGS: research, writing, ai
CONTENT:
# Perplexity Pages Turns Research Into Articles

## What it does

It drafts pages from your questions.
"""


class TestParseToolPost:
    """Labelled tool post contract."""

    def test_valid(self):
        result = parse_tool_post(TOOL_REPLY)
        assert result.ok
        draft = result.value
        assert draft.tool_name == "Perplexity Pages"
        assert draft.tags == ["research", "writing", "ai"]
        assert draft.content.startswith("## What it does")

    def test_tags_optional(self):
        raw = TOOL_REPLY.replace("TAGS: research, writing, ai\n", "")
        result = parse_tool_post(raw)
        assert result.ok
        assert result.value.tags == []

    def test_missing_required(self):
        raw = TOOL_REPLY.replace("TOOL_NAME: Perplexity Pages\n", "")
        result = parse_tool_post(raw)
        assert not result.ok
        assert "TOOL_NAME" in result.reason

    def test_empty(self):
        assert not parse_tool_post("").ok


# ===========================================================================
# Outline points
# ===========================================================================


class TestExtractOutlinePoints:
    def test_bullets_and_headings_in_order(self):
        outline = (
            "# Title is skipped\n"
            "## Introduction\n"
            "* Why latency matters\n"
            "- Tail latency\n"
            "   + Nested point\n"
            "Plain text is skipped\n"
            "### Deep dive\n"
            "* Why latency matters\n"
        )
        assert extract_outline_points(outline) == [
            "Introduction",
            "Why latency matters",
            "Tail latency",
            "Nested point",
            "Deep dive",
        ]

    def test_empty(self):
        assert extract_outline_points("") == []
