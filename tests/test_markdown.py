"""
Tests for the Markdown linter, the auto-fixer and the validator agent.
"""

import pytest

from autoblog.agents.validator import ValidatorAgent
from autoblog.markdown_lint import LintIssue, fix_markdown, lint_markdown, normalise_citation_markers

CLEAN = (
    "# Title\n"
    "\n"
    "Intro text.\n"
    "\n"
    "## Section\n"
    "\n"
    "- a\n"
    "- b\n"
    "\n"
    "```python\n"
    "print(1)\n"
    "```\n"
)

BROKEN = "#Title\nIntro\n### Deep\n```\ncode\n```\nafter  \n\n\n\nend"


def _rules(text):
    return {issue.rule for issue in lint_markdown(text)}


# ===========================================================================
# lint_markdown()
# ===========================================================================


class TestLintMarkdown:
    """Rule detection."""

    def test_clean_document(self):
        assert lint_markdown(CLEAN) == []

    def test_heading_jump_and_spacing(self):
        issues = lint_markdown("# Title\n### Deep\ntext")
        assert [i.line for i in issues if i.rule == "MD001"] == [2]
        assert "MD022" in {i.rule for i in issues}

    def test_heading_hash_spacing(self):
        assert "MD018" in _rules("#Title\n")
        assert "MD019" in _rules("##  Two spaces\n")

    def test_fence_without_language(self):
        issues = lint_markdown("Intro\n\n```\ncode\n```\n")
        assert [(i.line, i.rule) for i in issues] == [(3, "MD040")]

    def test_indented_code_block(self):
        assert "MD046" in _rules("Para\n\n    code here\n")

    def test_whitespace_rules(self):
        issues = lint_markdown("Text  \nmore\tword\n")
        assert (1, "MD009") in [(i.line, i.rule) for i in issues]
        assert (2, "MD010") in [(i.line, i.rule) for i in issues]

    def test_multiple_blank_lines(self):
        assert [(i.line, i.rule) for i in lint_markdown("A\n\n\nB\n")] == [(3, "MD012")]

    def test_list_without_blank_lines(self):
        assert "MD032" in _rules("Intro\n- a\n- b\n\nAfter\n")

    @pytest.mark.parametrize(
        "text",
        ["Fact [ref:ref:ref-2].\n", "Fact [ref:ref-0, ref:ref:ref-1].\n"],
    )
    def test_nested_citation(self, text):
        assert "CITE001" in _rules(text)

    def test_valid_citation_is_not_flagged(self):
        assert lint_markdown("Fact [ref:ref-2].\n") == []

    def test_code_content_is_not_linted(self):
        text = "Intro\n\n```python\nx = 1  \n\ty = 2\n```\n"
        assert lint_markdown(text) == []

    def test_issue_str(self):
        assert str(LintIssue(3, "MD040", "fence has no language")) == (
            "line 3: MD040 fence has no language"
        )


# ===========================================================================
# fix_markdown()
# ===========================================================================


class TestFixMarkdown:
    """Deterministic repair."""

    def test_repairs_broken_document(self):
        fixed = fix_markdown(BROKEN)
        assert fixed == (
            "# Title\n\nIntro\n\n## Deep\n\n```text\ncode\n```\n\nafter\n\nend\n"
        )
        assert lint_markdown(fixed) == []

    def test_idempotent(self):
        once = fix_markdown(BROKEN)
        assert fix_markdown(once) == once

    def test_unclosed_fence_is_closed(self):
        assert fix_markdown("Text\n\n```python\nx = 1") == "Text\n\n```python\nx = 1\n```\n"

    def test_indented_code_becomes_fence(self):
        fixed = fix_markdown("Para\n\n    code here\n    more\n")
        assert fixed == "Para\n\n```text\ncode here\nmore\n```\n"

    def test_lists_get_blank_lines(self):
        assert fix_markdown("Intro\n- a\n- b\nAfter") == "Intro\n\n- a\n- b\n\nAfter\n"

    def test_fence_content_untouched(self):
        text = "```python\n\tif x:  \n\t\treturn 1\n```"
        assert fix_markdown(text) == text + "\n"

    @pytest.mark.parametrize("language", ["C#", "F#"])
    def test_heading_ending_in_hash_is_kept(self, language):
        text = f"# Intro\n\n## Getting Started with {language}\n\nBody text.\n"
        assert fix_markdown(text) == text

    def test_closing_hashes_removed(self):
        assert fix_markdown("# Intro\n\n## Setup ##\n") == "# Intro\n\n## Setup\n"

    def test_tabs_outside_code(self):
        assert fix_markdown("Some\ttext") == "Some  text\n"

    def test_citations_normalised(self):
        fixed = fix_markdown("Fact [ref:ref:ref-2] and [ref:ref-0,ref:ref:ref-1].")
        assert fixed == "Fact [ref:ref-2] and [ref:ref-0, ref:ref-1].\n"

    def test_normalise_keeps_valid_markers(self):
        assert normalise_citation_markers("A [ref:ref-1].") == "A [ref:ref-1]."

    def test_empty(self):
        assert fix_markdown("") == "\n"


# ===========================================================================
# ValidatorAgent
# ===========================================================================


class TestValidatorAgent:
    """Model pass behind a lint gate."""

    @pytest.mark.asyncio
    async def test_clean_correction_is_returned(self, fake_gemini_factory, settings):
        gemini = fake_gemini_factory(text=[CLEAN])
        result = await ValidatorAgent(gemini, settings).run(BROKEN, "Title")

        assert result == CLEAN.strip()
        assert "TITLE: Title" in gemini.calls_of("generate")[0]

    @pytest.mark.asyncio
    async def test_lint_failure_fixes_the_original(self, fake_gemini_factory, settings):
        gemini = fake_gemini_factory(text=["#Still broken\ntext"])
        result = await ValidatorAgent(gemini, settings).run(BROKEN, "Title")
        assert result == fix_markdown(BROKEN)

    @pytest.mark.asyncio
    async def test_empty_reply_fixes_the_original(self, fake_gemini_factory, settings):
        gemini = fake_gemini_factory(text=[""])
        assert await ValidatorAgent(gemini, settings).run(BROKEN, "Title") == fix_markdown(BROKEN)

    @pytest.mark.asyncio
    async def test_failure_returns_input(self, fake_gemini_factory, settings):
        gemini = fake_gemini_factory(text=[RuntimeError("503")])
        assert await ValidatorAgent(gemini, settings).run(BROKEN, "Title") == BROKEN
