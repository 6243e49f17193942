"""
Deterministic Markdown linter and auto-fixer.

The linter parses with ``markdown-it-py`` for block structure (headings,
fences, indented code, lists) and adds line rules for what a parser
does not report. Rule ids follow markdownlint where one exists:

    MD001  heading levels increment by one
    MD009  trailing whitespace
    MD010  hard tabs
    MD012  multiple consecutive blank lines
    MD018  no space after ``#`` in an ATX heading
    MD019  several spaces after ``#`` in an ATX heading
    MD022  headings surrounded by blank lines
    MD023  headings start at the beginning of the line
    MD031  fenced code blocks surrounded by blank lines
    MD032  lists surrounded by blank lines
    MD040  fenced code blocks declare a language
    MD046  indented code blocks (fenced style expected)
    CITE001  nested citation marker such as ``[ref:ref:ref-2]``

``fix_markdown()`` repairs every rule above without a model call. Lines
inside fenced code are never touched.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from markdown_it import MarkdownIt

_PARSER = MarkdownIt("commonmark")

_FENCE_RE = re.compile(r"^(\s*)(`{3,}|~{3,})(.*)$")
_NO_SPACE_HEADING_RE = re.compile(r"^(#{1,6})([^#\s])")
_MULTI_SPACE_HEADING_RE = re.compile(r"^(#{1,6})[ \t]{2,}(?=\S)")
_INDENTED_HEADING_RE = re.compile(r"^[ \t]+(#{1,6}\s)")
_ATX_RE = re.compile(r"^(#{1,6})\s+(.*?)(?:\s+#+)?\s*$")
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")
_CITATION_RE = re.compile(r"\[ref:([^\[\]]*)\]")
_NESTED_CITATION_RE = re.compile(r"(?:\[|,)\s*ref:\s*ref:")

DEFAULT_FENCE_LANGUAGE = "text"


@dataclass(frozen=True)
class LintIssue:
    """One rule violation. ``line`` is 1-based."""

    line: int
    rule: str
    message: str

    def __str__(self) -> str:
        return f"line {self.line}: {self.rule} {self.message}"


# =============================================================================
# LINT
# =============================================================================


def _blank(lines: Sequence[str], index: int) -> bool:
    return index < 0 or index >= len(lines) or not lines[index].strip()


def _blank_after(lines: Sequence[str], end: int) -> bool:
    # markdown-it may include trailing blank lines in a block's map
    return _blank(lines, end) or _blank(lines, end - 1)


def _code_lines(tokens: Sequence) -> Set[int]:
    covered: Set[int] = set()
    for token in tokens:
        if token.type in ("fence", "code_block") and token.map:
            covered.update(range(token.map[0], token.map[1]))
    return covered


def lint_markdown(text: str) -> List[LintIssue]:
    """Return every violation in *text*, ordered by line."""
    lines = (text or "").replace("\r\n", "\n").split("\n")
    tokens = _PARSER.parse("\n".join(lines))
    issues: List[LintIssue] = []

    previous_level = 0
    for token in tokens:
        if not token.map:
            continue
        start, end = token.map

        if token.type == "heading_open":
            level = int(token.tag[1])
            if previous_level and level > previous_level + 1:
                issues.append(
                    LintIssue(start + 1, "MD001", f"h{previous_level} followed by h{level}")
                )
            previous_level = level
            if lines[start][:1].isspace():
                issues.append(LintIssue(start + 1, "MD023", "heading is indented"))
            if not _blank(lines, start - 1) or not _blank_after(lines, end):
                issues.append(
                    LintIssue(start + 1, "MD022", "heading not surrounded by blank lines")
                )

        elif token.type == "fence":
            if not token.info.strip():
                issues.append(LintIssue(start + 1, "MD040", "fence has no language"))
            if not _blank(lines, start - 1) or not _blank_after(lines, end):
                issues.append(
                    LintIssue(start + 1, "MD031", "fence not surrounded by blank lines")
                )

        elif token.type == "code_block":
            issues.append(LintIssue(start + 1, "MD046", "indented code block"))

        elif (
            token.type in ("bullet_list_open", "ordered_list_open")
            and token.level == 0
        ):
            if not _blank(lines, start - 1) or not _blank_after(lines, end):
                issues.append(
                    LintIssue(start + 1, "MD032", "list not surrounded by blank lines")
                )

    code = _code_lines(tokens)
    for index, line in enumerate(lines):
        if index in code:
            continue
        number = index + 1
        if line != line.rstrip():
            issues.append(LintIssue(number, "MD009", "trailing whitespace"))
        if "\t" in line:
            issues.append(LintIssue(number, "MD010", "hard tab"))
        if index > 0 and not line.strip() and not lines[index - 1].strip():
            if index < len(lines) - 1:
                issues.append(LintIssue(number, "MD012", "multiple blank lines"))
        if _NO_SPACE_HEADING_RE.match(line):
            issues.append(LintIssue(number, "MD018", "no space after hash"))
        if _MULTI_SPACE_HEADING_RE.match(line):
            issues.append(LintIssue(number, "MD019", "multiple spaces after hash"))
        if _NESTED_CITATION_RE.search(line):
            issues.append(LintIssue(number, "CITE001", "nested citation marker"))

    issues.sort(key=lambda issue: (issue.line, issue.rule))
    return issues


# =============================================================================
# FIX
# =============================================================================


def normalise_citation_markers(text: str) -> str:
    """Collapse ``[ref:ref:ref-2]`` style markers to ``[ref:ref-2]``."""

    def _rewrite(match: "re.Match[str]") -> str:
        ids: List[str] = []
        for raw in match.group(1).split(","):
            item = raw.strip()
            while item.lower().startswith("ref:"):
                item = item[4:].strip()
            if item:
                ids.append(f"ref:{item}")
        return "[" + ", ".join(ids) + "]" if ids else ""

    return _CITATION_RE.sub(_rewrite, text)


def _fence_indented_code(text: str) -> str:
    """Rewrite top-level indented code blocks as ``text`` fences."""
    lines = text.split("\n")
    blocks: List[Tuple[int, int]] = [
        (token.map[0], token.map[1])
        for token in _PARSER.parse(text)
        if token.type == "code_block" and token.level == 0 and token.map
    ]
    for start, end in reversed(blocks):
        while end > start and not lines[end - 1].strip():
            end -= 1
        body = [
            line[1:] if line.startswith("\t") else re.sub(r"^ {1,4}", "", line)
            for line in lines[start:end]
        ]
        lines[start:end] = ["```" + DEFAULT_FENCE_LANGUAGE, *body, "```"]
    return "\n".join(lines)


def _closes_fence(line: str, marker: str) -> bool:
    stripped = line.strip()
    return (
        len(stripped) >= len(marker)
        and set(stripped) == {marker[0]}
    )


def _fix_heading_syntax(line: str) -> str:
    line = _INDENTED_HEADING_RE.sub(r"\1", line)
    line = _NO_SPACE_HEADING_RE.sub(r"\1 \2", line)
    return _MULTI_SPACE_HEADING_RE.sub(r"\1 ", line)


def fix_markdown(text: str) -> str:
    """
    Return *text* with every lint rule repaired.

    Heading levels that jump are lowered to one below the previous
    heading; unclosed fences are closed at the end; the result ends with
    exactly one newline.
    """
    text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    text = _fence_indented_code(text)

    out: List[str] = []
    fence_marker: Optional[str] = None
    previous_level = 0
    previous_kind = "blank"

    def _ensure_blank() -> None:
        if out and out[-1] != "":
            out.append("")

    for raw in text.split("\n"):
        if fence_marker is not None:
            if _closes_fence(raw, fence_marker):
                out.append(raw.rstrip())
                fence_marker = None
                previous_kind = "fence"
            else:
                out.append(raw)
            continue

        line = raw.replace("\t", "  ").rstrip()

        fence = _FENCE_RE.match(line)
        if fence:
            indent, marker, info = fence.groups()
            _ensure_blank()
            out.append(indent + marker + (info.strip() or DEFAULT_FENCE_LANGUAGE))
            fence_marker = marker
            continue

        if not line:
            if out and out[-1] != "":
                out.append("")
            previous_kind = "blank"
            continue

        if previous_kind in ("fence", "heading"):
            _ensure_blank()

        line = normalise_citation_markers(_fix_heading_syntax(line))
        heading = _ATX_RE.match(line)
        if heading:
            level = len(heading.group(1))
            if previous_level and level > previous_level + 1:
                level = previous_level + 1
            previous_level = level
            _ensure_blank()
            out.append("#" * level + " " + heading.group(2))
            previous_kind = "heading"
            continue

        indented = line[:1].isspace()
        is_item = _LIST_ITEM_RE.match(line) is not None
        if is_item and not indented and previous_kind == "text":
            _ensure_blank()
        elif not is_item and not indented and previous_kind == "list":
            _ensure_blank()

        out.append(line)
        if is_item or (indented and previous_kind == "list"):
            previous_kind = "list"
        else:
            previous_kind = "text"

    if fence_marker is not None:
        out.append(fence_marker)

    return "\n".join(out).strip("\n") + "\n"
