"""
Markdown Validator Agent.

One model pass repairs structural Markdown problems. The corrected text is
then linted; when the linter still reports issues the deterministic fixer
is applied to the content this stage received (not to the model output)
and that result is returned instead. Any failure returns the input
unchanged, so this stage can only improve formatting.
"""

import logging

from autoblog.config import Settings
from autoblog.markdown_lint import fix_markdown, lint_markdown
from autoblog.text_utils import strip_code_fences
from autoblog.tools.gemini_client import GeminiClient

VALIDATION_PROMPT = """You are an expert in Markdown formatting. Validate and correct the
Markdown of the blog post below so that it renders cleanly.

TITLE: {title}

CONTENT:
{content}

Correct these issues where present:
1. Text indented by four spaces that turned into an accidental code block.
2. Code blocks: use triple backticks with a language identifier and close
   every block.
3. Headings: no skipped levels, one space after the hash marks, a blank
   line before and after each heading.
4. Lists: a space after each marker, consistent nesting, blank lines
   around the list.
5. Inline code: matching single backticks.
6. Citation markers: collapse nested markers such as [ref:ref:ref-2] to
   [ref:ref-2]. Keep every other citation marker exactly as it is.

Do not rewrite, shorten or extend the prose and do not add hyperlinks.
Return ONLY the corrected raw Markdown, without a code fence around the
whole response and without comments about what you changed.
"""


class ValidatorAgent:
    """Fix Markdown structure with a model pass and a lint gate.

    Args:
        gemini: Gemini client.
        settings: ``validator_temperature`` is used for the call.
    """

    def __init__(self, gemini: GeminiClient, settings: Settings) -> None:
        self.gemini = gemini
        self.settings = settings
        self.logger = logging.getLogger("Validator")

    async def run(self, content: str, title: str) -> str:
        """Return corrected Markdown; never raises."""
        try:
            corrected = await self.gemini.generate(
                VALIDATION_PROMPT.format(title=title, content=content),
                temperature=self.settings.validator_temperature,
            )
            corrected = strip_code_fences(corrected or "")
            if not corrected:
                self.logger.warning("Validator returned no text, applying auto-fixer")
                return fix_markdown(content)

            issues = lint_markdown(corrected)
            if issues:
                self.logger.info(
                    "Lint found %d issues in the corrected text (first: %s); "
                    "auto-fixing the original content instead",
                    len(issues),
                    issues[0],
                )
                return fix_markdown(content)

            self.logger.info("Markdown validated, no lint issues")
            return corrected
        except Exception as exc:
            self.logger.warning("Markdown validation failed, keeping input: %s", exc)
            return content
