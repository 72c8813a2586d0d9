"""LLM integration for autogit.

The client owns prompt construction and output parsing for the three calls
the watch session makes: drafting a commit message, classifying whether a
diff is commit-worthy, and suggesting a fix for a failed git operation.
Transport is delegated to a provider driver.
"""

from __future__ import annotations

import json
import logging
import os
import re
import textwrap
from typing import Any, Optional

from .config import Config, get_active_config
from .exceptions import LLMError, ValidationError
from .providers.anthropic_driver import AnthropicDriver
from .providers.base import BaseDriver
from .providers.openai_driver import OpenAIDriver

logger = logging.getLogger(__name__)

_OPENAI_COMPATIBLE = {"openai", "gemini", "xai", "github"}

# Diffs longer than this are cut to head + tail before prompting.
MAX_PROMPT_DIFF = 12000
_DIFF_HEAD = 8000
_DIFF_TAIL = 2000

COMMIT_SYSTEM_PROMPT = "\n".join(
    [
        "You are an expert Git commit message generator.",
        "Output ONLY: type(scope): description",
        "",
        "Rules:",
        "- types: feat fix docs style refactor perf test build ci chore revert",
        "- subject <= 50 chars, imperative mood, no trailing period",
        "- add a short body only if the change needs explaining",
        "- focus on what changed, not how",
        "",
        "Return only the commit message.",
    ]
)

CLASSIFY_SYSTEM_PROMPT = "\n".join(
    [
        "You review uncommitted changes and decide whether they are ready",
        "to be committed as one coherent unit of work.",
        "Respond with a single JSON object and nothing else, with keys:",
        '  "should_commit": boolean,',
        '  "message": conventional commit message, type(scope): description,',
        '  "significance": one of trivial, minor, medium, major, critical,',
        '  "completeness": one of incomplete, partial, complete,',
        '  "change_type": one of feature, bugfix, refactor, docs, test, style,',
        "                 chore, performance, config, other,",
        '  "risk_level": one of low, medium, high,',
        '  "reason": one sentence explaining the verdict.',
    ]
)

SUGGEST_SYSTEM_PROMPT = "\n".join(
    [
        "You are an expert Git troubleshooting assistant.",
        "Analyse the error and give clear, actionable steps to resolve it.",
        "Mention the safest option first and include the exact git commands.",
        "Be concise.",
    ]
)

THRESHOLD_GUIDANCE = {
    "any": "Any meaningful change is worth committing.",
    "trivial": "Any meaningful change is worth committing.",
    "minor": "Skip only trivial changes such as whitespace or typo fixes.",
    "medium": "Skip trivial and minor changes; commit meaningful units of work.",
    "major": "Only commit significant features, fixes or restructurings.",
    "critical": "Only commit critical changes such as security or data fixes.",
}

_CC_PATTERN = re.compile(
    r"^(feat|fix|docs|style|refactor|test|chore|perf|ci|build|revert)"
    r"(\([a-zA-Z0-9_./-]+\))?!?: "
    r".+"
)


class LLMClient:
    """Provider-aware client for the completion service."""

    def __init__(self, config: Optional[Config] = None, debug: bool = False) -> None:
        self.debug = debug
        self.config = config or get_active_config()
        self.provider = self.config.provider
        self.model = self.config.model
        self.api_key = self.config.resolve_api_key()

        if not self.api_key:
            # Allow tests / CI (non-interactive) to proceed with dummy key
            if "PYTEST_CURRENT_TEST" in os.environ:
                self.api_key = "DUMMY_TEST_KEY"
            else:
                raise LLMError(
                    "Environment variable '"
                    f"{self.config.api_key_env}"
                    "' is not set or empty."
                )

        # Provider driver setup (strategy pattern)
        self._driver: BaseDriver
        if self.provider == "anthropic":
            self._driver = AnthropicDriver(self.config, debug=debug)
        elif self.provider in _OPENAI_COMPATIBLE:
            self._driver = OpenAIDriver(self.config, debug=debug)
        else:
            raise LLMError(f"Unsupported provider: {self.provider}")

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def generate_commit_message(self, diff: str) -> str:
        """Draft a conventional commit message for ``diff``."""
        if not diff or not diff.strip():
            raise ValidationError("Diff content cannot be empty.")
        prompt = "\n".join(
            [
                "Generate a commit message for these changes:",
                "",
                self._prepare_diff(diff),
            ]
        )
        raw = self._driver.invoke(COMMIT_SYSTEM_PROMPT, prompt)
        message = self._sanitize_commit_output(raw)
        message = self._enforce_subject_length(message)
        return self._wrap_body(message)

    def classify(
        self,
        diff: str,
        threshold: str = "medium",
        require_completeness: bool = True,
    ) -> dict[str, Any]:
        """Ask the model whether ``diff`` is worth committing.

        Returns the parsed JSON verdict. Threshold and completeness are
        passed as guidance only; the caller applies its own policy.
        """
        if not diff or not diff.strip():
            raise ValidationError("Diff content cannot be empty.")
        guidance = THRESHOLD_GUIDANCE.get(threshold, THRESHOLD_GUIDANCE["medium"])
        prompt_parts = [
            "Decide whether these changes should be committed now.",
            "",
            f"COMMIT THRESHOLD: {threshold}. {guidance}",
        ]
        if require_completeness:
            prompt_parts.append(
                "Only recommend committing when the work looks complete, not "
                "half-finished."
            )
        prompt_parts.extend(["", "DIFF:", self._prepare_diff(diff)])
        raw = self._driver.invoke(
            CLASSIFY_SYSTEM_PROMPT, "\n".join(prompt_parts), max_tokens=700
        )
        analysis = self._parse_json_object(raw)
        message = str(analysis.get("message") or "").strip()
        if message:
            try:
                message = self._sanitize_commit_output(message)
                analysis["message"] = self._enforce_subject_length(message)
            except LLMError:
                # Keep the raw text; a positive verdict with no usable
                # message is rejected by the decision engine.
                analysis["message"] = message
        return analysis

    def suggest_fix(self, error_text: str) -> str:
        """Return a troubleshooting suggestion for a failed git operation."""
        if not error_text or not error_text.strip():
            raise ValidationError("No error text provided for suggestion.")
        prompt = (
            "Analyze this Git error and provide a solution:\n\n"
            + sanitize_error_text(error_text)
        )
        return self._driver.invoke(SUGGEST_SYSTEM_PROMPT, prompt, max_tokens=600)

    # ------------------------------------------------------------------
    # Prompt helpers
    # ------------------------------------------------------------------
    def _prepare_diff(self, diff: str) -> str:
        if len(diff) > MAX_PROMPT_DIFF:
            # Keep head and tail to provide context while limiting size
            diff = diff[:_DIFF_HEAD] + "\n...\n" + diff[-_DIFF_TAIL:]
        return self._clean_diff_for_llm(diff)

    def _clean_diff_for_llm(self, diff: str) -> str:
        """Replace /dev/null markers some endpoints choke on."""
        cleaned_lines: list[str] = []
        for line in diff.strip().split("\n"):
            if "--- /dev/null" in line:
                cleaned_lines.append("--- (new file)")
            elif "+++ /dev/null" in line:
                cleaned_lines.append("+++ (deleted)")
            else:
                cleaned_lines.append(line)
        return "\n".join(cleaned_lines)

    # ------------------------------------------------------------------
    # Output parsing
    # ------------------------------------------------------------------
    def _parse_json_object(self, raw: str) -> dict[str, Any]:
        """Extract the first JSON object from model output."""
        text = raw.strip()
        fence = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
        if fence:
            text = fence.group(1).strip()
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise LLMError("Classification response did not contain JSON")
        try:
            data = json.loads(text[start : end + 1])
        except ValueError as e:
            raise LLMError(f"Classification response is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise LLMError("Classification response must be a JSON object")
        return data

    def _sanitize_commit_output(self, raw: str) -> str:
        """Coerce arbitrary LLM output into a conventional commit.

        Strips quotes and code fences, then takes the first line that looks
        like a conventional header. Any remaining lines become the body.
        """
        text = raw.strip()
        if not text:
            raise LLMError("Empty LLM output")

        if (text.startswith('"') and text.endswith('"')) or (
            text.startswith("'") and text.endswith("'")
        ):
            text = text[1:-1].strip()
        if text.startswith("```"):
            for part in text.split("```"):
                candidate = part.strip()
                if candidate:
                    text = candidate
                    break

        lines = [line.rstrip() for line in text.splitlines() if line.strip()]
        header = None
        body_lines: list[str] = []
        for i, line in enumerate(lines):
            cleaned = line.lstrip("-*• ").strip("`\"'").strip()
            cleaned = re.sub(r"\s+", " ", cleaned)
            if _CC_PATTERN.match(cleaned):
                header = cleaned
                body_lines = lines[i + 1 :]
                break

        if header is None:
            raise LLMError("LLM output missing conventional commit header")

        header = header.rstrip(".")
        body: list[str] = []
        for bline in body_lines:
            if bline.strip().startswith(("```", "---", "===")):
                continue
            if len(body) > 12:
                break
            body.append(bline)
        if not body:
            return header
        return header + "\n\n" + "\n".join(body)

    def _enforce_subject_length(self, message: str) -> str:
        """Shorten only the subject line when it exceeds the configured length."""
        max_len = self.config.max_commit_length
        lines = message.splitlines()
        if not lines:
            return message
        subject = lines[0].strip()
        if len(subject) <= max_len:
            return message
        cutoff = subject.rfind(" ", 0, max_len)
        if cutoff == -1 or cutoff < max_len * 0.6:
            cutoff = max_len - 1
        lines[0] = subject[:cutoff].rstrip() + "…"
        return "\n".join(lines)

    def _wrap_body(self, message: str, width: int = 72) -> str:
        """Wrap body paragraphs (after the first blank line) to ``width``."""
        lines = message.splitlines()
        body_start = None
        for i in range(1, len(lines)):
            if lines[i].strip() == "":
                body_start = i + 1
                break
        if body_start is None or body_start >= len(lines):
            return message
        wrapped_body: list[str] = []
        for paragraph in "\n".join(lines[body_start:]).split("\n\n"):
            if not paragraph.strip():
                continue
            wrapped_body.extend(textwrap.wrap(paragraph, width=width))
            wrapped_body.append("")
        if wrapped_body and wrapped_body[-1] == "":
            wrapped_body.pop()
        return "\n".join(lines[:body_start] + wrapped_body)


def sanitize_error_text(error_text: str) -> str:
    """Strip user names, tokens, emails and credentials from error output."""
    sanitized = error_text
    sanitized = re.sub(r"/Users/[^/\s]+", "/Users/[username]", sanitized)
    sanitized = re.sub(r"/home/[^/\s]+", "/home/[username]", sanitized)
    sanitized = re.sub(r"C:\\Users\\[^\\\s]+", r"C:\\Users\\[username]", sanitized)
    sanitized = re.sub(r"https?://[^@\s]+@\S+", "https://[credentials]@[url]", sanitized)
    sanitized = re.sub(
        r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", "[email]", sanitized
    )
    sanitized = re.sub(r"[a-zA-Z0-9]{32,}", "[TOKEN]", sanitized)
    relevant = [
        line
        for line in sanitized.split("\n")
        if line.strip()
        and not line.strip().startswith(("#", "On branch", "Your branch"))
    ]
    return "\n".join(relevant).strip()
