"""Base analyzer implementing the Template Method pattern.

All providers share the same analysis algorithm:
    analyze() → _build_system_prompt() + _build_user_prompt()
              → _call_api()   ← only this differs per provider
              → _parse()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

There is no retry here. A failed analysis fails the review run, and the
next push to the pull request triggers a fresh one.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prhook_core.errors import AnalysisError, MalformedAnalysisError
from prhook_store.models import SEVERITIES, Finding

if TYPE_CHECKING:
    from collections.abc import Sequence

    from prhook_core.gh.pull_request import ChangedFile

logger = logging.getLogger(__name__)

_MAX_TOKENS = 8192
_DEFAULT_MAX_DIFF_CHARS = 2000
TRUNCATION_MARKER = "\n... (truncated)"


def _optional_text(value) -> str | None:
    """Keep optional finding fields only when they are non-empty strings."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass
class AnalysisResult:
    summary: str
    findings: list[Finding] = field(default_factory=list)


class BaseAnalyzer(ABC):
    MAX_TOKENS: int = _MAX_TOKENS

    def __init__(self, max_diff_chars: int = _DEFAULT_MAX_DIFF_CHARS):
        self.max_diff_chars = max_diff_chars

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def analyze(
        self,
        title: str,
        description: str,
        files: Sequence[ChangedFile],
        repository: str,
    ) -> AnalysisResult:
        """Assess a pull request and return its summary and findings.

        Raises AnalysisError if the API call fails and MalformedAnalysisError
        if the model's answer cannot be decoded into an assessment.
        """
        system = self._build_system_prompt()
        user = self._build_user_prompt(title, description, files, repository)
        try:
            raw = self._call_api(system, user)
        except Exception as e:
            raise AnalysisError(f"{self.__class__.__name__} API call failed: {e}") from e
        return self._parse(raw)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _build_system_prompt(self) -> str:
        return (
            "You are an expert code reviewer. Analyze pull requests and provide "
            "detailed, actionable feedback in JSON format."
        )

    def _truncate(self, patch: str) -> str:
        if len(patch) <= self.max_diff_chars:
            return patch
        return patch[: self.max_diff_chars] + TRUNCATION_MARKER

    def _build_user_prompt(
        self,
        title: str,
        description: str,
        files: Sequence[ChangedFile],
        repository: str,
    ) -> str:
        file_list = "\n".join(f"- {f.path} ({f.status})" for f in files)
        changes = []
        for f in files:
            if not f.patch:
                changes.append(f"{f.path}: No patch available ({f.status})")
            else:
                changes.append(f"\n=== {f.path} ===\n{self._truncate(f.patch)}")
        code_changes = "\n\n".join(changes)

        return f"""Review this GitHub pull request, focusing on:
1. Code quality and best practices
2. Potential bugs or issues
3. Security vulnerabilities
4. Performance concerns
5. Merge conflicts or dependency issues

PR Title: {title}
Repository: {repository}
Description: {description or "No description provided"}

Files Changed ({len(files)}):
{file_list}

Code Changes:
{code_changes}

### Output Format:
Respond with **only** a valid JSON object:

{{
  "summary": "<1-2 sentence overview of the changes and your assessment>",
  "findings": [
    {{
      "severity": "<critical|warning|info>",
      "title": "<brief title>",
      "description": "<detailed explanation>",
      "file": "<file path, if applicable>",
      "line": <line number in the new file, if applicable>,
      "suggestion": "<recommended fix, if applicable>"
    }}
  ]
}}

If there are no issues, return an empty "findings" list.
Do not return any text outside the JSON object."""

    def _parse(self, raw: str | None) -> AnalysisResult:
        """Decode the model's raw text into an AnalysisResult.

        Strict on structure: an empty answer, invalid JSON, a missing summary
        or a finding without a title/description raises rather than degrading
        to an empty result. Unknown severities are normalised to "info".
        """
        name = self.__class__.__name__
        if not raw or not raw.strip():
            raise MalformedAnalysisError(f"{name}: empty response from model")

        # Strip only the outer ```json ... ``` fence the model may wrap the
        # response in, not backticks inside string values.
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.warning("%s: failed to parse response as JSON: %s", name, raw[:200])
            raise MalformedAnalysisError(f"{name}: response is not valid JSON ({e.msg})") from e

        if not isinstance(data, dict):
            raise MalformedAnalysisError(f"{name}: expected a JSON object, got {type(data).__name__}")

        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise MalformedAnalysisError(f"{name}: response has no summary")

        raw_findings = data.get("findings")
        if not isinstance(raw_findings, list):
            raise MalformedAnalysisError(f"{name}: 'findings' must be a list")

        findings = [self._parse_finding(item, i) for i, item in enumerate(raw_findings)]
        return AnalysisResult(summary=summary.strip(), findings=findings)

    def _parse_finding(self, item, index: int) -> Finding:
        name = self.__class__.__name__
        if not isinstance(item, dict):
            raise MalformedAnalysisError(f"{name}: finding #{index + 1} is not an object")
        title = item.get("title")
        description = item.get("description")
        if not isinstance(title, str) or not title.strip():
            raise MalformedAnalysisError(f"{name}: finding #{index + 1} has no title")
        if not isinstance(description, str) or not description.strip():
            raise MalformedAnalysisError(f"{name}: finding #{index + 1} has no description")

        severity = str(item.get("severity", "info")).lower()
        if severity not in SEVERITIES:
            severity = "info"

        line = item.get("line")
        if isinstance(line, str) and line.isdigit():
            line = int(line)
        if not isinstance(line, int) or isinstance(line, bool) or line <= 0:
            line = None

        return Finding(
            severity=severity,
            title=title.strip(),
            description=description.strip(),
            file=_optional_text(item.get("file")),
            line=line,
            suggestion=_optional_text(item.get("suggestion")),
        )
