"""Render a completed analysis as a pull request comment."""

from __future__ import annotations

from prhook_store.models import Finding

SHA_MARKER = "<!-- prhook-sha: {sha} -->"

# (severity, heading) in the order groups appear in the comment.
_SECTIONS = (
    ("critical", "🚨 Critical Issues"),
    ("warning", "⚠️ Warnings"),
    ("info", "ℹ️ Suggestions"),
)


def format_finding(finding: Finding, index: int) -> str:
    text = f"**{index}. {finding.title}**\n\n"
    if finding.file:
        location = f" (Line {finding.line})" if finding.line else ""
        text += f"📁 File: `{finding.file}`{location}\n\n"
    text += f"{finding.description}\n\n"
    if finding.suggestion:
        text += f"💡 **Suggestion:** {finding.suggestion}\n\n"
    return text


def format_review_comment(summary: str, findings: list[Finding], head_sha: str | None = None) -> str:
    """Build the markdown body posted back to the pull request.

    Findings are grouped critical → warning → info, each group headed with
    its count and numbered from 1. The reviewed head SHA, when known, is
    recorded in a hidden marker so the comment can be traced to a commit.
    """
    lines = [f"## 🤖 AI Code Review\n\n{summary}\n\n"]

    if not findings:
        lines.append("### ✅ No Issues Found\n\nThe review didn't find any significant issues with this PR.")
    else:
        for severity, heading in _SECTIONS:
            group = [f for f in findings if f.severity == severity]
            if not group:
                continue
            lines.append(f"### {heading} ({len(group)})\n\n")
            lines.extend(format_finding(f, i) for i, f in enumerate(group, 1))

    lines.append("\n\n---\n*Powered by prhook*")
    if head_sha:
        lines.append("\n" + SHA_MARKER.format(sha=head_sha))
    return "".join(lines)
