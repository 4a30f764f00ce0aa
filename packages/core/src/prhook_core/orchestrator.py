"""Review orchestration: drive one review from in_progress to a terminal state.

    run()  → status in_progress
           → fetch details + changed files  (concurrently, both must succeed)
           → analyze
           → persist completed + summary + findings
           → post comment → log review_completed, comment_posted

Any failure along the way persists status ``error`` with the reason and logs
a single review_completed entry. Nothing is retried here; the next delivery
for the same pull request starts a new run.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import TYPE_CHECKING

from prhook_core.comment import format_review_comment
from prhook_core.errors import CollaboratorTimeoutError
from prhook_core.providers.anthropic import AnthropicAnalyzer
from prhook_core.providers.openai import OpenAIAnalyzer
from prhook_store.models import utcnow

if TYPE_CHECKING:
    from prhook_core.gh.pull_request import GitHubChangeSource
    from prhook_core.providers.base import BaseAnalyzer
    from prhook_store.base import BaseStore

logger = logging.getLogger(__name__)


def get_analyzer(config: dict) -> BaseAnalyzer:
    model = config["model"]
    options = {
        "timeout": config.get("analysis_timeout", 120),
        "max_diff_chars": config.get("max_diff_chars", 2000),
    }
    if model == "anthropic":
        return AnthropicAnalyzer(api_key=config["anthropic_api_key"], **options)
    if model == "openai":
        return OpenAIAnalyzer(api_key=config["openai_api_key"], **options)
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


def _error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


class ReviewOrchestrator:
    """Runs review pipelines against a shared store and collaborators.

    Collaborators are synchronous SDK wrappers; each call runs in a worker
    thread and is bounded by its own timeout. The orchestrator keeps no
    review state between awaits: every write goes through the store by id.
    """

    def __init__(
        self,
        store: BaseStore,
        change_source: GitHubChangeSource,
        analyzer: BaseAnalyzer,
        github_timeout: float = 30,
        analysis_timeout: float = 120,
    ):
        self.store = store
        self.change_source = change_source
        self.analyzer = analyzer
        self.github_timeout = github_timeout
        self.analysis_timeout = analysis_timeout

    async def _call(self, label: str, timeout: float, func, *args):
        """Run a blocking collaborator call in a thread, bounded by ``timeout``."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
        except asyncio.TimeoutError:
            raise CollaboratorTimeoutError(f"{label} timed out after {timeout:g}s") from None

    async def run(self, review_id: str, owner: str, repo: str, pr_number: int) -> None:
        """Run one review. Never raises for collaborator failures."""
        repository = f"{owner}/{repo}"
        if self.store.update_review(review_id, status="in_progress") is None:
            logger.warning("Review %s for %s#%d no longer exists; skipping", review_id, repository, pr_number)
            return

        try:
            source = self.change_source
            target = (owner, repo, pr_number)
            details, files = await asyncio.gather(
                self._call("Fetching PR details", self.github_timeout, source.fetch_change_details, *target),
                self._call("Fetching changed files", self.github_timeout, source.fetch_changed_files, *target),
            )
            logger.info("Analyzing %s#%d (%d file(s))", repository, pr_number, len(files))

            analysis = await self._call(
                "Analysis",
                self.analysis_timeout,
                functools.partial(
                    self.analyzer.analyze,
                    title=details.title,
                    description=details.description,
                    files=files,
                    repository=repository,
                ),
            )

            # Summary and findings land in one store call, so readers never
            # see a completed review with a half-written findings list.
            self.store.update_review(
                review_id,
                status="completed",
                summary=analysis.summary,
                findings=analysis.findings,
                reviewed_at=utcnow(),
            )

            body = format_review_comment(analysis.summary, analysis.findings, head_sha=details.head_sha)
            await self._call("Posting review comment", self.github_timeout, source.post_comment, *target, body)
        except Exception as e:
            self._record_failure(review_id, repository, pr_number, e)
            return

        findings_count = len(analysis.findings)
        logger.info("Review completed for %s#%d: %d finding(s)", repository, pr_number, findings_count)
        self.store.append_activity(
            "review_completed",
            f"Review completed for PR #{pr_number} - found {findings_count} issues",
            {"prNumber": pr_number, "repository": repository, "findingsCount": findings_count},
        )
        self.store.append_activity(
            "comment_posted",
            f"AI review comment posted to PR #{pr_number}",
            {"prNumber": pr_number, "repository": repository},
        )

    def _record_failure(self, review_id: str, repository: str, pr_number: int, error: Exception) -> None:
        reason = _error_message(error)
        logger.error("Review failed for %s#%d: %s", repository, pr_number, reason)
        # Findings are cleared so an error never shows a previous run's results.
        self.store.update_review(
            review_id,
            status="error",
            summary=f"Review failed: {reason}",
            findings=[],
            reviewed_at=utcnow(),
        )
        self.store.append_activity(
            "review_completed",
            f"Review failed for PR #{pr_number}: {reason}",
            {"prNumber": pr_number, "repository": repository, "error": reason},
        )
