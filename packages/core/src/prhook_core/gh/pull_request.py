"""GitHub change-source client.

Wraps PyGithub behind three calls the orchestrator needs. PyGithub is
synchronous; the orchestrator runs these methods in worker threads and bounds
each one with its own timeout. The client holds only credentials, so one
instance is shared by every concurrent review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from github import (
    Auth,
    BadCredentialsException,
    Github,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

from prhook_core.errors import (
    ChangeNotFoundError,
    ChangePermissionError,
    ChangeRateLimitError,
    ChangeSourceError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeDetails:
    title: str
    description: str
    head_sha: str


@dataclass(frozen=True)
class ChangedFile:
    path: str
    status: str  # "added" | "modified" | "removed" | "renamed" | ...
    patch: str | None = None


def _translate(e: GithubException, what: str) -> ChangeSourceError:
    """Map a PyGithub exception onto the change-source error hierarchy."""
    if isinstance(e, RateLimitExceededException):
        return ChangeRateLimitError(f"GitHub rate limit exceeded while {what}")
    if isinstance(e, UnknownObjectException) or e.status == 404:
        return ChangeNotFoundError(f"Not found while {what}")
    if isinstance(e, BadCredentialsException) or e.status in (401, 403):
        return ChangePermissionError(f"Permission denied while {what} (HTTP {e.status})")
    return ChangeSourceError(f"GitHub error while {what}: HTTP {e.status}")


class GitHubChangeSource:
    def __init__(self, token: str | None, timeout: float = 30):
        auth = Auth.Token(token) if token else None
        self._gh = Github(auth=auth, timeout=timeout)

    def _get_pull(self, owner: str, repo: str, number: int):
        return self._gh.get_repo(f"{owner}/{repo}").get_pull(number)

    def fetch_change_details(self, owner: str, repo: str, number: int) -> ChangeDetails:
        try:
            pr = self._get_pull(owner, repo, number)
        except GithubException as e:
            raise _translate(e, f"fetching {owner}/{repo}#{number}") from e
        return ChangeDetails(title=pr.title or "", description=pr.body or "", head_sha=pr.head.sha)

    def fetch_changed_files(self, owner: str, repo: str, number: int) -> list[ChangedFile]:
        try:
            pr = self._get_pull(owner, repo, number)
            # get_files() is paginated lazily; materialise inside the try so
            # errors on later pages are translated too.
            files = [ChangedFile(path=f.filename, status=f.status, patch=f.patch) for f in pr.get_files()]
        except GithubException as e:
            raise _translate(e, f"listing files of {owner}/{repo}#{number}") from e
        logger.debug("Fetched %d changed file(s) for %s/%s#%d", len(files), owner, repo, number)
        return files

    def post_comment(self, owner: str, repo: str, number: int, body: str) -> None:
        try:
            # PR conversation comments are issue comments in GitHub's API.
            self._gh.get_repo(f"{owner}/{repo}").get_issue(number).create_comment(body)
        except GithubException as e:
            raise _translate(e, f"commenting on {owner}/{repo}#{number}") from e
