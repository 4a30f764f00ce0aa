"""Tests for the review orchestrator state machine."""

import asyncio
import time

import pytest

from prhook_core.errors import ChangeNotFoundError, MalformedAnalysisError
from prhook_core.gh.pull_request import ChangeDetails
from prhook_core.orchestrator import ReviewOrchestrator, get_analyzer
from prhook_core.providers.base import AnalysisResult
from prhook_store.models import Finding


def _create_review(store, status="pending"):
    return store.create_review(
        pr_number=5,
        pr_title="Add feature",
        repository="o/r",
        repository_owner="o",
        author="octocat",
        status=status,
        pr_url="https://github.com/o/r/pull/5",
        head_sha="c" * 40,
    )


def _orchestrator(store, change_source, analyzer, **kwargs):
    return ReviewOrchestrator(store, change_source, analyzer, **kwargs)


def _events(store):
    return [e.event_type for e in reversed(store.list_activity(100))]


class TestSuccessPath:
    async def test_completes_and_persists_findings(self, store, change_source, analyzer):
        review = _create_review(store)
        await _orchestrator(store, change_source, analyzer).run(review.id, "o", "r", 5)

        record = store.get_review(review.id)
        assert record.status == "completed"
        assert record.summary == "Solid change with one concern."
        assert [f.title for f in record.findings] == ["Missing test", "Injection"]

    async def test_posts_comment_with_findings(self, store, change_source, analyzer):
        review = _create_review(store)
        await _orchestrator(store, change_source, analyzer).run(review.id, "o", "r", 5)

        assert len(change_source.comments) == 1
        owner, repo, number, body = change_source.comments[0]
        assert (owner, repo, number) == ("o", "r", 5)
        assert body.index("Critical Issues (1)") < body.index("Warnings (1)")

    async def test_logs_completion_and_comment(self, store, change_source, analyzer):
        review = _create_review(store)
        await _orchestrator(store, change_source, analyzer).run(review.id, "o", "r", 5)

        assert _events(store) == ["review_completed", "comment_posted"]
        completed = store.list_activity(100)[1]
        assert completed.metadata["findingsCount"] == 2

    async def test_analyzer_receives_change_data(self, store, change_source, analyzer):
        review = _create_review(store)
        await _orchestrator(store, change_source, analyzer).run(review.id, "o", "r", 5)

        call = analyzer.calls[0]
        assert call["title"] == "Add feature"
        assert call["description"] == "Adds a feature"
        assert call["repository"] == "o/r"
        assert call["files"][0].path == "src/app.py"

    async def test_fetches_run_concurrently(self, store, analyzer):
        """Details and file list are fetched in parallel, not one after the other."""

        class SlowSource:
            def fetch_change_details(self, *args):
                time.sleep(0.3)
                return ChangeDetails(title="t", description="", head_sha="x")

            def fetch_changed_files(self, *args):
                time.sleep(0.3)
                return []

            def post_comment(self, *args):
                pass

        review = _create_review(store)
        start = time.monotonic()
        await _orchestrator(store, SlowSource(), analyzer).run(review.id, "o", "r", 5)
        assert time.monotonic() - start < 0.55
        assert store.get_review(review.id).status == "completed"

    async def test_rereview_replaces_findings(self, store, change_source, analyzer):
        review = _create_review(store)
        orchestrator = _orchestrator(store, change_source, analyzer)
        await orchestrator.run(review.id, "o", "r", 5)

        analyzer.result = AnalysisResult(summary="Now clean.", findings=[])
        await orchestrator.run(review.id, "o", "r", 5)

        record = store.get_review(review.id)
        assert record.summary == "Now clean."
        assert record.findings == []


class TestFailurePath:
    async def test_analysis_timeout_marks_error(self, store, change_source):
        class HangingAnalyzer:
            def analyze(self, **kwargs):
                time.sleep(1)

        review = _create_review(store)
        await _orchestrator(store, change_source, HangingAnalyzer(), analysis_timeout=0.05).run(
            review.id, "o", "r", 5
        )

        record = store.get_review(review.id)
        assert record.status == "error"
        assert "timed out" in record.summary
        assert _events(store) == ["review_completed"]
        entry = store.list_activity(1)[0]
        assert "timed out" in entry.metadata["error"]
        assert "findingsCount" not in entry.metadata
        assert change_source.comments == []

    async def test_change_source_failure_marks_error(self, store, change_source, analyzer):
        change_source.fail["fetch_changed_files"] = ChangeNotFoundError("Not found while listing files")
        review = _create_review(store)
        await _orchestrator(store, change_source, analyzer).run(review.id, "o", "r", 5)

        record = store.get_review(review.id)
        assert record.status == "error"
        assert record.summary == "Review failed: Not found while listing files"
        assert analyzer.calls == []

    async def test_malformed_analysis_marks_error(self, store, change_source, analyzer):
        analyzer.error = MalformedAnalysisError("empty response from model")
        review = _create_review(store)
        await _orchestrator(store, change_source, analyzer).run(review.id, "o", "r", 5)

        record = store.get_review(review.id)
        assert record.status == "error"
        assert "empty response" in record.summary
        assert "comment_posted" not in _events(store)

    async def test_comment_failure_marks_error(self, store, change_source, analyzer):
        change_source.fail["post_comment"] = ChangeNotFoundError("gone")
        review = _create_review(store)
        await _orchestrator(store, change_source, analyzer).run(review.id, "o", "r", 5)

        record = store.get_review(review.id)
        assert record.status == "error"
        assert record.findings == []
        assert _events(store) == ["review_completed"]

    async def test_error_clears_previous_findings(self, store, change_source, analyzer):
        review = _create_review(store)
        orchestrator = _orchestrator(store, change_source, analyzer)
        await orchestrator.run(review.id, "o", "r", 5)
        assert store.get_review(review.id).findings

        analyzer.error = RuntimeError("model unavailable")
        await orchestrator.run(review.id, "o", "r", 5)

        record = store.get_review(review.id)
        assert record.status == "error"
        assert record.findings == []
        assert record.summary == "Review failed: model unavailable"

    async def test_exception_without_message_uses_class_name(self, store, change_source, analyzer):
        analyzer.error = KeyError()
        review = _create_review(store)
        await _orchestrator(store, change_source, analyzer).run(review.id, "o", "r", 5)
        assert store.get_review(review.id).summary == "Review failed: KeyError"


class TestMissingRecord:
    async def test_unknown_review_is_noop(self, store, change_source, analyzer):
        await _orchestrator(store, change_source, analyzer).run("missing", "o", "r", 5)
        assert change_source.calls == []
        assert store.list_activity() == []


class TestInvariants:
    async def test_completed_always_has_summary(self, store, change_source, analyzer):
        review = _create_review(store)
        seen = []
        original_update = store.update_review

        def spy(review_id, **fields):
            result = original_update(review_id, **fields)
            seen.append((result.status, result.summary))
            return result

        store.update_review = spy
        await _orchestrator(store, change_source, analyzer).run(review.id, "o", "r", 5)

        assert [s for s, _ in seen] == ["in_progress", "completed"]
        assert all(summary for status, summary in seen if status == "completed")

    async def test_concurrent_runs_converge(self, store, change_source, analyzer):
        review = _create_review(store)
        orchestrator = _orchestrator(store, change_source, analyzer)
        await asyncio.gather(*(orchestrator.run(review.id, "o", "r", 5) for _ in range(3)))

        record = store.get_review(review.id)
        assert record.status == "completed"
        assert len(record.findings) == 2
        assert len(store.list_reviews()) == 1


class TestGetAnalyzer:
    def test_returns_anthropic_analyzer(self, mocker):
        mock_cls = mocker.patch("prhook_core.orchestrator.AnthropicAnalyzer")
        get_analyzer({"model": "anthropic", "anthropic_api_key": "ant-key", "analysis_timeout": 60})
        mock_cls.assert_called_once_with(api_key="ant-key", timeout=60, max_diff_chars=2000)

    def test_returns_openai_analyzer(self, mocker):
        mock_cls = mocker.patch("prhook_core.orchestrator.OpenAIAnalyzer")
        get_analyzer({"model": "openai", "openai_api_key": "oai-key"})
        mock_cls.assert_called_once_with(api_key="oai-key", timeout=120, max_diff_chars=2000)

    def test_raises_for_unknown_model(self):
        with pytest.raises(ValueError, match="Unknown model provider"):
            get_analyzer({"model": "gemini"})


def test_finding_is_immutable():
    finding = Finding(severity="info", title="t", description="d")
    with pytest.raises(AttributeError):
        finding.title = "changed"
