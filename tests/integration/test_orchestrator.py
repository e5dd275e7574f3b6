"""
Integration tests for the research orchestrator and service layer.

Agents are scripted doubles; the pool summary and ingestion run against a
temporary SQLite catalog.

Run: pytest tests/integration/test_orchestrator.py -v
"""
import threading
import time

import pytest
from sqlalchemy import func, select

from apollo.db.models import Topic
from apollo.research.cancellation import CancelToken, JobAlreadyRunningError
from apollo.research.ingest import CurriculumIngester
from apollo.research.jobs import JobNotFoundError
from apollo.research.orchestrator import PipelineError, ResearchOrchestrator
from apollo.research.pool import PoolSummaryBuilder
from apollo.research.service import JobStateError, ResearchService
from doubles import BlockingAgent, InMemoryJobRepository, ScriptedAgent


@pytest.fixture
def repo():
    return InMemoryJobRepository()


@pytest.fixture
def make_orchestrator(session_factory, repo, tmp_path):
    def _make(agent, **kwargs):
        return ResearchOrchestrator(
            agent=agent,
            pool=PoolSummaryBuilder(session_factory),
            ingester=CurriculumIngester(session_factory),
            repo=repo,
            work_root=tmp_path / "research",
            poll_interval=0.05,
            **kwargs,
        )

    return _make


def _topic_count(session_factory) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(Topic))


def _run_in_thread(orchestrator, job_id):
    thread = threading.Thread(target=orchestrator.run_job, args=(job_id,), daemon=True)
    thread.start()
    return thread


class TestSuccessfulRun:
    """Jobs that reach ``published``."""

    def test_four_passes_publish(self, make_orchestrator, repo, session_factory):
        agent = ScriptedAgent()
        job = repo.add("Go Concurrency")

        make_orchestrator(agent).run_job(job.id)

        assert repo.status_history[job.id] == ["queued", "researching", "resolving", "published"]
        assert [kind for kind, _ in agent.calls] == ["initial", "resume", "resume", "resume"]

        finished = repo.get_job(job.id)
        assert finished.error is None
        assert finished.completed_at is not None
        assert finished.progress.current_pass == 4
        assert finished.progress.total_passes == 4
        assert finished.progress.modules_planned == 1
        assert finished.progress.modules_completed == 1
        assert finished.progress.concepts_found == 1
        assert _topic_count(session_factory) == 1

    def test_first_pass_uses_topic_prompt(self, make_orchestrator, repo):
        agent = ScriptedAgent()
        job = repo.add("Go Concurrency")

        make_orchestrator(agent, model="sonnet", allowed_tools=["Read", "Write"]).run_job(job.id)

        _, options = agent.calls[0]
        assert "Go Concurrency" in options.prompt
        assert options.model == "sonnet"
        assert options.allowed_tools == ["Read", "Write"]
        assert options.system_prompt_file == "research.md"
        for _, resume in agent.calls[1:]:
            assert resume.session_id == "session-1"

    def test_retry_after_single_failure(self, make_orchestrator, repo):
        """A pass that fails once and then succeeds does not fail the job."""
        agent = ScriptedAgent(fail_calls={2})
        job = repo.add("Go Concurrency")

        make_orchestrator(agent).run_job(job.id)

        assert repo.get_job(job.id).status == "published"
        assert agent.call_count == 5

    def test_progress_write_failure_is_not_fatal(self, make_orchestrator, repo):
        repo.fail_progress_updates = True
        job = repo.add("Go Concurrency")

        make_orchestrator(ScriptedAgent()).run_job(job.id)

        finished = repo.get_job(job.id)
        assert finished.status == "published"
        assert finished.progress is None

    def test_working_directory_assets(self, make_orchestrator, repo, tmp_path):
        """Pool summary, system prompt and schema are written before the first pass."""
        job = repo.add("Go Concurrency")

        make_orchestrator(ScriptedAgent()).run_job(job.id)

        work_dir = tmp_path / "research" / job.id
        assert (work_dir / "knowledge_pool_summary.json").is_file()
        assert "file-per-lesson" in (work_dir / "research.md").read_text(encoding="utf-8")
        assert (work_dir / "curriculum.json").is_file()
        assert (work_dir / "topic.json").is_file()

    def test_schema_handed_to_final_pass(self, make_orchestrator, repo):
        agent = ScriptedAgent()
        job = repo.add("Go Concurrency")

        make_orchestrator(agent, final_pass_schema=True).run_job(job.id)

        schema_files = [options.json_schema_file for _, options in agent.calls[1:]]
        assert schema_files == ["", "", "curriculum.json"]

    def test_schema_not_handed_over_by_default(self, make_orchestrator, repo):
        agent = ScriptedAgent()
        job = repo.add("Go Concurrency")

        make_orchestrator(agent).run_job(job.id)

        assert all(options.json_schema_file == "" for _, options in agent.calls[1:])


class TestFailedRun:
    """Jobs that end in ``failed``."""

    def test_exhausted_retries_fail_job(self, make_orchestrator, repo, session_factory):
        agent = ScriptedAgent(always_fail=True)
        job = repo.add("Go Concurrency")

        with pytest.raises(PipelineError) as exc:
            make_orchestrator(agent).run_job(job.id)

        assert exc.value.job_id == job.id
        failed = repo.get_job(job.id)
        assert failed.status == "failed"
        assert failed.error.startswith("pass 1: pass 1 failed after 2 attempts")
        assert repo.status_history[job.id] == ["queued", "researching", "failed"]
        assert agent.call_count == 2
        assert _topic_count(session_factory) == 0

    def test_missing_session_id_fails_job(self, make_orchestrator, repo):
        job = repo.add("Go Concurrency")

        with pytest.raises(PipelineError, match="no session id"):
            make_orchestrator(ScriptedAgent(session_id="")).run_job(job.id)

        assert repo.get_job(job.id).status == "failed"

    def test_missing_file_tree_fails_assembly(self, make_orchestrator, repo):
        """Passes succeed but the agent wrote nothing; the job fails while resolving."""
        job = repo.add("Go Concurrency")

        with pytest.raises(PipelineError, match="assemble curriculum"):
            make_orchestrator(ScriptedAgent(write_tree=False)).run_job(job.id)

        assert repo.status_history[job.id] == ["queued", "researching", "resolving", "failed"]
        assert "topic.json" in repo.get_job(job.id).error

    def test_duplicate_topic_fails_second_job(self, make_orchestrator, repo, session_factory):
        orchestrator = make_orchestrator(ScriptedAgent())
        first = repo.add("Go Concurrency")
        second = repo.add("Go Concurrency again")

        orchestrator.run_job(first.id)
        with pytest.raises(PipelineError, match="ingest curriculum"):
            orchestrator.run_job(second.id)

        assert repo.get_job(second.id).status == "failed"
        assert _topic_count(session_factory) == 1

    def test_undecodable_lesson_fails_job(self, make_orchestrator, repo, tmp_path):
        """A lesson rewritten with invalid UTF-8 fails the job instead of leaving it resolving."""
        job = repo.add("Go Concurrency")
        lesson = tmp_path / "research" / job.id / "modules" / "01-goroutines" / "02-waitgroups.json"

        def corrupt_lesson(number, token):
            if number == 4:
                lesson.write_bytes(b'{"id": "\xff\xfe"}')

        with pytest.raises(PipelineError, match="assemble curriculum"):
            make_orchestrator(ScriptedAgent(on_call=corrupt_lesson)).run_job(job.id)

        assert repo.status_history[job.id] == ["queued", "researching", "resolving", "failed"]
        assert "02-waitgroups.json" in repo.get_job(job.id).error

    def test_unstorable_version_fails_job(self, make_orchestrator, repo, session_factory, curriculum):
        """A database error outside the integrity checks still fails the job."""
        curriculum["version"] = 2**64
        job = repo.add("Go Concurrency")

        with pytest.raises(PipelineError, match="ingest curriculum"):
            make_orchestrator(ScriptedAgent(curriculum=curriculum)).run_job(job.id)

        failed = repo.get_job(job.id)
        assert failed.status == "failed"
        assert failed.completed_at is not None
        assert repo.status_history[job.id] == ["queued", "researching", "resolving", "failed"]
        assert _topic_count(session_factory) == 0

    def test_unknown_job(self, make_orchestrator):
        with pytest.raises(JobNotFoundError):
            make_orchestrator(ScriptedAgent()).run_job("missing")


class TestCancellation:
    """Cancelled jobs end in ``cancelled`` without an error."""

    def test_cancel_mid_pass(self, make_orchestrator, repo):
        agent = BlockingAgent()
        orchestrator = make_orchestrator(agent)
        service = ResearchService(repo, orchestrator)
        job = repo.add("Go Concurrency")

        thread = _run_in_thread(orchestrator, job.id)
        assert agent.entered.wait(timeout=5)
        assert orchestrator.running_jobs() == [job.id]

        service.cancel_job(job.id)
        thread.join(timeout=5)

        assert not thread.is_alive()
        cancelled = repo.get_job(job.id)
        assert cancelled.status == "cancelled"
        assert cancelled.error is None
        assert repo.status_history[job.id] == ["queued", "researching", "cancelled"]
        assert orchestrator.running_jobs() == []

    def test_cancelled_parent_stops_before_first_pass(self, make_orchestrator, repo):
        agent = ScriptedAgent()
        stop = CancelToken()
        stop.cancel()
        job = repo.add("Go Concurrency")

        make_orchestrator(agent).run_job(job.id, parent=stop)

        assert agent.call_count == 0
        assert repo.status_history[job.id] == ["queued", "researching", "cancelled"]

    def test_reconcile_signals_jobs_cancelled_elsewhere(self, make_orchestrator, repo):
        """A cancelled status written by another process stops the local run."""
        agent = BlockingAgent()
        orchestrator = make_orchestrator(agent)
        job = repo.add("Go Concurrency")

        thread = _run_in_thread(orchestrator, job.id)
        assert agent.entered.wait(timeout=5)
        assert orchestrator.reconcile_cancellations() == []

        repo.update_job_status(job.id, "cancelled")
        assert orchestrator.reconcile_cancellations() == [job.id]
        thread.join(timeout=5)

        assert repo.status_history[job.id] == ["queued", "researching", "cancelled"]

    def test_job_cannot_run_twice_concurrently(self, make_orchestrator, repo):
        agent = BlockingAgent()
        orchestrator = make_orchestrator(agent)
        job = repo.add("Go Concurrency")

        thread = _run_in_thread(orchestrator, job.id)
        assert agent.entered.wait(timeout=5)

        with pytest.raises(JobAlreadyRunningError):
            orchestrator.run_job(job.id)

        orchestrator.cancel(job.id)
        thread.join(timeout=5)
        assert repo.get_job(job.id).status == "cancelled"

    def test_cancel_not_running_returns_false(self, make_orchestrator):
        assert make_orchestrator(ScriptedAgent()).cancel("missing") is False


class TestPollingLoop:
    """start() picks up queued jobs until stopped."""

    def test_processes_queued_job_then_stops(self, make_orchestrator, repo):
        orchestrator = make_orchestrator(ScriptedAgent())
        stop = CancelToken()
        job = repo.add("Go Concurrency")

        thread = threading.Thread(target=orchestrator.start, args=(stop,), daemon=True)
        thread.start()

        deadline = time.monotonic() + 10
        while repo.get_job(job.id).status != "published" and time.monotonic() < deadline:
            time.sleep(0.02)
        stop.cancel()
        thread.join(timeout=5)

        assert repo.get_job(job.id).status == "published"
        assert not thread.is_alive()

    def test_failed_job_does_not_stop_loop(self, make_orchestrator, repo):
        orchestrator = make_orchestrator(ScriptedAgent(always_fail=True))
        stop = CancelToken()
        first = repo.add("first")
        second = repo.add("second")

        thread = threading.Thread(target=orchestrator.start, args=(stop,), daemon=True)
        thread.start()

        deadline = time.monotonic() + 10
        while repo.get_job(second.id).status != "failed" and time.monotonic() < deadline:
            time.sleep(0.02)
        stop.cancel()
        thread.join(timeout=5)

        assert repo.get_job(first.id).status == "failed"
        assert repo.get_job(second.id).status == "failed"


class TestResearchService:
    """Submitting, listing and cancelling through the service."""

    def test_submit_strips_topic(self, repo):
        job = ResearchService(repo).submit("  Go Concurrency  ")
        assert job.root_topic == "Go Concurrency"
        assert job.status == "queued"

    def test_submit_rejects_blank_topic(self, repo):
        with pytest.raises(ValueError):
            ResearchService(repo).submit("   ")

    def test_cancel_queued_job(self, repo):
        """Cancelling a job that is not running only writes the status."""
        job = repo.add("Go Concurrency")
        cancelled = ResearchService(repo).cancel_job(job.id)
        assert cancelled.status == "cancelled"
        assert cancelled.completed_at is not None

    def test_cancel_terminal_job_rejected(self, repo):
        job = repo.add("Go Concurrency", status="published")
        with pytest.raises(JobStateError):
            ResearchService(repo).cancel_job(job.id)

    def test_cancel_unknown_job(self, repo):
        with pytest.raises(JobNotFoundError):
            ResearchService(repo).cancel_job("missing")

    def test_list_newest_first(self, repo):
        service = ResearchService(repo)
        first = service.submit("first")
        second = service.submit("second")

        page = service.list()

        assert page.total == 2
        assert [j.id for j in page.items] == [second.id, first.id]
