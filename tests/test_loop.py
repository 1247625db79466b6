"""Tests for the fix loop controller."""

import json

import pytest

from conftest import SLOW_DOD

from agent_toolkit.errors import DOD_NOT_FOUND, RUN_NOT_FOUND, PipelineRuntimeError
from agent_toolkit.executor import SubprocessCommandRunner
from agent_toolkit.fixing.autofix import AutoFixStateMachine
from agent_toolkit.fixing.fixer import Fixer
from agent_toolkit.fixing.service import FixService
from agent_toolkit.loop import (
    FIX_RECORD_FILENAME,
    LOOP_SUMMARY_JSON,
    LOOP_SUMMARY_MD,
    LoopController,
    LoopOptions,
)
from agent_toolkit.schemas.enums import FixOutcomeStatus, GateStatus, Phase
from agent_toolkit.schemas.fix import FixOutcome
from agent_toolkit.store import EVENTS_FILE
from agent_toolkit.verification.verifier import Verifier


class CreatingFixService:
    """Fix step that creates the missing deliverable."""

    def __init__(self, project):
        self.project = project
        self.calls = []

    def run(self, options):
        self.calls.append(options)
        (self.project / "src" / "index.ts").write_text("export {};\n")
        return FixOutcome(
            run_id=options.run_id, status=FixOutcomeStatus.FIXED, message="created index.ts"
        )


class RaisingFixService:
    """Fix step that always raises the given exception."""

    def __init__(self, exc):
        self.exc = exc
        self.calls = 0

    def run(self, options):
        self.calls += 1
        raise self.exc


@pytest.fixture
def verifier(store, runner):
    return Verifier(store, runner)


@pytest.fixture
def fix_service(store, runner, verifier):
    return FixService(store, Fixer(runner), AutoFixStateMachine(store), verifier)


@pytest.fixture
def broken_project(project):
    (project / "src" / "index.ts").unlink()
    return project


def options(run_id, project, max_attempts=3):
    return LoopOptions(run_id=run_id, project_path=project, max_attempts=max_attempts, fast=True)


class TestLoopController:
    """Tests for LoopController.run."""

    def test_passes_first_time_without_fixing(self, store, verifier, fix_service, run_id, project):
        result = LoopController(store, verifier, fix_service).run(options(run_id, project))

        assert result.status == GateStatus.PASS
        assert result.attempts_used == 1
        assert result.fix_invocations == 0

    def test_always_failing_fixes_between_attempts(
        self, store, verifier, fix_service, run_id, broken_project
    ):
        result = LoopController(store, verifier, fix_service).run(
            options(run_id, broken_project, max_attempts=3)
        )

        assert result.status == GateStatus.FAIL
        assert result.attempts_used == 3
        assert result.fix_invocations == 2
        assert [a.fix_status for a in result.attempts] == [
            FixOutcomeStatus.FIXED,
            FixOutcomeStatus.FIXED,
            None,
        ]
        for attempt in (1, 2):
            record = store.read_artifact(run_id, Phase.FIX, f"attempt_{attempt}/{FIX_RECORD_FILENAME}")
            assert record["attempt"] == attempt
            assert record["failed_gates"] == ["G_DELIVERABLES"]
            assert record["status"] == "fixed"
        assert store.read_artifact(run_id, Phase.FIX, f"attempt_3/{FIX_RECORD_FILENAME}") is None

    def test_fail_then_pass_fixes_once(self, store, verifier, run_id, broken_project):
        fixer = CreatingFixService(broken_project)

        result = LoopController(store, verifier, fixer).run(options(run_id, broken_project))

        assert result.status == GateStatus.PASS
        assert result.attempts_used == 2
        assert result.fix_invocations == 1
        assert fixer.calls[0].attempt_num == 1

    def test_single_attempt_never_fixes(self, store, verifier, run_id, broken_project):
        fixer = CreatingFixService(broken_project)

        result = LoopController(store, verifier, fixer).run(
            options(run_id, broken_project, max_attempts=1)
        )

        assert result.status == GateStatus.FAIL
        assert fixer.calls == []

    def test_writes_summaries_and_event(self, store, verifier, fix_service, run_id, broken_project):
        LoopController(store, verifier, fix_service).run(options(run_id, broken_project, 2))

        run_dir = store.run_dir(run_id)
        summary = (run_dir / LOOP_SUMMARY_MD).read_text()
        assert "**Attempts Used:** 2/2" in summary
        assert "## Next Steps" in summary
        saved = json.loads((run_dir / LOOP_SUMMARY_JSON).read_text())
        assert saved["status"] == "FAIL"
        assert len(saved["attempts"]) == 2

        last_event = json.loads((run_dir / EVENTS_FILE).read_text().splitlines()[-1])
        assert last_event["event"] == "loop_completed"
        assert last_event["attempts_used"] == 2

    def test_unexpected_fix_error_is_recorded(self, store, verifier, run_id, broken_project):
        fixer = RaisingFixService(RuntimeError("disk full"))

        result = LoopController(store, verifier, fixer).run(options(run_id, broken_project))

        assert result.status == GateStatus.FAIL
        assert result.attempts_used == 3
        assert fixer.calls == 2
        assert result.attempts[0].fix_error == "disk full"
        record = store.read_artifact(run_id, Phase.FIX, f"attempt_1/{FIX_RECORD_FILENAME}")
        assert record["status"] == "error"
        assert record["error"] == "disk full"

    def test_runtime_error_from_fix_aborts(self, store, verifier, run_id, broken_project):
        fixer = RaisingFixService(PipelineRuntimeError(code="AUTOFIX_STATE_CORRUPT", message="x"))
        with pytest.raises(PipelineRuntimeError):
            LoopController(store, verifier, fixer).run(options(run_id, broken_project))
        assert fixer.calls == 1

    def test_runtime_error_from_verify_aborts(self, store, verifier, fix_service, project):
        store.init_run("r1")
        with pytest.raises(PipelineRuntimeError) as exc_info:
            LoopController(store, verifier, fix_service).run(options("r1", project))
        assert exc_info.value.code == DOD_NOT_FOUND

    def test_missing_run(self, store, verifier, fix_service, project):
        with pytest.raises(PipelineRuntimeError) as exc_info:
            LoopController(store, verifier, fix_service).run(options("missing", project))
        assert exc_info.value.code == RUN_NOT_FOUND

    def test_verify_uses_runner_timeout(self, store, fix_service, run_id, project):
        store.write_artifact(run_id, Phase.SPEC, "DEFINITION_OF_DONE.md", SLOW_DOD)
        verifier = Verifier(store, SubprocessCommandRunner(1))

        result = LoopController(store, verifier, fix_service).run(
            LoopOptions(run_id=run_id, project_path=project, max_attempts=1)
        )

        assert result.status == GateStatus.FAIL
        assert result.attempts[0].failed_gates == ["G_COMMANDS"]
