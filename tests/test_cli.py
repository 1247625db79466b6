"""Tests for the aat command line interface."""

import json

import pytest
from typer.testing import CliRunner

from conftest import SLOW_DOD

from agent_toolkit.cli import app
from agent_toolkit.schemas.enums import Phase

cli_runner = CliRunner()


@pytest.fixture
def invoke(tmp_path):
    """Invoke the CLI against the temporary workspace."""

    def _invoke(*args):
        return cli_runner.invoke(app, ["--workspace", str(tmp_path), *args])

    return _invoke


class TestInitAndRuns:
    """Tests for run creation and listing."""

    def test_init_creates_run(self, invoke, store):
        result = invoke("init", "Demo App", "--request", "Build a demo")

        assert result.exit_code == 0
        assert "Created run" in result.output
        run_id = store.latest_run_id()
        assert run_id.endswith("_demoapp")
        assert (store.run_dir(run_id) / "00_user_request.md").read_text() == "Build a demo"

    def test_runs_lists_runs(self, invoke, store, run_id):
        result = invoke("runs")
        assert result.exit_code == 0
        assert run_id in result.output

    def test_runs_when_empty(self, invoke):
        result = invoke("runs")
        assert result.exit_code == 0
        assert "No runs yet" in result.output


class TestVerifyCommand:
    """Tests for `aat verify`."""

    def test_pass_exits_zero(self, invoke, run_id, project):
        result = invoke("verify", "--run-id", run_id, "--path", str(project), "--fast")
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_fail_exits_one(self, invoke, run_id, project):
        (project / "package.json").unlink()
        result = invoke("verify", "--run-id", run_id, "--path", str(project), "--fast")
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_json_output(self, invoke, run_id, project):
        result = invoke(
            "verify", "--run-id", run_id, "--path", str(project), "--fast", "--json"
        )
        assert result.exit_code == 0
        report = json.loads(result.stdout)
        assert report["status"] == "PASS"
        assert list(report["gates"]) == [
            "G_DELIVERABLES",
            "G_MUST_NOT",
            "G_MVP_SIZE",
            "G_COMMANDS",
            "G_SPEC_EXISTS",
        ]

    def test_missing_run_exits_two(self, invoke, project):
        result = invoke("verify", "--run-id", "20990101_0000_nope", "--path", str(project))
        assert result.exit_code == 2

    def test_missing_dod_json_error(self, invoke, store, project):
        store.init_run("r1")
        result = invoke("verify", "--run-id", "r1", "--path", str(project), "--json")
        assert result.exit_code == 2
        assert json.loads(result.stdout)["code"] == "DOD_NOT_FOUND"

    def test_non_utf8_dod_exits_two(self, invoke, store, run_id, project):
        dod_path = store.phase_path(run_id, Phase.SPEC) / "DEFINITION_OF_DONE.md"
        dod_path.write_bytes(b"---\nproject_kind: \xff\xfe\n---\n")

        result = invoke("verify", "--run-id", run_id, "--path", str(project), "--json")

        assert result.exit_code == 2
        assert json.loads(result.stdout)["code"] == "DOD_UNPARSEABLE"

    def test_run_id_from_environment(self, invoke, monkeypatch, store, run_id, project):
        store.init_run("20991231_2359_later")
        monkeypatch.setenv("RUN_ID", run_id)

        result = invoke("verify", "--path", str(project), "--fast")

        assert result.exit_code == 0
        assert store.read_artifact(run_id, Phase.VERIFICATION, "verification.report.json")

    def test_latest_run_is_default(self, invoke, store, run_id, project):
        result = invoke("verify", "--path", str(project), "--fast")
        assert result.exit_code == 0
        assert store.read_artifact(run_id, Phase.VERIFICATION, "verification.report.json")


class TestFixCommand:
    """Tests for `aat fix`."""

    def test_no_report_exits_zero(self, invoke, run_id, project):
        result = invoke("fix", "--run-id", run_id, "--project-path", str(project))
        assert result.exit_code == 0
        assert "no_report" in result.output

    def test_fix_after_failed_verify(self, invoke, store, run_id, project):
        (project / "README.md").unlink()
        invoke("verify", "--run-id", run_id, "--path", str(project), "--fast")

        result = invoke("fix", "--run-id", run_id, "--project-path", str(project))

        assert result.exit_code == 0
        assert "fixed" in result.output
        assert store.read_artifact(run_id, Phase.FIX, "attempt_1/fix_result.json")

    def test_approve_change(self, invoke, run_id):
        result = invoke("fix", "--run-id", run_id, "--approve-change")
        assert result.exit_code == 0
        assert "v2" in result.output

    def test_missing_run_exits_one(self, invoke):
        result = invoke("fix", "--run-id", "20990101_0000_nope")
        assert result.exit_code == 1


class TestLoopCommand:
    """Tests for `aat loop`."""

    def test_pass(self, invoke, run_id, project):
        result = invoke("loop", "--run-id", run_id, "--path", str(project), "--fast")
        assert result.exit_code == 0

    def test_fail_after_max_attempts(self, invoke, store, run_id, project):
        (project / "README.md").unlink()

        result = invoke(
            "loop", "--run-id", run_id, "--path", str(project), "--fast", "--max-attempts", "2"
        )

        assert result.exit_code == 1
        summary = json.loads((store.run_dir(run_id) / "loop_summary.json").read_text())
        assert summary["attempts_used"] == 2

    def test_honours_configured_command_timeout(
        self, invoke, monkeypatch, store, run_id, project
    ):
        store.write_artifact(run_id, Phase.SPEC, "DEFINITION_OF_DONE.md", SLOW_DOD)
        monkeypatch.setenv("AAT_COMMAND_TIMEOUT_SECONDS", "1")

        verify_result = invoke("verify", "--run-id", run_id, "--path", str(project))
        loop_result = invoke(
            "loop", "--run-id", run_id, "--path", str(project), "--max-attempts", "1"
        )

        assert verify_result.exit_code == 1
        assert loop_result.exit_code == 1

    def test_missing_dod_exits_two(self, invoke, store, project):
        store.init_run("r1")
        result = invoke("loop", "--run-id", "r1", "--path", str(project))
        assert result.exit_code == 2


class TestQaCommand:
    """Tests for `aat qa`."""

    def test_nothing_to_check_exits_one(self, invoke, store, run_id, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()

        result = invoke("qa", "--run-id", run_id, "--path", str(empty))

        assert result.exit_code == 1
        saved = store.read_artifact(run_id, Phase.VERIFICATION, "report.json")
        assert saved["overall_status"] == "skip"

    def test_unknown_check(self, invoke, run_id, project):
        result = invoke("qa", "--path", str(project), "--checks", "tests,style")
        assert result.exit_code == 2


class TestStatusAndVersion:
    """Tests for `aat status` and `aat version`."""

    def test_status(self, invoke, run_id):
        result = invoke("status", "--run-id", run_id)
        assert result.exit_code == 0
        assert "v1" in result.output
        assert "0/2" in result.output

    def test_status_without_runs(self, invoke):
        result = invoke("status")
        assert result.exit_code == 2

    def test_version(self, invoke):
        result = invoke("version")
        assert result.exit_code == 0
        assert "Agent Toolkit v" in result.output
