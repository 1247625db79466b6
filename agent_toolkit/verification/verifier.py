"""
Verifier - runs the verification gates for a run and writes the report.

Gates (fixed order, each independent):
- G_DELIVERABLES: every DoD deliverable exists under the project path
- G_MUST_NOT: `auth: none` / `db: none` constraints hold
- G_MVP_SIZE: intake lists at least two MVP features
- G_COMMANDS: every DoD verification command exits 0 (skipped in fast mode)
- G_SPEC_EXISTS: the spec phase produced spec.md

Status Logic:
- FAIL: at least one gate failed
- PASS: every gate passed

Outputs (60_verification/): verification.report.json, verification.log,
verification.summary.md, plus a `verify_completed` event in events.jsonl.
A missing run or an unreadable DoD is a PipelineRuntimeError, not a FAIL.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..errors import (
    DOD_NOT_FOUND,
    DOD_UNPARSEABLE,
    RUN_NOT_FOUND,
    PipelineRuntimeError,
)
from ..executor import CommandRunner, SubprocessCommandRunner
from ..parsing.dod import DefinitionOfDone, DodParseError
from ..parsing.intake import load_mvp_features
from ..reports import render_verification_summary
from ..schemas.enums import Phase
from ..schemas.report import VerificationReport
from ..store import ArtifactStore
from . import gates

logger = logging.getLogger(__name__)

DOD_FILENAME = "DEFINITION_OF_DONE.md"
SPEC_FILENAME = "spec.md"
INTAKE_FILENAME = "intake.json"
REPORT_FILENAME = "verification.report.json"
LOG_FILENAME = "verification.log"
SUMMARY_FILENAME = "verification.summary.md"


class VerifyOptions(BaseModel):
    """Options for one verify pass."""

    model_config = ConfigDict(extra="forbid")

    fast: bool = Field(False, description="Skip G_COMMANDS")
    timeout_seconds: Optional[int] = Field(
        None, ge=1, description="Per-command timeout; the runner default when None"
    )


class Verifier:
    """Runs the verification gates against a generated project."""

    def __init__(self, store: ArtifactStore, runner: Optional[CommandRunner] = None):
        """Initialize verifier.

        Args:
            store: Artifact store holding the run
            runner: Command runner for G_COMMANDS (subprocess by default)
        """
        self.store = store
        self.runner = runner or SubprocessCommandRunner()

    def load_dod(self, run_id: str) -> DefinitionOfDone:
        """Read and parse the run's Definition of Done.

        Raises:
            PipelineRuntimeError: RUN_NOT_FOUND, DOD_NOT_FOUND or DOD_UNPARSEABLE
        """
        if not self.store.run_exists(run_id):
            raise PipelineRuntimeError(
                code=RUN_NOT_FOUND, message=f"Run not found: {run_id}"
            )
        try:
            text = self.store.read_artifact(run_id, Phase.SPEC, DOD_FILENAME)
        except UnicodeDecodeError as exc:
            raise PipelineRuntimeError(
                code=DOD_UNPARSEABLE, message=f"{DOD_FILENAME} is not valid UTF-8: {exc}"
            ) from exc
        if text is None:
            path = self.store.phase_path(run_id, Phase.SPEC) / DOD_FILENAME
            raise PipelineRuntimeError(
                code=DOD_NOT_FOUND, message=f"{DOD_FILENAME} not found at {path}"
            )
        try:
            return DefinitionOfDone.parse(text)
        except DodParseError as exc:
            raise PipelineRuntimeError(
                code=DOD_UNPARSEABLE, message=f"Could not parse DoD metadata: {exc}"
            ) from exc

    def _load_mvp_features(self, run_id: str) -> List:
        try:
            intake = self.store.read_artifact(run_id, Phase.INTAKE, INTAKE_FILENAME)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning(f"Ignoring malformed {INTAKE_FILENAME} for run {run_id}: {exc}")
            return []
        return load_mvp_features(intake)

    def verify(
        self,
        run_id: str,
        project_path: Path,
        options: Optional[VerifyOptions] = None,
    ) -> VerificationReport:
        """Run all gates and persist the report.

        Args:
            run_id: Run to verify
            project_path: Generated project directory
            options: Verify options (defaults when None)

        Returns:
            The finalized VerificationReport
        """
        options = options or VerifyOptions()
        project_path = Path(project_path)
        log_lines: List[str] = []

        def log(message: str) -> None:
            log_lines.append(f"[{datetime.now(timezone.utc).isoformat()}] {message}")

        logger.info(f"Verifying run {run_id} against {project_path}")
        log(f"Verify started for run: {run_id}")
        dod = self.load_dod(run_id)
        log(f"Project: {project_path} (kind={dod.project_kind}, language={dod.language})")

        report = VerificationReport(run_id=run_id)

        gate, report.deliverables = gates.check_deliverables(project_path, dod.deliverables)
        report.add_gate(gate)
        for check in report.deliverables:
            if not check.exists:
                log(f"Deliverable missing: {check.path}")

        gate, report.violations = gates.check_must_not(project_path, dod.constraints)
        report.add_gate(gate)
        for violation in report.violations:
            log(f"Violation: {violation.rule}: {violation.detail}")

        report.add_gate(gates.check_mvp_size(self._load_mvp_features(run_id)))

        if options.fast:
            report.add_gate(gates.skipped_commands_gate())
            log("Commands skipped (--fast mode)")
        else:
            gate, report.commands = gates.run_commands(
                dod.verification_commands,
                project_path,
                self.runner,
                options.timeout_seconds,
            )
            report.add_gate(gate)
            for result in report.commands:
                log(f"Command: {result.cmd} -> exit {result.exit_code}")

        spec_path = self.store.phase_path(run_id, Phase.SPEC) / SPEC_FILENAME
        report.add_gate(gates.check_spec_exists(spec_path))

        report.finalize()
        for failed in report.failed_gates():
            log(f"Gate {failed.id.value} FAIL: {failed.message}")
        log(f"Verify finished: {report.status.value}")

        self._write(run_id, report, log_lines)
        logger.info(
            f"Run {run_id} verification {report.status.value}: "
            f"{report.summary.passed_count} passed, {report.summary.failed_count} failed"
        )
        return report

    def _write(self, run_id: str, report: VerificationReport, log_lines: List[str]) -> None:
        self.store.write_artifact(
            run_id, Phase.VERIFICATION, REPORT_FILENAME, report.to_json_dict()
        )
        self.store.write_artifact(
            run_id, Phase.VERIFICATION, LOG_FILENAME, "\n".join(log_lines) + "\n"
        )
        self.store.write_artifact(
            run_id,
            Phase.VERIFICATION,
            SUMMARY_FILENAME,
            render_verification_summary(report),
        )
        self.store.append_event(
            run_id,
            {
                "event": "verify_completed",
                "status": report.status.value,
                "failed_gates": [g.id.value for g in report.failed_gates()],
            },
        )
