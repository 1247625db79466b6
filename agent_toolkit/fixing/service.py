"""
Fix flow - one `aat fix` invocation.

    approve_change? -> bump spec version, done
    load report (verification.report.json, else legacy report.json)
    passing / no issues? -> done
    fingerprint -> should_proceed (state before this attempt)
        stop    -> fix_summary.md, done
        proceed -> record_attempt -> Fixer -> 70_fix/attempt_<n>/
    rerun_qa? -> verify again in-process

Every outcome is returned as a FixOutcome; only runtime errors raise.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import RUN_NOT_FOUND, PipelineRuntimeError
from ..reports import render_attempt_summary, render_change_request, render_fix_summary
from ..schemas.autofix import AutoFixState
from ..schemas.enums import FixOutcomeStatus, Phase
from ..schemas.fix import FixOutcome
from ..schemas.issues import BlockingIssue
from ..schemas.qa import QA_REPORT_FILENAME, QAReport
from ..schemas.report import VerificationReport
from ..store import ArtifactStore
from ..verification.verifier import REPORT_FILENAME, Verifier, VerifyOptions
from .autofix import AutoFixStateMachine
from .fixer import Fixer
from .issues import fingerprint, issues_from_qa_report, issues_from_report

FIX_SUMMARY_FILENAME = "fix_summary.md"
CHANGE_REQUEST_FILENAME = "CHANGE_REQUEST.md"
ATTEMPT_SUMMARY_FILENAME = "fix_summary.md"
ATTEMPT_RESULT_FILENAME = "fix_result.json"


def attempt_dir(attempt_num: int) -> str:
    """Directory of one fix attempt, relative to the fix phase directory."""
    return f"attempt_{attempt_num}"


class FixOptions(BaseModel):
    """Options for one fix invocation."""

    model_config = ConfigDict(extra="forbid")

    run_id: str
    project_path: Optional[Path] = Field(
        None, description="Project directory; current directory when unset"
    )
    attempt_num: Optional[int] = Field(
        None, ge=1, description="Attempt directory number; run-wide attempt count when unset"
    )
    approve_change: bool = False
    dry_run: bool = False
    rerun_qa: bool = False
    fast: bool = Field(False, description="Skip G_COMMANDS when re-verifying")


class FixService:
    """Runs the fix flow for a run."""

    def __init__(
        self,
        store: ArtifactStore,
        fixer: Fixer,
        autofix: AutoFixStateMachine,
        verifier: Optional[Verifier] = None,
    ):
        self.store = store
        self.fixer = fixer
        self.autofix = autofix
        self.verifier = verifier

    def load_issues(self, run_id: str) -> Optional[Tuple[bool, List[BlockingIssue]]]:
        """(passed, blocking issues) of the run's report, or None without one.

        The gate-based verification report always wins over the QA report,
        whichever was written last. An unreadable report is treated as absent.
        """
        log = structlog.get_logger().bind(run_id=run_id)

        for filename in (REPORT_FILENAME, QA_REPORT_FILENAME):
            try:
                raw = self.store.read_artifact(run_id, Phase.VERIFICATION, filename)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                log.warning("report_unreadable", filename=filename, error=str(exc))
                continue
            if raw is None:
                continue

            try:
                if filename == REPORT_FILENAME:
                    report = VerificationReport.model_validate(raw)
                    return report.passed, issues_from_report(report)
                qa_report = QAReport.model_validate(raw)
                return qa_report.passed, issues_from_qa_report(qa_report)
            except ValidationError as exc:
                log.warning("report_invalid", filename=filename, error=str(exc))
        return None

    def run(self, options: FixOptions) -> FixOutcome:
        run_id = options.run_id
        if not self.store.run_exists(run_id):
            raise PipelineRuntimeError(code=RUN_NOT_FOUND, message=f"Run not found: {run_id}")

        log = structlog.get_logger().bind(run_id=run_id)
        project_path = Path(options.project_path) if options.project_path else Path.cwd()

        if options.approve_change:
            state = self.autofix.bump_spec_version(run_id)
            return FixOutcome(
                run_id=run_id,
                status=FixOutcomeStatus.SPEC_VERSION_BUMPED,
                message=f"Spec version bumped to v{state.spec_version}; attempts reset to 0",
                spec_version=state.spec_version,
                attempt=0,
            )

        loaded = self.load_issues(run_id)
        if loaded is None:
            log.info("fix_skipped", reason="no_report")
            return FixOutcome(
                run_id=run_id,
                status=FixOutcomeStatus.NO_REPORT,
                message=f"No verification report found. Run `aat verify --run-id {run_id}` first.",
            )

        passed, issues = loaded
        if passed:
            return FixOutcome(
                run_id=run_id,
                status=FixOutcomeStatus.ALREADY_PASSING,
                message="Verification already passing. No fixes needed.",
            )
        if not issues:
            return FixOutcome(
                run_id=run_id,
                status=FixOutcomeStatus.NO_ISSUES,
                message="No blocking issues in report.",
            )

        state = self.autofix.load(run_id)
        failure_fingerprint = fingerprint(issues)
        decision = self.autofix.should_proceed(state, failure_fingerprint)
        non_fixable = [issue for issue in issues if not issue.fixable]

        if not decision.proceed:
            summary_path = self.store.write_artifact(
                run_id,
                Phase.VERIFICATION,
                FIX_SUMMARY_FILENAME,
                render_fix_summary(
                    run_id, issues, state, decision, self.autofix.max_attempts
                ),
            )
            if non_fixable:
                self._write_change_request(run_id, non_fixable, state)
            log.warning(
                "fix_halted",
                reason=decision.reason.value,
                spec_version=state.spec_version,
                attempt=state.attempt_in_spec,
                fingerprint=failure_fingerprint,
            )
            self.store.append_event(
                run_id,
                {
                    "event": "fix_halted",
                    "reason": decision.reason.value,
                    "spec_version": state.spec_version,
                    "fingerprint": failure_fingerprint,
                },
            )
            return FixOutcome(
                run_id=run_id,
                status=FixOutcomeStatus.MAX_ATTEMPTS_REACHED,
                message=(
                    f"Max autofix attempts reached for spec v{state.spec_version}. "
                    f"See {summary_path}"
                ),
                spec_version=state.spec_version,
                attempt=state.attempt_in_spec,
                fingerprint=failure_fingerprint,
                decision=decision,
                issues=issues,
                summary_path=str(summary_path),
            )

        state = self.autofix.record_attempt(run_id, state, failure_fingerprint, issues)
        attempt_num = options.attempt_num or len(state.history)
        log = log.bind(attempt=state.attempt_in_spec, spec_version=state.spec_version)
        log.info(
            "fix_started",
            issues=len(issues),
            non_fixable=len(non_fixable),
            reason=decision.reason.value,
        )

        result = self.fixer.fix(run_id, issues, project_path, dry_run=options.dry_run)

        attempt_path = attempt_dir(attempt_num)
        summary_path = self.store.write_artifact(
            run_id,
            Phase.FIX,
            f"{attempt_path}/{ATTEMPT_SUMMARY_FILENAME}",
            render_attempt_summary(
                run_id,
                attempt_num,
                state.spec_version,
                failure_fingerprint,
                result,
                dry_run=options.dry_run,
            ),
        )
        self.store.write_artifact(
            run_id,
            Phase.FIX,
            f"{attempt_path}/{ATTEMPT_RESULT_FILENAME}",
            result.model_dump(mode="json"),
        )
        if non_fixable:
            self._write_change_request(run_id, non_fixable, state)

        outcome = FixOutcome(
            run_id=run_id,
            status=FixOutcomeStatus.FIXED,
            message=(
                f"{len(result.applied)} fix(es) applied, "
                f"{len(result.manual)} issue(s) need manual follow-up"
            ),
            spec_version=state.spec_version,
            attempt=state.attempt_in_spec,
            fingerprint=failure_fingerprint,
            decision=decision,
            issues=issues,
            fix_result=result,
            summary_path=str(summary_path),
        )

        if options.rerun_qa:
            if self.verifier is None:
                log.warning("rerun_skipped", reason="no verifier configured")
            else:
                outcome.verification = self.verifier.verify(
                    run_id, project_path, VerifyOptions(fast=options.fast)
                )

        log.info("fix_completed", applied=len(result.applied), manual=len(result.manual))
        return outcome

    def _write_change_request(
        self, run_id: str, issues: List[BlockingIssue], state: AutoFixState
    ) -> Path:
        return self.store.write_artifact(
            run_id,
            Phase.VERIFICATION,
            CHANGE_REQUEST_FILENAME,
            render_change_request(run_id, issues, state),
        )
