"""
Fix Loop - verify -> fix -> verify until PASS or attempts run out.

Flow, for attempt in 1..max_attempts:
1. Verify: run the gates; PASS ends the loop
2. Last attempt: stop with FAIL (no fix without a following verify)
3. Fix: run the fix flow, persist 70_fix/attempt_<n>/fix_record.json

Two bounds apply independently: max_attempts bounds this invocation, the
AutoFix state machine (inside the fix flow) bounds attempts against one
failure signature across invocations. The loop does not consult the latter.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import PipelineRuntimeError
from .fixing.service import FixOptions, FixService, attempt_dir
from .reports import render_loop_summary
from .schemas.enums import GateStatus, Phase
from .schemas.loop import LoopAttempt, LoopResult
from .store import ArtifactStore
from .verification.verifier import Verifier, VerifyOptions

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
FIX_RECORD_FILENAME = "fix_record.json"
LOOP_SUMMARY_MD = "loop_summary.md"
LOOP_SUMMARY_JSON = "loop_summary.json"


class LoopOptions(BaseModel):
    """Options for one loop invocation."""

    model_config = ConfigDict(extra="forbid")

    run_id: str
    project_path: Path
    max_attempts: int = Field(DEFAULT_MAX_ATTEMPTS, ge=1)
    fast: bool = False
    dry_run: bool = Field(False, description="Fix steps record actions without running them")


class LoopController:
    """Drives the verify/fix loop for one run."""

    def __init__(self, store: ArtifactStore, verifier: Verifier, fix_service: FixService):
        self.store = store
        self.verifier = verifier
        self.fix_service = fix_service

    def run(self, options: LoopOptions) -> LoopResult:
        """Run the loop.

        Raises:
            PipelineRuntimeError: If verification (or the fix flow) cannot run at all
        """
        run_id = options.run_id
        max_attempts = options.max_attempts
        logger.info(
            f"Fix loop starting: run={run_id}, max_attempts={max_attempts}, "
            f"project={options.project_path}"
        )

        attempts = []
        status = GateStatus.FAIL

        for attempt_num in range(1, max_attempts + 1):
            logger.info(f"Attempt {attempt_num}/{max_attempts}: verifying")
            report = self.verifier.verify(
                run_id, options.project_path, VerifyOptions(fast=options.fast)
            )
            attempt = LoopAttempt(
                attempt=attempt_num,
                status=report.status,
                failed_gates=[g.id.value for g in report.failed_gates()],
            )
            attempts.append(attempt)

            if report.passed:
                status = GateStatus.PASS
                logger.info(f"Run {run_id} passed verification on attempt {attempt_num}")
                break

            if attempt_num == max_attempts:
                logger.info(f"Run {run_id} still failing after {max_attempts} attempts")
                break

            self._fix(options, attempt)

        result = LoopResult(
            run_id=run_id,
            status=status,
            attempts_used=len(attempts),
            max_attempts=max_attempts,
            attempts=attempts,
        )
        self._write_summary(result)
        return result

    def _fix(self, options: LoopOptions, attempt: LoopAttempt) -> None:
        """Run one fix step; unexpected errors are recorded and the loop goes on."""
        logger.info(f"Attempt {attempt.attempt}: fixing {', '.join(attempt.failed_gates)}")
        attempt.fix_invoked = True
        message: Optional[str] = None
        try:
            outcome = self.fix_service.run(
                FixOptions(
                    run_id=options.run_id,
                    project_path=options.project_path,
                    attempt_num=attempt.attempt,
                    dry_run=options.dry_run,
                )
            )
        except PipelineRuntimeError:
            raise
        except Exception as e:
            logger.exception(f"Fix step failed on attempt {attempt.attempt}: {e}")
            attempt.fix_error = str(e) or type(e).__name__
        else:
            attempt.fix_status = outcome.status
            message = outcome.message

        self.store.write_artifact(
            options.run_id,
            Phase.FIX,
            f"{attempt_dir(attempt.attempt)}/{FIX_RECORD_FILENAME}",
            {
                "attempt": attempt.attempt,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "run_id": options.run_id,
                "project_path": str(options.project_path),
                "failed_gates": attempt.failed_gates,
                "status": attempt.fix_status.value if attempt.fix_status else "error",
                "message": message,
                "error": attempt.fix_error,
            },
        )

    def _write_summary(self, result: LoopResult) -> None:
        self.store.write_run_file(result.run_id, LOOP_SUMMARY_MD, render_loop_summary(result))
        self.store.write_run_file(
            result.run_id, LOOP_SUMMARY_JSON, result.model_dump(mode="json")
        )
        self.store.append_event(
            result.run_id,
            {
                "event": "loop_completed",
                "status": result.status.value,
                "attempts_used": result.attempts_used,
                "max_attempts": result.max_attempts,
            },
        )
        logger.info(
            f"Fix loop finished: {result.status.value} "
            f"({result.attempts_used}/{result.max_attempts} attempts)"
        )
