"""
Fixer and fix-flow result schemas.

`FixResult` is what the fixer did for one batch of blocking issues; it is
written as `70_fix/attempt_<n>/fix_result.json`. `FixOutcome` is the terminal
state of one `aat fix` invocation and is what the loop records per attempt.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .autofix import ProceedDecision
from .enums import FixOutcomeStatus, TriageCategory
from .issues import BlockingIssue
from .report import VerificationReport


class AppliedFix(BaseModel):
    """An automated remediation that was executed (or would be, in dry-run)."""

    model_config = ConfigDict(extra="forbid")

    check: str
    category: TriageCategory
    message: str
    action: str = Field(..., description="Command or change that was applied")


class ManualFix(BaseModel):
    """An issue left to the operator, with the reason and ordered steps."""

    model_config = ConfigDict(extra="forbid")

    check: str
    category: TriageCategory
    message: str
    reason: Optional[str] = None
    instructions: List[str] = Field(default_factory=list)


class FixResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    applied: List[AppliedFix] = Field(default_factory=list)
    manual: List[ManualFix] = Field(default_factory=list)


class FixOutcome(BaseModel):
    """Terminal state of one fix invocation."""

    model_config = ConfigDict(extra="forbid")

    run_id: str
    status: FixOutcomeStatus
    message: str
    spec_version: Optional[int] = None
    attempt: Optional[int] = Field(
        None, description="Attempt number within the current spec version"
    )
    fingerprint: Optional[str] = None
    decision: Optional[ProceedDecision] = None
    issues: List[BlockingIssue] = Field(default_factory=list)
    fix_result: Optional[FixResult] = None
    summary_path: Optional[str] = None
    verification: Optional[VerificationReport] = Field(
        None, description="Report of the in-process re-verification, if requested"
    )

    @property
    def halted(self) -> bool:
        return self.status == FixOutcomeStatus.MAX_ATTEMPTS_REACHED
