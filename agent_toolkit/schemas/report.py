"""
Verification Report schema.

The report is the authoritative output of one verify pass. It is written as
`verification.report.json` and replaced wholesale by the next pass. JSON keys
keep the camelCase names downstream agents read (`exitCode`, `durationMs`,
`failedCount`, ...); Python code uses the snake_case attribute names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import GateId, GateStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GateResult(BaseModel):
    """Result of a single verification gate."""

    model_config = ConfigDict(extra="forbid")

    id: GateId = Field(..., description="Gate identifier")
    status: GateStatus = Field(..., description="PASS or FAIL")
    message: str = Field(..., description="One-line human-readable outcome")
    details: Optional[Dict[str, Any]] = Field(
        None, description="Gate-specific structured details"
    )

    @property
    def failed(self) -> bool:
        return self.status == GateStatus.FAIL


class CommandResult(BaseModel):
    """Captured outcome of one DoD verification command."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    cmd: str
    exit_code: Optional[int] = Field(None, alias="exitCode")
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = Field(0, alias="durationMs", ge=0)
    success: bool = False
    timed_out: bool = Field(False, alias="timedOut")


class Violation(BaseModel):
    """A negative-constraint (must-not) violation."""

    model_config = ConfigDict(extra="forbid")

    type: str = "MUST_NOT"
    rule: str
    detail: str


class DeliverableCheck(BaseModel):
    """Existence check for one DoD deliverable."""

    model_config = ConfigDict(extra="forbid")

    path: str
    exists: bool


class ReportSummary(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    failed_count: int = Field(0, alias="failedCount", ge=0)
    passed_count: int = Field(0, alias="passedCount", ge=0)
    next_action: Optional[str] = Field(None, alias="nextAction")


class VerificationReport(BaseModel):
    """Output of one verify pass.

    Invariant: status is FAIL iff at least one gate FAILed. Use
    `finalize()` to derive status and summary from the gate map.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    run_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    status: GateStatus = GateStatus.PASS
    gates: Dict[str, GateResult] = Field(default_factory=dict)
    commands: List[CommandResult] = Field(default_factory=list)
    violations: List[Violation] = Field(default_factory=list)
    deliverables: List[DeliverableCheck] = Field(default_factory=list)
    summary: ReportSummary = Field(default_factory=ReportSummary)

    def add_gate(self, gate: GateResult) -> None:
        self.gates[gate.id.value] = gate

    def failed_gates(self) -> List[GateResult]:
        return [gate for gate in self.gates.values() if gate.failed]

    def finalize(self) -> "VerificationReport":
        """Compute status and summary from the gate map."""
        failed = self.failed_gates()
        self.status = GateStatus.FAIL if failed else GateStatus.PASS
        self.summary = ReportSummary(
            failed_count=len(failed),
            passed_count=len(self.gates) - len(failed),
            next_action=(
                f"aat fix --run-id {self.run_id}"
                if self.status == GateStatus.FAIL
                else None
            ),
        )
        return self

    @property
    def passed(self) -> bool:
        return self.status == GateStatus.PASS

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
