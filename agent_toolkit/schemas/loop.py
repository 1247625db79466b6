"""
Loop controller result schemas (`loop_summary.json`, `fix_record.json`).
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import FixOutcomeStatus, GateStatus
from .report import utc_now


class LoopAttempt(BaseModel):
    """One verify (and possibly fix) iteration."""

    model_config = ConfigDict(extra="forbid")

    attempt: int = Field(..., ge=1)
    status: GateStatus
    failed_gates: List[str] = Field(default_factory=list)
    fix_invoked: bool = False
    fix_status: Optional[FixOutcomeStatus] = None
    fix_error: Optional[str] = None


class LoopResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    run_id: str
    status: GateStatus
    attempts_used: int = Field(..., ge=0)
    max_attempts: int = Field(..., ge=1)
    attempts: List[LoopAttempt] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=utc_now)

    @property
    def passed(self) -> bool:
        return self.status == GateStatus.PASS

    @property
    def fix_invocations(self) -> int:
        return sum(1 for a in self.attempts if a.fix_invoked)
