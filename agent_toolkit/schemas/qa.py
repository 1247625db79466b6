"""
Legacy QA gate report schema (`60_verification/report.json`).

Older runs produced this shape before the gate-based verification report
existed; the fix flow still accepts it as a source of blocking issues.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import QAStatus
from .issues import Triage
from .report import utc_now

QA_REPORT_FILENAME = "report.json"
QA_SUMMARY_FILENAME = "summary.md"


class QAProject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    path: str


class QASummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_checks: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0


class QABlockingIssue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    check: str
    severity: str = "error"
    message: str
    action: Optional[str] = None
    triage: Optional[Triage] = None


class QAReport(BaseModel):
    """Report written by the QA gate."""

    model_config = ConfigDict(extra="ignore")

    version: str = "1.0"
    run_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    project: Optional[QAProject] = None
    overall_status: QAStatus = QAStatus.SKIP
    summary: QASummary = Field(default_factory=QASummary)
    checks: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    blocking_issues: List[QABlockingIssue] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.overall_status in (QAStatus.PASS, QAStatus.WARNING)
