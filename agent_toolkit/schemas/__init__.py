"""
Persisted data shapes for the verify/fix/loop core.
"""

from .autofix import AutoFixHistoryEntry, AutoFixState, ProceedDecision
from .enums import (
    PHASE_DIRECTORIES,
    FixOutcomeStatus,
    GateId,
    GateStatus,
    Phase,
    ProceedReason,
    QAStatus,
    TriageCategory,
)
from .fix import AppliedFix, FixOutcome, FixResult, ManualFix
from .issues import BlockingIssue, Triage
from .loop import LoopAttempt, LoopResult
from .qa import QABlockingIssue, QAProject, QAReport, QASummary
from .report import (
    CommandResult,
    DeliverableCheck,
    GateResult,
    ReportSummary,
    VerificationReport,
    Violation,
)

__all__ = [
    # Enums
    "PHASE_DIRECTORIES",
    "FixOutcomeStatus",
    "GateId",
    "GateStatus",
    "Phase",
    "ProceedReason",
    "QAStatus",
    "TriageCategory",
    # Verification report
    "CommandResult",
    "DeliverableCheck",
    "GateResult",
    "ReportSummary",
    "VerificationReport",
    "Violation",
    # Issues
    "BlockingIssue",
    "Triage",
    # AutoFix
    "AutoFixHistoryEntry",
    "AutoFixState",
    "ProceedDecision",
    # Fix / loop
    "AppliedFix",
    "FixOutcome",
    "FixResult",
    "LoopAttempt",
    "LoopResult",
    "ManualFix",
    # Legacy QA
    "QABlockingIssue",
    "QAProject",
    "QAReport",
    "QASummary",
]
