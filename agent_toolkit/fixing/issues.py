"""
Blocking issue derivation and failure fingerprints.

Blocking issues are recomputed from whatever report the run has (the
gate-based verification report, or the older QA gate report) every time
the fix flow runs.
"""

from __future__ import annotations

import hashlib
from typing import Iterable, List

from ..schemas.enums import GateId, TriageCategory
from ..schemas.issues import BlockingIssue, Triage
from ..schemas.qa import QAReport
from ..schemas.report import GateResult, VerificationReport
from .triage import triage

FINGERPRINT_LENGTH = 16

_SCOPE_REASON = "Requires a change to the agreed scope or spec"


def _deliverable_issues(report: VerificationReport, gate: GateResult) -> List[BlockingIssue]:
    return [
        BlockingIssue(
            check=gate.id.value,
            message=f"Missing deliverable: {d.path}",
            triage=Triage(
                fixable=True,
                category=TriageCategory.MISSING_DELIVERABLE,
                reason="A deliverable listed in the Definition of Done does not exist",
                suggestion=f"Create {d.path}",
            ),
            action=f"Create {d.path}",
        )
        for d in report.deliverables
        if not d.exists
    ]


def _must_not_issues(report: VerificationReport, gate: GateResult) -> List[BlockingIssue]:
    return [
        BlockingIssue(
            check=gate.id.value,
            message=f"{v.rule}: {v.detail}",
            triage=Triage(
                fixable=True,
                category=TriageCategory.MUST_NOT_VIOLATION,
                reason="The project uses something the Definition of Done forbids",
                suggestion="Remove the offending dependency or configuration",
            ),
            action="Remove the offending dependency or configuration",
        )
        for v in report.violations
    ]


def _command_issues(report: VerificationReport, gate: GateResult) -> List[BlockingIssue]:
    issues = []
    for result in report.commands:
        if result.success:
            continue
        if result.timed_out:
            result_triage = Triage(
                fixable=True,
                category=TriageCategory.COMMAND_FAILED,
                reason="Command timed out",
                suggestion="Check for hanging processes or watch modes",
            )
            message = f"Command timed out: {result.cmd}"
        else:
            result_triage = triage(result.cmd, result.stderr, result.stdout)
            message = f"Command failed: {result.cmd} (exit {result.exit_code})"
        issues.append(
            BlockingIssue(
                check=result.cmd,
                message=message,
                triage=result_triage,
                action=f"Fix the failure and re-run `{result.cmd}`",
            )
        )
    return issues


def _scope_issue(gate: GateResult, action: str) -> List[BlockingIssue]:
    return [
        BlockingIssue(
            check=gate.id.value,
            message=gate.message,
            triage=Triage(
                fixable=False,
                category=TriageCategory.SCOPE_MISMATCH,
                reason=_SCOPE_REASON,
                suggestion=action,
            ),
            action=action,
        )
    ]


def issues_from_report(report: VerificationReport) -> List[BlockingIssue]:
    """Derive blocking issues from the failed gates of a verification report."""
    issues: List[BlockingIssue] = []
    for gate in report.failed_gates():
        if gate.id == GateId.DELIVERABLES:
            gate_issues = _deliverable_issues(report, gate)
        elif gate.id == GateId.MUST_NOT:
            gate_issues = _must_not_issues(report, gate)
        elif gate.id == GateId.COMMANDS:
            gate_issues = _command_issues(report, gate)
        elif gate.id == GateId.MVP_SIZE:
            gate_issues = _scope_issue(gate, "Add MVP features to intake and re-run the spec phase")
        else:
            gate_issues = _scope_issue(gate, "Re-run the spec phase to produce spec.md")

        if not gate_issues:
            # Failed gate without per-item rows (hand-edited or truncated report)
            gate_issues = [
                BlockingIssue(
                    check=gate.id.value,
                    message=gate.message,
                    triage=triage(gate.id.value, gate.message),
                )
            ]
        issues.extend(gate_issues)
    return issues


def issues_from_qa_report(report: QAReport) -> List[BlockingIssue]:
    """Blocking issues of a legacy QA report, triaged when not already triaged."""
    return [
        BlockingIssue(
            check=issue.check,
            message=issue.message,
            triage=issue.triage or triage(issue.check, issue.message, issue.action or ""),
            action=issue.action,
        )
        for issue in report.blocking_issues
    ]


def fingerprint(issues: Iterable[BlockingIssue]) -> str:
    """Order-independent digest of the (check, category) pairs of the issues."""
    pairs = sorted({f"{issue.check}:{issue.category.value}" for issue in issues})
    digest = hashlib.sha256("\n".join(pairs).encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]
