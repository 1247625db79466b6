"""
Markdown renderers for human-readable run artifacts.

Every machine-readable result (verification report, fix outcome, loop
result, QA report) gets a markdown companion so an operator can read what
happened without parsing JSON.
"""

from __future__ import annotations

from typing import List

from .schemas.autofix import AutoFixState, ProceedDecision
from .schemas.enums import GateStatus
from .schemas.fix import FixResult
from .schemas.issues import BlockingIssue
from .schemas.loop import LoopResult
from .schemas.qa import QAReport
from .schemas.report import VerificationReport

_STDERR_TAIL_CHARS = 1500


def _issue_table(issues: List[BlockingIssue]) -> str:
    rows = [
        "| # | Check | Category | Fixable | Message |",
        "|---|-------|----------|---------|---------|",
    ]
    for i, issue in enumerate(issues, 1):
        message = issue.message.replace("|", "\\|")
        rows.append(
            f"| {i} | `{issue.check}` | {issue.category.value} | "
            f"{'yes' if issue.fixable else 'no'} | {message} |"
        )
    return "\n".join(rows)


def render_verification_summary(report: VerificationReport) -> str:
    lines = [
        "# Verification Summary",
        "",
        f"- **Run ID**: {report.run_id}",
        f"- **Timestamp**: {report.timestamp.isoformat()}",
        f"- **Status**: {report.status.value}",
        f"- **Gates**: {report.summary.passed_count} passed, {report.summary.failed_count} failed",
        "",
        "## Gates",
        "",
        "| Gate | Status | Message |",
        "|------|--------|---------|",
    ]
    for gate in report.gates.values():
        lines.append(f"| {gate.id.value} | {gate.status.value} | {gate.message} |")

    missing = [d.path for d in report.deliverables if not d.exists]
    if missing:
        lines += ["", "## Missing Deliverables", ""]
        lines += [f"- `{path}`" for path in missing]

    if report.violations:
        lines += ["", "## Must-Not Violations", ""]
        lines += [f"- **{v.rule}**: {v.detail}" for v in report.violations]

    failed_commands = [c for c in report.commands if not c.success]
    if failed_commands:
        lines += ["", "## Failed Commands"]
        for command in failed_commands:
            exit_label = "timed out" if command.timed_out else f"exit {command.exit_code}"
            lines += ["", f"### `{command.cmd}` ({exit_label})"]
            output = (command.stderr or command.stdout).strip()
            if output:
                lines += ["", "```", output[-_STDERR_TAIL_CHARS:], "```"]

    lines += ["", "## Next Action", ""]
    if report.status == GateStatus.PASS:
        lines.append("All gates passed. Nothing to do.")
    else:
        lines.append(f"Run `{report.summary.next_action}` or `aat loop --run-id {report.run_id}`.")
    return "\n".join(lines) + "\n"


def render_fix_summary(
    run_id: str,
    issues: List[BlockingIssue],
    state: AutoFixState,
    decision: ProceedDecision,
    max_attempts: int,
) -> str:
    """Halt document written when the attempt ceiling stops the fixer."""
    lines = [
        "# AutoFix Summary",
        "",
        f"**Run ID:** {run_id}",
        f"**Spec Version:** v{state.spec_version}",
        f"**Attempts:** {state.attempt_in_spec}/{max_attempts}",
        f"**Status:** STOPPED ({decision.reason.value})",
        "",
        "Automated fixing stopped: the same failures persisted through the",
        f"maximum of {max_attempts} attempts for this spec version.",
        "",
        "## Blocking Issues",
        "",
        _issue_table(issues),
        "",
        "## Attempt History",
        "",
        "| Attempt | Spec Version | Fingerprint | Timestamp | Issues |",
        "|---------|--------------|-------------|-----------|--------|",
    ]
    for entry in state.history:
        lines.append(
            f"| {entry.attempt} | v{entry.spec_version} | `{entry.fingerprint}` | "
            f"{entry.timestamp.isoformat()} | {len(entry.issues)} |"
        )
    if not state.history:
        lines.append("| - | - | - | - | - |")

    lines += [
        "",
        "## Options",
        "",
        f"1. **Fix manually** - apply the fixes yourself, then run `aat verify --run-id {run_id}`.",
        "2. **Approve a spec change** - review `CHANGE_REQUEST.md`, then run "
        f"`aat fix --run-id {run_id} --approve-change` to bump the spec version "
        "and reset the attempt counter.",
        "3. **Reduce scope** - remove or defer the failing features in the spec "
        "and Definition of Done, then approve the change as in option 2.",
    ]
    return "\n".join(lines) + "\n"


def render_attempt_summary(
    run_id: str,
    attempt_num: int,
    spec_version: int,
    fingerprint: str,
    result: FixResult,
    dry_run: bool = False,
) -> str:
    lines = [
        f"# Fix Attempt {attempt_num}",
        "",
        f"**Run ID:** {run_id}",
        f"**Spec Version:** v{spec_version}",
        f"**Fingerprint:** `{fingerprint}`",
        f"**Mode:** {'dry-run' if dry_run else 'apply'}",
        "",
        f"## Applied ({len(result.applied)})",
        "",
    ]
    if result.applied:
        lines += [f"- `{fix.check}`: {fix.action}" for fix in result.applied]
    else:
        lines.append("No automated fixes applied.")

    lines += ["", f"## Manual ({len(result.manual)})"]
    for i, item in enumerate(result.manual, 1):
        lines += ["", f"### {i}. [{item.check}] {item.message}", ""]
        lines.append(f"- Category: {item.category.value}")
        if item.reason:
            lines.append(f"- Reason: {item.reason}")
        for step in item.instructions:
            lines.append(f"  - {step}")
    if not result.manual:
        lines += ["", "Nothing left for manual follow-up."]
    return "\n".join(lines) + "\n"


def render_change_request(
    run_id: str, issues: List[BlockingIssue], state: AutoFixState
) -> str:
    """Change request for issues that cannot be fixed within the current spec."""
    lines = [
        "# Change Request",
        "",
        f"**Run ID:** {run_id}",
        f"**Current Spec Version:** v{state.spec_version}",
        "",
        "The following issues cannot be fixed without changing the spec.",
    ]
    for i, issue in enumerate(issues, 1):
        lines += [
            "",
            f"## {i}. [{issue.check}] {issue.message}",
            "",
            f"- **Category:** {issue.category.value}",
            f"- **Reason:** {issue.triage.reason}",
        ]
        if issue.triage.suggestion:
            lines.append(f"- **Suggestion:** {issue.triage.suggestion}")
    lines += [
        "",
        "## Approval",
        "",
        "Update the spec and Definition of Done, then run",
        f"`aat fix --run-id {run_id} --approve-change` to start spec "
        f"v{state.spec_version + 1} with a fresh attempt counter.",
    ]
    return "\n".join(lines) + "\n"


def render_loop_summary(result: LoopResult) -> str:
    lines = [
        "# Fix Loop Summary",
        "",
        f"**Run ID:** {result.run_id}",
        f"**Status:** {result.status.value}",
        f"**Attempts Used:** {result.attempts_used}/{result.max_attempts}",
        f"**Completed At:** {result.completed_at.isoformat()}",
        "",
    ]
    if result.passed:
        lines.append(
            f"The project passed verification after {result.attempts_used} attempt(s)."
        )
    else:
        lines.append(
            f"The project failed verification after {result.attempts_used} attempt(s)."
        )

    lines += [
        "",
        "## Attempts",
        "",
        "| Attempt | Verify | Failed Gates | Fix |",
        "|---------|--------|--------------|-----|",
    ]
    for attempt in result.attempts:
        if attempt.fix_error:
            fix = f"error: {attempt.fix_error}"
        elif attempt.fix_invoked:
            fix = attempt.fix_status.value if attempt.fix_status else "invoked"
        else:
            fix = "-"
        failed = ", ".join(attempt.failed_gates) or "-"
        lines.append(f"| {attempt.attempt} | {attempt.status.value} | {failed} | {fix} |")

    if not result.passed:
        lines += [
            "",
            "## Next Steps",
            "1. Review the verification report at `60_verification/verification.report.json`",
            "2. Fix issues manually",
            f"3. Run `aat verify --run-id {result.run_id}` to check again",
        ]
    return "\n".join(lines) + "\n"


def render_qa_summary(report: QAReport) -> str:
    rows = []
    for name, check in report.checks.items():
        status = str(check.get("status", "")).upper()
        if status not in ("PASS", "FAIL"):
            status = "WARN"
        details = ""
        if name == "tests":
            details = f"{check.get('passed', 0)}/{check.get('total', 0)} passed"
        elif name == "lint":
            details = f"{check.get('errors', 0)} errors, {check.get('warnings', 0)} warnings"
        elif name == "typecheck":
            details = f"{check.get('errors', 0)} errors"
        elif name == "build":
            details = f"{check.get('duration_ms', 0)}ms"
        rows.append(f"| {name} | {status} | {details} |")

    if report.blocking_issues:
        blocking = "\n".join(
            f"- **[{i.check}]** {i.message}\n  - Action: {i.action}"
            for i in report.blocking_issues
        )
    else:
        blocking = "No blocking issues found."

    if report.recommendations:
        recommendations = "\n".join(
            f"{n}. {r}" for n, r in enumerate(report.recommendations, 1)
        )
    else:
        recommendations = "No recommendations at this time."

    rows_text = "\n".join(rows) or "| - | - | No checks run |"

    return f"""# QA Verification Report

## Run Info
- **Run ID**: {report.run_id or 'N/A'}
- **Timestamp**: {report.timestamp.isoformat()}
- **Overall Status**: {report.overall_status.value.upper()}

## Summary

| Check | Status | Details |
|-------|--------|---------|
{rows_text}

---

## Blocking Issues

{blocking}

---

## Recommendations

{recommendations}
"""
