"""Tests for blocking issue derivation and fingerprints."""

from agent_toolkit.fixing.issues import fingerprint, issues_from_qa_report, issues_from_report
from agent_toolkit.schemas.enums import GateId, GateStatus, TriageCategory
from agent_toolkit.schemas.issues import BlockingIssue, Triage
from agent_toolkit.schemas.qa import QABlockingIssue, QAReport
from agent_toolkit.schemas.report import (
    CommandResult,
    DeliverableCheck,
    GateResult,
    VerificationReport,
    Violation,
)


def make_issue(check: str, category: TriageCategory, fixable: bool = True) -> BlockingIssue:
    return BlockingIssue(
        check=check,
        message=f"{check} failed",
        triage=Triage(fixable=fixable, category=category, reason="test"),
    )


def failed_gate(gate_id: GateId, message: str = "failed") -> GateResult:
    return GateResult(id=gate_id, status=GateStatus.FAIL, message=message)


class TestFingerprint:
    """Tests for failure fingerprints."""

    def test_order_independent(self):
        a = make_issue("G_DELIVERABLES", TriageCategory.MISSING_DELIVERABLE)
        b = make_issue("npm test", TriageCategory.TEST_MISMATCH)
        assert fingerprint([a, b]) == fingerprint([b, a])

    def test_extra_issue_changes_fingerprint(self):
        a = make_issue("G_DELIVERABLES", TriageCategory.MISSING_DELIVERABLE)
        b = make_issue("npm test", TriageCategory.TEST_MISMATCH)
        assert fingerprint([a]) != fingerprint([a, b])

    def test_duplicates_and_messages_do_not_matter(self):
        a = make_issue("G_DELIVERABLES", TriageCategory.MISSING_DELIVERABLE)
        a2 = a.model_copy(update={"message": "another missing file"})
        assert fingerprint([a]) == fingerprint([a, a2])

    def test_category_is_part_of_fingerprint(self):
        a = make_issue("npm test", TriageCategory.TEST_MISMATCH)
        b = make_issue("npm test", TriageCategory.IMPLEMENTATION_BUG)
        assert fingerprint([a]) != fingerprint([b])

    def test_length(self):
        fp = fingerprint([make_issue("x", TriageCategory.UNKNOWN)])
        assert len(fp) == 16
        int(fp, 16)


class TestIssuesFromReport:
    """Tests for deriving issues from a verification report."""

    def test_passing_report_has_no_issues(self):
        report = VerificationReport(run_id="r1")
        report.add_gate(GateResult(id=GateId.DELIVERABLES, status=GateStatus.PASS, message="ok"))
        assert issues_from_report(report.finalize()) == []

    def test_one_issue_per_missing_deliverable(self):
        report = VerificationReport(
            run_id="r1",
            deliverables=[
                DeliverableCheck(path="package.json", exists=True),
                DeliverableCheck(path="Dockerfile", exists=False),
                DeliverableCheck(path="src/app.ts", exists=False),
            ],
        )
        report.add_gate(failed_gate(GateId.DELIVERABLES))

        issues = issues_from_report(report.finalize())

        assert [i.message for i in issues] == [
            "Missing deliverable: Dockerfile",
            "Missing deliverable: src/app.ts",
        ]
        assert {i.category for i in issues} == {TriageCategory.MISSING_DELIVERABLE}
        assert all(i.check == "G_DELIVERABLES" for i in issues)

    def test_violations(self):
        report = VerificationReport(
            run_id="r1",
            violations=[Violation(rule="MUST NOT add database", detail="Found DB dependency: pg")],
        )
        report.add_gate(failed_gate(GateId.MUST_NOT))

        issues = issues_from_report(report.finalize())

        assert len(issues) == 1
        assert issues[0].category == TriageCategory.MUST_NOT_VIOLATION
        assert issues[0].fixable

    def test_failed_commands_are_triaged(self):
        report = VerificationReport(
            run_id="r1",
            commands=[
                CommandResult(cmd="npm install", exit_code=0, success=True),
                CommandResult(
                    cmd="npm test",
                    exit_code=1,
                    stderr="Error: Cannot find module 'zod'",
                    success=False,
                ),
                CommandResult(cmd="npm run e2e", exit_code=None, success=False, timed_out=True),
            ],
        )
        report.add_gate(failed_gate(GateId.COMMANDS))

        issues = issues_from_report(report.finalize())

        assert [(i.check, i.category) for i in issues] == [
            ("npm test", TriageCategory.MISSING_DEPENDENCY),
            ("npm run e2e", TriageCategory.COMMAND_FAILED),
        ]
        assert issues[1].message == "Command timed out: npm run e2e"

    def test_scope_gates_are_not_fixable(self):
        report = VerificationReport(run_id="r1")
        report.add_gate(failed_gate(GateId.MVP_SIZE, "MVP features count too low: 1"))
        report.add_gate(failed_gate(GateId.SPEC_EXISTS, "spec.md not found"))

        issues = issues_from_report(report.finalize())

        assert [i.check for i in issues] == ["G_MVP_SIZE", "G_SPEC_EXISTS"]
        assert all(not i.fixable for i in issues)
        assert {i.category for i in issues} == {TriageCategory.SCOPE_MISMATCH}

    def test_failed_gate_without_rows_still_blocks(self):
        report = VerificationReport(run_id="r1")
        report.add_gate(failed_gate(GateId.DELIVERABLES, "2 deliverable(s) missing"))

        issues = issues_from_report(report.finalize())

        assert len(issues) == 1
        assert issues[0].check == "G_DELIVERABLES"
        assert issues[0].message == "2 deliverable(s) missing"


class TestIssuesFromQaReport:
    """Tests for deriving issues from a legacy QA report."""

    def test_existing_triage_is_kept(self):
        kept = Triage(fixable=False, category=TriageCategory.SECURITY_BLOCKER, reason="audit")
        report = QAReport(
            blocking_issues=[
                QABlockingIssue(check="tests", message="3 tests failed", action="Fix tests"),
                QABlockingIssue(check="audit", message="vulnerable", triage=kept),
            ]
        )

        issues = issues_from_qa_report(report)

        assert issues[0].category == TriageCategory.TEST_MISMATCH
        assert issues[0].action == "Fix tests"
        assert issues[1].triage == kept
