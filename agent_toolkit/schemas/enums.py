"""
Canonical enums for the verify/fix/loop core.

Persisted reports and state always carry these values; comparisons are made
against the enum members, never against hand-typed string literals.
"""

from enum import Enum


class Phase(str, Enum):
    """Pipeline phases owned by a run."""

    INTAKE = "intake"
    RESEARCH = "research"
    DEBATE = "debate"
    SPEC = "spec"
    DESIGN = "design"
    IMPLEMENTATION = "implementation"
    VERIFICATION = "verification"
    FIX = "fix"
    DEPLOY = "deploy"


PHASE_DIRECTORIES = {
    Phase.INTAKE: "10_intake",
    Phase.RESEARCH: "20_research",
    Phase.DEBATE: "30_debate",
    Phase.SPEC: "40_spec",
    Phase.DESIGN: "45_design",
    Phase.IMPLEMENTATION: "50_implementation",
    Phase.VERIFICATION: "60_verification",
    Phase.FIX: "70_fix",
    Phase.DEPLOY: "deploy",
}


class GateId(str, Enum):
    """Verification gates, in execution order."""

    DELIVERABLES = "G_DELIVERABLES"
    MUST_NOT = "G_MUST_NOT"
    MVP_SIZE = "G_MVP_SIZE"
    COMMANDS = "G_COMMANDS"
    SPEC_EXISTS = "G_SPEC_EXISTS"


class GateStatus(str, Enum):
    """Outcome of a gate and of a whole verification pass."""

    PASS = "PASS"
    FAIL = "FAIL"


class TriageCategory(str, Enum):
    """Failure taxonomy used by triage and the fixer."""

    # Fixable within the current spec
    IMPLEMENTATION_BUG = "implementation_bug"
    MISSING_DEPENDENCY = "missing_dependency"
    CONFIG_ISSUE = "config_issue"
    DOCKER_ISSUE = "docker_issue"
    TEST_MISMATCH = "test_mismatch"
    MISSING_DELIVERABLE = "missing_deliverable"
    MUST_NOT_VIOLATION = "must_not_violation"
    COMMAND_FAILED = "command_failed"
    UNKNOWN = "unknown"

    # Requires a spec change or a human decision
    SCOPE_MISMATCH = "scope_mismatch"
    SECURITY_BLOCKER = "security_blocker"
    ARCHITECTURE_ISSUE = "architecture_issue"
    EXTERNAL_DEPENDENCY = "external_dependency"


class ProceedReason(str, Enum):
    """Why the AutoFix state machine allowed or refused an attempt."""

    NEW_FAILURE_PATTERN = "new_failure_pattern"
    ATTEMPTS_REMAINING = "attempts_remaining"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"


class QAStatus(str, Enum):
    """Overall status of a legacy QA gate report."""

    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"
    SKIP = "skip"


class FixOutcomeStatus(str, Enum):
    """Terminal states of one fix command invocation."""

    SPEC_VERSION_BUMPED = "spec_version_bumped"
    NO_REPORT = "no_report"
    ALREADY_PASSING = "already_passing"
    NO_ISSUES = "no_issues"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"
    FIXED = "fixed"
