"""
Failure triage.

Maps raw failure text to a fixability category. Patterns are tried in order,
fixable tier first, and the first match wins. Anything unmatched is treated
as fixable (`unknown`) and logged as `triage_unknown` so gaps in the taxonomy
show up in the logs.
"""

from __future__ import annotations

import re
from typing import List, NamedTuple, Optional, Pattern

import structlog

from ..schemas.enums import TriageCategory
from ..schemas.issues import Triage

logger = structlog.get_logger(component="triage")


class TriageRule(NamedTuple):
    category: TriageCategory
    fixable: bool
    pattern: Pattern[str]
    reason: str
    suggestion: Optional[str]


def _rule(
    category: TriageCategory,
    fixable: bool,
    pattern: str,
    reason: str,
    suggestion: Optional[str] = None,
) -> TriageRule:
    return TriageRule(category, fixable, re.compile(pattern), reason, suggestion)


# Order matters: the fixable tier is tried before the not-fixable tier
TRIAGE_RULES: List[TriageRule] = [
    # Fixable within the current spec
    _rule(
        TriageCategory.IMPLEMENTATION_BUG,
        True,
        r"typeerror|referenceerror|syntaxerror|cannot read propert(?:y|ies) of (?:undefined|null)"
        r"|is not defined|nameerror|attributeerror",
        "Runtime or syntax error in the generated code",
        "Fix the failing code path and re-run the check",
    ),
    _rule(
        TriageCategory.MISSING_DEPENDENCY,
        True,
        r"cannot find module|module not found|modulenotfounderror|no module named"
        r"|importerror|failed to resolve import",
        "A required package or module is missing",
        "Install the missing dependency",
    ),
    _rule(
        TriageCategory.CONFIG_ISSUE,
        True,
        r"enoent|econnrefused|eaddrinuse|address already in use|port \S* ?(?:is )?in use",
        "Missing file, environment or port configuration",
        "Check config files, .env values and port availability",
    ),
    _rule(
        TriageCategory.DOCKER_ISSUE,
        True,
        r"docker|container|dockerfile",
        "Docker build or runtime failure",
        "Check Dockerfile and docker-compose.yml",
    ),
    _rule(
        TriageCategory.TEST_MISMATCH,
        True,
        r"assertionerror|expected .+ (?:to|but)|tests? failed",
        "Test expectations do not match the implementation",
        "Align the implementation (or the test) with the spec",
    ),
    # Requires a spec change or a human decision
    _rule(
        TriageCategory.SCOPE_MISMATCH,
        False,
        r"out of scope|not in spec",
        "Failure points at work outside the agreed scope",
        "Raise a change request to adjust the scope",
    ),
    _rule(
        TriageCategory.SECURITY_BLOCKER,
        False,
        r"security|vulnerabilit|cve-|secret exposed",
        "Security problem that needs a human decision",
        "Review the finding before continuing",
    ),
    _rule(
        TriageCategory.ARCHITECTURE_ISSUE,
        False,
        r"architecture|circular dependency|redesign",
        "Structural problem that needs a design change",
        "Revisit the design and approve a spec change",
    ),
    _rule(
        TriageCategory.EXTERNAL_DEPENDENCY,
        False,
        r"breaking change|deprecated|api removed|no longer supported",
        "An external dependency changed underneath the project",
        "Pin a compatible version or update the spec",
    ),
]


def triage(check: str, error_text: str = "", output_text: str = "") -> Triage:
    """Classify a failure from its check name and captured output.

    Args:
        check: Failing check (gate id, QA check name or command)
        error_text: Error output (stderr, error message)
        output_text: Regular output (stdout, suggested action)

    Returns:
        Triage with the first matching category, or `unknown` (fixable)
    """
    haystack = f"{error_text or ''}\n{output_text or ''}".lower()

    for rule in TRIAGE_RULES:
        if rule.pattern.search(haystack):
            return Triage(
                fixable=rule.fixable,
                category=rule.category,
                reason=rule.reason,
                suggestion=rule.suggestion,
            )

    logger.warning(
        "triage_unknown",
        check=check,
        sample=haystack.strip()[:200],
    )
    return Triage(
        fixable=True,
        category=TriageCategory.UNKNOWN,
        reason="No known failure pattern matched",
        suggestion="Review the full error output",
    )
