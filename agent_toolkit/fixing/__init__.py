"""
Fixing - triage, attempt accounting and remediation.

Components:
    - triage: failure text -> fixability category
    - issues: blocking issues from a report, failure fingerprints
    - autofix: attempt ceiling per failure signature, spec version bumps
    - fixer: applies automated fixes or emits manual guidance
    - service: the fix flow tying the above together
"""

from .autofix import (
    MAX_ATTEMPTS,
    AutoFixStateMachine,
    bump_spec_version,
    record_attempt,
    should_proceed,
)
from .fixer import FIX_INSTRUCTIONS, Fixer
from .issues import fingerprint, issues_from_qa_report, issues_from_report
from .service import FixOptions, FixService
from .triage import TRIAGE_RULES, triage

__all__ = [
    # Triage
    "TRIAGE_RULES",
    "triage",
    # Issues
    "fingerprint",
    "issues_from_qa_report",
    "issues_from_report",
    # AutoFix
    "MAX_ATTEMPTS",
    "AutoFixStateMachine",
    "bump_spec_version",
    "record_attempt",
    "should_proceed",
    # Fixer
    "FIX_INSTRUCTIONS",
    "Fixer",
    # Fix flow
    "FixOptions",
    "FixService",
]
