"""
Verification - gate checks over a generated project.

Components:
    - gates: the five gate checks and their denylists
    - verifier: runs the gates for a run and writes the report artifacts
"""

from .gates import (
    check_deliverables,
    check_must_not,
    check_mvp_size,
    check_spec_exists,
    find_must_not_violations,
    match_deliverable,
    run_commands,
)
from .verifier import REPORT_FILENAME, Verifier, VerifyOptions

__all__ = [
    # Verifier
    "Verifier",
    "VerifyOptions",
    "REPORT_FILENAME",
    # Gates
    "check_deliverables",
    "check_must_not",
    "check_mvp_size",
    "check_spec_exists",
    "find_must_not_violations",
    "match_deliverable",
    "run_commands",
]
