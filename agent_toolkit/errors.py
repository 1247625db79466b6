"""
Runtime errors for the verify/fix/loop core.

Gate failures and command failures are never raised: they are recorded in the
verification report. Only conditions that make a verify or fix pass
impossible (missing run, missing or unparseable Definition of Done, corrupt
persisted state) surface as a PipelineRuntimeError with a stable code.
"""

from __future__ import annotations

RUN_NOT_FOUND = "RUN_NOT_FOUND"
DOD_NOT_FOUND = "DOD_NOT_FOUND"
DOD_UNPARSEABLE = "DOD_UNPARSEABLE"
AUTOFIX_STATE_CORRUPT = "AUTOFIX_STATE_CORRUPT"
UNKNOWN_PHASE = "UNKNOWN_PHASE"
UNSUPPORTED_STORE = "UNSUPPORTED_STORE"


class PipelineRuntimeError(Exception):
    """
    Raised when a pipeline command cannot run at all.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable error description
    """

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "error": "runtime_error",
            "code": self.code,
            "message": self.message,
        }
