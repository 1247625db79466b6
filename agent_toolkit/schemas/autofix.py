"""
AutoFix State schema.

This is the only mutable state that survives across invocations. It lives at
`60_verification/autofix_state.json` and is rewritten after every recorded
attempt and every approved spec change.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import ProceedReason
from .report import utc_now


class AutoFixHistoryEntry(BaseModel):
    """One recorded fix attempt."""

    model_config = ConfigDict(extra="forbid")

    attempt: int = Field(..., ge=1)
    spec_version: int = Field(..., ge=1)
    fingerprint: str
    timestamp: datetime = Field(default_factory=utc_now)
    issues: List[Dict[str, Any]] = Field(default_factory=list)


class AutoFixState(BaseModel):
    """Per-run attempt accounting for the fix loop."""

    model_config = ConfigDict(extra="forbid")

    spec_version: int = Field(default=1, ge=1)
    attempt_in_spec: int = Field(default=0, ge=0)
    last_failure_fingerprint: Optional[str] = None
    history: List[AutoFixHistoryEntry] = Field(default_factory=list)


class ProceedDecision(BaseModel):
    """Answer to "may the fixer run against this failure fingerprint?"."""

    model_config = ConfigDict(extra="forbid")

    proceed: bool
    reason: ProceedReason
    attempts_remaining: int = Field(..., ge=0)
