"""
Blocking issue schema.

Blocking issues are recomputed from a verification report (or a legacy QA
report) on every fix invocation and are never persisted on their own.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import TriageCategory


class Triage(BaseModel):
    """Classification of a failure into the fixability taxonomy."""

    model_config = ConfigDict(extra="forbid")

    fixable: bool = Field(..., description="Whether a fix within the current spec is possible")
    category: TriageCategory
    reason: str
    suggestion: Optional[str] = None


class BlockingIssue(BaseModel):
    """A failing check with its triage and the action suggested to the operator."""

    model_config = ConfigDict(extra="forbid")

    check: str = Field(..., description="Gate id, QA check name or failing command")
    message: str
    triage: Triage
    action: Optional[str] = None

    @property
    def fixable(self) -> bool:
        return self.triage.fixable

    @property
    def category(self) -> TriageCategory:
        return self.triage.category

    def to_history_dict(self) -> Dict[str, Any]:
        return {
            "check": self.check,
            "category": self.category.value,
            "message": self.message,
        }
