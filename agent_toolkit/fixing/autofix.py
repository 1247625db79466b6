"""
AutoFix state machine.

Bounds automated fix attempts per failure signature:

    fingerprint -> should_proceed(state before this attempt)
                -> record_attempt (only when proceeding)
                -> fixer

`record_attempt` restarts the counter when the fingerprint differs from the
last recorded one, so the ceiling applies to one unresolved failure signature.
Only `bump_spec_version` (an explicit human approval) forgives a stuck
signature.

The transitions are pure functions over AutoFixState; AutoFixStateMachine
adds persistence to `60_verification/autofix_state.json`.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional

import structlog
from pydantic import ValidationError

from ..errors import AUTOFIX_STATE_CORRUPT, PipelineRuntimeError
from ..schemas.autofix import AutoFixHistoryEntry, AutoFixState, ProceedDecision
from ..schemas.enums import Phase, ProceedReason
from ..schemas.issues import BlockingIssue
from ..schemas.report import utc_now
from ..store import ArtifactStore

MAX_ATTEMPTS = 2
STATE_FILENAME = "autofix_state.json"

logger = structlog.get_logger(component="autofix")


def should_proceed(
    state: AutoFixState, fingerprint: str, max_attempts: int = MAX_ATTEMPTS
) -> ProceedDecision:
    """Decide whether a fix attempt may run against this fingerprint.

    Evaluated against the state before the current attempt is recorded.
    """
    if fingerprint != state.last_failure_fingerprint:
        return ProceedDecision(
            proceed=True,
            reason=ProceedReason.NEW_FAILURE_PATTERN,
            attempts_remaining=max_attempts,
        )
    if state.attempt_in_spec >= max_attempts:
        return ProceedDecision(
            proceed=False,
            reason=ProceedReason.MAX_ATTEMPTS_REACHED,
            attempts_remaining=0,
        )
    return ProceedDecision(
        proceed=True,
        reason=ProceedReason.ATTEMPTS_REMAINING,
        attempts_remaining=max_attempts - state.attempt_in_spec,
    )


def record_attempt(
    state: AutoFixState,
    fingerprint: str,
    issues: List[BlockingIssue],
    now: Optional[datetime] = None,
) -> AutoFixState:
    """Return a new state with one more attempt recorded for `fingerprint`."""
    if fingerprint == state.last_failure_fingerprint:
        attempt = state.attempt_in_spec + 1
    else:
        attempt = 1

    entry = AutoFixHistoryEntry(
        attempt=attempt,
        spec_version=state.spec_version,
        fingerprint=fingerprint,
        timestamp=now or utc_now(),
        issues=[issue.to_history_dict() for issue in issues],
    )
    return state.model_copy(
        update={
            "attempt_in_spec": attempt,
            "last_failure_fingerprint": fingerprint,
            "history": [*state.history, entry],
        }
    )


def bump_spec_version(state: AutoFixState) -> AutoFixState:
    """Approve a spec change: new spec version, counter and fingerprint cleared."""
    return state.model_copy(
        update={
            "spec_version": state.spec_version + 1,
            "attempt_in_spec": 0,
            "last_failure_fingerprint": None,
        }
    )


class AutoFixStateMachine:
    """Persistent AutoFix state for the runs of one artifact store."""

    def __init__(self, store: ArtifactStore, max_attempts: int = MAX_ATTEMPTS):
        self.store = store
        self.max_attempts = max_attempts

    def load(self, run_id: str) -> AutoFixState:
        """Persisted state, or defaults when the run has none yet.

        Raises:
            PipelineRuntimeError: AUTOFIX_STATE_CORRUPT if the file is unreadable
        """
        try:
            raw = self.store.read_artifact(run_id, Phase.VERIFICATION, STATE_FILENAME)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise PipelineRuntimeError(
                code=AUTOFIX_STATE_CORRUPT,
                message=f"{STATE_FILENAME} is not valid JSON: {exc}",
            ) from exc
        if raw is None:
            return AutoFixState()
        try:
            return AutoFixState.model_validate(raw)
        except ValidationError as exc:
            raise PipelineRuntimeError(
                code=AUTOFIX_STATE_CORRUPT,
                message=f"{STATE_FILENAME} does not match the expected shape: {exc}",
            ) from exc

    def save(self, run_id: str, state: AutoFixState) -> None:
        self.store.write_artifact(
            run_id,
            Phase.VERIFICATION,
            STATE_FILENAME,
            state.model_dump(mode="json"),
        )

    def should_proceed(self, state: AutoFixState, fingerprint: str) -> ProceedDecision:
        return should_proceed(state, fingerprint, self.max_attempts)

    def record_attempt(
        self,
        run_id: str,
        state: AutoFixState,
        fingerprint: str,
        issues: List[BlockingIssue],
    ) -> AutoFixState:
        """Record an attempt and persist the new state immediately."""
        new_state = record_attempt(state, fingerprint, issues)
        self.save(run_id, new_state)
        logger.info(
            "fix_attempt_recorded",
            run_id=run_id,
            spec_version=new_state.spec_version,
            attempt=new_state.attempt_in_spec,
            fingerprint=fingerprint,
        )
        self.store.append_event(
            run_id,
            {
                "event": "fix_attempt_recorded",
                "spec_version": new_state.spec_version,
                "attempt": new_state.attempt_in_spec,
                "fingerprint": fingerprint,
                "issues": len(issues),
            },
        )
        return new_state

    def bump_spec_version(self, run_id: str) -> AutoFixState:
        """Load, bump and persist. Irreversible within the run."""
        new_state = bump_spec_version(self.load(run_id))
        self.save(run_id, new_state)
        logger.info(
            "spec_version_bumped",
            run_id=run_id,
            spec_version=new_state.spec_version,
        )
        self.store.append_event(
            run_id,
            {"event": "spec_version_bumped", "spec_version": new_state.spec_version},
        )
        return new_state
