"""Tests for the AutoFix state machine."""

import json

import pytest

from agent_toolkit.errors import AUTOFIX_STATE_CORRUPT, PipelineRuntimeError
from agent_toolkit.fixing.autofix import (
    STATE_FILENAME,
    AutoFixStateMachine,
    bump_spec_version,
    record_attempt,
    should_proceed,
)
from agent_toolkit.schemas.autofix import AutoFixState
from agent_toolkit.schemas.enums import Phase, ProceedReason, TriageCategory
from agent_toolkit.schemas.issues import BlockingIssue, Triage
from agent_toolkit.store import EVENTS_FILE

ISSUES = [
    BlockingIssue(
        check="G_DELIVERABLES",
        message="Missing deliverable: Dockerfile",
        triage=Triage(fixable=True, category=TriageCategory.MISSING_DELIVERABLE, reason="missing"),
    )
]


def run_cycles(state: AutoFixState, fingerprint: str, cycles: int):
    """Apply should_proceed/record_attempt the way the fix flow does."""
    decisions = []
    for _ in range(cycles):
        decision = should_proceed(state, fingerprint)
        decisions.append(decision)
        if decision.proceed:
            state = record_attempt(state, fingerprint, ISSUES)
    return state, decisions


class TestShouldProceed:
    """Tests for the proceed decision."""

    def test_fresh_state_is_new_pattern(self):
        decision = should_proceed(AutoFixState(), "abc")
        assert decision.proceed
        assert decision.reason == ProceedReason.NEW_FAILURE_PATTERN
        assert decision.attempts_remaining == 2

    def test_ceiling_after_two_attempts(self):
        state, decisions = run_cycles(AutoFixState(), "abc", 3)

        assert [d.proceed for d in decisions] == [True, True, False]
        assert [d.reason for d in decisions] == [
            ProceedReason.NEW_FAILURE_PATTERN,
            ProceedReason.ATTEMPTS_REMAINING,
            ProceedReason.MAX_ATTEMPTS_REACHED,
        ]
        assert decisions[2].attempts_remaining == 0
        assert state.attempt_in_spec == 2
        assert len(state.history) == 2

    def test_new_fingerprint_after_ceiling(self):
        state, _ = run_cycles(AutoFixState(), "abc", 3)

        decision = should_proceed(state, "def")
        state = record_attempt(state, "def", ISSUES)

        assert decision.proceed
        assert decision.reason == ProceedReason.NEW_FAILURE_PATTERN
        assert state.attempt_in_spec == 1
        assert state.last_failure_fingerprint == "def"

    def test_custom_ceiling(self):
        state = AutoFixState(attempt_in_spec=3, last_failure_fingerprint="abc")
        assert should_proceed(state, "abc", max_attempts=4).proceed
        assert not should_proceed(state, "abc", max_attempts=3).proceed


class TestTransitions:
    """Tests for the pure state transitions."""

    def test_record_attempt_does_not_mutate(self):
        state = AutoFixState()
        new_state = record_attempt(state, "abc", ISSUES)

        assert state.attempt_in_spec == 0
        assert state.history == []
        assert new_state.history[0].attempt == 1
        assert new_state.history[0].spec_version == 1
        assert new_state.history[0].issues == [
            {
                "check": "G_DELIVERABLES",
                "category": "missing_deliverable",
                "message": "Missing deliverable: Dockerfile",
            }
        ]

    def test_bump_resets_counter_and_fingerprint(self):
        state, _ = run_cycles(AutoFixState(), "abc", 3)

        bumped = bump_spec_version(state)

        assert bumped.spec_version == 2
        assert bumped.attempt_in_spec == 0
        assert bumped.last_failure_fingerprint is None
        assert len(bumped.history) == 2
        assert should_proceed(bumped, "abc").proceed


class TestAutoFixStateMachine:
    """Tests for persisted AutoFix state."""

    def test_load_defaults_without_file(self, store, run_id):
        state = AutoFixStateMachine(store).load(run_id)
        assert state == AutoFixState()

    def test_record_persists_and_logs_event(self, store, run_id):
        machine = AutoFixStateMachine(store)

        machine.record_attempt(run_id, machine.load(run_id), "abc", ISSUES)

        saved = store.read_artifact(run_id, Phase.VERIFICATION, STATE_FILENAME)
        assert saved["attempt_in_spec"] == 1
        assert saved["last_failure_fingerprint"] == "abc"
        assert machine.load(run_id).attempt_in_spec == 1

        events = (store.run_dir(run_id) / EVENTS_FILE).read_text().splitlines()
        assert json.loads(events[-1])["event"] == "fix_attempt_recorded"

    def test_bump_spec_version_persists(self, store, run_id):
        machine = AutoFixStateMachine(store)
        machine.record_attempt(run_id, machine.load(run_id), "abc", ISSUES)

        machine.bump_spec_version(run_id)

        state = machine.load(run_id)
        assert state.spec_version == 2
        assert state.attempt_in_spec == 0
        assert state.last_failure_fingerprint is None

    def test_machine_ceiling_uses_configured_max(self, store, run_id):
        machine = AutoFixStateMachine(store, max_attempts=1)
        state = machine.record_attempt(run_id, machine.load(run_id), "abc", ISSUES)
        assert not machine.should_proceed(state, "abc").proceed

    def test_invalid_json_is_corrupt(self, store, run_id):
        store.write_artifact(run_id, Phase.VERIFICATION, STATE_FILENAME, "{oops")
        with pytest.raises(PipelineRuntimeError) as exc_info:
            AutoFixStateMachine(store).load(run_id)
        assert exc_info.value.code == AUTOFIX_STATE_CORRUPT

    def test_non_utf8_is_corrupt(self, store, run_id):
        state_path = store.phase_path(run_id, Phase.VERIFICATION) / STATE_FILENAME
        state_path.parent.mkdir(parents=True, exist_ok=True)
        state_path.write_bytes(b"\xff\xfe{}")
        with pytest.raises(PipelineRuntimeError) as exc_info:
            AutoFixStateMachine(store).load(run_id)
        assert exc_info.value.code == AUTOFIX_STATE_CORRUPT

    def test_wrong_shape_is_corrupt(self, store, run_id):
        store.write_artifact(
            run_id, Phase.VERIFICATION, STATE_FILENAME, {"spec_version": 0, "attempt_in_spec": -1}
        )
        with pytest.raises(PipelineRuntimeError) as exc_info:
            AutoFixStateMachine(store).load(run_id)
        assert exc_info.value.code == AUTOFIX_STATE_CORRUPT
