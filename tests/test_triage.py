"""Tests for failure triage."""

import pytest
from structlog.testing import capture_logs

from agent_toolkit.fixing.triage import triage
from agent_toolkit.schemas.enums import TriageCategory


class TestTriage:
    """Tests for pattern-based classification."""

    @pytest.mark.parametrize(
        "error_text,category,fixable",
        [
            ("TypeError: Cannot read properties of undefined", TriageCategory.IMPLEMENTATION_BUG, True),
            ("ReferenceError: foo is not defined", TriageCategory.IMPLEMENTATION_BUG, True),
            ("Error: Cannot find module 'express'", TriageCategory.MISSING_DEPENDENCY, True),
            ("ModuleNotFoundError: No module named 'requests'", TriageCategory.MISSING_DEPENDENCY, True),
            ("listen EADDRINUSE: address already in use :::3000", TriageCategory.CONFIG_ISSUE, True),
            ("docker: Error response from daemon", TriageCategory.DOCKER_ISSUE, True),
            ("AssertionError: expected 2 to equal 3", TriageCategory.TEST_MISMATCH, True),
            ("Tests: 2 tests failed", TriageCategory.TEST_MISMATCH, True),
            ("Payments are out of scope for the MVP", TriageCategory.SCOPE_MISMATCH, False),
            ("found 3 vulnerabilities (1 critical)", TriageCategory.SECURITY_BLOCKER, False),
            ("circular dependency detected between a and b", TriageCategory.ARCHITECTURE_ISSUE, False),
            ("warning: request@2.88.2 is deprecated", TriageCategory.EXTERNAL_DEPENDENCY, False),
        ],
    )
    def test_categories(self, error_text, category, fixable):
        result = triage("npm test", error_text)
        assert result.category == category
        assert result.fixable is fixable
        assert result.reason

    def test_case_insensitive(self):
        assert triage("build", "CANNOT FIND MODULE 'x'").category == TriageCategory.MISSING_DEPENDENCY

    def test_first_match_wins(self):
        result = triage("npm test", "TypeError in security middleware")
        assert result.category == TriageCategory.IMPLEMENTATION_BUG

    def test_output_text_is_searched(self):
        result = triage("npm test", "", "FAIL src/app.test.ts\nAssertionError: expected true")
        assert result.category == TriageCategory.TEST_MISMATCH

    def test_unknown_is_fixable_and_logged(self):
        with capture_logs() as logs:
            result = triage("make", "something odd happened")

        assert result.category == TriageCategory.UNKNOWN
        assert result.fixable is True
        unknown = [entry for entry in logs if entry["event"] == "triage_unknown"]
        assert len(unknown) == 1
        assert unknown[0]["check"] == "make"
        assert unknown[0]["log_level"] == "warning"

    def test_known_pattern_is_not_logged(self):
        with capture_logs() as logs:
            triage("npm test", "AssertionError")
        assert not [entry for entry in logs if entry["event"] == "triage_unknown"]
