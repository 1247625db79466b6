"""
Fixer - applies automated remediations or emits ordered guidance.

v0 automation covers one category: missing dependencies get the project's
install command, run at most once per fix call. Every other fixable issue
becomes a manual item with remediation steps; non-fixable issues become
manual items pointing at the change request.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog

from ..executor import CommandRunner, detect_install_command
from ..schemas.enums import TriageCategory
from ..schemas.fix import AppliedFix, FixResult, ManualFix
from ..schemas.issues import BlockingIssue

FIX_INSTRUCTIONS: Dict[TriageCategory, List[str]] = {
    TriageCategory.IMPLEMENTATION_BUG: [
        "Review the error message and stack trace",
        "Check the failing code for typos, undefined variables, or logic errors",
        "Run the specific test/check to verify the fix",
    ],
    TriageCategory.MISSING_DEPENDENCY: [
        "Install the missing package with the project's package manager",
        "Or check if the import path is correct",
        "Verify the dependency manifest (package.json, requirements.txt) lists it",
    ],
    TriageCategory.CONFIG_ISSUE: [
        "Check .env file has all required variables",
        "Verify config files (tsconfig, vite.config, etc.)",
        "Check port availability if address-in-use error",
    ],
    TriageCategory.DOCKER_ISSUE: [
        "Verify Dockerfile syntax",
        "Check docker-compose.yml for errors",
        "Ensure base image is available",
    ],
    TriageCategory.TEST_MISMATCH: [
        "Compare test expectation with actual implementation",
        "Either fix the implementation to match test",
        "Or update test if implementation is correct per spec",
    ],
    TriageCategory.MISSING_DELIVERABLE: [
        "Create the missing file or directory at the listed path",
        "Check the Repo Deliverables section of DEFINITION_OF_DONE.md for the exact name",
        "Re-run verification to confirm it is detected",
    ],
    TriageCategory.MUST_NOT_VIOLATION: [
        "Remove the forbidden dependency from the manifest",
        "Delete related env vars and services (docker-compose, .env.example)",
        "Remove code that uses it and reinstall dependencies",
    ],
    TriageCategory.COMMAND_FAILED: [
        "Run the failing command manually in the project directory",
        "Check for hanging processes, watch modes or prompts waiting for input",
        "Fix the cause and re-run verification",
    ],
    TriageCategory.UNKNOWN: [
        "Review the full error output",
        "Check recent code changes",
        "Try running the command manually to debug",
    ],
}

MANUAL_REASONS: Dict[TriageCategory, str] = {
    TriageCategory.SCOPE_MISMATCH: "Outside the agreed scope - requires a spec change (see CHANGE_REQUEST.md)",
    TriageCategory.SECURITY_BLOCKER: "Security decision needed - review before any automated change (see CHANGE_REQUEST.md)",
    TriageCategory.ARCHITECTURE_ISSUE: "Needs a design change - approve a spec change first (see CHANGE_REQUEST.md)",
    TriageCategory.EXTERNAL_DEPENDENCY: "External dependency changed - pin a version or update the spec (see CHANGE_REQUEST.md)",
}
DEFAULT_MANUAL_REASON = "Requires spec change - see CHANGE_REQUEST.md"


def fix_instructions(category: TriageCategory) -> List[str]:
    return list(FIX_INSTRUCTIONS.get(category, FIX_INSTRUCTIONS[TriageCategory.UNKNOWN]))


def _manual(
    issue: BlockingIssue,
    reason: Optional[str] = None,
    instructions: Optional[List[str]] = None,
) -> ManualFix:
    return ManualFix(
        check=issue.check,
        category=issue.category,
        message=issue.message,
        reason=reason,
        instructions=instructions or [],
    )


class Fixer:
    """Turns blocking issues into applied fixes and manual guidance."""

    def __init__(
        self,
        runner: CommandRunner,
        package_manager: str = "",
        timeout_seconds: Optional[int] = None,
    ):
        """
        Args:
            runner: Command runner used for install commands
            package_manager: Forced package manager; empty means detect
            timeout_seconds: Timeout for install commands
        """
        self.runner = runner
        self.package_manager = package_manager
        self.timeout_seconds = timeout_seconds
        self.logger = structlog.get_logger().bind(component="fixer")

    def fix(
        self,
        run_id: str,
        issues: List[BlockingIssue],
        project_path: Path,
        dry_run: bool = False,
    ) -> FixResult:
        log = self.logger.bind(run_id=run_id, dry_run=dry_run)
        result = FixResult()
        # (command, succeeded, failure reason) of the one install run per call
        install: Optional[Tuple[Optional[str], bool, Optional[str]]] = None

        for issue in issues:
            if not issue.fixable:
                result.manual.append(
                    _manual(issue, reason=MANUAL_REASONS.get(issue.category, DEFAULT_MANUAL_REASON))
                )
                continue

            if issue.category != TriageCategory.MISSING_DEPENDENCY:
                result.manual.append(_manual(issue, instructions=fix_instructions(issue.category)))
                continue

            if install is None:
                install = self._install(Path(project_path), dry_run, log)
            cmd, succeeded, failure = install
            if succeeded and cmd:
                action = f"{cmd} (dry-run)" if dry_run else cmd
                result.applied.append(
                    AppliedFix(
                        check=issue.check,
                        category=issue.category,
                        message=issue.message,
                        action=action,
                    )
                )
            else:
                result.manual.append(
                    _manual(issue, reason=failure, instructions=fix_instructions(issue.category))
                )

        log.info(
            "fix_completed",
            issues=len(issues),
            applied=len(result.applied),
            manual=len(result.manual),
        )
        return result

    def _install(
        self, project_path: Path, dry_run: bool, log
    ) -> Tuple[Optional[str], bool, Optional[str]]:
        cmd = detect_install_command(project_path, self.package_manager)
        if cmd is None:
            log.warning("install_skipped", reason="no dependency manifest found")
            return None, False, "No dependency manifest found in the project"

        if dry_run:
            log.info("install_dry_run", cmd=cmd)
            return cmd, True, None

        log.info("install_started", cmd=cmd)
        outcome = self.runner.run(cmd, project_path, self.timeout_seconds)
        if outcome.success:
            log.info("install_succeeded", cmd=cmd, duration_ms=outcome.duration_ms)
            return cmd, True, None

        log.warning("install_failed", cmd=cmd, exit_code=outcome.exit_code)
        if outcome.timed_out:
            return cmd, False, f"{cmd} timed out"
        return cmd, False, f"{cmd} failed (exit {outcome.exit_code})"
