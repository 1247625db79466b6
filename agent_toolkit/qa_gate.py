"""
QA gate - tool-driven checks for JavaScript/TypeScript projects.

Detects the project's tooling from package.json and lock files, runs
tests, lint, typecheck and build as applicable, and writes the QA report
(`60_verification/report.json`) plus `summary.md`. The fix flow falls back
to this report when a run has no gate-based verification report.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .executor import CommandRunner, detect_package_manager
from .fixing.triage import triage
from .reports import render_qa_summary
from .schemas.enums import Phase, QAStatus
from .schemas.qa import (
    QA_REPORT_FILENAME,
    QA_SUMMARY_FILENAME,
    QABlockingIssue,
    QAProject,
    QAReport,
    QASummary,
)
from .store import ArtifactStore

logger = logging.getLogger(__name__)

ALL_CHECKS = ["tests", "lint", "typecheck", "build"]

_TESTS_SUMMARY = re.compile(r"Tests:\s+(\d+)\s+passed.*?(\d+)\s+total", re.DOTALL)
_TESTS_SUMMARY_SHORT = re.compile(r"(\d+)\s+passed,\s+(\d+)\s+total")
_TESTS_FAILED = re.compile(r"(\d+)\s+failed")
_FAILED_TEST_NAME = re.compile(r"FAIL\s+(.+?)\n|✕\s+(.+)")
_LINT_ERRORS = re.compile(r"(\d+)\s+errors?")
_LINT_WARNINGS = re.compile(r"(\d+)\s+warnings?")
_TS_ERROR = re.compile(r"error TS\d+")


def _first_match(script: str, tools: Sequence[str], default: str) -> str:
    for tool in tools:
        if tool in script:
            return tool
    return default


@dataclass
class ProjectConfig:
    """Tooling detected in a project directory."""

    has_tests: bool
    test_runner: str
    has_lint: bool
    lint_tool: str
    has_typescript: bool
    has_build: bool
    build_tool: str
    package_manager: str

    @classmethod
    def detect(cls, project_path: Path) -> "ProjectConfig":
        def has_file(name: str) -> bool:
            return (project_path / name).exists()

        package: Dict[str, Any] = {}
        package_path = project_path / "package.json"
        if package_path.is_file():
            try:
                loaded = json.loads(package_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                logger.warning(f"Ignoring malformed package.json: {exc}")
            else:
                if isinstance(loaded, dict):
                    package = loaded
        scripts = package.get("scripts") or {}
        if not isinstance(scripts, dict):
            scripts = {}
        test_script = str(scripts.get("test") or "")
        build_script = str(scripts.get("build") or "")

        return cls(
            has_tests=bool(test_script)
            or has_file("vitest.config.ts")
            or has_file("jest.config.js"),
            test_runner=_first_match(test_script, ["vitest", "jest", "mocha"], "npm test"),
            has_lint=bool(scripts.get("lint"))
            or has_file(".eslintrc.json")
            or has_file("eslint.config.js")
            or has_file("biome.json"),
            lint_tool="biome" if has_file("biome.json") else "eslint",
            has_typescript=has_file("tsconfig.json"),
            has_build=bool(build_script),
            build_tool=_first_match(build_script, ["vite", "next", "webpack"], "npm build"),
            package_manager=detect_package_manager(project_path),
        )


def parse_test_results(output: str) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "total": 0,
        "passed": 0,
        "failed": 0,
        "skipped": 0,
        "failed_tests": [],
    }
    summary = _TESTS_SUMMARY.search(output) or _TESTS_SUMMARY_SHORT.search(output)
    if summary:
        result["passed"] = int(summary.group(1))
        result["total"] = int(summary.group(2)) or result["passed"]
    failed = _TESTS_FAILED.search(output)
    if failed:
        result["failed"] = int(failed.group(1))
    for match in _FAILED_TEST_NAME.finditer(output):
        name = (match.group(1) or match.group(2) or "").strip()
        result["failed_tests"].append({"name": name, "file": "", "error": ""})
    return result


def parse_lint_results(output: str, tool: str) -> Dict[str, Any]:
    result: Dict[str, Any] = {"errors": 0, "warnings": 0, "fixable": 0, "issues": []}
    if tool == "eslint":
        errors = _LINT_ERRORS.search(output)
        warnings = _LINT_WARNINGS.search(output)
        if errors:
            result["errors"] = int(errors.group(1))
        if warnings:
            result["warnings"] = int(warnings.group(1))
    return result


class QAGate:
    """Runs the QA checks and writes the QA report."""

    def __init__(
        self,
        store: ArtifactStore,
        runner: CommandRunner,
        timeout_seconds: Optional[int] = None,
    ):
        self.store = store
        self.runner = runner
        self.timeout_seconds = timeout_seconds

    def run(
        self,
        run_id: Optional[str],
        project_path: Path,
        checks: Optional[Sequence[str]] = None,
    ) -> QAReport:
        """Run the selected checks (all by default).

        The report is persisted only when a run_id is given.
        """
        project_path = Path(project_path)
        selected = list(checks) if checks else list(ALL_CHECKS)
        config = ProjectConfig.detect(project_path)
        logger.info(f"QA gate for {project_path}: checks={selected}, config={config}")

        summary = QASummary()
        results: Dict[str, Dict[str, Any]] = {}
        blocking: List[QABlockingIssue] = []
        pm = config.package_manager

        def record(status: QAStatus) -> None:
            summary.total_checks += 1
            if status == QAStatus.PASS:
                summary.passed += 1
            elif status == QAStatus.WARNING:
                summary.warnings += 1
            else:
                summary.failed += 1

        def block(name: str, message: str, action: str, stderr: str, stdout: str) -> None:
            blocking.append(
                QABlockingIssue(
                    check=name,
                    message=message,
                    action=action,
                    triage=triage(name, stderr, stdout),
                )
            )

        if "tests" in selected and config.has_tests:
            result = self.runner.run(f"{pm} test", project_path, self.timeout_seconds)
            parsed = parse_test_results(result.stdout + result.stderr)
            status = QAStatus.PASS if result.success else QAStatus.FAIL
            results["tests"] = {
                "status": status.value,
                "runner": config.test_runner,
                **parsed,
                "duration_ms": result.duration_ms,
            }
            record(status)
            if not result.success:
                block(
                    "tests",
                    f"{parsed['failed']} tests failed",
                    "Fix failing tests before merge",
                    result.stderr,
                    result.stdout,
                )

        if "lint" in selected and config.has_lint:
            result = self.runner.run(f"{pm} run lint", project_path, self.timeout_seconds)
            parsed = parse_lint_results(result.stdout + result.stderr, config.lint_tool)
            if parsed["errors"] > 0 or (not result.success and not parsed["warnings"]):
                status = QAStatus.FAIL
            elif parsed["warnings"] > 0:
                status = QAStatus.WARNING
            else:
                status = QAStatus.PASS
            results["lint"] = {
                "status": status.value,
                "tool": config.lint_tool,
                **parsed,
                "duration_ms": result.duration_ms,
            }
            record(status)
            if status == QAStatus.FAIL:
                block(
                    "lint",
                    f"{parsed['errors']} lint errors",
                    "Fix lint errors before merge",
                    result.stderr,
                    result.stdout,
                )

        if "typecheck" in selected and config.has_typescript:
            result = self.runner.run("npx tsc --noEmit", project_path, self.timeout_seconds)
            error_count = len(_TS_ERROR.findall(result.stdout + result.stderr))
            status = QAStatus.PASS if result.success else QAStatus.FAIL
            results["typecheck"] = {
                "status": status.value,
                "errors": error_count,
                "duration_ms": result.duration_ms,
                "issues": [],
            }
            record(status)
            if not result.success:
                block(
                    "typecheck",
                    f"{error_count} TypeScript errors",
                    "Fix type errors before merge",
                    result.stderr,
                    result.stdout,
                )

        if "build" in selected and config.has_build:
            result = self.runner.run(f"{pm} run build", project_path, self.timeout_seconds)
            status = QAStatus.PASS if result.success else QAStatus.FAIL
            results["build"] = {
                "status": status.value,
                "tool": config.build_tool,
                "duration_ms": result.duration_ms,
                "errors": [] if result.success else [result.stderr[:500]],
            }
            record(status)
            if not result.success:
                block("build", "Build failed", "Fix build errors", result.stderr, result.stdout)

        recommendations = []
        if summary.failed > 0:
            overall = QAStatus.FAIL
        elif summary.warnings > 0:
            overall = QAStatus.WARNING
        elif summary.total_checks == 0:
            overall = QAStatus.SKIP
            recommendations.append(
                "No checks were run. Configure tests/lint/build in package.json"
            )
        else:
            overall = QAStatus.PASS

        report = QAReport(
            run_id=run_id,
            project=QAProject(name=project_path.name, path=str(project_path)),
            overall_status=overall,
            summary=summary,
            checks=results,
            blocking_issues=blocking,
            recommendations=recommendations,
        )

        if run_id:
            self.store.write_artifact(
                run_id, Phase.VERIFICATION, QA_REPORT_FILENAME, report.model_dump(mode="json")
            )
            self.store.write_artifact(
                run_id, Phase.VERIFICATION, QA_SUMMARY_FILENAME, render_qa_summary(report)
            )
        logger.info(f"QA gate finished: {overall.value}")
        return report
