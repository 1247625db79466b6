"""
Verification gates.

Each gate is a pure-ish function over the project directory and the parsed
Definition of Done that returns a GateResult (plus whatever report rows it
produced). Gates never raise on a failed check; the verifier runs all of
them and aggregates.
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..executor import CommandRunner
from ..schemas.enums import GateId, GateStatus
from ..schemas.report import CommandResult, DeliverableCheck, GateResult, Violation

logger = logging.getLogger(__name__)

MIN_MVP_FEATURES = 2

AUTH_RULE = "MUST NOT add authentication"
DB_RULE = "MUST NOT add database"

AUTH_NPM_DENYLIST = [
    "next-auth",
    "passport",
    "firebase-auth",
    "jsonwebtoken",
    "express-session",
]
AUTH_PY_DENYLIST = ["flask-login", "django-allauth", "python-jose", "pyjwt"]
AUTH_ENV_MARKERS = ["NEXTAUTH_", "JWT_SECRET", "SESSION_SECRET"]

DB_NPM_DENYLIST = [
    "prisma",
    "@prisma/client",
    "sequelize",
    "typeorm",
    "mongoose",
    "pg",
    "mysql2",
    "better-sqlite3",
]
DB_PY_DENYLIST = ["sqlalchemy", "psycopg2", "pymysql", "pymongo", "sqlite3"]
DB_COMPOSE_MARKERS = ["postgres", "mysql", "mongo"]
DB_ENV_MARKERS = ["DATABASE_URL", "DB_HOST"]

ENV_FILES = ["env.example", ".env.example", ".env"]
COMPOSE_FILES = ["docker-compose.yml", "docker-compose.yaml"]

_REQUIREMENT_NAME = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._-]*)")


# =============================================================================
# G_DELIVERABLES
# =============================================================================


def match_deliverable(project_path: Path, pattern: str) -> List[str]:
    """Return entry names in the pattern's directory matching its basename.

    Only a `*` in the last path segment is special: the basename is split at
    the first `*` and a name matches when it starts with the prefix, ends with
    the suffix and is long enough to hold both.
    """
    parent, _, basename = pattern.rstrip("/").rpartition("/")
    directory = project_path / parent if parent else project_path
    if "*" not in basename:
        return [basename] if (directory / basename).exists() else []
    if not directory.is_dir():
        return []

    prefix, _, suffix = basename.partition("*")
    min_length = len(prefix) + len(suffix)
    return sorted(
        entry.name
        for entry in directory.iterdir()
        if len(entry.name) >= min_length
        and entry.name.startswith(prefix)
        and entry.name.endswith(suffix)
    )


def deliverable_exists(project_path: Path, deliverable: str) -> bool:
    if "*" in deliverable:
        return bool(match_deliverable(project_path, deliverable))
    return (project_path / deliverable).exists()


def check_deliverables(
    project_path: Path, deliverables: Sequence[str]
) -> Tuple[GateResult, List[DeliverableCheck]]:
    checks = [
        DeliverableCheck(path=d, exists=deliverable_exists(project_path, d))
        for d in deliverables
    ]
    missing = [c for c in checks if not c.exists]
    for check in missing:
        logger.info(f"Deliverable missing: {check.path}")

    gate = GateResult(
        id=GateId.DELIVERABLES,
        status=GateStatus.FAIL if missing else GateStatus.PASS,
        message=(
            f"{len(missing)} deliverable(s) missing"
            if missing
            else "All deliverables exist"
        ),
        details={"deliverables": [c.model_dump() for c in checks]},
    )
    return gate, checks


# =============================================================================
# G_MUST_NOT
# =============================================================================


def _read_text(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8", errors="replace")


def _package_json_dependencies(project_path: Path) -> Dict[str, Any]:
    """dependencies + devDependencies of package.json; {} when absent or invalid."""
    text = _read_text(project_path / "package.json")
    if text is None:
        return {}
    try:
        package = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning(f"Skipping malformed package.json in {project_path}: {exc}")
        return {}
    if not isinstance(package, dict):
        return {}

    dependencies: Dict[str, Any] = {}
    for key in ("dependencies", "devDependencies"):
        section = package.get(key)
        if isinstance(section, dict):
            dependencies.update(section)
    return dependencies


def _normalize_requirement(name: str) -> str:
    return name.lower().replace("_", "-")


def _requirement_names(project_path: Path) -> List[str]:
    """Distribution names declared in requirements.txt (exact names, no specifiers)."""
    text = _read_text(project_path / "requirements.txt")
    if text is None:
        return []
    names = []
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        match = _REQUIREMENT_NAME.match(line)
        if match:
            names.append(_normalize_requirement(match.group(1)))
    return names


def _dependency_violations(
    project_path: Path, rule: str, label: str, npm_denylist: List[str], py_denylist: List[str]
) -> List[Violation]:
    violations = []
    npm_deps = _package_json_dependencies(project_path)
    for dep in npm_denylist:
        if dep in npm_deps:
            violations.append(
                Violation(rule=rule, detail=f"Found {label} dependency: {dep} in package.json")
            )

    requirements = set(_requirement_names(project_path))
    for dep in py_denylist:
        if _normalize_requirement(dep) in requirements:
            violations.append(
                Violation(rule=rule, detail=f"Found {label} dependency: {dep} in requirements.txt")
            )
    return violations


def _env_violations(
    project_path: Path, rule: str, label: str, markers: List[str]
) -> List[Violation]:
    violations = []
    for env_file in ENV_FILES:
        content = _read_text(project_path / env_file)
        if content is not None and any(marker in content for marker in markers):
            violations.append(
                Violation(rule=rule, detail=f"Found {label} env vars in {env_file}")
            )
    return violations


def find_must_not_violations(
    project_path: Path, constraints: Dict[str, str]
) -> List[Violation]:
    """Scan dependency manifests and env files for denylisted auth/db usage.

    Only constraints set to `none` are enforced.
    """
    violations: List[Violation] = []

    if constraints.get("auth") == "none":
        violations.extend(
            _dependency_violations(
                project_path, AUTH_RULE, "auth", AUTH_NPM_DENYLIST, AUTH_PY_DENYLIST
            )
        )
        violations.extend(_env_violations(project_path, AUTH_RULE, "auth", AUTH_ENV_MARKERS))

    if constraints.get("db") == "none":
        violations.extend(
            _dependency_violations(
                project_path, DB_RULE, "DB", DB_NPM_DENYLIST, DB_PY_DENYLIST
            )
        )
        for compose_file in COMPOSE_FILES:
            compose = _read_text(project_path / compose_file)
            if compose is not None and any(m in compose.lower() for m in DB_COMPOSE_MARKERS):
                violations.append(
                    Violation(rule=DB_RULE, detail=f"Found database service in {compose_file}")
                )
        violations.extend(_env_violations(project_path, DB_RULE, "DB", DB_ENV_MARKERS))

    return violations


def check_must_not(
    project_path: Path, constraints: Dict[str, str]
) -> Tuple[GateResult, List[Violation]]:
    violations = find_must_not_violations(project_path, constraints)
    gate = GateResult(
        id=GateId.MUST_NOT,
        status=GateStatus.FAIL if violations else GateStatus.PASS,
        message=(
            f"{len(violations)} violation(s) found"
            if violations
            else "No violations found"
        ),
        details={"violations": [v.model_dump() for v in violations]},
    )
    return gate, violations


# =============================================================================
# G_MVP_SIZE
# =============================================================================


def check_mvp_size(mvp_features: Sequence[Any]) -> GateResult:
    count = len(mvp_features)
    passed = count >= MIN_MVP_FEATURES
    return GateResult(
        id=GateId.MVP_SIZE,
        status=GateStatus.PASS if passed else GateStatus.FAIL,
        message=(
            f"MVP features count: {count}"
            if passed
            else f"MVP features count too low: {count} (required >= {MIN_MVP_FEATURES})"
        ),
        details={"count": count, "required": MIN_MVP_FEATURES},
    )


# =============================================================================
# G_COMMANDS
# =============================================================================


def skipped_commands_gate() -> GateResult:
    return GateResult(
        id=GateId.COMMANDS,
        status=GateStatus.PASS,
        message="Skipped (--fast mode)",
    )


def run_commands(
    commands: Sequence[str],
    project_path: Path,
    runner: CommandRunner,
    timeout_seconds: Optional[int] = None,
) -> Tuple[GateResult, List[CommandResult]]:
    """Run every command in order; a failure does not stop the rest."""
    results = []
    for cmd in commands:
        result = runner.run(cmd, project_path, timeout_seconds)
        logger.info(f"Command: {cmd} -> exit {result.exit_code}")
        results.append(result)

    failed = [r for r in results if not r.success]
    gate = GateResult(
        id=GateId.COMMANDS,
        status=GateStatus.FAIL if failed else GateStatus.PASS,
        message=(
            f"{len(failed)} of {len(results)} command(s) failed"
            if failed
            else "All commands passed"
        ),
        # Durations and output stay out of the gate so reruns compare equal
        details={
            "commands": [
                {
                    "cmd": r.cmd,
                    "exitCode": r.exit_code,
                    "success": r.success,
                    "timedOut": r.timed_out,
                }
                for r in results
            ]
        },
    )
    return gate, results


# =============================================================================
# G_SPEC_EXISTS
# =============================================================================


def check_spec_exists(spec_path: Path) -> GateResult:
    exists = spec_path.is_file()
    return GateResult(
        id=GateId.SPEC_EXISTS,
        status=GateStatus.PASS if exists else GateStatus.FAIL,
        message="spec.md exists" if exists else "spec.md not found",
    )
