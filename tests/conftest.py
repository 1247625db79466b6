"""Test configuration and fixtures."""

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest
import structlog

from agent_toolkit.executor import CommandRunner
from agent_toolkit.schemas.enums import Phase
from agent_toolkit.schemas.report import CommandResult
from agent_toolkit.store import FileArtifactStore

RUN_ID = "20260101_1200_demo"

SAMPLE_DOD = """---
project_kind: web_app
language: typescript
constraints:
  auth: none
  db: none
stack: [react, vite]
features:
  - upload
  - preview
---

# Definition of Done

## 1. Repo Deliverables
- [ ] `package.json`
- [ ] `src/index.ts`
- [x] `README.md`

---

## 5. Verification Commands
```bash
# install first
npm install

npm test
```
"""

SLOW_DOD = SAMPLE_DOD.replace("# install first\nnpm install\n\nnpm test", "sleep 3")

SAMPLE_INTAKE = {"scope": {"mvp_features": ["upload", "preview"]}}


class FakeRunner(CommandRunner):
    """Command runner returning canned results; unknown commands succeed.

    A list of results is consumed in order, the last one repeating.
    """

    def __init__(self):
        self.results: Dict[str, Union[CommandResult, List[CommandResult]]] = {}
        self.calls: List[str] = []
        self.timeouts: List[Optional[int]] = []

    def fail(self, cmd: str, stderr: str = "", stdout: str = "", exit_code: int = 1) -> None:
        self.results[cmd] = CommandResult(
            cmd=cmd, exit_code=exit_code, stderr=stderr, stdout=stdout, success=False
        )

    def succeed(self, cmd: str, stdout: str = "") -> None:
        self.results[cmd] = CommandResult(cmd=cmd, exit_code=0, stdout=stdout, success=True)

    def run(self, cmd: str, cwd: Path, timeout_seconds: Optional[int] = None) -> CommandResult:
        self.calls.append(cmd)
        self.timeouts.append(timeout_seconds)
        outcome = self.results.get(cmd)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if outcome is None:
            return CommandResult(cmd=cmd, exit_code=0, success=True)
        return outcome


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo structlog configuration done by CLI invocations."""
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's RUN_ID and AAT_* variables out of the tests."""
    for name in (
        "RUN_ID",
        "AAT_WORKSPACE_ROOT",
        "AAT_RUNS_DIR",
        "AAT_PACKAGE_MANAGER",
        "AAT_AUTOFIX_MAX_ATTEMPTS",
        "AAT_LOOP_MAX_ATTEMPTS",
        "AAT_COMMAND_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runs_root(tmp_path: Path) -> Path:
    """Runs directory laid out as the CLI does under a workspace root."""
    return tmp_path / "artifacts" / "runs"


@pytest.fixture
def store(runs_root: Path) -> FileArtifactStore:
    """Create a file artifact store in a temporary directory."""
    return FileArtifactStore(runs_root)


@pytest.fixture
def runner() -> FakeRunner:
    """Create a fake command runner."""
    return FakeRunner()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Create a generated project satisfying the sample DoD."""
    path = tmp_path / "project"
    (path / "src").mkdir(parents=True)
    (path / "package.json").write_text(
        json.dumps({"name": "demo", "scripts": {"test": "vitest run"}}), encoding="utf-8"
    )
    (path / "src" / "index.ts").write_text("export const ok = true;\n", encoding="utf-8")
    (path / "README.md").write_text("# Demo\n", encoding="utf-8")
    return path


@pytest.fixture
def run_id(store: FileArtifactStore) -> str:
    """Create a run with a DoD, a spec and an intake with two MVP features."""
    store.init_run(RUN_ID)
    store.write_artifact(RUN_ID, Phase.SPEC, "DEFINITION_OF_DONE.md", SAMPLE_DOD)
    store.write_artifact(RUN_ID, Phase.SPEC, "spec.md", "# Spec\n")
    store.write_artifact(RUN_ID, Phase.INTAKE, "intake.json", SAMPLE_INTAKE)
    return RUN_ID
