"""
Artifact storage for pipeline runs.

v0: local filesystem (plain paths or file:// URIs)

Every artifact is addressed by (run_id, phase, filename). A run directory
holds one subdirectory per phase plus run-level files (events.jsonl, loop
summaries). JSON writes go through a temp file and a rename so a crash never
leaves half a state file behind.

Assumption: a single orchestrator process works on a given run_id at a time.
Nothing here locks; concurrent invocations on one run would race on
autofix_state.json and the verification report.
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from .errors import UNKNOWN_PHASE, UNSUPPORTED_STORE, PipelineRuntimeError
from .schemas.enums import PHASE_DIRECTORIES, Phase

logger = logging.getLogger(__name__)

LATEST_POINTER = ".latest"
USER_REQUEST_FILE = "00_user_request.md"
EVENTS_FILE = "events.jsonl"

# Extra directories created under a fresh run, relative to the run root
RUN_SUBDIRECTORIES = [
    "50_implementation/handoff/ui",
    "50_implementation/handoff/api",
    "50_implementation/handoff/data",
    "50_implementation/handoff/qa",
    "50_implementation/handoff/security",
    "60_verification/logs",
]

_SLUG_MAX_LENGTH = 30
_SLUG_STRIP = re.compile(r"[^a-z0-9-]")

PhaseLike = Union[Phase, str]


def generate_run_id(slug: str = "run", now: Optional[datetime] = None) -> str:
    """Generate a run ID.

    Format: YYYYMMDD_HHMM_<slug>. The slug is lowercased, stripped of
    characters outside [a-z0-9-] and truncated to 30 characters.
    """
    now = now or datetime.now()
    safe_slug = _SLUG_STRIP.sub("", (slug or "").lower())[:_SLUG_MAX_LENGTH]
    return f"{now.strftime('%Y%m%d_%H%M')}_{safe_slug or 'run'}"


def resolve_phase(phase: PhaseLike) -> Phase:
    """Map a phase name to a Phase, raising UNKNOWN_PHASE otherwise."""
    if isinstance(phase, Phase):
        return phase
    try:
        return Phase(phase)
    except ValueError:
        raise PipelineRuntimeError(
            code=UNKNOWN_PHASE,
            message=f"Unknown phase: {phase}. "
            f"Valid: {', '.join(p.value for p in Phase)}",
        ) from None


class ArtifactStore(ABC):
    """Abstract base class for run artifact storage."""

    @abstractmethod
    def run_exists(self, run_id: str) -> bool:
        """Whether a run directory exists."""

    @abstractmethod
    def init_run(self, run_id: str) -> Path:
        """Create the run directory structure and mark it as latest."""

    @abstractmethod
    def list_runs(self) -> List[str]:
        """List run IDs, newest first."""

    @abstractmethod
    def latest_run_id(self) -> Optional[str]:
        """Most recent run, or None when there are no runs."""

    @abstractmethod
    def phase_path(self, run_id: str, phase: PhaseLike) -> Path:
        """Directory of a phase within a run."""

    @abstractmethod
    def write_artifact(
        self, run_id: str, phase: PhaseLike, filename: str, content: Any
    ) -> Path:
        """Write text or JSON content to a phase artifact."""

    @abstractmethod
    def read_artifact(self, run_id: str, phase: PhaseLike, filename: str) -> Any:
        """Read a phase artifact; JSON is decoded. None when absent.

        Raises:
            json.JSONDecodeError: Malformed JSON artifact
            UnicodeDecodeError: Artifact is not valid UTF-8
        """

    @abstractmethod
    def write_run_file(self, run_id: str, filename: str, content: Any) -> Path:
        """Write a run-level file (outside any phase directory)."""

    @abstractmethod
    def append_event(self, run_id: str, event: Dict[str, Any]) -> None:
        """Append a structured event to the run's events.jsonl."""

    @abstractmethod
    def get_uri(self, run_id: str) -> str:
        """Full URI of a run's artifact folder."""


class FileArtifactStore(ArtifactStore):
    """Local filesystem artifact store.

    Structure:
        <runs_root>/
        ├── .latest                    # ID of the most recently created run
        └── {run_id}/
            ├── 00_user_request.md
            ├── events.jsonl           # Structured events (machine-parseable)
            ├── loop_summary.md
            ├── 10_intake/ ... 70_fix/ # One directory per phase
            └── deploy/
    """

    def __init__(self, runs_root: Path):
        """Initialize with the directory that holds all runs.

        Args:
            runs_root: Absolute path to the runs directory
        """
        self.runs_root = Path(runs_root)

    def run_dir(self, run_id: str) -> Path:
        return self.runs_root / run_id

    def run_exists(self, run_id: str) -> bool:
        return self.run_dir(run_id).is_dir()

    def init_run(self, run_id: str) -> Path:
        run_dir = self.run_dir(run_id)
        for directory in PHASE_DIRECTORIES.values():
            (run_dir / directory).mkdir(parents=True, exist_ok=True)
        for directory in RUN_SUBDIRECTORIES:
            (run_dir / directory).mkdir(parents=True, exist_ok=True)

        (self.runs_root / LATEST_POINTER).write_text(run_id, encoding="utf-8")
        logger.info(f"Initialized run {run_id} at {run_dir}")
        return run_dir

    def list_runs(self) -> List[str]:
        if not self.runs_root.is_dir():
            return []
        runs = [p.name for p in self.runs_root.iterdir() if p.is_dir()]
        return sorted(runs, reverse=True)

    def latest_run_id(self) -> Optional[str]:
        pointer = self.runs_root / LATEST_POINTER
        if pointer.is_file():
            run_id = pointer.read_text(encoding="utf-8").strip()
            if run_id and self.run_exists(run_id):
                return run_id
        runs = self.list_runs()
        return runs[0] if runs else None

    def phase_path(self, run_id: str, phase: PhaseLike) -> Path:
        return self.run_dir(run_id) / PHASE_DIRECTORIES[resolve_phase(phase)]

    def write_artifact(
        self, run_id: str, phase: PhaseLike, filename: str, content: Any
    ) -> Path:
        full_path = self.phase_path(run_id, phase) / filename
        self._write(full_path, content)
        return full_path

    def read_artifact(self, run_id: str, phase: PhaseLike, filename: str) -> Any:
        full_path = self.phase_path(run_id, phase) / filename
        if not full_path.is_file():
            return None
        content = full_path.read_text(encoding="utf-8")
        if filename.endswith(".json"):
            return json.loads(content)
        return content

    def write_run_file(self, run_id: str, filename: str, content: Any) -> Path:
        full_path = self.run_dir(run_id) / filename
        self._write(full_path, content)
        return full_path

    def append_event(self, run_id: str, event: Dict[str, Any]) -> None:
        if "timestamp" not in event:
            event["timestamp"] = datetime.now(timezone.utc).isoformat()
        full_path = self.run_dir(run_id) / EVENTS_FILE
        full_path.parent.mkdir(parents=True, exist_ok=True)
        with open(full_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, default=str) + "\n")

    def get_uri(self, run_id: str) -> str:
        return f"file://{self.run_dir(run_id)}"

    def _write(self, full_path: Path, content: Any) -> None:
        full_path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, (dict, list)):
            self._write_atomic(full_path, json.dumps(content, indent=2, default=str))
        else:
            full_path.write_text(str(content), encoding="utf-8")

    @staticmethod
    def _write_atomic(full_path: Path, text: str) -> None:
        """Write via a temp file in the same directory, then rename over."""
        fd, tmp_name = tempfile.mkstemp(
            dir=str(full_path.parent), prefix=f".{full_path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, full_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


def create_artifact_store(location: Union[str, Path]) -> ArtifactStore:
    """Factory function to create an ArtifactStore from a path or URI.

    Args:
        location: Plain path or URI (e.g., "file:///srv/aat/runs")

    Returns:
        ArtifactStore instance for the given location

    Raises:
        PipelineRuntimeError: If the URI scheme is not supported
    """
    if isinstance(location, Path):
        return FileArtifactStore(location)

    parsed = urlparse(location)
    if parsed.scheme == "file":
        return FileArtifactStore(Path(parsed.path))
    if parsed.scheme == "":
        return FileArtifactStore(Path(location))

    raise PipelineRuntimeError(
        code=UNSUPPORTED_STORE,
        message=f"Unsupported storage scheme: {parsed.scheme}. Supported: file://",
    )
