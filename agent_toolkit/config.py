"""
Configuration management for the Agent Toolkit orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Workspace layout
    aat_workspace_root: str = Field(
        default="",
        description="Workspace root holding the runs directory. Empty = current directory.",
    )
    aat_runs_dir: str = Field(
        default="artifacts/runs",
        description="Runs directory, relative to the workspace root unless absolute.",
    )

    # Active run (RUN_ID)
    run_id: Optional[str] = Field(default=None)

    # Verification
    aat_command_timeout_seconds: int = Field(default=60, ge=1)

    # Fix / loop bounds
    aat_autofix_max_attempts: int = Field(default=2, ge=1)
    aat_loop_max_attempts: int = Field(default=3, ge=1)
    aat_package_manager: str = Field(
        default="",
        description="Force a package manager (npm, pnpm, yarn, bun, pip). Empty = detect.",
    )

    # Logging
    log_level: str = Field(default="WARNING")
    log_format: str = Field(default="console")


@dataclass(frozen=True)
class WorkspaceConfig:
    """Resolved workspace paths, built once by the entry point and passed down."""

    root_path: Path
    runs_dir: str = "artifacts/runs"

    @property
    def runs_root(self) -> Path:
        runs = Path(self.runs_dir)
        if runs.is_absolute():
            return runs
        return self.root_path / runs

    @classmethod
    def from_settings(
        cls, settings: Settings, root_override: Optional[str] = None
    ) -> "WorkspaceConfig":
        root = root_override or settings.aat_workspace_root
        root_path = Path(root).resolve() if root else Path.cwd()
        return cls(root_path=root_path, runs_dir=settings.aat_runs_dir)
