"""
Shell command execution for verification and fixing.

v0: SubprocessCommandRunner - runs commands through the system shell
Tests: any CommandRunner subclass returning canned CommandResults

Design: the runner interface lets the verifier, fixer and QA gate run the
same commands against a fake without touching the host. Package manager
detection lives here too, since it only decides which command to run.
"""
from __future__ import annotations

import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import structlog

from .schemas.report import CommandResult

DEFAULT_TIMEOUT_SECONDS = 60

# Captured output beyond this is cut, keeping the tail where errors usually are
MAX_OUTPUT_CHARS = 20_000


# Lock file -> package manager, first match wins
LOCK_FILES = [
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
]
NODE_PACKAGE_MANAGERS = ("npm", "pnpm", "yarn", "bun")


def detect_package_manager(project_path: Path) -> str:
    """Node package manager implied by the lock files (npm when none match)."""
    for lock_file, manager in LOCK_FILES:
        if (project_path / lock_file).exists():
            return manager
    return "npm"


def detect_install_command(project_path: Path, override: str = "") -> Optional[str]:
    """Dependency install command for a project, or None without a manifest.

    Args:
        project_path: Project directory
        override: Forced package manager (npm, pnpm, yarn, bun or pip)
    """
    has_python_requirements = (project_path / "requirements.txt").is_file()
    has_python_project = (project_path / "pyproject.toml").is_file() or (
        project_path / "setup.py"
    ).is_file()

    if override in NODE_PACKAGE_MANAGERS:
        return f"{override} install"
    if override != "pip" and (project_path / "package.json").is_file():
        return f"{detect_package_manager(project_path)} install"
    if has_python_requirements:
        return "pip install -r requirements.txt"
    if has_python_project:
        return "pip install -e ."
    return None


def _decode(output: Union[str, bytes, None]) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def _clip(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return "...[truncated]...\n" + text[-MAX_OUTPUT_CHARS:]


class CommandRunner(ABC):
    """Abstract base class for shell command runners."""

    @abstractmethod
    def run(
        self,
        cmd: str,
        cwd: Path,
        timeout_seconds: Optional[int] = None,
    ) -> CommandResult:
        """Run one shell command.

        Args:
            cmd: Command line, interpreted by the shell
            cwd: Working directory
            timeout_seconds: Kill the command after this many seconds

        Returns:
            CommandResult; failures are reported, never raised
        """


class SubprocessCommandRunner(CommandRunner):
    """Runs commands with `subprocess.run(shell=True)`."""

    def __init__(self, default_timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS):
        self.default_timeout_seconds = default_timeout_seconds
        self.logger = structlog.get_logger().bind(component="executor")

    def run(
        self,
        cmd: str,
        cwd: Path,
        timeout_seconds: Optional[int] = None,
    ) -> CommandResult:
        timeout = timeout_seconds or self.default_timeout_seconds
        log = self.logger.bind(cmd=cmd, cwd=str(cwd))
        log.debug("command_started", timeout_seconds=timeout)

        started = time.monotonic()
        try:
            completed = subprocess.run(
                cmd,
                shell=True,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            log.warning("command_timed_out", timeout_seconds=timeout)
            stderr = _decode(exc.stderr)
            note = f"Command timed out after {timeout}s"
            return CommandResult(
                cmd=cmd,
                exit_code=None,
                stdout=_clip(_decode(exc.stdout)),
                stderr=_clip(f"{stderr}\n{note}" if stderr else note),
                duration_ms=duration_ms,
                success=False,
                timed_out=True,
            )
        except OSError as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            log.error("command_spawn_failed", error=str(exc))
            return CommandResult(
                cmd=cmd,
                exit_code=None,
                stderr=f"Failed to start command: {exc}",
                duration_ms=duration_ms,
                success=False,
            )

        duration_ms = int((time.monotonic() - started) * 1000)
        log.debug(
            "command_completed",
            exit_code=completed.returncode,
            duration_ms=duration_ms,
        )
        return CommandResult(
            cmd=cmd,
            exit_code=completed.returncode,
            stdout=_clip(completed.stdout or ""),
            stderr=_clip(completed.stderr or ""),
            duration_ms=duration_ms,
            success=completed.returncode == 0,
        )
