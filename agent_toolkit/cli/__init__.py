"""
Command Line Interface for the Agent Toolkit orchestrator.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Settings, WorkspaceConfig
from ..errors import RUN_NOT_FOUND, PipelineRuntimeError
from ..executor import SubprocessCommandRunner
from ..fixing.autofix import AutoFixStateMachine
from ..fixing.fixer import Fixer
from ..fixing.service import FixOptions, FixService
from ..logging_config import configure_logging
from ..loop import LoopController, LoopOptions
from ..qa_gate import ALL_CHECKS, QAGate
from ..schemas.enums import GateStatus, Phase
from ..schemas.fix import FixOutcome
from ..schemas.report import VerificationReport
from ..store import (
    USER_REQUEST_FILE,
    ArtifactStore,
    create_artifact_store,
    generate_run_id,
)
from ..verification.verifier import REPORT_FILENAME, Verifier, VerifyOptions

app = typer.Typer(help="Agent Toolkit - verify, fix and loop over generated projects")
console = Console()
err_console = Console(stderr=True)


@dataclass
class CLIContext:
    """Settings and workspace resolved once per invocation."""

    settings: Settings
    workspace: WorkspaceConfig

    def store(self) -> ArtifactStore:
        return create_artifact_store(self.workspace.runs_root)

    def runner(self) -> SubprocessCommandRunner:
        return SubprocessCommandRunner(self.settings.aat_command_timeout_seconds)

    def verifier(self, store: ArtifactStore) -> Verifier:
        return Verifier(store, self.runner())

    def fix_service(self, store: ArtifactStore) -> FixService:
        runner = self.runner()
        return FixService(
            store,
            Fixer(
                runner,
                package_manager=self.settings.aat_package_manager,
                timeout_seconds=self.settings.aat_command_timeout_seconds,
            ),
            AutoFixStateMachine(store, self.settings.aat_autofix_max_attempts),
            Verifier(store, runner),
        )

    def resolve_run_id(self, store: ArtifactStore, run_id: Optional[str]) -> str:
        """--run-id, then RUN_ID, then the latest run."""
        resolved = run_id or self.settings.run_id or store.latest_run_id()
        if not resolved:
            raise PipelineRuntimeError(
                code=RUN_NOT_FOUND,
                message="No run found. Create one with `aat init <slug>` or pass --run-id.",
            )
        return resolved


def _fail(error: PipelineRuntimeError, code: int, json_output: bool = False) -> NoReturn:
    if json_output:
        typer.echo(json.dumps(error.to_dict(), indent=2))
    else:
        err_console.print(f"❌ [red]{error.code}[/red]: {error.message}")
    raise typer.Exit(code=code)


def _status_text(status: GateStatus) -> str:
    if status == GateStatus.PASS:
        return "[green]🟢 PASS[/green]"
    return "[red]🔴 FAIL[/red]"


def _print_report(report: VerificationReport) -> None:
    table = Table(
        title=f"Verification: {report.run_id}", show_header=True, header_style="bold magenta"
    )
    table.add_column("Gate", style="cyan")
    table.add_column("Status")
    table.add_column("Details")
    for gate in report.gates.values():
        table.add_row(gate.id.value, _status_text(gate.status), gate.message)
    console.print(table)

    for violation in report.violations:
        console.print(f"  ⚠️  {violation.rule}: {violation.detail}")
    for command in report.commands:
        if not command.success:
            console.print(f"  ❌ {command.cmd} (exit {command.exit_code})")

    console.print(f"Status: {_status_text(report.status)}")
    if report.summary.next_action:
        console.print(f"Next: {report.summary.next_action}")


def _print_fix_outcome(outcome: FixOutcome) -> None:
    console.print(f"[bold]{outcome.status.value}[/bold]: {outcome.message}")
    if outcome.spec_version is not None:
        console.print(f"Spec version: v{outcome.spec_version}, attempt {outcome.attempt}")
    if outcome.fix_result:
        for applied in outcome.fix_result.applied:
            console.print(f"  ✅ {applied.check}: {applied.action}")
        for manual in outcome.fix_result.manual:
            console.print(f"  📝 {manual.check} ({manual.category.value}): {manual.message}")
    if outcome.summary_path:
        console.print(f"Summary: {outcome.summary_path}")
    if outcome.verification is not None:
        console.print(f"Re-verification: {_status_text(outcome.verification.status)}")


@app.callback()
def main_callback(
    ctx: typer.Context,
    workspace: Optional[str] = typer.Option(
        None, "--workspace", help="Workspace root holding the runs directory"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level"),
):
    """Resolve settings and the workspace for every command."""
    settings = Settings()
    configure_logging(log_level or settings.log_level, settings.log_format)
    ctx.obj = CLIContext(
        settings=settings,
        workspace=WorkspaceConfig.from_settings(settings, workspace),
    )


@app.command()
def init(
    ctx: typer.Context,
    slug: str = typer.Argument("run", help="Short name for the run"),
    request: Optional[str] = typer.Option(None, help="User request text to store with the run"),
):
    """Create a new run and print its ID."""
    cli: CLIContext = ctx.obj
    store = cli.store()
    run_id = generate_run_id(slug)
    if store.run_exists(run_id):
        err_console.print(f"❌ Run already exists: {run_id}")
        raise typer.Exit(code=2)

    store.init_run(run_id)
    if request:
        store.write_run_file(run_id, USER_REQUEST_FILE, request)
    store.append_event(run_id, {"event": "run_created", "slug": slug})
    console.print(f"✅ Created run [cyan]{run_id}[/cyan]")
    console.print(store.get_uri(run_id))


@app.command()
def runs(ctx: typer.Context):
    """List runs, newest first."""
    cli: CLIContext = ctx.obj
    store = cli.store()
    run_ids = store.list_runs()
    if not run_ids:
        console.print("No runs yet. Create one with `aat init <slug>`.")
        return

    latest = store.latest_run_id()
    table = Table(title="Runs", show_header=True, header_style="bold magenta")
    table.add_column("Run", style="cyan")
    table.add_column("Verification")
    table.add_column("Latest")
    for run_id in run_ids:
        table.add_row(run_id, _last_verification(store, run_id), "⭐" if run_id == latest else "")
    console.print(table)


def _last_verification(store: ArtifactStore, run_id: str) -> str:
    try:
        report = store.read_artifact(run_id, Phase.VERIFICATION, REPORT_FILENAME)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return "unreadable"
    if not report:
        return "-"
    return str(report.get("status", "-"))


@app.command()
def verify(
    ctx: typer.Context,
    run_id: Optional[str] = typer.Option(None, "--run-id", help="Run to verify"),
    path: Path = typer.Option(Path("."), "--path", help="Generated project directory"),
    fast: bool = typer.Option(False, "--fast", help="Skip verification commands"),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON"),
):
    """Run the verification gates. Exit 0 PASS, 1 FAIL, 2 runtime error."""
    cli: CLIContext = ctx.obj
    store = cli.store()
    try:
        resolved = cli.resolve_run_id(store, run_id)
        report = cli.verifier(store).verify(
            resolved,
            path.resolve(),
            VerifyOptions(fast=fast),
        )
    except PipelineRuntimeError as e:
        _fail(e, code=2, json_output=json_output)

    if json_output:
        typer.echo(json.dumps(report.to_json_dict(), indent=2, default=str))
    else:
        _print_report(report)
    raise typer.Exit(code=0 if report.passed else 1)


@app.command()
def fix(
    ctx: typer.Context,
    run_id: Optional[str] = typer.Option(None, "--run-id", help="Run to fix"),
    attempt_num: Optional[int] = typer.Option(
        None, "--attempt-num", min=1, help="Attempt directory number under 70_fix/"
    ),
    project_path: Optional[Path] = typer.Option(
        None, "--project-path", help="Generated project directory"
    ),
    approve_change: bool = typer.Option(
        False, "--approve-change", help="Approve a spec change and reset attempts"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Record fixes without running them"),
    rerun_qa: bool = typer.Option(False, "--rerun-qa", help="Verify again after fixing"),
):
    """Apply fixes for the latest verification report."""
    cli: CLIContext = ctx.obj
    store = cli.store()
    try:
        resolved = cli.resolve_run_id(store, run_id)
        outcome = cli.fix_service(store).run(
            FixOptions(
                run_id=resolved,
                project_path=project_path.resolve() if project_path else None,
                attempt_num=attempt_num,
                approve_change=approve_change,
                dry_run=dry_run,
                rerun_qa=rerun_qa,
            )
        )
    except PipelineRuntimeError as e:
        _fail(e, code=1)

    _print_fix_outcome(outcome)


@app.command()
def loop(
    ctx: typer.Context,
    run_id: Optional[str] = typer.Option(None, "--run-id", help="Run to loop over"),
    max_attempts: Optional[int] = typer.Option(
        None, "--max-attempts", min=1, help="Verify attempts for this invocation"
    ),
    path: Path = typer.Option(Path("."), "--path", help="Generated project directory"),
    fast: bool = typer.Option(False, "--fast", help="Skip verification commands"),
):
    """Verify and fix until PASS or attempts run out. Exit 0 PASS, 1 FAIL, 2 runtime error."""
    cli: CLIContext = ctx.obj
    store = cli.store()
    rprint(Panel.fit("🔁 Fix loop", style="bold blue"))
    try:
        resolved = cli.resolve_run_id(store, run_id)
        controller = LoopController(store, cli.verifier(store), cli.fix_service(store))
        result = controller.run(
            LoopOptions(
                run_id=resolved,
                project_path=path.resolve(),
                max_attempts=max_attempts or cli.settings.aat_loop_max_attempts,
                fast=fast,
            )
        )
    except PipelineRuntimeError as e:
        _fail(e, code=2)

    table = Table(title=f"Loop: {result.run_id}", show_header=True, header_style="bold magenta")
    table.add_column("Attempt", style="cyan")
    table.add_column("Verify")
    table.add_column("Failed gates")
    table.add_column("Fix")
    for attempt in result.attempts:
        if attempt.fix_error:
            fix_text = f"error: {attempt.fix_error}"
        elif attempt.fix_status:
            fix_text = attempt.fix_status.value
        else:
            fix_text = "-"
        table.add_row(
            str(attempt.attempt),
            _status_text(attempt.status),
            ", ".join(attempt.failed_gates) or "-",
            fix_text,
        )
    console.print(table)
    console.print(
        f"Status: {_status_text(result.status)} "
        f"({result.attempts_used}/{result.max_attempts} attempts)"
    )
    raise typer.Exit(code=0 if result.passed else 1)


@app.command()
def qa(
    ctx: typer.Context,
    run_id: Optional[str] = typer.Option(None, "--run-id", help="Run to attach the report to"),
    path: Path = typer.Option(Path("."), "--path", help="Generated project directory"),
    checks: str = typer.Option(
        ",".join(ALL_CHECKS), "--checks", help="Comma-separated checks to run"
    ),
):
    """Run the project QA checks (tests, lint, typecheck, build)."""
    cli: CLIContext = ctx.obj
    store = cli.store()
    selected: List[str] = [c.strip() for c in checks.split(",") if c.strip()]
    unknown = [c for c in selected if c not in ALL_CHECKS]
    if unknown:
        err_console.print(f"❌ Unknown checks: {', '.join(unknown)}")
        raise typer.Exit(code=2)

    resolved = run_id or cli.settings.run_id or store.latest_run_id()
    if resolved and not store.run_exists(resolved):
        _fail(
            PipelineRuntimeError(code=RUN_NOT_FOUND, message=f"Run not found: {resolved}"),
            code=2,
        )

    gate = QAGate(store, cli.runner(), cli.settings.aat_command_timeout_seconds)
    report = gate.run(resolved, path.resolve(), selected)

    table = Table(title="QA Gate", show_header=True, header_style="bold magenta")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    for name, result in report.checks.items():
        table.add_row(name, str(result.get("status", "-")))
    console.print(table)
    for issue in report.blocking_issues:
        console.print(f"  ❌ {issue.check}: {issue.message}")
    console.print(f"Overall: [bold]{report.overall_status.value.upper()}[/bold]")
    raise typer.Exit(code=0 if report.passed else 1)


@app.command()
def status(
    ctx: typer.Context,
    run_id: Optional[str] = typer.Option(None, "--run-id", help="Run to inspect"),
):
    """Show AutoFix state and the last verification status of a run."""
    cli: CLIContext = ctx.obj
    store = cli.store()
    try:
        resolved = cli.resolve_run_id(store, run_id)
        if not store.run_exists(resolved):
            raise PipelineRuntimeError(code=RUN_NOT_FOUND, message=f"Run not found: {resolved}")
        state = AutoFixStateMachine(store, cli.settings.aat_autofix_max_attempts).load(resolved)
    except PipelineRuntimeError as e:
        _fail(e, code=2)

    table = Table(title=f"Run: {resolved}", show_header=True, header_style="bold magenta")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Verification", _last_verification(store, resolved))
    table.add_row("Spec version", f"v{state.spec_version}")
    table.add_row(
        "Attempts",
        f"{state.attempt_in_spec}/{cli.settings.aat_autofix_max_attempts}",
    )
    table.add_row("Fingerprint", state.last_failure_fingerprint or "-")
    table.add_row("History entries", str(len(state.history)))
    table.add_row("Location", store.get_uri(resolved))
    console.print(table)


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    console.print(f"Agent Toolkit v{__version__}")


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
