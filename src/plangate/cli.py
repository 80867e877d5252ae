"""CLI commands for inspecting and advancing approval-gated plans."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from pydantic import ValidationError

from .approval import require_approval
from .config import (
    DEFAULT_CONFIG_NAME,
    ConfigError,
    copy_config_template,
    load_config,
    section,
    write_config,
)
from .handles import resolve
from .history import HistoryFormatError, Turn, load_history
from .mailer import PROPOSE_EMAIL_TOOL_NAMES, SEND_EMAIL_TOOL_NAMES, ProposedEmail
from .memory.schema import MAX_MEMORY_ENTRIES
from .memory.store import SqliteMemoryRepository
from .memory.updater import MemoryUpdater
from .planning.executor import EXECUTION_MODES, ExecutionEngine
from .planning.proposals import latest_plan
from .planning.risk import assess_risk
from .planning.schemas import Plan, Snapshot, TaskStatus
from .planning.todos import TodoUpdate, reconstruct, update_todos
from .planning.validator import BasicPlanValidator

APP_HELP = "Approval-gated plan execution for document-editing agents."

STATUS_MARKERS = {
    TaskStatus.NEW: "+",
    TaskStatus.PENDING: " ",
    TaskStatus.IN_PROGRESS: "~",
    TaskStatus.DONE: "x",
}

app = typer.Typer(help=APP_HELP)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _config_option() -> Any:
    return typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the plangate configuration file.",
    )


def _load_runtime_config(config: str) -> Dict[str, Any]:
    """Load the config file, falling back to defaults when the default file is absent."""
    config_path = Path(config)
    if not config_path.exists() and config == DEFAULT_CONFIG_NAME:
        return copy_config_template()
    try:
        return load_config(config_path)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _load_history(path: Path) -> List[Turn]:
    try:
        return load_history(path)
    except HistoryFormatError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _load_json(path: Path, label: str) -> Any:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, json.JSONDecodeError) as error:
        typer.echo(f"Failed to read {label} from {path}: {error}")
        raise typer.Exit(code=1) from error


def _load_plan(path: Path) -> Plan:
    data = _load_json(path, "plan")
    if isinstance(data, dict) and isinstance(data.get("plan"), dict):
        data = data["plan"]
    try:
        return Plan.model_validate(data)
    except ValidationError as error:
        typer.echo(f"Invalid plan in {path}: {error.error_count()} problem(s)")
        raise typer.Exit(code=1) from error


def _load_snapshot(path: Path, *, reassess: bool) -> Snapshot:
    data = _load_json(path, "snapshot")
    try:
        snapshot = Snapshot.model_validate(data)
    except ValidationError as error:
        typer.echo(f"Invalid snapshot in {path}: {error.error_count()} problem(s)")
        raise typer.Exit(code=1) from error
    if reassess:
        snapshot.safety.current_risk = assess_risk(snapshot.selection, snapshot.safety.limits)
    return snapshot


def _open_memory_repository(config_data: Dict[str, Any]) -> SqliteMemoryRepository:
    try:
        return SqliteMemoryRepository.from_config(config_data)
    except OSError as error:
        typer.echo(f"Unable to open memory database: {error}")
        raise typer.Exit(code=1) from error


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=False))


def _render_todos(todos: List[Any]) -> None:
    if not todos:
        typer.echo("No tasks in history.")
        return
    for index, task in enumerate(todos):
        marker = STATUS_MARKERS.get(task.status, "?")
        typer.echo(f"{index:>3} [{marker}] {task.text} ({task.status.value})")


@app.command()
def init(
    config: str = _config_option(),
    name: str = typer.Option("", "--name", help="Project name recorded in the config."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file."),
) -> None:
    """Write a default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Config already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)

    config_data = copy_config_template()
    config_data["project"]["name"] = name
    write_config(config_path, config_data)
    typer.echo(f"Wrote configuration to {config_path}")


@app.command()
def todos(
    history: Path = typer.Argument(..., help="Conversation history (JSON array or JSONL)."),
    as_json: bool = typer.Option(False, "--json", help="Print the task list as JSON."),
) -> None:
    """Show the task list reconstructed from history."""
    tasks = reconstruct(_load_history(history))
    if as_json:
        _echo_json({"todos": [task.to_wire() for task in tasks]})
        return
    _render_todos(tasks)


@app.command("update-todos")
def update_todos_command(
    history: Path = typer.Argument(..., help="Conversation history (JSON array or JSONL)."),
    new: Optional[List[str]] = typer.Option(None, "--new", help="Task text to add (repeatable)."),
    in_progress: Optional[List[int]] = typer.Option(None, "--in-progress", help="Index to mark in progress."),
    done: Optional[List[int]] = typer.Option(None, "--done", help="Index to mark done."),
    clear_done: bool = typer.Option(False, "--clear-done", help="Drop previously completed tasks."),
    insert_at: Optional[int] = typer.Option(None, "--insert-at", help="Insert position for new tasks."),
) -> None:
    """Apply a task-list mutation and print the tool output to append to history."""
    update = TodoUpdate(
        new=list(new or []),
        in_progress=list(in_progress or []),
        done=list(done or []),
        clear_previously_done=clear_done,
        insert_at=insert_at,
    )
    _echo_json(update_todos(_load_history(history), update))


@app.command()
def validate(
    plan: Path = typer.Argument(..., help="Plan JSON file (bare plan or {plan, summary})."),
    snapshot: Path = typer.Argument(..., help="Snapshot JSON file."),
    reassess: bool = typer.Option(
        False,
        "--reassess/--no-reassess",
        help="Recompute the snapshot's risk from its selection before validating.",
    ),
) -> None:
    """Validate a plan against a snapshot and print the verdict."""
    verdict = BasicPlanValidator().validate(_load_plan(plan), _load_snapshot(snapshot, reassess=reassess))
    _echo_json(verdict.to_wire())
    if not verdict.is_valid:
        raise typer.Exit(code=2)


@app.command()
def execute(
    plan: Path = typer.Argument(..., help="Plan JSON file (bare plan or {plan, summary})."),
    snapshot: Path = typer.Argument(..., help="Snapshot JSON file."),
    history: Path = typer.Option(..., "--history", help="Conversation history holding the approval."),
    mode: str = typer.Option("dry-run", "--mode", help="dry-run or apply."),
    require_validation: bool = typer.Option(
        True,
        "--validate/--no-validate",
        help="Validate the plan before executing it.",
    ),
    reassess: bool = typer.Option(
        True,
        "--reassess/--no-reassess",
        help="Recompute the snapshot's risk from its selection before validating.",
    ),
    config: str = _config_option(),
) -> None:
    """Execute an approved plan; refuses unless history records an approval."""
    if mode not in EXECUTION_MODES:
        raise typer.BadParameter(f"Mode must be one of: {', '.join(EXECUTION_MODES)}")

    check = require_approval(_load_history(history))
    if not check.approved:
        typer.echo(f"Refusing to execute: {check.reason}")
        raise typer.Exit(code=1)

    config_data = _load_runtime_config(config)
    max_entries = int(section(config_data, "memory").get("max_entries") or MAX_MEMORY_ENTRIES)
    loaded_plan = _load_plan(plan)
    loaded_snapshot = _load_snapshot(snapshot, reassess=reassess)

    with _open_memory_repository(config_data) as repository:
        engine = ExecutionEngine(memory_updater=MemoryUpdater(repository, max_entries=max_entries))
        result = engine.execute(
            loaded_plan,
            loaded_snapshot,
            mode=mode,  # type: ignore[arg-type]
            require_validation=require_validation,
        )

    _echo_json(result.to_dict())
    if not result.ok:
        raise typer.Exit(code=2)


@app.command("approval")
def approval_status(
    history: Path = typer.Argument(..., help="Conversation history (JSON array or JSONL)."),
) -> None:
    """Report whether the latest plan has been approved."""
    check = require_approval(_load_history(history))
    typer.echo(("approved: " if check.approved else "blocked: ") + check.reason)
    if check.approved:
        _render_todos(check.todos)


@app.command("latest-plan")
def latest_plan_command(
    history: Path = typer.Argument(..., help="Conversation history (JSON array or JSONL)."),
) -> None:
    """Print the newest plan proposal found in history."""
    proposal = latest_plan(_load_history(history))
    if proposal is None:
        typer.echo("No plan proposal found in history.")
        raise typer.Exit(code=1)
    _echo_json({"kind": proposal.kind, "summary": proposal.summary, "plan": proposal.plan.to_wire()})


@app.command("resolve-handle")
def resolve_handle(
    history: Path = typer.Argument(..., help="Conversation history (JSON array or JSONL)."),
    handle: str = typer.Argument(..., help="Handle returned by the propose-email tool."),
) -> None:
    """Look up the draft email a handle refers to."""
    proposal = resolve(
        _load_history(history),
        handle,
        tool_names=PROPOSE_EMAIL_TOOL_NAMES,
        schema=ProposedEmail,
        handle_field="email_handle",
        consumed_by=SEND_EMAIL_TOOL_NAMES,
    )
    if proposal is None:
        typer.echo(f"No unsent proposal found for handle {handle}.")
        raise typer.Exit(code=1)
    _echo_json(proposal.to_wire())


@app.command()
def memory(
    owner: str = typer.Argument(..., help="Document or session id owning the memory."),
    config: str = _config_option(),
) -> None:
    """Print the persisted memory for a document."""
    config_data = _load_runtime_config(config)
    with _open_memory_repository(config_data) as repository:
        record = repository.load(owner)
    _echo_json(record.to_wire())


if __name__ == "__main__":
    app()
