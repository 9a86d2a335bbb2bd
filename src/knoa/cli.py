"""
knoa CLI.

Provides commands for the workflow tracker:
- task: create, list, commit, progress
- session: start, end, show
- state: show, transition
- errors: hooks
- events: catalog
- workflow: init, status, feedback, resolve

Every command goes through the knoa_core adapters, so it publishes the
same events and error envelopes as library callers.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import click
import typer
from rich import box
from rich.console import Console
from rich.table import Table

from knoa import __version__
from knoa.bootstrap import Application, build_application
from knoa.config import CONFIG_DIR, CONFIG_FILE, LOG_LEVELS, KnoaConfig
from knoa.logging_setup import configure_logging
from knoa_core.errors import ApplicationError, ValidationError, is_error_envelope

app = typer.Typer(
    name="knoa",
    help="knoa - workflow tracking for AI-assisted development",
    no_args_is_help=True,
)
task_app = typer.Typer(name="task", help="Task commands", no_args_is_help=True)
session_app = typer.Typer(name="session", help="Session commands", no_args_is_help=True)
state_app = typer.Typer(name="state", help="Workflow state commands", no_args_is_help=True)
errors_app = typer.Typer(name="errors", help="Error handling commands", no_args_is_help=True)
events_app = typer.Typer(name="events", help="Event catalogue commands", no_args_is_help=True)
workflow_app = typer.Typer(
    name="workflow", help="Workflow orchestration commands", no_args_is_help=True
)

app.add_typer(task_app)
app.add_typer(session_app)
app.add_typer(state_app)
app.add_typer(errors_app)
app.add_typer(events_app)
app.add_typer(workflow_app)

# Rich console for output
console = Console()

EXIT_ERROR = 1
EXIT_VALIDATION = 2


# =============================================================================
# HELPERS
# =============================================================================


def _print_json(data: Any) -> None:
    console.print(
        json.dumps(data, indent=2, ensure_ascii=False, default=str),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def _fail(message: str, code: str | None = None, exit_code: int = EXIT_ERROR) -> None:
    """Print an error and exit."""
    console.print(f"[red]Error:[/red] {message}", highlight=False)
    if code:
        console.print(f"[dim]{code}[/dim]")
    raise typer.Exit(exit_code)


def _check(result: Any) -> Any:
    """Exit if an adapter returned an error envelope."""
    if is_error_envelope(result):
        validation = result["code"] == ValidationError.default_code
        _fail(result["message"], result["code"], EXIT_VALIDATION if validation else EXIT_ERROR)
    return result


def _application(ctx: typer.Context) -> Application:
    """Build the application on first use."""
    obj = ctx.ensure_object(dict)
    if obj.get("app") is None:
        try:
            obj["app"] = build_application(obj["config"])
        except ApplicationError as e:
            _fail(e.message, e.code)
    return obj["app"]


def _json_output(ctx: typer.Context, local: bool = False) -> bool:
    return local or bool(ctx.ensure_object(dict).get("json"))


def _run(call: Any) -> Any:
    """Await an adapter coroutine (if needed) and check its result."""
    try:
        result = asyncio.run(call) if asyncio.iscoroutine(call) else call
    except ApplicationError as e:
        _fail(e.message, e.code)
    return _check(result)


def _task_table(tasks: list[dict[str, Any]]) -> Table:
    table = Table(title="Tasks", box=box.ROUNDED)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("State", style="dim")
    table.add_column("Commits", justify="right")
    status_colors = {"completed": "green", "in_progress": "yellow", "blocked": "red"}
    for task in tasks:
        color = status_colors.get(task.get("status", ""), "white")
        table.add_row(
            task["id"],
            task.get("title", ""),
            f"[{color}]{task.get('status', '')}[/{color}]",
            f"{task.get('progress', 0)}%",
            task.get("progress_state", ""),
            str(len(task.get("commits", []))),
        )
    return table


def _print_session(session: dict[str, Any]) -> None:
    status = "[dim]ended[/dim]" if session.get("ended_at") else "[green]active[/green]"
    console.print(f"Session: [bold]{session['session_id']}[/bold] ({status})")
    console.print(f"  Started: {session.get('created_at')}")
    if session.get("ended_at"):
        console.print(f"  Ended: {session['ended_at']}")
    if session.get("previous_session_id"):
        console.print(f"  Previous: {session['previous_session_id']}")
    console.print(f"  Tasks: {', '.join(session.get('tasks', [])) or '-'}")
    console.print(f"  Commits: {len(session.get('commits', []))}")


# =============================================================================
# ROOT
# =============================================================================


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"knoa {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    project: Path = typer.Option(
        Path("."),
        "--project",
        "-p",
        help="Project directory (holds .knoa/config.yaml)",
    ),
    data_dir: Optional[Path] = typer.Option(
        None,
        "--data-dir",
        help="Override the storage root",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        click_type=click.Choice(LOG_LEVELS, case_sensitive=False),
        help="Log level",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
):
    """knoa - workflow tracking for AI-assisted development."""
    project_path = project.resolve()
    try:
        config = KnoaConfig.from_file(
            project_path / CONFIG_DIR / CONFIG_FILE, project_path=project_path
        ).apply_env()
        if data_dir is not None:
            config.storage.root = str(data_dir)
        if log_level is not None:
            config.log_level = log_level.lower()
        config.validate()
    except ApplicationError as e:
        _fail(e.message, e.code)

    configure_logging(config.log_level)
    ctx.obj = {"config": config, "json": json_output, "app": None}


# =============================================================================
# TASK COMMANDS
# =============================================================================


@task_app.command("create")
def task_create(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Task title"),
    description: str = typer.Option("", "--description", "-d", help="Task description"),
    priority: int = typer.Option(3, "--priority", help="Priority from 1 (low) to 5 (high)"),
):
    """Create a task."""
    application = _application(ctx)
    task = _run(
        application.tasks.create_task(
            {"title": title, "description": description, "priority": priority}
        ),
    )
    if _json_output(ctx):
        _print_json(task)
    else:
        console.print(f"[green]Created task[/green] [bold]{task['id']}[/bold]: {task['title']}")


@task_app.command("list")
def task_list(ctx: typer.Context):
    """List tasks."""
    application = _application(ctx)
    collection = _run(application.tasks.get_all_tasks())
    tasks = collection.get("tasks", [])
    if _json_output(ctx):
        _print_json(tasks)
        return
    if not tasks:
        console.print("[yellow]No tasks yet.[/yellow]")
        console.print("\nTo create one:")
        console.print("  [dim]knoa task create \"Write the parser\"[/dim]")
        return
    console.print(_task_table(tasks))


@task_app.command("commit")
def task_commit(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id (e.g. T001)"),
    commit_hash: str = typer.Argument(..., help="Git commit hash"),
):
    """Link a git commit to a task."""
    application = _application(ctx)
    task = _run(application.tasks.add_git_commit_to_task(task_id, commit_hash))
    if _json_output(ctx):
        _print_json(task)
    else:
        console.print(f"[green]Linked[/green] {commit_hash} to {task_id}")


@task_app.command("progress")
def task_progress(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id (e.g. T001)"),
    progress: int = typer.Argument(..., help="Progress percentage (0-100)"),
    state: str = typer.Argument(..., help="Progress state (e.g. in_development)"),
):
    """Record task progress."""
    application = _application(ctx)
    result = _run(application.tasks.update_task_progress(task_id, progress, state))
    if _json_output(ctx):
        _print_json(result)
    else:
        console.print(
            f"[green]{task_id}[/green] {result['previous_state']} -> {state} ({progress}%)"
        )


# =============================================================================
# SESSION COMMANDS
# =============================================================================


@session_app.command("start")
def session_start(
    ctx: typer.Context,
    previous: Optional[str] = typer.Option(
        None, "--previous", help="Session to hand over from (default: latest)"
    ),
):
    """Start a session."""
    application = _application(ctx)
    session = _run(application.sessions.create_new_session(previous))
    if _json_output(ctx):
        _print_json(session)
    else:
        console.print(f"[green]Started session[/green] [bold]{session['session_id']}[/bold]")
        if session["tasks"]:
            console.print(f"  Handed over: {', '.join(session['tasks'])}")


@session_app.command("end")
def session_end(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session id"),
):
    """End a session."""
    application = _application(ctx)
    session = _run(application.sessions.end_session(session_id))
    if _json_output(ctx):
        _print_json(session)
    else:
        console.print(f"[green]Ended session[/green] {session_id}")


@session_app.command("show")
def session_show(
    ctx: typer.Context,
    session_id: Optional[str] = typer.Argument(None, help="Session id (default: latest)"),
):
    """Show a session."""
    application = _application(ctx)
    if session_id is None:
        session = _run(application.sessions.get_latest_session())
    else:
        session = _run(application.sessions.get_session_by_id(session_id))

    if session is None:
        if _json_output(ctx):
            _print_json(None)
        else:
            console.print("[yellow]No session found.[/yellow]")
        raise typer.Exit(EXIT_ERROR if session_id else 0)

    if _json_output(ctx):
        _print_json(session)
    else:
        _print_session(session)


# =============================================================================
# STATE COMMANDS
# =============================================================================


@state_app.command("show")
def state_show(ctx: typer.Context):
    """Show the workflow state."""
    application = _application(ctx)
    try:
        application.load_state()
        current = application.state.get_current_state()
        history = application.state.get_state_history()
    except ApplicationError as e:
        _fail(e.message, e.code)

    if _json_output(ctx):
        _print_json({"state": current, "history": history})
        return
    console.print(f"Workflow state: [bold]{current}[/bold]")
    for entry in history[-5:]:
        console.print(f"  [dim]{entry['timestamp']}[/dim] {entry['state']}")


@state_app.command("transition")
def state_transition(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Target workflow state"),
):
    """Move the workflow to another state."""
    application = _application(ctx)
    try:
        application.load_state()
    except ApplicationError as e:
        _fail(e.message, e.code)

    entry = _check(application.state.transition_to(target))
    application.save_state()
    if _json_output(ctx):
        _print_json(entry)
    else:
        console.print(f"[green]{entry['previous_state']} -> {entry['state']}[/green]")


# =============================================================================
# WORKFLOW COMMANDS
# =============================================================================


def _workflow(ctx: typer.Context) -> Application:
    """Application with the saved workflow state restored."""
    application = _application(ctx)
    try:
        application.load_state()
    except ApplicationError as e:
        _fail(e.message, e.code)
    return application


def _parse_item(raw: str) -> dict[str, str]:
    kind, sep, description = raw.partition(":")
    if not sep or not kind.strip() or not description.strip():
        raise typer.BadParameter(f"Expected TYPE:DESCRIPTION, got {raw!r}")
    return {"type": kind.strip(), "description": description.strip()}


@workflow_app.command("init")
def workflow_init(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project id"),
    request: str = typer.Argument(..., help="The original request"),
):
    """Start a project: empty task list, first session, initialized state."""
    application = _workflow(ctx)
    result = _run(application.integration.initialize_workflow(project_id, request))
    application.save_state()
    if _json_output(ctx):
        _print_json(result)
    else:
        console.print(f"[green]Initialized[/green] [bold]{project_id}[/bold]")
        console.print(f"  Session: {result['session']['session_id']}")
        console.print(f"  State: {result['state']}")


@workflow_app.command("status")
def workflow_status(ctx: typer.Context):
    """Show the workflow state, task counts, session and pending feedback."""
    application = _workflow(ctx)
    status = _run(application.integration.get_workflow_status())
    if _json_output(ctx):
        _print_json(status)
        return

    console.print(f"Workflow state: [bold]{status['state']}[/bold]")
    project = status["project"]
    if project:
        console.print(f"Project: {project.get('id')} - {project.get('original_request', '')}")
    counts = ", ".join(f"{name} {count}" for name, count in status["task_status_counts"].items())
    console.print(f"Tasks: {status['task_count']} ({counts})")
    session = status["session"]
    if session:
        marker = "[green]active[/green]" if session["active"] else "[dim]ended[/dim]"
        console.print(f"Session: {session['session_id']} {marker}")
    console.print(f"Pending feedback: {status['pending_feedback'] or '-'}")


@workflow_app.command("feedback")
def workflow_feedback(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id (e.g. T001)"),
    items: Optional[list[str]] = typer.Option(
        None, "--item", "-i", help="Feedback item as TYPE:DESCRIPTION (repeatable)"
    ),
):
    """Open the next feedback attempt for a task."""
    application = _workflow(ctx)
    parsed = [_parse_item(raw) for raw in items or []]
    feedback = _run(application.integration.collect_feedback(task_id, {"items": parsed}))
    application.save_state()
    if _json_output(ctx):
        _print_json(feedback)
    else:
        console.print(
            f"[green]Opened feedback[/green] [bold]{feedback['id']}[/bold] "
            f"({len(feedback['items'])} items)"
        )


@workflow_app.command("resolve")
def workflow_resolve(
    ctx: typer.Context,
    feedback_id: str = typer.Argument(..., help="Feedback id (e.g. T001-1)"),
    wontfix: bool = typer.Option(False, "--wontfix", help="Close without fixing"),
    comment: str = typer.Option("", "--comment", "-m", help="Resolution comment"),
):
    """Close a feedback loop."""
    application = _workflow(ctx)
    resolution = {"status": "wontfix" if wontfix else "resolved", "comment": comment}
    feedback = _run(application.integration.resolve_feedback(feedback_id, resolution))
    application.save_state()
    if _json_output(ctx):
        _print_json(feedback)
    else:
        console.print(f"[green]{feedback_id}[/green] {feedback['status']}")


# =============================================================================
# ERRORS / EVENTS
# =============================================================================


@errors_app.command("hooks")
def errors_hooks(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    List the registered error hooks.

    Shows the pattern detectors, alert thresholds and recovery strategies
    the error handler starts with. Error counters live in the handler of a
    running process, so a one-shot CLI call has none to report.
    """
    application = _application(ctx)
    dashboard = application.core.error_handler.get_dashboard_data()
    hooks = {
        "patterns": dashboard["patterns"],
        "thresholds": dashboard["thresholds"],
        "strategies": dashboard["strategies"],
    }
    if _json_output(ctx, json_output):
        _print_json(hooks)
        return

    table = Table(title="Error Hooks", box=box.ROUNDED)
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    table.add_column("Detail", style="dim")
    for name in hooks["patterns"]:
        table.add_row("pattern", name, "")
    for threshold in hooks["thresholds"]:
        table.add_row("threshold", threshold["name"], threshold["severity"])
    for code in hooks["strategies"]["codes"]:
        table.add_row("recovery", code, "by code")
    for kind in hooks["strategies"]["kinds"]:
        table.add_row("recovery", kind, "by kind")
    if table.row_count:
        console.print(table)
    else:
        console.print("[yellow]No error hooks registered.[/yellow]")


@events_app.command("catalog")
def events_catalog(
    ctx: typer.Context,
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Filter by category"),
):
    """List known event names and their legacy aliases."""
    application = _application(ctx)
    registry = application.core.registry
    if category is not None:
        if category not in registry.list_categories():
            _fail(
                f"Unknown category: {category} "
                f"(known: {', '.join(registry.list_categories())})",
                exit_code=EXIT_VALIDATION,
            )
        definitions = registry.get_events_by_category(category)
    else:
        definitions = [registry.get_event_definition(name) for name in registry.list_events()]

    if _json_output(ctx):
        _print_json([d.to_dict() for d in definitions])
        return

    table = Table(title="Event Catalogue", box=box.ROUNDED)
    table.add_column("Event", style="cyan")
    table.add_column("Category")
    table.add_column("Legacy aliases", style="yellow")
    table.add_column("Description")
    for definition in definitions:
        table.add_row(
            definition.name,
            definition.category,
            ", ".join(definition.aliases) or "-",
            definition.description,
        )
    console.print(table)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
