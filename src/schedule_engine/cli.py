"""
Command-line interface for the schedule engine.
"""

import asyncio
import logging
import mimetypes
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from schedule_engine.annotations import NoteComposer
from schedule_engine.annotations import notes_for_display
from schedule_engine.dates import date_key
from schedule_engine.db import LocalStore
from schedule_engine.db import StoreEventSource
from schedule_engine.db import query_status
from schedule_engine.editor import NEW_CATEGORY
from schedule_engine.editor import TaskEditor
from schedule_engine.models import DEFAULT_CONFIG
from schedule_engine.models import DEFAULT_STATE_DB
from schedule_engine.models import EngineConfig
from schedule_engine.models import ScheduleEngineError
from schedule_engine.models import Session
from schedule_engine.models import Task
from schedule_engine.models import ViewMode
from schedule_engine.schedule import ScheduleAggregator
from schedule_engine.tasks import TaskIndex
from schedule_engine.tasks import fetch_projects
from schedule_engine.tasks import fetch_task_index
from schedule_engine.tasks import fetch_users
from schedule_engine.tasks import project_label

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Unified schedule: merged calendar events, due tasks and task notes.",
)
note_app = typer.Typer(no_args_is_help=True, help="Add or delete task notes.")
task_app = typer.Typer(no_args_is_help=True, help="Edit or delete tasks.")
app.add_typer(note_app, name="note")
app.add_typer(task_app, name="task")

console = Console()

_CONFIG_SECTION = "schedule-engine"


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    db_path: Path | None = None
    user_id: str | None = None
    timezone: str | None = None
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    db: Annotated[
        Path | None,
        typer.Option("--db", help=f"Local store path (default: {DEFAULT_STATE_DB})"),
    ] = None,
    user: Annotated[
        str | None,
        typer.Option("--user", "-u", help="Acting user id (overrides config)"),
    ] = None,
    timezone: Annotated[
        str | None,
        typer.Option("--timezone", "--tz", help="IANA time zone (default: system local)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.db_path = db
    state.user_id = user
    state.timezone = timezone
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if _CONFIG_SECTION not in parser:
        return {}
    return dict(parser[_CONFIG_SECTION])


def load_engine_config(config_path: Path, timezone: str | None = None) -> EngineConfig:
    """Build an EngineConfig from the INI file; unknown keys are ignored."""
    values = _load_config_file(config_path)
    cfg = EngineConfig()
    for name in (
        "hour_height",
        "grid_offset",
        "min_event_height",
        "week_cell_budget",
        "month_cell_budget",
        "mention_limit",
        "max_image_bytes",
        "max_image_dimension",
        "image_quality",
    ):
        if name in values:
            try:
                setattr(cfg, name, int(values[name]))
            except ValueError:
                raise typer.BadParameter(f"{name} must be an integer, got {values[name]!r}")
    if "noise_phrases" in values:
        phrases = [p.strip().lower() for p in values["noise_phrases"].split(",")]
        cfg.noise_phrases = tuple(p for p in phrases if p)
    if "admin_roles" in values:
        roles = [r.strip() for r in values["admin_roles"].split(",")]
        cfg.admin_roles = tuple(r for r in roles if r)
    if "state_db" in values:
        cfg.state_db_path = Path(values["state_db"]).expanduser()
    cfg.timezone = timezone or values.get("timezone") or None
    return cfg


def _engine_config() -> EngineConfig:
    cfg = load_engine_config(state.config_path, state.timezone)
    if state.db_path:
        cfg.state_db_path = state.db_path
    return cfg


def _user_id() -> str:
    user_id = state.user_id or _load_config_file(state.config_path).get("user_id")
    if not user_id:
        console.print(
            "[bold red]Error:[/] No user selected. Pass [cyan]--user[/] or set "
            "[cyan]user_id[/] in the config file."
        )
        raise typer.Exit(1)
    return user_id


async def _session(store: LocalStore) -> Session:
    user_id = _user_id()
    for user in await fetch_users(store):
        if user.id == user_id:
            return Session(user_id=user.id, user_name=user.name, role=user.role)
    raise ScheduleEngineError(f"User {user_id} not found in the local store")


def _run(coro):
    """Run a coroutine, mapping engine errors onto CLI exits."""
    try:
        return asyncio.run(coro)
    except ScheduleEngineError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None


def _parse_date(value: str | None) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid date {value!r} (expected YYYY-MM-DD)")


async def _open_task(store: LocalStore, session: Session, task_id: str) -> tuple[Task, TaskIndex]:
    index = await fetch_task_index(store, session.user_id)
    task = index.get(task_id)
    if task is None:
        raw = await store.get_task(task_id)
        if raw is None:
            raise ScheduleEngineError(f"Task {task_id} not found")
        task = Task.from_dict(raw)
    return task, index


def _task_line(task: Task) -> Text:
    line = Text(task.title, style="bold")
    line.append(f"  [{task.priority}]", style="yellow" if task.priority == "High" else "dim")
    line.append(f"  {task.status}", style="cyan")
    return line


# ---------------------------------------------------------------------------
# Subcommands: init / seed / status
# ---------------------------------------------------------------------------


@app.command()
def init() -> None:
    """Create the local store if it does not exist."""
    cfg = _engine_config()
    with LocalStore(cfg.state_db_path):
        pass
    console.print(f"[green]Local store ready:[/] {cfg.state_db_path}")


@app.command()
def seed(
    fixture: Annotated[Path, typer.Argument(help="JSON file with users/projects/tasks/events")],
) -> None:
    """Load fixture data into the local store."""
    if not fixture.exists():
        console.print(f"[bold red]Error:[/] File not found: {fixture}")
        raise typer.Exit(1)
    cfg = _engine_config()
    with LocalStore(cfg.state_db_path) as store:
        counts = store.seed_from_json(fixture)

    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    for name, count in counts.items():
        results.add_row(name.capitalize(), str(count))
    console.print(Panel(results, title="[bold]Seeded[/bold]", expand=False))


@app.command()
def status() -> None:
    """Show configuration and local store summary."""
    cfg = _engine_config()
    config_exists = state.config_path.exists()
    db_exists = cfg.state_db_path.exists()

    info = Text()
    info.append("  Config:    ", style="bold")
    info.append(str(state.config_path) + " ")
    info.append("✓" if config_exists else "(not found)", style="green" if config_exists else "red")
    info.append("\n  Store:     ", style="bold")
    info.append(str(cfg.state_db_path) + " ")
    info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")
    info.append("\n  Time zone: ", style="bold")
    info.append(cfg.timezone or "system local")
    console.print(Panel(info, title="[bold]Schedule Engine — Status[/bold]"))

    counts = query_status(cfg.state_db_path)
    if not counts:
        console.print(
            "[yellow]No local store yet — run[/] [cyan]schedule-engine init[/] "
            "[yellow]to create it.[/]"
        )
        return
    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(Panel(table, title="[bold]Local store[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommands: schedule / today
# ---------------------------------------------------------------------------


@app.command()
def schedule(
    view: Annotated[
        ViewMode, typer.Option("--view", "-m", help="Granularity of the view")
    ] = ViewMode.WEEKLY,
    on: Annotated[
        str | None, typer.Option("--date", "-d", help="Reference date YYYY-MM-DD (default: today)")
    ] = None,
    no_tasks: Annotated[bool, typer.Option("--no-tasks", help="Hide tasks")] = False,
    no_events: Annotated[bool, typer.Option("--no-events", help="Hide events")] = False,
    no_provider: Annotated[
        bool, typer.Option("--no-provider", help="Treat the external calendar as disconnected")
    ] = False,
) -> None:
    """Show the merged schedule for a day, week or month."""
    cfg = _engine_config()
    reference = _parse_date(on)

    async def _collect():
        with LocalStore(cfg.state_db_path) as store:
            session = await _session(store)
            provider = None if no_provider else StoreEventSource(store, "google")
            aggregator = ScheduleAggregator(provider, StoreEventSource(store, "firestore"), cfg)
            index = await fetch_task_index(store, session.user_id)
            await aggregator.refresh(session, reference, view)
            return aggregator, index

    aggregator, index = _run(_collect())
    snapshot = aggregator.snapshot
    title = (
        f"[bold]{view.value.capitalize()}[/bold] "
        f"{date_key(snapshot.range.start)} → {date_key(snapshot.range.end)}"
    )

    if view is ViewMode.DAILY:
        table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
        table.add_column("Time")
        table.add_column("Event")
        table.add_column("Top", justify="right")
        table.add_column("Height", justify="right")
        if not no_events:
            for box in aggregator.daily_layout():
                table.add_row(
                    f"{box.event.start:%H:%M}–{box.event.end:%H:%M}",
                    box.event.title,
                    f"{box.top:.0f}",
                    f"{box.height:.0f}",
                )
        console.print(Panel(table, title=title, expand=False))
        if not no_tasks:
            _print_deliverables(index, reference)
        return

    table = Table(show_header=True, header_style="bold cyan", padding=(0, 1))
    table.add_column("Day")
    table.add_column("Items")
    for cell in aggregator.grid_layout(index, show_tasks=not no_tasks, show_events=not no_events):
        items = Text()
        for task in cell.tasks:
            items.append("☐ " + task.title + "\n", style="green")
        for event in cell.events:
            items.append(f"{event.start:%H:%M} {event.title}\n", style="magenta")
        if cell.has_more:
            items.append(f"+{cell.overflow} more", style="dim")
        style = "dim" if view is ViewMode.MONTHLY and cell.day.month != reference.month else ""
        table.add_row(Text(f"{cell.day:%a %d %b}", style=style), items)
    console.print(Panel(table, title=title, expand=False))


def _print_deliverables(index: TaskIndex, day: date) -> None:
    due = index.deliverables(day)
    if not due:
        console.print(f"[dim]No deliverables due {date_key(day)}.[/dim]")
        return
    body = Text()
    for task in due:
        body.append_text(_task_line(task))
        body.append("\n")
    console.print(Panel(body, title=f"[bold]Due {date_key(day)}[/bold]", expand=False))


@app.command()
def today(
    on: Annotated[
        str | None, typer.Option("--date", "-d", help="Date YYYY-MM-DD (default: today)")
    ] = None,
) -> None:
    """List the deliverables due on a day."""
    cfg = _engine_config()
    day = _parse_date(on)

    async def _collect():
        with LocalStore(cfg.state_db_path) as store:
            session = await _session(store)
            return await fetch_task_index(store, session.user_id)

    _print_deliverables(_run(_collect()), day)


# ---------------------------------------------------------------------------
# Subcommands: note add / note delete / note list
# ---------------------------------------------------------------------------


@note_app.command("list")
def note_list(task_id: Annotated[str, typer.Argument(help="Task id")]) -> None:
    """Show a task's notes, newest first."""
    cfg = _engine_config()

    async def _collect():
        with LocalStore(cfg.state_db_path) as store:
            session = await _session(store)
            task, _ = await _open_task(store, session, task_id)
            projects = await fetch_projects(store, session.user_id)
            return task, project_label(task, projects)

    task, label = _run(_collect())
    header = Text(task.title, style="bold")
    if label:
        header.append(f"  ({label})", style="dim")
    console.print(header)
    for note in notes_for_display(task):
        line = Text(f"[{note.id}] ", style="dim")
        line.append(note.user_name, style="bold cyan")
        line.append(f" {note.created_at}\n", style="dim")
        line.append(note.text or "")
        if note.image_name:
            line.append(f"\n  📎 {note.image_name}", style="yellow")
        console.print(line)


@note_app.command("add")
def note_add(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    text: Annotated[str, typer.Argument(help="Note text; @Full Name mentions notify users")] = "",
    image: Annotated[Path | None, typer.Option("--image", "-i", help="Attach an image")] = None,
) -> None:
    """Add a note to a task."""
    cfg = _engine_config()

    async def _add():
        with LocalStore(cfg.state_db_path) as store:
            session = await _session(store)
            task, index = await _open_task(store, session, task_id)
            composer = NoteComposer(
                session,
                task,
                store,
                notifier=store,
                users=await fetch_users(store),
                index=index,
                config=cfg,
            )
            composer.set_text(text)
            if image is not None:
                mime_type = mimetypes.guess_type(image.name)[0] or ""
                if not await composer.attach_image(image.read_bytes(), image.name, mime_type):
                    return None, composer.attachment_error
            result = await composer.submit()
            await composer.wait_for_notifications()
            return result, None

    result, attach_error = _run(_add())
    if attach_error:
        console.print(f"[bold red]Image rejected:[/] {attach_error}")
        raise typer.Exit(1)
    if not result.ok:
        console.print(f"[bold red]Note not saved:[/] {result.error}")
        raise typer.Exit(1)
    console.print(f"[green]Note added[/] [dim]{result.value.id}[/dim]")


@note_app.command("delete")
def note_delete(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    note_id: Annotated[str, typer.Argument(help="Note id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Delete one of a task's notes (author or administrator only)."""
    cfg = _engine_config()

    async def _delete():
        with LocalStore(cfg.state_db_path) as store:
            session = await _session(store)
            task, index = await _open_task(store, session, task_id)
            note = next((n for n in task.notes if n.id == note_id), None)
            if note is None:
                raise ScheduleEngineError(f"Note {note_id} not found on task {task_id}")
            composer = NoteComposer(session, task, store, index=index, config=cfg)
            gate = composer.request_delete(note)
            if not gate.ok:
                return gate
            if not yes and not typer.confirm("Delete this note?"):
                composer.cancel_delete()
                return None
            return await composer.confirm_delete()

    result = _run(_delete())
    if result is None:
        console.print("[dim]Cancelled.[/dim]")
        return
    if not result.ok:
        console.print(f"[bold red]Note not deleted:[/] {result.error}")
        raise typer.Exit(1)
    console.print("[green]Note deleted[/]")


# ---------------------------------------------------------------------------
# Subcommands: task edit / task delete
# ---------------------------------------------------------------------------


@task_app.command("edit")
def task_edit(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    title: Annotated[str | None, typer.Option(help="New title")] = None,
    category: Annotated[str | None, typer.Option(help="Category (free text allowed)")] = None,
    description: Annotated[str | None, typer.Option(help="Description")] = None,
    due: Annotated[str | None, typer.Option(help="Due date YYYY-MM-DD or 'ongoing'")] = None,
    priority: Annotated[str | None, typer.Option(help="Low, Medium or High")] = None,
    task_status: Annotated[str | None, typer.Option("--status", help="Task status")] = None,
    assignee: Annotated[str | None, typer.Option(help="Assignee user id")] = None,
    project: Annotated[str | None, typer.Option(help="Linked project id")] = None,
) -> None:
    """Edit a task's fields."""
    cfg = _engine_config()
    changes = {
        "title": title,
        "description": description,
        "due_date": due,
        "priority": priority,
        "status": task_status,
        "assignee_id": assignee,
        "project_id": project,
    }

    async def _edit():
        with LocalStore(cfg.state_db_path) as store:
            session = await _session(store)
            task, index = await _open_task(store, session, task_id)
            editor = TaskEditor(task, store, index=index)
            editor.begin_edit()
            if category is not None:
                if category in editor.categories:
                    editor.select_category(category)
                else:
                    editor.select_category(NEW_CATEGORY)
                    editor.update(category=category)
            editor.update(**{k: v for k, v in changes.items() if v is not None})
            return await editor.save(), editor

    result, editor = _run(_edit())
    if not result.ok:
        for name, message in (editor.errors or {"error": result.error}).items():
            console.print(f"[bold red]{name}:[/] {message}")
        raise typer.Exit(1)
    console.print(f"[green]Task updated[/] [dim]{editor.task.updated_at}[/dim]")


@task_app.command("delete")
def task_delete(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Delete a task."""
    cfg = _engine_config()
    if not yes:
        typer.confirm(f"Delete task {task_id}?", abort=True)

    async def _delete():
        with LocalStore(cfg.state_db_path) as store:
            session = await _session(store)
            task, index = await _open_task(store, session, task_id)
            return await TaskEditor(task, store, index=index).delete()

    result = _run(_delete())
    if not result.ok:
        console.print(f"[bold red]Task not deleted:[/] {result.error}")
        raise typer.Exit(1)
    console.print("[green]Task deleted[/]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
