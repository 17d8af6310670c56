"""CLI entry point for keeperlog."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich import print as rprint
from rich.logging import RichHandler
from rich.table import Table as RichTable

from keeperlog.activity import last_export, read_activity, record_activity
from keeperlog.badges import badge_progress
from keeperlog.competencies import (
    add_custom_competency,
    rename_competency,
    reset_competencies,
    seed_competencies,
    set_confidence,
    sorted_competencies,
    toggle_competency,
)
from keeperlog.config import Config
from keeperlog.errors import KeeperLogError
from keeperlog.exchange.bundle import default_backup_name, export_bundle, load_bundle, restore_bundle
from keeperlog.exchange.csv_codec import export_csv_file, import_csv_file
from keeperlog.profile import ProfileStore
from keeperlog.report import build_report
from keeperlog.scoring import filter_progress, overall_coverage, score_competencies, status_counts
from keeperlog.sessions import (
    active_prompts,
    add_capture,
    complete_session,
    delete_capture,
    delete_session,
    format_duration,
    needs_export_reminder,
    start_session,
    total_stats,
    weekly_stats,
)
from keeperlog.storage.repository import Repository

app = typer.Typer(help="Placement logbook for animal care students.")

TIER_COLORS = {"gold": "yellow", "silver": "white", "bronze": "dark_orange", "none": "dim"}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    config = Config.load()
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.logging_level,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )


def _db_path(db_path: str | None) -> Path:
    return Path(db_path) if db_path else Config.load().db_path


def _profile_store(profile_path: str | None = None) -> ProfileStore:
    return ProfileStore(Path(profile_path) if profile_path else Config.load().profile_path)


@contextmanager
def _store(db_path: str | None, seed: bool = True) -> Iterator[Repository]:
    """Open the repository and turn typed errors into a red message and exit code 1.

    Opening also installs or tops up the default competencies (never raises).
    """
    repo = Repository(_db_path(db_path))
    try:
        repo.open()
        if seed:
            seed_competencies(repo)
        yield repo
    except (KeeperLogError, ValueError) as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    finally:
        repo.close()


def _resolve_session(repo: Repository, session_id: int | None) -> int:
    if session_id is not None:
        return session_id
    active = repo.sessions.active()
    if active is None:
        rprint("[red]No active session. Start one with 'keeperlog start'.[/red]")
        raise typer.Exit(1)
    return active.id


DB_OPTION = typer.Option(None, "--db-path", help="Database file path (default: KEEPERLOG_DB_PATH)")


@app.command()
def init(
    name: str = typer.Option(None, help="Student name for reports"),
    qualification: str = typer.Option(None, help="Qualification being studied"),
    db_path: str = DB_OPTION,
) -> None:
    """Create the database and install the default competencies."""
    config = Config.load()
    issues = config.validate()
    if issues:
        for issue in issues:
            rprint(f"[red]Config error: {issue}[/red]")
        raise typer.Exit(1)

    with _store(db_path, seed=False) as repo:
        if seed_competencies(repo):
            rprint("Default competencies installed")
        changes = {k: v for k, v in {"name": name, "qualification": qualification}.items() if v}
        if changes:
            _profile_store().update(**changes)
        rprint(f"[green bold]keeperlog initialized at {repo.db_path}[/green bold]")
        rprint(f"  {repo.competencies.count()} competencies available")


@app.command()
def profile(
    name: str = typer.Option(None, help="Student name"),
    qualification: str = typer.Option(None, help="Qualification being studied"),
    reflection_length: str = typer.Option(None, help="Reflection form: short or standard"),
) -> None:
    """Show or update the student profile."""
    store = _profile_store()
    changes = {
        k: v
        for k, v in {
            "name": name,
            "qualification": qualification,
            "reflectionLength": reflection_length,
        }.items()
        if v is not None
    }
    try:
        data = store.update(**changes) if changes else store.load()
    except (KeeperLogError, ValueError) as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    if not data:
        rprint("No profile saved yet.")
        return
    for key, value in data.items():
        rprint(f"  {key}: {value}")


@app.command()
def start(
    facility: str = typer.Argument(help="Facility name, e.g. 'Taronga Zoo'"),
    supervisor: str = typer.Option(None, help="Supervisor name"),
    role: str = typer.Option("Assisted", help="Your role: Observed, Assisted, Performed"),
    area: str = typer.Option(None, help="Section or area worked in"),
    db_path: str = DB_OPTION,
) -> None:
    """Start a placement session."""
    with _store(db_path) as repo:
        session_id = start_session(repo, facility, supervisor=supervisor, role=role, area=area)
        rprint(f"[green]Session {session_id} started at {facility}[/green]")


@app.command()
def capture(
    content: str = typer.Argument(help="Note text"),
    capture_type: str = typer.Option("text", "--type", help="text, observation, photo or voice"),
    tag: list[str] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
    media: str = typer.Option(None, help="Media data URL or file reference"),
    include_in_export: bool = typer.Option(
        None, "--include-in-export/--private", help="Allow a photo into reports"
    ),
    session_id: int = typer.Option(None, "--session", help="Session id (default: active)"),
    db_path: str = DB_OPTION,
) -> None:
    """Add a capture to the active session."""
    with _store(db_path) as repo:
        sid = _resolve_session(repo, session_id)
        capture_id = add_capture(
            repo, sid, capture_type, content=content, tags=tag or [],
            media_url=media, include_in_export=include_in_export,
        )
        rprint(f"Capture {capture_id} added to session {sid}")


@app.command("capture-delete")
def capture_delete(
    capture_id: int = typer.Argument(help="Capture id"),
    db_path: str = DB_OPTION,
) -> None:
    """Remove a single capture."""
    with _store(db_path) as repo:
        delete_capture(repo, capture_id)
        rprint(f"Capture {capture_id} deleted")


@app.command()
def finish(
    answer: list[str] = typer.Option(None, "--answer", "-a", help="Reflection answers in prompt order"),
    competency: list[str] = typer.Option(None, "--competency", "-c", help="Competency practised"),
    supervisor_note: str = typer.Option(None, help="Supervisor feedback"),
    duration: int = typer.Option(None, help="Duration in minutes (default: since start)"),
    session_id: int = typer.Option(None, "--session", help="Session id (default: active)"),
    db_path: str = DB_OPTION,
) -> None:
    """Reflect on and complete a session."""
    with _store(db_path) as repo:
        prompts = active_prompts(_profile_store().load())
        sid = _resolve_session(repo, session_id)
        if answer:
            answers = dict(zip(prompts, answer))
        else:
            answers = {p: typer.prompt(p, default="", show_default=False) for p in prompts}
        session = complete_session(
            repo, sid,
            answers=answers,
            competencies=competency or None,
            supervisor_note=supervisor_note,
            duration_minutes=duration,
            prompts=prompts,
        )
        rprint(
            f"[green]Session {sid} completed[/green] "
            f"({format_duration(session.duration_minutes)} at {session.facility})"
        )


@app.command()
def sessions(
    limit: int = typer.Option(20, help="Number of sessions to show"),
    db_path: str = DB_OPTION,
) -> None:
    """List recent sessions."""
    with _store(db_path) as repo:
        rows = repo.sessions.newest(limit)
        if not rows:
            rprint("No sessions yet.")
            return
        table = RichTable("ID", "Date", "Facility", "Role", "Duration", "Status")
        for s in rows:
            table.add_row(
                str(s.id), f"{s.date:%Y-%m-%d}", s.facility, s.role or "-",
                format_duration(s.duration_minutes or 0), s.status,
            )
        rprint(table)


@app.command("delete-session")
def delete_session_command(
    session_id: int = typer.Argument(help="Session id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    db_path: str = DB_OPTION,
) -> None:
    """Delete a session and its captures."""
    if not yes:
        typer.confirm(f"Delete session {session_id} and all its captures?", abort=True)
    with _store(db_path) as repo:
        delete_session(repo, session_id)
        rprint(f"Session {session_id} deleted")


@app.command()
def skills(
    view: str = typer.Option("all", help="all, gaps, improving or strong"),
    search: str = typer.Option(None, help="Filter by name or category"),
    db_path: str = DB_OPTION,
) -> None:
    """Show competency scores."""
    with _store(db_path) as repo:
        progress = score_competencies(
            repo.competencies.all(), repo.sessions.all(), repo.captures.all()
        )
        counts = status_counts(progress)
        rprint(f"[bold]Overall coverage: {overall_coverage(progress)}%[/bold]")
        rprint("  " + ", ".join(f"{status}: {n}" for status, n in counts.items()))

        table = RichTable("Competency", "Score", "Status", "Sessions", "Last evidence")
        for item in filter_progress(progress, view, search):
            s = item.score
            last = f"{s.last_evidence:%Y-%m-%d}" if s.last_evidence else "-"
            table.add_row(item.competency.code, str(s.score), s.status, str(s.session_count), last)
        rprint(table)


@app.command()
def badges(db_path: str = DB_OPTION) -> None:
    """Show achievement badges."""
    with _store(db_path) as repo:
        progress = score_competencies(
            repo.competencies.all(), repo.sessions.all(), repo.captures.all()
        )
        for status in badge_progress(progress):
            color = TIER_COLORS[status.tier]
            rprint(
                f"  [{color}]{status.badge.name:<20} {status.tier:<7}[/{color}] "
                f"{status.score:>3}  {status.badge.description}"
            )


@app.command()
def stats(db_path: str = DB_OPTION) -> None:
    """Show logbook statistics."""
    with _store(db_path) as repo:
        s = repo.get_stats()
        week = weekly_stats(repo)
        total = total_stats(repo)
        rprint("[bold]keeperlog statistics:[/bold]")
        rprint(f"  This week:     {week.count} sessions, {week.hours}h")
        rprint(f"  All time:      {total.count} sessions, {format_duration(total.minutes)}")
        rprint(f"  Completed:     {s['completed_sessions']}")
        rprint(f"  Captures:      {s['total_captures']} ({s['photo_captures']} photos)")
        rprint(f"  Competencies:  {s['active_competencies']} active of {s['competencies']}")
        if s["legacy_logs"]:
            rprint(f"  Legacy logs:   {s['legacy_logs']}")

        if needs_export_reminder(s["total_sessions"], last_export()):
            rprint("\n[yellow]You have unsaved progress. Run 'keeperlog backup'.[/yellow]")


@app.command()
def competencies(
    show_all: bool = typer.Option(False, "--all", help="Include inactive competencies"),
    db_path: str = DB_OPTION,
) -> None:
    """List competencies."""
    with _store(db_path) as repo:
        rows = sorted_competencies(repo.competencies.all())
        table = RichTable("ID", "Competency", "Category", "Active", "Confidence")
        for c in rows:
            if not show_all and not c.active:
                continue
            table.add_row(
                str(c.id), c.code, c.category, "yes" if c.active else "no",
                str(c.confidence) if c.confidence is not None else "-",
            )
        rprint(table)


@app.command("competency-add")
def competency_add(
    code: str = typer.Argument(help="Competency name"),
    description: str = typer.Option("", help="Short description"),
    db_path: str = DB_OPTION,
) -> None:
    """Add a custom competency."""
    with _store(db_path) as repo:
        competency_id = add_custom_competency(repo, code, description)
        rprint(f"Competency {competency_id} added")


@app.command("competency-toggle")
def competency_toggle(
    competency_id: int = typer.Argument(help="Competency id"),
    db_path: str = DB_OPTION,
) -> None:
    """Activate or deactivate a competency."""
    with _store(db_path) as repo:
        active = toggle_competency(repo, competency_id)
        rprint(f"Competency {competency_id} is now {'active' if active else 'inactive'}")


@app.command("competency-rename")
def competency_rename(
    competency_id: int = typer.Argument(help="Competency id"),
    code: str = typer.Argument(help="New name"),
    description: str = typer.Option(None, help="New description"),
    db_path: str = DB_OPTION,
) -> None:
    """Rename a competency."""
    with _store(db_path) as repo:
        c = rename_competency(repo, competency_id, code, description)
        rprint(f"Competency {competency_id} renamed to {c.code}")


@app.command("competency-confidence")
def competency_confidence(
    competency_id: int = typer.Argument(help="Competency id"),
    value: int = typer.Argument(help="Self-rating 0-5"),
    db_path: str = DB_OPTION,
) -> None:
    """Rate your confidence in a competency."""
    with _store(db_path) as repo:
        c = set_confidence(repo, competency_id, value)
        rprint(f"{c.code}: confidence {c.confidence}")


@app.command("competency-reset")
def competency_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    db_path: str = DB_OPTION,
) -> None:
    """Replace all competencies with the defaults."""
    if not yes:
        typer.confirm("Remove custom competencies and restore the defaults?", abort=True)
    with _store(db_path) as repo:
        count = reset_competencies(repo)
        rprint(f"{count} default competencies restored")


@app.command()
def backup(
    output: str = typer.Option(None, "--output", "-o", help="Backup file path"),
    db_path: str = DB_OPTION,
) -> None:
    """Write a full JSON backup."""
    path = Path(output) if output else Path(default_backup_name())
    with _store(db_path) as repo:
        bundle = export_bundle(repo, _profile_store(), path)
        rprint(f"[green]Backup written to {path}[/green] ({len(bundle['sessions'])} sessions)")


@app.command()
def restore(
    path: Path = typer.Argument(help="Backup file"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    db_path: str = DB_OPTION,
) -> None:
    """Replace all data with a backup."""
    if not path.exists():
        rprint(f"[red]Backup not found at {path}[/red]")
        raise typer.Exit(1)
    if not yes:
        typer.confirm("This replaces all current data. Continue?", abort=True)
    with _store(db_path) as repo:
        restore_bundle(repo, _profile_store(), load_bundle(path))
        s = repo.get_stats()
        rprint(
            f"[green]Restored[/green] {s['total_sessions']} sessions, "
            f"{s['total_captures']} captures, {s['competencies']} competencies"
        )


@app.command("export-csv")
def export_csv(
    output: str = typer.Option("keeperlog_sessions.csv", "--output", "-o", help="CSV file path"),
    db_path: str = DB_OPTION,
) -> None:
    """Export sessions as CSV."""
    with _store(db_path) as repo:
        count = export_csv_file(repo, Path(output))
        rprint(f"[green]{count} sessions exported to {output}[/green]")


@app.command("import-csv")
def import_csv(
    path: Path = typer.Argument(help="CSV file"),
    db_path: str = DB_OPTION,
) -> None:
    """Import sessions from CSV (adds to existing sessions)."""
    if not path.exists():
        rprint(f"[red]CSV not found at {path}[/red]")
        raise typer.Exit(1)
    with _store(db_path) as repo:
        result = import_csv_file(repo, path)
        rprint(f"[green]Imported {result.imported} sessions[/green]")
        for warning in result.warnings:
            rprint(f"  [yellow]{warning}[/yellow]")


@app.command()
def report(
    output: str = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
    db_path: str = DB_OPTION,
) -> None:
    """Generate a Markdown report for your assessor."""
    with _store(db_path) as repo:
        text = build_report(repo, _profile_store().load())
        if output:
            Path(output).write_text(text, encoding="utf-8")
            rprint(f"[green]Report written to {output}[/green]")
        else:
            typer.echo(text)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    db_path: str = DB_OPTION,
) -> None:
    """Delete all sessions, captures, competencies and logs."""
    if not yes:
        typer.confirm("Delete ALL data? This cannot be undone.", abort=True)
    with _store(db_path) as repo:
        before = repo.get_stats()
        repo.clear_all()
        record_activity("clear", {"session_count": before["total_sessions"]})
        rprint("[green]All data cleared[/green]")


@app.command()
def activity(
    limit: int = typer.Option(20, help="Number of entries"),
    action: str = typer.Option(None, help="Filter by action"),
) -> None:
    """Show recent backup, restore, import and export activity."""
    entries = read_activity(limit=limit, action=action)
    if not entries:
        rprint("No activity recorded yet.")
        return
    for entry in entries:
        status = f"[red]failed: {entry['error']}[/red]" if entry.get("error") else "[green]ok[/green]"
        rprint(f"  {entry['timestamp'][:19]}  {entry['action']:<12} {status}  {entry.get('details', {})}")


if __name__ == "__main__":
    app()
