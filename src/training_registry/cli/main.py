"""
Training Registry CLI

Operator command-line interface for sessions, registrations and rosters.

Usage:
    training-registry init --db training.db
    training-registry session create --title "Land Navigation" \\
        --start 2025-02-01T08:00:00Z --end 2025-02-01T12:00:00Z --capacity 20
    training-registry register --session <id> --participant p-1001
    training-registry cancel --session <id> --participant p-1001
    training-registry attend --session <id> --participant p-1001 --outcome completed
    training-registry roster --session <id> --page 2 --size 50
    training-registry roster --session <id> --all --json
    training-registry history --session <id>
"""

import json
import os
import warnings
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import typer
from typing_extensions import Annotated

from training_registry.kernel.errors import (
    LateCancellationWarning,
    RegistryError,
    RetryableError,
    ValidationError,
)
from training_registry.kernel.logging import configure_logging
from training_registry.kernel.policy import RegistrationPolicy
from training_registry.registration.models import DisplayRegistrationStatus
from training_registry.registry import TrainingRegistry
from training_registry.roster.models import CatalogView, PageRequest, RosterFilter, RosterRow
from training_registry.roster.personnel import InMemoryPersonnelDirectory
from training_registry.sessions.models import Session

# Logs go to stderr so --json output on stdout stays parseable
configure_logging(log_level=os.getenv("TRAINING_REGISTRY_LOG_LEVEL", "WARNING"))

app = typer.Typer(
    name="training-registry",
    help="Training Registry - sessions, registrations and rosters",
    add_completion=False,
)

session_app = typer.Typer(help="Session definition commands")
app.add_typer(session_app, name="session")

# Global state
DEFAULT_DB = Path(".training-registry.db")

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
SessionOption = Annotated[str, typer.Option("--session", help="Session ID")]
ParticipantOption = Annotated[str, typer.Option("--participant", help="Participant ID")]
ActorOption = Annotated[
    Optional[str],
    typer.Option("--actor", help="Operator identity recorded on the audit trail"),
]


def get_registry(
    db_path: Optional[Path] = None, personnel: Optional[Path] = None
) -> TrainingRegistry:
    """Open the registry, refusing to create a database implicitly"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'training-registry init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    try:
        policy = RegistrationPolicy.from_env()
    except ValueError as e:
        typer.echo(f"Error: Invalid TRAINING_REGISTRY_* setting: {e}", err=True)
        raise typer.Exit(1)
    try:
        directory = InMemoryPersonnelDirectory.from_json_file(personnel) if personnel else None
    except (OSError, ValueError) as e:
        typer.echo(f"Error: Cannot load personnel file {personnel}: {e}", err=True)
        raise typer.Exit(1)
    with reporting_errors():
        return TrainingRegistry(db, policy=policy, personnel_directory=directory)


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Turn registry errors into an error line on stderr and exit code 1"""
    try:
        yield
    except RetryableError as e:
        typer.echo(f"Error: {e} (safe to retry)", err=True)
        raise typer.Exit(1)
    except ValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        for error in e.errors:
            typer.echo(f"  {error['field']}: {error['message']}", err=True)
        raise typer.Exit(1)
    except RegistryError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def parse_timestamp(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        typer.echo(f"Error: {option} must be an ISO-8601 timestamp, got {value!r}", err=True)
        raise typer.Exit(1)


def echo_session(session: Session) -> None:
    typer.echo(f"  Title: {session.title}")
    typer.echo(f"  Window: {session.window.start.isoformat()} -> {session.window.end.isoformat()}")
    typer.echo(f"  Capacity: {session.capacity}")
    if session.category:
        typer.echo(f"  Category: {session.category}")
    if session.location:
        typer.echo(f"  Location: {session.location.display()}")
    if session.instructor:
        typer.echo(f"  Instructor: {session.instructor.display()}")
    if session.mandatory:
        typer.echo("  Mandatory: yes")
    if session.tags:
        typer.echo(f"  Tags: {', '.join(sorted(session.tags))}")


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new registry database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    TrainingRegistry(db)
    typer.echo(f"✓ Initialized training registry database: {db}")


# Session commands


@session_app.command("create")
def session_create(
    title: Annotated[str, typer.Option("--title", help="Session title")],
    start: Annotated[str, typer.Option("--start", help="Window start (ISO-8601 with offset)")],
    end: Annotated[str, typer.Option("--end", help="Window end (ISO-8601 with offset)")],
    capacity: Annotated[int, typer.Option("--capacity", help="Maximum active registrations")],
    description: Annotated[str, typer.Option("--description")] = "",
    category: Annotated[str, typer.Option("--category", help="Training type")] = "",
    location: Annotated[Optional[str], typer.Option("--location", help="Location label")] = None,
    instructor: Annotated[
        Optional[str], typer.Option("--instructor", help="Instructor label")
    ] = None,
    mandatory: Annotated[bool, typer.Option("--mandatory", help="Mark as mandatory")] = False,
    tags: Annotated[Optional[str], typer.Option("--tags", help="Comma-separated tags")] = None,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Create a new session"""
    registry = get_registry(db)

    with reporting_errors():
        session = registry.create_session(
            title=title,
            description=description,
            category=category,
            window={
                "start": parse_timestamp(start, "--start"),
                "end": parse_timestamp(end, "--end"),
            },
            capacity=capacity,
            location=location,
            instructor=instructor,
            mandatory=mandatory,
            tags=tags,
            actor_id=actor,
        )

    typer.echo(f"✓ Created session: {session.session_id}")
    echo_session(session)


@session_app.command("update")
def session_update(
    session_id: SessionOption,
    title: Annotated[Optional[str], typer.Option("--title")] = None,
    start: Annotated[Optional[str], typer.Option("--start")] = None,
    end: Annotated[Optional[str], typer.Option("--end")] = None,
    capacity: Annotated[Optional[int], typer.Option("--capacity")] = None,
    description: Annotated[Optional[str], typer.Option("--description")] = None,
    category: Annotated[Optional[str], typer.Option("--category")] = None,
    location: Annotated[Optional[str], typer.Option("--location")] = None,
    instructor: Annotated[Optional[str], typer.Option("--instructor")] = None,
    clear_location: Annotated[bool, typer.Option("--clear-location")] = False,
    clear_instructor: Annotated[bool, typer.Option("--clear-instructor")] = False,
    mandatory: Annotated[Optional[bool], typer.Option("--mandatory/--optional")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", help="Comma-separated tags")] = None,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Update a session; only the given options change"""
    registry = get_registry(db)

    patch = {
        name: value
        for name, value in {
            "title": title,
            "start": parse_timestamp(start, "--start"),
            "end": parse_timestamp(end, "--end"),
            "capacity": capacity,
            "description": description,
            "category": category,
            "location": location,
            "instructor": instructor,
            "mandatory": mandatory,
            "tags": tags,
        }.items()
        if value is not None
    }
    if clear_location:
        patch["location"] = None
    if clear_instructor:
        patch["instructor"] = None

    with reporting_errors():
        session = registry.update_session(session_id, patch, actor_id=actor)

    typer.echo(f"✓ Updated session: {session.session_id}")
    echo_session(session)


@session_app.command("list")
def session_list(
    db: DbOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List all sessions with their current status"""
    registry = get_registry(db)

    with reporting_errors():
        summaries = [registry.session_summary(s.session_id) for s in registry.all_sessions()]

    if json_output:
        typer.echo(json.dumps([s.model_dump(mode="json") for s in summaries], indent=2))
        return

    if not summaries:
        typer.echo("No sessions")
        return

    typer.echo(f"Sessions ({len(summaries)}):")
    for summary in summaries:
        session = summary.session
        typer.echo(
            f"  {session.session_id}: {session.title} [{summary.status.value}] "
            f"{summary.registered_count}/{session.capacity} "
            f"starts {session.window.start.isoformat()}"
        )


@session_app.command("show")
def session_show(
    session_id: SessionOption,
    db: DbOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a session with its status and occupancy"""
    registry = get_registry(db)

    with reporting_errors():
        summary = registry.session_summary(session_id)

    if json_output:
        typer.echo(json.dumps(summary.model_dump(mode="json"), indent=2))
        return

    typer.echo(f"\nSession: {summary.session.session_id}")
    echo_session(summary.session)
    typer.echo(f"  Status: {summary.status.value}")
    typer.echo(f"  Registered: {summary.registered_count}")
    typer.echo(f"  Available: {summary.available_slots}")


# Registration commands


@app.command()
def register(
    session_id: SessionOption,
    participant_id: ParticipantOption,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Register a participant for a session"""
    registry = get_registry(db)

    with reporting_errors():
        entry = registry.register(session_id, participant_id, actor_id=actor)

    typer.echo(f"✓ Registered {participant_id} for session {session_id}")
    typer.echo(f"  Entry: {entry.entry_id}")


@app.command()
def cancel(
    session_id: SessionOption,
    participant_id: ParticipantOption,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Cancel a participant's registration"""
    registry = get_registry(db)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", LateCancellationWarning)
        with reporting_errors():
            entry = registry.cancel(session_id, participant_id, actor_id=actor)

    typer.echo(f"✓ Cancelled registration {entry.entry_id}")
    for warning in caught:
        if issubclass(warning.category, LateCancellationWarning):
            typer.echo(f"⚠ {warning.message}", err=True)


@app.command()
def attend(
    session_id: SessionOption,
    participant_id: ParticipantOption,
    outcome: Annotated[str, typer.Option("--outcome", help="completed or absent")] = "completed",
    score: Annotated[
        Optional[float], typer.Option("--score", help="Performance score 0-100")
    ] = None,
    completed_at: Annotated[
        Optional[str], typer.Option("--completed-at", help="Completion time (ISO-8601)")
    ] = None,
    actor: ActorOption = None,
    db: DbOption = None,
) -> None:
    """Record attendance for an active registration"""
    registry = get_registry(db)

    with reporting_errors():
        entry = registry.record_attendance(
            session_id,
            participant_id,
            outcome,
            completed_at=parse_timestamp(completed_at, "--completed-at"),
            performance_score=score,
            actor_id=actor,
        )

    typer.echo(f"✓ Recorded {entry.status.value} for {participant_id} in session {session_id}")


# Query commands


@app.command()
def roster(
    session_id: Annotated[
        Optional[str], typer.Option("--session", help="Filter by session ID")
    ] = None,
    search: Annotated[
        Optional[str], typer.Option("--search", help="Match name, participant ID or email")
    ] = None,
    company: Annotated[Optional[str], typer.Option("--company", help="Filter by company")] = None,
    status: Annotated[
        Optional[str],
        typer.Option("--status", help="Filter by status (registered, cancelled, completed)"),
    ] = None,
    page: Annotated[int, typer.Option("--page", min=1)] = 1,
    size: Annotated[Optional[int], typer.Option("--size", min=1)] = None,
    all_rows: Annotated[
        bool, typer.Option("--all", help="Full unpaginated roster of --session")
    ] = False,
    personnel: Annotated[
        Optional[Path],
        typer.Option("--personnel", help="JSON file of participant display fields"),
    ] = None,
    db: DbOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the roster (paginated, or the full roster of one session with --all)"""
    registry = get_registry(db, personnel)

    if all_rows:
        if session_id is None:
            typer.echo("Error: --all requires --session", err=True)
            raise typer.Exit(1)
        with reporting_errors():
            session = registry.get_session(session_id)
            rows = registry.full_roster(session_id)
        if json_output:
            typer.echo(
                json.dumps(
                    {
                        "session": session.model_dump(mode="json"),
                        "rows": [row.model_dump(mode="json") for row in rows],
                    },
                    indent=2,
                )
            )
            return
        typer.echo(f"Roster of {session.title} ({len(rows)}):")
        for row in rows:
            echo_row(row)
        return

    try:
        status_filter = DisplayRegistrationStatus(status) if status else None
    except ValueError:
        typer.echo(f"Error: Unknown status: {status}", err=True)
        raise typer.Exit(1)

    with reporting_errors():
        result = registry.query_roster(
            RosterFilter(
                search=search, session_id=session_id, company=company, status=status_filter
            ),
            PageRequest(number=page, size=size),
        )

    if json_output:
        typer.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    if not result.rows:
        typer.echo("No registrations")
        return

    typer.echo(
        f"Roster page {result.number}/{result.total_pages} ({result.total_count} registrations):"
    )
    for row in result.rows:
        echo_row(row)


def echo_row(row: RosterRow) -> None:
    person = row.personnel
    name = " ".join(part for part in (person.rank, person.full_name) if part)
    company = f" - {person.company}" if person.company else ""
    typer.echo(
        f"  {row.participant_id}: {name}{company} [{row.status.value}] "
        f"{row.session_title} (registered {row.registered_at.isoformat()})"
    )


@app.command()
def catalog(
    participant_id: ParticipantOption,
    view: Annotated[
        str, typer.Option("--view", help="all, upcoming, registered or past")
    ] = CatalogView.ALL.value,
    db: DbOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List sessions as a participant sees them"""
    registry = get_registry(db)

    with reporting_errors():
        items = registry.list_sessions(participant_id, view)

    if json_output:
        typer.echo(json.dumps([item.model_dump(mode="json") for item in items], indent=2))
        return

    if not items:
        typer.echo(f"No sessions in view '{view}'")
        return

    typer.echo(f"Sessions for {participant_id} ({len(items)}):")
    for item in items:
        typer.echo(
            f"  {item.session_id}: {item.title} [{item.session_status.value}] "
            f"{item.registration_status.value}, {item.available_slots} slots left"
        )


@app.command()
def completed(
    participant_id: ParticipantOption,
    db: DbOption = None,
) -> None:
    """List the sessions a participant completed"""
    registry = get_registry(db)

    with reporting_errors():
        items = registry.participant_history(participant_id)

    if not items:
        typer.echo(f"No completed sessions for {participant_id}")
        return

    typer.echo(f"Completed sessions for {participant_id} ({len(items)}):")
    for item in items:
        score = f" score {item.performance_score:g}" if item.performance_score is not None else ""
        typer.echo(
            f"  {item.completed_at.date().isoformat()}: {item.title} ({item.session_id}){score}"
        )


@app.command()
def history(
    session_id: SessionOption,
    db: DbOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the audit trail of a session"""
    registry = get_registry(db)

    with reporting_errors():
        events = registry.session_history(session_id)

    if json_output:
        typer.echo(json.dumps([event.model_dump(mode="json") for event in events], indent=2))
        return

    typer.echo(f"History of session {session_id} ({len(events)} events):")
    for event in events:
        typer.echo(f"  v{event.version} {event.occurred_at.isoformat()} {event.event_type}")


@app.command()
def reconcile(
    db: DbOption = None,
) -> None:
    """Repair cached registered counts that drifted from the ledger"""
    registry = get_registry(db)

    with reporting_errors():
        repaired = registry.reconcile_registered_counts()

    if not repaired:
        typer.echo("✓ All registered counts match the ledger")
        return

    typer.echo(f"✓ Repaired {len(repaired)} session(s):")
    for session_id, (cached, actual) in repaired.items():
        typer.echo(f"  {session_id}: {cached} -> {actual}")


if __name__ == "__main__":
    app()
