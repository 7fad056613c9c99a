"""
Typer CLI for the revision scheduler.

Commands:
    revise add FILE           - Ingest revision items from a JSON file
    revise review L ITEM      - Record a review of one item
    revise due L              - List items due for revision
    revise plan L             - Build the day's revision sessions
    revise catch-up L ITEM... - Place missed items into catch-up sessions
    revise forget L ITEM      - Show the predicted forgetting curve
    revise readiness L        - Show exam readiness
    revise insights L         - Show difficulty profile and flow state

Usage:
    revise --help
    revise add items.json --learner alice
    revise review alice polity-42 --rating good --confidence 4 --time 18
    revise plan alice --date 2026-03-01
"""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from revision_scheduler.core.errors import RevisionError
from revision_scheduler.core.models import RevisionItem, ScheduleSession, SelfRating
from revision_scheduler.delivery.state_store import SqlStateStore
from revision_scheduler.logging_config import configure_logging
from revision_scheduler.service import RevisionService

app = typer.Typer(
    name="revise",
    help="Exam revision scheduler: spaced repetition with exam-aware intervals",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

DATE_FORMATS = ["%Y-%m-%d"]


def _build_service() -> RevisionService:
    settings = get_settings()
    return RevisionService.from_settings(settings, SqlStateStore(settings.database_url))


def _fail(error: object) -> typer.Exit:
    rprint(f"[red]Error:[/red] {error}")
    return typer.Exit(code=1)


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


def _sessions_table(sessions: list[ScheduleSession], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Session", style="cyan")
    table.add_column("Window")
    table.add_column("Items", justify="right")
    table.add_column("Minutes", justify="right")
    table.add_column("Priority", justify="right")
    table.add_column("Order", style="dim")

    for session in sessions:
        table.add_row(
            session.session_type.value.replace("_", " "),
            f"{session.window_start:%H:%M}-{session.window_end:%H:%M}",
            str(session.item_count),
            str(session.estimated_duration_minutes),
            f"{session.priority_score:.1f}",
            ", ".join(session.ordered_item_ids),
        )
    return table


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Configure logging before any command runs."""
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


# =============================================================================
# Items
# =============================================================================


@app.command()
def add(
    file: Annotated[
        Path, typer.Argument(exists=True, dir_okay=False, help="JSON file with one item or a list")
    ],
    learner: Annotated[
        str | None, typer.Option("--learner", "-l", help="Owner for items without owner_id")
    ] = None,
) -> None:
    """Ingest revision items from a JSON file."""
    try:
        raw = json.loads(file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise _fail(f"Invalid JSON in {file}: {e}") from e

    records = raw if isinstance(raw, list) else [raw]
    service = _build_service()
    added = 0
    try:
        for record in records:
            if learner and not record.get("owner_id"):
                record["owner_id"] = learner
            service.add_item(RevisionItem.model_validate(record))
            added += 1
    except ValidationError as e:
        raise _fail(f"Invalid item #{added + 1}: {e.error_count()} validation errors") from e
    except RevisionError as e:
        raise _fail(e) from e

    rprint(f"[green]✓[/green] Added {added} revision items")


@app.command()
def review(
    learner: Annotated[str, typer.Argument(help="Learner id")],
    item_id: Annotated[str, typer.Argument(help="Item id")],
    rating: Annotated[
        SelfRating, typer.Option("--rating", "-r", case_sensitive=False, help="Self rating")
    ],
    confidence: Annotated[
        int, typer.Option("--confidence", "-c", help="Confidence 1-5")
    ] = 3,
    time_spent: Annotated[
        float, typer.Option("--time", "-t", help="Seconds spent on recall")
    ] = 20.0,
    hints: Annotated[int, typer.Option("--hints", help="Hints used")] = 0,
) -> None:
    """Record a review of one item."""
    service = _build_service()
    try:
        item = service.record_review(
            learner,
            item_id,
            {
                "self_rating": rating,
                "confidence": confidence,
                "time_spent_seconds": time_spent,
                "hints_used": hints,
            },
        )
    except RevisionError as e:
        raise _fail(e) from e

    level = item.mastery_level
    console.print(
        Panel(
            f"Next review: [bold]{item.next_due_at:%Y-%m-%d}[/] (in {item.interval_days}d)\n"
            f"Ease: {item.ease_factor:.2f}   Tier: {item.difficulty_tier.value}\n"
            f"Retention: {item.retention_score:.1f}   Accuracy: {item.recall_accuracy:.1f}\n"
            f"Mastery: [{level.color}]{level.emoji} {level.display_name}[/]",
            title=f"Reviewed {item.item_id}",
            border_style="green",
        )
    )


@app.command()
def due(
    learner: Annotated[str, typer.Argument(help="Learner id")],
    on: Annotated[
        datetime | None, typer.Option("--date", "-d", formats=DATE_FORMATS, help="As-of date")
    ] = None,
) -> None:
    """List items due for revision, most urgent first."""
    service = _build_service()
    as_of = _as_date(on)
    try:
        items = service.get_due_items(learner, as_of)
    except RevisionError as e:
        raise _fail(e) from e

    if not items:
        rprint("[green]Nothing due.[/green]")
        return

    as_of = as_of or service.today()
    table = Table(title=f"Due for {learner} ({len(items)})")
    table.add_column("Item", style="cyan")
    table.add_column("Subject")
    table.add_column("Importance")
    table.add_column("Overdue", justify="right")
    table.add_column("Mastery")
    for item in items:
        level = item.mastery_level
        table.add_row(
            item.item_id,
            item.subject,
            item.importance_tier.value,
            f"{item.days_overdue(as_of)}d",
            f"[{level.color}]{level.emoji} {level.display_name}[/]",
        )
    console.print(table)


# =============================================================================
# Planning
# =============================================================================


@app.command()
def plan(
    learner: Annotated[str, typer.Argument(help="Learner id")],
    on: Annotated[
        datetime | None, typer.Option("--date", "-d", formats=DATE_FORMATS, help="Planning day")
    ] = None,
) -> None:
    """Build the day's revision sessions."""
    service = _build_service()
    day = _as_date(on)
    try:
        sessions = service.build_schedule(learner, day)
        priority = service.schedule_priority(learner, day)
    except RevisionError as e:
        raise _fail(e) from e

    if not sessions:
        rprint("[green]No sessions needed.[/green]")
        return

    console.print(_sessions_table(sessions, f"Plan for {learner} (priority: {priority})"))


@app.command("catch-up")
def catch_up(
    learner: Annotated[str, typer.Argument(help="Learner id")],
    item_ids: Annotated[list[str], typer.Argument(help="Missed item ids")],
    on: Annotated[
        datetime | None, typer.Option("--date", "-d", formats=DATE_FORMATS, help="Planning day")
    ] = None,
) -> None:
    """Place missed items into catch-up sessions."""
    service = _build_service()
    try:
        sessions = service.build_catch_up(learner, _as_date(on), item_ids)
    except RevisionError as e:
        raise _fail(e) from e

    if not sessions:
        rprint("[yellow]No free slot for catch-up sessions.[/yellow]")
        return
    console.print(_sessions_table(sessions, f"Catch-up for {learner}"))


# =============================================================================
# Analytics
# =============================================================================


@app.command()
def forget(
    learner: Annotated[str, typer.Argument(help="Learner id")],
    item_id: Annotated[str, typer.Argument(help="Item id")],
) -> None:
    """Show the predicted forgetting curve of an item."""
    service = _build_service()
    try:
        points = service.predict_forgetting(learner, item_id)
    except RevisionError as e:
        raise _fail(e) from e

    table = Table(title=f"Forgetting curve: {item_id}")
    table.add_column("After", justify="right")
    table.add_column("Retention", justify="right")
    table.add_column("Action")
    for point in points:
        hours = point.hours_elapsed
        after = f"{hours}h" if hours < 24 else f"{hours // 24}d"
        table.add_row(after, f"{point.predicted_retention:.1f}%", point.recommended_action)
    console.print(table)


@app.command()
def readiness(
    learner: Annotated[str, typer.Argument(help="Learner id")],
    exam_date: Annotated[
        datetime | None,
        typer.Option("--exam-date", "-e", formats=DATE_FORMATS, help="Exam date"),
    ] = None,
) -> None:
    """Show exam readiness."""
    service = _build_service()
    try:
        score = service.get_exam_readiness(learner, _as_date(exam_date))
    except RevisionError as e:
        raise _fail(e) from e

    color = "green" if score >= 80 else "yellow" if score >= 60 else "red"
    rprint(f"Exam readiness for {learner}: [{color}]{score:.1f}%[/{color}]")


@app.command()
def insights(
    learner: Annotated[str, typer.Argument(help="Learner id")],
) -> None:
    """Show difficulty profile, flow state and tier recommendations."""
    service = _build_service()
    try:
        result = service.difficulty_insights(learner)
    except RevisionError as e:
        raise _fail(e) from e

    profile = result.profile
    proficiency = ", ".join(f"{s}: {t.value}" for s, t in profile.subject_proficiency.items())
    console.print(
        Panel(
            f"Comfort zone: [bold]{profile.comfort_zone.value}[/]\n"
            f"Learning velocity: {profile.learning_velocity:.2f}\n"
            f"Flow: {result.flow.current_flow:.1f} (suggests {result.flow.recommended_tier.value})\n"
            f"Memory strength: {result.memory_strength:.1f}\n"
            f"Subjects: {proficiency or '-'}",
            title=f"Insights for {learner}",
            border_style="cyan",
        )
    )

    changes = {k: v for k, v in result.recommendations.items() if v.changed}
    if changes:
        table = Table(title="Tier recommendations")
        table.add_column("Item", style="cyan")
        table.add_column("Change")
        table.add_column("Rule")
        for item_id, decision in changes.items():
            table.add_row(
                item_id,
                f"{decision.current_tier.value} -> {decision.next_tier.value}",
                decision.rule_id or "",
            )
        console.print(table)


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
