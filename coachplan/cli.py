"""Operator CLI for the coachplan service.

Typical local setup:

    coachplan init-db
    coachplan seed-demo
    coachplan serve --reload
"""

from datetime import date, datetime

import typer
import uvicorn
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from sqlalchemy import select

from coachplan.assignments.service import run_overdue_sweep
from coachplan.config.settings import settings
from coachplan.core.errors import EngineError
from coachplan.core.logger import setup_logger
from coachplan.core.permissions import SYSTEM_ACTOR
from coachplan.db.models import CoachClient, User, WorkoutPlanTemplate
from coachplan.db.session import get_session, init_db as create_tables
from coachplan.templates.repository import DailyPlanSeed, ExerciseSeed, TemplateSeed, seed_template

# Initialize Rich console for output
console = Console()

# Initialize Typer app
app = typer.Typer(
    name="coachplan",
    help="Coachplan CLI - workout plan assignment and session tracking",
    add_completion=False,
)

DEFAULT_HOST = "127.0.0.1"
DEMO_COACH_EMAIL = "coach@demo.coachplan"
DEMO_CLIENT_EMAIL = "client@demo.coachplan"

DEMO_TEMPLATE = TemplateSeed(
    title="Full Body Starter",
    description="Three-day strength split for new clients",
    status="published",
    is_public=True,
    daily_plans=[
        DailyPlanSeed(
            day="day1",
            exercises=[
                ExerciseSeed(exercise_id=101, exercise_title="Goblet Squat", set_count=3, reps_count=10, calorie=45),
                ExerciseSeed(exercise_id=102, exercise_title="Push-up", set_count=3, reps_count=12, calorie=30),
                ExerciseSeed(exercise_id=103, exercise_title="Plank", set_count=3, reps_count=1, rest_duration_seconds=45, calorie=15),
            ],
        ),
        DailyPlanSeed(
            day="day2",
            exercises=[
                ExerciseSeed(exercise_id=201, exercise_title="Romanian Deadlift", set_count=4, reps_count=8, calorie=55),
                ExerciseSeed(exercise_id=202, exercise_title="Seated Row", set_count=3, reps_count=12, calorie=35),
            ],
        ),
        DailyPlanSeed(
            day="day3",
            exercises=[
                ExerciseSeed(exercise_id=301, exercise_title="Walking Lunge", set_count=3, reps_count=20, calorie=50),
                ExerciseSeed(exercise_id=302, exercise_title="Overhead Press", set_count=3, reps_count=10, calorie=30),
            ],
        ),
    ],
)


def _parse_date(value: str | None) -> date:
    if value is None:
        return date.today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got '{value}'") from e


def _get_or_create_user(session, email: str, full_name: str, role: str) -> User:
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        user = User(email=email, full_name=full_name, role=role)
        session.add(user)
        session.flush()
    return user


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Logging level"),
) -> None:
    setup_logger(level=log_level.upper(), log_file=settings.log_file)


@app.command()
def init_db() -> None:
    """Create database tables that do not exist yet."""
    create_tables()
    console.print(f"[green]Database ready:[/green] {settings.database_url}")


@app.command()
def seed_demo() -> None:
    """Load a demo coach, client and public template. Safe to run twice."""
    create_tables()
    with get_session() as session:
        coach = _get_or_create_user(session, DEMO_COACH_EMAIL, "Demo Coach", "coach")
        client = _get_or_create_user(session, DEMO_CLIENT_EMAIL, "Demo Client", "client")

        link = session.execute(
            select(CoachClient).where(CoachClient.coach_id == coach.id, CoachClient.client_id == client.id)
        ).scalar_one_or_none()
        if link is None:
            session.add(CoachClient(coach_id=coach.id, client_id=client.id, is_active=True))

        template = session.execute(
            select(WorkoutPlanTemplate).where(
                WorkoutPlanTemplate.owner_id == coach.id,
                WorkoutPlanTemplate.title == DEMO_TEMPLATE.title,
            )
        ).scalar_one_or_none()
        if template is None:
            template = seed_template(session, coach.id, DEMO_TEMPLATE)
        logger.info("Demo data seeded", coach_id=coach.id, client_id=client.id, template_id=template.id)

        table = Table(title="Demo data")
        table.add_column("Kind", style="cyan")
        table.add_column("ID", style="green")
        table.add_row("coach", coach.id)
        table.add_row("client", client.id)
        table.add_row("template", template.id)
        for daily_plan in template.daily_plans:
            table.add_row(f"  {daily_plan.day}", daily_plan.id)
        console.print(table)

    console.print("[dim]Send the ids as X-User-Id headers to call the API as coach or client.[/dim]")


@app.command()
def sweep_overdue(
    today: str | None = typer.Option(None, "--today", help="Reference date (YYYY-MM-DD), defaults to today"),
    coach_id: str | None = typer.Option(None, "--coach-id", help="Only sweep this coach's assignments"),
) -> None:
    """Mark running assignments overdue (past due date) or completed (all sessions done)."""
    reference = _parse_date(today)
    try:
        changed = run_overdue_sweep(SYSTEM_ACTOR, reference, coach_id=coach_id)
        rows = [(a.id, a.client_id, a.due_date.isoformat(), a.status) for a in changed]
    except EngineError as e:
        console.print(f"[red]Error:[/red] {e.message}", style="bold red")
        raise typer.Exit(1) from e

    if not rows:
        console.print(Panel(Text("No assignments changed", style="bold green"), subtitle=f"today={reference.isoformat()}"))
        return

    table = Table(title=f"Swept assignments (today={reference.isoformat()})")
    table.add_column("Assignment", style="cyan")
    table.add_column("Client")
    table.add_column("Due date")
    table.add_column("Status", style="yellow")
    for row in rows:
        table.add_row(*row)
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Run the FastAPI server."""
    logger.info(f"Starting FastAPI server on {host}:{port} (reload={reload})")
    uvicorn.run("coachplan.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
