"""
Typer CLI for teachback-core.

Commands:
    teachback apply-session <file>   - Apply a session outcome (JSON) to the learner's models
    teachback recommend              - Show what to teach back next
    teachback score                  - Grade five criterion scores
    teachback review <concept> <q>   - Record a review of a concept (quality 0-5)
    teachback due                    - List due reviews, most overdue first
    teachback ratings                - Rating summary, or a trend with --topic

Usage:
    teachback --help
    teachback --user alice apply-session session.json --topic "Sorting"
    teachback score --completeness 4 --depth 3 --clarity 4 --structure 3 --insight 2 --mode concept
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from teachback.core.errors import InputValidationError, TeachbackError
from teachback.db.database import create_db_engine, create_session_factory, init_db
from teachback.db.repository import SqlRepository
from teachback.graph.mastery_updater import MasteryUpdater
from teachback.graph.recommender import RecommendationEngine
from teachback.learning_service import LearningService
from teachback.rating.elo import RatingEngine
from teachback.scoring.criterion import CriterionScorer, CriterionScoreResult, KnowledgeBuildingMode, SessionMode
from teachback.study.retention_scheduler import RetentionScheduler

console = Console()

app = typer.Typer(
    help="teachback: mastery tracking, ratings and review scheduling for teach-back sessions",
    no_args_is_help=True,
)


class CLIContext:
    """Lazily builds the service from settings."""

    def __init__(self, user: str, database_url: str | None = None):
        self.settings = get_settings()
        self.user = user
        self.database_url = database_url or self.settings.database_url
        self._service: LearningService | None = None

    @property
    def scorer(self) -> CriterionScorer:
        return CriterionScorer(self.settings.get_scoring_config())

    @property
    def service(self) -> LearningService:
        if self._service is None:
            engine = create_db_engine(self.database_url, echo=self.settings.log_level == "DEBUG")
            init_db(engine)
            repo = SqlRepository(create_session_factory(engine))
            self._service = LearningService(
                graphs=repo,
                ratings=repo,
                reviews=repo,
                updater=MasteryUpdater(self.settings.get_mastery_config()),
                recommender=RecommendationEngine(self.settings.get_recommender_config()),
                rating_engine=RatingEngine(self.settings.get_rating_config()),
                scheduler=RetentionScheduler(self.settings.get_sm2_config()),
            )
        return self._service


def _fail(error: TeachbackError) -> None:
    rprint(f"[red]Error:[/red] {error}")
    raise typer.Exit(code=1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    user: str = typer.Option("default", "--user", "-u", help="Learner id"),
    database_url: str | None = typer.Option(None, "--db-url", help="Override TEACHBACK_DATABASE_URL"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Mastery and assessment engine for teach-back learning sessions."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    ctx.obj = CLIContext(user=user, database_url=database_url)


def _print_score(result: CriterionScoreResult) -> None:
    table = Table(title="Criterion Scores", show_header=True)
    table.add_column("Criterion", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Legacy", justify="right", style="dim")
    legacy = result.legacy
    for name, value in result.raw.items():
        table.add_row(name, str(value), str(legacy.breakdown[name]))
    console.print(table)

    verdict = "[green]PASS[/green]" if result.conjunctive_pass else "[red]FAIL (criterion below floor)[/red]"
    console.print(
        Panel(
            f"Weighted: [bold]{result.weighted:.2f}[/bold]  Grade: [bold]{result.grade}[/bold]  {verdict}\n"
            f"Legacy: {legacy.total}/100 ({legacy.grade})",
            title=f"[bold]{result.mode.value} / {result.kb_mode.value}[/bold]",
            border_style="green" if result.conjunctive_pass else "red",
        )
    )


@app.command("apply-session")
def apply_session(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Session outcome JSON"),
    topic: str = typer.Option(..., "--topic", "-t", help="Rating topic"),
):
    """
    Apply a completed session.

    The JSON file holds the outcome fields (id, date, title, domain, score,
    mastered, gaps) and optionally a "criteria" object with the five 1-5
    scores plus mode/kb_mode, which also updates the ratings.
    """
    cli: CLIContext = ctx.obj
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        rprint(f"[red]Error:[/red] {path.name} is not valid JSON ({e.msg})")
        raise typer.Exit(code=1) from e

    try:
        if not isinstance(data, dict):
            raise InputValidationError("session", "must be a JSON object", type(data).__name__)
        criteria = data.pop("criteria", None)
        score = cli.scorer.score(criteria) if criteria is not None else None
        report = cli.service.record_session(cli.user, topic, data, score)
    except TeachbackError as e:
        _fail(e)

    stats = report.graph.stats
    rprint(
        f"[green]Applied[/green] session to [bold]{cli.user}[/bold]: "
        f"{stats.total_concepts} concepts, avg mastery {stats.avg_mastery:.2f}, "
        f"velocity {stats.learning_velocity:+.3f}"
    )
    if score is not None:
        _print_score(score)
    if report.rating_updates:
        table = Table(title=f"Ratings: {topic}")
        table.add_column("Dimension", style="cyan")
        table.add_column("Before", justify="right")
        table.add_column("After", justify="right")
        table.add_column("Delta", justify="right")
        for update in report.rating_updates:
            color = "green" if update.delta >= 0 else "red"
            table.add_row(update.dimension.value, str(update.before), str(update.after), f"[{color}]{update.delta:+d}[/{color}]")
        console.print(table)
    for item in report.reviews:
        rprint(f"  [dim]review[/dim] {item.concept} in {item.interval}d")


@app.command("recommend")
def recommend(
    ctx: typer.Context,
    limit: int | None = typer.Option(None, "--limit", "-n", help="Maximum recommendations"),
):
    """Show the next concepts to teach back."""
    cli: CLIContext = ctx.obj
    try:
        recommendations = cli.service.recommend(cli.user, limit=limit)
    except TeachbackError as e:
        _fail(e)

    if not recommendations:
        rprint("[yellow]Nothing to recommend yet.[/yellow]")
        return
    table = Table(title="Recommendations")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Concept", style="cyan")
    table.add_column("Priority")
    table.add_column("Reason")
    for i, rec in enumerate(recommendations, 1):
        style = "red" if rec.priority.value == "high" else "yellow"
        table.add_row(str(i), rec.label, f"[{style}]{rec.priority.value}[/{style}]", rec.reason)
    console.print(table)


@app.command("score")
def score(
    ctx: typer.Context,
    completeness: int = typer.Option(..., min=1, max=5),
    depth: int = typer.Option(..., min=1, max=5),
    clarity: int = typer.Option(..., min=1, max=5),
    structure: int = typer.Option(..., "--structure", min=1, max=5, help="Structural coherence"),
    insight: int = typer.Option(..., "--insight", min=1, max=5, help="Pedagogical insight"),
    mode: SessionMode = typer.Option(SessionMode.CONCEPT, "--mode"),
    kb_mode: KnowledgeBuildingMode = typer.Option(KnowledgeBuildingMode.MIXED, "--kb-mode"),
):
    """Grade five criterion scores without storing anything."""
    cli: CLIContext = ctx.obj
    try:
        result = cli.scorer.score(
            {
                "completeness": completeness,
                "depth": depth,
                "clarity": clarity,
                "structural_coherence": structure,
                "pedagogical_insight": insight,
                "mode": mode,
                "kb_mode": kb_mode,
            }
        )
    except TeachbackError as e:
        _fail(e)
    _print_score(result)


@app.command("review")
def review(
    ctx: typer.Context,
    concept: str = typer.Argument(..., help="Concept id"),
    quality: int = typer.Argument(..., help="Recall quality 0-5"),
):
    """Record one review of a concept."""
    cli: CLIContext = ctx.obj
    try:
        item = cli.service.record_review(cli.user, {"concept": concept, "quality": quality})
    except TeachbackError as e:
        _fail(e)
    rprint(
        f"[green]Scheduled[/green] {item.concept}: next review {item.next_review:%Y-%m-%d} "
        f"(interval {item.interval}d, ease {item.ease_factor:.2f}, reps {item.repetitions})"
    )


@app.command("due")
def due(ctx: typer.Context):
    """List due reviews, most overdue first."""
    cli: CLIContext = ctx.obj
    items = cli.service.due_reviews(cli.user)
    if not items:
        rprint("[green]No reviews due - all caught up![/green]")
        return
    table = Table(title=f"Due Reviews ({len(items)})")
    table.add_column("Concept", style="cyan")
    table.add_column("Due", style="yellow")
    table.add_column("Interval", justify="right")
    table.add_column("Ease", justify="right")
    for item in items:
        table.add_row(item.concept, f"{item.next_review:%Y-%m-%d %H:%M}", f"{item.interval}d", f"{item.ease_factor:.2f}")
    console.print(table)


@app.command("ratings")
def ratings(
    ctx: typer.Context,
    topic: str | None = typer.Option(None, "--topic", "-t", help="Show the trend for one topic"),
    dimension: str = typer.Option("overall", "--dimension", "-d"),
):
    """Show the rating summary, or a topic's trend."""
    cli: CLIContext = ctx.obj
    if topic is None:
        summary = cli.service.rating_summary(cli.user)
        rprint(
            f"Overall rating: [bold]{summary.overall_rating}[/bold]  "
            f"Topics: {summary.topics}  Peak: {summary.peak_rating}"
        )
        return
    try:
        trend = cli.service.rating_trend(cli.user, topic, dimension)
    except InputValidationError as e:
        _fail(e)
    if not trend.points:
        rprint(f"[yellow]No rating history for {topic}.[/yellow]")
        return
    rprint(
        f"{topic} / {dimension}: {' -> '.join(str(p) for p in trend.points)} "
        f"({trend.net_delta:+d}, {trend.direction})"
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
