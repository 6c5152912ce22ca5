"""
Typer CLI for the learnhub engine.

Commands:
    learnhub db init                          - Initialize database tables
    learnhub curriculum import FILE           - Import a curriculum JSON document
    learnhub curriculum list                  - List stored curricula
    learnhub curriculum analyze GRADE SUBJECT - Analyze recent performance
    learnhub curriculum optimize GRADE SUBJECT
    learnhub curriculum report GRADE SUBJECT  - Full optimization report (JSON)
    learnhub curriculum evaluate GRADE SUBJECT - Quality scorecard
    learnhub curriculum auto [--watch]        - Batch optimization, once or on a schedule
    learnhub student mistakes STUDENT_ID      - Misconception patterns
    learnhub student reviews STUDENT_ID       - Spaced repetition status
    learnhub info                             - Show configuration

Usage:
    learnhub --help
    learnhub curriculum import data/grade3_math.json
    learnhub curriculum auto --watch --interval-days 7
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from learnhub import __version__
from learnhub.curriculum.quality import CurriculumQualityEvaluator
from learnhub.db.database import Database
from learnhub.engine import Engine, build_engine
from learnhub.exceptions import LearnHubError
from learnhub.logging_setup import configure_logging

app = typer.Typer(help="learnhub: adaptive learning orchestration engine")
console = Console()


@app.callback()
def main_callback() -> None:
    """Adaptive learning engine: sessions, mistake analysis, review scheduling, curriculum tuning."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)


# ========================================
# Context Builder
# ========================================


def _build_engine() -> Engine:
    """Engine backed by the configured database (tables created if missing)."""
    settings = get_settings()
    database = Database(settings.database_url)
    database.init_db()
    return build_engine(settings, database=database)


def _fail(error: Exception) -> typer.Exit:
    rprint(f"[red]✗[/red] {error}")
    return typer.Exit(code=1)


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables.

    Safe to run multiple times (idempotent).
    """
    settings = get_settings()
    logger.info("Initializing database tables...")
    database = Database(settings.database_url)
    database.init_db()
    database.dispose()
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# CURRICULUM COMMANDS
# ========================================

curriculum_app = typer.Typer(help="Curriculum import, analysis and optimization")
app.add_typer(curriculum_app, name="curriculum")


@curriculum_app.command("import")
def curriculum_import(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Curriculum JSON document"),
) -> None:
    """Import a curriculum (and any inline questions) as a new version."""
    engine = _build_engine()
    try:
        curriculum = engine.curriculum.import_curriculum(json.loads(path.read_text(encoding="utf-8")))
    except (LearnHubError, KeyError, ValueError) as e:
        raise _fail(e)
    finally:
        engine.close()
    rprint(
        f"[green]✓[/green] Imported {curriculum.id} v{curriculum.version} "
        f"({len(curriculum.topics)} topics)"
    )


@curriculum_app.command("list")
def curriculum_list() -> None:
    """List the current version of every stored curriculum."""
    engine = _build_engine()
    try:
        curricula = engine.curriculum.list_curricula()
    finally:
        engine.close()

    table = Table(title=f"Curricula ({len(curricula)})")
    table.add_column("Grade", justify="right", style="cyan")
    table.add_column("Subject", style="cyan")
    table.add_column("Version", style="green")
    table.add_column("Topics", justify="right")
    table.add_column("Last Updated", style="dim")
    for c in curricula:
        table.add_row(
            str(c.grade_level), c.subject, c.version, str(len(c.topics)), c.last_updated.strftime("%Y-%m-%d")
        )
    console.print(table)


@curriculum_app.command("analyze")
def curriculum_analyze(
    grade: int = typer.Argument(..., help="Grade level (0 = kindergarten)"),
    subject: str = typer.Argument(..., help="Subject, e.g. math"),
) -> None:
    """Analyze recent performance and decide whether optimization is needed."""
    engine = _build_engine()
    try:
        analysis = engine.optimizer.analyze(grade, subject)
    finally:
        engine.close()

    if analysis.metrics is None:
        rprint(
            f"[yellow]Insufficient data[/yellow]: {analysis.sample_size} records "
            f"(minimum {analysis.minimum_required})"
        )
        return

    rprint(
        f"Grade {grade} {subject}: overall accuracy [bold]{analysis.metrics.overall_accuracy:.1f}%[/bold], "
        f"sample size {analysis.sample_size}"
    )
    rprint(
        f"Needs optimization: [bold]{analysis.needs_optimization}[/bold]  "
        f"Priority: [bold]{analysis.priority.value if analysis.priority else '-'}[/bold]"
    )

    table = Table(title="Topic Issues")
    table.add_column("Topic", style="cyan")
    table.add_column("Accuracy", justify="right")
    table.add_column("Students", justify="right")
    table.add_column("Issues", style="yellow")
    for topic_id, tm in analysis.metrics.topic_metrics.items():
        issues = ", ".join(f"{i.type} ({i.severity})" for i in tm.issues) or "-"
        table.add_row(topic_id, f"{tm.accuracy:.1f}%", str(tm.student_count), issues)
    console.print(table)

    for rec in analysis.recommendations:
        rprint(f"  [dim]•[/dim] {rec['recommendation']}")


@curriculum_app.command("optimize")
def curriculum_optimize(
    grade: int = typer.Argument(..., help="Grade level"),
    subject: str = typer.Argument(..., help="Subject"),
    force: bool = typer.Option(False, "--force", help="Optimize even below the sample floor"),
) -> None:
    """Request refinements and save them as a new curriculum version."""
    engine = _build_engine()
    try:
        result = engine.optimizer.optimize_curriculum(grade, subject, force=force)
    except LearnHubError as e:
        raise _fail(e)
    finally:
        engine.close()
    rprint(
        f"[green]✓[/green] Grade {grade} {subject}: v{result.previous_version} -> v{result.new_version}"
    )
    if result.regenerated_topics:
        rprint(f"  Regenerated questions for: {', '.join(result.regenerated_topics)}")


@curriculum_app.command("report")
def curriculum_report(
    grade: int = typer.Argument(..., help="Grade level"),
    subject: str = typer.Argument(..., help="Subject"),
) -> None:
    """Print the optimization report as JSON."""
    engine = _build_engine()
    try:
        report = engine.optimizer.generate_optimization_report(grade, subject)
    except LearnHubError as e:
        raise _fail(e)
    finally:
        engine.close()
    console.print_json(json.dumps(report, default=str))


@curriculum_app.command("evaluate")
def curriculum_evaluate(
    grade: int = typer.Argument(..., help="Grade level"),
    subject: str = typer.Argument(..., help="Subject"),
) -> None:
    """Score curriculum quality (completeness, pedagogy, accessibility, engagement, assessment)."""
    engine = _build_engine()
    try:
        report = CurriculumQualityEvaluator.evaluate(engine.curriculum.get_curriculum(grade, subject))
    except LearnHubError as e:
        raise _fail(e)
    finally:
        engine.close()

    table = Table(title=f"Quality: grade {grade} {subject}")
    table.add_column("Dimension", style="cyan")
    table.add_column("Score", justify="right", style="green")
    for name, score in report.scores.items():
        table.add_row(name.replace("_", " "), str(score))
    table.add_row("[bold]overall[/bold]", f"[bold]{report.overall_score:.0f}[/bold]")
    console.print(table)
    rprint(f"Grade: [bold]{report.grade}[/bold]")
    for rec in report.recommendations:
        rprint(f"  [dim]•[/dim] {rec}")


@curriculum_app.command("auto")
def curriculum_auto(
    watch: bool = typer.Option(False, "--watch", help="Keep running on a schedule"),
    interval_days: Optional[float] = typer.Option(
        None, "--interval-days", help="Days between runs (default from settings)"
    ),
) -> None:
    """Analyze every curriculum and apply high-priority optimizations."""
    engine = _build_engine()
    if not watch:
        try:
            summary = engine.optimizer.run_auto_optimization()
        finally:
            engine.close()
        table = Table(title="Auto-Optimization")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", justify="right", style="green")
        for key, value in summary.to_dict().items():
            table.add_row(key, str(value))
        console.print(table)
        return

    days = interval_days or engine.settings.optimization_interval_days
    engine.auto_optimizer.start(interval_seconds=days * 86400)
    rprint(f"[green]✓[/green] Auto-optimization scheduled every {days:g} day(s). Ctrl+C to stop.")
    try:
        while engine.auto_optimizer.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        rprint("\n[yellow]Stopping...[/yellow]")
    finally:
        engine.close()


# ========================================
# STUDENT COMMANDS
# ========================================

student_app = typer.Typer(help="Per-student mistake and review reports")
app.add_typer(student_app, name="student")


@student_app.command("mistakes")
def student_mistakes(
    student_id: str = typer.Argument(..., help="Student id"),
    subject: Optional[str] = typer.Option(None, "--subject", "-s", help="Restrict to one subject"),
) -> None:
    """Show detected misconception patterns and recommendations."""
    engine = _build_engine()
    try:
        analysis = engine.mistakes.analyze_patterns(student_id, subject)
    finally:
        engine.close()

    rprint(f"{analysis.total_mistakes} mistake(s) recorded. {analysis.summary}")
    if not analysis.patterns:
        return

    table = Table(title="Misconception Patterns")
    table.add_column("Pattern", style="cyan")
    table.add_column("Occurrences", justify="right")
    table.add_column("Severity", justify="right", style="red")
    for pattern in analysis.patterns:
        table.add_row(pattern.name, str(pattern.occurrences), str(pattern.severity))
    console.print(table)

    for rec in analysis.recommendations:
        rprint(f"  [bold]{rec.title}[/bold] ({rec.priority.value}, ~{rec.estimated_minutes} min)")
        for strategy in rec.strategies:
            rprint(f"    [dim]•[/dim] {strategy}")


@student_app.command("reviews")
def student_reviews(
    student_id: str = typer.Argument(..., help="Student id"),
    limit: int = typer.Option(10, "--limit", "-n", help="Due cards to list"),
) -> None:
    """Show spaced repetition stats and the cards due now."""
    engine = _build_engine()
    try:
        stats = engine.scheduler.get_review_stats(student_id)
        due = engine.scheduler.get_due_cards(student_id, limit=limit)
    except ValueError as e:
        raise _fail(e)
    finally:
        engine.close()

    table = Table(title=f"Review Cards: {student_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for key in ("total", "new", "learning", "review", "mastered", "retired", "due_today", "due_this_week"):
        table.add_row(key.replace("_", " "), str(stats[key]))
    table.add_row("success rate", f"{stats['success_rate']:.0f}%")
    console.print(table)

    if due:
        due_table = Table(title=f"Due Now ({len(due)})")
        due_table.add_column("Card", style="dim")
        due_table.add_column("Topic", style="cyan")
        due_table.add_column("Status")
        due_table.add_column("Due", style="yellow")
        for card in due:
            due_table.add_row(card.id, card.topic_id, card.status.value, card.next_review_at.strftime("%Y-%m-%d %H:%M"))
        console.print(due_table)


# ========================================
# INFO
# ========================================


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    settings = get_settings()

    table = Table(title=f"learnhub v{__version__} Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Database URL", settings.database_url)
    table.add_row("Anthropic API Key", "***" if settings.anthropic_api_key else "Not set")
    table.add_row("AI Model", settings.ai_model)
    table.add_row("Log Level", settings.log_level)
    table.add_row("Fast answer (s)", f"{settings.fast_answer_seconds:g}")
    table.add_row("Min sample size", str(settings.optimization_min_sample_size))
    table.add_row("Optimization interval (days)", f"{settings.optimization_interval_days:g}")
    table.add_row("Mastery", f"{settings.mastery_accuracy_threshold:g}% over {settings.mastery_min_attempts}")

    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
