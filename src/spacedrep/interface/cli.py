"""spacedrep CLI: review commands, derived views, config and server."""

import json
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Annotated

import typer

from spacedrep.application.config import AppConfig, resolve_config
from spacedrep.application.service import ReviewService, TopicNotFoundError
from spacedrep.application.utils.dates import parse_instant, utc
from spacedrep.domain.models import HistoryEdit, TransitionResult
from spacedrep.infrastructure.adapters.snapshot_file import SnapshotFormatError
from spacedrep.interface.serializers import to_jsonable

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="spacedrep: spaced-repetition scheduling and retention modeling.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage spacedrep configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    snapshot: Annotated[
        Path | None, typer.Option("--snapshot", "-s", help="Snapshot file (.json or .yaml).")
    ] = None,
    time_zone: Annotated[
        str | None, typer.Option("--time-zone", "--tz", help="IANA time zone, e.g. Europe/Berlin.")
    ] = None,
    mode: Annotated[
        str | None,
        typer.Option(help="Scheduling mode: adaptive (stability model) or fixed (ladder)."),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
):
    """Global settings for spacedrep."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "snapshot_path": snapshot,
        "time_zone": time_zone,
        "mode": mode,
        "verbose": verbose,
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve(ctx: typer.Context) -> AppConfig:
    overrides = (ctx.obj or {}).get("overrides", {})
    try:
        config = resolve_config(overrides)
    except ValueError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(1) from e
    if config.verbose >= 2:
        logging.getLogger("spacedrep").setLevel(logging.DEBUG)
    return config


def _service(ctx: typer.Context) -> ReviewService:
    from spacedrep.application.factory import get_review_service

    return get_review_service(_resolve(ctx))


def _instant(value: str | None) -> datetime:
    if value is None:
        return datetime.now(utc)
    try:
        return parse_instant(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def _echo_json(data) -> None:
    typer.echo(json.dumps(to_jsonable(data), indent=2))


def _run(action):
    """Run a service call, turning expected failures into exit code 1."""
    try:
        return action()
    except TopicNotFoundError as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from e
    except SnapshotFormatError as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from e


def _report(result: TransitionResult, as_json: bool) -> None:
    if result.error is not None:
        typer.secho(f"{result.error.kind.value}: {result.error.message}", fg="red", err=True)
        raise typer.Exit(1)
    if as_json:
        _echo_json(result)
        return
    topic = result.topic
    typer.secho(f"{topic.title}: next review {topic.next_review_date.isoformat()}", fg="green")
    if result.adjusted is False:
        typer.echo("Early review logged; schedule left unchanged.")
    if result.merged_days:
        typer.secho(f"Merged duplicate days: {', '.join(result.merged_days)}", fg="yellow")


def _parse_entry(raw: str) -> HistoryEdit:
    """``<instant>`` or ``<instant>=<quality>``."""
    at, _, quality = raw.partition("=")
    try:
        return HistoryEdit(at=parse_instant(at), quality=float(quality) if quality else None)
    except ValueError as e:
        raise typer.BadParameter(f"Invalid history entry {raw!r}: {e}") from e


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="Topic title.")],
    subject: Annotated[str | None, typer.Option(help="Subject id.")] = None,
    notes: Annotated[str, typer.Option(help="Free-form notes.")] = "",
    now: Annotated[str | None, typer.Option(help="Creation instant (ISO). Defaults to now.")] = None,
):
    """[bold green]Add[/bold green] a topic to the snapshot."""
    service = _service(ctx)
    topic = _run(lambda: service.add_topic(title, _instant(now), subject_id=subject, notes=notes))
    typer.echo(topic.id)


@app.command()
def rank(
    ctx: typer.Context,
    now: Annotated[str | None, typer.Option(help="Ranking instant (ISO). Defaults to now.")] = None,
    limit: Annotated[int | None, typer.Option(help="Show only the top N topics.")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON.")] = False,
):
    """Rank topics by review urgency (highest risk first)."""
    service = _service(ctx)
    ranked = _run(lambda: service.rank(_instant(now)))[:limit]
    if as_json:
        _echo_json([{"topic": item.topic, "risk": item.risk} for item in ranked])
        return
    if not ranked:
        typer.secho("No topics found.", fg="yellow")
        return
    for item in ranked:
        typer.echo(
            f"{item.risk.score:.3f}  R={item.risk.retrievability_now:.2f}  "
            f"{item.topic.title}  ({item.topic.id})"
        )


@app.command()
def review(
    ctx: typer.Context,
    topic_id: Annotated[str, typer.Argument(help="Topic id.")],
    at: Annotated[str | None, typer.Option(help="Review instant (ISO). Defaults to now.")] = None,
    quality: Annotated[
        float | None, typer.Option(help="Recall quality: 0 (forgot), 0.5 (hard), 1 (easy).")
    ] = None,
    adjust: Annotated[
        bool | None,
        typer.Option(
            "--adjust/--no-adjust",
            help="For early reviews: shift the schedule or keep it. Defaults to the topic setting.",
        ),
    ] = None,
    quick: Annotated[
        bool, typer.Option("--quick", help="Quick revision (once per local day).")
    ] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON.")] = False,
):
    """Log a review and advance the schedule."""
    service = _service(ctx)
    result = _run(
        lambda: service.review(
            topic_id, _instant(at), quality=quality, adjust_future=adjust, quick=quick
        )
    )
    _report(result, as_json)


@app.command()
def skip(
    ctx: typer.Context,
    topic_id: Annotated[str, typer.Argument(help="Topic id.")],
    at: Annotated[str | None, typer.Option(help="Skip instant (ISO). Defaults to now.")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON.")] = False,
):
    """Skip the pending review and push it out."""
    service = _service(ctx)
    _report(_run(lambda: service.skip(topic_id, _instant(at))), as_json)


@app.command()
def history(
    ctx: typer.Context,
    topic_id: Annotated[str, typer.Argument(help="Topic id.")],
    entry: Annotated[
        list[str],
        typer.Option(
            "--entry",
            "-e",
            help="Review as '<ISO instant>' or '<ISO instant>=<quality>'. Repeatable.",
        ),
    ],
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON.")] = False,
):
    """Replace a topic's review history and replay its schedule."""
    edits = [_parse_entry(raw) for raw in entry]
    service = _service(ctx)
    _report(_run(lambda: service.edit_history(topic_id, edits)), as_json)


@app.command()
def rollover(
    ctx: typer.Context,
    now: Annotated[str | None, typer.Option(help="Roll-over instant (ISO). Defaults to now.")] = None,
):
    """Skip every topic left overdue from a previous day."""
    service = _service(ctx)
    results = _run(lambda: service.roll_over(_instant(now)))
    skipped = [r for r in results if r.ok]
    typer.echo(f"Rolled over {len(skipped)} topic(s).")
    for r in results:
        if not r.ok and r.error:
            typer.secho(f"  {r.topic.title}: {r.error.message}", fg="yellow")


@app.command()
def schedule(
    ctx: typer.Context,
    topic_id: Annotated[str, typer.Argument(help="Topic id.")],
    lapses: Annotated[int, typer.Option(help="Lapses to model in the projection.")] = 0,
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON.")] = False,
):
    """Project upcoming review checkpoints for a topic."""
    service = _service(ctx)
    checkpoints = _run(lambda: service.preview_schedule(topic_id, lapses=lapses))
    if as_json:
        _echo_json(checkpoints)
        return
    if not checkpoints:
        typer.secho("No checkpoints before the exam.", fg="yellow")
        return
    for cp in checkpoints:
        typer.echo(
            f"#{cp.index}  {cp.date.isoformat()}  +{cp.interval_days:.2f}d  "
            f"S={cp.stability_days:.2f}  R={cp.retention:.2f}"
        )


@app.command()
def curve(
    ctx: typer.Context,
    topic_id: Annotated[str, typer.Argument(help="Topic id.")],
    now: Annotated[str | None, typer.Option(help="Reference instant (ISO). Defaults to now.")] = None,
    points: Annotated[int, typer.Option(help="Samples per segment (16-320).")] = 160,
):
    """Emit the retention curve of a topic as JSON."""
    service = _service(ctx)
    _echo_json(_run(lambda: service.curve(topic_id, _instant(now), points)))


@app.command()
def calendar(
    ctx: typer.Context,
    month: Annotated[str | None, typer.Option(help="Month as YYYY-MM. Defaults to this month.")] = None,
    subject: Annotated[
        list[str] | None, typer.Option("--subject", help="Only show these subject ids.")
    ] = None,
    no_subjects: Annotated[
        bool, typer.Option("--no-subjects", help="Hide every subject (empty selection).")
    ] = False,
    now: Annotated[str | None, typer.Option(help="Reference instant (ISO). Defaults to now.")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON.")] = False,
):
    """Show topics due per day for a calendar month."""
    from spacedrep.application.factory import get_review_service

    config = _resolve(ctx)
    service = get_review_service(config)
    month_date = None
    if month:
        try:
            month_date = date.fromisoformat(f"{month}-01")
        except ValueError as e:
            raise typer.BadParameter(f"Invalid month {month!r}, expected YYYY-MM") from e

    subject_ids = set() if no_subjects else (set(subject) if subject else None)
    view = _run(
        lambda: service.calendar(
            _instant(now),
            month=month_date,
            subject_ids=subject_ids,
            week_starts_on=config.week_starts_on,
        )
    )
    if as_json:
        _echo_json(view)
        return
    for day in view.days:
        if not day.is_current_month or not (day.total_topics or day.has_exam):
            continue
        chips = ", ".join(f"{e.subject.name} x{e.count}" for e in day.subjects)
        if day.overflow_subjects:
            extra = sum(e.count for e in day.overflow_subjects)
            chips += f", +{len(day.overflow_subjects)} more ({extra})"
        exam = "  [exam]" if day.has_exam else ""
        typer.echo(f"{day.day_key}  {chips}{exam}")
    if view.overdue_count:
        typer.secho(f"Overdue: {view.overdue_count}", fg="red")


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP server."""
    import uvicorn

    uvicorn.run("spacedrep.server:app", host=host, port=port, reload=reload)
