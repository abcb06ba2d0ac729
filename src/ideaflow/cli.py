"""CLI — init, serve, status, submit, evaluate, history, queue, bulk-status, assign."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ideaflow.config import Config
from ideaflow.core.evaluation import EvaluationEngine
from ideaflow.core.ideas import IdeaService
from ideaflow.errors import IdeaflowError
from ideaflow.events.bus import EventBus
from ideaflow.models.evaluation import Decision
from ideaflow.storage.sqlite_store import SQLiteStore

T = TypeVar("T")

_DECISIONS = click.Choice([d.value for d in Decision], case_sensitive=False)


def _workspace(path: str) -> Config:
    workspace = Path(path).expanduser().resolve()
    config = Config.load(workspace)
    if not config.db_path.exists():
        click.echo(f"Error: No database at {config.db_path}. Run 'ideaflow init' first.", err=True)
        sys.exit(1)
    config.configure_logging()
    return config


def _run(config: Config, fn: Callable[[SQLiteStore, EventBus], Awaitable[T]]) -> T:
    """Open the store, run ``fn`` and map engine errors to exit code 1."""

    async def _main() -> T:
        store = SQLiteStore(config.db_path, wal_mode=config.wal_mode)
        await store.initialize()
        try:
            return await fn(store, EventBus())
        finally:
            await store.close()

    try:
        return asyncio.run(_main())
    except IdeaflowError as e:
        click.echo(f"Error ({e.kind}): {e.message}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(package_name="ideaflow")
def main() -> None:
    """Ideaflow idea evaluation workflow."""


@main.command()
@click.argument("path", type=click.Path(), default="~/.ideaflow")
def init(path: str) -> None:
    """Initialize a new ideaflow workspace."""
    workspace = Path(path).expanduser().resolve()
    config = Config(workspace_path=workspace)

    async def _init() -> None:
        store = SQLiteStore(config.db_path, wal_mode=config.wal_mode)
        await store.initialize()
        await store.close()

    asyncio.run(_init())
    config.save()
    click.echo(f"Initialized workspace at {workspace}")
    click.echo(f"Database: {config.db_path}")


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--transport", type=click.Choice(["stdio"]), default="stdio")
def serve(path: str, transport: str) -> None:
    """Start the MCP server."""
    config = _workspace(path)

    from ideaflow.server import create_server

    server = create_server(str(config.db_path), config)
    server.run(transport=transport)  # type: ignore[arg-type]


@main.command()
@click.argument("path", type=click.Path(exists=True))
def status(path: str) -> None:
    """Show workspace status."""
    config = _workspace(path)

    async def _status(store: SQLiteStore, bus: EventBus) -> dict:
        return await store.get_stats()

    stats = _run(config, _status)
    click.echo(json.dumps(stats, indent=2))


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--title", required=True, help="Idea title")
@click.option("--description", default="", help="Idea description")
@click.option("--category", default=None, help="Idea category")
@click.option("--owner", "owner_id", default=None, help="Submitter identity")
def submit(
    path: str, title: str, description: str, category: str | None, owner_id: str | None
) -> None:
    """Submit a new idea."""
    config = _workspace(path)

    async def _submit(store: SQLiteStore, bus: EventBus) -> Any:
        return await IdeaService(store, bus).create(
            title=title, description=description, category=category, owner_id=owner_id
        )

    idea = _run(config, _submit)
    click.echo(f"Submitted idea {idea.id} ({idea.status})")


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.argument("idea_id")
@click.option("--evaluator", "evaluator_id", required=True, help="Evaluator identity")
@click.option("--decision", type=_DECISIONS, required=True)
@click.option("--comments", required=True, help="Evaluation comments")
@click.option("--file-ref", default=None, help="Supporting file reference")
def evaluate(
    path: str,
    idea_id: str,
    evaluator_id: str,
    decision: str,
    comments: str,
    file_ref: str | None,
) -> None:
    """Submit an evaluation for an idea."""
    config = _workspace(path)

    async def _evaluate(store: SQLiteStore, bus: EventBus) -> Any:
        engine = EvaluationEngine(store, bus, bulk_limit=config.bulk_limit)
        return await engine.submit_evaluation(idea_id, evaluator_id, decision, comments, file_ref)

    evaluation = _run(config, _evaluate)
    Console().print(
        Panel(
            f"[green]✓[/green] Evaluation {evaluation.id}\n"
            f"Idea: {evaluation.idea_id}\n"
            f"Decision: {evaluation.decision}\n"
            f"Status: {evaluation.resulting_status}",
            title="Evaluation Submitted",
        )
    )


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.argument("idea_id")
def history(path: str, idea_id: str) -> None:
    """Show the evaluation history of an idea."""
    config = _workspace(path)

    async def _history(store: SQLiteStore, bus: EventBus) -> Any:
        return await EvaluationEngine(store, bus).get_evaluation_history(idea_id)

    evaluations = _run(config, _history)

    table = Table(title=f"Evaluation history: {idea_id}")
    table.add_column("When", style="cyan")
    table.add_column("Evaluator")
    table.add_column("Kind")
    table.add_column("Decision")
    table.add_column("Status", style="green")
    table.add_column("Comments")
    for e in evaluations:
        table.add_row(
            e.created_at,
            e.evaluator_id,
            e.kind.value,
            e.decision.value if e.decision else "-",
            e.resulting_status.value,
            e.comments,
        )
    Console().print(table)


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--limit", default=None, type=int, help="Results per page")
@click.option("--offset", default=0, type=int, help="Pagination offset")
def queue(path: str, limit: int | None, offset: int) -> None:
    """Show the evaluation queue."""
    config = _workspace(path)
    page_limit, page_offset = config.clamp_page(limit, offset)

    async def _queue(store: SQLiteStore, bus: EventBus) -> Any:
        engine = EvaluationEngine(store, bus)
        return await engine.get_evaluation_queue(page_limit, page_offset)

    page = _run(config, _queue)

    table = Table(title=f"Evaluation queue, page {page.page} of {max(page.pages, 1)}")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Status", style="green")
    table.add_column("Days", justify="right")
    table.add_column("Last evaluation")
    for item in page.items:
        latest = item.latest_evaluation
        table.add_row(
            item.idea.id,
            item.idea.title,
            item.idea.category or "-",
            item.idea.status.value,
            str(item.days_in_queue),
            f"{latest.resulting_status.value} by {latest.evaluator_id}" if latest else "-",
        )
    Console().print(table)
    click.echo(f"{page.total} open idea(s)")


@main.command("bulk-status")
@click.argument("path", type=click.Path(exists=True))
@click.argument("idea_ids", nargs=-1, required=True)
@click.option("--evaluator", "evaluator_id", required=True, help="Evaluator identity")
@click.option("--decision", type=_DECISIONS, required=True)
def bulk_status(path: str, idea_ids: tuple[str, ...], evaluator_id: str, decision: str) -> None:
    """Apply one decision to many ideas."""
    config = _workspace(path)

    async def _bulk(store: SQLiteStore, bus: EventBus) -> int:
        engine = EvaluationEngine(store, bus, bulk_limit=config.bulk_limit)
        return await engine.bulk_status_update(list(idea_ids), decision, evaluator_id)

    updated = _run(config, _bulk)
    click.echo(f"Successfully updated {updated} ideas")


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.argument("idea_ids", nargs=-1, required=True)
@click.option("--assignee", "assignee_id", required=True, help="Evaluator to assign")
def assign(path: str, idea_ids: tuple[str, ...], assignee_id: str) -> None:
    """Assign many ideas for review."""
    config = _workspace(path)

    async def _assign(store: SQLiteStore, bus: EventBus) -> int:
        engine = EvaluationEngine(store, bus, bulk_limit=config.bulk_limit)
        return await engine.bulk_assign(list(idea_ids), assignee_id)

    assigned = _run(config, _assign)
    click.echo(f"Successfully assigned {assigned} ideas")
