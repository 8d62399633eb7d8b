"""mnemo CLI: review, identity backfill and vault diagnostics."""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Any

import typer

from mnemo.application.config import AppConfig, resolve_config
from mnemo.consts import VERSION
from mnemo.domain.models import Card, ReviewResponse

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="mnemo: spaced-repetition scheduling for Markdown vaults.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage mnemo configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

_LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def _resolve_with_overrides(**overrides: Any) -> AppConfig:
    config = resolve_config(overrides)
    logging.getLogger("mnemo").setLevel(_LOG_LEVELS.get(config.verbose, logging.DEBUG))
    return config


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


def _version_callback(value: bool):
    if value:
        typer.echo(f"mnemo {VERSION}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version."),
    ] = False,
):
    """Global settings for mnemo."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _verbose(ctx: typer.Context) -> int:
    return (ctx.obj or {}).get("verbose", 0)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def review(
    ctx: typer.Context,
    document: Annotated[str, typer.Argument(help="Vault-relative path of the note.")],
    response: Annotated[
        ReviewResponse,
        typer.Option("--response", "-r", case_sensitive=False, help="Your answer."),
    ],
    vault: Annotated[
        Path | None, typer.Option(help="Vault root. Defaults to config, or CWD.")
    ] = None,
    line: Annotated[
        int | None,
        typer.Option(help="1-based line of a flashcard marker. Omit to review the whole note."),
    ] = None,
    sibling: Annotated[int, typer.Option(help="Card slot inside a multi-card marker.")] = 0,
):
    """[bold green]Review[/bold green] a note, or one flashcard inside it."""
    from mnemo.application.factory import get_history_store, get_review_service

    config = _resolve_with_overrides(vault_root=vault, verbose=_verbose(ctx))

    if not (config.vault_path / document).is_file():
        typer.secho(f"Document not found: {document}", fg="red")
        raise typer.Exit(1)

    async def run():
        history = get_history_store(config)
        await history.initialize()
        service = get_review_service(config, history)
        service.start_pass()
        try:
            if line is None:
                return await service.review_note(document, response)
            card = Card(document=document, line_no=line - 1, sibling_index=sibling)
            return await service.review_card(card, response)
        finally:
            await history.flush()

    try:
        schedule = asyncio.run(run())
    except IndexError as e:
        typer.secho(f"Cannot review card: {e}", fg="red")
        raise typer.Exit(1)

    typer.echo(
        f"Next review: {schedule.due_date.isoformat()} "
        f"(interval {schedule.interval}d, ease {schedule.ease})"
    )


@app.command()
def migrate(
    ctx: typer.Context,
    path: Annotated[Path | None, typer.Argument(help="Vault root. Defaults to config.")] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Preview changes without saving.")
    ] = False,
):
    """Give every scheduled note and flashcard a stable id."""
    from mnemo.application.factory import get_history_store, get_review_service

    config = _resolve_with_overrides(vault_root=path, verbose=_verbose(ctx))
    service = get_review_service(config, get_history_store(config))

    progress = service.assign_item_ids(dry_run=dry_run)
    typer.echo(f"Scanned {progress.total_items} scheduled items.")
    if dry_run:
        typer.echo(f"[DRY RUN] Would assign {progress.ids_assigned} IDs.")
    else:
        typer.secho(f"Migrated: assigned {progress.ids_assigned} IDs.", fg="green")

    if progress.errors:
        typer.secho(f"Errors: {len(progress.errors)}", fg="red")
        for err in progress.errors:
            typer.echo(f"  {err}")


@app.command()
def rank(
    ctx: typer.Context,
    path: Annotated[Path | None, typer.Argument(help="Vault root. Defaults to config.")] = None,
    top: Annotated[int, typer.Option(help="Show the N most important notes.")] = 20,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show link-graph importance (PageRank) of the vault's notes."""
    from mnemo.application.graph_resolver import build_link_graph, compute_importance
    from mnemo.infrastructure.vault_store import VaultDocumentStore

    config = _resolve_with_overrides(vault_root=path, verbose=_verbose(ctx))
    store = VaultDocumentStore(config.vault_path)

    documents = store.list_documents()
    graph = build_link_graph(documents, {doc: store.get_links(doc) for doc in documents})
    scores = compute_importance(
        graph,
        damping_factor=config.pagerank_damping,
        epsilon=config.pagerank_epsilon,
        max_iterations=config.pagerank_max_iterations,
    )
    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))[:top]

    if json_output:
        typer.echo(json.dumps({doc: score for doc, score in ranked}, indent=2))
        return

    typer.echo(f"Notes: {len(graph.nodes)}  Links: {graph.edge_count}")
    for doc, score in ranked:
        typer.echo(f"  {score:.4f}  {doc}")


@app.command()
def forecast(
    ctx: typer.Context,
    path: Annotated[Path | None, typer.Argument(help="Vault root. Defaults to config.")] = None,
    days: Annotated[int, typer.Option(help="Number of upcoming days to show.")] = 14,
):
    """Show how many items fall due on each upcoming day."""
    from mnemo.application.factory import get_history_store, get_review_service

    config = _resolve_with_overrides(vault_root=path, verbose=_verbose(ctx))
    service = get_review_service(config, get_history_store(config))
    p = service.start_pass()

    overdue = sum(c for d, c in p.histogram.items() if d < p.today)
    if overdue:
        typer.secho(f"Overdue: {overdue}", fg="yellow")

    upcoming = [(d, c) for d, c in p.histogram.items() if d >= p.today]
    if not upcoming:
        typer.echo("Nothing scheduled.")
        return
    for d, c in upcoming[:days]:
        typer.echo(f"  {d.isoformat()}  {c:4d}  {'#' * min(c, 60)}")


@app.command()
def history(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Stable id of a note or card.")],
    vault: Annotated[
        Path | None, typer.Option(help="Vault root. Defaults to config, or CWD.")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show the recorded reviews of one item."""
    from mnemo.application.factory import get_history_store

    config = _resolve_with_overrides(vault_root=vault, verbose=_verbose(ctx))
    store = get_history_store(config)
    asyncio.run(store.initialize())

    record = store.get_history(item_id)
    if record is None:
        typer.secho(f"No history for {item_id}", fg="yellow")
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(record.to_dict(), indent=2))
        return

    typer.echo(
        f"{item_id}: {len(record.history)} reviews, {record.lapses} lapses, "
        f"first {record.created}, last {record.last_reviewed}"
    )
    for entry in record.history:
        typer.echo(f"  {entry.date}  {entry.response:<5}  interval={entry.interval} ease={entry.ease}")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    d["history_path"] = str(config.history_path)
    d["scheduler"] = asdict(config.scheduler_settings())
    typer.echo(json.dumps(d, indent=2))
