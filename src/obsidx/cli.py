"""CLI entry point for obsidx.

Commands:
    obsidx init    — Create an index directory
    obsidx index   — Build or update the index from a vault
    obsidx search  — Lexical, semantic, or hybrid search
    obsidx get     — Show one indexed note
    obsidx tags    — List tags with note counts
    obsidx links   — Outbound links of a note, or backlinks to a target
    obsidx stats   — Index statistics
    obsidx watch   — Reindex incrementally whenever the vault changes
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from obsidx import __version__
from obsidx.errors import ObsidxError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from obsidx.config import Settings
    from obsidx.indexer import TextIndex, VectorStore

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

DELETION_NOTICE = (
    "Incremental runs do not remove notes whose files were deleted; "
    "run `obsidx index --full` to drop them."
)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
    )


@contextlib.contextmanager
def _reported_errors() -> Iterator[None]:
    """Print an ``ObsidxError`` in red and exit 1 instead of dumping a traceback."""
    try:
        yield
    except ObsidxError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _settings(ctx: click.Context) -> Settings:
    from obsidx.config import load_settings

    return load_settings(ctx.obj.get("config_path"))


def _index_dir(settings: Settings, index: str | None) -> Path:
    return Path(index).expanduser() if index else settings.index.path


def _open_stores(settings: Settings, index_dir: Path) -> tuple[TextIndex, VectorStore]:
    from obsidx.indexer import TextIndex, VectorStore, create_embedder

    try:
        embedder = create_embedder(settings.embedding, settings.openai_api_key)
    except ValueError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)

    text_index = TextIndex.open(index_dir)
    try:
        vector_store = VectorStore.open(index_dir, embedder)
    except ObsidxError:
        text_index.close()
        raise
    return text_index, vector_store


def _resolve_vault(
    settings: Settings, vault: str | None, collection: str | None
) -> tuple[Path, str]:
    """Pick the vault root and collection label from ``--vault`` / ``--collection``."""
    from obsidx.vault import CollectionRegistry
    from obsidx.vault.models import DEFAULT_COLLECTION

    registry = CollectionRegistry(settings.collections)
    root = registry.resolve(collection)
    if root is None:
        if vault is None:
            console.print("[red]✗[/red] Pass --vault or --collection.")
            sys.exit(1)
        root = Path(vault)
    root = root.expanduser()
    if not root.is_dir():
        console.print(f"[red]✗[/red] Vault path does not exist: {root}")
        sys.exit(1)
    return root, collection or DEFAULT_COLLECTION


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", type=click.Path(exists=True), help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """obsidx — lexical and similarity search over a markdown vault."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None


@cli.command()
@click.option("--vault", required=True, type=click.Path(exists=True, file_okay=False))
@click.option("--index", "index", default=None, help="Index directory")
@click.pass_context
def init(ctx: click.Context, vault: str, index: str | None) -> None:
    """Create an empty index directory for a vault."""
    settings = _settings(ctx)
    index_dir = _index_dir(settings, index)

    with _reported_errors():
        text_index, vector_store = _open_stores(settings, index_dir)
        text_index.close()
        vector_store.close()

    console.print(f"[green]✓[/green] Index initialized at {index_dir}")
    console.print(f"  vault: {Path(vault).expanduser().resolve()}")


@cli.command("index")
@click.option("--vault", default=None, type=click.Path(exists=True, file_okay=False))
@click.option("--index", "index", default=None, help="Index directory")
@click.option("--collection", default=None, help="Named collection to index")
@click.option(
    "--incremental/--full",
    default=False,
    help=f"Only reindex notes whose mtime moved forward. {DELETION_NOTICE}",
)
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def index_cmd(
    ctx: click.Context,
    vault: str | None,
    index: str | None,
    collection: str | None,
    incremental: bool,
    as_json: bool,
) -> None:
    """Build (or incrementally update) the index for a vault."""
    from obsidx.indexer import VaultIndexer

    settings = _settings(ctx)
    with _reported_errors():
        root, label = _resolve_vault(settings, vault, collection)
        text_index, vector_store = _open_stores(settings, _index_dir(settings, index))
        indexer = VaultIndexer(
            text_index,
            vector_store,
            settings.chunking,
            excluded_folders=settings.index.excluded_folders,
        )
        status = contextlib.nullcontext() if as_json else console.status(f"Indexing {root}...")
        with text_index, vector_store, status:
            report = indexer.run(root, collection=label, incremental=incremental)

    if as_json:
        _echo_json(
            {
                "scanned": report.scanned,
                "failed": report.failed,
                "incremental": report.incremental,
                "text": {
                    "inserted": report.text.inserted,
                    "updated": report.text.updated,
                    "skipped": report.text.skipped,
                },
                "vectors": {
                    "notes_written": report.vectors.notes_written,
                    "notes_skipped": report.vectors.notes_skipped,
                    "chunks_written": report.vectors.chunks_written,
                },
            }
        )
        return

    mode = "incremental" if incremental else "full"
    console.print(f"[green]✓[/green] {mode.capitalize()} index of {report.scanned} notes ({label})")
    console.print(
        f"  text:    {report.text.inserted} inserted, {report.text.updated} updated,"
        f" {report.text.skipped} unchanged"
    )
    console.print(
        f"  vectors: {report.vectors.notes_written} notes,"
        f" {report.vectors.chunks_written} chunks written"
    )
    if report.failed:
        console.print(f"  [yellow]{report.failed} notes failed to parse (see log)[/yellow]")
    if incremental:
        console.print(f"[dim]{DELETION_NOTICE}[/dim]")


@cli.command()
@click.option("--query", "-q", required=True, help="Search text")
@click.option("--limit", default=None, type=int, help="Maximum results")
@click.option(
    "--mode",
    type=click.Choice(["hybrid", "lexical", "semantic"]),
    default="hybrid",
    show_default=True,
)
@click.option("--collection", default=None, help="Restrict to one collection")
@click.option("--index", "index", default=None, help="Index directory")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    limit: int | None,
    mode: str,
    collection: str | None,
    index: str | None,
    as_json: bool,
) -> None:
    """Search the index."""
    from obsidx.retrieval import VaultSearch

    settings = _settings(ctx)
    with _reported_errors():
        text_index, vector_store = _open_stores(settings, _index_dir(settings, index))
        with text_index, vector_store:
            service = VaultSearch(text_index, vector_store, rrf_k=settings.search.rrf_k)
            results = service.search(
                query,
                limit=limit or settings.search.default_limit,
                collection=collection,
                mode=mode,  # type: ignore[arg-type]
            )

    if as_json:
        _echo_json(
            [{"path": r.path, "title": r.title, "score": r.score, "snippet": r.snippet} for r in results]
        )
        return

    if not results:
        console.print(f"[yellow]No results for[/yellow] {query!r}")
        return

    table = Table(show_header=True, header_style="bold magenta", box=None)
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Path")
    table.add_column("Title")
    for i, r in enumerate(results, 1):
        table.add_row(str(i), f"{r.score:.4f}", r.path, r.title)
    console.print(table)


@cli.command()
@click.option("--path", "note_path", required=True, help="Vault-relative note path")
@click.option("--collection", default=None)
@click.option("--index", "index", default=None, help="Index directory")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def get(
    ctx: click.Context,
    note_path: str,
    collection: str | None,
    index: str | None,
    as_json: bool,
) -> None:
    """Show an indexed note by path."""
    from obsidx.retrieval import VaultSearch

    settings = _settings(ctx)
    with _reported_errors():
        text_index, vector_store = _open_stores(settings, _index_dir(settings, index))
        with text_index, vector_store:
            note = VaultSearch(text_index, vector_store).get(note_path, collection)

    if note is None:
        if as_json:
            _echo_json({"found": False, "path": note_path})
        else:
            console.print(f"[red]✗[/red] Note not found: {note_path}")
        sys.exit(1)

    if as_json:
        _echo_json({"found": True, **note.model_dump(mode="json")})
        return

    console.print(f"[bold]{note.title}[/bold]  [dim]{note.path} ({note.collection})[/dim]")
    if note.tags:
        console.print(f"  tags:  {', '.join(note.tags)}")
    if note.links:
        console.print(f"  links: {', '.join(note.links)}")
    console.print()
    console.print(note.body, markup=False, highlight=False)


@cli.command()
@click.option("--collection", default=None)
@click.option("--index", "index", default=None, help="Index directory")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def tags(ctx: click.Context, collection: str | None, index: str | None, as_json: bool) -> None:
    """List tags with the number of notes carrying each."""
    from obsidx.retrieval import VaultSearch

    settings = _settings(ctx)
    with _reported_errors():
        text_index, vector_store = _open_stores(settings, _index_dir(settings, index))
        with text_index, vector_store:
            counts = VaultSearch(text_index, vector_store).tags(collection)

    if as_json:
        _echo_json([{"tag": tag, "count": n} for tag, n in counts])
        return

    if not counts:
        console.print("[dim]No tags indexed.[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta", box=None)
    table.add_column("Tag")
    table.add_column("Notes", justify="right")
    for tag, n in counts:
        table.add_row(f"#{tag}", str(n))
    console.print(table)


@cli.command()
@click.option("--from", "source", default=None, help="Note path whose outbound links to list")
@click.option("--to", "target", default=None, help="Link target whose backlinks to list")
@click.option("--collection", default=None)
@click.option("--index", "index", default=None, help="Index directory")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def links(
    ctx: click.Context,
    source: str | None,
    target: str | None,
    collection: str | None,
    index: str | None,
    as_json: bool,
) -> None:
    """Link graph queries: outbound links (--from) or backlinks (--to)."""
    from obsidx.retrieval import VaultSearch

    if (source is None) == (target is None):
        console.print("[red]✗[/red] Pass exactly one of --from or --to.")
        sys.exit(1)

    settings = _settings(ctx)
    with _reported_errors():
        text_index, vector_store = _open_stores(settings, _index_dir(settings, index))
        with text_index, vector_store:
            service = VaultSearch(text_index, vector_store)
            if source is not None:
                found = service.links(source, collection)
            else:
                assert target is not None
                found = service.backlinks(target, collection)

    if found is None:
        if as_json:
            _echo_json({"found": False, "path": source})
        else:
            console.print(f"[red]✗[/red] Note not found: {source}")
        sys.exit(1)

    if as_json:
        _echo_json(found)
        return

    heading = f"Links from {source}" if source is not None else f"Backlinks to {target}"
    console.print(f"[bold]{heading}[/bold] ({len(found)})")
    for item in found:
        console.print(f"  {item}")


@cli.command()
@click.option("--collection", default=None)
@click.option("--index", "index", default=None, help="Index directory")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
def stats(ctx: click.Context, collection: str | None, index: str | None, as_json: bool) -> None:
    """Show index statistics."""
    from obsidx.retrieval import VaultSearch

    settings = _settings(ctx)
    index_dir = _index_dir(settings, index)
    with _reported_errors():
        text_index, vector_store = _open_stores(settings, index_dir)
        with text_index, vector_store:
            st = VaultSearch(text_index, vector_store).stats(collection)

    if as_json:
        _echo_json(
            {
                "index": str(index_dir),
                "notes": st.notes,
                "chunks": st.chunks,
                "tags": st.tags,
                "collections": st.collections,
            }
        )
        return

    console.print(f"[bold]Index[/bold] {index_dir}")
    console.print(f"  notes:       {st.notes}")
    console.print(f"  chunks:      {st.chunks}")
    console.print(f"  tags:        {st.tags}")
    console.print(f"  collections: {', '.join(st.collections) or '-'}")


@cli.command()
@click.option("--vault", default=None, type=click.Path(exists=True, file_okay=False))
@click.option("--index", "index", default=None, help="Index directory")
@click.option("--collection", default=None, help="Named collection to watch")
@click.pass_context
def watch(ctx: click.Context, vault: str | None, index: str | None, collection: str | None) -> None:
    """Watch a vault and reindex incrementally after each burst of changes."""
    from obsidx.indexer import VaultIndexer
    from obsidx.vault import DebouncedReindexer, VaultWatcher

    settings = _settings(ctx)
    with _reported_errors():
        root, label = _resolve_vault(settings, vault, collection)
        text_index, vector_store = _open_stores(settings, _index_dir(settings, index))

    indexer = VaultIndexer(
        text_index,
        vector_store,
        settings.chunking,
        excluded_folders=settings.index.excluded_folders,
    )

    def _reindex() -> None:
        report = indexer.run(root, collection=label, incremental=True)
        logger.info("Reindex: %d scanned, %d changed", report.scanned, report.changed)

    reindexer = DebouncedReindexer(settings.watch, _reindex)
    watcher = VaultWatcher(
        root,
        on_change=reindexer.handle_change,
        excluded_folders=settings.index.excluded_folders,
    )

    console.print(f"[green]✓[/green] Watching {root} ({label})")
    console.print(f"  Debounce: {settings.watch.debounce_ms}ms")
    console.print(f"[dim]{DELETION_NOTICE}[/dim]")

    async def _run_watch() -> None:
        task = asyncio.create_task(reindexer.run())
        await asyncio.sleep(0)
        watcher.start()
        try:
            await task
        finally:
            watcher.stop()

    try:
        asyncio.run(_run_watch())
    except KeyboardInterrupt:
        console.print("\n[dim]Watcher stopped.[/dim]")
    finally:
        text_index.close()
        vector_store.close()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
