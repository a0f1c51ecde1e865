"""lg CLI — backlink index over a corpus of linked text documents.

Commands:
    lg init [NAME]             create linkgraph.toml + index dir, then sync
    lg sync [--rebuild]        bring the index in line with the corpus
    lg status                  row counts and store location
    lg titles                  title/alias completion list
    lg refs                    ref completion list
    lg ref KEY                 document bound to a ref
    lg backlinks PATH          what links to PATH
    lg graph [--format]        node/edge export (json or dot)
    lg rename OLD NEW          move a document and repoint links to it
    lg delete PATH [--strict]  remove a document from disk and index
    lg dangling                links whose target is not indexed
    lg watch                   follow file changes until interrupted
"""

from __future__ import annotations

import contextlib
import json
import logging
import shutil
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING

import click

from linkgraph.config import LGConfig, init_config, load_config
from linkgraph.corpus import canonicalize
from linkgraph.errors import LinkGraphError
from linkgraph.index import LinkIndex
from linkgraph.models import SyncOutcome

if TYPE_CHECKING:
    from collections.abc import Iterator

    from linkgraph.models import SyncStats

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg(root: Path | None = None) -> LGConfig:
    try:
        return load_config(root)
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


@contextlib.contextmanager
def _open_index(cfg: LGConfig | None = None) -> Iterator[LinkIndex]:
    index = LinkIndex.open(cfg or _load_cfg())
    try:
        yield index
    except (LinkGraphError, sqlite3.OperationalError) as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        index.close()


def _display(identity: str, cfg: LGConfig) -> str:
    try:
        return str(Path(identity).relative_to(cfg.corpus_dir))
    except ValueError:
        return identity


def _report(stats: SyncStats, cfg: LGConfig) -> None:
    click.echo(f"Sync: {stats.summary()}")
    for err in stats.errors:
        click.echo(f"  error: {_display(err.identity, cfg)}: {err.message}", err=True)
    if stats.outcome is SyncOutcome.FATAL:
        raise click.ClickException(f"store unusable: {stats.fatal}")


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="linkgraph")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
def cli(verbose: bool) -> None:
    """lg — backlink index for linked text documents."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(message)s")


# ---------------------------------------------------------------------------
# lg init / lg sync / lg status
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Corpus root")
def init(name: str | None, root: str) -> None:
    """Create linkgraph.toml and the index directory, then index the corpus."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name=name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("linkgraph.toml already exists — skipping init")

    cfg = _load_cfg(root_path)
    click.echo(f"Corpus : {cfg.corpus_dir}")
    click.echo(f"Index  : {cfg.db_path}")
    with _open_index(cfg) as index:
        _report(index.full_sync(), cfg)


@cli.command()
@click.option("--rebuild", is_flag=True, help="Drop every row and re-extract all documents")
@click.option("--json", "as_json", is_flag=True, help="Print stats as JSON")
def sync(rebuild: bool, as_json: bool) -> None:
    """Index changed documents and drop vanished ones."""
    cfg = _load_cfg()
    with _open_index(cfg) as index:
        stats = index.rebuild() if rebuild else index.full_sync()
    if as_json:
        click.echo(json.dumps(stats.to_dict(), indent=2))
        if stats.outcome is SyncOutcome.FATAL:
            raise SystemExit(1)
        return
    _report(stats, cfg)


@cli.command()
def status() -> None:
    """Show store location and row counts."""
    cfg = _load_cfg()
    with _open_index(cfg) as index:
        counts = index.query.stats()
        dangling = len(index.query.dangling_links())
        version = index.store.schema_version()
    click.echo(f"Corpus    : {cfg.corpus_dir}")
    click.echo(f"Index     : {cfg.db_path} (schema v{version})")
    for table, n in counts.items():
        click.echo(f"{table:<10}: {n}")
    click.echo(f"{'dangling':<10}: {dangling}")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@cli.command()
def titles() -> None:
    """List every title and alias with its document."""
    cfg = _load_cfg()
    with _open_index(cfg) as index:
        for c in index.query.title_completions():
            click.echo(f"{c.display}\t{_display(c.identity, cfg)}")


@cli.command()
def refs() -> None:
    """List every ref with its document."""
    cfg = _load_cfg()
    with _open_index(cfg) as index:
        for c in index.query.ref_completions():
            click.echo(f"{c.display}\t{_display(c.identity, cfg)}")


@cli.command()
@click.argument("key")
def ref(key: str) -> None:
    """Print the document bound to KEY."""
    cfg = _load_cfg()
    with _open_index(cfg) as index:
        identity = index.query.find_ref(key)
    if identity is None:
        raise click.ClickException(f"no document for ref {key!r}")
    click.echo(_display(identity, cfg))


@cli.command()
@click.argument("path", type=click.Path())
def backlinks(path: str) -> None:
    """Show which documents link to PATH, with a preview of each link."""
    cfg = _load_cfg()
    identity = canonicalize(path)
    with _open_index(cfg) as index:
        groups = index.query.backlinks(identity)
    if not groups:
        click.echo("No backlinks")
        return
    for group in groups:
        click.echo(f"{group.title} ({_display(group.source, cfg)})")
        for occ in group.occurrences:
            click.echo(f"  @{occ.offset}: {occ.preview}")


@cli.command()
@click.option("--format", "fmt", type=click.Choice(["json", "dot"]), default="json", show_default=True)
def graph(fmt: str) -> None:
    """Export documents and links as a graph."""
    with _open_index() as index:
        g = index.query.graph()
    click.echo(g.to_dot() if fmt == "dot" else g.to_json())


@cli.command()
def dangling() -> None:
    """List links whose target has no indexed document."""
    cfg = _load_cfg()
    with _open_index(cfg) as index:
        links = index.query.dangling_links()
    for link in links:
        click.echo(f"{_display(link.source, cfg)} -> {_display(link.target, cfg)}")


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("old", type=click.Path(exists=True, dir_okay=False))
@click.argument("new", type=click.Path())
def rename(old: str, new: str) -> None:
    """Move OLD to NEW and repoint every link to it."""
    cfg = _load_cfg()
    new_path = Path(new)
    if new_path.exists():
        raise click.ClickException(f"{new} already exists")
    old_identity = canonicalize(old)
    new_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(old_identity, new_path)
    with _open_index(cfg) as index:
        stats = index.on_rename(old_identity, new_path)
    click.echo(f"Renamed {old} -> {new}")
    _report(stats, cfg)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--strict", is_flag=True, help="Also drop links from other documents to PATH")
def delete(path: str, strict: bool) -> None:
    """Delete PATH from disk and from the index."""
    cfg = _load_cfg()
    identity = canonicalize(path)
    Path(identity).unlink()
    with _open_index(cfg) as index:
        index.on_delete(identity, prune=True if strict else None)
    click.echo(f"Deleted {path}")


@cli.command()
def watch() -> None:
    """Follow corpus changes until interrupted."""
    from linkgraph.watcher import run

    cfg = _load_cfg()
    logging.basicConfig(level=cfg.log.level, format="%(asctime)s %(name)s %(message)s")
    with _open_index(cfg) as index:
        try:
            run(index)
        except KeyboardInterrupt:
            click.echo("Stopped")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
