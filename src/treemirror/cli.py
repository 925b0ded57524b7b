# src/treemirror/cli.py

import logging
import os
import sys
import time
from pathlib import Path

import click
from rich.console import Console
from tqdm import tqdm

from treemirror import __version__
from treemirror.errors import MirrorError
from treemirror.export import export_json
from treemirror.pathing import is_under
from treemirror.reconcile import verify_tree
from treemirror.recorder import create_snapshot
from treemirror.report import ConsoleReporter, MismatchCollector, write_verify_report
from treemirror.store import SnapshotStore
from treemirror.utils import find_db_path

DB_OPTION_HELP = "Snapshot DB path (default: $TREEMIRROR_DB or ~/.treemirror/snapshot.db)."


def _setup_logging(verbose: bool) -> None:
    level = logging.INFO
    env_level = os.environ.get("TREEMIRROR_LOG_LEVEL")
    if env_level:
        level = getattr(logging, env_level.upper(), logging.INFO)
    if verbose:
        level = logging.DEBUG

    handlers = [logging.StreamHandler()]
    log_file = os.environ.get("TREEMIRROR_LOG_FILE")
    if log_file:
        log_path = Path(os.path.expanduser(log_file))
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    logging.basicConfig(level=level, format="%(message)s", handlers=handlers)
    logging.getLogger("treemirror").setLevel(level)


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Log every directory and file checked.")
def cli(verbose):
    """treemirror — record a directory tree and verify it later"""
    _setup_logging(verbose)


@cli.command("create")
@click.argument("source", type=click.Path(exists=True, file_okay=False))
@click.option("--db", type=click.Path(dir_okay=False), default=None, help=DB_OPTION_HELP)
@click.option("--replace", is_flag=True, help="Drop the previous snapshot in DB before recording.")
def create_cmd(source, db, replace):
    """Record size, mtime and MD5 of every file under SOURCE."""
    db_path = find_db_path(db)
    root = Path(source)
    if is_under(db_path.resolve(), root.resolve()):
        click.echo("⚠️  The snapshot DB lives inside SOURCE and will be recorded while it changes.")

    click.echo(f"📍 Recording: {root}")
    click.echo(f"📄 DB: {db_path}")
    started_at = time.time()
    try:
        with SnapshotStore.open(db_path, create_if_missing=True) as store, \
                tqdm(desc="📦 Recording", unit="file", disable=None) as pbar:
            stats = create_snapshot(root, store, progress=lambda _record: pbar.update(1), replace=replace)
    except MirrorError as e:
        raise click.ClickException(str(e))

    duration = time.time() - started_at
    click.echo(f"""
📦 Snapshot complete!
   Duration: {duration:.1f}s
   Directories: {stats.dirs_recorded:,}
   Files: {stats.files_recorded:,}
   Skipped: {stats.paths_skipped:,}
   Hashed: {stats.bytes_hashed / 1024 / 1024:.1f} MB""")


@cli.command("verify")
@click.argument("source", type=click.Path(exists=True, file_okay=False))
@click.argument("dest", required=False, type=click.Path())
@click.option("--db", type=click.Path(dir_okay=False), default=None, help=DB_OPTION_HELP)
@click.option("--report", "report_path", type=click.Path(dir_okay=False),
              help="Also write the run and every mismatch to this JSON file.")
@click.option("--fail-on-mismatch", is_flag=True, help="Exit with status 1 if any mismatch is found.")
def verify_cmd(source, dest, db, report_path, fail_on_mismatch):
    """Verify SOURCE against the snapshot in DB."""
    db_path = find_db_path(db)
    root = Path(source)
    console = Console(highlight=False, soft_wrap=True)
    collector = MismatchCollector()
    reporter = ConsoleReporter(console)

    def listener(event):
        collector(event)
        reporter(event)

    if dest:
        click.echo(f"⚠️  DEST is not used by verify, ignoring: {dest}")

    console.rule("[🔍] Verifying Tree")
    console.print(f"📂 Source: {root}")
    console.print(f"📄 DB: {db_path}")
    try:
        with SnapshotStore.open(db_path, create_if_missing=False) as store:
            recorded_root = store.get_meta().get("root_path")
            if recorded_root and recorded_root != str(root.resolve()):
                console.print(f"ℹ️  Snapshot was recorded from: {recorded_root}")
            stats = verify_tree(root, store, listener)
    except MirrorError as e:
        raise click.ClickException(str(e))

    if stats.clean:
        console.print("✅ All files match.")
    console.print(
        f"\n🧾 Checked {stats.files_checked:,} files in {stats.dirs_checked:,} directories: "
        f"{stats.files_matched:,} matched, {stats.files_mismatched:,} changed, "
        f"{stats.new_files:,} new, {stats.missing_files:,} missing files, "
        f"{stats.missing_dirs:,} missing directories"
    )

    if report_path:
        try:
            out = write_verify_report(Path(report_path), root, stats, collector.events)
        except MirrorError as e:
            raise click.ClickException(str(e))
        click.echo(f"📝 Saved verify report: {out}")

    if fail_on_mismatch and not stats.clean:
        sys.exit(1)


@cli.command("export")
@click.option("--db", type=click.Path(dir_okay=False), default=None, help=DB_OPTION_HELP)
@click.option("--out", "-o", type=click.Path(dir_okay=False), required=True, help="Output JSON file.")
def export_cmd(db, out):
    """Export the snapshot to JSON."""
    try:
        with SnapshotStore.open(find_db_path(db), create_if_missing=False) as store:
            count = export_json(store, Path(out))
    except MirrorError as e:
        raise click.ClickException(str(e))
    click.echo(f"✅ Exported {count} records to: {out}")


@cli.command("info")
@click.option("--db", type=click.Path(dir_okay=False), default=None, help=DB_OPTION_HELP)
def info_cmd(db):
    """Show what a snapshot DB contains."""
    db_path = find_db_path(db)
    try:
        with SnapshotStore.open(db_path, create_if_missing=False) as store:
            meta = store.get_meta()
            dirs, files = store.counts()
    except MirrorError as e:
        raise click.ClickException(str(e))

    click.echo(f"📄 DB: {db_path}")
    click.echo(f"   Root: {meta.get('root_path', '-')}")
    click.echo(f"   Created: {meta.get('created_at', '-')}")
    click.echo(f"   Version: {meta.get('version', '-')}")
    click.echo(f"   Directories: {dirs:,}")
    click.echo(f"   Files: {files:,}")


if __name__ == "__main__":
    cli()
