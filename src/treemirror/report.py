"""
report.py — Listeners that present or persist verification events
"""

from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import orjson
from rich.console import Console
from rich.markup import escape

from treemirror import __version__
from treemirror.errors import WriteFailure
from treemirror.events import (
    DirectoryNotFound,
    FieldMismatch,
    FileNotFound,
    MismatchEvent,
    MismatchField,
    NewFileFound,
)
from treemirror.model import FileKind


def format_mtime(mtime_ms) -> str:
    """Render a millisecond timestamp as ISO-8601 UTC."""
    if mtime_ms is None:
        return "-"
    ts = datetime.fromtimestamp(mtime_ms // 1000, tz=timezone.utc) + timedelta(milliseconds=mtime_ms % 1000)
    return ts.isoformat(timespec="milliseconds")


def _format_value(field: MismatchField, value) -> str:
    if field is MismatchField.MTIME:
        return format_mtime(value)
    return str(value)


class MismatchCollector:
    """Listener that keeps every event, in emission order."""

    def __init__(self):
        self.events: List[MismatchEvent] = []

    def __call__(self, event: MismatchEvent):
        self.events.append(event)

    def __len__(self):
        return len(self.events)

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]

    @property
    def new_files(self):
        return self.of_type(NewFileFound)

    @property
    def missing_files(self):
        return self.of_type(FileNotFound)

    @property
    def missing_dirs(self):
        return self.of_type(DirectoryNotFound)

    @property
    def field_mismatches(self):
        return self.of_type(FieldMismatch)


class ConsoleReporter:
    """Listener that prints each event as it arrives."""

    def __init__(self, console: Console = None):
        self.console = console or Console(highlight=False)

    def __call__(self, event: MismatchEvent):
        if isinstance(event, NewFileFound):
            label = "NEW FILE" if event.kind is FileKind.FILE else "NEW DIR"
            self.console.print(f"[yellow]❌ {label}:[/yellow] {escape(event.path)}")
        elif isinstance(event, FileNotFound):
            label = "MISSING FILE" if event.kind is FileKind.FILE else "MISSING DIR"
            self.console.print(f"[red]❌ {label}:[/red] {escape(event.path)}")
        elif isinstance(event, DirectoryNotFound):
            self.console.print(f"[red]❌ MISSING DIR:[/red] {escape(event.path or '.')}")
        elif isinstance(event, FieldMismatch):
            self.console.print(
                f"[magenta]❌ {event.field.value.upper()} MISMATCH:[/magenta] {escape(event.path)}\n"
                f"\tDB: {escape(_format_value(event.field, event.expected))}\n"
                f"\tFS: {escape(_format_value(event.field, event.actual))}"
            )


def write_verify_report(out_path: Path, root_path: Path, stats, events: List[MismatchEvent]) -> Path:
    """
    Save a verification run as JSON: run metadata, counters and every event.
    """
    out_path = Path(out_path)
    data = {
        "tool": "treemirror",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"),
        "root_path": str(root_path),
        "stats": asdict(stats),
        "events": [e.to_dict() for e in events],
    }
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
    except OSError as e:
        raise WriteFailure.from_oserror(out_path, e) from e
    return out_path
