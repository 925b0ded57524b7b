from pathlib import Path

import orjson

from treemirror.errors import WriteFailure
from treemirror.pathing import join_relpath


def export_json(store, out_path: Path) -> int:
    """Write the snapshot in STORE to OUT_PATH as JSON; return the entry count."""
    entries = []
    for dir_path, name, record in store.iter_records():
        entries.append({
            "path": join_relpath(dir_path, name),
            "kind": record.kind.value,
            "size": record.size,
            "mtime_ms": record.mtime_ms,
            "md5": record.digest,
        })

    data = {
        "meta": store.get_meta(),
        "directories": sorted(store.get_directory_set()),
        "entries": entries,
    }

    out = Path(out_path)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
    except OSError as e:
        raise WriteFailure.from_oserror(out, e) from e
    return len(entries)
