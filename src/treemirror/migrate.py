"""
migrate.py — Versioned schema upgrades for the snapshot database

Migration files are named ``NNNN_description.sql``; the numeric prefix is
the schema version they produce. The version reached so far is kept in
``PRAGMA user_version``.
"""

import logging
import re
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger("treemirror.migrate")

MIGRATIONS_PATH = Path(__file__).parent / "migrations"

_MIGRATION_NAME = re.compile(r"^(\d+)_.+\.sql$")


def schema_version(conn) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def list_migrations(migrations_path: Path = MIGRATIONS_PATH) -> List[Tuple[int, Path]]:
    """Return (version, file) pairs sorted by version; non-matching files are ignored."""
    found = []
    for sql_file in migrations_path.glob("*.sql"):
        match = _MIGRATION_NAME.match(sql_file.name)
        if match:
            found.append((int(match.group(1)), sql_file))
    return sorted(found)


def apply_migrations(conn, migrations_path: Path = MIGRATIONS_PATH) -> int:
    """Bring CONN up to the newest migration and return the resulting version."""
    current = schema_version(conn)
    for version, sql_file in list_migrations(migrations_path):
        if version <= current:
            continue
        logger.debug("Applying migration %s (schema %d -> %d)", sql_file.name, current, version)
        # executescript commits first; BEGIN/COMMIT keep each file all-or-nothing.
        script = f"BEGIN;\n{sql_file.read_text()}\nPRAGMA user_version = {version};\nCOMMIT;"
        try:
            conn.executescript(script)
        except Exception:
            conn.rollback()
            logger.error("Migration failed: %s", sql_file.name)
            raise
        current = version
    return current
