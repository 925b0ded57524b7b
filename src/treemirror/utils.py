import os
from pathlib import Path

DB_ENV_VAR = "TREEMIRROR_DB"


def find_db_path(db_path=None):
    """
    Return a Path to the snapshot DB.
    Explicit path first, then $TREEMIRROR_DB, then ~/.treemirror/snapshot.db.
    """
    if db_path:
        return Path(db_path)
    env = os.environ.get(DB_ENV_VAR)
    if env:
        return Path(os.path.expanduser(env))
    return Path.home() / ".treemirror" / "snapshot.db"
