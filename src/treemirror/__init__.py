"""treemirror — record a directory tree and verify it later."""

__version__ = "0.1.0"
