"""Database access."""

from commtrack.db.session import Database, get_db

__all__ = ["Database", "get_db"]
