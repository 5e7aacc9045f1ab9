"""SQLite reference host for the slug listener."""

from .session import Session
from .store import DEFAULT_DB_PATH, RecordStore

__all__ = ["DEFAULT_DB_PATH", "RecordStore", "Session"]
