"""Infra layer utilities (SQLite storage, run history)."""

from .storage import RunHistory, SQLiteManager

__all__ = ["RunHistory", "SQLiteManager"]
