"""Public exports for the SQLite state store implementation package."""

from sqlite_state_impl.sqlite_impl import SqliteStateStore, register

register()

__all__ = ["SqliteStateStore", "register"]
