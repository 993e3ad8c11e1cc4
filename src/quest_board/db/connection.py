"""SQLite connection primitives for the Quest Board DB layer.

This module owns connection creation, low-level SQLite runtime pragmas and the
two transaction shapes repository code relies on:

- :func:`connection_scope` for short reads and simple single-statement writes.
- :func:`transaction_scope` for read-decide-write units that must not
  interleave with another writer (``BEGIN IMMEDIATE``).
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


def get_db_path() -> Path:
    """Resolve the absolute SQLite database path from runtime configuration."""
    from quest_board.config import config

    return config.database.absolute_path


def configure_connection(connection: sqlite3.Connection) -> sqlite3.Connection:
    """Apply connection-level SQLite pragmas required by the application.

    Notes:
        - ``foreign_keys=ON`` is required because SQLite does not enforce
          foreign-key constraints by default.
        - ``busy_timeout`` lets concurrent ``BEGIN IMMEDIATE`` writers queue
          on the database lock instead of failing with ``SQLITE_BUSY``.
    """
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute("PRAGMA busy_timeout = 10000")
    return connection


def get_connection(*, autocommit: bool = False) -> sqlite3.Connection:
    """Create and configure a new SQLite connection.

    Args:
        autocommit: When True the connection is opened with
            ``isolation_level=None`` so transactions are controlled with
            explicit ``BEGIN``/``COMMIT`` statements.
    """
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    if autocommit:
        connection = sqlite3.connect(str(db_path), isolation_level=None, timeout=10.0)
    else:
        connection = sqlite3.connect(str(db_path), timeout=10.0)
    return configure_connection(connection)


@contextmanager
def connection_scope(*, write: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a configured connection with guaranteed cleanup semantics.

    Args:
        write: When True, commit on success and rollback on exceptions.

    Behavior:
        - Always closes the connection in ``finally``.
        - For write scopes, commits at the end of a successful block.
        - For write scopes, attempts rollback before re-raising failures.
    """
    connection = get_connection()
    try:
        yield connection
        if write:
            connection.commit()
    except Exception:
        if write:
            try:
                connection.rollback()
            except sqlite3.Error:
                pass
        raise
    finally:
        connection.close()


@contextmanager
def transaction_scope() -> Iterator[sqlite3.Connection]:
    """Yield a connection holding the database write lock for the whole block.

    ``BEGIN IMMEDIATE`` acquires SQLite's RESERVED lock before the first read,
    so a count taken inside the block cannot be invalidated by another writer
    before the block commits. Any exception rolls the whole unit back.
    """
    connection = get_connection(autocommit=True)
    try:
        connection.execute("BEGIN IMMEDIATE")
        try:
            yield connection
        except BaseException:
            connection.execute("ROLLBACK")
            raise
        connection.execute("COMMIT")
    finally:
        connection.close()
