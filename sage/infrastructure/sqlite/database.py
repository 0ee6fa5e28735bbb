"""
SQLite database handle.

sqlite3 connections must stay on the thread that created them, so every
operation (open, close, and each repository call) is submitted to one
dedicated worker thread. The caller blocks until its operation is done.
Operations run one at a time, in submission order.
"""

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Sequence, TypeVar, Union

from .errors import ConnectionFailed
from .migrations import MIGRATIONS, Migration, get_user_version, migrate


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Database:
    """
    One SQLite file, one connection, one worker thread.

    Usage:
        with Database("sage.db") as db:
            goals = GoalRepository(db).list_all()
    """

    def __init__(
        self,
        path: Union[str, Path],
        migrations: Sequence[Migration] = MIGRATIONS,
    ) -> None:
        self.path = str(path)
        self._migrations = tuple(migrations)
        self._connection: Optional[sqlite3.Connection] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    @property
    def schema_version(self) -> int:
        return self.run(get_user_version)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def open(self) -> "Database":
        """
        Connect, enable WAL, and apply pending migrations.

        Raises:
            ConnectionFailed: The file couldn't be opened.
            MigrationFailed: A migration failed; the database stays closed.
        """
        if self.is_open:
            return self

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sage-db")
        try:
            self._connection = self._executor.submit(self._connect).result()
        except Exception:
            self._shutdown_executor()
            raise

        logger.info("Database opened", extra={"path": self.path})
        return self

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._executor is None:
            return

        connection = self._connection
        self._connection = None
        if connection is not None:
            self._executor.submit(connection.close).result()
        self._shutdown_executor()

        logger.info("Database closed", extra={"path": self.path})

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    def run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        """
        Run operation(connection) on the worker thread and return its result.

        Exceptions raised by the operation propagate to the caller.
        """
        connection = self._connection
        if connection is None or self._executor is None:
            raise ConnectionFailed("Database not open")
        return self._executor.submit(operation, connection).result()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        # Runs on the worker thread
        try:
            connection = sqlite3.connect(self.path)
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as e:
            logger.error("Failed to open database", extra={"path": self.path, "error": str(e)})
            raise ConnectionFailed(f"Unable to open database at {self.path}: {e}") from e

        try:
            migrate(connection, self._migrations)
        except Exception:
            connection.close()
            raise

        return connection

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
