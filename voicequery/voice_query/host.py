"""Local database the generated SQL runs against."""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterator, List, Sequence, Tuple
from urllib.parse import parse_qs, urlsplit

from ..errors import ConfigError, HostBusyError, QueryExecutionError

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

SCHEMA_QUERY = (
    "SELECT sql FROM sqlite_master "
    "WHERE type = 'table' AND sql IS NOT NULL AND name NOT LIKE 'sqlite_%' "
    "ORDER BY rowid"
)


def is_private_memory(database: str, uri: bool = False) -> bool:
    """True when only the connection that opened ``database`` can see it."""
    if database in (MEMORY_DATABASE, ""):
        return True
    if not uri or not database.startswith("file:"):
        return False
    parts = urlsplit(database)
    params = parse_qs(parts.query)
    in_memory = parts.path == MEMORY_DATABASE or params.get("mode") == ["memory"]
    return in_memory and params.get("cache") != ["shared"]


def run_query(connection: sqlite3.Connection, sql: str,
              params: Sequence[Any] = ()) -> Tuple[List[str], List[Tuple[Any, ...]]]:
    """Execute SQL and return (column names, rows)."""
    try:
        cursor = connection.execute(sql, params)
        rows = [tuple(row) for row in cursor.fetchall()]
    except sqlite3.Error as e:
        raise QueryExecutionError(f"Generated SQL failed: {e}\nSQL: {sql}") from e
    columns = [description[0] for description in cursor.description or ()]
    return columns, rows


class QueryHost:
    """Owns the primary connection and hands out independent secondary ones.

    While ``dispatching()`` is active the primary connection is busy; work
    that would run on it raises HostBusyError instead of waiting on itself.
    """

    def __init__(self, database: str = MEMORY_DATABASE, uri: bool = False):
        self.database = database
        self.uri = uri
        self.connection = sqlite3.connect(database, uri=uri)
        self._busy = threading.Lock()
        logger.info(f"Query host opened: {database}")

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    def schema_snapshot(self) -> str:
        """CREATE TABLE statements of every user table joined with '; '.

        Reads the catalog directly, so it is safe while dispatching.
        """
        try:
            statements = [row[0] for row in self.connection.execute(SCHEMA_QUERY)]
        except sqlite3.Error as e:
            logger.warning(f"Failed to read schema: {e}")
            return ""
        return "; ".join(statements)

    @contextmanager
    def dispatching(self) -> Iterator["QueryHost"]:
        """Mark the primary connection busy for the duration of the block."""
        if not self._busy.acquire(blocking=False):
            raise HostBusyError("Host connection is busy; nested work must use a secondary connection")
        try:
            yield self
        finally:
            self._busy.release()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> Tuple[List[str], List[Tuple[Any, ...]]]:
        """Run SQL on the primary connection."""
        with self.dispatching():
            columns, rows = run_query(self.connection, sql, params)
            self.connection.commit()
            return columns, rows

    def executescript(self, script: str) -> None:
        with self.dispatching():
            self.connection.executescript(script)
            self.connection.commit()

    def open_secondary(self) -> sqlite3.Connection:
        """Open an independent connection to the same database."""
        if is_private_memory(self.database, self.uri):
            raise ConfigError("A private in-memory database cannot be opened by a second connection; "
                              "use a file or a shared-cache URI")
        logger.debug(f"Opening secondary connection to {self.database}")
        return sqlite3.connect(self.database, uri=self.uri)

    def close(self) -> None:
        self.connection.close()
        logger.info(f"Query host closed: {self.database}")

    def __enter__(self) -> "QueryHost":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
