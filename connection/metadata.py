import logging
from typing import Callable, Dict, List

import sqlalchemy
from sqlalchemy.engine import Connection, Engine

from errors import TipError
from logs import timeit

from .manager import checkout

logger = logging.getLogger(__name__)

COLUMNS_SQL = sqlalchemy.text(
    "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.COLUMNS WHERE TABLE_SCHEMA = :schema"
)


def _first_column(bind: Engine | Connection, statement) -> List[str]:
    with checkout(bind) as conn:
        if isinstance(statement, str):
            result = conn.exec_driver_sql(statement)
        else:
            result = conn.execute(statement)
        names = []
        for row in result:
            value = row[0]
            if isinstance(value, (bytes, bytearray)):
                value = value.decode("utf-8", errors="replace")
            names.append(str(value))
        return names


class MetadataCache:
    """
    Per-process cache of database, table and column names.

    Entries are filled on first successful fetch and are never invalidated
    automatically. Failed fetches are not cached.
    """

    def __init__(self, bind_provider: Callable[[], Engine | Connection | None]):
        """
        Parameters:
            bind_provider (callable): Returns the connection (or engine) to
                ask, or None when not connected.
        """
        self._bind_provider = bind_provider
        self.databases: List[str] = []
        self.tables: Dict[str, List[str]] = {}
        self.columns: Dict[str, List[str]] = {}

    def _bind(self) -> Engine | Connection | None:
        return self._bind_provider()

    @timeit
    def get_databases(self) -> List[str]:
        if self.databases:
            return self.databases
        bind = self._bind()
        if bind is None:
            return []
        self.databases = _first_column(bind, "SHOW DATABASES")
        return self.databases

    @timeit
    def get_tables(self, database: str) -> List[str]:
        if database in self.tables:
            return self.tables[database]
        bind = self._bind()
        if bind is None:
            return []
        names = _first_column(bind, "SHOW TABLES")
        self.tables[database] = names
        return names

    @timeit
    def get_columns(self, database: str) -> List[str]:
        if database in self.columns:
            return self.columns[database]
        bind = self._bind()
        if bind is None:
            return []
        names = _first_column(bind, COLUMNS_SQL.bindparams(schema=database))
        self.columns[database] = names
        return names

    def candidates(self, database: str) -> List[str]:
        """
        Union of cached databases, tables and columns for completion.

        Fetch failures are logged and yield no candidates for that group.
        """
        words: List[str] = []
        for fetch, args in ((self.get_databases, ()),
                            (self.get_tables, (database,)),
                            (self.get_columns, (database,))):
            try:
                words.extend(fetch(*args))
            except (sqlalchemy.exc.SQLAlchemyError, TipError) as e:
                logger.debug("metadata fetch failed: %s", e)
        return words


def show_create_table(bind: Engine | Connection, table: str) -> str | None:
    """Return the CREATE TABLE text for `table`, or None if unavailable."""
    try:
        with checkout(bind) as conn:
            row = conn.exec_driver_sql(f"SHOW CREATE TABLE `{table}`").first()
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.debug("SHOW CREATE TABLE %s failed: %s", table, e)
        return None
    if row is None or len(row) < 2:
        return None
    ddl = row[1]
    if isinstance(ddl, (bytes, bytearray)):
        ddl = ddl.decode("utf-8", errors="replace")
    return ddl
