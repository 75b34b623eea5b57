import logging
import time
from typing import Any, List, Tuple

import sqlalchemy
from sqlalchemy.engine import Connection, Engine

from connection.manager import checkout
from errors import ExecutionError
from renderers import ExecSummary, ResultWriter, Row
from sql_parser import SQLParser, StatementKind

logger = logging.getLogger(__name__)

# Send statement text to the driver untouched, without paramstyle formatting
RAW_SQL = {"no_parameters": True}

NOT_CONNECTED = "database connection is not available, please connect first using .connect command"


class Executor:
    """
    Runs buffered SQL and streams rows to a writer.

    Statements are sent as typed, on the connection they are bound to. No
    transaction is opened or committed around them; the server runs in
    autocommit mode unless the statements themselves say otherwise.
    """

    def __init__(self, parser: SQLParser | None = None, batch_size: int = 256):
        """
        Parameters:
            parser (SQLParser): Statement classifier.
            batch_size (int): Rows fetched from the driver per write() call.
        """
        self.parser = parser or SQLParser()
        self.batch_size = batch_size

    def classify(self, sql: str) -> StatementKind:
        """
        Raises:
            ParseError: If the statement cannot be parsed.
        """
        return self.parser.classify(sql)

    def execute(self, bind: Engine | Connection | None, sql: str, writer: ResultWriter) -> ExecSummary:
        """
        Classify `sql`, run it and flush the writer.

        Raises:
            ParseError: If classification fails; nothing is executed.
            ExecutionError: If the driver reports a failure.
            RenderError: If the writer fails.
        """
        kind = self.classify(sql)
        return self.run(bind, sql, kind, writer)

    def run(self, bind: Engine | Connection | None, sql: str, kind: StatementKind,
            writer: ResultWriter) -> ExecSummary:
        """
        Run an already classified statement.

        Query kinds go through the row-fetch path; everything else through
        exec, reporting affected rows and never fetching.

        Returns:
            ExecSummary: What was handed to writer.flush().
        """
        if bind is None:
            raise ExecutionError(NOT_CONNECTED)

        start = time.perf_counter()
        try:
            with checkout(bind) as conn:
                if kind.is_query:
                    summary = self._fetch(conn, sql, writer, start)
                else:
                    summary = self._exec(conn, sql, start)
        except sqlalchemy.exc.SQLAlchemyError as e:
            raise ExecutionError(f"failed to execute SQL: {_driver_message(e)}") from e

        writer.flush(summary)
        return summary

    def _fetch(self, conn: Connection, sql: str, writer: ResultWriter, start: float) -> ExecSummary:
        result = conn.exec_driver_sql(sql, execution_options=RAW_SQL)
        if not result.returns_rows:
            # e.g. an unrecognised command that turned out to be a write
            return ExecSummary(is_query=False, affected_rows=max(result.rowcount, 0),
                               elapsed=time.perf_counter() - start)

        columns = tuple(result.keys())
        count = 0
        while True:
            batch = result.fetchmany(self.batch_size)
            if not batch:
                break
            writer.write(Row(columns, tuple(r)) for r in batch)
            count += len(batch)

        return ExecSummary(is_query=True, row_count=count,
                           elapsed=time.perf_counter() - start, columns=columns)

    @staticmethod
    def _exec(conn: Connection, sql: str, start: float) -> ExecSummary:
        result = conn.exec_driver_sql(sql, execution_options=RAW_SQL)
        return ExecSummary(is_query=False, affected_rows=max(result.rowcount, 0),
                           elapsed=time.perf_counter() - start)


def fetch_all(bind: Engine | Connection, sql: str) -> Tuple[List[str], List[Tuple[Any, ...]]]:
    """
    Run a row-producing statement and materialize the result.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: Driver failures are left to the caller.
    """
    with checkout(bind) as conn:
        result = conn.exec_driver_sql(sql, execution_options=RAW_SQL)
        if not result.returns_rows:
            return [], []
        columns = list(result.keys())
        rows = [tuple(r) for r in result.fetchall()]
    return columns, rows


def exec_statement(bind: Engine | Connection, sql: str) -> Tuple[int, int]:
    """
    Run a statement on the exec path.

    Returns:
        tuple[int, int]: (rows affected, last insert id).
    """
    with checkout(bind) as conn:
        result = conn.exec_driver_sql(sql, execution_options=RAW_SQL)
        affected = max(result.rowcount, 0)
        last_id = result.lastrowid or 0
    return affected, last_id


def _driver_message(e: sqlalchemy.exc.SQLAlchemyError) -> str:
    """Prefer the driver's own message over SQLAlchemy's wrapped text."""
    orig = getattr(e, "orig", None)
    return str(orig) if orig is not None else str(e)
