import logging
from enum import Enum

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError as SqlglotParseError, TokenError

from errors import ParseError

logger = logging.getLogger(__name__)


class StatementKind(Enum):
    """Execution-relevant category of a SQL statement."""
    QUERY = "query"
    MUTATION = "mutation"
    DDL = "ddl"
    TXN = "txn"
    SESSION = "session"
    UNKNOWN = "unknown"

    @property
    def is_query(self) -> bool:
        """Row-producing kinds go through fetch; everything else through exec."""
        return self in (StatementKind.QUERY, StatementKind.UNKNOWN)


MUTATION_NODES = (exp.Insert, exp.Update, exp.Delete, exp.Merge)
DDL_NODES = (exp.Create, exp.Drop, exp.Alter, exp.TruncateTable)
TXN_NODES = (exp.Transaction, exp.Commit, exp.Rollback)
SESSION_NODES = (exp.Use, exp.Set)


class SQLParser:
    """
    Utility class to classify SQL strings using sqlglot's MySQL grammar.
    """

    def __init__(self, dialect: str = "mysql"):
        self.dialect = dialect

    def parse(self, sql: str) -> list[exp.Expression]:
        """
        Parse the given SQL string into one AST per statement.

        Parameters:
            sql (str): One or more semicolon-separated statements.

        Returns:
            list[Expression]: Parsed statements; empty statements are dropped.

        Raises:
            ParseError: If the grammar rejects the text.
        """
        try:
            parsed = sqlglot.parse(sql, read=self.dialect)
        except (SqlglotParseError, TokenError) as e:
            logger.debug("failed to parse SQL: %s", sql)
            raise ParseError(f"failed to parse SQL: {e}") from e
        return [stmt for stmt in parsed if stmt is not None]

    @staticmethod
    def kind_of(stmt: exp.Expression) -> StatementKind:
        """
        Map a single parsed statement to its StatementKind.

        SELECT, SHOW and anything unrecognised count as queries.
        """
        if isinstance(stmt, MUTATION_NODES):
            return StatementKind.MUTATION
        if isinstance(stmt, DDL_NODES):
            return StatementKind.DDL
        if isinstance(stmt, TXN_NODES):
            return StatementKind.TXN
        if isinstance(stmt, SESSION_NODES):
            return StatementKind.SESSION
        if isinstance(stmt, exp.Command):
            return StatementKind.UNKNOWN
        return StatementKind.QUERY

    def classify(self, sql: str) -> StatementKind:
        """
        Classify a batch of statements.

        If any statement in the batch is non-query, the whole batch is
        reported with that statement's kind so it runs on the exec path.

        Raises:
            ParseError: If the grammar rejects the text.
        """
        batch_kind = StatementKind.QUERY
        for stmt in self.parse(sql):
            kind = self.kind_of(stmt)
            if not kind.is_query:
                return kind
            if kind is StatementKind.UNKNOWN:
                batch_kind = kind
        return batch_kind


_default_parser = SQLParser()


def classify(sql: str) -> StatementKind:
    return _default_parser.classify(sql)
