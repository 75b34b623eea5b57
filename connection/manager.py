import logging
import ssl
from contextlib import contextmanager
from typing import Iterator

import sqlalchemy
from sqlalchemy.engine import URL, Connection, Engine

from config import DEFAULT_DATABASE, ConnInfo
from errors import ConnectError

from .locks import RWLock

logger = logging.getLogger(__name__)

# Upper bound for both open and idle pooled connections
MAX_CONNS = 100


def build_url(info: ConnInfo, database: str) -> URL:
    """
    Build the DSN for a MySQL-protocol server.

    Raises:
        ConnectError: If the port is not a number.
    """
    try:
        port = int(info.port) if info.port else None
    except ValueError as e:
        raise ConnectError(f"invalid port: {info.port!r}") from e
    return URL.create(
        "mysql+pymysql",
        username=info.user or None,
        password=info.password or None,
        host=info.host or None,
        port=port,
        database=database or None,
        query={"charset": "utf8mb4"},
    )


def tls_context(host: str) -> ssl.SSLContext:
    """TLS 1.2+ context; hostname verification runs against `host`."""
    ctx = ssl.create_default_context()
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.check_hostname = bool(host)
    return ctx


@contextmanager
def checkout(bind: Engine | Connection) -> Iterator[Connection]:
    """
    Yield a connection for `bind`.

    An engine lends a pooled connection for the duration of the block; a
    connection is used as is and stays open afterwards.
    """
    if isinstance(bind, Engine):
        with bind.connect() as conn:
            yield conn
    else:
        yield bind


def query_current_database(bind: Engine | Connection) -> str:
    """Return the server-side current database, or "" when none/unknown."""
    try:
        with checkout(bind) as conn:
            name = conn.exec_driver_sql("SELECT DATABASE()").scalar()
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.debug("SELECT DATABASE() failed: %s", e)
        return ""
    if isinstance(name, (bytes, bytearray)):
        name = name.decode("utf-8", errors="replace")
    return name or ""


class ConnectionManager:
    """
    Owns the single shared engine, the session connection checked out of it
    and the last successfully used database.

    Statements typed at the prompt and run by scripts all go through the
    session connection, so `USE`, session variables and explicit
    `BEGIN ... ROLLBACK` blocks carry over from one statement to the next.
    Readers take the shared side of the lock; swapping the engine or
    checking out the session connection takes the exclusive side.
    """

    def __init__(self, default_database: str = DEFAULT_DATABASE, engine_factory=None):
        """
        Parameters:
            default_database (str): Used when neither the caller nor history
                provide a database name.
            engine_factory (callable): Replacement for sqlalchemy.create_engine,
                called as factory(url, **kwargs).
        """
        self.default_database = default_database
        self._engine_factory = engine_factory or sqlalchemy.create_engine
        self._lock = RWLock()
        self._engine: Engine | None = None
        self._conn: Connection | None = None
        self._last_database = ""

    def get_current(self) -> Engine | None:
        with self._lock.read():
            return self._engine

    def set_current(self, engine: Engine | None):
        """Swap in a new engine; the session connection is closed and the old engine disposed of."""
        with self._lock.write():
            previous, self._engine = self._engine, engine
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()
        if previous is not None and previous is not engine:
            previous.dispose()

    def get_connection(self) -> Connection | None:
        """
        Return the session connection, checking one out on first use.

        A connection that was closed or invalidated after a disconnect is
        replaced by a fresh one.

        Returns:
            Connection | None: None when not connected.

        Raises:
            ConnectError: If no connection can be checked out.
        """
        with self._lock.write():
            if self._engine is None:
                return None
            if self._conn is not None and (self._conn.closed or self._conn.invalidated):
                logger.info("session connection lost, checking out a new one")
                self._conn.close()
                self._conn = None
            if self._conn is None:
                try:
                    self._conn = self._engine.connect()
                except sqlalchemy.exc.SQLAlchemyError as e:
                    raise ConnectError(f"failed to open connection: {e}") from e
            return self._conn

    def last_database(self) -> str:
        with self._lock.read():
            return self._last_database

    def set_last_database(self, name: str):
        with self._lock.write():
            self._last_database = name

    def is_connected(self) -> bool:
        return self.get_current() is not None

    def connect(self, info: ConnInfo) -> Engine:
        """
        Open a new engine for `info` and make it the current one.

        TLS is tried first; on failure the attempt is repeated once without
        TLS. The engine is only installed after a successful ping.

        Returns:
            Engine: The freshly installed engine.

        Raises:
            ConnectError: If both attempts fail.
        """
        database = info.database or self.last_database() or self.default_database
        url = build_url(info, database)

        try:
            engine = self._open(url, info.host, use_tls=True)
        except ConnectError as e:
            logger.warning("TLS connection to %s failed (%s); retrying without TLS", info.host, e)
            engine = self._open(url, info.host, use_tls=False)

        self.set_current(engine)
        current = query_current_database(engine)
        if current:
            self.set_last_database(current)
        logger.info("connected to %s (database=%s)", info.host, current or "(none)")
        return engine

    def _open(self, url: URL, host: str, use_tls: bool) -> Engine:
        logger.info("connecting to %s (tls=%s)...", host, use_tls)
        kwargs = {
            "pool_size": MAX_CONNS,
            "max_overflow": 0,
            "pool_use_lifo": True,
            "isolation_level": "AUTOCOMMIT",
        }
        if use_tls:
            kwargs["connect_args"] = {"ssl": tls_context(host)}

        try:
            engine = self._engine_factory(url, **kwargs)
        except (sqlalchemy.exc.SQLAlchemyError, ImportError) as e:
            raise ConnectError(f"failed to create engine: {e}") from e

        try:
            self.ping(engine)
        except ConnectError:
            engine.dispose()
            raise
        return engine

    @staticmethod
    def ping(engine: Engine):
        """
        Liveness check; any failure is a hard connect failure.

        Raises:
            ConnectError: If `SELECT 1` cannot be run.
        """
        try:
            with engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
        except sqlalchemy.exc.SQLAlchemyError as e:
            raise ConnectError(f"failed to ping server: {e}") from e

    def close(self):
        """Close the session connection and dispose of the engine at shutdown."""
        self.set_current(None)
