import io
import os
import sys

import pytest
import sqlalchemy
from sqlalchemy import event

# add upper path to import the top-level modules
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from connection import ConnectionManager
from renderers import OutputFormat
from session import Session


def sqlite_engine(database_name=None):
    """
    In-memory SQLite engine in autocommit mode, like the engines tip opens.

    When `database_name` is given, SELECT DATABASE() answers with it, the way
    a MySQL server would.
    """
    engine = sqlalchemy.create_engine("sqlite://", isolation_level="AUTOCOMMIT")
    if database_name is not None:
        @event.listens_for(engine, "connect")
        def _register(dbapi_conn, record):
            dbapi_conn.create_function("DATABASE", 0, lambda: database_name)
    return engine


@pytest.fixture
def engine():
    eng = sqlite_engine()
    with eng.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE users (id INTEGER, name TEXT)")
        conn.exec_driver_sql("INSERT INTO users VALUES (1, 'alice'), (2, 'bob')")
    yield eng
    eng.dispose()


@pytest.fixture
def out():
    return io.StringIO()


@pytest.fixture
def session(out):
    s = Session(connections=ConnectionManager(), output_format=OutputFormat.JSON,
                out=out, err=io.StringIO())
    yield s
    s.close()


@pytest.fixture
def connected_session(engine, session):
    session.connections.set_current(engine)
    return session
