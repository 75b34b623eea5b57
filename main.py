"""Entry point for the tip command-line client.

This script resolves connection settings from flags, config file and
environment, connects to the server, and then either runs a single statement
(-e) or starts the REPL.
"""

# Standard library imports
import argparse
import logging
import sys

# Third-party imports
import sqlalchemy

# Local application imports
from config import (
    default_config_path,
    history_path,
    load_config_file,
    load_env,
    resolve_conn_info,
)
from errors import ConfigError, TipError
from executor import fetch_all
from logs import setup_logging
from renderers import OutputFormat, make_writer, print_execution_details
from repl import HistoryLog, Repl
from session import VERSION, Session

logger = logging.getLogger("tip")

EXIT_FAILURE = 1
EXIT_CONFIG = 2


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tip", description="Interactive SQL client")
    parser.add_argument("--host", help="database host")
    parser.add_argument("--port", help="database port")
    parser.add_argument("-u", "--user", help="database user")
    parser.add_argument("-p", "--password", help="database password")
    parser.add_argument("-d", "--database", help="database name")
    parser.add_argument("-c", "--config", help="path to a TOML config file")
    parser.add_argument("-o", "--output", default=str(OutputFormat.TABLE),
                        help=f"output format ({', '.join(OutputFormat.names())})")
    parser.add_argument("-e", "--execute", help="execute a single statement and exit")
    parser.add_argument("-O", "--output-file", help="write -e results to this file")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="show execution details and informational logs")
    parser.add_argument("--version", action="store_true", help="print version and exit")
    return parser


def server_version(engine) -> str:
    """Best effort: TiDB's detailed version first, then plain VERSION()."""
    for statement in ("SELECT tidb_version()", "SELECT VERSION()"):
        try:
            _, rows = fetch_all(engine, statement)
        except sqlalchemy.exc.SQLAlchemyError as e:
            logger.debug("%s failed: %s", statement, e)
            continue
        if rows and rows[0]:
            return str(rows[0][0])
    return ""


def greet(session: Session):
    """Startup banner on the diagnostic stream, whatever the log level."""
    session.err.write(f"Welcome to tip! tip version: {session.version}\n")
    if session.engine is not None:
        version = server_version(session.engine)
        if version:
            session.err.write(f"Connected to server: {version}\n")
    session.err.flush()


def run_once(session: Session, sql: str, output_file: str | None) -> int:
    """
    Execute one statement and render it to stdout or `output_file`.

    Returns:
        int: 0 on success, 1 on any failure.
    """
    try:
        if output_file:
            with open(output_file, "w", encoding="utf-8") as f:
                summary = session.executor.execute(session.connection(), sql,
                                                   make_writer(session.output_format, f))
        else:
            summary = session.executor.execute(session.connection(), sql,
                                               make_writer(session.output_format, session.out))
    except OSError as e:
        logger.error("failed to write output file %s: %s", output_file, e)
        return EXIT_FAILURE
    except TipError as e:
        logger.error("%s", e)
        return EXIT_FAILURE

    if session.verbose:
        print_execution_details(summary, session.err)
    return 0


def main(argv=None) -> int:
    """Main entry point: parse flags, connect, then run one statement or the REPL."""
    args = build_arg_parser().parse_args(argv)

    if args.version:
        print(f"tip version: {VERSION}")
        return 0

    setup_logging("info" if args.verbose else "warning")

    try:
        fmt = OutputFormat.parse(args.output)
    except ValueError as e:
        logger.error("%s", e)
        return EXIT_CONFIG

    try:
        config_path = args.config or default_config_path()
        file_values = load_config_file(config_path) if config_path else {}
        env_values = load_env()
        info = resolve_conn_info(
            {
                "host": args.host,
                "port": args.port,
                "user": args.user,
                "password": args.password,
                "database": args.database,
            },
            file_values,
            env_values,
        )
    except ConfigError as e:
        logger.error("%s", e)
        return EXIT_CONFIG

    try:
        history = HistoryLog(history_path())
    except (ConfigError, OSError) as e:
        logger.warning("history disabled: %s", e)
        history = HistoryLog(None)

    interactive = sys.stdin.isatty()
    session = Session(
        output_format=fmt,
        verbose=args.verbose or interactive,
        interactive=interactive,
    )
    session.connections.default_database = info.database

    try:
        try:
            session.connections.connect(info)
        except TipError as e:
            # Keep going; .connect can still establish a connection later
            logger.error("failed to connect: %s", e)

        if args.execute is not None:
            return run_once(session, args.execute, args.output_file)

        if interactive:
            greet(session)
        return Repl(session, history=history).run()
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
