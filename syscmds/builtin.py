# builtin.py

from typing import IO, List

from config import ConnInfo
from errors import CommandArgumentError, ConnectError
from renderers import OutputFormat

# Order shown by a bare .output_format
FORMAT_OPTIONS = ("json", "table", "plain", "csv")


def help_command(session, args: List[str], raw_line: str, out: IO[str]):
    for cmd in session.registry.commands:
        out.write(f"{cmd.name} - {cmd.description} - Usage: {cmd.usage}\n")


def version_command(session, args: List[str], raw_line: str, out: IO[str]):
    out.write(f"tip version: {session.version}\n")


def refresh_completion_command(session, args: List[str], raw_line: str, out: IO[str]):
    # TODO: clear session.metadata caches once refresh semantics are agreed on
    out.write("not impl yet\n")


CONNECT_USAGE = ".connect <host> <port> <user> <password> [database]"


def connect_command(session, args: List[str], raw_line: str, out: IO[str]):
    """
    Replace the current connection.

    Without a database argument the last used database is reused, falling
    back to the configured default.
    """
    if len(args) < 4:
        raise CommandArgumentError("missing connection arguments", CONNECT_USAGE)

    host, port, user, password = args[:4]
    database = args[4] if len(args) > 4 else ""
    info = ConnInfo(host=host, port=port, user=user, password=password, database=database)
    try:
        session.connections.connect(info)
    except ConnectError as e:
        raise ConnectError(f"failed to connect: {e}") from e
    out.write("Connected successfully.\n")


OUTPUT_FORMAT_USAGE = ".output_format [format]"


def output_format_command(session, args: List[str], raw_line: str, out: IO[str]):
    """
    Show or change the output format.

    With no argument the options are listed and the current one is shown
    in brackets; the selector is left untouched.
    """
    if not args:
        current = session.output_format.value
        options = [f"[{opt}]" if opt == current else opt for opt in FORMAT_OPTIONS]
        out.write(" ".join(options) + "\n")
        return

    if len(args) != 1:
        raise CommandArgumentError("too many arguments", OUTPUT_FORMAT_USAGE)

    try:
        fmt = OutputFormat.parse(args[0])
    except ValueError as e:
        raise CommandArgumentError(str(e), OUTPUT_FORMAT_USAGE) from e

    session.output_format = fmt
    out.write(f"Output format set to: {fmt}\n")
