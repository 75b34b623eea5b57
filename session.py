# session.py

import sys
from typing import IO

from connection import ConnectionManager, MetadataCache
from executor import Executor
from renderers import OutputFormat
from scripting import LuaBridge
from syscmds import CommandRegistry, build_registry

VERSION = "0.4.0"


class Session:
    """
    Process-wide state shared by the REPL, dot-commands and the scripting bridge.

    Only the connection handle and last-used database are touched from other
    threads; those live behind the ConnectionManager's lock. Everything else
    here is mutated from the main loop only.

    Attributes:
        connections (ConnectionManager): Shared engine, session connection
            and last database.
        metadata (MetadataCache): Completion candidates.
        executor (Executor): Statement classification and execution.
        output_format (OutputFormat): Current rendering mode.
        verbose (bool): Whether execution details go to the diagnostic stream.
        out (IO[str]): Primary output sink.
        err (IO[str]): Diagnostic sink.
        registry (CommandRegistry): Dot-commands.
        interactive (bool): True when reading from a terminal.
    """

    def __init__(self, connections: ConnectionManager | None = None,
                 output_format: OutputFormat = OutputFormat.TABLE,
                 verbose: bool = False, out: IO[str] | None = None,
                 err: IO[str] | None = None, registry: CommandRegistry | None = None,
                 interactive: bool = False):
        self.connections = connections or ConnectionManager()
        self.metadata = MetadataCache(self.connections.get_connection)
        self.executor = Executor()
        self.output_format = output_format
        self.verbose = verbose
        self.out = out if out is not None else sys.stdout
        self.err = err if err is not None else sys.stderr
        self.registry = registry or build_registry()
        self.interactive = interactive
        self.version = VERSION
        self._suggestion = ""
        self._bridge = None

    @property
    def engine(self):
        return self.connections.get_current()

    def connection(self):
        """
        The session connection statements run on, or None when not connected.

        Raises:
            ConnectError: If no connection can be checked out.
        """
        return self.connections.get_connection()

    def suggest(self, statement: str):
        """Store a statement to pre-fill the next prompt."""
        self._suggestion = statement

    def peek_suggestion(self) -> str:
        return self._suggestion

    def take_suggestion(self) -> str:
        """Return the pending suggestion and clear the slot."""
        suggestion, self._suggestion = self._suggestion, ""
        return suggestion

    def scripting(self):
        """The shared Lua bridge, created on first use."""
        if self._bridge is None:
            self._bridge = LuaBridge(self)
        return self._bridge

    def close(self):
        if self._bridge is not None:
            self._bridge.close()
            self._bridge = None
        self.connections.close()
