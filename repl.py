"""
repl.py

Interactive and piped statement loop.

Responsibilities:
- Accumulate input lines into a statement buffer until a line ends with ';'.
- Hand lines starting with '.' to the dot-command registry.
- Classify, execute and render complete statements with the current format.
- Compute the prompt from the live connection and offer tab completion.
- Load and save the statement history.
"""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import IO, Callable, Iterable, List

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory, InMemoryHistory

from connection.manager import query_current_database
from errors import ScriptError, TipError
from renderers import ExecSummary, make_writer, print_execution_details
from syscmds import is_command

logger = logging.getLogger(__name__)

TERMINATOR = ";"
NO_DATABASE = "(none)"

KEYWORDS = [
    "USE", "SELECT", "FROM", "WHERE", "JOIN", "ON", "GROUP BY", "ORDER BY",
    "LIMIT", "OFFSET", "AS", "IS", "NULL", "NOT", "IN", "BETWEEN", "LIKE",
    "SHOW", "DATABASES", "TABLES", "COLUMNS", "INDEXES", "STATISTICS",
    "INSERT", "UPDATE", "DELETE", "DROP", "ALTER", "CREATE", "GRANT", "REVOKE",
    "SET", "AND", "OR", "XOR", "EXISTS", "VALUES", "INTO", "DISTINCT",
    "BEGIN", "COMMIT", "ROLLBACK", "EXPLAIN", "ANALYZE",
]


class ReplState(Enum):
    AWAITING_STATEMENT = "awaiting"
    ACCUMULATING_STATEMENT = "accumulating"


def complete_word(text_before_cursor: str, candidates: Iterable[str]) -> List[str]:
    """
    Case-insensitive prefix match of the last whitespace-delimited token.

    Parameters:
        text_before_cursor (str): Current line up to the cursor.
        candidates (Iterable[str]): Words to match against.

    Returns:
        list[str]: Matches in candidate order, without duplicates. Empty when
            the cursor is not at the end of a token.
    """
    if not text_before_cursor or text_before_cursor[-1].isspace():
        return []
    word = text_before_cursor.split()[-1].lower()
    seen = set()
    matches = []
    for item in candidates:
        if item.lower().startswith(word) and item not in seen:
            seen.add(item)
            matches.append(item)
    return matches


class TipCompleter(Completer):
    """
    prompt_toolkit completer over keywords, schema names and dot-commands.
    """

    def __init__(self, candidates: Callable[[], List[str]]):
        self._candidates = candidates

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor
        matches = complete_word(text, self._candidates())
        if not matches:
            return
        word = text.split()[-1]
        for match in matches:
            yield Completion(match, start_position=-len(word))


class HistoryLog:
    """
    Append-only list of executed statements and commands.

    Stored in prompt_toolkit's FileHistory format. The file is read once at
    start and fully rewritten at the end of the session.
    """

    def __init__(self, path: Path | None):
        self.path = path
        self.entries: List[str] = []

    def append(self, entry: str):
        self.entries.append(entry)

    def load(self):
        """Best effort: a missing or unreadable file leaves the log empty."""
        if self.path is None or not self.path.exists():
            return
        try:
            # load_history_strings yields newest first
            self.entries = list(reversed(list(FileHistory(str(self.path)).load_history_strings())))
        except OSError as e:
            logger.warning("failed to read history file %s: %s", self.path, e)

    def save(self):
        """Best effort: failures are logged, never raised."""
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("", encoding="utf-8")
            history = FileHistory(str(self.path))
            for entry in self.entries:
                history.store_string(entry)
        except OSError as e:
            logger.error("Error writing history file: %s", e)


class PromptReader:
    """Terminal line reader backed by prompt_toolkit."""

    def __init__(self, completer: Completer, history_entries: Iterable[str] = ()):
        history = InMemoryHistory()
        for entry in history_entries:
            history.append_string(entry)
        self._session = PromptSession(history=history, completer=completer,
                                      complete_while_typing=False)

    def read(self, prompt: str, default: str = "") -> str:
        return self._session.prompt(prompt, default=default)


class StreamReader:
    """Reader for piped input; never prompts."""

    def __init__(self, stream: IO[str] | None = None):
        self.stream = stream if stream is not None else sys.stdin

    def read(self, prompt: str = "", default: str = "") -> str:
        line = self.stream.readline()
        if not line:
            raise EOFError
        return line.rstrip("\r\n")


class Repl:
    """
    Statement-assembly loop.

    The engine is AWAITING_STATEMENT while the buffer is empty and
    ACCUMULATING_STATEMENT otherwise. Every dispatch attempt, successful or
    not, empties the buffer again.
    """

    def __init__(self, session, reader=None, history: HistoryLog | None = None):
        """
        Parameters:
            session (Session): Shared session context.
            reader: Object with read(prompt, default) raising EOFError at end.
                Defaults to a prompt_toolkit reader for terminals and a
                stdin reader otherwise.
            history (HistoryLog): Where executed statements are recorded.
        """
        self.session = session
        self.history = history or HistoryLog(None)
        self.buffer = ""
        self.current_database = ""
        self._reader = reader

    @property
    def state(self) -> ReplState:
        if self.buffer:
            return ReplState.ACCUMULATING_STATEMENT
        return ReplState.AWAITING_STATEMENT

    @property
    def reader(self):
        if self._reader is None:
            if self.session.interactive:
                self._reader = PromptReader(TipCompleter(self.completion_candidates),
                                            self.history.entries)
            else:
                self._reader = StreamReader()
        return self._reader

    def completion_candidates(self) -> List[str]:
        words = list(KEYWORDS)
        if self.session.engine is not None and self.current_database:
            words.extend(self.session.metadata.candidates(self.current_database))
        words.extend(self.session.registry.names())
        return words

    def prompt_text(self) -> str:
        """
        `<db>> ` while awaiting a statement, `<db>>>> ` while accumulating.

        The current database is asked on the session connection on every
        call, so it follows `USE`, and is remembered as the last used one.
        """
        database = ""
        try:
            conn = self.session.connection()
        except TipError as e:
            logger.debug("no session connection for the prompt: %s", e)
            conn = None
        if conn is not None:
            database = query_current_database(conn)
            if database:
                self.session.connections.set_last_database(database)
        self.current_database = database
        shown = database or NO_DATABASE
        if self.state is ReplState.AWAITING_STATEMENT:
            return f"{shown}> "
        return f"{shown}>>> "

    def run(self) -> int:
        """
        Read lines until end of input.

        Returns:
            int: Process exit code (0 on normal exit).
        """
        self.history.load()
        try:
            while True:
                prompt = self.prompt_text() if self.session.interactive else ""
                # The suggestion is consumed whether or not the user keeps it
                suggestion = self.session.take_suggestion()
                try:
                    line = self.reader.read(prompt, suggestion)
                except KeyboardInterrupt:
                    self.buffer = ""
                    continue
                except EOFError:
                    break
                self.handle_line(line)
        finally:
            self.history.save()
        return 0

    def handle_line(self, line: str) -> ExecSummary | None:
        """
        Apply one input line to the state machine.

        Returns:
            ExecSummary | None: The summary when a statement was executed.
        """
        trimmed = line.strip()

        if is_command(trimmed):
            self._run_command(line)
            return None

        if not self.buffer and not trimmed:
            return None

        if not self.session.connections.is_connected():
            logger.error("Not connected to any database. Use .connect to establish a connection.")
            self.buffer = ""
            return None

        self.buffer += line + "\n"

        if not self.session.interactive and not trimmed.endswith(TERMINATOR):
            logger.error("Input from pipe must end with a semicolon.")
            self.buffer = ""
            return None

        if trimmed.endswith(TERMINATOR):
            return self._run_statement()
        return None

    def _run_command(self, line: str):
        try:
            self.session.registry.dispatch(self.session, line, self.session.out)
        except ScriptError as e:
            # Script failures belong to the command output
            self.session.out.write(f"{e}\n")
            logger.debug("script failed: %s", e)
        except TipError as e:
            logger.error("%s", e)
        self.history.append(line.strip())

    def _run_statement(self) -> ExecSummary | None:
        sql = self.buffer.strip()
        self.buffer = ""
        session = self.session
        try:
            kind = session.executor.classify(sql)
            self.history.append(sql)
            writer = make_writer(session.output_format, session.out)
            summary = session.executor.run(session.connection(), sql, kind, writer)
        except TipError as e:
            logger.error("%s", e)
            return None

        if session.verbose:
            print_execution_details(summary, session.err)
        return summary
