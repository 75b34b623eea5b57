# writers.py

import json
import sys
from enum import Enum
from typing import IO, Iterable, List

from errors import RenderError

from .row import ExecSummary, Row, format_csv_header, format_csv_value, format_value, json_default

# ANSI color codes for diagnostic output
RESET = "\033[0m"
GREY = "\033[90m"

EMPTY_RESULT = "(empty result)"


class OutputFormat(Enum):
    PLAIN = "plain"
    TABLE = "table"
    JSON = "json"
    CSV = "csv"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def names(cls) -> List[str]:
        return [f.value for f in cls]

    @classmethod
    def parse(cls, name: str) -> "OutputFormat":
        """
        Look up a format by its name.

        Raises:
            ValueError: If `name` is not a known format.
        """
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"invalid format: {name}") from None


def status_line(summary: ExecSummary) -> str:
    if summary.is_query:
        return EMPTY_RESULT
    return f"OK, affected_rows: {summary.affected_rows}"


class ResultWriter:
    """
    Streaming sink for query results.

    Rows arrive through write() one batch at a time. flush() must always be
    called, even for zero rows, because some formats open lazily on the first
    row and are completed (or replaced by a status line) only at flush time.
    """

    def __init__(self, out: IO[str]):
        self.out = out
        self.rows_written = 0

    def write(self, rows: Iterable[Row]):
        """
        Raises:
            RenderError: If serialization or the underlying stream fails.
        """
        try:
            for row in rows:
                self._write_row(row)
                self.rows_written += 1
        except (OSError, TypeError, ValueError) as e:
            raise RenderError(f"failed to write row: {e}") from e

    def flush(self, summary: ExecSummary):
        """
        Raises:
            RenderError: If serialization or the underlying stream fails.
        """
        try:
            self._finish(summary)
            self.out.flush()
        except (OSError, TypeError, ValueError) as e:
            raise RenderError(f"failed to flush output: {e}") from e

    def _write_row(self, row: Row):
        raise NotImplementedError

    def _finish(self, summary: ExecSummary):
        raise NotImplementedError


class PlainWriter(ResultWriter):
    """`col: value ` per column, one line per row."""

    def _write_row(self, row: Row):
        for name, value in zip(row.names, row.values):
            self.out.write(f"{name}: {format_value(value)} ")
        self.out.write("\n")

    def _finish(self, summary: ExecSummary):
        if self.rows_written == 0:
            self.out.write(status_line(summary) + "\n")


class TableWriter(ResultWriter):
    """
    MySQL-style box table.

    Column widths depend on every cell, so rows are buffered until flush.
    """

    def __init__(self, out: IO[str]):
        super().__init__(out)
        self.headers: List[str] = []
        self.cells: List[List[str]] = []

    def _write_row(self, row: Row):
        if not self.headers:
            self.headers = list(row.names)
        self.cells.append([format_value(v) for v in row.values])

    def _finish(self, summary: ExecSummary):
        if not self.cells:
            self.out.write(status_line(summary) + "\n")
            return
        self.out.write(render_table(self.headers, self.cells))


def render_table(headers: List[str], cells: List[List[str]]) -> str:
    """
    Lay out headers and string cells as an aligned box table.

    Parameters:
        headers (list[str]): Column names.
        cells (list[list[str]]): Pre-formatted cell text, one list per row.

    Returns:
        str: The table, newline terminated.
    """
    # Width of each column is the longest of header and cells
    widths = [len(h) for h in headers]
    for row in cells:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def format_row(row: List[str]) -> str:
        return "| " + " | ".join(c.ljust(widths[i]) for i, c in enumerate(row)) + " |"

    border = "+-" + "-+-".join("-" * w for w in widths) + "-+"
    lines = [border, format_row(headers), border]
    lines.extend(format_row(row) for row in cells)
    lines.append(border)
    return "\n".join(lines) + "\n"


class JSONWriter(ResultWriter):
    """One JSON array of row objects, opened lazily on the first row."""

    def _write_row(self, row: Row):
        self.out.write("[" if self.rows_written == 0 else ",")
        self.out.write(json.dumps(row.as_dict(), default=json_default,
                                  ensure_ascii=False, separators=(",", ":")))

    def _finish(self, summary: ExecSummary):
        if self.rows_written:
            self.out.write("]\n")
        elif summary.is_query:
            self.out.write("[]\n")
        else:
            status = {"status": "OK", "affected_rows": summary.affected_rows}
            self.out.write(json.dumps(status, separators=(",", ":")) + "\n")


class CSVWriter(ResultWriter):
    """Header line from column names, then one comma-joined line per row."""

    def _write_row(self, row: Row):
        if self.rows_written == 0:
            self.out.write(",".join(format_csv_header(n) for n in row.names) + "\n")
        self.out.write(",".join(format_csv_value(v) for v in row.values) + "\n")

    def _finish(self, summary: ExecSummary):
        if self.rows_written:
            return
        if summary.is_query:
            self.out.write(EMPTY_RESULT + "\n")
        else:
            self.out.write(f"status,affected_rows\nOK,{summary.affected_rows}\n")


WRITERS = {
    OutputFormat.PLAIN: PlainWriter,
    OutputFormat.TABLE: TableWriter,
    OutputFormat.JSON: JSONWriter,
    OutputFormat.CSV: CSVWriter,
}


def make_writer(fmt: OutputFormat, out: IO[str] | None = None) -> ResultWriter:
    """Create a fresh writer for one statement's results."""
    return WRITERS[fmt](out if out is not None else sys.stdout)


def print_execution_details(summary: ExecSummary, stream: IO[str] | None = None):
    """
    Write elapsed time and row counts in grey to the diagnostic stream.

    Kept off stdout so results can be piped to other tools.
    """
    stream = stream if stream is not None else sys.stderr
    lines = [f"Execution time: {summary.elapsed * 1000:.3f}ms"]
    if summary.has_rows:
        lines.append(f"Rows in result: {summary.row_count}")
    if summary.affected_rows > 0:
        lines.append(f"Affected rows: {summary.affected_rows}")
    for line in lines:
        stream.write(f"{GREY}{line}{RESET}\n")
    stream.flush()
