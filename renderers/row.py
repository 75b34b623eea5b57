# row.py

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Tuple

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Row:
    """
    One fetched record.

    Attributes:
        names (tuple[str]): Column names in query order.
        values (tuple): Values aligned 1:1 with `names`.
    """
    names: Tuple[str, ...]
    values: Tuple[Any, ...]

    def __post_init__(self):
        if len(self.names) != len(self.values):
            raise ValueError(
                f"row has {len(self.names)} column names but {len(self.values)} values"
            )

    def as_dict(self) -> Dict[str, Any]:
        """Column-name keyed mapping with byte strings decoded as text."""
        return {name: decode_bytes(value) for name, value in zip(self.names, self.values)}


@dataclass(frozen=True)
class ExecSummary:
    """
    Summary metadata handed to a writer at flush time.

    Attributes:
        is_query (bool): True when the statement went through the row-fetch path.
        row_count (int): Rows produced by a query.
        affected_rows (int): Rows changed by a non-query statement.
        elapsed (float): Wall-clock seconds spent executing.
        columns (tuple[str]): Result columns, when known.
    """
    is_query: bool
    row_count: int = 0
    affected_rows: int = 0
    elapsed: float = 0.0
    columns: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_rows(self) -> bool:
        return self.is_query and self.row_count > 0


def decode_bytes(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def format_value(value: Any) -> str:
    """
    Text form of a value for the plain and table writers.

    None becomes NULL, floats use fixed notation, timestamps use
    YYYY-MM-DD HH:MM:SS.
    """
    if value is None:
        return "NULL"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return f"{value:f}"
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return decode_bytes(value)
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    return str(value)


def quote_csv(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def format_csv_header(name: str) -> str:
    """Column names stay bare unless they hold a separator, quote or line break."""
    if any(c in name for c in ',"\r\n'):
        return quote_csv(name)
    return name


def format_csv_value(value: Any) -> str:
    """
    CSV cell for a value.

    Numbers and booleans are bare; NULL is an empty cell; text, bytes,
    timestamps and anything else are quoted with doubled inner quotes.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return f"{value:f}"
    if isinstance(value, str):
        return quote_csv(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return quote_csv(decode_bytes(value))
    if isinstance(value, datetime):
        return quote_csv(value.strftime(TIMESTAMP_FORMAT))
    return quote_csv(str(value))


def json_default(value: Any) -> Any:
    """`default=` hook for json.dumps covering driver-native types."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return decode_bytes(value)
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    return str(value)
