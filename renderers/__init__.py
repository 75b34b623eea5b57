from .row import ExecSummary, Row, format_csv_value, format_value
from .writers import (
    OutputFormat,
    ResultWriter,
    make_writer,
    print_execution_details,
    render_table,
)

__all__ = [
    "ExecSummary",
    "Row",
    "format_value",
    "format_csv_value",
    "OutputFormat",
    "ResultWriter",
    "make_writer",
    "print_execution_details",
    "render_table",
]
