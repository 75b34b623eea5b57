import csv
import io
import json
from datetime import datetime

import pytest

from errors import RenderError
from renderers import ExecSummary, OutputFormat, Row, format_value, make_writer, render_table
from renderers.writers import print_execution_details

QUERY_EMPTY = ExecSummary(is_query=True)
EXEC_3 = ExecSummary(is_query=False, affected_rows=3)


def render(fmt, rows, summary):
    buf = io.StringIO()
    writer = make_writer(fmt, buf)
    writer.write(rows)
    writer.flush(summary)
    return buf.getvalue()


@pytest.mark.parametrize("fmt, expected", [
    (OutputFormat.PLAIN, "(empty result)\n"),
    (OutputFormat.TABLE, "(empty result)\n"),
    (OutputFormat.JSON, "[]\n"),
    (OutputFormat.CSV, "(empty result)\n"),
])
def test_empty_query(fmt, expected):
    assert render(fmt, [], QUERY_EMPTY) == expected


@pytest.mark.parametrize("fmt, expected", [
    (OutputFormat.PLAIN, "OK, affected_rows: 3\n"),
    (OutputFormat.TABLE, "OK, affected_rows: 3\n"),
    (OutputFormat.JSON, '{"status":"OK","affected_rows":3}\n'),
    (OutputFormat.CSV, "status,affected_rows\nOK,3\n"),
])
def test_exec_status(fmt, expected):
    assert render(fmt, [], EXEC_3) == expected


def test_json_single_row():
    rows = [Row(("1",), (1,))]
    out = render(OutputFormat.JSON, rows, ExecSummary(is_query=True, row_count=1))
    assert out == '[{"1":1}]\n'


def test_json_rows_across_batches():
    buf = io.StringIO()
    writer = make_writer(OutputFormat.JSON, buf)
    writer.write([Row(("a",), (1,))])
    writer.write([Row(("a",), (2,)), Row(("a",), (None,))])
    writer.flush(ExecSummary(is_query=True, row_count=3))
    assert json.loads(buf.getvalue()) == [{"a": 1}, {"a": 2}, {"a": None}]


def test_csv_quotes_text_and_survives_parsing():
    rows = [
        Row(("id", "note", "at"), (1, 'say "hi", then go', datetime(2024, 1, 2, 3, 4, 5))),
        Row(("id", "note", "at"), (2, None, None)),
    ]
    out = render(OutputFormat.CSV, rows, ExecSummary(is_query=True, row_count=2))
    assert out.splitlines()[1] == '1,"say ""hi"", then go","2024-01-02 03:04:05"'
    parsed = list(csv.reader(io.StringIO(out)))
    assert parsed == [
        ["id", "note", "at"],
        ["1", 'say "hi", then go', "2024-01-02 03:04:05"],
        ["2", "", ""],
    ]


def test_csv_header_quotes_names_with_separators():
    rows = [Row(("CONCAT(a, ',', b)", "n"), ("x,y", 1))]
    out = render(OutputFormat.CSV, rows, ExecSummary(is_query=True, row_count=1))
    assert out.splitlines()[0] == "\"CONCAT(a, ',', b)\",n"
    parsed = list(csv.reader(io.StringIO(out)))
    assert parsed[0] == ["CONCAT(a, ',', b)", "n"]
    assert parsed[1] == ["x,y", "1"]


def test_plain_writer():
    rows = [Row(("id", "name"), (1, b"alice"))]
    out = render(OutputFormat.PLAIN, rows, ExecSummary(is_query=True, row_count=1))
    assert out == "id: 1 name: alice \n"


def test_table_writer():
    rows = [Row(("id", "name"), (1, "alice")), Row(("id", "name"), (22, None))]
    out = render(OutputFormat.TABLE, rows, ExecSummary(is_query=True, row_count=2))
    assert out == (
        "+----+-------+\n"
        "| id | name  |\n"
        "+----+-------+\n"
        "| 1  | alice |\n"
        "| 22 | NULL  |\n"
        "+----+-------+\n"
    )


def test_render_table_width_follows_longest_cell():
    table = render_table(["x"], [["long value"]])
    assert table.splitlines()[0] == "+-" + "-" * len("long value") + "-+"


def test_format_value():
    assert format_value(None) == "NULL"
    assert format_value(True) == "true"
    assert format_value(1.5) == "1.500000"
    assert format_value(datetime(2020, 5, 6, 7, 8, 9)) == "2020-05-06 07:08:09"


def test_row_length_mismatch():
    with pytest.raises(ValueError):
        Row(("a", "b"), (1,))


def test_output_format_parse():
    assert OutputFormat.parse("csv") is OutputFormat.CSV
    with pytest.raises(ValueError, match="invalid format: xml"):
        OutputFormat.parse("xml")


def test_write_failure_is_render_error():
    class Broken(io.StringIO):
        def write(self, s):
            raise OSError("disk full")

    writer = make_writer(OutputFormat.PLAIN, Broken())
    with pytest.raises(RenderError):
        writer.write([Row(("a",), (1,))])


def test_execution_details_only_mention_nonzero_counts():
    buf = io.StringIO()
    print_execution_details(ExecSummary(is_query=True, row_count=2, elapsed=0.01), buf)
    text = buf.getvalue()
    assert "Execution time:" in text
    assert "Rows in result: 2" in text
    assert "Affected rows" not in text
