import io
import threading

import pytest
import requests

import syscmds.ask
from errors import CommandArgumentError, TipError
from syscmds import build_registry
from syscmds.ask import (
    Spinner,
    ask_question,
    extract_sql_statements,
    make_ask_command,
    refine_question,
)

ANSWER = """Try this:
```sql
SELECT *
  FROM users
 WHERE id = 1;
```
or
```sql
SELECT COUNT(*) FROM users;
```
"""


def test_extract_sql_statements():
    assert extract_sql_statements(ANSWER) == [
        "SELECT * FROM users WHERE id = 1;",
        "SELECT COUNT(*) FROM users;",
    ]
    assert extract_sql_statements("no code here") == []


def test_question_without_connection_has_empty_context(session):
    text = refine_question(session, "how many users?")
    assert text == (
        "Based on the context, answer the question in user's language\n"
        "Context:\n\n"
        "Question:\n"
        "how many users?"
    )


def test_spinner_stops_before_caller_writes():
    buf = io.StringIO()
    with Spinner(buf, interval=0.01):
        threading.Event().wait(0.05)
    buf.write("answer")
    text = buf.getvalue()
    assert text.startswith("\rThinking")
    assert text.endswith("\r\033[Kanswer")


def make_session_command(session, answer, chosen):
    asked = []

    def asker(question):
        asked.append(question)
        return answer

    def chooser(statements, out):
        return chosen if chosen in statements else ""

    session.registry = build_registry(ask_handler=make_ask_command(asker, chooser))
    return asked


def test_interactive_choice_becomes_suggestion(session, out):
    session.interactive = True
    asked = make_session_command(session, ANSWER, "SELECT COUNT(*) FROM users;")
    session.registry.dispatch(session, ".ask how many users", out)
    assert asked[0].endswith("Question:\nhow many users")
    assert ANSWER in out.getvalue()
    assert session.peek_suggestion() == "SELECT COUNT(*) FROM users;"


def test_cancelled_choice_leaves_no_suggestion(session, out):
    session.interactive = True
    make_session_command(session, ANSWER, "")
    session.registry.dispatch(session, ".ask anything", out)
    assert session.peek_suggestion() == ""


def test_non_interactive_only_prints(session, out):
    make_session_command(session, ANSWER, "SELECT COUNT(*) FROM users;")
    session.registry.dispatch(session, ".ask how many users", out)
    assert out.getvalue() == ANSWER + "\n"
    assert session.peek_suggestion() == ""


def test_ask_needs_a_question(session, out):
    with pytest.raises(CommandArgumentError):
        session.registry.dispatch(session, ".ask", out)


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


def test_ask_question_posts_to_endpoint(monkeypatch):
    calls = []

    def fake_post(url, json, headers, timeout):
        calls.append((url, json))
        return FakeResponse({"content": "42"})

    monkeypatch.setattr(syscmds.ask.requests, "post", fake_post)
    monkeypatch.setenv("TIP_ASK_URL", "http://ask.test/chats")
    assert ask_question("meaning?") == "42"
    assert calls[0][0] == "http://ask.test/chats"
    assert calls[0][1]["messages"] == [{"role": "user", "content": "meaning?"}]


def test_ask_question_errors(monkeypatch):
    monkeypatch.setattr(syscmds.ask.requests, "post",
                        lambda *a, **k: FakeResponse({}, status=500))
    with pytest.raises(TipError, match="error asking question"):
        ask_question("q", url="http://ask.test")

    monkeypatch.setattr(syscmds.ask.requests, "post", lambda *a, **k: FakeResponse({}))
    with pytest.raises(TipError, match="error parsing answer"):
        ask_question("q", url="http://ask.test")
