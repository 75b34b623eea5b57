# ask.py

import logging
import os
import re
import threading
from contextlib import nullcontext
from typing import IO, Callable, List, Sequence

import requests
import sqlalchemy
from prompt_toolkit import prompt as pt_prompt

from connection.manager import query_current_database
from connection.metadata import show_create_table
from errors import CommandArgumentError, TipError

logger = logging.getLogger(__name__)

DEFAULT_ASK_URL = "https://tidb.ai/api/v1/chats"
ASK_TIMEOUT = 120

SQL_BLOCK_RE = re.compile(r"```sql\s*(.+?)\s*```", re.DOTALL)
IDENTIFIER_RE = re.compile(r"\b[a-zA-Z_]\w*\b")

QUESTION_TEMPLATE = """Based on the context, answer the question in user's language
Context:
{context}
Question:
{question}"""


class Spinner:
    """
    Busy animation drawn on its own thread until stop() is called.

    stop() joins the thread and clears the line, so nothing the caller
    prints afterwards can be overwritten by a late frame.
    """

    FRAMES = ("-", "\\", "|", "/")

    def __init__(self, out: IO[str], label: str = "Thinking", interval: float = 0.1):
        self.out = out
        self.label = label
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self):
        self._thread = threading.Thread(target=self._run, name="tip-spinner", daemon=True)
        self._thread.start()

    def _run(self):
        i = 0
        while not self._stop.is_set():
            self.out.write(f"\r{self.label} {self.FRAMES[i]}")
            self.out.flush()
            i = (i + 1) % len(self.FRAMES)
            self._stop.wait(self.interval)

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self.out.write("\r\033[K")
        self.out.flush()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.stop()
        return False


def ask_question(question: str, url: str | None = None) -> str:
    """
    Post a question to the Q&A endpoint and return the answer text.

    Raises:
        TipError: On transport errors, HTTP errors or malformed responses.
    """
    url = url or os.getenv("TIP_ASK_URL", DEFAULT_ASK_URL)
    payload = {
        "messages": [{"role": "user", "content": question}],
        "chat_engine": "default",
        "stream": False,
    }
    try:
        resp = requests.post(url, json=payload, headers={"accept": "application/json"},
                             timeout=ASK_TIMEOUT)
        resp.raise_for_status()
        return resp.json()["content"]
    except requests.RequestException as e:
        raise TipError(f"error asking question: {e}") from e
    except (ValueError, KeyError, TypeError) as e:
        raise TipError(f"error parsing answer: {e}") from e


def refine_question(session, question: str) -> str:
    """
    Prepend CREATE TABLE text for every known table named in the question.
    """
    context = ""
    try:
        conn = session.connection()
    except TipError as e:
        logger.debug("no connection for schema context: %s", e)
        conn = None
    if conn is not None:
        database = query_current_database(conn)
        if database:
            try:
                tables = set(session.metadata.get_tables(database))
            except (sqlalchemy.exc.SQLAlchemyError, TipError) as e:
                logger.debug("could not list tables for context: %s", e)
                tables = set()
            seen = []
            for word in IDENTIFIER_RE.findall(question):
                if word in tables and word not in seen:
                    seen.append(word)
            for table in seen:
                ddl = show_create_table(conn, table)
                if ddl is not None:
                    context += f"`{table}` schema: {ddl}\n---\n"
    return QUESTION_TEMPLATE.format(context=context, question=question)


def extract_sql_statements(text: str) -> List[str]:
    """
    Pull ```sql fenced blocks out of an answer, each collapsed to one line.
    """
    statements = []
    for block in SQL_BLOCK_RE.findall(text):
        lines = [line.strip() for line in block.strip().splitlines()]
        statements.append(" ".join(line for line in lines if line))
    return statements


def choose_statement(statements: Sequence[str], out: IO[str]) -> str:
    """
    Numbered selection prompt; returns "" when the user cancels.
    """
    out.write("Select SQL statement to execute (Ctrl+C to cancel):\n")
    for i, stmt in enumerate(statements, 1):
        out.write(f"  {i}) {stmt}\n")
    out.flush()
    while True:
        try:
            answer = pt_prompt("choice> ").strip()
        except (KeyboardInterrupt, EOFError):
            return ""
        if not answer:
            return ""
        if answer.isdigit() and 1 <= int(answer) <= len(statements):
            return statements[int(answer) - 1]
        out.write(f"please enter a number between 1 and {len(statements)}\n")


ASK_USAGE = ".ask <question>"


def make_ask_command(asker: Callable[[str], str] = ask_question,
                     chooser: Callable[[Sequence[str], IO[str]], str] = choose_statement):
    """
    Build the .ask handler around an answer source and a statement chooser.
    """

    def ask_command(session, args: List[str], raw_line: str, out: IO[str]):
        if not args:
            raise CommandArgumentError("missing question", ASK_USAGE)
        question = refine_question(session, " ".join(args))

        with Spinner(out) if session.interactive else nullcontext():
            answer = asker(question)

        out.write(answer + "\n")
        statements = extract_sql_statements(answer)
        if statements and session.interactive:
            chosen = chooser(statements, out)
            if chosen:
                session.suggest(chosen)

    return ask_command
