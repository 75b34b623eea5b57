import itertools
import json
import logging
import time
from datetime import datetime
from typing import IO, Any, Dict, List

import lupa
import requests
import sqlalchemy
from lupa import LuaError, LuaRuntime

from errors import ConnectError, ScriptError
from executor import NOT_CONNECTED, _driver_message, exec_statement, fetch_all
from renderers.row import TIMESTAMP_FORMAT, decode_bytes

from .http import CompletionQueue, perform_request

logger = logging.getLogger(__name__)

# VM instructions between callback drains while async requests are outstanding
HOOK_INSTRUCTIONS = 100


def to_script_value(value: Any) -> Any:
    """
    Convert a driver value into something Lua understands natively.

    Follows the same rules as the text renderers: bytes become text,
    timestamps are formatted, unknown types fall back to str().
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return decode_bytes(value)
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    return str(value)


class LuaBridge:
    """
    Shared Lua interpreter with `sql` and `http` capability tables.

    The interpreter is single-threaded. Async `http.fetch` requests run on
    worker threads that post results to a CompletionQueue; the callbacks
    themselves only ever run on the interpreter's own thread: inside
    `sleep()`, from a Lua count hook installed while requests are
    outstanding, or right after a script's main chunk returns. The hook lets
    scripts that wait some other way, such as `os.execute("sleep 0.1")` or
    a busy loop, still see their callbacks run.

    Scripts that wait for async work use a pending-task counter and poll it
    with `sleep`:

        local pending = 0
        pending = pending + 1
        http.fetch("GET", url, {}, "", function(ok, resp)
            pending = pending - 1
        end)
        while pending > 0 do sleep(0.1) end
    """

    def __init__(self, session, runtime_factory=None):
        self.session = session
        self._runtime_factory = runtime_factory or (lambda: LuaRuntime(unpack_returned_tuples=True))
        self._lua: LuaRuntime | None = None
        self._tostring = None
        self._callbacks: Dict[int, Any] = {}
        self._set_hook = None
        self._clear_hook = None
        self._draining = False
        self._tickets = itertools.count(1)
        self.completions = CompletionQueue()
        self.out: IO[str] = session.out

    @property
    def lua(self) -> LuaRuntime:
        if self._lua is None:
            self._lua = self._runtime_factory()
            self._register(self._lua)
        return self._lua

    def close(self):
        """
        Drop the interpreter.

        Requests still in flight are orphaned; their callbacks are discarded.
        """
        self._lua = None
        self._tostring = None
        self._set_hook = None
        self._clear_hook = None
        self._callbacks.clear()

    def execute(self, script: str, args: List[str] | None = None, out: IO[str] | None = None) -> Any:
        """
        Run `script` with `args` exposed as the 1-based global table `args`.

        Returns:
            The script's return value (a tuple for multiple values).

        Raises:
            ScriptError: On compile or runtime errors.
        """
        lua = self.lua
        self.out = out if out is not None else self.session.out
        lua.globals().args = lua.table_from(list(args or []))
        try:
            result = lua.execute(script)
        except Exception as e:
            # LuaError, or a Python exception raised inside a global and passed through
            raise ScriptError(f"lua execution error: {e}") from e

        self._run_callbacks(deadline=time.monotonic())
        logger.info("Lua script executed successfully, return value: %s", result)
        return result

    def _register(self, lua: LuaRuntime):
        g = lua.globals()
        self._tostring = g.tostring
        g.print = self._print
        g.sleep = self._sleep
        g.sql = lua.table_from({"query": self._query, "execute": self._execute})
        g.http = lua.table_from({"fetch": self._fetch})
        g.package.loaded.json = lua.table_from({"encode": self._json_encode,
                                                "decode": self._json_decode})
        # debug.sethook only accepts Lua functions, so the drain is wrapped
        self._set_hook = lua.eval(
            "function(drain, count) debug.sethook(function() drain() end, '', count) end")
        self._clear_hook = lua.eval("function() debug.sethook() end")

    # conversion helpers

    def _table(self, data: Any) -> Any:
        """Recursively turn dicts and lists into Lua tables."""
        if isinstance(data, dict):
            return self.lua.table_from({k: self._table(v) for k, v in data.items()})
        if isinstance(data, (list, tuple)):
            return self.lua.table_from([self._table(v) for v in data])
        return data

    def _from_lua(self, value: Any) -> Any:
        """Recursively turn Lua tables into lists (1..n keys) or dicts."""
        if lupa.lua_type(value) != "table":
            return value
        items = list(value.items())
        keys = [k for k, _ in items]
        if keys == list(range(1, len(keys) + 1)):
            return [self._from_lua(v) for _, v in items]
        return {str(k): self._from_lua(v) for k, v in items}

    # global functions

    def _print(self, *values):
        self.out.write("\t".join(str(self._tostring(v)) for v in values) + "\n")
        self.out.flush()

    def _sleep(self, seconds=0):
        """Block for `seconds`, running completed async callbacks meanwhile."""
        try:
            seconds = float(seconds or 0)
        except (TypeError, ValueError) as e:
            raise LuaError(f"sleep expects a number of seconds, got {self._tostring(seconds)}") from e
        self._run_callbacks(deadline=time.monotonic() + seconds)

    def _on_count_hook(self):
        if self._draining:
            return
        self._run_callbacks(deadline=time.monotonic())
        if not self._callbacks and self._clear_hook is not None:
            self._clear_hook()

    def _run_callbacks(self, deadline: float):
        previous, self._draining = self._draining, True
        try:
            while True:
                remaining = max(deadline - time.monotonic(), 0.0)
                completion = self.completions.get(timeout=remaining)
                if completion is None:
                    return
                ticket, ok, payload = completion
                callback = self._callbacks.pop(ticket, None)
                if callback is None:
                    continue
                try:
                    callback(ok, self._table(payload))
                except Exception as e:
                    # LuaError from the callback itself or whatever a Python global raised
                    logger.error("async callback %d failed: %s", ticket, e)
                    self.out.write(f"callback error: {e}\n")
        finally:
            self._draining = previous

    # sql capability

    def _query(self, text):
        result = {"ok": True, "error": ""}
        try:
            conn = self.session.connection()
            if conn is None:
                return self._table({"ok": False, "error": NOT_CONNECTED})
            columns, rows = fetch_all(conn, str(text))
        except ConnectError as e:
            return self._table({"ok": False, "error": str(e)})
        except sqlalchemy.exc.SQLAlchemyError as e:
            return self._table({"ok": False, "error": _driver_message(e)})

        result["columns"] = self.lua.table_from(columns)
        result["data"] = self.lua.table_from(
            [self.lua.table_from([to_script_value(v) for v in row]) for row in rows]
        )
        result["row_count"] = len(rows)
        return self.lua.table_from(result)

    def _execute(self, text):
        try:
            conn = self.session.connection()
            if conn is None:
                return self._table({"ok": False, "error": NOT_CONNECTED})
            affected, last_id = exec_statement(conn, str(text))
        except ConnectError as e:
            return self._table({"ok": False, "error": str(e)})
        except sqlalchemy.exc.SQLAlchemyError as e:
            return self._table({"ok": False, "error": _driver_message(e)})
        return self._table({"ok": True, "error": "", "rows_affected": affected,
                            "last_insert_id": last_id})

    # http capability

    def _fetch(self, method, url, headers=None, body=None, callback=None):
        header_map = {}
        if lupa.lua_type(headers) == "table":
            header_map = {str(k): str(v) for k, v in headers.items()}
        args = (str(method or "GET"), str(url or ""), header_map, str(body or ""))

        if callback is not None:
            if lupa.lua_type(callback) != "function":
                return False, "callback must be a function"
            ticket = next(self._tickets)
            if not self._callbacks:
                self._set_hook(self._on_count_hook, HOOK_INSTRUCTIONS)
            self._callbacks[ticket] = callback
            self.completions.submit(ticket, perform_request, *args)
            return None

        try:
            response = perform_request(*args)
        except requests.RequestException as e:
            return False, str(e)
        return True, self._table(response)

    # json module

    def _json_encode(self, value):
        try:
            return json.dumps(self._from_lua(value), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise LuaError(f"json encode error: {e}") from e

    def _json_decode(self, text):
        try:
            return self._table(json.loads(str(text)))
        except ValueError as e:
            raise LuaError(f"json decode error: {e}") from e
