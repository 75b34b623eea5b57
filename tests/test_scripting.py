import time

import pytest
import requests

from errors import CommandArgumentError, ScriptError
from scripting import CompletionQueue, fetch_script, to_script_value
import scripting.bridge


def run_lua(session, out, line):
    session.registry.dispatch(session, line, out)
    return out.getvalue()


def test_args_and_print(session, out):
    text = run_lua(session, out, '.lua-eval "print(args[1], #args)" x y')
    assert text == "x\t2\n"


def test_script_must_be_quoted(session, out):
    with pytest.raises(CommandArgumentError):
        run_lua(session, out, ".lua-eval print(1)")


def test_runtime_error_is_script_error(session, out):
    with pytest.raises(ScriptError, match="lua execution error"):
        run_lua(session, out, '.lua-eval "error(\\"boom\\")"')


def test_interpreter_is_shared_between_runs(session, out):
    run_lua(session, out, '.lua-eval "counter = 41"')
    assert run_lua(session, out, '.lua-eval "print(counter + 1)"') == "42\n"


def test_sql_without_connection(session, out):
    text = run_lua(session, out,
                   '.lua-eval "local r = sql.query(\\"SELECT 1\\") print(r.ok, r.error ~= \\"\\")"')
    assert text == "false\ttrue\n"


def test_sql_query_and_execute(connected_session, out):
    script = """
local r = sql.query("SELECT id, name FROM users ORDER BY id")
print(r.ok, r.row_count, r.columns[2], r.data[2][2])
local w = sql.execute("DELETE FROM users WHERE id = 1")
print(w.ok, w.rows_affected)
local bad = sql.query("SELECT * FROM missing")
print(bad.ok)
"""
    connected_session.scripting().execute(script, [], out)
    assert out.getvalue() == "true\t2\tname\tbob\ntrue\t1\nfalse\n"


def test_return_value(session, out):
    assert session.scripting().execute("return 1 + 2", [], out) == 3


def test_json_module(session, out):
    script = """
local json = require("json")
local t = json.decode('{"a": [1, 2]}')
print(t.a[2], json.encode({1, 2, 3}))
"""
    session.scripting().execute(script, [], out)
    assert out.getvalue() == "2\t[1, 2, 3]\n"


def test_sync_fetch(session, out, monkeypatch):
    monkeypatch.setattr(scripting.bridge, "perform_request",
                        lambda method, url, headers, body: {"status_code": 200, "body": method + url,
                                                            "headers": headers})
    script = """
local ok, resp = http.fetch("POST", "http://example.test/", {["X-A"] = "1"}, "hi")
print(ok, resp.status_code, resp.body, resp.headers["X-A"])
"""
    session.scripting().execute(script, [], out)
    assert out.getvalue() == "true\t200\tPOSThttp://example.test/\t1\n"


def test_sync_fetch_failure(session, out, monkeypatch):
    def fail(*args):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(scripting.bridge, "perform_request", fail)
    session.scripting().execute('local ok, err = http.fetch("GET", "http://x.test") print(ok, err)',
                                [], out)
    assert out.getvalue() == "false\trefused\n"


def test_async_callbacks_run_during_sleep(session, out, monkeypatch):
    def slow_request(method, url, headers, body):
        time.sleep(0.05)
        return {"status_code": 201, "body": url, "headers": {}}

    monkeypatch.setattr(scripting.bridge, "perform_request", slow_request)
    script = """
local pending = 0
local seen = {}
for i = 1, 3 do
  pending = pending + 1
  http.fetch("GET", "http://example.test/" .. i, {}, "", function(ok, resp)
    seen[#seen + 1] = resp.status_code
    pending = pending - 1
  end)
end
local spins = 0
while pending > 0 and spins < 100 do
  sleep(0.1)
  spins = spins + 1
end
print(pending, #seen, seen[1])
"""
    session.scripting().execute(script, [], out)
    assert out.getvalue() == "0\t3\t201\n"


def test_async_callbacks_run_without_sleep(session, out, monkeypatch):
    monkeypatch.setattr(scripting.bridge, "perform_request",
                        lambda *a: {"status_code": 204, "body": "", "headers": {}})
    script = """
local pending = 1
local status
http.fetch("GET", "http://example.test", {}, "", function(ok, resp)
  status = resp.status_code
  pending = pending - 1
end)
local spins = 0
while pending > 0 and spins < 200 do
  os.execute("sleep 0.05")
  spins = spins + 1
end
print(pending, status)
"""
    session.scripting().execute(script, [], out)
    assert out.getvalue() == "0\t204\n"


def test_sleep_rejects_non_numbers(session, out):
    with pytest.raises(ScriptError, match="sleep expects a number of seconds"):
        session.scripting().execute('sleep("soon")', [], out)


def test_json_encode_unsupported_value(session, out):
    script = """
local json = require("json")
local ok, err = pcall(json.encode, {f = print})
print(ok, string.find(tostring(err), "json encode error") ~= nil)
"""
    session.scripting().execute(script, [], out)
    assert out.getvalue() == "false\ttrue\n"


def test_callback_errors_are_reported(session, out, monkeypatch):
    monkeypatch.setattr(scripting.bridge, "perform_request",
                        lambda *a: {"status_code": 200, "body": "", "headers": {}})
    script = """
local done = false
http.fetch("GET", "http://example.test", {}, "", function(ok, resp)
  done = true
  error("bad callback")
end)
while not done do sleep(0.05) end
print("after")
"""
    session.scripting().execute(script, [], out)
    assert "callback error" in out.getvalue()
    assert out.getvalue().endswith("after\n")


def test_completion_queue_reports_failures():
    def boom():
        raise requests.Timeout("slow")

    q = CompletionQueue()
    q.submit(7, boom).join(timeout=5)
    assert q.get(timeout=1) == (7, False, "slow")
    assert q.outstanding == 0
    assert q.get(timeout=0) is None


def test_to_script_value():
    assert to_script_value(b"abc") == "abc"
    assert to_script_value(None) is None
    assert to_script_value(3.5) == 3.5


def test_fetch_script_from_file(tmp_path):
    path = tmp_path / "s.lua"
    path.write_text("return 1")
    assert fetch_script(str(path)) == "return 1"


def test_eval_file_missing(session, out):
    with pytest.raises(ScriptError, match="failed to read Lua script"):
        run_lua(session, out, ".lua-eval-file /nonexistent/script.lua")


def test_eval_file_with_args(session, out, tmp_path):
    path = tmp_path / "greet.lua"
    path.write_text('print("hello " .. args[1])\n')
    run_lua(session, out, f'.lua-eval-file {path} "big world"')
    assert out.getvalue() == "hello big world\n"
