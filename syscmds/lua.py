# lua.py

from typing import IO, List

import requests

from errors import CommandArgumentError, ScriptError
from lexer import split_args, split_script_and_args
from scripting import fetch_script

LUA_EVAL = ".lua-eval"
LUA_EVAL_USAGE = '.lua-eval "<script>" <arg> <arg> ...'
LUA_EVAL_FILE = ".lua-eval-file"
LUA_EVAL_FILE_USAGE = ".lua-eval-file <filename|url> <arg> <arg> ..."


def _after_command(raw_line: str, name: str) -> str:
    """Text that follows the command token in the raw line."""
    stripped = raw_line.strip()
    return stripped[len(name):] if stripped.startswith(name) else stripped


def lua_eval_command(session, args: List[str], raw_line: str, out: IO[str]):
    """
    Run an inline script. The script must be quoted; the whitespace-split
    `args` are ignored in favour of re-lexing the raw line.
    """
    if not args:
        raise CommandArgumentError("missing script", LUA_EVAL_USAGE)
    try:
        script, script_args = split_script_and_args(_after_command(raw_line, LUA_EVAL))
    except ValueError as e:
        raise CommandArgumentError(str(e), LUA_EVAL_USAGE) from e
    session.scripting().execute(script, script_args, out)


def lua_eval_file_command(session, args: List[str], raw_line: str, out: IO[str]):
    if not args:
        raise CommandArgumentError("missing script source", LUA_EVAL_FILE_USAGE)
    try:
        tokens = split_args(_after_command(raw_line, LUA_EVAL_FILE))
    except ValueError as e:
        raise CommandArgumentError(str(e), LUA_EVAL_FILE_USAGE) from e

    source, script_args = tokens[0], tokens[1:]
    try:
        script = fetch_script(source)
    except (OSError, UnicodeDecodeError, requests.RequestException) as e:
        raise ScriptError(f"failed to read Lua script {source}: {e}") from e
    session.scripting().execute(script, script_args, out)
