import pytest

from errors import CommandArgumentError, ConnectError
from renderers import OutputFormat
from syscmds import Command, CommandRegistry, build_registry, is_command


def test_help_lists_every_command(session, out):
    session.registry.dispatch(session, ".help", out)
    lines = out.getvalue().splitlines()
    assert len(lines) == len(session.registry.names())
    assert lines[0] == ".help - Display help information for all available commands - Usage: .help"


def test_version(session, out):
    session.registry.dispatch(session, ".ver", out)
    assert out.getvalue() == f"tip version: {session.version}\n"


def test_refresh_completion_is_a_stub(session, out):
    session.registry.dispatch(session, ".refresh_completion", out)
    assert out.getvalue() == "not impl yet\n"


def test_unknown_command(session, out):
    session.registry.dispatch(session, ".nope 1 2", out)
    assert out.getvalue() == "Unknown command: .nope, use .help for help\n"


def test_output_format_listing_leaves_format_alone(session, out):
    session.output_format = OutputFormat.CSV
    session.registry.dispatch(session, ".output_format", out)
    assert out.getvalue() == "json table plain [csv]\n"
    assert session.output_format is OutputFormat.CSV


def test_output_format_set_is_idempotent(session, out):
    session.registry.dispatch(session, ".output_format plain", out)
    session.registry.dispatch(session, ".output_format plain", out)
    assert session.output_format is OutputFormat.PLAIN
    assert out.getvalue() == "Output format set to: plain\n" * 2


def test_output_format_rejects_unknown_name(session, out):
    with pytest.raises(CommandArgumentError, match="invalid format: xml"):
        session.registry.dispatch(session, ".output_format xml", out)
    assert session.output_format is OutputFormat.JSON


def test_connect_needs_four_arguments(session, out):
    with pytest.raises(CommandArgumentError) as info:
        session.registry.dispatch(session, ".connect localhost 4000 root", out)
    assert "usage: .connect <host> <port> <user> <password> [database]" in str(info.value)
    assert session.engine is None


def test_connect_failure_keeps_session(session, out):
    with pytest.raises(ConnectError, match="failed to connect"):
        session.registry.dispatch(session, ".connect localhost notaport root pw", out)
    assert out.getvalue() == ""
    assert session.engine is None


def test_registry_rejects_duplicates():
    registry = CommandRegistry()
    cmd = Command(".x", "x", ".x", lambda *a: None)
    registry.register(cmd)
    with pytest.raises(ValueError):
        registry.register(cmd)


def test_handler_receives_args_and_raw_line(session, out):
    seen = []
    registry = CommandRegistry()
    registry.register(Command(".echo", "echo", ".echo", lambda s, args, raw, o: seen.append((args, raw))))
    registry.dispatch(session, '  .echo a "b c"', out)
    assert seen == [(["a", '"b', 'c"'], '  .echo a "b c"')]


def test_is_command():
    assert is_command("  .help")
    assert not is_command("SELECT 1;")


def test_registry_order():
    assert build_registry().names() == [
        ".help", ".ver", ".refresh_completion", ".connect", ".output_format",
        ".ask", ".lua-eval", ".lua-eval-file",
    ]
