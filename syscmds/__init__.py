from .ask import make_ask_command
from .builtin import (
    CONNECT_USAGE,
    OUTPUT_FORMAT_USAGE,
    connect_command,
    help_command,
    output_format_command,
    refresh_completion_command,
    version_command,
)
from .lua import (
    LUA_EVAL,
    LUA_EVAL_FILE,
    LUA_EVAL_FILE_USAGE,
    LUA_EVAL_USAGE,
    lua_eval_command,
    lua_eval_file_command,
)
from .registry import COMMAND_PREFIX, Command, CommandRegistry, is_command


def build_registry(ask_handler=None) -> CommandRegistry:
    """
    Registry with every built-in dot-command, in .help order.
    """
    registry = CommandRegistry()
    registry.register(Command(".help", "Display help information for all available commands",
                              ".help", help_command))
    registry.register(Command(".ver", "Display the current version of tip",
                              ".ver", version_command))
    registry.register(Command(".refresh_completion", "Refresh completion (not implemented yet)",
                              ".refresh_completion", refresh_completion_command))
    registry.register(Command(".connect", "Connect to a database",
                              CONNECT_USAGE, connect_command))
    registry.register(Command(".output_format", "Set or display the current output format",
                              OUTPUT_FORMAT_USAGE, output_format_command))
    registry.register(Command(".ask", "Ask a question about the database",
                              ".ask <question>", ask_handler or make_ask_command()))
    registry.register(Command(LUA_EVAL, "Execute a Lua script",
                              LUA_EVAL_USAGE, lua_eval_command))
    registry.register(Command(LUA_EVAL_FILE, "Execute a Lua file or URL",
                              LUA_EVAL_FILE_USAGE, lua_eval_file_command))
    return registry


__all__ = [
    "COMMAND_PREFIX",
    "Command",
    "CommandRegistry",
    "build_registry",
    "is_command",
]
