# registry.py

import logging
from dataclasses import dataclass
from typing import IO, Callable, List

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "."

# handler(session, args, raw_line, out)
Handler = Callable[[object, List[str], str, IO[str]], None]


@dataclass(frozen=True)
class Command:
    """
    One dot-command.

    Attributes:
        name (str): Token typed by the user, including the leading dot.
        description (str): One-line summary for .help.
        usage (str): Invocation syntax.
        handler (callable): Called as handler(session, args, raw_line, out).
    """
    name: str
    description: str
    usage: str
    handler: Handler


class CommandRegistry:
    """
    Ordered table of dot-commands; the first matching name wins.
    """

    def __init__(self):
        self.commands: List[Command] = []

    def register(self, command: Command):
        """
        Raises:
            ValueError: If a command with the same name is already registered.
        """
        if self.find(command.name) is not None:
            raise ValueError(f"command '{command.name}' already registered")
        self.commands.append(command)

    def find(self, name: str) -> Command | None:
        for command in self.commands:
            if command.name == name:
                return command
        return None

    def names(self) -> List[str]:
        return [c.name for c in self.commands]

    def dispatch(self, session, raw_line: str, out: IO[str]):
        """
        Run the command named by the first token of `raw_line`.

        Unknown commands print a notice and are not errors.

        Raises:
            TipError: Whatever the handler raises for bad arguments or failures.
        """
        parts = raw_line.strip().split()
        if not parts:
            return
        name, args = parts[0], parts[1:]
        command = self.find(name)
        if command is None:
            out.write(f"Unknown command: {name}, use .help for help\n")
            return
        logger.debug("dispatching %s with %d args", name, len(args))
        command.handler(session, args, raw_line, out)


def is_command(line: str) -> bool:
    return line.strip().startswith(COMMAND_PREFIX)
