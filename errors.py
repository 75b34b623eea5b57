# errors.py

class TipError(Exception):
    """
    Base class for every error raised by the client.

    The REPL catches this type, reports it and keeps the session alive.
    """


class ConfigError(TipError):
    """Raised when a configuration file is missing or cannot be parsed."""


class ConnectError(TipError):
    """Raised when a connection (or its liveness check) cannot be established."""


class ParseError(TipError):
    """Raised when the statement classifier rejects the buffered SQL text."""


class ExecutionError(TipError):
    """Raised when the driver reports a failure while running a statement."""


class RenderError(TipError):
    """Raised when a result writer fails to serialize or emit output."""


class ScriptError(TipError):
    """Raised for compile or runtime failures inside the embedded interpreter."""


class CommandArgumentError(TipError):
    """
    Raised when a dot-command is invoked with malformed arguments.

    Attributes:
        usage (str): Usage text shown to the user alongside the message.
    """

    def __init__(self, message: str, usage: str = ""):
        self.message = message
        self.usage = usage
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if not self.usage:
            return self.message
        return f"{self.message} (usage: {self.usage})"
