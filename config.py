# config.py

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from errors import ConfigError

DEFAULT_PORT = "4000"
DEFAULT_DATABASE = "test"
CONFIG_DIR = ".tip"
CONFIG_FILE = "config.toml"
HISTORY_FILE = "history"

CONFIG_KEYS = ("host", "port", "user", "password", "database")


@dataclass(frozen=True)
class ConnInfo:
    """
    Everything needed to open a connection.

    Attributes:
        host (str): Server hostname.
        port (str): Server port, kept as text the way it arrives from flags/env.
        user (str): Login name.
        password (str): Login password.
        database (str): Initial database; empty means "last used, then default".
    """
    host: str = ""
    port: str = DEFAULT_PORT
    user: str = ""
    password: str = ""
    database: str = ""


def tip_home() -> Path:
    """Return ~/.tip; failing to resolve the home directory is fatal."""
    try:
        home = Path.home()
    except RuntimeError as e:
        raise ConfigError(f"cannot determine home directory: {e}") from e
    return home / CONFIG_DIR


def default_config_path() -> Path | None:
    """Return ~/.tip/config.toml if it exists, else None."""
    path = tip_home() / CONFIG_FILE
    return path if path.is_file() else None


def history_path() -> Path:
    path = tip_home() / HISTORY_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def load_config_file(path: str | os.PathLike) -> dict[str, str]:
    """
    Read a TOML file holding host/port/user/password/database.

    Unknown keys are ignored and values are normalised to strings.

    Raises:
        ConfigError: If the file cannot be read or is not valid TOML.
    """
    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e

    return {k: str(raw[k]) for k in CONFIG_KEYS if raw.get(k) not in (None, "")}


def load_env(dotenv_path: str = ".env") -> dict[str, str]:
    """
    Collect connection settings from DB_* environment variables.

    A local .env file is loaded first but never overrides variables that are
    already set in the process environment.
    """
    load_dotenv(dotenv_path, override=False)
    mapping = {
        "host": "DB_HOST",
        "port": "DB_PORT",
        "user": "DB_USERNAME",
        "password": "DB_PASSWORD",
        "database": "DB_DATABASE",
    }
    return {k: os.environ[v] for k, v in mapping.items() if os.environ.get(v)}


def resolve_conn_info(flags: dict[str, str | None], file_values: dict[str, str],
                      env_values: dict[str, str]) -> ConnInfo:
    """
    Merge the three configuration sources into a ConnInfo.

    Precedence is flag > config file > environment > defaults.
    """
    merged: dict[str, str] = {"port": DEFAULT_PORT, "database": DEFAULT_DATABASE}
    for source in (env_values, file_values):
        merged.update({k: v for k, v in source.items() if v})
    # An explicit empty password flag still counts as "set"
    merged.update({k: v for k, v in flags.items() if v is not None and (v or k == "password")})
    return ConnInfo(**{k: merged.get(k, "") for k in CONFIG_KEYS})
