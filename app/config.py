"""Config loading for the Pali server.

Reads `.pali/config.yaml` (or `~/.pali/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field or an invalid value.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. PALI_CONFIG environment variable (if set)
  3. `.pali/config.yaml` (working directory — for development)
  4. `~/.pali/config.yaml` (home directory — for production deployments)

Environment variable overrides:
  PALI_PORT        — overrides server.port
  PALI_DB_PATH     — overrides store.path
  PALI_KEY_PEPPER  — overrides keys.pepper
  PALI_CONFIG      — sets an explicit config file path to try first

Example:
    version: 1
    server:
      host: 127.0.0.1
      port: 8787
    store:
      path: ~/.pali/pali.db
      timeout_s: 5.0
    keys:
      prefix: pali_
      iterations: 100000
      pepper: "change-me"
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import NoReturn, Optional

import yaml

from app.constants import (
    DEFAULT_DB_PATH,
    DEFAULT_KEY_PEPPER,
    DEFAULT_STORE_TIMEOUT_S,
    KEY_PREFIX,
    MIN_PBKDF2_ITERATIONS,
    PBKDF2_ITERATIONS,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_CONFIG_VERSION = 1
SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8787

# Default config search paths (PALI_CONFIG env var prepended at runtime)
DEFAULT_CONFIG_PATHS = [
    ".pali/config.yaml",
    os.path.expanduser("~/.pali/config.yaml"),
]


def _fail(msg: str) -> NoReturn:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    raise SystemExit(1)


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """HTTP binding."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class StoreConfig:
    """SQLite file location and lock timeout."""

    path: str = DEFAULT_DB_PATH
    timeout_s: float = DEFAULT_STORE_TIMEOUT_S


@dataclass
class KeysConfig:
    """Key generation and hashing.

    prefix:     textual prefix on every issued secret
    iterations: PBKDF2 rounds; never below 100,000
    pepper:     system-wide secret mixed into every digest. Changing it
                invalidates every stored credential.
    """

    prefix: str = KEY_PREFIX
    iterations: int = PBKDF2_ITERATIONS
    pepper: str = DEFAULT_KEY_PEPPER

    @property
    def pepper_bytes(self) -> bytes:
        return self.pepper.encode("utf-8")

    @property
    def uses_default_pepper(self) -> bool:
        return self.pepper == DEFAULT_KEY_PEPPER


@dataclass
class Config:
    """Root configuration object populated from .pali/config.yaml.

    All fields have safe defaults — the server can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    keys: KeysConfig = field(default_factory=KeysConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are ignored.

        Raises:
            SystemExit(1): On a section that is not a mapping or a value of the wrong type.
        """
        server_raw = _section(raw, "server")
        store_raw = _section(raw, "store")
        keys_raw = _section(raw, "keys")

        server = ServerConfig(
            host=str(server_raw.get("host", DEFAULT_HOST)),
            port=_as_int(server_raw.get("port", DEFAULT_PORT), "server.port"),
        )
        store = StoreConfig(
            path=str(store_raw.get("path", DEFAULT_DB_PATH)),
            timeout_s=_as_float(
                store_raw.get("timeout_s", DEFAULT_STORE_TIMEOUT_S), "store.timeout_s"
            ),
        )
        keys = KeysConfig(
            prefix=str(keys_raw.get("prefix", KEY_PREFIX)),
            iterations=_as_int(keys_raw.get("iterations", PBKDF2_ITERATIONS), "keys.iterations"),
            pepper=str(keys_raw.get("pepper", DEFAULT_KEY_PEPPER)),
        )
        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            store=store,
            keys=keys,
            path=path,
        )


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        _fail(f"'{name}' must be a mapping.")
    return value


def _as_int(value: object, name: str) -> int:
    if isinstance(value, bool):
        _fail(f"{name} must be an integer, got {value!r}.")
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        _fail(f"{name} must be an integer, got {value!r}.")


def _as_float(value: object, name: str) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        _fail(f"{name} must be a number, got {value!r}.")


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate Pali configuration.

    If no file is found at any search path, returns the default Config (not an
    error). If a file is found but invalid, writes the error to stderr and
    raises SystemExit(1). Env var overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing or unsupported ``version``,
                       or an invalid value after overrides.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("PALI_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("config_defaults_used", searched=search_paths)
        config = Config.defaults()
    else:
        config = _read_config_file(found_path)

    _apply_env_overrides(config)
    _validate(config)

    if config.keys.uses_default_pepper:
        logger.warning(
            "default_key_pepper_in_use",
            hint="Set keys.pepper or PALI_KEY_PEPPER before issuing production keys",
        )
    if config.server.host == "0.0.0.0":
        logger.warning("server_bound_to_all_interfaces", host=config.server.host)

    logger.info(
        "config_loaded",
        path=config.path,
        version=config.version,
        port=config.server.port,
        iterations=config.keys.iterations,
    )
    return config


def _read_config_file(found_path: str) -> Config:
    logger.info("config_loading", path=found_path)
    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"Failed to parse {found_path}: {exc}\n"
            "Pali refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _fail(f"Could not read {found_path}: {exc}")

    if raw is None or (isinstance(raw, dict) and raw.get("version") is None):
        _fail(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if not isinstance(raw, dict):
        _fail(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw["version"]
    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )
    return Config.from_dict(raw, path=found_path)


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Called for file-loaded and default configs alike, so env vars always take
    precedence over any file value.
    """
    env_port = os.environ.get("PALI_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _fail(f"PALI_PORT environment variable is not a valid integer: '{env_port}'")

    env_db_path = os.environ.get("PALI_DB_PATH")
    if env_db_path:
        config.store.path = env_db_path

    env_pepper = os.environ.get("PALI_KEY_PEPPER")
    if env_pepper:
        config.keys.pepper = env_pepper


def _validate(config: Config) -> None:
    if not 1 <= config.server.port <= 65535:
        _fail(f"server.port must be between 1 and 65535, got {config.server.port}.")
    if config.store.timeout_s <= 0:
        _fail(f"store.timeout_s must be positive, got {config.store.timeout_s}.")
    if not config.keys.prefix:
        _fail("keys.prefix must not be empty.")
    if config.keys.iterations < MIN_PBKDF2_ITERATIONS:
        _fail(
            f"keys.iterations must be at least {MIN_PBKDF2_ITERATIONS}, "
            f"got {config.keys.iterations}."
        )
    if not config.keys.pepper:
        _fail("keys.pepper must not be empty.")
