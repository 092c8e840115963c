from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError

CONFIG_PATH_ENV = "DB_API_TOOL_CONFIG"

_ENV_REF_RE = re.compile(r"\$\{(\w+)\}")


@dataclass
class DatabaseConfig:
    user: str
    password: str
    name: str
    host: str = "localhost"
    port: int = 3306


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class LimitsConfig:
    default_limit: int = 10
    max_limit: int = 100
    pool_size: int = 10
    acquire_timeout_seconds: float = 5.0
    query_timeout_seconds: int = 30
    connect_timeout_seconds: int = 10


@dataclass
class ObservabilityConfig:
    log_level: str = "info"
    propagate_request_ids: bool = True


@dataclass
class AppConfig:
    database: DatabaseConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)


def parse_env_line(line: str) -> tuple[str, str] | None:
    """Parse a single .env line into a key/value pair."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None

    if stripped.startswith("export "):
        stripped = stripped[len("export ") :].strip()

    if "=" not in stripped:
        return None

    key, value = stripped.split("=", 1)
    key = key.strip()
    value = value.strip()

    if not key:
        return None

    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]

    return key, value


def load_env_file(path: str | Path) -> dict[str, str]:
    """Load a .env file into a dictionary of strings.

    A missing file yields an empty mapping; the last value wins for duplicate keys.
    """
    env_path = Path(path)
    if not env_path.exists():
        return {}

    env: dict[str, str] = {}
    for line in env_path.read_text(encoding="utf-8").splitlines():
        parsed = parse_env_line(line)
        if parsed is None:
            continue
        key, value = parsed
        env[key] = value
    return env


def _resolve_env(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        def substitute(match: re.Match[str]) -> str:
            key = match.group(1)
            if key not in env:
                raise ConfigError(f"Environment variable {key} is required but not set")
            return env[key]

        return _ENV_REF_RE.sub(substitute, value)
    if isinstance(value, list):
        return [_resolve_env(v, env) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_env(v, env) for k, v in value.items()}
    return value


def _positive_int(value: Any, field_name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be a whole number") from exc
    if isinstance(value, float) and value != number:
        raise ConfigError(f"{field_name} must be a whole number")
    if number < 1:
        raise ConfigError(f"{field_name} must be at least 1")
    return number


def _positive_float(value: Any, field_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be a number") from exc
    if not number > 0 or number == float("inf"):
        raise ConfigError(f"{field_name} must be greater than 0")
    return number


def _parse_port(raw: Any, default: int) -> int:
    # Unparsable ports fall back to the default rather than failing startup.
    try:
        port = int(raw)
    except (TypeError, ValueError):
        return default
    if not 0 < port < 65536:
        return default
    return port


def _required(raw: Mapping[str, Any], key: str, label: str) -> Any:
    value = raw.get(key)
    if value is None or value == "":
        raise ConfigError(f"{label} is required but not set")
    return value


def _build_limits(limits_raw: Mapping[str, Any]) -> LimitsConfig:
    defaults = LimitsConfig()
    limits = LimitsConfig(
        default_limit=_positive_int(
            limits_raw.get("default_limit", defaults.default_limit), "default_limit"
        ),
        max_limit=_positive_int(limits_raw.get("max_limit", defaults.max_limit), "max_limit"),
        pool_size=_positive_int(limits_raw.get("pool_size", defaults.pool_size), "pool_size"),
        acquire_timeout_seconds=_positive_float(
            limits_raw.get("acquire_timeout_seconds", defaults.acquire_timeout_seconds),
            "acquire_timeout_seconds",
        ),
        # max_execution_time = 0 disables the engine's statement timeout.
        query_timeout_seconds=_positive_int(
            limits_raw.get("query_timeout_seconds", defaults.query_timeout_seconds),
            "query_timeout_seconds",
        ),
        connect_timeout_seconds=_positive_int(
            limits_raw.get("connect_timeout_seconds", defaults.connect_timeout_seconds),
            "connect_timeout_seconds",
        ),
    )
    if limits.default_limit > limits.max_limit:
        raise ConfigError("default_limit cannot exceed max_limit")
    return limits


def load_config(path: str | Path, env: Mapping[str, str] | None = None) -> AppConfig:
    env = env or os.environ
    raw = yaml.safe_load(Path(path).read_text()) or {}
    resolved = _resolve_env(raw, env)

    try:
        database_raw = resolved["database"]
    except KeyError as exc:
        raise ConfigError(f"Missing config section: {exc.args[0]}") from exc
    server_raw = resolved.get("server") or {}
    limits_raw = resolved.get("limits") or {}
    observability_raw = resolved.get("observability") or {}

    database = DatabaseConfig(
        host=str(database_raw.get("host") or "localhost"),
        port=_parse_port(database_raw.get("port"), 3306),
        user=str(_required(database_raw, "user", "database.user")),
        password=str(database_raw.get("password") or ""),
        name=str(_required(database_raw, "name", "database.name")),
    )

    server = ServerConfig(
        host=str(server_raw.get("host", "0.0.0.0")),
        port=_parse_port(server_raw.get("port"), 8080),
    )

    observability = ObservabilityConfig(
        log_level=str(observability_raw.get("log_level", "info")),
        propagate_request_ids=bool(observability_raw.get("propagate_request_ids", True)),
    )

    return AppConfig(
        database=database,
        server=server,
        limits=_build_limits(limits_raw),
        observability=observability,
    )


def load_config_from_env(env: Mapping[str, str] | None = None) -> AppConfig:
    """Build configuration from MYSQL_* and DB_API_* environment variables.

    MYSQL_USER, MYSQL_PASSWORD and MYSQL_DB are required. MYSQL_PASSWORD may be
    empty but must be present.
    """
    env = os.environ if env is None else env

    if "MYSQL_PASSWORD" not in env:
        raise ConfigError("MYSQL_PASSWORD is required but not set")

    database = DatabaseConfig(
        host=env.get("MYSQL_HOST") or "localhost",
        port=_parse_port(env.get("MYSQL_PORT"), 3306),
        user=str(_required(env, "MYSQL_USER", "MYSQL_USER")),
        password=env["MYSQL_PASSWORD"],
        name=str(_required(env, "MYSQL_DB", "MYSQL_DB")),
    )

    limits_raw: dict[str, Any] = {}
    for key, env_key in (
        ("default_limit", "DB_API_DEFAULT_LIMIT"),
        ("max_limit", "DB_API_MAX_LIMIT"),
        ("pool_size", "DB_API_POOL_SIZE"),
        ("acquire_timeout_seconds", "DB_API_ACQUIRE_TIMEOUT"),
        ("query_timeout_seconds", "DB_API_QUERY_TIMEOUT"),
    ):
        if env.get(env_key):
            limits_raw[key] = env[env_key]

    return AppConfig(
        database=database,
        server=ServerConfig(port=_parse_port(env.get("APP_PORT"), 8080)),
        limits=_build_limits(limits_raw),
        observability=ObservabilityConfig(log_level=env.get("DB_API_LOG_LEVEL", "info")),
    )


def resolve_config(env: Mapping[str, str] | None = None, env_file: str | Path = ".env") -> AppConfig:
    """Load configuration the way the server does at startup.

    Values from ``env_file`` are layered under the real environment. When
    DB_API_TOOL_CONFIG names a YAML file it is used, otherwise the
    environment variables are read directly.
    """
    merged = {**load_env_file(env_file), **(os.environ if env is None else env)}
    config_path = merged.get(CONFIG_PATH_ENV)
    if config_path:
        return load_config(config_path, merged)
    return load_config_from_env(merged)
