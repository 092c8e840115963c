from pathlib import Path

import pytest

from db_api_tool.config import (
    load_config,
    load_config_from_env,
    load_env_file,
    parse_env_line,
    resolve_config,
)
from db_api_tool.errors import ConfigError


def write_config(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yml"
    path.write_text(content)
    return path


def base_env(**overrides: str) -> dict[str, str]:
    env = {"MYSQL_USER": "app", "MYSQL_PASSWORD": "secret", "MYSQL_DB": "shop"}
    env.update(overrides)
    return env


def test_env_substitution(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_API_TEST_PASSWORD", "secret-value")
    cfg_path = write_config(
        tmp_path,
        """
database:
  host: db.internal
  port: 3307
  user: app
  password: ${DB_API_TEST_PASSWORD}
  name: shop
limits:
  default_limit: 5
  max_limit: 50
  pool_size: 4
""",
    )

    config = load_config(cfg_path)
    assert config.database.password == "secret-value"
    assert config.database.port == 3307
    assert config.limits.default_limit == 5
    assert config.limits.max_limit == 50
    assert config.limits.pool_size == 4
    assert config.server.port == 8080


def test_unset_variable_is_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DB_API_TEST_MISSING", raising=False)
    cfg_path = write_config(
        tmp_path,
        """
database:
  user: app
  password: ${DB_API_TEST_MISSING}
  name: shop
""",
    )
    with pytest.raises(ConfigError, match="DB_API_TEST_MISSING"):
        load_config(cfg_path, env={"UNRELATED": "1"})


def test_missing_required_section(tmp_path: Path) -> None:
    cfg_path = write_config(
        tmp_path,
        """
server:
  port: 5000
""",
    )
    with pytest.raises(ConfigError):
        load_config(cfg_path)


def test_invalid_limits(tmp_path: Path) -> None:
    cfg_path = write_config(
        tmp_path,
        """
database:
  user: app
  name: shop
limits:
  max_limit: 0
""",
    )
    with pytest.raises(ConfigError):
        load_config(cfg_path)


def test_default_limit_cannot_exceed_max(tmp_path: Path) -> None:
    cfg_path = write_config(
        tmp_path,
        """
database:
  user: app
  name: shop
limits:
  default_limit: 200
  max_limit: 100
""",
    )
    with pytest.raises(ConfigError):
        load_config(cfg_path)


def test_env_loader_defaults() -> None:
    config = load_config_from_env(base_env())
    assert config.database.host == "localhost"
    assert config.database.port == 3306
    assert config.database.name == "shop"
    assert config.server.port == 8080
    assert config.limits.max_limit == 100
    assert config.limits.default_limit == 10


def test_env_loader_reads_overrides() -> None:
    config = load_config_from_env(
        base_env(
            MYSQL_HOST="db",
            MYSQL_PORT="3310",
            APP_PORT="5000",
            DB_API_POOL_SIZE="3",
            DB_API_LOG_LEVEL="debug",
        )
    )
    assert config.database.host == "db"
    assert config.database.port == 3310
    assert config.server.port == 5000
    assert config.limits.pool_size == 3
    assert config.observability.log_level == "debug"


def test_env_loader_unparsable_port_falls_back() -> None:
    config = load_config_from_env(base_env(MYSQL_PORT="not-a-port", APP_PORT="99999"))
    assert config.database.port == 3306
    assert config.server.port == 8080


@pytest.mark.parametrize("missing", ["MYSQL_USER", "MYSQL_PASSWORD", "MYSQL_DB"])
def test_env_loader_requires_credentials(missing: str) -> None:
    env = base_env()
    del env[missing]
    with pytest.raises(ConfigError, match=missing):
        load_config_from_env(env)


def test_empty_password_is_allowed() -> None:
    config = load_config_from_env(base_env(MYSQL_PASSWORD=""))
    assert config.database.password == ""


def test_parse_env_line_supports_export_and_quotes() -> None:
    assert parse_env_line('export FOO="bar"') == ("FOO", "bar")
    assert parse_env_line("# comment") is None
    assert parse_env_line("no-equals-sign") is None


def test_load_env_file_ignores_comments_and_blanks(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("# comment\n\nFOO=bar\nBAZ='qux'\n", encoding="utf-8")

    assert load_env_file(env_file) == {"FOO": "bar", "BAZ": "qux"}
    assert load_env_file(tmp_path / "missing.env") == {}


def test_resolve_config_layers_env_file_under_environment(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "MYSQL_USER=file_user\nMYSQL_PASSWORD=file_secret\nMYSQL_DB=file_db\n",
        encoding="utf-8",
    )

    config = resolve_config(env={"MYSQL_DB": "real_db"}, env_file=env_file)

    assert config.database.user == "file_user"
    assert config.database.name == "real_db"


def test_resolve_config_prefers_yaml_file(tmp_path: Path) -> None:
    cfg_path = write_config(
        tmp_path,
        """
database:
  user: yaml_user
  name: yaml_db
server:
  port: 5000
""",
    )

    config = resolve_config(
        env={"DB_API_TOOL_CONFIG": str(cfg_path)}, env_file=tmp_path / "none.env"
    )

    assert config.database.user == "yaml_user"
    assert config.server.port == 5000


@pytest.mark.parametrize("key", ["DB_API_QUERY_TIMEOUT", "DB_API_POOL_SIZE", "DB_API_MAX_LIMIT"])
def test_env_loader_rejects_fractional_integer_limits(key: str) -> None:
    with pytest.raises(ConfigError):
        load_config_from_env(base_env(**{key: "1.5"}))


def test_env_loader_accepts_fractional_acquire_timeout() -> None:
    config = load_config_from_env(base_env(DB_API_ACQUIRE_TIMEOUT="0.5"))
    assert config.limits.acquire_timeout_seconds == 0.5


@pytest.mark.parametrize("timeout", ["0.5", "0", "-1", "2.5"])
def test_query_timeout_must_be_a_whole_positive_number(tmp_path: Path, timeout: str) -> None:
    cfg_path = write_config(
        tmp_path,
        f"""
database:
  user: app
  name: shop
limits:
  query_timeout_seconds: {timeout}
""",
    )
    with pytest.raises(ConfigError):
        load_config(cfg_path)


def test_whole_float_limit_is_accepted(tmp_path: Path) -> None:
    cfg_path = write_config(
        tmp_path,
        """
database:
  user: app
  name: shop
limits:
  query_timeout_seconds: 2.0
""",
    )
    assert load_config(cfg_path).limits.query_timeout_seconds == 2


def test_explicit_env_wins_over_process_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DB_API_TEST_HOST", "from-os")
    cfg_path = write_config(
        tmp_path,
        """
database:
  host: ${DB_API_TEST_HOST}
  user: app
  name: shop
""",
    )

    config = load_config(cfg_path, env={"DB_API_TEST_HOST": "from-arg"})

    assert config.database.host == "from-arg"


def test_embedded_references_are_substituted(tmp_path: Path) -> None:
    cfg_path = write_config(
        tmp_path,
        """
database:
  host: db-${DB_API_TEST_REGION}.internal
  user: app
  name: shop
""",
    )

    config = load_config(cfg_path, env={"DB_API_TEST_REGION": "eu"})

    assert config.database.host == "db-eu.internal"


def test_embedded_unset_reference_is_rejected(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("DB_API_TEST_UNSET", raising=False)
    cfg_path = write_config(
        tmp_path,
        """
database:
  host: db-${DB_API_TEST_UNSET}
  user: app
  name: shop
""",
    )
    with pytest.raises(ConfigError, match="DB_API_TEST_UNSET"):
        load_config(cfg_path, env={"UNRELATED": "1"})
