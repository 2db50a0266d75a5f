"""Tests for the config_loader module."""

import json

import pytest

from ..config_loader import (
    CONFIG_JSON_SCHEMA,
    CONFIG_UI_HINTS,
    ConfigValidationError,
    DEFAULT_ALLOWED_NAMESPACES,
    MemoryBridgeConfig,
    build_connection_params,
    load_config,
    parse_config,
    read_config_file,
    validate_config,
)


class TestMemoryBridgeConfig:
    """Tests for MemoryBridgeConfig dataclass."""

    def test_default_values(self):
        config = MemoryBridgeConfig()
        assert config.host is None
        assert config.port is None
        assert config.auto_context_injection is True
        assert config.allowed_namespaces == list(DEFAULT_ALLOWED_NAMESPACES)
        assert config.refresh_interval == 300.0
        assert config.connect_timeout is None
        assert config.operation_timeout is None

    def test_from_dict(self):
        config = MemoryBridgeConfig.from_dict({
            "host": "db1",
            "port": 6543,
            "ssl": True,
            "defaultNamespace": "shared_patterns",
            "autoContextInjection": False,
            "allowedNamespaces": ["internal", "shared_patterns"],
            "refreshInterval": 60,
            "operationTimeout": 5,
        })
        assert config.host == "db1"
        assert config.port == 6543
        assert config.ssl is True
        assert config.default_namespace == "shared_patterns"
        assert config.auto_context_injection is False
        assert config.allowed_namespaces == ["internal", "shared_patterns"]
        assert config.refresh_interval == 60.0
        assert config.operation_timeout == 5

    def test_from_none(self):
        assert MemoryBridgeConfig.from_dict(None) == MemoryBridgeConfig()


class TestDefaultNamespace:
    """Tests for the namespace used when a call names none."""

    def test_builtin_default(self):
        assert MemoryBridgeConfig().resolve_default_namespace({}) == "internal"

    def test_environment(self):
        environ = {"MEMORY_BRIDGE_DEFAULT_NAMESPACE": "sessions"}
        assert MemoryBridgeConfig().resolve_default_namespace(environ) == "sessions"

    def test_explicit_config_wins(self):
        config = MemoryBridgeConfig(default_namespace="shared_patterns")
        environ = {"MEMORY_BRIDGE_DEFAULT_NAMESPACE": "sessions"}
        assert config.resolve_default_namespace(environ) == "shared_patterns"


class TestBuildConnectionParams:
    """Tests for merging defaults, environment and explicit config."""

    def test_defaults(self):
        params = build_connection_params(MemoryBridgeConfig(), {})
        assert params.host == "localhost"
        assert params.port == 5432
        assert params.database == "memory_bridge"
        assert params.user == "memory_admin"
        assert params.password is None
        assert params.ssl is False
        assert params.user_id == "unknown"

    def test_environment_overrides_defaults(self):
        params = build_connection_params(MemoryBridgeConfig(), {
            "MEMORY_BRIDGE_PG_HOST": "envhost",
            "MEMORY_BRIDGE_PG_PORT": "6000",
            "MEMORY_BRIDGE_DATABASE": "envdb",
            "MEMORY_BRIDGE_PG_USER": "envuser",
            "MEMORY_BRIDGE_PG_PASSWORD": "secret",
            "MEMORY_BRIDGE_PG_SSL": "true",
        })
        assert params.host == "envhost"
        assert params.port == 6000
        assert params.database == "envdb"
        assert params.user == "envuser"
        assert params.password == "secret"
        assert params.ssl is True

    def test_explicit_config_overrides_environment(self):
        config = MemoryBridgeConfig(host="db1", port=7000, ssl=False)
        params = build_connection_params(config, {
            "MEMORY_BRIDGE_PG_HOST": "envhost",
            "MEMORY_BRIDGE_PG_PORT": "6000",
            "MEMORY_BRIDGE_PG_SSL": "1",
        })
        assert params.host == "db1"
        assert params.port == 7000
        assert params.ssl is False

    def test_malformed_environment_port(self):
        params = build_connection_params(MemoryBridgeConfig(), {"MEMORY_BRIDGE_PG_PORT": "abc"})
        assert params.port == 5432

    def test_out_of_range_environment_port(self):
        params = build_connection_params(MemoryBridgeConfig(), {"MEMORY_BRIDGE_PG_PORT": "99999"})
        assert params.port == 5432

    def test_user_id_falls_back_to_login_user(self):
        params = build_connection_params(MemoryBridgeConfig(), {"USER": "bob"})
        assert params.user_id == "bob"

    def test_bridge_user_preferred(self):
        params = build_connection_params(
            MemoryBridgeConfig(), {"USER": "bob", "MEMORY_BRIDGE_USER": "alice"}
        )
        assert params.user_id == "alice"

    def test_as_dict(self):
        params = build_connection_params(MemoryBridgeConfig(host="db1"), {"USER": "bob"})
        settings = params.as_dict()
        assert settings["host"] == "db1"
        assert settings["user"] == "memory_admin"
        assert "userId" not in settings
        assert params.user_id == "bob"
        assert params.describe() == "db1:5432/memory_bridge"


class TestValidateConfig:
    """Tests for validate_config function."""

    def test_none_is_valid(self):
        assert validate_config(None) == (True, [])

    def test_empty_is_valid(self):
        assert validate_config({}) == (True, [])

    def test_full_config_is_valid(self):
        is_valid, errors = validate_config({
            "host": "db1",
            "port": 5432,
            "database": "memory_bridge",
            "user": "memory_admin",
            "password": "pw",
            "ssl": False,
            "defaultNamespace": "internal",
            "autoContextInjection": True,
            "allowedNamespaces": ["internal"],
            "refreshInterval": 30,
            "connectTimeout": 2.5,
            "operationTimeout": 10,
        })
        assert is_valid
        assert errors == []

    def test_not_an_object(self):
        assert validate_config(["host"]) == (False, ["expected config object"])

    def test_unknown_key(self):
        is_valid, errors = validate_config({"hostname": "db1"})
        assert not is_valid
        assert errors == ["unknown config key: hostname"]

    @pytest.mark.parametrize("port", [0, 65536, "5432", True, 54.5])
    def test_invalid_port(self, port):
        is_valid, errors = validate_config({"port": port})
        assert not is_valid
        assert errors == ["port must be a valid port number (1-65535)"]

    def test_string_fields(self):
        is_valid, errors = validate_config({"host": 1, "password": None})
        assert not is_valid
        assert "host must be a string" in errors
        assert "password must be a string" in errors

    def test_bool_fields(self):
        is_valid, errors = validate_config({"ssl": "yes"})
        assert not is_valid
        assert errors == ["ssl must be a boolean"]

    def test_positive_numbers(self):
        is_valid, errors = validate_config({"refreshInterval": 0, "operationTimeout": -1})
        assert not is_valid
        assert "refreshInterval must be a positive number" in errors
        assert "operationTimeout must be a positive number" in errors

    def test_allowed_namespaces(self):
        assert not validate_config({"allowedNamespaces": []})[0]
        assert not validate_config({"allowedNamespaces": "internal"})[0]
        assert not validate_config({"allowedNamespaces": ["internal", 3]})[0]

    def test_parse_config_raises(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            parse_config({"port": 0})
        assert exc_info.value.errors == ["port must be a valid port number (1-65535)"]

    def test_schema_covers_every_field(self):
        assert set(CONFIG_UI_HINTS) == set(CONFIG_JSON_SCHEMA["properties"])


class TestLoadConfig:
    """Tests for loading the config file."""

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "bridge.json"
        path.write_text(json.dumps({"host": "db1", "refreshInterval": 60}))

        config = load_config(str(path))

        assert config.host == "db1"
        assert config.refresh_interval == 60.0

    def test_explicit_path_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.json"))

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = tmp_path / "from_env.json"
        path.write_text(json.dumps({"database": "envdb"}))
        monkeypatch.setenv("MEMORY_BRIDGE_CONFIG", str(path))

        assert load_config().database == "envdb"

    def test_no_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MEMORY_BRIDGE_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)

        assert load_config() == MemoryBridgeConfig()

    def test_default_location(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MEMORY_BRIDGE_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".membridge").mkdir()
        (tmp_path / ".membridge" / "memory_bridge.json").write_text(json.dumps({"ssl": True}))

        assert load_config().ssl is True

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"port": "not-a-port"}))

        with pytest.raises(ConfigValidationError):
            load_config(str(path))

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(json.JSONDecodeError):
            load_config(str(path))

    def test_read_config_file_returns_raw_dict(self, tmp_path):
        path = tmp_path / "bridge.json"
        path.write_text(json.dumps({"host": "db1", "autoContextInjection": False}))

        assert read_config_file(str(path)) == {"host": "db1", "autoContextInjection": False}
