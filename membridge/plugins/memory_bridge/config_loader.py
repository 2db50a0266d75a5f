"""Configuration loading and validation for the memory bridge plugin.

Connection settings come from three sources, lowest precedence first:
built-in defaults, environment variables, explicit plugin configuration.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .backend import ConnectionParams


# Built-in connection defaults (lowest precedence)
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 5432
DEFAULT_DATABASE = "memory_bridge"
DEFAULT_DB_USER = "memory_admin"
DEFAULT_USER_ID = "unknown"
DEFAULT_NAMESPACE = "internal"
DEFAULT_REFRESH_INTERVAL = 300.0

DEFAULT_ALLOWED_NAMESPACES = (
    "internal",
    "shared_patterns",
    "sessions",
    "client_arete_health",
    "client_deccan_intl",
    "client_igoe_company",
    "client_cafemoto",
    "client_plenums_plus",
)

# Environment variables (middle precedence)
ENV_HOST = "MEMORY_BRIDGE_PG_HOST"
ENV_PORT = "MEMORY_BRIDGE_PG_PORT"
ENV_DATABASE = "MEMORY_BRIDGE_DATABASE"
ENV_DB_USER = "MEMORY_BRIDGE_PG_USER"
ENV_PASSWORD = "MEMORY_BRIDGE_PG_PASSWORD"
ENV_SSL = "MEMORY_BRIDGE_PG_SSL"
ENV_USER_ID = "MEMORY_BRIDGE_USER"
ENV_DEFAULT_NAMESPACE = "MEMORY_BRIDGE_DEFAULT_NAMESPACE"
ENV_CONFIG_PATH = "MEMORY_BRIDGE_CONFIG"

DEFAULT_CONFIG_PATH = ".membridge/memory_bridge.json"

_STRING_FIELDS = ("host", "database", "user", "password", "defaultNamespace")
_BOOL_FIELDS = ("ssl", "autoContextInjection")
_POSITIVE_NUMBER_FIELDS = ("refreshInterval", "connectTimeout", "operationTimeout")


@dataclass
class MemoryBridgeConfig:
    """Structured plugin configuration.

    Connection fields left as None fall through to the environment and then
    to the built-in defaults when connection parameters are built.
    """
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    ssl: Optional[bool] = None
    default_namespace: Optional[str] = None
    auto_context_injection: bool = True
    allowed_namespaces: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_NAMESPACES))
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    connect_timeout: Optional[float] = None
    operation_timeout: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "MemoryBridgeConfig":
        """Build a config from the plugin configuration dict (camelCase keys).

        The dict is expected to have passed validate_config().
        """
        data = data or {}
        allowed = data.get("allowedNamespaces")
        return cls(
            host=data.get("host"),
            port=data.get("port"),
            database=data.get("database"),
            user=data.get("user"),
            password=data.get("password"),
            ssl=data.get("ssl"),
            default_namespace=data.get("defaultNamespace"),
            auto_context_injection=data.get("autoContextInjection", True),
            allowed_namespaces=list(allowed) if allowed is not None else list(DEFAULT_ALLOWED_NAMESPACES),
            refresh_interval=float(data.get("refreshInterval", DEFAULT_REFRESH_INTERVAL)),
            connect_timeout=data.get("connectTimeout"),
            operation_timeout=data.get("operationTimeout"),
        )

    def resolve_default_namespace(self, environ: Optional[Mapping[str, str]] = None) -> str:
        """Namespace used when a tool call names none."""
        environ = os.environ if environ is None else environ
        if self.default_namespace:
            return self.default_namespace
        return environ.get(ENV_DEFAULT_NAMESPACE) or DEFAULT_NAMESPACE


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Configuration validation failed: {'; '.join(errors)}")


def validate_config(config: Any) -> Tuple[bool, List[str]]:
    """Validate a memory bridge configuration dict.

    Args:
        config: Raw plugin configuration. None is accepted as empty.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if config is None:
        return True, []
    if not isinstance(config, Mapping):
        return False, ["expected config object"]

    errors: List[str] = []

    unknown = set(config) - set(CONFIG_JSON_SCHEMA["properties"])
    for key in sorted(unknown):
        errors.append(f"unknown config key: {key}")

    for key in _STRING_FIELDS:
        if key in config and not isinstance(config[key], str):
            errors.append(f"{key} must be a string")

    for key in _BOOL_FIELDS:
        if key in config and not isinstance(config[key], bool):
            errors.append(f"{key} must be a boolean")

    if "port" in config:
        port = config["port"]
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            errors.append("port must be a valid port number (1-65535)")

    for key in _POSITIVE_NUMBER_FIELDS:
        if key in config:
            value = config[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"{key} must be a positive number")

    if "allowedNamespaces" in config:
        allowed = config["allowedNamespaces"]
        if not isinstance(allowed, list) or not all(isinstance(n, str) for n in allowed):
            errors.append("allowedNamespaces must be an array of strings")
        elif not allowed:
            errors.append("allowedNamespaces must not be empty")

    return len(errors) == 0, errors


def parse_config(config: Optional[Mapping[str, Any]]) -> MemoryBridgeConfig:
    """Validate and parse a plugin configuration dict.

    Raises:
        ConfigValidationError: If validation fails.
    """
    is_valid, errors = validate_config(config)
    if not is_valid:
        raise ConfigValidationError(errors)
    return MemoryBridgeConfig.from_dict(config)


def _config_file_path(path: Optional[str], env_var: str) -> Path:
    if path:
        return Path(path)
    if os.environ.get(env_var):
        return Path(os.environ[env_var])
    return Path.cwd() / DEFAULT_CONFIG_PATH


def read_config_file(
    path: Optional[str] = None,
    env_var: str = ENV_CONFIG_PATH
) -> Dict[str, Any]:
    """Read and validate the raw plugin configuration dict from disk.

    Searches for the config file in this order:
    1. Explicit path if provided
    2. The env_var environment variable
    3. .membridge/memory_bridge.json in the current directory

    If no file is found, returns an empty dict.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigValidationError: If config validation fails.
        json.JSONDecodeError: If the config file is not valid JSON.
    """
    file_path = _config_file_path(path, env_var)
    if not file_path.exists():
        if path:
            raise FileNotFoundError(f"Memory bridge config not found: {file_path}")
        return {}

    with open(file_path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    is_valid, errors = validate_config(data)
    if not is_valid:
        raise ConfigValidationError(errors)
    return dict(data or {})


def load_config(
    path: Optional[str] = None,
    env_var: str = ENV_CONFIG_PATH
) -> MemoryBridgeConfig:
    """Load a memory bridge configuration file into a MemoryBridgeConfig.

    See read_config_file() for the search order. If no file is found,
    returns the default configuration.
    """
    return MemoryBridgeConfig.from_dict(read_config_file(path, env_var))


def _env_port(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        port = int(value.strip())
    except ValueError:
        return None
    return port if 1 <= port <= 65535 else None


def _env_bool(value: Optional[str]) -> Optional[bool]:
    if value is None or not value.strip():
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def build_connection_params(
    config: MemoryBridgeConfig,
    environ: Optional[Mapping[str, str]] = None
) -> ConnectionParams:
    """Merge defaults, environment and explicit config into connection params.

    Each source is applied in turn, lowest precedence first, and only the
    values it actually sets override the previous ones.

    Args:
        config: Explicit plugin configuration.
        environ: Environment mapping (default: os.environ).

    Returns:
        ConnectionParams for the backend factory.
    """
    environ = os.environ if environ is None else environ

    merged: Dict[str, Any] = {
        "host": DEFAULT_HOST,
        "port": DEFAULT_PORT,
        "database": DEFAULT_DATABASE,
        "user": DEFAULT_DB_USER,
        "password": None,
        "ssl": False,
        "user_id": DEFAULT_USER_ID,
    }

    from_env = {
        "host": environ.get(ENV_HOST) or None,
        "port": _env_port(environ.get(ENV_PORT)),
        "database": environ.get(ENV_DATABASE) or None,
        "user": environ.get(ENV_DB_USER) or None,
        "password": environ.get(ENV_PASSWORD) or None,
        "ssl": _env_bool(environ.get(ENV_SSL)),
        "user_id": environ.get(ENV_USER_ID) or environ.get("USER") or None,
    }

    explicit = {
        "host": config.host,
        "port": config.port,
        "database": config.database,
        "user": config.user,
        "password": config.password,
        "ssl": config.ssl,
    }

    for source in (from_env, explicit):
        merged.update({k: v for k, v in source.items() if v is not None})

    return ConnectionParams(**merged)


CONFIG_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "host": {"type": "string", "description": "PostgreSQL host", "default": DEFAULT_HOST},
        "port": {"type": "number", "description": "PostgreSQL port", "default": DEFAULT_PORT},
        "database": {"type": "string", "description": "Database name", "default": DEFAULT_DATABASE},
        "user": {
            "type": "string",
            "description": f"Database user (uses {ENV_DB_USER} env if not set)",
        },
        "password": {
            "type": "string",
            "description": f"Database password (uses {ENV_PASSWORD} env if not set)",
        },
        "ssl": {"type": "boolean", "description": "Enable SSL connection", "default": False},
        "autoContextInjection": {
            "type": "boolean",
            "description": "Automatically inject relevant memories into prompts",
            "default": True,
        },
        "defaultNamespace": {
            "type": "string",
            "description": "Default namespace for memory operations",
            "default": DEFAULT_NAMESPACE,
        },
        "allowedNamespaces": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Namespaces tools may read and write",
            "default": list(DEFAULT_ALLOWED_NAMESPACES),
        },
        "refreshInterval": {
            "type": "number",
            "description": "Seconds between background stats refreshes",
            "default": DEFAULT_REFRESH_INTERVAL,
        },
        "connectTimeout": {
            "type": "number",
            "description": "Seconds to wait for the backend connection (unbounded if not set)",
        },
        "operationTimeout": {
            "type": "number",
            "description": "Seconds to wait for a single memory operation (unbounded if not set)",
        },
    },
    "additionalProperties": False,
}

CONFIG_UI_HINTS: Dict[str, Dict[str, Any]] = {
    "host": {"label": "PostgreSQL Host", "help": "Hostname or IP of the PostgreSQL server"},
    "port": {"label": "Port", "help": f"PostgreSQL port (default: {DEFAULT_PORT})"},
    "database": {"label": "Database", "help": f"Database name (default: {DEFAULT_DATABASE})"},
    "user": {"label": "Username", "help": f"Database user (or set {ENV_DB_USER} env)", "advanced": True},
    "password": {
        "label": "Password",
        "help": f"Database password (or set {ENV_PASSWORD} env)",
        "sensitive": True,
        "advanced": True,
    },
    "ssl": {"label": "Use SSL", "help": "Enable SSL/TLS for database connection", "advanced": True},
    "autoContextInjection": {
        "label": "Auto Context Injection",
        "help": "Automatically inject relevant memories into agent prompts",
    },
    "defaultNamespace": {
        "label": "Default Namespace",
        "help": "Default schema namespace for memory operations",
        "advanced": True,
    },
    "allowedNamespaces": {
        "label": "Allowed Namespaces",
        "help": "Schema namespaces the memory tools may touch",
        "advanced": True,
    },
    "refreshInterval": {"label": "Stats Refresh Interval", "advanced": True},
    "connectTimeout": {"label": "Connect Timeout", "advanced": True},
    "operationTimeout": {"label": "Operation Timeout", "advanced": True},
}
