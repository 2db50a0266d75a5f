"""
membridge - persistent memory bridge for agent runtimes

Public API for embedding the memory bridge plugin in a host.
"""

# Plugin host and contracts
from .plugins.host import PluginHost
from .plugins.base import (
    HostPlugin,
    PluginApi,
    ToolSchema,
    UserCommand,
    CommandParameter,
)

# Memory bridge plugin
from .plugins.memory_bridge import MemoryBridgePlugin, create_plugin
from .plugins.memory_bridge.backend import ConnectionParams, MemoryBackend
from .plugins.memory_bridge.config_loader import (
    MemoryBridgeConfig,
    ConfigValidationError,
    load_config,
    validate_config,
)
from .plugins.memory_bridge.dispatcher import Failure, FailureKind, Success
from .plugins.memory_bridge.models import BridgeStatus, ConnectionState, StatsSnapshot

__version__ = "1.0.0"

# Public API
__all__ = [
    # Host
    "PluginHost",
    "HostPlugin",
    "PluginApi",
    "ToolSchema",
    "UserCommand",
    "CommandParameter",

    # Plugin
    "MemoryBridgePlugin",
    "create_plugin",

    # Backend contract
    "ConnectionParams",
    "MemoryBackend",

    # Configuration
    "MemoryBridgeConfig",
    "ConfigValidationError",
    "load_config",
    "validate_config",

    # Results and status
    "Success",
    "Failure",
    "FailureKind",
    "BridgeStatus",
    "ConnectionState",
    "StatsSnapshot",
]
