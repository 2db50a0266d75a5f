"""Memory bridge plugin for persistent enterprise agent memory.

This plugin connects the agent runtime to an external PostgreSQL vector
memory backend and exposes it as:
- Memory tools (store, semantic search, read, delete, list, stats)
- A background service owning the single backend connection
- A cached health check and the 'memory-bridge' user command
- Session logging and prompt context injection hooks

The backend package is optional. When it cannot be loaded or reached the
plugin stays registered and every tool answers "Memory bridge not connected".

Usage:
    host = PluginHost()
    host.register(create_plugin(), config={
        "host": "db1",
        "defaultNamespace": "internal",
    })
    await host.start_services()
"""

PLUGIN_KIND = "memory"

from .plugin import MemoryBridgePlugin, create_plugin

__all__ = ["MemoryBridgePlugin", "create_plugin", "PLUGIN_KIND"]
