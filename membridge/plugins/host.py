"""Plugin host for discovering plugins and managing what they register."""

import importlib.metadata
import logging
from typing import Any, Dict, List, Optional

from .base import (
    AgentStartEvent,
    AgentStartResult,
    CommandExecutor,
    GatewayHandler,
    HOOK_BEFORE_AGENT_START,
    HOOK_EVENTS,
    HookContext,
    HookHandler,
    HostPlugin,
    PluginLogger,
    PluginService,
    ToolExecutor,
    ToolSchema,
    UserCommand,
)

logger = logging.getLogger(__name__)

# Entry point group external packages use to ship plugins
PLUGIN_ENTRY_POINT_GROUP = "membridge.plugins"


class _BoundPluginApi:
    """Registration surface bound to a single plugin.

    Registrations are forwarded to the host tagged with the owning plugin id.
    The logger is named after the plugin.
    """

    def __init__(self, host: "PluginHost", plugin_id: str, config: Dict[str, Any]):
        self._host = host
        self._plugin_id = plugin_id
        self.plugin_config = config
        self.logger: PluginLogger = logging.getLogger(f"membridge.plugins.{plugin_id}")

    def register_tool(self, schema: ToolSchema, executor: ToolExecutor) -> None:
        self._host._add_tool(self._plugin_id, schema, executor)

    def register_service(self, service: PluginService) -> None:
        self._host._add_service(self._plugin_id, service)

    def register_gateway_method(self, name: str, handler: GatewayHandler) -> None:
        self._host._add_gateway_method(self._plugin_id, name, handler)

    def register_user_command(self, command: UserCommand, executor: CommandExecutor) -> None:
        self._host._add_user_command(self._plugin_id, command, executor)

    def on(self, event_name: str, handler: HookHandler) -> None:
        self._host._add_hook(self._plugin_id, event_name, handler)


class PluginHost:
    """Registers plugins and runs the tools, services and hooks they declare.

    Usage:
        host = PluginHost()
        host.register(create_plugin(), config={'host': 'db1'})

        await host.start_services()
        result = await host.execute_tool('memory_read', {'key': 'notes'})
        health = await host.call_gateway('memory-bridge/health')
        await host.stop_services()
    """

    def __init__(self):
        self._plugins: Dict[str, HostPlugin] = {}
        self._configs: Dict[str, Dict[str, Any]] = {}
        self._tools: Dict[str, ToolSchema] = {}
        self._executors: Dict[str, ToolExecutor] = {}
        self._tool_owners: Dict[str, str] = {}
        self._services: List[PluginService] = []
        self._gateway_methods: Dict[str, GatewayHandler] = {}
        self._user_commands: Dict[str, UserCommand] = {}
        self._command_executors: Dict[str, CommandExecutor] = {}
        self._hooks: Dict[str, List[HookHandler]] = {name: [] for name in HOOK_EVENTS}
        self._started: List[PluginService] = []

    # ==================== Discovery and registration ====================

    def discover(self) -> List[HostPlugin]:
        """Load plugins advertised by installed packages.

        External packages register plugins through the entry point group:
            [project.entry-points."membridge.plugins"]
            my_plugin = "my_package.plugin:create_plugin"

        Returns:
            Plugin instances that were loaded. They are not registered yet.
        """
        discovered: List[HostPlugin] = []
        for ep in importlib.metadata.entry_points(group=PLUGIN_ENTRY_POINT_GROUP):
            try:
                create_plugin = ep.load()
                plugin = create_plugin()
            except Exception as exc:
                logger.warning("Error loading plugin entry point '%s': %s", ep.name, exc)
                continue
            if not isinstance(plugin, HostPlugin):
                logger.warning("Entry point '%s': plugin does not implement HostPlugin", ep.name)
                continue
            discovered.append(plugin)
        return discovered

    def register(self, plugin: HostPlugin, config: Optional[Dict[str, Any]] = None) -> None:
        """Register a plugin and record everything it declares.

        Raises:
            ValueError: If a plugin with the same id is already registered.
        """
        if plugin.id in self._plugins:
            raise ValueError(f"Plugin '{plugin.id}' already registered")
        config = config or {}
        self._plugins[plugin.id] = plugin
        self._configs[plugin.id] = config
        plugin.register(_BoundPluginApi(self, plugin.id, config))

    def list_plugins(self) -> List[str]:
        return list(self._plugins.keys())

    def get_plugin(self, plugin_id: str) -> Optional[HostPlugin]:
        return self._plugins.get(plugin_id)

    def _add_tool(self, plugin_id: str, schema: ToolSchema, executor: ToolExecutor) -> None:
        if schema.name in self._tools:
            raise ValueError(
                f"Tool '{schema.name}' already registered by '{self._tool_owners[schema.name]}'"
            )
        self._tools[schema.name] = schema
        self._executors[schema.name] = executor
        self._tool_owners[schema.name] = plugin_id

    def _add_service(self, plugin_id: str, service: PluginService) -> None:
        logger.debug("Plugin '%s' registered service '%s'", plugin_id, service.id)
        self._services.append(service)

    def _add_gateway_method(self, plugin_id: str, name: str, handler: GatewayHandler) -> None:
        if name in self._gateway_methods:
            raise ValueError(f"Gateway method '{name}' already registered")
        self._gateway_methods[name] = handler

    def _add_user_command(self, plugin_id: str, command: UserCommand,
                          executor: CommandExecutor) -> None:
        self._user_commands[command.name] = command
        self._command_executors[command.name] = executor

    def _add_hook(self, plugin_id: str, event_name: str, handler: HookHandler) -> None:
        if event_name not in self._hooks:
            raise ValueError(f"Unknown hook event '{event_name}'. Known: {list(HOOK_EVENTS)}")
        self._hooks[event_name].append(handler)

    # ==================== Services ====================

    async def start_services(self) -> None:
        """Start every registered service in registration order."""
        for service in self._services:
            if service in self._started:
                continue
            try:
                await service.start()
            except Exception:
                logger.exception("Service '%s' failed to start", service.id)
                continue
            self._started.append(service)

    async def stop_services(self) -> None:
        """Stop started services in reverse order."""
        while self._started:
            service = self._started.pop()
            try:
                await service.stop()
            except Exception:
                logger.exception("Service '%s' failed to stop", service.id)

    # ==================== Tools ====================

    def get_tool_schemas(self) -> List[ToolSchema]:
        return list(self._tools.values())

    def get_executors(self) -> Dict[str, ToolExecutor]:
        return dict(self._executors)

    async def execute_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> Any:
        """Execute a registered tool.

        Raises:
            KeyError: If no tool with that name is registered.
        """
        if name not in self._executors:
            raise KeyError(f"Tool '{name}' not registered")
        return await self._executors[name](args or {})

    # ==================== Gateway and user commands ====================

    def list_gateway_methods(self) -> List[str]:
        return list(self._gateway_methods.keys())

    async def call_gateway(self, name: str) -> Dict[str, Any]:
        if name not in self._gateway_methods:
            raise KeyError(f"Gateway method '{name}' not registered")
        return await self._gateway_methods[name]()

    def get_user_commands(self) -> List[UserCommand]:
        return list(self._user_commands.values())

    async def execute_user_command(self, command: str, args: Optional[Dict[str, Any]] = None) -> str:
        if command not in self._command_executors:
            return f"Unknown command: {command}"
        return await self._command_executors[command](args or {})

    # ==================== Hooks ====================

    async def emit(self, event_name: str, event: Any,
                   ctx: Optional[HookContext] = None) -> List[Any]:
        """Run every handler subscribed to an event.

        Handler errors are logged and skipped so one plugin cannot break
        another's hook.

        Returns:
            The non-None values returned by handlers, in registration order.
        """
        if event_name not in self._hooks:
            raise ValueError(f"Unknown hook event '{event_name}'")
        ctx = ctx or HookContext()
        results = []
        for handler in self._hooks[event_name]:
            try:
                result = await handler(event, ctx)
            except Exception as exc:
                logger.warning("Error in '%s' hook handler: %s", event_name, exc)
                continue
            if result is not None:
                results.append(result)
        return results

    async def prepare_prompt(self, prompt: str, ctx: Optional[HookContext] = None) -> str:
        """Run before_agent_start handlers and prepend any context they return."""
        results = await self.emit(HOOK_BEFORE_AGENT_START, AgentStartEvent(prompt=prompt), ctx)
        prefix = "".join(
            r.prepend_context for r in results
            if isinstance(r, AgentStartResult) and r.prepend_context
        )
        return prefix + prompt
