"""Memory bridge plugin: persistent agent memory in an external vector store."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..base import (
    AgentEndEvent,
    AgentStartEvent,
    AgentStartResult,
    CommandCompletion,
    CommandParameter,
    HOOK_AGENT_END,
    HOOK_BEFORE_AGENT_START,
    HOOK_SESSION_END,
    HOOK_SESSION_START,
    HookContext,
    PluginApi,
    SessionEndEvent,
    SessionStartEvent,
    UserCommand,
)
from .config_loader import MemoryBridgeConfig, validate_config
from .dispatcher import DegradedModeDispatcher, Failure
from .models import BridgeStatus, WriteMetadata
from .resolver import BackendResolver
from .service import MemoryBridgeService
from .tools import MemoryBridgeTools

PLUGIN_ID = "memory-bridge"
HEALTH_METHOD = "memory-bridge/health"
SESSIONS_NAMESPACE = "sessions"

# Prompt prefix used as the search query for context injection
CONTEXT_QUERY_CHARS = 500
CONTEXT_RESULT_LIMIT = 3


def format_status(status: BridgeStatus) -> str:
    """Render a status report for the status command."""
    lines = [f"Connected: {str(status.connected).lower()}"]
    if status.connected and status.stats:
        lines.append(f"Total entries: {status.stats.total_entries}")
        lines.append("By namespace:")
        if status.stats.by_namespace:
            for namespace, count in sorted(status.stats.by_namespace.items()):
                lines.append(f"  {namespace}: {count}")
        else:
            lines.append("  (none)")
    if status.error:
        lines.append(f"Error: {status.error}")
    return "\n".join(lines)


class MemoryBridgePlugin:
    """Plugin connecting the agent runtime to the memory bridge backend.

    register() wires up:
    - Six memory tools (store, search, read, delete, list, stats)
    - A background service that owns the backend connection
    - A gateway health method answered from cached status
    - The 'memory-bridge' user command (status, health, logs)
    - Session and agent lifecycle hooks

    Nothing here requires the backend to be reachable. Without a connection
    every tool returns a structured "not connected" result and the hooks do
    nothing.
    """

    name = "NovusFlow Memory Bridge"
    description = "PostgreSQL vector memory backend for enterprise persistence"
    version = "1.0.0"
    kind = "memory"

    def __init__(self, resolver: Optional[BackendResolver] = None,
                 environ: Optional[Dict[str, str]] = None):
        """
        Args:
            resolver: Backend resolver to use (default: the standard candidates).
            environ: Environment mapping for connection settings (default: os.environ).
        """
        self._resolver = resolver
        self._environ = environ
        self._config: Optional[MemoryBridgeConfig] = None
        self._service: Optional[MemoryBridgeService] = None
        self._dispatcher: Optional[DegradedModeDispatcher] = None
        self._tools: Optional[MemoryBridgeTools] = None
        self._api: Optional[PluginApi] = None

    @property
    def id(self) -> str:
        return PLUGIN_ID

    @property
    def service(self) -> Optional[MemoryBridgeService]:
        return self._service

    @property
    def dispatcher(self) -> Optional[DegradedModeDispatcher]:
        return self._dispatcher

    @property
    def config(self) -> Optional[MemoryBridgeConfig]:
        return self._config

    def register(self, api: PluginApi) -> None:
        self._api = api
        raw_config = api.plugin_config or {}
        is_valid, errors = validate_config(raw_config)
        if not is_valid:
            api.logger.warning("Invalid memory bridge config, using defaults: %s", "; ".join(errors))
            raw_config = {}
        self._config = MemoryBridgeConfig.from_dict(raw_config)

        self._service = MemoryBridgeService(
            self._config,
            logger=api.logger,
            resolver=self._resolver,
            environ=self._environ,
        )
        self._dispatcher = DegradedModeDispatcher(
            handle_provider=self._service.get_backend,
            allowed_namespaces=self._config.allowed_namespaces,
            default_namespace=self._config.resolve_default_namespace(self._environ),
            operation_timeout=self._config.operation_timeout,
        )
        self._tools = MemoryBridgeTools(self._dispatcher)

        for schema, executor in self._tools.get_tools():
            api.register_tool(schema, executor)

        api.register_service(self._service)
        api.register_gateway_method(HEALTH_METHOD, self.health)
        api.register_user_command(self.get_user_command(), self.execute_user_command)

        api.on(HOOK_SESSION_START, self._on_session_start)
        api.on(HOOK_SESSION_END, self._on_session_end)
        api.on(HOOK_BEFORE_AGENT_START, self._on_before_agent_start)
        api.on(HOOK_AGENT_END, self._on_agent_end)

        api.logger.info("NovusFlow Memory Bridge plugin registered")

    # ===== Health and status =====

    def get_status(self) -> BridgeStatus:
        return self._service.status()

    async def health(self) -> Dict[str, Any]:
        """Gateway health check. Answers from the status cache only."""
        status = self._service.status()
        return {
            "status": "healthy" if status.connected else "disconnected",
            "plugin": PLUGIN_ID,
            "stats": status.stats.to_dict() if status.stats else None,
            "error": status.error,
        }

    # ===== User command =====

    def get_user_command(self) -> UserCommand:
        return UserCommand(
            name='memory-bridge',
            description='Memory bridge commands (subcommands: status, health, logs, help)',
            share_with_model=False,
            parameters=[
                CommandParameter(
                    name='subcommand',
                    description='Subcommand: status, health, logs, help',
                    required=False,
                ),
                CommandParameter(
                    name='rest',
                    description='Arguments for the subcommand',
                    required=False,
                    capture_rest=True,
                ),
            ],
        )

    def get_command_completions(self, command: str, args: List[str]) -> List[CommandCompletion]:
        if command != 'memory-bridge':
            return []
        subcommands = [
            CommandCompletion('status', 'Show memory bridge connection status'),
            CommandCompletion('health', 'Show the health check payload'),
            CommandCompletion('logs', 'Show interaction logs'),
            CommandCompletion('help', 'Show help for memory bridge commands'),
        ]
        if not args:
            return subcommands
        if len(args) == 1:
            partial = args[0].lower()
            return [c for c in subcommands if c.value.startswith(partial)]
        if args[0].lower() == 'logs' and len(args) == 2:
            return [CommandCompletion('clear', 'Clear all logs')] if 'clear'.startswith(args[1]) else []
        return []

    async def execute_user_command(self, args: Dict[str, Any]) -> str:
        subcommand = (args.get('subcommand') or 'status').lower()
        rest = (args.get('rest') or '').strip()

        if subcommand == 'status':
            return format_status(self._service.status())
        elif subcommand == 'health':
            return json.dumps(await self.health(), indent=2)
        elif subcommand == 'logs':
            return self._cmd_logs(rest)
        elif subcommand == 'help':
            return self._cmd_help()
        else:
            return f"Unknown subcommand: {subcommand}\n\n{self._cmd_help()}"

    def _cmd_help(self) -> str:
        return """Memory Bridge Commands:

  memory-bridge status        - Show connection status and entry counts
  memory-bridge health        - Show the health check payload
  memory-bridge logs [clear]  - Show (or clear) connection lifecycle logs"""

    def _cmd_logs(self, rest: str) -> str:
        if rest.lower() == 'clear':
            self._service.clear_log()
            return "Memory bridge logs cleared."
        entries = self._service.get_log_entries()
        if not entries:
            return "No memory bridge log entries."
        return '\n'.join(entry.format() for entry in entries)

    # ===== Lifecycle hooks =====

    async def _write_session_record(self, key: str, record: Dict[str, Any]) -> None:
        result = await self._dispatcher.run(
            "write",
            lambda handle: handle.write(
                key, json.dumps(record), WriteMetadata(namespace=SESSIONS_NAMESPACE)
            ),
        )
        if isinstance(result, Failure):
            self._api.logger.warning("Failed to log %s: %s", key, result.error)

    async def _on_session_start(self, event: SessionStartEvent, ctx: HookContext) -> None:
        if self._service.get_backend() is None:
            return
        await self._write_session_record(f"session:{event.session_id}:start", {
            "timestamp": _now_iso(),
            "agent_id": ctx.agent_id,
            "resumed_from": event.resumed_from,
        })

    async def _on_session_end(self, event: SessionEndEvent, ctx: HookContext) -> None:
        if self._service.get_backend() is None:
            return
        await self._write_session_record(f"session:{event.session_id}:end", {
            "timestamp": _now_iso(),
            "agent_id": ctx.agent_id,
            "message_count": event.message_count,
            "duration_ms": event.duration_ms,
        })

    async def _on_before_agent_start(self, event: AgentStartEvent,
                                     ctx: HookContext) -> Optional[AgentStartResult]:
        if not self._config.auto_context_injection:
            return None
        if self._service.get_backend() is None:
            return None

        result = await self._dispatcher.search(
            event.prompt[:CONTEXT_QUERY_CHARS], limit=CONTEXT_RESULT_LIMIT
        )
        if isinstance(result, Failure):
            self._api.logger.warning("Failed to inject memory context: %s", result.error)
            return None
        if not result.value:
            return None

        context_block = "\n\n".join(f"[Memory: {r.key}] {r.content}" for r in result.value)
        return AgentStartResult(
            prepend_context=f"## Relevant Context from Memory\n\n{context_block}\n\n---\n\n"
        )

    async def _on_agent_end(self, event: AgentEndEvent, ctx: HookContext) -> None:
        if event.success:
            self._api.logger.debug("Agent %s completed successfully", ctx.agent_id or "(unknown)")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_plugin() -> MemoryBridgePlugin:
    """Factory function to create the memory bridge plugin instance."""
    return MemoryBridgePlugin()
