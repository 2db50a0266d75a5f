"""Base protocols and types shared by the plugin host and its plugins."""

from dataclasses import dataclass, field
from typing import (
    Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Protocol, runtime_checkable,
)


# Executor type for model tools.
#
# Executors take the tool arguments as a dict and return a JSON-serializable
# result. Memory operations are network I/O, so executors are coroutines.
ToolExecutor = Callable[[Dict[str, Any]], Awaitable[Any]]

# Executor type for user commands. Returns human-readable text.
CommandExecutor = Callable[[Dict[str, Any]], Awaitable[str]]

# Gateway methods take no arguments and answer from local state.
GatewayHandler = Callable[[], Awaitable[Dict[str, Any]]]


@dataclass
class ToolSchema:
    """Provider-agnostic tool/function declaration.

    Attributes:
        name: Unique tool name (e.g., 'memory_store').
        description: Human-readable description of what the tool does.
        parameters: JSON Schema object describing the tool's parameters.
        label: Optional short display label.
    """
    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    label: Optional[str] = None


class CommandParameter(NamedTuple):
    """Declaration of a user command parameter.

    Attributes:
        name: Parameter name, used as the key in the parsed args dict.
        description: Brief description shown in help.
        required: Whether the parameter must be supplied.
        capture_rest: If True, collects the remainder of the command line.
    """
    name: str
    description: str = ""
    required: bool = False
    capture_rest: bool = False


class CommandCompletion(NamedTuple):
    """A completion option for command arguments."""
    value: str
    description: str = ""


class UserCommand(NamedTuple):
    """Declaration of a user-facing command.

    User commands are invoked directly by the user (human or agent)
    without going through the model's function calling.

    Attributes:
        name: Command name for invocation and autocompletion.
        description: Brief description shown in autocompletion/help.
        share_with_model: If True, command output is added to conversation
            history so the model can see/use it.
        parameters: Declared parameters, in positional order.
    """
    name: str
    description: str
    share_with_model: bool = False
    parameters: List[CommandParameter] = []


# ==================== Lifecycle hook events ====================

HOOK_SESSION_START = "session_start"
HOOK_SESSION_END = "session_end"
HOOK_BEFORE_AGENT_START = "before_agent_start"
HOOK_AGENT_END = "agent_end"

HOOK_EVENTS = (
    HOOK_SESSION_START,
    HOOK_SESSION_END,
    HOOK_BEFORE_AGENT_START,
    HOOK_AGENT_END,
)


@dataclass
class HookContext:
    """Context passed alongside every hook event."""
    agent_id: Optional[str] = None
    session_id: Optional[str] = None


@dataclass
class SessionStartEvent:
    session_id: str
    resumed_from: Optional[str] = None


@dataclass
class SessionEndEvent:
    session_id: str
    message_count: int = 0
    duration_ms: Optional[int] = None


@dataclass
class AgentStartEvent:
    prompt: str


@dataclass
class AgentEndEvent:
    success: bool
    error: Optional[str] = None


@dataclass
class AgentStartResult:
    """Result a before_agent_start handler may return.

    Attributes:
        prepend_context: Text the host places ahead of the agent prompt.
    """
    prepend_context: Optional[str] = None


HookHandler = Callable[[Any, HookContext], Awaitable[Any]]


# ==================== Host-facing protocols ====================

@runtime_checkable
class PluginLogger(Protocol):
    """Logger surface handed to plugins. A logging.Logger satisfies it."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


@runtime_checkable
class PluginService(Protocol):
    """Background service with a start/stop lifecycle owned by the host."""

    @property
    def id(self) -> str:
        """Unique identifier for this service."""
        ...

    async def start(self, ctx: Optional[Dict[str, Any]] = None) -> None:
        """Start the service. Must not raise on backend failures."""
        ...

    async def stop(self, ctx: Optional[Dict[str, Any]] = None) -> None:
        """Stop the service and release its resources. Idempotent."""
        ...


class PluginApi(Protocol):
    """Registration surface the host exposes to a plugin during register()."""

    plugin_config: Dict[str, Any]
    logger: PluginLogger

    def register_tool(self, schema: ToolSchema, executor: ToolExecutor) -> None: ...

    def register_service(self, service: PluginService) -> None: ...

    def register_gateway_method(self, name: str, handler: GatewayHandler) -> None: ...

    def register_user_command(self, command: UserCommand, executor: CommandExecutor) -> None: ...

    def on(self, event_name: str, handler: HookHandler) -> None: ...


@runtime_checkable
class HostPlugin(Protocol):
    """Interface that all host plugins must implement.

    A plugin declares everything it provides from register(): model tools,
    background services, gateway methods, user commands and hook handlers.
    The host owns the lifecycle of whatever gets registered.
    """

    @property
    def id(self) -> str:
        """Unique identifier for this plugin."""
        ...

    def register(self, api: PluginApi) -> None:
        """Register the plugin's capabilities with the host."""
        ...
