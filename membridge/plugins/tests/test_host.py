"""Tests for the PluginHost."""

import importlib.metadata
import logging

import pytest

from ..base import (
    AgentStartResult,
    HOOK_AGENT_END,
    HOOK_BEFORE_AGENT_START,
    HOOK_SESSION_START,
    HookContext,
    SessionStartEvent,
    ToolSchema,
    UserCommand,
)
from ..host import PLUGIN_ENTRY_POINT_GROUP, PluginHost


class RecordingService:
    def __init__(self, service_id, events, fail_start=False, fail_stop=False):
        self._id = service_id
        self.events = events
        self.fail_start = fail_start
        self.fail_stop = fail_stop

    @property
    def id(self):
        return self._id

    async def start(self, ctx=None):
        if self.fail_start:
            raise RuntimeError("cannot start")
        self.events.append(f"start:{self._id}")

    async def stop(self, ctx=None):
        self.events.append(f"stop:{self._id}")
        if self.fail_stop:
            raise RuntimeError("cannot stop")


class SamplePlugin:
    """Plugin that registers whatever the test hands it."""

    def __init__(self, plugin_id="sample", setup=None):
        self._id = plugin_id
        self._setup = setup
        self.api = None

    @property
    def id(self):
        return self._id

    def register(self, api):
        self.api = api
        if self._setup:
            self._setup(api)


async def echo(args):
    return {"echo": args}


class TestRegistration:
    """Tests for registering plugins."""

    def test_register_passes_config(self):
        plugin = SamplePlugin()
        host = PluginHost()

        host.register(plugin, config={"host": "db1"})

        assert plugin.api.plugin_config == {"host": "db1"}
        assert host.list_plugins() == ["sample"]
        assert host.get_plugin("sample") is plugin
        assert host.get_plugin("other") is None

    def test_plugin_logger_is_named_after_plugin(self):
        plugin = SamplePlugin("memory-bridge")
        PluginHost().register(plugin)
        assert plugin.api.logger.name == "membridge.plugins.memory-bridge"

    def test_duplicate_plugin(self):
        host = PluginHost()
        host.register(SamplePlugin())
        with pytest.raises(ValueError, match="already registered"):
            host.register(SamplePlugin())

    def test_duplicate_tool(self):
        schema = ToolSchema(name="echo", description="Echo")
        host = PluginHost()
        host.register(SamplePlugin("a", lambda api: api.register_tool(schema, echo)))

        with pytest.raises(ValueError, match="already registered by 'a'"):
            host.register(SamplePlugin("b", lambda api: api.register_tool(schema, echo)))

    def test_unknown_hook_event(self):
        async def handler(event, ctx):
            return None

        with pytest.raises(ValueError, match="Unknown hook event"):
            PluginHost().register(SamplePlugin(setup=lambda api: api.on("on_reboot", handler)))


class TestDiscovery:
    """Tests for entry point discovery."""

    def test_discover_loads_entry_points(self, monkeypatch):
        class FakeEntryPoint:
            def __init__(self, name, target):
                self.name = name
                self._target = target

            def load(self):
                if isinstance(self._target, Exception):
                    raise self._target
                return self._target

        entry_points = [
            FakeEntryPoint("good", lambda: SamplePlugin("good")),
            FakeEntryPoint("broken", ImportError("missing dependency")),
            FakeEntryPoint("not-a-plugin", lambda: object()),
        ]
        groups = []

        def fake_entry_points(group):
            groups.append(group)
            return entry_points

        monkeypatch.setattr(importlib.metadata, "entry_points", fake_entry_points)

        plugins = PluginHost().discover()

        assert groups == [PLUGIN_ENTRY_POINT_GROUP]
        assert [p.id for p in plugins] == ["good"]


class TestServices:
    """Tests for service lifecycle."""

    @pytest.mark.asyncio
    async def test_start_and_stop_order(self):
        events = []

        def setup(api):
            api.register_service(RecordingService("one", events))
            api.register_service(RecordingService("two", events))

        host = PluginHost()
        host.register(SamplePlugin(setup=setup))

        await host.start_services()
        await host.stop_services()

        assert events == ["start:one", "start:two", "stop:two", "stop:one"]

    @pytest.mark.asyncio
    async def test_failing_service_does_not_block_others(self, caplog):
        events = []

        def setup(api):
            api.register_service(RecordingService("broken", events, fail_start=True))
            api.register_service(RecordingService("fine", events, fail_stop=True))

        host = PluginHost()
        host.register(SamplePlugin(setup=setup))

        with caplog.at_level(logging.ERROR, logger="membridge.plugins.host"):
            await host.start_services()
            await host.stop_services()

        assert events == ["start:fine", "stop:fine"]
        assert "Service 'broken' failed to start" in caplog.text
        assert "Service 'fine' failed to stop" in caplog.text

    @pytest.mark.asyncio
    async def test_start_twice_starts_once(self):
        events = []
        host = PluginHost()
        host.register(SamplePlugin(setup=lambda api: api.register_service(RecordingService("one", events))))

        await host.start_services()
        await host.start_services()
        await host.stop_services()

        assert events == ["start:one", "stop:one"]


class TestDispatch:
    """Tests for tools, gateway methods and user commands."""

    @pytest.mark.asyncio
    async def test_execute_tool(self):
        schema = ToolSchema(name="echo", description="Echo")
        host = PluginHost()
        host.register(SamplePlugin(setup=lambda api: api.register_tool(schema, echo)))

        assert await host.execute_tool("echo", {"a": 1}) == {"echo": {"a": 1}}
        assert await host.execute_tool("echo") == {"echo": {}}
        assert host.get_tool_schemas() == [schema]
        assert set(host.get_executors()) == {"echo"}

    @pytest.mark.asyncio
    async def test_execute_unknown_tool(self):
        with pytest.raises(KeyError):
            await PluginHost().execute_tool("missing", {})

    @pytest.mark.asyncio
    async def test_gateway(self):
        async def health():
            return {"status": "healthy"}

        host = PluginHost()
        host.register(SamplePlugin(setup=lambda api: api.register_gateway_method("sample/health", health)))

        assert await host.call_gateway("sample/health") == {"status": "healthy"}
        with pytest.raises(KeyError):
            await host.call_gateway("sample/other")

    @pytest.mark.asyncio
    async def test_user_command(self):
        async def run(args):
            return f"ran {args.get('subcommand')}"

        command = UserCommand(name="sample", description="Sample command")
        host = PluginHost()
        host.register(SamplePlugin(setup=lambda api: api.register_user_command(command, run)))

        assert await host.execute_user_command("sample", {"subcommand": "status"}) == "ran status"
        assert await host.execute_user_command("nope") == "Unknown command: nope"


class TestHooks:
    """Tests for hook emission."""

    @pytest.mark.asyncio
    async def test_emit_collects_results_and_skips_errors(self):
        seen = []

        async def failing(event, ctx):
            raise RuntimeError("handler broke")

        async def recording(event, ctx):
            seen.append((event.session_id, ctx.agent_id))
            return "ok"

        async def silent(event, ctx):
            return None

        def setup(api):
            api.on(HOOK_SESSION_START, failing)
            api.on(HOOK_SESSION_START, recording)
            api.on(HOOK_SESSION_START, silent)

        host = PluginHost()
        host.register(SamplePlugin(setup=setup))

        results = await host.emit(
            HOOK_SESSION_START, SessionStartEvent(session_id="s1"), HookContext(agent_id="a1")
        )

        assert results == ["ok"]
        assert seen == [("s1", "a1")]

    @pytest.mark.asyncio
    async def test_emit_default_context(self):
        contexts = []

        async def handler(event, ctx):
            contexts.append(ctx)

        host = PluginHost()
        host.register(SamplePlugin(setup=lambda api: api.on(HOOK_AGENT_END, handler)))

        await host.emit(HOOK_AGENT_END, object())

        assert contexts == [HookContext()]

    @pytest.mark.asyncio
    async def test_emit_unknown_event(self):
        with pytest.raises(ValueError):
            await PluginHost().emit("on_reboot", object())

    @pytest.mark.asyncio
    async def test_prepare_prompt_prepends_in_order(self):
        async def first(event, ctx):
            return AgentStartResult(prepend_context="A\n")

        async def empty(event, ctx):
            return AgentStartResult()

        async def second(event, ctx):
            return AgentStartResult(prepend_context="B\n")

        def setup(api):
            api.on(HOOK_BEFORE_AGENT_START, first)
            api.on(HOOK_BEFORE_AGENT_START, empty)
            api.on(HOOK_BEFORE_AGENT_START, second)

        host = PluginHost()
        host.register(SamplePlugin(setup=setup))

        assert await host.prepare_prompt("prompt") == "A\nB\nprompt"
