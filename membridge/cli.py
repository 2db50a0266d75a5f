"""Console script for checking the memory bridge from a shell.

status and health start the memory bridge service once, report, and stop
it again. config prints the plugin configuration reference:

    membridge status [--env-file .env] [--config path.json]
    membridge health
    membridge config
"""

import asyncio
import json
import logging
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .plugins.host import PluginHost
from .plugins.memory_bridge import create_plugin
from .plugins.memory_bridge.config_loader import (
    CONFIG_JSON_SCHEMA,
    CONFIG_UI_HINTS,
    ConfigValidationError,
    read_config_file,
)
from .plugins.memory_bridge.models import BridgeStatus

PLUGIN_ID = "memory-bridge"


def render_status(console: Console, status: BridgeStatus) -> None:
    if status.connected:
        console.print("[bold green]Memory bridge connected[/bold green]")
    else:
        console.print(f"[bold red]Memory bridge {status.state.value}[/bold red]")

    if status.stats:
        table = Table(title="Entries by namespace", show_header=True, header_style="bold")
        table.add_column("Namespace")
        table.add_column("Entries", justify="right")
        for namespace, count in sorted(status.stats.by_namespace.items()):
            table.add_row(namespace, str(count))
        table.add_row("[bold]total[/bold]", f"[bold]{status.stats.total_entries}[/bold]")
        console.print(table)

    if status.error:
        console.print(f"[red]Error:[/red] {status.error}")


def render_config_reference(console: Console) -> None:
    """Print every plugin config field with its type, default and help text."""
    table = Table(title="Memory bridge configuration", show_header=True, header_style="bold")
    table.add_column("Key")
    table.add_column("Label")
    table.add_column("Type")
    table.add_column("Default")
    table.add_column("Help")
    for key, prop in CONFIG_JSON_SCHEMA["properties"].items():
        hints = CONFIG_UI_HINTS.get(key, {})
        default = prop.get("default")
        if hints.get("sensitive"):
            default = None
        label = hints.get("label", key)
        if hints.get("advanced"):
            label += " (advanced)"
        table.add_row(
            key,
            label,
            prop["type"],
            "" if default is None else json.dumps(default),
            hints.get("help") or prop.get("description", ""),
        )
    console.print(table)


async def run(command: str, config: dict, console: Console) -> int:
    host = PluginHost()
    host.register(create_plugin(), config=config)
    await host.start_services()
    try:
        if command == "health":
            health = await host.call_gateway("memory-bridge/health")
            console.print_json(json.dumps(health))
            return 0 if health["status"] == "healthy" else 1
        plugin = host.get_plugin(PLUGIN_ID)
        status = plugin.get_status()
        render_status(console, status)
        return 0 if status.connected else 1
    finally:
        await host.stop_services()


def main():
    import argparse

    parser = argparse.ArgumentParser(
        description="Check the memory bridge backend connection"
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=["status", "health", "config"],
        default="status",
        help="What to report (default: status)"
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env)"
    )
    parser.add_argument(
        "--config",
        help="Path to plugin config JSON (default: .membridge/memory_bridge.json)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log connection lifecycle details"
    )
    args = parser.parse_args()

    load_dotenv(args.env_file)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    console = Console()
    if args.command == "config":
        render_config_reference(console)
        return

    try:
        config = read_config_file(args.config)
    except (ConfigValidationError, FileNotFoundError, json.JSONDecodeError) as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        sys.exit(2)

    sys.exit(asyncio.run(run(args.command, config, console)))


if __name__ == "__main__":
    main()
