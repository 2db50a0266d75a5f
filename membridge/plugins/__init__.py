# Plugin system
#
# base.py defines the protocols a host plugin is written against and
# host.py provides the PluginHost that registers and drives them.

from .base import (
    HostPlugin,
    PluginApi,
    ToolSchema,
    UserCommand,
    CommandParameter,
)
from .host import PluginHost

__all__ = [
    "HostPlugin",
    "PluginApi",
    "ToolSchema",
    "UserCommand",
    "CommandParameter",
    "PluginHost",
]
