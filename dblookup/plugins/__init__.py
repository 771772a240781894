"""Filter plugin loader exports."""

from .builtin import BUILTIN_PLUGINS, MysqlLookupPlugin, SqlLookupPlugin
from .loader import ENTRY_POINT_GROUP, DiscoveredPlugin, FilterLoader
from .types import FilterPlugin, PluginCompatibilityError, PluginError, PluginNotFoundError

__all__ = [
    "BUILTIN_PLUGINS",
    "DiscoveredPlugin",
    "ENTRY_POINT_GROUP",
    "FilterLoader",
    "FilterPlugin",
    "MysqlLookupPlugin",
    "PluginCompatibilityError",
    "PluginError",
    "PluginNotFoundError",
    "SqlLookupPlugin",
]
