"""Filter plugin contract shared between the loader and extensions."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from dblookup.engine import QueryEngine
from dblookup.errors import DblookupError
from dblookup.filters import LookupFilter


@runtime_checkable
class FilterPlugin(Protocol):
    """Contract implemented by filter plugins."""

    name: str
    version: str
    min_core: str

    def create(self, options: Mapping[str, Any], *, engine: QueryEngine | None = None) -> LookupFilter: ...


class PluginError(DblookupError):
    """Base error for plugin loader failures."""


class PluginCompatibilityError(PluginError):
    """Raised when a plugin does not satisfy the minimum core version."""


class PluginNotFoundError(PluginError):
    """Raised when no plugin provides a requested filter type."""
