"""Filter plugin discovery through entry points."""

from __future__ import annotations

import importlib.metadata as metadata
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from dblookup import __version__ as CORE_VERSION
from dblookup.engine import QueryEngine
from dblookup.filters import LookupFilter

from .builtin import BUILTIN_PLUGINS
from .types import FilterPlugin, PluginCompatibilityError, PluginError, PluginNotFoundError

LOG = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "dblookup.filters"


def _parse_version(value: str) -> tuple[int, int, int]:
    """Parse a dotted string into a comparable tuple."""

    parts = value.split(".")
    ints: list[int] = []
    for chunk in parts[:3]:
        try:
            ints.append(int(chunk))
        except ValueError:
            ints.append(0)
    while len(ints) < 3:
        ints.append(0)
    return ints[0], ints[1], ints[2]


@dataclass(slots=True, frozen=True)
class DiscoveredPlugin:
    """Metadata captured from entry point discovery."""

    name: str
    version: str
    min_core: str
    source: str
    plugin: FilterPlugin


class FilterLoader:
    """Resolves filter type names to plugins from entry points and builtins."""

    def __init__(
        self,
        *,
        core_version: str = CORE_VERSION,
        entry_point_group: str = ENTRY_POINT_GROUP,
        builtin_plugins: Iterable[FilterPlugin | type[FilterPlugin]] | None = None,
    ) -> None:
        self._core_version = core_version
        self._entry_point_group = entry_point_group
        self._builtin_plugins = list(BUILTIN_PLUGINS if builtin_plugins is None else builtin_plugins)
        self._discovered: dict[str, DiscoveredPlugin] | None = None

    def discover(self) -> list[DiscoveredPlugin]:
        """Enumerate plugins; entry points win over builtins of the same name."""

        discovered: dict[str, DiscoveredPlugin] = {}
        group = metadata.entry_points().select(group=self._entry_point_group)
        for entry_point in sorted(group, key=lambda ep: ep.name):
            try:
                plugin = self._instantiate(entry_point.load())
            except Exception as exc:
                LOG.exception("Filter plugin failed to load", extra={"plugin": entry_point.name})
                raise PluginError(f"Failed to load filter plugin '{entry_point.name}'") from exc
            discovered[plugin.name] = self._describe(plugin, source=entry_point.value)
        for builtin in self._builtin_plugins:
            plugin = self._instantiate(builtin)
            discovered.setdefault(plugin.name, self._describe(plugin, source="builtin"))
        self._discovered = discovered
        return list(discovered.values())

    def resolve(self, name: str) -> FilterPlugin:
        if self._discovered is None:
            self.discover()
        assert self._discovered is not None
        found = self._discovered.get(name)
        if found is None:
            known = ", ".join(sorted(self._discovered)) or "none"
            raise PluginNotFoundError(f"Unknown filter type '{name}' (available: {known})")
        self._ensure_compatible(found)
        return found.plugin

    def create(
        self,
        name: str,
        options: Mapping[str, Any],
        *,
        engine: QueryEngine | None = None,
    ) -> LookupFilter:
        """Build a filter instance for a ``[[filters]]`` section."""

        return self.resolve(name).create(options, engine=engine)

    def _ensure_compatible(self, plugin: DiscoveredPlugin) -> None:
        core = _parse_version(self._core_version)
        minimum = _parse_version(plugin.min_core)
        if core < minimum:
            LOG.warning(
                "Filter plugin requires a newer core",
                extra={"plugin": plugin.name, "min_core": plugin.min_core},
            )
            raise PluginCompatibilityError(
                f"Plugin '{plugin.name}' requires core>={plugin.min_core}, found {self._core_version}"
            )

    @staticmethod
    def _instantiate(obj: Any) -> FilterPlugin:
        if inspect.isclass(obj):
            return obj()
        return obj

    @staticmethod
    def _describe(plugin: FilterPlugin, *, source: str) -> DiscoveredPlugin:
        return DiscoveredPlugin(
            name=plugin.name,
            version=plugin.version,
            min_core=getattr(plugin, "min_core", "0.0.0"),
            source=source,
            plugin=plugin,
        )
