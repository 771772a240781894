"""Filter plugins shipped with dblookup."""

from __future__ import annotations

from typing import Any, Mapping

from dblookup import __version__
from dblookup.engine import QueryEngine
from dblookup.filters import LookupFilter, MysqlLookupFilter, SqlLookupFilter


class _FilterClassPlugin:
    filter_class: type[LookupFilter]
    version = __version__
    min_core = "0.1.0"

    @property
    def name(self) -> str:
        return self.filter_class.config_name

    def create(self, options: Mapping[str, Any], *, engine: QueryEngine | None = None) -> LookupFilter:
        return self.filter_class(options, engine=engine)


class MysqlLookupPlugin(_FilterClassPlugin):
    filter_class = MysqlLookupFilter


class SqlLookupPlugin(_FilterClassPlugin):
    filter_class = SqlLookupFilter


BUILTIN_PLUGINS = (MysqlLookupPlugin, SqlLookupPlugin)
