"""SQL lookup filters that enrich event streams with database result sets."""

from __future__ import annotations

__version__ = "0.3.0"

from .events import Event
from .filters import LookupFilter, MysqlLookupFilter, SqlLookupFilter
from .models import ConnectionDescriptor, FilterState, QuerySpec

__all__ = [
    "ConnectionDescriptor",
    "Event",
    "FilterState",
    "LookupFilter",
    "MysqlLookupFilter",
    "QuerySpec",
    "SqlLookupFilter",
    "__version__",
]
