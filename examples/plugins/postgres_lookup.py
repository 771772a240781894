"""Sample third-party plugin: simplified PostgreSQL lookups.

Register it from another distribution with::

    [project.entry-points."dblookup.filters"]
    postgres_lookup = "examples.plugins.postgres_lookup:PostgresLookupPlugin"
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import Field

from dblookup.config import MysqlLookupConfig
from dblookup.drivers import POSTGRESQL_DRIVER
from dblookup.engine import QueryEngine
from dblookup.filters import LookupFilter
from dblookup.models import ConnectionDescriptor


class PostgresLookupConfig(MysqlLookupConfig):
    """Same shorthand as the MySQL filter with PostgreSQL's default port."""

    port: int = Field(default=5432, ge=1, le=65535)


class PostgresLookupFilter(LookupFilter[PostgresLookupConfig]):
    config_name = "postgres_lookup"
    options_model = PostgresLookupConfig

    def _build_descriptor(self) -> ConnectionDescriptor:
        options = self.options
        return ConnectionDescriptor(
            driver=POSTGRESQL_DRIVER,
            uri=f"postgresql://{options.host}:{options.port}/{options.default_schema}",
            user=options.user,
            password=options.password,
        )


class PostgresLookupPlugin:
    """Descriptor used to exercise entry point discovery."""

    name = "postgres_lookup"
    version = "0.0.1"
    min_core = "0.2.0"

    def __init__(self) -> None:
        self.created = 0

    def create(self, options: Mapping[str, Any], *, engine: QueryEngine | None = None) -> LookupFilter:
        self.created += 1
        return PostgresLookupFilter(options, engine=engine)
