"""Lookup filters: thin configuration adapters in front of a query engine."""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Generic, Mapping, TypeVar

from .config import LookupOptions, MysqlLookupConfig, SqlLookupConfig, build_config
from .drivers import MYSQL_DRIVER, sanitize_uri
from .engine import QueryEngine, SqlQueryEngine
from .errors import FilterStateError, SetupError
from .events import Event
from .models import ConnectionDescriptor, FilterState, QuerySpec

LOG = logging.getLogger(__name__)

OptionsT = TypeVar("OptionsT", bound=LookupOptions)


class LookupFilter(Generic[OptionsT]):
    """Validates options once, registers the engine once, then forwards events."""

    config_name: ClassVar[str]
    options_model: ClassVar[type[LookupOptions]]

    def __init__(self, options: OptionsT | Mapping[str, Any], *, engine: QueryEngine | None = None) -> None:
        self.options: OptionsT = build_config(self.options_model, options)  # type: ignore[assignment]
        self._engine: QueryEngine = engine if engine is not None else SqlQueryEngine()
        self._state = FilterState.UNREGISTERED
        self.connection_descriptor = self._build_descriptor()
        self.query_spec = QuerySpec(
            statement=self.options.statement,
            parameters=self.options.parameters,
            target=self.options.target,
            tag_on_failure=tuple(self.options.tag_on_failure),
        )

    @property
    def state(self) -> FilterState:
        return self._state

    @property
    def engine(self) -> QueryEngine:
        return self._engine

    def register(self) -> None:
        """Hand the descriptor and query to the engine; failure is terminal."""

        if self._state is not FilterState.UNREGISTERED:
            raise FilterStateError(f"{self.config_name} filter is already {self._state.value}")
        try:
            self._engine.setup(self.connection_descriptor, self.query_spec)
        except SetupError:
            self._state = FilterState.FAILED
            LOG.error(
                "Filter registration failed",
                extra={"filter": self.config_name, "uri": sanitize_uri(self.connection_descriptor.uri)},
            )
            raise
        self._state = FilterState.READY
        LOG.debug("Filter registered", extra={"filter": self.config_name})

    def filter(self, event: Event) -> Event:
        if self._state is not FilterState.READY:
            raise FilterStateError(f"{self.config_name} filter is {self._state.value}, not ready")
        return self._engine.process(event)

    def close(self) -> None:
        close = getattr(self._engine, "close", None)
        if callable(close):
            close()

    def _build_descriptor(self) -> ConnectionDescriptor:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(uri={sanitize_uri(self.connection_descriptor.uri)!r}, state={self._state.value!r})"


class MysqlLookupFilter(LookupFilter[MysqlLookupConfig]):
    """MySQL lookup configured from host, port and default schema.

    ``host="localhost", default_schema="world"`` is shorthand for the generic
    ``driver_class="com.mysql.jdbc.Driver"`` and
    ``connection_string="mysql://localhost:3306/world"``. An absent password
    connects without a credential.
    """

    config_name = "mysql_lookup"
    options_model = MysqlLookupConfig
    scheme = "mysql"

    def _build_descriptor(self) -> ConnectionDescriptor:
        options = self.options
        return ConnectionDescriptor(
            driver=MYSQL_DRIVER,
            uri=f"{self.scheme}://{options.host}:{options.port}/{options.default_schema}",
            user=options.user,
            password=options.password,
        )


class SqlLookupFilter(LookupFilter[SqlLookupConfig]):
    """Lookup against any registered driver with an explicit connection URI."""

    config_name = "sql_lookup"
    options_model = SqlLookupConfig

    def _build_descriptor(self) -> ConnectionDescriptor:
        options = self.options
        return ConnectionDescriptor(
            driver=options.driver_class,
            uri=options.connection_string,
            user=options.user,
            password=options.password,
        )


__all__ = ["LookupFilter", "MysqlLookupFilter", "SqlLookupFilter"]
