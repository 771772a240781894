"""Query engine: executes a bound statement per event and stores the rows."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from .drivers import Connection, Driver, DriverRegistry, default_registry, parse_connection_uri, sanitize_uri
from .errors import (
    DriverNotFoundError,
    EngineNotReadyError,
    MalformedURIError,
    ParameterBindingError,
    SetupError,
)
from .events import Event, FieldReferenceError, parse_reference
from .models import ConnectionDescriptor, QuerySpec
from .statements import ParsedStatement, parse_statement

LOG = logging.getLogger(__name__)


@runtime_checkable
class QueryEngine(Protocol):
    """Contract between lookup filters and the component running SQL."""

    def setup(self, descriptor: ConnectionDescriptor, query: QuerySpec) -> None:
        """Load the driver and validate the connection; raise ``SetupError`` on failure."""

    def process(self, event: Event) -> Event:
        """Run the lookup for ``event``; tag it instead of raising on failure."""


class SqlQueryEngine:
    """Runs one statement per event over a single lazily re-opened connection."""

    def __init__(self, registry: DriverRegistry | None = None) -> None:
        self._registry = registry or default_registry()
        self._driver: Driver | None = None
        self._descriptor: ConnectionDescriptor | None = None
        self._query: QuerySpec | None = None
        self._statement: ParsedStatement | None = None
        self._sql: str | None = None
        self._connection: Connection | None = None

    @property
    def ready(self) -> bool:
        return self._driver is not None and self._query is not None

    def setup(self, descriptor: ConnectionDescriptor, query: QuerySpec) -> None:
        uri = sanitize_uri(descriptor.uri)
        try:
            driver = self._registry.create(descriptor.driver)
        except DriverNotFoundError as exc:
            LOG.error("Driver not loadable", extra={"driver": descriptor.driver})
            raise SetupError(str(exc), cause="driver") from exc
        try:
            parse_connection_uri(descriptor.uri, driver.scheme)
        except MalformedURIError as exc:
            LOG.error("Malformed connection URI", extra={"uri": uri})
            _shutdown(driver)
            raise SetupError(str(exc), cause="uri") from exc

        try:
            for reference in (query.target, *query.parameters.values()):
                parse_reference(reference)
        except FieldReferenceError as exc:
            LOG.error("Invalid field reference in query", extra={"target": query.target})
            _shutdown(driver)
            raise SetupError(str(exc), cause="query") from exc

        statement = parse_statement(query.statement)
        unbound = sorted(set(statement.names) - set(query.parameters))
        if unbound:
            LOG.warning(
                "Statement placeholders have no parameter mapping",
                extra={"placeholders": unbound},
            )

        connection: Connection | None = None
        try:
            connection = driver.connect(descriptor)
            connection.ping()
        except Exception as exc:
            if connection is not None:
                _close_quietly(connection)
            LOG.error("Database connection failed", extra={"uri": uri, "driver": descriptor.driver})
            _shutdown(driver)
            raise SetupError(
                f"Failed to connect to {uri} as {descriptor.user or 'anonymous'}: {type(exc).__name__}",
                cause="connection",
            ) from exc

        self._driver = driver
        self._descriptor = descriptor
        self._query = query
        self._statement = statement
        self._sql = statement.render(driver.paramstyle)
        self._connection = connection
        LOG.info("Query engine ready", extra={"uri": uri, "target": query.target})

    def process(self, event: Event) -> Event:
        if not self.ready:
            raise EngineNotReadyError("setup() must succeed before events are processed")
        assert self._query is not None and self._statement is not None and self._driver is not None
        try:
            args = self._bind(event)
            rows = self._fetch(args)
            event.set(self._query.target, rows)
        except Exception as exc:
            self._on_failure(event, exc)
        return event

    def close(self) -> None:
        """Release the open connection and the driver's resources."""

        self._drop_connection()
        if self._driver is not None:
            _shutdown(self._driver)
            self._driver = None

    def _bind(self, event: Event) -> Any:
        assert self._query is not None and self._statement is not None and self._driver is not None
        values: dict[str, Any] = {}
        for placeholder, reference in self._query.parameters.items():
            try:
                present = event.includes(reference)
            except FieldReferenceError as exc:
                raise ParameterBindingError(str(exc)) from exc
            if not present:
                raise ParameterBindingError(f"Field {reference!r} for placeholder {placeholder!r} is missing")
            values[placeholder] = event.get(reference)
        return self._statement.arguments(values, self._driver.paramstyle)

    def _fetch(self, args: Any) -> list[dict[str, Any]]:
        assert self._driver is not None and self._descriptor is not None and self._sql is not None
        if self._connection is None:
            LOG.info("Reconnecting to database", extra={"uri": sanitize_uri(self._descriptor.uri)})
            self._connection = self._driver.connect(self._descriptor)
        return self._connection.fetch(self._sql, args)

    def _on_failure(self, event: Event, exc: BaseException) -> None:
        assert self._query is not None
        LOG.warning(
            "Lookup failed, tagging event",
            extra={"error": str(exc), "error_type": type(exc).__name__, "tags": list(self._query.tag_on_failure)},
        )
        if not isinstance(exc, (ParameterBindingError, FieldReferenceError)):
            self._drop_connection()
        event.tag(*self._query.tag_on_failure)

    def _drop_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            _close_quietly(connection)


def _close_quietly(connection: Connection) -> None:
    try:
        connection.close()
    except Exception:  # pragma: no cover - best effort cleanup
        LOG.debug("Ignoring error while closing connection", exc_info=True)


def _shutdown(driver: Driver) -> None:
    shutdown = getattr(driver, "shutdown", None)
    if callable(shutdown):
        shutdown()


__all__ = ["QueryEngine", "SqlQueryEngine"]
