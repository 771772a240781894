"""Tests for the lookup filters in front of the query engine."""

from __future__ import annotations

import logging
from typing import Any

import pytest
from pydantic import SecretStr

from dblookup.config import MysqlLookupConfig
from dblookup.drivers import MYSQL_DRIVER, POSTGRESQL_DRIVER, DriverRegistry
from dblookup.engine import SqlQueryEngine
from dblookup.errors import ConfigurationError, FilterStateError, SetupError
from dblookup.events import Event
from dblookup.filters import MysqlLookupFilter, SqlLookupFilter
from dblookup.models import ConnectionDescriptor, FilterState, QuerySpec

OPTIONS: dict[str, Any] = {
    "host": "localhost",
    "default_schema": "world",
    "statement": "select * from country where code = :code",
    "parameters": {"code": "country_code"},
    "target": "country_details",
}


class _FakeEngine:
    """Records calls; optionally fails setup or tags every event."""

    def __init__(
        self,
        *,
        setup_error: SetupError | None = None,
        rows: list[dict[str, Any]] | None = None,
        fail_queries: bool = False,
    ) -> None:
        self.setup_error = setup_error
        self.rows = rows if rows is not None else [{"code": "FRA", "name": "France"}]
        self.fail_queries = fail_queries
        self.setup_calls: list[tuple[ConnectionDescriptor, QuerySpec]] = []
        self.bound: list[dict[str, Any]] = []
        self.processed: list[Event] = []

    def setup(self, descriptor: ConnectionDescriptor, query: QuerySpec) -> None:
        self.setup_calls.append((descriptor, query))
        if self.setup_error is not None:
            raise self.setup_error

    def process(self, event: Event) -> Event:
        self.processed.append(event)
        _, query = self.setup_calls[-1]
        if self.fail_queries:
            event.tag(*query.tag_on_failure)
            return event
        self.bound.append({name: event.get(ref) for name, ref in query.parameters.items()})
        event.set(query.target, [dict(row) for row in self.rows])
        return event


def test_connection_uri_is_derived_from_host_port_schema() -> None:
    lookup = MysqlLookupFilter({**OPTIONS, "host": "db.internal", "port": 3307, "default_schema": "geo"})

    assert lookup.connection_descriptor.uri == "mysql://db.internal:3307/geo"
    assert lookup.connection_descriptor.driver == MYSQL_DRIVER


def test_empty_schema_selects_no_database() -> None:
    options = {key: value for key, value in OPTIONS.items() if key != "default_schema"}

    lookup = MysqlLookupFilter(options, engine=_FakeEngine())

    assert lookup.connection_descriptor.uri == "mysql://localhost:3306/"


def test_scenario_default_port_and_schema() -> None:
    engine = _FakeEngine()
    lookup = MysqlLookupFilter(OPTIONS, engine=engine)

    lookup.register()

    descriptor, query = engine.setup_calls[0]
    assert descriptor.uri == "mysql://localhost:3306/world"
    assert query.statement == OPTIONS["statement"]
    assert dict(query.parameters) == {"code": "country_code"}
    assert query.target == "country_details"
    assert query.tag_on_failure == ("_lookupfailure",)
    assert lookup.state is FilterState.READY


def test_query_spec_is_forwarded_verbatim() -> None:
    lookup = MysqlLookupFilter({**OPTIONS, "tag_on_failure": ["b", "a", "b"]}, engine=_FakeEngine())

    assert lookup.query_spec.tag_on_failure == ("b", "a", "b")
    with pytest.raises(TypeError):
        lookup.query_spec.parameters["extra"] = "x"  # type: ignore[index]


def test_parameter_is_bound_from_event_field() -> None:
    engine = _FakeEngine()
    lookup = MysqlLookupFilter(OPTIONS, engine=engine)
    lookup.register()

    event = lookup.filter(Event({"country_code": "FRA"}))

    assert engine.bound == [{"code": "FRA"}]
    assert event.get("country_details") == [{"code": "FRA", "name": "France"}]


def test_password_is_passed_as_secret_and_never_shown() -> None:
    engine = _FakeEngine()
    lookup = MysqlLookupFilter({**OPTIONS, "user": "me", "password": "hunter2"}, engine=engine)
    lookup.register()

    descriptor, _ = engine.setup_calls[0]
    assert descriptor.user == "me"
    assert isinstance(descriptor.password, SecretStr)
    assert descriptor.password.get_secret_value() == "hunter2"
    assert "hunter2" not in repr(descriptor)
    assert "hunter2" not in repr(lookup)
    assert "hunter2" not in repr(lookup.options)


def test_absent_password_passes_no_credential() -> None:
    engine = _FakeEngine()
    MysqlLookupFilter(OPTIONS, engine=engine).register()

    descriptor, _ = engine.setup_calls[0]
    assert descriptor.password is None
    assert descriptor.user is None


@pytest.mark.parametrize("missing", ["host", "statement", "target"])
def test_missing_required_option_fails_before_setup(missing: str) -> None:
    options = {key: value for key, value in OPTIONS.items() if key != missing}

    with pytest.raises(ConfigurationError):
        MysqlLookupFilter(options, engine=_FakeEngine())


def test_accepts_validated_config_model() -> None:
    config = MysqlLookupConfig(**OPTIONS)

    lookup = MysqlLookupFilter(config, engine=_FakeEngine())

    assert lookup.options is config


def test_setup_failure_is_fatal_and_terminal(caplog: pytest.LogCaptureFixture) -> None:
    engine = _FakeEngine(setup_error=SetupError("unreachable", cause="connection"))
    lookup = MysqlLookupFilter({**OPTIONS, "password": "hunter2"}, engine=engine)

    with caplog.at_level(logging.DEBUG):
        with pytest.raises(SetupError):
            lookup.register()

    assert lookup.state is FilterState.FAILED
    assert "hunter2" not in caplog.text
    with pytest.raises(FilterStateError):
        lookup.filter(Event({"country_code": "FRA"}))
    with pytest.raises(FilterStateError):
        lookup.register()
    assert engine.processed == []


def test_filter_before_register_is_rejected() -> None:
    lookup = MysqlLookupFilter(OPTIONS, engine=_FakeEngine())

    assert lookup.state is FilterState.UNREGISTERED
    with pytest.raises(FilterStateError):
        lookup.filter(Event())


def test_register_only_once() -> None:
    engine = _FakeEngine()
    lookup = MysqlLookupFilter(OPTIONS, engine=engine)
    lookup.register()

    with pytest.raises(FilterStateError):
        lookup.register()
    assert len(engine.setup_calls) == 1


def test_failure_tags_default() -> None:
    lookup = MysqlLookupFilter(OPTIONS, engine=_FakeEngine(fail_queries=True))
    lookup.register()

    event = lookup.filter(Event({"country_code": "FRA"}))

    assert event.tags == ["_lookupfailure"]
    assert not event.includes("country_details")


def test_custom_failure_tags_in_order() -> None:
    lookup = MysqlLookupFilter(
        {**OPTIONS, "tag_on_failure": ["db_err", "retry_me"]},
        engine=_FakeEngine(fail_queries=True),
    )
    lookup.register()

    event = lookup.filter(Event({"country_code": "FRA", "tags": ["db_err"]}))

    assert event.tags == ["db_err", "db_err", "retry_me"]


def test_repeated_processing_is_stable() -> None:
    lookup = MysqlLookupFilter(OPTIONS, engine=_FakeEngine())
    lookup.register()
    event = Event({"country_code": "FRA"})

    first = lookup.filter(event).get("country_details")
    second = lookup.filter(event).get("country_details")

    assert first == second


def test_default_engine_is_sql_engine() -> None:
    lookup = MysqlLookupFilter(OPTIONS)

    assert isinstance(lookup.engine, SqlQueryEngine)


def test_unreachable_database_end_to_end() -> None:
    class _Unreachable:
        name = MYSQL_DRIVER
        scheme = "mysql"
        paramstyle = "pyformat"
        default_port = 3306

        def __init__(self) -> None:
            self.attempts = 0

        def connect(self, descriptor: ConnectionDescriptor) -> Any:
            self.attempts += 1
            if self.attempts > 1:
                raise ConnectionRefusedError("Can't connect to MySQL server on 'localhost'")
            return _SingleUseConnection()

    registry = DriverRegistry()
    driver = _Unreachable()
    registry.register(MYSQL_DRIVER, lambda: driver)
    lookup = MysqlLookupFilter(OPTIONS, engine=SqlQueryEngine(registry))
    lookup.register()

    event = lookup.filter(Event({"country_code": "FRA"}))

    assert event.tags == ["_lookupfailure"]
    assert not event.includes("country_details")


class _SingleUseConnection:
    def fetch(self, sql: str, args: Any) -> list[dict[str, Any]]:
        raise ConnectionResetError("connection lost")

    def ping(self) -> None:
        return None

    def close(self) -> None:
        return None


def test_sql_lookup_uses_given_driver_and_uri() -> None:
    engine = _FakeEngine()
    lookup = SqlLookupFilter(
        {
            "driver_class": POSTGRESQL_DRIVER,
            "connection_string": "postgresql://me:pw@localhost:5432/world",
            "statement": "select 1",
            "target": "out",
        },
        engine=engine,
    )
    lookup.register()

    descriptor, _ = engine.setup_calls[0]
    assert descriptor.driver == POSTGRESQL_DRIVER
    assert descriptor.uri == "postgresql://me:pw@localhost:5432/world"
    assert "pw@" not in repr(lookup)


@pytest.mark.parametrize(
    "overrides",
    [{"target": "[country"}, {"parameters": {"code": "country]"}}],
)
def test_malformed_field_reference_is_a_configuration_error(overrides: dict[str, Any]) -> None:
    engine = _FakeEngine()

    with pytest.raises(ConfigurationError):
        MysqlLookupFilter({**OPTIONS, **overrides}, engine=engine)

    assert engine.setup_calls == []
