"""Database drivers used by the SQL query engine."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Protocol, Sequence, runtime_checkable
from urllib.parse import urlparse

import asyncpg
import pymysql
import pymysql.cursors

from .errors import DriverNotFoundError, MalformedURIError, QueryExecutionError
from .models import ConnectionDescriptor
from .statements import ParamStyle

MYSQL_DRIVER = "com.mysql.jdbc.Driver"
POSTGRESQL_DRIVER = "org.postgresql.Driver"

Row = dict[str, Any]


@dataclass(frozen=True, slots=True)
class ConnectionTarget:
    """Host, port and database pulled out of a connection URI."""

    scheme: str
    host: str
    port: int | None
    database: str
    user: str | None = None


def parse_connection_uri(uri: str, scheme: str | None = None) -> ConnectionTarget:
    """Validate ``scheme://host:port/database`` and return its parts."""

    parsed = urlparse(uri)
    if not parsed.scheme or not parsed.netloc:
        raise MalformedURIError(f"Connection URI must look like scheme://host:port/database, got {_redact(uri)!r}")
    if scheme is not None and parsed.scheme != scheme:
        raise MalformedURIError(f"Expected a {scheme}:// URI, got {parsed.scheme}://")
    try:
        port = parsed.port
    except ValueError as exc:
        raise MalformedURIError(f"Invalid port in connection URI {_redact(uri)!r}") from exc
    if not parsed.hostname:
        raise MalformedURIError(f"Missing host in connection URI {_redact(uri)!r}")
    database = parsed.path.lstrip("/")
    if "/" in database:
        raise MalformedURIError(f"Unexpected path segments in connection URI {_redact(uri)!r}")
    return ConnectionTarget(
        scheme=parsed.scheme,
        host=parsed.hostname,
        port=port,
        database=database,
        user=parsed.username,
    )


def sanitize_uri(uri: str) -> str:
    """Mask credentials embedded in a connection URI."""

    return _redact(uri)


def _redact(uri: str) -> str:
    scheme, sep, rest = uri.partition("://")
    netloc, slash, path = rest.partition("/")
    if not sep or "@" not in netloc:
        return uri
    _, _, host = netloc.rpartition("@")
    return f"{scheme}://***:***@{host}{slash}{path}"


@runtime_checkable
class Connection(Protocol):
    """An open database connection."""

    def fetch(self, sql: str, args: Any) -> list[Row]:
        """Execute ``sql`` and return rows as dictionaries."""

    def ping(self) -> None:
        """Raise if the connection is no longer usable."""

    def close(self) -> None:
        """Release the connection."""


@runtime_checkable
class Driver(Protocol):
    """Opens connections for one database family."""

    name: str
    scheme: str
    paramstyle: ParamStyle
    default_port: int

    def connect(self, descriptor: ConnectionDescriptor) -> Connection:
        """Open a connection described by ``descriptor``."""


class PyMySQLConnection:
    """Blocking MySQL connection backed by PyMySQL."""

    def __init__(self, conn: pymysql.connections.Connection) -> None:
        self._conn = conn

    def fetch(self, sql: str, args: Any) -> list[Row]:
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(sql, args)
                rows = cursor.fetchall()
        except pymysql.Error as exc:
            raise QueryExecutionError(str(exc)) from exc
        return [dict(row) for row in rows]

    def ping(self) -> None:
        try:
            self._conn.ping(reconnect=False)
        except pymysql.Error as exc:
            raise QueryExecutionError(str(exc)) from exc

    def close(self) -> None:
        try:
            self._conn.close()
        except pymysql.Error:  # pragma: no cover - already closed
            pass


class PyMySQLDriver:
    """MySQL driver using PyMySQL with dictionary cursors."""

    name = MYSQL_DRIVER
    scheme = "mysql"
    paramstyle: ParamStyle = "pyformat"
    default_port = 3306

    def __init__(self, *, timeout: float = 30.0) -> None:
        self._timeout = timeout

    def connect(self, descriptor: ConnectionDescriptor) -> PyMySQLConnection:
        target = parse_connection_uri(descriptor.uri, self.scheme)
        params: dict[str, Any] = {
            "host": target.host,
            "port": target.port or self.default_port,
            "connect_timeout": int(self._timeout),
            "read_timeout": int(self._timeout),
            "write_timeout": int(self._timeout),
            "charset": "utf8mb4",
            "cursorclass": pymysql.cursors.DictCursor,
            "autocommit": True,
        }
        # "" is the anonymous account
        params["user"] = descriptor.user or target.user or ""
        if descriptor.password is not None:
            params["password"] = descriptor.password.get_secret_value()
        if target.database:
            params["database"] = target.database
        return PyMySQLConnection(pymysql.connect(**params))


class AsyncpgConnection:
    """Blocking facade over an asyncpg connection living on a driver loop."""

    def __init__(self, conn: Any, run: Callable[[Coroutine[Any, Any, Any]], Any]) -> None:
        self._conn = conn
        self._run = run

    def fetch(self, sql: str, args: Any) -> list[Row]:
        try:
            records = self._run(self._conn.fetch(sql, *tuple(args or ())))
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise QueryExecutionError(str(exc)) from exc
        return [dict(record.items()) for record in records]

    def ping(self) -> None:
        try:
            self._run(self._conn.fetchval("SELECT 1"))
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise QueryExecutionError(str(exc)) from exc

    def close(self) -> None:
        try:
            self._run(self._conn.close())
        except Exception:  # pragma: no cover - best effort cleanup
            pass


class AsyncpgDriver:
    """PostgreSQL driver that runs asyncpg on a private event loop."""

    name = POSTGRESQL_DRIVER
    scheme = "postgresql"
    paramstyle: ParamStyle = "numeric"
    default_port = 5432

    def __init__(self, *, timeout: float = 30.0) -> None:
        self._timeout = timeout
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="dblookup-asyncpg-driver",
            daemon=True,
        )
        self._loop_thread.start()

    def connect(self, descriptor: ConnectionDescriptor) -> AsyncpgConnection:
        target = parse_connection_uri(descriptor.uri, self.scheme)
        kwargs: dict[str, object] = {
            "host": target.host,
            "port": target.port or self.default_port,
            "timeout": self._timeout,
        }
        user = descriptor.user or target.user
        if user:
            kwargs["user"] = user
        if descriptor.password is not None:
            kwargs["password"] = descriptor.password.get_secret_value()
        if target.database:
            kwargs["database"] = target.database
        conn = self._run(asyncpg.connect(**kwargs))
        return AsyncpgConnection(conn, self._run)

    def shutdown(self) -> None:
        """Stop the background event loop."""

        if not self._loop.is_running():  # pragma: no cover - already stopped
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=1)

    def __del__(self) -> None:  # pragma: no cover - best effort cleanup
        try:
            self.shutdown()
        except Exception:
            pass

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()


DriverFactory = Callable[[], Driver]


class DriverRegistry:
    """Maps driver identifiers to factories."""

    def __init__(self) -> None:
        self._factories: dict[str, DriverFactory] = {}

    def register(self, name: str, factory: DriverFactory) -> None:
        self._factories[name] = factory

    def create(self, name: str) -> Driver:
        try:
            factory = self._factories[name]
        except KeyError:
            known = ", ".join(sorted(self._factories)) or "none"
            raise DriverNotFoundError(f"No driver registered for '{name}' (known: {known})") from None
        return factory()

    @property
    def names(self) -> Sequence[str]:
        return tuple(self._factories)


def default_registry() -> DriverRegistry:
    registry = DriverRegistry()
    registry.register(MYSQL_DRIVER, PyMySQLDriver)
    registry.register(POSTGRESQL_DRIVER, AsyncpgDriver)
    return registry


__all__ = [
    "AsyncpgDriver",
    "Connection",
    "ConnectionTarget",
    "Driver",
    "DriverRegistry",
    "MYSQL_DRIVER",
    "POSTGRESQL_DRIVER",
    "PyMySQLDriver",
    "default_registry",
    "parse_connection_uri",
    "sanitize_uri",
]
