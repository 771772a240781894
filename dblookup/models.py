"""Value objects handed from the filters to the query engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from pydantic import SecretStr


class FilterState(str, Enum):
    """Lifecycle states of a lookup filter."""

    UNREGISTERED = "unregistered"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ConnectionDescriptor:
    """How to reach a database: driver, URI and credentials."""

    driver: str
    uri: str
    user: str | None = None
    password: SecretStr | None = field(default=None, repr=False)

    def __repr__(self) -> str:
        masked = "**********" if self.password is not None else None
        return (
            f"ConnectionDescriptor(driver={self.driver!r}, uri={self.uri!r}, "
            f"user={self.user!r}, password={masked!r})"
        )


@dataclass(frozen=True, slots=True)
class QuerySpec:
    """Statement, parameter binding, target field and failure tags."""

    statement: str
    parameters: Mapping[str, str] = field(default_factory=dict)
    target: str = ""
    tag_on_failure: tuple[str, ...] = ("_lookupfailure",)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        object.__setattr__(self, "tag_on_failure", tuple(self.tag_on_failure))


__all__ = ["ConnectionDescriptor", "FilterState", "QuerySpec"]
