"""Exception hierarchy shared by the engine, filters and pipeline."""

from __future__ import annotations

from typing import Sequence


class DblookupError(RuntimeError):
    """Base error for lookup failures."""


class ConfigurationError(DblookupError):
    """Raised when filter or pipeline options fail validation."""

    def __init__(self, message: str, errors: Sequence[object] = ()) -> None:
        super().__init__(message)
        self.errors = tuple(errors)

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        details = "; ".join(str(error) for error in self.errors)
        return f"{base}: {details}"


class SetupError(DblookupError):
    """Raised when the query engine cannot become ready.

    ``cause`` is one of ``"driver"``, ``"uri"``, ``"query"`` or ``"connection"``.
    """

    def __init__(self, message: str, *, cause: str) -> None:
        super().__init__(message)
        self.cause = cause


class DriverNotFoundError(DblookupError):
    """Raised when no driver is registered for an identifier."""


class MalformedURIError(DblookupError, ValueError):
    """Raised when a connection URI cannot be parsed."""


class QueryExecutionError(DblookupError):
    """Raised when a statement fails to execute."""


class ParameterBindingError(DblookupError, KeyError):
    """Raised when a placeholder has no value to bind."""

    def __str__(self) -> str:
        return RuntimeError.__str__(self)


class EngineNotReadyError(DblookupError):
    """Raised when an engine is used before a successful setup."""


class FilterStateError(DblookupError):
    """Raised when a filter is driven outside its lifecycle."""


class PipelineStartupError(DblookupError):
    """Raised when a pipeline filter fails to register."""


__all__ = [
    "ConfigurationError",
    "DblookupError",
    "DriverNotFoundError",
    "EngineNotReadyError",
    "FilterStateError",
    "MalformedURIError",
    "ParameterBindingError",
    "PipelineStartupError",
    "QueryExecutionError",
    "SetupError",
]
