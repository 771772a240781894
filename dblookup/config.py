"""Filter option schemas, validation and pipeline file loading."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, TypeVar

import tomllib
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from .errors import ConfigurationError
from .events import FieldReferenceError, parse_reference

DEFAULT_FAILURE_TAGS: tuple[str, ...] = ("_lookupfailure",)
_HOST_FORBIDDEN = set(" \t\r\n/@?#:")


def _check_reference(reference: str, label: str = "field reference") -> None:
    try:
        parse_reference(reference)
    except FieldReferenceError:
        raise ValueError(f"{label} must be a field name or [outer][inner] path") from None


class LookupOptions(BaseModel):
    """Options shared by every lookup filter."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    user: str | None = None
    password: SecretStr | None = None
    statement: str
    parameters: dict[str, str] = Field(default_factory=dict)
    target: str
    tag_on_failure: list[str] = Field(default_factory=lambda: list(DEFAULT_FAILURE_TAGS))

    @field_validator("statement")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("target")
    @classmethod
    def _valid_target(cls, value: str) -> str:
        _check_reference(value)
        return value

    @field_validator("parameters")
    @classmethod
    def _named_parameters(cls, value: dict[str, str]) -> dict[str, str]:
        for name, reference in value.items():
            if not name or not (name[0].isalpha() or name[0] == "_") or not all(
                char.isalnum() or char == "_" for char in name
            ):
                raise ValueError(f"placeholder name {name!r} is not an identifier")
            _check_reference(reference, f"field reference for {name!r}")
        return value


class MysqlLookupConfig(LookupOptions):
    """Simplified MySQL connection options."""

    host: str
    port: int = Field(default=3306, ge=1, le=65535)
    default_schema: str = ""

    @field_validator("host")
    @classmethod
    def _valid_host(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        if value.startswith("[") and value.endswith("]"):
            return value
        if _HOST_FORBIDDEN.intersection(value):
            raise ValueError("must be a bare host name or address")
        return value

    @field_validator("default_schema", mode="before")
    @classmethod
    def _schema_or_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("default_schema")
    @classmethod
    def _valid_schema(cls, value: str) -> str:
        if _HOST_FORBIDDEN.intersection(value):
            raise ValueError("must be a bare schema name")
        return value


class SqlLookupConfig(LookupOptions):
    """Generic options: driver identifier and connection URI given directly."""

    driver_class: str
    connection_string: str

    @field_validator("driver_class", "connection_string")
    @classmethod
    def _required_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


@dataclass(frozen=True, slots=True)
class FieldError:
    """One rejected option."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


ConfigT = TypeVar("ConfigT", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class Valid:
    config: BaseModel


@dataclass(frozen=True, slots=True)
class Invalid:
    errors: tuple[FieldError, ...]


ValidationResult = Valid | Invalid


def validate_config(model: type[ConfigT], raw: Mapping[str, Any]) -> ValidationResult:
    """Validate ``raw`` options against ``model`` without raising."""

    try:
        return Valid(model.model_validate(dict(raw)))
    except ValidationError as exc:
        return Invalid(_field_errors(exc))


def build_config(model: type[ConfigT], raw: Mapping[str, Any] | ConfigT) -> ConfigT:
    """Return a validated config or raise ``ConfigurationError``."""

    if isinstance(raw, model):
        return raw
    result = validate_config(model, raw)  # type: ignore[arg-type]
    if isinstance(result, Invalid):
        raise ConfigurationError(f"Invalid {model.__name__} options", result.errors)
    return result.config  # type: ignore[return-value]


def _field_errors(exc: ValidationError) -> tuple[FieldError, ...]:
    errors: list[FieldError] = []
    for error in exc.errors(include_input=False, include_url=False):
        location = ".".join(str(part) for part in error["loc"]) or "__root__"
        errors.append(FieldError(field=location, message=error["msg"]))
    return tuple(errors)


class FilterSection(BaseModel):
    """One ``[[filters]]`` table from a pipeline file."""

    model_config = ConfigDict(frozen=True)

    type: str
    options: dict[str, Any] = Field(default_factory=dict)


class PipelineConfig(BaseModel):
    """Shape of the pipeline configuration file."""

    log_level: str = "INFO"
    filters: list[FilterSection] = Field(default_factory=list)


def load_pipeline_config(path: Path | str) -> PipelineConfig:
    """Read a TOML pipeline file; raise ``ConfigurationError`` when unusable."""

    config_path = Path(path)
    try:
        with config_path.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Pipeline config not found: {config_path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Pipeline config is not valid TOML: {exc}") from exc
    return parse_pipeline_config(raw)


def parse_pipeline_config(raw: Mapping[str, Any]) -> PipelineConfig:
    errors: list[FieldError] = []
    sections: list[FilterSection] = []
    filters = raw.get("filters", [])
    if not isinstance(filters, list):
        raise ConfigurationError("Invalid pipeline config", [FieldError("filters", "must be an array of tables")])
    for index, table in enumerate(filters):
        if not isinstance(table, dict):
            errors.append(FieldError(f"filters.{index}", "must be a table"))
            continue
        options = dict(table)
        kind = options.pop("type", None)
        if not isinstance(kind, str) or not kind:
            errors.append(FieldError(f"filters.{index}.type", "a filter type is required"))
            continue
        sections.append(FilterSection(type=kind, options=options))
    log_level = raw.get("log_level", PipelineConfig.model_fields["log_level"].default)
    if not isinstance(log_level, str):
        errors.append(FieldError("log_level", "must be a string"))
    unknown = sorted(set(raw) - {"filters", "log_level"})
    for key in unknown:
        errors.append(FieldError(key, "unknown option"))
    if errors:
        raise ConfigurationError("Invalid pipeline config", errors)
    return PipelineConfig(log_level=log_level, filters=sections)


__all__ = [
    "DEFAULT_FAILURE_TAGS",
    "FieldError",
    "FilterSection",
    "Invalid",
    "LookupOptions",
    "MysqlLookupConfig",
    "PipelineConfig",
    "SqlLookupConfig",
    "Valid",
    "ValidationResult",
    "build_config",
    "load_pipeline_config",
    "parse_pipeline_config",
    "validate_config",
]
