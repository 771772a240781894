"""Named placeholder parsing and paramstyle rendering."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping

from .errors import ParameterBindingError

ParamStyle = Literal["pyformat", "numeric"]


@dataclass(frozen=True, slots=True)
class Placeholder:
    """A ``:name`` marker found in statement text."""

    name: str


Segment = str | Placeholder


@dataclass(frozen=True, slots=True)
class ParsedStatement:
    """Statement text split into literal SQL and placeholders."""

    text: str
    segments: tuple[Segment, ...]

    @property
    def names(self) -> tuple[str, ...]:
        """Unique placeholder names in order of first appearance."""

        seen: dict[str, None] = {}
        for segment in self.segments:
            if isinstance(segment, Placeholder):
                seen.setdefault(segment.name, None)
        return tuple(seen)

    def render(self, style: ParamStyle) -> str:
        parts: list[str] = []
        numbers = {name: index for index, name in enumerate(self.names, start=1)}
        for segment in self.segments:
            if isinstance(segment, Placeholder):
                if style == "pyformat":
                    parts.append(f"%({segment.name})s")
                else:
                    parts.append(f"${numbers[segment.name]}")
            elif style == "pyformat":
                parts.append(segment.replace("%", "%%"))
            else:
                parts.append(segment)
        return "".join(parts)

    def arguments(self, values: Mapping[str, Any], style: ParamStyle) -> dict[str, Any] | tuple[Any, ...]:
        """Order ``values`` the way the driver expects them."""

        missing = [name for name in self.names if name not in values]
        if missing:
            raise ParameterBindingError(f"No value bound for placeholder(s): {', '.join(missing)}")
        if style == "pyformat":
            return {name: values[name] for name in self.names}
        return tuple(values[name] for name in self.names)


def _is_identifier_start(char: str) -> bool:
    return char.isalpha() or char == "_"


def _is_identifier_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def parse_statement(text: str) -> ParsedStatement:
    """Locate ``:name`` placeholders outside literals, identifiers and comments."""

    segments: list[Segment] = []
    buffer: list[str] = []
    length = len(text)
    index = 0

    def _flush() -> None:
        if buffer:
            segments.append("".join(buffer))
            buffer.clear()

    while index < length:
        char = text[index]
        if char in ("'", '"', "`"):
            end = _skip_quoted(text, index, char)
            buffer.append(text[index:end])
            index = end
        elif text.startswith("--", index):
            end = text.find("\n", index)
            end = length if end == -1 else end
            buffer.append(text[index:end])
            index = end
        elif text.startswith("/*", index):
            end = text.find("*/", index + 2)
            end = length if end == -1 else end + 2
            buffer.append(text[index:end])
            index = end
        elif text.startswith("::", index):
            buffer.append("::")
            index += 2
        elif char == ":" and index + 1 < length and _is_identifier_start(text[index + 1]):
            end = index + 2
            while end < length and _is_identifier_char(text[end]):
                end += 1
            _flush()
            segments.append(Placeholder(text[index + 1 : end]))
            index = end
        else:
            buffer.append(char)
            index += 1
    _flush()
    return ParsedStatement(text=text, segments=tuple(segments))


def _skip_quoted(text: str, start: int, quote: str) -> int:
    """Return the index just past the literal opened at ``start``."""

    index = start + 1
    length = len(text)
    while index < length:
        char = text[index]
        if char == "\\" and quote != "`":
            index += 2
            continue
        if char == quote:
            if index + 1 < length and text[index + 1] == quote:
                index += 2
                continue
            return index + 1
        index += 1
    return length


__all__ = ["ParamStyle", "ParsedStatement", "Placeholder", "parse_statement"]
