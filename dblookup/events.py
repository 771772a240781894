"""Mutable event records flowing through the pipeline."""

from __future__ import annotations

import copy
import re
from typing import Any, Iterator, Mapping

_BRACKET_REFERENCE = re.compile(r"^(\[[^\[\]]+\])+$")
_SEGMENT = re.compile(r"\[([^\[\]]+)\]")

_MISSING = object()


class FieldReferenceError(ValueError):
    """Raised when a field reference cannot be parsed."""


def parse_reference(reference: str) -> tuple[str, ...]:
    """Split ``name`` or ``[outer][inner]`` into path segments."""

    if not isinstance(reference, str) or not reference.strip():
        raise FieldReferenceError(f"Invalid field reference: {reference!r}")
    if reference.startswith("["):
        if not _BRACKET_REFERENCE.match(reference):
            raise FieldReferenceError(f"Invalid field reference: {reference!r}")
        return tuple(_SEGMENT.findall(reference))
    if "[" in reference or "]" in reference:
        raise FieldReferenceError(f"Invalid field reference: {reference!r}")
    return (reference,)


class Event:
    """Named fields plus a ``tags`` collection, mutated in place by filters."""

    TAGS_FIELD = "tags"

    def __init__(self, fields: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(fields or {})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        return cls(copy.deepcopy(dict(data)))

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def get(self, reference: str, default: Any = None) -> Any:
        value = self._lookup(parse_reference(reference))
        return default if value is _MISSING else value

    def includes(self, reference: str) -> bool:
        return self._lookup(parse_reference(reference)) is not _MISSING

    def set(self, reference: str, value: Any) -> None:
        """Assign ``value``, creating intermediate mappings as needed."""

        path = parse_reference(reference)
        node = self._data
        for segment in path[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        node[path[-1]] = value

    def remove(self, reference: str) -> Any:
        path = parse_reference(reference)
        parent = self._lookup(path[:-1]) if len(path) > 1 else self._data
        if not isinstance(parent, dict):
            return None
        return parent.pop(path[-1], None)

    @property
    def tags(self) -> list[str]:
        tags = self._data.get(self.TAGS_FIELD)
        if tags is None:
            tags = []
            self._data[self.TAGS_FIELD] = tags
        elif not isinstance(tags, list):
            tags = [tags]
            self._data[self.TAGS_FIELD] = tags
        return tags

    def tag(self, *names: str) -> None:
        """Append each tag in order; repeated names are kept."""

        self.tags.extend(names)

    def _lookup(self, path: tuple[str, ...]) -> Any:
        node: Any = self._data
        for segment in path:
            if not isinstance(node, dict) or segment not in node:
                return _MISSING
            node = node[segment]
        return node

    def __contains__(self, reference: object) -> bool:
        return isinstance(reference, str) and self.includes(reference)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Event):
            return self._data == other._data
        return NotImplemented

    def __repr__(self) -> str:
        return f"Event({self._data!r})"


__all__ = ["Event", "FieldReferenceError", "parse_reference"]
