"""Reference expressions between declared resources.

Declarations point at other resources with ``${type.name.attribute}``
expressions, optionally drilling into nested values
(``${database_instance.main.settings.tier}``, ``${subnetwork.s.secondary_ip_ranges.0.range_name}``).

A string that is exactly one expression takes the referenced value as-is
(any kind). An expression embedded in a longer string is interpolated as
text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

_SEGMENT = r"[A-Za-z0-9_-]+"
_REF_PATTERN = re.compile(
    rf"\$\{{([a-z][a-z0-9_]*)\.({_SEGMENT})\.({_SEGMENT}(?:\.{_SEGMENT})*)\}}"
)


class _Unknown:
    """Value only known after the referenced resource is applied."""

    _instance: _Unknown | None = None

    def __new__(cls) -> _Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return UNKNOWN_TEXT

    def __reduce__(self) -> str:
        return "UNKNOWN"


UNKNOWN_TEXT = "(known after apply)"
UNKNOWN = _Unknown()


@dataclass(frozen=True, slots=True)
class Reference:
    resource_type: str
    name: str
    path: tuple[str, ...]

    @property
    def address(self) -> str:
        return f"{self.resource_type}.{self.name}"

    @property
    def attribute(self) -> str:
        return self.path[0]

    @property
    def expression(self) -> str:
        return "${" + ".".join((self.resource_type, self.name, *self.path)) + "}"

    def __str__(self) -> str:
        return self.expression


def _from_match(match: re.Match[str]) -> Reference:
    return Reference(
        resource_type=match.group(1),
        name=match.group(2),
        path=tuple(match.group(3).split(".")),
    )


def parse_references(text: str) -> list[Reference]:
    """All references in *text*, in order of appearance."""
    return [_from_match(m) for m in _REF_PATTERN.finditer(text)]


def whole_reference(value: Any) -> Reference | None:
    """The reference if *value* is a string consisting of exactly one expression."""
    if not isinstance(value, str):
        return None
    match = _REF_PATTERN.fullmatch(value)
    return _from_match(match) if match else None


def collect_references(value: Any) -> list[Reference]:
    """Recursively collect references from a value, deduplicated in first-seen order."""
    seen: dict[Reference, None] = {}
    for ref in _walk(value):
        seen.setdefault(ref, None)
    return list(seen)


def _walk(value: Any) -> Iterable[Reference]:
    if isinstance(value, str):
        yield from parse_references(value)
    elif isinstance(value, dict):
        for v in value.values():
            yield from _walk(v)
    elif isinstance(value, list | tuple):
        for v in value:
            yield from _walk(v)


def contains_unknown(value: Any) -> bool:
    if value is UNKNOWN:
        return True
    if isinstance(value, dict):
        return any(contains_unknown(v) for v in value.values())
    if isinstance(value, list | tuple):
        return any(contains_unknown(v) for v in value)
    return False


def render_unknowns(value: Any) -> Any:
    """Replace ``UNKNOWN`` markers with their display text (for plans on disk)."""
    if value is UNKNOWN:
        return UNKNOWN_TEXT
    if isinstance(value, dict):
        return {k: render_unknowns(v) for k, v in value.items()}
    if isinstance(value, list):
        return [render_unknowns(v) for v in value]
    return value


def lookup_path(value: Any, path: Iterable[str]) -> Any:
    """Follow *path* through nested dicts and lists.

    Raises:
        KeyError: if a segment does not exist.
    """
    current = value
    for segment in path:
        if current is UNKNOWN:
            return UNKNOWN
        if isinstance(current, dict):
            if segment not in current:
                raise KeyError(segment)
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit() and int(segment) < len(current):
            current = current[int(segment)]
        else:
            raise KeyError(segment)
    return current


def resolve_references(value: Any, lookup: Callable[[Reference], Any]) -> Any:
    """Substitute every reference in *value* using *lookup*.

    An embedded expression whose target is ``UNKNOWN`` makes the whole
    string unknown.
    """
    if isinstance(value, str):
        ref = whole_reference(value)
        if ref is not None:
            return lookup(ref)
        if not _REF_PATTERN.search(value):
            return value
        unknown = False

        def _sub(match: re.Match[str]) -> str:
            nonlocal unknown
            resolved = lookup(_from_match(match))
            if resolved is UNKNOWN:
                unknown = True
                return ""
            return str(resolved)

        text = _REF_PATTERN.sub(_sub, value)
        return UNKNOWN if unknown else text
    if isinstance(value, dict):
        return {k: resolve_references(v, lookup) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_references(v, lookup) for v in value]
    return value
