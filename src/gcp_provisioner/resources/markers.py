"""Declarative field markers for resource models.

Four markers attach to Pydantic fields via ``Annotated``:

- ``ForceNew``: changing the field cannot be done in place (destroy + create)
- ``Computed``: value is assigned by the provider; never declared, never diffed
- ``Sensitive``: value is redacted in reports and sealed in state
- ``Compare``: field-level comparison strategy used by the planner

The schema registry introspects these markers to build ``ResourceType``
descriptions; nothing else in the engine looks at model classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypeAlias, TypeVar

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

M = TypeVar("M")
CompareStrategy: TypeAlias = Literal["partial", "exact", "set"]


# ── Marker dataclasses ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ForceNew:
    """Field change forces replacement of the resource."""


@dataclass(frozen=True, slots=True)
class Computed:
    """Field is output-only (e.g. an assigned address or generated endpoint)."""


@dataclass(frozen=True, slots=True)
class Sensitive:
    """Field holds a secret value."""


@dataclass(frozen=True, slots=True)
class Compare:
    """How the planner should compare the field.

    - ``"partial"``: for dict values, only keys declared in desired are compared
    - ``"exact"``: strict equality comparison
    - ``"set"``: order-insensitive list comparison
    """

    strategy: CompareStrategy


# ── Introspection primitives ────────────────────────────────────────


def find_marker(field_info: FieldInfo, marker_type: type[M]) -> M | None:
    """Return the first marker of *marker_type* on a field, or ``None``."""
    return next((m for m in field_info.metadata if isinstance(m, marker_type)), None)


def iter_marked_fields(
    model_or_cls: Any,
    marker_type: type[M],
) -> list[tuple[str, FieldInfo, M]]:
    """Return ``(field_name, field_info, marker)`` for every field carrying *marker_type*."""
    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    return [
        (name, fi, marker)
        for name, fi in cls.model_fields.items()
        if (marker := find_marker(fi, marker_type)) is not None
    ]


def computed_fields(resource_or_cls: Any) -> set[str]:
    return {name for name, _, _ in iter_marked_fields(resource_or_cls, Computed)}
