"""Resource type schemas derived from resource models.

A ``ResourceType`` is the engine's view of a resource model: an ordered list
of attributes with their value kind, mutability, and sensitivity. It is built
once per registered model by introspecting Pydantic fields and their
``Annotated`` markers.
"""

from __future__ import annotations

import hashlib
import json
import types
from enum import Enum
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import BaseModel

from gcp_provisioner.engine.references import UNKNOWN, whole_reference
from gcp_provisioner.resources.base import ReplaceStrategy, Resource
from gcp_provisioner.resources.markers import (
    Compare,
    CompareStrategy,
    Computed,
    ForceNew,
    Sensitive,
    find_marker,
)

REDACTED = "(sensitive)"
SEAL_PREFIX = "sha256:"


class ValueKind(str, Enum):
    SCALAR = "scalar"
    LIST = "list"
    MAP = "map"
    NESTED_BLOCK = "nested-block"


class Mutability(str, Enum):
    MUTABLE = "mutable"
    FORCES_REPLACE = "forces-replace"
    COMPUTED_ONLY = "computed-only"


class AttributeSchema(BaseModel):
    name: str
    value_kind: ValueKind
    mutability: Mutability = Mutability.MUTABLE
    required: bool = False
    sensitive: bool = False
    compare: CompareStrategy | None = None
    # Sub-attributes of a nested block, or of each element of a list of blocks.
    block: list[AttributeSchema] | None = None

    @property
    def computed(self) -> bool:
        return self.mutability == Mutability.COMPUTED_ONLY

    @property
    def forces_replace(self) -> bool:
        return self.mutability == Mutability.FORCES_REPLACE


class ResourceType(BaseModel):
    name: str
    attributes: list[AttributeSchema]
    replace_strategy: ReplaceStrategy = "destroy-first"

    def attribute(self, name: str) -> AttributeSchema | None:
        return next((a for a in self.attributes if a.name == name), None)

    @property
    def computed_attributes(self) -> set[str]:
        return {a.name for a in self.attributes if a.computed}

    @property
    def forces_replace_attributes(self) -> set[str]:
        return {a.name for a in self.attributes if a.forces_replace}

    @property
    def sensitive_attributes(self) -> set[str]:
        return {a.name for a in self.attributes if a.sensitive}

    def validate_attributes(self, attrs: dict[str, Any]) -> list[str]:
        """Structural validation of declared attributes.

        References are accepted wherever a value is; their targets are
        checked by the graph builder.
        """
        return _validate_block(attrs, self.attributes, prefix="")

    def seal(self, attrs: dict[str, Any]) -> dict[str, Any]:
        """Replace sensitive values with a stable digest (for state)."""
        return _transform_sensitive(attrs, self.attributes, _seal_value)

    def redact(self, attrs: dict[str, Any]) -> dict[str, Any]:
        """Replace sensitive values with a placeholder (for reports and logs)."""
        return _transform_sensitive(attrs, self.attributes, lambda _v: REDACTED)


# ── Introspection ───────────────────────────────────────────────────


def _unwrap(annotation: Any) -> Any:
    """Strip ``Annotated`` and ``Optional`` wrappers."""
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            annotation = get_args(annotation)[0]
            continue
        if origin in (Union, types.UnionType):
            args = [a for a in get_args(annotation) if a is not type(None)]
            if len(args) == 1:
                annotation = args[0]
                continue
        return annotation


def _is_block(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def _value_kind(annotation: Any) -> tuple[ValueKind, type[BaseModel] | None]:
    annotation = _unwrap(annotation)
    origin = get_origin(annotation)
    if origin in (list, tuple, set, frozenset):
        args = get_args(annotation)
        element = _unwrap(args[0]) if args else None
        return ValueKind.LIST, element if _is_block(element) else None
    if origin is dict:
        return ValueKind.MAP, None
    if _is_block(annotation):
        return ValueKind.NESTED_BLOCK, annotation
    return ValueKind.SCALAR, None


def _describe_fields(model: type[BaseModel]) -> list[AttributeSchema]:
    attributes: list[AttributeSchema] = []
    for name, fi in model.model_fields.items():
        kind, block_model = _value_kind(fi.annotation)
        if find_marker(fi, Computed) is not None:
            mutability = Mutability.COMPUTED_ONLY
        elif find_marker(fi, ForceNew) is not None:
            mutability = Mutability.FORCES_REPLACE
        else:
            mutability = Mutability.MUTABLE
        compare = find_marker(fi, Compare)
        attributes.append(
            AttributeSchema(
                name=name,
                value_kind=kind,
                mutability=mutability,
                required=fi.is_required(),
                sensitive=find_marker(fi, Sensitive) is not None,
                compare=compare.strategy if compare else None,
                block=_describe_fields(block_model) if block_model is not None else None,
            )
        )
    return attributes


def describe_model(model: type[Resource]) -> ResourceType:
    """Build the ``ResourceType`` schema for a resource model."""
    resource_type = getattr(model, "resource_type", None)
    if not isinstance(resource_type, str) or not resource_type:
        raise ValueError("Resource model must define a non-empty classvar `resource_type`")
    return ResourceType(
        name=resource_type,
        attributes=_describe_fields(model),
        replace_strategy=model.replace_strategy,
    )


# ── Validation ──────────────────────────────────────────────────────


def _kind_matches(value: Any, kind: ValueKind) -> bool:
    match kind:
        case ValueKind.SCALAR:
            return not isinstance(value, dict | list)
        case ValueKind.LIST:
            return isinstance(value, list)
        case ValueKind.MAP | ValueKind.NESTED_BLOCK:
            return isinstance(value, dict)
    return False


def _validate_block(
    attrs: dict[str, Any], attributes: list[AttributeSchema], *, prefix: str
) -> list[str]:
    errors: list[str] = []
    by_name = {a.name: a for a in attributes}

    for key in attrs:
        if key not in by_name:
            errors.append(f"unknown attribute '{prefix}{key}'")

    for attr in attributes:
        path = f"{prefix}{attr.name}"
        value = attrs.get(attr.name)
        if attr.computed:
            if value is not None:
                errors.append(f"attribute '{path}' is computed and cannot be set")
            continue
        if value is None:
            if attr.required:
                errors.append(f"missing required attribute '{path}'")
            continue
        if whole_reference(value) is not None:
            continue
        if not _kind_matches(value, attr.value_kind):
            errors.append(f"attribute '{path}' must be a {attr.value_kind.value}")
            continue
        if attr.block is None:
            continue
        if attr.value_kind == ValueKind.NESTED_BLOCK:
            errors.extend(_validate_block(value, attr.block, prefix=f"{path}."))
        else:
            for i, element in enumerate(value):
                if whole_reference(element) is not None:
                    continue
                if not isinstance(element, dict):
                    errors.append(f"attribute '{path}.{i}' must be a nested-block")
                    continue
                errors.extend(_validate_block(element, attr.block, prefix=f"{path}.{i}."))
    return errors


# ── Sensitive values ────────────────────────────────────────────────


def _seal_value(value: Any) -> Any:
    if value is UNKNOWN:
        return value
    if isinstance(value, str) and value.startswith(SEAL_PREFIX):
        return value
    payload = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return SEAL_PREFIX + hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _transform_sensitive(
    attrs: dict[str, Any],
    attributes: list[AttributeSchema],
    transform: Any,
) -> dict[str, Any]:
    out = dict(attrs)
    for attr in attributes:
        value = out.get(attr.name)
        if value is None:
            continue
        if attr.sensitive:
            out[attr.name] = transform(value)
        elif attr.block is not None and isinstance(value, dict):
            out[attr.name] = _transform_sensitive(value, attr.block, transform)
        elif attr.block is not None and isinstance(value, list):
            out[attr.name] = [
                _transform_sensitive(v, attr.block, transform) if isinstance(v, dict) else v
                for v in value
            ]
    return out
