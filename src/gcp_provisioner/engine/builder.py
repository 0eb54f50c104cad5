"""Resource graph builder.

Turns an ordered list of declarations into a validated, acyclic
``ResourceGraph``. Every reference expression and every explicit
``depends_on`` entry becomes a typed edge. Nothing here talks to a provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from gcp_provisioner.engine.errors import (
    CycleError,
    DuplicateNameError,
    SchemaViolationError,
    UnresolvedReferenceError,
)
from gcp_provisioner.engine.graph import DependencyGraph
from gcp_provisioner.engine.references import Reference, collect_references
from gcp_provisioner.resources.base import ReplaceStrategy

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from gcp_provisioner.engine.registry import ResourceTypeRegistry

logger = logging.getLogger(__name__)

NAME_PATTERN = r"^[A-Za-z0-9_-]+$"


class ResourceDeclaration(BaseModel):
    """One declared resource block."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1)
    name: str = Field(pattern=NAME_PATTERN)
    attributes: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)
    deletion_protected: bool = False
    replace_strategy: ReplaceStrategy | None = None

    @property
    def address(self) -> str:
        return f"{self.type}.{self.name}"


class EdgeKind(str, Enum):
    REFERENCE = "reference"
    EXPLICIT = "explicit"


@dataclass(frozen=True)
class DependencyEdge:
    """``source`` must be applied before ``target``."""

    source: str
    target: str
    kind: EdgeKind


@dataclass
class ResourceNode:
    address: str
    resource_type: str
    name: str
    index: int
    attributes: dict[str, Any]
    references: list[Reference] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    deletion_protected: bool = False
    replace_strategy: ReplaceStrategy = "destroy-first"


@dataclass
class ResourceGraph:
    """Nodes in declaration order plus typed dependency edges."""

    nodes: dict[str, ResourceNode] = field(default_factory=dict)
    edges: list[DependencyEdge] = field(default_factory=list)

    def __contains__(self, address: object) -> bool:
        return address in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, address: str) -> ResourceNode:
        return self.nodes[address]

    def dependency_graph(self) -> DependencyGraph:
        return DependencyGraph(
            self.nodes,
            {addr: n.dependencies for addr, n in self.nodes.items()},
            priorities={addr: n.index for addr, n in self.nodes.items()},
        )

    def topological_order(self) -> list[str]:
        """Dependencies first; independent nodes in declaration order."""
        return self.dependency_graph().topological_order()


def parse_address(address: str) -> tuple[str, str] | None:
    resource_type, sep, name = address.partition(".")
    if not sep or not resource_type or not name or "." in name:
        return None
    return resource_type, name


class GraphBuilder:
    """Build a ``ResourceGraph`` from declarations, validating against the registry."""

    def __init__(self, registry: ResourceTypeRegistry) -> None:
        self._registry = registry

    def build(self, declarations: Sequence[ResourceDeclaration]) -> ResourceGraph:
        """Build and validate the graph.

        Raises:
            DuplicateNameError: the same ``type.name`` is declared twice.
            UnknownResourceTypeError: a declaration names an unregistered type.
            SchemaViolationError: attributes do not match the type schema.
            UnresolvedReferenceError: a reference or ``depends_on`` points nowhere.
            CycleError: the dependencies contain a cycle.
        """
        graph = ResourceGraph()
        for index, decl in enumerate(declarations):
            if decl.address in graph.nodes:
                raise DuplicateNameError(decl.address)
            schema = self._registry.describe(decl.type)
            graph.nodes[decl.address] = ResourceNode(
                address=decl.address,
                resource_type=decl.type,
                name=decl.name,
                index=index,
                attributes=dict(decl.attributes),
                references=collect_references(decl.attributes),
                deletion_protected=decl.deletion_protected,
                replace_strategy=decl.replace_strategy or schema.replace_strategy,
            )

        self._validate_schemas(graph.nodes.values())

        for decl in declarations:
            node = graph.nodes[decl.address]
            for ref in node.references:
                self._check_reference(graph, node, ref)
                self._add_edge(graph, node, ref.address, EdgeKind.REFERENCE)
            for dep in decl.depends_on:
                if parse_address(dep) is None or dep not in graph.nodes:
                    raise UnresolvedReferenceError(node.address, dep, "depends_on")
                self._add_edge(graph, node, dep, EdgeKind.EXPLICIT)

        cycle = graph.dependency_graph().find_cycle()
        if cycle is not None:
            raise CycleError(cycle)

        logger.debug("Built graph: %d nodes, %d edges", len(graph.nodes), len(graph.edges))
        return graph

    @staticmethod
    def _add_edge(graph: ResourceGraph, node: ResourceNode, source: str, kind: EdgeKind) -> None:
        graph.edges.append(DependencyEdge(source=source, target=node.address, kind=kind))
        if source not in node.dependencies:
            node.dependencies.append(source)

    def _check_reference(self, graph: ResourceGraph, node: ResourceNode, ref: Reference) -> None:
        target = graph.nodes.get(ref.address)
        if target is None:
            raise UnresolvedReferenceError(node.address, ref.expression, "no such resource")
        if ref.attribute == "id":
            return
        attr = self._registry.describe(target.resource_type).attribute(ref.attribute)
        if attr is None:
            raise UnresolvedReferenceError(
                node.address,
                ref.expression,
                f"{target.resource_type} has no attribute '{ref.attribute}'",
            )
        if attr.sensitive:
            raise UnresolvedReferenceError(
                node.address, ref.expression, f"attribute '{ref.attribute}' is sensitive"
            )

    def _validate_schemas(self, nodes: Iterable[ResourceNode]) -> None:
        errors: list[str] = []
        for node in nodes:
            reg = self._registry.get(node.resource_type)
            problems = reg.schema.validate_attributes(node.attributes)
            if not problems and not node.references:
                # Reference-free nodes get full type checking now; the rest
                # are validated once their references resolve.
                problems = _model_errors(reg.model, node.attributes)
            errors.extend(f"{node.address}: {p}" for p in problems)
        if errors:
            raise SchemaViolationError(errors)


def _model_errors(model: type[BaseModel], attrs: dict[str, Any]) -> list[str]:
    try:
        model.model_validate(attrs)
    except PydanticValidationError as exc:
        return [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        ]
    return []
