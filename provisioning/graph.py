"""
Dependency graph of declared resources.

Edges are derived from the AttributeReferences found in node properties:
``A -> B`` exists when A references an output of B. The graph is declared,
then finalized (dangling references and cycles are rejected), then planned
into layers that can each be created concurrently.
"""
from __future__ import annotations

import os
import threading
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional

from attrs import define, field
from aws_lambda_powertools import Logger

import common.constants as constants
from provisioning.errors import (
    CycleDetectedError,
    DanglingReferenceError,
    DuplicateIdError,
    GraphFinalizedError,
    GraphNotFinalizedError,
)
from provisioning.resource import ResourceNode

if TYPE_CHECKING:
    from provisioning.backend import Backend
    from provisioning.provisioner import ApplyOptions, ApplyResult

logger = Logger(
    service=constants.SERVICE_NAME,
    level=os.getenv(constants.LOG_LEVEL_ENV, "INFO").upper(),
)


@define(slots=True, frozen=True)
class Plan:
    """Ordered layers; layer k only depends on layers 0..k-1."""

    layers: tuple[tuple[str, ...], ...] = field(converter=lambda ls: tuple(tuple(layer) for layer in ls))

    def __iter__(self):
        return iter(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    @property
    def node_ids(self) -> list[str]:
        return [node_id for layer in self.layers for node_id in layer]

    def layer_of(self, node_id: str) -> int:
        for index, layer in enumerate(self.layers):
            if node_id in layer:
                return index
        raise KeyError(node_id)


class DependencyGraph:
    def __init__(self) -> None:
        self._nodes: dict[str, ResourceNode] = {}
        self._finalized = False

    # ---------- declaration ----------
    def add(self, node: ResourceNode) -> ResourceNode:
        if self._finalized:
            raise GraphFinalizedError(node.id)
        if node.id in self._nodes:
            raise DuplicateIdError(node.id)
        self._nodes[node.id] = node
        return node

    def add_node(
        self, node_id: str, kind: str, properties: Optional[Mapping[str, Any]] = None
    ) -> ResourceNode:
        return self.add(ResourceNode(id=node_id, kind=kind, properties=properties or {}))

    @property
    def nodes(self) -> Mapping[str, ResourceNode]:
        return MappingProxyType(self._nodes)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # ---------- edges ----------
    @property
    def edges(self) -> list[tuple[str, str]]:
        """``(dependent, dependency)`` pairs in declaration order."""
        return [
            (node.id, target)
            for node in self._nodes.values()
            for target in node.dependencies
        ]

    def dependencies_of(self, node_id: str) -> tuple[str, ...]:
        return self._nodes[node_id].dependencies

    def dependents_of(self, node_id: str, transitive: bool = False) -> list[str]:
        """Nodes referencing ``node_id``, in declaration order."""
        found: set[str] = set()
        frontier = [node_id]
        while frontier:
            current = frontier.pop()
            for node in self._nodes.values():
                if current in node.dependencies and node.id not in found:
                    found.add(node.id)
                    if transitive:
                        frontier.append(node.id)
        return [node_id for node_id in self._nodes if node_id in found]

    # ---------- validation ----------
    def finalize(self) -> None:
        if self._finalized:
            return
        for node in self._nodes.values():
            for target in node.dependencies:
                if target not in self._nodes:
                    raise DanglingReferenceError(node.id, target)
        cycle = self._find_cycle()
        if cycle:
            raise CycleDetectedError(cycle)
        self._finalized = True
        logger.debug("Graph finalized", nodes=len(self._nodes), edges=len(self.edges))

    def _find_cycle(self) -> Optional[list[str]]:
        """Depth-first search in declaration order; returns ``[a, b, ..., a]`` or None."""
        visiting, done = set(), set()
        path: list[str] = []

        def visit(node_id: str) -> Optional[list[str]]:
            visiting.add(node_id)
            path.append(node_id)
            for target in self._nodes[node_id].dependencies:
                if target in visiting:
                    return path[path.index(target):] + [target]
                if target not in done:
                    cycle = visit(target)
                    if cycle:
                        return cycle
            visiting.discard(node_id)
            done.add(node_id)
            path.pop()
            return None

        for node_id in self._nodes:
            if node_id not in done:
                cycle = visit(node_id)
                if cycle:
                    return cycle
        return None

    # ---------- planning ----------
    def plan(self) -> Plan:
        """Kahn's algorithm; ties within a layer keep declaration order."""
        if not self._finalized:
            raise GraphNotFinalizedError()
        remaining = {node_id: set(node.dependencies) for node_id, node in self._nodes.items()}
        layers = []
        while remaining:
            layer = [node_id for node_id, deps in remaining.items() if not deps]
            for node_id in layer:
                del remaining[node_id]
            for deps in remaining.values():
                deps.difference_update(layer)
            layers.append(layer)
        return Plan(layers=layers)

    def apply(
        self,
        backend: Backend,
        options: Optional[ApplyOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ApplyResult:
        from provisioning.provisioner import Provisioner

        return Provisioner().apply(self, backend, options, cancel_event=cancel_event)
