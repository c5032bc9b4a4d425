from __future__ import annotations

from typing import Any, Mapping

from provisioning.errors import MissingOutputError, UnresolvedDependencyError
from provisioning.references import AttributeReference
from provisioning.resource import ResourceStatus


class OutputResolver:
    """Substitutes AttributeReferences with the outputs of created resources.

    Reads node state only. The first unresolvable reference raises.
    """

    def resolve(self, properties: Mapping[str, Any], graph) -> dict[str, Any]:
        return {name: self._resolve_value(value, graph) for name, value in properties.items()}

    def _resolve_value(self, value: Any, graph) -> Any:
        if isinstance(value, AttributeReference):
            return self._lookup(value, graph)
        if isinstance(value, dict):
            return {key: self._resolve_value(item, graph) for key, item in value.items()}
        if isinstance(value, list):
            return [self._resolve_value(item, graph) for item in value]
        if isinstance(value, tuple):
            return tuple(self._resolve_value(item, graph) for item in value)
        return value

    @staticmethod
    def _lookup(reference: AttributeReference, graph) -> Any:
        target = graph.nodes.get(reference.target_id)
        if target is None:
            raise UnresolvedDependencyError(reference.target_id, "undeclared")
        if target.status is not ResourceStatus.CREATED:
            raise UnresolvedDependencyError(target.id, target.status.value)
        if reference.output_name not in target.outputs:
            raise MissingOutputError(target.id, reference.output_name)
        return target.outputs[reference.output_name]
