"""
Resource nodes and their lifecycle.

    PENDING -> READY -> CREATING -> CREATED
                             \\-> FAILED
    FAILED / CREATED / PENDING / READY -> ROLLED_BACK (rollback only)
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from attrs import define, field
from attrs.validators import instance_of, min_len

from provisioning.errors import InvalidTransitionError
from provisioning.references import AttributeReference, iter_references


def _kind_value(kind):
    return kind.value if isinstance(kind, Enum) else kind


class ResourceStatus(str, Enum):
    PENDING = "Pending"
    READY = "Ready"
    CREATING = "Creating"
    CREATED = "Created"
    FAILED = "Failed"
    ROLLED_BACK = "RolledBack"


ALLOWED_TRANSITIONS = {
    ResourceStatus.PENDING: {ResourceStatus.READY, ResourceStatus.ROLLED_BACK},
    ResourceStatus.READY: {
        ResourceStatus.CREATING,
        ResourceStatus.FAILED,
        ResourceStatus.ROLLED_BACK,
    },
    ResourceStatus.CREATING: {ResourceStatus.CREATED, ResourceStatus.FAILED},
    ResourceStatus.CREATED: {ResourceStatus.ROLLED_BACK},
    ResourceStatus.FAILED: {ResourceStatus.ROLLED_BACK},
    ResourceStatus.ROLLED_BACK: set(),
}


@define(slots=True)
class ResourceNode:
    id: str = field(validator=[instance_of(str), min_len(1)])
    kind: str = field(converter=_kind_value, validator=[instance_of(str), min_len(1)])
    properties: dict[str, Any] = field(factory=dict, converter=dict)
    status: ResourceStatus = field(default=ResourceStatus.PENDING, init=False)
    outputs: dict[str, Any] = field(factory=dict, init=False)

    @property
    def references(self) -> list[AttributeReference]:
        return [
            reference
            for value in self.properties.values()
            for reference in iter_references(value)
        ]

    @property
    def dependencies(self) -> tuple[str, ...]:
        """Ids this node references, in first-seen order, without repeats."""
        return tuple(dict.fromkeys(reference.target_id for reference in self.references))

    def transition(self, new_state: ResourceStatus) -> None:
        if new_state not in ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidTransitionError(self.id, self.status.value, new_state.value)
        self.status = new_state

    def record_outputs(self, outputs: Mapping[str, Any]) -> None:
        """Store create outputs and mark the node created. Outputs are written once."""
        self.transition(ResourceStatus.CREATED)
        self.outputs = dict(outputs)
