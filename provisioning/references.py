from __future__ import annotations

from typing import Any, Iterator

from attrs import define, field
from attrs.validators import instance_of, min_len


@define(slots=True, frozen=True)
class AttributeReference:
    """The value of output ``output_name`` on resource ``target_id``, once it exists."""

    target_id: str = field(validator=[instance_of(str), min_len(1)])
    output_name: str = field(validator=[instance_of(str), min_len(1)])

    def __str__(self) -> str:
        return f"${{{self.target_id}.{self.output_name}}}"


def ref(target_id: str, output_name: str = "id") -> AttributeReference:
    return AttributeReference(target_id=target_id, output_name=output_name)


def iter_references(value: Any) -> Iterator[AttributeReference]:
    """Yield every reference in a property value, walking lists, tuples and mappings."""
    if isinstance(value, AttributeReference):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_references(item)
