from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable


@runtime_checkable
class Backend(Protocol):
    """Creates and deletes one resource at a time.

    ``create`` receives fully resolved properties and the declaring node id as
    ``name``; it returns the produced outputs, which must include ``id``. That
    ``id`` is what ``delete`` later receives. Errors are raised, not returned.
    """

    def create(self, kind: str, properties: Mapping[str, Any], *, name: str) -> Mapping[str, Any]:
        ...

    def delete(self, kind: str, resource_id: str) -> None:
        ...
