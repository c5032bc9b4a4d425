"""In-memory backend for dry runs and tests: no cloud calls, deterministic ids."""
from __future__ import annotations

import itertools
import os
import threading
from typing import Any, Mapping

from aws_lambda_powertools import Logger

import common.constants as constants
from common.resource_kinds import outputs_for

logger = Logger(
    service=constants.SERVICE_NAME,
    level=os.getenv(constants.LOG_LEVEL_ENV, "INFO").upper(),
)


class InMemoryBackend:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self.resources: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str, str]] = []

    def create(self, kind: str, properties: Mapping[str, Any], *, name: str) -> dict[str, Any]:
        with self._lock:
            resource_id = f"{kind}-{next(self._counter):04d}"
            self.calls.append(("create", kind, name))
            self.resources[resource_id] = {"kind": kind, "name": name, "properties": dict(properties)}
        logger.debug("Dry-run create", kind=kind, name=name, resource_id=resource_id)
        outputs = {**properties, "arn": f"arn:memory:{kind}/{resource_id}", "name": name}
        for output in outputs_for(kind):
            outputs.setdefault(output, f"{resource_id}.{output}")
        outputs[constants.ID_OUTPUT] = resource_id
        return outputs

    def delete(self, kind: str, resource_id: str) -> None:
        with self._lock:
            if resource_id not in self.resources:
                raise KeyError(f"Unknown {kind} '{resource_id}'")
            record = self.resources.pop(resource_id)
            self.calls.append(("delete", kind, record["name"]))
        logger.debug("Dry-run delete", kind=kind, resource_id=resource_id)
