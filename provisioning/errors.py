"""
Error taxonomy for graph construction, resolution and apply.

Construction errors abort before any plan exists. Resolution and backend
errors are captured per node and reported in the ApplyResult.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class ErrorKind(str, Enum):
    DUPLICATE_ID = "DuplicateId"
    DANGLING_REFERENCE = "DanglingReference"
    CYCLE_DETECTED = "CycleDetected"
    UNRESOLVED_DEPENDENCY = "UnresolvedDependency"
    MISSING_OUTPUT = "MissingOutput"
    CREATE_FAILED = "CreateFailed"
    ROLLBACK_FAILURE = "RollbackFailure"
    CANCELLED = "Cancelled"


class ProvisioningError(RuntimeError):
    """Base class for every error raised by the provisioning kernel."""

    kind: Optional[ErrorKind] = None


# ---------- construction-time ----------
class GraphConstructionError(ProvisioningError):
    pass


class DuplicateIdError(GraphConstructionError):
    kind = ErrorKind.DUPLICATE_ID

    def __init__(self, node_id: str):
        super().__init__(f"Resource id '{node_id}' is already declared")
        self.node_id = node_id


class DanglingReferenceError(GraphConstructionError):
    kind = ErrorKind.DANGLING_REFERENCE

    def __init__(self, node_id: str, target_id: str):
        super().__init__(
            f"Resource '{node_id}' references undeclared resource '{target_id}'"
        )
        self.node_id = node_id
        self.target_id = target_id


class CycleDetectedError(GraphConstructionError):
    kind = ErrorKind.CYCLE_DETECTED

    def __init__(self, cycle: Sequence[str]):
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = tuple(cycle)


class GraphFinalizedError(GraphConstructionError):
    def __init__(self, node_id: str):
        super().__init__(f"Cannot add '{node_id}': graph is already finalized")
        self.node_id = node_id


class GraphNotFinalizedError(GraphConstructionError):
    def __init__(self):
        super().__init__("Graph must be finalized before planning or applying")


class InvalidTransitionError(ProvisioningError):
    def __init__(self, node_id: str, current: str, requested: str):
        super().__init__(f"Illegal transition for '{node_id}': {current} -> {requested}")
        self.node_id = node_id


class GraphAlreadyAppliedError(ProvisioningError):
    def __init__(self, node_ids: Sequence[str]):
        super().__init__(
            f"Graph has resources that are not pending: {', '.join(node_ids)}"
        )
        self.node_ids = tuple(node_ids)


# ---------- resolver-time ----------
class ResolutionError(ProvisioningError):
    pass


class UnresolvedDependencyError(ResolutionError):
    kind = ErrorKind.UNRESOLVED_DEPENDENCY

    def __init__(self, target_id: str, status: str):
        super().__init__(f"Resource '{target_id}' is {status}, not created")
        self.target_id = target_id
        self.status = status


class MissingOutputError(ResolutionError):
    kind = ErrorKind.MISSING_OUTPUT

    def __init__(self, target_id: str, output_name: str):
        super().__init__(f"Resource '{target_id}' has no output '{output_name}'")
        self.target_id = target_id
        self.output_name = output_name


# ---------- apply-time ----------
class CreateFailedError(ProvisioningError):
    kind = ErrorKind.CREATE_FAILED

    def __init__(self, node_id: str, attempts: int, cause: Optional[BaseException] = None):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Create of '{node_id}' failed after {attempts} attempt(s){detail}")
        self.node_id = node_id
        self.attempts = attempts
        self.cause = cause


class RollbackFailureError(ProvisioningError):
    kind = ErrorKind.ROLLBACK_FAILURE

    def __init__(self, node_id: str, cause: Optional[BaseException] = None):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Rollback of '{node_id}' failed{detail}")
        self.node_id = node_id
        self.cause = cause


class ApplyCancelledError(ProvisioningError):
    kind = ErrorKind.CANCELLED

    def __init__(self, node_id: str):
        super().__init__(f"Create of '{node_id}' was not dispatched: apply cancelled")
        self.node_id = node_id


class ApplyFailedError(ProvisioningError):
    """Raised by ApplyResult.raise_for_outcome when apply did not complete."""

    def __init__(self, result):
        super().__init__(result.summary())
        self.result = result


class RollbackFailedError(ApplyFailedError):
    """Apply failed and rollback left created resources behind."""


# ---------- backend ----------
class UnknownResourceKindError(ProvisioningError):
    def __init__(self, kind: str, backend: str):
        super().__init__(f"{backend} does not know how to handle kind '{kind}'")
        self.resource_kind = kind
