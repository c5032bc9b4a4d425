"""
Provisioner: drives a finalized DependencyGraph through a Backend.

Layers run strictly in order. Nodes within a layer are independent and are
created concurrently, bounded by ``max_concurrency``. When a layer ends with
a failed node (or apply is cancelled) no further layer is dispatched and the
rollback policy applies: created nodes are deleted in reverse layer order.
"""
from __future__ import annotations

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from attrs import define, field
from attrs.validators import ge, instance_of, optional
from aws_lambda_powertools import Logger

import common.constants as constants
from provisioning.backend import Backend
from provisioning.errors import (
    ApplyCancelledError,
    ApplyFailedError,
    CreateFailedError,
    ErrorKind,
    GraphAlreadyAppliedError,
    ProvisioningError,
    ResolutionError,
    RollbackFailedError,
    RollbackFailureError,
)
from provisioning.graph import DependencyGraph, Plan
from provisioning.resolver import OutputResolver
from provisioning.resource import ResourceNode, ResourceStatus
from provisioning.retry import Backoff, RetryPolicy

logger = Logger(
    service=constants.SERVICE_NAME,
    level=os.getenv(constants.LOG_LEVEL_ENV, "INFO").upper(),
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@define(slots=True, frozen=True)
class ApplyOptions:
    max_concurrency: Optional[int] = field(
        default=None, validator=optional([instance_of(int), ge(1)])
    )
    rollback_on_failure: bool = field(default=True)
    retry_policy: RetryPolicy = field(factory=RetryPolicy)

    @classmethod
    def from_env(cls) -> "ApplyOptions":
        max_concurrency = os.getenv(constants.MAX_CONCURRENCY_ENV)
        return cls(
            max_concurrency=int(max_concurrency) if max_concurrency else None,
            rollback_on_failure=_env_bool(constants.ROLLBACK_ON_FAILURE_ENV, True),
            retry_policy=RetryPolicy(
                max_attempts=int(
                    os.getenv(constants.MAX_ATTEMPTS_ENV, constants.DEFAULT_MAX_ATTEMPTS)
                ),
                backoff=Backoff(
                    initial=float(
                        os.getenv(
                            constants.BACKOFF_SECONDS_ENV, constants.DEFAULT_BACKOFF_SECONDS
                        )
                    ),
                    multiplier=float(
                        os.getenv(
                            constants.BACKOFF_MULTIPLIER_ENV,
                            constants.DEFAULT_BACKOFF_MULTIPLIER,
                        )
                    ),
                ),
            ),
        )


class ApplyOutcome(str, Enum):
    APPLIED = "Applied"
    ROLLED_BACK = "RolledBack"
    PARTIALLY_APPLIED = "PartiallyApplied"
    ROLLBACK_FAILED = "RollbackFailed"


@define(slots=True, frozen=True)
class NodeFailure:
    node_id: str
    kind: ErrorKind
    error: ProvisioningError


@define(slots=True, frozen=True)
class RollbackFailure:
    node_id: str
    error: RollbackFailureError
    kind: ErrorKind = ErrorKind.ROLLBACK_FAILURE


@define(slots=True, frozen=True)
class ApplyResult:
    outcome: ApplyOutcome
    statuses: Mapping[str, ResourceStatus]
    outputs: Mapping[str, Mapping[str, Any]]
    failures: tuple[NodeFailure, ...] = ()
    rollback_failures: tuple[RollbackFailure, ...] = ()
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome is ApplyOutcome.APPLIED

    def summary(self) -> str:
        if self.succeeded:
            return f"Applied {len(self.statuses)} resource(s)"
        parts = [f"Apply {self.outcome.value}"]
        if self.cancelled:
            parts.append("cancelled")
        parts.extend(f"{failure.node_id}: {failure.kind.value}" for failure in self.failures)
        parts.extend(
            f"{failure.node_id}: {failure.kind.value}" for failure in self.rollback_failures
        )
        return "; ".join(parts)

    def raise_for_outcome(self) -> None:
        if self.outcome is ApplyOutcome.ROLLBACK_FAILED:
            raise RollbackFailedError(self)
        if not self.succeeded:
            raise ApplyFailedError(self)


class Provisioner:
    def __init__(self, resolver: Optional[OutputResolver] = None):
        self.resolver = resolver or OutputResolver()

    def apply(
        self,
        graph: DependencyGraph,
        backend: Backend,
        options: Optional[ApplyOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ApplyResult:
        options = options or ApplyOptions()
        cancel = cancel_event or threading.Event()
        plan = graph.plan()
        not_pending = [
            node.id for node in graph.nodes.values() if node.status is not ResourceStatus.PENDING
        ]
        if not_pending:
            raise GraphAlreadyAppliedError(not_pending)

        logger.info("Applying plan", resources=len(graph), layers=len(plan))
        failures: list[NodeFailure] = []
        cancelled = False
        for index, layer in enumerate(plan):
            if cancel.is_set():
                cancelled = True
                logger.warning("Apply cancelled before layer", layer=index)
                break
            nodes = [graph.nodes[node_id] for node_id in layer]
            logger.info("Dispatching layer", layer=index, resources=list(layer))
            failures.extend(self._run_layer(graph, nodes, backend, options, cancel))
            if cancel.is_set():
                cancelled = True
            if failures or cancelled:
                break

        if not failures and not cancelled:
            logger.info("Apply complete", resources=len(graph))
            return self._result(graph, ApplyOutcome.APPLIED)

        rollback_failures: list[RollbackFailure] = []
        if options.rollback_on_failure:
            rollback_failures = self._rollback(graph, plan, backend, options.retry_policy)
            self._mark_abandoned(graph, failures)
            outcome = ApplyOutcome.ROLLBACK_FAILED if rollback_failures else ApplyOutcome.ROLLED_BACK
        else:
            outcome = ApplyOutcome.PARTIALLY_APPLIED

        result = self._result(graph, outcome, failures, rollback_failures, cancelled)
        if outcome is ApplyOutcome.ROLLBACK_FAILED:
            logger.error("Apply failed and rollback left resources behind", summary=result.summary())
        else:
            logger.error("Apply failed", summary=result.summary())
        return result

    # ---------- layer execution ----------
    def _run_layer(
        self,
        graph: DependencyGraph,
        nodes: list[ResourceNode],
        backend: Backend,
        options: ApplyOptions,
        cancel: threading.Event,
    ) -> list[NodeFailure]:
        work = []
        failures: list[NodeFailure] = []
        for node in nodes:
            node.transition(ResourceStatus.READY)
            try:
                work.append((node, self.resolver.resolve(node.properties, graph)))
            except ResolutionError as exc:
                # Layering guarantees dependencies are created; reaching here is a bug.
                logger.exception("Resolution failed for ready resource", node_id=node.id)
                node.transition(ResourceStatus.FAILED)
                failures.append(NodeFailure(node.id, exc.kind, exc))

        workers = len(work) if options.max_concurrency is None else min(options.max_concurrency, len(work))
        if workers <= 1:
            outcomes = [
                self._create(node, properties, backend, options.retry_policy, cancel)
                for node, properties in work
            ]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="provision") as pool:
                futures = [
                    pool.submit(self._create, node, properties, backend, options.retry_policy, cancel)
                    for node, properties in work
                ]
                outcomes = [future.result() for future in futures]

        failures.extend(failure for failure in outcomes if failure is not None)
        order = {node.id: index for index, node in enumerate(nodes)}
        return sorted(failures, key=lambda failure: order[failure.node_id])

    def _create(
        self,
        node: ResourceNode,
        properties: dict[str, Any],
        backend: Backend,
        policy: RetryPolicy,
        cancel: threading.Event,
    ) -> Optional[NodeFailure]:
        if cancel.is_set():
            node.transition(ResourceStatus.FAILED)
            logger.warning("Create not dispatched, apply cancelled", node_id=node.id)
            error = ApplyCancelledError(node.id)
            return NodeFailure(node.id, error.kind, error)

        node.transition(ResourceStatus.CREATING)
        logger.info("Creating resource", node_id=node.id, kind=node.kind)
        attempts, outputs, cause = _call_with_retry(
            lambda: backend.create(node.kind, properties, name=node.id),
            policy,
            cancel,
            node.id,
        )
        if cause is None and not isinstance(outputs, Mapping):
            cause = ProvisioningError(f"Backend returned {type(outputs).__name__}, not a mapping of outputs")
        elif cause is None and constants.ID_OUTPUT not in outputs:
            cause = ProvisioningError(f"Backend returned no '{constants.ID_OUTPUT}' output")
        if cause is not None:
            node.transition(ResourceStatus.FAILED)
            error = CreateFailedError(node.id, attempts, cause)
            logger.error("Create failed", node_id=node.id, kind=node.kind, attempts=attempts, error=str(cause))
            return NodeFailure(node.id, error.kind, error)

        node.record_outputs(outputs)
        logger.info("Created resource", node_id=node.id, kind=node.kind, resource_id=outputs[constants.ID_OUTPUT])
        return None

    # ---------- rollback ----------
    def _rollback(
        self,
        graph: DependencyGraph,
        plan: Plan,
        backend: Backend,
        policy: RetryPolicy,
    ) -> list[RollbackFailure]:
        failures: list[RollbackFailure] = []
        for layer in reversed(plan.layers):
            for node_id in reversed(layer):
                node = graph.nodes[node_id]
                if node.status is not ResourceStatus.CREATED:
                    continue
                resource_id = node.outputs[constants.ID_OUTPUT]
                logger.info("Rolling back resource", node_id=node.id, kind=node.kind, resource_id=resource_id)
                _, _, cause = _call_with_retry(
                    lambda: backend.delete(node.kind, resource_id), policy, None, node.id
                )
                if cause is None:
                    node.transition(ResourceStatus.ROLLED_BACK)
                    continue
                error = RollbackFailureError(node.id, cause)
                logger.error("Rollback failed, resource orphaned", node_id=node.id, resource_id=resource_id, error=str(cause))
                failures.append(RollbackFailure(node.id, error))
        return failures

    @staticmethod
    def _mark_abandoned(graph: DependencyGraph, failures: list[NodeFailure]) -> None:
        """Failed nodes and everything depending on them end RolledBack."""
        abandoned: list[str] = []
        for failure in failures:
            abandoned.append(failure.node_id)
            abandoned.extend(graph.dependents_of(failure.node_id, transitive=True))
        for node_id in dict.fromkeys(abandoned):
            node = graph.nodes[node_id]
            if node.status in (ResourceStatus.FAILED, ResourceStatus.PENDING, ResourceStatus.READY):
                node.transition(ResourceStatus.ROLLED_BACK)

    @staticmethod
    def _result(
        graph: DependencyGraph,
        outcome: ApplyOutcome,
        failures: list[NodeFailure] = (),
        rollback_failures: list[RollbackFailure] = (),
        cancelled: bool = False,
    ) -> ApplyResult:
        return ApplyResult(
            outcome=outcome,
            statuses={node_id: node.status for node_id, node in graph.nodes.items()},
            outputs={
                node_id: dict(node.outputs)
                for node_id, node in graph.nodes.items()
                if node.status is ResourceStatus.CREATED
            },
            failures=tuple(failures),
            rollback_failures=tuple(rollback_failures),
            cancelled=cancelled,
        )


def _call_with_retry(
    operation: Callable[[], Any],
    policy: RetryPolicy,
    cancel: Optional[threading.Event],
    node_id: str,
) -> tuple[int, Any, Optional[Exception]]:
    """Returns ``(attempts, result, last_error)``; ``last_error`` is None on success."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return attempt, operation(), None
        except Exception as exc:
            if not policy.should_retry(exc, attempt) or (cancel is not None and cancel.is_set()):
                return attempt, None, exc
            delay = policy.backoff.delay(attempt)
            logger.warning("Backend call failed, retrying", node_id=node_id, attempt=attempt, delay=delay, error=str(exc))
            if cancel is None:
                time.sleep(delay)
            elif cancel.wait(delay):
                return attempt, None, exc
