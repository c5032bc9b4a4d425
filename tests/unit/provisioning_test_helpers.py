import threading
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import pytest

from provisioning.graph import DependencyGraph
from provisioning.references import ref
from provisioning.retry import Backoff, RetryPolicy

NO_WAIT_BACKOFF = Backoff(initial=0, multiplier=1, maximum=0)


# ------------------- Fake backends -------------------
@dataclass
class RecordingBackend:
    """Backend double recording call order; failures are keyed by node name."""

    fail_creates: Mapping[str, int] = field(default_factory=dict)
    fail_deletes: frozenset = frozenset()
    delay: float = 0.0
    barrier: Optional[threading.Barrier] = None
    events: list = field(default_factory=list)
    create_attempts: dict = field(default_factory=dict)
    max_in_flight: int = 0
    _in_flight: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def create(self, kind: str, properties: Mapping[str, Any], *, name: str) -> dict[str, Any]:
        with self._lock:
            attempt = self.create_attempts.get(name, 0) + 1
            self.create_attempts[name] = attempt
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
            self.events.append(("create", name, dict(properties)))
        try:
            if self.barrier is not None:
                self.barrier.wait()
            if self.delay:
                time.sleep(self.delay)
            failures = self.fail_creates.get(name, 0)
            if failures < 0 or attempt <= failures:
                raise RuntimeError(f"{name} create failed (attempt {attempt})")
            return {"id": f"{name}-id", "value": f"{name}-value"}
        finally:
            with self._lock:
                self._in_flight -= 1

    def delete(self, kind: str, resource_id: str) -> None:
        name = resource_id.removesuffix("-id")
        with self._lock:
            self.events.append(("delete", name, None))
        if name in self.fail_deletes:
            raise RuntimeError(f"{name} delete failed")

    def created(self) -> list[str]:
        return [name for action, name, _ in self.events if action == "create"]

    def deleted(self) -> list[str]:
        return [name for action, name, _ in self.events if action == "delete"]

    def properties_of(self, name: str) -> Mapping[str, Any]:
        return next(props for action, node, props in self.events if action == "create" and node == name)


ALWAYS = -1


def retry_policy(max_attempts: int) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, backoff=NO_WAIT_BACKOFF)


# ------------------- Graph builders -------------------
def build_chain_graph(finalize: bool = True) -> DependencyGraph:
    """A <- B <- C: C references B's output, B references A's output."""
    graph = DependencyGraph()
    graph.add_node("A", "network", {"cidr": "10.0.0.0/16"})
    graph.add_node("B", "subnet", {"network_id": ref("A", "value")})
    graph.add_node("C", "route", {"subnet_id": ref("B", "value")})
    if finalize:
        graph.finalize()
    return graph


def build_diamond_graph() -> DependencyGraph:
    """net <- (left, right) <- lb"""
    graph = DependencyGraph()
    graph.add_node("net", "network")
    graph.add_node("left", "subnet", {"network_id": ref("net")})
    graph.add_node("right", "subnet", {"network_id": ref("net")})
    graph.add_node("lb", "loadbalancer", {"subnets": [ref("left"), ref("right")]})
    graph.finalize()
    return graph


# ------------------- Pytest Fixtures -------------------
@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def chain_graph() -> DependencyGraph:
    return build_chain_graph()
