import pytest

from backends.memory import InMemoryBackend
from common.stack_context import StackContext
from networking import topology
from provisioning.graph import DependencyGraph
from provisioning.provisioner import ApplyOptions, ApplyOutcome, Provisioner
from provisioning.resource import ResourceStatus


@pytest.fixture
def graph() -> DependencyGraph:
    return topology.build_webapp_topology(StackContext(env="test"))


def test_topology_is_finalized(graph: DependencyGraph):
    assert graph.finalized
    assert len(graph) == 26


def test_first_layer_has_no_dependencies(graph: DependencyGraph):
    first_layer = graph.plan().layers[0]

    assert first_layer == ("TheVPC", "MyIgw", "EIP", "MyEC2KeyPair")


@pytest.mark.parametrize(
    "before,after",
    [
        ("TheVPC", "Subnet1"),
        ("MyIgw", "DefaultRoute"),
        ("EIP", "NATGateway"),
        ("Subnet1", "NATGateway"),
        ("NATGateway", "PrivateRoute"),
        ("TargetGroup", "ASG"),
        ("LaunchTemplate", "ASG"),
        ("ALB", "Listener"),
        ("TargetGroup", "Listener"),
        ("Ec2SecurityGroup", "LaunchTemplate"),
    ],
)
def test_creation_order(graph: DependencyGraph, before: str, after: str):
    plan = graph.plan()

    assert plan.layer_of(before) < plan.layer_of(after)


def test_dry_run_applies_whole_topology(graph: DependencyGraph):
    backend = InMemoryBackend()

    result = Provisioner().apply(graph, backend, ApplyOptions(max_concurrency=4))

    assert result.outcome is ApplyOutcome.APPLIED
    assert len(backend.resources) == 26
    nat = graph.nodes["NATGateway"]
    assert nat.status is ResourceStatus.CREATED
    eip_outputs = graph.nodes["EIP"].outputs
    assert backend.resources[nat.outputs["id"]]["properties"]["AllocationId"] == eip_outputs["allocation_id"]
    asg = backend.resources[graph.nodes["ASG"].outputs["id"]]["properties"]
    assert asg["VPCZoneIdentifier"] == [
        graph.nodes["Subnet3"].outputs["id"],
        graph.nodes["Subnet4"].outputs["id"],
    ]


def test_dry_run_rollback_leaves_nothing_behind(graph: DependencyGraph):
    class FailingListenerBackend(InMemoryBackend):
        def create(self, kind, properties, *, name):
            if name == topology.LISTENER:
                raise RuntimeError("listener quota exceeded")
            return super().create(kind, properties, name=name)

    backend = FailingListenerBackend()

    result = Provisioner().apply(graph, backend)

    assert result.outcome is ApplyOutcome.ROLLED_BACK
    assert backend.resources == {}
    assert result.failures[0].node_id == topology.LISTENER
    deletes = [name for action, _, name in backend.calls if action == "delete"]
    assert deletes.index("ALB") < deletes.index("TheVPC")
    assert deletes[-1] in graph.plan().layers[0]


def test_stack_context_naming():
    context = StackContext(env="prod")

    assert context.build_resource_name("vpc") == "webapp-network-topology-vpc-prod"
    assert context.build_resource_name("RouteTable", "public") == "webapp-network-topology-public-routetable-prod"
    assert context.build_short_name("alb") == "webapp-alb-prod"
    assert {"Key": "Environment", "Value": "prod"} in context.build_tags("vpc")
