import pytest

from provisioning.errors import ErrorKind, MissingOutputError, UnresolvedDependencyError
from provisioning.graph import DependencyGraph
from provisioning.references import ref
from provisioning.resolver import OutputResolver
from provisioning.resource import ResourceStatus


def created(graph: DependencyGraph, node_id: str, outputs: dict) -> None:
    node = graph.nodes[node_id]
    node.transition(ResourceStatus.READY)
    node.transition(ResourceStatus.CREATING)
    node.record_outputs(outputs)


@pytest.fixture
def graph() -> DependencyGraph:
    graph = DependencyGraph()
    graph.add_node("igw", "gateway")
    graph.add_node("vpc", "network")
    graph.add_node(
        "route",
        "route",
        {
            "cidr": "0.0.0.0/0",
            "gateway_id": ref("igw", "id"),
            "tags": [{"Key": "Name", "Value": "default"}],
            "targets": {"vpc": [ref("vpc", "id")]},
        },
    )
    graph.finalize()
    return graph


def test_literals_and_references_are_resolved(graph: DependencyGraph):
    created(graph, "igw", {"id": "igw-123"})
    created(graph, "vpc", {"id": "vpc-456"})

    resolved = OutputResolver().resolve(graph.nodes["route"].properties, graph)

    assert resolved == {
        "cidr": "0.0.0.0/0",
        "gateway_id": "igw-123",
        "tags": [{"Key": "Name", "Value": "default"}],
        "targets": {"vpc": ["vpc-456"]},
    }


def test_target_not_created_is_unresolved(graph: DependencyGraph):
    with pytest.raises(UnresolvedDependencyError) as excinfo:
        OutputResolver().resolve(graph.nodes["route"].properties, graph)

    assert excinfo.value.target_id == "igw"
    assert excinfo.value.kind is ErrorKind.UNRESOLVED_DEPENDENCY


def test_missing_output_is_reported(graph: DependencyGraph):
    created(graph, "igw", {"arn": "arn:aws:ec2:igw"})
    created(graph, "vpc", {"id": "vpc-456"})

    with pytest.raises(MissingOutputError) as excinfo:
        OutputResolver().resolve(graph.nodes["route"].properties, graph)

    assert (excinfo.value.target_id, excinfo.value.output_name) == ("igw", "id")


def test_resolve_does_not_mutate_graph(graph: DependencyGraph):
    created(graph, "igw", {"id": "igw-123"})
    created(graph, "vpc", {"id": "vpc-456"})
    before = {node_id: (node.status, dict(node.outputs)) for node_id, node in graph.nodes.items()}
    properties = graph.nodes["route"].properties

    OutputResolver().resolve(properties, graph)

    assert {node_id: (node.status, dict(node.outputs)) for node_id, node in graph.nodes.items()} == before
    assert properties["gateway_id"] == ref("igw", "id")


def test_undeclared_target_is_unresolved():
    graph = DependencyGraph()
    graph.add_node("route", "route", {"gateway_id": ref("igw")})

    with pytest.raises(UnresolvedDependencyError) as excinfo:
        OutputResolver().resolve(graph.nodes["route"].properties, graph)

    assert (excinfo.value.target_id, excinfo.value.status) == ("igw", "undeclared")
