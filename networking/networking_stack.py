from aws_cdk import CfnOutput, Stack
from constructs import Construct

from backends.cdk import CdkBackend
from common.stack_context import StackContext
from networking import topology
from provisioning.graph import DependencyGraph
from provisioning.provisioner import ApplyOptions, Provisioner


class NetworkingStack(Stack):

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        graph: DependencyGraph | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.context = StackContext()

        self.graph = (
            graph if graph is not None else topology.build_webapp_topology(self.context)
        )
        self.apply_result = self.declare_resources(self.graph)

        nodes = self.graph.nodes
        CfnOutput(self, "AlbDnsName", value=nodes[topology.LOAD_BALANCER].outputs["dns_name"])
        CfnOutput(
            self,
            "AlbUrl",
            value="http://" + nodes[topology.LOAD_BALANCER].outputs["dns_name"],
        )
        CfnOutput(self, "VpcId", value=nodes[topology.VPC].outputs["id"])

    def declare_resources(self, graph: DependencyGraph):
        """Apply the graph into this stack; the construct tree is built sequentially."""
        result = Provisioner().apply(
            graph,
            CdkBackend(self),
            ApplyOptions(max_concurrency=1, rollback_on_failure=True),
        )
        result.raise_for_outcome()
        return result
