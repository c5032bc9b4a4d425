"""
Web application network topology as a dependency graph.

VPC with an internet gateway, public and private route tables, two public and
two private subnets, a NAT gateway for private egress, a public instance, an
internet-facing application load balancer and an autoscaling group behind it.
"""
from typing import Optional

import common.constants as constants
from common.resource_kinds import ResourceKind
from common.stack_context import StackContext
from provisioning.graph import DependencyGraph
from provisioning.references import ref

VPC = "TheVPC"
INTERNET_GATEWAY = "MyIgw"
PUBLIC_ROUTE_TABLE = "PublicRouteTable"
PRIVATE_ROUTE_TABLE = "PrivateRouteTable"
NAT_GATEWAY = "NATGateway"
INSTANCE_SECURITY_GROUP = "Ec2SecurityGroup"
ALB_SECURITY_GROUP = "AlbSecurityGroup"
LOAD_BALANCER = "ALB"
TARGET_GROUP = "TargetGroup"
LAUNCH_TEMPLATE = "LaunchTemplate"
AUTOSCALING_GROUP = "ASG"
LISTENER = "Listener"


def _ingress(port: int, description: str) -> dict:
    return {
        "IpProtocol": "tcp",
        "FromPort": port,
        "ToPort": port,
        "CidrIp": constants.ANY_IPV4_CIDR,
        "Description": description,
    }


def build_webapp_topology(
    context: Optional[StackContext] = None, graph: Optional[DependencyGraph] = None
) -> DependencyGraph:
    """Declare the topology and return the finalized graph."""
    context = context or StackContext()
    graph = graph if graph is not None else DependencyGraph()

    graph.add_node(
        VPC,
        ResourceKind.VPC,
        {
            "CidrBlock": constants.VPC_CIDR,
            "EnableDnsSupport": True,
            "EnableDnsHostnames": True,
            "Tags": context.build_tags("vpc"),
        },
    )
    _build_internet_path(graph, context)
    public_subnets = _build_subnets(
        graph, context, constants.PUBLIC_SUBNETS, PUBLIC_ROUTE_TABLE, public=True
    )
    private_subnets = _build_subnets(
        graph, context, constants.PRIVATE_SUBNETS, PRIVATE_ROUTE_TABLE, public=False
    )
    _build_nat_path(graph, context, public_subnets[0])
    _build_public_instance(graph, context, public_subnets[0])
    _build_load_balancer(graph, context, public_subnets)
    _build_autoscaling_group(graph, context, private_subnets)

    graph.finalize()
    return graph


def _build_internet_path(graph: DependencyGraph, context: StackContext) -> None:
    graph.add_node(
        INTERNET_GATEWAY,
        ResourceKind.INTERNET_GATEWAY,
        {"Tags": context.build_tags("igw")},
    )
    graph.add_node(
        "MyIgwAttachment",
        ResourceKind.VPC_GATEWAY_ATTACHMENT,
        {"VpcId": ref(VPC), "InternetGatewayId": ref(INTERNET_GATEWAY)},
    )
    for route_table, action in ((PUBLIC_ROUTE_TABLE, "public"), (PRIVATE_ROUTE_TABLE, "private")):
        graph.add_node(
            route_table,
            ResourceKind.ROUTE_TABLE,
            {"VpcId": ref(VPC), "Tags": context.build_tags("routetable", action)},
        )
    graph.add_node(
        "DefaultRoute",
        ResourceKind.ROUTE,
        {
            "RouteTableId": ref(PUBLIC_ROUTE_TABLE),
            "DestinationCidrBlock": constants.ANY_IPV4_CIDR,
            "GatewayId": ref(INTERNET_GATEWAY),
        },
    )


def _build_subnets(
    graph: DependencyGraph,
    context: StackContext,
    layout: tuple,
    route_table: str,
    public: bool,
) -> list[str]:
    subnet_ids = []
    for subnet_id, availability_zone, cidr_block in layout:
        graph.add_node(
            subnet_id,
            ResourceKind.SUBNET,
            {
                "VpcId": ref(VPC),
                "AvailabilityZone": availability_zone,
                "CidrBlock": cidr_block,
                "MapPublicIpOnLaunch": public,
                "Tags": context.build_tags("subnet", subnet_id),
            },
        )
        graph.add_node(
            f"{subnet_id}RouteTableAssociation",
            ResourceKind.SUBNET_ROUTE_TABLE_ASSOCIATION,
            {"SubnetId": ref(subnet_id), "RouteTableId": ref(route_table)},
        )
        subnet_ids.append(subnet_id)
    return subnet_ids


def _build_nat_path(graph: DependencyGraph, context: StackContext, subnet_id: str) -> None:
    graph.add_node("EIP", ResourceKind.EIP, {"Domain": "vpc", "Tags": context.build_tags("eip")})
    graph.add_node(
        NAT_GATEWAY,
        ResourceKind.NAT_GATEWAY,
        {
            "SubnetId": ref(subnet_id),
            "AllocationId": ref("EIP", "allocation_id"),
            "Tags": context.build_tags("natgateway"),
        },
    )
    graph.add_node(
        "PrivateRoute",
        ResourceKind.ROUTE,
        {
            "RouteTableId": ref(PRIVATE_ROUTE_TABLE),
            "DestinationCidrBlock": constants.ANY_IPV4_CIDR,
            "NatGatewayId": ref(NAT_GATEWAY),
        },
    )


def _build_public_instance(graph: DependencyGraph, context: StackContext, subnet_id: str) -> None:
    graph.add_node(
        INSTANCE_SECURITY_GROUP,
        ResourceKind.SECURITY_GROUP,
        {
            "GroupDescription": "Allow SSH and HTTP inbound traffic",
            "VpcId": ref(VPC),
            "SecurityGroupIngress": [
                _ingress(constants.SSH_PORT, "Allow SSH"),
                _ingress(constants.HTTP_PORT, "Allow HTTP"),
            ],
            "Tags": context.build_tags("securitygroup", "instance"),
        },
    )
    graph.add_node(
        "MyEC2KeyPair",
        ResourceKind.KEY_PAIR,
        {"KeyName": constants.KEY_PAIR_NAME, "Tags": context.build_tags("keypair")},
    )
    graph.add_node(
        "Ec2InstancePublic",
        ResourceKind.INSTANCE,
        {
            "ImageId": constants.AMAZON_LINUX_AMI,
            "InstanceType": constants.INSTANCE_TYPE,
            "KeyName": ref("MyEC2KeyPair"),
            "SubnetId": ref(subnet_id),
            "SecurityGroupIds": [ref(INSTANCE_SECURITY_GROUP)],
            "Tags": context.build_tags("instance", "public"),
        },
    )


def _build_load_balancer(graph: DependencyGraph, context: StackContext, subnet_ids: list[str]) -> None:
    graph.add_node(
        ALB_SECURITY_GROUP,
        ResourceKind.SECURITY_GROUP,
        {
            "GroupDescription": "Allow HTTP inbound traffic to the load balancer",
            "VpcId": ref(VPC),
            "SecurityGroupIngress": [_ingress(constants.HTTP_PORT, "Allow HTTP inbound")],
            "Tags": context.build_tags("securitygroup", "alb"),
        },
    )
    graph.add_node(
        LOAD_BALANCER,
        ResourceKind.LOAD_BALANCER,
        {
            "Name": context.build_short_name("alb"),
            "Scheme": "internet-facing",
            "Type": "application",
            "Subnets": [ref(subnet_id) for subnet_id in subnet_ids],
            "SecurityGroups": [ref(ALB_SECURITY_GROUP)],
        },
    )
    graph.add_node(
        TARGET_GROUP,
        ResourceKind.TARGET_GROUP,
        {
            "Name": context.build_short_name("tg"),
            "Port": constants.HTTP_PORT,
            "Protocol": "HTTP",
            "TargetType": "instance",
            "VpcId": ref(VPC),
        },
    )
    graph.add_node(
        LISTENER,
        ResourceKind.LISTENER,
        {
            "LoadBalancerArn": ref(LOAD_BALANCER, "arn"),
            "Port": constants.HTTP_PORT,
            "Protocol": "HTTP",
            "DefaultActions": [{"Type": "forward", "TargetGroupArn": ref(TARGET_GROUP, "arn")}],
        },
    )


def _build_autoscaling_group(graph: DependencyGraph, context: StackContext, subnet_ids: list[str]) -> None:
    graph.add_node(
        LAUNCH_TEMPLATE,
        ResourceKind.LAUNCH_TEMPLATE,
        {
            "LaunchTemplateName": context.build_resource_name("launchtemplate"),
            "LaunchTemplateData": {
                "ImageId": constants.AMAZON_LINUX_AMI,
                "InstanceType": constants.INSTANCE_TYPE,
                "SecurityGroupIds": [ref(INSTANCE_SECURITY_GROUP)],
            },
        },
    )
    # Registering with the target group is an ordinary edge on its ARN.
    graph.add_node(
        AUTOSCALING_GROUP,
        ResourceKind.AUTOSCALING_GROUP,
        {
            "MinSize": str(constants.ASG_MIN_CAPACITY),
            "MaxSize": str(constants.ASG_MAX_CAPACITY),
            "VPCZoneIdentifier": [ref(subnet_id) for subnet_id in subnet_ids],
            "LaunchTemplate": {
                "LaunchTemplateId": ref(LAUNCH_TEMPLATE),
                "Version": ref(LAUNCH_TEMPLATE, "latest_version"),
            },
            "TargetGroupARNs": [ref(TARGET_GROUP, "arn")],
        },
    )
