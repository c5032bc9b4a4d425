from typing import Any, Mapping
import pytest
from aws_cdk.assertions import Template, Match
from stack_test_helpers import (
    RouteTestCase,
    SubnetTestCase,
    build_stack,
    find_resources_by_type,
    template,
    json_template,
)
from governance_checks import (
    assert_private_subnet_compliance,
    assert_security_group_compliance,
)
from provisioning.provisioner import ApplyOutcome
from provisioning.resource import ResourceStatus

# ----------------------------- Resource count smoke test ------------------------

RESOURCES = [
    ("AWS::EC2::VPC", 1),
    ("AWS::EC2::InternetGateway", 1),
    ("AWS::EC2::VPCGatewayAttachment", 1),
    ("AWS::EC2::RouteTable", 2),
    ("AWS::EC2::Route", 2),
    ("AWS::EC2::Subnet", 4),
    ("AWS::EC2::SubnetRouteTableAssociation", 4),
    ("AWS::EC2::EIP", 1),
    ("AWS::EC2::NatGateway", 1),
    ("AWS::EC2::SecurityGroup", 2),
    ("AWS::EC2::KeyPair", 1),
    ("AWS::EC2::Instance", 1),
    ("AWS::EC2::LaunchTemplate", 1),
    ("AWS::ElasticLoadBalancingV2::LoadBalancer", 1),
    ("AWS::ElasticLoadBalancingV2::TargetGroup", 1),
    ("AWS::ElasticLoadBalancingV2::Listener", 1),
    ("AWS::AutoScaling::AutoScalingGroup", 1),
]


@pytest.mark.parametrize("resource_type,expected", RESOURCES)
def test_resource_count(template: Template, resource_type: str, expected: int):
    template.resource_count_is(resource_type, expected)


def test_every_declared_resource_is_created():
    stack = build_stack()

    assert stack.apply_result.outcome is ApplyOutcome.APPLIED
    assert {node.status for node in stack.graph.nodes.values()} == {ResourceStatus.CREATED}


# -------------------------- VPC and routing tests ------------------------


def test_vpc_properties(template: Template):
    template.has_resource_properties(
        "AWS::EC2::VPC",
        {
            "CidrBlock": "10.20.0.0/16",
            "EnableDnsSupport": True,
            "EnableDnsHostnames": True,
            "Tags": Match.array_with(
                [{"Key": "Name", "Value": Match.string_like_regexp(r".*webapp-network-topology-vpc.*")}]
            ),
        },
    )


def test_internet_gateway_attachment(template: Template):
    template.has_resource_properties(
        "AWS::EC2::VPCGatewayAttachment",
        {"VpcId": {"Ref": "TheVPC"}, "InternetGatewayId": {"Ref": "MyIgw"}},
    )


ROUTE_TEST_CASES = (
    RouteTestCase(
        id="public_default_route",
        route_table="PublicRouteTable",
        target_key="GatewayId",
        target="MyIgw",
    ),
    RouteTestCase(
        id="private_nat_route",
        route_table="PrivateRouteTable",
        target_key="NatGatewayId",
        target="NATGateway",
    ),
)


@pytest.mark.parametrize("case", ROUTE_TEST_CASES, ids=lambda test: test.id)
def test_default_routes(template: Template, case: RouteTestCase):
    template.has_resource_properties(
        "AWS::EC2::Route",
        {
            "RouteTableId": {"Ref": case.route_table},
            "DestinationCidrBlock": "0.0.0.0/0",
            case.target_key: {"Ref": case.target},
        },
    )


# -------------------------- Subnet tests ------------------------

SUBNET_TEST_CASES = (
    SubnetTestCase("Subnet1", "us-east-1a", "10.20.1.0/24", True, "PublicRouteTable"),
    SubnetTestCase("Subnet2", "us-east-1b", "10.20.2.0/24", True, "PublicRouteTable"),
    SubnetTestCase("Subnet3", "us-east-1c", "10.20.3.0/24", False, "PrivateRouteTable"),
    SubnetTestCase("Subnet4", "us-east-1d", "10.20.4.0/24", False, "PrivateRouteTable"),
)


@pytest.mark.parametrize("case", SUBNET_TEST_CASES, ids=lambda test: test.id)
def test_subnet_properties(
    json_template: Mapping[str, Any], template: Template, case: SubnetTestCase
):
    props = json_template["Resources"][case.id]["Properties"]
    assert props["VpcId"] == {"Ref": "TheVPC"}
    assert props["AvailabilityZone"] == case.availability_zone
    assert props["CidrBlock"] == case.cidr_block
    assert props["MapPublicIpOnLaunch"] is case.public

    template.has_resource_properties(
        "AWS::EC2::SubnetRouteTableAssociation",
        {"SubnetId": {"Ref": case.id}, "RouteTableId": {"Ref": case.route_table}},
    )


# -------------------------- NAT path tests ------------------------


def test_nat_gateway_uses_eip_in_public_subnet(template: Template):
    template.has_resource_properties(
        "AWS::EC2::NatGateway",
        {
            "SubnetId": {"Ref": "Subnet1"},
            "AllocationId": {"Fn::GetAtt": ["EIP", "AllocationId"]},
        },
    )


# -------------------------- Compute tests ------------------------


def test_instance_security_group_ingress(template: Template):
    template.has_resource_properties(
        "AWS::EC2::SecurityGroup",
        {
            "GroupDescription": "Allow SSH and HTTP inbound traffic",
            "VpcId": {"Ref": "TheVPC"},
            "SecurityGroupIngress": Match.array_with(
                [
                    Match.object_like({"FromPort": 22, "ToPort": 22, "CidrIp": "0.0.0.0/0"}),
                    Match.object_like({"FromPort": 80, "ToPort": 80, "CidrIp": "0.0.0.0/0"}),
                ]
            ),
        },
    )
    assert_security_group_compliance(template)


def test_public_instance_properties(template: Template):
    template.has_resource_properties(
        "AWS::EC2::Instance",
        {
            "InstanceType": "t2.micro",
            "KeyName": {"Ref": "MyEC2KeyPair"},
            "SubnetId": {"Ref": "Subnet1"},
            "SecurityGroupIds": [{"Fn::GetAtt": ["Ec2SecurityGroup", "GroupId"]}],
        },
    )


def test_autoscaling_group_properties(template: Template):
    template.has_resource_properties(
        "AWS::AutoScaling::AutoScalingGroup",
        {
            "MinSize": "2",
            "MaxSize": "4",
            "VPCZoneIdentifier": [{"Ref": "Subnet3"}, {"Ref": "Subnet4"}],
            "LaunchTemplate": {
                "LaunchTemplateId": {"Ref": "LaunchTemplate"},
                "Version": {"Fn::GetAtt": ["LaunchTemplate", "LatestVersionNumber"]},
            },
            "TargetGroupARNs": [{"Ref": "TargetGroup"}],
        },
    )
    assert_private_subnet_compliance(template)


# -------------------------- Load balancer tests ------------------------


def test_load_balancer_properties(template: Template):
    template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::LoadBalancer",
        {
            "Scheme": "internet-facing",
            "Type": "application",
            "Subnets": [{"Ref": "Subnet1"}, {"Ref": "Subnet2"}],
            "SecurityGroups": [{"Fn::GetAtt": ["AlbSecurityGroup", "GroupId"]}],
        },
    )


def test_listener_forwards_to_target_group(template: Template):
    template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::Listener",
        {
            "LoadBalancerArn": {"Ref": "ALB"},
            "Port": 80,
            "Protocol": "HTTP",
            "DefaultActions": [{"Type": "forward", "TargetGroupArn": {"Ref": "TargetGroup"}}],
        },
    )


def test_target_group_properties(template: Template):
    template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::TargetGroup",
        {"Port": 80, "Protocol": "HTTP", "VpcId": {"Ref": "TheVPC"}},
    )


# -------------------------- Output tests ------------------------


def test_alb_dns_name_output(template: Template):
    template.has_output("AlbDnsName", {"Value": {"Fn::GetAtt": ["ALB", "DNSName"]}})
    template.has_output("VpcId", {"Value": {"Ref": "TheVPC"}})


def test_single_vpc_is_declared(template: Template):
    assert list(find_resources_by_type(template, "AWS::EC2::VPC")) == ["TheVPC"]
