"""
Backend that declares each resource as a CloudFormation L1 construct in a CDK stack.

Outputs are CDK tokens (``Ref`` / ``Fn::GetAtt``) that resolve at deploy time,
so dependent resources can be declared as soon as their dependencies exist in
the construct tree.
"""
from __future__ import annotations

import os
import threading
from typing import Any, Mapping, Optional

from aws_cdk import CfnResource, Token
from aws_lambda_powertools import Logger
from constructs import Construct

import common.constants as constants
from common.resource_kinds import ResourceKind
from provisioning.errors import UnknownResourceKindError

logger = Logger(
    service=constants.SERVICE_NAME,
    level=os.getenv(constants.LOG_LEVEL_ENV, "INFO").upper(),
)

# kind -> (CloudFormation type, {output: attribute, None meaning Ref})
CFN_CATALOGUE: dict[ResourceKind, tuple[str, dict[str, Optional[str]]]] = {
    ResourceKind.VPC: ("AWS::EC2::VPC", {"id": None, "cidr_block": "CidrBlock"}),
    ResourceKind.INTERNET_GATEWAY: ("AWS::EC2::InternetGateway", {"id": None}),
    ResourceKind.VPC_GATEWAY_ATTACHMENT: ("AWS::EC2::VPCGatewayAttachment", {"id": None}),
    ResourceKind.ROUTE_TABLE: ("AWS::EC2::RouteTable", {"id": None}),
    ResourceKind.ROUTE: ("AWS::EC2::Route", {"id": None}),
    ResourceKind.SUBNET: (
        "AWS::EC2::Subnet",
        {"id": None, "availability_zone": "AvailabilityZone"},
    ),
    ResourceKind.SUBNET_ROUTE_TABLE_ASSOCIATION: (
        "AWS::EC2::SubnetRouteTableAssociation",
        {"id": None},
    ),
    ResourceKind.EIP: (
        "AWS::EC2::EIP",
        {"id": None, "allocation_id": "AllocationId", "public_ip": "PublicIp"},
    ),
    ResourceKind.NAT_GATEWAY: ("AWS::EC2::NatGateway", {"id": None}),
    ResourceKind.SECURITY_GROUP: ("AWS::EC2::SecurityGroup", {"id": "GroupId"}),
    ResourceKind.KEY_PAIR: ("AWS::EC2::KeyPair", {"id": None, "key_pair_id": "KeyPairId"}),
    ResourceKind.INSTANCE: ("AWS::EC2::Instance", {"id": None, "private_ip": "PrivateIp"}),
    ResourceKind.LOAD_BALANCER: (
        "AWS::ElasticLoadBalancingV2::LoadBalancer",
        {"id": None, "arn": None, "dns_name": "DNSName"},
    ),
    ResourceKind.TARGET_GROUP: (
        "AWS::ElasticLoadBalancingV2::TargetGroup",
        {"id": None, "arn": None},
    ),
    ResourceKind.LISTENER: (
        "AWS::ElasticLoadBalancingV2::Listener",
        {"id": None, "arn": None},
    ),
    ResourceKind.LAUNCH_TEMPLATE: (
        "AWS::EC2::LaunchTemplate",
        {"id": None, "latest_version": "LatestVersionNumber"},
    ),
    ResourceKind.AUTOSCALING_GROUP: ("AWS::AutoScaling::AutoScalingGroup", {"id": None}),
}


class CdkBackend:
    """Declares resources into ``scope``; deleting removes the construct again.

    The construct tree is not thread-safe, so every call is serialized.
    """

    def __init__(self, scope: Construct):
        self.scope = scope
        self._lock = threading.Lock()
        self._construct_ids: dict[str, str] = {}

    def create(self, kind: str, properties: Mapping[str, Any], *, name: str) -> dict[str, Any]:
        cfn_type, attributes = self._lookup(kind)
        with self._lock:
            resource = CfnResource(self.scope, name, type=cfn_type, properties=dict(properties))
            outputs = {
                output: resource.ref if attribute is None else Token.as_string(resource.get_att(attribute))
                for output, attribute in attributes.items()
            }
            self._construct_ids[outputs[constants.ID_OUTPUT]] = name
        logger.debug("Declared CloudFormation resource", name=name, type=cfn_type)
        return outputs

    def delete(self, kind: str, resource_id: str) -> None:
        self._lookup(kind)
        with self._lock:
            name = self._construct_ids.pop(resource_id, None)
            if name is None or not self.scope.node.try_remove_child(name):
                raise KeyError(f"No {kind} construct for '{resource_id}'")
        logger.debug("Removed CloudFormation resource", name=name)

    @staticmethod
    def _lookup(kind: str) -> tuple[str, dict[str, Optional[str]]]:
        try:
            return CFN_CATALOGUE[ResourceKind(kind)]
        except ValueError:
            raise UnknownResourceKindError(kind, "CdkBackend") from None
