"""
Backend that creates resources live through boto3 (EC2, ELBv2, Auto Scaling).

Properties use CloudFormation property names so the same topology can be
synthesized through CdkBackend or applied directly here. Each kind maps to
one ``_create_<kind>`` / ``_delete_<kind>`` pair.
"""
from __future__ import annotations

import os
from typing import Any, Callable, Mapping, Optional

import boto3
from aws_lambda_powertools import Logger, Tracer

import common.constants as constants
from common.resource_kinds import ResourceKind
from provisioning.errors import UnknownResourceKindError

logger = Logger(
    service=constants.SERVICE_NAME,
    level=os.getenv(constants.LOG_LEVEL_ENV, "INFO").upper(),
)
tracer = Tracer(service=constants.SERVICE_NAME)

# Separator for ids composed of several AWS identifiers
ID_SEPARATOR = "|"

# SSM parameter path holding created key pair private keys
KEY_MATERIAL_PARAMETER_PREFIX = "/ec2/keypair"

TAG_RESOURCE_TYPES = {
    ResourceKind.VPC: "vpc",
    ResourceKind.INTERNET_GATEWAY: "internet-gateway",
    ResourceKind.ROUTE_TABLE: "route-table",
    ResourceKind.SUBNET: "subnet",
    ResourceKind.EIP: "elastic-ip",
    ResourceKind.NAT_GATEWAY: "natgateway",
    ResourceKind.SECURITY_GROUP: "security-group",
    ResourceKind.KEY_PAIR: "key-pair",
    ResourceKind.INSTANCE: "instance",
    ResourceKind.LAUNCH_TEMPLATE: "launch-template",
}


def _tag_specifications(kind: ResourceKind, props: Mapping[str, Any]) -> list[dict[str, Any]]:
    tags = props.get("Tags")
    if not tags:
        return []
    return [{"ResourceType": TAG_RESOURCE_TYPES[kind], "Tags": list(tags)}]


def _ip_permissions(rules: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Translate CloudFormation ingress rules into EC2 IpPermissions."""
    permissions = []
    for rule in rules:
        ip_range = {"CidrIp": rule["CidrIp"]}
        if rule.get("Description"):
            ip_range["Description"] = rule["Description"]
        permissions.append(
            {
                "IpProtocol": rule.get("IpProtocol", "tcp"),
                "FromPort": int(rule["FromPort"]),
                "ToPort": int(rule["ToPort"]),
                "IpRanges": [ip_range],
            }
        )
    return permissions


class Ec2Backend:
    def __init__(self, session: Optional[boto3.session.Session] = None, wait: bool = True):
        session = session or boto3.session.Session()
        self.ec2 = session.client("ec2")
        self.elbv2 = session.client("elbv2")
        self.autoscaling = session.client("autoscaling")
        self.ssm = session.client("ssm")
        self.wait = wait

    @tracer.capture_method
    def create(self, kind: str, properties: Mapping[str, Any], *, name: str) -> dict[str, Any]:
        handler = self._handler("create", kind)
        logger.info("Calling AWS create", kind=kind, name=name)
        return handler(dict(properties), name)

    @tracer.capture_method
    def delete(self, kind: str, resource_id: str) -> None:
        handler = self._handler("delete", kind)
        logger.info("Calling AWS delete", kind=kind, resource_id=resource_id)
        handler(resource_id)

    def _handler(self, action: str, kind: str) -> Callable[..., Any]:
        try:
            resource_kind = ResourceKind(kind)
        except ValueError:
            raise UnknownResourceKindError(kind, "Ec2Backend") from None
        return getattr(self, f"_{action}_{resource_kind.value}")

    # ---------- network ----------
    def _create_vpc(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        vpc = self.ec2.create_vpc(
            CidrBlock=props["CidrBlock"],
            TagSpecifications=_tag_specifications(ResourceKind.VPC, props),
        )["Vpc"]
        for attribute in ("EnableDnsSupport", "EnableDnsHostnames"):
            if attribute in props:
                self.ec2.modify_vpc_attribute(
                    VpcId=vpc["VpcId"], **{attribute: {"Value": bool(props[attribute])}}
                )
        return {"id": vpc["VpcId"], "cidr_block": vpc["CidrBlock"]}

    def _delete_vpc(self, resource_id: str) -> None:
        self.ec2.delete_vpc(VpcId=resource_id)

    def _create_internet_gateway(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        gateway = self.ec2.create_internet_gateway(
            TagSpecifications=_tag_specifications(ResourceKind.INTERNET_GATEWAY, props),
        )["InternetGateway"]
        return {"id": gateway["InternetGatewayId"]}

    def _delete_internet_gateway(self, resource_id: str) -> None:
        self.ec2.delete_internet_gateway(InternetGatewayId=resource_id)

    def _create_vpc_gateway_attachment(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        self.ec2.attach_internet_gateway(
            InternetGatewayId=props["InternetGatewayId"], VpcId=props["VpcId"]
        )
        return {"id": ID_SEPARATOR.join((props["InternetGatewayId"], props["VpcId"]))}

    def _delete_vpc_gateway_attachment(self, resource_id: str) -> None:
        gateway_id, vpc_id = resource_id.split(ID_SEPARATOR)
        self.ec2.detach_internet_gateway(InternetGatewayId=gateway_id, VpcId=vpc_id)

    def _create_route_table(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        table = self.ec2.create_route_table(
            VpcId=props["VpcId"],
            TagSpecifications=_tag_specifications(ResourceKind.ROUTE_TABLE, props),
        )["RouteTable"]
        return {"id": table["RouteTableId"]}

    def _delete_route_table(self, resource_id: str) -> None:
        self.ec2.delete_route_table(RouteTableId=resource_id)

    def _create_route(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        targets = {
            key: props[key]
            for key in ("GatewayId", "NatGatewayId", "InstanceId")
            if key in props
        }
        self.ec2.create_route(
            RouteTableId=props["RouteTableId"],
            DestinationCidrBlock=props["DestinationCidrBlock"],
            **targets,
        )
        return {"id": ID_SEPARATOR.join((props["RouteTableId"], props["DestinationCidrBlock"]))}

    def _delete_route(self, resource_id: str) -> None:
        table_id, destination = resource_id.split(ID_SEPARATOR)
        self.ec2.delete_route(RouteTableId=table_id, DestinationCidrBlock=destination)

    def _create_subnet(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        subnet = self.ec2.create_subnet(
            VpcId=props["VpcId"],
            CidrBlock=props["CidrBlock"],
            AvailabilityZone=props["AvailabilityZone"],
            TagSpecifications=_tag_specifications(ResourceKind.SUBNET, props),
        )["Subnet"]
        if props.get("MapPublicIpOnLaunch"):
            self.ec2.modify_subnet_attribute(
                SubnetId=subnet["SubnetId"], MapPublicIpOnLaunch={"Value": True}
            )
        return {"id": subnet["SubnetId"], "availability_zone": subnet["AvailabilityZone"]}

    def _delete_subnet(self, resource_id: str) -> None:
        self.ec2.delete_subnet(SubnetId=resource_id)

    def _create_subnet_route_table_association(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        response = self.ec2.associate_route_table(
            SubnetId=props["SubnetId"], RouteTableId=props["RouteTableId"]
        )
        return {"id": response["AssociationId"]}

    def _delete_subnet_route_table_association(self, resource_id: str) -> None:
        self.ec2.disassociate_route_table(AssociationId=resource_id)

    # ---------- NAT path ----------
    def _create_eip(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        address = self.ec2.allocate_address(
            Domain=props.get("Domain", "vpc"),
            TagSpecifications=_tag_specifications(ResourceKind.EIP, props),
        )
        return {
            "id": address["AllocationId"],
            "allocation_id": address["AllocationId"],
            "public_ip": address["PublicIp"],
        }

    def _delete_eip(self, resource_id: str) -> None:
        self.ec2.release_address(AllocationId=resource_id)

    def _create_nat_gateway(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        gateway = self.ec2.create_nat_gateway(
            SubnetId=props["SubnetId"],
            AllocationId=props["AllocationId"],
            TagSpecifications=_tag_specifications(ResourceKind.NAT_GATEWAY, props),
        )["NatGateway"]
        if self.wait:
            self.ec2.get_waiter("nat_gateway_available").wait(
                NatGatewayIds=[gateway["NatGatewayId"]]
            )
        return {"id": gateway["NatGatewayId"]}

    def _delete_nat_gateway(self, resource_id: str) -> None:
        self.ec2.delete_nat_gateway(NatGatewayId=resource_id)
        if self.wait:
            self.ec2.get_waiter("nat_gateway_deleted").wait(NatGatewayIds=[resource_id])

    # ---------- compute ----------
    def _create_security_group(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        group_id = self.ec2.create_security_group(
            GroupName=props.get("GroupName", name),
            Description=props["GroupDescription"],
            VpcId=props["VpcId"],
            TagSpecifications=_tag_specifications(ResourceKind.SECURITY_GROUP, props),
        )["GroupId"]
        ingress = props.get("SecurityGroupIngress")
        if ingress:
            self.ec2.authorize_security_group_ingress(
                GroupId=group_id, IpPermissions=_ip_permissions(ingress)
            )
        return {"id": group_id}

    def _delete_security_group(self, resource_id: str) -> None:
        self.ec2.delete_security_group(GroupId=resource_id)

    def _create_key_pair(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        key_pair = self.ec2.create_key_pair(
            KeyName=props["KeyName"],
            KeyType=props.get("KeyType", "rsa"),
            KeyFormat=props.get("KeyFormat", "pem"),
            TagSpecifications=_tag_specifications(ResourceKind.KEY_PAIR, props),
        )
        # Private key is only returned once; kept where CloudFormation keeps it.
        parameter_name = f"{KEY_MATERIAL_PARAMETER_PREFIX}/{key_pair['KeyPairId']}"
        self.ssm.put_parameter(
            Name=parameter_name,
            Value=key_pair["KeyMaterial"],
            Type="SecureString",
        )
        return {
            "id": key_pair["KeyName"],
            "key_pair_id": key_pair["KeyPairId"],
            "key_material_parameter": parameter_name,
        }

    def _delete_key_pair(self, resource_id: str) -> None:
        key_pair = self.ec2.describe_key_pairs(KeyNames=[resource_id])["KeyPairs"][0]
        self.ssm.delete_parameter(
            Name=f"{KEY_MATERIAL_PARAMETER_PREFIX}/{key_pair['KeyPairId']}"
        )
        self.ec2.delete_key_pair(KeyName=resource_id)

    def _create_instance(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        instance = self.ec2.run_instances(
            ImageId=props["ImageId"],
            InstanceType=props["InstanceType"],
            KeyName=props["KeyName"],
            SubnetId=props["SubnetId"],
            SecurityGroupIds=list(props.get("SecurityGroupIds", [])),
            MinCount=1,
            MaxCount=1,
            TagSpecifications=_tag_specifications(ResourceKind.INSTANCE, props),
        )["Instances"][0]
        return {"id": instance["InstanceId"], "private_ip": instance.get("PrivateIpAddress")}

    def _delete_instance(self, resource_id: str) -> None:
        self.ec2.terminate_instances(InstanceIds=[resource_id])

    def _create_launch_template(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        template = self.ec2.create_launch_template(
            LaunchTemplateName=props.get("LaunchTemplateName", name),
            LaunchTemplateData=props["LaunchTemplateData"],
        )["LaunchTemplate"]
        return {
            "id": template["LaunchTemplateId"],
            "latest_version": str(template["LatestVersionNumber"]),
        }

    def _delete_launch_template(self, resource_id: str) -> None:
        self.ec2.delete_launch_template(LaunchTemplateId=resource_id)

    def _create_autoscaling_group(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        group_name = props.get("AutoScalingGroupName", name)
        self.autoscaling.create_auto_scaling_group(
            AutoScalingGroupName=group_name,
            MinSize=int(props["MinSize"]),
            MaxSize=int(props["MaxSize"]),
            VPCZoneIdentifier=",".join(props["VPCZoneIdentifier"]),
            LaunchTemplate=props["LaunchTemplate"],
            TargetGroupARNs=list(props.get("TargetGroupARNs", [])),
        )
        return {"id": group_name}

    def _delete_autoscaling_group(self, resource_id: str) -> None:
        self.autoscaling.delete_auto_scaling_group(
            AutoScalingGroupName=resource_id, ForceDelete=True
        )

    # ---------- load balancing ----------
    def _create_load_balancer(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        balancer = self.elbv2.create_load_balancer(
            Name=props.get("Name", name),
            Subnets=list(props["Subnets"]),
            SecurityGroups=list(props.get("SecurityGroups", [])),
            Scheme=props.get("Scheme", "internet-facing"),
            Type=props.get("Type", "application"),
        )["LoadBalancers"][0]
        return {
            "id": balancer["LoadBalancerArn"],
            "arn": balancer["LoadBalancerArn"],
            "dns_name": balancer["DNSName"],
        }

    def _delete_load_balancer(self, resource_id: str) -> None:
        self.elbv2.delete_load_balancer(LoadBalancerArn=resource_id)

    def _create_target_group(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        group = self.elbv2.create_target_group(
            Name=props.get("Name", name),
            Protocol=props.get("Protocol", "HTTP"),
            Port=int(props["Port"]),
            VpcId=props["VpcId"],
            TargetType=props.get("TargetType", "instance"),
        )["TargetGroups"][0]
        return {"id": group["TargetGroupArn"], "arn": group["TargetGroupArn"]}

    def _delete_target_group(self, resource_id: str) -> None:
        self.elbv2.delete_target_group(TargetGroupArn=resource_id)

    def _create_listener(self, props: dict[str, Any], name: str) -> dict[str, Any]:
        listener = self.elbv2.create_listener(
            LoadBalancerArn=props["LoadBalancerArn"],
            Protocol=props.get("Protocol", "HTTP"),
            Port=int(props["Port"]),
            DefaultActions=list(props["DefaultActions"]),
        )["Listeners"][0]
        return {"id": listener["ListenerArn"], "arn": listener["ListenerArn"]}

    def _delete_listener(self, resource_id: str) -> None:
        self.elbv2.delete_listener(ListenerArn=resource_id)
