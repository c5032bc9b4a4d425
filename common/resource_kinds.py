from enum import Enum


class ResourceKind(str, Enum):
    VPC = "vpc"
    INTERNET_GATEWAY = "internet_gateway"
    VPC_GATEWAY_ATTACHMENT = "vpc_gateway_attachment"
    ROUTE_TABLE = "route_table"
    ROUTE = "route"
    SUBNET = "subnet"
    SUBNET_ROUTE_TABLE_ASSOCIATION = "subnet_route_table_association"
    EIP = "eip"
    NAT_GATEWAY = "nat_gateway"
    SECURITY_GROUP = "security_group"
    KEY_PAIR = "key_pair"
    INSTANCE = "instance"
    LOAD_BALANCER = "load_balancer"
    TARGET_GROUP = "target_group"
    LISTENER = "listener"
    LAUNCH_TEMPLATE = "launch_template"
    AUTOSCALING_GROUP = "autoscaling_group"


# Outputs each backend produces for a kind; every kind produces "id".
KIND_OUTPUTS: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.VPC: ("id", "cidr_block"),
    ResourceKind.INTERNET_GATEWAY: ("id",),
    ResourceKind.VPC_GATEWAY_ATTACHMENT: ("id",),
    ResourceKind.ROUTE_TABLE: ("id",),
    ResourceKind.ROUTE: ("id",),
    ResourceKind.SUBNET: ("id", "availability_zone"),
    ResourceKind.SUBNET_ROUTE_TABLE_ASSOCIATION: ("id",),
    ResourceKind.EIP: ("id", "allocation_id", "public_ip"),
    ResourceKind.NAT_GATEWAY: ("id",),
    ResourceKind.SECURITY_GROUP: ("id",),
    ResourceKind.KEY_PAIR: ("id", "key_pair_id", "key_material_parameter"),
    ResourceKind.INSTANCE: ("id", "private_ip"),
    ResourceKind.LOAD_BALANCER: ("id", "arn", "dns_name"),
    ResourceKind.TARGET_GROUP: ("id", "arn"),
    ResourceKind.LISTENER: ("id", "arn"),
    ResourceKind.LAUNCH_TEMPLATE: ("id", "latest_version"),
    ResourceKind.AUTOSCALING_GROUP: ("id",),
}


def outputs_for(kind: str) -> tuple[str, ...]:
    try:
        return KIND_OUTPUTS[ResourceKind(kind)]
    except ValueError:
        return ("id",)
