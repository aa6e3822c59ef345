"""
VPC Module Functions
Creates VPC, public and private subnets per AZ, routing, and security groups for EKS
"""

import ipaddress
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import pulumi
import pulumi_aws as aws

from ..config import MIN_SUBNET_PREFIX
from ..errors import InvalidConfiguration, ProviderCallFailed

EKS_MIN_AZS = 2


@dataclass(frozen=True)
class NetworkTopology:
    """Handle to the provisioned VPC"""
    vpc_id: Any
    availability_zones: Tuple[str, ...]
    public_subnet_ids: Tuple[Any, ...]
    private_subnet_ids: Tuple[Any, ...]
    cluster_security_group_id: Any
    node_security_group_id: Any
    resources: Tuple[Any, ...] = ()

    @property
    def subnet_ids(self) -> List[Any]:
        return [*self.public_subnet_ids, *self.private_subnet_ids]


def select_availability_zones(names: List[str], all_azs: bool) -> List[str]:
    """Two AZs (the EKS minimum) unless every AZ in the region is requested"""
    if len(names) < EKS_MIN_AZS:
        raise ProviderCallFailed(
            "availability-zones",
            ValueError(f"region offers {len(names)} available AZs, EKS needs {EKS_MIN_AZS}"),
        )
    return list(names) if all_azs else list(names[:EKS_MIN_AZS])


def plan_subnet_cidrs(cidr_block: str, az_count: int) -> Tuple[List[str], List[str]]:
    """
    Split the VPC CIDR into one public and one private subnet per AZ

    Args:
        cidr_block: VPC CIDR block
        az_count: Number of availability zones

    Returns:
        (public subnet CIDRs, private subnet CIDRs), each az_count long
    """
    network = ipaddress.IPv4Network(cidr_block)
    extra_bits = math.ceil(math.log2(2 * az_count))
    if network.prefixlen + extra_bits > MIN_SUBNET_PREFIX:
        raise InvalidConfiguration("cidr_block", f"{cidr_block} is too small for {2 * az_count} subnets")
    subnets = [str(s) for s in network.subnets(prefixlen_diff=extra_bits)]
    return subnets[:az_count], subnets[az_count:2 * az_count]


def create_vpc(name: str, cidr: str, provider: aws.Provider, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create VPC with DNS settings

    Args:
        name: VPC name
        cidr: VPC CIDR block
        provider: AWS provider for the launch
        tags: Additional tags

    Returns:
        Dict with vpc resource and outputs
    """
    tags = tags or {}

    vpc = aws.ec2.Vpc(
        f"{name}-vpc",
        cidr_block=cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={
            **tags,
            "Name": name,
            f"kubernetes.io/cluster/{name}": "shared",
        },
        opts=pulumi.ResourceOptions(provider=provider)
    )

    return {
        "vpc": vpc,
        "vpc_id": vpc.id,
    }


def create_subnets(name: str, vpc_id: pulumi.Output[str], kind: str, cidrs: List[str],
                   availability_zones: List[str], provider: aws.Provider,
                   tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one subnet per AZ

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        kind: "public" or "private"
        cidrs: CIDR blocks, one per AZ
        availability_zones: AZ names, aligned with cidrs
        provider: AWS provider for the launch
        tags: Additional tags

    Returns:
        Dict with subnet resources and outputs
    """
    tags = tags or {}
    public = kind == "public"
    role_tag = "kubernetes.io/role/elb" if public else "kubernetes.io/role/internal-elb"

    subnets = []
    for i, (cidr, az) in enumerate(zip(cidrs, availability_zones)):
        subnet = aws.ec2.Subnet(
            f"{name}-{kind}-subnet-{i}",
            vpc_id=vpc_id,
            cidr_block=cidr,
            availability_zone=az,
            map_public_ip_on_launch=public,
            tags={
                **tags,
                "Name": f"{name}-{kind}-{i}",
                "Type": kind,
                f"kubernetes.io/cluster/{name}": "shared",
                role_tag: "1",
            },
            opts=pulumi.ResourceOptions(provider=provider)
        )
        subnets.append(subnet)

    return {
        "subnets": subnets,
        "subnet_ids": [subnet.id for subnet in subnets],
    }


def create_routing(name: str, vpc_id: pulumi.Output[str], public_subnet_ids: List[pulumi.Output[str]],
                   private_subnet_ids: List[pulumi.Output[str]], provider: aws.Provider,
                   tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Internet gateway for public subnets, one NAT gateway for private subnets

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        public_subnet_ids: Public subnet IDs
        private_subnet_ids: Private subnet IDs
        provider: AWS provider for the launch
        tags: Additional tags

    Returns:
        Dict with routing resources
    """
    tags = tags or {}
    opts = pulumi.ResourceOptions(provider=provider)

    igw = aws.ec2.InternetGateway(
        f"{name}-igw",
        vpc_id=vpc_id,
        tags={**tags, "Name": f"{name}-igw"},
        opts=opts
    )

    public_rt = aws.ec2.RouteTable(
        f"{name}-public-rt",
        vpc_id=vpc_id,
        routes=[aws.ec2.RouteTableRouteArgs(
            cidr_block="0.0.0.0/0",
            gateway_id=igw.id,
        )],
        tags={**tags, "Name": f"{name}-public-rt"},
        opts=opts
    )

    for i, subnet_id in enumerate(public_subnet_ids):
        aws.ec2.RouteTableAssociation(
            f"{name}-public-rta-{i}",
            subnet_id=subnet_id,
            route_table_id=public_rt.id,
            opts=opts
        )

    # Workers in private subnets still need egress to pull images
    eip = aws.ec2.Eip(
        f"{name}-nat-eip",
        domain="vpc",
        tags={**tags, "Name": f"{name}-nat-eip"},
        opts=opts
    )

    nat = aws.ec2.NatGateway(
        f"{name}-nat",
        allocation_id=eip.id,
        subnet_id=public_subnet_ids[0],
        tags={**tags, "Name": f"{name}-nat"},
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[igw])
    )

    private_rt = aws.ec2.RouteTable(
        f"{name}-private-rt",
        vpc_id=vpc_id,
        routes=[aws.ec2.RouteTableRouteArgs(
            cidr_block="0.0.0.0/0",
            nat_gateway_id=nat.id,
        )],
        tags={**tags, "Name": f"{name}-private-rt"},
        opts=opts
    )

    for i, subnet_id in enumerate(private_subnet_ids):
        aws.ec2.RouteTableAssociation(
            f"{name}-private-rta-{i}",
            subnet_id=subnet_id,
            route_table_id=private_rt.id,
            opts=opts
        )

    return {
        "igw": igw,
        "nat": nat,
        "public_route_table": public_rt,
        "private_route_table": private_rt,
    }


def create_security_groups(name: str, vpc_id: pulumi.Output[str], provider: aws.Provider,
                           tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create control plane and worker security groups

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        provider: AWS provider for the launch
        tags: Additional tags

    Returns:
        Dict with security group resources and outputs
    """
    tags = tags or {}
    opts = pulumi.ResourceOptions(provider=provider)

    cluster_sg = aws.ec2.SecurityGroup(
        f"{name}-cluster-sg",
        name_prefix=f"{name}-cluster-",
        description=f"{name} EKS control plane",
        vpc_id=vpc_id,
        egress=[aws.ec2.SecurityGroupEgressArgs(
            protocol="-1",
            from_port=0,
            to_port=0,
            cidr_blocks=["0.0.0.0/0"],
        )],
        tags={**tags, "Name": f"{name}-cluster-sg"},
        opts=opts
    )

    node_sg = aws.ec2.SecurityGroup(
        f"{name}-node-sg",
        name_prefix=f"{name}-node-",
        description=f"{name} EKS worker nodes",
        vpc_id=vpc_id,
        egress=[aws.ec2.SecurityGroupEgressArgs(
            protocol="-1",
            from_port=0,
            to_port=0,
            cidr_blocks=["0.0.0.0/0"],
        )],
        tags={
            **tags,
            "Name": f"{name}-node-sg",
            f"kubernetes.io/cluster/{name}": "owned",
        },
        opts=opts
    )

    # Allow communication between nodes
    aws.ec2.SecurityGroupRule(
        f"{name}-node-ingress-self",
        type="ingress",
        from_port=0,
        to_port=65535,
        protocol="-1",
        self=True,
        security_group_id=node_sg.id,
        opts=opts
    )

    # Control plane to kubelets and webhooks
    aws.ec2.SecurityGroupRule(
        f"{name}-node-ingress-cluster",
        type="ingress",
        from_port=443,
        to_port=65535,
        protocol="tcp",
        source_security_group_id=cluster_sg.id,
        security_group_id=node_sg.id,
        opts=opts
    )

    # Workers to API server
    aws.ec2.SecurityGroupRule(
        f"{name}-cluster-ingress-node",
        type="ingress",
        from_port=443,
        to_port=443,
        protocol="tcp",
        source_security_group_id=node_sg.id,
        security_group_id=cluster_sg.id,
        opts=opts
    )

    return {
        "cluster_sg": cluster_sg,
        "node_sg": node_sg,
        "cluster_security_group_id": cluster_sg.id,
        "node_security_group_id": node_sg.id,
    }


def create_vpc_resources(name: str, cidr_block: str, all_azs: bool, provider: aws.Provider,
                         tags: Optional[Dict[str, str]] = None) -> NetworkTopology:
    """
    Create complete VPC infrastructure for EKS

    Args:
        name: Cluster name, used as resource prefix
        cidr_block: VPC CIDR block
        all_azs: Use every available AZ instead of two
        provider: AWS provider for the launch
        tags: Additional tags for all resources

    Returns:
        NetworkTopology handle

    Raises:
        ProviderCallFailed: any network resource could not be declared
    """
    tags = tags or {}

    try:
        azs = aws.get_availability_zones(
            state="available",
            opts=pulumi.InvokeOptions(provider=provider)
        )
    except Exception as e:
        raise ProviderCallFailed("availability-zones", e) from e

    zones = select_availability_zones(azs.names, all_azs)
    public_cidrs, private_cidrs = plan_subnet_cidrs(cidr_block, len(zones))

    try:
        vpc_result = create_vpc(name, cidr_block, provider, tags)
        public_result = create_subnets(name, vpc_result["vpc_id"], "public", public_cidrs, zones, provider, tags)
        private_result = create_subnets(name, vpc_result["vpc_id"], "private", private_cidrs, zones, provider, tags)
        routing_result = create_routing(
            name,
            vpc_result["vpc_id"],
            public_result["subnet_ids"],
            private_result["subnet_ids"],
            provider,
            tags
        )
        sg_result = create_security_groups(name, vpc_result["vpc_id"], provider, tags)
    except ProviderCallFailed:
        raise
    except Exception as e:
        raise ProviderCallFailed(f"{name}-vpc", e) from e

    pulumi.log.info(f"Network for {name}: {len(zones)} AZs, {2 * len(zones)} subnets in {cidr_block}")

    return NetworkTopology(
        vpc_id=vpc_result["vpc_id"],
        availability_zones=tuple(zones),
        public_subnet_ids=tuple(public_result["subnet_ids"]),
        private_subnet_ids=tuple(private_result["subnet_ids"]),
        cluster_security_group_id=sg_result["cluster_security_group_id"],
        node_security_group_id=sg_result["node_security_group_id"],
        resources=(
            vpc_result["vpc"],
            *public_result["subnets"],
            *private_result["subnets"],
            routing_result["nat"],
            routing_result["private_route_table"],
            sg_result["node_sg"],
        ),
    )
