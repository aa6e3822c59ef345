"""
VPC Module for EKS
Creates VPC, subnets, routing, and security groups for EKS
"""

from .functions import NetworkTopology, create_vpc_resources, plan_subnet_cidrs

__all__ = [
    "NetworkTopology",
    "create_vpc_resources",
    "plan_subnet_cidrs",
]
