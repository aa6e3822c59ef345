"""
IAM Module Functions
Creates the control plane role, the shared worker identity, and add-on policies
"""

import json
from typing import Any, Dict, List, Optional

import pulumi
import pulumi_aws as aws

WORKER_MANAGED_POLICIES = [
    ("worker", "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy"),
    ("cni", "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy"),
    ("registry", "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"),
    ("ssm", "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"),
]


def assume_role_policy(service: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Action": "sts:AssumeRole",
                "Effect": "Allow",
                "Principal": {
                    "Service": service
                }
            }
        ]
    })


def create_cluster_role(name: str, provider: aws.Provider, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create IAM role for the EKS control plane

    Args:
        name: Cluster name
        provider: AWS provider for the launch
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}
    opts = pulumi.ResourceOptions(provider=provider)

    role = aws.iam.Role(
        f"{name}-cluster-role",
        assume_role_policy=assume_role_policy("eks.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-cluster-role",
        },
        opts=opts
    )

    policy_attachment = aws.iam.RolePolicyAttachment(
        f"{name}-cluster-policy",
        policy_arn="arn:aws:iam::aws:policy/AmazonEKSClusterPolicy",
        role=role.name,
        opts=opts
    )

    return {
        "role": role,
        "policy_attachment": policy_attachment,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_worker_role(name: str, provider: aws.Provider, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the single worker identity shared by every node group

    Args:
        name: Cluster name
        provider: AWS provider for the launch
        tags: Additional tags

    Returns:
        Dict with role resource, policy attachments and instance profile
    """
    tags = tags or {}
    opts = pulumi.ResourceOptions(provider=provider)

    role = aws.iam.Role(
        f"{name}-worker-role",
        assume_role_policy=assume_role_policy("ec2.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-worker-role",
        },
        opts=opts
    )

    policy_attachments = []
    for policy_name, policy_arn in WORKER_MANAGED_POLICIES:
        attachment = aws.iam.RolePolicyAttachment(
            f"{name}-worker-{policy_name}-policy",
            policy_arn=policy_arn,
            role=role.name,
            opts=opts
        )
        policy_attachments.append(attachment)

    instance_profile = aws.iam.InstanceProfile(
        f"{name}-worker-instance-profile",
        role=role.name,
        tags={
            **tags,
            "Name": f"{name}-worker-instance-profile",
        },
        opts=opts
    )

    return {
        "role": role,
        "policy_attachments": policy_attachments,
        "instance_profile": instance_profile,
        "role_arn": role.arn,
        "role_name": role.name
    }


def attach_addon_policy(name: str, document: Dict[str, Any], worker_role_name: pulumi.Input[str],
                        provider: aws.Provider,
                        depends_on: Optional[List[pulumi.Resource]] = None) -> Dict[str, Any]:
    """
    Create a scoped policy for an add-on and attach it to the shared worker role

    Args:
        name: Policy resource name
        document: IAM policy document
        worker_role_name: Name of the cluster's worker role
        provider: AWS provider for the launch
        depends_on: Resources the policy must wait for

    Returns:
        Dict with policy and attachment resources
    """
    opts = pulumi.ResourceOptions(provider=provider, depends_on=depends_on or [])

    policy = aws.iam.Policy(
        f"{name}-policy",
        policy=json.dumps(document),
        opts=opts
    )

    attachment = aws.iam.RolePolicyAttachment(
        f"{name}-policy-attachment",
        policy_arn=policy.arn,
        role=worker_role_name,
        opts=opts
    )

    return {
        "policy": policy,
        "attachment": attachment,
        "policy_arn": policy.arn,
    }


def create_iam_resources(cluster_name: str, provider: aws.Provider,
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create IAM resources for EKS

    Args:
        cluster_name: EKS cluster name
        provider: AWS provider for the launch
        tags: Additional tags

    Returns:
        Dict with all IAM resources and outputs
    """
    tags = tags or {}

    cluster_role_result = create_cluster_role(cluster_name, provider, tags)
    worker_role_result = create_worker_role(cluster_name, provider, tags)

    return {
        "cluster_role_arn": cluster_role_result["role_arn"],
        "worker_role_arn": worker_role_result["role_arn"],
        "worker_role_name": worker_role_result["role_name"],
        # Keep references to resources for dependencies
        "_cluster_role": cluster_role_result["role"],
        "_cluster_policy_attachment": cluster_role_result["policy_attachment"],
        "_worker_role": worker_role_result["role"],
        "_worker_policy_attachments": worker_role_result["policy_attachments"],
        "_instance_profile": worker_role_result["instance_profile"]
    }
