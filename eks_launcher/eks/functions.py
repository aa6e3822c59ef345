"""
EKS Module Functions
Creates the control plane, the shared launch template, and one managed node group
per private subnet and node group spec
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import pulumi
import pulumi_aws as aws

from ..config import NodeGroupSpec
from ..errors import ProviderCallFailed
from ..iam import create_iam_resources
from ..vpc import NetworkTopology

# Cluster autoscaler owns desired size once it is running
AUTOSCALER_IGNORED_FIELDS = ["scalingConfig.desiredSize"]


@dataclass(frozen=True)
class ClusterHandle:
    """Handle to the provisioned cluster, consumed by the add-on pipeline"""
    name: str
    cluster: Any
    endpoint: Any
    certificate_authority_data: Any
    worker_role_name: Any
    worker_role_arn: Any
    node_security_group_id: Any
    launch_template: Any
    kubeconfig: Any
    node_groups: Dict[str, Any] = field(default_factory=dict)
    node_group_failures: Dict[str, BaseException] = field(default_factory=dict)
    resources: tuple = ()


def scaling_group_name(cluster_name: str, subnet_index: int, group_name: str) -> str:
    return f"{cluster_name}-{subnet_index}-{group_name}"


def render_kubeconfig(endpoint: str, ca_data: str, cluster_name: str, profile: str, region: str) -> str:
    """
    Render a kubeconfig that authenticates with `aws eks get-token`

    Args:
        endpoint: API server endpoint
        ca_data: Base64 certificate authority data
        cluster_name: EKS cluster name
        profile: AWS profile used by the token command
        region: AWS region of the cluster

    Returns:
        kubeconfig YAML document
    """
    return f"""apiVersion: v1
clusters:
- cluster:
    certificate-authority-data: {ca_data}
    server: {endpoint}
  name: {cluster_name}
contexts:
- context:
    cluster: {cluster_name}
    user: {cluster_name}
  name: {cluster_name}
current-context: {cluster_name}
kind: Config
preferences: {{}}
users:
- name: {cluster_name}
  user:
    exec:
      apiVersion: client.authentication.k8s.io/v1beta1
      command: aws
      args:
        - eks
        - get-token
        - --cluster-name
        - {cluster_name}
        - --region
        - {region}
      env:
        - name: AWS_PROFILE
          value: {profile}
"""


def create_eks_cluster(name: str, version: str, role_arn: pulumi.Output[str],
                       network: NetworkTopology, provider: aws.Provider,
                       depends_on: Optional[List[pulumi.Resource]] = None,
                       tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the EKS control plane

    The control plane carries no default workers; node groups are created
    separately against the shared launch template.

    Args:
        name: Cluster name
        version: Kubernetes version
        role_arn: IAM role ARN for cluster
        network: Network topology, every subnet is attached
        provider: AWS provider for the launch
        depends_on: Resources the control plane must wait for
        tags: Additional tags

    Returns:
        Dict with cluster resource and outputs
    """
    tags = tags or {}

    cluster = aws.eks.Cluster(
        f"{name}-cluster",
        name=name,
        version=version,
        role_arn=role_arn,
        vpc_config=aws.eks.ClusterVpcConfigArgs(
            subnet_ids=network.subnet_ids,
            endpoint_private_access=True,
            endpoint_public_access=True,
            security_group_ids=[network.cluster_security_group_id]
        ),
        tags={
            **tags,
            "Name": f"{name}-cluster",
        },
        opts=pulumi.ResourceOptions(provider=provider, depends_on=depends_on or [])
    )

    return {
        "cluster": cluster,
        "cluster_name": cluster.name,
        "cluster_endpoint": cluster.endpoint,
        "cluster_certificate_authority_data": cluster.certificate_authority.data
    }


def create_launch_template(name: str, volume_size: int, node_security_group_id: pulumi.Output[str],
                           provider: aws.Provider, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the launch template shared by every node group

    Args:
        name: Cluster name
        volume_size: Boot volume size in GiB
        node_security_group_id: Worker security group ID
        provider: AWS provider for the launch
        tags: Additional tags

    Returns:
        Dict with launch template resource and outputs
    """
    tags = tags or {}

    launch_template = aws.ec2.LaunchTemplate(
        f"{name}-launch-template",
        name_prefix=f"{name}-",
        ebs_optimized="true",
        vpc_security_group_ids=[node_security_group_id],
        block_device_mappings=[aws.ec2.LaunchTemplateBlockDeviceMappingArgs(
            device_name="/dev/xvda",
            ebs=aws.ec2.LaunchTemplateBlockDeviceMappingEbsArgs(
                volume_size=volume_size,
                volume_type="gp3",
                delete_on_termination="true",
            ),
        )],
        tag_specifications=[aws.ec2.LaunchTemplateTagSpecificationArgs(
            resource_type="instance",
            tags={**tags, "Name": f"{name}-worker"},
        )],
        tags={
            **tags,
            "Name": f"{name}-launch-template",
        },
        opts=pulumi.ResourceOptions(provider=provider)
    )

    return {
        "launch_template": launch_template,
        "launch_template_id": launch_template.id,
        "latest_version": launch_template.latest_version
    }


def create_node_group(name: str, group: NodeGroupSpec, cluster: aws.eks.Cluster,
                      subnet_id: pulumi.Output[str], role_arn: pulumi.Output[str],
                      launch_template: aws.ec2.LaunchTemplate, autoscaler_enabled: bool,
                      provider: aws.Provider, depends_on: Optional[List[pulumi.Resource]] = None,
                      tags: Dict[str, str] = None) -> aws.eks.NodeGroup:
    """
    Create one managed node group pinned to a single subnet

    Args:
        name: Scaling group name
        group: Node group spec
        cluster: EKS cluster resource
        subnet_id: Private subnet the group lives in
        role_arn: Worker role ARN
        launch_template: Shared launch template
        autoscaler_enabled: Leave desired size to the cluster autoscaler
        provider: AWS provider for the launch
        depends_on: Resources the group must wait for
        tags: Additional tags

    Returns:
        Node group resource
    """
    tags = tags or {}

    return aws.eks.NodeGroup(
        name,
        cluster_name=cluster.name,
        node_group_name=name,
        node_role_arn=role_arn,
        subnet_ids=[subnet_id],
        capacity_type=group.capacity_type,
        instance_types=list(group.instance_types),
        scaling_config=aws.eks.NodeGroupScalingConfigArgs(
            desired_size=group.desired_size,
            max_size=group.max_size,
            min_size=group.min_size
        ),
        launch_template=aws.eks.NodeGroupLaunchTemplateArgs(
            id=launch_template.id,
            version=launch_template.latest_version.apply(str)
        ),
        labels={"node-group": group.name},
        tags={
            **tags,
            "Name": name,
        },
        opts=pulumi.ResourceOptions(
            provider=provider,
            depends_on=[cluster, *(depends_on or [])],
            ignore_changes=AUTOSCALER_IGNORED_FIELDS if autoscaler_enabled else None
        )
    )


def create_node_groups(name: str, node_groups: Sequence[NodeGroupSpec], cluster: aws.eks.Cluster,
                       private_subnet_ids: Sequence[pulumi.Output[str]], role_arn: pulumi.Output[str],
                       launch_template: aws.ec2.LaunchTemplate, autoscaler_enabled: bool,
                       provider: aws.Provider, depends_on: Optional[List[pulumi.Resource]] = None,
                       tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one node group for every private subnet and node group spec

    A failing group is recorded and the remaining groups are still created.

    Returns:
        Dict with node groups and failures, both keyed by scaling group name
    """
    created = {}
    failures = {}
    for i, subnet_id in enumerate(private_subnet_ids):
        for group in node_groups:
            group_name = scaling_group_name(name, i, group.name)
            try:
                created[group_name] = create_node_group(
                    name=group_name,
                    group=group,
                    cluster=cluster,
                    subnet_id=subnet_id,
                    role_arn=role_arn,
                    launch_template=launch_template,
                    autoscaler_enabled=autoscaler_enabled,
                    provider=provider,
                    depends_on=depends_on,
                    tags=tags
                )
            except Exception as e:
                failures[group_name] = ProviderCallFailed(group_name, e)
                pulumi.log.error(f"Node group {group_name} failed: {e}")

    return {
        "node_groups": created,
        "failures": failures
    }


def kubeconfig_output(cluster: aws.eks.Cluster, profile: str, region: str) -> pulumi.Output[str]:
    return pulumi.Output.all(
        cluster.endpoint,
        cluster.certificate_authority.data,
        cluster.name
    ).apply(lambda args: render_kubeconfig(args[0], args[1], args[2], profile, region))


def create_eks_resources(name: str, network: NetworkTopology, node_groups: Sequence[NodeGroupSpec],
                         volume_size: int, autoscaler_enabled: bool, kubernetes_version: str,
                         profile: str, region: str, provider: aws.Provider,
                         tags: Optional[Dict[str, str]] = None) -> ClusterHandle:
    """
    Create complete EKS infrastructure

    Args:
        name: Cluster name
        network: Network topology from create_vpc_resources
        node_groups: Resolved node group specs
        volume_size: Worker boot volume size in GiB
        autoscaler_enabled: Cluster autoscaler manages desired size
        kubernetes_version: Kubernetes version
        profile: AWS profile for kubeconfig authentication
        region: AWS region
        provider: AWS provider for the launch
        tags: Additional tags for all resources

    Returns:
        ClusterHandle

    Raises:
        ProviderCallFailed: IAM, control plane, or launch template creation failed
    """
    tags = tags or {}

    try:
        iam_result = create_iam_resources(name, provider, tags)
    except Exception as e:
        raise ProviderCallFailed(f"{name}-iam", e) from e

    try:
        cluster_result = create_eks_cluster(
            name=name,
            version=kubernetes_version,
            role_arn=iam_result["cluster_role_arn"],
            network=network,
            provider=provider,
            depends_on=[iam_result["_cluster_policy_attachment"], *network.resources],
            tags=tags
        )
    except Exception as e:
        raise ProviderCallFailed(f"{name}-cluster", e) from e
    cluster = cluster_result["cluster"]

    try:
        template_result = create_launch_template(name, volume_size, network.node_security_group_id, provider, tags)
    except Exception as e:
        raise ProviderCallFailed(f"{name}-launch-template", e) from e

    groups_result = create_node_groups(
        name=name,
        node_groups=node_groups,
        cluster=cluster,
        private_subnet_ids=network.private_subnet_ids,
        role_arn=iam_result["worker_role_arn"],
        launch_template=template_result["launch_template"],
        autoscaler_enabled=autoscaler_enabled,
        provider=provider,
        depends_on=iam_result["_worker_policy_attachments"],
        tags=tags
    )

    if groups_result["failures"]:
        pulumi.log.warn(
            f"Cluster {name}: {len(groups_result['failures'])} node groups failed, "
            f"{len(groups_result['node_groups'])} created"
        )
    else:
        pulumi.log.info(f"Cluster {name}: {len(groups_result['node_groups'])} node groups")

    return ClusterHandle(
        name=name,
        cluster=cluster,
        endpoint=cluster_result["cluster_endpoint"],
        certificate_authority_data=cluster_result["cluster_certificate_authority_data"],
        worker_role_name=iam_result["worker_role_name"],
        worker_role_arn=iam_result["worker_role_arn"],
        node_security_group_id=network.node_security_group_id,
        launch_template=template_result["launch_template"],
        kubeconfig=kubeconfig_output(cluster, profile, region),
        node_groups=groups_result["node_groups"],
        node_group_failures=groups_result["failures"],
        resources=(cluster, *groups_result["node_groups"].values()),
    )
