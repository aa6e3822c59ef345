"""
EKS cluster launcher
Resolves a launch request, then provisions network, cluster and add-ons in order
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import pulumi
import pulumi_aws as aws

from .addons import Addon, AddonDeployment, ProvisioningReport, deploy_addons
from .config import ResolvedConfig, resolve
from .eks import ClusterHandle, create_eks_resources
from .vpc import NetworkTopology, create_vpc_resources


@dataclass(frozen=True)
class LaunchResult:
    """Everything a caller needs from a launched cluster"""
    name: str
    config: ResolvedConfig
    kubeconfig: Any
    cluster: ClusterHandle
    network: NetworkTopology
    providers: Dict[str, Any]
    namespace: Any
    namespace_name: str
    deployments: Mapping[Addon, AddonDeployment]
    report: ProvisioningReport


def create_aws_provider(name: str, config: ResolvedConfig,
                        opts: Optional[pulumi.ResourceOptions] = None) -> aws.Provider:
    return aws.Provider(
        name,
        profile=config.profile,
        region=config.region,
        default_tags=aws.ProviderDefaultTagsArgs(tags=config.common_tags(name)),
        opts=opts
    )


def create_launcher(name: str, request: Any, opts: Optional[pulumi.ResourceOptions] = None) -> LaunchResult:
    """
    Launch an EKS cluster with its VPC and add-ons

    Args:
        name: Launch name, used as cluster name and resource prefix
        request: Launch request mapping or an already resolved config
        opts: Resource options for the AWS provider

    Returns:
        LaunchResult

    Raises:
        InvalidConfiguration: the request is invalid, nothing was provisioned
        ProviderCallFailed: network or cluster provisioning failed

    Add-on and node group failures do not raise; they are recorded in
    LaunchResult.report.
    """
    config = resolve(request)
    tags = config.common_tags(name)

    aws_provider = create_aws_provider(name, config, opts)

    network = create_vpc_resources(
        name=name,
        cidr_block=config.cidr_block,
        all_azs=config.all_azs,
        provider=aws_provider,
        tags=tags
    )

    cluster = create_eks_resources(
        name=name,
        network=network,
        node_groups=config.node_groups,
        volume_size=config.volume_size,
        autoscaler_enabled=config.autoscaling.enabled,
        kubernetes_version=config.kubernetes_version,
        profile=config.profile,
        region=config.region,
        provider=aws_provider,
        tags=tags
    )

    addons = deploy_addons(name, cluster, config, aws_provider)

    if addons.report.ok:
        pulumi.log.info(f"Launch {name}: {len(addons.report.succeeded)} add-ons deployed")
    else:
        pulumi.log.warn(
            f"Launch {name} is partial: "
            f"{len(addons.report.node_group_failures)} node groups and {len(addons.report.failed)} add-ons failed"
        )

    return LaunchResult(
        name=name,
        config=config,
        kubeconfig=cluster.kubeconfig,
        cluster=cluster,
        network=network,
        providers={"aws": aws_provider, "k8s": addons.k8s_provider},
        namespace=addons.namespace,
        namespace_name=addons.namespace_name,
        deployments=addons.deployments,
        report=addons.report,
    )
