"""
Addons Module Functions
Kubernetes provider, infra namespace, and the chart deployer shared by every add-on
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pulumi
import pulumi_aws as aws
import pulumi_kubernetes as k8s

from ..config import ResolvedConfig
from ..eks import ClusterHandle
from .patches import ManifestPatch, as_transformation


@dataclass(frozen=True)
class ChartDescriptor:
    """Everything needed to install one Helm chart, computed without side effects"""
    release_name: str
    chart: str
    version: str
    namespace: str
    values: Dict[str, Any] = field(default_factory=dict)
    repo: Optional[str] = None
    patches: Tuple[ManifestPatch, ...] = ()
    skip_crds: bool = False


@dataclass(frozen=True)
class AddonDeployment:
    """Resources and plain outputs of one deployed add-on"""
    addon: str
    resources: Tuple[Any, ...] = ()
    outputs: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AddonContext:
    """What every add-on step sees"""
    name: str
    config: ResolvedConfig
    cluster: ClusterHandle
    namespace: str
    k8s_provider: Any
    aws_provider: Any
    deployments: Mapping[str, AddonDeployment] = field(default_factory=dict)

    def outputs_of(self, addon: str) -> Dict[str, Any]:
        return self.deployments[addon].outputs


def infra_namespace_name(name: str) -> str:
    return f"{name}-infra"


def create_kubernetes_provider(name: str, kubeconfig: pulumi.Input[str],
                               cluster: aws.eks.Cluster) -> k8s.Provider:
    """
    Create Kubernetes provider for EKS cluster

    Args:
        name: Provider name
        kubeconfig: Rendered kubeconfig for the cluster
        cluster: EKS cluster the provider waits for

    Returns:
        Kubernetes provider instance
    """
    return k8s.Provider(
        f"{name}-k8s-provider",
        kubeconfig=kubeconfig,
        opts=pulumi.ResourceOptions(depends_on=[cluster])
    )


def create_infra_namespace(name: str, provider: k8s.Provider,
                           depends_on: Optional[List[pulumi.Resource]] = None) -> Dict[str, Any]:
    """
    Create the namespace every infra add-on is installed into

    Args:
        name: Launch name
        provider: Kubernetes provider
        depends_on: Cluster resources the namespace must wait for

    Returns:
        Dict with namespace resource and outputs
    """
    namespace_name = infra_namespace_name(name)
    namespace = k8s.core.v1.Namespace(
        namespace_name,
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=namespace_name,
            labels={
                "name": namespace_name,
                "managed-by": "pulumi"
            }
        ),
        opts=pulumi.ResourceOptions(provider=provider, depends_on=depends_on or [])
    )

    return {
        "namespace": namespace,
        "namespace_name": namespace_name
    }


def apply_chart(descriptor: ChartDescriptor, provider: k8s.Provider,
                depends_on: Optional[List[pulumi.Resource]] = None) -> pulumi.Resource:
    """
    Install a chart described by a ChartDescriptor

    Charts that need manifest patches are rendered client side with
    helm.v3.Chart so transformations can run; all others are Helm releases.
    """
    opts = pulumi.ResourceOptions(provider=provider, depends_on=depends_on or [])

    if descriptor.patches:
        return k8s.helm.v3.Chart(
            descriptor.release_name,
            k8s.helm.v3.ChartOpts(
                chart=descriptor.chart,
                version=descriptor.version,
                namespace=descriptor.namespace,
                values=descriptor.values,
                fetch_opts=k8s.helm.v3.FetchOpts(repo=descriptor.repo) if descriptor.repo else None,
                transformations=[as_transformation(descriptor.patches)],
                skip_crd_rendering=descriptor.skip_crds,
            ),
            opts=opts
        )

    return k8s.helm.v3.Release(
        descriptor.release_name,
        name=descriptor.release_name,
        chart=descriptor.chart,
        version=descriptor.version,
        namespace=descriptor.namespace,
        values=descriptor.values,
        repository_opts=k8s.helm.v3.RepositoryOptsArgs(repo=descriptor.repo) if descriptor.repo else None,
        skip_crds=descriptor.skip_crds,
        opts=opts
    )
