"""
Add-on pipeline
Walks a fixed, hand-ordered list of add-on steps against one cluster
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import pulumi
import pulumi_aws as aws

from ..config import ResolvedConfig
from ..eks import ClusterHandle
from ..errors import DependencyNotReady, LauncherError, PartialProvisioning, ProviderCallFailed
from . import (
    cert_manager,
    cluster_autoscaler,
    ebs_csi,
    external_dns,
    hello_world,
    loki,
    metrics_server,
    node_termination_handler,
    snapshot_controller,
    traefik,
)
from .functions import (
    AddonContext,
    AddonDeployment,
    create_infra_namespace,
    create_kubernetes_provider,
)


class Addon(str, Enum):
    CERT_MANAGER = "cert-manager"
    METRICS_SERVER = "metrics-server"
    TRAEFIK = "traefik"
    DNS_ZONE = "dns-zone"
    EXTERNAL_DNS = "external-dns"
    NODE_TERMINATION_HANDLER = "node-termination-handler"
    LOGGING = "logging"
    EBS_CSI_DRIVER = "ebs-csi-driver"
    SNAPSHOT_CONTROLLER = "snapshot-controller"
    CLUSTER_AUTOSCALER = "cluster-autoscaler"
    HELLO_WORLD = "hello-world"


TOGGLES: Dict[Addon, Callable[[ResolvedConfig], bool]] = {
    Addon.CERT_MANAGER: lambda config: config.cert_manager.enabled,
    Addon.METRICS_SERVER: lambda config: config.metrics_server.enabled,
    Addon.TRAEFIK: lambda config: config.traefik.enabled,
    Addon.DNS_ZONE: lambda config: config.external_dns.enabled,
    Addon.EXTERNAL_DNS: lambda config: config.external_dns.enabled,
    Addon.NODE_TERMINATION_HANDLER: lambda config: config.node_termination_handler.enabled,
    Addon.LOGGING: lambda config: config.logging.enabled,
    Addon.EBS_CSI_DRIVER: lambda config: config.ebs_csi.enabled,
    Addon.SNAPSHOT_CONTROLLER: lambda config: config.snapshot_controller.enabled,
    Addon.CLUSTER_AUTOSCALER: lambda config: config.autoscaling.enabled,
    Addon.HELLO_WORLD: lambda config: config.hello_world.enabled,
}

DeployFn = Callable[[AddonContext, List[pulumi.Resource]], AddonDeployment]


@dataclass(frozen=True)
class AddonStep:
    addon: Addon
    requires: Tuple[Addon, ...]
    deploy: DeployFn

    def enabled(self, config: ResolvedConfig) -> bool:
        return TOGGLES[self.addon](config)


PIPELINE: Tuple[AddonStep, ...] = (
    AddonStep(Addon.CERT_MANAGER, (), cert_manager.deploy_cert_manager),
    AddonStep(Addon.METRICS_SERVER, (), metrics_server.deploy_metrics_server),
    AddonStep(Addon.TRAEFIK, (Addon.CERT_MANAGER,), traefik.deploy_traefik),
    AddonStep(Addon.DNS_ZONE, (), external_dns.lookup_zone),
    AddonStep(Addon.EXTERNAL_DNS, (Addon.CERT_MANAGER, Addon.DNS_ZONE), external_dns.deploy_external_dns),
    AddonStep(Addon.NODE_TERMINATION_HANDLER, (), node_termination_handler.deploy_node_termination_handler),
    AddonStep(Addon.LOGGING, (), loki.deploy_logging),
    AddonStep(Addon.EBS_CSI_DRIVER, (), ebs_csi.deploy_ebs_csi),
    AddonStep(Addon.SNAPSHOT_CONTROLLER, (Addon.EBS_CSI_DRIVER,), snapshot_controller.deploy_snapshot_controller),
    AddonStep(Addon.CLUSTER_AUTOSCALER, (), cluster_autoscaler.deploy_cluster_autoscaler),
    AddonStep(Addon.HELLO_WORLD, (Addon.CERT_MANAGER, Addon.TRAEFIK), hello_world.deploy_hello_world),
)


def validate_pipeline(steps: Sequence[AddonStep]) -> None:
    """
    Check every step only requires steps placed before it

    Raises:
        DependencyNotReady: a step requires a later or unknown step
    """
    seen = set()
    for step in steps:
        missing = [required.value for required in step.requires if required not in seen]
        if missing:
            raise DependencyNotReady(step.addon.value, missing)
        seen.add(step.addon)


def teardown_order(steps: Sequence[AddonStep]) -> List[Addon]:
    return [step.addon for step in reversed(steps)]


@dataclass
class ProvisioningReport:
    """Outcome of a launch: what deployed, what was switched off, what failed"""
    succeeded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, BaseException] = field(default_factory=dict)
    node_group_failures: Dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.node_group_failures

    def raise_for_failures(self) -> None:
        if not self.ok:
            raise PartialProvisioning({**self.node_group_failures, **self.failed})


@dataclass(frozen=True)
class AddonsResult:
    k8s_provider: Any
    namespace: Any
    namespace_name: str
    deployments: Mapping[Addon, AddonDeployment]
    report: ProvisioningReport


def run_step(step: AddonStep, ctx: AddonContext, deployments: Mapping[Addon, AddonDeployment],
             base_depends_on: Sequence[pulumi.Resource] = ()) -> AddonDeployment:
    """
    Deploy one step after its prerequisites

    Raises:
        DependencyNotReady: a prerequisite was not deployed
        ProviderCallFailed: the step's deploy raised anything else
    """
    missing = [required.value for required in step.requires if required not in deployments]
    if missing:
        raise DependencyNotReady(step.addon.value, missing)

    depends_on = list(base_depends_on)
    depends_on += [resource for required in step.requires for resource in deployments[required].resources]
    try:
        return step.deploy(ctx, depends_on)
    except LauncherError:
        raise
    except Exception as e:
        raise ProviderCallFailed(step.addon.value, e) from e


def deploy_addons(name: str, cluster: ClusterHandle, config: ResolvedConfig, aws_provider: aws.Provider,
                  steps: Sequence[AddonStep] = PIPELINE) -> AddonsResult:
    """
    Deploy the add-on pipeline onto a cluster

    Args:
        name: Launch name
        cluster: Cluster handle from create_eks_resources
        config: Resolved launch configuration
        aws_provider: AWS provider for the launch
        steps: Ordered add-on steps

    Returns:
        AddonsResult with the kubernetes provider, namespace, deployments and report
    """
    k8s_provider = create_kubernetes_provider(name, cluster.kubeconfig, cluster.cluster)
    namespace_result = create_infra_namespace(name, k8s_provider, list(cluster.resources))

    deployments: Dict[Addon, AddonDeployment] = {}
    report = ProvisioningReport(node_group_failures=dict(cluster.node_group_failures))

    for step in steps:
        addon = step.addon.value
        if not step.enabled(config):
            report.skipped.append(addon)
            pulumi.log.warn(f"Add-on {addon} disabled, skipping")
            continue

        ctx = AddonContext(
            name=name,
            config=config,
            cluster=cluster,
            namespace=namespace_result["namespace_name"],
            k8s_provider=k8s_provider,
            aws_provider=aws_provider,
            deployments=deployments,
        )
        try:
            deployment = run_step(step, ctx, deployments, [namespace_result["namespace"]])
        except LauncherError as e:
            report.failed[addon] = e
            pulumi.log.error(f"Add-on {addon} failed: {e}")
            continue

        deployments[step.addon] = deployment
        report.succeeded.append(addon)
        pulumi.log.info(f"Add-on {addon} deployed")

    if report.failed:
        pulumi.log.warn(f"{len(report.failed)} add-ons failed: {', '.join(report.failed)}")

    return AddonsResult(
        k8s_provider=k8s_provider,
        namespace=namespace_result["namespace"],
        namespace_name=namespace_result["namespace_name"],
        deployments=deployments,
        report=report,
    )
