"""
aws-node-termination-handler, drains nodes ahead of spot interruptions and maintenance events
"""

from typing import List

import pulumi

from ..config import NodeTerminationHandlerConfig
from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart

ADDON = "node-termination-handler"
CHART_VERSION = "0.15.3"


def describe_node_termination_handler(name: str, namespace: str,
                                      handler: NodeTerminationHandlerConfig) -> ChartDescriptor:
    return ChartDescriptor(
        release_name=f"{name}-node-termination-handler",
        chart="aws-node-termination-handler",
        repo="https://aws.github.io/eks-charts",
        version=CHART_VERSION,
        namespace=namespace,
        values={
            "enableSpotInterruptionDraining": handler.spot_interruption_draining,
            "enableRebalanceDraining": handler.rebalance_draining,
            "enableScheduledEventDraining": handler.scheduled_event_draining,
            # negative means the pod's own grace period
            "podTerminationGracePeriod": -1,
            "nodeTerminationGracePeriod": 120,
            "enablePrometheusServer": handler.prometheus_server,
            "emitKubernetesEvents": handler.emit_kubernetes_events,
        },
    )


def deploy_node_termination_handler(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    descriptor = describe_node_termination_handler(ctx.name, ctx.namespace, ctx.config.node_termination_handler)
    release = apply_chart(descriptor, ctx.k8s_provider, depends_on)
    return AddonDeployment(addon=ADDON, resources=(release,))
