"""
metrics-server, the resource metrics API used by HPAs and kubectl top
"""

from typing import List

import pulumi

from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart

ADDON = "metrics-server"
CHART_VERSION = "3.12.1"


def describe_metrics_server(name: str) -> ChartDescriptor:
    return ChartDescriptor(
        release_name=f"{name}-metrics-server",
        chart="metrics-server",
        repo="https://kubernetes-sigs.github.io/metrics-server/",
        version=CHART_VERSION,
        namespace="kube-system",
        values={
            "args": [
                "--cert-dir=/tmp",
                "--secure-port=4443",
                "--kubelet-preferred-address-types=InternalIP,ExternalIP,Hostname",
                "--kubelet-use-node-status-port",
                "--metric-resolution=15s"
            ]
        },
    )


def deploy_metrics_server(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    release = apply_chart(describe_metrics_server(ctx.name), ctx.k8s_provider, depends_on)
    return AddonDeployment(addon=ADDON, resources=(release,))
