"""
cluster-autoscaler, discovering the node groups' auto scaling groups by cluster name
"""

from typing import Any, Dict, List

import pulumi

from ..iam import attach_addon_policy
from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart
from .patches import append_container_command

ADDON = "cluster-autoscaler"
CHART_VERSION = "9.23.0"

# Labels that differ between otherwise identical groups in different zones
BALANCING_IGNORE_LABELS = (
    "topology.ebs.csi.aws.com/zone",
    "node.kubernetes.io/instance-type",
    "beta.kubernetes.io/instance-type",
)


def describe_cluster_autoscaler(name: str, namespace: str, cluster_name: str, region: str) -> ChartDescriptor:
    return ChartDescriptor(
        release_name=f"{name}-cluster-autoscaler",
        chart="cluster-autoscaler",
        repo="https://kubernetes.github.io/autoscaler",
        version=CHART_VERSION,
        namespace=namespace,
        values={
            "autoDiscovery": {"clusterName": cluster_name},
            "awsRegion": region,
            "extraArgs": {
                "scale-down-delay-after-add": "10m",
                "scale-down-unneeded-time": "10m",
                "scale-down-utilization-threshold": "0.5",
                "scan-interval": "10s",
                "max-empty-bulk-delete": "3",
                "balance-similar-node-groups": True,
                "skip-nodes-with-system-pods": False,
                "max-graceful-termination-sec": "600",
            },
            "podAnnotations": {
                "prometheus.io/port": "8085",
                "prometheus.io/scrape": "true",
            },
            "resources": {"limits": {"cpu": "300m", "memory": "500Mi"}},
        },
        # extraArgs is a map, so a repeated flag has to be appended to the rendered command
        patches=(
            append_container_command(
                [f"--balancing-ignore-label={label}" for label in BALANCING_IGNORE_LABELS]
            ),
        ),
    )


def autoscaling_policy() -> Dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Action": [
                    "autoscaling:DescribeAutoScalingGroups",
                    "autoscaling:DescribeAutoScalingInstances",
                    "autoscaling:DescribeLaunchConfigurations",
                    "autoscaling:DescribeTags",
                    "autoscaling:SetDesiredCapacity",
                    "autoscaling:TerminateInstanceInAutoScalingGroup",
                    "ec2:DescribeLaunchTemplateVersions"
                ],
                "Resource": "*",
                "Effect": "Allow"
            }
        ]
    }


def deploy_cluster_autoscaler(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    descriptor = describe_cluster_autoscaler(ctx.name, ctx.namespace, ctx.cluster.name, ctx.config.region)
    chart = apply_chart(descriptor, ctx.k8s_provider, [*depends_on, *ctx.cluster.node_groups.values()])
    policy = attach_addon_policy(
        f"{ctx.name}-cluster-autoscaler",
        autoscaling_policy(),
        ctx.cluster.worker_role_name,
        ctx.aws_provider
    )

    return AddonDeployment(
        addon=ADDON,
        resources=(chart, policy["policy"], policy["attachment"]),
    )
