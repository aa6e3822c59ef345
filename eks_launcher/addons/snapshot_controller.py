"""
CSI snapshot controller, its validation webhook, and the EBS VolumeSnapshotClass
"""

from typing import List

import pulumi
import pulumi_kubernetes as k8s

from .ebs_csi import PROVISIONER
from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart

ADDON = "snapshot-controller"
CONTROLLER_CHART_VERSION = "1.7.2"
WEBHOOK_CHART_VERSION = "1.7.1"
PIRAEUS_REPO = "https://piraeus.io/helm-charts/"
SNAPSHOT_CLASS = "csi-aws-vsc"


def describe_snapshot_controller(name: str, namespace: str) -> ChartDescriptor:
    return ChartDescriptor(
        release_name=f"{name}-snapshot-controller",
        chart="snapshot-controller",
        repo=PIRAEUS_REPO,
        version=CONTROLLER_CHART_VERSION,
        namespace=namespace,
    )


def describe_validation_webhook(name: str, namespace: str) -> ChartDescriptor:
    return ChartDescriptor(
        release_name=f"{name}-validation-webhook",
        chart="snapshot-validation-webhook",
        repo=PIRAEUS_REPO,
        version=WEBHOOK_CHART_VERSION,
        namespace=namespace,
        values={
            "replicaCount": 1,
            "resources": {"limits": {"cpu": "50m", "memory": "100Mi"}},
        },
        skip_crds=True,
    )


def deploy_snapshot_controller(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    controller = apply_chart(describe_snapshot_controller(ctx.name, ctx.namespace), ctx.k8s_provider, depends_on)
    webhook = apply_chart(
        describe_validation_webhook(ctx.name, ctx.namespace),
        ctx.k8s_provider,
        [*depends_on, controller]
    )

    snapshot_class = k8s.apiextensions.CustomResource(
        SNAPSHOT_CLASS,
        api_version="snapshot.storage.k8s.io/v1",
        kind="VolumeSnapshotClass",
        metadata=k8s.meta.v1.ObjectMetaArgs(name=SNAPSHOT_CLASS),
        driver=PROVISIONER,
        deletionPolicy="Delete",
        opts=pulumi.ResourceOptions(provider=ctx.k8s_provider, depends_on=[controller])
    )

    return AddonDeployment(
        addon=ADDON,
        resources=(controller, webhook, snapshot_class),
        outputs={"snapshot_class": SNAPSHOT_CLASS},
    )
