"""
EBS CSI driver with a gp2 StorageClass
"""

from typing import Any, Dict, List

import pulumi
import pulumi_kubernetes as k8s

from ..iam import attach_addon_policy
from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart

ADDON = "ebs-csi-driver"
CHART_VERSION = "2.18.0"
STORAGE_CLASS = "ebs-csi-gp2"
PROVISIONER = "ebs.csi.aws.com"


def describe_ebs_csi(name: str, namespace: str, region: str) -> ChartDescriptor:
    return ChartDescriptor(
        release_name=f"{name}-ebs-csi-driver",
        chart="aws-ebs-csi-driver",
        repo="https://kubernetes-sigs.github.io/aws-ebs-csi-driver",
        version=CHART_VERSION,
        namespace=namespace,
        values={"controller": {"region": region}},
    )


def _conditional(action: str, operator: str, key: str, value: str) -> Dict[str, Any]:
    return {
        "Effect": "Allow",
        "Action": [action],
        "Resource": "*",
        "Condition": {operator: {key: value}}
    }


def ebs_policy() -> Dict[str, Any]:
    volume_resources = ["arn:aws:ec2:*:*:volume/*", "arn:aws:ec2:*:*:snapshot/*"]
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": [
                    "ec2:CreateSnapshot",
                    "ec2:AttachVolume",
                    "ec2:DetachVolume",
                    "ec2:ModifyVolume",
                    "ec2:DescribeAvailabilityZones",
                    "ec2:DescribeInstances",
                    "ec2:DescribeSnapshots",
                    "ec2:DescribeTags",
                    "ec2:DescribeVolumes",
                    "ec2:DescribeVolumesModifications"
                ],
                "Resource": "*"
            },
            {
                "Effect": "Allow",
                "Action": ["ec2:CreateTags"],
                "Resource": volume_resources,
                "Condition": {
                    "StringEquals": {"ec2:CreateAction": ["CreateVolume", "CreateSnapshot"]}
                }
            },
            {
                "Effect": "Allow",
                "Action": ["ec2:DeleteTags"],
                "Resource": volume_resources
            },
            _conditional("ec2:CreateVolume", "StringLike", "aws:RequestTag/ebs.csi.aws.com/cluster", "true"),
            _conditional("ec2:CreateVolume", "StringLike", "aws:RequestTag/CSIVolumeName", "*"),
            _conditional("ec2:DeleteVolume", "StringLike", "ec2:ResourceTag/ebs.csi.aws.com/cluster", "true"),
            _conditional("ec2:DeleteVolume", "StringLike", "ec2:ResourceTag/CSIVolumeName", "*"),
            _conditional("ec2:DeleteVolume", "StringLike", "ec2:ResourceTag/kubernetes.io/created-for/pvc/name", "*"),
            _conditional("ec2:DeleteSnapshot", "StringLike", "ec2:ResourceTag/CSIVolumeSnapshotName", "*"),
            _conditional("ec2:DeleteSnapshot", "StringLike", "ec2:ResourceTag/ebs.csi.aws.com/cluster", "true"),
        ]
    }


def deploy_ebs_csi(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    release = apply_chart(describe_ebs_csi(ctx.name, ctx.namespace, ctx.config.region), ctx.k8s_provider, depends_on)

    storage_class = k8s.storage.v1.StorageClass(
        STORAGE_CLASS,
        metadata=k8s.meta.v1.ObjectMetaArgs(name=STORAGE_CLASS),
        provisioner=PROVISIONER,
        reclaim_policy="Delete",
        volume_binding_mode="WaitForFirstConsumer",
        allow_volume_expansion=True,
        parameters={"type": "gp2", "fsType": "ext4"},
        opts=pulumi.ResourceOptions(
            provider=ctx.k8s_provider,
            depends_on=[release],
            delete_before_replace=True
        )
    )

    policy = attach_addon_policy(
        f"{ctx.name}-ebs-csi-driver",
        ebs_policy(),
        ctx.cluster.worker_role_name,
        ctx.aws_provider
    )

    return AddonDeployment(
        addon=ADDON,
        resources=(release, storage_class, policy["policy"], policy["attachment"]),
        outputs={"storage_class": STORAGE_CLASS},
    )
