"""
external-dns publishing ingress and service hosts into the root Route53 zone

The zone is looked up, never created: the domain's registrar must already
delegate to it.
"""

from typing import Any, Dict, List

import pulumi
import pulumi_aws as aws

from ..errors import ProviderCallFailed
from ..iam import attach_addon_policy
from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart
from .patches import set_namespace

ADDON = "external-dns"
ZONE_ADDON = "dns-zone"
CHART = "oci://registry-1.docker.io/bitnamicharts/external-dns"
CHART_VERSION = "9.0.3"


def lookup_zone(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    """Read the hosted zone for the root domain"""
    try:
        zone = aws.route53.get_zone(
            name=ctx.config.root_domain_name,
            opts=pulumi.InvokeOptions(provider=ctx.aws_provider)
        )
    except Exception as e:
        raise ProviderCallFailed(ZONE_ADDON, e) from e

    pulumi.log.info(f"Hosted zone {zone.name} ({zone.zone_id})")
    return AddonDeployment(
        addon=ZONE_ADDON,
        outputs={"zone_id": zone.zone_id, "zone_name": zone.name},
    )


def describe_external_dns(name: str, namespace: str, zone_name: str) -> ChartDescriptor:
    return ChartDescriptor(
        release_name=f"{name}-external-dns",
        chart=CHART,
        version=CHART_VERSION,
        namespace=namespace,
        values={
            "image": {"repository": "bitnamilegacy/external-dns"},
            "resources": {"limits": {"cpu": "50m", "memory": "100Mi"}},
            "domainFilters": [zone_name],
            "provider": "aws",
            "registry": "txt",
            "policy": "sync",
            "txtOwnerId": name,
            "sources": ["service", "ingress"],
        },
        patches=(set_namespace(namespace),),
    )


def route53_policy(zone_id: str) -> Dict[str, Any]:
    """Record changes scoped to one zone"""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": ["route53:ChangeResourceRecordSets"],
                "Resource": [f"arn:aws:route53:::hostedzone/{zone_id}"]
            },
            {
                "Effect": "Allow",
                "Action": ["route53:ListHostedZones", "route53:ListResourceRecordSets"],
                "Resource": ["*"]
            }
        ]
    }


def deploy_external_dns(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    zone = ctx.outputs_of(ZONE_ADDON)

    chart = apply_chart(
        describe_external_dns(ctx.name, ctx.namespace, zone["zone_name"]),
        ctx.k8s_provider,
        depends_on
    )
    policy = attach_addon_policy(
        f"{ctx.name}-external-dns",
        route53_policy(zone["zone_id"]),
        ctx.cluster.worker_role_name,
        ctx.aws_provider
    )

    return AddonDeployment(
        addon=ADDON,
        resources=(chart, policy["policy"], policy["attachment"]),
        outputs={"zone_id": zone["zone_id"]},
    )
