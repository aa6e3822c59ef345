"""
cert-manager with a Let's Encrypt ClusterIssuer solving DNS-01 through Route53
"""

from typing import Any, Dict, List

import pulumi
import pulumi_kubernetes as k8s

from ..iam import attach_addon_policy
from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart

ADDON = "cert-manager"
CHART_VERSION = "v1.14.4"
ISSUER_NAME = "lets-encrypt"
ACME_SERVER = "https://acme-v02.api.letsencrypt.org/directory"


def describe_cert_manager(name: str, namespace: str) -> ChartDescriptor:
    return ChartDescriptor(
        release_name=f"{name}-cert-manager",
        chart="cert-manager",
        repo="https://charts.jetstack.io",
        version=CHART_VERSION,
        namespace=namespace,
        values={
            "installCRDs": True,
            "prometheus": {"enabled": False},
        },
    )


def cluster_issuer_spec(email: str, region: str, dns_zone: str) -> Dict[str, Any]:
    """
    ACME issuer spec. An empty email registers the account without a contact address.
    """
    acme: Dict[str, Any] = {
        "server": ACME_SERVER,
        "privateKeySecretRef": {"name": "letsencrypt"},
        "solvers": [
            {
                "dns01": {"route53": {"region": region}},
                "selector": {"dnsZones": [dns_zone]},
            }
        ],
    }
    if email:
        acme["email"] = email
    return {"acme": acme}


def route53_challenge_policy() -> Dict[str, Any]:
    """Route53 access the DNS-01 solver needs to publish and poll challenge records"""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": "route53:GetChange",
                "Resource": "arn:aws:route53:::change/*"
            },
            {
                "Effect": "Allow",
                "Action": ["route53:ChangeResourceRecordSets", "route53:ListResourceRecordSets"],
                "Resource": "arn:aws:route53:::hostedzone/*"
            },
            {
                "Effect": "Allow",
                "Action": "route53:ListHostedZonesByName",
                "Resource": "*"
            }
        ]
    }


def deploy_cert_manager(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    release = apply_chart(describe_cert_manager(ctx.name, ctx.namespace), ctx.k8s_provider, depends_on)

    issuer = k8s.apiextensions.CustomResource(
        f"{ctx.name}-{ISSUER_NAME}",
        api_version="cert-manager.io/v1",
        kind="ClusterIssuer",
        metadata=k8s.meta.v1.ObjectMetaArgs(name=ISSUER_NAME),
        spec=cluster_issuer_spec(ctx.config.email, ctx.config.region, ctx.config.root_domain_name),
        opts=pulumi.ResourceOptions(
            provider=ctx.k8s_provider,
            depends_on=[release],
            delete_before_replace=True
        )
    )

    policy = attach_addon_policy(
        f"{ctx.name}-cert-manager",
        route53_challenge_policy(),
        ctx.cluster.worker_role_name,
        ctx.aws_provider
    )

    return AddonDeployment(
        addon=ADDON,
        resources=(release, issuer, policy["policy"], policy["attachment"]),
        outputs={"issuer": ISSUER_NAME},
    )
