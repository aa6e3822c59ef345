"""
A hello world app used to verify ingress, DNS and certificates end to end
"""

from typing import Any, Dict, List

import pulumi
import pulumi_kubernetes as k8s

from .cert_manager import ISSUER_NAME
from .functions import AddonContext, AddonDeployment

ADDON = "hello-world"
APP = "helloworld"
IMAGE = "crccheck/hello-world:latest"
PORT = 8000
NAMESPACE = "default"


def hello_world_host(root_domain_name: str) -> str:
    return f"{APP}.{root_domain_name}"


def certificate_spec(host: str) -> Dict[str, Any]:
    return {
        "secretName": f"{APP}-cert",
        "duration": "2160h",
        "renewBefore": "360h",
        "isCA": False,
        "privateKey": {"algorithm": "RSA", "encoding": "PKCS1", "size": 2048},
        "dnsNames": [host],
        "issuerRef": {"name": ISSUER_NAME, "kind": "ClusterIssuer", "group": "cert-manager.io"},
    }


def ingress_route_spec(host: str, service_name: str) -> Dict[str, Any]:
    return {
        "entryPoints": ["web", "websecure"],
        "routes": [
            {
                "match": f"Host(`{host}`)",
                "kind": "Rule",
                "services": [
                    {"kind": "Service", "name": service_name, "port": PORT, "namespace": NAMESPACE}
                ],
            }
        ],
        "tls": {"secretName": f"{APP}-cert", "domains": [{"main": host}]},
    }


def deploy_hello_world(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    """
    Deployment and Service, a certificate from the lets-encrypt issuer, a
    traefik IngressRoute, and a plain Ingress so external-dns publishes the host
    """
    host = hello_world_host(ctx.config.root_domain_name)
    labels = {"app": APP}
    opts = pulumi.ResourceOptions(provider=ctx.k8s_provider, depends_on=depends_on)

    deployment = k8s.apps.v1.Deployment(
        f"{ctx.name}-{APP}",
        metadata=k8s.meta.v1.ObjectMetaArgs(name=APP, namespace=NAMESPACE, labels=labels),
        spec=k8s.apps.v1.DeploymentSpecArgs(
            replicas=1,
            selector=k8s.meta.v1.LabelSelectorArgs(match_labels=labels),
            template=k8s.core.v1.PodTemplateSpecArgs(
                metadata=k8s.meta.v1.ObjectMetaArgs(labels=labels),
                spec=k8s.core.v1.PodSpecArgs(
                    containers=[
                        k8s.core.v1.ContainerArgs(
                            name=APP,
                            image=IMAGE,
                            ports=[k8s.core.v1.ContainerPortArgs(name="http", container_port=PORT)],
                        )
                    ]
                )
            )
        ),
        opts=opts
    )

    service = k8s.core.v1.Service(
        f"{ctx.name}-{APP}",
        metadata=k8s.meta.v1.ObjectMetaArgs(name=APP, namespace=NAMESPACE, labels=labels),
        spec=k8s.core.v1.ServiceSpecArgs(
            type="ClusterIP",
            selector=labels,
            ports=[k8s.core.v1.ServicePortArgs(name="http", port=PORT, target_port=PORT)],
        ),
        opts=pulumi.ResourceOptions(provider=ctx.k8s_provider, depends_on=[deployment])
    )

    child_opts = pulumi.ResourceOptions(provider=ctx.k8s_provider, depends_on=[*depends_on, service])

    certificate = k8s.apiextensions.CustomResource(
        f"{ctx.name}-{APP}-cert",
        api_version="cert-manager.io/v1",
        kind="Certificate",
        metadata=k8s.meta.v1.ObjectMetaArgs(name=f"{APP}-cert", namespace=NAMESPACE),
        spec=certificate_spec(host),
        opts=child_opts
    )

    route = k8s.apiextensions.CustomResource(
        f"{ctx.name}-{APP}-route",
        api_version="traefik.containo.us/v1alpha1",
        kind="IngressRoute",
        metadata=k8s.meta.v1.ObjectMetaArgs(name=APP, namespace=NAMESPACE),
        spec=ingress_route_spec(host, APP),
        opts=pulumi.ResourceOptions(
            provider=ctx.k8s_provider,
            depends_on=[*depends_on, service],
            delete_before_replace=True
        )
    )

    ingress = k8s.networking.v1.Ingress(
        f"{ctx.name}-{APP}",
        metadata=k8s.meta.v1.ObjectMetaArgs(name=APP, namespace=NAMESPACE),
        spec=k8s.networking.v1.IngressSpecArgs(
            rules=[k8s.networking.v1.IngressRuleArgs(host=host)]
        ),
        opts=child_opts
    )

    return AddonDeployment(
        addon=ADDON,
        resources=(deployment, service, certificate, route, ingress),
        outputs={"host": host},
    )
