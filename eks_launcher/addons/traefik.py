"""
Traefik ingress controller behind an NLB, with its dashboard route and optional HPA
"""

from typing import Any, Dict, List

import pulumi
import pulumi_kubernetes as k8s

from ..config import TraefikConfig
from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart
from .patches import set_namespace

ADDON = "traefik"
CHART_VERSION = "20.8.0"

SERVICE_ANNOTATIONS = {
    "service.beta.kubernetes.io/aws-load-balancer-backend-protocol": "http",
    "service.beta.kubernetes.io/aws-load-balancer-connection-idle-timeout": "30",
    # Layer 4, client IPs reach traefik. NLBs take no security groups.
    "service.beta.kubernetes.io/aws-load-balancer-type": "nlb",
}


def entrypoint_arguments(private_cidr: str) -> List[str]:
    arguments = [
        "--api.dashboard",
        "--entrypoints.web.http.redirections.entryPoint.permanent=true",
    ]
    for entrypoint in ("web", "websecure"):
        arguments += [
            f"--entryPoints.{entrypoint}.forwardedHeaders.trustedIPs={private_cidr}",
            f"--entryPoints.{entrypoint}.proxyProtocol.trustedIPs={private_cidr}",
            f"--entryPoints.{entrypoint}.transport.respondingTimeouts.readTimeout=30s",
            f"--entryPoints.{entrypoint}.transport.respondingTimeouts.writeTimeout=30s",
            f"--entryPoints.{entrypoint}.transport.respondingTimeouts.idleTimeout=30s",
        ]
    return arguments


def describe_traefik(name: str, namespace: str, traefik: TraefikConfig, private_cidr: str) -> ChartDescriptor:
    """
    Describe the traefik chart

    Args:
        name: Launch name
        namespace: Infra namespace
        traefik: Resolved traefik settings
        private_cidr: VPC CIDR trusted for forwarded headers

    Returns:
        ChartDescriptor with a namespace patch for the chart's Service
    """
    release_name = f"{name}-traefik"
    resources = {"cpu": traefik.resources.cpu, "memory": traefik.resources.memory}

    values = {
        "providers": {
            # Ingress status carries the service address, external-dns reads it
            "kubernetesIngress": {"publishedService": {"enabled": True}}
        },
        "ports": {"web": {"redirectTo": "websecure"}},
        "logs": {
            "general": {"level": "ERROR", "format": "json"},
            "access": {
                "enabled": True,
                "format": "json",
                "fields": {
                    "headers": {
                        "defaultmode": "keep",
                        "names": {"Authorization": "redact"},
                    }
                },
            },
        },
        "resources": {"limits": resources, "requests": resources},
        "additionalArguments": entrypoint_arguments(private_cidr),
        "globalArguments": [],
        "service": {
            "loadBalancerSourceRanges": list(traefik.whitelist),
            "annotations": dict(SERVICE_ANNOTATIONS),
        },
        # Chart hooks are not run by the deployer, the dashboard route is created separately
        "ingressRoute": {"dashboard": {"enabled": False}},
        "affinity": {
            "podAntiAffinity": {
                "preferredDuringSchedulingIgnoredDuringExecution": [
                    {
                        "weight": 100,
                        "podAffinityTerm": {
                            "labelSelector": {
                                "matchExpressions": [
                                    {"key": "app", "operator": "In", "values": [release_name]}
                                ]
                            },
                            "topologyKey": "topology.kubernetes.io/zone",
                        },
                    }
                ]
            }
        },
        "podDisruptionBudget": {"enabled": True, "minAvailable": 2},
        "deployment": {
            "replicas": traefik.replicas,
            "podAnnotations": {
                "prometheus.io/port": "9100",
                "prometheus.io/scrape": "true",
            },
        },
    }

    return ChartDescriptor(
        release_name=release_name,
        chart="traefik",
        repo="https://traefik.github.io/charts",
        version=CHART_VERSION,
        namespace=namespace,
        values=values,
        patches=(set_namespace(namespace, kind="Service"),),
    )


def hpa_spec(deployment_name: str, traefik: TraefikConfig) -> Dict[str, Any]:
    autoscaling = traefik.autoscaling
    return {
        "min_replicas": autoscaling.min_replicas,
        "max_replicas": autoscaling.max_replicas,
        "scale_target_ref": {
            "api_version": "apps/v1",
            "kind": "Deployment",
            "name": deployment_name,
        },
        "metrics": [
            {
                "type": "Resource",
                "resource": {
                    "name": resource,
                    "target": {"type": "Utilization", "average_utilization": threshold},
                },
            }
            for resource, threshold in (("cpu", autoscaling.cpu_threshold),
                                        ("memory", autoscaling.memory_threshold))
        ],
    }


DASHBOARD_ROUTE_SPEC = {
    "entryPoints": ["traefik"],
    "routes": [
        {
            "match": "(PathPrefix(`/dashboard`) || PathPrefix(`/api`))",
            "kind": "Rule",
            "services": [{"name": "api@internal", "kind": "TraefikService"}],
        }
    ],
}


def deploy_traefik(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    descriptor = describe_traefik(ctx.name, ctx.namespace, ctx.config.traefik, ctx.config.cidr_block)
    chart = apply_chart(descriptor, ctx.k8s_provider, depends_on)
    opts = pulumi.ResourceOptions(provider=ctx.k8s_provider, depends_on=[chart])

    dashboard = k8s.apiextensions.CustomResource(
        f"{ctx.name}-traefik-dashboard",
        api_version="traefik.containo.us/v1alpha1",
        kind="IngressRoute",
        metadata=k8s.meta.v1.ObjectMetaArgs(name="dashboard", namespace=ctx.namespace),
        spec=DASHBOARD_ROUTE_SPEC,
        opts=opts
    )
    resources = [chart, dashboard]

    if ctx.config.traefik.autoscaling.enabled:
        spec = hpa_spec(descriptor.release_name, ctx.config.traefik)
        hpa = k8s.autoscaling.v2.HorizontalPodAutoscaler(
            descriptor.release_name,
            metadata=k8s.meta.v1.ObjectMetaArgs(namespace=ctx.namespace),
            spec=k8s.autoscaling.v2.HorizontalPodAutoscalerSpecArgs(
                min_replicas=spec["min_replicas"],
                max_replicas=spec["max_replicas"],
                scale_target_ref=k8s.autoscaling.v2.CrossVersionObjectReferenceArgs(**spec["scale_target_ref"]),
                metrics=[
                    k8s.autoscaling.v2.MetricSpecArgs(
                        type=metric["type"],
                        resource=k8s.autoscaling.v2.ResourceMetricSourceArgs(
                            name=metric["resource"]["name"],
                            target=k8s.autoscaling.v2.MetricTargetArgs(**metric["resource"]["target"]),
                        ),
                    )
                    for metric in spec["metrics"]
                ],
            ),
            opts=opts
        )
        resources.append(hpa)

    return AddonDeployment(
        addon=ADDON,
        resources=tuple(resources),
        outputs={"deployment": descriptor.release_name},
    )
