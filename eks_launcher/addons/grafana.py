"""
Grafana with Loki as its datasource
"""

from typing import List

import pulumi

from ..config import ResourceSpec
from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart

CHART_VERSION = "6.17.2"


def describe_grafana(name: str, namespace: str, resources: ResourceSpec, loki_url: str) -> ChartDescriptor:
    limits = {"cpu": resources.cpu, "memory": resources.memory}
    return ChartDescriptor(
        release_name=f"{name}-grafana",
        chart="grafana",
        repo="https://grafana.github.io/helm-charts",
        version=CHART_VERSION,
        namespace=namespace,
        values={
            "resources": {"limits": limits, "requests": limits},
            "datasources": {
                "datasources.yaml": {
                    "apiVersion": 1,
                    "datasources": [
                        {
                            "name": "Loki",
                            "type": "loki",
                            "url": loki_url,
                            "access": "proxy",
                        }
                    ],
                }
            },
        },
    )


def deploy_grafana(ctx: AddonContext, loki_url: str, depends_on: List[pulumi.Resource]) -> pulumi.Resource:
    descriptor = describe_grafana(ctx.name, ctx.namespace, ctx.config.logging.resources.grafana, loki_url)
    return apply_chart(descriptor, ctx.k8s_provider, depends_on)
