"""
Log aggregation: Loki for storage, Promtail shipping container and journal logs, Grafana on top
"""

from typing import Any, Dict, List

import pulumi

from ..config import LoggingConfig
from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart
from .grafana import deploy_grafana

ADDON = "logging"
LOKI_CHART_VERSION = "2.6.0"
PROMTAIL_CHART_VERSION = "3.8.2"
GRAFANA_REPO = "https://grafana.github.io/helm-charts"

JOURNAL_SCRAPE_CONFIG = """
- job_name: journal
  journal:
    path: /var/log/journal
    max_age: 12h
    labels:
      job: systemd-journal
  relabel_configs:
      - source_labels: ['__journal__systemd_unit']
        target_label: 'unit'
      - source_labels: ['__journal__hostname']
        target_label: 'hostname'
"""


def loki_url(name: str) -> str:
    return f"http://{name}-loki:3100"


def _limits(cpu: str, memory: str) -> Dict[str, Any]:
    return {"limits": {"cpu": cpu, "memory": memory}, "requests": {"cpu": cpu, "memory": memory}}


def describe_loki(name: str, namespace: str, logging: LoggingConfig) -> ChartDescriptor:
    """
    Describe the Loki chart

    Retention only applies with a persistent volume; ephemeral storage is lost
    whenever the pod is rescheduled anyway.
    """
    if logging.persistent_volume:
        compactor = {
            "compaction_interval": "10m",
            "retention_enabled": True,
            "retention_delete_delay": "2h",
            "retention_delete_worker_count": 150,
        }
        limits_config = {"retention_period": logging.retention_period}
    else:
        compactor = {}
        limits_config = {}

    resources = logging.resources.loki
    return ChartDescriptor(
        release_name=f"{name}-loki",
        chart="loki",
        repo=GRAFANA_REPO,
        version=LOKI_CHART_VERSION,
        namespace=namespace,
        values={
            "config": {
                "compactor": compactor,
                "limits_config": limits_config,
            },
            "persistence": {
                "enabled": logging.persistent_volume,
                "size": logging.pv_size,
            },
            "resources": _limits(resources.cpu, resources.memory),
            # read-only root filesystem, loki needs a writable /tmp
            "extraVolumes": [{"name": "temp", "emptyDir": {}}],
            "extraVolumeMounts": [{"name": "temp", "mountPath": "/tmp"}],
        },
    )


def describe_promtail(name: str, namespace: str, logging: LoggingConfig) -> ChartDescriptor:
    resources = logging.resources.promtail
    return ChartDescriptor(
        release_name=f"{name}-promtail",
        chart="promtail",
        repo=GRAFANA_REPO,
        version=PROMTAIL_CHART_VERSION,
        namespace=namespace,
        values={
            "config": {
                "lokiAddress": f"{loki_url(name)}/loki/api/v1/push",
                "snippets": {
                    "extraScrapeConfigs": JOURNAL_SCRAPE_CONFIG,
                    "pipelineStages": [
                        {"docker": {}},
                        {
                            "match": {
                                "selector": '{app="eventrouter"}',
                                "stages": [
                                    {"json": {"expressions": {"namespace": "event.metadata.namespace"}}},
                                    {"labels": {"namespace": ""}},
                                ],
                            }
                        },
                    ],
                },
            },
            "resources": _limits(resources.cpu, resources.memory),
            "extraVolumes": [{"name": "journal", "hostPath": {"path": "/var/log/journal"}}],
            "extraVolumeMounts": [{"name": "journal", "mountPath": "/var/log/journal", "readOnly": True}],
        },
    )


def deploy_logging(ctx: AddonContext, depends_on: List[pulumi.Resource]) -> AddonDeployment:
    loki = apply_chart(describe_loki(ctx.name, ctx.namespace, ctx.config.logging), ctx.k8s_provider, depends_on)
    promtail = apply_chart(
        describe_promtail(ctx.name, ctx.namespace, ctx.config.logging),
        ctx.k8s_provider,
        [*depends_on, loki]
    )
    grafana = deploy_grafana(ctx, loki_url(ctx.name), [*depends_on, loki])

    return AddonDeployment(
        addon=ADDON,
        resources=(loki, promtail, grafana),
        outputs={"loki_url": loki_url(ctx.name)},
    )
