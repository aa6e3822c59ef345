"""
Shared test doubles for the Pulumi SDK
"""

import contextlib
import importlib
from unittest.mock import MagicMock, Mock, patch

SDK_MODULES = [
    "eks_launcher.launcher",
    "eks_launcher.vpc.functions",
    "eks_launcher.iam.functions",
    "eks_launcher.eks.functions",
    "eks_launcher.addons.functions",
    "eks_launcher.addons.orchestrator",
    "eks_launcher.addons.cert_manager",
    "eks_launcher.addons.metrics_server",
    "eks_launcher.addons.traefik",
    "eks_launcher.addons.external_dns",
    "eks_launcher.addons.node_termination_handler",
    "eks_launcher.addons.loki",
    "eks_launcher.addons.grafana",
    "eks_launcher.addons.ebs_csi",
    "eks_launcher.addons.snapshot_controller",
    "eks_launcher.addons.cluster_autoscaler",
    "eks_launcher.addons.hello_world",
]


class FakeOutput:
    """Resolves apply() immediately, standing in for pulumi.Output"""

    def __init__(self, value):
        self.value = value

    def apply(self, fn):
        return FakeOutput(fn(self.value))

    @staticmethod
    def all(*args):
        return FakeOutput(list(args))


def fake_cluster(name="demo"):
    cluster = Mock()
    cluster.name = name
    cluster.endpoint = "https://ABC.gr7.us-east-1.eks.amazonaws.com"
    cluster.certificate_authority.data = "Q0VSVElGSUNBVEU="
    return cluster


def fake_zone(zone_id="Z0123456789", name="example.com"):
    zone = Mock()
    zone.zone_id = zone_id
    zone.name = name
    return zone


def make_sdk_mocks(azs=("us-east-1a", "us-east-1b", "us-east-1c"), cluster_name="demo"):
    mock_aws = MagicMock()
    mock_aws.get_availability_zones.return_value = Mock(names=list(azs))
    mock_aws.eks.Cluster.return_value = fake_cluster(cluster_name)
    mock_aws.route53.get_zone.return_value = fake_zone()

    mock_pulumi = MagicMock()
    mock_pulumi.Output.all.side_effect = FakeOutput.all

    mock_k8s = MagicMock()
    return mock_aws, mock_pulumi, mock_k8s


@contextlib.contextmanager
def patched_sdk(mock_aws, mock_pulumi, mock_k8s, modules=SDK_MODULES):
    """Replace aws, pulumi and k8s in every launcher module that imports them"""
    replacements = {"aws": mock_aws, "pulumi": mock_pulumi, "k8s": mock_k8s}
    with contextlib.ExitStack() as stack:
        for module_name in modules:
            module = importlib.import_module(module_name)
            for attr, replacement in replacements.items():
                if hasattr(module, attr):
                    stack.enter_context(patch.object(module, attr, replacement))
        yield
