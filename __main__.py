"""
EKS Cluster Launcher
VPC, EKS control plane, spot node groups and the infra add-ons, from stack config
"""
import pulumi
from eks_launcher import create_launcher
from eks_launcher.config import get_config

# Configuration
config = get_config()

# Launch
launch = create_launcher(config.cluster_name, config.request)

# Exports
pulumi.export("kubeconfig", pulumi.Output.secret(launch.kubeconfig))
pulumi.export("cluster_name", launch.cluster.name)
pulumi.export("cluster_endpoint", launch.cluster.endpoint)
pulumi.export("vpc_id", launch.network.vpc_id)
pulumi.export("namespace", launch.namespace_name)
pulumi.export("node_groups", list(launch.cluster.node_groups.keys()))
pulumi.export("addons_deployed", launch.report.succeeded)
pulumi.export("addons_skipped", launch.report.skipped)
pulumi.export("addons_failed", {addon: str(error) for addon, error in launch.report.failed.items()})
pulumi.export("kubeconfig_command",
    pulumi.Output.concat(
        "aws eks update-kubeconfig --region ", launch.config.region,
        " --name ", launch.cluster.name
    ))
