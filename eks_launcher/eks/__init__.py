"""
EKS Module
Creates the EKS control plane and managed node groups
"""

from .functions import ClusterHandle, create_eks_resources, render_kubeconfig, scaling_group_name

__all__ = [
    "ClusterHandle",
    "create_eks_resources",
    "render_kubeconfig",
    "scaling_group_name",
]
