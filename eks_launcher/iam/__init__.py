"""
IAM Module for EKS
Creates the control plane role and the worker identity shared by node groups and add-ons
"""

from .functions import attach_addon_policy, create_iam_resources

__all__ = [
    "attach_addon_policy",
    "create_iam_resources",
]
