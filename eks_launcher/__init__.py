"""
EKS cluster launcher
One Pulumi call provisions a VPC, an EKS cluster with spot node groups, and its add-ons
"""

from .config import ResolvedConfig, get_config, resolve
from .errors import (
    DependencyNotReady,
    InvalidConfiguration,
    LauncherError,
    PartialProvisioning,
    ProviderCallFailed,
)
from .launcher import LaunchResult, create_launcher

__all__ = [
    "DependencyNotReady",
    "InvalidConfiguration",
    "LaunchResult",
    "LauncherError",
    "PartialProvisioning",
    "ProviderCallFailed",
    "ResolvedConfig",
    "create_launcher",
    "get_config",
    "resolve",
]
