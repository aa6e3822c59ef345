"""
Addons Module
Cluster add-ons deployed in a fixed order onto the launched cluster
"""

from .functions import AddonContext, AddonDeployment, ChartDescriptor, apply_chart
from .orchestrator import (
    PIPELINE,
    Addon,
    AddonsResult,
    AddonStep,
    ProvisioningReport,
    deploy_addons,
    teardown_order,
    validate_pipeline,
)

__all__ = [
    "PIPELINE",
    "Addon",
    "AddonContext",
    "AddonDeployment",
    "AddonStep",
    "AddonsResult",
    "ChartDescriptor",
    "ProvisioningReport",
    "apply_chart",
    "deploy_addons",
    "teardown_order",
    "validate_pipeline",
]
