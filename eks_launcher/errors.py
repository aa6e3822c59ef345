"""
Launcher errors
Every failure names the resource or add-on it belongs to
"""

from typing import Dict, List, Optional


class LauncherError(Exception):
    """Base class for launcher failures"""


class InvalidConfiguration(LauncherError):
    """Launch request violates an invariant. Raised before any provider call."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class ProviderCallFailed(LauncherError):
    """A cloud or cluster API call failed for the named resource"""

    def __init__(self, resource: str, cause: Optional[BaseException] = None):
        self.resource = resource
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"provider call failed for {resource}{detail}")


class DependencyNotReady(LauncherError):
    """An add-on prerequisite has not been deployed"""

    def __init__(self, addon: str, missing: List[str]):
        self.addon = addon
        self.missing = list(missing)
        super().__init__(f"{addon} requires {', '.join(self.missing)} to be deployed first")


class PartialProvisioning(LauncherError):
    """Some node groups or add-ons failed while others succeeded"""

    def __init__(self, failures: Dict[str, BaseException]):
        self.failures = dict(failures)
        names = ", ".join(sorted(self.failures))
        super().__init__(f"partial provisioning, failed: {names}")
