"""
Configuration management for the EKS cluster launcher
Launch requests are merged over DEFAULTS, the only place defaults live
"""

import copy
import ipaddress
import re
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import pulumi

from .errors import InvalidConfiguration

CAPACITY_TYPES = ("SPOT", "ON_DEMAND")

MIN_LOKI_PV_GI = 10

# Smallest subnet AWS allows; two AZs need four of them
MIN_SUBNET_PREFIX = 28
MAX_VPC_PREFIX = MIN_SUBNET_PREFIX - 2

NODE_GROUP_DEFAULTS: Dict[str, Any] = {
    "name": None,
    "instance_types": ["r5.large"],
    "capacity_type": "SPOT",
    "min_size": 1,
    "max_size": 3,
    "desired_size": 1,
}

DEFAULTS: Dict[str, Any] = {
    "root_domain_name": None,
    "region": "us-east-1",
    "profile": "default",
    "cidr_block": "10.0.0.0/16",
    "all_azs": False,
    "kubernetes_version": "1.29",
    "volume_size": 20,
    "email": "",
    "node_groups": [{"name": "default"}],
    "autoscaling": {
        "enabled": False,
    },
    "logging": {
        "enabled": False,
        "persistent_volume": False,
        "pv_size": "10Gi",
        "retention_period": "336h",
        "resources": {
            "grafana": {"cpu": "200m", "memory": "256Mi"},
            "loki": {"cpu": "250m", "memory": "256Mi"},
            "promtail": {"cpu": "100m", "memory": "128Mi"},
        },
    },
    "node_termination_handler": {
        "enabled": True,
        "spot_interruption_draining": True,
        "rebalance_draining": False,
        "scheduled_event_draining": False,
        "prometheus_server": False,
        "emit_kubernetes_events": False,
    },
    "traefik": {
        "enabled": True,
        "whitelist": [],
        "replicas": 3,
        "resources": {"cpu": "300m", "memory": "256Mi"},
        "autoscaling": {
            "enabled": False,
            "cpu_threshold": 80,
            "memory_threshold": 80,
            "min_replicas": 3,
            "max_replicas": 10,
        },
    },
    "cert_manager": {"enabled": True},
    "external_dns": {"enabled": True},
    "metrics_server": {"enabled": True},
    "ebs_csi": {"enabled": True},
    "snapshot_controller": {"enabled": False},
    "hello_world": {"enabled": True},
    "tags": {},
}

# Mappings whose keys are chosen by the caller rather than by DEFAULTS
FREE_FORM_KEYS = frozenset({"tags"})


@dataclass(frozen=True)
class ResourceSpec:
    cpu: str
    memory: str


@dataclass(frozen=True)
class NodeGroupSpec:
    """A logical worker group, expanded to one scaling group per private subnet"""
    name: str
    instance_types: Tuple[str, ...]
    capacity_type: str
    min_size: int
    max_size: int
    desired_size: int


@dataclass(frozen=True)
class FeatureToggle:
    enabled: bool


@dataclass(frozen=True)
class LoggingResources:
    grafana: ResourceSpec
    loki: ResourceSpec
    promtail: ResourceSpec


@dataclass(frozen=True)
class LoggingConfig:
    enabled: bool
    persistent_volume: bool
    pv_size: str
    retention_period: str
    resources: LoggingResources


@dataclass(frozen=True)
class NodeTerminationHandlerConfig:
    enabled: bool
    spot_interruption_draining: bool
    rebalance_draining: bool
    scheduled_event_draining: bool
    prometheus_server: bool
    emit_kubernetes_events: bool


@dataclass(frozen=True)
class TraefikAutoscaling:
    enabled: bool
    cpu_threshold: int
    memory_threshold: int
    min_replicas: int
    max_replicas: int


@dataclass(frozen=True)
class TraefikConfig:
    enabled: bool
    whitelist: Tuple[str, ...]
    replicas: int
    resources: ResourceSpec
    autoscaling: TraefikAutoscaling


@dataclass(frozen=True)
class ResolvedConfig:
    """A launch request with every optional field populated"""
    root_domain_name: str
    region: str
    profile: str
    cidr_block: str
    all_azs: bool
    kubernetes_version: str
    volume_size: int
    email: str
    node_groups: Tuple[NodeGroupSpec, ...]
    autoscaling: FeatureToggle
    logging: LoggingConfig
    node_termination_handler: NodeTerminationHandlerConfig
    traefik: TraefikConfig
    cert_manager: FeatureToggle
    external_dns: FeatureToggle
    metrics_server: FeatureToggle
    ebs_csi: FeatureToggle
    snapshot_controller: FeatureToggle
    hello_world: FeatureToggle
    tags: Tuple[Tuple[str, str], ...] = field(default=())

    def to_dict(self) -> Dict[str, Any]:
        """Return the request-shaped mapping this config resolves from"""
        return _to_plain(self)

    def common_tags(self, name: str) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "iac": f"pulumi-{name}",
            "ManagedBy": "pulumi",
        }
        base_tags.update(dict(self.tags))
        return base_tags


def _to_plain(value: Any) -> Any:
    if is_dataclass(value):
        plain = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if f.name in FREE_FORM_KEYS:
                plain[f.name] = dict(item)
            else:
                plain[f.name] = _to_plain(item)
        return plain
    if isinstance(value, tuple):
        return [_to_plain(item) for item in value]
    return value


def deep_merge(defaults: Mapping[str, Any], overrides: Mapping[str, Any], path: str = "") -> Dict[str, Any]:
    """
    Merge overrides over defaults field by field

    A bare bool given for a section with an `enabled` key is shorthand for
    `{"enabled": value}`.

    Args:
        defaults: Default tree
        overrides: Caller supplied values, possibly partial
        path: Dotted path of this level, used in error messages

    Returns:
        New dict with every default key populated
    """
    unknown = sorted(set(overrides) - set(defaults))
    if unknown:
        raise InvalidConfiguration(_join(path, unknown[0]), "unknown setting")

    merged = {}
    for key, default in defaults.items():
        value = overrides.get(key)
        key_path = _join(path, key)
        if isinstance(value, bool) and isinstance(default, dict) and "enabled" in default:
            value = {"enabled": value}
        if value is None:
            merged[key] = copy.deepcopy(default)
        elif isinstance(default, dict) and key not in FREE_FORM_KEYS:
            if not isinstance(value, Mapping):
                raise InvalidConfiguration(key_path, "expected a mapping")
            merged[key] = deep_merge(default, value, key_path)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _require_str(value: Any, path: str, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise InvalidConfiguration(path, "expected a string")
    if not allow_empty and not value.strip():
        raise InvalidConfiguration(path, "must not be empty")
    return value


def _require_bool(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidConfiguration(path, "expected true or false")
    return value


def _require_count(value: Any, path: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfiguration(path, "expected an integer")
    if value < minimum:
        raise InvalidConfiguration(path, f"must be at least {minimum}")
    return value


def _require_str_list(value: Any, path: str) -> Tuple[str, ...]:
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise InvalidConfiguration(path, "expected a list")
    return tuple(_require_str(item, f"{path}[{i}]") for i, item in enumerate(value))


def _gibibytes(quantity: str, path: str) -> float:
    match = re.fullmatch(r"(\d+)(Mi|Gi|Ti)", quantity)
    if not match:
        raise InvalidConfiguration(path, f"unrecognised size {quantity!r}")
    amount, unit = int(match.group(1)), match.group(2)
    return amount * {"Mi": 1 / 1024, "Gi": 1, "Ti": 1024}[unit]


def _resources(raw: Mapping[str, Any], path: str) -> ResourceSpec:
    return ResourceSpec(
        cpu=_require_str(raw["cpu"], f"{path}.cpu"),
        memory=_require_str(raw["memory"], f"{path}.memory"),
    )


def _toggle(raw: Mapping[str, Any], path: str) -> FeatureToggle:
    return FeatureToggle(enabled=_require_bool(raw["enabled"], f"{path}.enabled"))


def _node_group(raw: Any, index: int) -> NodeGroupSpec:
    path = f"node_groups[{index}]"
    if not isinstance(raw, Mapping):
        raise InvalidConfiguration(path, "expected a mapping")
    merged = deep_merge(NODE_GROUP_DEFAULTS, raw, path)

    name = merged["name"]
    if name is None:
        raise InvalidConfiguration(f"{path}.name", "is required")
    name = _require_str(name, f"{path}.name")
    if not re.fullmatch(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?", name):
        raise InvalidConfiguration(f"{path}.name", "must be lowercase alphanumeric or '-'")

    instance_types = _require_str_list(merged["instance_types"], f"{path}.instance_types")
    if not instance_types:
        raise InvalidConfiguration(f"{path}.instance_types", "at least one instance type is required")

    capacity_type = merged["capacity_type"]
    if capacity_type not in CAPACITY_TYPES:
        raise InvalidConfiguration(f"{path}.capacity_type", f"must be one of {', '.join(CAPACITY_TYPES)}")

    min_size = _require_count(merged["min_size"], f"{path}.min_size")
    max_size = _require_count(merged["max_size"], f"{path}.max_size", minimum=1)
    desired_size = _require_count(merged["desired_size"], f"{path}.desired_size")
    if min_size > max_size:
        raise InvalidConfiguration(f"{path}.min_size", f"min_size {min_size} exceeds max_size {max_size}")
    if not min_size <= desired_size <= max_size:
        raise InvalidConfiguration(
            f"{path}.desired_size",
            f"desired_size {desired_size} is outside [{min_size}, {max_size}]",
        )

    return NodeGroupSpec(
        name=name,
        instance_types=instance_types,
        capacity_type=capacity_type,
        min_size=min_size,
        max_size=max_size,
        desired_size=desired_size,
    )


def resolve(request: Any) -> ResolvedConfig:
    """
    Resolve a launch request against DEFAULTS

    Args:
        request: Mapping with snake_case keys, or an already resolved config

    Returns:
        Fully populated ResolvedConfig

    Raises:
        InvalidConfiguration: request is structurally invalid
    """
    if isinstance(request, ResolvedConfig):
        request = request.to_dict()
    if not isinstance(request, Mapping):
        raise InvalidConfiguration("request", "expected a mapping")

    merged = deep_merge(DEFAULTS, request)

    root_domain_name = merged["root_domain_name"]
    if root_domain_name is None:
        raise InvalidConfiguration("root_domain_name", "is required")
    root_domain_name = _require_str(root_domain_name, "root_domain_name")

    cidr_block = _require_str(merged["cidr_block"], "cidr_block")
    try:
        network = ipaddress.IPv4Network(cidr_block)
    except ValueError as e:
        raise InvalidConfiguration("cidr_block", str(e)) from e
    if network.prefixlen > MAX_VPC_PREFIX:
        raise InvalidConfiguration("cidr_block", f"{cidr_block} is smaller than /{MAX_VPC_PREFIX}")

    raw_groups = merged["node_groups"]
    if isinstance(raw_groups, (str, bytes, Mapping)) or not isinstance(raw_groups, (list, tuple)):
        raise InvalidConfiguration("node_groups", "expected a list")
    if not raw_groups:
        raise InvalidConfiguration("node_groups", "at least one node group is required")
    node_groups = tuple(_node_group(raw, i) for i, raw in enumerate(raw_groups))
    seen = set()
    for i, group in enumerate(node_groups):
        if group.name in seen:
            raise InvalidConfiguration(f"node_groups[{i}].name", f"duplicate node group {group.name!r}")
        seen.add(group.name)

    logging_raw = merged["logging"]
    pv_size = _require_str(logging_raw["pv_size"], "logging.pv_size")
    if _gibibytes(pv_size, "logging.pv_size") < MIN_LOKI_PV_GI:
        raise InvalidConfiguration("logging.pv_size", f"must be at least {MIN_LOKI_PV_GI}Gi")
    logging_config = LoggingConfig(
        enabled=_require_bool(logging_raw["enabled"], "logging.enabled"),
        persistent_volume=_require_bool(logging_raw["persistent_volume"], "logging.persistent_volume"),
        pv_size=pv_size,
        retention_period=_require_str(logging_raw["retention_period"], "logging.retention_period"),
        resources=LoggingResources(
            grafana=_resources(logging_raw["resources"]["grafana"], "logging.resources.grafana"),
            loki=_resources(logging_raw["resources"]["loki"], "logging.resources.loki"),
            promtail=_resources(logging_raw["resources"]["promtail"], "logging.resources.promtail"),
        ),
    )

    nth_raw = merged["node_termination_handler"]
    node_termination_handler = NodeTerminationHandlerConfig(
        **{key: _require_bool(value, f"node_termination_handler.{key}") for key, value in nth_raw.items()}
    )

    traefik_raw = merged["traefik"]
    hpa_raw = traefik_raw["autoscaling"]
    traefik_autoscaling = TraefikAutoscaling(
        enabled=_require_bool(hpa_raw["enabled"], "traefik.autoscaling.enabled"),
        cpu_threshold=_require_count(hpa_raw["cpu_threshold"], "traefik.autoscaling.cpu_threshold", minimum=1),
        memory_threshold=_require_count(hpa_raw["memory_threshold"], "traefik.autoscaling.memory_threshold", minimum=1),
        min_replicas=_require_count(hpa_raw["min_replicas"], "traefik.autoscaling.min_replicas", minimum=1),
        max_replicas=_require_count(hpa_raw["max_replicas"], "traefik.autoscaling.max_replicas", minimum=1),
    )
    if traefik_autoscaling.min_replicas > traefik_autoscaling.max_replicas:
        raise InvalidConfiguration("traefik.autoscaling.min_replicas", "exceeds max_replicas")
    traefik = TraefikConfig(
        enabled=_require_bool(traefik_raw["enabled"], "traefik.enabled"),
        whitelist=_require_str_list(traefik_raw["whitelist"], "traefik.whitelist"),
        replicas=_require_count(traefik_raw["replicas"], "traefik.replicas"),
        resources=_resources(traefik_raw["resources"], "traefik.resources"),
        autoscaling=traefik_autoscaling,
    )

    tags = merged["tags"]
    if not isinstance(tags, Mapping):
        raise InvalidConfiguration("tags", "expected a mapping")

    return ResolvedConfig(
        root_domain_name=root_domain_name,
        region=_require_str(merged["region"], "region"),
        profile=_require_str(merged["profile"], "profile"),
        cidr_block=cidr_block,
        all_azs=_require_bool(merged["all_azs"], "all_azs"),
        kubernetes_version=_require_str(merged["kubernetes_version"], "kubernetes_version"),
        volume_size=_require_count(merged["volume_size"], "volume_size", minimum=1),
        email=_require_str(merged["email"], "email", allow_empty=True),
        node_groups=node_groups,
        autoscaling=_toggle(merged["autoscaling"], "autoscaling"),
        logging=logging_config,
        node_termination_handler=node_termination_handler,
        traefik=traefik,
        cert_manager=_toggle(merged["cert_manager"], "cert_manager"),
        external_dns=_toggle(merged["external_dns"], "external_dns"),
        metrics_server=_toggle(merged["metrics_server"], "metrics_server"),
        ebs_csi=_toggle(merged["ebs_csi"], "ebs_csi"),
        snapshot_controller=_toggle(merged["snapshot_controller"], "snapshot_controller"),
        hello_world=_toggle(merged["hello_world"], "hello_world"),
        tags=tuple(sorted((str(k), str(v)) for k, v in tags.items())),
    )


class LauncherConfig:
    """Reads a launch request from Pulumi stack configuration"""

    STRING_KEYS = ("root_domain_name", "region", "profile", "cidr_block", "kubernetes_version", "email")
    OBJECT_KEYS = (
        "node_groups",
        "autoscaling",
        "logging",
        "node_termination_handler",
        "traefik",
        "cert_manager",
        "external_dns",
        "metrics_server",
        "ebs_csi",
        "snapshot_controller",
        "hello_world",
        "tags",
    )

    def __init__(self, config: Optional[pulumi.Config] = None):
        self.config = config or pulumi.Config()

        self.cluster_name = self.config.get("cluster_name") or pulumi.get_project()

    @property
    def request(self) -> Dict[str, Any]:
        """Only the keys present in stack config; defaults are left to resolve()"""
        request: Dict[str, Any] = {}
        for key in self.STRING_KEYS:
            value = self.config.get(key)
            if value is not None:
                request[key] = value

        all_azs = self.config.get_bool("all_azs")
        if all_azs is not None:
            request["all_azs"] = all_azs

        volume_size = self.config.get_int("volume_size")
        if volume_size is not None:
            request["volume_size"] = volume_size

        for key in self.OBJECT_KEYS:
            value = self.config.get_object(key)
            if value is not None:
                request[key] = value
        return request


def get_config() -> LauncherConfig:
    """Get the launcher configuration for the current stack"""
    return LauncherConfig()


def load_launch_request(config: Optional[pulumi.Config] = None) -> Dict[str, Any]:
    """Build a launch request from stack config without applying defaults"""
    return LauncherConfig(config).request
