"""
Unit tests for launch request resolution and stack config loading
"""

import unittest
from unittest.mock import Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eks_launcher.config import (
    DEFAULTS,
    LauncherConfig,
    NodeGroupSpec,
    ResolvedConfig,
    deep_merge,
    load_launch_request,
    resolve,
)
from eks_launcher.errors import InvalidConfiguration


def walk(value, path="config"):
    """Yield (path, value) for every leaf of a plain config tree"""
    if isinstance(value, dict):
        for key, item in value.items():
            yield from walk(item, f"{path}.{key}")
    elif isinstance(value, list):
        for i, item in enumerate(value):
            yield from walk(item, f"{path}[{i}]")
    else:
        yield path, value


class TestResolveDefaults(unittest.TestCase):
    """Defaults fill every field the request leaves out"""

    def setUp(self):
        self.config = resolve({"root_domain_name": "example.com"})

    def test_returns_resolved_config(self):
        self.assertIsInstance(self.config, ResolvedConfig)

    def test_top_level_defaults(self):
        self.assertEqual(self.config.region, "us-east-1")
        self.assertEqual(self.config.profile, "default")
        self.assertEqual(self.config.cidr_block, "10.0.0.0/16")
        self.assertFalse(self.config.all_azs)
        self.assertEqual(self.config.volume_size, 20)
        self.assertEqual(self.config.email, "")

    def test_default_node_group(self):
        self.assertEqual(self.config.node_groups, (
            NodeGroupSpec(
                name="default",
                instance_types=("r5.large",),
                capacity_type="SPOT",
                min_size=1,
                max_size=3,
                desired_size=1,
            ),
        ))

    def test_addon_toggles(self):
        self.assertTrue(self.config.cert_manager.enabled)
        self.assertTrue(self.config.traefik.enabled)
        self.assertTrue(self.config.external_dns.enabled)
        self.assertTrue(self.config.node_termination_handler.enabled)
        self.assertTrue(self.config.node_termination_handler.spot_interruption_draining)
        self.assertFalse(self.config.logging.enabled)
        self.assertFalse(self.config.autoscaling.enabled)
        self.assertFalse(self.config.snapshot_controller.enabled)

    def test_logging_resources(self):
        resources = self.config.logging.resources
        self.assertEqual((resources.grafana.cpu, resources.grafana.memory), ("200m", "256Mi"))
        self.assertEqual((resources.loki.cpu, resources.loki.memory), ("250m", "256Mi"))
        self.assertEqual((resources.promtail.cpu, resources.promtail.memory), ("100m", "128Mi"))

    def test_no_field_left_unset(self):
        for path, value in walk(self.config.to_dict()):
            self.assertIsNotNone(value, f"{path} is None")

    def test_defaults_are_not_shared(self):
        resolved = resolve({"root_domain_name": "example.com", "tags": {"team": "infra"}})
        self.assertEqual(DEFAULTS["tags"], {})
        self.assertEqual(dict(resolved.tags), {"team": "infra"})


class TestDeepMerge(unittest.TestCase):
    """Nested mappings merge field by field"""

    def test_partial_traefik_keeps_resources(self):
        config = resolve({"root_domain_name": "example.com", "traefik": {"replicas": 5}})
        self.assertEqual(config.traefik.replicas, 5)
        self.assertEqual(config.traefik.resources.cpu, "300m")
        self.assertEqual(config.traefik.resources.memory, "256Mi")
        self.assertEqual(config.traefik.autoscaling.max_replicas, 10)

    def test_none_takes_default(self):
        config = resolve({"root_domain_name": "example.com", "region": None})
        self.assertEqual(config.region, "us-east-1")

    def test_lists_replace(self):
        config = resolve({"root_domain_name": "example.com", "traefik": {"whitelist": ["1.2.3.4/32"]}})
        self.assertEqual(config.traefik.whitelist, ("1.2.3.4/32",))

    def test_node_group_entries_merge_over_group_defaults(self):
        config = resolve({
            "root_domain_name": "example.com",
            "node_groups": [{"name": "batch", "capacity_type": "ON_DEMAND"}],
        })
        group = config.node_groups[0]
        self.assertEqual(group.capacity_type, "ON_DEMAND")
        self.assertEqual(group.instance_types, ("r5.large",))
        self.assertEqual((group.min_size, group.max_size, group.desired_size), (1, 3, 1))

    def test_bool_is_toggle_shorthand(self):
        config = resolve({
            "root_domain_name": "example.com",
            "autoscaling": False,
            "logging": True,
            "snapshot_controller": True,
        })
        self.assertFalse(config.autoscaling.enabled)
        self.assertTrue(config.logging.enabled)
        self.assertEqual(config.logging.pv_size, "10Gi")
        self.assertTrue(config.snapshot_controller.enabled)

    def test_nested_toggle_shorthand(self):
        config = resolve({"root_domain_name": "example.com", "traefik": {"autoscaling": True}})
        self.assertTrue(config.traefik.autoscaling.enabled)
        self.assertEqual(config.traefik.autoscaling.max_replicas, 10)

    def test_deep_merge_does_not_touch_inputs(self):
        defaults = {"a": {"b": 1, "c": 2}}
        overrides = {"a": {"b": 5}}
        merged = deep_merge(defaults, overrides)
        self.assertEqual(merged, {"a": {"b": 5, "c": 2}})
        self.assertEqual(defaults, {"a": {"b": 1, "c": 2}})


class TestResolveIdempotence(unittest.TestCase):

    def test_resolving_twice_is_stable(self):
        request = {
            "root_domain_name": "example.com",
            "node_groups": [{"name": "default"}, {"name": "spot", "instance_types": ["m5.large", "m5a.large"]}],
            "traefik": {"replicas": 2},
            "tags": {"team": "infra"},
        }
        once = resolve(request)
        self.assertEqual(resolve(once), once)
        self.assertEqual(resolve(once.to_dict()), once)


class TestResolveValidation(unittest.TestCase):
    """Invalid requests fail before anything is provisioned, naming the field"""

    def assertInvalid(self, request, field):
        with self.assertRaises(InvalidConfiguration) as ctx:
            resolve(request)
        self.assertEqual(ctx.exception.field, field)

    def test_missing_root_domain(self):
        self.assertInvalid({}, "root_domain_name")

    def test_empty_root_domain(self):
        self.assertInvalid({"root_domain_name": "  "}, "root_domain_name")

    def test_min_above_max(self):
        self.assertInvalid(
            {
                "root_domain_name": "example.com",
                "node_groups": [{"name": "default", "min_size": 3, "max_size": 1, "desired_size": 2}],
            },
            "node_groups[0].min_size",
        )

    def test_desired_outside_bounds(self):
        self.assertInvalid(
            {
                "root_domain_name": "example.com",
                "node_groups": [{"name": "default", "min_size": 1, "max_size": 3, "desired_size": 5}],
            },
            "node_groups[0].desired_size",
        )

    def test_negative_size(self):
        self.assertInvalid(
            {"root_domain_name": "example.com", "node_groups": [{"name": "default", "min_size": -1}]},
            "node_groups[0].min_size",
        )

    def test_unknown_key(self):
        self.assertInvalid({"root_domain_name": "example.com", "traefik": {"replica": 2}}, "traefik.replica")

    def test_unknown_capacity_type(self):
        self.assertInvalid(
            {"root_domain_name": "example.com", "node_groups": [{"name": "default", "capacity_type": "RESERVED"}]},
            "node_groups[0].capacity_type",
        )

    def test_no_instance_types(self):
        self.assertInvalid(
            {"root_domain_name": "example.com", "node_groups": [{"name": "default", "instance_types": []}]},
            "node_groups[0].instance_types",
        )

    def test_duplicate_group_names(self):
        self.assertInvalid(
            {"root_domain_name": "example.com", "node_groups": [{"name": "a"}, {"name": "a"}]},
            "node_groups[1].name",
        )

    def test_empty_node_groups(self):
        self.assertInvalid({"root_domain_name": "example.com", "node_groups": []}, "node_groups")

    def test_bad_cidr(self):
        self.assertInvalid({"root_domain_name": "example.com", "cidr_block": "10.0.0.0/33"}, "cidr_block")

    def test_cidr_too_small_for_two_azs(self):
        self.assertInvalid({"root_domain_name": "example.com", "cidr_block": "10.0.0.0/27"}, "cidr_block")

    def test_smallest_cidr_accepted(self):
        self.assertEqual(resolve({"root_domain_name": "example.com", "cidr_block": "10.0.0.0/26"}).cidr_block,
                         "10.0.0.0/26")

    def test_small_loki_volume(self):
        self.assertInvalid(
            {"root_domain_name": "example.com", "logging": {"pv_size": "5Gi"}},
            "logging.pv_size",
        )

    def test_zero_volume_size(self):
        self.assertInvalid({"root_domain_name": "example.com", "volume_size": 0}, "volume_size")

    def test_non_mapping_section(self):
        self.assertInvalid({"root_domain_name": "example.com", "traefik": "on"}, "traefik")


class TestCommonTags(unittest.TestCase):

    def test_common_tags_include_caller_tags(self):
        config = resolve({"root_domain_name": "example.com", "tags": {"team": "infra"}})
        self.assertEqual(config.common_tags("demo"), {
            "iac": "pulumi-demo",
            "ManagedBy": "pulumi",
            "team": "infra",
        })


class TestLauncherConfig(unittest.TestCase):
    """Stack config is read without applying defaults"""

    def make_config(self, values):
        config = Mock()
        config.get.side_effect = lambda key: values.get(key)
        config.get_bool.side_effect = lambda key: values.get(key)
        config.get_int.side_effect = lambda key: values.get(key)
        config.get_object.side_effect = lambda key: values.get(key)
        return config

    def test_only_present_keys(self):
        config = self.make_config({
            "root_domain_name": "example.com",
            "all_azs": True,
            "traefik": {"replicas": 2},
        })
        with patch("eks_launcher.config.pulumi") as mock_pulumi:
            mock_pulumi.get_project.return_value = "launcher"
            request = load_launch_request(config)
        self.assertEqual(request, {
            "root_domain_name": "example.com",
            "all_azs": True,
            "traefik": {"replicas": 2},
        })

    def test_cluster_name_defaults_to_project(self):
        with patch("eks_launcher.config.pulumi") as mock_pulumi:
            mock_pulumi.get_project.return_value = "launcher"
            loaded = LauncherConfig(self.make_config({}))
        self.assertEqual(loaded.cluster_name, "launcher")

    def test_cluster_name_from_config(self):
        with patch("eks_launcher.config.pulumi"):
            loaded = LauncherConfig(self.make_config({"cluster_name": "demo"}))
        self.assertEqual(loaded.cluster_name, "demo")

    def test_loaded_request_resolves(self):
        with patch("eks_launcher.config.pulumi"):
            request = LauncherConfig(self.make_config({"root_domain_name": "example.com"})).request
        self.assertEqual(resolve(request).root_domain_name, "example.com")


if __name__ == '__main__':
    unittest.main()
