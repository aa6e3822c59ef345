"""
Unit tests for the network layer
"""

import unittest
from unittest.mock import MagicMock, Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eks_launcher.errors import InvalidConfiguration, ProviderCallFailed
from eks_launcher.vpc import NetworkTopology, create_vpc_resources, plan_subnet_cidrs
from eks_launcher.vpc.functions import select_availability_zones


class TestPlanSubnetCidrs(unittest.TestCase):

    def test_two_azs(self):
        public, private = plan_subnet_cidrs("10.0.0.0/16", 2)
        self.assertEqual(public, ["10.0.0.0/18", "10.0.64.0/18"])
        self.assertEqual(private, ["10.0.128.0/18", "10.0.192.0/18"])

    def test_three_azs(self):
        public, private = plan_subnet_cidrs("10.0.0.0/16", 3)
        self.assertEqual(public, ["10.0.0.0/19", "10.0.32.0/19", "10.0.64.0/19"])
        self.assertEqual(private, ["10.0.96.0/19", "10.0.128.0/19", "10.0.160.0/19"])

    def test_block_too_small(self):
        with self.assertRaises(InvalidConfiguration) as ctx:
            plan_subnet_cidrs("10.0.0.0/27", 2)
        self.assertEqual(ctx.exception.field, "cidr_block")


class TestSelectAvailabilityZones(unittest.TestCase):

    def test_two_by_default(self):
        self.assertEqual(select_availability_zones(["a", "b", "c"], False), ["a", "b"])

    def test_all_when_requested(self):
        self.assertEqual(select_availability_zones(["a", "b", "c"], True), ["a", "b", "c"])

    def test_region_with_one_az(self):
        with self.assertRaises(ProviderCallFailed):
            select_availability_zones(["a"], False)


class TestCreateVpcResources(unittest.TestCase):
    """VPC resources are declared per AZ on the launch's provider"""

    def run_with(self, azs, all_azs):
        with patch('eks_launcher.vpc.functions.aws') as mock_aws, \
                patch('eks_launcher.vpc.functions.pulumi'):
            mock_aws.get_availability_zones.return_value = Mock(names=azs)
            mock_aws.ec2.Subnet.side_effect = lambda name, **kwargs: Mock(id=f"{name}-id")
            result = create_vpc_resources(
                name="demo",
                cidr_block="10.0.0.0/16",
                all_azs=all_azs,
                provider=MagicMock(),
                tags={"iac": "pulumi-demo"}
            )
        return result, mock_aws

    def test_two_azs_give_four_subnets(self):
        result, mock_aws = self.run_with(["us-east-1a", "us-east-1b", "us-east-1c"], False)

        self.assertIsInstance(result, NetworkTopology)
        self.assertEqual(result.availability_zones, ("us-east-1a", "us-east-1b"))
        self.assertEqual(mock_aws.ec2.Subnet.call_count, 4)
        self.assertEqual(result.public_subnet_ids, ("demo-public-subnet-0-id", "demo-public-subnet-1-id"))
        self.assertEqual(result.private_subnet_ids, ("demo-private-subnet-0-id", "demo-private-subnet-1-id"))
        self.assertEqual(len(result.subnet_ids), 4)

    def test_all_azs(self):
        result, mock_aws = self.run_with(["us-east-1a", "us-east-1b", "us-east-1c"], True)
        self.assertEqual(len(result.private_subnet_ids), 3)
        self.assertEqual(mock_aws.ec2.Subnet.call_count, 6)

    def test_subnet_role_tags(self):
        _, mock_aws = self.run_with(["us-east-1a", "us-east-1b"], False)
        tags = {call.args[0]: call.kwargs["tags"] for call in mock_aws.ec2.Subnet.call_args_list}
        self.assertEqual(tags["demo-public-subnet-0"]["kubernetes.io/role/elb"], "1")
        self.assertEqual(tags["demo-private-subnet-0"]["kubernetes.io/role/internal-elb"], "1")
        self.assertEqual(tags["demo-private-subnet-0"]["iac"], "pulumi-demo")

    def test_single_nat_gateway(self):
        _, mock_aws = self.run_with(["us-east-1a", "us-east-1b"], False)
        self.assertEqual(mock_aws.ec2.NatGateway.call_count, 1)
        self.assertEqual(mock_aws.ec2.InternetGateway.call_count, 1)

    def test_zone_lookup_failure(self):
        with patch('eks_launcher.vpc.functions.aws') as mock_aws, \
                patch('eks_launcher.vpc.functions.pulumi'):
            mock_aws.get_availability_zones.side_effect = RuntimeError("throttled")
            with self.assertRaises(ProviderCallFailed) as ctx:
                create_vpc_resources("demo", "10.0.0.0/16", False, MagicMock())
        self.assertEqual(ctx.exception.resource, "availability-zones")

    def test_resource_failure(self):
        with patch('eks_launcher.vpc.functions.aws') as mock_aws, \
                patch('eks_launcher.vpc.functions.pulumi'):
            mock_aws.get_availability_zones.return_value = Mock(names=["a", "b"])
            mock_aws.ec2.Vpc.side_effect = RuntimeError("limit exceeded")
            with self.assertRaises(ProviderCallFailed) as ctx:
                create_vpc_resources("demo", "10.0.0.0/16", False, MagicMock())
        self.assertEqual(ctx.exception.resource, "demo-vpc")


if __name__ == '__main__':
    unittest.main()
