"""Tests for the manifest -> Pulumi resource translation that need no engine."""

from types import SimpleNamespace

import pulumi_aws as aws
import pulumi_random as random
import pytest

from awstopology.catalog import RESOURCE_TYPES
from awstopology.deploy import resource_class, resolve_value


@pytest.mark.parametrize("token", sorted({t.token for t in RESOURCE_TYPES.values()}))
def test_every_catalog_token_names_a_provider_class(token):
    cls = resource_class(token)
    assert cls.__name__ == token.rsplit(".", 1)[1]


def test_random_tokens_use_random_provider():
    assert resource_class("random.RandomPassword") is random.RandomPassword
    assert resource_class("ec2.Vpc") is aws.ec2.Vpc


def test_unknown_class():
    with pytest.raises(ValueError, match="Nonexistent"):
        resource_class("ec2.Nonexistent")


class TestResolveValue:
    @pytest.fixture
    def resources(self):
        return {
            "acme-vpc": SimpleNamespace(id="vpc-123", arn="arn:aws:ec2:vpc/vpc-123"),
            "acme-subnet-public-a": SimpleNamespace(id="subnet-a"),
        }

    def test_plain_values_pass_through(self, resources):
        assert resolve_value("10.0.0.0/16", resources) == "10.0.0.0/16"
        assert resolve_value(80, resources) == 80
        assert resolve_value(True, resources) is True

    def test_reference(self, resources):
        assert resolve_value("ref:acme-vpc.arn", resources) == "arn:aws:ec2:vpc/vpc-123"

    def test_reference_without_attribute_means_id(self, resources):
        assert resolve_value("ref:acme-vpc", resources) == "vpc-123"

    def test_nested_references(self, resources):
        value = {"vpc_id": "ref:acme-vpc.id", "subnets": ["ref:acme-subnet-public-a.id"], "port": 80}
        assert resolve_value(value, resources) == {"vpc_id": "vpc-123", "subnets": ["subnet-a"], "port": 80}

    def test_missing_resource(self, resources):
        with pytest.raises(ValueError, match="acme-queue"):
            resolve_value("ref:acme-queue.arn", resources)

    def test_missing_attribute(self, resources):
        with pytest.raises(ValueError, match="dns_name"):
            resolve_value("ref:acme-vpc.dns_name", resources)
