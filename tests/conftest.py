"""Shared pytest fixtures for topology tests."""

import copy

import pytest

from awstopology.config import TopologyConfig
from awstopology.graph import ResourceGraph
from awstopology.naming import NamingContext
from awstopology.reporting import Reporter
from awstopology.topology import TopologyBuilder

BASE_CONFIG = {
    "account": "123456789012",
    "region": "eu-central-1",
    "team": "platform",
    "service": "messenger",
    "environment": "dev",
    "prefix": "acme",
    "image": "123456789012.dkr.ecr.eu-central-1.amazonaws.com/messenger:latest",
    "tags": {"Team": "platform"},
    "variants": [
        {"mode": "send", "priority": 1, "port": 80},
        {"mode": "receive", "priority": 2, "port": 80},
    ],
}


@pytest.fixture
def config_data() -> dict:
    """Return a fresh copy of a complete two-zone, two-variant configuration."""
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def config(config_data) -> TopologyConfig:
    return TopologyConfig.from_dict(config_data)


@pytest.fixture
def reporter() -> Reporter:
    return Reporter(log=False)


@pytest.fixture
def builder(config, reporter) -> TopologyBuilder:
    return TopologyBuilder(config, reporter)


@pytest.fixture
def manifest(builder):
    return builder.manifest()


@pytest.fixture
def graph() -> ResourceGraph:
    return ResourceGraph(tags={"Team": "platform"})


@pytest.fixture
def naming() -> NamingContext:
    return NamingContext("acme")
