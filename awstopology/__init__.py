"""
Synthesizes a multi-tier AWS environment (network, balancing, containers,
document database, messaging, delivery pipeline) into one ordered manifest.
"""

from .config import TopologyConfig, load_config
from .errors import (
    ConfigurationError,
    NamingCollision,
    OrderingCycle,
    TopologyError,
    UnresolvedReference,
)
from .graph import AttributeRef, DependencyEdge, NodeHandle, ResourceGraph, ResourceNode, Template
from .manifest import Manifest
from .naming import NamingContext
from .reporting import Reporter
from .topology import TopologyBuilder, synthesize

__all__ = [
    "AttributeRef",
    "ConfigurationError",
    "DependencyEdge",
    "Manifest",
    "NamingCollision",
    "NamingContext",
    "NodeHandle",
    "OrderingCycle",
    "Reporter",
    "ResourceGraph",
    "ResourceNode",
    "Template",
    "TopologyBuilder",
    "TopologyConfig",
    "TopologyError",
    "UnresolvedReference",
    "load_config",
    "synthesize",
]
