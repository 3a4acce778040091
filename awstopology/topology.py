"""
Top-level driver: runs the builders in their fixed order and finalizes the graph.

The stage order is fixed (network, balancing, data and messaging, service
variants, pipeline) and never derived from the graph. Each stage receives
the handles produced by the stages before it.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import pulumi

from .compute import Balancing, ComputeBuilder, ServiceBindings, ServiceVariant
from .config import TopologyConfig
from .data import Database, DataBuilder, Messaging
from .graph import NodeHandle, ResourceGraph
from .manifest import Manifest
from .naming import NamingContext
from .network import Network, NetworkBuilder
from .pipeline import Pipeline, PipelineBuilder
from .reporting import Reporter

CONNECTION_STRING_VARIABLE = "SPRING_DATA_MONGODB_URI"


@dataclass
class Topology:
    network: Network
    balancing: Balancing
    database: Database
    messaging: Messaging
    variants: List[ServiceVariant] = field(default_factory=list)
    loading_rules: List[NodeHandle] = field(default_factory=list)
    pipeline: Optional[Pipeline] = None


class TopologyBuilder:
    def __init__(self, config: TopologyConfig, reporter: Optional[Reporter] = None):
        config.validate()
        self.config = config
        self.reporter = reporter if reporter is not None else Reporter()
        self.naming = NamingContext(config.naming_prefix)
        self.graph = ResourceGraph(tags=config.tags)
        self.topology: Optional[Topology] = None

    def build(self) -> Topology:
        if self.topology is not None:
            return self.topology
        config = self.config
        self.reporter.record("AccountUsed", "Account", config.account)
        self.reporter.record("RegionUsed", "Region", config.region)

        network = NetworkBuilder(self.graph, self.naming, self.reporter, config.region).build(config.network)

        compute = ComputeBuilder(self.graph, self.naming, self.reporter, config)
        balancing = compute.build_balancing(network)

        data = DataBuilder(self.graph, self.naming, self.reporter, config.account, config.region)
        database = data.build_database(
            config.database, network.subnet_ids(public=False), balancing.default_security_group
        )
        messaging = data.build_messaging(config.messaging)

        topology = Topology(network=network, balancing=balancing, database=database, messaging=messaging)
        bindings = ServiceBindings(
            topic_arn=messaging.topic.arn,
            queue_name=messaging.queue.attr("name"),
            secrets={CONNECTION_STRING_VARIABLE: database.connection_secret.arn},
        )
        for variant in config.variants:
            topology.variants.append(compute.build_variant(variant, network, balancing, bindings))
        if topology.variants:
            topology.loading_rules = compute.loading_rules(balancing.listener, topology.variants)

        first_service = topology.variants[0].service if topology.variants else None
        topology.pipeline = PipelineBuilder(self.graph, self.naming, self.reporter, config).build(
            balancing.cluster, first_service
        )
        self.topology = topology
        return topology

    def manifest(self) -> Manifest:
        self.build()
        return self.graph.resolve_all(
            name=self.naming.prefix,
            account=self.config.account,
            region=self.config.region,
            outputs=self.reporter.outputs(),
        )


def synthesize(config: TopologyConfig, reporter: Optional[Reporter] = None) -> Manifest:
    """Build the whole topology for `config` and return its finalized manifest."""
    builder = TopologyBuilder(config, reporter)
    manifest = builder.manifest()
    pulumi.log.info(f"Synthesized {len(manifest.resources)} resources for '{manifest.name}'")
    return manifest
