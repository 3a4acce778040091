"""
Network fabric: VPC, public/private subnets per zone, gateways and routes.

Public subnets route `0.0.0.0/0` to the internet gateway. Private subnets
route it to a NAT gateway placed in the first public subnet; unless the
configuration asks for one NAT gateway per zone, all private subnets share
that single gateway.
"""

from dataclasses import dataclass, field
from typing import List

from .config import NetworkConfig, ZoneConfig
from .graph import AttributeRef, NodeHandle, ResourceGraph
from .naming import NamingContext
from .reporting import Reporter

DEFAULT_ROUTE = "0.0.0.0/0"
PUBLIC = "public"
PRIVATE = "private"


@dataclass
class Subnet:
    zone: str
    direction: str
    cidr_block: str
    handle: NodeHandle
    route_table: NodeHandle
    route: NodeHandle

    @property
    def public(self) -> bool:
        return self.direction == PUBLIC


@dataclass
class Network:
    vpc: NodeHandle
    internet_gateway: NodeHandle
    gateway_attachment: NodeHandle
    public_subnets: List[Subnet] = field(default_factory=list)
    private_subnets: List[Subnet] = field(default_factory=list)
    nat_gateways: List[NodeHandle] = field(default_factory=list)

    @property
    def nat_gateway(self) -> NodeHandle:
        return self.nat_gateways[0]

    def subnet_ids(self, public: bool) -> List[AttributeRef]:
        subnets = self.public_subnets if public else self.private_subnets
        return [s.handle.id for s in subnets]


class NetworkBuilder:
    def __init__(self, graph: ResourceGraph, naming: NamingContext, reporter: Reporter, region: str):
        self.graph = graph
        self.naming = naming
        self.reporter = reporter
        self.region = region

    def build(self, config: NetworkConfig) -> Network:
        vpc = self.graph.declare("vpc", self.naming.name("vpc"), {
            "cidr_block": config.vpc_cidr,
            "enable_dns_support": True,
            "enable_dns_hostnames": True,
        })
        self.reporter.record("VpcCreated", "VpcId", vpc.id)

        subnets = {}
        for zone in config.zones:
            for direction, cidr in ((PUBLIC, zone.public_cidr), (PRIVATE, zone.private_cidr)):
                subnets[(zone.name, direction)] = (self._subnet(vpc, zone, direction, cidr), cidr)

        igw, attachment = self._internet_gateway(vpc)
        network = Network(vpc=vpc, internet_gateway=igw, gateway_attachment=attachment)

        nat_zones = config.zones if config.nat_per_zone else config.zones[:1]
        nat_by_zone = {}
        for zone in nat_zones:
            qualifier = zone.name if config.nat_per_zone else None
            host, _ = subnets[(zone.name, PUBLIC)]
            nat_by_zone[zone.name] = self._nat_gateway(host, attachment, qualifier)
        network.nat_gateways = list(nat_by_zone.values())

        for zone in config.zones:
            network.public_subnets.append(
                self._routed(vpc, zone.name, PUBLIC, subnets[(zone.name, PUBLIC)], "gateway_id", igw, attachment)
            )
        for zone in config.zones:
            nat = nat_by_zone.get(zone.name, network.nat_gateway)
            network.private_subnets.append(
                self._routed(vpc, zone.name, PRIVATE, subnets[(zone.name, PRIVATE)], "nat_gateway_id", nat, None)
            )
        return network

    def _subnet(self, vpc: NodeHandle, zone: ZoneConfig, direction: str, cidr: str) -> NodeHandle:
        subnet = self.graph.declare(
            "subnet",
            self.naming.name("subnet", direction, zone.name),
            {
                "vpc_id": vpc.id,
                "cidr_block": cidr,
                "availability_zone": f"{self.region}{zone.name}",
                "map_public_ip_on_launch": direction == PUBLIC,
            },
            tags={"Zone": zone.name, "Direction": direction},
        )
        key = f"{direction.capitalize()}Subnet{zone.name.upper()}Created"
        self.reporter.record(key, "SubnetId", subnet.id)
        return subnet

    def _internet_gateway(self, vpc: NodeHandle):
        igw = self.graph.declare("internet-gateway", self.naming.name("internet-gateway"))
        self.reporter.record("InternetGatewayCreated", "InternetGatewayId", igw.id)
        attachment = self.graph.declare("gateway-attachment", self.naming.name("gateway-attachment"), {
            "vpc_id": vpc.id,
            "internet_gateway_id": igw.id,
        })
        self.reporter.record("VpcGatewayAttachmentCreated", "AttachmentId", attachment.id)
        return igw, attachment

    def _nat_gateway(self, subnet: NodeHandle, attachment: NodeHandle, qualifier) -> NodeHandle:
        eip = self.graph.declare("elastic-ip", self.naming.name("elastic-ip", qualifier), {"domain": "vpc"})
        nat = self.graph.declare("nat-gateway", self.naming.name("nat-gateway", qualifier), {
            "allocation_id": eip.attr("allocation_id"),
            "subnet_id": subnet.id,
            "connectivity_type": "public",
        })
        # a public NAT gateway needs the VPC to have an attached internet gateway
        self.graph.depends(nat, attachment, "NAT gateway requires an attached internet gateway")
        suffix = qualifier.upper() if qualifier else ""
        self.reporter.record(f"NatGateway{suffix}Created", "NatGatewayId", nat.id)
        return nat

    def _routed(self, vpc, zone, direction, subnet, target_key, target, attachment) -> Subnet:
        subnet_handle, cidr = subnet
        route_table = self.graph.declare(
            "route-table",
            self.naming.name("route-table", direction, zone),
            {"vpc_id": vpc.id},
            tags={"Zone": zone, "Direction": direction},
        )
        self.graph.declare("route-table-association", self.naming.name("route-table-association", direction, zone), {
            "subnet_id": subnet_handle.id,
            "route_table_id": route_table.id,
        })
        route = self.graph.declare("route", self.naming.name("route", direction, zone), {
            "route_table_id": route_table.id,
            "destination_cidr_block": DEFAULT_ROUTE,
            target_key: target.id,
        })
        if attachment is not None:
            self.graph.depends(route, attachment, "internet route requires the gateway attachment")
        key = f"{direction.capitalize()}RouteTable{zone.upper()}Created"
        self.reporter.record(key, "RouteTableId", route_table.id)
        return Subnet(
            zone=zone,
            direction=direction,
            cidr_block=cidr,
            handle=subnet_handle,
            route_table=route_table,
            route=route,
        )
