"""Tests for the resource graph and attribute resolution."""

import pytest

from awstopology.catalog import RESOURCE_TYPES, Category
from awstopology.errors import NamingCollision, OrderingCycle, UnresolvedReference
from awstopology.graph import AttributeRef, SecretParam, Template


class TestDeclare:
    def test_declare_returns_handle_and_node(self, graph):
        vpc = graph.declare("vpc", "acme-vpc", {"cidr_block": "10.0.0.0/16"})
        node = graph.node(vpc.name)
        assert node.kind == "vpc"
        assert node.token == "ec2.Vpc"
        assert node.category is Category.NETWORK
        assert node.properties["cidr_block"] == "10.0.0.0/16"

    def test_taggable_nodes_get_name_and_common_tags(self, graph):
        graph.declare("vpc", "acme-vpc", tags={"Zone": "a"})
        assert graph.node("acme-vpc").properties["tags"] == {"Name": "acme-vpc", "Team": "platform", "Zone": "a"}

    def test_untaggable_nodes_get_no_tags(self, graph):
        graph.declare("route", "acme-route", {"destination_cidr_block": "0.0.0.0/0"})
        assert "tags" not in graph.node("acme-route").properties

    def test_nodes_are_immutable(self, graph):
        graph.declare("vpc", "acme-vpc", {"cidr_block": "10.0.0.0/16"})
        node = graph.node("acme-vpc")
        with pytest.raises(TypeError):
            node.properties["cidr_block"] = "10.1.0.0/16"
        with pytest.raises(AttributeError):
            node.name = "other"

    def test_nested_properties_are_detached_from_the_caller(self, graph):
        properties = {"subnets": ["subnet-a"], "health_check": {"path": "/send"}}
        tags = {"Zone": "a"}
        graph.declare("load-balancer", "acme-balancer", properties, tags=tags)
        properties["subnets"].append("subnet-b")
        properties["health_check"]["path"] = "/receive"
        tags["Zone"] = "b"
        node = graph.node("acme-balancer")
        assert node.properties["subnets"] == ["subnet-a"]
        assert node.properties["health_check"] == {"path": "/send"}
        assert node.properties["tags"]["Zone"] == "a"

    def test_duplicate_name_is_a_collision(self, graph):
        graph.declare("vpc", "acme-vpc")
        with pytest.raises(NamingCollision):
            graph.declare("subnet", "acme-vpc")

    def test_unknown_kind_is_rejected(self, graph):
        with pytest.raises(ValueError):
            graph.declare("lambda", "acme-fn")

    def test_materialize_twice_is_rejected(self, graph):
        handle = graph.declare("vpc", "acme-vpc")
        with pytest.raises(NamingCollision):
            graph.materialize(handle, {})


class TestResolveAll:
    def test_reference_renders_as_token(self, graph):
        vpc = graph.declare("vpc", "acme-vpc")
        graph.declare("subnet", "acme-subnet", {"vpc_id": vpc.id})
        manifest = graph.resolve_all(name="acme")
        subnet = manifest.resource("acme-subnet")
        assert subnet.properties["vpc_id"] == "ref:acme-vpc.id"
        assert subnet.depends_on == ["acme-vpc"]

    def test_referenced_node_is_ordered_first_even_if_declared_later(self, graph):
        vpc = graph.reserve("vpc", "acme-vpc")
        graph.declare("subnet", "acme-subnet", {"vpc_id": vpc.id})
        graph.materialize(vpc, {"cidr_block": "10.0.0.0/16"})
        assert graph.resolve_all().names() == ["acme-vpc", "acme-subnet"]

    def test_unrelated_nodes_keep_declaration_order(self, graph):
        graph.declare("queue", "acme-queue-b")
        graph.declare("queue", "acme-queue-a")
        assert graph.resolve_all().names() == ["acme-queue-b", "acme-queue-a"]

    def test_explicit_edge_is_recorded(self, graph):
        listener = graph.declare("listener", "acme-listener", {"port": 80})
        service = graph.declare("service", "acme-service", {"desired_count": 1})
        graph.depends(service, listener, "service needs the listener")
        manifest = graph.resolve_all()
        assert manifest.resource("acme-service").depends_on == ["acme-listener"]
        assert graph.edges[0].reason == "service needs the listener"

    def test_template_renders_as_concat(self, graph):
        cluster = graph.declare("database-cluster", "acme-db")
        graph.declare("secret-version", "acme-conn", {
            "secret_string": Template.of("mongodb://", cluster.attr("endpoint"), ":", cluster.attr("port")),
        })
        manifest = graph.resolve_all()
        assert manifest.resource("acme-conn").properties["secret_string"] == {
            "concat": ["mongodb://", "ref:acme-db.endpoint", ":", "ref:acme-db.port"]
        }
        assert manifest.resource("acme-conn").depends_on == ["acme-db"]

    def test_secret_param_renders_as_secret_token(self, graph):
        graph.declare("pipeline", "acme-pipeline", {"configuration": {"OAuthToken": SecretParam("token")}})
        properties = graph.resolve_all().resource("acme-pipeline").properties
        assert properties["configuration"]["OAuthToken"] == "secret:token"

    def test_nested_references_are_found(self, graph):
        tg = graph.declare("target-group", "acme-tg")
        graph.declare("listener-rule", "acme-rule", {
            "actions": [{"type": "forward", "target_group_arn": tg.arn}],
        })
        assert graph.resolve_all().resource("acme-rule").depends_on == ["acme-tg"]

    def test_outputs_are_resolved(self, graph):
        vpc = graph.declare("vpc", "acme-vpc")
        manifest = graph.resolve_all(outputs={"VpcCreated": Template.of("VpcId: ", vpc.id)})
        assert manifest.outputs == {"VpcCreated": {"concat": ["VpcId: ", "ref:acme-vpc.id"]}}


class TestResolutionFailures:
    def test_reference_to_undeclared_node(self, graph):
        graph.declare("subnet", "acme-subnet", {"vpc_id": graph.reference("acme-vpc", "id")})
        with pytest.raises(UnresolvedReference) as exc:
            graph.resolve_all()
        assert exc.value.dependent == "acme-subnet"
        assert exc.value.source == "acme-vpc"

    def test_reference_to_reserved_but_never_materialized_node(self, graph):
        password = graph.reserve("secret-version", "acme-password")
        graph.declare("database-cluster", "acme-db", {"master_password": password.attr("arn")})
        with pytest.raises(UnresolvedReference) as exc:
            graph.resolve_all()
        assert "never materialized" in str(exc.value)
        assert exc.value.dependent == "acme-db"

    def test_unreferenced_reservation_fails_finalization(self, graph):
        graph.reserve("vpc", "acme-vpc")
        with pytest.raises(UnresolvedReference):
            graph.resolve_all()

    def test_unknown_attribute(self, graph):
        vpc = graph.declare("vpc", "acme-vpc")
        graph.declare("subnet", "acme-subnet", {"vpc_id": vpc.attr("endpoint")})
        with pytest.raises(UnresolvedReference) as exc:
            graph.resolve_all()
        assert exc.value.attribute == "endpoint"

    def test_unresolved_output_reference(self, graph):
        with pytest.raises(UnresolvedReference) as exc:
            graph.resolve_all(outputs={"Gone": Template.of("Id: ", AttributeRef("acme-gone", "id"))})
        assert exc.value.dependent == "output:Gone"

    def test_attribute_cycle(self, graph):
        a = graph.reserve("security-group", "acme-sg-a")
        b = graph.reserve("security-group", "acme-sg-b")
        graph.materialize(a, {"description": b.id})
        graph.materialize(b, {"description": a.id})
        with pytest.raises(OrderingCycle) as exc:
            graph.resolve_all()
        assert exc.value.cycle[0] == exc.value.cycle[-1]
        assert set(exc.value.cycle) == {"acme-sg-a", "acme-sg-b"}

    def test_explicit_edge_cycle(self, graph):
        listener = graph.declare("listener", "acme-listener")
        tg = graph.declare("target-group", "acme-tg")
        rule = graph.declare("listener-rule", "acme-rule", {"listener_arn": listener.arn, "tg": tg.arn})
        graph.depends(tg, rule, "artificial")
        with pytest.raises(OrderingCycle) as exc:
            graph.resolve_all()
        assert exc.value.cycle == ["acme-tg", "acme-rule", "acme-tg"]

    def test_self_reference_is_a_cycle(self, graph):
        sg = graph.reserve("security-group", "acme-sg")
        graph.materialize(sg, {"description": sg.id})
        with pytest.raises(OrderingCycle):
            graph.resolve_all()


class TestCatalog:
    def test_every_type_exposes_id(self):
        assert all("id" in t.attributes for t in RESOURCE_TYPES.values())

    def test_every_category_is_used(self):
        assert {t.category for t in RESOURCE_TYPES.values()} == set(Category)
