"""
Security groups, load balancers, listeners and the per-mode container services.

Every service variant shares the cluster, the application balancer and its
HTTP listener, and owns a target group, a path-based listener rule, a task
role, a task definition and a service. Catch-all "loading" rules sit
behind all variant rules and answer with a placeholder page for paths
whose variant is not serving yet.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import PATH_PATTERNS_PER_RULE, TopologyConfig, VariantConfig
from .graph import AttributeRef, NodeHandle, ResourceGraph
from .naming import NamingContext, camel
from .network import Network
from .reporting import Reporter

ANYWHERE = "0.0.0.0/0"

# (label, port) pairs opened on every security group
INGRESS_RULES = [
    ("http", 80),
    ("http-alt", 8080),
    ("ssh", 22),
    ("database", 27017),
]

TASK_CPU = 256
TASK_MEMORY = 1024

TASK_MANAGED_POLICIES = [
    "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy",
    "arn:aws:iam::aws:policy/AmazonSNSFullAccess",
    "arn:aws:iam::aws:policy/AmazonSQSFullAccess",
    "arn:aws:iam::aws:policy/SecretsManagerReadWrite",
]

NOT_FOUND_BODY = "<h3>Nothing to see here.</h3><p>(try one of the service paths)</p>"
LOADING_BODY = "<h3>Sorry, we are not there yet...</h3><p>The page is still loading</p>"


@dataclass
class Balancing:
    default_security_group: NodeHandle
    balancer_security_group: NodeHandle
    cluster: NodeHandle
    application_balancer: Optional[NodeHandle] = None
    listener: Optional[NodeHandle] = None
    network_balancer: Optional[NodeHandle] = None
    network_listener: Optional[NodeHandle] = None
    frontend_target_group: Optional[NodeHandle] = None

    @property
    def balancers(self) -> List[NodeHandle]:
        return [b for b in (self.application_balancer, self.network_balancer) if b is not None]


@dataclass
class ServiceBindings:
    """Attributes of the data and messaging tier injected into every task."""

    topic_arn: AttributeRef
    queue_name: AttributeRef
    secrets: Dict[str, AttributeRef] = field(default_factory=dict)


@dataclass
class ServiceVariant:
    mode: str
    priority: int
    port: int
    path_pattern: str
    container_name: str
    target_group: NodeHandle
    listener_rule: NodeHandle
    task_role: NodeHandle
    task_definition: NodeHandle
    service: NodeHandle


class ComputeBuilder:
    def __init__(self, graph: ResourceGraph, naming: NamingContext, reporter: Reporter, config: TopologyConfig):
        self.graph = graph
        self.naming = naming
        self.reporter = reporter
        self.config = config

    def build_balancing(self, network: Network) -> Balancing:
        default_sg = self.security_group(network.vpc, "default")
        balancer_sg = self.security_group(network.vpc, "balancer")
        balancing = Balancing(
            default_security_group=default_sg,
            balancer_security_group=balancer_sg,
            cluster=self.cluster(),
        )
        if not self.config.variants:
            return balancing

        port = self.config.balancer.listener_port
        alb = self.load_balancer(network.subnet_ids(public=False), balancer_sg, is_application_layer=True)
        balancing.application_balancer = alb
        balancing.listener = self.graph.declare("listener", self.naming.name("listener", "http"), {
            "load_balancer_arn": alb.arn,
            "port": port,
            "protocol": "HTTP",
            "default_actions": [_fixed_response("404", NOT_FOUND_BODY)],
        })

        if self.config.balancer.network_frontend:
            nlb = self.load_balancer(network.subnet_ids(public=True), balancer_sg, is_application_layer=False)
            frontend = self.target_group(
                network.vpc, "to-balancer", port, self.config.variants[0].health_check_path, chained=True
            )
            attachment = self.graph.declare(
                "target-group-attachment", self.naming.name("target-group-attachment", "to-balancer"), {
                    "target_group_arn": frontend.arn,
                    "target_id": alb.arn,
                    "port": port,
                })
            # an ALB can only be registered as a target once it has a listener on that port
            self.graph.depends(attachment, balancing.listener, "balancer target needs its listener")
            balancing.network_balancer = nlb
            balancing.frontend_target_group = frontend
            balancing.network_listener = self.graph.declare("listener", self.naming.name("listener", "tcp"), {
                "load_balancer_arn": nlb.arn,
                "port": port,
                "protocol": "TCP",
                "default_actions": [{"type": "forward", "target_group_arn": frontend.arn}],
            })
        return balancing

    def security_group(self, vpc: NodeHandle, label: str) -> NodeHandle:
        group = self.graph.declare("security-group", self.naming.name("security-group", label), {
            "vpc_id": vpc.id,
            "description": label,
        })
        for rule, port in INGRESS_RULES:
            self.graph.declare("ingress-rule", self.naming.name("ingress-rule", label, rule), {
                "security_group_id": group.id,
                "cidr_ipv4": ANYWHERE,
                "ip_protocol": "tcp",
                "from_port": port,
                "to_port": port,
                "description": f"{label}-{rule}",
            })
        self.graph.declare("egress-rule", self.naming.name("egress-rule", label), {
            "security_group_id": group.id,
            "cidr_ipv4": ANYWHERE,
            "ip_protocol": "-1",
            "description": "outbound",
        })
        self.reporter.record(f"SecurityGroup{label.capitalize()}Created", "SecurityGroupId", group.id)
        return group

    def cluster(self) -> NodeHandle:
        name = self.naming.name("cluster")
        cluster = self.graph.declare("cluster", name, {"name": name})
        self.graph.declare("capacity-providers", self.naming.name("capacity-providers"), {
            "cluster_name": cluster.attr("name"),
            "capacity_providers": ["FARGATE", "FARGATE_SPOT"],
        })
        self.reporter.record("ClusterCreated", "ClusterArn", cluster.arn)
        return cluster

    def load_balancer(self, subnets: List[AttributeRef], security_group: NodeHandle,
                      is_application_layer: bool) -> NodeHandle:
        layer = "application" if is_application_layer else "network"
        balancer = self.graph.declare("load-balancer", self.naming.name("balancer", layer), {
            "load_balancer_type": layer,
            "internal": is_application_layer,
            "subnets": list(subnets),
            "security_groups": [security_group.id],
        }, tags={"Scheme": "internal" if is_application_layer else "internet-facing"})
        self.reporter.record(f"{layer.capitalize()}BalancerCreated", "LoadBalancerArn", balancer.arn)
        return balancer

    def target_group(self, vpc: NodeHandle, label: str, port: int, health_check_path: str,
                     chained: bool = False) -> NodeHandle:
        """
        Create a target group for a service variant, or, when `chained`, an
        `alb`-type group a network balancer uses to forward into the
        application balancer.
        """
        group = self.graph.declare("target-group", self.naming.name("target-group", label), {
            "target_type": "alb" if chained else "ip",
            "ip_address_type": "ipv4",
            "port": port,
            "protocol": "TCP" if chained else "HTTP",
            "vpc_id": vpc.id,
            "health_check": {
                "enabled": True,
                "protocol": "HTTP",
                "path": health_check_path,
                "interval": 60,
                "unhealthy_threshold": 5,
                "healthy_threshold": 2,
            },
        })
        self.reporter.record(f"TargetGroup{camel(label)}Created", "TargetGroupArn", group.arn)
        return group

    def listener_rule(self, listener: NodeHandle, target_group: NodeHandle, mode: str, priority: int) -> NodeHandle:
        return self.graph.declare("listener-rule", self.naming.name("listener-rule", mode), {
            "listener_arn": listener.arn,
            "priority": priority,
            "actions": [{"type": "forward", "target_group_arn": target_group.arn}],
            "conditions": [_path_pattern([f"/{mode}*"])],
        })

    def loading_rules(self, listener: NodeHandle, variants: List[ServiceVariant]) -> List[NodeHandle]:
        """
        Catch-all rules evaluated after every variant rule.

        A listener rule condition holds at most `PATH_PATTERNS_PER_RULE`
        values, so the variant paths are split over consecutive priorities
        starting at the configured loading priority.
        """
        patterns = [v.path_pattern for v in variants]
        rules = []
        for index, start in enumerate(range(0, len(patterns), PATH_PATTERNS_PER_RULE)):
            qualifier = "loading" if index == 0 else f"loading-{index + 1}"
            rules.append(self.graph.declare("listener-rule", self.naming.name("listener-rule", qualifier), {
                "listener_arn": listener.arn,
                "priority": self.config.balancer.loading_priority + index,
                "actions": [_fixed_response("503", LOADING_BODY)],
                "conditions": [_path_pattern(patterns[start:start + PATH_PATTERNS_PER_RULE])],
            }))
        return rules

    def task_role(self, mode: str) -> NodeHandle:
        name = self.naming.name("task-role", mode)
        return self.graph.declare("task-role", name, {
            "name": name,
            "assume_role_policy": {
                "Version": "2012-10-17",
                "Statement": [{
                    "Effect": "Allow",
                    "Principal": {"Service": ["ecs-tasks.amazonaws.com"]},
                    "Action": ["sts:AssumeRole"],
                }],
            },
            "managed_policy_arns": list(TASK_MANAGED_POLICIES),
        })

    def task_definition(self, variant: VariantConfig, container_name: str, role: NodeHandle,
                        bindings: ServiceBindings) -> NodeHandle:
        mode = variant.mode
        environment = {
            "SPRING_PROFILES_INCLUDE": f"aws,{mode}",
            "SERVER_PORT": str(variant.port),
            "SERVER_SERVLET_CONTEXT_PATH": f"/{mode}",
            "AWS_REGION": self.config.region,
            "AWS_SNSTOPIC": bindings.topic_arn,
            "AWS_SQSQUEUE": bindings.queue_name,
        }
        environment.update(variant.environment)
        container = {
            "name": container_name,
            "image": self.config.image,
            "cpu": TASK_CPU,
            "memory": TASK_MEMORY,
            "essential": True,
            "environment": [{"name": k, "value": environment[k]} for k in sorted(environment)],
            "secrets": [{"name": k, "valueFrom": bindings.secrets[k]} for k in sorted(bindings.secrets)],
            "portMappings": [{
                "name": str(variant.port),
                "containerPort": variant.port,
                "hostPort": variant.port,
                "protocol": "tcp",
            }],
            "logConfiguration": {
                "logDriver": "awslogs",
                "options": {
                    "awslogs-group": f"/ecs/{self.naming.format('service', mode)}",
                    "awslogs-region": self.config.region,
                    "awslogs-create-group": "true",
                    "awslogs-stream-prefix": "ecs",
                    "mode": "non-blocking",
                    "max-buffer-size": "25m",
                },
            },
        }
        name = self.naming.name("task-definition", mode)
        return self.graph.declare("task-definition", name, {
            "family": name,
            "cpu": str(TASK_CPU),
            "memory": str(TASK_MEMORY),
            "network_mode": "awsvpc",
            "requires_compatibilities": ["FARGATE"],
            "runtime_platform": {"cpu_architecture": "X86_64", "operating_system_family": "LINUX"},
            "task_role_arn": role.arn,
            "execution_role_arn": role.arn,
            "container_definitions": [container],
        })

    def build_variant(self, variant: VariantConfig, network: Network, balancing: Balancing,
                      bindings: ServiceBindings) -> ServiceVariant:
        mode = variant.mode
        container_name = variant.container_name or self.naming.format("container", mode)
        target_group = self.target_group(network.vpc, mode, variant.port, variant.health_check_path)
        self.graph.depends(balancing.listener, target_group, "listener is created after its target groups")
        rule = self.listener_rule(balancing.listener, target_group, mode, variant.priority)
        role = self.task_role(mode)
        task = self.task_definition(variant, container_name, role, bindings)

        name = self.naming.name("service", mode)
        service = self.graph.declare("service", name, {
            "name": name,
            "cluster": balancing.cluster.arn,
            "task_definition": task.arn,
            "desired_count": 1,
            "launch_type": "FARGATE",
            "platform_version": "LATEST",
            "load_balancers": [{
                "target_group_arn": target_group.arn,
                "container_name": container_name,
                "container_port": variant.port,
            }],
            "network_configuration": {
                "subnets": network.subnet_ids(public=False),
                "security_groups": [balancing.default_security_group.id],
                "assign_public_ip": False,
            },
        }, tags={"Mode": mode})
        # the target group must be attached to a balancer before a service can register with it
        self.graph.depends(service, balancing.listener, "service needs the listener")
        self.graph.depends(service, rule, "service needs its listener rule")
        self.reporter.record(f"Service{camel(mode)}Created", "ServiceName", service.attr("name"))

        return ServiceVariant(
            mode=mode,
            priority=variant.priority,
            port=variant.port,
            path_pattern=variant.path_pattern,
            container_name=container_name,
            target_group=target_group,
            listener_rule=rule,
            task_role=role,
            task_definition=task,
            service=service,
        )


def _fixed_response(status_code: str, body: str) -> Dict:
    return {
        "type": "fixed-response",
        "fixed_response": {
            "content_type": "text/html",
            "message_body": body,
            "status_code": status_code,
        },
    }


def _path_pattern(values: List[str]) -> Dict:
    return {"path_pattern": {"values": list(values)}}
