"""
The fixed catalog of resource kinds a topology may contain.

Each kind maps to a provider type token in the `<module>.<Class>` form the
Pulumi program resolves (`ec2.Vpc` -> `pulumi_aws.ec2.Vpc`), the category it
belongs to, the attributes other resources may reference once it exists, and
whether it accepts tags.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Tuple


class Category(str, Enum):
    NETWORK = "network"
    COMPUTE = "compute"
    BALANCING = "balancing"
    MESSAGING = "messaging"
    DATA = "data"
    PIPELINE = "pipeline"


@dataclass(frozen=True)
class ResourceType:
    kind: str
    token: str
    category: Category
    attributes: FrozenSet[str]
    taggable: bool = True
    # properties the deployment adapter serializes to a JSON string
    json_properties: Tuple[str, ...] = ()

    @property
    def provider(self) -> str:
        return "random" if self.token.startswith("random.") else "aws"


def _type(kind, token, category, attributes=(), taggable=True, json_properties=()):
    return ResourceType(
        kind=kind,
        token=token,
        category=category,
        attributes=frozenset(("id",) + tuple(attributes)),
        taggable=taggable,
        json_properties=tuple(json_properties),
    )


RESOURCE_TYPES: Dict[str, ResourceType] = {
    t.kind: t
    for t in [
        # network
        _type("vpc", "ec2.Vpc", Category.NETWORK, ("arn", "cidr_block")),
        _type("subnet", "ec2.Subnet", Category.NETWORK, ("arn", "availability_zone")),
        _type("internet-gateway", "ec2.InternetGateway", Category.NETWORK, ("arn",)),
        _type("gateway-attachment", "ec2.InternetGatewayAttachment", Category.NETWORK, taggable=False),
        _type("elastic-ip", "ec2.Eip", Category.NETWORK, ("allocation_id", "public_ip")),
        _type("nat-gateway", "ec2.NatGateway", Category.NETWORK, ("public_ip",)),
        _type("route-table", "ec2.RouteTable", Category.NETWORK, ("arn",)),
        _type("route-table-association", "ec2.RouteTableAssociation", Category.NETWORK, taggable=False),
        _type("route", "ec2.Route", Category.NETWORK, taggable=False),
        _type("security-group", "ec2.SecurityGroup", Category.NETWORK, ("arn", "name")),
        _type("ingress-rule", "vpc.SecurityGroupIngressRule", Category.NETWORK, ("arn",)),
        _type("egress-rule", "vpc.SecurityGroupEgressRule", Category.NETWORK, ("arn",)),
        # compute
        _type("cluster", "ecs.Cluster", Category.COMPUTE, ("arn", "name")),
        _type("capacity-providers", "ecs.ClusterCapacityProviders", Category.COMPUTE, taggable=False),
        _type("task-role", "iam.Role", Category.COMPUTE, ("arn", "name"), json_properties=("assume_role_policy",)),
        _type("task-definition", "ecs.TaskDefinition", Category.COMPUTE, ("arn", "revision"),
              json_properties=("container_definitions",)),
        _type("service", "ecs.Service", Category.COMPUTE, ("name",)),
        # balancing
        _type("load-balancer", "lb.LoadBalancer", Category.BALANCING, ("arn", "dns_name", "name")),
        _type("target-group", "lb.TargetGroup", Category.BALANCING, ("arn", "name")),
        _type("target-group-attachment", "lb.TargetGroupAttachment", Category.BALANCING, taggable=False),
        _type("listener", "lb.Listener", Category.BALANCING, ("arn",)),
        _type("listener-rule", "lb.ListenerRule", Category.BALANCING, ("arn",)),
        # messaging
        _type("queue", "sqs.Queue", Category.MESSAGING, ("arn", "url", "name")),
        _type("queue-policy", "sqs.QueuePolicy", Category.MESSAGING, taggable=False, json_properties=("policy",)),
        _type("topic", "sns.Topic", Category.MESSAGING, ("arn", "name")),
        _type("subscription", "sns.TopicSubscription", Category.MESSAGING, ("arn",), taggable=False),
        # data
        _type("parameter-group", "docdb.ClusterParameterGroup", Category.DATA, ("arn", "name")),
        _type("subnet-group", "docdb.SubnetGroup", Category.DATA, ("arn", "name")),
        _type("password", "random.RandomPassword", Category.DATA, ("result",), taggable=False),
        _type("secret", "secretsmanager.Secret", Category.DATA, ("arn", "name")),
        _type("secret-version", "secretsmanager.SecretVersion", Category.DATA, ("arn", "version_id"),
              taggable=False),
        _type("database-cluster", "docdb.Cluster", Category.DATA,
              ("arn", "endpoint", "reader_endpoint", "port", "cluster_identifier")),
        _type("database-instance", "docdb.ClusterInstance", Category.DATA, ("arn", "endpoint", "port")),
        # pipeline
        _type("registry", "ecr.Repository", Category.PIPELINE, ("arn", "name", "repository_url")),
        _type("lifecycle-policy", "ecr.LifecyclePolicy", Category.PIPELINE, taggable=False,
              json_properties=("policy",)),
        _type("artifact-bucket", "s3.Bucket", Category.PIPELINE, ("arn", "bucket")),
        _type("role", "iam.Role", Category.PIPELINE, ("arn", "name"), json_properties=("assume_role_policy",)),
        _type("role-policy", "iam.RolePolicy", Category.PIPELINE, ("name",), taggable=False,
              json_properties=("policy",)),
        _type("build-project", "codebuild.Project", Category.PIPELINE, ("arn", "name")),
        _type("pipeline", "codepipeline.Pipeline", Category.PIPELINE, ("arn", "name")),
    ]
}


def lookup(kind: str) -> ResourceType:
    try:
        return RESOURCE_TYPES[kind]
    except KeyError:
        raise ValueError(f"Resource kind '{kind}' is not part of the catalog.") from None
