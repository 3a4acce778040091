"""
Document database, its credentials, and the topic -> queue message path.
"""

import string
from dataclasses import dataclass
from typing import List

from .config import DatabaseConfig, MessagingConfig
from .graph import AttributeRef, NodeHandle, ResourceGraph, Template
from .naming import NamingContext
from .reporting import Reporter

PASSWORD_LENGTH = 16
PASSWORD_EXCLUDED_CHARACTERS = "\"@/\\ '"
DATABASE_PARAMETERS = {"tls": "disabled", "ttl_monitor": "disabled"}


@dataclass
class Database:
    parameter_group: NodeHandle
    subnet_group: NodeHandle
    password: NodeHandle
    password_secret: NodeHandle
    password_version: NodeHandle
    cluster: NodeHandle
    instance: NodeHandle
    connection_secret: NodeHandle
    connection_version: NodeHandle

    @property
    def connection_string(self) -> Template:
        return connection_string(self.cluster)


@dataclass
class Messaging:
    queue: NodeHandle
    queue_policy: NodeHandle
    topic: NodeHandle
    subscription: NodeHandle


def connection_string(cluster: NodeHandle) -> Template:
    return Template.of(
        "mongodb://", cluster.attr("endpoint"), ":", cluster.attr("port"), "/?ssl=true&replicaSet=rs0"
    )


def allowed_special_characters() -> str:
    return "".join(c for c in string.punctuation if c not in PASSWORD_EXCLUDED_CHARACTERS)


class DataBuilder:
    def __init__(self, graph: ResourceGraph, naming: NamingContext, reporter: Reporter,
                 account: str, region: str):
        self.graph = graph
        self.naming = naming
        self.reporter = reporter
        self.account = account
        self.region = region

    def build_database(self, config: DatabaseConfig, subnet_ids: List[AttributeRef],
                       security_group: NodeHandle) -> Database:
        name = self.naming.name("parameter-group")
        parameter_group = self.graph.declare("parameter-group", name, {
            "name": name,
            "family": config.family,
            "description": "Parameter group for the document database cluster",
            "parameters": [{"name": k, "value": v} for k, v in sorted(DATABASE_PARAMETERS.items())],
        })
        name = self.naming.name("subnet-group")
        subnet_group = self.graph.declare("subnet-group", name, {
            "name": name,
            "description": "Private subnets of the document database",
            "subnet_ids": list(subnet_ids),
        })

        password, password_secret, password_version = self.password(config.username)

        identifier = self.naming.name("database-cluster")
        cluster = self.graph.declare("database-cluster", identifier, {
            "cluster_identifier": identifier,
            "master_username": config.username,
            "master_password": password.attr("result"),
            "vpc_security_group_ids": [security_group.id],
            "db_cluster_parameter_group_name": parameter_group.attr("name"),
            "db_subnet_group_name": subnet_group.attr("name"),
            "storage_encrypted": True,
            "backup_retention_period": 1,
            "skip_final_snapshot": True,
        })
        # the stored credentials must exist before the cluster is created with them
        self.graph.depends(cluster, password_version, "cluster password is stored first")
        self.reporter.record("DatabaseClusterCreated", "DatabaseEndpoint", cluster.attr("endpoint"))

        identifier = self.naming.name("database-instance")
        instance = self.graph.declare("database-instance", identifier, {
            "identifier": identifier,
            "cluster_identifier": cluster.id,
            "instance_class": config.instance_class,
        })

        connection_secret, connection_version = self.connection_string_secret(cluster)
        return Database(
            parameter_group=parameter_group,
            subnet_group=subnet_group,
            password=password,
            password_secret=password_secret,
            password_version=password_version,
            cluster=cluster,
            instance=instance,
            connection_secret=connection_secret,
            connection_version=connection_version,
        )

    def password(self, username: str):
        password = self.graph.declare("password", self.naming.name("password"), {
            "length": PASSWORD_LENGTH,
            "special": True,
            "override_special": allowed_special_characters(),
        })
        name = self.naming.name("secret", "password")
        secret = self.graph.declare("secret", name, {
            "name": name,
            "description": "Generated master password of the document database",
        })
        version = self.graph.declare("secret-version", self.naming.name("secret-version", "password"), {
            "secret_id": secret.id,
            "secret_string": Template.of(
                '{"username":"', username, '","password":"', password.attr("result"), '"}'
            ),
        })
        return password, secret, version

    def connection_string_secret(self, cluster: NodeHandle):
        name = self.naming.name("secret", "connection-string")
        secret = self.graph.declare("secret", name, {
            "name": name,
            "description": "Connection string of the document database",
        })
        version = self.graph.declare("secret-version", self.naming.name("secret-version", "connection-string"), {
            "secret_id": secret.id,
            "secret_string": connection_string(cluster),
        })
        self.reporter.record("ConnectionStringSecretCreated", "SecretArn", secret.arn)
        return secret, version

    def build_messaging(self, config: MessagingConfig) -> Messaging:
        queue_name = config.queue_name or self.naming.format("queue")
        queue = self.graph.declare("queue", self.naming.name("queue"), {"name": queue_name})
        policy = self.graph.declare("queue-policy", self.naming.name("queue-policy"), {
            "queue_url": queue.attr("url"),
            "policy": self.queue_policy_document(queue.arn),
        })
        self.reporter.record("QueueCreated", "QueueUrl", queue.attr("url"))

        topic_name = config.topic_name or self.naming.format("topic")
        topic = self.graph.declare("topic", self.naming.name("topic"), {"name": topic_name})
        subscription = self.graph.declare("subscription", self.naming.name("subscription", "queue"), {
            "topic": topic.arn,
            "protocol": "sqs",
            "endpoint": queue.arn,
        })
        self.reporter.record("TopicCreated", "TopicArn", topic.arn)
        return Messaging(queue=queue, queue_policy=policy, topic=topic, subscription=subscription)

    def queue_policy_document(self, queue_arn: AttributeRef) -> dict:
        """Only the topic delivery service, acting for a topic in this account, may send."""
        return {
            "Version": "2012-10-17",
            "Statement": [{
                "Effect": "Allow",
                "Principal": {"Service": "sns.amazonaws.com"},
                "Action": "sqs:SendMessage",
                "Resource": queue_arn,
                "Condition": {"ArnLike": {"aws:SourceArn": f"arn:aws:sns:{self.region}:{self.account}:*"}},
            }],
        }
