"""
Image registry, build project and the Source -> Build delivery pipeline.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import PipelineConfig, TopologyConfig
from .errors import ConfigurationError
from .graph import NodeHandle, ResourceGraph, SecretParam
from .naming import NamingContext
from .reporting import Reporter

SOURCE_OUTPUT = "SourceOutput"
BUILD_OUTPUT = "BuildOutput"

BUILD_ROLE_STATEMENTS = [
    {
        "Effect": "Allow",
        "Action": [
            "ecr:GetAuthorizationToken",
            "ecr:BatchCheckLayerAvailability",
            "ecr:CompleteLayerUpload",
            "ecr:InitiateLayerUpload",
            "ecr:PutImage",
            "ecr:UploadLayerPart",
        ],
        "Resource": "*",
    },
    {
        "Effect": "Allow",
        "Action": ["s3:GetObject", "s3:PutObject", "s3:GetObjectVersion"],
        "Resource": "*",
    },
    {
        "Effect": "Allow",
        "Action": ["logs:CreateLogGroup", "logs:CreateLogStream", "logs:PutLogEvents"],
        "Resource": "*",
    },
]

PIPELINE_ROLE_STATEMENTS = [
    {
        "Effect": "Allow",
        "Action": ["codebuild:StartBuild", "codebuild:BatchGetBuilds"],
        "Resource": "*",
    },
    {
        "Effect": "Allow",
        "Action": ["s3:GetObject", "s3:PutObject", "s3:GetObjectVersion"],
        "Resource": "*",
    },
    {
        "Effect": "Allow",
        "Action": ["iam:PassRole"],
        "Resource": "*",
    },
]


@dataclass(frozen=True)
class Image:
    digest: str
    pushed_at: int
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LifecycleRule:
    """An `imageCountMoreThan` registry rule over tagged images."""

    priority: int
    count_number: int
    tag_prefixes: Tuple[str, ...]
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rulePriority": self.priority,
            "description": self.description,
            "selection": {
                "tagStatus": "tagged",
                "tagPrefixList": list(self.tag_prefixes),
                "countType": "imageCountMoreThan",
                "countNumber": self.count_number,
            },
            "action": {"type": "expire"},
        }

    def matches(self, image: Image) -> bool:
        return any(tag.startswith(prefix) for tag in image.tags for prefix in self.tag_prefixes)

    def select_expired(self, images: Sequence[Image]) -> List[Image]:
        """Return the images this rule would expire: matching ones beyond the newest `count_number`."""
        matching = sorted((i for i in images if self.matches(i)), key=lambda i: i.pushed_at, reverse=True)
        return matching[self.count_number:]


@dataclass(frozen=True)
class PipelineAction:
    name: str
    category: str
    owner: str
    provider: str
    configuration: Dict[str, Any] = field(default_factory=dict)
    input_artifacts: Tuple[str, ...] = ()
    output_artifacts: Tuple[str, ...] = ()
    version: str = "1"
    run_order: int = 1

    def to_properties(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "owner": self.owner,
            "provider": self.provider,
            "version": self.version,
            "configuration": dict(self.configuration),
            "input_artifacts": list(self.input_artifacts),
            "output_artifacts": list(self.output_artifacts),
            "run_order": self.run_order,
        }


@dataclass(frozen=True)
class PipelineStage:
    name: str
    actions: Tuple[PipelineAction, ...]


@dataclass
class PipelineDefinition:
    stages: List[PipelineStage]

    def validate(self) -> None:
        """Every input artifact must be produced by an action that runs earlier."""
        produced: Dict[str, str] = {}
        for stage in self.stages:
            for run_order in sorted({a.run_order for a in stage.actions}):
                batch = [a for a in stage.actions if a.run_order == run_order]
                for action in batch:
                    for artifact in action.input_artifacts:
                        if artifact not in produced:
                            raise ConfigurationError(
                                f"Action '{stage.name}/{action.name}' consumes artifact '{artifact}' "
                                f"that no earlier action produces"
                            )
                for action in batch:
                    for artifact in action.output_artifacts:
                        if artifact in produced:
                            raise ConfigurationError(
                                f"Artifact '{artifact}' is produced by both {produced[artifact]} "
                                f"and '{stage.name}/{action.name}'"
                            )
                        produced[artifact] = f"'{stage.name}/{action.name}'"

    def to_properties(self) -> List[Dict[str, Any]]:
        return [
            {"name": stage.name, "actions": [a.to_properties() for a in stage.actions]}
            for stage in self.stages
        ]


@dataclass
class Pipeline:
    registry: NodeHandle
    lifecycle_policy: NodeHandle
    artifact_bucket: NodeHandle
    build_role: NodeHandle
    pipeline_role: NodeHandle
    build_project: NodeHandle
    pipeline: NodeHandle
    definition: PipelineDefinition


def lifecycle_rules(config: PipelineConfig) -> List[LifecycleRule]:
    return [
        LifecycleRule(
            priority=1,
            count_number=config.retain_count,
            tag_prefixes=(config.tag_prefix,),
            description=f"Keep last {config.retain_count} {config.tag_prefix} images",
        )
    ]


def assume_role_policy(service: str) -> Dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Service": service},
            "Action": "sts:AssumeRole",
        }],
    }


class PipelineBuilder:
    def __init__(self, graph: ResourceGraph, naming: NamingContext, reporter: Reporter, config: TopologyConfig):
        self.graph = graph
        self.naming = naming
        self.reporter = reporter
        self.config = config

    def build(self, cluster: NodeHandle, service: Optional[NodeHandle] = None) -> Pipeline:
        registry, lifecycle = self.registry()
        name = self.naming.name("artifacts")
        bucket = self.graph.declare("artifact-bucket", name, {"bucket": name, "force_destroy": True})

        build_role = self.role("build", "codebuild.amazonaws.com", BUILD_ROLE_STATEMENTS)
        pipeline_role = self.role("pipeline", "codepipeline.amazonaws.com", PIPELINE_ROLE_STATEMENTS)
        project = self.build_project(registry, build_role)

        definition = self.definition(project)
        definition.validate()

        tags = {"Cluster": cluster.attr("name")}
        if service is not None:
            tags["Service"] = service.attr("name")
        name = self.naming.name("pipeline")
        pipeline = self.graph.declare("pipeline", name, {
            "name": name,
            "role_arn": pipeline_role.arn,
            "artifact_stores": [{"location": bucket.attr("bucket"), "type": "S3"}],
            "stages": definition.to_properties(),
        }, tags=tags)
        self.reporter.record("PipelineCreated", "PipelineArn", pipeline.arn)

        return Pipeline(
            registry=registry,
            lifecycle_policy=lifecycle,
            artifact_bucket=bucket,
            build_role=build_role,
            pipeline_role=pipeline_role,
            build_project=project,
            pipeline=pipeline,
            definition=definition,
        )

    def registry(self):
        name = self.naming.name("registry")
        registry = self.graph.declare("registry", name, {
            "name": name,
            "image_scanning_configuration": {"scan_on_push": True},
        })
        lifecycle = self.graph.declare("lifecycle-policy", self.naming.name("lifecycle-policy"), {
            "repository": registry.attr("name"),
            "policy": {"rules": [rule.to_dict() for rule in lifecycle_rules(self.config.pipeline)]},
        })
        self.reporter.record("RegistryCreated", "RepositoryUrl", registry.attr("repository_url"))
        return registry, lifecycle

    def role(self, label: str, service: str, statements: List[Dict[str, Any]]) -> NodeHandle:
        name = self.naming.name("role", label)
        role = self.graph.declare("role", name, {
            "name": name,
            "assume_role_policy": assume_role_policy(service),
        })
        policy_name = self.naming.name("role-policy", label)
        self.graph.declare("role-policy", policy_name, {
            "name": policy_name,
            "role": role.id,
            "policy": {"Version": "2012-10-17", "Statement": list(statements)},
        })
        return role

    def build_project(self, registry: NodeHandle, role: NodeHandle) -> NodeHandle:
        variables = {
            "IMAGE_REPO_NAME": registry.attr("name"),
            "AWS_ACCOUNT_ID": self.config.account,
            "IMAGE_TAG": self.config.pipeline.image_tag,
            "AWS_DEFAULT_REGION": self.config.region,
        }
        name = self.naming.name("build-project")
        return self.graph.declare("build-project", name, {
            "name": name,
            "service_role": role.arn,
            "source": {"type": "CODEPIPELINE"},
            "artifacts": {"type": "CODEPIPELINE"},
            "environment": {
                "compute_type": "BUILD_GENERAL1_SMALL",
                "image": self.config.pipeline.build_image,
                "type": "LINUX_CONTAINER",
                "privileged_mode": True,
                "environment_variables": [
                    {"name": k, "value": v, "type": "PLAINTEXT"} for k, v in variables.items()
                ],
            },
        })

    def definition(self, project: NodeHandle) -> PipelineDefinition:
        secrets = self.config.pipeline.source_secrets
        source = PipelineAction(
            name="GitHubSource",
            category="Source",
            owner="ThirdParty",
            provider="GitHub",
            configuration={key: SecretParam(secrets[key]) for key in sorted(secrets)},
            output_artifacts=(SOURCE_OUTPUT,),
        )
        build = PipelineAction(
            name="DockerBuild",
            category="Build",
            owner="AWS",
            provider="CodeBuild",
            configuration={"ProjectName": project.attr("name")},
            input_artifacts=(SOURCE_OUTPUT,),
            output_artifacts=(BUILD_OUTPUT,),
        )
        return PipelineDefinition([
            PipelineStage("Source", (source,)),
            PipelineStage("Build", (build,)),
        ])
