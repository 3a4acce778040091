"""Tests for the registry, build project and delivery pipeline."""

import pytest

from awstopology.errors import ConfigurationError
from awstopology.pipeline import (
    Image,
    LifecycleRule,
    PipelineAction,
    PipelineDefinition,
    PipelineStage,
)


class TestLifecycleRule:
    """Scenario B: keep the 5 newest prod images."""

    @pytest.fixture
    def rule(self):
        return LifecycleRule(priority=1, count_number=5, tag_prefixes=("prod",))

    def test_policy_document(self, rule):
        selection = rule.to_dict()["selection"]
        assert selection == {
            "tagStatus": "tagged",
            "tagPrefixList": ["prod"],
            "countType": "imageCountMoreThan",
            "countNumber": 5,
        }
        assert rule.to_dict()["action"] == {"type": "expire"}

    def test_expires_prod_images_beyond_the_newest_five(self, rule):
        images = [Image(f"sha-{i}", pushed_at=i, tags=(f"prod-{i}",)) for i in range(8)]
        expired = rule.select_expired(images)
        assert [i.digest for i in expired] == ["sha-2", "sha-1", "sha-0"]

    def test_never_expires_untagged_or_other_images(self, rule):
        images = [Image(f"prod-{i}", pushed_at=i, tags=(f"prod-{i}",)) for i in range(7)]
        images += [Image(f"untagged-{i}", pushed_at=i) for i in range(10)]
        images += [Image(f"dev-{i}", pushed_at=i, tags=(f"dev-{i}",)) for i in range(10)]
        expired = rule.select_expired(images)
        assert [i.digest for i in expired] == ["prod-1", "prod-0"]

    def test_nothing_expires_at_or_below_the_count(self, rule):
        images = [Image(f"sha-{i}", pushed_at=i, tags=("prod",)) for i in range(5)]
        assert rule.select_expired(images) == []

    def test_registry_policy_in_manifest(self, manifest):
        policy = manifest.resource("acme-lifecycle-policy").properties
        assert policy["repository"] == "ref:acme-registry.name"
        rule, = policy["policy"]["rules"]
        assert rule["selection"]["countNumber"] == 5
        assert rule["selection"]["tagPrefixList"] == ["prod"]


class TestPipelineDefinition:
    def _action(self, name, inputs=(), outputs=(), run_order=1):
        return PipelineAction(name, "Build", "AWS", "CodeBuild", input_artifacts=inputs,
                              output_artifacts=outputs, run_order=run_order)

    def test_matching_artifacts(self):
        definition = PipelineDefinition([
            PipelineStage("Source", (self._action("Checkout", outputs=("Src",)),)),
            PipelineStage("Build", (self._action("Compile", inputs=("Src",), outputs=("Bin",)),)),
        ])
        definition.validate()

    def test_input_without_producer(self):
        definition = PipelineDefinition([
            PipelineStage("Source", (self._action("Checkout", outputs=("SourceOutput",)),)),
            PipelineStage("Build", (self._action("Compile", inputs=("SourceOut",)),)),
        ])
        with pytest.raises(ConfigurationError, match="SourceOut"):
            definition.validate()

    def test_input_from_later_stage(self):
        definition = PipelineDefinition([
            PipelineStage("Build", (self._action("Compile", inputs=("Src",)),)),
            PipelineStage("Source", (self._action("Checkout", outputs=("Src",)),)),
        ])
        with pytest.raises(ConfigurationError):
            definition.validate()

    def test_same_run_order_cannot_feed_each_other(self):
        definition = PipelineDefinition([
            PipelineStage("Build", (
                self._action("First", outputs=("A",)),
                self._action("Second", inputs=("A",)),
            )),
        ])
        with pytest.raises(ConfigurationError):
            definition.validate()

    def test_earlier_run_order_feeds_later(self):
        definition = PipelineDefinition([
            PipelineStage("Build", (
                self._action("First", outputs=("A",), run_order=1),
                self._action("Second", inputs=("A",), run_order=2),
            )),
        ])
        definition.validate()

    def test_duplicate_output(self):
        definition = PipelineDefinition([
            PipelineStage("Source", (self._action("One", outputs=("A",)),)),
            PipelineStage("Build", (self._action("Two", outputs=("A",)),)),
        ])
        with pytest.raises(ConfigurationError, match="produced by both"):
            definition.validate()


class TestPipelineResources:
    def test_source_then_build(self, manifest):
        stages = manifest.resource("acme-pipeline").properties["stages"]
        assert [s["name"] for s in stages] == ["Source", "Build"]
        source, = stages[0]["actions"]
        build, = stages[1]["actions"]
        assert build["input_artifacts"] == source["output_artifacts"] == ["SourceOutput"]
        assert build["configuration"] == {"ProjectName": "ref:acme-build-project.name"}

    def test_source_credentials_are_config_secrets(self, manifest):
        source = manifest.resource("acme-pipeline").properties["stages"][0]["actions"][0]
        assert source["configuration"] == {
            "Branch": "secret:github_branch",
            "OAuthToken": "secret:github_oauth_token",
            "Owner": "secret:github_owner",
            "Repo": "secret:github_repo",
        }

    def test_roles_and_policies(self, manifest):
        build_role = manifest.resource("acme-role-build").properties
        assert build_role["assume_role_policy"]["Statement"][0]["Principal"] == {
            "Service": "codebuild.amazonaws.com"
        }
        build_actions = [
            action
            for statement in manifest.resource("acme-role-policy-build").properties["policy"]["Statement"]
            for action in statement["Action"]
        ]
        assert "ecr:PutImage" in build_actions
        assert "logs:PutLogEvents" in build_actions
        pipeline_actions = [
            action
            for statement in manifest.resource("acme-role-policy-pipeline").properties["policy"]["Statement"]
            for action in statement["Action"]
        ]
        assert "iam:PassRole" in pipeline_actions
        assert "codebuild:StartBuild" in pipeline_actions

    def test_build_project_environment(self, manifest):
        project = manifest.resource("acme-build-project").properties
        assert project["service_role"] == "ref:acme-role-build.arn"
        variables = {v["name"]: v["value"] for v in project["environment"]["environment_variables"]}
        assert variables == {
            "IMAGE_REPO_NAME": "ref:acme-registry.name",
            "AWS_ACCOUNT_ID": "123456789012",
            "IMAGE_TAG": "latest",
            "AWS_DEFAULT_REGION": "eu-central-1",
        }

    def test_service_is_used_only_for_tags(self, manifest):
        pipeline = manifest.resource("acme-pipeline").properties
        assert pipeline["tags"]["Cluster"] == "ref:acme-cluster.name"
        assert pipeline["tags"]["Service"] == "ref:acme-service-send.name"
        assert pipeline["artifact_stores"] == [{"location": "ref:acme-artifacts.bucket", "type": "S3"}]
