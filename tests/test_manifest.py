"""Tests for composition manifests.

Manifests are written to tmp_path next to a small resource directory, the
same layout the CLI reads.
"""

from pathlib import Path

import pytest
from stackwire.composition.graph import all_edges
from stackwire.composition.values import (
    STACK_NAME,
    AttributeRef,
    Join,
    ParameterRef,
)
from stackwire.core.errors import ConfigurationError, DanglingBindingError
from stackwire.manifest import load_manifest, parse_manifest
from stackwire.templates.loader import DirectoryTemplateStore
from stackwire.templates.models import InMemoryTemplateStore, ResourceTemplate


@pytest.fixture
def res_dir(tmp_path: Path) -> Path:
    bucket = tmp_path / "res" / "storage" / "s3" / "bucket-artifacts"
    bucket.mkdir(parents=True)
    (bucket / "props.yaml").write_text(
        "Type: AWS::S3::Bucket\nProperties:\n  bucketName: null\n"
    )

    repo = tmp_path / "res" / "developer-tools" / "codecommit" / "repository"
    repo.mkdir(parents=True)
    (repo / "props.yaml").write_text(
        """
Type: AWS::CodeCommit::Repository
Properties:
  repositoryName: null
  code:
    branchName: main
    s3:
      bucket: null
      key: null
"""
    )

    fn = tmp_path / "res" / "compute" / "lambda" / "function-custom-resource"
    fn.mkdir(parents=True)
    (fn / "props.yaml").write_text("Type: AWS::Lambda::Function\nProperties:\n  code: {}\n")
    (fn / "index.py").write_text("def handler(event, context):\n    pass\n")
    return tmp_path / "res"


@pytest.fixture
def manifest_file(tmp_path: Path) -> Path:
    path = tmp_path / "stack.yaml"
    path.write_text(
        """
description: Infrastructure CI-CD
parameters:
  IdeStackTemplateURL:
    type: String
    description: IDE stack template S3 URL
resources:
  - id: Bucket
    template: storage/s3/bucket-artifacts
    overrides:
      bucketName:
        "Fn::Join": ["-", [{Ref: "AWS::StackName"}, artifacts]]
  - id: Repository
    template: developer-tools/codecommit/repository
    overrides:
      repositoryName: {Ref: "AWS::StackName"}
      code.s3.key: repo.zip
    bindings:
      - path: code.s3.bucket
        from: Bucket.Ref
  - id: Function
    template: compute/lambda/function-custom-resource
    overrides:
      code.zipFile: {"Fn::Asset": index.py}
      environment.variables.TEMPLATE_URL: {Ref: IdeStackTemplateURL}
    dependsOn: [Repository]
outputs:
  CodeCommitURL:
    value: {"Fn::GetAtt": [Repository, CloneUrlHttp]}
    description: Clone URL
  BucketArn: {"Fn::GetAtt": Bucket.Arn}
"""
    )
    return path


class TestLoadManifest:
    def test_parses_declarations(self, manifest_file, res_dir):
        manifest = load_manifest(manifest_file, store=DirectoryTemplateStore(res_dir))

        assert manifest.description == "Infrastructure CI-CD"
        assert [p.name for p in manifest.parameters] == ["IdeStackTemplateURL"]
        assert [d.logical_id for d in manifest.declarations] == ["Bucket", "Repository", "Function"]

        bucket, repository, function = manifest.declarations
        assert bucket.overrides["bucketName"] == Join([STACK_NAME, "artifacts"], "-")
        assert repository.overrides["repositoryName"] == STACK_NAME
        assert repository.bindings == [("code.s3.bucket", "Bucket", "Ref")]
        assert function.overrides["code.zipFile"].startswith("def handler")
        assert function.overrides["environment.variables.TEMPLATE_URL"] == ParameterRef(
            "IdeStackTemplateURL"
        )
        assert function.depends_on == ["Repository"]

    def test_outputs(self, manifest_file, res_dir):
        manifest = load_manifest(manifest_file, store=DirectoryTemplateStore(res_dir))
        outputs = {o.name: o for o in manifest.outputs}

        assert outputs["CodeCommitURL"].value == AttributeRef("Repository", "CloneUrlHttp")
        assert outputs["CodeCommitURL"].description == "Clone URL"
        assert outputs["BucketArn"].value == AttributeRef("Bucket", "Arn")

    def test_compose(self, manifest_file, res_dir):
        store = DirectoryTemplateStore(res_dir)
        composition = load_manifest(manifest_file, store=store).compose(store)

        assert composition.edges == {("Repository", "Function")}
        assert composition.get_property("Repository", "code.s3.bucket") == AttributeRef("Bucket", "Ref")
        assert composition.get_property("Repository", "code.branchName") == "main"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_manifest(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("resources: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid manifest YAML"):
            load_manifest(path)


class TestParseManifest:
    def test_ref_to_resource(self):
        manifest = parse_manifest(
            {
                "resources": [
                    {"id": "Bucket", "template": "b"},
                    {"id": "Policy", "template": "p", "overrides": {"bucket": {"Ref": "Bucket"}}},
                ]
            }
        )
        assert manifest.declarations[1].overrides["bucket"] == AttributeRef("Bucket", "Ref")

    def test_resource_needs_id_and_template(self):
        with pytest.raises(ConfigurationError):
            parse_manifest({"resources": [{"id": "Bucket"}]})

    def test_binding_source_format(self):
        with pytest.raises(ConfigurationError, match="logicalId"):
            parse_manifest(
                {"resources": [{"id": "A", "template": "t", "bindings": [{"path": "x", "from": "B"}]}]}
            )

    def test_bad_get_att(self):
        with pytest.raises(ConfigurationError, match="Fn::GetAtt"):
            parse_manifest(
                {"resources": [{"id": "A", "template": "t", "overrides": {"x": {"Fn::GetAtt": "B"}}}]}
            )

    def test_asset_requires_directory_store(self):
        with pytest.raises(ConfigurationError, match="Fn::Asset"):
            parse_manifest(
                {"resources": [{"id": "A", "template": "t", "overrides": {"x": {"Fn::Asset": "a.py"}}}]}
            )

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_manifest(["resources"])

    def test_dangling_binding_surfaces_on_compose(self, res_dir):
        store = DirectoryTemplateStore(res_dir)
        manifest = parse_manifest(
            {
                "resources": [
                    {
                        "id": "Repository",
                        "template": "developer-tools/codecommit/repository",
                        "bindings": [{"path": "code.s3.bucket", "from": "Bucket.Ref"}],
                    }
                ]
            },
            store=store,
        )
        with pytest.raises(DanglingBindingError):
            manifest.compose(store)

    def test_parameter_defaults(self):
        manifest = parse_manifest(
            {"parameters": {"Url": {}, "KeyName": {"default": None}, "Size": {"default": 2}}}
        )
        required = {p.name: p.required for p in manifest.parameters}
        assert required == {"Url": True, "KeyName": False, "Size": False}


ARTIFACT_STACK = {
    "context": {"artifact_bucket_name": None},
    "resources": [
        {"id": "Bucket", "template": "bucket", "unless": "artifact_bucket_name"},
        {
            "id": "CustomResource",
            "template": "custom-resource",
            "overrides": {
                "ArtifactBucketName": {"Fn::Context": ["artifact_bucket_name", {"Ref": "Bucket"}]},
                "EmptyBucketOnDelete": {"Fn::Declared": "Bucket"},
            },
        },
    ],
    "outputs": {
        "BucketArn": {"value": {"Fn::GetAtt": ["Bucket", "Arn"]}, "unless": "artifact_bucket_name"},
    },
}


class TestContext:
    @pytest.fixture
    def store(self):
        return InMemoryTemplateStore(
            [
                ResourceTemplate(name="bucket", properties={}, resource_type="AWS::S3::Bucket"),
                ResourceTemplate(name="custom-resource", properties={}),
            ]
        )

    def test_bucket_created_without_context(self, store):
        manifest = parse_manifest(ARTIFACT_STACK, store=store)

        assert [d.logical_id for d in manifest.declarations] == ["Bucket", "CustomResource"]
        overrides = manifest.declarations[1].overrides
        assert overrides["ArtifactBucketName"] == AttributeRef("Bucket", "Ref")
        assert overrides["EmptyBucketOnDelete"] is True
        assert [o.name for o in manifest.outputs] == ["BucketArn"]

        composition = manifest.compose(store)
        assert ("Bucket", "CustomResource") in all_edges(composition)

    def test_existing_bucket_from_context(self, store):
        manifest = parse_manifest(
            ARTIFACT_STACK, store=store, context={"artifact_bucket_name": "shared-artifacts"}
        )

        assert [d.logical_id for d in manifest.declarations] == ["CustomResource"]
        overrides = manifest.declarations[0].overrides
        assert overrides["ArtifactBucketName"] == "shared-artifacts"
        assert overrides["EmptyBucketOnDelete"] is False
        assert manifest.outputs == []
        assert manifest.context == {"artifact_bucket_name": "shared-artifacts"}

        composition = manifest.compose(store)
        assert composition.logical_ids == ["CustomResource"]

    def test_when_keeps_resource_only_if_set(self):
        data = {"resources": [{"id": "Alarm", "template": "alarm", "when": "alerts_topic"}]}

        assert parse_manifest(data).declarations == []
        kept = parse_manifest(data, context={"alerts_topic": "arn:sns:alerts"})
        assert [d.logical_id for d in kept.declarations] == ["Alarm"]

    def test_missing_context_value(self):
        data = {"resources": [{"id": "A", "template": "t", "overrides": {"x": {"Fn::Context": "nope"}}}]}
        with pytest.raises(ConfigurationError, match="nope"):
            parse_manifest(data)

    def test_context_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_manifest({"context": ["a"]})
