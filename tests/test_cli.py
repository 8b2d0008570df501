"""Tests for CLI plan and render commands.

Tests for stackwire plan/render including output formats, parameter
overrides and exit codes.
"""

import json
from pathlib import Path

import pytest
import yaml
from stackwire.cli.main import build_parser, main
from stackwire.cli.plan import plan_command
from stackwire.cli.render import parse_key_values, render_command
from stackwire.core.errors import ConfigurationError, ExitCode


@pytest.fixture
def project(tmp_path: Path):
    """Create a resource directory and a manifest using it."""
    res = tmp_path / "res"
    bucket = res / "storage" / "s3" / "bucket-artifacts"
    bucket.mkdir(parents=True)
    (bucket / "props.yaml").write_text("Type: AWS::S3::Bucket\nProperties:\n  bucketName: null\n")
    pipeline = res / "developer-tools" / "codepipeline" / "pipeline"
    pipeline.mkdir(parents=True)
    (pipeline / "props.yaml").write_text(
        "Type: AWS::CodePipeline::Pipeline\nProperties:\n  sourceBucket: null\n  name: null\n"
    )

    manifest = tmp_path / "pipeline.yaml"
    manifest.write_text(
        """
description: Artifact pipeline
parameters:
  PipelineName:
    description: Name of the pipeline
resources:
  - id: R1
    template: storage/s3/bucket-artifacts
    overrides:
      bucketName: artifacts
  - id: R2
    template: developer-tools/codepipeline/pipeline
    overrides:
      name: {Ref: PipelineName}
    bindings:
      - path: sourceBucket
        from: R1.bucketArn
"""
    )
    return manifest, res


@pytest.fixture
def cyclic_project(project):
    manifest, res = project
    manifest.write_text(
        """
resources:
  - id: A
    template: storage/s3/bucket-artifacts
    dependsOn: [B]
  - id: B
    template: storage/s3/bucket-artifacts
    dependsOn: [A]
"""
    )
    return manifest, res


class TestPlanCommand:
    def test_text_output(self, project, capsys):
        manifest, res = project
        assert plan_command(str(manifest), templates_dir=str(res)) == 0
        out = capsys.readouterr().out
        assert "R1" in out and "R2" in out

    def test_json_output(self, project, capsys):
        manifest, res = project
        assert plan_command(str(manifest), templates_dir=str(res), output_format="json") == 0

        plan = json.loads(capsys.readouterr().out)
        assert [r["logical_id"] for r in plan["resources"]] == ["R1", "R2"]
        assert plan["resources"][1]["bindings"] == ["sourceBucket <- R1.bucketArn"]
        assert [r["computed_after"] for r in plan["resources"]] == [True, False]

    def test_cycle_is_validation_error(self, cyclic_project):
        manifest, res = cyclic_project
        assert plan_command(str(manifest), templates_dir=str(res)) == ExitCode.VALIDATION_ERROR

    def test_missing_manifest(self, tmp_path, capsys):
        result = plan_command(str(tmp_path / "missing.yaml"), templates_dir=str(tmp_path))
        assert result == ExitCode.CONFIG_ERROR
        assert "Manifest not found" in capsys.readouterr().out


class TestRenderCommand:
    def test_json_to_stdout(self, project, capsys):
        manifest, res = project
        assert render_command(str(manifest), templates_dir=str(res)) == 0

        document = json.loads(capsys.readouterr().out)
        assert document["Description"] == "Artifact pipeline"
        assert document["Resources"]["R2"]["Properties"] == {
            "sourceBucket": {"Fn::GetAtt": ["R1", "bucketArn"]},
            "name": {"Ref": "PipelineName"},
        }

    def test_yaml_to_file_with_parameters(self, project, tmp_path):
        manifest, res = project
        output = tmp_path / "out" / "template.yaml"
        output.parent.mkdir()

        result = render_command(
            str(manifest),
            templates_dir=str(res),
            output_format="yaml",
            output_file=str(output),
            parameters=["PipelineName=ci"],
        )

        assert result == 0
        document = yaml.safe_load(output.read_text())
        assert document["Resources"]["R2"]["Properties"]["name"] == "ci"

    def test_unknown_parameter(self, project):
        manifest, res = project
        result = render_command(str(manifest), templates_dir=str(res), parameters=["Nope=1"])
        assert result == ExitCode.VALIDATION_ERROR

    def test_unknown_template(self, project, tmp_path):
        manifest, _ = project
        empty = tmp_path / "empty"
        empty.mkdir()
        assert render_command(str(manifest), templates_dir=str(empty)) == ExitCode.VALIDATION_ERROR

    def test_context_replaces_created_bucket(self, project, capsys):
        manifest, res = project
        manifest.write_text(
            """
resources:
  - id: R1
    template: storage/s3/bucket-artifacts
    unless: artifact_bucket_name
  - id: R2
    template: developer-tools/codepipeline/pipeline
    overrides:
      sourceBucket: {"Fn::Context": [artifact_bucket_name, {Ref: R1}]}
"""
        )

        result = render_command(
            str(manifest), templates_dir=str(res), context=["artifact_bucket_name=shared"]
        )

        assert result == 0
        document = json.loads(capsys.readouterr().out)
        assert list(document["Resources"]) == ["R2"]
        assert document["Resources"]["R2"]["Properties"]["sourceBucket"] == "shared"


class TestParameterOverrides:
    def test_pairs(self):
        assert parse_key_values(["A=1", "B=x=y"]) == {"A": "1", "B": "x=y"}

    def test_none(self):
        assert parse_key_values(None) == {}

    def test_missing_separator(self):
        with pytest.raises(ConfigurationError, match="Context override"):
            parse_key_values(["A"], "Context")


class TestMain:
    def test_parser_subcommands(self):
        args = build_parser().parse_args(
            ["render", "stack.yaml", "--format", "yaml", "-p", "A=1", "-c", "artifact_bucket_name=b"]
        )
        assert args.command == "render"
        assert args.format == "yaml"
        assert args.parameters == ["A=1"]
        assert args.context == ["artifact_bucket_name=b"]

    def test_dispatches_plan(self, project, monkeypatch, capsys):
        monkeypatch.setattr("stackwire.cli.main.configure_logging", lambda **kwargs: None)
        manifest, res = project

        with pytest.raises(SystemExit) as exc_info:
            main(["plan", str(manifest), "--templates", str(res), "--output", "json"])

        assert exc_info.value.code == 0
        assert "R1" in capsys.readouterr().out

    def test_no_command_prints_help(self, monkeypatch, capsys):
        monkeypatch.setattr("stackwire.cli.main.configure_logging", lambda **kwargs: None)
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1
        assert "usage" in capsys.readouterr().out
