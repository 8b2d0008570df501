"""Root test configuration."""

import asyncio
import logging

import pytest
import structlog
from stackwire.composition.models import ResourceDeclaration
from stackwire.provisioning.bridge import ProvisioningBridge
from stackwire.provisioning.models import ProvisioningResponse
from stackwire.templates.models import InMemoryTemplateStore, ResourceTemplate


def pytest_configure(config):
    """Keep structlog quiet during tests."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def bucket_template():
    return ResourceTemplate(
        name="storage/s3/bucket-artifacts",
        properties={"bucketName": None},
        resource_type="AWS::S3::Bucket",
    )


@pytest.fixture
def pipeline_template():
    return ResourceTemplate(
        name="developer-tools/codepipeline/pipeline",
        properties={
            "sourceBucket": None,
            "stages": [
                {"name": "Source", "actions": [{"configuration": {}}]},
                {"name": "Build", "actions": [{"configuration": {}}]},
            ],
        },
        resource_type="AWS::CodePipeline::Pipeline",
    )


@pytest.fixture
def store(bucket_template, pipeline_template):
    return InMemoryTemplateStore([bucket_template, pipeline_template])


@pytest.fixture
def r1_r2_declarations(bucket_template, pipeline_template):
    """R1 is a bucket named 'artifacts'; R2 reads R1's ARN."""
    return [
        ResourceDeclaration(
            logical_id="R1",
            template=bucket_template,
            overrides={"bucketName": "artifacts"},
        ),
        ResourceDeclaration(
            logical_id="R2",
            template=pipeline_template,
            bindings=[("sourceBucket", "R1", "bucketArn")],
        ),
    ]


class ScriptedTransport:
    """Answers requests the way a worker would, scripted per logical id.

    Outcomes: ``success`` (default), ``fail``, ``slow`` (success after a short
    delay), ``silent`` (never answers) and ``raise`` (the send itself fails).
    A list of outcomes is consumed one attempt at a time.
    """

    def __init__(self, outcomes=None, attributes=None):
        self.bridge = None
        self.outcomes = dict(outcomes or {})
        self.attributes = attributes or {}
        self.sent = []

    def _outcome(self, logical_id):
        outcome = self.outcomes.get(logical_id, "success")
        if isinstance(outcome, list):
            return outcome.pop(0)
        return outcome

    async def send(self, request):
        attempt = self.bridge.get(request.correlation_token)
        outcome = self._outcome(attempt.logical_id)
        if outcome == "raise":
            raise ConnectionError("queue unavailable")
        self.sent.append(request)

        token = request.correlation_token
        loop = asyncio.get_running_loop()
        if outcome == "success":
            response = ProvisioningResponse.success(token, self.attributes.get(attempt.logical_id))
            loop.call_soon(self.bridge.deliver, response)
        elif outcome == "fail":
            response = ProvisioningResponse.failed(token, f"{attempt.logical_id} refused")
            loop.call_soon(self.bridge.deliver, response)
        elif outcome == "slow":
            loop.call_later(0.05, self.bridge.deliver, ProvisioningResponse.success(token))


@pytest.fixture
def scripted_bridge():
    """Factory for a bridge wired to a ScriptedTransport."""

    def factory(outcomes=None, attributes=None, composition=None, timeout=1.0, token_factory=None):
        transport = ScriptedTransport(outcomes, attributes)
        kwargs = {"token_factory": token_factory} if token_factory else {}
        bridge = ProvisioningBridge(
            transport, composition=composition, default_timeout=timeout, **kwargs
        )
        transport.bridge = bridge
        return bridge, transport

    return factory
