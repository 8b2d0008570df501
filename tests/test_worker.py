"""Tests for provisioning/worker.py.

Tests for operation dispatch, failure reporting and SQS-style batch
handling with partial batch failures.
"""

import json
from unittest.mock import AsyncMock

import pytest
from stackwire.provisioning.models import (
    Operation,
    ProvisioningRequest,
    ProvisioningResponse,
    ResponseStatus,
)
from stackwire.provisioning.worker import WorkerHandler


@pytest.fixture
def worker():
    handler = WorkerHandler()

    @handler.on(Operation.CREATE)
    async def create_bucket(request):
        return {"bucketArn": f"arn:aws:s3:::{request.properties['bucketName']}"}

    @handler.on(Operation.DELETE)
    async def empty_bucket(request):
        if request.properties.get("locked"):
            raise RuntimeError("bucket is locked")
        return None

    return handler


@pytest.fixture
def sample_sqs_event():
    """Create a sample SQS event with one valid and one broken record."""
    return {
        "Records": [
            {
                "messageId": "msg-001",
                "body": json.dumps(
                    {
                        "operation": "Create",
                        "correlationToken": "tok-1",
                        "properties": {"bucketName": "artifacts"},
                    }
                ),
            },
            {"messageId": "msg-002", "body": "not json"},
        ]
    }


class TestHandle:
    @pytest.mark.asyncio
    async def test_create_returns_attributes(self, worker):
        response = await worker.handle(
            ProvisioningRequest(Operation.CREATE, "tok-1", {"bucketName": "artifacts"})
        )
        assert response == ProvisioningResponse.success("tok-1", {"bucketArn": "arn:aws:s3:::artifacts"})

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_failure(self, worker):
        response = await worker.handle(ProvisioningRequest(Operation.DELETE, "tok-2", {"locked": True}))
        assert response.status is ResponseStatus.FAILED
        assert response.reason == "bucket is locked"
        assert response.correlation_token == "tok-2"

    @pytest.mark.asyncio
    async def test_no_attributes_omitted(self, worker):
        response = await worker.handle(ProvisioningRequest(Operation.DELETE, "tok-3", {}))
        assert response.to_dict() == {"correlationToken": "tok-3", "status": "Success"}

    @pytest.mark.asyncio
    async def test_unregistered_operation_is_noop(self, worker):
        response = await worker.handle(ProvisioningRequest(Operation.UPDATE, "tok-4", {}))
        assert response.status is ResponseStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_register(self):
        handler = WorkerHandler()
        handler.register(Operation.UPDATE, AsyncMock(return_value={"version": 2}))
        response = await handler.handle(ProvisioningRequest(Operation.UPDATE, "tok-5", {}))
        assert response.attributes == {"version": 2}


class TestHandleEvent:
    @pytest.mark.asyncio
    async def test_partial_batch_failure(self, worker, sample_sqs_event):
        respond = AsyncMock()

        result = await worker.handle_event(sample_sqs_event, respond)

        assert result == {"batchItemFailures": [{"itemIdentifier": "msg-002"}]}
        respond.assert_awaited_once()
        (response,) = respond.await_args.args
        assert response.correlation_token == "tok-1"

    @pytest.mark.asyncio
    async def test_delivery_failure_reported(self, worker, sample_sqs_event):
        respond = AsyncMock(side_effect=ConnectionError("queue down"))

        result = await worker.handle_event(sample_sqs_event, respond)

        assert {f["itemIdentifier"] for f in result["batchItemFailures"]} == {"msg-001", "msg-002"}

    @pytest.mark.asyncio
    async def test_empty_event(self, worker):
        assert await worker.handle_event({}, AsyncMock()) == {"batchItemFailures": []}
