from __future__ import annotations

import aioboto3
import structlog

from stackwire.config import Settings
from stackwire.core.errors import ConfigurationError
from stackwire.provisioning.models import ProvisioningRequest

logger = structlog.get_logger()


class SqsTransport:
    """Send provisioning requests to an SQS queue read by the worker."""

    def __init__(self, settings: Settings) -> None:
        if not settings.sqs_queue_url:
            raise ConfigurationError(
                "STACKWIRE_SQS_QUEUE_URL is required for the sqs provisioning backend"
            )
        self._settings = settings

    async def send(self, request: ProvisioningRequest) -> None:
        session = aioboto3.Session(region_name=self._settings.aws_region)
        async with session.client("sqs") as client:
            queue_url = self._settings.sqs_queue_url or ""
            payload = {
                "QueueUrl": queue_url,
                "MessageBody": request.to_message_body(),
            }
            if queue_url.endswith(".fifo"):
                payload["MessageGroupId"] = request.operation.value
                # A fresh token per attempt, so retries are never deduplicated away
                payload["MessageDeduplicationId"] = request.correlation_token

            response = await client.send_message(**payload)
        logger.debug(
            "provisioning_request_enqueued",
            correlation_token=request.correlation_token,
            message_id=response["MessageId"],
        )
