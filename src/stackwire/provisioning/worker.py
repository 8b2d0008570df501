"""
Worker side of the provisioning protocol.

The worker's business logic (emptying a bucket, configuring an IDE, ...)
is registered per operation; this module only turns requests into
responses. Any exception raised by a handler becomes a ``Failed`` response
carrying the exception message as the reason.
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from stackwire.provisioning.models import (
    MalformedMessageError,
    Operation,
    ProvisioningRequest,
    ProvisioningResponse,
)

logger = structlog.get_logger()

OperationHandler = Callable[[ProvisioningRequest], Awaitable[Optional[Dict[str, Any]]]]
Responder = Callable[[ProvisioningResponse], Awaitable[None]]


class WorkerHandler:
    """Dispatches provisioning requests to registered operation handlers."""

    def __init__(self) -> None:
        self._handlers: Dict[Operation, OperationHandler] = {}

    def register(self, operation: Operation, handler: OperationHandler) -> None:
        self._handlers[Operation(operation)] = handler

    def on(self, operation: Operation) -> Callable[[OperationHandler], OperationHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: OperationHandler) -> OperationHandler:
            self.register(operation, handler)
            return handler

        return decorator

    async def handle(self, request: ProvisioningRequest) -> ProvisioningResponse:
        log = logger.bind(
            operation=request.operation.value, correlation_token=request.correlation_token
        )
        handler = self._handlers.get(request.operation)
        if handler is None:
            # Nothing to do for this operation counts as done
            log.info("worker_operation_noop")
            return ProvisioningResponse.success(request.correlation_token)

        try:
            attributes = await handler(request)
        except Exception as exc:
            log.error("worker_operation_failed", error=str(exc))
            return ProvisioningResponse.failed(request.correlation_token, str(exc) or type(exc).__name__)

        log.info("worker_operation_succeeded", attributes=sorted(attributes or {}))
        return ProvisioningResponse.success(request.correlation_token, attributes or None)

    async def handle_event(self, event: Dict[str, Any], respond: Responder) -> Dict[str, Any]:
        """
        Handle an SQS-style batch of request bodies.
        Returns batchItemFailures for records that could not be parsed or answered.
        """
        records = event.get("Records", [])
        failed_message_ids = []

        for record in records:
            message_id = record.get("messageId")
            try:
                request = ProvisioningRequest.from_message_body(record["body"])
                await respond(await self.handle(request))
            except (KeyError, MalformedMessageError, json.JSONDecodeError) as exc:
                logger.error("request_parse_failed", message_id=message_id, error=str(exc))
                failed_message_ids.append(message_id)
            except Exception as exc:
                logger.error("response_delivery_failed", message_id=message_id, error=str(exc))
                failed_message_ids.append(message_id)

        return {"batchItemFailures": [{"itemIdentifier": msg_id} for msg_id in failed_message_ids]}
