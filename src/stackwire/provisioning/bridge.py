"""
Custom-provisioning bridge.

Drives the request/response exchange with an out-of-band worker for
resources no built-in type can express. Every attempt follows

    Pending -> Sent -> {Succeeded, Failed, TimedOut}

and lives in its own slot keyed by a correlation token that is never
reused, not even for a retry. A timeout is mandatory: the bridge never
waits indefinitely for a worker that may have lost the request.

Once the caller has observed a terminal attempt (``wait`` returned, or
``send`` raised) the bridge releases it and keeps only its token, in a
bounded history, so a late response can still be recognised and discarded.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import OrderedDict, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Union

import structlog

from stackwire.composition.bindings import bind_attributes
from stackwire.composition.models import Composition
from stackwire.config import get_settings
from stackwire.core.errors import CompositionError
from stackwire.logging import bind_context
from stackwire.provisioning.models import (
    AttemptState,
    MalformedMessageError,
    Operation,
    ProvisioningAttempt,
    ProvisioningRequest,
    ProvisioningResponse,
    ResponseStatus,
)

logger = structlog.get_logger()

# Finished tokens and discarded responses remembered per bridge
DEFAULT_HISTORY = 1024


class ProvisioningTransport(Protocol):
    async def send(self, request: ProvisioningRequest) -> None: ...


def _new_token() -> str:
    return str(uuid.uuid4())


class ProvisioningBridge:
    """Tracks outstanding provisioning attempts and their completion signals.

    Args:
        transport: Channel delivering requests to the worker
        composition: Composition receiving attributes of successful creates
        default_timeout: Seconds to wait when ``wait`` gets no timeout
            (defaults to ``STACKWIRE_PROVISIONING_TIMEOUT_SECONDS``)
        token_factory: Correlation token generator
        history: How many finished tokens and discarded responses to remember
    """

    def __init__(
        self,
        transport: ProvisioningTransport,
        composition: Optional[Composition] = None,
        default_timeout: Optional[float] = None,
        token_factory: Callable[[], str] = _new_token,
        history: int = DEFAULT_HISTORY,
    ) -> None:
        self._transport = transport
        self._composition = composition
        self._default_timeout = (
            default_timeout
            if default_timeout is not None
            else get_settings().provisioning_timeout_seconds
        )
        self._token_factory = token_factory
        self._history = history
        self._attempts: Dict[str, ProvisioningAttempt] = {}
        self._waiters: Dict[str, asyncio.Future[ProvisioningResponse]] = {}
        # token -> terminal state of released attempts, oldest first
        self._finished: OrderedDict[str, AttemptState] = OrderedDict()
        self.discarded: Deque[Dict[str, Any]] = deque(maxlen=history)

    def get(self, token: str) -> Optional[ProvisioningAttempt]:
        """Return a live attempt; released attempts are no longer tracked."""
        return self._attempts.get(token)

    def resolve_timeout(self, timeout: Optional[float] = None) -> float:
        """Effective timeout for an attempt.

        Raises:
            ValueError: If the timeout is not positive
        """
        timeout = self._default_timeout if timeout is None else timeout
        if timeout <= 0:
            raise ValueError("Provisioning timeout must be positive")
        return timeout

    def outstanding(self) -> List[ProvisioningAttempt]:
        """Attempts that were sent and have not reached a terminal state."""
        return [a for a in self._attempts.values() if a.state is AttemptState.SENT]

    def begin(
        self,
        logical_id: str,
        operation: Operation,
        properties: Optional[Dict[str, Any]] = None,
        old_properties: Optional[Dict[str, Any]] = None,
    ) -> ProvisioningAttempt:
        """Create a Pending attempt with a fresh correlation token."""
        token = self._token_factory()
        if token in self._attempts or token in self._finished:
            raise ValueError(f"Correlation token reused: {token}")
        request = ProvisioningRequest(
            operation=Operation(operation),
            correlation_token=token,
            properties=dict(properties or {}),
            old_properties=old_properties if operation == Operation.UPDATE else None,
        )
        attempt = ProvisioningAttempt(request=request, logical_id=logical_id)
        self._attempts[token] = attempt
        logger.debug(
            "provisioning_attempt_created",
            logical_id=logical_id,
            operation=request.operation.value,
            correlation_token=token,
        )
        return attempt

    async def send(self, attempt: ProvisioningAttempt) -> ProvisioningAttempt:
        """Dispatch a Pending attempt to the worker.

        The attempt is marked Sent before the transport is awaited so a
        worker answering faster than the transport returns is still matched.
        """
        if attempt.state is not AttemptState.PENDING:
            raise ValueError(f"Attempt {attempt.token} is {attempt.state.value}, not Pending")

        self._waiters[attempt.token] = asyncio.get_running_loop().create_future()
        attempt.state = AttemptState.SENT
        attempt.sent_at = time.time()
        try:
            await self._transport.send(attempt.request)
        except Exception as exc:
            self._waiters.pop(attempt.token, None)
            self._finish(
                attempt,
                AttemptState.FAILED,
                ProvisioningResponse.failed(attempt.token, f"Dispatch failed: {exc}"),
            )
            self._release(attempt)
            raise
        self._log(attempt).info("provisioning_request_sent")
        return attempt

    def deliver(self, response: Union[ProvisioningResponse, str, bytes, Dict[str, Any]]) -> bool:
        """Apply a worker response to the Sent attempt with the same token.

        Responses for unknown tokens, or for attempts that are not Sent, are
        discarded and logged without touching any attempt.

        Returns:
            True when the response advanced an attempt
        """
        if not isinstance(response, ProvisioningResponse):
            try:
                response = ProvisioningResponse.from_message_body(response)
            except MalformedMessageError as e:
                self._discard(None, f"malformed: {e}")
                return False

        token = response.correlation_token
        attempt = self._attempts.get(token)
        waiter = self._waiters.get(token)
        if attempt is None or attempt.state is not AttemptState.SENT or waiter is None:
            state = attempt.state if attempt else self._finished.get(token)
            self._discard(token, "unknown_token" if state is None else f"attempt_{state.value}")
            return False

        if response.status is ResponseStatus.SUCCESS:
            if (
                attempt.operation is Operation.CREATE
                and self._composition is not None
                and attempt.logical_id in self._composition.specs
                and response.attributes
            ):
                try:
                    bind_attributes(self._composition, attempt.logical_id, response.attributes)
                except CompositionError as e:
                    response = ProvisioningResponse.failed(token, f"Attribute publication failed: {e}")

        if response.status is ResponseStatus.SUCCESS:
            self._finish(attempt, AttemptState.SUCCEEDED, response)
        else:
            self._finish(attempt, AttemptState.FAILED, response)

        del self._waiters[token]
        if not waiter.done():
            waiter.set_result(response)
        return True

    async def wait(self, attempt: ProvisioningAttempt, timeout: Optional[float] = None) -> ProvisioningAttempt:
        """Wait for a Sent attempt to reach a terminal state.

        Without a response inside ``timeout`` seconds the attempt becomes
        TimedOut; a late response is then discarded. The returned attempt
        is released from the bridge.
        """
        if attempt.state.terminal:
            self._release(attempt)
            return attempt
        if attempt.state is not AttemptState.SENT:
            raise ValueError(f"Attempt {attempt.token} has not been sent")

        attempt.timeout = self.resolve_timeout(timeout)

        waiter = self._waiters[attempt.token]
        try:
            await asyncio.wait_for(asyncio.shield(waiter), attempt.timeout)
        except asyncio.TimeoutError:
            if attempt.state is AttemptState.SENT:
                self._waiters.pop(attempt.token, None)
                waiter.cancel()
                self._finish(attempt, AttemptState.TIMED_OUT, None)
        self._release(attempt)
        return attempt

    async def provision(
        self,
        logical_id: str,
        operation: Operation,
        properties: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        old_properties: Optional[Dict[str, Any]] = None,
    ) -> ProvisioningAttempt:
        """Begin, send and wait for one attempt; returns it in a terminal state."""
        timeout = self.resolve_timeout(timeout)
        attempt = self.begin(logical_id, operation, properties, old_properties=old_properties)
        await self.send(attempt)
        return await self.wait(attempt, timeout)

    async def retry(self, attempt: ProvisioningAttempt, timeout: Optional[float] = None) -> ProvisioningAttempt:
        """Run a terminal attempt again under a new correlation token."""
        if not attempt.state.terminal:
            raise ValueError(f"Attempt {attempt.token} is still {attempt.state.value}")
        return await self.provision(
            attempt.logical_id,
            attempt.operation,
            attempt.request.properties,
            timeout=timeout,
            old_properties=attempt.request.old_properties,
        )

    def _finish(
        self,
        attempt: ProvisioningAttempt,
        state: AttemptState,
        response: Optional[ProvisioningResponse],
    ) -> None:
        attempt.state = state
        attempt.response = response
        attempt.finished_at = time.time()
        log = self._log(attempt)
        if state is AttemptState.SUCCEEDED:
            log.info("provisioning_succeeded", attributes=sorted(attempt.attributes))
        elif state is AttemptState.FAILED:
            log.error("provisioning_failed", reason=attempt.reason)
        else:
            log.error("provisioning_timed_out", timeout=attempt.timeout)

    @staticmethod
    def _log(attempt: ProvisioningAttempt) -> structlog.stdlib.BoundLogger:
        return bind_context(
            logical_id=attempt.logical_id,
            operation=attempt.operation.value,
            correlation_token=attempt.token,
        )

    def _release(self, attempt: ProvisioningAttempt) -> None:
        if self._attempts.pop(attempt.token, None) is None:
            return
        self._finished[attempt.token] = attempt.state
        while len(self._finished) > self._history:
            self._finished.popitem(last=False)

    def _discard(self, token: Optional[str], reason: str) -> None:
        self.discarded.append({"correlation_token": token, "reason": reason})
        logger.warning("provisioning_response_discarded", correlation_token=token, reason=reason)
