from __future__ import annotations

import asyncio

from stackwire.provisioning.models import ProvisioningRequest


class InMemoryTransport:
    """asyncio-backed request channel for local runs and tests.

    Workers pull requests with :meth:`receive` and hand their responses to
    ``ProvisioningBridge.deliver``.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ProvisioningRequest] = asyncio.Queue()

    async def send(self, request: ProvisioningRequest) -> None:
        await self._queue.put(request)

    async def receive(self) -> ProvisioningRequest:
        return await self._queue.get()

    def size(self) -> int:
        return self._queue.qsize()
