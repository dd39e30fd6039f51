"""Concurrency gate: orders network access for one cloud data object.

Two sections guard the object:

    request gate: held by every outbound call from send until its response
                  has been fully processed, so responses never interleave
    save gate: held for a whole save sequence (delete, create, update)

A read waits for any in-flight save to finish before it takes the request
gate, so it never observes the dataset half-way through a save.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    def __init__(self) -> None:
        self._request_lock = asyncio.Lock()
        self._save_lock = asyncio.Lock()

    @property
    def save_in_progress(self) -> bool:
        return self._save_lock.locked()

    @property
    def request_in_flight(self) -> bool:
        return self._request_lock.locked()

    async def wait_for_save(self) -> None:
        """Block until no save is in progress (acquire then release the save gate)."""
        if self._save_lock.locked():
            logger.debug("Waiting for in-flight save to finish")
        async with self._save_lock:
            pass

    @asynccontextmanager
    async def request(self) -> AsyncIterator[None]:
        async with self._request_lock:
            yield

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        """Request gate for a read: waits for any in-flight save first."""
        await self.wait_for_save()
        async with self._request_lock:
            yield

    @asynccontextmanager
    async def save(self) -> AsyncIterator[None]:
        async with self._save_lock:
            yield
