import asyncio
import logging
from dataclasses import dataclass
from typing import Dict

from .errors import DeliverySendError

logger = logging.getLogger(__name__)

# Outbound messages a slow subscriber may have pending before sends fail
DEFAULT_QUEUE_SIZE = 100


@dataclass
class Subscriber:
    id: str
    queue: asyncio.Queue

    def push(self, payload):
        try:
            self.queue.put_nowait(payload)
        except asyncio.QueueFull as e:
            raise DeliverySendError(f"subscriber {self.id}", e) from e


class ClientRegistry:
    """Subscriber id -> outbound queue, shared by every transport task.

    A single asyncio.Lock guards the map. Broadcast copies the entries under
    the lock and enqueues after releasing it, so registrations are never held
    up by a delivery pass.
    """

    def __init__(self):
        self._clients: Dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def new_queue(maxsize=DEFAULT_QUEUE_SIZE) -> asyncio.Queue:
        return asyncio.Queue(maxsize=maxsize)

    async def register(self, subscriber_id, queue):
        async with self._lock:
            self._clients[subscriber_id] = Subscriber(subscriber_id, queue)
            count = len(self._clients)
        logger.info(f"Client {subscriber_id} registered ({count} total)")

    async def unregister(self, subscriber_id):
        async with self._lock:
            removed = self._clients.pop(subscriber_id, None)
            count = len(self._clients)
        if removed is not None:
            logger.info(f"Client {subscriber_id} unregistered ({count} total)")

    async def broadcast(self, payload) -> int:
        async with self._lock:
            targets = list(self._clients.values())

        delivered = 0
        for sub in targets:
            try:
                sub.push(payload)
                delivered += 1
            except DeliverySendError as e:
                logger.warning(str(e))
        return delivered

    async def ids(self):
        async with self._lock:
            return set(self._clients)

    def __len__(self):
        return len(self._clients)
