import asyncio
import json
import logging
from collections import deque
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from vendor_relay.errors import QueueError
from vendor_relay.models import QueueEntry

logger = logging.getLogger(__name__)


class JobQueue:
    """FIFO of pending work references.

    ``dequeue`` never blocks; it returns ``None`` when the queue is empty.
    An entry is handed out at most once and is not redelivered.
    """

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    async def ping(self) -> bool:
        return True

    async def enqueue(self, entry: QueueEntry) -> None:
        raise NotImplementedError

    async def dequeue(self) -> Optional[QueueEntry]:
        raise NotImplementedError

    async def size(self) -> int:
        raise NotImplementedError


class RedisJobQueue(JobQueue):
    """Durable queue on a Redis list: LPUSH at the tail, RPOP from the head"""

    def __init__(self, url: str, queue_name: str, client: Optional[redis.Redis] = None):
        self.url = url
        self.queue_name = queue_name
        self.client = client

    async def connect(self):
        if self.client is None:
            self.client = redis.from_url(self.url, decode_responses=True)
        logger.info(f"Using Redis queue {self.queue_name}")

    async def disconnect(self):
        if self.client is not None:
            await self.client.aclose()

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def enqueue(self, entry: QueueEntry) -> None:
        try:
            await self.client.lpush(self.queue_name, entry.model_dump_json())
            logger.info(f"Job added to queue: {entry.request_id}")
        except RedisError as e:
            logger.error(f"Error adding job {entry.request_id} to queue: {e}")
            raise QueueError("Failed to queue job") from e

    async def dequeue(self) -> Optional[QueueEntry]:
        try:
            raw = await self.client.rpop(self.queue_name)
        except RedisError as e:
            logger.error(f"Error getting job from queue: {e}")
            raise QueueError("Failed to read from queue") from e
        if raw is None:
            return None
        try:
            return QueueEntry(**json.loads(raw))
        except ValueError as e:
            # The entry is already popped; it is dropped, not redelivered
            logger.error(f"Dropping malformed queue entry {raw!r}: {e}")
            raise QueueError("Malformed queue entry") from e

    async def size(self) -> int:
        try:
            return await self.client.llen(self.queue_name)
        except RedisError as e:
            logger.error(f"Error reading queue length: {e}")
            raise QueueError("Failed to read queue length") from e


class InMemoryJobQueue(JobQueue):
    """Process-local queue; entries do not survive a restart"""

    def __init__(self):
        self._entries = deque()
        self._lock = asyncio.Lock()

    async def enqueue(self, entry: QueueEntry) -> None:
        async with self._lock:
            self._entries.append(entry)
        logger.info(f"Job added to queue: {entry.request_id}")

    async def dequeue(self) -> Optional[QueueEntry]:
        async with self._lock:
            if not self._entries:
                return None
            return self._entries.popleft()

    async def size(self) -> int:
        return len(self._entries)
