import logging
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from vendor_relay.config import Settings
from vendor_relay.database import InMemoryJobStore, JobStore, MongoJobStore
from vendor_relay.job_queue import InMemoryJobQueue, JobQueue, RedisJobQueue
from vendor_relay.jobs import JobService
from vendor_relay.rate_limiter import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from vendor_relay.selection import VendorSelector, build_selector
from vendor_relay.vendor_client import VendorAdapter, build_adapters
from vendor_relay.webhooks import WebhookCorrelator
from vendor_relay.worker import Dispatcher

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything the API and the worker share, built once per process"""

    store: JobStore
    queue: JobQueue
    rate_limiter: RateLimiter
    adapters: Dict[str, VendorAdapter]
    jobs: JobService
    correlator: WebhookCorrelator
    dispatcher: Dispatcher

    async def close(self):
        await self.queue.disconnect()
        await self.rate_limiter.disconnect()
        await self.store.disconnect()


async def build_services(
    settings: Settings,
    selector: Optional[VendorSelector] = None,
    vendor_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServiceContainer:
    if settings.STORAGE_BACKEND == "memory":
        store = InMemoryJobStore()
        queue = InMemoryJobQueue()
        rate_limiter = InMemoryRateLimiter(settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW)
    elif settings.STORAGE_BACKEND == "mongo":
        store = MongoJobStore(settings.MONGODB_URL, settings.MONGODB_DB)
        queue = RedisJobQueue(settings.REDIS_URL, settings.QUEUE_NAME)
        rate_limiter = RedisRateLimiter(
            settings.REDIS_URL, settings.RATE_LIMIT_KEY, settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW
        )
    else:
        raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")

    await store.connect()
    await queue.connect()
    await rate_limiter.connect()
    logger.info(f"Services connected using {settings.STORAGE_BACKEND} backend")

    adapters = build_adapters(
        settings.IMMEDIATE_VENDOR_URL, settings.DELAYED_VENDOR_URL, settings.VENDOR_TIMEOUT, vendor_transport
    )
    dispatcher = Dispatcher(
        store,
        queue,
        rate_limiter,
        adapters,
        poll_interval=settings.POLL_INTERVAL,
        rate_limit_max_wait=settings.RATE_LIMIT_MAX_WAIT,
    )

    return ServiceContainer(
        store=store,
        queue=queue,
        rate_limiter=rate_limiter,
        adapters=adapters,
        jobs=JobService(store, queue, selector or build_selector(settings.VENDOR_SELECTION)),
        correlator=WebhookCorrelator(store),
        dispatcher=dispatcher,
    )
