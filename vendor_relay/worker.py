import asyncio
import logging
import signal
import time
from typing import Dict

from vendor_relay.database import JobStore
from vendor_relay.errors import QueueError, RateLimitTimeout, VendorError
from vendor_relay.job_queue import JobQueue
from vendor_relay.metrics import JOBS_DISPATCHED, VENDOR_CALL_DURATION
from vendor_relay.models import QueueEntry
from vendor_relay.normalizer import clean_vendor_response
from vendor_relay.rate_limiter import RateLimiter
from vendor_relay.vendor_client import VendorAdapter

logger = logging.getLogger(__name__)


class Dispatcher:
    """Single sequential consumer of the job queue.

    Takes one entry at a time: moves its job to processing, waits for a rate
    limit slot, calls the vendor, and records the outcome. Immediate-reply
    results complete the job here; delayed-reply jobs stay processing until
    their webhook arrives. A failing job is marked failed and the loop moves on.
    """

    def __init__(
        self,
        store: JobStore,
        queue: JobQueue,
        rate_limiter: RateLimiter,
        adapters: Dict[str, VendorAdapter],
        poll_interval: float = 1.0,
        rate_limit_max_wait: float = 60.0,
    ):
        self.store = store
        self.queue = queue
        self.rate_limiter = rate_limiter
        self.adapters = adapters
        self.poll_interval = poll_interval
        self.rate_limit_max_wait = rate_limit_max_wait
        self.is_running = False
        self._stop_event = asyncio.Event()

    async def run(self):
        self.is_running = True
        self._stop_event.clear()
        logger.info("Dispatcher started")

        while self.is_running:
            try:
                processed = await self.run_once()
            except QueueError:
                processed = False
            except Exception as e:
                logger.exception(f"Error in dispatcher loop: {e}")
                processed = False
            if not processed:
                await self._idle()

        logger.info("Dispatcher stopped")

    def stop(self):
        self.is_running = False
        self._stop_event.set()

    async def _idle(self):
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> bool:
        """Dispatch the next queued entry; False when the queue was empty"""
        entry = await self.queue.dequeue()
        if entry is None:
            return False
        await self.process_entry(entry)
        return True

    async def process_entry(self, entry: QueueEntry):
        request_id, vendor = entry.request_id, entry.vendor
        logger.info(f"Processing job: {request_id} for vendor: {vendor}")

        try:
            if not await self.store.mark_processing(request_id):
                logger.warning(f"Job {request_id} is missing or no longer pending, skipping")
                JOBS_DISPATCHED.labels(vendor=vendor, outcome="skipped").inc()
                return

            try:
                await self.rate_limiter.await_acquire(
                    vendor, max_wait=self.rate_limit_max_wait, poll_interval=self.poll_interval
                )
            except RateLimitTimeout as e:
                logger.warning(f"Rate limit wait timed out for job {request_id}")
                await self._fail(request_id, vendor, e.message, outcome="rate_limited")
                return

            adapter = self.adapters.get(vendor)
            if adapter is None:
                raise VendorError(f"No adapter configured for vendor {vendor}")

            start_time = time.time()
            outcome = await adapter.call(request_id, entry.payload)
            VENDOR_CALL_DURATION.labels(vendor=vendor).observe(time.time() - start_time)

            if outcome.final:
                result = clean_vendor_response(outcome.body)
                if not result:
                    raise VendorError("Vendor returned an empty result")
                await self.store.mark_complete(request_id, result)
                JOBS_DISPATCHED.labels(vendor=vendor, outcome="complete").inc()
                logger.info(f"Job {request_id} completed successfully")
            else:
                if outcome.reference:
                    await self.store.set_vendor_reference(request_id, outcome.reference)
                JOBS_DISPATCHED.labels(vendor=vendor, outcome="acknowledged").inc()
                logger.info(f"Job {request_id} acknowledged by {vendor}, waiting for webhook")

        except Exception as e:
            logger.exception(f"Error processing job {request_id}: {e}")
            await self._fail(request_id, vendor, str(e) or type(e).__name__)

    async def _fail(self, request_id: str, vendor: str, error: str, outcome: str = "failed"):
        JOBS_DISPATCHED.labels(vendor=vendor, outcome=outcome).inc()
        try:
            await self.store.mark_failed(request_id, error)
        except Exception as e:
            # The loop must keep going even when the store is down
            logger.error(f"Could not mark job {request_id} as failed: {e}")


async def main():
    from vendor_relay.config import settings
    from vendor_relay.services import build_services

    services = await build_services(settings)
    dispatcher = services.dispatcher

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, dispatcher.stop)

    try:
        await dispatcher.run()
    finally:
        await services.close()


if __name__ == "__main__":
    from vendor_relay.config import settings

    logging.basicConfig(
        level=settings.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    asyncio.run(main())
