import logging
import math
import re
import uuid
from typing import Any, List, Optional, Tuple

from vendor_relay.database import JobStore
from vendor_relay.errors import NotFoundError, QueueError, ValidationError
from vendor_relay.job_queue import JobQueue
from vendor_relay.metrics import JOBS_SUBMITTED
from vendor_relay.models import JobDocument, JobStatus, Pagination, QueueEntry, VendorType
from vendor_relay.selection import VendorSelector, random_selector

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)

ENQUEUE_FAILED_ERROR = "failed to enqueue job"


class JobService:
    """Submission gateway and read side for jobs"""

    def __init__(self, store: JobStore, queue: JobQueue, selector: Optional[VendorSelector] = None):
        self.store = store
        self.queue = queue
        self.selector = selector or random_selector()

    async def submit(self, payload: Any) -> str:
        """Record a new job and queue it for dispatch.

        The job is persisted before it is enqueued. If the enqueue fails the
        job is marked failed straight away and QueueError is raised, so no
        job is left pending without a queue entry behind it.
        """
        if payload is None:
            raise ValidationError("Payload is required")

        request_id = str(uuid.uuid4())
        vendor = VendorType(self.selector())

        job = JobDocument(request_id=request_id, payload=payload, vendor=vendor)
        await self.store.create_job(job)

        try:
            await self.queue.enqueue(QueueEntry(request_id=request_id, payload=payload, vendor=vendor))
        except QueueError:
            logger.error(f"Enqueue failed for job {request_id}, marking it failed")
            await self.store.mark_failed(request_id, ENQUEUE_FAILED_ERROR)
            raise

        JOBS_SUBMITTED.labels(vendor=vendor.value).inc()
        logger.info(f"Job created: {request_id} for vendor: {vendor.value}")
        return request_id

    async def get_job(self, request_id: str) -> JobDocument:
        if not UUID_PATTERN.match(request_id or ""):
            raise ValidationError("Invalid request ID format")

        job = await self.store.get_job(request_id)
        if job is None:
            raise NotFoundError("Job not found")
        return job

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        vendor: Optional[VendorType] = None,
        limit: int = 10,
        page: int = 1,
    ) -> Tuple[List[JobDocument], Pagination]:
        if limit < 1 or page < 1:
            raise ValidationError("limit and page must be positive")

        filters = {}
        if status:
            filters["status"] = JobStatus(status).value
        if vendor:
            filters["vendor"] = VendorType(vendor).value

        jobs = await self.store.list_jobs(filters, limit=limit, skip=(page - 1) * limit)
        total = await self.store.count_jobs(filters)
        pagination = Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
        return jobs, pagination
