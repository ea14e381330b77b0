import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional, Sequence

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from vendor_relay.errors import PersistenceError
from vendor_relay.models import JobDocument, JobStatus, utcnow

logger = logging.getLogger(__name__)


class JobStore:
    """Keyed persistence for jobs.

    Subclasses provide the storage primitives; the lifecycle transitions live
    here so every backend enforces the same forward-only status machine. A
    transition is a conditional update that only matches when the job's
    current status is one of its allowed predecessors, so a terminal job is
    never touched again.
    """

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    async def ping(self) -> bool:
        return True

    async def create_job(self, job: JobDocument) -> JobDocument:
        raise NotImplementedError

    async def get_job(self, request_id: str) -> Optional[JobDocument]:
        raise NotImplementedError

    async def list_jobs(self, filters: Dict[str, Any], limit: int, skip: int) -> List[JobDocument]:
        raise NotImplementedError

    async def count_jobs(self, filters: Dict[str, Any]) -> int:
        raise NotImplementedError

    async def update_job(self, request_id: str, update_data: dict, allowed_from: Sequence[JobStatus]) -> bool:
        raise NotImplementedError

    async def find_and_update_processing(
        self, vendor: str, update_data: dict, vendor_reference: Optional[str] = None
    ) -> Optional[JobDocument]:
        raise NotImplementedError

    async def mark_processing(self, request_id: str) -> bool:
        return await self.update_job(request_id, {"status": JobStatus.PROCESSING.value}, [JobStatus.PENDING])

    async def mark_complete(self, request_id: str, result: Any) -> bool:
        update = {"status": JobStatus.COMPLETE.value, "result": result, "error": None, "completed_at": utcnow()}
        return await self.update_job(request_id, update, [JobStatus.PROCESSING])

    async def mark_failed(self, request_id: str, error: str) -> bool:
        update = {"status": JobStatus.FAILED.value, "error": error, "result": None, "completed_at": utcnow()}
        return await self.update_job(request_id, update, [JobStatus.PENDING, JobStatus.PROCESSING])

    async def set_vendor_reference(self, request_id: str, vendor_reference: str) -> bool:
        return await self.update_job(request_id, {"vendor_reference": vendor_reference}, [JobStatus.PROCESSING])

    async def complete_processing_job(
        self, vendor: str, result: Any, vendor_reference: Optional[str] = None
    ) -> Optional[JobDocument]:
        """Complete one in-flight job of ``vendor``.

        A job whose stored vendor reference equals ``vendor_reference`` wins;
        otherwise the oldest processing job of that vendor is taken.
        """
        update = {"status": JobStatus.COMPLETE.value, "result": result, "error": None, "completed_at": utcnow()}
        return await self.find_and_update_processing(vendor, update, vendor_reference)


class MongoJobStore(JobStore):
    def __init__(self, url: str, db_name: str):
        self.url = url
        self.db_name = db_name
        self.client: Optional[MongoClient] = None
        self.db: Optional[Database] = None
        self.jobs_collection: Optional[Collection] = None

    async def connect(self):
        """Connect to MongoDB"""
        try:
            self.client = MongoClient(self.url, tz_aware=True)
            self.db = self.client[self.db_name]
            self.jobs_collection = self.db.jobs

            # Create indexes
            self.jobs_collection.create_index("request_id", unique=True)
            self.jobs_collection.create_index([("vendor", ASCENDING), ("status", ASCENDING)])
            self.jobs_collection.create_index("created_at")

            logger.info("Connected to MongoDB")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise PersistenceError("Job store unavailable") from e

    async def disconnect(self):
        """Disconnect from MongoDB"""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.error(f"MongoDB ping failed: {e}")
            return False

    async def create_job(self, job: JobDocument) -> JobDocument:
        """Create a new job in the database"""
        try:
            self.jobs_collection.insert_one(job.model_dump())
            return job
        except PyMongoError as e:
            logger.error(f"Failed to create job: {e}")
            raise PersistenceError("Failed to create job") from e

    async def get_job(self, request_id: str) -> Optional[JobDocument]:
        """Get a job by request_id"""
        try:
            job_dict = self.jobs_collection.find_one({"request_id": request_id})
            if job_dict:
                return JobDocument(**job_dict)
            return None
        except PyMongoError as e:
            logger.error(f"Failed to get job {request_id}: {e}")
            raise PersistenceError("Failed to get job") from e

    async def list_jobs(self, filters: Dict[str, Any], limit: int, skip: int) -> List[JobDocument]:
        try:
            cursor = self.jobs_collection.find(filters).sort("created_at", DESCENDING).skip(skip).limit(limit)
            return [JobDocument(**job_dict) for job_dict in cursor]
        except PyMongoError as e:
            logger.error(f"Failed to list jobs: {e}")
            raise PersistenceError("Failed to list jobs") from e

    async def count_jobs(self, filters: Dict[str, Any]) -> int:
        try:
            return self.jobs_collection.count_documents(filters)
        except PyMongoError as e:
            logger.error(f"Failed to count jobs: {e}")
            raise PersistenceError("Failed to count jobs") from e

    async def update_job(self, request_id: str, update_data: dict, allowed_from: Sequence[JobStatus]) -> bool:
        """Update a job only if its current status is in ``allowed_from``"""
        try:
            update_data = dict(update_data, updated_at=utcnow())
            query = {"request_id": request_id, "status": {"$in": [JobStatus(s).value for s in allowed_from]}}
            result = self.jobs_collection.update_one(query, {"$set": update_data})
            return result.matched_count > 0
        except PyMongoError as e:
            logger.error(f"Failed to update job {request_id}: {e}")
            raise PersistenceError("Failed to update job") from e

    async def find_and_update_processing(
        self, vendor: str, update_data: dict, vendor_reference: Optional[str] = None
    ) -> Optional[JobDocument]:
        update_data = dict(update_data, updated_at=utcnow())
        query = {"vendor": vendor, "status": JobStatus.PROCESSING.value}
        try:
            job_dict = None
            if vendor_reference:
                job_dict = self.jobs_collection.find_one_and_update(
                    dict(query, vendor_reference=vendor_reference),
                    {"$set": update_data},
                    return_document=ReturnDocument.AFTER,
                )
                if job_dict is None and self.jobs_collection.find_one(
                    {"vendor": vendor, "vendor_reference": vendor_reference}
                ):
                    # Replayed callback for a job that already left processing
                    logger.info(f"Reference {vendor_reference} belongs to a job that is no longer processing")
                    return None
            if job_dict is None:
                job_dict = self.jobs_collection.find_one_and_update(
                    query,
                    {"$set": update_data},
                    sort=[("created_at", ASCENDING)],
                    return_document=ReturnDocument.AFTER,
                )
            return JobDocument(**job_dict) if job_dict else None
        except PyMongoError as e:
            logger.error(f"Failed to complete processing job for vendor {vendor}: {e}")
            raise PersistenceError("Failed to update job") from e


class InMemoryJobStore(JobStore):
    """Process-local job store for development and tests"""

    def __init__(self):
        self._jobs: Dict[str, dict] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _matches(job_dict: dict, filters: Dict[str, Any]) -> bool:
        return all(job_dict.get(key) == value for key, value in filters.items())

    async def create_job(self, job: JobDocument) -> JobDocument:
        async with self._lock:
            if job.request_id in self._jobs:
                raise PersistenceError(f"Duplicate request_id {job.request_id}")
            self._jobs[job.request_id] = copy.deepcopy(job.model_dump())
        return job.model_copy(deep=True)

    async def get_job(self, request_id: str) -> Optional[JobDocument]:
        job_dict = self._jobs.get(request_id)
        return JobDocument(**copy.deepcopy(job_dict)) if job_dict else None

    async def list_jobs(self, filters: Dict[str, Any], limit: int, skip: int) -> List[JobDocument]:
        matching = [j for j in self._jobs.values() if self._matches(j, filters)]
        matching.sort(key=lambda j: j["created_at"], reverse=True)
        return [JobDocument(**copy.deepcopy(j)) for j in matching[skip : skip + limit]]

    async def count_jobs(self, filters: Dict[str, Any]) -> int:
        return sum(1 for j in self._jobs.values() if self._matches(j, filters))

    async def update_job(self, request_id: str, update_data: dict, allowed_from: Sequence[JobStatus]) -> bool:
        allowed = {JobStatus(s).value for s in allowed_from}
        async with self._lock:
            job_dict = self._jobs.get(request_id)
            if job_dict is None or job_dict["status"] not in allowed:
                return False
            job_dict.update(copy.deepcopy(update_data), updated_at=utcnow())
            return True

    async def find_and_update_processing(
        self, vendor: str, update_data: dict, vendor_reference: Optional[str] = None
    ) -> Optional[JobDocument]:
        async with self._lock:
            candidates = sorted(
                (j for j in self._jobs.values() if j["vendor"] == vendor and j["status"] == JobStatus.PROCESSING.value),
                key=lambda j: j["created_at"],
            )
            if not candidates:
                return None
            chosen = candidates[0]
            if vendor_reference:
                matched = next((j for j in candidates if j.get("vendor_reference") == vendor_reference), None)
                if matched is None and any(
                    j["vendor"] == vendor and j.get("vendor_reference") == vendor_reference for j in self._jobs.values()
                ):
                    return None
                chosen = matched or chosen
            chosen.update(copy.deepcopy(update_data), updated_at=utcnow())
            return JobDocument(**copy.deepcopy(chosen))
