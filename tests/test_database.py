from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from pymongo.errors import PyMongoError

from vendor_relay.database import InMemoryJobStore, MongoJobStore
from vendor_relay.errors import PersistenceError
from vendor_relay.models import JobDocument, JobStatus, VendorType, utcnow


def _job(vendor=VendorType.DELAYED, **kwargs) -> JobDocument:
    return JobDocument(payload={"userId": 1}, vendor=vendor, **kwargs)


class TestInMemoryJobStore:
    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        job = await store.create_job(_job())

        fetched = await store.get_job(job.request_id)

        assert fetched.request_id == job.request_id
        assert fetched.status == JobStatus.PENDING
        assert fetched.result is None and fetched.error is None and fetched.completed_at is None

    @pytest.mark.asyncio
    async def test_duplicate_request_id_is_rejected(self, store):
        job = await store.create_job(_job())

        with pytest.raises(PersistenceError):
            await store.create_job(_job(request_id=job.request_id))

    @pytest.mark.asyncio
    async def test_forward_transitions(self, store):
        job = await store.create_job(_job())

        assert await store.mark_processing(job.request_id) is True
        assert await store.mark_complete(job.request_id, {"ok": True}) is True

        done = await store.get_job(job.request_id)
        assert done.status == JobStatus.COMPLETE
        assert done.result == {"ok": True}
        assert done.error is None
        assert done.completed_at is not None
        assert done.updated_at >= done.created_at

    @pytest.mark.asyncio
    async def test_cannot_complete_without_processing(self, store):
        job = await store.create_job(_job())

        assert await store.mark_complete(job.request_id, {"ok": True}) is False
        assert (await store.get_job(job.request_id)).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_terminal_states_are_final(self, store):
        job = await store.create_job(_job())
        await store.mark_processing(job.request_id)
        await store.mark_failed(job.request_id, "boom")

        assert await store.mark_processing(job.request_id) is False
        assert await store.mark_complete(job.request_id, {"late": True}) is False
        assert await store.mark_failed(job.request_id, "again") is False

        failed = await store.get_job(job.request_id)
        assert failed.status == JobStatus.FAILED
        assert failed.error == "boom"
        assert failed.result is None

    @pytest.mark.asyncio
    async def test_unknown_job_update_returns_false(self, store):
        assert await store.mark_processing("missing") is False

    @pytest.mark.asyncio
    async def test_list_and_count_with_filters(self, store):
        for n in range(3):
            await store.create_job(_job(vendor=VendorType.IMMEDIATE, created_at=utcnow() + timedelta(seconds=n)))
        await store.create_job(_job(vendor=VendorType.DELAYED))

        jobs = await store.list_jobs({"vendor": "immediate-reply"}, limit=2, skip=0)

        assert len(jobs) == 2
        assert jobs[0].created_at > jobs[1].created_at
        assert await store.count_jobs({"vendor": "immediate-reply"}) == 3
        assert await store.count_jobs({}) == 4

    @pytest.mark.asyncio
    async def test_complete_processing_job_prefers_reference(self, store):
        older = await store.create_job(_job(created_at=utcnow() - timedelta(seconds=10)))
        newer = await store.create_job(_job())
        for job in (older, newer):
            await store.mark_processing(job.request_id)
        await store.set_vendor_reference(newer.request_id, "ref-2")

        completed = await store.complete_processing_job("delayed-reply", {"r": 1}, vendor_reference="ref-2")

        assert completed.request_id == newer.request_id
        assert (await store.get_job(older.request_id)).status == JobStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_complete_processing_job_falls_back_to_oldest(self, store):
        older = await store.create_job(_job(created_at=utcnow() - timedelta(seconds=10)))
        newer = await store.create_job(_job())
        for job in (older, newer):
            await store.mark_processing(job.request_id)

        completed = await store.complete_processing_job("delayed-reply", {"r": 1}, vendor_reference="unknown")

        assert completed.request_id == older.request_id
        assert completed.status == JobStatus.COMPLETE
        assert completed.completed_at is not None

    @pytest.mark.asyncio
    async def test_complete_processing_job_ignores_other_vendors_and_statuses(self, store):
        await store.create_job(_job())  # pending
        other = await store.create_job(_job(vendor=VendorType.IMMEDIATE))
        await store.mark_processing(other.request_id)

        assert await store.complete_processing_job("delayed-reply", {"r": 1}) is None


    @pytest.mark.asyncio
    async def test_reference_of_finished_job_does_not_complete_another(self, store):
        finished = await store.create_job(_job(created_at=utcnow() - timedelta(seconds=10)))
        waiting = await store.create_job(_job())
        for job in (finished, waiting):
            await store.mark_processing(job.request_id)
        await store.set_vendor_reference(finished.request_id, "ref-1")
        await store.set_vendor_reference(waiting.request_id, "ref-2")
        await store.complete_processing_job("delayed-reply", {"r": 1}, vendor_reference="ref-1")

        assert await store.complete_processing_job("delayed-reply", {"r": 2}, vendor_reference="ref-1") is None
        assert (await store.get_job(waiting.request_id)).status == JobStatus.PROCESSING
        assert (await store.get_job(finished.request_id)).result == {"r": 1}

    @pytest.mark.asyncio
    async def test_stored_state_is_isolated_from_callers(self, store):
        job = JobDocument(payload={"user": {"id": 1}}, vendor=VendorType.DELAYED)
        await store.create_job(job)
        job.payload["user"]["id"] = 2

        fetched = await store.get_job(job.request_id)
        fetched.payload["user"]["id"] = 3
        assert (await store.get_job(job.request_id)).payload == {"user": {"id": 1}}

        result = {"cleaned_data": {"address": "A"}}
        await store.mark_processing(job.request_id)
        await store.mark_complete(job.request_id, result)
        result["cleaned_data"]["address"] = "B"
        listed = await store.list_jobs({}, limit=10, skip=0)
        listed[0].result["cleaned_data"]["address"] = "C"

        assert (await store.get_job(job.request_id)).result == {"cleaned_data": {"address": "A"}}


class TestMongoJobStore:
    def _store(self) -> MongoJobStore:
        store = MongoJobStore("mongodb://test", "vendor_relay")
        store.jobs_collection = MagicMock()
        return store

    @pytest.mark.asyncio
    async def test_update_is_conditional_on_current_status(self):
        store = self._store()
        store.jobs_collection.update_one.return_value.matched_count = 1

        assert await store.mark_processing("job-1") is True

        query, update = store.jobs_collection.update_one.call_args.args
        assert query == {"request_id": "job-1", "status": {"$in": ["pending"]}}
        assert update["$set"]["status"] == "processing"
        assert "updated_at" in update["$set"]

    @pytest.mark.asyncio
    async def test_update_without_match_returns_false(self):
        store = self._store()
        store.jobs_collection.update_one.return_value.matched_count = 0

        assert await store.mark_complete("job-1", {"ok": True}) is False

    @pytest.mark.asyncio
    async def test_get_job_maps_document(self):
        store = self._store()
        job = _job()
        store.jobs_collection.find_one.return_value = dict(job.model_dump(), _id="object-id")

        fetched = await store.get_job(job.request_id)

        assert fetched.request_id == job.request_id
        store.jobs_collection.find_one.assert_called_once_with({"request_id": job.request_id})

    @pytest.mark.asyncio
    async def test_correlation_tries_reference_then_oldest(self):
        store = self._store()
        fallback = _job(status=JobStatus.COMPLETE, result={"r": 1}, completed_at=utcnow())
        store.jobs_collection.find_one.return_value = None
        store.jobs_collection.find_one_and_update.side_effect = [None, fallback.model_dump()]

        completed = await store.complete_processing_job("delayed-reply", {"r": 1}, vendor_reference="ref-9")

        assert completed.request_id == fallback.request_id
        first, second = store.jobs_collection.find_one_and_update.call_args_list
        assert first.args[0] == {"vendor": "delayed-reply", "status": "processing", "vendor_reference": "ref-9"}
        assert second.args[0] == {"vendor": "delayed-reply", "status": "processing"}
        assert second.kwargs["sort"] == [("created_at", 1)]

    @pytest.mark.asyncio
    async def test_driver_errors_become_persistence_errors(self):
        store = self._store()
        store.jobs_collection.insert_one.side_effect = PyMongoError("down")

        with pytest.raises(PersistenceError):
            await store.create_job(_job())

    @pytest.mark.asyncio
    async def test_replayed_reference_does_not_fall_back(self):
        store = self._store()
        store.jobs_collection.find_one_and_update.return_value = None
        store.jobs_collection.find_one.return_value = _job(status=JobStatus.COMPLETE).model_dump()

        assert await store.complete_processing_job("delayed-reply", {"r": 1}, vendor_reference="ref-9") is None
        store.jobs_collection.find_one_and_update.assert_called_once()
        store.jobs_collection.find_one.assert_called_once_with({"vendor": "delayed-reply", "vendor_reference": "ref-9"})
