import asyncio
import logging
import os
import random
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx
from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel

from vendor_relay.config import settings
from vendor_relay.mock_vendors.immediate_vendor import build_vendor_response
from vendor_relay.rate_limiter import InMemoryRateLimiter

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Mock Delayed-Reply Vendor")

rate_limiter = InMemoryRateLimiter(int(os.getenv("RATE_LIMIT_PER_MINUTE", "20")), 60)

# Store pending requests
pending_requests: Dict[str, dict] = {}


class SubmitRequest(BaseModel):
    request_id: Optional[str] = None
    data: Any = None


async def deliver_result(job_id: str, data: Any):
    """Simulate processing, then call the relay's webhook with the result"""
    try:
        # Simulate processing time (3-7 seconds)
        await asyncio.sleep(random.uniform(3, 7))

        response_data = build_vendor_response(data, source="delayed-reply", response_id=job_id, extended=True)

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                webhook_response = await client.post(settings.WEBHOOK_URL, json=response_data)
                webhook_response.raise_for_status()
                logger.info(f"Webhook sent successfully for job_id: {job_id}")
        except httpx.HTTPError as e:
            logger.error(f"Failed to send webhook for job_id {job_id}: {e}")
    finally:
        pending_requests.pop(job_id, None)


@app.get("/")
async def root():
    return {"message": "Mock Delayed-Reply Vendor", "status": "running"}


@app.post("/delayed-reply")
async def submit_request(request: SubmitRequest, background_tasks: BackgroundTasks):
    """Acknowledge a request now and deliver the result later"""
    if not await rate_limiter.try_acquire("delayed-reply"):
        logger.warning("Rate limit exceeded")
        raise HTTPException(status_code=429, detail="Rate limit exceeded")

    job_id = uuid.uuid4().hex[:9]
    pending_requests[job_id] = {"request_id": request.request_id, "submitted_at": time.time()}

    # Start background processing
    background_tasks.add_task(deliver_result, job_id, request.data)

    logger.info(f"Request submitted for delayed processing, job_id: {job_id}")

    return {
        "job_id": job_id,
        "status": "accepted",
        "estimated_completion": (datetime.now(timezone.utc) + timedelta(seconds=5)).isoformat(),
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "vendor_type": "delayed-reply", "pending_requests": len(pending_requests)}


@app.get("/pending")
async def get_pending_requests():
    """Get list of pending requests (for debugging)"""
    return {"pending_count": len(pending_requests), "pending_requests": list(pending_requests.keys())}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8002)
