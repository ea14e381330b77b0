import asyncio
import logging
import os
import random
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from vendor_relay.rate_limiter import InMemoryRateLimiter

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Mock Immediate-Reply Vendor")

rate_limiter = InMemoryRateLimiter(int(os.getenv("RATE_LIMIT_PER_MINUTE", "30")), 60)


class ProcessRequest(BaseModel):
    request_id: Optional[str] = None
    data: Any = None


def build_vendor_response(data: Any, source: str, response_id: Optional[str] = None, extended: bool = False) -> dict:
    """Raw vendor payload, PII included"""
    raw_data = {
        "user_email": "user@example.com",
        "phone_number": "+1234567890",
        "address": "  123 Main St, City, State 12345  ",
        "preferences": ["pref1", "pref2", "pref3"],
    }
    if extended:
        raw_data["additional_data"] = {
            "credit_score": random.randint(550, 850),
            "last_purchase": "2023-12-01",
            "card_number": "4111111111111111",
        }
    return {
        "id": response_id or uuid.uuid4().hex[:9],
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": source,
        "raw_data": raw_data,
    }


@app.get("/")
async def root():
    return {"message": "Mock Immediate-Reply Vendor", "status": "running"}


@app.post("/immediate-reply")
async def process_request(request: ProcessRequest):
    """Process a request and answer inline"""
    if not await rate_limiter.try_acquire("immediate-reply"):
        logger.warning("Rate limit exceeded")
        raise HTTPException(status_code=429, detail="Rate limit exceeded")

    # Simulate processing time
    await asyncio.sleep(random.uniform(0.1, 0.5))

    logger.info(f"Processed request {request.request_id} successfully")
    return build_vendor_response(request.data, source="immediate-reply")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "vendor_type": "immediate-reply"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
