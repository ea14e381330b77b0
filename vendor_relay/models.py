import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETE, JobStatus.FAILED)


class VendorType(str, Enum):
    IMMEDIATE = "immediate-reply"
    DELAYED = "delayed-reply"


class JobRequest(BaseModel):
    # Optional here so a missing payload reaches the service and gets the 400 contract
    payload: Optional[Any] = Field(None, description="Any JSON payload for the job")


class JobResponse(BaseModel):
    request_id: str = Field(..., description="Unique identifier for the job")


class JobStatusResponse(BaseModel):
    status: JobStatus
    request_id: str
    vendor: VendorType
    created_at: datetime
    updated_at: datetime
    result: Optional[Any] = None
    error: Optional[str] = None
    completed_at: Optional[datetime] = None


class JobDocument(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    payload: Any
    vendor: VendorType
    status: JobStatus = JobStatus.PENDING
    result: Optional[Any] = None
    error: Optional[str] = None
    vendor_reference: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class QueueEntry(BaseModel):
    """Transient dispatch reference for a pending job"""

    model_config = ConfigDict(use_enum_values=True)

    request_id: str
    payload: Any
    vendor: VendorType


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class JobListResponse(BaseModel):
    jobs: List[JobDocument]
    pagination: Pagination


class WebhookResponse(BaseModel):
    status: str
    message: str
    request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str


class VendorOutcome(BaseModel):
    """What a vendor adapter hands back to the dispatcher.

    ``final`` is True when ``body`` is the vendor's result, False when it is an
    acknowledgment and the result will arrive later via webhook.
    """

    final: bool
    body: Optional[Dict[str, Any]] = None
    reference: Optional[str] = None
