import logging
from typing import Any, Optional

from vendor_relay.database import JobStore
from vendor_relay.errors import ValidationError
from vendor_relay.metrics import WEBHOOKS_RECEIVED
from vendor_relay.models import JobDocument, VendorType
from vendor_relay.normalizer import clean_vendor_response

logger = logging.getLogger(__name__)


class WebhookCorrelator:
    """Completes an in-flight job from a vendor callback.

    The callback's ``id`` is matched against the reference the vendor handed
    back when the job was dispatched. Callbacks without a usable reference
    complete the oldest processing job of that vendor, which is ambiguous when
    several jobs of the same vendor are in flight.
    """

    def __init__(self, store: JobStore):
        self.store = store

    async def handle(self, vendor: str, payload: Any) -> Optional[JobDocument]:
        """Returns the completed job, or None when no processing job matched"""
        try:
            vendor = VendorType(vendor).value
        except ValueError:
            raise ValidationError("Invalid vendor") from None

        if payload is None:
            raise ValidationError("Webhook payload is required")

        logger.info(f"Processing webhook for vendor: {vendor}")
        cleaned_response = clean_vendor_response(payload)

        reference = payload.get("id") if isinstance(payload, dict) else None
        job = await self.store.complete_processing_job(
            vendor, cleaned_response, vendor_reference=str(reference) if reference else None
        )

        if job is None:
            WEBHOOKS_RECEIVED.labels(vendor=vendor, outcome="unmatched").inc()
            logger.warning(f"No processing job found for vendor: {vendor}")
            return None

        WEBHOOKS_RECEIVED.labels(vendor=vendor, outcome="completed").inc()
        logger.info(f"Webhook processed successfully for job: {job.request_id}")
        return job
