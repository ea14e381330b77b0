import logging
from typing import Any, Dict, Optional

import httpx

from vendor_relay.errors import VendorError
from vendor_relay.models import VendorOutcome, VendorType

logger = logging.getLogger(__name__)


class VendorAdapter:
    """Outbound call to one vendor variant"""

    vendor: VendorType
    path: str

    def __init__(self, base_url: str, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        # Bounds every call so a stuck vendor cannot stall the dispatcher
        self.timeout = httpx.Timeout(timeout)
        self.transport = transport

    async def _post(self, request_id: str, payload: Any) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}{self.path}", json={"request_id": request_id, "data": payload}
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Error calling {self.vendor.value} vendor: {e}")
            raise VendorError(f"{self.vendor.value} vendor call failed: {e}") from e
        except ValueError as e:
            logger.error(f"Invalid JSON from {self.vendor.value} vendor: {e}")
            raise VendorError(f"{self.vendor.value} vendor returned invalid JSON") from e

        if not isinstance(body, dict):
            raise VendorError(f"{self.vendor.value} vendor returned an unexpected response")
        return body

    async def call(self, request_id: str, payload: Any) -> VendorOutcome:
        raise NotImplementedError


class ImmediateReplyAdapter(VendorAdapter):
    """Vendor that answers inline with the final result"""

    vendor = VendorType.IMMEDIATE
    path = "/immediate-reply"

    async def call(self, request_id: str, payload: Any) -> VendorOutcome:
        logger.info(f"Calling immediate-reply vendor for job {request_id}")
        body = await self._post(request_id, payload)
        return VendorOutcome(final=True, body=body)


class DelayedReplyAdapter(VendorAdapter):
    """Vendor that acknowledges now and delivers the result later via webhook"""

    vendor = VendorType.DELAYED
    path = "/delayed-reply"

    async def call(self, request_id: str, payload: Any) -> VendorOutcome:
        logger.info(f"Calling delayed-reply vendor for job {request_id}")
        ack = await self._post(request_id, payload)
        reference = ack.get("job_id")
        return VendorOutcome(final=False, body=ack, reference=str(reference) if reference else None)


def build_adapters(
    immediate_url: str,
    delayed_url: str,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, VendorAdapter]:
    return {
        VendorType.IMMEDIATE.value: ImmediateReplyAdapter(immediate_url, timeout, transport),
        VendorType.DELAYED.value: DelayedReplyAdapter(delayed_url, timeout, transport),
    }
