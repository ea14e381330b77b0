import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Only these fields of raw_data.additional_data survive cleaning
ADDITIONAL_DATA_FIELDS = ("credit_score", "last_purchase")


def clean_vendor_response(response: Optional[dict]) -> Any:
    """Clean a raw vendor response and drop PII.

    Keeps the envelope fields (id, data, timestamp, source) and rebuilds
    ``cleaned_data`` from ``raw_data``: a trimmed address, the preferences
    list, and the allow-listed part of ``additional_data``. Everything else
    in ``raw_data`` (email, phone, ...) is dropped.

    Cleaning an already cleaned response yields an empty ``cleaned_data``,
    since the cleaned form carries no ``raw_data``. An empty object still gets
    the envelope; None is returned as-is, and so is any input that cannot be
    cleaned.
    """
    if response is None:
        return response

    try:
        cleaned = {
            "id": response.get("id"),
            "data": response.get("data"),
            "timestamp": response.get("timestamp"),
            "source": response.get("source"),
            "cleaned_data": {},
        }

        raw_data = response.get("raw_data")
        if raw_data is not None:
            address = raw_data.get("address")
            cleaned_data = {
                "address": address.strip() if address else None,
                "preferences": raw_data.get("preferences") or [],
            }
            additional_data = raw_data.get("additional_data")
            if additional_data is not None:
                cleaned_data["additional_data"] = {field: additional_data.get(field) for field in ADDITIONAL_DATA_FIELDS}
            cleaned["cleaned_data"] = cleaned_data

        return cleaned
    except (AttributeError, TypeError) as e:
        logger.error(f"Error cleaning vendor response: {e}")
        return response
