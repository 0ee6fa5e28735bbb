"""
Conversions between domain values and their stored text form.

Timestamps are stored as ISO-8601 UTC strings with microseconds. Metrics
are stored with their goal as a JSON array using camelCase keys, which
keeps rows written by earlier versions of the app readable.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from sage.core.coaching.models import Metric

from .errors import DecodingFailed, EncodingFailed


logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_STRICT_PARSE_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"


class TimestampParseError(ValueError):
    """Stored text that is not a timestamp in any format we accept."""
    pass


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def format_timestamp(value: datetime) -> str:
    """Render a datetime for storage. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """
    Read a stored timestamp back as an aware UTC datetime.

    Tries the exact storage format first, then any ISO-8601 form
    (second precision, explicit offsets, SQLite's CURRENT_TIMESTAMP).
    """
    try:
        return datetime.strptime(text, _STRICT_PARSE_FORMAT).astimezone(timezone.utc)
    except ValueError:
        pass

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise TimestampParseError(f"Unrecognised timestamp: {text!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def encode_metrics(metrics: list[Metric]) -> str:
    """Serialize a goal's metrics. An empty list encodes as "[]"."""
    try:
        return json.dumps([
            {
                "id": metric.id,
                "name": metric.name,
                "unit": metric.unit,
                "targetValue": metric.target_value,
                "currentValue": metric.current_value,
                "isHigherBetter": metric.higher_is_better,
            }
            for metric in metrics
        ])
    except (TypeError, ValueError) as e:
        logger.error("Failed to encode metrics", extra={"error": str(e)})
        raise EncodingFailed("custom_metrics") from e


def decode_metrics(text: Optional[str]) -> list[Metric]:
    """Parse stored metrics. Missing or blank text means no metrics."""
    if text is None or not text.strip():
        return []

    try:
        items = json.loads(text)
        if not isinstance(items, list):
            raise ValueError("expected a JSON array")
        return [
            Metric(
                id=str(item["id"]),
                name=item["name"],
                unit=item["unit"],
                target_value=item.get("targetValue"),
                current_value=item.get("currentValue"),
                higher_is_better=bool(item.get("isHigherBetter", True)),
            )
            for item in items
        ]
    except (TypeError, ValueError, KeyError, AttributeError) as e:
        logger.error("Failed to decode metrics", extra={"error": str(e)})
        raise DecodingFailed("custom_metrics") from e
