"""Deterministic per-day payload encoding for collectors.

The upload watermark compares content digests, so the same samples must
always encode to the same bytes: keys are sorted, samples are sorted by
(start, end, source) and nothing volatile (sync time, device) is included.
"""

from __future__ import annotations

import json
from datetime import UTC, date, datetime, tzinfo
from typing import Any, NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class DayKey(NamedTuple):
    """Calendar day of a sample and the timezone used to compute it."""

    date: str  # "YYYY-MM-DD"
    timezone: str


def _local_zone() -> tzinfo:
    return datetime.now().astimezone().tzinfo or UTC


def day_key(start: datetime, tz_name: str | None, default_tz: tzinfo | None = None) -> DayKey:
    """Bucket a sample into the calendar day of its own timezone.

    Args:
        start: Sample start time (timezone-aware).
        tz_name: IANA zone recorded with the sample, if any.
        default_tz: Zone used when tz_name is missing or unknown
            (defaults to the local zone).

    Returns:
        The day and the name of the zone that was used.
    """
    zone: tzinfo | None = None
    if tz_name:
        try:
            zone = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            zone = None
    if zone is None:
        zone = default_tz or _local_zone()

    local = start.astimezone(zone)
    name = getattr(zone, "key", None) or local.tzname() or "UTC"
    return DayKey(local.strftime("%Y-%m-%d"), name)


def _sample_sort_key(sample: dict[str, Any]) -> tuple[str, str, str]:
    return (str(sample.get("start", "")), str(sample.get("end", "")), str(sample.get("source", "")))


def encode_day_payload(
    type_name: str,
    day: str,
    timezone: str,
    samples: list[dict[str, Any]],
    unit: str | None = None,
) -> bytes:
    """Encode one (type, day) payload deterministically.

    Args:
        type_name: Data type (e.g., "steps").
        day: Day as "YYYY-MM-DD".
        timezone: Zone the day was computed in.
        samples: Sample dicts with at least "start", "end" and "source".
        unit: Measurement unit, omitted when None.

    Returns:
        UTF-8 JSON with sorted keys.
    """
    payload: dict[str, Any] = {
        "type": type_name,
        "date": day,
        "timezone": timezone,
        "samples": sorted(samples, key=_sample_sort_key),
    }
    if unit is not None:
        payload["unit"] = unit
    return json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False).encode("utf-8")


def day_upload_path(root: str, day: date, name: str) -> str:
    """Build the upload path ``root/YYYY/MM/DD/name.json``."""
    return f"{root.rstrip('/')}/{day:%Y/%m/%d}/{name}.json"
