"""
Date-Range Filtering

Narrows a record set to the records created inside an inclusive time range.
The record date is read from ``created_at`` when present, otherwise from
``date``. Records whose date is missing or cannot be parsed are dropped.
"""

import logging
import math
from typing import List, Optional, Any, Mapping, Sequence
from datetime import datetime, date

import pandas as pd

from .export_config import DateRange

logger = logging.getLogger(__name__)

PRIMARY_DATE_FIELD = 'created_at'
FALLBACK_DATE_FIELD = 'date'


def to_timestamp(value: Any) -> Optional[pd.Timestamp]:
    """
    Convert a record or range value to a UTC timestamp.

    Accepts datetimes, dates (midnight), ISO-8601 strings and epoch
    milliseconds. Naive values are taken as UTC.

    Returns:
        UTC timestamp, or None when the value is missing or unparsable
    """
    if value is None or isinstance(value, bool):
        return None

    try:
        if isinstance(value, (pd.Timestamp, datetime, date)):
            ts = pd.Timestamp(value)
        elif isinstance(value, (int, float)):
            if isinstance(value, float) and math.isnan(value):
                return None
            ts = pd.Timestamp(value, unit='ms')
        elif isinstance(value, str):
            if not value.strip():
                return None
            ts = pd.to_datetime(value.strip(), errors='coerce')
        else:
            return None
    except (ValueError, TypeError, OverflowError):
        return None

    if ts is None or pd.isna(ts):
        return None

    if ts.tzinfo is None:
        return ts.tz_localize('UTC')
    return ts.tz_convert('UTC')


def get_record_date(record: Mapping[str, Any]) -> Optional[pd.Timestamp]:
    """Read the timestamp a record is filtered on."""
    value = record.get(PRIMARY_DATE_FIELD)
    if value is None or value == "":
        value = record.get(FALLBACK_DATE_FIELD)
    return to_timestamp(value)


def _resolve_bounds(date_range: DateRange):
    start = to_timestamp(date_range.start)
    end = to_timestamp(date_range.end)
    if start is None or end is None:
        raise ValueError(f"Invalid date range: {date_range.start!r} - {date_range.end!r}")
    return start, end


def filter_by_date_range(records: Sequence[Mapping[str, Any]],
                         date_range: Optional[DateRange]) -> List[Mapping[str, Any]]:
    """
    Keep records whose date falls within [start, end].

    Args:
        records: Records to filter (not modified)
        date_range: Inclusive range; None keeps every record

    Returns:
        Records inside the range, in their original order

    Raises:
        ValueError: If a range bound cannot be parsed
    """
    if date_range is None:
        return list(records)

    start, end = _resolve_bounds(date_range)

    kept = []
    for record in records:
        record_date = get_record_date(record)
        if record_date is not None and start <= record_date <= end:
            kept.append(record)

    logger.debug(f"Date filter kept {len(kept)} of {len(records)} records")
    return kept


def count_in_range(records: Sequence[Mapping[str, Any]], date_range: Optional[DateRange]) -> int:
    """Number of records an export with this range would contain."""
    return len(filter_by_date_range(records, date_range))
