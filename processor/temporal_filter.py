"""Filter admitting only events dated today or later."""
import logging
from datetime import date, datetime
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from processor.models import EventRecord

logger = logging.getLogger(__name__)


def event_day(record: EventRecord, tz: ZoneInfo) -> Optional[date]:
    """Local calendar day of the record's event date, or None if unset/invalid."""
    if not record.event_date:
        return None
    try:
        instant = datetime.fromisoformat(record.event_date)
    except ValueError:
        return None
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=tz)
    return instant.astimezone(tz).date()


def is_upcoming(record: EventRecord, today: date, tz: ZoneInfo) -> bool:
    day = event_day(record, tz)
    return day is not None and day >= today


def filter_upcoming(
    records: Iterable[EventRecord],
    tz: ZoneInfo,
    today: Optional[date] = None
) -> List[EventRecord]:
    """
    Keep records whose event day is today or later, preserving order.

    Args:
        records: Derived records
        tz: Timezone defining the local day
        today: Reference day (default: today in ``tz``)

    Returns:
        Admitted records; undated records are never admitted
    """
    if today is None:
        today = datetime.now(tz).date()

    records = list(records)
    admitted = [record for record in records if is_upcoming(record, today, tz)]
    logger.info(
        f"Admitted {len(admitted)} of {len(records)} events dated {today.isoformat()} or later"
    )
    return admitted
