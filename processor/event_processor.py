"""Event processor deriving canonical records and identities from raw card fields."""
import logging
import re
from datetime import date, datetime, time
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from processor.errors import ValidationError
from processor.models import EventRecord, ProcessingResult, RawFields

logger = logging.getLogger(__name__)

ID_PREFIX = 'official'
NO_EVENT_ID = '0'

DEFAULT_VENUE = 'TBA'
DEFAULT_CATEGORY = 'General'
DEFAULT_PARTICIPANT_TYPE = 'All'
DEFAULT_TEAM_SIZE = '1'

_WHITESPACE = re.compile(r'\s+')
_NON_ALNUM = re.compile(r'[^a-z0-9]+')
_SOURCE_ID = re.compile(r'^[A-Za-z0-9_-]+$')
_LEADING_DIGITS = re.compile(r'^\s*(\d+)')
_TEAM_RANGE = re.compile(r'\b(\d+)\s*-\s*(\d+)\b')
_TEAM_SINGLE = re.compile(r'\b\d+\b')
_WEEKDAY_PREFIX = re.compile(
    r'^(mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?,?\s+', re.IGNORECASE
)
_RANGE_SEPARATOR = re.compile(r'\s+(?:-|–|to)\s+', re.IGNORECASE)
_ISO_PREFIX = re.compile(r'^(\d{4}-\d{2}-\d{2})(?:[T\s]|$)')
# "10:00", "10:00:30 AM", "10 a.m." and anything after them
_TRAILING_TIME = re.compile(
    r'[,\s]+(?:at\s+)?\d{1,2}(?:(?::\d{2}){1,2}\s*(?:[ap]\.?m\.?)?|\s*[ap]\.?m\.?).*$',
    re.IGNORECASE
)

DATE_FORMATS = [
    '%Y-%m-%d',      # ISO 8601
    '%d %b %Y',      # 15 Oct 2025
    '%d %B %Y',      # 15 October 2025
    '%d-%b-%Y',      # 15-Oct-2025
    '%b %d, %Y',     # Oct 15, 2025
    '%B %d, %Y',     # October 15, 2025
    '%d/%m/%Y',      # Day-first, as published
    '%d-%m-%Y',
    '%d.%m.%Y',
    '%Y/%m/%d',
]


def normalize_text(value: Optional[str]) -> str:
    """Strip and collapse internal whitespace runs to a single space."""
    if not value:
        return ''
    return _WHITESPACE.sub(' ', value).strip()


def slugify(value: str) -> str:
    """Lower-case and collapse non-alphanumeric runs into single dashes."""
    return _NON_ALNUM.sub('-', value.lower()).strip('-')


def parse_entry_fee(fee_text: Optional[str]) -> int:
    """
    Parse an entry fee into a non-negative integer.

    Args:
        fee_text: Fee text as shown on the card (e.g. "Free", "200", "150 per team")

    Returns:
        0 for "free" or unparsable text, otherwise the leading integer
    """
    text = normalize_text(fee_text)
    if text.lower() == 'free':
        return 0
    match = _LEADING_DIGITS.match(text)
    if not match:
        return 0
    return int(match.group(1))


def parse_team_size(team_text: Optional[str]) -> str:
    """
    Parse team size text into "N" or "min-max".

    Args:
        team_text: Free-form team size text (e.g. "Team: 2 - 4 members")

    Returns:
        Normalized team size, "1" when nothing numeric is present
    """
    text = team_text or ''
    match = _TEAM_RANGE.search(text)
    if match:
        return f"{match.group(1)}-{match.group(2)}"
    match = _TEAM_SINGLE.search(text)
    if match:
        return match.group(0)
    return DEFAULT_TEAM_SIZE


def normalize_category(category_text: Optional[str]) -> str:
    text = normalize_text(category_text)
    if text.startswith('(') and text.endswith(')'):
        text = text[1:-1].strip()
    return text or DEFAULT_CATEGORY


def build_variant_key(category: str, participant_type: str, entry_fee: int) -> str:
    """Slug of ``category|participant_type|entry_fee``."""
    return slugify(f"{category}|{participant_type}|{entry_fee}")


def build_event_id(source_event_id: str, variant_key: str) -> str:
    """Identity contract: ``official:<source_event_id>:<variant_key>``."""
    return f"{ID_PREFIX}:{source_event_id}:{variant_key}"


class EventProcessor:
    """Processor turning raw card fields into deduplicated EventRecords."""

    def __init__(self, tz: Optional[ZoneInfo] = None):
        """
        Initialize the processor.

        Args:
            tz: Timezone whose local midnight anchors event dates
                (default: Asia/Kolkata)
        """
        self.tz = tz or ZoneInfo('Asia/Kolkata')

    def process_events(self, raw_events: Iterable[RawFields]) -> ProcessingResult:
        """
        Derive records from one scrape pass, keeping the first of each identity.

        Args:
            raw_events: Raw card fields in page order

        Returns:
            ProcessingResult with surviving records and discard counters
        """
        records: List[EventRecord] = []
        seen = set()
        discarded = 0
        duplicates = 0
        total = 0

        for raw in raw_events:
            total += 1
            try:
                record = self.derive_record(raw)
            except ValidationError as e:
                discarded += 1
                logger.debug(f"Discarded card: {e}")
                continue

            if record.id in seen:
                duplicates += 1
                logger.debug(f"Dropped duplicate variant {record.id}")
                continue

            seen.add(record.id)
            records.append(record)

        logger.info(
            f"Derived {len(records)} unique events out of {total} cards "
            f"({discarded} discarded, {duplicates} duplicates)"
        )
        return ProcessingResult(
            records=records,
            discarded=discarded,
            duplicates=duplicates
        )

    def derive_record(self, raw: RawFields) -> EventRecord:
        """
        Build one EventRecord from raw card fields.

        Args:
            raw: Raw card fields

        Returns:
            Normalized EventRecord

        Raises:
            ValidationError: If the card has no event id or no title
        """
        source_event_id = (raw.event_source_id or '').strip()
        if not source_event_id or source_event_id == NO_EVENT_ID:
            raise ValidationError("card has no event id")
        if not _SOURCE_ID.match(source_event_id):
            raise ValidationError(f"invalid event id {source_event_id!r}")

        title = normalize_text(raw.title)
        if not title:
            raise ValidationError(f"event {source_event_id} has an empty title")

        category = normalize_category(raw.category_text)
        participant_type = normalize_text(raw.participant_text) or DEFAULT_PARTICIPANT_TYPE
        entry_fee = parse_entry_fee(raw.fee_text)
        variant_key = build_variant_key(category, participant_type, entry_fee)

        return EventRecord(
            id=build_event_id(source_event_id, variant_key),
            title=title,
            event_date=self.normalize_date(raw.date_text),
            venue=normalize_text(raw.venue_text) or DEFAULT_VENUE,
            category=category,
            participant_type=participant_type,
            entry_fee=entry_fee,
            team_size=parse_team_size(raw.team_size_text),
            source_event_id=source_event_id,
            variant_key=variant_key
        )

    def normalize_date(self, date_text: Optional[str]) -> Optional[str]:
        """
        Normalize date text to an ISO 8601 instant at local midnight.

        Args:
            date_text: Date text in one of the published formats; a leading
                weekday, a trailing range end or a time of day is ignored

        Returns:
            ISO 8601 string (e.g. "2025-10-15T00:00:00+05:30") or None
        """
        parsed = self._parse_date(date_text)
        if parsed is None:
            return None
        return datetime.combine(parsed, time.min, tzinfo=self.tz).isoformat()

    def _parse_date(self, date_text: Optional[str]) -> Optional[date]:
        text = normalize_text(date_text)
        if not text:
            return None

        text = _RANGE_SEPARATOR.split(text, maxsplit=1)[0]
        text = _WEEKDAY_PREFIX.sub('', text)

        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass

        iso_prefix = _ISO_PREFIX.match(text)
        if iso_prefix:
            try:
                return date.fromisoformat(iso_prefix.group(1))
            except ValueError:
                return None

        text = _TRAILING_TIME.sub('', text, count=1)
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue

        return None
