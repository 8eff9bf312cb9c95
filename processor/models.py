"""Data models for event processing."""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RawFields:
    """Raw card fields from the page extractor."""
    event_source_id: Optional[str]
    title: Optional[str]
    date_text: Optional[str] = None
    venue_text: Optional[str] = None
    category_text: Optional[str] = None
    participant_text: Optional[str] = None
    fee_text: Optional[str] = None
    team_size_text: Optional[str] = None


@dataclass
class EventRecord:
    """Normalized event, keyed by its variant identity."""
    id: str
    title: str
    event_date: Optional[str]
    venue: str
    category: str
    participant_type: str
    entry_fee: int
    team_size: str
    source_event_id: str
    variant_key: str
    poster_url: Optional[str] = None
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dict (snapshot file and store item)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EventRecord':
        """
        Build a record from a dict written by ``to_dict``.

        Raises:
            KeyError: If a required field is missing
            ValueError: If entry_fee is not an integer
        """
        return cls(
            id=data['id'],
            title=data['title'],
            event_date=data.get('event_date'),
            venue=data['venue'],
            category=data['category'],
            participant_type=data['participant_type'],
            entry_fee=int(data['entry_fee']),
            team_size=str(data['team_size']),
            source_event_id=str(data['source_event_id']),
            variant_key=data['variant_key'],
            poster_url=data.get('poster_url'),
            is_active=bool(data.get('is_active', True))
        )


@dataclass
class ProcessingResult:
    """Outcome of deriving records from one scrape pass."""
    records: List[EventRecord]
    discarded: int = 0
    duplicates: int = 0


@dataclass
class SyncSnapshot:
    """Last successfully synchronized record set."""
    events: List[EventRecord] = field(default_factory=list)
    last_scrape: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.events


@dataclass
class Classification:
    """Partition of record ids by reconciliation outcome."""
    new: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)


@dataclass
class SyncResult:
    """Result of sync operation."""
    added: int
    updated: int
    deleted: int
    unchanged: int = 0
    classification: Optional[Classification] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class CycleReport:
    """Summary of one full sync cycle."""
    raw_events: int
    derived_events: int
    admitted_events: int
    posters_attached: int
    posters_failed: int
    sync_result: SyncResult
