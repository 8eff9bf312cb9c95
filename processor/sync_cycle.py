"""One full sync cycle: scrape, derive, filter, attach posters, reconcile, snapshot."""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from processor.errors import EmptyListingError
from processor.models import CycleReport, EventRecord
from processor.settings import POLICY_REPLACE, SyncSettings
from processor.temporal_filter import filter_upcoming

logger = logging.getLogger(__name__)


class SyncCycle:
    """Drives the components of one cycle; every collaborator is injected."""

    def __init__(
        self,
        settings: SyncSettings,
        scraper,
        processor,
        reconciler,
        snapshot_cache,
        poster_scheduler=None,
        record_store=None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the cycle.

        Args:
            settings: Cycle settings
            scraper: Page extractor exposing fetch_raw_fields()
            processor: Identity deriver exposing process_events()
            reconciler: Reconciler or ReplaceReconciler
            snapshot_cache: SnapshotCache
            poster_scheduler: PosterScheduler, required when posters are enabled
            record_store: Store exposing get_all_events(); its active rows are
                the baseline when no snapshot has been saved yet
            clock: Returns the current aware datetime
        """
        if settings.enable_posters and poster_scheduler is None:
            raise ValueError("poster_scheduler is required when posters are enabled")
        self.settings = settings
        self.scraper = scraper
        self.processor = processor
        self.reconciler = reconciler
        self.snapshot_cache = snapshot_cache
        self.poster_scheduler = poster_scheduler
        self.record_store = record_store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def run(self) -> CycleReport:
        """
        Run the cycle; the snapshot is written only if every step succeeds.

        Returns:
            CycleReport with per-stage counts

        Raises:
            TransportError: If the listing cannot be fetched
            EmptyListingError: If nothing was admitted and FAIL_ON_EMPTY is set
            StoreError: If a store mutation fails
        """
        started_at = self.clock()
        previous = self._load_baseline()

        raw_events = self.scraper.fetch_raw_fields()
        processed = self.processor.process_events(raw_events)
        records = processed.records

        if self.settings.filter_past_events:
            tz = self.settings.tzinfo
            records = filter_upcoming(records, tz, today=started_at.astimezone(tz).date())

        admitted = len(records)
        if not records:
            if self.settings.fail_on_empty:
                raise EmptyListingError("no events admitted from the listing")
            logger.warning("No events admitted from the listing")

        if self.settings.sync_policy == POLICY_REPLACE and self.poster_scheduler is not None:
            self.poster_scheduler.pipeline.clear_namespace()

        posters_attached = 0
        posters_failed = 0
        if self.settings.enable_posters:
            outcome = self.poster_scheduler.attach_posters(records)
            records = outcome.records
            posters_attached = outcome.attached
            posters_failed = outcome.failed

        sync_result = self.reconciler.reconcile(records, previous)
        self.snapshot_cache.save(records, scraped_at=started_at.isoformat())

        return CycleReport(
            raw_events=len(raw_events),
            derived_events=len(processed.records),
            admitted_events=admitted,
            posters_attached=posters_attached,
            posters_failed=posters_failed,
            sync_result=sync_result
        )

    def _load_baseline(self) -> List[EventRecord]:
        """Previous records: the snapshot, else the store's active rows."""
        snapshot = self.snapshot_cache.load()
        if snapshot.last_scrape is not None or self.record_store is None:
            return snapshot.events

        stored = [
            record for record in self.record_store.get_all_events().values()
            if record.is_active
        ]
        logger.info(
            f"No snapshot found, using {len(stored)} active stored events as baseline"
        )
        return stored
