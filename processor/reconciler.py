"""Reconciler classifying a scrape pass against the last synchronized snapshot."""
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from processor.models import Classification, EventRecord, SyncResult

logger = logging.getLogger(__name__)

# posters and active flags are not part of change detection
TRACKED_FIELDS = (
    'title',
    'event_date',
    'venue',
    'category',
    'entry_fee',
    'team_size',
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def records_differ(current: EventRecord, previous: EventRecord) -> bool:
    """
    Compare two records on the tracked fields only.

    Args:
        current: Record from this pass
        previous: Record from the snapshot

    Returns:
        True if at least one tracked field differs
    """
    return any(
        getattr(current, name) != getattr(previous, name)
        for name in TRACKED_FIELDS
    )


def classify(
    current: Sequence[EventRecord],
    previous: Sequence[EventRecord]
) -> Classification:
    """
    Partition the ids of both passes into new/updated/unchanged/deleted.

    New, updated and unchanged ids follow the order of ``current``; deleted ids
    follow the order of ``previous``.

    Args:
        current: Records of this pass (unique ids)
        previous: Records of the last snapshot (unique ids)

    Returns:
        Classification covering every id exactly once
    """
    previous_by_id: Dict[str, EventRecord] = {record.id: record for record in previous}
    current_ids = set()
    result = Classification()

    for record in current:
        current_ids.add(record.id)
        prior = previous_by_id.get(record.id)
        if prior is None:
            result.new.append(record.id)
        elif records_differ(record, prior):
            result.updated.append(record.id)
        else:
            result.unchanged.append(record.id)

    result.deleted = [
        record.id for record in previous if record.id not in current_ids
    ]
    return result


class Reconciler:
    """Applies the incremental sync policy to a record store."""

    def __init__(self, record_store, clock: Optional[Callable[[], str]] = None):
        """
        Initialize the reconciler.

        Args:
            record_store: Store exposing upsert/update_where_id_in
            clock: Returns the ISO 8601 timestamp stamped on deactivations
        """
        self.record_store = record_store
        self.clock = clock or _utc_now

    def reconcile(
        self,
        current: Sequence[EventRecord],
        previous: Sequence[EventRecord]
    ) -> SyncResult:
        """
        Upsert new and updated records, deactivate vanished ones.

        Args:
            current: Records of this pass
            previous: Records of the last snapshot

        Returns:
            SyncResult with counts and the classification

        Raises:
            StoreError: If a store mutation fails
        """
        classification = classify(current, previous)
        logger.info(
            f"Sync plan: {len(classification.new)} to add, "
            f"{len(classification.updated)} to update, "
            f"{len(classification.deleted)} to deactivate, "
            f"{len(classification.unchanged)} unchanged"
        )

        changed_ids = set(classification.new) | set(classification.updated)
        to_write: List[EventRecord] = [
            record for record in current if record.id in changed_ids
        ]

        if to_write:
            self.record_store.upsert(to_write, conflict_key='id')

        if classification.deleted:
            self.record_store.update_where_id_in(
                classification.deleted,
                {'is_active': False, 'updated_at': self.clock()}
            )

        logger.info(
            f"Sync complete: {len(classification.new)} added, "
            f"{len(classification.updated)} updated, "
            f"{len(classification.deleted)} deactivated"
        )
        return SyncResult(
            added=len(classification.new),
            updated=len(classification.updated),
            deleted=len(classification.deleted),
            unchanged=len(classification.unchanged),
            classification=classification
        )


class ReplaceReconciler:
    """Rebuilds the record store from scratch: delete everything, insert the pass."""

    def __init__(self, record_store):
        self.record_store = record_store

    def reconcile(
        self,
        current: Sequence[EventRecord],
        previous: Sequence[EventRecord]
    ) -> SyncResult:
        """
        Replace every stored record with the current pass.

        Raises:
            StoreError: If the delete or the insert fails
        """
        logger.info(
            f"Replacing stored records: {len(previous)} in snapshot, "
            f"{len(current)} to insert"
        )
        self.record_store.delete_where_all()
        if current:
            self.record_store.insert(list(current))

        return SyncResult(
            added=len(current),
            updated=0,
            deleted=len(previous),
            unchanged=0
        )
