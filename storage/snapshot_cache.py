"""JSON snapshot of the last successfully synchronized event set."""
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import StoreError
from processor.models import EventRecord, SyncSnapshot

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {'NoSuchKey', '404', 'NotFound'}


def _encode(records: Sequence[EventRecord], scraped_at: Optional[str]) -> Dict[str, Any]:
    return {
        'events': [record.to_dict() for record in records],
        'lastScrape': scraped_at or datetime.now(timezone.utc).isoformat(),
        'totalEvents': len(records)
    }


def _decode(text, source: str) -> SyncSnapshot:
    """
    Parse a snapshot document.

    Args:
        text: JSON text or bytes
        source: Location named in log messages

    Returns:
        SyncSnapshot, empty if the document is malformed
    """
    try:
        payload = json.loads(text)
        events = [EventRecord.from_dict(item) for item in payload['events']]
        last_scrape = payload.get('lastScrape')
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring unreadable snapshot {source}: {e}")
        return SyncSnapshot()

    logger.info(f"Loaded snapshot of {len(events)} events from {last_scrape}")
    return SyncSnapshot(events=events, last_scrape=last_scrape)


class SnapshotCache:
    """Reads and atomically replaces the snapshot file."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> SyncSnapshot:
        """
        Load the last snapshot.

        A missing, unreadable or malformed file yields an empty snapshot.

        Returns:
            SyncSnapshot with records in stored order
        """
        if not self.path.exists():
            logger.info(f"No snapshot at {self.path}, starting from empty")
            return SyncSnapshot()

        try:
            text = self.path.read_text(encoding='utf-8')
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable snapshot {self.path}: {e}")
            return SyncSnapshot()

        return _decode(text, str(self.path))

    def save(self, records: Sequence[EventRecord], scraped_at: Optional[str] = None) -> None:
        """
        Replace the snapshot with ``records``.

        The payload is written to a temporary file in the same directory and
        renamed over the target, so readers see the old or the new snapshot.

        Args:
            records: Records of the successful cycle
            scraped_at: ISO 8601 time of the cycle (default: now, UTC)
        """
        payload = _encode(records, scraped_at)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix='.tmp'
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
                f.write('\n')
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info(f"Saved snapshot of {len(records)} events to {self.path}")


class S3SnapshotCache:
    """Snapshot kept as one S3 object; each PUT replaces it whole."""

    def __init__(self, bucket: str, key: str = 'cache/last-scrape.json',
                 region: str = 'us-east-1', client=None):
        """
        Initialize the S3 client.

        Args:
            bucket: Bucket holding the snapshot object
            key: Object key of the snapshot
            region: AWS region of the bucket
            client: Optional pre-built boto3 S3 client
        """
        self.bucket = bucket
        self.key = key
        self.client = client or boto3.client('s3', region_name=region)

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def load(self) -> SyncSnapshot:
        """
        Load the last snapshot.

        A missing or malformed object yields an empty snapshot.

        Returns:
            SyncSnapshot with records in stored order

        Raises:
            StoreError: If the bucket cannot be read
        """
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self.key)
            body = response['Body'].read()
        except ClientError as e:
            if e.response['Error']['Code'] in _MISSING_KEY_CODES:
                logger.info(f"No snapshot at {self.location}, starting from empty")
                return SyncSnapshot()
            raise StoreError(f"Error reading snapshot {self.location}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Error reading snapshot {self.location}: {e}") from e

        return _decode(body, self.location)

    def save(self, records: Sequence[EventRecord], scraped_at: Optional[str] = None) -> None:
        """
        Replace the snapshot object with ``records``.

        Args:
            records: Records of the successful cycle
            scraped_at: ISO 8601 time of the cycle (default: now, UTC)

        Raises:
            StoreError: If the upload fails
        """
        body = json.dumps(_encode(records, scraped_at), ensure_ascii=False, indent=2)

        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=body.encode('utf-8'),
                ContentType='application/json'
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Error writing snapshot {self.location}: {e}") from e

        logger.info(f"Saved snapshot of {len(records)} events to {self.location}")
