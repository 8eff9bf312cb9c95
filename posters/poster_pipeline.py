"""Poster pipeline: fetch, compress below the ceiling, upload, with bounded concurrency."""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

import requests

from posters.compression import (
    DEFAULT_QUALITY_SCHEDULE,
    MAX_POSTER_BYTES,
    MAX_POSTER_WIDTH,
    JpegEncoder,
    compress_to_ceiling,
)
from processor.errors import PosterError, StoreError, TransportError
from processor.models import EventRecord

logger = logging.getLogger(__name__)

POSTER_EXTENSION = 'jpg'
POSTER_CONTENT_TYPE = 'image/jpeg'
USER_AGENT = 'Mozilla/5.0'


def poster_path(base_folder: str, source_event_id: str, variant_key: str) -> str:
    """Object key ``<base_folder>/<source_event_id>/<variant_key>.jpg``."""
    key = f"{source_event_id}/{variant_key}.{POSTER_EXTENSION}"
    return f"{base_folder}/{key}" if base_folder else key


class PosterPipeline:
    """Produces a public poster URL for one event variant."""

    def __init__(
        self,
        object_store,
        source_url_template: str,
        base_folder: str = 'official',
        timeout: int = 30,
        verify_tls: bool = True,
        max_width: int = MAX_POSTER_WIDTH,
        ceiling: int = MAX_POSTER_BYTES,
        schedule: Sequence[int] = DEFAULT_QUALITY_SCHEDULE,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the pipeline.

        Args:
            object_store: Store exposing upload/get_public_url/list/remove
            source_url_template: Source image URL with an ``{event_id}`` placeholder
            base_folder: Object key prefix for every poster
            timeout: HTTP request timeout in seconds
            verify_tls: Validate the source's TLS certificate
            max_width: Maximum poster width in pixels
            ceiling: Exclusive maximum poster size in bytes
            schedule: JPEG qualities to try, in order
            session: Optional requests session
        """
        self.object_store = object_store
        self.source_url_template = source_url_template
        self.base_folder = base_folder
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.max_width = max_width
        self.ceiling = ceiling
        self.schedule = tuple(schedule)
        self.session = session or requests.Session()

    def fetch_source(self, source_event_id: str) -> bytes:
        """
        Download the source poster image.

        Raises:
            TransportError: On timeout, connection/TLS failure or non-2xx status
        """
        url = self.source_url_template.format(event_id=source_event_id)
        try:
            response = self.session.get(
                url,
                timeout=self.timeout,
                verify=self.verify_tls,
                headers={'User-Agent': USER_AGENT}
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise TransportError(f"poster fetch failed for {source_event_id}: {e}") from e
        return response.content

    def compress(self, source: bytes) -> bytes:
        encoder = JpegEncoder(source, max_width=self.max_width)
        return compress_to_ceiling(encoder, self.schedule, self.ceiling)

    def publish(self, source_event_id: str, variant_key: str) -> str:
        """
        Fetch, compress and upload one poster.

        Args:
            source_event_id: Event id on the listing
            variant_key: Variant slug distinguishing sibling posters

        Returns:
            Public URL of the uploaded poster

        Raises:
            PosterError: If the fetch, decode or compression fails
            StoreError: If the upload fails
        """
        source = self.fetch_source(source_event_id)
        data = self.compress(source)
        path = poster_path(self.base_folder, source_event_id, variant_key)
        self.object_store.upload(path, data, POSTER_CONTENT_TYPE)
        return self.object_store.get_public_url(path)

    def clear_namespace(self) -> int:
        """
        Remove every poster under the base folder.

        Returns:
            Number of objects removed

        Raises:
            StoreError: If listing or removal fails
        """
        prefix = f"{self.base_folder}/" if self.base_folder else ''
        paths = [entry['name'] for entry in self.object_store.list(prefix)]
        if paths:
            self.object_store.remove(paths)
        logger.info(f"Cleared {len(paths)} posters under '{prefix}'")
        return len(paths)


@dataclass
class PosterOutcome:
    """Records after the poster stage, with failure count."""
    records: List[EventRecord]
    attached: int
    failed: int


class PosterScheduler:
    """Runs the poster pipeline for many records under a concurrency cap."""

    def __init__(
        self,
        pipeline: PosterPipeline,
        max_workers: int = 4,
        keep_without_poster: bool = True
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.pipeline = pipeline
        self.max_workers = max_workers
        self.keep_without_poster = keep_without_poster

    def attach_posters(self, records: Sequence[EventRecord]) -> PosterOutcome:
        """
        Publish a poster for every record and return copies carrying the URLs.

        Returns only after every task has settled. A failed record keeps
        ``poster_url=None`` or is dropped, depending on ``keep_without_poster``.

        Args:
            records: Admitted records

        Returns:
            PosterOutcome with records in input order
        """
        records = list(records)
        slots: List[Optional[str]] = [None] * len(records)
        errors: List[Optional[Exception]] = [None] * len(records)

        def run(index: int) -> None:
            record = records[index]
            try:
                slots[index] = self.pipeline.publish(
                    record.source_event_id, record.variant_key
                )
            except (PosterError, StoreError) as e:
                errors[index] = e
                logger.warning(
                    f"Poster failed for {record.id}: {e}",
                    extra={'event_id': record.id, 'error_type': type(e).__name__}
                )

        if records:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix='poster'
            ) as executor:
                futures = [executor.submit(run, index) for index in range(len(records))]
                for future in futures:
                    future.result()

        result: List[EventRecord] = []
        failed = 0
        for index, record in enumerate(records):
            if errors[index] is not None:
                failed += 1
                if self.keep_without_poster:
                    result.append(replace(record, poster_url=None))
                continue
            result.append(replace(record, poster_url=slots[index]))

        attached = len(records) - failed
        logger.info(
            f"Attached {attached} posters, {failed} failed "
            f"(max {self.max_workers} in flight)"
        )
        return PosterOutcome(records=result, attached=attached, failed=failed)
