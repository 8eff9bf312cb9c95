"""AWS Lambda handler and console entry point for EventHub Sync."""
import json
import logging
import sys
import time
from typing import Any, Dict, Optional

from posters.poster_pipeline import PosterPipeline, PosterScheduler
from processor.errors import ConfigError, StoreError, SyncError, TransportError
from processor.event_processor import EventProcessor
from processor.models import CycleReport
from processor.reconciler import Reconciler, ReplaceReconciler
from processor.settings import POLICY_REPLACE, SyncSettings
from processor.sync_cycle import SyncCycle
from scraper.eventhub_page import EventHubScraper
from storage.dynamodb_manager import DynamoDBManager
from storage.s3_poster_store import S3PosterStore
from storage.snapshot_cache import S3SnapshotCache, SnapshotCache

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message'}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including ``extra`` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_cycle(settings: SyncSettings) -> SyncCycle:
    """
    Wire the production collaborators for one cycle.

    Args:
        settings: Validated settings

    Returns:
        Ready-to-run SyncCycle
    """
    record_store = DynamoDBManager(settings.table_name, region=settings.aws_region)

    if settings.sync_policy == POLICY_REPLACE:
        reconciler = ReplaceReconciler(record_store)
    else:
        reconciler = Reconciler(record_store)

    poster_scheduler = None
    if settings.enable_posters:
        object_store = S3PosterStore(
            settings.poster_bucket,
            region=settings.aws_region,
            public_base_url=settings.poster_public_base_url,
            timeout=settings.http_timeout_seconds
        )
        pipeline = PosterPipeline(
            object_store,
            settings.poster_source_url,
            base_folder=settings.poster_base_folder,
            timeout=settings.http_timeout_seconds,
            verify_tls=settings.verify_tls,
            max_width=settings.poster_max_width,
            ceiling=settings.poster_max_bytes
        )
        poster_scheduler = PosterScheduler(
            pipeline,
            max_workers=settings.poster_concurrency,
            keep_without_poster=settings.keep_events_without_poster
        )

    if settings.snapshot_bucket:
        snapshot_cache = S3SnapshotCache(
            settings.snapshot_bucket,
            key=settings.snapshot_key,
            region=settings.aws_region
        )
    else:
        snapshot_cache = SnapshotCache(settings.cache_file)

    return SyncCycle(
        settings=settings,
        scraper=EventHubScraper(
            settings.eventhub_url,
            timeout=settings.http_timeout_seconds,
            verify_tls=settings.verify_tls
        ),
        processor=EventProcessor(tz=settings.tzinfo),
        reconciler=reconciler,
        snapshot_cache=snapshot_cache,
        poster_scheduler=poster_scheduler,
        record_store=record_store
    )


def _error_response(message: str, error: Exception, start_time: float,
                    note: Optional[str] = None) -> Dict[str, Any]:
    body = {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(time.time() - start_time, 2)
    }
    if note:
        body['note'] = note
    return {'statusCode': 500, 'body': json.dumps(body)}


def _statistics(report: CycleReport, duration: float) -> Dict[str, Any]:
    result = report.sync_result
    return {
        'raw_events_fetched': report.raw_events,
        'unique_events_derived': report.derived_events,
        'events_admitted': report.admitted_events,
        'posters_attached': report.posters_attached,
        'posters_failed': report.posters_failed,
        'events_added': result.added,
        'events_updated': result.updated,
        'events_deactivated': result.deleted,
        'events_unchanged': result.unchanged,
        'duration_seconds': round(duration, 2)
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for EventHub Sync.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    start_time = time.time()

    try:
        settings = SyncSettings.from_env()
    except ConfigError as e:
        setup_logging()
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return _error_response('Invalid configuration', e, start_time)

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    logger.info(
        "Sync cycle started",
        extra={
            'table_name': settings.table_name,
            'sync_policy': settings.sync_policy,
            'posters_enabled': settings.enable_posters,
            'filter_past_events': settings.filter_past_events
        }
    )

    try:
        report = build_cycle(settings).run()
    except TransportError as e:
        logger.error(
            f"Failed to fetch EventHub listing: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response('Failed to fetch EventHub listing', e, start_time)
    except StoreError as e:
        logger.error(
            f"Error during store sync operation: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(
            'Failed to sync events', e, start_time,
            note='Snapshot left unchanged; rerun to retry'
        )
    except SyncError as e:
        logger.error(
            f"Sync cycle failed: {e}",
            extra={'error_type': type(e).__name__, 'error_code': e.error_code},
            exc_info=True
        )
        return _error_response('Sync failed', e, start_time)
    except Exception as e:
        logger.error(
            f"Sync cycle crashed: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response('Sync failed', e, start_time)

    duration = time.time() - start_time
    statistics = _statistics(report, duration)
    logger.info("Sync cycle completed successfully", extra=statistics)

    return {
        'statusCode': 200,
        'body': json.dumps({
            'message': 'Sync completed successfully',
            'statistics': statistics,
            'errors': report.sync_result.errors
        })
    }


def main() -> int:
    """Run one cycle from the console; returns the process exit code."""
    response = lambda_handler({}, None)
    if response['statusCode'] == 200:
        print('SUCCESS')
        return 0

    body = json.loads(response['body'])
    print(f"FAILED: {body['error']}", file=sys.stderr)
    return 1


if __name__ == '__main__':
    sys.exit(main())
