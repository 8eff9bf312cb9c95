"""Runtime settings read from environment variables."""
import os
import tempfile
from dataclasses import dataclass, field
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from processor.errors import ConfigError

POLICY_INCREMENTAL = 'incremental'
POLICY_REPLACE = 'replace'

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off', ''}


def default_cache_file() -> str:
    """Snapshot path under the writable temp directory (/tmp on Lambda)."""
    return os.path.join(tempfile.gettempdir(), 'eventhub-sync', 'last-scrape.json')


@dataclass(frozen=True)
class SyncSettings:
    """Configuration for one sync cycle."""
    eventhub_url: str = 'https://eventhubcc.vit.ac.in/EventHub/'
    poster_source_url: str = 'https://eventhubcc.vit.ac.in/EventHub/image/?id={event_id}'
    table_name: str = 'official-events'
    poster_bucket: Optional[str] = None
    poster_base_folder: str = 'official'
    poster_public_base_url: Optional[str] = None
    aws_region: str = 'us-east-1'
    cache_file: str = field(default_factory=default_cache_file)
    snapshot_bucket: Optional[str] = None
    snapshot_key: str = 'cache/last-scrape.json'
    enable_posters: bool = False
    keep_events_without_poster: bool = True
    poster_concurrency: int = 4
    poster_max_width: int = 1024
    poster_max_bytes: int = 1024 * 1024
    filter_past_events: bool = True
    event_timezone: str = 'Asia/Kolkata'
    sync_policy: str = POLICY_INCREMENTAL
    fail_on_empty: bool = False
    http_timeout_seconds: int = 30
    verify_tls: bool = True
    log_level: str = 'INFO'

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.event_timezone)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SyncSettings':
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Validated SyncSettings

        Raises:
            ConfigError: If a value is malformed or a required value is missing
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        settings = cls(
            eventhub_url=env.get('EVENTHUB_URL', defaults.eventhub_url),
            poster_source_url=env.get('POSTER_SOURCE_URL', defaults.poster_source_url),
            table_name=env.get('TABLE_NAME', defaults.table_name),
            poster_bucket=env.get('POSTER_BUCKET') or None,
            poster_base_folder=env.get(
                'POSTER_BASE_FOLDER', defaults.poster_base_folder
            ).strip('/'),
            poster_public_base_url=env.get('POSTER_PUBLIC_BASE_URL') or None,
            aws_region=env.get('AWS_REGION', defaults.aws_region),
            cache_file=env.get('CACHE_FILE', defaults.cache_file),
            snapshot_bucket=env.get('SNAPSHOT_BUCKET') or None,
            snapshot_key=env.get('SNAPSHOT_KEY', defaults.snapshot_key).strip('/'),
            enable_posters=_bool(env, 'ENABLE_POSTERS', defaults.enable_posters),
            keep_events_without_poster=_bool(
                env, 'KEEP_EVENTS_WITHOUT_POSTER', defaults.keep_events_without_poster
            ),
            poster_concurrency=_int(env, 'POSTER_CONCURRENCY', defaults.poster_concurrency),
            poster_max_width=_int(env, 'POSTER_MAX_WIDTH', defaults.poster_max_width),
            poster_max_bytes=_int(env, 'POSTER_MAX_BYTES', defaults.poster_max_bytes),
            filter_past_events=_bool(env, 'FILTER_PAST_EVENTS', defaults.filter_past_events),
            event_timezone=env.get('EVENT_TIMEZONE', defaults.event_timezone),
            sync_policy=env.get('SYNC_POLICY', defaults.sync_policy).strip().lower(),
            fail_on_empty=_bool(env, 'FAIL_ON_EMPTY', defaults.fail_on_empty),
            http_timeout_seconds=_int(
                env, 'HTTP_TIMEOUT_SECONDS', defaults.http_timeout_seconds
            ),
            verify_tls=_bool(env, 'VERIFY_TLS', defaults.verify_tls),
            log_level=env.get('LOG_LEVEL', defaults.log_level)
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """
        Check cross-field constraints.

        Raises:
            ConfigError: If the settings cannot drive a cycle
        """
        if self.sync_policy not in (POLICY_INCREMENTAL, POLICY_REPLACE):
            raise ConfigError(f"Unknown SYNC_POLICY: {self.sync_policy!r}")
        if self.enable_posters and not self.poster_bucket:
            raise ConfigError("POSTER_BUCKET is required when ENABLE_POSTERS is set")
        if not self.snapshot_bucket and not os.path.isabs(self.cache_file):
            raise ConfigError("CACHE_FILE must be an absolute path")
        if self.snapshot_bucket and not self.snapshot_key:
            raise ConfigError("SNAPSHOT_KEY must not be empty")
        if self.poster_concurrency < 1:
            raise ConfigError("POSTER_CONCURRENCY must be at least 1")
        if self.poster_max_width < 1 or self.poster_max_width > 1024:
            raise ConfigError("POSTER_MAX_WIDTH must be between 1 and 1024")
        if self.poster_max_bytes < 1:
            raise ConfigError("POSTER_MAX_BYTES must be positive")
        if '{event_id}' not in self.poster_source_url:
            raise ConfigError("POSTER_SOURCE_URL must contain an {event_id} placeholder")
        try:
            ZoneInfo(self.event_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown EVENT_TIMEZONE: {self.event_timezone!r}") from e


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
