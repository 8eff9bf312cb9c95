"""Unit tests for SyncSettings."""
import tempfile

import pytest

from processor.errors import ConfigError
from processor.settings import POLICY_INCREMENTAL, POLICY_REPLACE, SyncSettings


class TestSyncSettings:
    """Test cases for environment-driven settings."""

    def test_defaults(self):
        settings = SyncSettings.from_env({})

        assert settings.eventhub_url == 'https://eventhubcc.vit.ac.in/EventHub/'
        assert settings.sync_policy == POLICY_INCREMENTAL
        assert settings.poster_concurrency == 4
        assert settings.poster_max_width == 1024
        assert settings.poster_max_bytes == 1024 * 1024
        assert settings.http_timeout_seconds == 30
        assert settings.filter_past_events is True
        assert settings.enable_posters is False
        assert settings.keep_events_without_poster is True
        assert settings.fail_on_empty is False
        assert str(settings.tzinfo) == 'Asia/Kolkata'

    def test_reads_overrides(self):
        settings = SyncSettings.from_env({
            'TABLE_NAME': 'events-prod',
            'ENABLE_POSTERS': 'true',
            'POSTER_BUCKET': 'posters-prod',
            'POSTER_BASE_FOLDER': '/official/',
            'POSTER_CONCURRENCY': '8',
            'FILTER_PAST_EVENTS': 'no',
            'SYNC_POLICY': 'Replace',
            'VERIFY_TLS': '0',
            'EVENT_TIMEZONE': 'UTC',
        })

        assert settings.table_name == 'events-prod'
        assert settings.enable_posters is True
        assert settings.poster_bucket == 'posters-prod'
        assert settings.poster_base_folder == 'official'
        assert settings.poster_concurrency == 8
        assert settings.filter_past_events is False
        assert settings.sync_policy == POLICY_REPLACE
        assert settings.verify_tls is False

    @pytest.mark.parametrize('environ', [
        {'SYNC_POLICY': 'merge'},
        {'ENABLE_POSTERS': 'true'},
        {'ENABLE_POSTERS': 'maybe'},
        {'POSTER_CONCURRENCY': 'four'},
        {'POSTER_CONCURRENCY': '0'},
        {'POSTER_MAX_WIDTH': '4096'},
        {'POSTER_SOURCE_URL': 'https://example.com/image'},
        {'EVENT_TIMEZONE': 'Mars/Olympus_Mons'},
        {'CACHE_FILE': 'cache/last-scrape.json'},
        {'SNAPSHOT_BUCKET': 'state', 'SNAPSHOT_KEY': '/'},
    ])
    def test_invalid_values_raise_config_error(self, environ):
        with pytest.raises(ConfigError):
            SyncSettings.from_env(environ)

    def test_default_cache_file_is_under_temp_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(tempfile, 'tempdir', str(tmp_path))

        settings = SyncSettings.from_env({})

        assert settings.cache_file == str(tmp_path / 'eventhub-sync' / 'last-scrape.json')
        assert settings.snapshot_bucket is None

    def test_snapshot_bucket_allows_any_cache_file(self):
        settings = SyncSettings.from_env({
            'SNAPSHOT_BUCKET': 'sync-state',
            'SNAPSHOT_KEY': '/eventhub/last-scrape.json',
            'CACHE_FILE': 'cache/last-scrape.json',
        })

        assert settings.snapshot_bucket == 'sync-state'
        assert settings.snapshot_key == 'eventhub/last-scrape.json'
