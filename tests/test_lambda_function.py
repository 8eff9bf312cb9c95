"""Integration tests for Lambda handler."""
import json
import logging
import os
import tempfile
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from lambda_function import JsonFormatter, build_cycle, lambda_handler, main
from processor.errors import EmptyListingError, StoreError, TransportError
from processor.models import Classification, CycleReport, RawFields, SyncResult
from processor.reconciler import Reconciler, ReplaceReconciler
from processor.settings import SyncSettings
from scraper.eventhub_page import EventHubScraper


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'TABLE_NAME': 'test-official-events',
        'LOG_LEVEL': 'INFO',
        'HTTP_TIMEOUT_SECONDS': '30',
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def sample_report():
    """Create a sample cycle report."""
    return CycleReport(
        raw_events=5,
        derived_events=4,
        admitted_events=3,
        posters_attached=0,
        posters_failed=0,
        sync_result=SyncResult(
            added=2,
            updated=1,
            deleted=1,
            unchanged=0,
            classification=Classification(
                new=['a', 'b'], updated=['c'], deleted=['d']
            )
        )
    )


class TestLambdaHandler:
    """Test cases for Lambda handler."""

    @patch('lambda_function.build_cycle')
    def test_successful_sync(self, mock_build_cycle, mock_env, sample_report):
        """Test successful end-to-end sync process."""
        mock_build_cycle.return_value.run.return_value = sample_report

        response = lambda_handler({}, None)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['message'] == 'Sync completed successfully'
        statistics = body['statistics']
        assert statistics['raw_events_fetched'] == 5
        assert statistics['unique_events_derived'] == 4
        assert statistics['events_admitted'] == 3
        assert statistics['events_added'] == 2
        assert statistics['events_updated'] == 1
        assert statistics['events_deactivated'] == 1
        assert 'duration_seconds' in statistics
        settings = mock_build_cycle.call_args.args[0]
        assert settings.table_name == 'test-official-events'

    @patch('lambda_function.build_cycle')
    def test_listing_fetch_failure(self, mock_build_cycle, mock_env):
        """Test error handling for listing fetch failures."""
        mock_build_cycle.return_value.run.side_effect = TransportError('Network error')

        response = lambda_handler({}, None)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Failed to fetch EventHub listing'
        assert 'Network error' in body['error']
        assert body['error_type'] == 'TransportError'

    @patch('lambda_function.build_cycle')
    def test_store_failure(self, mock_build_cycle, mock_env):
        """Test error handling for store failures."""
        mock_build_cycle.return_value.run.side_effect = StoreError('Table unavailable')

        response = lambda_handler({}, None)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Failed to sync events'
        assert 'note' in body

    @patch('lambda_function.build_cycle')
    def test_empty_listing_failure(self, mock_build_cycle, mock_env):
        mock_build_cycle.return_value.run.side_effect = EmptyListingError('no events')

        response = lambda_handler({}, None)

        assert response['statusCode'] == 500
        assert json.loads(response['body'])['error_type'] == 'EmptyListingError'

    @patch('lambda_function.build_cycle')
    def test_unexpected_failure(self, mock_build_cycle, mock_env):
        mock_build_cycle.return_value.run.side_effect = RuntimeError('boom')

        response = lambda_handler({}, None)

        assert response['statusCode'] == 500
        assert json.loads(response['body'])['message'] == 'Sync failed'

    @patch('lambda_function.build_cycle')
    def test_invalid_configuration(self, mock_build_cycle, mock_env):
        with patch.dict(os.environ, {'SYNC_POLICY': 'merge'}):
            response = lambda_handler({}, None)

        assert response['statusCode'] == 500
        assert json.loads(response['body'])['error_type'] == 'ConfigError'
        mock_build_cycle.assert_not_called()


class TestMain:
    """Test cases for the console entry point."""

    @patch('lambda_function.build_cycle')
    def test_exit_zero_on_success(self, mock_build_cycle, mock_env, sample_report, capsys):
        mock_build_cycle.return_value.run.return_value = sample_report

        assert main() == 0
        assert 'SUCCESS' in capsys.readouterr().out

    @patch('lambda_function.build_cycle')
    def test_exit_non_zero_with_one_line_diagnostic(self, mock_build_cycle, mock_env, capsys):
        mock_build_cycle.return_value.run.side_effect = TransportError('listing fetch failed')

        assert main() == 1
        err_lines = [
            line for line in capsys.readouterr().err.splitlines()
            if line.startswith('FAILED:')
        ]
        assert err_lines == ['FAILED: listing fetch failed']


class TestBuildCycle:
    """Test cases for production wiring."""

    def test_incremental_policy_without_posters(self, mock_env):
        cycle = build_cycle(SyncSettings(table_name='test-official-events'))

        assert isinstance(cycle.reconciler, Reconciler)
        assert cycle.poster_scheduler is None

    def test_replace_policy_with_posters(self, mock_env):
        settings = SyncSettings(
            sync_policy='replace',
            enable_posters=True,
            poster_bucket='posters',
            poster_concurrency=2
        )

        cycle = build_cycle(settings)

        assert isinstance(cycle.reconciler, ReplaceReconciler)
        assert cycle.poster_scheduler.max_workers == 2
        assert cycle.poster_scheduler.pipeline.object_store.bucket == 'posters'


class TestJsonFormatter:
    """Test cases for structured log output."""

    def test_includes_extra_fields(self):
        record = logging.LogRecord('sync', logging.INFO, __file__, 1, 'done', None, None)
        record.events_added = 3

        payload = json.loads(JsonFormatter().format(record))

        assert payload['message'] == 'done'
        assert payload['level'] == 'INFO'
        assert payload['events_added'] == 3


@pytest.fixture
def default_deployment(tmp_path, monkeypatch):
    """Default settings against mock AWS, with the temp dir redirected."""
    for name in ('TABLE_NAME', 'CACHE_FILE', 'SNAPSHOT_BUCKET', 'SNAPSHOT_KEY',
                 'ENABLE_POSTERS', 'SYNC_POLICY', 'AWS_REGION'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    monkeypatch.setattr(tempfile, 'tempdir', str(tmp_path))

    with mock_aws():
        table = boto3.resource('dynamodb', region_name='us-east-1').create_table(
            TableName='official-events',
            KeySchema=[{'AttributeName': 'id', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'id', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST'
        )
        yield table


def listing(*source_ids):
    return [
        RawFields(event_source_id=source_id, title=f'Event {source_id}', date_text='2099-01-01')
        for source_id in source_ids
    ]


class TestDefaultDeployment:
    """Full cycles with default settings and mock AWS stores."""

    @patch.object(EventHubScraper, 'fetch_raw_fields')
    def test_snapshot_saved_under_temp_dir(self, mock_fetch, default_deployment, tmp_path):
        mock_fetch.return_value = listing('1', '2')

        response = lambda_handler({}, None)

        assert response['statusCode'] == 200
        payload = json.loads(
            (tmp_path / 'eventhub-sync' / 'last-scrape.json').read_text(encoding='utf-8')
        )
        assert payload['totalEvents'] == 2
        assert default_deployment.scan()['Count'] == 2

    @patch.object(EventHubScraper, 'fetch_raw_fields')
    def test_cold_start_deactivates_events_missing_from_store_baseline(
        self, mock_fetch, default_deployment, tmp_path
    ):
        mock_fetch.return_value = listing('1', '2')
        assert lambda_handler({}, None)['statusCode'] == 200
        (tmp_path / 'eventhub-sync' / 'last-scrape.json').unlink()
        mock_fetch.return_value = listing('1')

        response = lambda_handler({}, None)

        statistics = json.loads(response['body'])['statistics']
        assert statistics['events_deactivated'] == 1
        assert statistics['events_unchanged'] == 1
        item = default_deployment.get_item(Key={'id': 'official:2:general-all-0'})['Item']
        assert item['is_active'] is False

    @patch.object(EventHubScraper, 'fetch_raw_fields')
    def test_snapshot_bucket_keeps_snapshot_in_s3(self, mock_fetch, default_deployment, monkeypatch):
        monkeypatch.setenv('SNAPSHOT_BUCKET', 'sync-state')
        s3 = boto3.client('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='sync-state')
        mock_fetch.return_value = listing('1')

        lambda_handler({}, None)
        response = lambda_handler({}, None)

        assert json.loads(response['body'])['statistics']['events_unchanged'] == 1
        body = s3.get_object(Bucket='sync-state', Key='cache/last-scrape.json')['Body'].read()
        assert json.loads(body)['totalEvents'] == 1
