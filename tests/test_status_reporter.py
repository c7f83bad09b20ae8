"""
Tests for StatusReporter.
"""

import time
from unittest import mock

import pytest
import requests

from src.common.api_client import ApiClient, ApiResponse
from src.common.storage import KEY_SCREEN_ID
from src.player.status_reporter import StatusReporter


@pytest.fixture
def api():
    """API client mock accepting status reports."""
    client = mock.MagicMock(spec=ApiClient)
    client.send_screen_status.return_value = ApiResponse(status=200)
    return client


@pytest.fixture
def reporter(api, store):
    """StatusReporter with a fixed player status."""
    rep = StatusReporter(api, store, interval=60, startup_delay=0, software_version='34')
    rep.set_status_callback(lambda: {
        'status': 'ok',
        'current_item': 'a.jpg',
        'playlist_items': 3,
    })
    yield rep
    rep.stop()


class TestStatusReporter:
    """Tests for building and sending reports."""

    def test_collect_status(self, reporter):
        """Test the report body uses the server's field names."""
        body = reporter.collect_status()
        assert body['status'] == 'ok'
        assert body['currentItem'] == 'a.jpg'
        assert body['playlistItems'] == 3
        assert body['softwareVersion'] == '34'
        assert body['uptimeSeconds'] >= 0

    def test_collect_without_callback(self, api, store):
        """Test defaults when no status source is set."""
        body = StatusReporter(api, store).collect_status()
        assert body['status'] == 'unknown'
        assert body['currentItem'] == ''

    def test_callback_error_contained(self, reporter):
        """Test a failing status source still produces a report."""
        reporter.set_status_callback(mock.MagicMock(side_effect=RuntimeError("boom")))
        assert reporter.collect_status()['status'] == 'unknown'

    def test_send_status(self, reporter, api):
        """Test a report is posted with the stored credentials."""
        assert reporter.send_status() is True

        screen_id, token, body = api.send_screen_status.call_args[0]
        assert (screen_id, token) == ('screen-001', 'token-abc')
        assert body['currentItem'] == 'a.jpg'
        assert reporter.get_last_report_info()['last_success'] is True

    def test_unpaired_skips(self, reporter, api, store):
        """Test nothing is sent without credentials."""
        store.remove(KEY_SCREEN_ID)
        assert reporter.send_status() is False
        api.send_screen_status.assert_not_called()

    def test_http_error_counted(self, reporter, api):
        """Test a rejected report counts as a failure."""
        api.send_screen_status.return_value = ApiResponse(status=500)
        assert reporter.send_status() is False
        assert reporter.get_last_report_info()['consecutive_failures'] == 1

    def test_transport_error_counted(self, reporter, api):
        """Test network errors are contained."""
        api.send_screen_status.side_effect = requests.ConnectionError("offline")
        assert reporter.send_status() is False
        assert reporter.send_status() is False
        assert reporter.get_last_report_info()['consecutive_failures'] == 2

    def test_start_sends_and_stops(self, reporter, api):
        """Test the background loop reports and stops promptly."""
        reporter.start()
        deadline = time.time() + 2
        while not api.send_screen_status.called and time.time() < deadline:
            time.sleep(0.01)

        assert api.send_screen_status.called
        assert reporter.is_running()

        started = time.time()
        reporter.stop()
        assert time.time() - started < 2
        assert not reporter.is_running()
