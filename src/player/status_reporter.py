"""
Status Reporter - Reports screen status to the server at regular intervals.
Sends the staging status code and playback state every status.interval seconds.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

from src.common.api_client import ApiClient
from src.common.logger import setup_logger
from src.common.storage import KEY_SCREEN_ID, KEY_SCREEN_TOKEN, KeyValueStore

logger = setup_logger(__name__)


class StatusReporter:
    """Posts screen status to the server while the screen is paired."""

    DEFAULT_INTERVAL = 60  # seconds between reports
    DEFAULT_STARTUP_DELAY = 1.5

    def __init__(
        self,
        api_client: ApiClient,
        store: KeyValueStore,
        interval: float = DEFAULT_INTERVAL,
        startup_delay: float = DEFAULT_STARTUP_DELAY,
        software_version: str = ""
    ):
        """
        Initialize status reporter.

        Args:
            api_client: Client used to post the status
            store: Holds the screen credentials
            interval: Seconds between reports (default: 60)
            startup_delay: Seconds before the first report
            software_version: Version string included in every report
        """
        self._api = api_client
        self._store = store
        self.interval = interval
        self.startup_delay = startup_delay
        self.software_version = software_version

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._status_callback: Optional[Callable[[], Dict[str, Any]]] = None

        # Track last report
        self._last_report_time: Optional[float] = None
        self._last_report_success = False
        self._consecutive_failures = 0

        # Startup time for uptime calculation
        self._start_time = time.time()

    def set_status_callback(self, callback: Callable[[], Dict[str, Any]]) -> None:
        """
        Set callback function for getting current player status.

        The callback should return a dict with keys:
        - status: str ("ok" or "download_failed")
        - current_item: str (filename on screen)
        - playlist_items: int (items in the accepted playlist)

        Args:
            callback: Function that returns current status dict
        """
        self._status_callback = callback

    def _get_uptime(self) -> int:
        """Get process uptime in seconds."""
        return int(time.time() - self._start_time)

    def collect_status(self) -> Dict[str, Any]:
        """
        Build the status report body.

        Returns:
            Dictionary in the server's camelCase format
        """
        player_status: Dict[str, Any] = {}
        if self._status_callback:
            try:
                player_status = self._status_callback() or {}
            except Exception as e:
                logger.error("Error getting player status: %s", e)

        return {
            "status": player_status.get("status", "unknown"),
            "currentItem": player_status.get("current_item") or "",
            "playlistItems": player_status.get("playlist_items", 0),
            "softwareVersion": self.software_version,
            "uptimeSeconds": self._get_uptime(),
        }

    def send_status(self) -> bool:
        """
        Send one status report.

        POST {base_url}/screens/{screen_id}/status

        Returns:
            True if the report was accepted, False otherwise
        """
        screen_id = self._store.get(KEY_SCREEN_ID)
        screen_token = self._store.get(KEY_SCREEN_TOKEN)
        if not screen_id or not screen_token:
            logger.debug("Skipping status report: screen not paired")
            return False

        body = self.collect_status()

        try:
            response = self._api.send_screen_status(screen_id, screen_token, body)
        except requests.Timeout:
            logger.warning("Status report timeout - server unreachable")
            self._record(False)
            return False
        except requests.RequestException as e:
            logger.warning("Status report error: %s", e)
            self._record(False)
            return False

        if response.status not in (200, 201, 204):
            logger.warning("Status report failed: HTTP %d", response.status)
            self._record(False)
            return False

        logger.debug("Status report sent: %s", body["status"])
        self._record(True)
        return True

    def _record(self, success: bool) -> None:
        self._last_report_time = time.time()
        self._last_report_success = success
        if success:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1

    def _report_loop(self) -> None:
        """Background thread loop for sending reports."""
        logger.info("Status reporter started (interval: %ss)", self.interval)

        if self._stop_event.wait(self.startup_delay):
            return

        while not self._stop_event.is_set():
            try:
                self.send_status()
            except Exception as e:
                logger.error("Unexpected error in status reporter: %s", e)

            self._stop_event.wait(self.interval)

    def start(self) -> None:
        """Start the status reporter background thread."""
        if self.is_running():
            logger.warning("Status reporter already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._report_loop,
            name="StatusReporter",
            daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the status reporter."""
        if not self.is_running():
            return

        self._stop_event.set()

        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

        logger.info("Status reporter stopped")

    def is_running(self) -> bool:
        """Check if status reporter is running."""
        return self._thread is not None and self._thread.is_alive()

    def get_last_report_info(self) -> Dict[str, Any]:
        """
        Get information about the last report.

        Returns:
            Dictionary with last report details
        """
        return {
            "last_time": self._last_report_time,
            "last_success": self._last_report_success,
            "consecutive_failures": self._consecutive_failures,
        }
