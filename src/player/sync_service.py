"""
Playlist Sync Service for the signage player.
Periodically downloads the screen playlist, compares it with the accepted one,
stages and persists changes, and notifies listeners.
"""

import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests

from src.common.api_client import ApiClient
from src.common.logger import setup_logger
from src.common.storage import KEY_PLAYLIST, KEY_SCREEN_ID, KEY_SCREEN_TOKEN, KeyValueStore
from src.common.timers import TimerFactory, TimerHandle, start_timer

from .errors import (
    FetchFailedError,
    PairingMissingError,
    PlaylistSyncError,
    StagingExhaustedError,
    StagingFailedError,
)
from .playlist import Playlist


logger = setup_logger(__name__)


def ensure_playlist_files(playlist: Playlist) -> None:
    """
    Default stager: make a playlist's media ready for display.

    Media download is handled outside the player, so every playlist
    is accepted as ready.
    """
    logger.debug("Staging playlist with %d items", len(playlist.items))


class SyncService:
    """
    Keeps the accepted playlist in step with the server.

    Each cycle fetches the playlist, compares it with the accepted one and,
    when it changed, stages, persists and publishes it. Failed staging of
    the same playlist is retried on later cycles up to max_staging_attempts.
    Only one staging runs at a time; a cycle that finds staging busy asks
    for a quick follow-up check instead.
    """

    # Fallback when the accepted playlist has no check interval
    DEFAULT_CHECK_INTERVAL = 320

    # Delay before the first check after start()
    DEFAULT_STARTUP_DELAY = 2.5

    # Delay of the follow-up check requested while staging was busy
    DEFAULT_RESYNC_DELAY = 2

    # Give up on a playlist after this many failed staging attempts
    DEFAULT_MAX_STAGING_ATTEMPTS = 3

    STATUS_OK = "ok"
    STATUS_DOWNLOAD_FAILED = "download_failed"

    def __init__(
        self,
        api_client: ApiClient,
        store: KeyValueStore,
        stager: Callable[[Playlist], None] = ensure_playlist_files,
        timer_factory: Optional[TimerFactory] = None,
        default_interval: float = DEFAULT_CHECK_INTERVAL,
        startup_delay: float = DEFAULT_STARTUP_DELAY,
        resync_delay: float = DEFAULT_RESYNC_DELAY,
        max_staging_attempts: int = DEFAULT_MAX_STAGING_ATTEMPTS,
        on_playlist_changed: Optional[Callable[[Playlist], None]] = None,
        on_download_failed: Optional[Callable[[Exception], None]] = None
    ):
        """
        Initialize the sync service.

        Args:
            api_client: Client used to download the playlist
            store: Holds screen credentials and the persisted playlist
            stager: Prepares a new playlist for display; raises on failure
            timer_factory: Creates one-shot timers (threading.Timer if None)
            default_interval: Seconds between checks when the playlist sets none
            startup_delay: Seconds before the first check after start()
            resync_delay: Seconds before a follow-up check deferred by staging
            max_staging_attempts: Failed stagings tolerated for one playlist
            on_playlist_changed: Callback when a new playlist is accepted
            on_download_failed: Callback when a cycle fails
        """
        self._api = api_client
        self._store = store
        self._stager = stager
        self._timer_factory = timer_factory or start_timer
        self.default_interval = default_interval
        self.startup_delay = startup_delay
        self.resync_delay = resync_delay
        self.max_staging_attempts = max_staging_attempts

        # Listeners
        self._playlist_changed_listeners: List[Callable[[Playlist], None]] = []
        self._download_failed_listeners: List[Callable[[Exception], None]] = []
        self._download_started_listeners: List[Callable[[], None]] = []
        if on_playlist_changed:
            self._playlist_changed_listeners.append(on_playlist_changed)
        if on_download_failed:
            self._download_failed_listeners.append(on_download_failed)

        # Playlist state
        self._lock = threading.Lock()
        self._accepted: Optional[Playlist] = None
        self._pending: Optional[Playlist] = None
        self._staging_failures = 0
        self._staging = False
        self._resync_requested = False
        self._status_code = self.STATUS_OK

        # Timer state
        self._running = False
        self._timer: Optional[TimerHandle] = None
        self._timer_generation = 0
        self._next_check_delay: Optional[float] = None

        # Sync statistics
        self._last_sync_time: Optional[datetime] = None
        self._last_sync_success = False
        self._consecutive_failures = 0
        self._total_syncs = 0
        self._total_failures = 0

        logger.info(
            "SyncService initialized - base_url: %s, default interval: %ss",
            getattr(api_client, 'base_url', None),
            default_interval
        )

    # -------------------------------------------------------------------------
    # Listener registration
    # -------------------------------------------------------------------------

    def add_playlist_changed_listener(self, callback: Callable[[Playlist], None]) -> None:
        """Register a callback for newly accepted playlists."""
        self._playlist_changed_listeners.append(callback)

    def remove_playlist_changed_listener(self, callback: Callable[[Playlist], None]) -> None:
        """Unregister a playlist-changed callback."""
        if callback in self._playlist_changed_listeners:
            self._playlist_changed_listeners.remove(callback)

    def add_download_failed_listener(self, callback: Callable[[Exception], None]) -> None:
        """Register a callback for failed sync cycles."""
        self._download_failed_listeners.append(callback)

    def add_download_started_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run at the start of every sync cycle."""
        self._download_started_listeners.append(callback)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Load the persisted playlist and schedule the first check."""
        if self._running:
            logger.warning("Sync service already running")
            return

        self._running = True
        try:
            self._load_persisted_playlist()
        finally:
            self._schedule_next(self.startup_delay)

        logger.info("Sync service started - first check in %ss", self.startup_delay)

    def stop(self) -> None:
        """Cancel the pending check."""
        if not self._running:
            return

        logger.info("Stopping sync service...")
        with self._lock:
            self._running = False
            self._cancel_timer()

        logger.info("Sync service stopped")

    def _load_persisted_playlist(self) -> None:
        """Accept the playlist saved by a previous run, if any."""
        blob = self._store.get(KEY_PLAYLIST)
        if not blob:
            logger.info("No saved playlist found")
            return

        try:
            playlist = Playlist.from_json(blob)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable saved playlist: %s", e)
            return

        with self._lock:
            self._accepted = playlist

        logger.info("Loaded saved playlist with %d items", len(playlist.items))

        if playlist.has_items_to_display():
            self._notify_if_running(playlist)

    # -------------------------------------------------------------------------
    # Sync cycle
    # -------------------------------------------------------------------------

    def sync_now(self) -> bool:
        """
        Run one fetch-compare-stage cycle and schedule the next one.

        Failures are logged and passed to download-failed listeners; they
        never stop the loop.

        Returns:
            True if the cycle completed without failure
        """
        logger.info("Checking for playlist updates...")
        with self._lock:
            self._total_syncs += 1
        self._notify_download_started()

        deferred = False
        success = False

        try:
            candidate = self._fetch_playlist()
            deferred = self._process_candidate(candidate)
            success = True
        except PairingMissingError as e:
            logger.info("Skipping playlist check: %s", e)
            self._record_failure()
        except PlaylistSyncError as e:
            logger.error("Playlist sync failed: %s", e)
            self._record_failure()
            self._notify_download_failed(e)
        except Exception as e:
            logger.error("Sync failed with error: %s", e)
            self._record_failure()
            self._notify_download_failed(e)

        if success:
            self._record_success()

        # A deferred cycle leaves rescheduling to the staging in flight
        if not deferred:
            self._schedule_next(self._next_delay())

        return success

    def _fetch_playlist(self) -> Playlist:
        """
        Download the playlist for this screen.

        Raises:
            PairingMissingError: If screen credentials are not stored
            FetchFailedError: On transport error, non-200 status or bad body
        """
        screen_id = self._store.get(KEY_SCREEN_ID)
        screen_token = self._store.get(KEY_SCREEN_TOKEN)

        if not screen_id or not screen_token:
            raise PairingMissingError("Screen not paired - missing screenId or screenToken")

        logger.debug("Fetching playlist for screen: %s", screen_id)

        try:
            response = self._api.fetch_playlist(screen_id, screen_token)
        except requests.RequestException as e:
            raise FetchFailedError(f"Playlist request failed: {e}") from e

        if response.status != 200:
            raise FetchFailedError(
                f"Failed to fetch playlist: {response.status}",
                status_code=response.status
            )

        if not isinstance(response.data, dict):
            raise FetchFailedError("Playlist response is not a JSON object", status_code=200)

        try:
            playlist = Playlist.from_dict(response.data)
        except (TypeError, ValueError) as e:
            raise FetchFailedError(f"Malformed playlist: {e}", status_code=200) from e

        logger.debug(
            "Received playlist: %d items, orientation %s, check interval %s",
            len(playlist.items),
            playlist.orientation,
            playlist.check_for_updates_interval
        )
        return playlist

    def _process_candidate(self, candidate: Playlist) -> bool:
        """
        Compare a downloaded playlist with the accepted one and stage it if new.

        Returns:
            True if staging was busy and the candidate was deferred

        Raises:
            StagingFailedError: If staging failed and may be retried
            StagingExhaustedError: If this playlist failed staging too often
        """
        with self._lock:
            accepted = self._accepted

        if candidate.equals(accepted):
            logger.info("Playlist unchanged")
            return False

        with self._lock:
            if self._staging:
                self._resync_requested = True
                logger.info("Already staging a playlist - will check again when done")
                return True

            self._staging = True
            if self._pending is not None and candidate.equals(self._pending):
                logger.info(
                    "Retrying playlist that failed staging %d time(s)",
                    self._staging_failures
                )
            else:
                logger.info("New playlist found")
                self._pending = candidate
                self._staging_failures = 0
            failures = self._staging_failures

        try:
            if failures >= self.max_staging_attempts:
                raise StagingExhaustedError(
                    "Too many attempts to stage this playlist",
                    attempts=failures
                )
            self._stage(candidate)
        finally:
            with self._lock:
                self._staging = False

        self._notify_if_running(candidate)
        return False

    def _stage(self, candidate: Playlist) -> None:
        """
        Prepare, persist and accept a new playlist.

        Raises:
            StagingFailedError: If staging failed and may be retried
            StagingExhaustedError: If this failure used up the last attempt
        """
        try:
            self._stager(candidate)
            self._store.set(KEY_PLAYLIST, candidate.to_json())
        except Exception as e:
            with self._lock:
                self._staging_failures += 1
                failures = self._staging_failures
                self._status_code = self.STATUS_DOWNLOAD_FAILED

            if failures >= self.max_staging_attempts:
                raise StagingExhaustedError(
                    f"Staging failed {failures} times, giving up on this playlist: {e}",
                    attempts=failures
                ) from e
            raise StagingFailedError(f"Staging failed (attempt {failures}): {e}") from e

        with self._lock:
            self._accepted = candidate
            self._pending = None
            self._staging_failures = 0
            self._status_code = self.STATUS_OK

        logger.info("Playlist ready for display (%d items)", len(candidate.items))

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _next_delay(self) -> float:
        """Get the delay until the next cycle, consuming a pending resync."""
        with self._lock:
            if self._resync_requested and not self._staging:
                self._resync_requested = False
                logger.info("Resync requested - checking again in %ss", self.resync_delay)
                return self.resync_delay
            accepted = self._accepted

        interval = accepted.check_for_updates_interval if accepted else None
        try:
            interval = float(interval)
        except (TypeError, ValueError):
            interval = 0

        if interval <= 0:
            return self.default_interval
        return interval

    def _schedule_next(self, delay: float) -> None:
        """Replace any pending check with one after delay seconds."""
        with self._lock:
            if not self._running:
                return

            self._cancel_timer()
            generation = self._timer_generation
            self._timer = self._timer_factory(delay, lambda: self._on_timer(generation))
            self._next_check_delay = delay

        logger.debug("Next playlist check in %s seconds", delay)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._timer_generation += 1

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if not self._running or generation != self._timer_generation:
                return
            self._timer = None
        self.sync_now()

    # -------------------------------------------------------------------------
    # Notifications and statistics
    # -------------------------------------------------------------------------

    def _notify_if_running(self, playlist: Playlist) -> None:
        """Publish a playlist unless stop() was called while it was being prepared."""
        with self._lock:
            running = self._running

        if not running:
            logger.info("Sync service stopped - not publishing playlist")
            return

        self._notify_playlist_changed(playlist)

    def _notify_playlist_changed(self, playlist: Playlist) -> None:
        for callback in list(self._playlist_changed_listeners):
            try:
                callback(playlist)
            except Exception as e:
                logger.error("Error in playlist changed callback: %s", e)

    def _notify_download_failed(self, error: Exception) -> None:
        for callback in list(self._download_failed_listeners):
            try:
                callback(error)
            except Exception as e:
                logger.error("Error in download failed callback: %s", e)

    def _notify_download_started(self) -> None:
        for callback in list(self._download_started_listeners):
            try:
                callback()
            except Exception as e:
                logger.error("Error in download started callback: %s", e)

    def _record_success(self) -> None:
        """Record a successful sync."""
        with self._lock:
            self._last_sync_time = datetime.now()
            self._last_sync_success = True
            self._consecutive_failures = 0

    def _record_failure(self) -> None:
        """Record a failed sync."""
        with self._lock:
            self._last_sync_time = datetime.now()
            self._last_sync_success = False
            self._consecutive_failures += 1
            self._total_failures += 1

    @property
    def current_playlist(self) -> Optional[Playlist]:
        """Get the last accepted playlist."""
        with self._lock:
            return self._accepted

    @property
    def status_code(self) -> str:
        """Get the staging status code ("ok" or "download_failed")."""
        with self._lock:
            return self._status_code

    @property
    def is_running(self) -> bool:
        """Check if sync service is running."""
        return self._running

    @property
    def is_staging(self) -> bool:
        """Check if a playlist is being staged."""
        with self._lock:
            return self._staging

    @property
    def last_sync_time(self) -> Optional[datetime]:
        """Get time of last sync attempt."""
        return self._last_sync_time

    @property
    def last_sync_success(self) -> bool:
        """Check if last sync was successful."""
        return self._last_sync_success

    @property
    def consecutive_failures(self) -> int:
        """Get number of consecutive sync failures."""
        return self._consecutive_failures

    @property
    def next_check_delay(self) -> Optional[float]:
        """Get the delay used for the most recently scheduled check."""
        return self._next_check_delay

    def get_status(self) -> Dict[str, Any]:
        """
        Get sync service status for reporting.

        Returns:
            Dictionary with sync status information
        """
        with self._lock:
            accepted = self._accepted
            return {
                'running': self._running,
                'status_code': self._status_code,
                'staging': self._staging,
                'staging_failures': self._staging_failures,
                'resync_requested': self._resync_requested,
                'last_sync_time': self._last_sync_time.isoformat() if self._last_sync_time else None,
                'last_sync_success': self._last_sync_success,
                'consecutive_failures': self._consecutive_failures,
                'total_syncs': self._total_syncs,
                'total_failures': self._total_failures,
                'next_check_delay': self._next_check_delay,
                'playlist_items': len(accepted.items) if accepted else 0,
            }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"SyncService(base_url={getattr(self._api, 'base_url', None)}, "
            f"running={self._running})"
        )
