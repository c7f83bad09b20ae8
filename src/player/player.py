"""
SignagePlayer - Main player orchestrator for the signage screen.
Coordinates playlist sync, playback scheduling, renderer IPC,
and status reporting.
"""

import signal
import sys
import threading
from typing import Any, Dict, Optional

from src.common.api_client import ApiClient
from src.common.config import Config, get_config
from src.common.logger import configure_logging, setup_logger
from src.common.storage import KeyValueStore

from .playback_scheduler import PlaybackScheduler, SchedulerState
from .playlist import Playlist
from .renderer import IpcRenderer, Renderer, RendererEventListener
from .status_reporter import StatusReporter
from .sync_service import SyncService

logger = setup_logger(__name__)


class SignagePlayer:
    """
    Main player orchestrator that:
    1. Loads configuration and the persistent store
    2. Connects the scheduler to the display process
    3. Plays the saved playlist, then keeps it in sync with the server
    4. Reports screen status while paired
    5. Handles coordinated shutdown
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        renderer: Optional[Renderer] = None
    ):
        """
        Initialize the SignagePlayer orchestrator.

        Args:
            config: Configuration (uses the global config if None)
            renderer: Renderer to present items with (IpcRenderer if None)
        """
        self._config = config
        self._renderer = renderer

        self._running = False

        # Components (initialized in start())
        self._store: Optional[KeyValueStore] = None
        self._api_client: Optional[ApiClient] = None
        self._scheduler: Optional[PlaybackScheduler] = None
        self._sync_service: Optional[SyncService] = None
        self._event_listener: Optional[RendererEventListener] = None
        self._status_reporter: Optional[StatusReporter] = None

        # Main loop event
        self._stop_event = threading.Event()

    # -------------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------------

    def _load_config(self) -> bool:
        """
        Load configuration and open the persistent store.

        Returns:
            True if loaded successfully, False otherwise
        """
        try:
            if self._config is None:
                self._config = get_config()

            configure_logging(self._config.log_level)
            self._store = KeyValueStore(self._config.store_path)

            logger.info(
                "Configuration loaded - api: %s, store: %s",
                self._config.api_base_url,
                self._config.store_path
            )
            return True

        except Exception as e:
            logger.error("Failed to load configuration: %s", e)
            return False

    def _initialize_playback(self) -> bool:
        """
        Create the renderer, scheduler and renderer event listener.

        Returns:
            True if initialized successfully, False otherwise
        """
        try:
            if self._renderer is None:
                self._renderer = IpcRenderer(
                    port=int(self._config.get('ipc.renderer_command_port', 5560))
                )

            self._scheduler = PlaybackScheduler(
                renderer=self._renderer,
                skip_retry_delay=float(self._config.get('playback.skip_retry_delay', 1.0)),
                on_state_changed=self._on_scheduler_state_changed
            )

            self._event_listener = RendererEventListener(
                handler=self._scheduler,
                host=self._config.get('ipc.renderer_host', 'localhost'),
                port=int(self._config.get('ipc.renderer_event_port', 5561))
            )
            return True

        except Exception as e:
            logger.error("Failed to initialize playback: %s", e)
            return False

    def _initialize_sync_service(self) -> bool:
        """
        Create the API client and playlist sync service.

        Returns:
            True if initialized successfully, False otherwise
        """
        try:
            self._api_client = ApiClient(
                base_url=self._config.api_base_url,
                app_version=self._config.app_version,
                timeout=self._config.api_timeout
            )

            self._sync_service = SyncService(
                api_client=self._api_client,
                store=self._store,
                default_interval=float(self._config.get(
                    'sync.default_interval', SyncService.DEFAULT_CHECK_INTERVAL)),
                startup_delay=float(self._config.get(
                    'sync.startup_delay', SyncService.DEFAULT_STARTUP_DELAY)),
                resync_delay=float(self._config.get(
                    'sync.resync_delay', SyncService.DEFAULT_RESYNC_DELAY)),
                max_staging_attempts=int(self._config.get(
                    'sync.max_staging_attempts', SyncService.DEFAULT_MAX_STAGING_ATTEMPTS)),
                on_playlist_changed=self._on_playlist_changed,
                on_download_failed=self._on_download_failed
            )
            return True

        except Exception as e:
            logger.error("Failed to initialize sync service: %s", e)
            return False

    def _initialize_status_reporter(self) -> bool:
        """
        Create the status reporter.

        Returns:
            True if initialized successfully, False otherwise
        """
        try:
            self._status_reporter = StatusReporter(
                api_client=self._api_client,
                store=self._store,
                interval=float(self._config.get('status.interval', StatusReporter.DEFAULT_INTERVAL)),
                startup_delay=float(self._config.get(
                    'status.startup_delay', StatusReporter.DEFAULT_STARTUP_DELAY)),
                software_version=self._config.app_version
            )
            self._status_reporter.set_status_callback(self._get_screen_status)
            return True

        except Exception as e:
            logger.error("Failed to initialize status reporter: %s", e)
            return False

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def _on_playlist_changed(self, playlist: Playlist) -> None:
        """Hand a newly accepted playlist to the scheduler."""
        logger.info("Playlist changed - %d items", len(playlist.items))
        if self._scheduler:
            self._scheduler.set_playlist(playlist)

    def _on_download_failed(self, error: Exception) -> None:
        """Keep playing the accepted playlist; the next cycle retries."""
        logger.warning("Playlist update failed, keeping current playlist: %s", error)

    def _on_scheduler_state_changed(
        self,
        old_state: SchedulerState,
        new_state: SchedulerState
    ) -> None:
        if new_state == SchedulerState.IDLE:
            logger.info("Nothing to display - screen blank until the next playlist")

    def _get_screen_status(self) -> Dict[str, Any]:
        """Status fields for the periodic status report."""
        current = self._scheduler.current_item if self._scheduler else None
        playlist = self._sync_service.current_playlist if self._sync_service else None

        return {
            "status": self._sync_service.status_code if self._sync_service else "unknown",
            "current_item": current.filename if current else None,
            "playlist_items": len(playlist.items) if playlist else 0,
        }

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def start(self) -> bool:
        """
        Start the player.

        Startup flow:
        1. Load configuration and store
        2. Initialize playback components
        3. Initialize sync service and status reporter
        4. Start listening for renderer events
        5. Start sync (plays the saved playlist, if any) and status reporting

        Returns:
            True if startup successful, False otherwise
        """
        if self._running:
            logger.warning("Player already running")
            return True

        logger.info("=" * 60)
        logger.info("Starting SignagePlayer")
        logger.info("=" * 60)

        if not self._load_config():
            logger.error("Failed to load config - cannot start")
            return False

        if not self._initialize_playback():
            logger.error("Failed to initialize playback")
            return False

        if not self._initialize_sync_service():
            logger.error("Failed to initialize sync service")
            return False

        if not self._initialize_status_reporter():
            logger.warning("Failed to initialize status reporter - continuing without")

        self._event_listener.start()
        self._sync_service.start()

        if self._status_reporter:
            self._status_reporter.start()

        self._running = True
        self._stop_event.clear()

        logger.info("SignagePlayer started successfully")
        return True

    def stop(self) -> None:
        """Stop the player and all services."""
        if not self._running:
            return

        logger.info("Stopping SignagePlayer...")

        self._running = False
        self._stop_event.set()

        if self._status_reporter:
            self._status_reporter.stop()

        if self._sync_service:
            self._sync_service.stop()

        if self._scheduler:
            self._scheduler.stop()

        if self._event_listener:
            self._event_listener.stop()

        if isinstance(self._renderer, IpcRenderer):
            self._renderer.close()

        if self._api_client:
            self._api_client.close()

        logger.info("SignagePlayer stopped")

    def run(self) -> None:
        """
        Run the player (blocking).

        This method blocks until stop() is called or a signal is received.
        Use this for running as a systemd service or main application.
        """
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        if not self.start():
            logger.error("Failed to start player")
            sys.exit(1)

        logger.info("Player running - press Ctrl+C to stop")

        try:
            while self._running:
                if self._stop_event.wait(timeout=1.0):
                    break
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")

        self.stop()

    def _signal_handler(self, signum: int, frame) -> None:
        """Handle system signals for graceful shutdown."""
        sig_name = signal.Signals(signum).name
        logger.info("Received signal: %s", sig_name)
        self._stop_event.set()

    @property
    def is_running(self) -> bool:
        """Check if player is running."""
        return self._running

    @property
    def scheduler(self) -> Optional[PlaybackScheduler]:
        """Get the playback scheduler."""
        return self._scheduler

    @property
    def sync_service(self) -> Optional[SyncService]:
        """Get the playlist sync service."""
        return self._sync_service

    def get_status(self) -> Dict[str, Any]:
        """
        Get comprehensive player status.

        Returns:
            Dictionary with status from all components
        """
        status: Dict[str, Any] = {
            "running": self._running,
            "playback": None,
            "sync": None,
            "renderer_events": None,
            "status_report": None,
        }

        if self._scheduler:
            status["playback"] = self._scheduler.get_status()

        if self._sync_service:
            status["sync"] = self._sync_service.get_status()

        if self._event_listener:
            status["renderer_events"] = self._event_listener.get_status()

        if self._status_reporter:
            status["status_report"] = self._status_reporter.get_last_report_info()

        return status


# Global player instance
_global_player: Optional[SignagePlayer] = None


def get_signage_player(config: Optional[Config] = None) -> SignagePlayer:
    """
    Get the global SignagePlayer instance.

    Args:
        config: Configuration (only used on first call)

    Returns:
        SignagePlayer instance
    """
    global _global_player

    if _global_player is None:
        _global_player = SignagePlayer(config=config)

    return _global_player


def main():
    """Main entry point for running the player."""
    logger.info("Signage player starting...")

    player = get_signage_player()
    player.run()


if __name__ == "__main__":
    main()
