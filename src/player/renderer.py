"""
Renderer boundary for the signage player.

The scheduler hands items to a Renderer. The IPC renderer publishes them to
the display process over ZeroMQ, and RendererEventListener relays that
process's "ended"/"error" events back to the scheduler.
"""

import threading
import time
from typing import Any, Dict, Optional, Protocol

import zmq

from src.common.ipc import Message, MessagePublisher, MessageSubscriber, MessageType
from src.common.logger import setup_logger

from .errors import RenderError
from .playlist import PlaylistItem

logger = setup_logger(__name__)


class Renderer:
    """Presents playlist items. Subclasses implement the actual output."""

    def present(
        self,
        item: PlaylistItem,
        fit_item: str,
        presentation_id: int,
        orientation_angle: int = 0
    ) -> None:
        """
        Show an item.

        Args:
            item: Item to show
            fit_item: Playlist fit mode ("FitXY" or a fill mode)
            presentation_id: Id to echo back with completion events
            orientation_angle: Screen rotation in degrees (0, 90, 180, 270)

        Raises:
            RenderError: If the item cannot be shown
        """
        raise NotImplementedError

    def clear(self) -> None:
        """Blank the screen."""
        raise NotImplementedError


class IpcRenderer(Renderer):
    """Publishes presentation commands to the display process."""

    DEFAULT_COMMAND_PORT = 5560

    def __init__(
        self,
        port: int = DEFAULT_COMMAND_PORT,
        publisher: Optional[MessagePublisher] = None
    ):
        """
        Initialize the renderer.

        Args:
            port: Port to publish commands on
            publisher: Existing publisher (one is bound on port if None)
        """
        self.port = port
        self._publisher = publisher or MessagePublisher(port=port, service_name="signage_player")

    def present(
        self,
        item: PlaylistItem,
        fit_item: str,
        presentation_id: int,
        orientation_angle: int = 0
    ) -> None:
        payload = {
            'presentation_id': presentation_id,
            'item': item.to_dict(),
            'fit_item': fit_item,
            'orientation_angle': orientation_angle,
        }
        try:
            self._publisher.publish(MessageType.PRESENT, payload)
        except zmq.ZMQError as e:
            raise RenderError(f"Could not send {item.filename} to the display: {e}") from e
        logger.debug("Presented %s (id=%d)", item.filename, presentation_id)

    def clear(self) -> None:
        self._publisher.publish(MessageType.CLEAR, {})

    def close(self) -> None:
        """Close the command socket."""
        self._publisher.close()


class PlaybackEventHandler(Protocol):
    """The scheduler methods the listener forwards events to."""

    def on_item_ended(self, presentation_id: Optional[int] = None) -> None:
        ...

    def on_item_error(self, error: Any, presentation_id: Optional[int] = None) -> None:
        ...


class RendererEventListener:
    """
    Listens for playback events from the display process.

    Handles two event types:
    - ended: an indeterminate-duration item finished playing
    - error: the current item failed to render
    """

    DEFAULT_EVENT_PORT = 5561

    def __init__(
        self,
        handler: PlaybackEventHandler,
        host: str = "localhost",
        port: int = DEFAULT_EVENT_PORT
    ):
        """
        Initialize the listener.

        Args:
            handler: Receives on_item_ended / on_item_error calls
            host: Host of the display process
            port: Port the display process publishes events on
        """
        self.host = host
        self.port = port
        self._handler = handler
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._subscriber: Optional[MessageSubscriber] = None

        # Statistics
        self._stats: Dict[str, Any] = {
            "ended_count": 0,
            "error_count": 0,
            "unknown_count": 0,
            "last_event_time": None
        }

        logger.info("RendererEventListener initialized (host=%s, port=%d)", host, port)

    def start(self) -> None:
        """
        Start listening for playback events.
        Runs in a background thread.
        """
        if self._running:
            logger.warning("RendererEventListener already running")
            return

        self._running = True
        self._thread = threading.Thread(
            target=self._listen_loop,
            name="RendererEventListener",
            daemon=True
        )
        self._thread.start()
        logger.info("RendererEventListener started on %s:%d", self.host, self.port)

    def stop(self) -> None:
        """Stop listening for playback events."""
        if not self._running:
            return

        logger.info("Stopping RendererEventListener...")
        self._running = False

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)

        if self._subscriber:
            try:
                self._subscriber.close()
            except Exception as e:
                logger.error("Error closing subscriber: %s", e)
            self._subscriber = None

        logger.info("RendererEventListener stopped")

    def _listen_loop(self) -> None:
        """Main listening loop (runs in background thread)."""
        try:
            self._subscriber = MessageSubscriber(
                host=self.host,
                port=self.port,
                service_name="signage_player"
            )
            self._subscriber.subscribe_to(MessageType.ITEM_ENDED)
            self._subscriber.subscribe_to(MessageType.ITEM_ERROR)
        except Exception as e:
            logger.error("Failed to initialize subscriber: %s", e)
            self._running = False
            return

        while self._running:
            try:
                message = self._subscriber.receive(timeout_ms=1000)

                if message is not None:
                    self.handle_message(message)

            except Exception as e:
                logger.error("Error in renderer event loop: %s", e)
                # Brief pause before retry
                time.sleep(0.5)

    def handle_message(self, message: Message) -> None:
        """
        Route a received event to the scheduler.

        Args:
            message: The received Message object
        """
        self._stats["last_event_time"] = time.time()
        presentation_id = message.data.get('presentation_id')

        if message.msg_type == MessageType.ITEM_ENDED:
            self._stats["ended_count"] += 1
            self._handler.on_item_ended(presentation_id)
        elif message.msg_type == MessageType.ITEM_ERROR:
            self._stats["error_count"] += 1
            error = message.data.get('error', 'render error')
            logger.warning("Display reported error for presentation %s: %s", presentation_id, error)
            self._handler.on_item_error(error, presentation_id)
        else:
            self._stats["unknown_count"] += 1
            logger.debug("Ignoring %s message", message.msg_type.value)

    @property
    def is_running(self) -> bool:
        """Check if listener is running."""
        return self._running

    def get_status(self) -> Dict[str, Any]:
        """Get listener statistics."""
        return {
            "running": self._running,
            "host": self.host,
            "port": self.port,
            **self._stats
        }
