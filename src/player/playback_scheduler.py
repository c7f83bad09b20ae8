"""
Playback Scheduler for the signage player.
Walks a playlist's active items, timing images and waiting on videos.
"""

import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from src.common.logger import setup_logger
from src.common.timers import TimerFactory, TimerHandle, start_timer

from .errors import StateTransitionError
from .playlist import MediaType, Playlist, PlaylistItem
from .renderer import Renderer

logger = setup_logger(__name__)


class SchedulerState(Enum):
    """Represents the current state of the scheduler."""
    UNINITIALIZED = "uninitialized"  # No playlist yet, or stopped
    IDLE = "idle"                    # Playlist has nothing to display
    RUNNING = "running"              # Cycling through items


class PlaybackScheduler:
    """
    Presentation state machine for one screen.

    Handles two kinds of items:
    - finite duration (images): shown for display_duration, advanced by a timer
    - indeterminate duration (videos): advanced when the renderer reports
      the item ended or failed

    Any other file type is skipped. Replacing the playlist or stopping
    cancels the pending timer and turns late renderer events into no-ops.

    Valid transitions:
    - UNINITIALIZED -> IDLE / RUNNING (on first playlist)
    - IDLE <-> RUNNING (on playlist replacement)
    - IDLE / RUNNING -> UNINITIALIZED (on stop)
    """

    VALID_TRANSITIONS: Dict[SchedulerState, List[SchedulerState]] = {
        SchedulerState.UNINITIALIZED: [SchedulerState.IDLE, SchedulerState.RUNNING],
        SchedulerState.IDLE: [SchedulerState.RUNNING, SchedulerState.UNINITIALIZED],
        SchedulerState.RUNNING: [SchedulerState.IDLE, SchedulerState.UNINITIALIZED],
    }

    FINITE_TYPES = frozenset({MediaType.IMAGE})
    INDETERMINATE_TYPES = frozenset({MediaType.VIDEO})

    # Pause after a full pass over items that could not be presented
    DEFAULT_SKIP_RETRY_DELAY = 1.0

    def __init__(
        self,
        renderer: Renderer,
        timer_factory: Optional[TimerFactory] = None,
        skip_retry_delay: float = DEFAULT_SKIP_RETRY_DELAY,
        on_state_changed: Optional[Callable[[SchedulerState, SchedulerState], None]] = None
    ):
        """
        Initialize the scheduler.

        Args:
            renderer: Renderer that presents items
            timer_factory: Creates one-shot timers (threading.Timer if None)
            skip_retry_delay: Seconds to wait after a full pass of skipped items
            on_state_changed: Callback when state changes (old_state, new_state)
        """
        self._renderer = renderer
        self._timer_factory = timer_factory or start_timer
        self._skip_retry_delay = skip_retry_delay
        self._on_state_changed = on_state_changed

        self._lock = threading.RLock()
        self._state = SchedulerState.UNINITIALIZED
        self._playlist: Optional[Playlist] = None
        self._current_item: Optional[PlaylistItem] = None

        # Pending wait state; _generation invalidates stale timer callbacks
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._presentation_id = 0
        self._waiting_id: Optional[int] = None
        self._presenting = False
        self._completed_while_presenting = False

        # Statistics
        self._items_presented = 0
        self._items_skipped = 0
        self._render_errors = 0

        logger.info("PlaybackScheduler initialized")

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def set_playlist(self, playlist: Optional[Playlist]) -> None:
        """
        Start cycling through a new playlist.

        The scheduler owns the playlist from here on and initializes its
        rotation. Anything pending for the previous playlist is cancelled.

        Args:
            playlist: Playlist to play (None behaves like an empty playlist)
        """
        with self._lock:
            self._cancel_pending()
            self._playlist = playlist
            self._current_item = None

            if playlist is not None and playlist.has_items_to_display():
                playlist.initialize()
                logger.info(
                    "Playing playlist with %d active items (shuffle=%s)",
                    playlist.active_count,
                    playlist.shuffle_play
                )
                self._transition_to(SchedulerState.RUNNING)
                self._show_current()
            else:
                logger.info("Playlist has no items to display")
                self._transition_to(SchedulerState.IDLE)
                self._clear_renderer()

    def on_item_ended(self, presentation_id: Optional[int] = None) -> None:
        """
        Renderer callback: the current indeterminate item finished.

        Args:
            presentation_id: Id passed to Renderer.present (None matches any)
        """
        with self._lock:
            if not self._accepts_completion(presentation_id):
                logger.debug("Ignoring stale ended event (id=%s)", presentation_id)
                return
            self._complete_current()

    def on_item_error(self, error: Any, presentation_id: Optional[int] = None) -> None:
        """
        Renderer callback: the current item failed.
        Treated like completion so the rotation always moves on.

        Args:
            error: Error reported by the renderer
            presentation_id: Id passed to Renderer.present (None matches any)
        """
        with self._lock:
            if not self._accepts_completion(presentation_id):
                logger.debug("Ignoring stale error event (id=%s): %s", presentation_id, error)
                return

            self._render_errors += 1
            filename = self._current_item.filename if self._current_item else None
            logger.warning("Render error for %s: %s", filename, error)
            self._complete_current()

    def stop(self) -> None:
        """Cancel pending work, blank the screen and return to UNINITIALIZED."""
        with self._lock:
            self._cancel_pending()
            self._playlist = None
            self._current_item = None

            if self._state != SchedulerState.UNINITIALIZED:
                self._transition_to(SchedulerState.UNINITIALIZED)
                self._clear_renderer()

        logger.info("PlaybackScheduler stopped")

    @property
    def state(self) -> SchedulerState:
        """Get current scheduler state."""
        with self._lock:
            return self._state

    @property
    def playlist(self) -> Optional[Playlist]:
        """Get the playlist being played."""
        with self._lock:
            return self._playlist

    @property
    def current_item(self) -> Optional[PlaylistItem]:
        """Get the item on screen."""
        with self._lock:
            return self._current_item

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is cycling items."""
        return self.state == SchedulerState.RUNNING

    def get_status(self) -> Dict[str, Any]:
        """
        Get scheduler status for reporting.

        Returns:
            Dictionary with state, current item and counters
        """
        with self._lock:
            return {
                'state': self._state.value,
                'current_filename': self._current_item.filename if self._current_item else None,
                'waiting_for_renderer': self._waiting_id is not None,
                'items_presented': self._items_presented,
                'items_skipped': self._items_skipped,
                'render_errors': self._render_errors,
                'playlist': self._playlist.get_playlist_info() if self._playlist else None,
            }

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def _transition_to(self, target: SchedulerState) -> bool:
        """
        Move to a new state.

        Returns:
            True if the state changed, False if already in target

        Raises:
            StateTransitionError: If the transition is not valid
        """
        old_state = self._state
        if old_state == target:
            return False

        if target not in self.VALID_TRANSITIONS.get(old_state, []):
            raise StateTransitionError(
                f"Invalid transition: {old_state.name} -> {target.name}"
            )

        self._state = target
        logger.info("Scheduler transition: %s -> %s", old_state.name, target.name)

        if self._on_state_changed:
            try:
                self._on_state_changed(old_state, target)
            except Exception as e:
                logger.error("Error in state change callback: %s", e)

        return True

    def _cancel_pending(self) -> None:
        """Cancel the armed timer and any wait on the renderer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._waiting_id = None
        self._generation += 1

    def _arm_timer(self, delay: float, advance: bool) -> None:
        generation = self._generation
        self._timer = self._timer_factory(
            delay,
            lambda: self._on_timer(generation, advance)
        )

    def _on_timer(self, generation: int, advance: bool) -> None:
        """Timer callback; a no-op if the timer was superseded."""
        with self._lock:
            if generation != self._generation or self._state != SchedulerState.RUNNING:
                return
            self._timer = None

            if advance:
                self._advance()
            else:
                self._cancel_pending()
                self._show_current()

    def _accepts_completion(self, presentation_id: Optional[int]) -> bool:
        if self._state != SchedulerState.RUNNING or self._waiting_id is None:
            return False
        return presentation_id is None or presentation_id == self._waiting_id

    def _complete_current(self) -> None:
        if self._presenting:
            # Signalled from inside Renderer.present(); handled once it returns
            self._completed_while_presenting = True
            return
        self._advance()

    def _advance(self) -> None:
        """Move the playlist cursor forward and show the next item."""
        self._cancel_pending()
        self._playlist.increment_cur_pos()
        self._show_current()

    def _show_current(self) -> None:
        """
        Present the current item, skipping anything that cannot be shown.

        Skips are iterative. After a full pass without a presentable item
        the scheduler waits skip_retry_delay before trying again.
        """
        playlist = self._playlist
        attempts = 0

        while attempts < playlist.active_count:
            item = playlist.get_current_playlist_item()
            media_type = item.media_type

            if media_type in self.FINITE_TYPES:
                self._present(item)
                self._arm_timer(item.display_duration, advance=True)
                return

            if media_type in self.INDETERMINATE_TYPES:
                if self._present(item, await_completion=True):
                    return
            else:
                self._items_skipped += 1
                logger.warning(
                    "Skipping unsupported item %s (type %r)",
                    item.filename,
                    item.file_type
                )

            playlist.increment_cur_pos()
            attempts += 1

        logger.warning(
            "No presentable items in a full pass, retrying in %.1fs",
            self._skip_retry_delay
        )
        self._current_item = None
        self._arm_timer(self._skip_retry_delay, advance=False)

    def _present(self, item: PlaylistItem, await_completion: bool = False) -> bool:
        """
        Hand an item to the renderer.

        Returns:
            True if the item is on screen and, for indeterminate items,
            still waiting for completion
        """
        self._presentation_id += 1
        presentation_id = self._presentation_id
        self._current_item = item
        self._completed_while_presenting = False

        if await_completion:
            self._waiting_id = presentation_id

        logger.info(
            "Displaying %s (type=%s, duration=%s)",
            item.filename,
            item.file_type,
            item.display_duration if not await_completion else 'until ended'
        )

        self._presenting = True
        try:
            self._renderer.present(
                item,
                self._playlist.fit_item,
                presentation_id,
                self._playlist.get_orientation_angle()
            )
        except Exception as e:
            self._render_errors += 1
            self._waiting_id = None
            logger.error("Render error for %s: %s", item.filename, e)
            return False
        finally:
            self._presenting = False

        self._items_presented += 1

        if await_completion and self._completed_while_presenting:
            self._waiting_id = None
            return False

        return True

    def _clear_renderer(self) -> None:
        try:
            self._renderer.clear()
        except Exception as e:
            logger.error("Error clearing renderer: %s", e)

    def __repr__(self) -> str:
        """String representation."""
        return f"PlaybackScheduler(state={self.state.name})"
