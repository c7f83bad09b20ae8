"""
Playlist model for the signage player.
Holds playlist items, playback policy, and the active-item rotation cursor.
"""

import json
import logging
import random
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional


logger = logging.getLogger(__name__)


class MediaType(Enum):
    """File types the scheduler knows how to present."""
    IMAGE = "Image"
    VIDEO = "Video"


class Orientation(Enum):
    """Screen orientation with its rotation angle in degrees."""
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    REVERSE_LANDSCAPE = "reverse_landscape"
    REVERSE_PORTRAIT = "reverse_portrait"

    @property
    def angle(self) -> int:
        return _ORIENTATION_ANGLES[self]


_ORIENTATION_ANGLES = {
    Orientation.LANDSCAPE: 0,
    Orientation.PORTRAIT: 90,
    Orientation.REVERSE_LANDSCAPE: 180,
    Orientation.REVERSE_PORTRAIT: 270,
}

# Wire key -> attribute name
_ITEM_KEYS = {
    'mediafileId': 'media_id',
    'filename': 'filename',
    'filenameSecondary': 'filename_secondary',
    'downloadUrl': 'download_url',
    'url': 'url',
    'urlParams': 'url_params',
    'zoom': 'zoom',
    'displayDuration': 'display_duration',
    'transition': 'transition',
    'transitionSpeed': 'transition_speed',
    'fileType': 'file_type',
    'fileSize': 'file_size',
    'orientation': 'orientation',
    'disabled': 'disabled',
    'title': 'title',
}

_PLAYLIST_KEYS = {
    'mode': 'mode',
    'orientation': 'orientation',
    'fitItem': 'fit_item',
    'fitItemOpposing': 'fit_item_opposing',
    'checkForUpdatesInterval': 'check_for_updates_interval',
    'gapless': 'gapless',
    'shufflePlay': 'shuffle_play',
    'enableImageTransitions': 'enable_image_transitions',
    'defaultTransition': 'default_transition',
    'defaultTransitionSpeed': 'default_transition_speed',
}

# Rotation state that may appear in a persisted blob; never trusted
_ROTATION_KEYS = {
    'activeIndexes', 'curPos', 'curPosHolder', 'nextPos', 'nextPosHolder', 'prevIndex',
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return bool(value)


@dataclass
class PlaylistItem:
    """
    A single piece of content and its display parameters.

    Equality compares only content-affecting fields; file type, title,
    orientation, size and download URL are descriptive.
    """

    DEFAULT_DISPLAY_DURATION: ClassVar[float] = 10

    media_id: Optional[int] = None
    filename: str = ''
    filename_secondary: str = ''
    download_url: str = field(default='', compare=False)
    url: str = ''
    url_params: str = ''
    zoom: Optional[float] = None
    display_duration: float = DEFAULT_DISPLAY_DURATION
    transition: str = ''
    transition_speed: Optional[float] = None
    file_type: str = field(default='', compare=False)
    file_size: Optional[int] = field(default=None, compare=False)
    orientation: str = field(default=Orientation.LANDSCAPE.value, compare=False)
    disabled: bool = False
    title: str = field(default='', compare=False)

    def __post_init__(self) -> None:
        self.disabled = _as_bool(self.disabled)

        if self.media_type is MediaType.IMAGE and not self._valid_duration(self.display_duration):
            logger.warning(
                "Invalid display duration %r for %s, using %ss",
                self.display_duration,
                self.filename,
                self.DEFAULT_DISPLAY_DURATION
            )
            self.display_duration = self.DEFAULT_DISPLAY_DURATION

    @staticmethod
    def _valid_duration(value: Any) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return value > 0

    @property
    def media_type(self) -> Optional[MediaType]:
        """Get the known media type, or None for unsupported types."""
        try:
            return MediaType(self.file_type)
        except ValueError:
            return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlaylistItem':
        """
        Build an item from its wire representation.

        Missing keys take defaults and unknown keys are ignored.

        Args:
            data: Item dictionary with camelCase keys

        Returns:
            PlaylistItem instance

        Raises:
            ValueError: If data is not a dictionary
        """
        if not isinstance(data, dict):
            raise ValueError(f"Playlist item must be an object, got {type(data).__name__}")

        kwargs = {}
        for key, value in data.items():
            attr = _ITEM_KEYS.get(key)
            if attr is None:
                logger.debug("Ignoring unknown playlist item key: %s", key)
                continue
            if value is None and attr in ('filename', 'filename_secondary', 'download_url',
                                          'url', 'url_params', 'transition', 'file_type',
                                          'title'):
                value = ''
            kwargs[attr] = value

        if 'display_duration' in kwargs and isinstance(kwargs['display_duration'], str):
            try:
                kwargs['display_duration'] = float(kwargs['display_duration'])
            except ValueError:
                pass

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Get the wire representation of this item."""
        return {key: getattr(self, attr) for key, attr in _ITEM_KEYS.items()}


@dataclass
class Playlist:
    """
    A playlist with its playback policy and rotation state.

    Rotation state (active_indexes and the cursors) is excluded from
    equality, so two playlists compare equal when their content matches.
    """

    MAX_SHUFFLE_ATTEMPTS: ClassVar[int] = 10

    items: List[PlaylistItem] = field(default_factory=list)
    mode: str = 'active'
    orientation: str = Orientation.LANDSCAPE.value
    fit_item: str = 'FitXY'
    fit_item_opposing: str = 'FitXY'
    check_for_updates_interval: Optional[float] = 60
    gapless: bool = False
    shuffle_play: bool = False
    enable_image_transitions: bool = True
    default_transition: Optional[str] = None
    default_transition_speed: Optional[float] = None

    # Rotation state
    active_indexes: List[int] = field(default_factory=list, init=False, compare=False, repr=False)
    cur_pos: int = field(default=0, init=False, compare=False, repr=False)
    next_pos: int = field(default=0, init=False, compare=False, repr=False)
    prev_index: int = field(default=-1, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        self.items = [
            item if isinstance(item, PlaylistItem) else PlaylistItem.from_dict(item)
            for item in self.items or []
        ]
        self.shuffle_play = _as_bool(self.shuffle_play)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Playlist':
        """
        Build a playlist from its wire representation.

        Rotation-state keys are ignored so a loaded playlist always
        starts from a fresh cursor.

        Args:
            data: Playlist dictionary with camelCase keys

        Returns:
            Playlist instance

        Raises:
            ValueError: If data or its item list has the wrong shape
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Playlist must be an object, got {type(data).__name__}")

        items = data.get('items') or []
        if not isinstance(items, list):
            raise ValueError("Playlist items must be a list")

        kwargs: Dict[str, Any] = {
            'items': [PlaylistItem.from_dict(item) for item in items]
        }

        for key, value in data.items():
            if key == 'items' or key in _ROTATION_KEYS:
                continue
            attr = _PLAYLIST_KEYS.get(key)
            if attr is None:
                logger.debug("Ignoring unknown playlist key: %s", key)
                continue
            kwargs[attr] = value

        return cls(**kwargs)

    @classmethod
    def from_json(cls, json_str: str) -> 'Playlist':
        """Deserialize a playlist persisted with to_json()."""
        return cls.from_dict(json.loads(json_str))

    def to_dict(self) -> Dict[str, Any]:
        """Get the wire representation, without rotation state."""
        data: Dict[str, Any] = {
            key: getattr(self, attr) for key, attr in _PLAYLIST_KEYS.items()
        }
        data['items'] = [item.to_dict() for item in self.items]
        return data

    def to_json(self) -> str:
        """Serialize for persistent storage."""
        return json.dumps(self.to_dict())

    # Rotation

    def initialize(self) -> None:
        """
        Reset rotation state and populate the first current item.

        Rebuilds active_indexes from the enabled items, shuffles them when
        shuffle_play is set, then advances once so the current item is ready
        before playback starts.
        """
        self.cur_pos = 0
        self.next_pos = 0
        self.prev_index = -1

        self.active_indexes = [
            i for i, item in enumerate(self.items) if not item.disabled
        ]

        if self.shuffle_play:
            self.shuffle_items()

        self.increment_cur_pos()

    def increment_cur_pos(self) -> None:
        """
        Advance one item.

        The next position becomes current and prev_index records its
        original index. On wraparound the next position restarts at 0 and,
        when shuffling, the order is reshuffled so the new first item is
        not the one just made current.
        """
        if not self.active_indexes:
            return

        self.cur_pos = self.next_pos
        self.prev_index = self.active_indexes[self.cur_pos]

        self.next_pos = self.cur_pos + 1
        if self.next_pos >= len(self.active_indexes):
            self.next_pos = 0
            if self.shuffle_play:
                self.shuffle_items()

    def get_current_playlist_item(self) -> Optional[PlaylistItem]:
        """Get the item currently due for display."""
        if not self.active_indexes or self.prev_index < 0:
            return None
        # prev_index survives a wraparound reshuffle, cur_pos does not
        return self.items[self.prev_index]

    def get_next_playlist_item(self) -> Optional[PlaylistItem]:
        """Get the item that will be displayed after the current one."""
        if not self.active_indexes:
            return None
        return self.items[self.active_indexes[self.next_pos]]

    def shuffle_items(self) -> None:
        """
        Shuffle active_indexes so the first item differs from prev_index.

        Retries are bounded; if every attempt puts prev_index first, it is
        swapped with a random later position.
        """
        if len(self.active_indexes) < 2:
            return

        for _ in range(self.MAX_SHUFFLE_ATTEMPTS):
            random.shuffle(self.active_indexes)
            if self.active_indexes[0] != self.prev_index:
                return

        swap_pos = random.randrange(1, len(self.active_indexes))
        self.active_indexes[0], self.active_indexes[swap_pos] = (
            self.active_indexes[swap_pos],
            self.active_indexes[0],
        )

    @property
    def active_count(self) -> int:
        """Get number of items in the current rotation."""
        return len(self.active_indexes)

    def has_items_to_display(self) -> bool:
        """Check that at least one item is enabled."""
        return any(not item.disabled for item in self.items)

    def get_orientation_angle(self) -> int:
        """Get the screen rotation angle for this playlist's orientation."""
        try:
            return Orientation(self.orientation).angle
        except ValueError:
            return 0

    # Comparison

    def equals(self, other: Optional['Playlist']) -> bool:
        """
        Compare content with another playlist.

        Args:
            other: Playlist to compare against (None is never equal)

        Returns:
            True if policy fields and items match
        """
        if not isinstance(other, Playlist):
            return False

        mismatch = self.diff(other)
        if mismatch:
            logger.debug("Playlist mismatch: %s", mismatch)
            return False
        return True

    def diff(self, other: 'Playlist') -> Optional[str]:
        """
        Describe the first content difference from another playlist.

        Returns:
            Description of the mismatch, or None if the content is equal
        """
        for f in fields(self):
            if not f.compare or f.name == 'items':
                continue
            mine, theirs = getattr(self, f.name), getattr(other, f.name)
            if mine != theirs:
                return f"{f.name}: {mine!r} != {theirs!r}"

        if len(self.items) != len(other.items):
            return f"item count: {len(self.items)} != {len(other.items)}"

        for index, (mine, theirs) in enumerate(zip(self.items, other.items)):
            for f in fields(mine):
                if not f.compare:
                    continue
                a, b = getattr(mine, f.name), getattr(theirs, f.name)
                if a != b:
                    return f"item {index} {f.name}: {a!r} != {b!r}"

        return None

    def get_playlist_info(self) -> Dict[str, Any]:
        """
        Get information about playlist and rotation state.

        Returns:
            Dictionary with playlist information
        """
        current = self.get_current_playlist_item()
        return {
            'items': len(self.items),
            'active_items': self.active_count,
            'current_position': self.cur_pos,
            'next_position': self.next_pos,
            'current_filename': current.filename if current else None,
            'shuffle_play': self.shuffle_play,
            'check_for_updates_interval': self.check_for_updates_interval,
        }
