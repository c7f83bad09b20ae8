"""
Pytest fixtures shared by the player tests.

Provides a hand-driven timer factory, a recording renderer, a temporary
key-value store, and playlist payload builders.
"""

import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from src.common.storage import KEY_SCREEN_ID, KEY_SCREEN_TOKEN, KeyValueStore
from src.player.errors import RenderError
from src.player.renderer import Renderer


class FakeTimer:
    """One-shot timer that only fires when the test says so."""

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.fired = True
        self.callback()


class FakeTimerFactory:
    """timer_factory replacement that records every timer it creates."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_next(self) -> FakeTimer:
        """Fire the oldest pending timer."""
        pending = self.pending
        assert pending, "no pending timer"
        timer = pending[0]
        timer.fire()
        return timer


class RecordingRenderer(Renderer):
    """Renderer that records what it is asked to show."""

    def __init__(self):
        self.presented: List[tuple] = []
        self.angles: List[int] = []
        self.clear_count = 0
        self.fail_filenames = set()
        self.on_present: Optional[Callable[[Any, int], None]] = None

    def present(self, item, fit_item, presentation_id, orientation_angle=0):
        self.presented.append((item, fit_item, presentation_id))
        self.angles.append(orientation_angle)
        if item.filename in self.fail_filenames:
            raise RenderError(f"cannot show {item.filename}")
        if self.on_present:
            self.on_present(item, presentation_id)

    def clear(self):
        self.clear_count += 1

    @property
    def filenames(self) -> List[str]:
        return [item.filename for item, _, _ in self.presented]

    @property
    def last_id(self) -> Optional[int]:
        return self.presented[-1][2] if self.presented else None


def make_item(
    filename: str,
    file_type: str = 'Image',
    duration: Any = 5,
    disabled: bool = False,
    **extra
) -> Dict[str, Any]:
    """Build a playlist item in wire format."""
    item = {
        'mediafileId': sum(map(ord, filename)),
        'filename': filename,
        'fileType': file_type,
        'displayDuration': duration,
        'disabled': disabled,
    }
    item.update(extra)
    return item


def make_playlist(items: List[Dict[str, Any]], **extra) -> Dict[str, Any]:
    """Build a playlist payload in wire format."""
    payload = {
        'mode': 'active',
        'orientation': 'landscape',
        'fitItem': 'FitXY',
        'checkForUpdatesInterval': 60,
        'shufflePlay': False,
        'items': items,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def timers():
    """Hand-driven timer factory."""
    return FakeTimerFactory()


@pytest.fixture
def renderer():
    """Renderer that records presentations."""
    return RecordingRenderer()


@pytest.fixture
def temp_store_path():
    """Path of a store file inside a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield str(Path(tmpdir) / 'store.json')


@pytest.fixture
def store(temp_store_path):
    """Key-value store holding pairing credentials."""
    kv = KeyValueStore(temp_store_path)
    kv.set(KEY_SCREEN_ID, 'screen-001')
    kv.set(KEY_SCREEN_TOKEN, 'token-abc')
    return kv
