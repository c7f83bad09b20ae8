"""
One-shot timers shared by the sync and playback loops.

Both loops take a ``timer_factory(delay, callback)`` so tests can drive
time by hand. The default factory starts a daemon ``threading.Timer``.
"""

import threading
from typing import Callable, Protocol


class TimerHandle(Protocol):
    """Anything with a cancel() that stops a pending callback."""

    def cancel(self) -> None:
        ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def start_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """
    Start a daemon one-shot timer.

    Args:
        delay: Seconds before the callback runs
        callback: Function to call

    Returns:
        The started timer (cancel() stops it if it has not fired)
    """
    timer = threading.Timer(max(0.0, delay), callback)
    timer.daemon = True
    timer.start()
    return timer
