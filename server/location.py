"""Location sources: where raw fixes come from.

The phone pushes its fixes to the API, which hands them to a
PushLocationSource; the trip controller subscribes to that source while a
trip is active.
"""

import itertools
import logging
import threading
import time
from typing import Callable, Optional, Protocol

from errors import LocationError, LocationErrorCode
from kinematics import Position

logger = logging.getLogger(__name__)

FixCallback = Callable[[Position], None]
ErrorCallback = Callable[[LocationError], None]

# A fix older than this no longer counts as a current position
MAX_FIX_AGE_MS = 15_000


class LocationSource(Protocol):
    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback) -> int: ...

    def unsubscribe(self, handle: int) -> None: ...

    def get_once(self) -> Position: ...


class PushLocationSource:
    """Location source fed from outside via deliver() and fail()."""

    def __init__(self, max_age_ms: float = MAX_FIX_AGE_MS, clock: Callable[[], float] | None = None):
        self.max_age_ms = max_age_ms
        self._clock = clock or (lambda: time.time() * 1000)
        self._subscribers: dict[int, tuple[FixCallback, ErrorCallback]] = {}
        self._handles = itertools.count(1)
        self._lock = threading.Lock()
        self._last_fix: Optional[Position] = None
        self._denied: Optional[LocationError] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback) -> int:
        with self._lock:
            handle = next(self._handles)
            self._subscribers[handle] = (on_fix, on_error)
        logger.debug("Location subscription %d opened", handle)
        return handle

    def unsubscribe(self, handle: int) -> None:
        with self._lock:
            removed = self._subscribers.pop(handle, None)
        if removed is not None:
            logger.debug("Location subscription %d closed", handle)

    def get_once(self) -> Position:
        if self._denied is not None:
            raise self._denied
        fix = self._last_fix
        if fix is None:
            raise LocationError(LocationErrorCode.POSITION_UNAVAILABLE, "No position received yet")
        if self._clock() - fix.timestamp > self.max_age_ms:
            raise LocationError(LocationErrorCode.TIMEOUT, "Last position is too old")
        return fix

    def deliver(self, position: Position) -> int:
        """Record a fix and pass it to every subscriber. Returns the subscriber count."""
        with self._lock:
            self._last_fix = position
            self._denied = None
            callbacks = [on_fix for on_fix, _ in self._subscribers.values()]
        for on_fix in callbacks:
            on_fix(position)
        return len(callbacks)

    def fail(self, error: LocationError) -> int:
        with self._lock:
            if error.is_fatal:
                self._denied = error
            callbacks = [on_error for _, on_error in self._subscribers.values()]
        for on_error in callbacks:
            on_error(error)
        return len(callbacks)
