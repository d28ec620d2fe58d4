"""
Domain service: Live editing sessions.

An EditSession owns the working copy of one parcel's ring (a map layer)
and every listener registered on it. Tearing the session down releases
all of them at once.
"""
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol
import logging
import time

from parcel_editor.domain.models import ManualEditContext, Point, Ring

logger = logging.getLogger(__name__)


Listener = Callable[[], None]

EDIT_EVENT = "edit"
DRAG_EVENT = "drag"


class MapLayer(Protocol):
    """Interactive polygon layer the map UI lets the user manipulate."""

    def get_ring(self) -> Ring:
        ...

    def set_ring(self, ring: Ring) -> None:
        ...

    def on(self, event: str, listener: Listener) -> None:
        ...

    def off(self, event: str, listener: Listener) -> None:
        ...

    def remove(self) -> None:
        ...


class WorkingLayer:
    """
    In-process working copy of a ring.

    set_ring() fires the 'edit' event (vertex dropped, shape replaced);
    drag_vertex() fires the 'drag' event for every intermediate position.
    """

    def __init__(self, ring: Ring):
        self._ring: Ring = list(ring)
        self._listeners: dict[str, list[Listener]] = {}
        self.removed = False

    def get_ring(self) -> Ring:
        return list(self._ring)

    def set_ring(self, ring: Ring) -> None:
        self._ring = list(ring)
        self._fire(EDIT_EVENT)

    def drag_vertex(self, index: int, point: Point) -> None:
        if not 0 <= index < len(self._ring):
            raise IndexError(f"Vertex {index} out of range for ring of {len(self._ring)} points")
        self._ring[index] = (float(point[0]), float(point[1]))
        self._fire(DRAG_EVENT)

    def on(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())

    def remove(self) -> None:
        self.removed = True

    def _fire(self, event: str) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener()


class DraftLayer:
    """Points collected while a new parcel is being drawn."""

    MIN_POINTS = 3

    def __init__(self):
        self._points: Ring = []
        self.removed = False

    @property
    def point_count(self) -> int:
        return len(self._points)

    @property
    def can_finish(self) -> bool:
        return len(self._points) >= self.MIN_POINTS

    def add_point(self, point: Point) -> None:
        self._points.append((float(point[0]), float(point[1])))

    def undo_last_point(self) -> None:
        if self._points:
            self._points.pop()

    def get_ring(self) -> Ring:
        return list(self._points)

    def remove(self) -> None:
        self._points = []
        self.removed = True


class LiveSyncThrottle:
    """Admits at most one update per interval."""

    def __init__(self, interval_ms: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval_ms / 1000.0
        self._clock = clock
        self._last: Optional[float] = None

    def ready(self) -> bool:
        now = self._clock()
        if self._last is not None and now - self._last < self.interval:
            return False
        self._last = now
        return True


@dataclass
class EditSession:
    """The single live edit of one parcel."""
    polygon_id: str
    layer: MapLayer
    original_ring: Ring
    manual_context: Optional[ManualEditContext] = None
    listeners: list[tuple[str, Listener]] = field(default_factory=list)
    closed: bool = False

    def listen(self, event: str, listener: Listener) -> None:
        """Register a listener on the layer; released by teardown()."""
        self.layer.on(event, listener)
        self.listeners.append((event, listener))

    def current_ring(self) -> Ring:
        return self.layer.get_ring()

    def teardown(self) -> None:
        """Unregister every listener and remove the working layer."""
        if self.closed:
            return
        for event, listener in self.listeners:
            self.layer.off(event, listener)
        self.listeners.clear()
        self.layer.remove()
        self.closed = True
        logger.debug(f"Edit session for {self.polygon_id} torn down")
