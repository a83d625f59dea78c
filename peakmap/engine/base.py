"""Map engine capability - the boundary between the session controller and a renderer.

The controller never draws anything itself. It requests operations on a MapEngine
handle and reacts to the events the engine emits:

    load        base style loaded; features may be attached
    idle        current view finished rendering
    moveend     a camera transition finished (or was superseded)
    mousedown   user pointer-down on the map
    touchstart  user touch on the map
    wheel       user scroll/zoom on the map

The engine owns the one authoritative camera. Backends:
- PydeckMapEngine (peakmap.engine.pydeck_engine): deck.gl via pydeck
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from peakmap.model.camera_state import Bounds, CameraState, LonLat

logger = logging.getLogger(__name__)

Handler = Callable[[], None]
Easing = Callable[[float], float]


def linear(t: float) -> float:
    """Linear easing."""
    return t


class EngineEvent:
    """Event names emitted by a MapEngine."""

    LOAD = "load"
    IDLE = "idle"
    MOVEEND = "moveend"
    MOUSEDOWN = "mousedown"
    TOUCHSTART = "touchstart"
    WHEEL = "wheel"

    # User-originated signals that permanently stop auto-rotation
    INTERACTIONS = (MOUSEDOWN, TOUCHSTART, WHEEL)
    ALL = (LOAD, IDLE, MOVEEND, MOUSEDOWN, TOUCHSTART, WHEEL)


class ControlKind(Enum):
    """UI controls an engine can attach."""

    NAVIGATION = "navigation"
    FULLSCREEN = "fullscreen"


class EngineRemovedError(RuntimeError):
    """An operation was requested on an engine handle after remove()."""


class MountTarget(Protocol):
    """Container the engine renders into. Size may be 0x0 until laid out."""

    def measure(self) -> tuple[float, float]:
        """Return the current (width, height) in pixels."""
        ...


@dataclass(frozen=True)
class TerrainOptions:
    source: str
    exaggeration: float


@dataclass(frozen=True)
class EngineOptions:
    """Everything needed to construct an engine instance."""

    container: MountTarget
    style_url: str
    center: LonLat
    zoom: float
    pitch: float
    bearing: float
    max_bounds: Bounds
    terrain: TerrainOptions | None = None


@dataclass(frozen=True)
class SourceDescriptor:
    """Raster-DEM (or other) data source."""

    type: str
    url: str
    tile_size: int | None = None
    max_zoom: int | None = None


@dataclass(frozen=True)
class ControlSpec:
    kind: ControlKind
    position: str
    visualize_pitch: bool = False


@dataclass(frozen=True)
class MarkerElement:
    """Marker DOM-like element: position, key and CSS style."""

    key: str
    index: int
    lng_lat: LonLat
    style: dict[str, str] = field(default_factory=dict)
    icon_url: str | None = None


@dataclass(frozen=True)
class Popup:
    """Popup revealed when its marker is interacted with."""

    html: str
    offset: int
    close_button: bool = True
    close_on_click: bool = True


class EventEmitter:
    """on/once/off/emit bookkeeping shared by engine backends.

    Handlers registered with once() are removed before they run, so a handler
    that re-registers itself is not invoked twice for one emission.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[Handler, bool]]] = {}

    def on(self, event: str, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append((handler, False))

    def once(self, event: str, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append((handler, True))

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event, [])
        self._handlers[event] = [(h, once) for h, once in handlers if h is not handler]

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def emit(self, event: str) -> None:
        """Invoke all handlers for event in registration order."""
        handlers = self._handlers.get(event, [])
        if not handlers:
            return
        self._handlers[event] = [(h, once) for h, once in handlers if not once]
        for handler, _once in handlers:
            handler()

    def clear_handlers(self) -> None:
        self._handlers.clear()


class MapEngine(ABC):
    """Imperative handle on one map instance.

    Created once per session by an EngineFactory and destroyed exactly once via
    remove(). All operations after remove() raise EngineRemovedError.
    """

    @property
    @abstractmethod
    def camera(self) -> CameraState:
        """Current authoritative camera."""

    @property
    @abstractmethod
    def removed(self) -> bool:
        """True once remove() has been called."""

    @abstractmethod
    def add_source(self, source_id: str, descriptor: SourceDescriptor) -> None: ...

    @abstractmethod
    def set_terrain(self, source_id: str, exaggeration: float) -> None: ...

    @abstractmethod
    def add_control(self, control: ControlSpec) -> None: ...

    @abstractmethod
    def add_marker(self, element: MarkerElement, popup: Popup) -> None: ...

    @abstractmethod
    def ease_to(self, center: LonLat, bearing: float, duration_ms: float, easing: Easing = linear) -> None:
        """Animate to center/bearing over duration_ms. Emits moveend when done."""

    @abstractmethod
    def fly_to(self, center: LonLat, zoom: float, duration_ms: float) -> None:
        """Fly to center/zoom over duration_ms. Emits moveend when done."""

    @abstractmethod
    def on(self, event: str, handler: Handler) -> None: ...

    @abstractmethod
    def once(self, event: str, handler: Handler) -> None: ...

    @abstractmethod
    def off(self, event: str, handler: Handler) -> None: ...

    @abstractmethod
    def fire(self, event: str) -> None:
        """Deliver an input event (mousedown/touchstart/wheel) coming from the host."""

    @abstractmethod
    def remove(self) -> None:
        """Destroy the instance: cancel transitions, drop handlers and resources."""

    def describe(self) -> dict[str, Any]:
        """Debug summary of the engine state."""
        camera = self.camera
        return {
            "center": list(camera.center),
            "zoom": camera.zoom,
            "pitch": camera.pitch,
            "bearing": camera.bearing,
            "removed": self.removed,
        }


EngineFactory = Callable[[EngineOptions], MapEngine]
