"""Shared pytest fixtures for peakmap tests.

Provides a virtual-clock event loop, a recording map engine, a manual host
document and a resizable mount target. Nothing touches the network or a browser.

VIRTUAL CLOCK:
    FakeLoop implements the slice of asyncio.AbstractEventLoop the session uses
    (time, call_soon, call_later). Callbacks only run inside advance() or
    run_until_idle(), so every test decides exactly when time passes.
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from typing import Any

import pytest

from peakmap.core.geo_calculator import GeoCalculator
from peakmap.engine.base import (
    ControlSpec,
    Easing,
    EngineOptions,
    EngineRemovedError,
    EventEmitter,
    Handler,
    MapEngine,
    MarkerElement,
    Popup,
    SourceDescriptor,
    linear,
)
from peakmap.engine.host_document import HeadElement, HostDocument, ScriptTag, StylesheetLink
from peakmap.model.camera_state import CameraState, LonLat
from peakmap.model.map_config import MapPanelConfig, resolve_config
from peakmap.model.map_point import MapPoint
from peakmap.session.context import SessionState

TEST_API_KEY = "test-key"


# =============================================================================
# VIRTUAL CLOCK LOOP
# =============================================================================


class FakeHandle:
    """Cancellable scheduled callback (asyncio.Handle / TimerHandle stand-in)."""

    def __init__(self, when: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self._when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def when(self) -> float:
        return self._when

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def run(self) -> None:
        self._callback(*self._args)


class FakeLoop:
    """Deterministic event loop with a virtual clock (seconds)."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, FakeHandle]] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> FakeHandle:
        return self._schedule(self.now, callback, args)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeHandle:
        return self._schedule(self.now + max(delay, 0.0), callback, args)

    def _schedule(self, when: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> FakeHandle:
        handle = FakeHandle(when=when, callback=callback, args=args)
        heapq.heappush(self._queue, (when, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        """Number of scheduled, non-cancelled callbacks."""
        return sum(1 for _when, _seq, handle in self._queue if not handle.cancelled())

    def run_until_idle(self, max_callbacks: int = 10_000) -> int:
        """Run every callback due at the current time (including newly scheduled ones)."""
        return self.advance(0.0, max_callbacks=max_callbacks)

    def advance(self, seconds: float, max_callbacks: int = 10_000) -> int:
        """Move the clock forward, running due callbacks in (time, FIFO) order.

        Returns:
            Number of callbacks run.
        """
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target + 1e-9:
            when, _seq, handle = heapq.heappop(self._queue)
            if handle.cancelled():
                continue
            self.now = max(self.now, when)
            handle.run()
            ran += 1
            if ran > max_callbacks:
                raise RuntimeError("FakeLoop runaway: too many callbacks")
        self.now = max(self.now, target)
        return ran


# =============================================================================
# RECORDING MAP ENGINE
# =============================================================================


class FakeMapEngine(MapEngine):
    """MapEngine that records every request. Events are emitted by the test.

    ease_to/fly_to jump the camera to the target immediately; the test emits
    "moveend" when it wants the transition to count as finished.
    """

    def __init__(self, options: EngineOptions) -> None:
        self.options = options
        self.events = EventEmitter()
        self._camera = CameraState(center=options.center, zoom=options.zoom, pitch=options.pitch, bearing=options.bearing)
        self.sources: dict[str, SourceDescriptor] = {}
        self.terrain: tuple[str, float] | None = None
        self.controls: list[ControlSpec] = []
        self.markers: list[tuple[MarkerElement, Popup]] = []
        self.ease_calls: list[dict[str, Any]] = []
        self.fly_calls: list[dict[str, Any]] = []
        self.fired: list[str] = []
        self.remove_count = 0

    @property
    def camera(self) -> CameraState:
        return self._camera

    @property
    def removed(self) -> bool:
        return self.remove_count > 0

    def _check_alive(self) -> None:
        if self.removed:
            raise EngineRemovedError("engine removed")

    def add_source(self, source_id: str, descriptor: SourceDescriptor) -> None:
        self._check_alive()
        self.sources[source_id] = descriptor

    def set_terrain(self, source_id: str, exaggeration: float) -> None:
        self._check_alive()
        self.terrain = (source_id, exaggeration)

    def add_control(self, control: ControlSpec) -> None:
        self._check_alive()
        self.controls.append(control)

    def add_marker(self, element: MarkerElement, popup: Popup) -> None:
        self._check_alive()
        self.markers.append((element, popup))

    def ease_to(self, center: LonLat, bearing: float, duration_ms: float, easing: Easing = linear) -> None:
        self._check_alive()
        self.ease_calls.append({"center": center, "bearing": bearing, "duration_ms": duration_ms, "easing": easing})
        self._camera = CameraState(center=center, zoom=self._camera.zoom, pitch=self._camera.pitch, bearing=bearing)

    def fly_to(self, center: LonLat, zoom: float, duration_ms: float) -> None:
        self._check_alive()
        self.fly_calls.append({"center": center, "zoom": zoom, "duration_ms": duration_ms})
        self._camera = CameraState(center=center, zoom=zoom, pitch=self._camera.pitch, bearing=self._camera.bearing)

    def on(self, event: str, handler: Handler) -> None:
        self.events.on(event, handler)

    def once(self, event: str, handler: Handler) -> None:
        self.events.once(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        self.events.off(event, handler)

    def fire(self, event: str) -> None:
        self._check_alive()
        self.fired.append(event)
        self.events.emit(event)

    def emit(self, event: str) -> None:
        """Test hook: deliver an engine event (load, idle, moveend, ...)."""
        self.events.emit(event)

    def remove(self) -> None:
        self.remove_count += 1
        self.events.clear_handlers()


class EngineRecorder:
    """EngineFactory that keeps every engine it builds."""

    def __init__(self) -> None:
        self.engines: list[FakeMapEngine] = []
        self.error: Exception | None = None

    def __call__(self, options: EngineOptions) -> FakeMapEngine:
        if self.error is not None:
            raise self.error
        engine = FakeMapEngine(options)
        self.engines.append(engine)
        return engine

    @property
    def engine(self) -> FakeMapEngine:
        assert len(self.engines) == 1, f"expected exactly one engine, got {len(self.engines)}"
        return self.engines[0]


# =============================================================================
# HOST DOCUMENT / MOUNT TARGET
# =============================================================================


class FakeDocument(HostDocument):
    """HostDocument whose script loads only when the test says so."""

    def __init__(self) -> None:
        self.head: list[HeadElement] = []
        self.removed: list[HeadElement] = []
        self._callbacks: dict[int, tuple[Callable[[], None], Callable[[Exception], None]]] = {}

    def append_script(
        self,
        src: str,
        on_load: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> ScriptTag:
        tag = ScriptTag(src=src)
        self.head.append(tag)
        self._callbacks[id(tag)] = (on_load, on_error)
        return tag

    def append_stylesheet(self, href: str) -> StylesheetLink:
        link = StylesheetLink(href=href)
        self.head.append(link)
        return link

    def remove(self, element: HeadElement) -> None:
        element.removed = True
        if element in self.head:
            self.head.remove(element)
        self.removed.append(element)

    @property
    def scripts(self) -> list[ScriptTag]:
        return [e for e in self.head if isinstance(e, ScriptTag)]

    @property
    def stylesheets(self) -> list[StylesheetLink]:
        return [e for e in self.head if isinstance(e, StylesheetLink)]

    def fire_load(self, tag: ScriptTag) -> None:
        """Deliver the script's load signal, even after removal (late browser event)."""
        on_load, _on_error = self._callbacks[id(tag)]
        on_load()

    def fire_error(self, tag: ScriptTag, error: Exception) -> None:
        _on_load, on_error = self._callbacks[id(tag)]
        on_error(error)


class FakeMountTarget:
    """Mount target with a settable size; counts measurements."""

    def __init__(self, width: float = 800, height: float = 600) -> None:
        self.width = width
        self.height = height
        self.measure_count = 0

    def measure(self) -> tuple[float, float]:
        self.measure_count += 1
        return self.width, self.height


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def state() -> SessionState:
    return SessionState()


@pytest.fixture
def document() -> FakeDocument:
    return FakeDocument()


@pytest.fixture
def mount_target() -> FakeMountTarget:
    return FakeMountTarget()


@pytest.fixture
def recorder() -> EngineRecorder:
    return EngineRecorder()


@pytest.fixture
def config() -> MapPanelConfig:
    """Resolved config with an API key and rotation enabled."""
    return resolve_config(api_key=TEST_API_KEY, rotating=True)


@pytest.fixture
def points() -> list[MapPoint]:
    """Two points: one fully described with an id, one minimal without."""
    return [
        MapPoint(
            id="alps",
            lat=46.68006894117724,
            lng=8.763649918607726,
            title="Swiss Alps",
            info_text="Beautiful mountain view in the Swiss Alps",
            pin="https://example.com/pin-1.png",
            image="https://example.com/alps.jpg",
            url="https://example.com/alps",
        ),
        MapPoint(lat=46.51, lng=9.01, title="Swiss Valley"),
    ]


def make_engine_options(center: LonLat = (8.76, 46.68), bearing: float = -90.0) -> EngineOptions:
    """EngineOptions around center for engine-level tests."""
    return EngineOptions(
        container=FakeMountTarget(),
        style_url=f"https://api.maptiler.com/maps/outdoor/style.json?key={TEST_API_KEY}",
        center=center,
        zoom=12,
        pitch=50,
        bearing=bearing,
        max_bounds=GeoCalculator.max_bounds(center=center),
    )
