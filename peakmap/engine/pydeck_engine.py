"""PydeckMapEngine - MapEngine backend on deck.gl via pydeck.

The engine keeps the authoritative camera and the attached features (terrain,
controls, markers) and turns them into a pydeck.Deck on demand:

- Terrain: TerrainLayer with MapTiler terrain-RGB elevation and raster texture.
  Vertical exaggeration is applied by scaling the elevation decoder.
- Markers: IconLayer for points with a pin icon, ScatterplotLayer otherwise.
  Popup HTML travels with each datum and is shown through the deck tooltip.
- Transitions: ease_to/fly_to set the target view state with a deck.gl
  LinearInterpolator/FlyToInterpolator and emit moveend after the duration
  on the event loop. A newer transition supersedes a running one; only the
  latest transition emits moveend.
- Controls: navigation becomes a zoom plus compass widget, fullscreen a
  fullscreen widget, placed at the control position.
- maxBounds: deck.gl has no pan constraint, so requested centers are clamped.

Events are emitted on the asyncio loop the engine was created with:
load on the next tick after construction, idle whenever no transition is
running after load or moveend.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import pydeck as pdk

from peakmap.constants import MapTilerConfig
from peakmap.engine.base import (
    ControlKind,
    ControlSpec,
    Easing,
    EngineEvent,
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
from peakmap.model.camera_state import CameraState, LonLat, normalize_bearing

logger = logging.getLogger(__name__)

# deck.gl icon atlas size for remote pin images
ICON_SIZE_PX = 128
DEFAULT_MARKER_PX = 20


@dataclass(frozen=True)
class _Transition:
    """A running camera transition."""

    start: CameraState
    target: CameraState
    started_at: float
    duration_s: float
    interpolator: str
    easing: Easing

    def at(self, now: float) -> CameraState:
        """Camera at time now (used when a transition is interrupted)."""
        if self.duration_s <= 0:
            return self.target
        t = self.easing(min(max((now - self.started_at) / self.duration_s, 0.0), 1.0))
        delta_bearing = ((self.target.bearing - self.start.bearing + 180.0) % 360.0) - 180.0
        return CameraState(
            center=(
                self.start.center[0] + (self.target.center[0] - self.start.center[0]) * t,
                self.start.center[1] + (self.target.center[1] - self.start.center[1]) * t,
            ),
            zoom=self.start.zoom + (self.target.zoom - self.start.zoom) * t,
            pitch=self.start.pitch + (self.target.pitch - self.start.pitch) * t,
            bearing=self.start.bearing + delta_bearing * t,
        )

    def remaining_ms(self, now: float) -> float:
        return max(0.0, (self.started_at + self.duration_s - now) * 1000)


def _css_px(value: str) -> int:
    """Parse a "20px" CSS length; other units fall back to the default marker size."""
    if value.endswith("px"):
        try:
            return int(float(value[:-2]))
        except ValueError:
            pass
    return DEFAULT_MARKER_PX


class PydeckMapEngine(MapEngine):
    """deck.gl map instance driven from an asyncio loop.

    Example:
        engine = PydeckMapEngine(options, loop=asyncio.get_running_loop())
        engine.once("load", attach_features)
        ...
        st_deckgl(engine.to_deck(), key="map")
    """

    def __init__(
        self,
        options: EngineOptions,
        loop: asyncio.AbstractEventLoop,
        texture_url: str | None = None,
        elevation_tiles_url: str | None = None,
    ) -> None:
        """Construct the engine. The load event fires on the next loop tick.

        Args:
            options: Construction options (container, style, camera, bounds, terrain)
            loop: Event loop for transitions and events
            texture_url: Raster tile template draped over the terrain mesh
            elevation_tiles_url: Terrain-RGB tile template (the DEM source's tilejson
                is not usable by TerrainLayer directly)
        """
        self._options = options
        self._loop = loop
        self._texture_url = texture_url
        self._elevation_tiles_url = elevation_tiles_url
        self._events = EventEmitter()

        self._camera = CameraState(
            center=options.max_bounds.clamp(options.center),
            zoom=options.zoom,
            pitch=options.pitch,
            bearing=options.bearing,
        )
        self._sources: dict[str, SourceDescriptor] = {}
        self._terrain: tuple[str, float] | None = None
        self._controls: list[ControlSpec] = []
        self._markers: list[tuple[MarkerElement, Popup]] = []

        self._loaded = False
        self._removed = False
        self._transition: _Transition | None = None
        self._transition_handle: asyncio.TimerHandle | None = None
        self._idle_handle: asyncio.Handle | None = None
        self._load_handle: asyncio.Handle | None = loop.call_soon(self._on_style_loaded)

        if options.terrain is not None:
            self._terrain = (options.terrain.source, options.terrain.exaggeration)

        logger.info(f"[ENGINE] Created map at {self._camera.center} (style={options.style_url.split('?')[0]})")

    # ==========================================================================
    # State
    # ==========================================================================

    @property
    def camera(self) -> CameraState:
        return self._camera

    @property
    def removed(self) -> bool:
        return self._removed

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def is_moving(self) -> bool:
        return self._transition is not None

    @property
    def controls(self) -> list[ControlSpec]:
        return list(self._controls)

    @property
    def markers(self) -> list[tuple[MarkerElement, Popup]]:
        return list(self._markers)

    @property
    def terrain(self) -> tuple[str, float] | None:
        """(source_id, exaggeration) of the active terrain, if any."""
        return self._terrain

    def _check_alive(self) -> None:
        if self._removed:
            raise EngineRemovedError("Map engine has been removed")

    # ==========================================================================
    # Events
    # ==========================================================================

    def on(self, event: str, handler: Handler) -> None:
        self._check_alive()
        self._events.on(event, handler)

    def once(self, event: str, handler: Handler) -> None:
        self._check_alive()
        self._events.once(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        self._events.off(event, handler)

    def fire(self, event: str) -> None:
        """Deliver a user interaction. Interrupts any running transition."""
        self._check_alive()
        if event not in EngineEvent.INTERACTIONS:
            raise ValueError(f"Only interaction events can be fired from the host, got {event!r}")
        logger.debug(f"[ENGINE] Interaction: {event}")
        self._events.emit(event)
        if self._transition is not None and not self._removed:
            self._camera = self._transition.at(self._loop.time())
            self._finish_transition()

    def _on_style_loaded(self) -> None:
        self._load_handle = None
        if self._removed:
            return
        self._loaded = True
        logger.debug("[ENGINE] Style loaded")
        self._events.emit(EngineEvent.LOAD)
        self._schedule_idle()

    def _schedule_idle(self) -> None:
        if self._removed or self._transition is not None or self._idle_handle is not None:
            return
        self._idle_handle = self._loop.call_soon(self._emit_idle)

    def _emit_idle(self) -> None:
        self._idle_handle = None
        if self._removed or self._transition is not None:
            return
        self._events.emit(EngineEvent.IDLE)

    # ==========================================================================
    # Features
    # ==========================================================================

    def add_source(self, source_id: str, descriptor: SourceDescriptor) -> None:
        self._check_alive()
        if not self._loaded:
            raise RuntimeError("Style is not done loading")
        if source_id in self._sources:
            raise ValueError(f"There is already a source with ID {source_id!r}")
        self._sources[source_id] = descriptor

    def set_terrain(self, source_id: str, exaggeration: float) -> None:
        self._check_alive()
        if source_id not in self._sources:
            raise ValueError(f"Terrain source {source_id!r} has not been added")
        self._terrain = (source_id, exaggeration)

    def add_control(self, control: ControlSpec) -> None:
        self._check_alive()
        self._controls.append(control)

    def add_marker(self, element: MarkerElement, popup: Popup) -> None:
        self._check_alive()
        self._markers.append((element, popup))

    # ==========================================================================
    # Camera transitions
    # ==========================================================================

    def _current_camera(self) -> CameraState:
        if self._transition is not None:
            return self._transition.at(self._loop.time())
        return self._camera

    def ease_to(self, center: LonLat, bearing: float, duration_ms: float, easing: Easing = linear) -> None:
        self._check_alive()
        current = self._current_camera()
        target = CameraState(
            center=self._options.max_bounds.clamp(center),
            zoom=current.zoom,
            pitch=current.pitch,
            bearing=bearing,
        )
        self._start_transition(target=target, duration_ms=duration_ms, interpolator="LinearInterpolator", easing=easing)

    def fly_to(self, center: LonLat, zoom: float, duration_ms: float) -> None:
        self._check_alive()
        current = self._current_camera()
        target = CameraState(
            center=self._options.max_bounds.clamp(center),
            zoom=zoom,
            pitch=current.pitch,
            bearing=current.bearing,
        )
        self._start_transition(target=target, duration_ms=duration_ms, interpolator="FlyToInterpolator", easing=linear)

    def _start_transition(self, target: CameraState, duration_ms: float, interpolator: str, easing: Easing) -> None:
        now = self._loop.time()
        # A running transition is superseded; continue from wherever it got to
        start = self._current_camera()
        self._cancel_transition()
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

        duration_s = max(duration_ms, 0) / 1000
        self._camera = start
        self._transition = _Transition(
            start=start,
            target=target,
            started_at=now,
            duration_s=duration_s,
            interpolator=interpolator,
            easing=easing,
        )
        self._transition_handle = self._loop.call_later(duration_s, self._complete_transition)

    def _complete_transition(self) -> None:
        self._transition_handle = None
        if self._removed or self._transition is None:
            return
        self._camera = self._transition.target
        self._finish_transition()

    def _finish_transition(self) -> None:
        self._cancel_transition()
        self._events.emit(EngineEvent.MOVEEND)
        self._schedule_idle()

    def _cancel_transition(self) -> None:
        if self._transition_handle is not None:
            self._transition_handle.cancel()
            self._transition_handle = None
        self._transition = None

    # ==========================================================================
    # Teardown
    # ==========================================================================

    def remove(self) -> None:
        self._check_alive()
        for handle in (self._load_handle, self._idle_handle):
            if handle is not None:
                handle.cancel()
        self._load_handle = None
        self._idle_handle = None
        self._cancel_transition()
        self._events.clear_handlers()
        self._markers.clear()
        self._removed = True
        logger.info("[ENGINE] Map removed")

    # ==========================================================================
    # Rendering
    # ==========================================================================

    def view_state(self) -> pdk.ViewState:
        """Current view state; carries the running transition so the browser animates it."""
        camera = self._camera
        extra: dict[str, Any] = {}
        if self._transition is not None:
            camera = self._transition.target
            extra = {
                "transition_duration": int(self._transition.remaining_ms(self._loop.time())),
                "transition_interpolator": {"@@type": self._transition.interpolator},
            }
        return pdk.ViewState(
            longitude=camera.center[0],
            latitude=camera.center[1],
            zoom=camera.zoom,
            pitch=camera.pitch,
            bearing=camera.bearing,
            max_pitch=85,
            **extra,
        )

    def layers(self) -> list[pdk.Layer]:
        """Layers in z-order: terrain first, markers on top (in insertion order)."""
        layers: list[pdk.Layer] = []
        terrain_layer = self._terrain_layer()
        if terrain_layer is not None:
            layers.append(terrain_layer)
        layers.extend(self._marker_layers())
        return layers

    def widgets(self) -> list[pdk.Widget]:
        """deck.gl widgets for the attached controls, in attachment order."""
        widgets: list[pdk.Widget] = []
        for control in self._controls:
            if control.kind == ControlKind.NAVIGATION:
                widgets.append(pdk.Widget("ZoomWidget", placement=control.position))
                widgets.append(pdk.Widget("CompassWidget", placement=control.position))
            elif control.kind == ControlKind.FULLSCREEN:
                widgets.append(pdk.Widget("FullscreenWidget", placement=control.position))
        return widgets

    def _terrain_layer(self) -> pdk.Layer | None:
        if self._terrain is None or self._elevation_tiles_url is None:
            return None
        _source_id, exaggeration = self._terrain
        decoder = {key: value * exaggeration for key, value in MapTilerConfig.ELEVATION_DECODER.items()}
        return pdk.Layer(
            "TerrainLayer",
            elevation_data=self._elevation_tiles_url,
            elevation_decoder=decoder,
            texture=self._texture_url,
            id="terrain_3d",
            pickable=False,
        )

    def _marker_layers(self) -> list[pdk.Layer]:
        icon_data: list[dict[str, Any]] = []
        plain_data: list[dict[str, Any]] = []
        for element, popup in self._markers:
            datum = {
                "type": "marker",
                "id": element.key,
                "index": element.index,
                "position": list(element.lng_lat),
                "popup_html": popup.html,
                "size": _css_px(element.style.get("width", f"{DEFAULT_MARKER_PX}px")),
            }
            if element.icon_url:
                datum["icon_data"] = {
                    "url": element.icon_url,
                    "width": ICON_SIZE_PX,
                    "height": ICON_SIZE_PX,
                    "anchorY": ICON_SIZE_PX,
                }
                icon_data.append(datum)
            else:
                plain_data.append(datum)

        layers: list[pdk.Layer] = []
        if icon_data:
            layers.append(
                pdk.Layer(
                    "IconLayer",
                    data=icon_data,
                    id="poi_icons",
                    get_icon="icon_data",
                    get_position="position",
                    get_size="size",
                    size_units="pixels",
                    pickable=True,
                )
            )
        if plain_data:
            layers.append(
                pdk.Layer(
                    "ScatterplotLayer",
                    data=plain_data,
                    id="poi_dots",
                    get_position="position",
                    get_radius="size / 2",
                    radius_units="pixels",
                    get_fill_color=[239, 68, 68, 230],
                    pickable=True,
                )
            )
        return layers

    def to_deck(self, tooltip_style: dict[str, str] | None = None) -> pdk.Deck:
        """Build a pydeck.Deck for the current engine state.

        Args:
            tooltip_style: CSS for the popup tooltip (background, color, ...)

        Returns:
            Deck with terrain basemap (3D) or the vector style (terrain disabled).
        """
        self._check_alive()
        tooltip = {"html": "{popup_html}", "style": tooltip_style or {}}
        if self._terrain is not None and self._elevation_tiles_url is not None:
            return pdk.Deck(
                layers=self.layers(),
                initial_view_state=self.view_state(),
                map_provider=None,
                map_style=None,
                tooltip=tooltip,
                widgets=self.widgets(),
            )
        return pdk.Deck(
            layers=self.layers(),
            initial_view_state=self.view_state(),
            map_provider="mapbox",
            map_style=self._options.style_url,
            tooltip=tooltip,
            widgets=self.widgets(),
        )
