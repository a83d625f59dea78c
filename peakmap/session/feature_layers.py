"""Feature Layer Builder - terrain, controls and point markers.

Runs once, on the engine's "load" event:
1. Raster-DEM source under the configured source id; terrain activated when enabled
2. Navigation control (pitch-visualizing, top-right) and fullscreen control
   (top-left), each only when its UI flag is set
3. One marker + popup per point, in supplied order
4. Interaction handlers (mousedown/touchstart/wheel) that stop rotation

Then waits once for "idle" (the view finished rendering) and reports completion.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from peakmap.constants import MarkerDefaults, TerrainDefaults, UIDefaults
from peakmap.core.popup_renderer import marker_style, render_popup_html
from peakmap.engine.base import (
    ControlKind,
    ControlSpec,
    EngineEvent,
    MapEngine,
    MarkerElement,
    Popup,
    SourceDescriptor,
)
from peakmap.model.map_config import MapPanelConfig
from peakmap.model.map_point import MapPoint
from peakmap.session.context import SessionState

logger = logging.getLogger(__name__)


class FeatureLayerBuilder:
    """Attaches all map features once the engine's style has loaded."""

    def __init__(
        self,
        state: SessionState,
        config: MapPanelConfig,
        points: Sequence[MapPoint],
        popup_renderer: Callable[[MapPoint], str] = render_popup_html,
    ) -> None:
        self._state = state
        self._config = config
        self._points = tuple(points)
        self._popup_renderer = popup_renderer
        self.built = False

    def attach(
        self,
        engine: MapEngine,
        on_interaction: Callable[[str], None],
        on_built: Callable[[], None],
        on_idle: Callable[[], None],
        on_failed: Callable[[Exception], None] | None = None,
    ) -> None:
        """Register the load handler that builds all features.

        Args:
            engine: Freshly constructed engine
            on_interaction: Called with the event name on every user interaction
            on_built: Called right after all features were attached
            on_idle: Called once on the first idle after the build
            on_failed: Receives any exception raised while attaching features
        """

        def handle_load() -> None:
            if self._state.disposed:
                return
            try:
                self.build(engine)
            except Exception as e:
                logger.error(f"[FEATURES] Attaching features failed: {type(e).__name__}: {e}")
                if on_failed is None:
                    raise
                on_failed(e)
                return
            for event in EngineEvent.INTERACTIONS:
                engine.on(event, lambda event=event: on_interaction(event))
            on_built()
            engine.once(EngineEvent.IDLE, handle_idle)

        def handle_idle() -> None:
            if self._state.disposed:
                return
            logger.info("[FEATURES] Engine idle after feature build")
            on_idle()

        engine.once(EngineEvent.LOAD, handle_load)

    def build(self, engine: MapEngine) -> None:
        """Add terrain source, controls, markers and popups."""
        if self.built:
            raise RuntimeError("Features already attached for this session")
        self._add_terrain(engine)
        self._add_controls(engine)
        for index, point in enumerate(self._points):
            self._add_marker(engine, point=point, index=index)
        self.built = True
        logger.info(f"[FEATURES] Attached {len(self._points)} marker(s)")

    def _add_terrain(self, engine: MapEngine) -> None:
        terrain = self._config.terrain
        engine.add_source(
            terrain.source,
            SourceDescriptor(
                type="raster-dem",
                url=self._config.terrain_tilejson_url,
                tile_size=TerrainDefaults.TILE_SIZE,
                max_zoom=TerrainDefaults.MAX_ZOOM,
            ),
        )
        if terrain.enabled:
            engine.set_terrain(terrain.source, terrain.exaggeration)

    def _add_controls(self, engine: MapEngine) -> None:
        ui = self._config.ui
        if ui.show_navigation:
            engine.add_control(
                ControlSpec(kind=ControlKind.NAVIGATION, position=UIDefaults.NAVIGATION_POSITION, visualize_pitch=True)
            )
        if ui.show_fullscreen:
            engine.add_control(ControlSpec(kind=ControlKind.FULLSCREEN, position=UIDefaults.FULLSCREEN_POSITION))

    def _add_marker(self, engine: MapEngine, point: MapPoint, index: int) -> None:
        element = MarkerElement(
            key=point.key(index),
            index=index,
            lng_lat=point.lng_lat,
            style=marker_style(point=point, marker=self._config.marker),
            icon_url=point.pin,
        )
        popup = Popup(html=self._popup_renderer(point), offset=MarkerDefaults.POPUP_OFFSET_PX)
        engine.add_marker(element, popup)
