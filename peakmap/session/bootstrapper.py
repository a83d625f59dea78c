"""Session Bootstrapper - waits for a measurable mount target, then constructs the engine.

The mount target's on-screen size may not be established yet when the engine
runtime becomes available (common when a host lays the panel out late). The
bootstrapper therefore polls measure() every poll_interval_ms until width and
height are both positive. Polling is bounded by max_wait_ms: when the deadline
passes, on_failed receives a BootstrapTimeout instead of polling forever.

Before construction it computes the pan bounds (bounds_radius_km around the
camera center) and the optional terrain block.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from peakmap.core.geo_calculator import GeoCalculator
from peakmap.engine.base import EngineFactory, EngineOptions, MapEngine, MountTarget, TerrainOptions
from peakmap.model.map_config import MapPanelConfig
from peakmap.session.context import SessionState

logger = logging.getLogger(__name__)


class BootstrapTimeout(Exception):
    """The mount target never reported positive dimensions before the deadline."""

    def __init__(self, waited_ms: float, attempts: int) -> None:
        super().__init__(f"Mount target still not measurable after {waited_ms:.0f} ms ({attempts} attempts)")
        self.waited_ms = waited_ms
        self.attempts = attempts


def build_engine_options(config: MapPanelConfig, mount_target: MountTarget) -> EngineOptions:
    """Engine construction options for a resolved config."""
    camera = config.camera
    bounds = GeoCalculator.max_bounds(center=camera.center, radius_km=config.bootstrap.bounds_radius_km)
    terrain = (
        TerrainOptions(source=config.terrain.source, exaggeration=config.terrain.exaggeration)
        if config.terrain.enabled
        else None
    )
    return EngineOptions(
        container=mount_target,
        style_url=config.style_url,
        center=camera.center,
        zoom=camera.zoom,
        pitch=camera.pitch,
        bearing=camera.bearing,
        max_bounds=bounds,
        terrain=terrain,
    )


class SessionBootstrapper:
    """Polls the mount target and constructs the engine once it is measurable."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        state: SessionState,
        config: MapPanelConfig,
        mount_target: MountTarget,
        engine_factory: EngineFactory,
    ) -> None:
        self._loop = loop
        self._state = state
        self._config = config
        self._mount_target = mount_target
        self._engine_factory = engine_factory
        self._on_constructed: Callable[[MapEngine], None] | None = None
        self._on_failed: Callable[[Exception], None] | None = None
        self._started_at: float | None = None
        self.attempts = 0

    def start(
        self,
        on_constructed: Callable[[MapEngine], None],
        on_failed: Callable[[Exception], None],
    ) -> None:
        """Begin polling on the next loop tick.

        Args:
            on_constructed: Receives the engine handle (already stored in SessionState)
            on_failed: Receives BootstrapTimeout, or the engine factory's exception
        """
        if self._started_at is not None:
            raise RuntimeError("Bootstrap already started for this session")
        self._on_constructed = on_constructed
        self._on_failed = on_failed
        self._started_at = self._loop.time()
        self._state.poll_handle = self._loop.call_soon(self._poll)

    def cancel(self) -> None:
        """Cancel the pending poll (no-op if none)."""
        self._state.cancel_poll()

    def _poll(self) -> None:
        self._state.poll_handle = None
        if self._state.disposed:
            return
        self.attempts += 1

        width, height = self._mount_target.measure()
        if width > 0 and height > 0:
            logger.info(f"[BOOTSTRAP] Mount target measurable ({width:.0f}x{height:.0f}) after {self.attempts} attempt(s)")
            self._construct()
            return

        assert self._started_at is not None
        waited_ms = (self._loop.time() - self._started_at) * 1000
        bootstrap = self._config.bootstrap
        if waited_ms + bootstrap.poll_interval_ms > bootstrap.max_wait_ms:
            error = BootstrapTimeout(waited_ms=waited_ms, attempts=self.attempts)
            logger.error(f"[BOOTSTRAP] {error}")
            self._fail(error)
            return

        logger.debug(f"[BOOTSTRAP] Mount target is {width}x{height}, retrying in {bootstrap.poll_interval_ms} ms")
        self._state.poll_handle = self._loop.call_later(bootstrap.poll_interval_ms / 1000, self._poll)

    def _construct(self) -> None:
        options = build_engine_options(config=self._config, mount_target=self._mount_target)
        bounds = options.max_bounds
        logger.info(
            f"[BOOTSTRAP] Constructing engine: center={options.center}, "
            f"bounds=±{bounds.lng_delta:.4f}° lng / ±{bounds.lat_delta:.4f}° lat, "
            f"terrain={'on' if options.terrain else 'off'}"
        )
        if self._state.engine is not None:
            raise RuntimeError("Engine already constructed for this session")
        try:
            engine = self._engine_factory(options)
        except Exception as e:
            logger.error(f"[BOOTSTRAP] Engine construction failed: {type(e).__name__}: {e}")
            self._fail(e)
            return
        self._state.engine = engine
        assert self._on_constructed is not None
        self._on_constructed(engine)

    def _fail(self, error: Exception) -> None:
        assert self._on_failed is not None
        self._on_failed(error)
