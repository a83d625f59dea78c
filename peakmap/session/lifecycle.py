"""Session Lifecycle Manager - one map session from mount to teardown.

Uses python-statemachine to track the session phase:

States:
    CREATED: Constructed, nothing acquired (initial)
    MISSING_KEY: No API key; placeholder only, no bootstrap
    LOADING_RESOURCES: Engine script/stylesheet requested
    MEASURING: Runtime available, polling the mount target
    BUILDING_FEATURES: Engine constructed, waiting for "load"
    AWAITING_IDLE: Features attached, waiting for the first "idle"
    READY: Map usable; rotation running if enabled
    FAILED: Resource load, engine construction, feature build or polling failed
    TORN_DOWN: Final. Every acquired resource released

Transitions:
    CREATED -> MISSING_KEY: reject_key
    CREATED -> LOADING_RESOURCES: load_resources
    LOADING_RESOURCES -> MEASURING: resources_loaded
    MEASURING -> BUILDING_FEATURES: engine_constructed
    BUILDING_FEATURES -> AWAITING_IDLE: features_built
    AWAITING_IDLE -> READY: became_idle
    LOADING_RESOURCES/MEASURING/BUILDING_FEATURES/AWAITING_IDLE -> FAILED: fail
    any non-final -> TORN_DOWN: tear_down

Ordering guarantees:
- Features are attached only inside the engine's load handler
- ready flips, rotation starts and on_map_ready fires only on the first idle
  after the feature build, each exactly once
- teardown() releases whatever was acquired, at any phase, exactly once

Host callbacks (on_marker_click, on_map_ready, on_bootstrap_failed) are invoked
on the session's event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from functools import partial
from typing import Any

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from peakmap.engine.base import EngineFactory, EngineOptions, MapEngine, MountTarget
from peakmap.engine.host_document import HostDocument
from peakmap.engine.pydeck_engine import PydeckMapEngine
from peakmap.model.map_config import MapPanelConfig
from peakmap.model.map_point import MapPoint
from peakmap.session.bootstrapper import SessionBootstrapper
from peakmap.session.context import SessionState
from peakmap.session.feature_layers import FeatureLayerBuilder
from peakmap.session.navigator import CameraNavigator, MarkerClickCallback
from peakmap.session.resource_loader import ResourceLoader
from peakmap.session.rotation import RotationAnimator

logger = logging.getLogger(__name__)


class PhaseLogListener:
    """Logs every phase transition of a SessionPhaseMachine."""

    def after_transition(self, event: str, source: State, target: State) -> None:
        logger.info(f"[SESSION] {source.id} --{event}--> {target.id}")


class SessionPhaseMachine(StateMachine):
    """Phase of one map session. The phase is stored in SessionState.phase."""

    created = State("Created", initial=True)
    missing_key = State("MissingKey")
    loading_resources = State("LoadingResources")
    measuring = State("Measuring")
    building_features = State("BuildingFeatures")
    awaiting_idle = State("AwaitingIdle")
    ready = State("Ready")
    failed = State("Failed")
    torn_down = State("TornDown", final=True)

    reject_key = created.to(missing_key)
    load_resources = created.to(loading_resources)
    resources_loaded = loading_resources.to(measuring)
    engine_constructed = measuring.to(building_features)
    features_built = building_features.to(awaiting_idle)
    became_idle = awaiting_idle.to(ready)
    fail = (
        loading_resources.to(failed)
        | measuring.to(failed)
        | building_features.to(failed)
        | awaiting_idle.to(failed)
    )
    tear_down = (
        created.to(torn_down)
        | missing_key.to(torn_down)
        | loading_resources.to(torn_down)
        | measuring.to(torn_down)
        | building_features.to(torn_down)
        | awaiting_idle.to(torn_down)
        | ready.to(torn_down)
        | failed.to(torn_down)
    )

    def __init__(self, session: SessionState | None = None) -> None:
        super().__init__(model=session or SessionState(), state_field="phase")

    @property
    def session(self) -> SessionState:
        return self.model

    def before_fail(self, reason: str) -> None:
        self.model.failure = reason

    def try_transition(self, event: str, **kwargs: Any) -> bool:
        """Attempt a transition, returning success/failure.

        Args:
            event: Transition event name
            **kwargs: Arguments for transition

        Returns:
            True if transition succeeded, False otherwise.
        """
        try:
            self.send(event, **kwargs)
            return True
        except TransitionNotAllowed:
            logger.warning(f"[SESSION] Transition '{event}' not allowed from {self.current_state.id}")
            return False

    @staticmethod
    def create(session: SessionState | None = None, log_transitions: bool = True) -> SessionPhaseMachine:
        """Factory method: machine over a (new) SessionState, optionally logging transitions."""
        sm = SessionPhaseMachine(session=session)
        if log_transitions:
            sm.add_listener(PhaseLogListener())
        return sm


def pydeck_engine_factory(config: MapPanelConfig, loop: asyncio.AbstractEventLoop) -> EngineFactory:
    """EngineFactory building a PydeckMapEngine with MapTiler tiles for config."""

    def factory(options: EngineOptions) -> MapEngine:
        return PydeckMapEngine(
            options,
            loop=loop,
            texture_url=config.raster_tiles_url,
            elevation_tiles_url=config.terrain_tiles_url,
        )

    return factory


class SessionLifecycleManager:
    """Coordinates resource loading, bootstrap, features, rotation and navigation.

    Example:
        session = SessionLifecycleManager(config, points, loop=loop, document=doc, mount_target=target)
        session.mount()
        ...
        session.go_to(points[0], 0)
        session.teardown()
    """

    def __init__(
        self,
        config: MapPanelConfig,
        points: Sequence[MapPoint],
        loop: asyncio.AbstractEventLoop,
        document: HostDocument,
        mount_target: MountTarget,
        engine_factory: EngineFactory | None = None,
        on_marker_click: MarkerClickCallback | None = None,
        on_map_ready: Callable[[], None] | None = None,
        on_bootstrap_failed: Callable[[Exception], None] | None = None,
    ) -> None:
        self.config = config
        self.points = tuple(points)
        self._loop = loop
        self._on_map_ready = on_map_ready
        self._on_bootstrap_failed = on_bootstrap_failed

        self.machine = SessionPhaseMachine.create()
        self.state = self.machine.session
        self.rotation = RotationAnimator(loop=loop, state=self.state, config=config.rotation, center=config.camera.center)
        self.navigator = CameraNavigator(
            loop=loop, state=self.state, config=config, on_marker_click=on_marker_click, rotation=self.rotation
        )
        self.loader = ResourceLoader(document=document, state=self.state)
        self.bootstrapper = SessionBootstrapper(
            loop=loop,
            state=self.state,
            config=config,
            mount_target=mount_target,
            engine_factory=engine_factory or pydeck_engine_factory(config, loop),
        )
        self.features = FeatureLayerBuilder(state=self.state, config=config, points=self.points)

    # ==========================================================================
    # Observable state
    # ==========================================================================

    @property
    def phase(self) -> str:
        return self.machine.current_state.id

    @property
    def ready(self) -> bool:
        return self.state.ready

    @property
    def engine(self) -> MapEngine | None:
        return self.state.engine

    @property
    def list_open(self) -> bool:
        return self.state.list_open

    @property
    def torn_down(self) -> bool:
        return self.state.disposed

    # ==========================================================================
    # Mount / teardown
    # ==========================================================================

    def mount(self) -> bool:
        """Start the session. Returns False if nothing was started."""
        if not self.machine.created.is_active:
            logger.warning(f"[SESSION] mount() ignored in phase {self.phase}")
            return False
        if not self.config.has_api_key:
            logger.warning("[SESSION] No API key configured - showing placeholder, map not loaded")
            self.machine.try_transition("reject_key")
            return False

        self.machine.try_transition("load_resources")
        engine = self.config.engine
        self.loader.load(
            script_url=engine.script_url,
            style_url=engine.css_url,
            on_loaded=self._on_resources_loaded,
            on_error=partial(self._on_failure, "resource load"),
        )
        return True

    def teardown(self) -> bool:
        """Release everything the session acquired. Idempotent.

        Returns:
            True on the first call, False afterwards.
        """
        if self.state.disposed:
            return False
        self.state.disposed = True

        self.bootstrapper.cancel()
        self.loader.dispose()
        self.rotation.cancel(reason="teardown")
        self.state.cancel_rotation_timer()
        self.state.cancel_pending_callbacks()

        engine = self.state.engine
        if engine is not None and not engine.removed:
            engine.remove()
        self.machine.try_transition("tear_down")
        logger.info(f"[SESSION] Torn down: {self.state!r}")
        return True

    # ==========================================================================
    # Navigation
    # ==========================================================================

    def go_to(self, point: MapPoint, index: int) -> bool:
        return self.navigator.go_to(point=point, index=index)

    def toggle_list(self) -> bool:
        return self.navigator.toggle_list()

    def close_list(self) -> None:
        self.navigator.close_list()

    def interact(self, event: str) -> None:
        """Forward a host input event to the engine (e.g. a marker click as mousedown)."""
        engine = self.state.engine
        if engine is None or engine.removed:
            return
        engine.fire(event)

    # ==========================================================================
    # Bootstrap chain
    # ==========================================================================

    def _on_resources_loaded(self) -> None:
        self.machine.try_transition("resources_loaded")
        self.bootstrapper.start(
            on_constructed=self._on_engine_constructed,
            on_failed=partial(self._on_failure, "bootstrap"),
        )

    def _on_engine_constructed(self, engine: MapEngine) -> None:
        self.machine.try_transition("engine_constructed")
        self.features.attach(
            engine,
            on_interaction=self._on_interaction,
            on_built=self._on_features_built,
            on_idle=self._on_idle,
            on_failed=partial(self._on_failure, "feature build"),
        )

    def _on_features_built(self) -> None:
        self.machine.try_transition("features_built")

    def _on_interaction(self, event: str) -> None:
        if self.rotation.stop(reason=event):
            logger.debug(f"[SESSION] User interaction '{event}' stopped rotation")

    def _on_idle(self) -> None:
        if not self.state.mark_ready():
            return
        self.machine.try_transition("became_idle")
        self.rotation.start()
        logger.info(f"[SESSION] Map ready with {len(self.points)} point(s)")
        if self._on_map_ready is not None:
            self._on_map_ready()

    def _on_failure(self, stage: str, error: Exception) -> None:
        if self.state.disposed:
            return
        self.machine.try_transition("fail", reason=f"{stage}: {error}")
        logger.error(f"[SESSION] Session failed during {stage}: {error}")
        if self._on_bootstrap_failed is not None:
            self._on_bootstrap_failed(error)
