"""Tests for the map session components.

Tests: ResourceLoader, SessionBootstrapper, FeatureLayerBuilder, RotationAnimator,
CameraNavigator, SessionState
Focus: event ordering and handle bookkeeping on the virtual clock (FakeLoop)
"""

from typing import TYPE_CHECKING

import pytest
from hypothesis import given, settings, strategies as st

from peakmap.engine.base import ControlKind, EngineEvent, linear
from peakmap.model.map_config import MapPanelConfig, resolve_config
from peakmap.session.bootstrapper import BootstrapTimeout, SessionBootstrapper, build_engine_options
from peakmap.session.context import SessionState
from peakmap.session.feature_layers import FeatureLayerBuilder
from peakmap.session.navigator import CameraNavigator
from peakmap.session.resource_loader import ResourceLoader
from peakmap.session.rotation import RotationAnimator, RotationStateMachine

from conftest import TEST_API_KEY, FakeLoop, FakeMapEngine, make_engine_options

if TYPE_CHECKING:
    from conftest import EngineRecorder, FakeDocument, FakeMountTarget


# =============================================================================
# RESOURCE LOADER
# =============================================================================


class TestResourceLoader:
    def _load(self, loader: ResourceLoader) -> tuple[list[bool], list[Exception]]:
        loaded: list[bool] = []
        errors: list[Exception] = []
        loader.load(
            script_url="https://cdn/maplibre.js",
            style_url="https://cdn/maplibre.css",
            on_loaded=lambda: loaded.append(True),
            on_error=errors.append,
        )
        return loaded, errors

    def test_inserts_one_script_and_one_stylesheet(self, document: "FakeDocument", state: SessionState) -> None:
        loader = ResourceLoader(document=document, state=state)
        self._load(loader)
        assert [s.src for s in document.scripts] == ["https://cdn/maplibre.js"]
        assert [s.href for s in document.stylesheets] == ["https://cdn/maplibre.css"]
        assert state.script_tag is document.scripts[0]
        assert state.stylesheet_link is document.stylesheets[0]

    def test_single_completion_signal(self, document: "FakeDocument", state: SessionState) -> None:
        loader = ResourceLoader(document=document, state=state)
        loaded, errors = self._load(loader)
        tag = document.scripts[0]
        document.fire_load(tag)
        document.fire_load(tag)
        document.fire_error(tag, RuntimeError("late"))
        assert loaded == [True]
        assert errors == []

    def test_error_is_reported_once_without_retry(self, document: "FakeDocument", state: SessionState) -> None:
        loader = ResourceLoader(document=document, state=state)
        loaded, errors = self._load(loader)
        document.fire_error(document.scripts[0], RuntimeError("404"))
        assert loaded == []
        assert [str(e) for e in errors] == ["404"]
        assert len(document.scripts) == 1

    def test_second_load_is_ignored(self, document: "FakeDocument", state: SessionState) -> None:
        loader = ResourceLoader(document=document, state=state)
        self._load(loader)
        self._load(loader)
        assert len(document.scripts) == 1
        assert loader.started

    def test_dispose_removes_directives_and_silences_load(self, document: "FakeDocument", state: SessionState) -> None:
        loader = ResourceLoader(document=document, state=state)
        loaded, _errors = self._load(loader)
        tag = document.scripts[0]
        loader.dispose()
        document.fire_load(tag)
        assert loaded == []
        assert document.head == []
        assert state.script_tag is None
        assert state.stylesheet_link is None
        loader.dispose()


# =============================================================================
# BOOTSTRAPPER
# =============================================================================


class TestSessionBootstrapper:
    def _bootstrapper(
        self,
        loop: FakeLoop,
        state: SessionState,
        config: MapPanelConfig,
        mount_target: "FakeMountTarget",
        recorder: "EngineRecorder",
    ) -> tuple[SessionBootstrapper, list[object], list[Exception]]:
        constructed: list[object] = []
        failures: list[Exception] = []
        bootstrapper = SessionBootstrapper(
            loop=loop, state=state, config=config, mount_target=mount_target, engine_factory=recorder  # type: ignore[arg-type]
        )
        bootstrapper.start(on_constructed=constructed.append, on_failed=failures.append)
        return bootstrapper, constructed, failures

    def test_constructs_on_first_tick_when_measurable(self, loop, state, config, mount_target, recorder) -> None:
        _b, constructed, failures = self._bootstrapper(loop, state, config, mount_target, recorder)
        assert constructed == []
        loop.run_until_idle()
        assert constructed == [recorder.engine]
        assert state.engine is recorder.engine
        assert failures == []

    def test_polls_every_interval_until_measurable(self, loop, state, config, mount_target, recorder) -> None:
        mount_target.width = 0
        bootstrapper, constructed, _failures = self._bootstrapper(loop, state, config, mount_target, recorder)
        loop.run_until_idle()
        loop.advance(0.25)
        assert constructed == []
        assert bootstrapper.attempts == 3
        mount_target.width = 640
        loop.advance(0.1)
        assert constructed == [recorder.engine]
        assert bootstrapper.attempts == 4
        assert state.poll_handle is None

    def test_times_out_after_max_wait(self, loop, state, mount_target, recorder) -> None:
        config = resolve_config(api_key=TEST_API_KEY, bootstrap={"poll_interval_ms": 100, "max_wait_ms": 1000})
        mount_target.height = 0
        bootstrapper, constructed, failures = self._bootstrapper(loop, state, config, mount_target, recorder)
        loop.advance(5)
        assert constructed == []
        assert len(failures) == 1
        assert isinstance(failures[0], BootstrapTimeout)
        assert failures[0].attempts == bootstrapper.attempts
        assert failures[0].waited_ms < 1001
        assert state.poll_handle is None
        assert loop.pending == 0

    def test_cancel_stops_polling(self, loop, state, config, mount_target, recorder) -> None:
        mount_target.width = 0
        bootstrapper, constructed, failures = self._bootstrapper(loop, state, config, mount_target, recorder)
        loop.advance(0.3)
        bootstrapper.cancel()
        mount_target.width = 800
        loop.advance(20)
        assert constructed == []
        assert failures == []
        assert loop.pending == 0

    def test_factory_error_goes_to_on_failed(self, loop, state, config, mount_target, recorder) -> None:
        recorder.error = RuntimeError("WebGL not supported")
        _b, constructed, failures = self._bootstrapper(loop, state, config, mount_target, recorder)
        loop.run_until_idle()
        assert constructed == []
        assert [str(e) for e in failures] == ["WebGL not supported"]
        assert state.engine is None

    def test_start_twice_raises(self, loop, state, config, mount_target, recorder) -> None:
        bootstrapper, _c, _f = self._bootstrapper(loop, state, config, mount_target, recorder)
        with pytest.raises(RuntimeError, match="already started"):
            bootstrapper.start(on_constructed=print, on_failed=print)

    def test_engine_options(self, config, mount_target) -> None:
        options = build_engine_options(config=config, mount_target=mount_target)
        assert options.container is mount_target
        assert options.center == config.camera.center
        assert options.bearing == -90
        assert options.style_url == config.style_url
        assert options.terrain is not None
        assert options.terrain.exaggeration == 1.5
        assert options.max_bounds.lat_delta == pytest.approx(5 / 111)

    def test_engine_options_without_terrain(self, mount_target) -> None:
        config = resolve_config(api_key=TEST_API_KEY, terrain={"enabled": False})
        assert build_engine_options(config=config, mount_target=mount_target).terrain is None


# =============================================================================
# FEATURE LAYER BUILDER
# =============================================================================


@pytest.fixture
def engine() -> FakeMapEngine:
    return FakeMapEngine(make_engine_options())


class TestFeatureLayerBuilder:
    def _attach(self, builder: FeatureLayerBuilder, engine: FakeMapEngine) -> list[str]:
        calls: list[str] = []
        builder.attach(
            engine,
            on_interaction=lambda event: calls.append(f"interaction:{event}"),
            on_built=lambda: calls.append("built"),
            on_idle=lambda: calls.append("idle"),
        )
        return calls

    def test_nothing_is_attached_before_load(self, state, config, points, engine) -> None:
        builder = FeatureLayerBuilder(state=state, config=config, points=points)
        calls = self._attach(builder, engine)
        engine.emit(EngineEvent.IDLE)
        assert calls == []
        assert engine.markers == []
        assert engine.sources == {}

    def test_load_attaches_terrain_controls_and_markers(self, state, config, points, engine) -> None:
        builder = FeatureLayerBuilder(state=state, config=config, points=points)
        calls = self._attach(builder, engine)
        engine.emit(EngineEvent.LOAD)

        assert calls == ["built"]
        source = engine.sources["terrainSource"]
        assert source.type == "raster-dem"
        assert source.url == config.terrain_tilejson_url
        assert source.tile_size == 512
        assert source.max_zoom == 14
        assert engine.terrain == ("terrainSource", 1.5)
        assert [(c.kind, c.position, c.visualize_pitch) for c in engine.controls] == [
            (ControlKind.NAVIGATION, "top-right", True)
        ]
        assert [m.key for m, _p in engine.markers] == ["alps", "1"]
        assert [m.index for m, _p in engine.markers] == [0, 1]
        assert engine.markers[0][0].lng_lat == points[0].lng_lat
        assert engine.markers[0][1].offset == 25
        assert "<h2>Swiss Alps</h2>" in engine.markers[0][1].html

    def test_idle_after_build_reports_once(self, state, config, points, engine) -> None:
        builder = FeatureLayerBuilder(state=state, config=config, points=points)
        calls = self._attach(builder, engine)
        engine.emit(EngineEvent.LOAD)
        engine.emit(EngineEvent.IDLE)
        engine.emit(EngineEvent.IDLE)
        assert calls == ["built", "idle"]

    def test_interactions_are_forwarded(self, state, config, points, engine) -> None:
        builder = FeatureLayerBuilder(state=state, config=config, points=points)
        calls = self._attach(builder, engine)
        engine.emit(EngineEvent.LOAD)
        for event in (EngineEvent.MOUSEDOWN, EngineEvent.TOUCHSTART, EngineEvent.WHEEL):
            engine.fire(event)
        assert calls[1:] == ["interaction:mousedown", "interaction:touchstart", "interaction:wheel"]

    def test_terrain_disabled_still_adds_source(self, state, points, engine) -> None:
        config = resolve_config(api_key=TEST_API_KEY, terrain={"enabled": False, "source": "dem"})
        builder = FeatureLayerBuilder(state=state, config=config, points=points)
        self._attach(builder, engine)
        engine.emit(EngineEvent.LOAD)
        assert "dem" in engine.sources
        assert engine.terrain is None

    def test_controls_follow_ui_flags(self, state, points, engine) -> None:
        config = resolve_config(api_key=TEST_API_KEY, ui={"show_navigation": False, "show_fullscreen": True})
        builder = FeatureLayerBuilder(state=state, config=config, points=points)
        self._attach(builder, engine)
        engine.emit(EngineEvent.LOAD)
        assert [(c.kind, c.position) for c in engine.controls] == [(ControlKind.FULLSCREEN, "top-left")]

    def test_empty_point_list_builds_no_markers(self, state, config, engine) -> None:
        builder = FeatureLayerBuilder(state=state, config=config, points=[])
        calls = self._attach(builder, engine)
        engine.emit(EngineEvent.LOAD)
        assert engine.markers == []
        assert calls == ["built"]

    def test_build_failure_is_reported(self, state, config, points, engine) -> None:
        failures: list[Exception] = []
        builder = FeatureLayerBuilder(state=state, config=config, points=points)
        builder.attach(engine, on_interaction=print, on_built=print, on_idle=print, on_failed=failures.append)
        # Every feature request now raises EngineRemovedError
        engine.remove_count = 1
        engine.emit(EngineEvent.LOAD)
        assert len(failures) == 1
        assert not builder.built

    def test_disposed_session_ignores_load(self, state, config, points, engine) -> None:
        builder = FeatureLayerBuilder(state=state, config=config, points=points)
        calls = self._attach(builder, engine)
        state.disposed = True
        engine.emit(EngineEvent.LOAD)
        assert calls == []
        assert engine.markers == []


# =============================================================================
# ROTATION
# =============================================================================


def rotating_config(**rotation) -> MapPanelConfig:
    return resolve_config(api_key=TEST_API_KEY, rotation={"enabled": True, **rotation})


@pytest.fixture
def rotation_setup(loop: FakeLoop, state: SessionState, engine: FakeMapEngine):
    def build(**rotation) -> RotationAnimator:
        config = rotating_config(**rotation)
        state.engine = engine
        return RotationAnimator(loop=loop, state=state, config=config.rotation, center=config.camera.center)

    return build


class TestRotationAnimator:
    def test_first_step_eases_from_initial_bearing(self, rotation_setup, engine) -> None:
        animator = rotation_setup()
        assert animator.start()
        assert animator.is_stepping
        assert len(engine.ease_calls) == 1
        call = engine.ease_calls[0]
        assert call["bearing"] == 300  # -90 → 270, +30
        assert call["duration_ms"] == 12000
        assert call["easing"] is linear
        assert call["center"] == rotating_config().camera.center

    def test_next_step_waits_for_moveend(self, rotation_setup, engine, loop, state) -> None:
        animator = rotation_setup()
        animator.start()
        loop.advance(60)
        assert len(engine.ease_calls) == 1
        engine.emit(EngineEvent.MOVEEND)
        assert state.pending_rotation_timer is not None
        loop.run_until_idle()
        assert len(engine.ease_calls) == 2
        assert state.pending_rotation_timer is None
        assert animator.bearing == 330

    def test_twelve_steps_return_to_initial_bearing(self, rotation_setup, engine, loop) -> None:
        animator = rotation_setup()
        animator.start()
        for _ in range(11):
            engine.emit(EngineEvent.MOVEEND)
            loop.run_until_idle()
        assert animator.step_count == 12
        assert animator.bearing == 270
        assert [c["bearing"] for c in engine.ease_calls][:4] == [300, 330, 0, 30]

    def test_disabled_rotation_never_starts(self, loop, state, engine) -> None:
        config = resolve_config(api_key=TEST_API_KEY, rotating=False)
        state.engine = engine
        animator = RotationAnimator(loop=loop, state=state, config=config.rotation, center=config.camera.center)
        assert not animator.start()
        assert engine.ease_calls == []
        assert not state.rotation_active

    def test_stop_cancels_pending_step(self, rotation_setup, engine, loop, state) -> None:
        animator = rotation_setup()
        animator.start()
        engine.emit(EngineEvent.MOVEEND)
        assert animator.stop(reason="mousedown")
        assert state.pending_rotation_timer is None
        assert not state.rotation_active
        loop.advance(60)
        assert len(engine.ease_calls) == 1
        assert loop.pending == 0

    def test_stop_is_idempotent_and_permanent(self, rotation_setup, engine, loop) -> None:
        animator = rotation_setup()
        animator.start()
        assert animator.stop(reason="wheel")
        assert not animator.stop(reason="wheel")
        assert not animator.start()
        engine.emit(EngineEvent.MOVEEND)
        loop.advance(60)
        assert len(engine.ease_calls) == 1
        assert animator.is_stopped
        assert animator.machine.rotation.stop_reason == "wheel"

    def test_interaction_before_start_is_ignored(self, rotation_setup, engine) -> None:
        animator = rotation_setup()
        assert not animator.stop(reason="touchstart")
        assert animator.machine.is_idle
        assert animator.start()
        assert animator.is_stepping
        assert len(engine.ease_calls) == 1

    def test_cancel_before_start_prevents_start(self, rotation_setup, engine) -> None:
        animator = rotation_setup()
        assert animator.cancel(reason="teardown")
        assert not animator.cancel(reason="teardown")
        assert not animator.start()
        assert engine.ease_calls == []
        assert animator.machine.rotation.stop_reason == "teardown"

    def test_cancel_running_rotation(self, rotation_setup, engine, loop, state) -> None:
        animator = rotation_setup()
        animator.start()
        engine.emit(EngineEvent.MOVEEND)
        assert animator.cancel(reason="go_to")
        assert state.pending_rotation_timer is None
        loop.advance(60)
        assert len(engine.ease_calls) == 1
        assert animator.is_stopped

    def test_no_step_after_engine_removed(self, rotation_setup, engine, loop) -> None:
        animator = rotation_setup()
        animator.start()
        engine.emit(EngineEvent.MOVEEND)
        engine.remove()
        loop.run_until_idle()
        assert len(engine.ease_calls) == 1

    @given(
        initial=st.floats(min_value=-720, max_value=720, allow_nan=False),
        speed=st.floats(min_value=-180, max_value=180, allow_nan=False),
        steps=st.integers(min_value=1, max_value=30),
    )
    @settings(max_examples=50, deadline=None)
    def test_requested_bearing_always_in_range(self, initial, speed, steps) -> None:
        loop = FakeLoop()
        state = SessionState()
        engine = FakeMapEngine(make_engine_options())
        state.engine = engine
        config = rotating_config(initial_bearing=initial, speed=speed)
        animator = RotationAnimator(loop=loop, state=state, config=config.rotation, center=config.camera.center)
        animator.start()
        for _ in range(steps - 1):
            engine.emit(EngineEvent.MOVEEND)
            loop.run_until_idle()
        assert len(engine.ease_calls) == steps
        assert all(0.0 <= call["bearing"] < 360.0 for call in engine.ease_calls)


class TestRotationStateMachine:
    def test_initial_state_is_idle(self) -> None:
        sm = RotationStateMachine()
        assert sm.is_idle
        assert sm.rotation.step_count == 0

    def test_advance_updates_model(self) -> None:
        sm = RotationStateMachine()
        sm.start_rotation()
        sm.advance(degrees=45)
        sm.advance(degrees=45)
        assert sm.is_stepping
        assert sm.rotation.bearing == 90
        assert sm.rotation.step_count == 2


# =============================================================================
# NAVIGATOR
# =============================================================================


class TestCameraNavigator:
    def _navigator(self, loop, state, config, rotation=None) -> tuple[CameraNavigator, list[tuple[str, int]]]:
        clicks: list[tuple[str, int]] = []
        navigator = CameraNavigator(
            loop=loop,
            state=state,
            config=config,
            on_marker_click=lambda point, index: clicks.append((point.title, index)),
            rotation=rotation,
        )
        return navigator, clicks

    def test_go_to_flies_and_calls_back_before_arrival(self, loop, state, config, points, engine) -> None:
        state.engine = engine
        navigator, clicks = self._navigator(loop, state, config)
        assert navigator.go_to(points[1], 1)
        assert engine.fly_calls == [{"center": (9.01, 46.51), "zoom": 16, "duration_ms": 2400}]
        loop.advance(2.199)
        assert clicks == []
        loop.advance(0.001)
        assert clicks == [("Swiss Valley", 1)]
        assert state.pending_callbacks == set()

    def test_go_to_without_engine_is_noop(self, loop, state, config, points) -> None:
        navigator, clicks = self._navigator(loop, state, config)
        assert not navigator.go_to(points[0], 0)
        loop.advance(10)
        assert clicks == []
        assert loop.pending == 0

    def test_go_to_stops_rotation(self, loop, state, config, points, engine) -> None:
        state.engine = engine
        rotation = RotationAnimator(loop=loop, state=state, config=config.rotation, center=config.camera.center)
        rotation.start()
        navigator, _clicks = self._navigator(loop, state, config, rotation=rotation)
        navigator.go_to(points[0], 0)
        assert rotation.is_stopped
        assert rotation.machine.rotation.stop_reason == "go_to"

    def test_go_to_closes_list_unless_pinned(self, loop, state, points, engine) -> None:
        state.engine = engine
        config = resolve_config(api_key=TEST_API_KEY)
        navigator, _clicks = self._navigator(loop, state, config)
        navigator.toggle_list()
        assert state.list_open
        navigator.go_to(points[0], 0)
        assert not state.list_open

    def test_pinned_list_is_never_toggled_open(self, loop, state) -> None:
        config = resolve_config(api_key=TEST_API_KEY, ui={"list_always_visible": True})
        navigator, _clicks = self._navigator(loop, state, config)
        assert not navigator.toggle_list()
        assert not state.list_open

    def test_toggle_list_flips(self, loop, state, config) -> None:
        navigator, _clicks = self._navigator(loop, state, config)
        assert navigator.toggle_list()
        assert not navigator.toggle_list()
        navigator.toggle_list()
        navigator.close_list()
        assert not state.list_open

    def test_short_duration_fires_callback_immediately(self, loop, state, points, engine) -> None:
        state.engine = engine
        config = resolve_config(api_key=TEST_API_KEY, animation={"fly_to_duration_ms": 100})
        navigator, clicks = self._navigator(loop, state, config)
        navigator.go_to(points[0], 0)
        assert navigator.callback_delay_s() == 0
        loop.run_until_idle()
        assert clicks == [("Swiss Alps", 0)]

    def test_pending_callback_cancelled_with_session(self, loop, state, config, points, engine) -> None:
        state.engine = engine
        navigator, clicks = self._navigator(loop, state, config)
        navigator.go_to(points[0], 0)
        state.cancel_pending_callbacks()
        loop.advance(10)
        assert clicks == []


class TestSessionState:
    def test_mark_ready_flips_once(self) -> None:
        state = SessionState()
        assert state.mark_ready()
        assert not state.mark_ready()
        assert state.ready

    def test_set_rotation_timer_replaces_pending(self, loop: FakeLoop) -> None:
        state = SessionState()
        first = loop.call_later(1, print)
        second = loop.call_later(1, print)
        state.set_rotation_timer(first)
        state.set_rotation_timer(second)
        assert first.cancelled()
        assert state.pending_rotation_timer is second
        assert state.has_pending_work
        state.cancel_rotation_timer()
        assert second.cancelled()
        assert not state.has_pending_work
