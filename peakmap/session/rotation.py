"""Rotation Animator - continuous, interruptible camera rotation.

Uses python-statemachine for the three rotation states:

States:
    IDLE: Waiting for the post-build idle signal (initial)
    STEPPING: Each step eases the bearing by `speed` degrees over
        `step_duration_ms`, center fixed, linear easing
    STOPPED: Final. Rotation never resumes within the session

Transitions:
    IDLE -> STEPPING: start_rotation (engine idle after feature build, rotation enabled)
    STEPPING -> STEPPING: advance (one bearing step)
    STEPPING -> STOPPED: stop_rotation (user interaction)
    IDLE/STEPPING -> STOPPED: cancel_rotation (go_to or teardown)

A user interaction before rotation has started is ignored, so the post-build
idle signal still starts rotation.

Stepping chains on the engine's own moveend signal instead of a fixed frame
schedule: when a step's transition completes and the machine is still STEPPING,
the next step is scheduled on the next loop tick. This keeps exactly one
transition request in flight and at most one pending step handle, which lives in
SessionState.pending_rotation_timer so teardown can cancel it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from statemachine import State, StateMachine

from peakmap.core.geo_calculator import GeoCalculator
from peakmap.engine.base import EngineEvent, linear
from peakmap.model.camera_state import LonLat, normalize_bearing
from peakmap.model.map_config import RotationConfig
from peakmap.session.context import SessionState

logger = logging.getLogger(__name__)


@dataclass
class RotationModel:
    """Observable rotation progress (model of RotationStateMachine)."""

    bearing: float = 0.0
    step_count: int = 0
    stop_reason: str | None = None


class RotationStateMachine(StateMachine):
    """Idle → Stepping → Stopped. See module docstring."""

    idle = State("Idle", initial=True)
    stepping = State("Stepping")
    stopped = State("Stopped", final=True)

    start_rotation = idle.to(stepping)
    advance = stepping.to(stepping)
    stop_rotation = stepping.to(stopped)
    cancel_rotation = idle.to(stopped) | stepping.to(stopped)

    def __init__(self, model: RotationModel | None = None) -> None:
        super().__init__(model=model or RotationModel())

    @property
    def rotation(self) -> RotationModel:
        return self.model

    @property
    def is_idle(self) -> bool:
        return self.idle.is_active

    @property
    def is_stepping(self) -> bool:
        return self.stepping.is_active

    @property
    def is_stopped(self) -> bool:
        return self.stopped.is_active

    def before_advance(self, degrees: float) -> None:
        """Action: move the target bearing one step, wrapped into [0, 360)."""
        self.model.bearing = GeoCalculator.step_bearing(bearing=self.model.bearing, degrees_per_step=degrees)
        self.model.step_count += 1

    def before_stop_rotation(self, reason: str) -> None:
        self.model.stop_reason = reason

    def before_cancel_rotation(self, reason: str) -> None:
        self.model.stop_reason = reason


class RotationAnimator:
    """Drives RotationStateMachine against the session's engine.

    Example:
        animator = RotationAnimator(loop=loop, state=state, config=cfg.rotation, center=cfg.camera.center)
        engine.once("idle", animator.start)
        engine.on("mousedown", lambda: animator.stop(reason="mousedown"))
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        state: SessionState,
        config: RotationConfig,
        center: LonLat,
    ) -> None:
        self._loop = loop
        self._state = state
        self._config = config
        self._center = center
        self.machine = RotationStateMachine(model=RotationModel(bearing=normalize_bearing(config.initial_bearing)))

    @property
    def bearing(self) -> float:
        """Bearing requested by the latest step (initial bearing before the first)."""
        return self.machine.rotation.bearing

    @property
    def step_count(self) -> int:
        return self.machine.rotation.step_count

    @property
    def is_stepping(self) -> bool:
        return self.machine.is_stepping

    @property
    def is_stopped(self) -> bool:
        return self.machine.is_stopped

    def start(self) -> bool:
        """Enter STEPPING and issue the first step.

        Returns:
            True if rotation started; False if disabled, already running or stopped.
        """
        if not self._config.enabled:
            logger.debug("[ROTATION] Disabled in configuration")
            return False
        if not self.machine.is_idle:
            logger.debug(f"[ROTATION] Not starting from state {self.machine.current_state.name}")
            return False
        self.machine.start_rotation()
        self._state.rotation_active = True
        logger.info(
            f"[ROTATION] Started: {self._config.speed}°/step every {self._config.step_duration_ms} ms "
            f"from {self.bearing:.1f}°"
        )
        self._step()
        return True

    def stop(self, reason: str) -> bool:
        """Stop a running rotation permanently (user interaction). Idempotent.

        Ignored while IDLE: rotation has not started yet and still starts on idle.

        Returns:
            True if this call stopped the rotation, False otherwise.
        """
        if not self.machine.is_stepping:
            logger.debug(f"[ROTATION] Stop ignored in state {self.machine.current_state.name} ({reason})")
            return False
        self.machine.stop_rotation(reason=reason)
        self._release()
        logger.info(f"[ROTATION] Stopped after {self.step_count} step(s) ({reason})")
        return True

    def cancel(self, reason: str) -> bool:
        """Stop permanently from IDLE or STEPPING (go_to, teardown). Idempotent.

        Returns:
            True if this call stopped the rotation, False if it was already stopped.
        """
        if self.machine.is_stopped:
            return False
        was_stepping = self.machine.is_stepping
        self.machine.cancel_rotation(reason=reason)
        self._release()
        if was_stepping:
            logger.info(f"[ROTATION] Cancelled after {self.step_count} step(s) ({reason})")
        else:
            logger.debug(f"[ROTATION] Cancelled before start ({reason})")
        return True

    def _release(self) -> None:
        self._state.rotation_active = False
        self._state.cancel_rotation_timer()

    def _step(self) -> None:
        engine = self._state.engine
        if not self.machine.is_stepping or engine is None or engine.removed or self._state.disposed:
            return
        self.machine.advance(degrees=self._config.speed)
        engine.ease_to(
            center=self._center,
            bearing=self.bearing,
            duration_ms=self._config.step_duration_ms,
            easing=linear,
        )
        engine.once(EngineEvent.MOVEEND, self._on_moveend)

    def _on_moveend(self) -> None:
        if not self.machine.is_stepping or self._state.disposed:
            return
        # Next step immediately, back-to-back
        self._state.set_rotation_timer(self._loop.call_soon(self._run_scheduled_step))

    def _run_scheduled_step(self) -> None:
        self._state.pending_rotation_timer = None
        self._step()
