"""Camera Navigator - fly the camera to a selected point.

go_to() is the only way list/host selections move the camera. The host's
on_marker_click callback fires CALLBACK_LEAD_MS before the fly-to is expected to
finish, so the host can react while the camera settles. The callback is a
scheduled handle tracked in SessionState so teardown cancels it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from peakmap.constants import AnimationDefaults
from peakmap.model.map_config import MapPanelConfig
from peakmap.model.map_point import MapPoint
from peakmap.session.context import SessionState
from peakmap.session.rotation import RotationAnimator

logger = logging.getLogger(__name__)

MarkerClickCallback = Callable[[MapPoint, int], None]


class CameraNavigator:
    """Navigates to points and owns the list-open flag."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        state: SessionState,
        config: MapPanelConfig,
        on_marker_click: MarkerClickCallback | None = None,
        rotation: RotationAnimator | None = None,
    ) -> None:
        self._loop = loop
        self._state = state
        self._config = config
        self._on_marker_click = on_marker_click
        self._rotation = rotation

    def callback_delay_s(self) -> float:
        """Seconds between fly_to and on_marker_click (never negative)."""
        delay_ms = self._config.animation.fly_to_duration_ms - AnimationDefaults.CALLBACK_LEAD_MS
        return max(delay_ms, 0) / 1000

    def go_to(self, point: MapPoint, index: int) -> bool:
        """Fly to point and schedule the host callback.

        Args:
            point: Destination
            index: Position of point in the session's point list

        Returns:
            True if a fly-to was requested, False if there is no usable engine yet.
        """
        engine = self._state.engine
        if engine is None or engine.removed or self._state.disposed:
            logger.info(f"[NAV] No map yet - ignoring go_to('{point.title}')")
            return False

        # A fly-to ends rotation for the session, started or not
        if self._rotation is not None:
            self._rotation.cancel(reason="go_to")

        animation = self._config.animation
        engine.fly_to(center=point.lng_lat, zoom=animation.zoom_level, duration_ms=animation.fly_to_duration_ms)
        logger.info(
            f"[NAV] Flying to '{point.title}' (#{index}) at {point.lat:.5f}, {point.lng:.5f}, "
            f"zoom {animation.zoom_level} over {animation.fly_to_duration_ms} ms"
        )

        if self._on_marker_click is not None:
            self._schedule_callback(point=point, index=index)

        if not self._config.ui.list_always_visible:
            self.close_list()
        return True

    def _schedule_callback(self, point: MapPoint, index: int) -> None:
        callback = self._on_marker_click
        assert callback is not None
        handle: asyncio.TimerHandle | None = None

        def notify() -> None:
            self._state.pending_callbacks.discard(handle)
            if self._state.disposed:
                return
            callback(point, index)

        handle = self._loop.call_later(self.callback_delay_s(), notify)
        self._state.pending_callbacks.add(handle)

    def toggle_list(self) -> bool:
        """Flip the list-open flag. Returns the new value."""
        if self._config.ui.list_always_visible:
            self._state.list_open = False
            return False
        self._state.list_open = not self._state.list_open
        return self._state.list_open

    def close_list(self) -> None:
        self._state.list_open = False
