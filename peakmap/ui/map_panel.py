"""Map panel renderer using streamlit-deckgl.

Renders the session engine's deck with st_deckgl, which reports every deck.gl
click. Clicks on a marker datum (type "marker", set by PydeckMapEngine) are
returned to the caller and forwarded to the engine as a "mousedown"
interaction, so a marker click stops auto-rotation the way pointer input on
the map does.

Until the session is ready the panel shows the matching placeholder message
(missing key, loading phase, failure) instead of the map.
"""

import logging
from dataclasses import dataclass
from typing import Any

import streamlit as st
from streamlit_deckgl import st_deckgl  # type: ignore[import-untyped]

from peakmap.constants import AppConfig, StyleDefaults
from peakmap.engine.base import EngineEvent
from peakmap.engine.pydeck_engine import PydeckMapEngine
from peakmap.model.map_config import MapPanelConfig
from peakmap.model.message import BootstrapFailedMessage, MapLoadingMessage, MissingApiKeyMessage
from peakmap.session.lifecycle import SessionLifecycleManager
from peakmap.session.runner import LoopThread

logger = logging.getLogger(__name__)

PHASE_LABELS = {
    "created": "starting",
    "loading_resources": "loading map engine",
    "measuring": "waiting for layout",
    "building_features": "loading terrain and markers",
    "awaiting_idle": "rendering",
}


@dataclass
class PanelMountTarget:
    """Mount target of the Streamlit map panel.

    The panel has no size until it has been laid out once; the bootstrapper
    keeps polling measure() until lay_out() is called from a script run.
    """

    width: float = 0
    height: float = 0

    def measure(self) -> tuple[float, float]:
        return self.width, self.height

    def lay_out(self, width: float, height: float) -> None:
        self.width = width
        self.height = height


@dataclass
class MarkerClick:
    """A click on a marker datum.

    Attributes:
        key: Marker key (point id or positional fallback)
        index: Position of the point in the session's point list
        popup_html: Popup content rendered for the point
    """

    key: str
    index: int
    popup_html: str


def parse_marker_click(event: dict[str, Any] | None) -> MarkerClick | None:
    """Extract a marker click from a st_deckgl click event.

    st_deckgl SPREADS the picked datum's properties into the event dict (no
    "object" key). Terrain clicks carry only coordinate/eventType.
    """
    if not event or event.get("type") != "marker":
        return None
    index = event.get("index")
    if not isinstance(index, int):
        logger.warning(f"[PANEL] Marker click without index: keys={sorted(event)}")
        return None
    return MarkerClick(key=str(event.get("id", index)), index=index, popup_html=str(event.get("popup_html", "")))


def popup_tooltip_style(config: MapPanelConfig) -> dict[str, str]:
    """Tooltip CSS matching the configured popup colors."""
    return {
        "backgroundColor": config.style.popup_bg_color,
        "color": config.style.popup_text_color,
        "borderRadius": "8px",
        "maxWidth": "300px",
        "padding": "10px",
        "fontFamily": StyleDefaults.FONT_FAMILY,
    }


def show_placeholder(session: SessionLifecycleManager) -> bool:
    """Show the placeholder for a session that is not ready. Returns True if shown."""
    phase = session.phase
    if phase == "missing_key":
        MissingApiKeyMessage(env_var=AppConfig.API_KEY_ENV).display()
        return True
    if phase == "failed":
        BootstrapFailedMessage(reason=session.state.failure or "unknown error").display()
        return True
    if phase == "torn_down":
        st.info("Map closed. Use **Reload map** to start a new session.")
        return True
    if not session.ready:
        MapLoadingMessage(phase=PHASE_LABELS.get(phase, phase)).display()
        return True
    return False


def render_map_panel(
    runner: LoopThread,
    session: SessionLifecycleManager,
    mount_target: PanelMountTarget,
    key: str,
    height: int = AppConfig.MAP_HEIGHT_PX,
    width: int = AppConfig.MAP_WIDTH_PX,
) -> MarkerClick | None:
    """Render the map panel for a session.

    Args:
        runner: Loop thread the session lives on
        session: Mounted session
        mount_target: Target the session's bootstrapper measures
        key: Unique key for the st_deckgl component
        height: Panel height in pixels
        width: Nominal panel width in pixels (the component stretches)

    Returns:
        The new marker click, or None.
    """
    # Rendering the panel area is what lays it out
    runner.call(mount_target.lay_out, width, height)

    if show_placeholder(session):
        return None

    engine = session.engine
    if not isinstance(engine, PydeckMapEngine):
        st.warning("This map engine has no deck.gl rendering.")
        return None

    deck = runner.call(engine.to_deck, popup_tooltip_style(session.config))
    event = st_deckgl(deck, key=key, height=height, events=["click"])
    click = parse_marker_click(event)
    if click is None:
        return None

    # st_deckgl keeps returning the last event on reruns
    last_click_key = f"_deckgl_last_click_{key}"
    click_id = f"{click.key}_{event.get('coordinate')}"
    if st.session_state.get(last_click_key) == click_id:
        return None
    st.session_state[last_click_key] = click_id

    logger.info(f"[PANEL] Marker clicked: {click.key} (#{click.index})")
    runner.call(session.interact, EngineEvent.MOUSEDOWN)
    return click
