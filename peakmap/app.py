"""PeakMap - 3D terrain map with points of interest.

Shows a MapTiler terrain map with markers, popups, a location list and optional
auto-rotation. The map session (resource loading, bootstrap, rotation, fly-to
callbacks) runs on a background event loop that survives Streamlit reruns; the
map fragment re-renders periodically so the page follows the session.

Run: streamlit run peakmap/app.py
"""

import logging
import os
import traceback

import streamlit as st

from peakmap.constants import AppConfig, CameraDefaults
from peakmap.engine.host_document import HTMLHostDocument
from peakmap.engine.pydeck_engine import PydeckMapEngine
from peakmap.model.map_config import MapPanelConfig, resolve_config
from peakmap.model.map_point import MapPoint
from peakmap.model.message import MarkerSelectedToast
from peakmap.session.lifecycle import SessionLifecycleManager
from peakmap.session.runner import HostEvents, LoopThread
from peakmap.ui.location_list import (
    list_column_spec,
    render_button_style,
    render_list_toggle,
    render_location_list,
)
from peakmap.ui.map_panel import PanelMountTarget, popup_tooltip_style, render_map_panel

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_POINTS = [
    {
        "id": "1",
        "lat": CameraDefaults.CENTER[1],
        "lng": CameraDefaults.CENTER[0],
        "title": "Swiss Alps",
        "infoText": "Beautiful mountain view in the Swiss Alps",
        "pin": "https://api.maptiler.com/maps/dataviz/markers/pin-1.png",
        "image": "https://images.unsplash.com/photo-1506905925346-21bda4d32df4?w=400",
    },
    {
        "id": "2",
        "lat": 46.51,
        "lng": 9.01,
        "title": "Swiss Valley",
        "infoText": "Scenic valley location",
        "pin": "https://api.maptiler.com/maps/dataviz/markers/pin-2.png",
        "image": "https://images.unsplash.com/photo-1506905925346-21bda4d32df4?w=400",
    },
]


# =============================================================================
# SESSION STATE
# =============================================================================


def read_api_key() -> str:
    """API key from Streamlit secrets, then the environment."""
    try:
        secret = st.secrets.get("maptiler_api_key", "")
    except FileNotFoundError:
        secret = ""
    return secret or os.environ.get(AppConfig.API_KEY_ENV, "")


def init_session_state() -> None:
    """Initialize the loop thread, host event buffer and sample points."""
    if "runner" not in st.session_state or not st.session_state.runner.running:
        st.session_state.runner = LoopThread()

    if "host_events" not in st.session_state:
        st.session_state.host_events = HostEvents()

    if "points" not in st.session_state:
        st.session_state.points = [MapPoint.from_dict(data) for data in SAMPLE_POINTS]

    if "api_key" not in st.session_state:
        st.session_state.api_key = read_api_key()

    if "map_version" not in st.session_state:
        st.session_state.map_version = 0


def start_session(config: MapPanelConfig) -> None:
    """Create and mount a new map session on the loop thread."""
    runner: LoopThread = st.session_state.runner
    events: HostEvents = st.session_state.host_events
    points: list[MapPoint] = st.session_state.points
    mount_target = PanelMountTarget()

    def build() -> tuple[SessionLifecycleManager, HTMLHostDocument]:
        document = HTMLHostDocument(loop=runner.loop)
        session = SessionLifecycleManager(
            config=config,
            points=points,
            loop=runner.loop,
            document=document,
            mount_target=mount_target,
            on_marker_click=lambda point, index: events.post("marker_click", (point.title, index)),
            on_map_ready=lambda: events.post("ready"),
            on_bootstrap_failed=lambda error: events.post("failed", str(error)),
        )
        session.mount()
        return session, document

    session, document = runner.call(build)
    st.session_state.mount_target = mount_target
    st.session_state.session = session
    st.session_state.document = document
    logger.info(f"[MAIN] Started map session v{st.session_state.map_version}: phase={session.phase}")


def stop_session() -> None:
    """Tear down the current session (if any)."""
    session: SessionLifecycleManager | None = st.session_state.get("session")
    if session is None:
        return
    st.session_state.runner.call(session.teardown)
    st.session_state.session = None


def reload_map(config: MapPanelConfig) -> None:
    stop_session()
    st.session_state.map_version += 1
    start_session(config)


# =============================================================================
# SIDEBAR
# =============================================================================


def render_sidebar() -> MapPanelConfig:
    """Sidebar settings. Returns the resolved config for the next session."""
    with st.sidebar:
        st.header("🏔️ Map settings")
        api_key = st.text_input("MapTiler API key", value=st.session_state.api_key, type="password")
        if api_key != st.session_state.api_key:
            st.session_state.api_key = api_key

        map_name = st.selectbox("Map style", ["outdoor", "topo", "satellite", "winter"], index=0)
        rotating = st.toggle("Auto-rotate", value=True)
        terrain_enabled = st.toggle("3D terrain", value=True)
        exaggeration = st.slider("Terrain exaggeration", 0.5, 3.0, 1.5, 0.1)
        list_always_visible = st.toggle("Pin location list", value=False)
        list_align = st.radio("List side", ["left", "right"], horizontal=True)

        config = resolve_config(
            api_key=st.session_state.api_key,
            map_name=map_name,
            rotating=rotating,
            bg_color="#3b82f6",
            terrain={"enabled": terrain_enabled, "exaggeration": exaggeration},
            ui={"list_always_visible": list_always_visible, "list_align": list_align},
        )

        if st.button("🔄 Reload map", type="primary", use_container_width=True):
            reload_map(config)
        if st.button("⏹️ Close map", use_container_width=True):
            stop_session()

        render_export(config)
    return config


def render_export(config: MapPanelConfig) -> None:
    """Download the current map as a standalone HTML page."""
    session: SessionLifecycleManager | None = st.session_state.get("session")
    if session is None or not session.ready or not isinstance(session.engine, PydeckMapEngine):
        return
    engine: PydeckMapEngine = session.engine
    document: HTMLHostDocument = st.session_state.document
    deck = st.session_state.runner.call(engine.to_deck, popup_tooltip_style(config))
    html = document.inject_head(deck.to_html(as_string=True, notebook_display=False))
    st.download_button("⬇️ Export HTML", data=html, file_name="peakmap.html", mime="text/html")


# =============================================================================
# MAP AREA
# =============================================================================


def handle_host_events() -> None:
    for event in st.session_state.host_events.drain():
        logger.info(f"[MAIN] Host event: {event.kind} {event.payload or ''}")
        if event.kind == "marker_click":
            title, _index = event.payload
            MarkerSelectedToast(title=title).display()
        elif event.kind == "ready":
            st.toast("Map is ready!", icon="🗺️")


@st.fragment(run_every=AppConfig.REFRESH_SECONDS)
def _render_map_area() -> None:
    """Map + location list. Re-runs on a timer so the page follows the session."""
    try:
        _render_map_area_inner()
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        full_traceback = traceback.format_exc()
        logger.error(f"[RENDER] Map area error caught: {error_msg}\n{full_traceback}")
        st.error(f"⚠️ [RENDER] Something went wrong: {error_msg}")


def _render_map_area_inner() -> None:
    runner: LoopThread = st.session_state.runner
    session: SessionLifecycleManager | None = st.session_state.get("session")
    handle_host_events()

    if session is None:
        st.info("Map closed. Use **Reload map** to start a new session.")
        return

    ui = session.config.ui

    def select(point: MapPoint, index: int) -> None:
        runner.call(session.go_to, point, index)

    def toggle() -> None:
        runner.call(session.toggle_list)

    def render_map() -> None:
        key = f"map_{st.session_state.map_version}"
        click = render_map_panel(runner=runner, session=session, mount_target=st.session_state.mount_target, key=key)
        if click is not None:
            st.markdown(click.popup_html, unsafe_allow_html=True)

    if not ui.show_list:
        render_map()
        return

    render_button_style(session.config.style)

    if not ui.list_always_visible:
        render_list_toggle(list_open=session.list_open, on_toggle=toggle)
        if not session.list_open:
            render_map()
            return

    widths = list_column_spec(ui, total_width_px=AppConfig.MAP_WIDTH_PX)
    col_a, col_b = st.columns(widths)
    col_list, col_map = (col_b, col_a) if ui.list_on_right else (col_a, col_b)
    with col_list:
        render_location_list(session.points, on_select=select)
    with col_map:
        render_map()


def main() -> None:
    """Application entry point."""
    st.set_page_config(page_title=AppConfig.TITLE, page_icon=AppConfig.ICON, layout=AppConfig.LAYOUT)
    init_session_state()

    st.title(AppConfig.TITLE)

    try:
        config = render_sidebar()
        if "session" not in st.session_state:
            start_session(config)
        _render_map_area()
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        full_traceback = traceback.format_exc()
        logger.error(f"[UI] UI error caught: {error_msg}\n{full_traceback}")
        st.error(f"⚠️ [UI] Something went wrong: {error_msg}")
        if st.button("🔄 Reset and Continue", type="primary"):
            stop_session()
            st.session_state.pop("session", None)
            st.rerun()


if __name__ == "__main__":
    main()
