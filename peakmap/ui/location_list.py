"""Location list - one card per point with a "View" button.

Layouts:
- list_always_visible: pinned beside the map (left or right, list width)
- otherwise: a toggle button opens/closes the list; selecting a location
  closes it again
"""

import logging
from collections.abc import Callable, Sequence

import streamlit as st

from peakmap.model.map_config import StyleConfig, UIConfig
from peakmap.model.map_point import MapPoint

logger = logging.getLogger(__name__)

SelectCallback = Callable[[MapPoint, int], None]

EMPTY_LIST_TEXT = "No locations configured"


def list_column_spec(ui: UIConfig, total_width_px: int) -> list[float]:
    """Relative st.columns widths for list + map, list on the configured side."""
    list_width = max(ui.list_width_px, 1)
    map_width = max(total_width_px - list_width, 1)
    return [map_width, list_width] if ui.list_on_right else [list_width, map_width]


def button_css(style: StyleConfig) -> str:
    """CSS coloring the location buttons (View, list toggle) with style.button_color."""
    return (
        "<style>[data-testid=\"stMain\"] div.stButton > button, section.main div.stButton > button {"
        f"background-color: {style.button_color}; border-color: {style.button_color}; color: #fff;"
        "}</style>"
    )


def render_button_style(style: StyleConfig) -> None:
    st.markdown(button_css(style), unsafe_allow_html=True)


def render_location_card(point: MapPoint, index: int, on_select: SelectCallback, key_prefix: str) -> None:
    with st.container(border=True):
        if point.image:
            st.image(point.image, use_container_width=True)
        st.markdown(f"**{point.title}**")
        if point.info_text:
            st.caption(point.info_text)
        st.button(
            "View",
            key=f"{key_prefix}_view_{point.key(index)}",
            on_click=on_select,
            args=(point, index),
            use_container_width=True,
        )


def render_location_list(points: Sequence[MapPoint], on_select: SelectCallback, key_prefix: str = "locations") -> None:
    """Render all location cards in supplied order."""
    if not points:
        st.caption(EMPTY_LIST_TEXT)
        return
    for index, point in enumerate(points):
        render_location_card(point=point, index=index, on_select=on_select, key_prefix=key_prefix)


def render_list_toggle(list_open: bool, on_toggle: Callable[[], None], key: str = "locations_toggle") -> None:
    """Button that opens/closes the (not pinned) location list."""
    label = "✖ Close locations" if list_open else "📍 Locations"
    st.button(label, key=key, on_click=on_toggle)
