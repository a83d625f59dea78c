"""Streamlit UI components for the map panel and location list."""

from peakmap.ui.location_list import (
    EMPTY_LIST_TEXT,
    button_css,
    list_column_spec,
    render_button_style,
    render_list_toggle,
    render_location_card,
    render_location_list,
)
from peakmap.ui.map_panel import (
    MarkerClick,
    PanelMountTarget,
    parse_marker_click,
    popup_tooltip_style,
    render_map_panel,
    show_placeholder,
)

__all__ = [
    "EMPTY_LIST_TEXT",
    "MarkerClick",
    "PanelMountTarget",
    "button_css",
    "list_column_spec",
    "parse_marker_click",
    "popup_tooltip_style",
    "render_button_style",
    "render_list_toggle",
    "render_location_card",
    "render_location_list",
    "render_map_panel",
    "show_placeholder",
]
