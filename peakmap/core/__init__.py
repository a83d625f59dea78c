"""Core helpers: geographic math and popup markup."""

from peakmap.core.geo_calculator import GeoCalculator
from peakmap.core.popup_renderer import marker_style, render_popup_html

__all__ = [
    "GeoCalculator",
    "render_popup_html",
    "marker_style",
]
