"""Popup and marker markup for points of interest.

The popup is static HTML: image, title, description and an optional
"Learn More" link. All point text is HTML-escaped; URLs are attribute-escaped.
"""

from html import escape

from peakmap.model.map_config import MarkerConfig
from peakmap.model.map_point import MapPoint


def render_popup_html(point: MapPoint) -> str:
    """Render the popup block for a point.

    Args:
        point: Point of interest

    Returns:
        HTML string. Image and link are omitted when the point has none.
    """
    parts = ["<div class=\"peakmap-popup\">"]
    if point.image:
        parts.append(
            f"<img src=\"{escape(point.image, quote=True)}\" alt=\"{escape(point.title, quote=True)}\" "
            "style=\"width:100%;border-radius:0.75rem;\"/>"
        )
    parts.append("<div>")
    parts.append(f"<h2>{escape(point.title)}</h2>")
    if point.info_text:
        parts.append(f"<div>{escape(point.info_text)}</div>")
    parts.append("</div>")
    if point.url:
        parts.append(f"<div><a href=\"{escape(point.url, quote=True)}\" target=\"_blank\">Learn More &gt;</a></div>")
    parts.append("</div>")
    return "".join(parts)


def marker_style(point: MapPoint, marker: MarkerConfig) -> dict[str, str]:
    """CSS properties for a point's marker element."""
    style = {
        "width": marker.css_width,
        "height": marker.css_height,
        "backgroundSize": "contain",
        "backgroundRepeat": "no-repeat",
        "transformOrigin": "center",
    }
    if point.pin:
        style["backgroundImage"] = f"url({point.pin})"
    return style
