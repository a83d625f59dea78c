"""Map panel configuration groups and the config resolver.

Each group is a frozen dataclass whose field defaults come from peakmap.constants.
resolve_config() merges caller-supplied partial groups over those defaults:

- Merging is shallow and per group: every field the caller supplies replaces the
  default for that field only; all other fields keep their documented default.
- None counts as "not supplied", so a resolved field is never None unless None is
  its documented default.
- No range validation: out-of-range numbers (negative durations, huge zooms) are
  passed through unchanged. The map engine is the authority on validity.
- Unknown field names are a shape error and raise ValueError.

The resolved MapPanelConfig is immutable for the lifetime of a session.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, TypeVar

from peakmap.constants import (
    AnimationDefaults,
    BootstrapDefaults,
    CameraDefaults,
    EngineDefaults,
    MapTilerConfig,
    MarkerDefaults,
    RotationDefaults,
    StyleDefaults,
    TerrainDefaults,
    UIDefaults,
)
from peakmap.model.camera_state import LonLat

logger = logging.getLogger(__name__)

GroupT = TypeVar("GroupT")


def css_length(value: int | float | str) -> str:
    """Convert a marker dimension to a CSS length (numbers become pixels)."""
    if isinstance(value, (int, float)):
        return f"{value}px"
    return value


@dataclass(frozen=True)
class CameraConfig:
    """Initial camera. center is (lon, lat)."""

    center: LonLat = CameraDefaults.CENTER
    zoom: float = CameraDefaults.ZOOM
    pitch: float = CameraDefaults.PITCH
    bearing: float = CameraDefaults.BEARING

    def __post_init__(self) -> None:
        # Accept [lon, lat] lists from JSON-ish input
        object.__setattr__(self, "center", (float(self.center[0]), float(self.center[1])))


@dataclass(frozen=True)
class TerrainConfig:
    enabled: bool = TerrainDefaults.ENABLED
    exaggeration: float = TerrainDefaults.EXAGGERATION
    source: str = TerrainDefaults.SOURCE


@dataclass(frozen=True)
class RotationConfig:
    """Auto-rotation. speed is degrees per step."""

    enabled: bool = RotationDefaults.ENABLED
    speed: float = RotationDefaults.SPEED_DEG
    step_duration_ms: float = RotationDefaults.STEP_DURATION_MS
    initial_bearing: float = RotationDefaults.INITIAL_BEARING


@dataclass(frozen=True)
class AnimationConfig:
    fly_to_duration_ms: float = AnimationDefaults.FLY_TO_DURATION_MS
    zoom_level: float = AnimationDefaults.ZOOM_LEVEL


@dataclass(frozen=True)
class StyleConfig:
    """Visual style tokens.

    button_color colors the location list buttons and falls back to bg_color in
    resolve_config(). bg_color has no other use in the Streamlit panel; it is kept
    for hosts that paint the panel background. The popup colors style the marker
    tooltip.
    """

    bg_color: str = StyleDefaults.BG_COLOR
    button_color: str = StyleDefaults.BG_COLOR
    popup_bg_color: str = StyleDefaults.POPUP_BG_COLOR
    popup_text_color: str = StyleDefaults.POPUP_TEXT_COLOR


@dataclass(frozen=True)
class UIConfig:
    show_navigation: bool = UIDefaults.SHOW_NAVIGATION
    show_fullscreen: bool = UIDefaults.SHOW_FULLSCREEN
    show_list: bool = UIDefaults.SHOW_LIST
    sidebar_width: int = UIDefaults.SIDEBAR_WIDTH
    list_always_visible: bool = UIDefaults.LIST_ALWAYS_VISIBLE
    list_align: str = UIDefaults.LIST_ALIGN
    list_size: int | None = UIDefaults.LIST_SIZE

    @property
    def list_width_px(self) -> int:
        """Width of the location list: list_size, else sidebar_width."""
        return self.list_size if self.list_size is not None else self.sidebar_width

    @property
    def list_on_right(self) -> bool:
        return self.list_align == "right"


@dataclass(frozen=True)
class MarkerConfig:
    """Marker icon size. Numbers are pixels; strings are CSS lengths."""

    width: int | float | str = MarkerDefaults.WIDTH
    height: int | float | str = MarkerDefaults.HEIGHT

    @property
    def css_width(self) -> str:
        return css_length(self.width)

    @property
    def css_height(self) -> str:
        return css_length(self.height)


@dataclass(frozen=True)
class EngineResourceConfig:
    """MapLibre runtime locations. URLs are derived from version when omitted."""

    version: str = EngineDefaults.VERSION
    script_url: str = EngineDefaults.SCRIPT_URL_TEMPLATE.format(version=EngineDefaults.VERSION)
    css_url: str = EngineDefaults.CSS_URL_TEMPLATE.format(version=EngineDefaults.VERSION)


@dataclass(frozen=True)
class BootstrapConfig:
    """Mount polling (bounded) and pan-constraint radius."""

    poll_interval_ms: float = BootstrapDefaults.POLL_INTERVAL_MS
    max_wait_ms: float = BootstrapDefaults.MAX_WAIT_MS
    bounds_radius_km: float = BootstrapDefaults.BOUNDS_RADIUS_KM


@dataclass(frozen=True)
class MapPanelConfig:
    """Fully-resolved runtime configuration for one map session."""

    api_key: str
    map_name: str = StyleDefaults.MAP_NAME
    camera: CameraConfig = field(default_factory=CameraConfig)
    terrain: TerrainConfig = field(default_factory=TerrainConfig)
    rotation: RotationConfig = field(default_factory=RotationConfig)
    animation: AnimationConfig = field(default_factory=AnimationConfig)
    style: StyleConfig = field(default_factory=StyleConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    marker: MarkerConfig = field(default_factory=MarkerConfig)
    engine: EngineResourceConfig = field(default_factory=EngineResourceConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @property
    def style_url(self) -> str:
        return MapTilerConfig.STYLE_URL.format(map_name=self.map_name, api_key=self.api_key)

    @property
    def terrain_tilejson_url(self) -> str:
        return MapTilerConfig.TERRAIN_TILEJSON_URL.format(api_key=self.api_key)

    @property
    def terrain_tiles_url(self) -> str:
        return MapTilerConfig.TERRAIN_TILES_URL.format(api_key=self.api_key)

    @property
    def raster_tiles_url(self) -> str:
        return MapTilerConfig.RASTER_TILES_URL.format(map_name=self.map_name, api_key=self.api_key)


def merge_group(defaults: GroupT, partial: Mapping[str, Any] | GroupT | None) -> GroupT:
    """Shallow field-by-field merge of a partial group over its defaults.

    Args:
        defaults: Fully-populated group instance
        partial: Mapping of field overrides, a complete group instance, or None

    Returns:
        New group instance. None values in partial are treated as omitted.

    Raises:
        ValueError: If partial names a field the group does not have.
    """
    if partial is None:
        return defaults
    if isinstance(partial, type(defaults)):
        return partial
    if not isinstance(partial, Mapping):
        raise ValueError(f"Expected a mapping for {type(defaults).__name__}, got {type(partial).__name__}")

    known = {f.name for f in dataclasses.fields(defaults)}  # type: ignore[arg-type]
    unknown = sorted(set(partial) - known)
    if unknown:
        raise ValueError(f"Unknown {type(defaults).__name__} fields: {unknown}")

    overrides = {name: value for name, value in partial.items() if value is not None}
    return dataclasses.replace(defaults, **overrides)  # type: ignore[type-var]


def resolve_config(
    api_key: str | None,
    map_name: str | None = None,
    rotating: bool | None = None,
    bg_color: str | None = None,
    camera: Mapping[str, Any] | CameraConfig | None = None,
    terrain: Mapping[str, Any] | TerrainConfig | None = None,
    rotation: Mapping[str, Any] | RotationConfig | None = None,
    animation: Mapping[str, Any] | AnimationConfig | None = None,
    style: Mapping[str, Any] | StyleConfig | None = None,
    ui: Mapping[str, Any] | UIConfig | None = None,
    marker: Mapping[str, Any] | MarkerConfig | None = None,
    engine: Mapping[str, Any] | EngineResourceConfig | None = None,
    bootstrap: Mapping[str, Any] | BootstrapConfig | None = None,
) -> MapPanelConfig:
    """Resolve all configuration groups into a MapPanelConfig.

    The flat settings seed group defaults the same way the panel's public
    properties do: rotating seeds rotation.enabled, bg_color seeds
    style.bg_color and style.button_color.

    Args:
        api_key: MapTiler API key. Empty/None resolves to "" (missing-key state).
        map_name: MapTiler style name
        rotating: Default for rotation.enabled
        bg_color: Default background and button color
        camera, terrain, rotation, animation, style, ui, marker, engine, bootstrap:
            Optional partial groups

    Returns:
        Immutable, fully-populated MapPanelConfig.
    """
    base_color = bg_color if bg_color is not None else StyleDefaults.BG_COLOR
    style_defaults = StyleConfig(bg_color=base_color, button_color=base_color)
    resolved_style = merge_group(style_defaults, style)
    rotation_defaults = RotationConfig(enabled=rotating if rotating is not None else RotationDefaults.ENABLED)

    config = MapPanelConfig(
        api_key=api_key or "",
        map_name=map_name or StyleDefaults.MAP_NAME,
        camera=merge_group(CameraConfig(), camera),
        terrain=merge_group(TerrainConfig(), terrain),
        rotation=merge_group(rotation_defaults, rotation),
        animation=merge_group(AnimationConfig(), animation),
        style=resolved_style,
        ui=merge_group(UIConfig(), ui),
        marker=merge_group(MarkerConfig(), marker),
        engine=_resolve_engine(engine),
        bootstrap=merge_group(BootstrapConfig(), bootstrap),
    )
    logger.debug(f"[CONFIG] Resolved config for map '{config.map_name}' (rotation={config.rotation.enabled})")
    return config


def _resolve_engine(partial: Mapping[str, Any] | EngineResourceConfig | None) -> EngineResourceConfig:
    """Resolve engine resources; empty URLs fall back to the version-derived URLs."""
    if isinstance(partial, EngineResourceConfig):
        return partial
    values = dict(partial or {})
    unknown = sorted(set(values) - {"version", "script_url", "css_url"})
    if unknown:
        raise ValueError(f"Unknown EngineResourceConfig fields: {unknown}")
    version = values.get("version") or EngineDefaults.VERSION
    return EngineResourceConfig(
        version=version,
        script_url=values.get("script_url") or EngineDefaults.SCRIPT_URL_TEMPLATE.format(version=version),
        css_url=values.get("css_url") or EngineDefaults.CSS_URL_TEMPLATE.format(version=version),
    )
