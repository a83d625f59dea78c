"""Data model for the map panel.

- MapPoint: Point of interest (marker + popup)
- CameraState / Bounds: Camera snapshot and pan constraint
- MapPanelConfig + config groups: Resolved runtime configuration
- resolve_config: Merges partial groups over documented defaults
"""

from peakmap.model.camera_state import Bounds, CameraState, LonLat, normalize_bearing
from peakmap.model.map_config import (
    AnimationConfig,
    BootstrapConfig,
    CameraConfig,
    EngineResourceConfig,
    MapPanelConfig,
    MarkerConfig,
    RotationConfig,
    StyleConfig,
    TerrainConfig,
    UIConfig,
    merge_group,
    resolve_config,
)
from peakmap.model.map_point import MapPoint

__all__ = [
    "MapPoint",
    "CameraState",
    "Bounds",
    "LonLat",
    "normalize_bearing",
    "MapPanelConfig",
    "CameraConfig",
    "TerrainConfig",
    "RotationConfig",
    "AnimationConfig",
    "StyleConfig",
    "UIConfig",
    "MarkerConfig",
    "EngineResourceConfig",
    "BootstrapConfig",
    "merge_group",
    "resolve_config",
]
