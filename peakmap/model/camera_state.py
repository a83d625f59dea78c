"""Camera and bounds value types.

Coordinates follow the engine convention: (lon, lat).
"""

from __future__ import annotations

from dataclasses import dataclass

# (lon, lat)
LonLat = tuple[float, float]


def normalize_bearing(bearing: float) -> float:
    """Wrap a bearing into [0, 360)."""
    wrapped = bearing % 360.0
    # -1e-15 % 360 rounds to 360.0 in floating point
    return 0.0 if wrapped >= 360.0 else wrapped


@dataclass(frozen=True)
class CameraState:
    """Snapshot of the engine's authoritative camera.

    The controller never mutates a camera; it only requests transitions.
    """

    center: LonLat
    zoom: float
    pitch: float
    bearing: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "bearing", normalize_bearing(self.bearing))


@dataclass(frozen=True)
class Bounds:
    """Rectangular lon/lat constraint on camera panning."""

    south_west: LonLat
    north_east: LonLat

    @property
    def lat_delta(self) -> float:
        """Half-height of the box in degrees latitude."""
        return (self.north_east[1] - self.south_west[1]) / 2

    @property
    def lng_delta(self) -> float:
        """Half-width of the box in degrees longitude."""
        return (self.north_east[0] - self.south_west[0]) / 2

    def clamp(self, lon_lat: LonLat) -> LonLat:
        """Return the closest point to lon_lat that lies inside the box."""
        lon = min(max(lon_lat[0], self.south_west[0]), self.north_east[0])
        lat = min(max(lon_lat[1], self.south_west[1]), self.north_east[1])
        return (lon, lat)

    def to_list(self) -> list[list[float]]:
        """Return [[sw_lon, sw_lat], [ne_lon, ne_lat]]."""
        return [list(self.south_west), list(self.north_east)]
