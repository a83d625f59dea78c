"""Geographic calculations for camera constraints.

Provides:
- Pan bounds around a center (km radius → degree deltas)
- Bearing stepping with wrap-around

Bounds use the flat 111 km-per-degree approximation; longitude deltas are scaled
by cos(latitude) to account for meridian convergence.
"""

from math import cos, radians

from peakmap.constants import BootstrapDefaults
from peakmap.model.camera_state import Bounds, LonLat, normalize_bearing


class GeoCalculator:
    """Static methods for the map panel's geographic math.

    Coordinates are in decimal degrees as (lon, lat).
    Bearings are in degrees clockwise from North (0-360).
    """

    KM_PER_DEGREE = BootstrapDefaults.KM_PER_DEGREE

    @staticmethod
    def offsets_deg(center_lat: float, radius_km: float) -> tuple[float, float]:
        """Degree deltas for a radius around a latitude.

        Args:
            center_lat: Latitude of the center (decimal degrees)
            radius_km: Radius in kilometers

        Returns:
            Tuple (lng_offset, lat_offset) in decimal degrees.
        """
        lat_offset = radius_km / GeoCalculator.KM_PER_DEGREE
        lng_offset = radius_km / (GeoCalculator.KM_PER_DEGREE * cos(radians(center_lat)))
        return lng_offset, lat_offset

    @staticmethod
    def max_bounds(center: LonLat, radius_km: float = BootstrapDefaults.BOUNDS_RADIUS_KM) -> Bounds:
        """Bounding box constraining the pan range to radius_km around center.

        Example:
            center (8.7636, 46.6801), radius 5 km →
            lat delta ≈ 0.045°, lng delta ≈ 0.0656°

        Args:
            center: (lon, lat) of the initial camera center
            radius_km: Pan radius in kilometers

        Returns:
            Bounds with south-west and north-east corners.
        """
        center_lng, center_lat = center
        lng_offset, lat_offset = GeoCalculator.offsets_deg(center_lat=center_lat, radius_km=radius_km)
        return Bounds(
            south_west=(center_lng - lng_offset, center_lat - lat_offset),
            north_east=(center_lng + lng_offset, center_lat + lat_offset),
        )

    @staticmethod
    def step_bearing(bearing: float, degrees_per_step: float) -> float:
        """Advance a bearing by one step, wrapped into [0, 360).

        Works for any step size, including values that do not divide 360 and
        negative steps (counter-clockwise rotation).
        """
        return normalize_bearing(bearing + degrees_per_step)
