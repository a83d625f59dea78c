"""MapPoint - A point of interest shown as a marker with a popup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

# camelCase keys (JSON point lists) accepted by from_dict()
_KEY_ALIASES = {
    "infoText": "info_text",
}


@dataclass(frozen=True)
class MapPoint:
    """Immutable point of interest.

    Attributes:
        lat: Latitude in decimal degrees
        lng: Longitude in decimal degrees
        title: Display title (popup heading and list card)
        id: Optional identifier. key() falls back to the positional index.
        info_text: Optional descriptive text
        pin: Optional marker icon URL
        image: Optional image URL for popup and list card
        url: Optional external "Learn More" link
    """

    lat: float
    lng: float
    title: str
    id: str | None = None
    info_text: str | None = None
    pin: str | None = None
    image: str | None = None
    url: str | None = None

    @property
    def lng_lat(self) -> tuple[float, float]:
        """Return (lon, lat) - the engine's coordinate order."""
        return (self.lng, self.lat)

    def key(self, index: int) -> str:
        """Stable key for this point: its id, or its position in the list."""
        return self.id if self.id is not None else str(index)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MapPoint:
        """Build a MapPoint from a plain mapping (snake_case or camelCase keys).

        Raises:
            ValueError: If lat/lng/title are missing or an unknown key is present.
        """
        fields: dict[str, Any] = {}
        for key, value in data.items():
            name = _KEY_ALIASES.get(key, key)
            if name not in cls.__dataclass_fields__:
                raise ValueError(f"Unknown point field: {key!r}")
            fields[name] = value

        missing = [name for name in ("lat", "lng", "title") if name not in fields]
        if missing:
            raise ValueError(f"Point is missing required fields: {missing}")

        fields["lat"] = float(fields["lat"])
        fields["lng"] = float(fields["lng"])
        if fields.get("id") is not None:
            fields["id"] = str(fields["id"])
        return cls(**fields)
