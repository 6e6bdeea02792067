"""Great-circle distance in miles."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

# One constant for every path that thresholds on distance.
EARTH_RADIUS_MILES = 3959.0


@dataclass(frozen=True, slots=True)
class Coordinates:
	"""A latitude/longitude pair in decimal degrees."""

	lat: float
	lon: float

	def to_dict(self) -> dict[str, float]:
		return {"lat": self.lat, "lon": self.lon}

	@classmethod
	def parse(cls, lat: Any, lon: Any) -> Optional["Coordinates"]:
		"""Build coordinates from loosely typed values, returning None when unusable."""
		if lat in (None, "") or lon in (None, ""):
			return None
		try:
			lat_f = float(lat)
			lon_f = float(lon)
		except (TypeError, ValueError):
			return None
		if math.isnan(lat_f) or math.isnan(lon_f):
			return None
		return cls(lat=lat_f, lon=lon_f)

	@classmethod
	def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> Optional["Coordinates"]:
		if not data:
			return None
		lat = data.get("lat", data.get("latitude"))
		lon = data.get("lon", data.get("longitude"))
		return cls.parse(lat, lon)


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
	"""Return the haversine distance between two points in miles.

	No range validation is performed; callers pass degrees.
	"""
	phi1, phi2 = math.radians(lat1), math.radians(lat2)
	dphi = math.radians(lat2 - lat1)
	dlambda = math.radians(lon2 - lon1)
	a = min(1.0, math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2)
	return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(a: Coordinates, b: Coordinates) -> float:
	return distance(a.lat, a.lon, b.lat, b.lon)
