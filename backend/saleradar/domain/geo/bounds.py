"""Viewport estimation for a center point and a search radius."""

from __future__ import annotations

import math
from dataclasses import dataclass

from saleradar.domain.geo.distance import Coordinates

MILES_PER_DEGREE_AT_EQUATOR = 69.172
MIN_OFFSET_DEGREES = 0.001

# (max radius in miles, zoom tier); anything beyond the last row is capped.
_ZOOM_TIERS = (
	(5.0, 14),
	(10.0, 13),
	(25.0, 12),
	(50.0, 11),
	(100.0, 10),
)
MAX_ZOOM_TIER = _ZOOM_TIERS[0][1]
MIN_ZOOM_TIER = _ZOOM_TIERS[-1][1]


@dataclass(frozen=True, slots=True)
class Bounds:
	south: float
	west: float
	north: float
	east: float

	def to_dict(self) -> dict[str, float]:
		return {"south": self.south, "west": self.west, "north": self.north, "east": self.east}

	def contains(self, point: Coordinates) -> bool:
		return self.south <= point.lat <= self.north and self.west <= point.lon <= self.east


@dataclass(frozen=True, slots=True)
class Viewport:
	center: Coordinates
	radius: float
	bounds: Bounds
	zoom: int


def estimate_bounds(center: Coordinates, radius_miles: float) -> Bounds:
	"""Square box around ``center`` sized from the smaller of the two degree offsets.

	Never narrower than ``MIN_OFFSET_DEGREES`` on each side.
	"""
	lat_offset = radius_miles / MILES_PER_DEGREE_AT_EQUATOR
	cos_lat = math.cos(math.radians(center.lat))
	if abs(cos_lat) < 1e-12:
		lon_offset = math.inf
	else:
		lon_offset = radius_miles / (MILES_PER_DEGREE_AT_EQUATOR * abs(cos_lat))
	offset = max(MIN_OFFSET_DEGREES, min(lat_offset, lon_offset))
	return Bounds(
		south=center.lat - offset,
		west=center.lon - offset,
		north=center.lat + offset,
		east=center.lon + offset,
	)


def zoom_tier(radius_miles: float) -> int:
	for max_radius, tier in _ZOOM_TIERS:
		if radius_miles <= max_radius:
			return tier
	return MIN_ZOOM_TIER


def estimate_viewport(center: Coordinates, radius_miles: float) -> Viewport:
	return Viewport(
		center=center,
		radius=radius_miles,
		bounds=estimate_bounds(center, radius_miles),
		zoom=zoom_tier(radius_miles),
	)
