"""Geodesic helpers shared by the dispatch and feed paths."""

from saleradar.domain.geo.bounds import Bounds, Viewport, estimate_bounds, estimate_viewport, zoom_tier
from saleradar.domain.geo.distance import EARTH_RADIUS_MILES, Coordinates, distance, distance_between

__all__ = [
	"Bounds",
	"Coordinates",
	"EARTH_RADIUS_MILES",
	"Viewport",
	"distance",
	"distance_between",
	"estimate_bounds",
	"estimate_viewport",
	"zoom_tier",
]
