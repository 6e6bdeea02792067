"""Radius filter and distance ordering shared by the live feed and the REST query."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from saleradar.domain.geo import Coordinates, distance_between
from saleradar.domain.listings.models import Listing


@dataclass(frozen=True, slots=True)
class RankedListing:
	listing: Listing
	distance: float


def rank_listings(listings: Iterable[Listing], origin: Coordinates, radius: float) -> List[RankedListing]:
	"""Live listings with coordinates within ``radius`` miles, nearest first.

	Ties on distance are broken by listing id so the order is stable across
	recomputes.
	"""
	ranked: List[RankedListing] = []
	for listing in listings:
		if not listing.is_live or listing.location is None:
			continue
		miles = distance_between(origin, listing.location)
		if miles <= radius:
			ranked.append(RankedListing(listing=listing, distance=miles))
	ranked.sort(key=lambda item: (item.distance, item.listing.id))
	return ranked


__all__ = ["RankedListing", "rank_listings"]
