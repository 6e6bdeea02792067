"""Decides where a new listing is pinned.

A seller creates a listing from where they stand. When they type a street
address, it is geocoded and must resolve to a complete address close to
their current position; the listing is then pinned to the resolved point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from saleradar.domain.errors import InvalidAddressError
from saleradar.domain.feed.geocoder import Geocoder
from saleradar.domain.geo import Coordinates, distance_between
from saleradar.obs import metrics as obs_metrics
from saleradar.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Placement:
	location: Coordinates
	address: Optional[str] = None
	verified: bool = False


def _reject(reason: str) -> InvalidAddressError:
	obs_metrics.inc_address_rejected(reason)
	logger.info("listing.address_rejected", extra={"reason": reason})
	return InvalidAddressError(reason)


async def place_listing(
	seller_position: Coordinates,
	address: Optional[str],
	*,
	geocoder: Optional[Geocoder],
	max_distance_miles: Optional[float] = None,
) -> Placement:
	typed = (address or "").strip()
	if not typed:
		return Placement(location=seller_position)
	if geocoder is None:
		# Nothing to verify against; keep the text and the seller's position.
		return Placement(location=seller_position, address=typed)

	limit = settings.listing_address_max_distance_miles if max_distance_miles is None else max_distance_miles
	resolved = await geocoder.resolve(typed)
	if resolved is None:
		raise _reject("address_not_found")
	if not resolved.complete:
		raise _reject("address_incomplete")
	if distance_between(seller_position, resolved.coords) > limit:
		raise _reject("address_too_far")
	return Placement(location=resolved.coords, address=resolved.formatted or typed, verified=True)


__all__ = ["Placement", "place_listing"]
