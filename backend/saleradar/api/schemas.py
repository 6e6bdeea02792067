"""Request and response models for the REST surface."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from saleradar.domain.feed.ranking import RankedListing
from saleradar.domain.feed.synchronizer import format_distance
from saleradar.domain.geo import Coordinates, Viewport
from saleradar.domain.listings.models import Listing
from saleradar.domain.registrations.models import Registration


class LocationIn(BaseModel):
	lat: float = Field(..., ge=-90, le=90)
	lon: float = Field(..., ge=-180, le=180)

	def to_coordinates(self) -> Coordinates:
		return Coordinates(lat=self.lat, lon=self.lon)


class LocationOut(BaseModel):
	lat: float
	lon: float


class ListingCreateRequest(BaseModel):
	# Where the seller is standing; a typed address must resolve close to it.
	location: LocationIn
	category: str = Field(default="", max_length=80)
	description: str = Field(default="", max_length=2000)
	address: Optional[str] = Field(default=None, max_length=300)


class ListingOut(BaseModel):
	id: str
	owner_id: str
	status: str
	location: Optional[LocationOut] = None
	category: str = ""
	description: str = ""
	address: Optional[str] = None
	created_at: Optional[datetime] = None
	ended_at: Optional[datetime] = None

	@classmethod
	def from_listing(cls, listing: Listing) -> "ListingOut":
		return cls(
			id=listing.id,
			owner_id=listing.owner_id,
			status=listing.status.value,
			location=LocationOut(**listing.location.to_dict()) if listing.location else None,
			category=listing.category,
			description=listing.description,
			address=listing.address,
			created_at=listing.created_at,
			ended_at=listing.ended_at,
		)


class OwnerListingsResponse(BaseModel):
	live: Optional[ListingOut] = None
	items: List[ListingOut]


class NearbyListingOut(ListingOut):
	distance: float
	distance_display: str

	@classmethod
	def from_ranked(cls, ranked: RankedListing) -> "NearbyListingOut":
		base = ListingOut.from_listing(ranked.listing)
		return cls(
			**base.model_dump(),
			distance=round(ranked.distance, 3),
			distance_display=format_distance(ranked.distance),
		)


class BoundsOut(BaseModel):
	south: float
	west: float
	north: float
	east: float


class NearbyResponse(BaseModel):
	origin: LocationOut
	radius: float
	bounds: BoundsOut
	zoom: int
	items: List[NearbyListingOut]

	@classmethod
	def build(cls, viewport: Viewport, ranked: List[RankedListing]) -> "NearbyResponse":
		return cls(
			origin=LocationOut(**viewport.center.to_dict()),
			radius=viewport.radius,
			bounds=BoundsOut(**viewport.bounds.to_dict()),
			zoom=viewport.zoom,
			items=[NearbyListingOut.from_ranked(entry) for entry in ranked],
		)


class RegistrationUpsertRequest(BaseModel):
	token: str = Field(..., min_length=1, max_length=4096)
	location: Optional[LocationIn] = None
	radius: Optional[float] = Field(default=None, gt=0, le=500)
	platform: str = Field(default="web", max_length=32)


class RegistrationOut(BaseModel):
	owner_id: str
	platform: str
	radius: Optional[float] = None
	has_location: bool
	updated_at: Optional[datetime] = None

	@classmethod
	def from_registration(cls, registration: Registration) -> "RegistrationOut":
		return cls(
			owner_id=registration.owner_id,
			platform=registration.platform,
			radius=registration.radius,
			has_location=registration.location is not None,
			updated_at=registration.updated_at,
		)
