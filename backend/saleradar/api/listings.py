"""REST API surface for publishing, ending and querying listings."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from saleradar.api.deps import get_services
from saleradar.api.schemas import ListingCreateRequest, ListingOut, NearbyResponse, OwnerListingsResponse
from saleradar.domain.errors import NotFoundError
from saleradar.domain.feed.ranking import rank_listings
from saleradar.domain.geo import Coordinates, estimate_viewport
from saleradar.domain.listings.placement import place_listing
from saleradar.infra import rate_limit
from saleradar.infra.auth import AuthenticatedUser, get_current_user
from saleradar.services import Services
from saleradar.settings import settings

router = APIRouter(prefix="/listings", tags=["listings"])


@router.post("", response_model=ListingOut, status_code=status.HTTP_201_CREATED)
async def create_listing(
	payload: ListingCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> ListingOut:
	await rate_limit.enforce("listing_create", auth_user.id)
	placement = await place_listing(
		payload.location.to_coordinates(),
		payload.address,
		geocoder=services.geocoder,
	)
	listing = await services.listings.create(
		owner_id=auth_user.id,
		location=placement.location,
		category=payload.category.strip(),
		description=payload.description.strip(),
		address=placement.address,
	)
	return ListingOut.from_listing(listing)


@router.get("/mine", response_model=OwnerListingsResponse)
async def my_listings(
	limit: int = Query(default=50, ge=1, le=200),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> OwnerListingsResponse:
	history = await services.listings.list_for_owner(auth_user.id, limit=limit)
	live = await services.listings.live_for_owner(auth_user.id)
	return OwnerListingsResponse(
		live=ListingOut.from_listing(live) if live else None,
		items=[ListingOut.from_listing(listing) for listing in history],
	)


@router.get("/nearby", response_model=NearbyResponse)
async def nearby_listings(
	lat: float = Query(..., ge=-90, le=90),
	lon: float = Query(..., ge=-180, le=180),
	radius: Optional[float] = Query(default=None, gt=0, le=100),
	_: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> NearbyResponse:
	origin = Coordinates(lat=lat, lon=lon)
	radius_miles = radius if radius is not None else settings.default_radius_miles
	live = await services.listings.list_live()
	ranked = rank_listings(live, origin, radius_miles)
	return NearbyResponse.build(estimate_viewport(origin, radius_miles), ranked)


@router.get("/{listing_id}", response_model=ListingOut)
async def get_listing(
	listing_id: str,
	_: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> ListingOut:
	listing = await services.listings.get(listing_id)
	if listing is None:
		raise NotFoundError("listing_not_found")
	return ListingOut.from_listing(listing)


@router.post("/{listing_id}/end", response_model=ListingOut)
async def end_listing(
	listing_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> ListingOut:
	listing = await services.listings.end(listing_id, actor_id=auth_user.id, is_admin=auth_user.is_admin)
	return ListingOut.from_listing(listing)
