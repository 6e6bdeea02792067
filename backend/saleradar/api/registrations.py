"""Device registration endpoints (opt-in and opt-out for nearby alerts)."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status

from saleradar.api.deps import get_services
from saleradar.api.schemas import RegistrationOut, RegistrationUpsertRequest
from saleradar.domain.errors import NotFoundError
from saleradar.infra import rate_limit
from saleradar.infra.auth import AuthenticatedUser, get_current_user
from saleradar.services import Services

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.put("", response_model=RegistrationOut)
async def upsert_registration(
	payload: RegistrationUpsertRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> RegistrationOut:
	await rate_limit.enforce("registration_upsert", auth_user.id)
	registration = await services.registrations.upsert(
		payload.token,
		auth_user.id,
		payload.location.to_coordinates() if payload.location else None,
		payload.radius,
		platform=payload.platform,
	)
	return RegistrationOut.from_registration(registration)


@router.get("", response_model=List[RegistrationOut])
async def list_registrations(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> List[RegistrationOut]:
	registrations = await services.registrations.list_for_owner(auth_user.id)
	return [RegistrationOut.from_registration(item) for item in registrations]


@router.delete("/{token}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_registration(
	token: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: Services = Depends(get_services),
) -> Response:
	removed = await services.registrations.remove(auth_user.id, token)
	if not removed:
		raise NotFoundError("registration_not_found")
	return Response(status_code=status.HTTP_204_NO_CONTENT)
