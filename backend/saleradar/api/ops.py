"""Health checks and the Prometheus scrape endpoint."""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from saleradar.api.deps import get_services
from saleradar.domain.errors import ForbiddenError
from saleradar.obs import health
from saleradar.services import Services
from saleradar.settings import settings

router = APIRouter(tags=["ops"])


def _bearer(authorization: Optional[str]) -> Optional[str]:
	scheme, _, value = (authorization or "").partition(" ")
	if scheme.lower() == "bearer" and value:
		return value.strip()
	return None


async def require_metrics_access(
	admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None),
) -> None:
	"""Scrapes need the ops token unless metrics are public; no token configured means no access."""
	if settings.obs_metrics_public:
		return
	expected = settings.obs_admin_token
	if not expected:
		raise ForbiddenError("admin_token_not_configured")
	presented = admin_token or _bearer(authorization)
	if presented is None or not secrets.compare_digest(presented, expected):
		raise ForbiddenError("forbidden")


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready(services: Services = Depends(get_services)) -> Response:
	status_code, payload = await health.readiness(services)
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
