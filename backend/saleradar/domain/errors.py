"""Error taxonomy shared by the dispatcher, the location tracker and the API."""

from __future__ import annotations

from enum import Enum

from fastapi import status


class FailureKind(str, Enum):
	"""Closed set of failure tags produced by collaborator adapters."""

	ENDPOINT_INVALID = "endpoint_invalid"
	TRANSIENT = "transient"
	PERMISSION_DENIED = "permission_denied"
	TIMEOUT = "timeout"
	UNKNOWN = "unknown"


class SaleRadarError(Exception):
	"""Base class for errors surfaced through the API."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "saleradar_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(SaleRadarError):
	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ForbiddenError(SaleRadarError):
	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class ConflictError(SaleRadarError):
	"""Raised for state transitions that are not allowed (e.g. ending twice)."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class DeliveryError(Exception):
	"""A push delivery failed; ``kind`` decides whether the endpoint is pruned."""

	def __init__(self, kind: FailureKind, message: str = "", *, status_code: int | None = None) -> None:
		super().__init__(message or kind.value)
		self.kind = kind
		self.status_code = status_code

	@property
	def endpoint_invalid(self) -> bool:
		return self.kind is FailureKind.ENDPOINT_INVALID


_LOCATION_MESSAGES = {
	FailureKind.PERMISSION_DENIED: "Location permission denied. Allow location access to see sales near you.",
	FailureKind.TIMEOUT: "Location request timed out. Move somewhere with a clearer signal and try again.",
	FailureKind.TRANSIENT: "Location information unavailable. Check that location services are enabled.",
	FailureKind.UNKNOWN: "Failed to get location. Check that location services are on and try again.",
}


class LocationError(Exception):
	"""Location acquisition failure carrying a user-facing message."""

	def __init__(self, kind: FailureKind, message: str | None = None) -> None:
		self.kind = kind
		self.message = message or _LOCATION_MESSAGES.get(kind, _LOCATION_MESSAGES[FailureKind.UNKNOWN])
		super().__init__(self.message)

	@property
	def terminal(self) -> bool:
		return self.kind is FailureKind.PERMISSION_DENIED

	@property
	def retryable(self) -> bool:
		return self.kind in (FailureKind.TIMEOUT, FailureKind.TRANSIENT, FailureKind.UNKNOWN)


class RateLimitedError(SaleRadarError):
	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	detail = "rate_limited"


class InvalidAddressError(SaleRadarError):
	"""The typed listing address cannot be placed (not found, incomplete or too far)."""

	status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
	detail = "invalid_address"


class GeocoderUnavailableError(SaleRadarError):
	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "geocoder_unavailable"
