"""Push delivery adapters.

Adapters translate provider responses into :class:`DeliveryError` tagged with a
:class:`FailureKind`, so callers never branch on provider-specific codes.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

import httpx

from saleradar.domain.errors import DeliveryError, FailureKind
from saleradar.domain.notifications.schemas import NotificationPayload

logger = logging.getLogger(__name__)

FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

_ENDPOINT_INVALID_CODES = frozenset({"UNREGISTERED", "registration-token-not-registered"})
_TRANSIENT_CODES = frozenset({"UNAVAILABLE", "INTERNAL", "QUOTA_EXCEEDED"})


class PushSender(Protocol):
	async def send(self, payload: NotificationPayload) -> None:
		...

	async def aclose(self) -> None:
		...


def _error_codes(body: Mapping[str, Any]) -> set[str]:
	error = body.get("error") if isinstance(body, Mapping) else None
	if not isinstance(error, Mapping):
		return set()
	codes = {str(error.get("status") or "")}
	for detail in error.get("details") or []:
		if isinstance(detail, Mapping) and detail.get("errorCode"):
			codes.add(str(detail["errorCode"]))
	codes.discard("")
	return codes


def classify_fcm_failure(status_code: int, body: Mapping[str, Any]) -> FailureKind:
	codes = _error_codes(body)
	if codes & _ENDPOINT_INVALID_CODES or status_code == 404:
		return FailureKind.ENDPOINT_INVALID
	if codes & _TRANSIENT_CODES or status_code == 429 or status_code >= 500:
		return FailureKind.TRANSIENT
	return FailureKind.UNKNOWN


class FcmPushSender:
	"""Firebase Cloud Messaging HTTP v1 sender."""

	def __init__(
		self,
		*,
		project_id: str,
		access_token: str,
		timeout: float = 15.0,
		http: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.url = FCM_SEND_URL.format(project_id=project_id)
		self._access_token = access_token
		self._owns_client = http is None
		self.http = http or httpx.AsyncClient(timeout=timeout)

	def build_message(self, payload: NotificationPayload) -> dict[str, Any]:
		data = payload.wire_data()
		return {
			"message": {
				"token": payload.target,
				"notification": {"title": payload.title, "body": payload.body},
				"data": {**data, "click_action": "FLUTTER_NOTIFICATION_CLICK"},
				"webpush": {"fcm_options": {"link": data["deepLink"]}},
			}
		}

	async def send(self, payload: NotificationPayload) -> None:
		try:
			resp = await self.http.post(
				self.url,
				json=self.build_message(payload),
				headers={"Authorization": f"Bearer {self._access_token}"},
			)
		except httpx.TransportError as exc:
			raise DeliveryError(FailureKind.TRANSIENT, f"transport_error: {type(exc).__name__}") from exc
		if resp.status_code < 400:
			return
		try:
			body = resp.json()
		except ValueError:
			body = {}
		kind = classify_fcm_failure(resp.status_code, body)
		raise DeliveryError(kind, f"fcm_error status={resp.status_code}", status_code=resp.status_code)

	async def aclose(self) -> None:
		if self._owns_client:
			await self.http.aclose()


class LoggingPushSender:
	"""Development sender that records deliveries in the log instead of sending."""

	async def send(self, payload: NotificationPayload) -> None:
		logger.info("push.logged", extra={"listing_id": payload.data.listing_id, "title": payload.title})

	async def aclose(self) -> None:
		return None


__all__ = ["PushSender", "FcmPushSender", "LoggingPushSender", "classify_fcm_failure", "FCM_SEND_URL"]
