"""Redis stream helpers for listing change events."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from saleradar.domain.listings.models import Listing
from saleradar.infra.redis import redis_client

STREAM_LISTING = "listings:changes"
STREAM_MAXLEN = 10_000

EVENT_CREATED = "created"
EVENT_ENDED = "ended"


def _now_ts() -> str:
	return datetime.now(timezone.utc).isoformat()


async def publish_listing_event(event: str, listing: Listing, *, actor_id: str | None = None) -> str:
	payload: dict[str, Any] = {
		"event": event,
		"entity": "listing",
		**listing.to_mapping(),
		"ts": _now_ts(),
	}
	if actor_id:
		payload["actor_id"] = actor_id
	return await redis_client.xadd(STREAM_LISTING, payload, maxlen=STREAM_MAXLEN, approximate=True)


__all__ = [
	"publish_listing_event",
	"STREAM_LISTING",
	"EVENT_CREATED",
	"EVENT_ENDED",
]
