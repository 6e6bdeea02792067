"""Listing records as referenced by the core (id, coordinates, status)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from saleradar.domain.geo import Coordinates


class ListingStatus(str, Enum):
	LIVE = "live"
	ENDED = "ended"


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _parse_ts(raw: Any) -> Optional[datetime]:
	if isinstance(raw, datetime):
		return raw
	if not raw:
		return None
	try:
		return datetime.fromisoformat(str(raw))
	except ValueError:
		return None


def _format_ts(value: Optional[datetime]) -> str:
	return value.isoformat() if value else ""


@dataclass(slots=True)
class Listing:
	id: str
	owner_id: str
	location: Optional[Coordinates]
	status: ListingStatus = ListingStatus.LIVE
	category: str = ""
	description: str = ""
	address: Optional[str] = None
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None
	ended_at: Optional[datetime] = None

	@property
	def is_live(self) -> bool:
		return self.status is ListingStatus.LIVE

	@property
	def has_location(self) -> bool:
		return self.location is not None

	def to_mapping(self) -> Dict[str, str]:
		"""Flatten into Redis hash / stream fields (all strings)."""
		return {
			"id": self.id,
			"owner_id": self.owner_id,
			"lat": "" if self.location is None else repr(self.location.lat),
			"lon": "" if self.location is None else repr(self.location.lon),
			"status": self.status.value,
			"category": self.category or "",
			"description": self.description or "",
			"address": self.address or "",
			"created_at": _format_ts(self.created_at),
			"updated_at": _format_ts(self.updated_at),
			"ended_at": _format_ts(self.ended_at),
		}

	@classmethod
	def from_mapping(cls, data: Mapping[str, Any]) -> "Listing":
		"""Parse a hash or stream payload; malformed coordinates become ``None``."""
		location = data.get("location")
		if isinstance(location, Coordinates):
			coords: Optional[Coordinates] = location
		elif isinstance(location, Mapping):
			coords = Coordinates.from_mapping(location)
		else:
			coords = Coordinates.parse(data.get("lat"), data.get("lon"))
		try:
			status = ListingStatus(str(data.get("status") or ListingStatus.LIVE.value))
		except ValueError:
			status = ListingStatus.ENDED
		return cls(
			id=str(data["id"]),
			owner_id=str(data.get("owner_id") or ""),
			location=coords,
			status=status,
			category=str(data.get("category") or ""),
			description=str(data.get("description") or ""),
			address=str(data["address"]) if data.get("address") else None,
			created_at=_parse_ts(data.get("created_at")),
			updated_at=_parse_ts(data.get("updated_at")),
			ended_at=_parse_ts(data.get("ended_at")),
		)
