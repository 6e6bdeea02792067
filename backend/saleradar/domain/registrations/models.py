"""Device registration records used by the notification fan-out."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from saleradar.domain.geo import Coordinates

DEFAULT_PLATFORM = "web"


@dataclass(slots=True)
class Registration:
	token: str
	owner_id: str
	location: Optional[Coordinates] = None
	radius: Optional[float] = None
	platform: str = DEFAULT_PLATFORM
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None

	@property
	def matchable(self) -> bool:
		"""Registrations without a location or a positive radius never match."""
		return self.location is not None and self.radius is not None and self.radius > 0

	def to_mapping(self) -> Dict[str, str]:
		mapping = {
			"token": self.token,
			"owner_id": self.owner_id,
			"platform": self.platform,
			"created_at": self.created_at.isoformat() if self.created_at else "",
			"updated_at": self.updated_at.isoformat() if self.updated_at else "",
		}
		if self.location is not None:
			mapping["lat"] = repr(self.location.lat)
			mapping["lon"] = repr(self.location.lon)
		if self.radius is not None:
			mapping["radius"] = repr(float(self.radius))
		return mapping

	@classmethod
	def from_mapping(cls, data: Mapping[str, Any]) -> "Registration":
		radius_raw = data.get("radius")
		try:
			radius = float(radius_raw) if radius_raw not in (None, "") else None
		except (TypeError, ValueError):
			radius = None
		created_raw = data.get("created_at") or None
		updated_raw = data.get("updated_at") or None
		return cls(
			token=str(data["token"]),
			owner_id=str(data.get("owner_id") or ""),
			location=Coordinates.parse(data.get("lat"), data.get("lon")),
			radius=radius,
			platform=str(data.get("platform") or DEFAULT_PLATFORM),
			created_at=datetime.fromisoformat(created_raw) if created_raw else None,
			updated_at=datetime.fromisoformat(updated_raw) if updated_raw else None,
		)
