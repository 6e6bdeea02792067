"""Nominatim geocoding: best-effort reverse lookups and validated address search."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx

from saleradar.domain.errors import GeocoderUnavailableError
from saleradar.domain.geo import Coordinates
from saleradar.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

# Nominatim reports the locality under whichever key matches the place type.
_LOCALITY_KEYS = ("city", "town", "village", "hamlet", "suburb", "neighbourhood")


@dataclass(frozen=True)
class ResolvedAddress:
    coords: Coordinates
    formatted: str
    city: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None

    @property
    def complete(self) -> bool:
        """A listing address needs at least a locality and a state."""
        return bool(self.city and self.state)

    @classmethod
    def from_nominatim(cls, item: Dict[str, Any]) -> "ResolvedAddress":
        details = item.get("address") or {}
        city = next((details[key] for key in _LOCALITY_KEYS if details.get(key)), None)
        return cls(
            coords=Coordinates(lat=float(item["lat"]), lon=float(item["lon"])),
            formatted=str(item.get("display_name") or ""),
            city=city,
            state=details.get("state"),
            postcode=details.get("postcode"),
        )


class Geocoder(Protocol):
    async def reverse(self, coords: Coordinates) -> Optional[str]:
        """Display address for ``coords``; ``None`` when unknown or on failure."""

    async def resolve(self, address: str) -> Optional[ResolvedAddress]:
        """Best match for a typed address; ``None`` when nothing matches.

        Raises ``GeocoderUnavailableError`` when the lookup itself fails.
        """

    async def aclose(self) -> None:
        ...


@dataclass
class NominatimGeocoder:
    """OpenStreetMap Nominatim client."""

    base_url: str
    user_agent: str
    request_timeout: float = 5.0
    http: Optional[httpx.AsyncClient] = None
    _client: httpx.AsyncClient = field(init=False, repr=False)
    _owns_http: bool = field(init=False, repr=False, default=False)

    def __post_init__(self) -> None:
        if self.http is None:
            self._client = httpx.AsyncClient(
                timeout=self.request_timeout,
                headers={"User-Agent": self.user_agent},
            )
            self._owns_http = True
        else:
            self._client = self.http

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path}"

    async def reverse(self, coords: Coordinates) -> Optional[str]:
        params = {
            "format": "json",
            "lat": coords.lat,
            "lon": coords.lon,
            "zoom": 18,
            "addressdetails": 1,
        }
        try:
            response = await self._client.get(self._url("reverse"), params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            obs_metrics.inc_geocode_lookup("error")
            logger.debug("geocode.failed", extra={"error": type(exc).__name__})
            return None
        address = data.get("display_name") if isinstance(data, dict) else None
        if not address:
            obs_metrics.inc_geocode_lookup("miss")
            return None
        obs_metrics.inc_geocode_lookup("hit")
        return str(address)

    async def resolve(self, address: str) -> Optional[ResolvedAddress]:
        params = {"format": "json", "q": address, "addressdetails": 1, "limit": 1}
        try:
            response = await self._client.get(self._url("search"), params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            obs_metrics.inc_geocode_lookup("error", direction="forward")
            logger.warning("geocode.search_failed", extra={"error": type(exc).__name__})
            raise GeocoderUnavailableError() from exc
        if not isinstance(data, list) or not data:
            obs_metrics.inc_geocode_lookup("miss", direction="forward")
            return None
        try:
            resolved = ResolvedAddress.from_nominatim(data[0])
        except (KeyError, TypeError, ValueError):
            obs_metrics.inc_geocode_lookup("miss", direction="forward")
            logger.info("geocode.search_malformed")
            return None
        obs_metrics.inc_geocode_lookup("hit", direction="forward")
        return resolved

    async def aclose(self) -> None:
        if self._owns_http:
            await self._client.aclose()


__all__ = ["Geocoder", "NominatimGeocoder", "ResolvedAddress"]
