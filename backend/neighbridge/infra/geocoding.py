"""Reverse geocoding against an OpenStreetMap Nominatim endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol

import httpx

from neighbridge.domain.geo import Coordinate
from neighbridge.infra.redis import redis_client
from neighbridge.obs import metrics as obs_metrics
from neighbridge.settings import settings

logger = logging.getLogger(__name__)

_NAME_KEYS = (
	"name",
	"house_name",
	"amenity",
	"shop",
	"office",
	"building",
	"road",
	"neighbourhood",
	"suburb",
	"city",
	"town",
	"village",
	"hamlet",
	"state",
	"country",
)


class GeocodingUnavailable(Exception):
	"""Raised when the geocoding service cannot answer."""


@dataclass(frozen=True)
class PlaceDetails:
	location_name: str
	address: str
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None
	postal_code: Optional[str] = None


class ReverseGeocoder(Protocol):
	async def reverse(self, point: Coordinate) -> PlaceDetails | None:
		...


def parse_place(data: Mapping[str, Any]) -> PlaceDetails | None:
	display_name = data.get("display_name")
	if not display_name:
		return None
	address = data.get("address") or {}
	if not isinstance(address, Mapping):
		return None
	name = next((address[key] for key in _NAME_KEYS if address.get(key)), None)
	return PlaceDetails(
		location_name=str(name) if name else "Unknown Location",
		address=str(display_name),
		city=address.get("city") or address.get("town") or address.get("village") or address.get("hamlet"),
		state=address.get("state") or address.get("province"),
		country=address.get("country"),
		postal_code=address.get("postcode"),
	)


class NominatimGeocoder:
	"""Nominatim client with a per-instance request interval and a Redis result cache.

	The free Nominatim tier allows one request per second, so lookups made
	through one client are spaced by `min_interval` seconds.
	"""

	def __init__(
		self,
		*,
		http: httpx.AsyncClient | None = None,
		base_url: str | None = None,
		user_agent: str | None = None,
		min_interval: float | None = None,
		timeout: float | None = None,
		cache_ttl_seconds: int | None = None,
		clock: Callable[[], float] = time.monotonic,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
	) -> None:
		self.base_url = (base_url or settings.geocoding_base_url).rstrip("/")
		self.user_agent = user_agent or settings.geocoding_user_agent
		self.min_interval = settings.geocoding_min_interval_seconds if min_interval is None else min_interval
		self.timeout = settings.geocoding_timeout_seconds if timeout is None else timeout
		self.cache_ttl_seconds = settings.geocoding_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
		self._http = http
		self._clock = clock
		self._sleep = sleep
		self._lock = asyncio.Lock()
		self._last_request_at: float | None = None

	def reset(self) -> None:
		self._last_request_at = None

	async def _throttle(self) -> None:
		async with self._lock:
			now = self._clock()
			if self._last_request_at is not None:
				wait = self.min_interval - (now - self._last_request_at)
				if wait > 0:
					await self._sleep(wait)
			self._last_request_at = self._clock()

	@staticmethod
	def _cache_key(point: Coordinate) -> str:
		return f"geocode:rev:{point.latitude:.5f}:{point.longitude:.5f}"

	async def _cached(self, key: str) -> PlaceDetails | None:
		try:
			raw = await redis_client.get(key)
		except Exception:
			logger.warning("geocoding_cache_unavailable", exc_info=True)
			return None
		if not raw:
			return None
		try:
			return PlaceDetails(**json.loads(raw))
		except (ValueError, TypeError):
			# Unreadable entries are treated as a miss and overwritten on the next store.
			logger.warning("geocoding_cache_unavailable", extra={"cache_key": key}, exc_info=True)
			return None

	async def _store(self, key: str, place: PlaceDetails) -> None:
		try:
			await redis_client.set(key, json.dumps(asdict(place)), ex=self.cache_ttl_seconds)
		except Exception:
			logger.warning("geocoding_cache_unavailable", exc_info=True)

	async def reverse(self, point: Coordinate) -> PlaceDetails | None:
		key = self._cache_key(point)
		cached = await self._cached(key)
		if cached is not None:
			obs_metrics.GEOCODING_LOOKUPS.labels(result="hit").inc()
			return cached
		await self._throttle()
		params = {
			"lat": point.latitude,
			"lon": point.longitude,
			"format": "json",
			"addressdetails": 1,
			"zoom": 18,
			"accept-language": "en",
		}
		headers = {"User-Agent": self.user_agent}
		try:
			if self._http is not None:
				response = await self._http.get(f"{self.base_url}/reverse", params=params, headers=headers, timeout=self.timeout)
			else:
				async with httpx.AsyncClient() as client:
					response = await client.get(f"{self.base_url}/reverse", params=params, headers=headers, timeout=self.timeout)
			response.raise_for_status()
			data = response.json()
		except (httpx.HTTPError, ValueError) as exc:
			obs_metrics.GEOCODING_LOOKUPS.labels(result="error").inc()
			raise GeocodingUnavailable(str(exc)) from exc
		place = parse_place(data) if isinstance(data, Mapping) else None
		obs_metrics.GEOCODING_LOOKUPS.labels(result="miss").inc()
		if place is not None:
			await self._store(key, place)
		return place
