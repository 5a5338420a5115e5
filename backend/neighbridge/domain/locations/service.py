"""Location directory: stored user positions and the fallback policy."""

from __future__ import annotations

import logging
from typing import Any

from neighbridge.communities.domain.exceptions import InvalidCoordinateError, LocationNotSetError, ValidationError
from neighbridge.domain import geo
from neighbridge.domain.locations.models import AddressFields, NearbyUser, ResolvedLocation, UserLocation
from neighbridge.domain.locations.repo import LocationsRepository
from neighbridge.obs import metrics as obs_metrics
from neighbridge.settings import settings

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
	"Showing results from a default location. Update your profile location for personalized results."
)
NEARBY_DISTANCE_BUCKET_M = 10
MAX_NEARBY_RADIUS_KM = 100.0


def fallback_coordinate() -> geo.Coordinate:
	return geo.coordinate(settings.fallback_latitude, settings.fallback_longitude)


class LocationDirectory:
	"""Stores each user's declared coordinate and resolves a best known location."""

	def __init__(self, *, repository: LocationsRepository | None = None) -> None:
		self.repo = repository or LocationsRepository()

	async def get_location(self, user_id: str) -> UserLocation | None:
		return await self.repo.get(user_id)

	async def resolve_location(self, user_id: str) -> ResolvedLocation:
		stored = await self.repo.get(user_id)
		if stored is not None and geo.is_valid(stored.latitude, stored.longitude):
			return ResolvedLocation(coordinate=stored.coordinate, is_fallback=False, location=stored)
		return ResolvedLocation(coordinate=fallback_coordinate(), is_fallback=True, location=None)

	async def update_location(
		self,
		user_id: str,
		latitude: Any,
		longitude: Any,
		fields: AddressFields | None = None,
	) -> UserLocation:
		try:
			point = geo.coordinate(latitude, longitude)
		except geo.InvalidCoordinate as exc:
			raise InvalidCoordinateError() from exc
		location = await self.repo.upsert(user_id, point, fields or AddressFields())
		logger.info("user_location_updated", extra={"city": location.city, "country": location.country})
		return location

	async def find_nearby_users(
		self,
		user_id: str,
		*,
		radius_km: float | None = None,
		limit: int | None = None,
	) -> list[NearbyUser]:
		radius_km = settings.nearby_users_radius_km if radius_km is None else radius_km
		if not 0 < radius_km <= MAX_NEARBY_RADIUS_KM:
			raise ValidationError("invalid_radius", message=f"Radius must be between 0 and {MAX_NEARBY_RADIUS_KM:g} km")
		stored = await self.repo.get(user_id)
		if stored is None or not geo.is_valid(stored.latitude, stored.longitude):
			raise LocationNotSetError()
		rows = await self.repo.list_within(
			stored.coordinate,
			radius_m=radius_km * 1000,
			limit=limit or settings.nearby_users_limit,
			exclude_user_id=user_id,
		)
		obs_metrics.nearby_query("users")
		return [
			NearbyUser(
				user_id=location.user_id,
				distance_m=geo.round_up_to_bucket(distance, NEARBY_DISTANCE_BUCKET_M),
				city=location.city,
				state=location.state,
				country=location.country,
			)
			for location, distance in rows
		]
