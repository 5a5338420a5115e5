"""Persistence for user locations."""

from __future__ import annotations

from neighbridge.communities.domain.repo import haversine_sql
from neighbridge.domain import geo
from neighbridge.domain.locations.models import AddressFields, UserLocation
from neighbridge.infra.postgres import get_pool


class LocationsRepository:
	async def get(self, user_id: str) -> UserLocation | None:
		pool = await get_pool()
		async with pool.acquire() as conn:
			record = await conn.fetchrow("SELECT * FROM user_locations WHERE user_id=$1", user_id)
		return UserLocation.model_validate(dict(record)) if record else None

	async def upsert(self, user_id: str, point: geo.Coordinate, fields: AddressFields) -> UserLocation:
		"""Replace the stored location in a single statement; the latest write wins."""
		pool = await get_pool()
		async with pool.acquire() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO user_locations (user_id, latitude, longitude, address, city, state, country, updated_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7, NOW())
				ON CONFLICT (user_id) DO UPDATE SET
					latitude = EXCLUDED.latitude,
					longitude = EXCLUDED.longitude,
					address = EXCLUDED.address,
					city = EXCLUDED.city,
					state = EXCLUDED.state,
					country = EXCLUDED.country,
					updated_at = NOW()
				RETURNING *
				""",
				user_id,
				point.latitude,
				point.longitude,
				fields.address,
				fields.city,
				fields.state,
				fields.country,
			)
		return UserLocation.model_validate(dict(record))

	async def list_within(
		self,
		origin: geo.Coordinate,
		*,
		radius_m: float,
		limit: int,
		exclude_user_id: str | None = None,
	) -> list[tuple[UserLocation, float]]:
		distance_sql = haversine_sql("latitude", "longitude", "$1::float8", "$2::float8")
		min_lat, max_lat, min_lng, max_lng = geo.bounding_box(origin, radius_m)
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT *, {distance_sql} AS distance_m
				FROM user_locations
				WHERE latitude BETWEEN $3 AND $4
					AND longitude BETWEEN $5 AND $6
					AND {distance_sql} <= $7
					AND ($8::text IS NULL OR user_id <> $8::text)
				ORDER BY distance_m ASC
				LIMIT $9
				""",
				origin.latitude,
				origin.longitude,
				min_lat,
				max_lat,
				min_lng,
				max_lng,
				float(radius_m),
				exclude_user_id,
				limit,
			)
		return [(UserLocation.model_validate(dict(row)), float(row["distance_m"])) for row in rows]
