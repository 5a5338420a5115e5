"""Async repository helpers for communities domain."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

import asyncpg

from neighbridge.communities.domain import models
from neighbridge.communities.domain.exceptions import AlreadyMemberError
from neighbridge.domain import geo
from neighbridge.infra.postgres import get_pool


def haversine_sql(lat_col: str, lng_col: str, lat_param: str, lng_param: str) -> str:
	"""SQL expression for the great-circle distance in meters between a column pair and a parameter pair."""
	return f"""(
		{geo.EARTH_RADIUS_M} * 2 * ASIN(LEAST(1.0, SQRT(
			POWER(SIN(RADIANS({lat_col} - {lat_param}) / 2), 2)
			+ COS(RADIANS({lat_param})) * COS(RADIANS({lat_col}))
			* POWER(SIN(RADIANS({lng_col} - {lng_param}) / 2), 2)
		)))
	)"""


def _escape_like(value: str) -> str:
	return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class _Params:
	"""Collects positional query parameters and hands out their placeholders."""

	def __init__(self) -> None:
		self.values: list[object] = []

	def add(self, value: object, cast: str | None = None) -> str:
		self.values.append(value)
		placeholder = f"${len(self.values)}"
		return f"{placeholder}::{cast}" if cast else placeholder


def _proximity_conditions(params: _Params, origin: geo.Coordinate, max_distance_m: float) -> tuple[str, list[str]]:
	lat = params.add(origin.latitude, "float8")
	lng = params.add(origin.longitude, "float8")
	distance_sql = haversine_sql("c.center_lat", "c.center_lng", lat, lng)
	min_lat, max_lat, min_lng, max_lng = geo.bounding_box(origin, max_distance_m)
	conditions = [
		f"c.center_lat BETWEEN {params.add(min_lat, 'float8')} AND {params.add(max_lat, 'float8')}",
		f"c.center_lng BETWEEN {params.add(min_lng, 'float8')} AND {params.add(max_lng, 'float8')}",
		f"{distance_sql} <= {params.add(float(max_distance_m), 'float8')}",
	]
	return distance_sql, conditions


class CommunitiesRepository:
	"""Thin data-access layer around asyncpg."""

	@asynccontextmanager
	async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				yield conn

	async def _fetchrow(self, query: str, *args: object, conn: asyncpg.Connection | None = None):
		if conn is not None:
			return await conn.fetchrow(query, *args)
		pool = await get_pool()
		async with pool.acquire() as pooled_conn:
			return await pooled_conn.fetchrow(query, *args)

	async def _fetch(self, query: str, *args: object, conn: asyncpg.Connection | None = None):
		if conn is not None:
			return await conn.fetch(query, *args)
		pool = await get_pool()
		async with pool.acquire() as pooled_conn:
			return await pooled_conn.fetch(query, *args)

	# --- Community operations ---------------------------------------------

	async def insert_community(
		self,
		*,
		community_id: str,
		name: str,
		description: str | None,
		created_by: str,
		center: geo.Coordinate,
		radius_m: int,
		place_label: str | None,
		address: str | None,
		conn: asyncpg.Connection | None = None,
	) -> models.Community:
		record = await self._fetchrow(
			"""
			INSERT INTO communities (community_id, name, description, created_by, center_lat, center_lng,
				radius_m, status, member_count, place_label, address)
			VALUES ($1, $2, $3, $4, $5, $6, $7, 'active', 1, $8, $9)
			RETURNING *
			""",
			community_id,
			name,
			description,
			created_by,
			center.latitude,
			center.longitude,
			radius_m,
			place_label,
			address,
			conn=conn,
		)
		return models.Community.model_validate(dict(record))

	async def get_community(self, community_id: str) -> models.Community | None:
		record = await self._fetchrow("SELECT * FROM communities WHERE community_id=$1", community_id)
		return models.Community.model_validate(dict(record)) if record else None

	async def list_communities(self, community_ids: Sequence[str]) -> list[models.Community]:
		if not community_ids:
			return []
		rows = await self._fetch(
			"SELECT * FROM communities WHERE community_id = ANY($1::text[])",
			list(community_ids),
		)
		return [models.Community.model_validate(dict(row)) for row in rows]

	async def find_active_named_near(
		self,
		*,
		name: str,
		center: geo.Coordinate,
		within_m: float,
	) -> models.Community | None:
		params = _Params()
		distance_sql, conditions = _proximity_conditions(params, center, within_m)
		name_param = params.add(name)
		record = await self._fetchrow(
			f"""
			SELECT c.*, {distance_sql} AS distance_m
			FROM communities c
			WHERE c.status = 'active' AND LOWER(c.name) = LOWER({name_param}) AND {' AND '.join(conditions)}
			ORDER BY distance_m ASC
			LIMIT 1
			""",
			*params.values,
		)
		return models.Community.model_validate(dict(record)) if record else None

	async def list_nearby(
		self,
		*,
		origin: geo.Coordinate,
		max_distance_m: float,
		limit: int,
	) -> list[tuple[models.Community, float]]:
		params = _Params()
		distance_sql, conditions = _proximity_conditions(params, origin, max_distance_m)
		limit_param = params.add(limit)
		rows = await self._fetch(
			f"""
			SELECT c.*, {distance_sql} AS distance_m
			FROM communities c
			WHERE c.status = 'active' AND {' AND '.join(conditions)}
			ORDER BY distance_m ASC, c.created_at DESC
			LIMIT {limit_param}
			""",
			*params.values,
		)
		return [(models.Community.model_validate(dict(row)), float(row["distance_m"])) for row in rows]

	async def list_active(self, *, limit: int) -> list[models.Community]:
		rows = await self._fetch(
			"""
			SELECT * FROM communities
			WHERE status = 'active'
			ORDER BY created_at DESC
			LIMIT $1
			""",
			limit,
		)
		return [models.Community.model_validate(dict(row)) for row in rows]

	async def search_communities(
		self,
		*,
		text: str | None,
		origin: geo.Coordinate | None,
		max_distance_m: float,
		limit: int,
		offset: int,
	) -> tuple[list[tuple[models.Community, Optional[float]]], int]:
		params = _Params()
		conditions = ["c.status = 'active'"]
		distance_sql = "NULL::float8"
		order_by = "c.created_at DESC"
		if text:
			pattern = params.add(f"%{_escape_like(text)}%")
			conditions.append(f"(c.name ILIKE {pattern} OR c.description ILIKE {pattern})")
			order_by = f"(c.name ILIKE {pattern}) DESC, c.created_at DESC"
		if origin is not None:
			distance_sql, proximity = _proximity_conditions(params, origin, max_distance_m)
			conditions.extend(proximity)
			order_by = "distance_m ASC, c.created_at DESC"
		where_clause = " AND ".join(conditions)
		pool = await get_pool()
		async with pool.acquire() as conn:
			total = await conn.fetchval(f"SELECT COUNT(*) FROM communities c WHERE {where_clause}", *params.values)
			limit_param = params.add(limit)
			offset_param = params.add(offset)
			rows = await conn.fetch(
				f"""
				SELECT c.*, {distance_sql} AS distance_m
				FROM communities c
				WHERE {where_clause}
				ORDER BY {order_by}
				LIMIT {limit_param} OFFSET {offset_param}
				""",
				*params.values,
			)
		items = [
			(
				models.Community.model_validate(dict(row)),
				float(row["distance_m"]) if row["distance_m"] is not None else None,
			)
			for row in rows
		]
		return items, int(total or 0)

	async def set_community_status(self, community_id: str, status: str) -> models.Community | None:
		record = await self._fetchrow(
			"""
			UPDATE communities SET status=$2, updated_at=NOW()
			WHERE community_id=$1
			RETURNING *
			""",
			community_id,
			status,
		)
		return models.Community.model_validate(dict(record)) if record else None

	async def adjust_member_count(
		self,
		community_id: str,
		delta: int,
		*,
		conn: asyncpg.Connection | None = None,
	) -> tuple[int, bool] | None:
		"""Atomically add delta to member_count, flooring at zero.

		Returns the stored count and whether the floor was applied, or None when
		the community does not exist.
		"""
		record = await self._fetchrow(
			"""
			WITH prev AS (
				SELECT member_count FROM communities WHERE community_id=$1 FOR UPDATE
			)
			UPDATE communities c
			SET member_count = GREATEST(c.member_count + $2, 0), updated_at = NOW()
			FROM prev
			WHERE c.community_id = $1
			RETURNING c.member_count, (prev.member_count + $2) < 0 AS clamped
			""",
			community_id,
			delta,
			conn=conn,
		)
		if record is None:
			return None
		return int(record["member_count"]), bool(record["clamped"])

	async def reconcile_member_counts(self) -> list[tuple[str, int, int]]:
		rows = await self._fetch(
			"""
			WITH actual AS (
				SELECT c.community_id, c.member_count AS previous,
					COUNT(m.id) FILTER (WHERE m.status = 'active') AS counted
				FROM communities c
				LEFT JOIN community_memberships m ON m.community_id = c.community_id
				GROUP BY c.community_id, c.member_count
			)
			UPDATE communities c
			SET member_count = a.counted, updated_at = NOW()
			FROM actual a
			WHERE c.community_id = a.community_id AND c.member_count <> a.counted
			RETURNING c.community_id, a.previous, a.counted
			""",
		)
		return [(row["community_id"], int(row["previous"]), int(row["counted"])) for row in rows]

	# --- Membership operations --------------------------------------------

	async def insert_membership(
		self,
		*,
		membership_id: str,
		community_id: str,
		user_id: str,
		role: str,
		status: str,
		approved_by: str | None = None,
		conn: asyncpg.Connection | None = None,
	) -> models.Membership:
		try:
			record = await self._fetchrow(
				"""
				INSERT INTO community_memberships (membership_id, community_id, user_id, role, status,
					joined_at, approved_by, approved_at)
				VALUES ($1, $2, $3, $4, $5, NOW(), $6::text, CASE WHEN $6::text IS NULL THEN NULL ELSE NOW() END)
				RETURNING *
				""",
				membership_id,
				community_id,
				user_id,
				role,
				status,
				approved_by,
				conn=conn,
			)
		except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
			raise AlreadyMemberError() from exc
		return models.Membership.model_validate(dict(record))

	async def get_membership(self, community_id: str, user_id: str) -> models.Membership | None:
		record = await self._fetchrow(
			"SELECT * FROM community_memberships WHERE community_id=$1 AND user_id=$2",
			community_id,
			user_id,
		)
		return models.Membership.model_validate(dict(record)) if record else None

	async def get_membership_by_id(self, membership_id: str) -> models.Membership | None:
		record = await self._fetchrow(
			"SELECT * FROM community_memberships WHERE membership_id=$1",
			membership_id,
		)
		return models.Membership.model_validate(dict(record)) if record else None

	async def list_memberships(self, community_id: str, *, status: str) -> list[models.Membership]:
		rows = await self._fetch(
			"""
			SELECT * FROM community_memberships
			WHERE community_id=$1 AND status=$2
			ORDER BY joined_at DESC
			""",
			community_id,
			status,
		)
		return [models.Membership.model_validate(dict(row)) for row in rows]

	async def list_user_memberships(self, user_id: str, *, status: str) -> list[models.Membership]:
		rows = await self._fetch(
			"""
			SELECT * FROM community_memberships
			WHERE user_id=$1 AND status=$2
			ORDER BY joined_at DESC
			""",
			user_id,
			status,
		)
		return [models.Membership.model_validate(dict(row)) for row in rows]

	async def memberships_for_user(self, user_id: str, community_ids: Sequence[str]) -> dict[str, models.Membership]:
		if not community_ids:
			return {}
		rows = await self._fetch(
			"""
			SELECT * FROM community_memberships
			WHERE user_id=$1 AND community_id = ANY($2::text[])
			""",
			user_id,
			list(community_ids),
		)
		return {row["community_id"]: models.Membership.model_validate(dict(row)) for row in rows}

	async def activate_membership(
		self,
		membership_id: str,
		*,
		approved_by: str,
		conn: asyncpg.Connection | None = None,
	) -> models.Membership | None:
		record = await self._fetchrow(
			"""
			UPDATE community_memberships
			SET status='active', approved_by=$2, approved_at=NOW()
			WHERE membership_id=$1 AND status='pending'
			RETURNING *
			""",
			membership_id,
			approved_by,
			conn=conn,
		)
		return models.Membership.model_validate(dict(record)) if record else None

	async def delete_membership(
		self,
		membership_id: str,
		*,
		status: str | None = None,
		conn: asyncpg.Connection | None = None,
	) -> models.Membership | None:
		if status is None:
			record = await self._fetchrow(
				"DELETE FROM community_memberships WHERE membership_id=$1 RETURNING *",
				membership_id,
				conn=conn,
			)
		else:
			record = await self._fetchrow(
				"DELETE FROM community_memberships WHERE membership_id=$1 AND status=$2 RETURNING *",
				membership_id,
				status,
				conn=conn,
			)
		return models.Membership.model_validate(dict(record)) if record else None

	async def update_membership_role(self, membership_id: str, role: str) -> models.Membership | None:
		record = await self._fetchrow(
			"""
			UPDATE community_memberships SET role=$2
			WHERE membership_id=$1
			RETURNING *
			""",
			membership_id,
			role,
		)
		return models.Membership.model_validate(dict(record)) if record else None
