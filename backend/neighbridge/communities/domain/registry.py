"""Community registry: creation, lookup, proximity discovery and the member counter."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

import asyncpg

from neighbridge.communities.domain import models, repo as repo_module
from neighbridge.communities.domain.exceptions import DuplicateNearbyNameError, NotFoundError
from neighbridge.domain import geo
from neighbridge.obs import metrics as obs_metrics
from neighbridge.settings import settings

logger = logging.getLogger(__name__)


def new_community_id() -> str:
	return f"comm_{uuid4()}"


class CommunityRegistry:
	"""Owns community records and is the only writer of `member_count`."""

	def __init__(self, *, repository: repo_module.CommunitiesRepository | None = None) -> None:
		self.repo = repository or repo_module.CommunitiesRepository()

	async def ensure_unique_nearby_name(self, draft: models.CommunityDraft) -> None:
		existing = await self.repo.find_active_named_near(
			name=draft.name,
			center=draft.center,
			within_m=settings.duplicate_name_radius_m,
		)
		if existing is not None:
			raise DuplicateNearbyNameError(existing_community_id=existing.community_id)

	async def create(
		self,
		draft: models.CommunityDraft,
		*,
		created_by: str,
		place_label: Optional[str] = None,
		address: Optional[str] = None,
		conn: asyncpg.Connection | None = None,
	) -> models.Community:
		"""Persist an active community whose counter already includes its creator."""
		community = await self.repo.insert_community(
			community_id=new_community_id(),
			name=draft.name,
			description=draft.description,
			created_by=created_by,
			center=draft.center,
			radius_m=draft.radius_m,
			place_label=place_label,
			address=address,
			conn=conn,
		)
		obs_metrics.COMMUNITIES_CREATED.inc()
		logger.info(
			"community_created",
			extra={"community_id": community.community_id, "radius_m": community.radius_m},
		)
		return community

	async def get(self, community_id: str, *, include_suspended: bool = False) -> models.Community:
		community = await self.repo.get_community(community_id)
		if community is None or (not include_suspended and not community.is_active):
			raise NotFoundError("community_not_found", message="Community not found")
		return community

	async def find_nearby(
		self,
		origin: geo.Coordinate,
		*,
		max_distance_m: float | None = None,
		limit: int | None = None,
	) -> tuple[list[models.NearbyCommunity], bool]:
		"""Active communities nearest first; the flag reports the fallback listing.

		When nothing lies within `max_distance_m` and `discovery_fallback_to_all`
		is set, every active community is returned (bounded by `limit`) with a
		distance of 0 and `can_join` set.
		"""
		max_distance_m = settings.discovery_max_distance_m if max_distance_m is None else max_distance_m
		limit = limit or settings.discovery_limit
		rows = await self.repo.list_nearby(origin=origin, max_distance_m=max_distance_m, limit=limit)
		if rows or not settings.discovery_fallback_to_all:
			obs_metrics.nearby_query("communities")
			return [
				models.NearbyCommunity(
					community=community,
					distance_m=distance,
					can_join=distance <= community.radius_m,
				)
				for community, distance in rows
			], False
		communities = await self.repo.list_active(limit=limit)
		obs_metrics.nearby_query("communities", fallback=True)
		logger.info("discovery_fallback_listing", extra={"count": len(communities)})
		return [
			models.NearbyCommunity(community=community, distance_m=0.0, can_join=True)
			for community in communities
		], True

	async def find_by_name_or_location(
		self,
		*,
		text: str | None = None,
		origin: geo.Coordinate | None = None,
		max_distance_m: float | None = None,
		page: int = 1,
		limit: int = 20,
	) -> models.CommunityPage:
		text = (text or "").strip() or None
		items, total = await self.repo.search_communities(
			text=text,
			origin=origin,
			max_distance_m=max_distance_m or settings.community_max_radius_m,
			limit=limit,
			offset=(page - 1) * limit,
		)
		return models.CommunityPage(items=items, total=total, page=page, limit=limit)

	async def list_by_ids(self, community_ids: list[str]) -> dict[str, models.Community]:
		communities = await self.repo.list_communities(community_ids)
		return {community.community_id: community for community in communities}

	async def adjust_member_count(
		self,
		community_id: str,
		delta: int,
		*,
		conn: asyncpg.Connection | None = None,
	) -> int:
		result = await self.repo.adjust_member_count(community_id, delta, conn=conn)
		if result is None:
			raise NotFoundError("community_not_found", message="Community not found")
		count, clamped = result
		if clamped:
			obs_metrics.MEMBER_COUNT_CLAMPS.inc()
			logger.warning(
				"member_count_clamped",
				extra={"community_id": community_id, "delta": delta, "member_count": count},
			)
		return count

	async def set_status(self, community_id: str, status: str) -> models.Community:
		community = await self.repo.set_community_status(community_id, status)
		if community is None:
			raise NotFoundError("community_not_found", message="Community not found")
		logger.info("community_status_changed", extra={"community_id": community_id, "status": status})
		return community
