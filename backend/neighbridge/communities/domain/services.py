"""Service layer orchestrating registry, ledger and location lookups."""

from __future__ import annotations

import logging
from typing import Any, Optional

from neighbridge.communities.domain import models, policies, repo as repo_module
from neighbridge.communities.domain.exceptions import NotAMemberError
from neighbridge.communities.domain.ledger import MembershipLedger
from neighbridge.communities.domain.registry import CommunityRegistry
from neighbridge.communities.schemas import dto
from neighbridge.domain import geo
from neighbridge.domain.locations.service import FALLBACK_MESSAGE, LocationDirectory
from neighbridge.infra.auth import AuthenticatedUser
from neighbridge.infra.geocoding import GeocodingUnavailable, NominatimGeocoder, ReverseGeocoder
from neighbridge.obs import metrics as obs_metrics
from neighbridge.settings import settings

logger = logging.getLogger(__name__)


def fallback_label(name: str, point: geo.Coordinate) -> str:
	return f"{name} ({point.latitude:.4f}, {point.longitude:.4f})"


class CommunitiesService:
	"""Entry point used by the HTTP routers."""

	def __init__(
		self,
		*,
		repository: repo_module.CommunitiesRepository | None = None,
		directory: LocationDirectory | None = None,
		geocoder: ReverseGeocoder | None = None,
	) -> None:
		self.repo = repository or repo_module.CommunitiesRepository()
		self.registry = CommunityRegistry(repository=self.repo)
		self.ledger = MembershipLedger(repository=self.repo, registry=self.registry)
		self.directory = directory or LocationDirectory()
		if geocoder is None and settings.geocoding_enabled:
			geocoder = NominatimGeocoder()
		self.geocoder = geocoder

	async def _describe(self, draft: models.CommunityDraft) -> tuple[str, Optional[str]]:
		"""Place label and address for a new community; never fails."""
		if self.geocoder is None:
			obs_metrics.GEOCODING_LOOKUPS.labels(result="disabled").inc()
			return fallback_label(draft.name, draft.center), None
		try:
			place = await self.geocoder.reverse(draft.center)
		except GeocodingUnavailable as exc:
			logger.warning("geocoding_degraded", extra={"error": str(exc)})
			return fallback_label(draft.name, draft.center), None
		if place is None:
			return fallback_label(draft.name, draft.center), None
		return place.location_name, place.address

	async def create_community(
		self,
		user: AuthenticatedUser,
		payload: dto.CommunityCreateRequest,
	) -> dto.CommunityCreateResponse:
		draft = policies.build_draft(
			name=payload.name,
			description=payload.description,
			latitude=payload.latitude,
			longitude=payload.longitude,
			radius_m=payload.radius_m,
		)
		await self.registry.ensure_unique_nearby_name(draft)
		place_label, address = await self._describe(draft)
		async with self.repo.transaction() as conn:
			community = await self.registry.create(
				draft,
				created_by=user.id,
				place_label=place_label,
				address=address,
				conn=conn,
			)
			membership = await self.ledger.enroll_creator(community, conn=conn)
		return dto.CommunityCreateResponse(
			community=dto.CommunityResponse.from_domain(community, membership=membership),
			membership=dto.MembershipResponse.from_domain(membership),
		)

	async def discover_nearby(
		self,
		user: AuthenticatedUser,
		*,
		max_distance_m: float | None = None,
		limit: int | None = None,
	) -> dto.NearbyCommunitiesResponse:
		resolved = await self.directory.resolve_location(user.id)
		items, is_fallback_listing = await self.registry.find_nearby(
			resolved.coordinate,
			max_distance_m=max_distance_m,
			limit=limit,
		)
		memberships = await self.ledger.statuses_for(user.id, [item.community.community_id for item in items])
		return dto.NearbyCommunitiesResponse(
			items=[
				dto.CommunityResponse.from_domain(
					item.community,
					distance_m=item.distance_m,
					can_join=item.can_join,
					membership=memberships.get(item.community.community_id),
				)
				for item in items
			],
			origin=dto.CoordinateResponse(
				latitude=resolved.coordinate.latitude,
				longitude=resolved.coordinate.longitude,
			),
			is_fallback_location=resolved.is_fallback,
			is_fallback_listing=is_fallback_listing,
			message=FALLBACK_MESSAGE if resolved.is_fallback else None,
		)

	async def list_communities(
		self,
		user: AuthenticatedUser,
		*,
		search: str | None = None,
		latitude: Any = None,
		longitude: Any = None,
		max_distance_m: float | None = None,
		page: int = 1,
		limit: int = 20,
	) -> dto.CommunityListResponse:
		origin = None
		if latitude is not None or longitude is not None:
			origin = policies.ensure_coordinate(latitude, longitude)
		result = await self.registry.find_by_name_or_location(
			text=search,
			origin=origin,
			max_distance_m=max_distance_m,
			page=page,
			limit=limit,
		)
		memberships = await self.ledger.statuses_for(user.id, [community.community_id for community, _ in result.items])
		return dto.CommunityListResponse(
			items=[
				dto.CommunityResponse.from_domain(
					community,
					distance_m=distance,
					can_join=distance <= community.radius_m if distance is not None else None,
					membership=memberships.get(community.community_id),
				)
				for community, distance in result.items
			],
			pagination=dto.PaginationResponse(
				current=result.page,
				pages=result.pages,
				total=result.total,
				has_next=result.page < result.pages,
				has_prev=result.page > 1,
			),
		)

	async def my_communities(self, user: AuthenticatedUser) -> dto.MyCommunitiesResponse:
		memberships = await self.ledger.active_for_user(user.id)
		communities = await self.registry.list_by_ids([membership.community_id for membership in memberships])
		items = []
		for membership in memberships:
			community = communities.get(membership.community_id)
			if community is None or not community.is_active:
				continue
			items.append(
				dto.MyCommunityResponse(
					community=dto.CommunityResponse.from_domain(community, membership=membership),
					membership=dto.MembershipResponse.from_domain(membership),
				)
			)
		return dto.MyCommunitiesResponse(items=items)

	async def get_community(self, user: AuthenticatedUser, community_id: str) -> dto.CommunityDetailResponse:
		community = await self.registry.get(community_id, include_suspended=user.is_platform_admin)
		role = await self.ledger.role_of(user.id, community_id)
		return dto.CommunityDetailResponse(
			community=dto.CommunityResponse.from_domain(community),
			membership=_role_response(role),
		)

	async def membership(self, user: AuthenticatedUser, community_id: str) -> dto.RoleInfoResponse:
		await self.registry.get(community_id, include_suspended=True)
		return _role_response(await self.ledger.role_of(user.id, community_id))

	async def join(self, user: AuthenticatedUser, community_id: str) -> dto.JoinResponse:
		community = await self.registry.get(community_id)
		resolved = await self.directory.resolve_location(user.id)
		membership = await self.ledger.request_membership(user.id, community, resolved)
		if membership.is_active:
			message = "You have joined the community"
		else:
			message = "Join request submitted. Waiting for admin approval."
		return dto.JoinResponse(membership=dto.MembershipResponse.from_domain(membership), message=message)

	async def leave(self, user: AuthenticatedUser, community_id: str) -> dto.LeaveResponse:
		"""Owner protection is checked here, before the ledger removes anything."""
		community = await self.registry.get(community_id, include_suspended=True)
		membership = await self.repo.get_membership(community_id, user.id)
		if membership is None:
			raise NotAMemberError()
		policies.assert_can_leave(community, membership)
		removed = await self.ledger.leave(user.id, community, membership=membership)
		refreshed = await self.registry.get(community_id, include_suspended=True)
		return dto.LeaveResponse(
			community_id=community_id,
			previous_status=removed.status,
			member_count=refreshed.member_count,
		)

	async def pending_requests(self, user: AuthenticatedUser, community_id: str) -> dto.PendingRequestsResponse:
		community = await self.registry.get(community_id, include_suspended=True)
		requests = await self.ledger.pending_requests(community, user.id)
		return dto.PendingRequestsResponse(items=[dto.MembershipResponse.from_domain(item) for item in requests])

	async def review(
		self,
		user: AuthenticatedUser,
		community_id: str,
		membership_id: str,
		payload: dto.ReviewRequest,
	) -> dto.ReviewResponse:
		community = await self.registry.get(community_id, include_suspended=True)
		if payload.action == "approve":
			membership = await self.ledger.approve(membership_id, user.id, community)
			status = membership.status
		else:
			await self.ledger.reject(membership_id, user.id, community)
			status = "rejected"
		refreshed = await self.registry.get(community_id, include_suspended=True)
		return dto.ReviewResponse(
			membership_id=membership_id,
			action=payload.action,
			status=status,
			member_count=refreshed.member_count,
		)

	async def set_role(
		self,
		user: AuthenticatedUser,
		community_id: str,
		target_user_id: str,
		payload: dto.RoleAssignmentRequest,
	) -> dto.MembershipResponse:
		community = await self.registry.get(community_id)
		updated = await self.ledger.set_role(community, user.id, target_user_id, payload.role)
		return dto.MembershipResponse.from_domain(updated)

	async def set_status(
		self,
		user: AuthenticatedUser,
		community_id: str,
		payload: dto.CommunityStatusRequest,
	) -> dto.CommunityResponse:
		policies.assert_platform_admin(user.is_platform_admin)
		policies.ensure_status_valid(payload.status)
		await self.registry.get(community_id, include_suspended=True)
		community = await self.registry.set_status(community_id, payload.status)
		return dto.CommunityResponse.from_domain(community)


def _role_response(role: models.RoleInfo) -> dto.RoleInfoResponse:
	return dto.RoleInfoResponse(
		is_member=role.is_member,
		role=role.role,
		status=role.status,
		joined_at=role.joined_at,
		membership_id=role.membership_id,
	)
