"""Membership ledger: join requests, approvals, departures and roles."""

from __future__ import annotations

import logging
from typing import Sequence
from uuid import uuid4

import asyncpg

from neighbridge.communities.domain import models, policies, repo as repo_module
from neighbridge.communities.domain.exceptions import (
	AlreadyMemberError,
	ConflictError,
	NotAMemberError,
	NotFoundError,
	OutOfRangeError,
)
from neighbridge.communities.domain.registry import CommunityRegistry
from neighbridge.domain import geo
from neighbridge.domain.locations.models import ResolvedLocation
from neighbridge.obs import metrics as obs_metrics
from neighbridge.settings import settings

logger = logging.getLogger(__name__)

PENDING_MESSAGE = "Your membership request is pending approval from the community admin"
ACTIVE_MESSAGE = "You are already a member of this community"


def new_membership_id() -> str:
	return f"memb_{uuid4()}"


class MembershipLedger:
	"""Records who belongs to which community and in which role.

	Every transition that changes the number of active memberships goes
	through `CommunityRegistry.adjust_member_count` inside the same
	transaction as the membership write.
	"""

	def __init__(
		self,
		*,
		repository: repo_module.CommunitiesRepository | None = None,
		registry: CommunityRegistry | None = None,
	) -> None:
		self.repo = repository or repo_module.CommunitiesRepository()
		self.registry = registry or CommunityRegistry(repository=self.repo)

	async def enroll_creator(self, community: models.Community, *, conn: asyncpg.Connection | None = None) -> models.Membership:
		# member_count starts at 1 on insert, so no counter adjustment here.
		membership = await self.repo.insert_membership(
			membership_id=new_membership_id(),
			community_id=community.community_id,
			user_id=community.created_by,
			role=models.ROLE_COMMUNITY_ADMIN,
			status=models.STATUS_ACTIVE,
			approved_by=community.created_by,
			conn=conn,
		)
		obs_metrics.membership_transition("creator_enrolled")
		return membership

	async def request_membership(
		self,
		user_id: str,
		community: models.Community,
		resolved: ResolvedLocation,
	) -> models.Membership:
		existing = await self.repo.get_membership(community.community_id, user_id)
		if existing is not None:
			raise AlreadyMemberError(
				message=PENDING_MESSAGE if existing.status == models.STATUS_PENDING else ACTIVE_MESSAGE,
				membership_status=existing.status,
			)
		distance = geo.distance_meters(resolved.coordinate, community.center)
		if distance > community.radius_m:
			raise OutOfRangeError(
				distance_m=round(distance),
				max_distance_m=community.radius_m,
				is_fallback_location=resolved.is_fallback,
			)
		if settings.membership_auto_approve:
			async with self.repo.transaction() as conn:
				membership = await self.repo.insert_membership(
					membership_id=new_membership_id(),
					community_id=community.community_id,
					user_id=user_id,
					role=models.ROLE_MEMBER,
					status=models.STATUS_ACTIVE,
					conn=conn,
				)
				await self.registry.adjust_member_count(community.community_id, 1, conn=conn)
			obs_metrics.membership_transition("joined")
			logger.info("membership_joined", extra={"community_id": community.community_id})
			return membership
		membership = await self.repo.insert_membership(
			membership_id=new_membership_id(),
			community_id=community.community_id,
			user_id=user_id,
			role=models.ROLE_MEMBER,
			status=models.STATUS_PENDING,
		)
		obs_metrics.membership_transition("requested")
		logger.info(
			"membership_requested",
			extra={"community_id": community.community_id, "membership_id": membership.membership_id},
		)
		return membership

	async def _authorize_admin(self, community: models.Community, actor_id: str) -> models.Membership:
		actor = await self.repo.get_membership(community.community_id, actor_id)
		return policies.assert_can_admin(actor)

	async def _pending_request(self, community: models.Community, membership_id: str) -> models.Membership:
		membership = await self.repo.get_membership_by_id(membership_id)
		if membership is None or membership.community_id != community.community_id:
			raise NotFoundError("membership_not_found", message="Membership request not found")
		if membership.status != models.STATUS_PENDING:
			raise ConflictError("membership_not_pending", message="This request has already been handled")
		return membership

	async def approve(self, membership_id: str, approver_id: str, community: models.Community) -> models.Membership:
		await self._authorize_admin(community, approver_id)
		await self._pending_request(community, membership_id)
		async with self.repo.transaction() as conn:
			approved = await self.repo.activate_membership(membership_id, approved_by=approver_id, conn=conn)
			if approved is None:
				raise ConflictError("membership_not_pending", message="This request has already been handled")
			await self.registry.adjust_member_count(community.community_id, 1, conn=conn)
		obs_metrics.membership_transition("approved")
		logger.info(
			"membership_approved",
			extra={"community_id": community.community_id, "membership_id": membership_id},
		)
		return approved

	async def reject(self, membership_id: str, approver_id: str, community: models.Community) -> models.Membership:
		await self._authorize_admin(community, approver_id)
		await self._pending_request(community, membership_id)
		rejected = await self.repo.delete_membership(membership_id, status=models.STATUS_PENDING)
		if rejected is None:
			raise ConflictError("membership_not_pending", message="This request has already been handled")
		obs_metrics.membership_transition("rejected")
		logger.info(
			"membership_rejected",
			extra={"community_id": community.community_id, "membership_id": membership_id},
		)
		return rejected

	async def leave(
		self,
		user_id: str,
		community: models.Community,
		*,
		membership: models.Membership | None = None,
	) -> models.Membership:
		"""Delete the caller's membership; a pending one is simply withdrawn."""
		if membership is None:
			membership = await self.repo.get_membership(community.community_id, user_id)
		if membership is None:
			raise NotAMemberError()
		policies.assert_can_leave(community, membership)
		async with self.repo.transaction() as conn:
			removed = await self.repo.delete_membership(membership.membership_id, conn=conn)
			if removed is None:
				raise NotAMemberError()
			if removed.is_active:
				await self.registry.adjust_member_count(community.community_id, -1, conn=conn)
		transition = "left" if removed.is_active else "withdrawn"
		obs_metrics.membership_transition(transition)
		logger.info(
			"membership_left",
			extra={"community_id": community.community_id, "previous_status": removed.status},
		)
		return removed

	async def role_of(self, user_id: str, community_id: str) -> models.RoleInfo:
		membership = await self.repo.get_membership(community_id, user_id)
		if membership is None:
			return models.RoleInfo(is_member=False)
		return models.RoleInfo(
			is_member=membership.is_active,
			role=membership.role,
			status=membership.status,
			joined_at=membership.joined_at,
			membership_id=membership.membership_id,
		)

	async def pending_requests(self, community: models.Community, caller_id: str) -> list[models.Membership]:
		await self._authorize_admin(community, caller_id)
		return await self.repo.list_memberships(community.community_id, status=models.STATUS_PENDING)

	async def set_role(
		self,
		community: models.Community,
		actor_id: str,
		target_user_id: str,
		role: str,
	) -> models.Membership:
		await self._authorize_admin(community, actor_id)
		target = await self.repo.get_membership(community.community_id, target_user_id)
		if target is None:
			raise NotFoundError("member_not_found", message="Member not found")
		policies.ensure_role_change(community, target, role)
		if target.role == role:
			return target
		updated = await self.repo.update_membership_role(target.membership_id, role)
		if updated is None:
			raise NotFoundError("member_not_found", message="Member not found")
		obs_metrics.membership_transition("role_changed")
		logger.info(
			"membership_role_changed",
			extra={"community_id": community.community_id, "membership_id": updated.membership_id, "role": role},
		)
		return updated

	async def statuses_for(self, user_id: str, community_ids: Sequence[str]) -> dict[str, models.Membership]:
		return await self.repo.memberships_for_user(user_id, community_ids)

	async def active_for_user(self, user_id: str) -> list[models.Membership]:
		return await self.repo.list_user_memberships(user_id, status=models.STATUS_ACTIVE)
