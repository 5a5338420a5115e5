"""Domain models for communities and memberships."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

from neighbridge.domain.geo import Coordinate

CommunityStatus = Literal["active", "suspended"]
MembershipRole = Literal["member", "communityAdmin"]
MembershipStatus = Literal["pending", "active", "suspended"]

ROLE_MEMBER = "member"
ROLE_COMMUNITY_ADMIN = "communityAdmin"
STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_SUSPENDED = "suspended"


class Community(BaseModel):
	"""A named, geofenced group defined by a center and a radius."""

	community_id: str
	name: str
	description: Optional[str] = None
	created_by: str
	center_lat: float
	center_lng: float
	radius_m: int
	status: CommunityStatus
	member_count: int
	place_label: Optional[str] = None
	address: Optional[str] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def center(self) -> Coordinate:
		return Coordinate(latitude=self.center_lat, longitude=self.center_lng)

	@property
	def is_active(self) -> bool:
		return self.status == "active"


class Membership(BaseModel):
	"""A user's participation state and role within a community."""

	membership_id: str
	community_id: str
	user_id: str
	role: MembershipRole
	status: MembershipStatus
	joined_at: datetime
	approved_by: Optional[str] = None
	approved_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)

	@property
	def is_active(self) -> bool:
		return self.status == STATUS_ACTIVE

	@property
	def is_active_admin(self) -> bool:
		return self.is_active and self.role == ROLE_COMMUNITY_ADMIN


@dataclass(frozen=True, slots=True)
class CommunityDraft:
	"""Validated input for a new community."""

	name: str
	description: Optional[str]
	center: Coordinate
	radius_m: int


@dataclass(slots=True)
class NearbyCommunity:
	community: Community
	distance_m: float
	can_join: bool


@dataclass(slots=True)
class CommunityPage:
	items: list[tuple[Community, Optional[float]]]
	total: int
	page: int
	limit: int

	@property
	def pages(self) -> int:
		return (self.total + self.limit - 1) // self.limit if self.limit else 0


@dataclass(frozen=True, slots=True)
class RoleInfo:
	is_member: bool
	role: Optional[str] = None
	status: Optional[str] = None
	joined_at: Optional[datetime] = None
	membership_id: Optional[str] = None
