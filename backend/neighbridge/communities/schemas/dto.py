"""Pydantic schemas for communities API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from neighbridge.communities.domain import models


class CommunityCreateRequest(BaseModel):
	name: str = Field(..., min_length=3, max_length=100)
	description: Optional[str] = Field(default=None, max_length=500)
	latitude: float = Field(..., allow_inf_nan=False)
	longitude: float = Field(..., allow_inf_nan=False)
	radius_m: int = Field(default=1000)


class CommunityResponse(BaseModel):
	community_id: str
	name: str
	description: Optional[str] = None
	created_by: str
	latitude: float
	longitude: float
	radius_m: int
	status: str
	member_count: int
	place_label: Optional[str] = None
	address: Optional[str] = None
	created_at: datetime
	updated_at: datetime
	distance_from_user: Optional[int] = None
	can_join: Optional[bool] = None
	user_role: Optional[str] = None
	membership_status: Optional[str] = None

	@classmethod
	def from_domain(
		cls,
		community: models.Community,
		*,
		distance_m: float | None = None,
		can_join: bool | None = None,
		membership: models.Membership | None = None,
	) -> "CommunityResponse":
		return cls(
			community_id=community.community_id,
			name=community.name,
			description=community.description,
			created_by=community.created_by,
			latitude=community.center_lat,
			longitude=community.center_lng,
			radius_m=community.radius_m,
			status=community.status,
			member_count=community.member_count,
			place_label=community.place_label,
			address=community.address,
			created_at=community.created_at,
			updated_at=community.updated_at,
			distance_from_user=round(distance_m) if distance_m is not None else None,
			can_join=can_join,
			user_role=membership.role if membership else None,
			membership_status=membership.status if membership else None,
		)


class MembershipResponse(BaseModel):
	membership_id: str
	community_id: str
	user_id: str
	role: str
	status: str
	joined_at: datetime
	approved_by: Optional[str] = None
	approved_at: Optional[datetime] = None

	@classmethod
	def from_domain(cls, membership: models.Membership) -> "MembershipResponse":
		return cls(**membership.model_dump())


class CommunityCreateResponse(BaseModel):
	community: CommunityResponse
	membership: MembershipResponse


class CoordinateResponse(BaseModel):
	latitude: float
	longitude: float


class NearbyCommunitiesResponse(BaseModel):
	items: List[CommunityResponse]
	origin: CoordinateResponse
	is_fallback_location: bool
	is_fallback_listing: bool
	message: Optional[str] = None


class PaginationResponse(BaseModel):
	current: int
	pages: int
	total: int
	has_next: bool
	has_prev: bool


class CommunityListResponse(BaseModel):
	items: List[CommunityResponse]
	pagination: PaginationResponse


class MyCommunityResponse(BaseModel):
	community: CommunityResponse
	membership: MembershipResponse


class MyCommunitiesResponse(BaseModel):
	items: List[MyCommunityResponse]


class RoleInfoResponse(BaseModel):
	is_member: bool
	role: Optional[str] = None
	status: Optional[str] = None
	joined_at: Optional[datetime] = None
	membership_id: Optional[str] = None


class CommunityDetailResponse(BaseModel):
	community: CommunityResponse
	membership: RoleInfoResponse


class JoinResponse(BaseModel):
	membership: MembershipResponse
	message: str


class LeaveResponse(BaseModel):
	community_id: str
	previous_status: str
	member_count: int


class PendingRequestsResponse(BaseModel):
	items: List[MembershipResponse]


class ReviewRequest(BaseModel):
	action: str = Field(..., pattern="^(approve|reject)$")


class ReviewResponse(BaseModel):
	membership_id: str
	action: str
	status: str
	member_count: int


class RoleAssignmentRequest(BaseModel):
	role: str = Field(..., pattern="^(member|communityAdmin)$")


class CommunityStatusRequest(BaseModel):
	status: str = Field(..., pattern="^(active|suspended)$")


class LocationUpdateRequest(BaseModel):
	latitude: float = Field(..., allow_inf_nan=False)
	longitude: float = Field(..., allow_inf_nan=False)
	address: Optional[str] = Field(default=None, max_length=500)
	city: Optional[str] = Field(default=None, max_length=120)
	state: Optional[str] = Field(default=None, max_length=120)
	country: Optional[str] = Field(default=None, max_length=120)


class LocationResponse(BaseModel):
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	address: Optional[str] = None
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None
	updated_at: Optional[datetime] = None
	is_set: bool


class NearbyUserResponse(BaseModel):
	user_id: str
	distance_m: int
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None


class NearbyUsersResponse(BaseModel):
	items: List[NearbyUserResponse]
	radius_km: float
