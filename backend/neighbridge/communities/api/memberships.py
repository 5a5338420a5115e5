"""Join, leave and membership moderation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from neighbridge.communities.api._errors import to_http_error
from neighbridge.communities.api.communities import COMMUNITY_ID_PATTERN
from neighbridge.communities.domain.exceptions import CommunityError
from neighbridge.communities.domain.services import CommunitiesService
from neighbridge.communities.schemas import dto
from neighbridge.infra.auth import AuthenticatedUser, get_current_user

MEMBERSHIP_ID_PATTERN = r"^memb_[0-9a-f-]{36}$"

router = APIRouter(tags=["communities:memberships"])
_service = CommunitiesService()


@router.post("/communities/{community_id}/join", response_model=dto.JoinResponse, status_code=201)
async def join_community_endpoint(
	community_id: str = Path(..., pattern=COMMUNITY_ID_PATTERN),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.JoinResponse:
	try:
		return await _service.join(auth_user, community_id)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.delete("/communities/{community_id}/leave", response_model=dto.LeaveResponse)
async def leave_community_endpoint(
	community_id: str = Path(..., pattern=COMMUNITY_ID_PATTERN),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.LeaveResponse:
	try:
		return await _service.leave(auth_user, community_id)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.get("/communities/{community_id}/membership", response_model=dto.RoleInfoResponse)
async def membership_endpoint(
	community_id: str = Path(..., pattern=COMMUNITY_ID_PATTERN),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.RoleInfoResponse:
	try:
		return await _service.membership(auth_user, community_id)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.get("/communities/{community_id}/requests", response_model=dto.PendingRequestsResponse)
async def pending_requests_endpoint(
	community_id: str = Path(..., pattern=COMMUNITY_ID_PATTERN),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.PendingRequestsResponse:
	try:
		return await _service.pending_requests(auth_user, community_id)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.post("/communities/{community_id}/requests/{membership_id}/review", response_model=dto.ReviewResponse)
async def review_request_endpoint(
	payload: dto.ReviewRequest,
	community_id: str = Path(..., pattern=COMMUNITY_ID_PATTERN),
	membership_id: str = Path(..., pattern=MEMBERSHIP_ID_PATTERN),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.ReviewResponse:
	try:
		return await _service.review(auth_user, community_id, membership_id, payload)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.put("/communities/{community_id}/members/{user_id}/role", response_model=dto.MembershipResponse)
async def assign_role_endpoint(
	payload: dto.RoleAssignmentRequest,
	community_id: str = Path(..., pattern=COMMUNITY_ID_PATTERN),
	user_id: str = Path(..., min_length=1, max_length=128),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.MembershipResponse:
	try:
		return await _service.set_role(auth_user, community_id, user_id, payload)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


__all__ = ["router"]
