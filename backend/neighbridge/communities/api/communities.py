"""Community creation, discovery and administration endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from neighbridge.communities.api._errors import to_http_error
from neighbridge.communities.domain.exceptions import CommunityError
from neighbridge.communities.domain.services import CommunitiesService
from neighbridge.communities.schemas import dto
from neighbridge.infra.auth import AuthenticatedUser, get_current_user

COMMUNITY_ID_PATTERN = r"^comm_[0-9a-f-]{36}$"

router = APIRouter(tags=["communities"])
_service = CommunitiesService()


@router.post("/communities", response_model=dto.CommunityCreateResponse, status_code=201)
async def create_community_endpoint(
	payload: dto.CommunityCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CommunityCreateResponse:
	try:
		return await _service.create_community(auth_user, payload)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.get("/communities", response_model=dto.CommunityListResponse)
async def list_communities_endpoint(
	lat: Optional[float] = Query(default=None, allow_inf_nan=False),
	lng: Optional[float] = Query(default=None, allow_inf_nan=False),
	max_distance: int = Query(default=50000, ge=100, le=100000),
	search: Optional[str] = Query(default=None, max_length=100),
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=20, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CommunityListResponse:
	try:
		return await _service.list_communities(
			auth_user,
			search=search,
			latitude=lat,
			longitude=lng,
			max_distance_m=max_distance,
			page=page,
			limit=limit,
		)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.get("/communities/nearby", response_model=dto.NearbyCommunitiesResponse)
async def nearby_communities_endpoint(
	max_distance: Optional[int] = Query(default=None, ge=100, le=100000),
	limit: Optional[int] = Query(default=None, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.NearbyCommunitiesResponse:
	try:
		return await _service.discover_nearby(auth_user, max_distance_m=max_distance, limit=limit)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.get("/communities/mine", response_model=dto.MyCommunitiesResponse)
async def my_communities_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.MyCommunitiesResponse:
	try:
		return await _service.my_communities(auth_user)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.get("/communities/{community_id}", response_model=dto.CommunityDetailResponse)
async def get_community_endpoint(
	community_id: str = Path(..., pattern=COMMUNITY_ID_PATTERN),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CommunityDetailResponse:
	try:
		return await _service.get_community(auth_user, community_id)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


@router.post("/communities/{community_id}/status", response_model=dto.CommunityResponse)
async def set_community_status_endpoint(
	payload: dto.CommunityStatusRequest,
	community_id: str = Path(..., pattern=COMMUNITY_ID_PATTERN),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CommunityResponse:
	try:
		return await _service.set_status(auth_user, community_id, payload)
	except CommunityError as exc:
		raise to_http_error(exc) from exc


__all__ = ["router", "COMMUNITY_ID_PATTERN"]
