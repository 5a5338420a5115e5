"""User location endpoints: own location and nearby users."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from neighbridge.communities.api._errors import to_http_error
from neighbridge.communities.domain.exceptions import CommunityError
from neighbridge.communities.schemas import dto
from neighbridge.domain.locations.models import AddressFields
from neighbridge.domain.locations.service import LocationDirectory
from neighbridge.infra.auth import AuthenticatedUser, get_current_user
from neighbridge.settings import settings

router = APIRouter(prefix="/users", tags=["locations"])
_directory = LocationDirectory()


@router.get("/me/location", response_model=dto.LocationResponse)
async def get_my_location_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.LocationResponse:
	location = await _directory.get_location(auth_user.id)
	if location is None:
		return dto.LocationResponse(is_set=False)
	return dto.LocationResponse(
		latitude=location.latitude,
		longitude=location.longitude,
		address=location.address,
		city=location.city,
		state=location.state,
		country=location.country,
		updated_at=location.updated_at,
		is_set=True,
	)


@router.put("/me/location", response_model=dto.LocationResponse)
async def update_my_location_endpoint(
	payload: dto.LocationUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.LocationResponse:
	fields = AddressFields(address=payload.address, city=payload.city, state=payload.state, country=payload.country)
	try:
		location = await _directory.update_location(auth_user.id, payload.latitude, payload.longitude, fields)
	except CommunityError as exc:
		raise to_http_error(exc) from exc
	return dto.LocationResponse(
		latitude=location.latitude,
		longitude=location.longitude,
		address=location.address,
		city=location.city,
		state=location.state,
		country=location.country,
		updated_at=location.updated_at,
		is_set=True,
	)


@router.get("/nearby", response_model=dto.NearbyUsersResponse)
async def nearby_users_endpoint(
	radius_km: Optional[float] = Query(default=None, gt=0, le=100, allow_inf_nan=False),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.NearbyUsersResponse:
	radius = settings.nearby_users_radius_km if radius_km is None else radius_km
	try:
		users = await _directory.find_nearby_users(auth_user.id, radius_km=radius)
	except CommunityError as exc:
		raise to_http_error(exc) from exc
	return dto.NearbyUsersResponse(
		items=[
			dto.NearbyUserResponse(
				user_id=user.user_id,
				distance_m=user.distance_m,
				city=user.city,
				state=user.state,
				country=user.country,
			)
			for user in users
		],
		radius_km=radius,
	)


__all__ = ["router"]
