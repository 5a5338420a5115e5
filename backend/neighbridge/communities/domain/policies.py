"""Validation and authorization policies for communities operations."""

from __future__ import annotations

from typing import Any, Optional

from neighbridge.communities.domain import models
from neighbridge.communities.domain.exceptions import (
	ForbiddenError,
	InvalidCoordinateError,
	OwnerCannotLeaveError,
	PolicyViolationError,
	ValidationError,
)
from neighbridge.domain import geo
from neighbridge.settings import settings

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
VALID_ROLES = {models.ROLE_MEMBER, models.ROLE_COMMUNITY_ADMIN}
VALID_COMMUNITY_STATUSES = {"active", "suspended"}


def ensure_coordinate(latitude: Any, longitude: Any) -> geo.Coordinate:
	try:
		return geo.coordinate(latitude, longitude)
	except geo.InvalidCoordinate as exc:
		raise InvalidCoordinateError() from exc


def ensure_name(name: str | None) -> str:
	cleaned = (name or "").strip()
	if not NAME_MIN_LENGTH <= len(cleaned) <= NAME_MAX_LENGTH:
		raise ValidationError(
			"invalid_name",
			message=f"Community name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters",
		)
	return cleaned


def ensure_description(description: str | None) -> Optional[str]:
	if description is None:
		return None
	cleaned = description.strip()
	if len(cleaned) > DESCRIPTION_MAX_LENGTH:
		raise ValidationError(
			"invalid_description",
			message=f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters",
		)
	return cleaned or None


def ensure_radius(radius_m: Any) -> int:
	low, high = settings.community_min_radius_m, settings.community_max_radius_m
	if isinstance(radius_m, bool) or not isinstance(radius_m, (int, float)) or not low <= radius_m <= high:
		raise ValidationError("invalid_radius", message=f"Radius must be between {low}m and {high}m")
	if int(radius_m) != radius_m:
		raise ValidationError("invalid_radius", message="Radius must be a whole number of meters")
	return int(radius_m)


def build_draft(
	*,
	name: str | None,
	description: str | None,
	latitude: Any,
	longitude: Any,
	radius_m: Any,
) -> models.CommunityDraft:
	"""Validate raw creation input; raises before anything touches storage."""
	return models.CommunityDraft(
		name=ensure_name(name),
		description=ensure_description(description),
		center=ensure_coordinate(latitude, longitude),
		radius_m=ensure_radius(radius_m),
	)


def assert_can_admin(membership: models.Membership | None) -> models.Membership:
	if membership is None or not membership.is_active_admin:
		raise ForbiddenError("admin_role_required", message="Only community admins can do this")
	return membership


def assert_can_leave(community: models.Community, membership: models.Membership) -> None:
	if membership.role == models.ROLE_COMMUNITY_ADMIN and community.created_by == membership.user_id:
		raise OwnerCannotLeaveError()


def ensure_role_valid(role: str) -> str:
	if role not in VALID_ROLES:
		raise ValidationError("invalid_role", message=f"Role must be one of {sorted(VALID_ROLES)}")
	return role


def ensure_role_change(community: models.Community, target: models.Membership, desired_role: str) -> None:
	ensure_role_valid(desired_role)
	if target.user_id == community.created_by:
		raise PolicyViolationError("creator_role_locked", message="The community creator's role cannot be changed")
	if not target.is_active:
		raise PolicyViolationError("membership_not_active", message="Only active members can change role")


def ensure_status_valid(status: str) -> str:
	if status not in VALID_COMMUNITY_STATUSES:
		raise ValidationError("invalid_status", message="Status must be active or suspended")
	return status


def assert_platform_admin(is_platform_admin: bool) -> None:
	if not is_platform_admin:
		raise ForbiddenError("platform_admin_required", message="Only platform admins can change community status")
