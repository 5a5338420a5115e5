"""Custom exceptions for communities services."""

from __future__ import annotations

from typing import Any

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class CommunityError(Exception):
	"""Base class for community related errors.

	`kind` is the stable error category, `detail` a stable machine code and
	`message` the human readable text shown to users.
	"""

	status_code: int = status.HTTP_400_BAD_REQUEST
	kind: str = "Error"
	detail: str = "community_error"
	message: str = "Community operation failed"

	def __init__(self, detail: str | None = None, *, message: str | None = None, **data: Any) -> None:
		if detail:
			self.detail = detail
		if message:
			self.message = message
		self.data: dict[str, Any] = data
		super().__init__(self.message)

	def to_payload(self) -> dict[str, Any]:
		return {"code": self.detail, "kind": self.kind, "message": self.message, **self.data}


class ValidationError(CommunityError):
	"""Raised for validation errors not covered by FastAPI schema validation."""

	status_code = _HTTP_422
	kind = "InvalidInput"
	detail = "validation_error"
	message = "Invalid input"


class InvalidCoordinateError(ValidationError):
	detail = "invalid_coordinate"
	message = "Latitude must be between -90 and 90 and longitude between -180 and 180"


class LocationNotSetError(ValidationError):
	detail = "location_not_set"
	message = "Set your location first"


class NotFoundError(CommunityError):
	"""Thrown when a resource is not visible or missing."""

	status_code = status.HTTP_404_NOT_FOUND
	kind = "NotFound"
	detail = "not_found"
	message = "Not found"


class NotAMemberError(NotFoundError):
	detail = "not_a_member"
	message = "You are not a member of this community"


class ConflictError(CommunityError):
	"""Raised for conflicting operations."""

	status_code = status.HTTP_409_CONFLICT
	kind = "Conflict"
	detail = "conflict"
	message = "Conflicting request"


class DuplicateNearbyNameError(ConflictError):
	detail = "duplicate_nearby_name"
	message = "A community with a similar name already exists in this area"


class AlreadyMemberError(ConflictError):
	detail = "already_member"
	message = "You are already a member of this community"


class OutOfRangeError(CommunityError):
	"""Raised when the requester is outside a community's radius."""

	kind = "OutOfRange"
	detail = "out_of_range"

	def __init__(self, *, distance_m: int, max_distance_m: int, is_fallback_location: bool = False) -> None:
		super().__init__(
			message=f"You are {distance_m}m away from this community (max: {max_distance_m}m)",
			distance_m=distance_m,
			max_distance_m=max_distance_m,
			is_fallback_location=is_fallback_location,
		)


class ForbiddenError(CommunityError):
	"""Raised when authorization fails."""

	status_code = status.HTTP_403_FORBIDDEN
	kind = "NotAuthorized"
	detail = "forbidden"
	message = "You are not allowed to do this"


class PolicyViolationError(CommunityError):
	kind = "PolicyViolation"
	detail = "policy_violation"
	message = "This operation is not allowed by community policy"


class OwnerCannotLeaveError(PolicyViolationError):
	detail = "owner_cannot_leave"
	message = "Community creator cannot leave. Please transfer admin rights first."
