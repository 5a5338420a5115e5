"""Identity helpers for FastAPI endpoints.

Credentials are verified upstream by the identity gateway, which forwards the
caller as `X-User-Id` plus an optional comma-separated `X-User-Roles` header.
The backend trusts these headers and does not re-verify tokens.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Header, HTTPException, status


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	roles: Tuple[str, ...] = ()

	def has_role(self, role: str) -> bool:
		return role in self.roles

	@property
	def is_platform_admin(self) -> bool:
		return self.has_role("admin")


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
) -> AuthenticatedUser:
	user_id = (x_user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication_required")
	roles = tuple(part.strip() for part in (x_user_roles or "").split(",") if part.strip())
	return AuthenticatedUser(id=user_id, roles=roles)

