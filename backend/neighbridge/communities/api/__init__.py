"""FastAPI routers for communities domain."""

from __future__ import annotations

from fastapi import APIRouter

from neighbridge.communities.api import communities, memberships

router = APIRouter(prefix="/api/communities/v1")

router.include_router(communities.router)
router.include_router(memberships.router)

__all__ = ["router"]
