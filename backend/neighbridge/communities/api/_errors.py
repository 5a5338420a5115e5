"""Error translation helpers for communities API."""

from __future__ import annotations

from fastapi import HTTPException

from neighbridge.communities.domain import exceptions


def to_http_error(exc: exceptions.CommunityError) -> HTTPException:
	"""Translate domain exceptions to FastAPI HTTP errors."""
	return HTTPException(status_code=exc.status_code, detail=exc.to_payload())
