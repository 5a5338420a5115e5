"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from neighbridge.api.request_id import get_request_id

logger = logging.getLogger(__name__)


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		rid = get_request_id(request)
		payload = {"detail": exc.detail, "request_id": rid}
		return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		rid = get_request_id(request)
		payload = {"detail": "validation_error", "errors": jsonable_encoder(exc.errors()), "request_id": rid}
		return JSONResponse(status_code=422, content=payload)

	@app.exception_handler(Exception)
	async def unhandled_exc_handler(request: Request, exc: Exception):  # type: ignore[override]
		rid = get_request_id(request)
		logger.exception("unhandled_error", extra={"path": request.url.path})
		return JSONResponse(status_code=500, content={"detail": "internal_error", "request_id": rid})
