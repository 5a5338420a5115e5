"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from neighbridge.api import locations, ops
from neighbridge.api.errors import install_error_handlers
from neighbridge.communities.api import router as communities_router
from neighbridge.communities.infra.scheduler import MaintenanceScheduler
from neighbridge.communities.jobs.membership_integrity import MembershipIntegrityJob
from neighbridge.infra import postgres
from neighbridge.obs import init as obs_init
from neighbridge.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	scheduler: MaintenanceScheduler | None = None
	if settings.communities_workers_enabled:
		scheduler = MaintenanceScheduler()
		scheduler.schedule_reconciliation(MembershipIntegrityJob(), hours=settings.member_count_reconcile_hours)
		scheduler.start()
		app.state.communities_scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()


app = FastAPI(title="NeighBridge Communities Core", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []
# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

obs_init(app)

app.include_router(ops.router)
app.include_router(locations.router)
app.include_router(communities_router)
