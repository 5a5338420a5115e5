"""Periodic maintenance for the communities store."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from neighbridge.communities.jobs.membership_integrity import JOB_NAME, MembershipIntegrityJob

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
	"""Runs repair jobs such as member count reconciliation on a fixed interval.

	A run that is still in progress when the next one is due is not started
	twice, and runs missed while the process was busy collapse into one.
	"""

	def __init__(self, *, misfire_grace_seconds: int = 300) -> None:
		self._scheduler = AsyncIOScheduler(timezone="UTC")
		self._misfire_grace_seconds = misfire_grace_seconds

	@property
	def running(self) -> bool:
		return self._scheduler.running

	def start(self) -> None:
		if not self.running:
			self._scheduler.start()

	def shutdown(self) -> None:
		if self.running:
			self._scheduler.shutdown(wait=False)

	def schedule(self, job_id: str, func: Callable[[], Awaitable[object]], *, hours: int) -> Job:
		if hours < 1:
			raise ValueError("maintenance interval must be at least one hour")
		job = self._scheduler.add_job(
			func,
			trigger=IntervalTrigger(hours=hours),
			id=job_id,
			replace_existing=True,
			max_instances=1,
			coalesce=True,
			misfire_grace_time=self._misfire_grace_seconds,
		)
		logger.info("maintenance_job_scheduled", extra={"job": job_id, "interval_hours": hours})
		return job

	def schedule_reconciliation(self, job: MembershipIntegrityJob, *, hours: int) -> Job:
		return self.schedule(JOB_NAME, job.run_once, hours=hours)

	def get_job(self, job_id: str) -> Job | None:
		return self._scheduler.get_job(job_id)


__all__ = ["MaintenanceScheduler"]
