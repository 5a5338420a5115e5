"""Membership integrity job keeps member_count equal to the active membership count."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from neighbridge.communities.domain import repo as repo_module
from neighbridge.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

JOB_NAME = "communities-membership-integrity"


class MembershipIntegrityJob:
	"""Recounts active memberships and repairs drifted counters."""

	def __init__(self, *, repository: repo_module.CommunitiesRepository | None = None) -> None:
		self.repo = repository or repo_module.CommunitiesRepository()

	async def run_once(self) -> int:
		started = datetime.now(timezone.utc)
		try:
			repaired = await self.repo.reconcile_member_counts()
			for community_id, previous, counted in repaired:
				logger.warning(
					"member_count_reconciled",
					extra={"community_id": community_id, "previous": previous, "counted": counted},
				)
			obs_metrics.BACKGROUND_RUNS.labels(name=JOB_NAME, result="success").inc()
			return len(repaired)
		except Exception:
			obs_metrics.BACKGROUND_RUNS.labels(name=JOB_NAME, result="error").inc()
			raise
		finally:
			duration = (datetime.now(timezone.utc) - started).total_seconds()
			obs_metrics.BACKGROUND_DURATION.labels(name=JOB_NAME).observe(duration)
