"""In-memory stand-ins for the Postgres repositories used by the unit tests."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from neighbridge.communities.domain import models
from neighbridge.communities.domain.exceptions import AlreadyMemberError
from neighbridge.communities.domain.services import CommunitiesService
from neighbridge.domain import geo
from neighbridge.domain.locations.models import UserLocation
from neighbridge.domain.locations.service import LocationDirectory
from neighbridge.infra.auth import AuthenticatedUser
from neighbridge.infra.geocoding import GeocodingUnavailable, PlaceDetails


class _Clock:
	def __init__(self) -> None:
		self._now = datetime(2024, 1, 1, tzinfo=timezone.utc)

	def __call__(self) -> datetime:
		self._now += timedelta(seconds=1)
		return self._now


class FakeCommunitiesRepository:
	"""Mirrors CommunitiesRepository: unique (community, user) pairs and a floored counter."""

	def __init__(self) -> None:
		self.communities: dict[str, models.Community] = {}
		self.memberships: dict[str, models.Membership] = {}
		self.transactions = 0
		self._now = _Clock()

	@asynccontextmanager
	async def transaction(self):
		self.transactions += 1
		yield None

	async def insert_community(self, *, community_id, name, description, created_by, center, radius_m, place_label, address, conn=None):
		now = self._now()
		community = models.Community(
			community_id=community_id,
			name=name,
			description=description,
			created_by=created_by,
			center_lat=center.latitude,
			center_lng=center.longitude,
			radius_m=radius_m,
			status="active",
			member_count=1,
			place_label=place_label,
			address=address,
			created_at=now,
			updated_at=now,
		)
		self.communities[community_id] = community
		return community

	async def get_community(self, community_id):
		return self.communities.get(community_id)

	async def list_communities(self, community_ids):
		return [self.communities[cid] for cid in community_ids if cid in self.communities]

	def _active_within(self, origin, max_distance_m):
		rows = []
		for community in self.communities.values():
			if not community.is_active:
				continue
			distance = geo.distance_meters(origin, community.center)
			if distance <= max_distance_m:
				rows.append((community, distance))
		rows.sort(key=lambda row: (row[1], -row[0].created_at.timestamp()))
		return rows

	async def find_active_named_near(self, *, name, center, within_m):
		for community, _ in self._active_within(center, within_m):
			if community.name.lower() == name.lower():
				return community
		return None

	async def list_nearby(self, *, origin, max_distance_m, limit):
		return self._active_within(origin, max_distance_m)[:limit]

	async def list_active(self, *, limit):
		active = [c for c in self.communities.values() if c.is_active]
		active.sort(key=lambda c: c.created_at, reverse=True)
		return active[:limit]

	async def search_communities(self, *, text, origin, max_distance_m, limit, offset):
		if origin is not None:
			rows = self._active_within(origin, max_distance_m)
		else:
			active = sorted((c for c in self.communities.values() if c.is_active), key=lambda c: c.created_at, reverse=True)
			rows = [(c, None) for c in active]
		if text:
			needle = text.lower()
			rows = [
				row
				for row in rows
				if needle in row[0].name.lower() or needle in (row[0].description or "").lower()
			]
			if origin is None:
				rows.sort(key=lambda row: needle not in row[0].name.lower())
		return rows[offset : offset + limit], len(rows)

	async def set_community_status(self, community_id, status):
		community = self.communities.get(community_id)
		if community is None:
			return None
		updated = community.model_copy(update={"status": status, "updated_at": self._now()})
		self.communities[community_id] = updated
		return updated

	async def adjust_member_count(self, community_id, delta, *, conn=None):
		community = self.communities.get(community_id)
		if community is None:
			return None
		raw = community.member_count + delta
		count = max(raw, 0)
		self.communities[community_id] = community.model_copy(update={"member_count": count})
		return count, raw < 0

	async def reconcile_member_counts(self):
		repaired = []
		for community_id, community in list(self.communities.items()):
			counted = sum(
				1
				for m in self.memberships.values()
				if m.community_id == community_id and m.status == models.STATUS_ACTIVE
			)
			if counted != community.member_count:
				repaired.append((community_id, community.member_count, counted))
				self.communities[community_id] = community.model_copy(update={"member_count": counted})
		return repaired

	async def insert_membership(self, *, membership_id, community_id, user_id, role, status, approved_by=None, conn=None):
		if any(m.community_id == community_id and m.user_id == user_id for m in self.memberships.values()):
			raise AlreadyMemberError()
		now = self._now()
		membership = models.Membership(
			membership_id=membership_id,
			community_id=community_id,
			user_id=user_id,
			role=role,
			status=status,
			joined_at=now,
			approved_by=approved_by,
			approved_at=now if approved_by else None,
		)
		self.memberships[membership_id] = membership
		return membership

	async def get_membership(self, community_id, user_id):
		for membership in self.memberships.values():
			if membership.community_id == community_id and membership.user_id == user_id:
				return membership
		return None

	async def get_membership_by_id(self, membership_id):
		return self.memberships.get(membership_id)

	async def list_memberships(self, community_id, *, status):
		rows = [m for m in self.memberships.values() if m.community_id == community_id and m.status == status]
		return sorted(rows, key=lambda m: m.joined_at, reverse=True)

	async def list_user_memberships(self, user_id, *, status):
		rows = [m for m in self.memberships.values() if m.user_id == user_id and m.status == status]
		return sorted(rows, key=lambda m: m.joined_at, reverse=True)

	async def memberships_for_user(self, user_id, community_ids):
		wanted = set(community_ids)
		return {m.community_id: m for m in self.memberships.values() if m.user_id == user_id and m.community_id in wanted}

	async def activate_membership(self, membership_id, *, approved_by, conn=None):
		membership = self.memberships.get(membership_id)
		if membership is None or membership.status != models.STATUS_PENDING:
			return None
		updated = membership.model_copy(
			update={"status": models.STATUS_ACTIVE, "approved_by": approved_by, "approved_at": self._now()}
		)
		self.memberships[membership_id] = updated
		return updated

	async def delete_membership(self, membership_id, *, status=None, conn=None):
		membership = self.memberships.get(membership_id)
		if membership is None or (status is not None and membership.status != status):
			return None
		return self.memberships.pop(membership_id)

	async def update_membership_role(self, membership_id, role):
		membership = self.memberships.get(membership_id)
		if membership is None:
			return None
		updated = membership.model_copy(update={"role": role})
		self.memberships[membership_id] = updated
		return updated

	def count_for_pair(self, community_id: str, user_id: str) -> int:
		return sum(1 for m in self.memberships.values() if m.community_id == community_id and m.user_id == user_id)


class FakeLocationsRepository:
	def __init__(self) -> None:
		self.rows: dict[str, UserLocation] = {}

	async def get(self, user_id):
		return self.rows.get(user_id)

	async def upsert(self, user_id, point, fields):
		location = UserLocation(
			user_id=user_id,
			latitude=point.latitude,
			longitude=point.longitude,
			address=fields.address,
			city=fields.city,
			state=fields.state,
			country=fields.country,
			updated_at=datetime.now(timezone.utc),
		)
		self.rows[user_id] = location
		return location

	async def list_within(self, origin, *, radius_m, limit, exclude_user_id=None):
		rows = []
		for location in self.rows.values():
			if location.user_id == exclude_user_id:
				continue
			distance = geo.distance_meters(origin, location.coordinate)
			if distance <= radius_m:
				rows.append((location, distance))
		rows.sort(key=lambda row: row[1])
		return rows[:limit]


@dataclass
class FakeGeocoder:
	place: Optional[PlaceDetails] = None
	fail: bool = False
	calls: list[geo.Coordinate] = field(default_factory=list)

	async def reverse(self, point):
		self.calls.append(point)
		if self.fail:
			raise GeocodingUnavailable("service unavailable")
		return self.place


@pytest.fixture()
def fake_repo() -> FakeCommunitiesRepository:
	return FakeCommunitiesRepository()


@pytest.fixture()
def fake_locations() -> FakeLocationsRepository:
	return FakeLocationsRepository()


@pytest.fixture()
def directory(fake_locations) -> LocationDirectory:
	return LocationDirectory(repository=fake_locations)


@pytest.fixture()
def geocoder() -> FakeGeocoder:
	return FakeGeocoder(place=PlaceDetails(location_name="Elm Street", address="Elm Street, Springfield"))


@pytest.fixture()
def service(fake_repo, directory, geocoder) -> CommunitiesService:
	return CommunitiesService(repository=fake_repo, directory=directory, geocoder=geocoder)


@pytest.fixture()
def users():
	return {
		"creator": AuthenticatedUser(id="user-creator"),
		"near": AuthenticatedUser(id="user-near"),
		"far": AuthenticatedUser(id="user-far"),
		"other": AuthenticatedUser(id="user-other"),
		"platform_admin": AuthenticatedUser(id="user-staff", roles=("admin",)),
	}
