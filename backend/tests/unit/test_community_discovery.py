from __future__ import annotations

import pytest

from neighbridge.communities.domain.exceptions import InvalidCoordinateError, NotFoundError, OutOfRangeError
from neighbridge.communities.schemas import dto
from neighbridge.domain.locations.service import FALLBACK_MESSAGE
from neighbridge.settings import settings


async def _create(service, user, name, latitude, longitude, radius_m=1000, description=None):
	created = await service.create_community(
		user,
		dto.CommunityCreateRequest(
			name=name,
			description=description,
			latitude=latitude,
			longitude=longitude,
			radius_m=radius_m,
		),
	)
	return created.community.community_id


@pytest.mark.asyncio
async def test_nearby_is_sorted_by_distance_with_can_join(service, users, directory):
	await directory.update_location(users["near"].id, 40.0, -74.0)
	far_id = await _create(service, users["creator"], "Harbor View", 40.05, -74.0, radius_m=1000)
	close_id = await _create(service, users["creator"], "Corner Shop Club", 40.002, -74.0, radius_m=500)

	nearby = await service.discover_nearby(users["near"])

	assert [item.community_id for item in nearby.items] == [close_id, far_id]
	assert nearby.items[0].can_join is True
	assert nearby.items[1].can_join is False
	assert nearby.items[0].distance_from_user < nearby.items[1].distance_from_user
	assert nearby.items[0].user_role is None


@pytest.mark.asyncio
async def test_nearby_without_location_uses_fallback_and_says_so(service, users):
	nearby = await service.discover_nearby(users["near"])

	assert nearby.is_fallback_location is True
	assert nearby.message == FALLBACK_MESSAGE
	assert (nearby.origin.latitude, nearby.origin.longitude) == (settings.fallback_latitude, settings.fallback_longitude)


@pytest.mark.asyncio
async def test_empty_proximity_falls_back_to_all_active(service, users, directory):
	await directory.update_location(users["near"].id, 10.0, 10.0)
	community_id = await _create(service, users["creator"], "Far Away Friends", 40.0, -74.0)

	nearby = await service.discover_nearby(users["near"])

	assert nearby.is_fallback_listing is True
	assert [item.community_id for item in nearby.items] == [community_id]
	assert nearby.items[0].distance_from_user == 0
	assert nearby.items[0].can_join is True


@pytest.mark.asyncio
async def test_fallback_listing_can_be_disabled(service, users, directory, monkeypatch):
	monkeypatch.setattr(settings, "discovery_fallback_to_all", False)
	await directory.update_location(users["near"].id, 10.0, 10.0)
	await _create(service, users["creator"], "Far Away Friends", 40.0, -74.0)

	nearby = await service.discover_nearby(users["near"])

	assert nearby.is_fallback_listing is False
	assert nearby.items == []


@pytest.mark.asyncio
async def test_fallback_join_reports_fallback_location(service, users):
	community_id = await _create(service, users["creator"], "Lake Shore", 41.0, -74.0)
	with pytest.raises(OutOfRangeError) as excinfo:
		await service.join(users["near"], community_id)
	assert excinfo.value.data["is_fallback_location"] is True


@pytest.mark.asyncio
async def test_search_by_text_paginates(service, users):
	for index in range(5):
		await _create(service, users["creator"], f"Garden Club {index}", 40.0 + index * 0.05, -74.0)
	await _create(service, users["creator"], "Chess Corner", 45.0, -70.0, description="weekly garden games")

	first = await service.list_communities(users["near"], search="garden", page=1, limit=4)
	second = await service.list_communities(users["near"], search="garden", page=2, limit=4)

	assert first.pagination.total == 6
	assert first.pagination.pages == 2
	assert first.pagination.has_next is True and first.pagination.has_prev is False
	assert len(first.items) == 4 and len(second.items) == 2
	assert second.pagination.has_next is False and second.pagination.has_prev is True
	assert second.items[-1].name == "Chess Corner"
	assert all(item.distance_from_user is None for item in first.items)


@pytest.mark.asyncio
async def test_search_with_origin_orders_by_proximity(service, users):
	await _create(service, users["creator"], "Garden North", 40.02, -74.0)
	await _create(service, users["creator"], "Garden South", 40.001, -74.0)

	result = await service.list_communities(
		users["near"],
		search="garden",
		latitude=40.0,
		longitude=-74.0,
		max_distance_m=5000,
	)

	assert [item.name for item in result.items] == ["Garden South", "Garden North"]
	assert result.items[0].distance_from_user <= result.items[1].distance_from_user


@pytest.mark.asyncio
async def test_search_rejects_half_a_coordinate(service, users):
	with pytest.raises(InvalidCoordinateError):
		await service.list_communities(users["near"], latitude=40.0)


@pytest.mark.asyncio
async def test_my_communities_lists_active_memberships(service, users, directory):
	first = await _create(service, users["creator"], "Willow Park", 40.0, -74.0)
	second = await _create(service, users["creator"], "Cedar Block", 40.3, -74.0)
	await directory.update_location(users["near"].id, 40.0, -74.0)
	await service.join(users["near"], first)

	mine = await service.my_communities(users["creator"])
	theirs = await service.my_communities(users["near"])

	assert {item.community.community_id for item in mine.items} == {first, second}
	assert all(item.membership.role == "communityAdmin" for item in mine.items)
	assert theirs.items == []


@pytest.mark.asyncio
async def test_get_community_includes_role_and_hides_suspended(service, users):
	community_id = await _create(service, users["creator"], "Spruce Hill", 40.0, -74.0)

	detail = await service.get_community(users["creator"], community_id)
	assert detail.community.name == "Spruce Hill"
	assert detail.membership.is_member is True

	await service.set_status(users["platform_admin"], community_id, dto.CommunityStatusRequest(status="suspended"))
	with pytest.raises(NotFoundError):
		await service.get_community(users["creator"], community_id)
	staff_view = await service.get_community(users["platform_admin"], community_id)
	assert staff_view.community.status == "suspended"


@pytest.mark.asyncio
async def test_unknown_community_is_not_found(service, users):
	with pytest.raises(NotFoundError):
		await service.join(users["near"], "comm_00000000-0000-0000-0000-000000000000")
