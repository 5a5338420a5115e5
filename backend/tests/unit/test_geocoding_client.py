from __future__ import annotations

import json
import logging

import httpx
import pytest

from neighbridge.communities.domain.services import CommunitiesService, fallback_label
from neighbridge.communities.schemas import dto
from neighbridge.domain import geo
from neighbridge.infra.geocoding import GeocodingUnavailable, NominatimGeocoder, PlaceDetails, parse_place
from neighbridge.settings import settings

NOMINATIM_PAYLOAD = {
	"display_name": "Elm Street, Springfield, Essex County, New Jersey, 07081, United States",
	"address": {
		"road": "Elm Street",
		"town": "Springfield",
		"state": "New Jersey",
		"postcode": "07081",
		"country": "United States",
	},
}


class _FakeClock:
	def __init__(self) -> None:
		self.now = 100.0
		self.sleeps: list[float] = []

	def __call__(self) -> float:
		return self.now

	async def sleep(self, seconds: float) -> None:
		self.sleeps.append(seconds)
		self.now += seconds


def _client(handler) -> httpx.AsyncClient:
	return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_parse_place_prefers_specific_names():
	place = parse_place(NOMINATIM_PAYLOAD)
	assert place == PlaceDetails(
		location_name="Elm Street",
		address=NOMINATIM_PAYLOAD["display_name"],
		city="Springfield",
		state="New Jersey",
		country="United States",
		postal_code="07081",
	)
	assert parse_place({}) is None


def test_parse_place_ignores_malformed_address():
	assert parse_place({"display_name": "Somewhere", "address": ["odd"]}) is None
	assert parse_place({"display_name": "Somewhere", "address": "Elm Street"}) is None
	place = parse_place({"display_name": "Somewhere", "address": {"road": 42}})
	assert place.location_name == "42"


@pytest.mark.asyncio
async def test_reverse_sends_user_agent_and_caches():
	seen: list[httpx.Request] = []

	def handler(request: httpx.Request) -> httpx.Response:
		seen.append(request)
		return httpx.Response(200, json=NOMINATIM_PAYLOAD)

	async with _client(handler) as http:
		geocoder = NominatimGeocoder(http=http, user_agent="NeighBridgeTest/1.0", min_interval=0)
		point = geo.Coordinate(40.0, -74.0)
		first = await geocoder.reverse(point)
		second = await geocoder.reverse(point)

	assert first == second
	assert first.location_name == "Elm Street"
	assert len(seen) == 1
	assert seen[0].headers["User-Agent"] == "NeighBridgeTest/1.0"
	assert seen[0].url.path == "/reverse"
	assert seen[0].url.params["format"] == "json"


@pytest.mark.asyncio
async def test_requests_are_spaced_per_client_instance():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json=NOMINATIM_PAYLOAD)

	clock = _FakeClock()
	async with _client(handler) as http:
		geocoder = NominatimGeocoder(http=http, min_interval=1.0, clock=clock, sleep=clock.sleep)
		await geocoder.reverse(geo.Coordinate(40.0, -74.0))
		clock.now += 0.25
		await geocoder.reverse(geo.Coordinate(41.0, -74.0))
		other = NominatimGeocoder(http=http, min_interval=1.0, clock=clock, sleep=clock.sleep)
		await other.reverse(geo.Coordinate(42.0, -74.0))

	assert clock.sleeps == [pytest.approx(0.75)]


@pytest.mark.asyncio
async def test_reset_clears_rate_limit_state():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json=NOMINATIM_PAYLOAD)

	clock = _FakeClock()
	async with _client(handler) as http:
		geocoder = NominatimGeocoder(http=http, min_interval=1.0, clock=clock, sleep=clock.sleep)
		await geocoder.reverse(geo.Coordinate(40.0, -74.0))
		geocoder.reset()
		await geocoder.reverse(geo.Coordinate(41.0, -74.0))

	assert clock.sleeps == []


@pytest.mark.asyncio
async def test_http_failure_raises_unavailable():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(503, text="busy")

	async with _client(handler) as http:
		geocoder = NominatimGeocoder(http=http, min_interval=0)
		with pytest.raises(GeocodingUnavailable):
			await geocoder.reverse(geo.Coordinate(40.0, -74.0))


@pytest.mark.asyncio
async def test_corrupt_cache_entry_is_treated_as_miss(fake_redis, caplog):
	calls: list[httpx.Request] = []

	def handler(request: httpx.Request) -> httpx.Response:
		calls.append(request)
		return httpx.Response(200, json=NOMINATIM_PAYLOAD)

	key = "geocode:rev:40.00000:-74.00000"
	await fake_redis.set(key, "not-json")
	async with _client(handler) as http:
		geocoder = NominatimGeocoder(http=http, min_interval=0)
		with caplog.at_level(logging.WARNING):
			place = await geocoder.reverse(geo.Coordinate(40.0, -74.0))

	assert place.location_name == "Elm Street"
	assert len(calls) == 1
	assert json.loads(await fake_redis.get(key))["location_name"] == "Elm Street"
	assert any(record.getMessage() == "geocoding_cache_unavailable" for record in caplog.records)


@pytest.mark.asyncio
async def test_cache_entry_with_unknown_fields_is_treated_as_miss(fake_redis):
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json=NOMINATIM_PAYLOAD)

	await fake_redis.set("geocode:rev:40.00000:-74.00000", json.dumps({"label": "stale"}))
	async with _client(handler) as http:
		geocoder = NominatimGeocoder(http=http, min_interval=0)
		place = await geocoder.reverse(geo.Coordinate(40.0, -74.0))

	assert place.location_name == "Elm Street"

@pytest.mark.asyncio
async def test_create_uses_geocoded_label(service, users, geocoder):
	created = await service.create_community(
		users["creator"],
		dto.CommunityCreateRequest(name="Elm Street", latitude=40.0, longitude=-74.0, radius_m=500),
	)
	assert created.community.place_label == "Elm Street"
	assert created.community.address == "Elm Street, Springfield"
	assert geocoder.calls == [geo.Coordinate(40.0, -74.0)]


@pytest.mark.asyncio
async def test_geocoding_outage_does_not_block_creation(fake_repo, directory, users, geocoder, caplog):
	geocoder.fail = True
	service = CommunitiesService(repository=fake_repo, directory=directory, geocoder=geocoder)

	created = await service.create_community(
		users["creator"],
		dto.CommunityCreateRequest(name="Elm Street", latitude=40.12346, longitude=-74.98764, radius_m=500),
	)

	assert created.community.place_label == "Elm Street (40.1235, -74.9876)"
	assert created.community.address is None
	assert any(record.getMessage() == "geocoding_degraded" for record in caplog.records)


@pytest.mark.asyncio
async def test_disabled_geocoding_uses_fallback_label(fake_repo, directory, users, monkeypatch):
	monkeypatch.setattr(settings, "geocoding_enabled", False)
	service = CommunitiesService(repository=fake_repo, directory=directory)

	created = await service.create_community(
		users["creator"],
		dto.CommunityCreateRequest(name="Quiet Lane", latitude=1.5, longitude=2.25, radius_m=500),
	)

	assert service.geocoder is None
	assert created.community.place_label == fallback_label("Quiet Lane", geo.Coordinate(1.5, 2.25))


@pytest.mark.asyncio
async def test_malformed_geocoder_response_does_not_block_creation(fake_repo, directory, users):
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json={"display_name": "X", "address": ["odd"]})

	async with _client(handler) as http:
		geocoder = NominatimGeocoder(http=http, min_interval=0)
		service = CommunitiesService(repository=fake_repo, directory=directory, geocoder=geocoder)
		created = await service.create_community(
			users["creator"],
			dto.CommunityCreateRequest(name="Birch Row", latitude=40.5, longitude=-74.25, radius_m=500),
		)

	assert created.community.place_label == fallback_label("Birch Row", geo.Coordinate(40.5, -74.25))
	assert created.community.address is None


@pytest.mark.asyncio
async def test_corrupt_cache_does_not_block_creation(fake_repo, directory, users, fake_redis):
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json=NOMINATIM_PAYLOAD)

	await fake_redis.set("geocode:rev:40.00000:-74.00000", "not-json")
	async with _client(handler) as http:
		geocoder = NominatimGeocoder(http=http, min_interval=0)
		service = CommunitiesService(repository=fake_repo, directory=directory, geocoder=geocoder)
		created = await service.create_community(
			users["creator"],
			dto.CommunityCreateRequest(name="Elm Street", latitude=40.0, longitude=-74.0, radius_m=500),
		)

	assert created.community.place_label == "Elm Street"
