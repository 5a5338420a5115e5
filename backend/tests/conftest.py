import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from neighbridge.infra import postgres
from neighbridge.infra.redis import redis_client, set_redis_client
from neighbridge.main import app
from neighbridge.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings(monkeypatch):
	"""Pin policy flags so tests do not depend on the local environment."""
	monkeypatch.setattr(settings, "environment", "dev")
	monkeypatch.setattr(settings, "membership_auto_approve", False)
	monkeypatch.setattr(settings, "discovery_fallback_to_all", True)
	monkeypatch.setattr(settings, "fallback_latitude", 40.7128)
	monkeypatch.setattr(settings, "fallback_longitude", -74.0060)
	monkeypatch.setattr(settings, "communities_workers_enabled", False)
	yield


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
