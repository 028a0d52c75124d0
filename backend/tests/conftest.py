import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-entropy-for-hs256")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("MATCHING_BACKEND", "memory")

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from swipematch.domain.matching.clock import FrozenClock
from swipematch.domain.matching.directory import MemoryDirectory
from swipematch.domain.matching.repo import MemoryMatchingRepository
from swipematch.domain.matching.service import MatchService, set_match_service
from swipematch.infra import postgres
from swipematch.main import app
from swipematch.settings import settings

FRIENDS = 1
JOBS = 2
ARCHIVED = 3


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from swipematch.infra.redis import redis_client, set_redis_client
	original = redis_client.client
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
def force_test_settings():
	"""API tests authenticate via X-User-Id, which is only accepted in dev mode."""
	original_env = settings.environment
	original_backend = settings.matching_backend
	settings.environment = "dev"
	settings.matching_backend = "memory"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.matching_backend = original_backend


@pytest.fixture
def clock():
	return FrozenClock(datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def directory():
	directory = MemoryDirectory()
	directory.add_user(1, interests={10, 11, 12})
	directory.add_user(2, interests={11, 12, 13})
	directory.add_user(3, interests={10})
	directory.add_user(4, interests={10, 20})
	directory.add_user(5, interests=set())
	directory.add_user(6, interests={10, 11}, eligible=False)
	directory.add_category(FRIENDS)
	directory.add_category(JOBS)
	directory.add_category(ARCHIVED, active=False)
	return directory


@pytest.fixture
def repository():
	return MemoryMatchingRepository()


@pytest.fixture
def service(repository, directory, clock):
	svc = MatchService(repository, directory, clock)
	set_match_service(svc)
	try:
		yield svc
	finally:
		set_match_service(None)


@pytest_asyncio.fixture
async def api_client(service):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
