from datetime import datetime, timezone
from decimal import Decimal

import pytest
from asyncpg.exceptions import ConnectionDoesNotExistError, DeadlockDetectedError, UniqueViolationError

from swipematch.domain.matching.clock import FrozenClock
from swipematch.domain.matching.directory import PostgresDirectory
from swipematch.domain.matching.exceptions import DuplicateSwipe, StorageUnavailable
from swipematch.domain.matching.models import ConnectionStatus, SwipeAction
from swipematch.domain.matching.repo import MemoryMatchingRepository, PostgresMatchingRepository
from swipematch.domain.matching.service import MatchService

NOW = datetime(2025, 6, 10, 12, tzinfo=timezone.utc)


class _Transaction:
	def __init__(self, conn):
		self._conn = conn

	async def __aenter__(self):
		self._conn.depth += 1
		return self

	async def __aexit__(self, exc_type, exc, tb):
		self._conn.depth -= 1
		return False


def _result(value):
	if isinstance(value, BaseException):
		raise value
	return value


class FakeConnection:
	def __init__(self, fetchrow_results=None, fetch_results=None, fetchval_results=None):
		self.calls = []
		self.depth = 0
		self.fetchrow_results = list(fetchrow_results or [])
		self.fetch_results = list(fetch_results or [])
		self.fetchval_results = list(fetchval_results or [])

	def transaction(self):
		return _Transaction(self)

	async def execute(self, sql, *args):
		self.calls.append((" ".join(sql.split()), args))
		return "SELECT 1"

	async def fetchrow(self, sql, *args):
		self.calls.append((" ".join(sql.split()), args))
		return _result(self.fetchrow_results.pop(0))

	async def fetch(self, sql, *args):
		self.calls.append((" ".join(sql.split()), args))
		return _result(self.fetch_results.pop(0))

	async def fetchval(self, sql, *args):
		self.calls.append((" ".join(sql.split()), args))
		return _result(self.fetchval_results.pop(0))


class _Acquire:
	def __init__(self, conn):
		self._conn = conn

	async def __aenter__(self):
		return self._conn

	async def __aexit__(self, exc_type, exc, tb):
		return False


class FakePool:
	def __init__(self, conn):
		self.conn = conn

	def acquire(self):
		return _Acquire(self.conn)


def _repository(conn):
	async def _get_pool():
		return FakePool(conn)

	return PostgresMatchingRepository(pool_getter=_get_pool)


def _connection_row(**overrides):
	row = {
		"id": 11,
		"low_user_id": 1,
		"high_user_id": 2,
		"category_id": 1,
		"status": "accepted",
		"match_score": 0.5,
		"connected_at": NOW,
		"updated_at": NOW,
	}
	row.update(overrides)
	return row


@pytest.mark.asyncio
async def test_session_takes_pair_advisory_lock():
	conn = FakeConnection()
	async with _repository(conn).session(lock_key=(1, 2, 7)):
		pass
	sql, args = conn.calls[0]
	assert "pg_advisory_xact_lock" in sql
	assert args == ("swipematch:pair:1:2:7",)


@pytest.mark.asyncio
async def test_session_without_key_skips_lock():
	conn = FakeConnection()
	async with _repository(conn).session():
		pass
	assert conn.calls == []


@pytest.mark.asyncio
async def test_unique_violation_becomes_duplicate_swipe():
	conn = FakeConnection(fetchrow_results=[UniqueViolationError("duplicate key")])
	with pytest.raises(DuplicateSwipe):
		async with _repository(conn).session() as session:
			await session.insert_swipe(1, 2, 1, SwipeAction.LIKE, NOW)


@pytest.mark.asyncio
async def test_insert_swipe_runs_inside_savepoint():
	row = {"id": 3, "actor_id": 1, "target_id": 2, "category_id": 1, "action": "like", "swiped_at": NOW}
	conn = FakeConnection(fetchrow_results=[row])
	async with _repository(conn).session() as session:
		record = await session.insert_swipe(1, 2, 1, SwipeAction.LIKE, NOW)
	assert record.id == 3
	assert record.action is SwipeAction.LIKE
	assert conn.calls[0][1] == (1, 2, 1, "like", NOW)


@pytest.mark.asyncio
async def test_connection_conflict_rereads_existing_row():
	conn = FakeConnection(fetchrow_results=[None, _connection_row(status="blocked")])
	async with _repository(conn).session() as session:
		connection, created = await session.insert_connection_if_absent(1, 2, 1, 0.9, NOW)
	assert created is False
	assert connection.id == 11
	assert connection.status.value == "blocked"
	assert "ON CONFLICT" in conn.calls[0][0]


@pytest.mark.asyncio
async def test_connection_insert_returns_new_row():
	conn = FakeConnection(fetchrow_results=[_connection_row()])
	async with _repository(conn).session() as session:
		connection, created = await session.insert_connection_if_absent(1, 2, 1, 0.5, NOW)
	assert created is True
	assert connection.match_score == 0.5


@pytest.mark.asyncio
async def test_connection_errors_surface_as_storage_unavailable():
	async def _broken_pool():
		raise OSError("connection refused")

	repository = PostgresMatchingRepository(pool_getter=_broken_pool)
	with pytest.raises(StorageUnavailable):
		async with repository.session(lock_key=(1, 2, 1)):
			pass


@pytest.mark.asyncio
async def test_swipe_counts_grouped_by_category_and_action():
	conn = FakeConnection(
		fetch_results=[
			[
				{"category_id": 1, "action": "like", "total": 3},
				{"category_id": 1, "action": "pass", "total": 1},
				{"category_id": 2, "action": "like", "total": 2},
			]
		],
		fetchval_results=[4, None],
	)
	async with _repository(conn).session() as session:
		counts = await session.swipe_counts(7)
		recent = await session.count_swipes_since(7, NOW)
		connections = await session.count_connections(7)
	assert counts == {(1, SwipeAction.LIKE): 3, (1, SwipeAction.PASS): 1, (2, SwipeAction.LIKE): 2}
	assert recent == 4
	assert connections == 0
	assert "GROUP BY category_id, action" in conn.calls[0][0]
	assert conn.calls[1][1] == (7, NOW)


@pytest.mark.asyncio
async def test_deadlock_surfaces_as_storage_unavailable():
	conn = FakeConnection(fetchrow_results=[DeadlockDetectedError("deadlock detected")])
	with pytest.raises(StorageUnavailable):
		async with _repository(conn).session(lock_key=(1, 2, 1)) as session:
			await session.insert_swipe(1, 2, 1, SwipeAction.LIKE, NOW)


def _directory(conn):
	async def _get_pool():
		return FakePool(conn)

	return PostgresDirectory(pool_getter=_get_pool)


@pytest.mark.asyncio
async def test_directory_connection_loss_surfaces_as_storage_unavailable():
	conn = FakeConnection(
		fetchval_results=[ConnectionDoesNotExistError("connection lost")],
		fetch_results=[ConnectionDoesNotExistError("connection lost")],
	)
	service = MatchService(MemoryMatchingRepository(), _directory(conn), FrozenClock(NOW))
	with pytest.raises(StorageUnavailable):
		await service.swipe(1, 2, 1, "like")
	with pytest.raises(StorageUnavailable):
		await service.compute_score(1, 2)
	assert await service.swipe_history(1) == []


@pytest.mark.asyncio
async def test_directory_unreachable_pool_surfaces_as_storage_unavailable():
	async def _broken_pool():
		raise OSError("connection refused")

	directory = PostgresDirectory(pool_getter=_broken_pool)
	with pytest.raises(StorageUnavailable):
		await directory.category_exists(1)


@pytest.mark.asyncio
async def test_connection_statistics_queries():
	conn = FakeConnection(
		fetch_results=[[{"category_id": 1, "status": "accepted", "total": 2}, {"category_id": 1, "status": "blocked", "total": 1}]],
		fetchval_results=[1, 3],
		fetchrow_results=[{"average": Decimal("0.55"), "high_quality": 1}],
	)
	async with _repository(conn).session() as session:
		counts = await session.connection_counts(7)
		week = await session.count_connections_since(7, NOW)
		month = await session.count_connections_since(7, NOW)
		average, high_quality = await session.match_score_summary(7, 0.7)
	assert counts == {(1, ConnectionStatus.ACCEPTED): 2, (1, ConnectionStatus.BLOCKED): 1}
	assert (week, month) == (1, 3)
	assert (average, high_quality) == (0.55, 1)
	assert conn.calls[-1][1] == (7, Decimal("0.70"))
