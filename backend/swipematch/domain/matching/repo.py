"""Persistence backends for the swipe ledger and the connection store.

Both backends hand out a *session*: one all-or-nothing unit of work. A session
opened with a ``lock_key`` is serialised against every other session holding the
same key, which is how crossing likes on the same pair are made to see each other.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import AsyncContextManager, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol, Set, Tuple

import asyncpg
from asyncpg.exceptions import (
	CannotConnectNowError,
	DeadlockDetectedError,
	InterfaceError,
	PostgresConnectionError,
	SerializationError,
	TooManyConnectionsError,
	UniqueViolationError,
)

from swipematch.domain.matching.exceptions import DuplicateSwipe, NotFound, StorageUnavailable
from swipematch.domain.matching.models import Connection, ConnectionStatus, SwipeAction, SwipeRecord
from swipematch.infra.postgres import get_pool

logger = logging.getLogger(__name__)

LockKey = Tuple[int, int, int]

_TRANSIENT_ERRORS = (
	PostgresConnectionError,
	CannotConnectNowError,
	TooManyConnectionsError,
	DeadlockDetectedError,
	SerializationError,
	InterfaceError,
	OSError,
	asyncio.TimeoutError,
)


@asynccontextmanager
async def storage_errors() -> AsyncIterator[None]:
	"""Surface connection loss, timeouts and lock conflicts as ``StorageUnavailable``."""
	try:
		yield
	except _TRANSIENT_ERRORS as exc:
		logger.warning("matching storage unavailable", extra={"error": type(exc).__name__})
		raise StorageUnavailable() from exc


class MatchingSession(Protocol):
	async def insert_swipe(
		self,
		actor_id: int,
		target_id: int,
		category_id: int,
		action: SwipeAction,
		swiped_at: datetime,
	) -> SwipeRecord: ...

	async def has_swipe(
		self,
		actor_id: int,
		target_id: int,
		category_id: int,
		action: Optional[SwipeAction] = None,
	) -> bool: ...

	async def swipe_targets(self, actor_id: int, category_id: int) -> Set[int]: ...

	async def list_swipes(
		self,
		actor_id: int,
		*,
		category_id: Optional[int],
		action: Optional[SwipeAction],
		limit: int,
	) -> List[SwipeRecord]: ...

	async def swipe_counts(self, actor_id: int) -> Dict[Tuple[int, SwipeAction], int]: ...

	async def count_swipes_since(self, actor_id: int, since: datetime) -> int: ...

	async def count_connections(self, user_id: int) -> int: ...

	async def connection_counts(self, user_id: int) -> Dict[Tuple[int, ConnectionStatus], int]: ...

	async def count_connections_since(self, user_id: int, since: datetime) -> int: ...

	async def match_score_summary(self, user_id: int, high_quality: float) -> Tuple[Optional[float], int]: ...

	async def insert_connection_if_absent(
		self,
		low_user_id: int,
		high_user_id: int,
		category_id: int,
		match_score: Optional[float],
		now: datetime,
	) -> Tuple[Connection, bool]: ...

	async def get_connection(self, connection_id: int) -> Optional[Connection]: ...

	async def get_connection_by_pair(
		self, low_user_id: int, high_user_id: int, category_id: int
	) -> Optional[Connection]: ...

	async def pair_has_connection(
		self, low_user_id: int, high_user_id: int, category_id: Optional[int]
	) -> bool: ...

	async def update_connection_status(
		self, connection_id: int, status: ConnectionStatus, now: datetime
	) -> Connection: ...

	async def list_connections(
		self,
		user_id: int,
		*,
		category_id: Optional[int],
		status: Optional[ConnectionStatus],
		limit: Optional[int],
	) -> List[Connection]: ...

	async def list_recommended(self, user_id: int, *, min_score: float, limit: int) -> List[Connection]: ...


class MatchingRepository(Protocol):
	def session(self, lock_key: Optional[LockKey] = None) -> AsyncContextManager[MatchingSession]: ...


# --------------------------------------------------------------------------- memory


@dataclass
class _MemoryState:
	swipes: Dict[int, SwipeRecord] = field(default_factory=dict)
	swipe_keys: Dict[Tuple[int, int, int], int] = field(default_factory=dict)
	connections: Dict[int, Connection] = field(default_factory=dict)
	pair_keys: Dict[Tuple[int, int, int], int] = field(default_factory=dict)
	next_swipe_id: int = 1
	next_connection_id: int = 1


class _MemorySession:
	def __init__(self, state: _MemoryState) -> None:
		self._state = state
		self._undo: List[Callable[[], None]] = []

	def rollback(self) -> None:
		while self._undo:
			self._undo.pop()()

	async def insert_swipe(
		self,
		actor_id: int,
		target_id: int,
		category_id: int,
		action: SwipeAction,
		swiped_at: datetime,
	) -> SwipeRecord:
		state = self._state
		key = (actor_id, target_id, category_id)
		if key in state.swipe_keys:
			raise DuplicateSwipe()
		record = SwipeRecord(
			id=state.next_swipe_id,
			actor_id=actor_id,
			target_id=target_id,
			category_id=category_id,
			action=action,
			swiped_at=swiped_at,
		)
		state.next_swipe_id += 1
		state.swipes[record.id] = record
		state.swipe_keys[key] = record.id

		def _undo() -> None:
			state.swipes.pop(record.id, None)
			state.swipe_keys.pop(key, None)

		self._undo.append(_undo)
		return record

	async def has_swipe(
		self,
		actor_id: int,
		target_id: int,
		category_id: int,
		action: Optional[SwipeAction] = None,
	) -> bool:
		swipe_id = self._state.swipe_keys.get((actor_id, target_id, category_id))
		if swipe_id is None:
			return False
		return action is None or self._state.swipes[swipe_id].action is action

	async def swipe_targets(self, actor_id: int, category_id: int) -> Set[int]:
		return {
			target
			for (actor, target, category) in self._state.swipe_keys
			if actor == actor_id and category == category_id
		}

	async def list_swipes(
		self,
		actor_id: int,
		*,
		category_id: Optional[int],
		action: Optional[SwipeAction],
		limit: int,
	) -> List[SwipeRecord]:
		rows = [
			swipe
			for swipe in self._state.swipes.values()
			if swipe.actor_id == actor_id
			and (category_id is None or swipe.category_id == category_id)
			and (action is None or swipe.action is action)
		]
		rows.sort(key=lambda s: (s.swiped_at, s.id), reverse=True)
		return rows[:limit]

	async def swipe_counts(self, actor_id: int) -> Dict[Tuple[int, SwipeAction], int]:
		counts: Dict[Tuple[int, SwipeAction], int] = {}
		for swipe in self._state.swipes.values():
			if swipe.actor_id == actor_id:
				key = (swipe.category_id, swipe.action)
				counts[key] = counts.get(key, 0) + 1
		return counts

	async def count_swipes_since(self, actor_id: int, since: datetime) -> int:
		return sum(
			1 for swipe in self._state.swipes.values() if swipe.actor_id == actor_id and swipe.swiped_at >= since
		)

	async def count_connections(self, user_id: int) -> int:
		return sum(1 for connection in self._state.connections.values() if connection.involves_user(user_id))

	def _connections_of(self, user_id: int) -> List[Connection]:
		return [connection for connection in self._state.connections.values() if connection.involves_user(user_id)]

	async def connection_counts(self, user_id: int) -> Dict[Tuple[int, ConnectionStatus], int]:
		counts: Dict[Tuple[int, ConnectionStatus], int] = {}
		for connection in self._connections_of(user_id):
			key = (connection.category_id, connection.status)
			counts[key] = counts.get(key, 0) + 1
		return counts

	async def count_connections_since(self, user_id: int, since: datetime) -> int:
		return sum(1 for connection in self._connections_of(user_id) if connection.connected_at >= since)

	async def match_score_summary(self, user_id: int, high_quality: float) -> Tuple[Optional[float], int]:
		scores = [connection.match_score or 0.0 for connection in self._connections_of(user_id)]
		positive = [score for score in scores if score > 0]
		average = sum(positive) / len(positive) if positive else None
		return average, sum(1 for score in scores if score >= high_quality)

	async def insert_connection_if_absent(
		self,
		low_user_id: int,
		high_user_id: int,
		category_id: int,
		match_score: Optional[float],
		now: datetime,
	) -> Tuple[Connection, bool]:
		state = self._state
		key = (low_user_id, high_user_id, category_id)
		existing_id = state.pair_keys.get(key)
		if existing_id is not None:
			return replace(state.connections[existing_id]), False
		connection = Connection(
			id=state.next_connection_id,
			low_user_id=low_user_id,
			high_user_id=high_user_id,
			category_id=category_id,
			status=ConnectionStatus.ACCEPTED,
			match_score=match_score,
			connected_at=now,
			updated_at=now,
		)
		state.next_connection_id += 1
		state.connections[connection.id] = connection
		state.pair_keys[key] = connection.id

		def _undo() -> None:
			state.connections.pop(connection.id, None)
			state.pair_keys.pop(key, None)

		self._undo.append(_undo)
		return replace(connection), True

	async def get_connection(self, connection_id: int) -> Optional[Connection]:
		connection = self._state.connections.get(connection_id)
		return replace(connection) if connection else None

	async def get_connection_by_pair(
		self, low_user_id: int, high_user_id: int, category_id: int
	) -> Optional[Connection]:
		connection_id = self._state.pair_keys.get((low_user_id, high_user_id, category_id))
		if connection_id is None:
			return None
		return replace(self._state.connections[connection_id])

	async def pair_has_connection(
		self, low_user_id: int, high_user_id: int, category_id: Optional[int]
	) -> bool:
		return any(
			low == low_user_id and high == high_user_id and (category_id is None or category == category_id)
			for (low, high, category) in self._state.pair_keys
		)

	async def update_connection_status(
		self, connection_id: int, status: ConnectionStatus, now: datetime
	) -> Connection:
		state = self._state
		previous = state.connections.get(connection_id)
		if previous is None:
			raise NotFound("connection_missing")
		updated = replace(previous, status=status, updated_at=now)
		state.connections[connection_id] = updated

		def _undo() -> None:
			state.connections[connection_id] = previous

		self._undo.append(_undo)
		return replace(updated)

	async def list_connections(
		self,
		user_id: int,
		*,
		category_id: Optional[int],
		status: Optional[ConnectionStatus],
		limit: Optional[int],
	) -> List[Connection]:
		rows = [
			replace(connection)
			for connection in self._state.connections.values()
			if connection.involves_user(user_id)
			and (category_id is None or connection.category_id == category_id)
			and (status is None or connection.status is status)
		]
		rows.sort(key=lambda c: (c.connected_at, c.id), reverse=True)
		return rows if limit is None else rows[:limit]

	async def list_recommended(self, user_id: int, *, min_score: float, limit: int) -> List[Connection]:
		rows = [
			replace(connection)
			for connection in self._state.connections.values()
			if connection.involves_user(user_id)
			and connection.status is ConnectionStatus.ACCEPTED
			and connection.match_score is not None
			and connection.match_score >= min_score
		]
		rows.sort(key=lambda c: (c.match_score, c.connected_at), reverse=True)
		return rows[:limit]


class MemoryMatchingRepository:
	"""In-process backend; every session is serialised on a single lock."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._state = _MemoryState()

	@asynccontextmanager
	async def session(self, lock_key: Optional[LockKey] = None) -> AsyncIterator[_MemorySession]:
		async with self._lock:
			session = _MemorySession(self._state)
			try:
				yield session
			except BaseException:
				session.rollback()
				raise

	async def reset(self) -> None:
		"""Test helper to clear in-memory state."""
		async with self._lock:
			self._state = _MemoryState()


# --------------------------------------------------------------------------- postgres


_CONNECTION_COLUMNS = "id, low_user_id, high_user_id, category_id, status, match_score, connected_at, updated_at"
_SWIPE_COLUMNS = "id, actor_id, target_id, category_id, action, swiped_at"


def _advisory_lock_name(lock_key: LockKey) -> str:
	low, high, category = lock_key
	return f"swipematch:pair:{low}:{high}:{category}"


def _score_param(score: Optional[float]) -> Optional[Decimal]:
	return Decimal(f"{score:.2f}") if score is not None else None


class _PostgresSession:
	def __init__(self, conn: asyncpg.Connection) -> None:
		self._conn = conn

	async def insert_swipe(
		self,
		actor_id: int,
		target_id: int,
		category_id: int,
		action: SwipeAction,
		swiped_at: datetime,
	) -> SwipeRecord:
		try:
			# Savepoint so the violation does not poison the outer transaction
			async with self._conn.transaction():
				record = await self._conn.fetchrow(
					f"""
					INSERT INTO swipes (actor_id, target_id, category_id, action, swiped_at)
					VALUES ($1, $2, $3, $4, $5)
					RETURNING {_SWIPE_COLUMNS}
					""",
					actor_id,
					target_id,
					category_id,
					action.value,
					swiped_at,
				)
		except UniqueViolationError as exc:
			raise DuplicateSwipe() from exc
		return SwipeRecord.from_record(record)

	async def has_swipe(
		self,
		actor_id: int,
		target_id: int,
		category_id: int,
		action: Optional[SwipeAction] = None,
	) -> bool:
		found = await self._conn.fetchval(
			"""
			SELECT EXISTS (
				SELECT 1 FROM swipes
				WHERE actor_id = $1
				  AND target_id = $2
				  AND category_id = $3
				  AND ($4::text IS NULL OR action = $4)
			)
			""",
			actor_id,
			target_id,
			category_id,
			action.value if action else None,
		)
		return bool(found)

	async def swipe_targets(self, actor_id: int, category_id: int) -> Set[int]:
		rows = await self._conn.fetch(
			"SELECT target_id FROM swipes WHERE actor_id = $1 AND category_id = $2",
			actor_id,
			category_id,
		)
		return {int(row["target_id"]) for row in rows}

	async def list_swipes(
		self,
		actor_id: int,
		*,
		category_id: Optional[int],
		action: Optional[SwipeAction],
		limit: int,
	) -> List[SwipeRecord]:
		rows = await self._conn.fetch(
			f"""
			SELECT {_SWIPE_COLUMNS}
			FROM swipes
			WHERE actor_id = $1
			  AND ($2::bigint IS NULL OR category_id = $2)
			  AND ($3::text IS NULL OR action = $3)
			ORDER BY swiped_at DESC, id DESC
			LIMIT $4
			""",
			actor_id,
			category_id,
			action.value if action else None,
			limit,
		)
		return [SwipeRecord.from_record(row) for row in rows]

	async def swipe_counts(self, actor_id: int) -> Dict[Tuple[int, SwipeAction], int]:
		rows = await self._conn.fetch(
			"""
			SELECT category_id, action, COUNT(*) AS total
			FROM swipes
			WHERE actor_id = $1
			GROUP BY category_id, action
			""",
			actor_id,
		)
		return {(int(row["category_id"]), SwipeAction(row["action"])): int(row["total"]) for row in rows}

	async def count_swipes_since(self, actor_id: int, since: datetime) -> int:
		total = await self._conn.fetchval(
			"SELECT COUNT(*) FROM swipes WHERE actor_id = $1 AND swiped_at >= $2",
			actor_id,
			since,
		)
		return int(total or 0)

	async def count_connections(self, user_id: int) -> int:
		total = await self._conn.fetchval(
			"SELECT COUNT(*) FROM connections WHERE low_user_id = $1 OR high_user_id = $1",
			user_id,
		)
		return int(total or 0)

	async def connection_counts(self, user_id: int) -> Dict[Tuple[int, ConnectionStatus], int]:
		rows = await self._conn.fetch(
			"""
			SELECT category_id, status, COUNT(*) AS total
			FROM connections
			WHERE low_user_id = $1 OR high_user_id = $1
			GROUP BY category_id, status
			""",
			user_id,
		)
		return {(int(row["category_id"]), ConnectionStatus(row["status"])): int(row["total"]) for row in rows}

	async def count_connections_since(self, user_id: int, since: datetime) -> int:
		total = await self._conn.fetchval(
			"""
			SELECT COUNT(*) FROM connections
			WHERE (low_user_id = $1 OR high_user_id = $1) AND connected_at >= $2
			""",
			user_id,
			since,
		)
		return int(total or 0)

	async def match_score_summary(self, user_id: int, high_quality: float) -> Tuple[Optional[float], int]:
		row = await self._conn.fetchrow(
			"""
			SELECT AVG(match_score) FILTER (WHERE match_score > 0) AS average,
			       COUNT(*) FILTER (WHERE match_score >= $2) AS high_quality
			FROM connections
			WHERE low_user_id = $1 OR high_user_id = $1
			""",
			user_id,
			_score_param(high_quality),
		)
		average = row["average"]
		return (float(average) if average is not None else None), int(row["high_quality"] or 0)

	async def insert_connection_if_absent(
		self,
		low_user_id: int,
		high_user_id: int,
		category_id: int,
		match_score: Optional[float],
		now: datetime,
	) -> Tuple[Connection, bool]:
		record = await self._conn.fetchrow(
			f"""
			INSERT INTO connections (low_user_id, high_user_id, category_id, status, match_score, connected_at, updated_at)
			VALUES ($1, $2, $3, 'accepted', $4, $5, $5)
			ON CONFLICT (low_user_id, high_user_id, category_id) DO NOTHING
			RETURNING {_CONNECTION_COLUMNS}
			""",
			low_user_id,
			high_user_id,
			category_id,
			_score_param(match_score),
			now,
		)
		if record is not None:
			return Connection.from_record(record), True
		existing = await self.get_connection_by_pair(low_user_id, high_user_id, category_id)
		if existing is None:
			# Conflicting row vanished between statements; callers retry the whole swipe
			raise StorageUnavailable("connection_conflict_unresolved")
		return existing, False

	async def get_connection(self, connection_id: int) -> Optional[Connection]:
		record = await self._conn.fetchrow(
			f"SELECT {_CONNECTION_COLUMNS} FROM connections WHERE id = $1",
			connection_id,
		)
		return Connection.from_record(record) if record else None

	async def get_connection_by_pair(
		self, low_user_id: int, high_user_id: int, category_id: int
	) -> Optional[Connection]:
		record = await self._conn.fetchrow(
			f"""
			SELECT {_CONNECTION_COLUMNS}
			FROM connections
			WHERE low_user_id = $1 AND high_user_id = $2 AND category_id = $3
			""",
			low_user_id,
			high_user_id,
			category_id,
		)
		return Connection.from_record(record) if record else None

	async def pair_has_connection(
		self, low_user_id: int, high_user_id: int, category_id: Optional[int]
	) -> bool:
		found = await self._conn.fetchval(
			"""
			SELECT EXISTS (
				SELECT 1 FROM connections
				WHERE low_user_id = $1
				  AND high_user_id = $2
				  AND ($3::bigint IS NULL OR category_id = $3)
			)
			""",
			low_user_id,
			high_user_id,
			category_id,
		)
		return bool(found)

	async def update_connection_status(
		self, connection_id: int, status: ConnectionStatus, now: datetime
	) -> Connection:
		record = await self._conn.fetchrow(
			f"""
			UPDATE connections
			SET status = $2, updated_at = $3
			WHERE id = $1
			RETURNING {_CONNECTION_COLUMNS}
			""",
			connection_id,
			status.value,
			now,
		)
		if record is None:
			raise NotFound("connection_missing")
		return Connection.from_record(record)

	async def list_connections(
		self,
		user_id: int,
		*,
		category_id: Optional[int],
		status: Optional[ConnectionStatus],
		limit: Optional[int],
	) -> List[Connection]:
		rows = await self._conn.fetch(
			f"""
			SELECT {_CONNECTION_COLUMNS}
			FROM connections
			WHERE (low_user_id = $1 OR high_user_id = $1)
			  AND ($2::bigint IS NULL OR category_id = $2)
			  AND ($3::text IS NULL OR status = $3)
			ORDER BY connected_at DESC, id DESC
			LIMIT $4
			""",
			user_id,
			category_id,
			status.value if status else None,
			limit,
		)
		return [Connection.from_record(row) for row in rows]

	async def list_recommended(self, user_id: int, *, min_score: float, limit: int) -> List[Connection]:
		rows = await self._conn.fetch(
			f"""
			SELECT {_CONNECTION_COLUMNS}
			FROM connections
			WHERE (low_user_id = $1 OR high_user_id = $1)
			  AND status = 'accepted'
			  AND match_score >= $2
			ORDER BY match_score DESC, connected_at DESC
			LIMIT $3
			""",
			user_id,
			_score_param(min_score),
			limit,
		)
		return [Connection.from_record(row) for row in rows]


class PostgresMatchingRepository:
	"""asyncpg backend relying on unique constraints plus per-pair advisory locks."""

	def __init__(self, pool_getter: Callable[[], Awaitable[asyncpg.Pool]] = get_pool) -> None:
		self._pool_getter = pool_getter

	@asynccontextmanager
	async def session(self, lock_key: Optional[LockKey] = None) -> AsyncIterator[_PostgresSession]:
		async with storage_errors():
			pool = await self._pool_getter()
			async with pool.acquire() as conn:
				async with conn.transaction():
					if lock_key is not None:
						await conn.execute(
							"SELECT pg_advisory_xact_lock(hashtextextended($1, 0))",
							_advisory_lock_name(lock_key),
						)
					yield _PostgresSession(conn)
