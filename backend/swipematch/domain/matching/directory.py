"""Read-only lookups into the user and category tables owned by other services."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, Iterable, Protocol, Set

import asyncpg

from swipematch.domain.matching.repo import storage_errors
from swipematch.infra.postgres import get_pool


class Directory(Protocol):
	async def user_exists(self, user_id: int) -> bool: ...

	async def is_eligible(self, user_id: int) -> bool: ...

	async def interest_ids(self, user_id: int) -> Set[int]: ...

	async def category_exists(self, category_id: int) -> bool: ...


@dataclass
class _MemoryUser:
	eligible: bool = True
	interests: Set[int] = field(default_factory=set)


class MemoryDirectory:
	"""Directory seeded by hand; used by the memory backend and tests."""

	def __init__(self) -> None:
		self._users: Dict[int, _MemoryUser] = {}
		self._categories: Dict[int, bool] = {}

	def add_user(self, user_id: int, *, interests: Iterable[int] = (), eligible: bool = True) -> None:
		self._users[user_id] = _MemoryUser(eligible=eligible, interests=set(interests))

	def add_category(self, category_id: int, *, active: bool = True) -> None:
		self._categories[category_id] = active

	async def user_exists(self, user_id: int) -> bool:
		return user_id in self._users

	async def is_eligible(self, user_id: int) -> bool:
		user = self._users.get(user_id)
		return bool(user and user.eligible)

	async def interest_ids(self, user_id: int) -> Set[int]:
		user = self._users.get(user_id)
		return set(user.interests) if user else set()

	async def category_exists(self, category_id: int) -> bool:
		return self._categories.get(category_id, False)


class PostgresDirectory:
	def __init__(self, pool_getter: Callable[[], Awaitable[asyncpg.Pool]] = get_pool) -> None:
		self._pool_getter = pool_getter

	@asynccontextmanager
	async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
		async with storage_errors():
			pool = await self._pool_getter()
			async with pool.acquire() as conn:
				yield conn

	async def user_exists(self, user_id: int) -> bool:
		async with self._connection() as conn:
			found = await conn.fetchval(
				"SELECT EXISTS (SELECT 1 FROM users WHERE id = $1 AND deleted_at IS NULL)",
				user_id,
			)
		return bool(found)

	async def is_eligible(self, user_id: int) -> bool:
		async with self._connection() as conn:
			found = await conn.fetchval(
				"""
				SELECT EXISTS (
					SELECT 1 FROM users
					WHERE id = $1
					  AND deleted_at IS NULL
					  AND verification_status = 'verified'
				)
				""",
				user_id,
			)
		return bool(found)

	async def interest_ids(self, user_id: int) -> Set[int]:
		async with self._connection() as conn:
			rows = await conn.fetch("SELECT interest_id FROM user_interests WHERE user_id = $1", user_id)
		return {int(row["interest_id"]) for row in rows}

	async def category_exists(self, category_id: int) -> bool:
		async with self._connection() as conn:
			found = await conn.fetchval(
				"SELECT EXISTS (SELECT 1 FROM categories WHERE id = $1 AND is_active)",
				category_id,
			)
		return bool(found)
