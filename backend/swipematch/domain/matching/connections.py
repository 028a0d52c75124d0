"""Connection lifecycle: creation on mutual like, accept and block."""

from __future__ import annotations

from datetime import timedelta
from typing import List, Optional, Tuple

from swipematch.domain.matching import policy
from swipematch.domain.matching.clock import Clock
from swipematch.domain.matching.exceptions import NotFound
from swipematch.domain.matching.models import (
	HIGH_QUALITY_SCORE,
	RECENT_MONTH_DAYS,
	RECENT_WEEK_DAYS,
	RECOMMENDED_LIMIT,
	RECOMMENDED_MIN_SCORE,
	Connection,
	ConnectionStats,
	ConnectionStatus,
	canonical_pair,
)
from swipematch.domain.matching.repo import MatchingSession


class ConnectionStore:
	"""Connection operations bound to one storage session.

	At most one connection exists per unordered pair and category. Creation is
	idempotent: the second caller gets the existing row back with ``created=False``.
	"""

	def __init__(self, session: MatchingSession, clock: Clock) -> None:
		self._session = session
		self._clock = clock

	async def create_if_absent(
		self,
		user_a: int,
		user_b: int,
		category_id: int,
		match_score: Optional[float] = None,
	) -> Tuple[Connection, bool]:
		low, high = canonical_pair(user_a, user_b)
		return await self._session.insert_connection_if_absent(
			low, high, category_id, match_score, self._clock.now()
		)

	async def get(self, connection_id: int) -> Connection:
		connection = await self._session.get_connection(connection_id)
		if connection is None:
			raise NotFound("connection_not_found")
		return connection

	async def between(self, user_a: int, user_b: int, category_id: int) -> Optional[Connection]:
		if user_a == user_b:
			return None
		low, high = canonical_pair(user_a, user_b)
		return await self._session.get_connection_by_pair(low, high, category_id)

	async def has_connection(self, user_a: int, user_b: int, category_id: Optional[int] = None) -> bool:
		if user_a == user_b:
			return False
		low, high = canonical_pair(user_a, user_b)
		return await self._session.pair_has_connection(low, high, category_id)

	async def accept(self, connection_id: int) -> Connection:
		return await self._transition(connection_id, "accept")

	async def block(self, connection_id: int) -> Connection:
		return await self._transition(connection_id, "block")

	async def _transition(self, connection_id: int, action: str) -> Connection:
		connection = await self.get(connection_id)
		target = policy.next_status(connection.status, action)
		if target is connection.status:
			return connection
		return await self._session.update_connection_status(connection_id, target, self._clock.now())

	async def list_for_user(
		self,
		user_id: int,
		*,
		category_id: Optional[int] = None,
		status: Optional[ConnectionStatus | str] = None,
		limit: Optional[int] = None,
	) -> List[Connection]:
		parsed = ConnectionStatus(status) if status is not None else None
		return await self._session.list_connections(
			user_id, category_id=category_id, status=parsed, limit=limit
		)

	async def pending(self, user_id: int) -> List[Connection]:
		return await self.list_for_user(user_id, status=ConnectionStatus.PENDING)

	async def recommended(self, user_id: int, limit: int = RECOMMENDED_LIMIT) -> List[Connection]:
		return await self._session.list_recommended(
			user_id, min_score=RECOMMENDED_MIN_SCORE, limit=max(1, limit)
		)

	async def count_for_user(self, user_id: int) -> int:
		return await self._session.count_connections(user_id)

	async def statistics(self, user_id: int) -> ConnectionStats:
		now = self._clock.now()
		counts = await self._session.connection_counts(user_id)
		this_week = await self._session.count_connections_since(user_id, now - timedelta(days=RECENT_WEEK_DAYS))
		this_month = await self._session.count_connections_since(user_id, now - timedelta(days=RECENT_MONTH_DAYS))
		average, high_quality = await self._session.match_score_summary(user_id, HIGH_QUALITY_SCORE)
		return ConnectionStats.build(
			counts,
			connections_this_week=this_week,
			connections_this_month=this_month,
			average_match_score=average,
			high_quality_matches=high_quality,
		)
