"""Append-only record of swipe decisions."""

from __future__ import annotations

from datetime import timedelta
from typing import List, Optional, Set

from swipematch.domain.matching import policy
from swipematch.domain.matching.clock import Clock
from swipematch.domain.matching.models import (
	HISTORY_LIMIT,
	RECENT_MONTH_DAYS,
	RECENT_WEEK_DAYS,
	SwipeAction,
	SwipeRecord,
	SwipeStats,
)
from swipematch.domain.matching.repo import MatchingSession


class SwipeLedger:
	"""Swipe operations bound to one storage session.

	Rows are only ever inserted. A second decision by the same actor about the
	same target in the same category is rejected with ``DuplicateSwipe``.
	"""

	def __init__(self, session: MatchingSession, clock: Clock) -> None:
		self._session = session
		self._clock = clock

	async def record_swipe(
		self, actor_id: int, target_id: int, category_id: int, action: SwipeAction | str
	) -> SwipeRecord:
		policy.guard_not_self(actor_id, target_id)
		parsed = policy.parse_action(action)
		return await self._session.insert_swipe(actor_id, target_id, category_id, parsed, self._clock.now())

	async def has_liked(self, actor_id: int, target_id: int, category_id: int) -> bool:
		return await self._session.has_swipe(actor_id, target_id, category_id, SwipeAction.LIKE)

	async def has_swiped(self, actor_id: int, target_id: int, category_id: int) -> bool:
		return await self._session.has_swipe(actor_id, target_id, category_id)

	async def prior_swipe_targets(self, actor_id: int, category_id: int) -> Set[int]:
		return await self._session.swipe_targets(actor_id, category_id)

	async def history(
		self,
		actor_id: int,
		*,
		category_id: Optional[int] = None,
		action: Optional[SwipeAction | str] = None,
		limit: int = HISTORY_LIMIT,
	) -> List[SwipeRecord]:
		parsed = policy.parse_action(action) if action is not None else None
		return await self._session.list_swipes(
			actor_id,
			category_id=category_id,
			action=parsed,
			limit=max(1, limit),
		)

	async def statistics(self, actor_id: int, *, total_connections: int) -> SwipeStats:
		now = self._clock.now()
		counts = await self._session.swipe_counts(actor_id)
		last_week = await self._session.count_swipes_since(actor_id, now - timedelta(days=RECENT_WEEK_DAYS))
		last_month = await self._session.count_swipes_since(actor_id, now - timedelta(days=RECENT_MONTH_DAYS))
		return SwipeStats.build(
			counts,
			total_connections=total_connections,
			swipes_last_week=last_week,
			swipes_last_month=last_month,
		)
