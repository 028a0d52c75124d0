"""Reciprocity check between two swipes."""

from __future__ import annotations

from swipematch.domain.matching.ledger import SwipeLedger
from swipematch.domain.matching.models import SwipeRecord


class MatchDetector:
	def __init__(self, ledger: SwipeLedger) -> None:
		self._ledger = ledger

	async def check_mutual(self, swipe: SwipeRecord) -> bool:
		"""True when ``swipe`` is a like and the target already liked the actor back."""
		if not swipe.is_like:
			return False
		return await self._ledger.has_liked(swipe.target_id, swipe.actor_id, swipe.category_id)
