"""Service layer: the swipe/match orchestrator and connection lifecycle."""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from swipematch.domain.matching import audit, policy
from swipematch.domain.matching.clock import Clock, SystemClock
from swipematch.domain.matching.connections import ConnectionStore
from swipematch.domain.matching.detector import MatchDetector
from swipematch.domain.matching.directory import Directory, MemoryDirectory, PostgresDirectory
from swipematch.domain.matching.exceptions import MatchingError, NotFound
from swipematch.domain.matching.ledger import SwipeLedger
from swipematch.domain.matching.models import (
	HISTORY_LIMIT,
	RECOMMENDED_LIMIT,
	Connection,
	ConnectionStats,
	ConnectionStatus,
	SwipeAction,
	SwipeRecord,
	SwipeResult,
	SwipeStats,
	canonical_pair,
)
from swipematch.domain.matching.repo import (
	MatchingRepository,
	MemoryMatchingRepository,
	PostgresMatchingRepository,
)
from swipematch.domain.matching.scoring import interest_overlap
from swipematch.settings import settings

logger = logging.getLogger(__name__)


class MatchService:
	"""Single entry point that mutates both the swipe ledger and the connection store."""

	def __init__(
		self,
		repository: MatchingRepository,
		directory: Directory,
		clock: Optional[Clock] = None,
	) -> None:
		self.repository = repository
		self.directory = directory
		self.clock = clock or SystemClock()

	async def _ensure_swipe_allowed(self, actor_id: int, target_id: int, category_id: int) -> None:
		if not await self.directory.user_exists(target_id):
			raise NotFound("user_not_found")
		if not await self.directory.is_eligible(target_id):
			raise NotFound("user_not_eligible")
		if not await self.directory.user_exists(actor_id):
			raise NotFound("user_not_found")
		if not await self.directory.category_exists(category_id):
			raise NotFound("category_not_found")

	async def compute_score(self, user_a: int, user_b: int) -> float:
		interests_a = await self.directory.interest_ids(user_a)
		interests_b = await self.directory.interest_ids(user_b)
		return interest_overlap(interests_a, interests_b)

	async def swipe(
		self,
		actor_id: int,
		target_id: int,
		category_id: int,
		action: SwipeAction | str,
	) -> SwipeResult:
		try:
			parsed = policy.parse_action(action)
			policy.guard_not_self(actor_id, target_id)
			await self._ensure_swipe_allowed(actor_id, target_id, category_id)
			# Read before taking the pair lock; a locked session must not wait on a second pool connection
			score = await self.compute_score(actor_id, target_id) if parsed is SwipeAction.LIKE else None
			low, high = canonical_pair(actor_id, target_id)
			async with self.repository.session(lock_key=(low, high, category_id)) as session:
				ledger = SwipeLedger(session, self.clock)
				swipe = await ledger.record_swipe(actor_id, target_id, category_id, parsed)
				matched = await MatchDetector(ledger).check_mutual(swipe)
				connection: Optional[Connection] = None
				created = False
				if matched:
					store = ConnectionStore(session, self.clock)
					connection, created = await store.create_if_absent(actor_id, target_id, category_id, score)
		except MatchingError as exc:
			audit.inc_swipe_rejected(exc.reason)
			logger.info(
				"swipe rejected",
				extra={"actor_id": actor_id, "target_id": target_id, "category_id": category_id, "reason": exc.reason},
			)
			raise

		audit.inc_swipe_recorded(swipe.action.value)
		await audit.log_match_event(
			"swipe_recorded",
			{
				"swipe_id": swipe.id,
				"actor_id": actor_id,
				"target_id": target_id,
				"category_id": category_id,
				"action": swipe.action.value,
			},
		)
		if connection is not None:
			audit.inc_match("created" if created else "existing")
			if created:
				logger.info(
					"match created",
					extra={"connection_id": connection.id, "category_id": category_id, "match_score": connection.match_score},
				)
				await audit.log_match_event(
					"match_created",
					{
						"connection_id": connection.id,
						"low_user_id": connection.low_user_id,
						"high_user_id": connection.high_user_id,
						"category_id": category_id,
						"match_score": connection.match_score,
					},
				)
		return SwipeResult(swipe=swipe, matched=matched, connection=connection)

	async def get_connection(self, connection_id: int, requesting_user_id: int) -> Connection:
		async with self.repository.session() as session:
			connection = await ConnectionStore(session, self.clock).get(connection_id)
		policy.ensure_participant(connection, requesting_user_id)
		return connection

	async def _transition(self, connection_id: int, requesting_user_id: int, action: str) -> Connection:
		try:
			async with self.repository.session() as session:
				store = ConnectionStore(session, self.clock)
				before = await store.get(connection_id)
				policy.ensure_participant(before, requesting_user_id)
				after = await (store.accept(connection_id) if action == "accept" else store.block(connection_id))
		except MatchingError as exc:
			audit.inc_connection_transition(action, exc.reason)
			raise

		changed = after.status is not before.status
		audit.inc_connection_transition(action, "changed" if changed else "unchanged")
		if changed:
			event = "connection_accepted" if action == "accept" else "connection_blocked"
			await audit.log_match_event(
				event,
				{"connection_id": after.id, "user_id": requesting_user_id, "status": after.status.value},
			)
		return after

	async def accept_connection(self, connection_id: int, requesting_user_id: int) -> Connection:
		return await self._transition(connection_id, requesting_user_id, "accept")

	async def block_connection(self, connection_id: int, requesting_user_id: int) -> Connection:
		return await self._transition(connection_id, requesting_user_id, "block")

	async def list_connections(
		self,
		user_id: int,
		*,
		category_id: Optional[int] = None,
		status: Optional[ConnectionStatus | str] = None,
		limit: Optional[int] = None,
	) -> List[Connection]:
		async with self.repository.session() as session:
			return await ConnectionStore(session, self.clock).list_for_user(
				user_id, category_id=category_id, status=status, limit=limit
			)

	async def pending_connections(self, user_id: int) -> List[Connection]:
		async with self.repository.session() as session:
			return await ConnectionStore(session, self.clock).pending(user_id)

	async def recommended_connections(self, user_id: int, limit: int = RECOMMENDED_LIMIT) -> List[Connection]:
		async with self.repository.session() as session:
			return await ConnectionStore(session, self.clock).recommended(user_id, limit)

	async def connection_between(self, user_a: int, user_b: int, category_id: int) -> Optional[Connection]:
		async with self.repository.session() as session:
			return await ConnectionStore(session, self.clock).between(user_a, user_b, category_id)

	async def has_connection(self, user_a: int, user_b: int, category_id: Optional[int] = None) -> bool:
		async with self.repository.session() as session:
			return await ConnectionStore(session, self.clock).has_connection(user_a, user_b, category_id)

	async def connection_statistics(self, user_id: int) -> ConnectionStats:
		async with self.repository.session() as session:
			return await ConnectionStore(session, self.clock).statistics(user_id)

	async def swipe_history(
		self,
		user_id: int,
		*,
		category_id: Optional[int] = None,
		action: Optional[SwipeAction | str] = None,
		limit: int = HISTORY_LIMIT,
	) -> List[SwipeRecord]:
		async with self.repository.session() as session:
			return await SwipeLedger(session, self.clock).history(
				user_id, category_id=category_id, action=action, limit=limit
			)

	async def prior_swipe_targets(self, user_id: int, category_id: int) -> Set[int]:
		async with self.repository.session() as session:
			return await SwipeLedger(session, self.clock).prior_swipe_targets(user_id, category_id)

	async def swipe_statistics(self, user_id: int) -> SwipeStats:
		async with self.repository.session() as session:
			total_connections = await ConnectionStore(session, self.clock).count_for_user(user_id)
			return await SwipeLedger(session, self.clock).statistics(user_id, total_connections=total_connections)


_service: Optional[MatchService] = None


def build_match_service() -> MatchService:
	if settings.matching_backend == "memory":
		return MatchService(MemoryMatchingRepository(), MemoryDirectory())
	return MatchService(PostgresMatchingRepository(), PostgresDirectory())


def get_match_service() -> MatchService:
	global _service
	if _service is None:
		_service = build_match_service()
	return _service


def set_match_service(service: Optional[MatchService]) -> None:
	"""Swap the process-wide service; tests install one wired to in-memory backends."""
	global _service
	_service = service
