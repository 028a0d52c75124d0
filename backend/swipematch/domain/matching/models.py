"""Domain models for swipes and connections."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from swipematch.domain.matching.scoring import round_half_up


class SwipeAction(str, Enum):
	"""Decisions a user can record about a candidate."""

	LIKE = "like"
	PASS = "pass"


class ConnectionStatus(str, Enum):
	"""Connection states tracked in the database."""

	PENDING = "pending"
	ACCEPTED = "accepted"
	BLOCKED = "blocked"


NEW_CONNECTION_DAYS = 3
RECOMMENDED_MIN_SCORE = 0.5
RECOMMENDED_LIMIT = 10
HISTORY_LIMIT = 20
RECENT_WEEK_DAYS = 7
RECENT_MONTH_DAYS = 30
HIGH_QUALITY_SCORE = 0.7


def canonical_pair(user_a: int, user_b: int) -> Tuple[int, int]:
	"""Return the (low, high) key used for every unordered pair."""
	if user_a == user_b:
		raise ValueError("a connection needs two distinct users")
	return (user_a, user_b) if user_a < user_b else (user_b, user_a)


@dataclass(slots=True, frozen=True)
class SwipeRecord:
	"""Immutable ledger entry: one decision by actor about target within a category."""

	id: int
	actor_id: int
	target_id: int
	category_id: int
	action: SwipeAction
	swiped_at: datetime

	@property
	def is_like(self) -> bool:
		return self.action is SwipeAction.LIKE

	@classmethod
	def from_record(cls, record) -> "SwipeRecord":
		return cls(
			id=int(record["id"]),
			actor_id=int(record["actor_id"]),
			target_id=int(record["target_id"]),
			category_id=int(record["category_id"]),
			action=SwipeAction(record["action"]),
			swiped_at=record["swiped_at"],
		)


@dataclass(slots=True)
class Connection:
	"""Relationship between an unordered pair of users within one category."""

	id: int
	low_user_id: int
	high_user_id: int
	category_id: int
	status: ConnectionStatus
	match_score: Optional[float]
	connected_at: datetime
	updated_at: datetime

	def __post_init__(self) -> None:
		if not self.low_user_id < self.high_user_id:
			raise ValueError(
				f"connection users must be canonically ordered: {self.low_user_id} < {self.high_user_id}"
			)
		self.status = ConnectionStatus(self.status)
		if self.match_score is not None and not 0.0 <= self.match_score <= 1.0:
			raise ValueError(f"match_score out of range: {self.match_score}")

	@property
	def pair(self) -> Tuple[int, int]:
		return (self.low_user_id, self.high_user_id)

	def involves_user(self, user_id: int) -> bool:
		return user_id in (self.low_user_id, self.high_user_id)

	def other_user_id(self, user_id: int) -> Optional[int]:
		if user_id == self.low_user_id:
			return self.high_user_id
		if user_id == self.high_user_id:
			return self.low_user_id
		return None

	def age_in_days(self, now: datetime) -> int:
		return max(0, (now - self.connected_at).days)

	def is_new(self, now: datetime) -> bool:
		return self.age_in_days(now) <= NEW_CONNECTION_DAYS

	@classmethod
	def from_record(cls, record) -> "Connection":
		score = record["match_score"]
		return cls(
			id=int(record["id"]),
			low_user_id=int(record["low_user_id"]),
			high_user_id=int(record["high_user_id"]),
			category_id=int(record["category_id"]),
			status=ConnectionStatus(record["status"]),
			match_score=float(score) if score is not None else None,
			connected_at=record["connected_at"],
			updated_at=record["updated_at"],
		)


@dataclass(slots=True, frozen=True)
class SwipeResult:
	"""Outcome of a single swipe as reported to the caller."""

	swipe: SwipeRecord
	matched: bool
	connection: Optional[Connection] = None


@dataclass(slots=True, frozen=True)
class CategorySwipeCounts:
	likes: int = 0
	passes: int = 0

	@property
	def total(self) -> int:
		return self.likes + self.passes


def _percentage(part: int, whole: int) -> float:
	return round_half_up(part / whole * 100, 1) if whole else 0.0


@dataclass(slots=True, frozen=True)
class SwipeStats:
	"""Aggregate swipe activity for one user."""

	total_swipes: int
	total_likes: int
	total_passes: int
	like_percentage: float
	total_connections: int
	connection_rate: float
	by_category: Dict[int, CategorySwipeCounts]
	swipes_last_week: int
	swipes_last_month: int

	@classmethod
	def build(
		cls,
		counts: Mapping[Tuple[int, SwipeAction], int],
		*,
		total_connections: int,
		swipes_last_week: int,
		swipes_last_month: int,
	) -> "SwipeStats":
		by_category: Dict[int, CategorySwipeCounts] = {}
		for (category_id, action), count in sorted(counts.items(), key=lambda item: (item[0][0], item[0][1].value)):
			current = by_category.get(category_id, CategorySwipeCounts())
			if action is SwipeAction.LIKE:
				current = CategorySwipeCounts(likes=current.likes + count, passes=current.passes)
			else:
				current = CategorySwipeCounts(likes=current.likes, passes=current.passes + count)
			by_category[category_id] = current
		likes = sum(entry.likes for entry in by_category.values())
		passes = sum(entry.passes for entry in by_category.values())
		return cls(
			total_swipes=likes + passes,
			total_likes=likes,
			total_passes=passes,
			like_percentage=_percentage(likes, likes + passes),
			total_connections=total_connections,
			connection_rate=_percentage(total_connections, likes),
			by_category=by_category,
			swipes_last_week=swipes_last_week,
			swipes_last_month=swipes_last_month,
		)


@dataclass(slots=True, frozen=True)
class CategoryConnectionCounts:
	accepted: int = 0
	pending: int = 0
	blocked: int = 0

	@property
	def total(self) -> int:
		return self.accepted + self.pending + self.blocked

	def add(self, status: ConnectionStatus, count: int) -> "CategoryConnectionCounts":
		if status is ConnectionStatus.ACCEPTED:
			return CategoryConnectionCounts(self.accepted + count, self.pending, self.blocked)
		if status is ConnectionStatus.PENDING:
			return CategoryConnectionCounts(self.accepted, self.pending + count, self.blocked)
		return CategoryConnectionCounts(self.accepted, self.pending, self.blocked + count)


@dataclass(slots=True, frozen=True)
class ConnectionStats:
	"""Aggregate connection activity and match quality for one user.

	``average_match_score`` ignores connections without a positive score and is
	0.0 when none have one. ``high_quality_matches`` counts scores of at least
	``HIGH_QUALITY_SCORE``.
	"""

	total_connections: int
	accepted_connections: int
	pending_connections: int
	blocked_connections: int
	acceptance_rate: float
	by_category: Dict[int, CategoryConnectionCounts]
	connections_this_week: int
	connections_this_month: int
	average_match_score: float
	high_quality_matches: int

	@classmethod
	def build(
		cls,
		counts: Mapping[Tuple[int, ConnectionStatus], int],
		*,
		connections_this_week: int,
		connections_this_month: int,
		average_match_score: Optional[float],
		high_quality_matches: int,
	) -> "ConnectionStats":
		by_category: Dict[int, CategoryConnectionCounts] = {}
		for (category_id, status), count in sorted(counts.items(), key=lambda item: (item[0][0], item[0][1].value)):
			by_category[category_id] = by_category.get(category_id, CategoryConnectionCounts()).add(status, count)
		accepted = sum(entry.accepted for entry in by_category.values())
		pending = sum(entry.pending for entry in by_category.values())
		blocked = sum(entry.blocked for entry in by_category.values())
		total = accepted + pending + blocked
		return cls(
			total_connections=total,
			accepted_connections=accepted,
			pending_connections=pending,
			blocked_connections=blocked,
			acceptance_rate=_percentage(accepted, total),
			by_category=by_category,
			connections_this_week=connections_this_week,
			connections_this_month=connections_this_month,
			average_match_score=round_half_up(average_match_score, 2) if average_match_score else 0.0,
			high_quality_matches=high_quality_matches,
		)
