"""Pydantic schemas for swipes and connections."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from swipematch.domain.matching import scoring
from swipematch.domain.matching.models import Connection, ConnectionStats, SwipeRecord, SwipeResult, SwipeStats


class SwipeRequest(BaseModel):
	target_id: int = Field(..., gt=0, description="User being swiped on")
	category_id: int = Field(..., gt=0, description="Category the decision applies to")
	# Kept as a plain string so unknown actions surface as invalid_action rather than a schema error
	action: str = Field(..., description="like or pass")


class SwipeOut(BaseModel):
	id: int
	actor_id: int
	target_id: int
	category_id: int
	action: Literal["like", "pass"]
	swiped_at: datetime

	@classmethod
	def from_domain(cls, swipe: SwipeRecord) -> "SwipeOut":
		return cls(
			id=swipe.id,
			actor_id=swipe.actor_id,
			target_id=swipe.target_id,
			category_id=swipe.category_id,
			action=swipe.action.value,
			swiped_at=swipe.swiped_at,
		)


class ConnectionOut(BaseModel):
	id: int
	low_user_id: int
	high_user_id: int
	category_id: int
	status: Literal["pending", "accepted", "blocked"]
	match_score: Optional[float] = None
	connected_at: datetime
	updated_at: datetime
	other_user_id: Optional[int] = None
	match_score_display: str = "N/A"
	match_score_level: str = "Unknown"
	age_in_days: int = 0
	is_new: bool = False

	@classmethod
	def project(cls, connection: Connection, viewer_id: int, now: datetime) -> "ConnectionOut":
		return cls(
			id=connection.id,
			low_user_id=connection.low_user_id,
			high_user_id=connection.high_user_id,
			category_id=connection.category_id,
			status=connection.status.value,
			match_score=connection.match_score,
			connected_at=connection.connected_at,
			updated_at=connection.updated_at,
			other_user_id=connection.other_user_id(viewer_id),
			match_score_display=scoring.score_display(connection.match_score),
			match_score_level=scoring.score_level(connection.match_score),
			age_in_days=connection.age_in_days(now),
			is_new=connection.is_new(now),
		)


class SwipeResultOut(BaseModel):
	swipe: SwipeOut
	matched: bool
	connection: Optional[ConnectionOut] = None

	@classmethod
	def from_domain(cls, result: SwipeResult, viewer_id: int, now: datetime) -> "SwipeResultOut":
		return cls(
			swipe=SwipeOut.from_domain(result.swipe),
			matched=result.matched,
			connection=ConnectionOut.project(result.connection, viewer_id, now) if result.connection else None,
		)


class SwipeTargetsOut(BaseModel):
	category_id: int
	target_ids: List[int]


class ScoreOut(BaseModel):
	user_id: int
	other_user_id: int
	score: float
	display: str
	level: str


class CategoryCountsOut(BaseModel):
	likes: int
	passes: int
	total: int


class SwipeStatsOut(BaseModel):
	total_swipes: int
	total_likes: int
	total_passes: int
	like_percentage: float
	total_connections: int
	connection_rate: float
	by_category: Dict[int, CategoryCountsOut]
	swipes_last_week: int
	swipes_last_month: int

	@classmethod
	def from_domain(cls, stats: SwipeStats) -> "SwipeStatsOut":
		return cls(
			total_swipes=stats.total_swipes,
			total_likes=stats.total_likes,
			total_passes=stats.total_passes,
			like_percentage=stats.like_percentage,
			total_connections=stats.total_connections,
			connection_rate=stats.connection_rate,
			by_category={
				category_id: CategoryCountsOut(likes=counts.likes, passes=counts.passes, total=counts.total)
				for category_id, counts in stats.by_category.items()
			},
			swipes_last_week=stats.swipes_last_week,
			swipes_last_month=stats.swipes_last_month,
		)


class CategoryConnectionsOut(BaseModel):
	total: int
	accepted: int
	pending: int
	blocked: int


class ConnectionStatsOut(BaseModel):
	total_connections: int
	accepted_connections: int
	pending_connections: int
	blocked_connections: int
	acceptance_rate: float
	by_category: Dict[int, CategoryConnectionsOut]
	connections_this_week: int
	connections_this_month: int
	average_match_score: float
	high_quality_matches: int

	@classmethod
	def from_domain(cls, stats: ConnectionStats) -> "ConnectionStatsOut":
		return cls(
			total_connections=stats.total_connections,
			accepted_connections=stats.accepted_connections,
			pending_connections=stats.pending_connections,
			blocked_connections=stats.blocked_connections,
			acceptance_rate=stats.acceptance_rate,
			by_category={
				category_id: CategoryConnectionsOut(
					total=counts.total,
					accepted=counts.accepted,
					pending=counts.pending,
					blocked=counts.blocked,
				)
				for category_id, counts in stats.by_category.items()
			},
			connections_this_week=stats.connections_this_week,
			connections_this_month=stats.connections_this_month,
			average_match_score=stats.average_match_score,
			high_quality_matches=stats.high_quality_matches,
		)
