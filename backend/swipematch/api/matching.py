"""REST API surface for swipes, matches and connections."""

from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from swipematch.domain.matching import scoring
from swipematch.domain.matching.exceptions import (
	DuplicateSwipe,
	InvalidAction,
	MatchingError,
	NotFound,
	SelfSwipe,
	Unauthorized,
)
from swipematch.domain.matching.models import HISTORY_LIMIT, RECOMMENDED_LIMIT
from swipematch.domain.matching.schemas import (
	ConnectionOut,
	ConnectionStatsOut,
	ScoreOut,
	SwipeOut,
	SwipeRequest,
	SwipeResultOut,
	SwipeStatsOut,
	SwipeTargetsOut,
)
from swipematch.domain.matching.service import MatchService, get_match_service
from swipematch.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["matching"])


def _map_error(exc: MatchingError) -> HTTPException:
	if isinstance(exc, (SelfSwipe, InvalidAction)):
		return HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.reason)
	if isinstance(exc, DuplicateSwipe):
		return HTTPException(status.HTTP_409_CONFLICT, detail=exc.reason)
	if isinstance(exc, NotFound):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
	if isinstance(exc, Unauthorized):
		return HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)


def _project(service: MatchService, connections, viewer_id: int) -> List[ConnectionOut]:
	now = service.clock.now()
	return [ConnectionOut.project(connection, viewer_id, now) for connection in connections]


@router.post("/swipes", response_model=SwipeResultOut, status_code=status.HTTP_201_CREATED)
async def create_swipe(
	payload: SwipeRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> SwipeResultOut:
	try:
		result = await service.swipe(auth_user.id, payload.target_id, payload.category_id, payload.action)
	except MatchingError as exc:
		raise _map_error(exc) from None
	return SwipeResultOut.from_domain(result, auth_user.id, service.clock.now())


@router.get("/swipes/history", response_model=List[SwipeOut])
async def swipe_history(
	category_id: Optional[int] = Query(default=None, gt=0),
	action: Optional[str] = Query(default=None),
	limit: int = Query(default=HISTORY_LIMIT, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> List[SwipeOut]:
	try:
		swipes = await service.swipe_history(auth_user.id, category_id=category_id, action=action, limit=limit)
	except MatchingError as exc:
		raise _map_error(exc) from None
	return [SwipeOut.from_domain(swipe) for swipe in swipes]


@router.get("/swipes/targets", response_model=SwipeTargetsOut)
async def swipe_targets(
	category_id: int = Query(..., gt=0),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> SwipeTargetsOut:
	targets = await service.prior_swipe_targets(auth_user.id, category_id)
	return SwipeTargetsOut(category_id=category_id, target_ids=sorted(targets))


@router.get("/swipes/stats", response_model=SwipeStatsOut)
async def swipe_stats(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> SwipeStatsOut:
	return SwipeStatsOut.from_domain(await service.swipe_statistics(auth_user.id))


@router.get("/connections", response_model=List[ConnectionOut])
async def list_connections(
	category_id: Optional[int] = Query(default=None, gt=0),
	status_filter: Optional[Literal["pending", "accepted", "blocked"]] = Query(default=None, alias="status"),
	limit: Optional[int] = Query(default=None, ge=1, le=200),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> List[ConnectionOut]:
	connections = await service.list_connections(
		auth_user.id, category_id=category_id, status=status_filter, limit=limit
	)
	return _project(service, connections, auth_user.id)


@router.get("/connections/pending", response_model=List[ConnectionOut])
async def pending_connections(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> List[ConnectionOut]:
	connections = await service.pending_connections(auth_user.id)
	return _project(service, connections, auth_user.id)


@router.get("/connections/recommended", response_model=List[ConnectionOut])
async def recommended_connections(
	limit: int = Query(default=RECOMMENDED_LIMIT, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> List[ConnectionOut]:
	connections = await service.recommended_connections(auth_user.id, limit)
	return _project(service, connections, auth_user.id)


@router.get("/connections/stats", response_model=ConnectionStatsOut)
async def connection_stats(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> ConnectionStatsOut:
	return ConnectionStatsOut.from_domain(await service.connection_statistics(auth_user.id))


@router.get("/connections/{connection_id}", response_model=ConnectionOut)
async def get_connection(
	connection_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> ConnectionOut:
	try:
		connection = await service.get_connection(connection_id, auth_user.id)
	except MatchingError as exc:
		raise _map_error(exc) from None
	return ConnectionOut.project(connection, auth_user.id, service.clock.now())


@router.post("/connections/{connection_id}/accept", response_model=ConnectionOut)
async def accept_connection(
	connection_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> ConnectionOut:
	try:
		connection = await service.accept_connection(connection_id, auth_user.id)
	except MatchingError as exc:
		raise _map_error(exc) from None
	return ConnectionOut.project(connection, auth_user.id, service.clock.now())


@router.post("/connections/{connection_id}/block", response_model=ConnectionOut)
async def block_connection(
	connection_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> ConnectionOut:
	try:
		connection = await service.block_connection(connection_id, auth_user.id)
	except MatchingError as exc:
		raise _map_error(exc) from None
	return ConnectionOut.project(connection, auth_user.id, service.clock.now())


@router.get("/scores/{other_user_id}", response_model=ScoreOut)
async def interest_score(
	other_user_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_match_service),
) -> ScoreOut:
	score = await service.compute_score(auth_user.id, other_user_id)
	return ScoreOut(
		user_id=auth_user.id,
		other_user_id=other_user_id,
		score=score,
		display=scoring.score_display(score),
		level=scoring.score_level(score),
	)
