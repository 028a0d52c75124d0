import asyncio

import pytest

from swipematch.domain.matching.connections import ConnectionStore
from swipematch.domain.matching.exceptions import (
	DuplicateSwipe,
	InvalidAction,
	NotFound,
	SelfSwipe,
	Unauthorized,
)
from swipematch.domain.matching.models import ConnectionStatus, SwipeAction
from swipematch.obs import metrics
from swipematch.settings import settings

FRIENDS = 1
JOBS = 2
ARCHIVED = 3


async def _match(service, a, b, category=FRIENDS):
	await service.swipe(a, b, category, "like")
	result = await service.swipe(b, a, category, "like")
	assert result.matched
	return result.connection


@pytest.mark.asyncio
async def test_like_then_pass_never_matches(service):
	first = await service.swipe(1, 2, FRIENDS, "like")
	assert first.matched is False
	assert first.connection is None

	second = await service.swipe(2, 1, FRIENDS, "pass")
	assert second.matched is False
	assert second.swipe.action is SwipeAction.PASS
	assert await service.list_connections(1) == []


@pytest.mark.asyncio
async def test_mutual_like_creates_canonical_connection(service):
	await service.swipe(2, 1, FRIENDS, "like")
	result = await service.swipe(1, 2, FRIENDS, "like")

	assert result.matched is True
	connection = result.connection
	assert (connection.low_user_id, connection.high_user_id) == (1, 2)
	assert connection.status is ConnectionStatus.ACCEPTED
	assert connection.category_id == FRIENDS
	# {10, 11, 12} vs {11, 12, 13}
	assert connection.match_score == 0.5
	assert connection.connected_at == service.clock.now()


@pytest.mark.asyncio
async def test_duplicate_swipe_rejected_and_single_record(service):
	await service.swipe(3, 4, FRIENDS, "like")
	with pytest.raises(DuplicateSwipe):
		await service.swipe(3, 4, FRIENDS, "like")
	with pytest.raises(DuplicateSwipe):
		await service.swipe(3, 4, FRIENDS, "pass")

	history = await service.swipe_history(3)
	assert len(history) == 1


@pytest.mark.asyncio
async def test_same_pair_can_swipe_in_other_category(service):
	await service.swipe(3, 4, FRIENDS, "like")
	result = await service.swipe(3, 4, JOBS, "like")
	assert result.swipe.category_id == JOBS


@pytest.mark.asyncio
async def test_non_participant_cannot_block(service):
	connection = await _match(service, 1, 2)
	with pytest.raises(Unauthorized):
		await service.block_connection(connection.id, 5)

	current = await service.get_connection(connection.id, 1)
	assert current.status is ConnectionStatus.ACCEPTED


@pytest.mark.asyncio
async def test_non_participant_cannot_view(service):
	connection = await _match(service, 1, 2)
	with pytest.raises(Unauthorized):
		await service.get_connection(connection.id, 3)


@pytest.mark.asyncio
async def test_self_swipe_rejected_without_record(service):
	with pytest.raises(SelfSwipe):
		await service.swipe(1, 1, FRIENDS, "like")
	assert await service.swipe_history(1) == []


@pytest.mark.asyncio
async def test_invalid_action_rejected(service):
	with pytest.raises(InvalidAction):
		await service.swipe(1, 2, FRIENDS, "superlike")


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"actor,target,category,reason",
	[
		(1, 99, FRIENDS, "user_not_found"),
		(1, 6, FRIENDS, "user_not_eligible"),
		(99, 1, FRIENDS, "user_not_found"),
		(1, 2, 42, "category_not_found"),
		(1, 2, ARCHIVED, "category_not_found"),
	],
)
async def test_swipe_lookups_fail_with_not_found(service, actor, target, category, reason):
	with pytest.raises(NotFound) as exc_info:
		await service.swipe(actor, target, category, "like")
	assert exc_info.value.reason == reason


@pytest.mark.asyncio
async def test_rejections_are_counted(service):
	counter = metrics.SWIPES_REJECTED.labels(reason="self_swipe")
	before = counter._value.get()
	with pytest.raises(SelfSwipe):
		await service.swipe(2, 2, FRIENDS, "like")
	assert counter._value.get() == before + 1


@pytest.mark.asyncio
async def test_accept_and_block_are_idempotent(service):
	connection = await _match(service, 1, 2)

	accepted = await service.accept_connection(connection.id, 1)
	assert accepted.status is ConnectionStatus.ACCEPTED
	accepted_again = await service.accept_connection(connection.id, 2)
	assert accepted_again.status is ConnectionStatus.ACCEPTED

	blocked = await service.block_connection(connection.id, 2)
	assert blocked.status is ConnectionStatus.BLOCKED
	blocked_again = await service.block_connection(connection.id, 1)
	assert blocked_again.status is ConnectionStatus.BLOCKED


@pytest.mark.asyncio
async def test_accept_does_not_reopen_blocked(service):
	connection = await _match(service, 1, 2)
	await service.block_connection(connection.id, 1)
	result = await service.accept_connection(connection.id, 2)
	assert result.status is ConnectionStatus.BLOCKED


@pytest.mark.asyncio
async def test_transition_on_missing_connection(service):
	with pytest.raises(NotFound):
		await service.accept_connection(12345, 1)
	with pytest.raises(NotFound):
		await service.block_connection(12345, 1)


@pytest.mark.asyncio
async def test_status_update_moves_updated_at(service, clock):
	connection = await _match(service, 1, 2)
	clock.advance(hours=2)
	blocked = await service.block_connection(connection.id, 1)
	assert blocked.updated_at == clock.now()
	assert blocked.connected_at == connection.connected_at


@pytest.mark.asyncio
async def test_create_if_absent_is_idempotent(repository, clock):
	async with repository.session() as session:
		store = ConnectionStore(session, clock)
		first, created_first = await store.create_if_absent(4, 3, FRIENDS, 0.5)
		second, created_second = await store.create_if_absent(3, 4, FRIENDS, 0.9)
	assert created_first is True
	assert created_second is False
	assert first.id == second.id
	assert second.match_score == 0.5
	assert (second.low_user_id, second.high_user_id) == (3, 4)


@pytest.mark.asyncio
async def test_concurrent_mutual_likes_create_one_connection(service):
	results = await asyncio.gather(
		service.swipe(1, 2, FRIENDS, "like"),
		service.swipe(2, 1, FRIENDS, "like"),
	)
	assert sum(1 for result in results if result.matched) == 1
	connections = await service.list_connections(1, category_id=FRIENDS)
	assert len(connections) == 1
	matched = next(result for result in results if result.matched)
	assert matched.connection.id == connections[0].id


@pytest.mark.asyncio
async def test_concurrent_duplicate_swipes_only_one_succeeds(service):
	results = await asyncio.gather(
		*(service.swipe(3, 4, FRIENDS, "like") for _ in range(5)),
		return_exceptions=True,
	)
	successes = [result for result in results if not isinstance(result, Exception)]
	failures = [result for result in results if isinstance(result, Exception)]
	assert len(successes) == 1
	assert len(failures) == 4
	assert all(isinstance(failure, DuplicateSwipe) for failure in failures)
	assert len(await service.swipe_history(3)) == 1


@pytest.mark.asyncio
async def test_failed_connection_creation_rolls_back_swipe(service, monkeypatch):
	await service.swipe(1, 2, FRIENDS, "like")

	async def boom(self, *args, **kwargs):
		raise RuntimeError("store down")

	monkeypatch.setattr(ConnectionStore, "create_if_absent", boom)
	with pytest.raises(RuntimeError):
		await service.swipe(2, 1, FRIENDS, "like")
	monkeypatch.undo()

	assert await service.swipe_history(2) == []
	assert await service.list_connections(1) == []

	retried = await service.swipe(2, 1, FRIENDS, "like")
	assert retried.matched is True


@pytest.mark.asyncio
async def test_list_connections_most_recent_first(service, clock):
	older = await _match(service, 1, 2)
	clock.advance(days=1)
	newer = await _match(service, 1, 3, category=JOBS)

	connections = await service.list_connections(1)
	assert [c.id for c in connections] == [newer.id, older.id]

	friends_only = await service.list_connections(1, category_id=FRIENDS)
	assert [c.id for c in friends_only] == [older.id]

	await service.block_connection(older.id, 1)
	blocked = await service.list_connections(1, status="blocked")
	assert [c.id for c in blocked] == [older.id]
	assert await service.list_connections(1, limit=1) == [connections[0]]


@pytest.mark.asyncio
async def test_recommended_connections(service, clock):
	high = await _match(service, 1, 2)  # 0.5
	clock.advance(minutes=1)
	low = await _match(service, 1, 3)  # 0.33
	clock.advance(minutes=1)
	top = await _match(service, 3, 4, category=JOBS)  # 0.5
	recommended = await service.recommended_connections(1)
	assert [c.id for c in recommended] == [high.id]
	assert low.id not in [c.id for c in recommended]

	await service.block_connection(high.id, 2)
	assert await service.recommended_connections(1) == []
	assert [c.id for c in await service.recommended_connections(4)] == [top.id]


@pytest.mark.asyncio
async def test_pending_connections(service, repository, clock):
	connection = await _match(service, 1, 2)
	assert await service.pending_connections(1) == []

	async with repository.session() as session:
		await session.update_connection_status(connection.id, ConnectionStatus.PENDING, clock.now())

	pending = await service.pending_connections(2)
	assert [c.id for c in pending] == [connection.id]
	accepted = await service.accept_connection(connection.id, 2)
	assert accepted.status is ConnectionStatus.ACCEPTED


@pytest.mark.asyncio
async def test_connection_lookups(service):
	connection = await _match(service, 1, 2)
	assert (await service.connection_between(2, 1, FRIENDS)).id == connection.id
	assert await service.connection_between(1, 2, JOBS) is None
	assert await service.has_connection(1, 2)
	assert await service.has_connection(2, 1, FRIENDS)
	assert not await service.has_connection(1, 2, JOBS)
	assert not await service.has_connection(1, 1)


@pytest.mark.asyncio
async def test_swipe_history_and_targets(service, clock):
	await service.swipe(1, 2, FRIENDS, "like")
	clock.advance(minutes=5)
	await service.swipe(1, 3, FRIENDS, "pass")
	clock.advance(minutes=5)
	await service.swipe(1, 4, JOBS, "like")

	history = await service.swipe_history(1)
	assert [s.target_id for s in history] == [4, 3, 2]
	likes = await service.swipe_history(1, action="like")
	assert [s.target_id for s in likes] == [4, 2]
	friends = await service.swipe_history(1, category_id=FRIENDS, limit=1)
	assert [s.target_id for s in friends] == [3]

	assert await service.prior_swipe_targets(1, FRIENDS) == {2, 3}
	assert await service.prior_swipe_targets(1, JOBS) == {4}


@pytest.mark.asyncio
async def test_swipe_statistics(service, clock):
	empty = await service.swipe_statistics(1)
	assert empty.total_swipes == 0
	assert empty.like_percentage == 0.0
	assert empty.connection_rate == 0.0
	assert empty.by_category == {}

	await service.swipe(1, 2, FRIENDS, "like")
	await service.swipe(1, 3, FRIENDS, "pass")
	await service.swipe(1, 4, JOBS, "like")
	await service.swipe(2, 1, FRIENDS, "like")

	stats = await service.swipe_statistics(1)
	assert (stats.total_swipes, stats.total_likes, stats.total_passes) == (3, 2, 1)
	assert stats.like_percentage == 66.7
	assert stats.total_connections == 1
	assert stats.connection_rate == 50.0
	assert stats.by_category[FRIENDS].likes == 1
	assert stats.by_category[FRIENDS].passes == 1
	assert stats.by_category[JOBS].total == 1
	assert stats.swipes_last_week == 3

	clock.advance(days=8)
	await service.swipe(1, 4, FRIENDS, "like")
	later = await service.swipe_statistics(1)
	assert later.swipes_last_week == 1
	assert later.swipes_last_month == 4


@pytest.mark.asyncio
async def test_connection_statistics(service, repository, clock):
	empty = await service.connection_statistics(1)
	assert empty.total_connections == 0
	assert empty.average_match_score == 0.0

	await _match(service, 1, 2)
	clock.advance(days=10)
	await _match(service, 1, 4, category=JOBS)
	blocked = await _match(service, 1, 3)
	await service.block_connection(blocked.id, 3)
	async with repository.session() as session:
		await session.insert_connection_if_absent(1, 5, JOBS, 0.8, clock.now())

	stats = await service.connection_statistics(1)
	assert stats.total_connections == 4
	assert (stats.accepted_connections, stats.pending_connections, stats.blocked_connections) == (3, 0, 1)
	assert stats.acceptance_rate == 75.0
	assert (stats.by_category[FRIENDS].accepted, stats.by_category[FRIENDS].blocked) == (1, 1)
	assert stats.by_category[JOBS].total == 2
	assert stats.connections_this_week == 3
	assert stats.connections_this_month == 4
	# 0.5, 0.25, 0.33 and 0.8
	assert stats.average_match_score == 0.47
	assert stats.high_quality_matches == 1

	other = await service.connection_statistics(2)
	assert other.total_connections == 1
	assert other.connections_this_week == 0


@pytest.mark.asyncio
async def test_compute_score(service):
	assert await service.compute_score(1, 2) == await service.compute_score(2, 1) == 0.5
	assert await service.compute_score(1, 5) == 0.0
	assert await service.compute_score(1, 1) == 1.0


@pytest.mark.asyncio
async def test_audit_events_written_to_stream(service, fake_redis):
	connection = await _match(service, 1, 2)
	await service.block_connection(connection.id, 1)

	entries = await fake_redis.xrange(settings.match_events_stream)
	events = [fields["event"] for _, fields in entries]
	assert events == ["swipe_recorded", "swipe_recorded", "match_created", "connection_blocked"]
	match_fields = entries[2][1]
	assert match_fields["low_user_id"] == "1"
	assert match_fields["high_user_id"] == "2"
	assert match_fields["match_score"] == "0.5"


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_swipe(service, fake_redis, monkeypatch):
	async def broken_xadd(*args, **kwargs):
		raise ConnectionError("redis down")

	monkeypatch.setattr(fake_redis, "xadd", broken_xadd)
	counter = metrics.AUDIT_FAILURES.labels(event="swipe_recorded")
	before = counter._value.get()

	result = await service.swipe(1, 2, FRIENDS, "like")

	assert result.swipe.target_id == 2
	assert counter._value.get() == before + 1
	assert len(await service.swipe_history(1)) == 1
