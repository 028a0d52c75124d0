"""Redis client used for the matching audit stream and readiness probes.

Callers import ``redis_client``, a proxy whose target can be replaced at runtime
(fakeredis in tests) without invalidating references already imported.
"""

from __future__ import annotations

import redis.asyncio as redis

from swipematch.settings import settings


class RedisProxy:
	def __init__(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	def __getattr__(self, item):
		return getattr(self._client, item)


def _build_client() -> redis.Redis:
	return redis.from_url(
		settings.redis_url,
		decode_responses=True,
		socket_timeout=settings.redis_socket_timeout,
		health_check_interval=30,
	)


redis_client = RedisProxy(_build_client())


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


async def close_redis() -> None:
	await redis_client.client.aclose()
