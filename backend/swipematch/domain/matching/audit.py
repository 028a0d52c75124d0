"""Audit stream and metric helpers for swipes and connections."""

from __future__ import annotations

import logging
from typing import Dict

from swipematch.infra.redis import redis_client
from swipematch.obs import metrics as obs_metrics
from swipematch.settings import settings

logger = logging.getLogger(__name__)


async def log_match_event(event: str, fields: Dict[str, object]) -> None:
	"""Append to the matching events stream.

	Runs after the unit of work commits, so a Redis failure is logged and counted
	but never reported to the caller.
	"""
	payload = {"event": event, **{key: "" if value is None else str(value) for key, value in fields.items()}}
	try:
		await redis_client.xadd(
			settings.match_events_stream,
			payload,
			maxlen=settings.match_events_maxlen,
			approximate=True,
		)
	except Exception:
		logger.exception("failed to append matching audit event", extra={"event": event})
		obs_metrics.inc_audit_failure(event)


def inc_swipe_recorded(action: str) -> None:
	obs_metrics.inc_swipe_recorded(action)


def inc_swipe_rejected(reason: str) -> None:
	obs_metrics.inc_swipe_rejected(reason)


def inc_match(result: str) -> None:
	obs_metrics.inc_match(result)


def inc_connection_transition(action: str, result: str) -> None:
	obs_metrics.inc_connection_transition(action, result)
