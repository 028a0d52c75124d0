"""Time sources injected into the ledger, store and service."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
	def now(self) -> datetime: ...


class SystemClock:
	def now(self) -> datetime:
		return datetime.now(timezone.utc)


class FrozenClock:
	"""Deterministic clock for tests and replay tooling."""

	def __init__(self, start: datetime) -> None:
		if start.tzinfo is None:
			start = start.replace(tzinfo=timezone.utc)
		self._now = start

	def now(self) -> datetime:
		return self._now

	def advance(self, **delta: float) -> datetime:
		self._now = self._now + timedelta(**delta)
		return self._now
