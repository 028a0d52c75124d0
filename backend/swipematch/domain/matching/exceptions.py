"""Domain-level exceptions for swipes, matches and connections."""

from __future__ import annotations


class MatchingError(Exception):
	"""Base class for expected business errors of the matching core."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class SelfSwipe(MatchingError):
	reason = "self_swipe"


class DuplicateSwipe(MatchingError):
	reason = "already_swiped"


class InvalidAction(MatchingError):
	reason = "invalid_action"


class NotFound(MatchingError):
	reason = "not_found"


class Unauthorized(MatchingError):
	reason = "not_participant"


class StorageUnavailable(Exception):
	"""Transient persistence failure; the caller may retry the whole operation."""

	def __init__(self, reason: str = "storage_unavailable") -> None:
		super().__init__(reason)
		self.reason = reason
