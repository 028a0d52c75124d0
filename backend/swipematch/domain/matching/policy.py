"""Guard checks and transition rules for swipes and connections."""

from __future__ import annotations

from swipematch.domain.matching.exceptions import InvalidAction, SelfSwipe, Unauthorized
from swipematch.domain.matching.models import Connection, ConnectionStatus, SwipeAction

# Participant-facing transitions; there is no "unblock".
_TRANSITIONS = {
	"accept": ConnectionStatus.ACCEPTED,
	"block": ConnectionStatus.BLOCKED,
}


def guard_not_self(actor_id: int, target_id: int) -> None:
	if actor_id == target_id:
		raise SelfSwipe()


def parse_action(action: str | SwipeAction) -> SwipeAction:
	if isinstance(action, SwipeAction):
		return action
	try:
		return SwipeAction(str(action).strip().lower())
	except ValueError:
		raise InvalidAction() from None


def ensure_participant(connection: Connection, user_id: int) -> None:
	if not connection.involves_user(user_id):
		raise Unauthorized()


def next_status(current: ConnectionStatus, action: str) -> ConnectionStatus:
	"""Status after applying a participant action.

	accept never lifts a block.
	"""
	target = _TRANSITIONS.get(action)
	if target is None:
		raise ValueError(f"unknown connection action: {action}")
	if target is ConnectionStatus.ACCEPTED and current is ConnectionStatus.BLOCKED:
		return current
	return target
