"""Matching domain exports."""

from . import audit, policy, service  # noqa: F401
from .exceptions import (  # noqa: F401
	DuplicateSwipe,
	InvalidAction,
	MatchingError,
	NotFound,
	SelfSwipe,
	StorageUnavailable,
	Unauthorized,
)
from .models import (  # noqa: F401
	HISTORY_LIMIT,
	RECOMMENDED_LIMIT,
	Connection,
	ConnectionStatus,
	SwipeAction,
	SwipeRecord,
	SwipeResult,
)
from .schemas import ConnectionOut, SwipeRequest, SwipeResultOut  # noqa: F401
