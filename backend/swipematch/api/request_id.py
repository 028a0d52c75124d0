"""Request id lookup for handlers and error responses."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from swipematch.obs import logging as obs_logging


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
    """Id bound by the observability middleware, from ``request.state`` or the log context."""
    rid = getattr(request.state, "request_id", None) if request is not None else None
    return rid or obs_logging.current_request_id() or default
