"""Observability bootstrap: JSON logging plus the request middleware."""

from __future__ import annotations

from fastapi import FastAPI

from swipematch.obs import logging as obs_logging
from swipematch.obs.middleware import ObservabilityMiddleware
from swipematch.settings import settings


def init(app: FastAPI) -> None:
	"""Idempotent; the middleware is installed even with observability off so request ids still flow."""
	if getattr(app.state, "obs_initialised", False):
		return
	if settings.obs_enabled:
		obs_logging.configure_logging()
	app.add_middleware(ObservabilityMiddleware)
	app.state.obs_initialised = True


__all__ = ["init"]
