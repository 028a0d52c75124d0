"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from swipematch.api import matching, ops
from swipematch.api.errors import install_error_handlers
from swipematch.infra import postgres
from swipematch.infra.redis import close_redis
from swipematch.obs import init as obs_init
from swipematch.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	uses_postgres = settings.matching_backend == "postgres"
	if uses_postgres:
		await postgres.init_pool()
	logger.info(
		"swipematch starting",
		extra={"backend": settings.matching_backend, "environment": settings.environment, "commit": settings.git_commit},
	)
	try:
		yield
	finally:
		if uses_postgres:
			await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Swipematch API", lifespan=lifespan)

install_error_handlers(app)
obs_init(app)

app.include_router(matching.router)
app.include_router(ops.router)
