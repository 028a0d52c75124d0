"""Apply SQL migrations from backend/migrations in filename order.

Usage: ``python -m swipematch.infra.migrations``
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
from typing import List, Optional

import asyncpg

from swipematch.settings import settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = pathlib.Path(__file__).resolve().parents[2] / "migrations"


async def apply_migrations(conn: asyncpg.Connection, directory: pathlib.Path = MIGRATIONS_DIR) -> List[str]:
	"""Run every not-yet-applied ``NNNN_name.sql`` file; returns the versions applied."""
	paths = sorted(directory.glob("*.sql"))
	if not paths:
		raise RuntimeError(f"no migration files found in {directory}")
	await conn.execute(
		"""
		CREATE TABLE IF NOT EXISTS schema_migrations (
			version TEXT PRIMARY KEY,
			applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
		)
		"""
	)
	applied = {row["version"] for row in await conn.fetch("SELECT version FROM schema_migrations")}
	newly_applied: List[str] = []
	for path in paths:
		version = path.name.split("_", 1)[0]
		if version in applied:
			continue
		async with conn.transaction():
			await conn.execute(path.read_text())
			await conn.execute(
				"INSERT INTO schema_migrations (version) VALUES ($1) ON CONFLICT (version) DO NOTHING",
				version,
			)
		logger.info("applied migration", extra={"migration": path.name})
		newly_applied.append(version)
	return newly_applied


async def _main(dsn: Optional[str] = None) -> None:
	conn = await asyncpg.connect(dsn or settings.postgres_url, ssl="require" if settings.postgres_ssl else None)
	try:
		await apply_migrations(conn)
	finally:
		await conn.close()


if __name__ == "__main__":
	logging.basicConfig(level=logging.INFO)
	asyncio.run(_main())
