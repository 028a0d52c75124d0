import pytest

from swipematch.infra.migrations import MIGRATIONS_DIR, apply_migrations


class _Transaction:
	async def __aenter__(self):
		return self

	async def __aexit__(self, exc_type, exc, tb):
		return False


class FakeConnection:
	def __init__(self, applied=()):
		self.applied = set(applied)
		self.statements = []

	def transaction(self):
		return _Transaction()

	async def execute(self, sql, *args):
		self.statements.append(sql)
		if args:
			self.applied.add(args[0])
		return "OK"

	async def fetch(self, sql, *args):
		return [{"version": version} for version in sorted(self.applied)]


def test_schema_migration_declares_constraints():
	sql = (MIGRATIONS_DIR / "0001_matching.sql").read_text()
	assert "UNIQUE (actor_id, target_id, category_id)" in sql
	assert "UNIQUE (low_user_id, high_user_id, category_id)" in sql
	assert "CHECK (low_user_id < high_user_id)" in sql


@pytest.mark.asyncio
async def test_apply_migrations_runs_pending_files_once():
	conn = FakeConnection()
	assert await apply_migrations(conn) == ["0001"]
	assert await apply_migrations(conn) == []


@pytest.mark.asyncio
async def test_apply_migrations_requires_files(tmp_path):
	with pytest.raises(RuntimeError):
		await apply_migrations(FakeConnection(), tmp_path)
