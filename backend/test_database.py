"""
Tests for engine option selection per DATABASE_URL.
Run: python -m pytest test_database.py -v
"""
from sqlalchemy.pool import NullPool

from command_center.core.database import _postgres_options


def test_local_postgres_uses_pool_without_ssl():
    options = _postgres_options("postgresql+asyncpg://u:p@localhost:5432/db")
    assert options["connect_args"] == {}
    assert options["pool_size"] == 5


def test_supabase_transaction_pooler_disables_statement_cache():
    options = _postgres_options("postgresql+asyncpg://u:p@aws-0.pooler.supabase.com:6543/postgres")
    assert options["poolclass"] is NullPool
    assert options["connect_args"]["statement_cache_size"] == 0
    assert options["connect_args"]["ssl"] is True
