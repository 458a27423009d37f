"""
Shared fixtures for adversarial tests.

Concurrency and tampering scenarios run against a real PostgreSQL database (DATABASE_URL)
and are skipped when it cannot be reached.
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from registrar_checkout.adapters.repository.postgres import run_migrations
from registrar_checkout.config.settings import get_settings

TABLES = "domain_status_events, order_domains, orders, pending_domains, charge_rejections"


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for adversarial tests, with the schema applied."""
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=True)
    try:
        pool.wait(timeout=5.0)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty every table before each test."""
    with pool.connection() as conn:
        conn.execute(f"TRUNCATE {TABLES}")
        conn.commit()
    yield
