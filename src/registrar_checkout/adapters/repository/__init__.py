"""Repository adapters - Database implementations."""

from .postgres import PostgresOrderRepository, PostgresPendingDomainRepository, run_migrations

__all__ = ["PostgresOrderRepository", "PostgresPendingDomainRepository", "run_migrations"]
