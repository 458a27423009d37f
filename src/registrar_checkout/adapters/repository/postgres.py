"""
PostgreSQL repository adapters - Implement the order and pending domain ports.

This module provides the PostgreSQL implementation of the domain's
repository ports using psycopg3 with raw SQL.

Concurrency Design
------------------
No transaction spans a whole checkout (registrar calls cannot take part
in one). Correctness under duplicate or concurrent checkouts rests on
constraints and single-statement updates:

1. **orders_gateway_charge_id_key**: UNIQUE(gateway_charge_id). The
   second insert for a charge fails with UniqueViolation, surfaced as
   DuplicateCharge so the caller can return the winning order.

2. **Order insert is one transaction**: the order row, its domain
   outcomes and their initial status events commit together or not at all.

3. **Outcome sync locks the outcome row** (SELECT ... FOR UPDATE) and only
   writes when the status changes, so repeated syncs append no duplicate
   events.

4. **Pending transitions are conditional UPDATEs** (WHERE status = ...),
   so two operators cannot claim or resolve the same record twice, and an
   admin resolution cannot overwrite a record a running retry has claimed.
"""

import logging
import uuid
from pathlib import Path
from typing import Any

from psycopg.errors import UniqueViolation
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from registrar_checkout.domain.exceptions import DuplicateCharge
from registrar_checkout.domain.models import (
    ChargeRejection,
    DomainOutcome,
    Order,
    PaymentVerificationSnapshot,
    PendingDomainRecord,
    StatusEvent,
)
from registrar_checkout.domain.ports import DomainStatus, OrderStatus, PendingStatus

logger = logging.getLogger(__name__)

CHARGE_ID_CONSTRAINT = "orders_gateway_charge_id_key"

_ORDER_COLUMNS = """
    order_id, invoice_number, payment_id, user_id, gateway_charge_id,
    gateway_order_id, gateway_signature, amount, currency, status,
    successful_domains, verified_at, verified_payment_status,
    verified_payment_amount, verified_payment_currency,
    verified_gateway_order_id, created_at, updated_at
"""


class PostgresOrderRepository:
    """
    Implements OrderRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def find_by_charge_id(self, gateway_charge_id: str) -> Order | None:
        return self._find_one("gateway_charge_id", gateway_charge_id)

    def find_by_order_id(self, order_id: str) -> Order | None:
        return self._find_one("order_id", order_id)

    def insert(self, order: Order) -> None:
        """
        Insert an order, its domain outcomes and their events atomically.

        Raises:
            DuplicateCharge: gateway_charge_id already has an order
        """
        order_sql = f"""
            INSERT INTO orders ({_ORDER_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        domain_sql = """
            INSERT INTO order_domains (
                order_id, position, domain_name, price, currency, registration_period,
                status, error, registrar_order_id, expires_at, registered_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        event_sql = """
            INSERT INTO domain_status_events
                (order_id, domain_name, step, message, progress, occurred_at)
            VALUES (%s, %s, %s, %s, %s, %s)
        """
        snapshot = order.payment_verification

        try:
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(
                    order_sql,
                    (
                        order.order_id,
                        order.invoice_number,
                        order.payment_id,
                        order.user_id,
                        order.gateway_charge_id,
                        order.gateway_order_id,
                        order.gateway_signature,
                        order.amount,
                        order.currency,
                        order.status.value,
                        order.successful_domains,
                        snapshot.verified_at,
                        snapshot.payment_status,
                        snapshot.payment_amount,
                        snapshot.payment_currency,
                        snapshot.gateway_order_id,
                        order.created_at,
                        order.updated_at,
                    ),
                )
                cursor.executemany(
                    domain_sql,
                    [
                        (
                            order.order_id,
                            position,
                            d.domain_name,
                            d.price,
                            d.currency,
                            d.registration_period,
                            d.status.value,
                            d.error,
                            d.registrar_order_id,
                            d.expires_at,
                            d.registered_at,
                        )
                        for position, d in enumerate(order.domains)
                    ],
                )
                events = [
                    (order.order_id, d.domain_name, e.step, e.message, e.progress, e.timestamp)
                    for d in order.domains
                    for e in d.events
                ]
                if events:
                    cursor.executemany(event_sql, events)
                conn.commit()
        except UniqueViolation as e:
            if e.diag.constraint_name == CHARGE_ID_CONSTRAINT:
                raise DuplicateCharge(order.gateway_charge_id) from e
            raise

    def append_status_event(self, order_id: str, domain_name: str, event: StatusEvent) -> bool:
        """Append an event to an outcome's audit trail. False if the outcome does not exist."""
        with self._pool.connection() as conn, conn.cursor() as cursor:
            inserted = self._insert_event(cursor, order_id, domain_name, event)
            if inserted:
                cursor.execute(
                    "UPDATE orders SET updated_at = NOW() WHERE order_id = %s", (order_id,)
                )
            conn.commit()
            return inserted

    def sync_domain_outcome(
        self,
        order_id: str,
        domain_name: str,
        status: DomainStatus,
        event: StatusEvent,
        error: str | None = None,
        registrar_order_id: str | None = None,
        expires_at: Any = None,
    ) -> bool | None:
        """
        Move an outcome to a terminal status and append the matching event.

        Returns:
            True if changed, False if it already had the status, None if missing
        """
        select_sql = """
            SELECT status FROM order_domains
            WHERE order_id = %s AND domain_name = %s
            FOR UPDATE
        """
        update_sql = """
            UPDATE order_domains
            SET status = %(status)s,
                error = CASE WHEN %(status)s = 'registered' THEN NULL
                             ELSE COALESCE(%(error)s, error) END,
                registrar_order_id = COALESCE(%(registrar_order_id)s, registrar_order_id),
                expires_at = COALESCE(%(expires_at)s, expires_at),
                registered_at = CASE WHEN %(status)s = 'registered'
                                     THEN COALESCE(registered_at, NOW())
                                     ELSE registered_at END
            WHERE order_id = %(order_id)s AND domain_name = %(domain_name)s
        """
        # successful_domains is denormalized; rebuild it in cart order.
        refresh_sql = """
            UPDATE orders
            SET successful_domains = ARRAY(
                    SELECT domain_name FROM order_domains
                    WHERE order_id = %(order_id)s AND status = 'registered'
                    ORDER BY position
                ),
                updated_at = NOW()
            WHERE order_id = %(order_id)s
        """
        params = {
            "order_id": order_id,
            "domain_name": domain_name,
            "status": status.value,
            "error": error,
            "registrar_order_id": registrar_order_id,
            "expires_at": expires_at,
        }

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(select_sql, (order_id, domain_name))
            row = cursor.fetchone()
            if row is None:
                conn.commit()
                return None
            if row[0] == status.value:
                conn.commit()
                return False

            cursor.execute(update_sql, params)
            self._insert_event(cursor, order_id, domain_name, event)
            cursor.execute(refresh_sql, params)
            conn.commit()
            return True

    def record_rejection(self, rejection: ChargeRejection) -> None:
        sql = """
            INSERT INTO charge_rejections (
                gateway_charge_id, gateway_order_id, user_id, amount, currency,
                restricted_domains, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (gateway_charge_id) DO NOTHING
        """
        restricted = [
            {"domainName": r.domain_name, "reason": r.reason} for r in rejection.restricted_domains
        ]
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                sql,
                (
                    rejection.gateway_charge_id,
                    rejection.gateway_order_id,
                    rejection.user_id,
                    rejection.amount,
                    rejection.currency,
                    Jsonb(restricted),
                    rejection.created_at,
                ),
            )
            conn.commit()
            if cursor.rowcount == 1:
                logger.info("Recorded rejection for charge %s", rejection.gateway_charge_id)

    def _insert_event(self, cursor, order_id: str, domain_name: str, event: StatusEvent) -> bool:
        cursor.execute(
            """
            INSERT INTO domain_status_events
                (order_id, domain_name, step, message, progress, occurred_at)
            SELECT order_id, domain_name, %s, %s, %s, %s
            FROM order_domains
            WHERE order_id = %s AND domain_name = %s
            """,
            (event.step, event.message, event.progress, event.timestamp, order_id, domain_name),
        )
        return cursor.rowcount == 1

    def _find_one(self, column: str, value: str) -> Order | None:
        order_sql = f"SELECT {_ORDER_COLUMNS} FROM orders WHERE {column} = %s"
        domains_sql = """
            SELECT domain_name, price, currency, registration_period, status, error,
                   registrar_order_id, expires_at, registered_at
            FROM order_domains
            WHERE order_id = %s
            ORDER BY position
        """
        events_sql = """
            SELECT domain_name, step, message, progress, occurred_at
            FROM domain_status_events
            WHERE order_id = %s
            ORDER BY id
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(order_sql, (value,))
            order_row = cursor.fetchone()
            if order_row is None:
                return None
            cursor.execute(domains_sql, (order_row["order_id"],))
            domain_rows = cursor.fetchall()
            cursor.execute(events_sql, (order_row["order_id"],))
            event_rows = cursor.fetchall()

        events: dict[str, list[StatusEvent]] = {}
        for row in event_rows:
            events.setdefault(row["domain_name"], []).append(
                StatusEvent(
                    step=row["step"],
                    message=row["message"],
                    progress=row["progress"],
                    timestamp=row["occurred_at"],
                )
            )

        domains = [
            DomainOutcome(
                domain_name=row["domain_name"],
                price=row["price"],
                currency=row["currency"],
                registration_period=row["registration_period"],
                status=DomainStatus(row["status"]),
                error=row["error"],
                registrar_order_id=row["registrar_order_id"],
                expires_at=row["expires_at"],
                registered_at=row["registered_at"],
                events=events.get(row["domain_name"], []),
            )
            for row in domain_rows
        ]

        return Order(
            order_id=order_row["order_id"],
            invoice_number=order_row["invoice_number"],
            payment_id=order_row["payment_id"],
            user_id=order_row["user_id"],
            gateway_charge_id=order_row["gateway_charge_id"],
            gateway_order_id=order_row["gateway_order_id"],
            gateway_signature=order_row["gateway_signature"],
            amount=order_row["amount"],
            currency=order_row["currency"],
            status=OrderStatus(order_row["status"]),
            domains=domains,
            successful_domains=list(order_row["successful_domains"]),
            payment_verification=PaymentVerificationSnapshot(
                verified_at=order_row["verified_at"],
                payment_status=order_row["verified_payment_status"],
                payment_amount=order_row["verified_payment_amount"],
                payment_currency=order_row["verified_payment_currency"],
                gateway_order_id=order_row["verified_gateway_order_id"],
            ),
            created_at=order_row["created_at"],
            updated_at=order_row["updated_at"],
        )


_PENDING_COLUMNS = """
    id::text AS id, domain_name, price, currency, registration_period, user_id,
    order_id, customer_id, contact_id, name_servers, reason, status, admin_notes,
    verification_attempts, last_verified_at, registrar_order_id, registered_at,
    expires_at, created_at, updated_at
"""


class PostgresPendingDomainRepository:
    """
    Implements PendingDomainRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def insert(self, record: PendingDomainRecord) -> PendingDomainRecord:
        """
        Insert a pending record.

        Uses ON CONFLICT (order_id, domain_name) DO NOTHING so that a retried
        checkout step does not queue the same domain twice; the existing row
        is returned instead.
        """
        sql = f"""
            INSERT INTO pending_domains (
                domain_name, price, currency, registration_period, user_id, order_id,
                customer_id, contact_id, name_servers, reason, status, admin_notes
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (order_id, domain_name) DO NOTHING
            RETURNING {_PENDING_COLUMNS}
        """
        existing_sql = f"""
            SELECT {_PENDING_COLUMNS} FROM pending_domains
            WHERE order_id = %s AND domain_name = %s
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(
                sql,
                (
                    record.domain_name,
                    record.price,
                    record.currency,
                    record.registration_period,
                    record.user_id,
                    record.order_id,
                    record.customer_id,
                    record.contact_id,
                    record.name_servers,
                    record.reason,
                    record.status.value,
                    record.admin_notes,
                ),
            )
            row = cursor.fetchone()
            if row is None:
                cursor.execute(existing_sql, (record.order_id, record.domain_name))
                row = cursor.fetchone()
            conn.commit()
        return _pending_from_row(row)

    def get(self, pending_id: str) -> PendingDomainRecord | None:
        if not _is_uuid(pending_id):
            return None
        sql = f"SELECT {_PENDING_COLUMNS} FROM pending_domains WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (pending_id,))
            row = cursor.fetchone()
        return _pending_from_row(row) if row else None

    def list_by_status(self, status: PendingStatus | None = None) -> list[PendingDomainRecord]:
        """Newest first; served by pending_domains_status_created_idx."""
        if status is None:
            sql = f"SELECT {_PENDING_COLUMNS} FROM pending_domains ORDER BY created_at DESC"
            params: tuple = ()
        else:
            sql = f"""
                SELECT {_PENDING_COLUMNS} FROM pending_domains
                WHERE status = %s
                ORDER BY created_at DESC
            """
            params = (status.value,)
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()
        return [_pending_from_row(row) for row in rows]

    def record_verification(
        self, pending_id: str, reason: str | None = None
    ) -> PendingDomainRecord | None:
        """Count an availability check. Only PENDING records are touched."""
        if not _is_uuid(pending_id):
            return None
        sql = f"""
            UPDATE pending_domains
            SET verification_attempts = verification_attempts + 1,
                last_verified_at = NOW(),
                reason = COALESCE(%s, reason),
                updated_at = NOW()
            WHERE id = %s AND status = 'pending'
            RETURNING {_PENDING_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (reason, pending_id))
            row = cursor.fetchone()
            conn.commit()
        return _pending_from_row(row) if row else None

    def mark_processing(self, pending_id: str) -> PendingDomainRecord | None:
        """Claim a PENDING record for a registration attempt."""
        if not _is_uuid(pending_id):
            return None
        sql = f"""
            UPDATE pending_domains
            SET status = 'processing',
                verification_attempts = verification_attempts + 1,
                last_verified_at = NOW(),
                updated_at = NOW()
            WHERE id = %s AND status = 'pending'
            RETURNING {_PENDING_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (pending_id,))
            row = cursor.fetchone()
            conn.commit()
        return _pending_from_row(row) if row else None

    def find_and_resolve(
        self,
        pending_id: str,
        status: PendingStatus,
        from_status: PendingStatus = PendingStatus.PENDING,
        reason: str | None = None,
        admin_notes: str | None = None,
        registrar_order_id: str | None = None,
        expires_at: Any = None,
    ) -> PendingDomainRecord | None:
        """
        Resolve a record to a terminal status.

        The WHERE clause only matches records in from_status or already in
        the requested status. An admin resolution passes PENDING, so a
        record claimed by a running retry is left alone; the retry passes
        PROCESSING. When nothing matches, the current row is returned
        unchanged so the caller can see the conflicting status.
        """
        if not _is_uuid(pending_id):
            return None
        update_sql = f"""
            UPDATE pending_domains
            SET status = %(status)s,
                reason = COALESCE(%(reason)s, reason),
                admin_notes = COALESCE(%(admin_notes)s, admin_notes),
                registrar_order_id = COALESCE(%(registrar_order_id)s, registrar_order_id),
                expires_at = COALESCE(%(expires_at)s, expires_at),
                registered_at = CASE WHEN %(status)s = 'registered'
                                     THEN COALESCE(registered_at, NOW())
                                     ELSE registered_at END,
                updated_at = NOW()
            WHERE id = %(id)s
              AND (status = %(from_status)s OR status = %(status)s)
            RETURNING {_PENDING_COLUMNS}
        """
        current_sql = f"SELECT {_PENDING_COLUMNS} FROM pending_domains WHERE id = %s"
        params = {
            "id": pending_id,
            "status": status.value,
            "from_status": from_status.value,
            "reason": reason,
            "admin_notes": admin_notes,
            "registrar_order_id": registrar_order_id,
            "expires_at": expires_at,
        }
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(update_sql, params)
            row = cursor.fetchone()
            if row is None:
                cursor.execute(current_sql, (pending_id,))
                row = cursor.fetchone()
            conn.commit()
        return _pending_from_row(row) if row else None


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, TypeError):
        return False
    return True


def _pending_from_row(row: dict[str, Any]) -> PendingDomainRecord:
    return PendingDomainRecord(
        id=row["id"],
        domain_name=row["domain_name"],
        price=row["price"],
        currency=row["currency"],
        registration_period=row["registration_period"],
        user_id=row["user_id"],
        order_id=row["order_id"],
        customer_id=row["customer_id"],
        contact_id=row["contact_id"],
        name_servers=row["name_servers"],
        reason=row["reason"],
        status=PendingStatus(row["status"]),
        admin_notes=row["admin_notes"],
        verification_attempts=row["verification_attempts"],
        last_verified_at=row["last_verified_at"],
        registrar_order_id=row["registrar_order_id"],
        registered_at=row["registered_at"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # adapters/repository/postgres.py -> registrar_checkout/migrations/
    migrations_dir = Path(__file__).parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
