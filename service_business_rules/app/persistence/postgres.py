"""
PostgreSQL persistence layer for the business rules service.

Returns raw rows; shape validation belongs to the configuration store so a
malformed row fails the whole category refresh rather than a single query.
"""

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import asyncpg

from shared.errors import ServiceException
from shared.logging import get_logger
from ..errors import DatabaseError, OrderNotFoundError, UserNotFoundError


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS coffee_availability (
        coffee_id INTEGER PRIMARY KEY,
        status VARCHAR(50) NOT NULL
            CHECK (status IN ('available', 'out_of_stock', 'seasonal', 'discontinued')),
        reason TEXT,
        available_from TIMESTAMPTZ,
        available_until TIMESTAMPTZ,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pricing_rules (
        rule_id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        rule_type VARCHAR(50) NOT NULL
            CHECK (rule_type IN ('time_based', 'quantity_based', 'promotional')),
        priority INTEGER NOT NULL DEFAULT 0,
        rule_config JSONB NOT NULL,
        coffee_ids INTEGER[],
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        valid_from TIMESTAMPTZ NOT NULL,
        valid_until TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS prep_time_config (
        coffee_id INTEGER PRIMARY KEY,
        base_minutes INTEGER NOT NULL CHECK (base_minutes > 0),
        per_additional_item INTEGER NOT NULL DEFAULT 0 CHECK (per_additional_item >= 0),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS loyalty_config (
        config_id INTEGER PRIMARY KEY DEFAULT 1,
        points_per_dollar DECIMAL(10, 4) NOT NULL CHECK (points_per_dollar >= 0),
        bonus_multipliers JSONB NOT NULL DEFAULT '{}',
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT single_row CHECK (config_id = 1)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS customer_loyalty (
        customer_id INTEGER PRIMARY KEY,
        points_balance INTEGER NOT NULL DEFAULT 0 CHECK (points_balance >= 0),
        lifetime_points INTEGER NOT NULL DEFAULT 0 CHECK (lifetime_points >= 0),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rule_audit_log (
        audit_id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        order_id UUID NOT NULL,
        rule_type VARCHAR(50) NOT NULL,
        rule_id UUID,
        rule_data JSONB NOT NULL,
        effect TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_rule_audit_order ON rule_audit_log(order_id)",
    "CREATE INDEX IF NOT EXISTS idx_rule_audit_created ON rule_audit_log(created_at)",
    """
    CREATE INDEX IF NOT EXISTS idx_pricing_rules_active
        ON pricing_rules(is_active, priority) WHERE is_active = TRUE
    """,
]


class PostgreSQLPersistence:
    """PostgreSQL access for rule configuration, loyalty balances and audit rows."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30.0,
        create_schema: bool = True,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.create_schema = create_schema
        self.logger = get_logger("business_rules.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise DatabaseError(str(e), {"operation": "start"})

        if self.create_schema:
            await self._create_tables()

        self.logger.info("PostgreSQL persistence started")

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    @asynccontextmanager
    async def _connection(self, operation: str) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a pooled connection and wrap driver failures in DatabaseError."""
        if self.pool is None:
            raise DatabaseError("persistence layer is not started", {"operation": operation})
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except ServiceException:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            self.logger.error("Database operation failed", operation=operation, error=str(e))
            raise DatabaseError(str(e), {"operation": operation})

    async def _create_tables(self):
        """Create business rules tables."""
        async with self._connection("create_tables") as conn:
            async with conn.transaction():
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(statement)

    # Rule configuration

    async def fetch_availability_rows(self) -> List[asyncpg.Record]:
        async with self._connection("fetch_availability") as conn:
            return await conn.fetch("""
                SELECT coffee_id, status, reason, available_from, available_until, updated_at
                FROM coffee_availability
            """)

    async def fetch_pricing_rule_rows(self) -> List[asyncpg.Record]:
        async with self._connection("fetch_pricing_rules") as conn:
            return await conn.fetch("""
                SELECT rule_id, rule_type, priority, rule_config, coffee_ids,
                       is_active, valid_from, valid_until
                FROM pricing_rules
                WHERE is_active = TRUE
                ORDER BY priority DESC
            """)

    async def fetch_prep_time_rows(self) -> List[asyncpg.Record]:
        async with self._connection("fetch_prep_time_config") as conn:
            return await conn.fetch("""
                SELECT coffee_id, base_minutes, per_additional_item, updated_at
                FROM prep_time_config
            """)

    async def fetch_loyalty_config_row(self) -> Optional[asyncpg.Record]:
        async with self._connection("fetch_loyalty_config") as conn:
            return await conn.fetchrow("""
                SELECT config_id, points_per_dollar, bonus_multipliers, updated_at
                FROM loyalty_config
                WHERE config_id = 1
            """)

    async def upsert_availability(
        self,
        coffee_id: int,
        status: str,
        reason: Optional[str]
    ) -> asyncpg.Record:
        """Insert or update the availability row for a coffee."""
        async with self._connection("upsert_availability") as conn:
            row = await conn.fetchrow("""
                INSERT INTO coffee_availability (coffee_id, status, reason, updated_at)
                VALUES ($1, $2, $3, NOW())
                ON CONFLICT (coffee_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    reason = EXCLUDED.reason,
                    updated_at = NOW()
                RETURNING coffee_id, status, reason, available_from, available_until, updated_at
            """, coffee_id, status, reason)

            self.logger.info("Availability updated", coffee_id=coffee_id, status=status)
            return row

    # Order queue

    async def fetch_queue_stats(self) -> Tuple[int, int]:
        """Return (orders in queue, sum of their estimated prep minutes)."""
        async with self._connection("fetch_queue_stats") as conn:
            row = await conn.fetchrow("""
                SELECT COUNT(*) AS order_count,
                       COALESCE(SUM(estimated_prep_minutes), 0) AS total_minutes
                FROM orders
                WHERE status IN ('pending', 'preparing')
            """)
            return int(row["order_count"]), int(row["total_minutes"])

    # Loyalty balances

    async def increment_customer_loyalty(self, customer_id: int, points: int) -> asyncpg.Record:
        """Add points to balance and lifetime total in a single upsert."""
        async with self._connection("increment_customer_loyalty") as conn:
            try:
                return await conn.fetchrow("""
                    INSERT INTO customer_loyalty (customer_id, points_balance, lifetime_points)
                    VALUES ($1, $2, $2)
                    ON CONFLICT (customer_id) DO UPDATE SET
                        points_balance = customer_loyalty.points_balance + EXCLUDED.points_balance,
                        lifetime_points = customer_loyalty.lifetime_points + EXCLUDED.lifetime_points,
                        updated_at = NOW()
                    RETURNING customer_id, points_balance, lifetime_points
                """, customer_id, points)
            except asyncpg.ForeignKeyViolationError:
                raise UserNotFoundError(customer_id)

    async def fetch_customer_points_balance(self, customer_id: int) -> Optional[int]:
        async with self._connection("fetch_customer_points_balance") as conn:
            return await conn.fetchval("""
                SELECT points_balance FROM customer_loyalty WHERE customer_id = $1
            """, customer_id)

    # Audit trail

    async def insert_audit_record(
        self,
        order_id: uuid.UUID,
        rule_type: str,
        rule_id: Optional[uuid.UUID],
        rule_data: Dict[str, Any],
        effect: str
    ) -> None:
        async with self._connection("insert_audit_record") as conn:
            try:
                await conn.execute("""
                    INSERT INTO rule_audit_log (order_id, rule_type, rule_id, rule_data, effect)
                    VALUES ($1, $2, $3, $4::jsonb, $5)
                """, order_id, rule_type, rule_id, json.dumps(rule_data, default=str), effect)
            except asyncpg.ForeignKeyViolationError:
                raise OrderNotFoundError(order_id)

    async def fetch_audit_rows(self, order_id: uuid.UUID) -> List[asyncpg.Record]:
        async with self._connection("fetch_audit_rows") as conn:
            return await conn.fetch("""
                SELECT audit_id, order_id, rule_type, rule_id, rule_data, effect, created_at
                FROM rule_audit_log
                WHERE order_id = $1
                ORDER BY created_at ASC
            """, order_id)

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError):
            return False
