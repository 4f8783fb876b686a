"""SQLite database connection manager with schema migration."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from ledger_assistant.log import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id           INTEGER NOT NULL,
    session_id          TEXT    NOT NULL,
    role                TEXT    NOT NULL CHECK(role IN ('system','user','assistant')),
    content             TEXT    NOT NULL,
    user_id             INTEGER,
    confidence          REAL,
    response_time_ms    INTEGER,
    entity_type         TEXT,
    entity_id           INTEGER,
    context_json        TEXT,
    created_at          TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_session
    ON chat_messages(tenant_id, session_id, created_at);

CREATE TABLE IF NOT EXISTS assistant_quota (
    tenant_id           INTEGER PRIMARY KEY,
    enabled             INTEGER NOT NULL DEFAULT 1,
    daily_limit         INTEGER NOT NULL,
    current_usage       INTEGER NOT NULL DEFAULT 0,
    last_reset_date     TEXT    NOT NULL,
    model               TEXT    NOT NULL,
    max_tokens          INTEGER NOT NULL,
    temperature         REAL    NOT NULL,
    system_prompt       TEXT    NOT NULL,
    created_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    updated_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE TABLE IF NOT EXISTS customers (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id           INTEGER NOT NULL,
    name                TEXT    NOT NULL,
    email               TEXT,
    phone               TEXT,
    address             TEXT,
    city                TEXT,
    contact             TEXT,
    tax_id              TEXT,
    credit_limit        REAL    NOT NULL DEFAULT 0,
    payment_terms_days  INTEGER NOT NULL DEFAULT 30,
    is_active           INTEGER NOT NULL DEFAULT 1,
    notes               TEXT,
    created_at          TEXT    NOT NULL,
    updated_at          TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_customers_tenant ON customers(tenant_id, name);

CREATE TABLE IF NOT EXISTS invoices (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id           INTEGER NOT NULL,
    customer_id         INTEGER NOT NULL REFERENCES customers(id),
    customer_name       TEXT    NOT NULL,
    invoice_number      TEXT    NOT NULL,
    invoice_date        TEXT    NOT NULL,
    due_date            TEXT,
    status              TEXT    NOT NULL CHECK(status IN ('Draft','Sent','Paid','Cancelled','Overdue')),
    currency            TEXT    NOT NULL DEFAULT 'ILS',
    notes               TEXT,
    subtotal            REAL    NOT NULL DEFAULT 0,
    tax_amount          REAL    NOT NULL DEFAULT 0,
    total               REAL    NOT NULL DEFAULT 0,
    paid_amount         REAL    NOT NULL DEFAULT 0,
    created_at          TEXT    NOT NULL,
    updated_at          TEXT    NOT NULL,
    UNIQUE (tenant_id, invoice_number)
);

CREATE INDEX IF NOT EXISTS idx_invoices_tenant ON invoices(tenant_id, invoice_date);

CREATE TABLE IF NOT EXISTS invoice_lines (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id          INTEGER NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
    line_number         INTEGER NOT NULL,
    description         TEXT    NOT NULL,
    quantity            REAL    NOT NULL,
    unit_price          REAL    NOT NULL,
    discount_percent    REAL    NOT NULL DEFAULT 0,
    tax_rate            REAL    NOT NULL DEFAULT 17,
    tax_amount          REAL    NOT NULL DEFAULT 0,
    line_total          REAL    NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS invoice_payments (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id          INTEGER NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
    amount              REAL    NOT NULL,
    method              TEXT    NOT NULL,
    reference           TEXT,
    paid_at             TEXT    NOT NULL
);
"""


class Database:
    """Async SQLite database manager.

    One connection is shared by every coroutine, so writes are serialised
    through :meth:`transaction`: a statement issued outside it could be
    committed by someone else's ``commit()``.
    """

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open connection and run migrations."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("database_initialized", path=self._db_path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a block of writes atomically.

        Rolls back on any exception, including task cancellation, so a
        cancelled caller never leaves a partial write behind.
        """
        async with self._write_lock:
            conn = self.conn
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")
