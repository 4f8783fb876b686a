"""Per-tenant quota state and per-session chat history."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional, Protocol

from ledger_assistant.config import QuotaDefaults
from ledger_assistant.log import get_logger
from ledger_assistant.storage.database import Database
from ledger_assistant.storage.models import ChatMessageRecord, QuotaState, SessionSummary

logger = get_logger(__name__)

_QUOTA_SETTINGS = frozenset(
    {"enabled", "daily_limit", "model", "max_tokens", "temperature", "system_prompt"}
)
_SESSION_TITLE_LENGTH = 50


def _today() -> date:
    return datetime.now(timezone.utc).date()


class AssistantStore(Protocol):
    """What the orchestrator needs from persistence."""

    async def load_quota(self, tenant_id: int, today: Optional[date] = None) -> QuotaState: ...

    async def update_quota_settings(self, tenant_id: int, **changes: Any) -> QuotaState: ...

    async def recent_messages(
        self, tenant_id: int, session_id: str, limit: int
    ) -> list[ChatMessageRecord]: ...

    async def record_exchange(
        self, user_message: ChatMessageRecord, assistant_message: ChatMessageRecord
    ) -> None: ...

    async def record_usage(self, tenant_id: int) -> None: ...

    async def history(
        self,
        tenant_id: int,
        session_id: Optional[str] = None,
        skip: int = 0,
        take: int = 50,
        user_id: Optional[int] = None,
    ) -> tuple[list[ChatMessageRecord], int]: ...

    async def list_sessions(self, tenant_id: int) -> list[SessionSummary]: ...

    async def clear_session(self, tenant_id: int, session_id: str) -> int: ...


class AssistantRepository:
    """SQLite-backed :class:`AssistantStore`."""

    def __init__(self, db: Database, defaults: QuotaDefaults):
        self._db = db
        self._defaults = defaults

    # -- quota ------------------------------------------------------------

    async def load_quota(self, tenant_id: int, today: Optional[date] = None) -> QuotaState:
        """Return the tenant's quota, creating it or applying the day rollover first.

        The reset happens before the caller looks at ``enabled`` or the limit,
        inside the same write transaction, so a check is never made against
        yesterday's counter.
        """
        today = today or _today()
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "SELECT * FROM assistant_quota WHERE tenant_id = ?", (tenant_id,)
            )
            row = await cursor.fetchone()
            if row is None:
                d = self._defaults
                await conn.execute(
                    """INSERT INTO assistant_quota
                       (tenant_id, enabled, daily_limit, current_usage, last_reset_date,
                        model, max_tokens, temperature, system_prompt)
                       VALUES (?, ?, ?, 0, ?, ?, ?, ?, ?)""",
                    (
                        tenant_id,
                        int(d.enabled),
                        d.daily_limit,
                        today.isoformat(),
                        d.model,
                        d.max_tokens,
                        d.temperature,
                        d.system_prompt,
                    ),
                )
                logger.info("quota_created", tenant_id=tenant_id, daily_limit=d.daily_limit)
            elif date.fromisoformat(row["last_reset_date"]) < today:
                await conn.execute(
                    """UPDATE assistant_quota
                       SET current_usage = 0, last_reset_date = ?,
                           updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')
                       WHERE tenant_id = ?""",
                    (today.isoformat(), tenant_id),
                )
                logger.info(
                    "quota_reset",
                    tenant_id=tenant_id,
                    previous_usage=row["current_usage"],
                    last_reset=row["last_reset_date"],
                )
            cursor = await conn.execute(
                "SELECT * FROM assistant_quota WHERE tenant_id = ?", (tenant_id,)
            )
            row = await cursor.fetchone()
        return self._row_to_quota(row)

    async def update_quota_settings(self, tenant_id: int, **changes: Any) -> QuotaState:
        unknown = set(changes) - _QUOTA_SETTINGS
        if unknown:
            raise ValueError(f"Unknown quota settings: {', '.join(sorted(unknown))}")
        await self.load_quota(tenant_id)
        if changes:
            assignments = ", ".join(f"{key} = ?" for key in changes)
            values = [int(v) if isinstance(v, bool) else v for v in changes.values()]
            async with self._db.transaction() as conn:
                await conn.execute(
                    f"""UPDATE assistant_quota
                        SET {assignments}, updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')
                        WHERE tenant_id = ?""",
                    (*values, tenant_id),
                )
            logger.info("quota_settings_updated", tenant_id=tenant_id, fields=sorted(changes))
        return await self.load_quota(tenant_id)

    async def record_usage(self, tenant_id: int) -> None:
        async with self._db.transaction() as conn:
            await self._increment_usage(conn, tenant_id)

    @staticmethod
    async def _increment_usage(conn, tenant_id: int) -> None:
        await conn.execute(
            """UPDATE assistant_quota
               SET current_usage = current_usage + 1,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')
               WHERE tenant_id = ?""",
            (tenant_id,),
        )

    # -- messages ---------------------------------------------------------

    async def record_exchange(
        self, user_message: ChatMessageRecord, assistant_message: ChatMessageRecord
    ) -> None:
        """Persist a user/assistant pair and count one unit of usage, atomically."""
        if user_message.tenant_id != assistant_message.tenant_id:
            raise ValueError("Exchange messages belong to different tenants")
        async with self._db.transaction() as conn:
            for message in (user_message, assistant_message):
                await conn.execute(
                    """INSERT INTO chat_messages
                       (tenant_id, session_id, role, content, user_id, confidence,
                        response_time_ms, entity_type, entity_id, context_json, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        message.tenant_id,
                        message.session_id,
                        message.role,
                        message.content,
                        message.user_id,
                        message.confidence,
                        message.response_time_ms,
                        message.entity_type,
                        message.entity_id,
                        message.context_json,
                        message.timestamp.isoformat(),
                    ),
                )
            await self._increment_usage(conn, user_message.tenant_id)

    async def recent_messages(
        self, tenant_id: int, session_id: str, limit: int
    ) -> list[ChatMessageRecord]:
        """Last ``limit`` messages of a session, oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM (
                   SELECT * FROM chat_messages
                   WHERE tenant_id = ? AND session_id = ?
                   ORDER BY created_at DESC, id DESC
                   LIMIT ?
               ) ORDER BY created_at ASC, id ASC""",
            (tenant_id, session_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def history(
        self,
        tenant_id: int,
        session_id: Optional[str] = None,
        skip: int = 0,
        take: int = 50,
        user_id: Optional[int] = None,
    ) -> tuple[list[ChatMessageRecord], int]:
        """Page through history newest-first; each page is returned oldest-first."""
        where = ["tenant_id = ?"]
        params: list[Any] = [tenant_id]
        if session_id:
            where.append("session_id = ?")
            params.append(session_id)
        if user_id is not None:
            where.append("(user_id = ? OR role = 'assistant')")
            params.append(user_id)
        clause = " AND ".join(where)

        cursor = await self._db.conn.execute(
            f"SELECT COUNT(*) FROM chat_messages WHERE {clause}", params
        )
        (total,) = await cursor.fetchone()

        cursor = await self._db.conn.execute(
            f"""SELECT * FROM chat_messages WHERE {clause}
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?""",
            (*params, take, skip),
        )
        rows = await cursor.fetchall()
        records = [self._row_to_record(row) for row in reversed(rows)]
        return records, total

    async def list_sessions(self, tenant_id: int) -> list[SessionSummary]:
        cursor = await self._db.conn.execute(
            """SELECT session_id,
                      MIN(created_at) AS created_at,
                      MAX(created_at) AS updated_at,
                      COUNT(*) AS message_count
               FROM chat_messages
               WHERE tenant_id = ?
               GROUP BY session_id
               ORDER BY updated_at DESC""",
            (tenant_id,),
        )
        rows = await cursor.fetchall()
        summaries: list[SessionSummary] = []
        for row in rows:
            first_user = await self._first_content(tenant_id, row["session_id"], "user", "ASC")
            last = await self._first_content(tenant_id, row["session_id"], None, "DESC")
            title = (first_user or "New conversation")[:_SESSION_TITLE_LENGTH]
            summaries.append(
                SessionSummary(
                    session_id=row["session_id"],
                    title=title,
                    created_at=datetime.fromisoformat(row["created_at"]),
                    updated_at=datetime.fromisoformat(row["updated_at"]),
                    message_count=row["message_count"],
                    last_message=last,
                )
            )
        return summaries

    async def _first_content(
        self, tenant_id: int, session_id: str, role: Optional[str], direction: str
    ) -> Optional[str]:
        sql = "SELECT content FROM chat_messages WHERE tenant_id = ? AND session_id = ?"
        params: list[Any] = [tenant_id, session_id]
        if role:
            sql += " AND role = ?"
            params.append(role)
        sql += f" ORDER BY created_at {direction}, id {direction} LIMIT 1"
        cursor = await self._db.conn.execute(sql, params)
        row = await cursor.fetchone()
        return row["content"] if row else None

    async def clear_session(self, tenant_id: int, session_id: str) -> int:
        """Delete all messages of a session. Returns number of deleted rows."""
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM chat_messages WHERE tenant_id = ? AND session_id = ?",
                (tenant_id, session_id),
            )
        logger.info("session_cleared", tenant_id=tenant_id, session_id=session_id, deleted=cursor.rowcount)
        return cursor.rowcount

    @staticmethod
    def _row_to_record(row) -> ChatMessageRecord:
        return ChatMessageRecord(
            id=row["id"],
            tenant_id=row["tenant_id"],
            session_id=row["session_id"],
            role=row["role"],
            content=row["content"],
            user_id=row["user_id"],
            confidence=row["confidence"],
            response_time_ms=row["response_time_ms"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            context_json=row["context_json"],
            timestamp=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_quota(row) -> QuotaState:
        return QuotaState(
            tenant_id=row["tenant_id"],
            enabled=bool(row["enabled"]),
            daily_limit=row["daily_limit"],
            current_usage=row["current_usage"],
            last_reset_date=date.fromisoformat(row["last_reset_date"]),
            model=row["model"],
            max_tokens=row["max_tokens"],
            temperature=row["temperature"],
            system_prompt=row["system_prompt"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
