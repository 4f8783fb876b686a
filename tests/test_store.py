"""Tests for the SQLite-backed quota and history store."""

import asyncio
from datetime import date, timedelta

import pytest

from conftest import OTHER_TENANT, TENANT
from ledger_assistant.storage.models import ChatMessageRecord, utcnow


def _pair(session_id: str, n: int, tenant_id: int = TENANT):
    base = utcnow() + timedelta(seconds=n * 2)
    return (
        ChatMessageRecord(tenant_id, session_id, "user", f"question {n}", timestamp=base),
        ChatMessageRecord(tenant_id, session_id, "assistant", f"answer {n}",
                          timestamp=base + timedelta(seconds=1)),
    )


async def test_quota_is_created_with_defaults(store, quota_defaults):
    quota = await store.load_quota(TENANT)
    assert quota.enabled
    assert quota.daily_limit == quota_defaults.daily_limit
    assert quota.current_usage == 0
    assert quota.model == "test-model"
    assert quota.available


async def test_day_rollover_resets_usage(store):
    yesterday = date(2026, 3, 14)
    await store.load_quota(TENANT, today=yesterday)
    for _ in range(5):
        await store.record_usage(TENANT)
    assert not (await store.load_quota(TENANT, today=yesterday)).available

    quota = await store.load_quota(TENANT, today=yesterday + timedelta(days=1))

    assert quota.current_usage == 0
    assert quota.last_reset_date == date(2026, 3, 15)
    assert quota.available


async def test_rollover_reset_is_applied_before_the_check(store):
    today = utcnow().date()
    await store.update_quota_settings(TENANT, enabled=False)
    for _ in range(5):
        await store.record_usage(TENANT)

    disabled = await store.load_quota(TENANT, today=today + timedelta(days=1))
    enabled = await store.update_quota_settings(TENANT, enabled=True)

    assert disabled.current_usage == 0
    assert not disabled.available
    assert enabled.available


async def test_update_settings_rejects_unknown_keys(store):
    with pytest.raises(ValueError):
        await store.update_quota_settings(TENANT, current_usage=0)
    quota = await store.update_quota_settings(TENANT, daily_limit=50, temperature=0.1)
    assert quota.daily_limit == 50
    assert quota.temperature == 0.1


async def test_record_exchange_counts_one_unit(store):
    await store.load_quota(TENANT)
    await store.record_exchange(*_pair("s1", 1))
    await store.record_exchange(*_pair("s1", 2))
    assert (await store.load_quota(TENANT)).current_usage == 2


async def test_record_exchange_rejects_mixed_tenants(store):
    user, _ = _pair("s1", 1)
    _, assistant = _pair("s1", 1, tenant_id=OTHER_TENANT)
    with pytest.raises(ValueError):
        await store.record_exchange(user, assistant)


async def test_recent_messages_window_is_chronological(store):
    await store.load_quota(TENANT)
    for n in range(6):
        await store.record_exchange(*_pair("s1", n))
    await store.record_exchange(*_pair("s2", 99))

    recent = await store.recent_messages(TENANT, "s1", limit=5)

    assert len(recent) == 5
    assert [m.content for m in recent] == ["answer 3", "question 4", "answer 4", "question 5", "answer 5"]
    assert all(a.timestamp <= b.timestamp for a, b in zip(recent, recent[1:]))
    assert await store.recent_messages(OTHER_TENANT, "s1", limit=5) == []


async def test_history_pages_and_sessions(store):
    await store.load_quota(TENANT)
    for n in range(3):
        await store.record_exchange(*_pair("s1", n))
    await store.record_exchange(*_pair("s2", 10))

    page, total = await store.history(TENANT, "s1", skip=0, take=4)
    sessions = await store.list_sessions(TENANT)

    assert total == 6
    assert [m.content for m in page] == ["question 1", "answer 1", "question 2", "answer 2"]
    assert [s.session_id for s in sessions] == ["s2", "s1"]
    assert sessions[1].title == "question 0"
    assert sessions[1].message_count == 6
    assert sessions[1].last_message == "answer 2"


async def test_clear_session_only_touches_that_session(store):
    await store.load_quota(TENANT)
    await store.record_exchange(*_pair("s1", 1))
    await store.record_exchange(*_pair("s2", 2))

    deleted = await store.clear_session(TENANT, "s1")

    assert deleted == 2
    assert await store.recent_messages(TENANT, "s1", 10) == []
    assert len(await store.recent_messages(TENANT, "s2", 10)) == 2


async def test_transaction_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        async with db.transaction() as conn:
            await conn.execute(
                """INSERT INTO chat_messages (tenant_id, session_id, role, content, created_at)
                   VALUES (1, 's1', 'user', 'orphan', '2026-01-01T00:00:00')"""
            )
            raise RuntimeError("assistant insert failed")

    cursor = await db.conn.execute("SELECT COUNT(*) FROM chat_messages")
    assert (await cursor.fetchone())[0] == 0


async def test_transaction_rolls_back_on_cancellation(db):
    inserted = asyncio.Event()

    async def write_then_wait():
        async with db.transaction() as conn:
            await conn.execute(
                """INSERT INTO chat_messages (tenant_id, session_id, role, content, created_at)
                   VALUES (1, 's1', 'user', 'orphan', '2026-01-01T00:00:00')"""
            )
            inserted.set()
            await asyncio.Event().wait()

    task = asyncio.create_task(write_then_wait())
    await inserted.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    cursor = await db.conn.execute("SELECT COUNT(*) FROM chat_messages")
    assert (await cursor.fetchone())[0] == 0
