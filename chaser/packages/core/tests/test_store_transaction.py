"""事务封装单元测试

测试内容：
1. 完成任务 + 取消 pending chaser 原子提交
2. 重复完成为 no-op
3. replan 替换 pending chaser
4. 写入失败时回滚
"""

from datetime import UTC, datetime, timedelta

import aiosqlite
import pytest
import pytest_asyncio
from chaser.core.models import QueueStatus, TaskStatus
from chaser.core.store.queue_store import SqliteQueueStore
from chaser.core.store.task_store import SqliteTaskStore
from chaser.core.store.transaction import (
    commit_chasers,
    commit_task,
    complete_task_and_cancel_chasers,
    replace_pending_chasers,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def stores(core_db):
    """提供 TaskStore / QueueStore 与连接"""
    return SqliteTaskStore(core_db), SqliteQueueStore(core_db), core_db


class TestCompleteTask:
    """完成任务事务"""

    async def test_cancels_pending_only(self, stores, make_task, make_entry):
        task_store, queue_store, conn = stores
        task = await commit_task(conn, task_store, make_task(now=NOW))
        p1, p2, trig = await commit_chasers(
            conn,
            queue_store,
            [
                make_entry(task, NOW + timedelta(hours=1)),
                make_entry(task, NOW + timedelta(hours=2)),
                make_entry(task, NOW - timedelta(minutes=5)),
            ],
        )
        await queue_store.mark_triggered(trig.queue_id, NOW)
        await conn.commit()

        transitioned, cancelled = await complete_task_and_cancel_chasers(
            conn, task_store, queue_store, task.task_id, NOW
        )

        assert transitioned is True
        assert cancelled == 2
        loaded = await task_store.get_task(task.task_id)
        assert loaded.status == TaskStatus.COMPLETED
        assert (await queue_store.get_entry(p1.queue_id)).status == QueueStatus.CANCELLED
        assert (await queue_store.get_entry(p2.queue_id)).status == QueueStatus.CANCELLED
        assert (await queue_store.get_entry(trig.queue_id)).status == QueueStatus.TRIGGERED

    async def test_second_completion_is_noop(self, stores, make_task, make_entry):
        task_store, queue_store, conn = stores
        task = await commit_task(conn, task_store, make_task(now=NOW))
        await commit_chasers(conn, queue_store, [make_entry(task, NOW + timedelta(hours=1))])

        first = await complete_task_and_cancel_chasers(
            conn, task_store, queue_store, task.task_id, NOW
        )
        second = await complete_task_and_cancel_chasers(
            conn, task_store, queue_store, task.task_id, NOW
        )

        assert first == (True, 1)
        assert second == (False, 0)


class TestReplacePending:
    async def test_replace(self, stores, make_task, make_entry):
        task_store, queue_store, conn = stores
        task = await commit_task(conn, task_store, make_task(now=NOW))
        old = await commit_chasers(
            conn, queue_store, [make_entry(task, NOW + timedelta(hours=h)) for h in (1, 2)]
        )
        new = [make_entry(task, NOW + timedelta(hours=5))]

        cancelled = await replace_pending_chasers(conn, queue_store, task.task_id, new)

        assert cancelled == 2
        pending = await queue_store.list_entries_for_task(task.task_id, QueueStatus.PENDING)
        assert [e.queue_id for e in pending] == [new[0].queue_id]
        for entry in old:
            assert (await queue_store.get_entry(entry.queue_id)).status == QueueStatus.CANCELLED

    async def test_rollback_on_insert_failure(self, stores, make_task, make_entry):
        task_store, queue_store, conn = stores
        task = await commit_task(conn, task_store, make_task(now=NOW))
        (existing,) = await commit_chasers(
            conn, queue_store, [make_entry(task, NOW + timedelta(hours=1))]
        )
        # 重复主键导致插入失败，取消操作应一并回滚
        duplicate = existing.model_copy()

        with pytest.raises(aiosqlite.IntegrityError):
            await replace_pending_chasers(conn, queue_store, task.task_id, [duplicate])

        assert (await queue_store.get_entry(existing.queue_id)).status == QueueStatus.PENDING


class TestCommitChasers:
    async def test_rollback_whole_batch(self, stores, make_task, make_entry):
        task_store, queue_store, conn = stores
        task = await commit_task(conn, task_store, make_task(now=NOW))
        ok = make_entry(task, NOW)
        orphan = make_entry(task, NOW)
        orphan.task_id = "01JNOTEXIST000000000000000"

        with pytest.raises(aiosqlite.IntegrityError):
            await commit_chasers(conn, queue_store, [ok, orphan])

        assert await queue_store.get_entry(ok.queue_id) is None
