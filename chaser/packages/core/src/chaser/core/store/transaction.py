"""多行写入事务封装

需要原子提交的组合写入集中在这里：成功则 commit，失败则 rollback 并重新抛出。
任务创建与 chaser 插入刻意分成两个事务（chaser 失败不影响任务创建）。
"""

from datetime import datetime

import aiosqlite

from ..models.queue import QueueEntry
from ..models.task import Task
from .protocols import QueueStore, TaskStore


async def commit_task(
    conn: aiosqlite.Connection,
    task_store: TaskStore,
    task: Task,
) -> Task:
    """写入任务并立即提交"""
    try:
        await task_store.insert_task(task)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
    return task


async def commit_chasers(
    conn: aiosqlite.Connection,
    queue_store: QueueStore,
    entries: list[QueueEntry],
) -> list[QueueEntry]:
    """批量写入 QueueEntry 并提交（全部成功或全部回滚）"""
    try:
        await queue_store.insert_entries(entries)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
    return entries


async def complete_task_and_cancel_chasers(
    conn: aiosqlite.Connection,
    task_store: TaskStore,
    queue_store: QueueStore,
    task_id: str,
    now: datetime,
) -> tuple[bool, int]:
    """在同一事务内完成任务并取消其 pending chaser

    已是 completed 时仍会执行一次取消（兜底清理），结果通常为 0。

    Returns:
        (本次是否发生 pending -> completed 流转, 取消的条目数)
    """
    try:
        transitioned = await task_store.mark_completed(task_id, now)
        cancelled = await queue_store.cancel_pending_entries_for_task(task_id)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
    return transitioned, cancelled


async def replace_pending_chasers(
    conn: aiosqlite.Connection,
    queue_store: QueueStore,
    task_id: str,
    entries: list[QueueEntry],
) -> int:
    """replan：取消现有 pending chaser 并写入新计划（同一事务）

    Returns:
        被取消的旧条目数
    """
    try:
        cancelled = await queue_store.cancel_pending_entries_for_task(task_id)
        await queue_store.insert_entries(entries)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
    return cancelled
