"""QueueStore SQLite 实现 -- chaser_queue 表

所有状态变更都是 compare-and-swap：`UPDATE ... WHERE status IN (...)`，
返回值表示本次调用是否真正改变了状态。
"""

import json
from datetime import datetime
from typing import Any

import aiosqlite

from ..models.enums import QueueStatus
from ..models.queue import ChannelSelection, QueueEntry
from ..models.task import Task
from .task_store import SqliteTaskStore
from .timefmt import from_db, to_db, to_db_optional

_UPDATABLE_COLUMNS = {
    "status",
    "sent_at",
    "last_attempt_at",
    "next_attempt_at",
    "message_subject",
    "message_body",
}

# JOIN 查询中 task 列统一加 t_ 前缀，避免与 chaser_queue 列重名
_TASK_COLUMNS = (
    "task_id",
    "title",
    "assignee",
    "due_date",
    "priority",
    "status",
    "total_chasers_sent",
    "last_chaser_sent_at",
    "calendar",
    "created_at",
    "updated_at",
)
_TASK_SELECT = ", ".join(f"t.{c} AS t_{c}" for c in _TASK_COLUMNS)


def _task_from_joined(row: aiosqlite.Row) -> Task:
    return SqliteTaskStore._row_to_task({c: row[f"t_{c}"] for c in _TASK_COLUMNS})


class SqliteQueueStore:
    """QueueStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_entries(self, entries: list[QueueEntry]) -> list[QueueEntry]:
        """批量插入 QueueEntry"""
        await self._conn.executemany(
            """
            INSERT INTO chaser_queue (queue_id, task_id, scheduled_at, status,
                                      recipient_email, message_subject, message_body,
                                      escalation_tier, channels, attempt_count,
                                      next_attempt_at, sent_at, last_attempt_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    e.queue_id,
                    e.task_id,
                    to_db(e.scheduled_at),
                    e.status.value,
                    e.recipient_email,
                    e.message_subject,
                    e.message_body,
                    int(e.escalation_tier),
                    e.channels.model_dump_json(),
                    e.attempt_count,
                    to_db_optional(e.next_attempt_at),
                    to_db_optional(e.sent_at),
                    to_db_optional(e.last_attempt_at),
                    to_db(e.created_at),
                )
                for e in entries
            ],
        )
        return entries

    async def get_entry(self, queue_id: str) -> QueueEntry | None:
        cursor = await self._conn.execute(
            "SELECT * FROM chaser_queue WHERE queue_id = ?",
            (queue_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    async def get_entry_with_task(self, queue_id: str) -> tuple[QueueEntry, Task] | None:
        cursor = await self._conn.execute(
            f"""
            SELECT q.*, {_TASK_SELECT}
            FROM chaser_queue q JOIN tasks t ON t.task_id = q.task_id
            WHERE q.queue_id = ?
            """,
            (queue_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entry(row), _task_from_joined(row)

    async def query_due_entries(
        self, limit: int, now: datetime
    ) -> list[tuple[QueueEntry, Task]]:
        """选取到期的 pending 条目并关联所属 Task

        过滤: status = pending AND scheduled_at <= now
        AND (next_attempt_at 为空或 <= now)，按 scheduled_at 升序。
        """
        ts = to_db(now)
        cursor = await self._conn.execute(
            f"""
            SELECT q.*, {_TASK_SELECT}
            FROM chaser_queue q JOIN tasks t ON t.task_id = q.task_id
            WHERE q.status = ?
              AND q.scheduled_at <= ?
              AND (q.next_attempt_at IS NULL OR q.next_attempt_at <= ?)
            ORDER BY q.scheduled_at ASC, q.queue_id ASC
            LIMIT ?
            """,
            (QueueStatus.PENDING.value, ts, ts, limit),
        )
        rows = await cursor.fetchall()
        return [(self._row_to_entry(row), _task_from_joined(row)) for row in rows]

    async def update_entry(
        self,
        queue_id: str,
        changes: dict[str, Any],
        expected_statuses: set[QueueStatus] | None = None,
    ) -> bool:
        """局部更新 QueueEntry（可选 compare-and-swap 条件）

        Args:
            queue_id: 条目 ID
            changes: 列名 -> 新值
            expected_statuses: 仅当当前状态属于该集合时更新

        Returns:
            True 表示有一行被更新
        """
        unknown = set(changes) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported queue fields: {sorted(unknown)}")

        sets: list[str] = []
        params: list[Any] = []
        for key, value in changes.items():
            sets.append(f"{key} = ?")
            if isinstance(value, datetime):
                value = to_db(value)
            params.append(getattr(value, "value", value))

        sql = f"UPDATE chaser_queue SET {', '.join(sets)} WHERE queue_id = ?"
        params.append(queue_id)
        if expected_statuses:
            statuses = sorted(s.value for s in expected_statuses)
            sql += f" AND status IN ({', '.join('?' * len(statuses))})"
            params.extend(statuses)

        cursor = await self._conn.execute(sql, params)
        return cursor.rowcount == 1

    async def mark_triggered(self, queue_id: str, attempted_at: datetime) -> bool:
        """pending -> triggered（sink 已受理）"""
        return await self.update_entry(
            queue_id,
            {
                "status": QueueStatus.TRIGGERED,
                "last_attempt_at": attempted_at,
                "next_attempt_at": None,
            },
            expected_statuses={QueueStatus.PENDING},
        )

    async def record_failed_attempt(
        self,
        queue_id: str,
        attempted_at: datetime,
        next_attempt_at: datetime | None = None,
    ) -> int | None:
        """投递失败：保持 pending，attempt_count 原子自增

        Returns:
            自增后的 attempt_count；条目已不是 pending 时返回 None
        """
        cursor = await self._conn.execute(
            """
            UPDATE chaser_queue
            SET attempt_count = attempt_count + 1,
                last_attempt_at = ?,
                next_attempt_at = ?
            WHERE queue_id = ? AND status = ?
            """,
            (
                to_db(attempted_at),
                to_db_optional(next_attempt_at),
                queue_id,
                QueueStatus.PENDING.value,
            ),
        )
        if cursor.rowcount == 0:
            return None
        cursor = await self._conn.execute(
            "SELECT attempt_count FROM chaser_queue WHERE queue_id = ?",
            (queue_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def mark_sent(self, queue_id: str, sent_at: datetime) -> bool:
        """pending|triggered -> sent"""
        return await self.update_entry(
            queue_id,
            {"status": QueueStatus.SENT, "sent_at": sent_at},
            expected_statuses={QueueStatus.PENDING, QueueStatus.TRIGGERED},
        )

    async def mark_failed(self, queue_id: str, failed_at: datetime) -> bool:
        """pending|triggered -> failed"""
        return await self.update_entry(
            queue_id,
            {"status": QueueStatus.FAILED, "last_attempt_at": failed_at},
            expected_statuses={QueueStatus.PENDING, QueueStatus.TRIGGERED},
        )

    async def mark_cancelled(self, queue_id: str) -> bool:
        """pending -> cancelled（调度器发现任务已完成时使用）"""
        return await self.update_entry(
            queue_id,
            {"status": QueueStatus.CANCELLED},
            expected_statuses={QueueStatus.PENDING},
        )

    async def cancel_pending_entries_for_task(self, task_id: str) -> int:
        """把任务下所有 pending 条目置为 cancelled，triggered 条目不受影响

        Returns:
            被取消的条目数
        """
        cursor = await self._conn.execute(
            "UPDATE chaser_queue SET status = ? WHERE task_id = ? AND status = ?",
            (QueueStatus.CANCELLED.value, task_id, QueueStatus.PENDING.value),
        )
        return cursor.rowcount

    async def list_entries_for_task(
        self, task_id: str, status: QueueStatus | None = None
    ) -> list[QueueEntry]:
        if status is None:
            cursor = await self._conn.execute(
                "SELECT * FROM chaser_queue WHERE task_id = ? ORDER BY scheduled_at ASC",
                (task_id,),
            )
        else:
            cursor = await self._conn.execute(
                """
                SELECT * FROM chaser_queue
                WHERE task_id = ? AND status = ?
                ORDER BY scheduled_at ASC
                """,
                (task_id, status.value),
            )
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def list_upcoming(self, limit: int) -> list[tuple[QueueEntry, Task]]:
        """下一批 pending 条目（不限到期），按 scheduled_at 升序"""
        cursor = await self._conn.execute(
            f"""
            SELECT q.*, {_TASK_SELECT}
            FROM chaser_queue q JOIN tasks t ON t.task_id = q.task_id
            WHERE q.status = ?
            ORDER BY q.scheduled_at ASC
            LIMIT ?
            """,
            (QueueStatus.PENDING.value, limit),
        )
        rows = await cursor.fetchall()
        return [(self._row_to_entry(row), _task_from_joined(row)) for row in rows]

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> QueueEntry:
        """将数据库行转换为 QueueEntry 模型"""
        return QueueEntry(
            queue_id=row["queue_id"],
            task_id=row["task_id"],
            scheduled_at=from_db(row["scheduled_at"]),
            status=row["status"],
            recipient_email=row["recipient_email"],
            message_subject=row["message_subject"],
            message_body=row["message_body"],
            escalation_tier=row["escalation_tier"],
            channels=ChannelSelection(**json.loads(row["channels"])),
            attempt_count=row["attempt_count"],
            next_attempt_at=from_db(row["next_attempt_at"]),
            sent_at=from_db(row["sent_at"]),
            last_attempt_at=from_db(row["last_attempt_at"]),
            created_at=from_db(row["created_at"]),
        )
