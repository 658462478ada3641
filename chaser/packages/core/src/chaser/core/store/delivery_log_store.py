"""DeliveryLogStore SQLite 实现 -- chaser_logs 表

append-only：只允许插入，不允许更新或删除。
(queue_id, status) 唯一索引保证同一结果不会重复记录。
"""

from datetime import datetime

import aiosqlite

from ..models.delivery_log import DeliveryLog
from ..models.enums import DeliveryStatus
from .timefmt import from_db, to_db


class SqliteDeliveryLogStore:
    """DeliveryLogStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_delivery_log(self, log: DeliveryLog) -> bool:
        """追加日志（append-only）

        Returns:
            True 表示写入；同一 (queue_id, status) 已存在时为 False
        """
        cursor = await self._conn.execute(
            """
            INSERT OR IGNORE INTO chaser_logs (log_id, task_id, queue_id, sent_at, status,
                                               recipient_email, message_subject,
                                               message_body, execution_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                log.log_id,
                log.task_id,
                log.queue_id,
                to_db(log.sent_at),
                log.status.value,
                log.recipient_email,
                log.message_subject,
                log.message_body,
                log.execution_id,
                to_db(log.created_at),
            ),
        )
        return cursor.rowcount == 1

    async def list_logs_for_task(self, task_id: str) -> list[DeliveryLog]:
        """查询任务的投递日志，按 sent_at 倒序"""
        cursor = await self._conn.execute(
            "SELECT * FROM chaser_logs WHERE task_id = ? ORDER BY sent_at DESC",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_log(row) for row in rows]

    async def count_sent_since(self, since: datetime) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM chaser_logs WHERE status = ? AND sent_at >= ?",
            (DeliveryStatus.SENT.value, to_db(since)),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_log(row: aiosqlite.Row) -> DeliveryLog:
        return DeliveryLog(
            log_id=row["log_id"],
            task_id=row["task_id"],
            queue_id=row["queue_id"],
            sent_at=from_db(row["sent_at"]),
            status=row["status"],
            recipient_email=row["recipient_email"],
            message_subject=row["message_subject"],
            message_body=row["message_body"],
            execution_id=row["execution_id"],
            created_at=from_db(row["created_at"]),
        )
