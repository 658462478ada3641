"""TaskStore SQLite 实现

计数器只通过 SQL 自增修改，状态只通过 compare-and-swap 推进，
避免并发回调 / 调度器 / 生命周期操作之间的读改写竞争。
Store 方法不提交事务，由调用方（service / transaction）负责 commit。
"""

import json
from datetime import datetime
from typing import Any

import aiosqlite

from ..models.enums import TaskStatus
from ..models.task import AssigneeInfo, CalendarInfo, Task
from .timefmt import from_db, to_db, to_db_optional

# update_task 允许直接更新的普通列
_PLAIN_COLUMNS = {"title", "priority", "due_date"}

# update_task 允许更新的 assignee JSON 字段
_ASSIGNEE_FIELDS = {"email", "name", "phone", "slack_channel", "enable_call"}

_CALENDAR_FIELDS = {"event_id", "has_conflict", "conflict_with", "conflict_end_time"}


def _json_set(column: str, fields: dict[str, Any]) -> tuple[str, list[Any]]:
    """生成 `column = json_set(column, ...)` 片段及参数"""
    parts: list[str] = []
    params: list[Any] = []
    for key, value in fields.items():
        if isinstance(value, bool):
            # 布尔值需写成 JSON true/false，而非 SQLite 整数
            parts.append("?, json(?)")
            value = json.dumps(value)
        else:
            parts.append("?, ?")
            if isinstance(value, datetime):
                value = to_db(value)
        params += [f"$.{key}", value]
    return f"{column} = json_set({column}, {', '.join(parts)})", params


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_task(self, task: Task) -> Task:
        """创建任务记录"""
        await self._conn.execute(
            """
            INSERT INTO tasks (task_id, title, assignee, due_date, priority, status,
                               total_chasers_sent, last_chaser_sent_at, calendar,
                               created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.title,
                task.assignee.model_dump_json(),
                to_db(task.due_date),
                task.priority.value,
                task.status.value,
                task.total_chasers_sent,
                to_db_optional(task.last_chaser_sent_at),
                task.calendar.model_dump_json(),
                to_db(task.created_at),
                to_db(task.updated_at),
            ),
        )
        return task

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            "SELECT * FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks_with_pending_count(
        self, status: str | None = None
    ) -> list[tuple[Task, int]]:
        """查询任务列表（按 created_at 倒序），附带每个任务的 pending chaser 数"""
        sql = """
            SELECT t.*,
                   (SELECT COUNT(*) FROM chaser_queue q
                    WHERE q.task_id = t.task_id AND q.status = 'pending') AS pending_count
            FROM tasks t
        """
        params: tuple = ()
        if status:
            sql += " WHERE t.status = ?"
            params = (status,)
        sql += " ORDER BY t.created_at DESC"
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [(self._row_to_task(row), row["pending_count"]) for row in rows]

    async def update_task(
        self,
        task_id: str,
        changes: dict[str, Any],
        updated_at: datetime,
    ) -> Task | None:
        """局部更新任务字段

        changes 的键为 title / priority / due_date 或 assignee_<field>。
        status 与计数器不在此处修改。

        Returns:
            更新后的 Task；任务不存在时返回 None
        """
        sets = ["updated_at = ?"]
        params: list[Any] = [to_db(updated_at)]
        assignee: dict[str, Any] = {}

        for key, value in changes.items():
            if key in _PLAIN_COLUMNS:
                sets.append(f"{key} = ?")
                if isinstance(value, datetime):
                    value = to_db(value)
                params.append(getattr(value, "value", value))
            elif key.startswith("assignee_") and key[len("assignee_"):] in _ASSIGNEE_FIELDS:
                assignee[key[len("assignee_"):]] = value
            else:
                raise ValueError(f"Unsupported task field: {key}")

        if assignee:
            clause, clause_params = _json_set("assignee", assignee)
            sets.append(clause)
            params.extend(clause_params)

        params.append(task_id)
        cursor = await self._conn.execute(
            f"UPDATE tasks SET {', '.join(sets)} WHERE task_id = ?",
            params,
        )
        if cursor.rowcount == 0:
            return None
        return await self.get_task(task_id)

    async def mark_completed(self, task_id: str, updated_at: datetime) -> bool:
        """pending -> completed（compare-and-swap）

        Returns:
            True 表示本次调用完成了状态流转；已是 completed 或不存在时为 False
        """
        cursor = await self._conn.execute(
            "UPDATE tasks SET status = ?, updated_at = ? WHERE task_id = ? AND status = ?",
            (
                TaskStatus.COMPLETED.value,
                to_db(updated_at),
                task_id,
                TaskStatus.PENDING.value,
            ),
        )
        return cursor.rowcount == 1

    async def set_calendar_fields(
        self,
        task_id: str,
        fields: dict[str, Any],
        updated_at: datetime,
    ) -> bool:
        """通过 json_set 更新 calendar JSON 列的部分字段"""
        unknown = set(fields) - _CALENDAR_FIELDS
        if unknown:
            raise ValueError(f"Unsupported calendar fields: {sorted(unknown)}")
        if not fields:
            return False

        clause, clause_params = _json_set("calendar", fields)
        cursor = await self._conn.execute(
            f"UPDATE tasks SET updated_at = ?, {clause} WHERE task_id = ?",
            [to_db(updated_at), *clause_params, task_id],
        )
        return cursor.rowcount == 1

    async def increment_chaser_count(self, task_id: str, sent_at: datetime) -> bool:
        """原子自增 total_chasers_sent，last_chaser_sent_at 取较晚值

        单条 UPDATE 完成，不做读改写，并发回调不会丢失计数。
        """
        sent = to_db(sent_at)
        cursor = await self._conn.execute(
            """
            UPDATE tasks
            SET total_chasers_sent = total_chasers_sent + 1,
                last_chaser_sent_at = CASE
                    WHEN last_chaser_sent_at IS NULL OR last_chaser_sent_at < ? THEN ?
                    ELSE last_chaser_sent_at
                END,
                updated_at = ?
            WHERE task_id = ?
            """,
            (sent, sent, sent, task_id),
        )
        return cursor.rowcount == 1

    async def count_tasks(self, status: str | None = None) -> int:
        if status:
            cursor = await self._conn.execute(
                "SELECT COUNT(*) FROM tasks WHERE status = ?", (status,)
            )
        else:
            cursor = await self._conn.execute("SELECT COUNT(*) FROM tasks")
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        calendar_data = json.loads(row["calendar"])
        return Task(
            task_id=row["task_id"],
            title=row["title"],
            assignee=AssigneeInfo(**json.loads(row["assignee"])),
            due_date=from_db(row["due_date"]),
            priority=row["priority"],
            status=row["status"],
            total_chasers_sent=row["total_chasers_sent"],
            last_chaser_sent_at=from_db(row["last_chaser_sent_at"]),
            calendar=CalendarInfo(**calendar_data),
            created_at=from_db(row["created_at"]),
            updated_at=from_db(row["updated_at"]),
        )
