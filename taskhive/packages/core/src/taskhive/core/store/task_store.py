"""TaskStore SQLite 实现

写入方法不自动提交事务，由 transaction.py 中的辅助函数统一提交/回滚。
"""

from datetime import date, datetime

import aiosqlite

from ..models.enums import StorageStatus
from ..models.task import Task

_COLUMNS = (
    "task_id, project_id, title, description, status, assigned_to, importance, "
    "focus_today, focus_user_id, focus_date, completion_notes, created_by, "
    "created_at, updated_at, version"
)


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        await self._conn.execute(
            f"INSERT INTO tasks ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            self._task_to_params(task),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(
        self,
        project_id: str,
        status: StorageStatus | None = None,
    ) -> list[Task]:
        """查询项目内任务，支持按状态筛选，按 created_at 正序"""
        if status:
            cursor = await self._conn.execute(
                f"SELECT {_COLUMNS} FROM tasks "
                "WHERE project_id = ? AND status = ? ORDER BY created_at ASC",
                (project_id, status.value),
            )
        else:
            cursor = await self._conn.execute(
                f"SELECT {_COLUMNS} FROM tasks "
                "WHERE project_id = ? ORDER BY created_at ASC",
                (project_id,),
            )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def all_tasks_done(self, project_id: str) -> bool:
        """项目内至少有一个任务且全部为 done（项目完成判定）"""
        cursor = await self._conn.execute(
            "SELECT COUNT(*), COUNT(CASE WHEN status = ? THEN 1 END) "
            "FROM tasks WHERE project_id = ?",
            (StorageStatus.DONE.value, project_id),
        )
        row = await cursor.fetchone()
        return row[0] > 0 and row[0] == row[1]

    async def update_task(self, task: Task, previous_version: int) -> bool:
        """整行覆盖写入，仅当库中版本仍为 previous_version 时生效

        Returns:
            False 表示行已被删除或版本已变化
        """
        cursor = await self._conn.execute(
            """
            UPDATE tasks
            SET title = ?, description = ?, status = ?, assigned_to = ?,
                importance = ?, focus_today = ?, focus_user_id = ?, focus_date = ?,
                completion_notes = ?, updated_at = ?, version = ?
            WHERE task_id = ? AND version = ?
            """,
            (
                task.title,
                task.description,
                task.status.value,
                task.assigned_to,
                task.importance.value,
                int(task.focus_today),
                task.focus_user_id,
                task.focus_date.isoformat() if task.focus_date else None,
                task.completion_notes,
                task.updated_at.isoformat(),
                task.version,
                task.task_id,
                previous_version,
            ),
        )
        return cursor.rowcount == 1

    async def delete_task(self, task_id: str) -> bool:
        """删除任务行（Focus 字段随行一起删除）"""
        cursor = await self._conn.execute(
            "DELETE FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        return cursor.rowcount == 1

    async def list_focus_candidates(self, project_id: str, day: date) -> list[Task]:
        """项目内 focus_date 为 day 的任务（Focus 规则由调用方继续过滤）"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks "
            "WHERE project_id = ? AND focus_today = 1 AND focus_date = ?",
            (project_id, day.isoformat()),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_focus_for_user(self, user_id: str, day: date) -> list[Task]:
        """用户在 day 当天、其仍有访问权的所有项目中的 Focus 任务"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM tasks
            WHERE focus_today = 1 AND focus_user_id = ? AND focus_date = ?
              AND project_id IN (
                  SELECT project_id FROM projects WHERE user_id = ?
                  UNION
                  SELECT project_id FROM project_members WHERE user_id = ?
              )
            """,
            (user_id, day.isoformat(), user_id, user_id),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    @staticmethod
    def _task_to_params(task: Task) -> tuple:
        return (
            task.task_id,
            task.project_id,
            task.title,
            task.description,
            task.status.value,
            task.assigned_to,
            task.importance.value,
            int(task.focus_today),
            task.focus_user_id,
            task.focus_date.isoformat() if task.focus_date else None,
            task.completion_notes,
            task.created_by,
            task.created_at.isoformat(),
            task.updated_at.isoformat(),
            task.version,
        )

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row[0],
            project_id=row[1],
            title=row[2],
            description=row[3],
            status=row[4],
            assigned_to=row[5],
            importance=row[6],
            focus_today=bool(row[7]),
            focus_user_id=row[8],
            focus_date=date.fromisoformat(row[9]) if row[9] else None,
            completion_notes=row[10],
            created_by=row[11],
            created_at=datetime.fromisoformat(row[12]),
            updated_at=datetime.fromisoformat(row[13]),
            version=row[14],
        )
