"""ProjectStore SQLite 实现 -- 项目与成员

owner 不写入 project_members；参与者 = owner + 成员行。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import MemberRole
from ..models.project import Project, ProjectMember, ProjectParticipants


class SqliteProjectStore:
    """ProjectStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_project(self, project: Project) -> None:
        """创建项目记录（不自动提交）"""
        await self._conn.execute(
            """
            INSERT INTO projects (project_id, name, description, user_id, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                project.project_id,
                project.name,
                project.description,
                project.user_id,
                project.created_at.isoformat(),
            ),
        )

    async def get_project(self, project_id: str) -> Project | None:
        cursor = await self._conn.execute(
            "SELECT project_id, name, description, user_id, created_at "
            "FROM projects WHERE project_id = ?",
            (project_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_project(row)

    async def list_members(self, project_id: str) -> list[ProjectMember]:
        """成员行，按加入时间正序"""
        cursor = await self._conn.execute(
            "SELECT project_id, user_id, role, joined_at FROM project_members "
            "WHERE project_id = ? ORDER BY joined_at ASC, user_id ASC",
            (project_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_member(row) for row in rows]

    async def get_member(self, project_id: str, user_id: str) -> ProjectMember | None:
        cursor = await self._conn.execute(
            "SELECT project_id, user_id, role, joined_at FROM project_members "
            "WHERE project_id = ? AND user_id = ?",
            (project_id, user_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_member(row)

    async def add_member(self, member: ProjectMember) -> None:
        """添加成员行（不自动提交）"""
        await self._conn.execute(
            "INSERT INTO project_members (project_id, user_id, role, joined_at) "
            "VALUES (?, ?, ?, ?)",
            (
                member.project_id,
                member.user_id,
                member.role.value,
                member.joined_at.isoformat(),
            ),
        )

    async def remove_member(self, project_id: str, user_id: str) -> bool:
        """删除成员行（不自动提交）"""
        cursor = await self._conn.execute(
            "DELETE FROM project_members WHERE project_id = ? AND user_id = ?",
            (project_id, user_id),
        )
        return cursor.rowcount == 1

    async def get_participants(self, project_id: str) -> ProjectParticipants | None:
        """项目 + 成员快照；项目不存在时返回 None"""
        project = await self.get_project(project_id)
        if project is None:
            return None
        members = await self.list_members(project_id)
        return ProjectParticipants(project=project, members=members)

    async def list_accessible_projects(self, user_id: str) -> list[Project]:
        """用户作为 owner 或成员可访问的项目"""
        cursor = await self._conn.execute(
            """
            SELECT project_id, name, description, user_id, created_at FROM projects
            WHERE user_id = ?
               OR project_id IN (
                   SELECT project_id FROM project_members WHERE user_id = ?
               )
            ORDER BY created_at ASC
            """,
            (user_id, user_id),
        )
        rows = await cursor.fetchall()
        return [self._row_to_project(row) for row in rows]

    @staticmethod
    def _row_to_project(row: aiosqlite.Row) -> Project:
        return Project(
            project_id=row[0],
            name=row[1],
            description=row[2],
            user_id=row[3],
            created_at=datetime.fromisoformat(row[4]),
        )

    @staticmethod
    def _row_to_member(row: aiosqlite.Row) -> ProjectMember:
        return ProjectMember(
            project_id=row[0],
            user_id=row[1],
            role=MemberRole(row[2]),
            joined_at=datetime.fromisoformat(row[3]),
        )
