"""FocusService -- 今日 Focus 的切换与查询

Focus 切换写入任务行（version + 1），但不产生领域事件、不发送通知。
所有查询严格按 focus_date == day 过滤。
"""

from datetime import UTC, date, datetime

import structlog

from taskhive.core.config import FOCUS_LIST_LIMIT, utc_today
from taskhive.core.exceptions import NotFoundFailure
from taskhive.core.focus import UserFocusGroup, personal_focus, team_focus, toggled
from taskhive.core.models import Task
from taskhive.core.store import StoreGroup, update_task_with_event

from .project_service import ProjectService
from .task_locks import get_task_lock
from .task_service import raise_lost_write

log = structlog.get_logger()


class FocusService:
    """Focus 业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._projects = ProjectService(store_group)

    async def toggle_focus(self, task_id: str, actor_id: str) -> Task:
        """翻转任务的今日 Focus

        Raises:
            NotFoundFailure: 任务不存在
            AuthorizationFailure: 操作者无项目访问权
        """
        lock = await get_task_lock(task_id)
        async with lock:
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise NotFoundFailure("Task", task_id)
            await self._projects.require_access(task.project_id, actor_id)

            focus = toggled(task, actor_id, utc_today())
            updated = task.model_copy(
                update={
                    **focus.model_dump(),
                    "version": task.version + 1,
                    "updated_at": datetime.now(UTC),
                }
            )
            written = await update_task_with_event(
                self._stores.conn,
                self._stores.task_store,
                self._stores.event_store,
                updated,
                task.version,
                None,
            )
            if not written:
                await raise_lost_write(self._stores, task_id, task.version)

        log.info(
            "focus_toggled",
            task_id=task_id,
            focus_today=updated.focus_today,
            focus_user_id=updated.focus_user_id,
        )
        return updated

    async def personal(
        self,
        project_id: str,
        user_id: str,
        day: date | None = None,
    ) -> list[Task]:
        """用户在项目内某天的 Focus 任务（缺省今天）"""
        await self._projects.require_access(project_id, user_id)
        day = day or utc_today()
        tasks = await self._stores.task_store.list_focus_candidates(project_id, day)
        return personal_focus(tasks, user_id, day, limit=FOCUS_LIST_LIMIT)

    async def team(
        self,
        project_id: str,
        user_id: str,
        day: date | None = None,
    ) -> list[UserFocusGroup]:
        """项目全员某天的 Focus 任务，按用户分组（已离开项目的用户不再出现）"""
        participants = await self._projects.require_access(project_id, user_id)
        day = day or utc_today()
        tasks = await self._stores.task_store.list_focus_candidates(project_id, day)
        return [
            group
            for group in team_focus(tasks, day)
            if participants.has_access(group.user_id)
        ]

    async def mine(self, user_id: str, day: date | None = None) -> list[Task]:
        """用户在所有可访问项目中的 Focus 任务（Dashboard）"""
        day = day or utc_today()
        tasks = await self._stores.task_store.list_focus_for_user(user_id, day)
        return personal_focus(tasks, user_id, day, limit=FOCUS_LIST_LIMIT)
