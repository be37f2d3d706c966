"""Focus 规则 -- 每用户、每天的"今日重点"标记

Focus 与任务工作流状态相互独立：
- 开启时记录 focus_user_id 与 focus_date（天粒度）
- 关闭时清空两者
- 查询时严格按 focus_date == 指定日期过滤，
  因此前一天的 Focus 无需定时任务即可在次日自动"失效"
"""

from collections.abc import Iterable
from datetime import date

from pydantic import BaseModel, Field

from .models.enums import IMPORTANCE_RANK, StorageStatus
from .models.task import Task
from .status_codec import triggers_focus_activation


class FocusFields(BaseModel):
    """Focus 三元组，写入时整体替换"""

    focus_today: bool = False
    focus_user_id: str | None = None
    focus_date: date | None = None


class UserFocusGroup(BaseModel):
    """团队 Focus：按用户分组"""

    user_id: str
    tasks: list[Task] = Field(default_factory=list)


def activated(user_id: str, today: date) -> FocusFields:
    return FocusFields(focus_today=True, focus_user_id=user_id, focus_date=today)


def cleared() -> FocusFields:
    return FocusFields()


def toggled(task: Task, user_id: str, today: date) -> FocusFields:
    """翻转 Focus：开启记录操作者与当天日期，关闭清空两者

    前一天遗留的 Focus 视为未开启，翻转后重新为今天开启。
    """
    if is_focused_on(task, today):
        return cleared()
    return activated(user_id, today)


def current(task: Task) -> FocusFields:
    return FocusFields(
        focus_today=task.focus_today,
        focus_user_id=task.focus_user_id,
        focus_date=task.focus_date,
    )


def auto_activate_on_status_change(
    task: Task,
    new_status: StorageStatus,
    acting_user_id: str,
    today: date,
) -> FocusFields:
    """状态流转后的 Focus 字段

    进入 active 且今天尚未 Focus 时为操作者开启；其余情况原样保留。
    """
    if triggers_focus_activation(task.status, new_status, is_focused_on(task, today)):
        return activated(acting_user_id, today)
    return current(task)


def is_focused_on(task: Task, day: date) -> bool:
    """查询期过滤：仅 focus_date 等于 day 的任务可见"""
    return task.focus_today and task.focus_date == day


def _focus_sort_key(task: Task) -> tuple:
    return (IMPORTANCE_RANK[task.importance], task.created_at)


def personal_focus(
    tasks: Iterable[Task],
    user_id: str,
    day: date,
    limit: int | None = None,
) -> list[Task]:
    """某用户在 day 当天的 Focus 任务（排除 done），按重要程度排序"""
    selected = [
        t
        for t in tasks
        if is_focused_on(t, day)
        and t.focus_user_id == user_id
        and t.status != StorageStatus.DONE
    ]
    selected.sort(key=_focus_sort_key)
    if limit is not None:
        selected = selected[:limit]
    return selected


def team_focus(tasks: Iterable[Task], day: date) -> list[UserFocusGroup]:
    """项目全员在 day 当天的 Focus 任务，按用户分组（用户 ID 排序）"""
    groups: dict[str, UserFocusGroup] = {}
    for task in tasks:
        if not is_focused_on(task, day) or task.status == StorageStatus.DONE:
            continue
        # focus_today 为真时 focus_user_id 必然非空
        user_id = task.focus_user_id or ""
        group = groups.setdefault(user_id, UserFocusGroup(user_id=user_id))
        group.tasks.append(task)

    for group in groups.values():
        group.tasks.sort(key=_focus_sort_key)
    return [groups[uid] for uid in sorted(groups)]
