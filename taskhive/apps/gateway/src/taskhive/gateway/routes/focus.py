"""今日 Focus 路由

POST /api/tasks/{task_id}/focus: 翻转 Focus（不产生通知）
GET /api/projects/{project_id}/todays-focus: 调用者在项目内的 Focus
GET /api/projects/{project_id}/team-focus: 项目全员 Focus，按用户分组
GET /api/focus/mine: 调用者在所有可访问项目中的 Focus

查询均支持 day=YYYY-MM-DD，缺省为当天（UTC）。
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from taskhive.core.config import utc_today

from ..deps import get_current_user, get_store_group
from ..services.focus_service import FocusService
from .tasks import TaskOut

router = APIRouter()


class FocusListResponse(BaseModel):
    day: str
    tasks: list[TaskOut]


class FocusGroupOut(BaseModel):
    user_id: str
    tasks: list[TaskOut]


class TeamFocusResponse(BaseModel):
    day: str
    groups: list[FocusGroupOut]


@router.post("/api/tasks/{task_id}/focus", response_model=TaskOut)
async def toggle_focus(
    task_id: str,
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = FocusService(store_group)
    task = await service.toggle_focus(task_id, user_id)
    return TaskOut.from_task(task)


@router.get(
    "/api/projects/{project_id}/todays-focus",
    response_model=FocusListResponse,
)
async def todays_focus(
    project_id: str,
    day: date | None = Query(default=None, description="查询日期，缺省为今天"),
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    day = day or utc_today()
    service = FocusService(store_group)
    tasks = await service.personal(project_id, user_id, day)
    return FocusListResponse(
        day=day.isoformat(),
        tasks=[TaskOut.from_task(t) for t in tasks],
    )


@router.get(
    "/api/projects/{project_id}/team-focus",
    response_model=TeamFocusResponse,
)
async def team_focus(
    project_id: str,
    day: date | None = Query(default=None, description="查询日期，缺省为今天"),
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    day = day or utc_today()
    service = FocusService(store_group)
    groups = await service.team(project_id, user_id, day)
    return TeamFocusResponse(
        day=day.isoformat(),
        groups=[
            FocusGroupOut(
                user_id=g.user_id,
                tasks=[TaskOut.from_task(t) for t in g.tasks],
            )
            for g in groups
        ],
    )


@router.get("/api/focus/mine", response_model=FocusListResponse)
async def my_focus(
    day: date | None = Query(default=None, description="查询日期，缺省为今天"),
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    day = day or utc_today()
    service = FocusService(store_group)
    tasks = await service.mine(user_id, day)
    return FocusListResponse(
        day=day.isoformat(),
        tasks=[TaskOut.from_task(t) for t in tasks],
    )
