"""任务路由

GET/POST /api/projects/{project_id}/tasks: 项目任务列表 / 创建任务
GET/PATCH/DELETE /api/tasks/{task_id}: 任务详情 / 按字段更新 / 删除
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from taskhive.core.models import Importance, Task
from taskhive.core.status_codec import to_ui

from ..deps import get_current_user, get_dispatcher, get_store_group
from ..errors import error_response
from ..services.task_service import TaskService

router = APIRouter()


class TaskOut(BaseModel):
    """任务响应（status 为存储词表，ui_status 为展示词表）"""

    task_id: str
    project_id: str
    title: str
    description: str
    status: str
    ui_status: str
    assigned_to: str | None
    importance: str
    focus_today: bool
    focus_user_id: str | None
    focus_date: str | None
    completion_notes: str | None
    created_by: str
    created_at: str
    updated_at: str
    version: int

    @classmethod
    def from_task(cls, task: Task) -> "TaskOut":
        return cls(
            task_id=task.task_id,
            project_id=task.project_id,
            title=task.title,
            description=task.description,
            status=task.status.value,
            ui_status=to_ui(task.status).value,
            assigned_to=task.assigned_to,
            importance=task.importance.value,
            focus_today=task.focus_today,
            focus_user_id=task.focus_user_id,
            focus_date=task.focus_date.isoformat() if task.focus_date else None,
            completion_notes=task.completion_notes,
            created_by=task.created_by,
            created_at=task.created_at.isoformat(),
            updated_at=task.updated_at.isoformat(),
            version=task.version,
        )


class TaskListResponse(BaseModel):
    tasks: list[TaskOut]


class TaskCreateRequest(BaseModel):
    """创建任务请求；status 接受任意词表或同义词"""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    description: str = ""
    status: str | None = None
    assigned_to: str | None = None
    importance: Importance = Importance.MEDIUM
    completion_notes: str | None = None


class TaskUpdateRequest(BaseModel):
    """按字段更新请求：只有显式出现的字段会被修改"""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    status: str | None = None
    assigned_to: str | None = None
    importance: Importance | None = None
    completion_notes: str | None = None
    expected_version: int | None = Field(default=None, ge=1)

    def changes(self) -> dict:
        fields = self.model_fields_set - {"expected_version"}
        return {name: getattr(self, name) for name in fields}


@router.get("/api/projects/{project_id}/tasks", response_model=TaskListResponse)
async def list_tasks(
    project_id: str,
    status: str | None = Query(default=None, description="按状态筛选，接受任意词表"),
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    """查询项目任务列表，按 created_at 正序"""
    service = TaskService(store_group)
    tasks = await service.list_tasks(project_id, user_id, status)
    return TaskListResponse(tasks=[TaskOut.from_task(t) for t in tasks])


@router.post(
    "/api/projects/{project_id}/tasks",
    response_model=TaskOut,
    status_code=201,
)
async def create_task(
    project_id: str,
    req: TaskCreateRequest,
    store_group=Depends(get_store_group),
    dispatcher=Depends(get_dispatcher),
    user_id: str = Depends(get_current_user),
):
    service = TaskService(store_group, dispatcher)
    task = await service.create_task(
        project_id,
        user_id,
        title=req.title,
        description=req.description,
        status=req.status,
        assigned_to=req.assigned_to,
        importance=req.importance,
        completion_notes=req.completion_notes,
    )
    return TaskOut.from_task(task)


@router.get("/api/tasks/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = TaskService(store_group)
    task = await service.get_task(task_id, user_id)
    if task is None:
        return error_response(
            404,
            "NOT_FOUND",
            f"Task with id {task_id} does not exist",
            {"resource": "Task", "resource_id": task_id},
        )
    return TaskOut.from_task(task)


@router.patch("/api/tasks/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: str,
    req: TaskUpdateRequest,
    store_group=Depends(get_store_group),
    dispatcher=Depends(get_dispatcher),
    user_id: str = Depends(get_current_user),
):
    """按字段更新任务；携带 expected_version 时版本不符返回 409"""
    service = TaskService(store_group, dispatcher)
    task = await service.update_task(
        task_id,
        user_id,
        req.changes(),
        expected_version=req.expected_version,
    )
    return TaskOut.from_task(task)


@router.delete("/api/tasks/{task_id}")
async def delete_task(
    task_id: str,
    store_group=Depends(get_store_group),
    dispatcher=Depends(get_dispatcher),
    user_id: str = Depends(get_current_user),
):
    service = TaskService(store_group, dispatcher)
    await service.delete_task(task_id, user_id)
    return {"deleted": True, "task_id": task_id}
