"""项目与成员路由

GET/POST /api/projects: 可访问的项目列表 / 创建项目（调用者为 owner）
GET /api/projects/{project_id}: 项目详情
GET/POST /api/projects/{project_id}/members: 成员列表 / 添加成员
DELETE /api/projects/{project_id}/members/{user_id}: 移除成员或自行退出
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from taskhive.core.models import Project, ProjectMember

from ..deps import get_current_user, get_dispatcher, get_store_group
from ..services.project_service import ProjectService

router = APIRouter()


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""


class ProjectOut(BaseModel):
    project_id: str
    name: str
    description: str
    owner_id: str
    created_at: str

    @classmethod
    def from_project(cls, project: Project) -> "ProjectOut":
        return cls(
            project_id=project.project_id,
            name=project.name,
            description=project.description,
            owner_id=project.user_id,
            created_at=project.created_at.isoformat(),
        )


class MemberOut(BaseModel):
    user_id: str
    role: str
    joined_at: str

    @classmethod
    def from_member(cls, member: ProjectMember) -> "MemberOut":
        return cls(
            user_id=member.user_id,
            role=member.role.value,
            joined_at=member.joined_at.isoformat(),
        )


class MemberListResponse(BaseModel):
    owner_id: str
    members: list[MemberOut]


class MemberAddRequest(BaseModel):
    user_id: str = Field(min_length=1)


class ProjectListResponse(BaseModel):
    projects: list[ProjectOut]


@router.get("/api/projects", response_model=ProjectListResponse)
async def list_projects(
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = ProjectService(store_group)
    projects = await service.list_projects(user_id)
    return ProjectListResponse(projects=[ProjectOut.from_project(p) for p in projects])


@router.post("/api/projects", response_model=ProjectOut, status_code=201)
async def create_project(
    req: ProjectCreateRequest,
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = ProjectService(store_group)
    project = await service.create_project(req.name, user_id, req.description)
    return ProjectOut.from_project(project)


@router.get("/api/projects/{project_id}", response_model=ProjectOut)
async def get_project(
    project_id: str,
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    service = ProjectService(store_group)
    participants = await service.require_access(project_id, user_id)
    return ProjectOut.from_project(participants.project)


@router.get("/api/projects/{project_id}/members", response_model=MemberListResponse)
async def list_members(
    project_id: str,
    store_group=Depends(get_store_group),
    user_id: str = Depends(get_current_user),
):
    """成员列表（owner 隐式拥有项目，单独返回）"""
    service = ProjectService(store_group)
    participants = await service.require_access(project_id, user_id)
    return MemberListResponse(
        owner_id=participants.owner_id,
        members=[MemberOut.from_member(m) for m in participants.members],
    )


@router.post(
    "/api/projects/{project_id}/members",
    response_model=MemberOut,
    status_code=201,
)
async def add_member(
    project_id: str,
    req: MemberAddRequest,
    store_group=Depends(get_store_group),
    dispatcher=Depends(get_dispatcher),
    user_id: str = Depends(get_current_user),
):
    service = ProjectService(store_group, dispatcher)
    member = await service.add_member(project_id, req.user_id, actor_id=user_id)
    return MemberOut.from_member(member)


@router.delete("/api/projects/{project_id}/members/{member_id}")
async def remove_member(
    project_id: str,
    member_id: str,
    store_group=Depends(get_store_group),
    dispatcher=Depends(get_dispatcher),
    user_id: str = Depends(get_current_user),
):
    service = ProjectService(store_group, dispatcher)
    await service.remove_member(project_id, member_id, actor_id=user_id)
    return {"removed": True}
