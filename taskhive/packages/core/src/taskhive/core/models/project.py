"""Project / ProjectMember Domain Model

owner 隐式拥有项目，不以成员行存储。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import MemberRole


class Project(BaseModel):
    """Project 数据模型"""

    project_id: str = Field(description="唯一标识，ULID 格式")
    name: str = Field(description="项目名称")
    description: str = Field(default="", description="项目描述")
    user_id: str = Field(description="项目 owner")
    created_at: datetime = Field(description="创建时间")


class ProjectMember(BaseModel):
    """项目成员行"""

    project_id: str
    user_id: str
    role: MemberRole = Field(default=MemberRole.MEMBER)
    joined_at: datetime


class ProjectParticipants(BaseModel):
    """项目参与者快照（owner + 成员），用于鉴权和收件人计算"""

    project: Project
    members: list[ProjectMember] = Field(default_factory=list)

    @property
    def owner_id(self) -> str:
        return self.project.user_id

    @property
    def member_ids(self) -> list[str]:
        """成员 ID（不含 owner，保持加入顺序）"""
        return [m.user_id for m in self.members if m.user_id != self.owner_id]

    def has_access(self, user_id: str) -> bool:
        return user_id == self.owner_id or user_id in self.member_ids
