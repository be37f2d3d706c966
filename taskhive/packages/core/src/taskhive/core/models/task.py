"""Task Domain Model

任务行是共享资源，不加锁；写入按字段 last-write-wins，
调用方可选择携带 expected_version 进行乐观并发校验。
"""

from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from .enums import Importance, StorageStatus


class Task(BaseModel):
    """Task 数据模型

    Focus 字段不变式：focus_date / focus_user_id 非空当且仅当 focus_today 为真。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    project_id: str = Field(description="所属项目 ID")
    title: str = Field(description="任务标题")
    description: str = Field(default="", description="任务描述")
    status: StorageStatus = Field(default=StorageStatus.TODO, description="存储词表状态")
    assigned_to: str | None = Field(default=None, description="负责人，缺省为项目 owner")
    importance: Importance = Field(default=Importance.MEDIUM, description="重要程度")
    focus_today: bool = Field(default=False, description="是否为今日 Focus")
    focus_user_id: str | None = Field(default=None, description="设置 Focus 的用户")
    focus_date: date | None = Field(default=None, description="设置 Focus 的日期")
    completion_notes: str | None = Field(default=None, description="完成备注，仅 done 有意义")
    created_by: str = Field(default="", description="创建者")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    version: int = Field(default=1, ge=1, description="行版本号，每次写入递增")

    @model_validator(mode="after")
    def _check_focus_invariant(self) -> "Task":
        if self.focus_today:
            if self.focus_date is None or self.focus_user_id is None:
                raise ValueError("focus_today requires focus_date and focus_user_id")
        elif self.focus_date is not None or self.focus_user_id is not None:
            raise ValueError("focus_date/focus_user_id must be empty when focus_today is false")
        return self
