"""缓存键 -- 资源类型 + 作用域的标签值，集中定义键格式与资源路径

作用域（project_id）中不允许出现路径分隔符，避免不同资源的路径互相冲突。

NOTES 键只为外部协作方保留：笔记由协作方用自己的 loader 通过
MutationCache.fetch 读取（Gateway 不提供笔记路由），Sync Poller 照常失效它。
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, model_validator

_SEP = "/"


class ResourceKind(StrEnum):
    """可缓存的服务端资源"""

    TASKS = "tasks"
    TODAYS_FOCUS = "todays-focus"
    TEAM_FOCUS = "team-focus"
    NOTES = "notes"
    MEMBERS = "members"
    PROJECT = "project"
    MY_FOCUS = "my-focus"
    NOTIFICATIONS = "notifications"


# 需要 project_id 作用域的资源
PROJECT_SCOPED: frozenset[ResourceKind] = frozenset(
    {
        ResourceKind.TASKS,
        ResourceKind.TODAYS_FOCUS,
        ResourceKind.TEAM_FOCUS,
        ResourceKind.NOTES,
        ResourceKind.MEMBERS,
        ResourceKind.PROJECT,
    }
)

# Sync Poller 每轮失效的项目键集合（顺序即失效顺序）
PROJECT_SYNC_KINDS: tuple[ResourceKind, ...] = (
    ResourceKind.TASKS,
    ResourceKind.TODAYS_FOCUS,
    ResourceKind.TEAM_FOCUS,
    ResourceKind.NOTES,
    ResourceKind.MEMBERS,
    ResourceKind.PROJECT,
)


class CacheKey(BaseModel):
    """缓存键：不可变、可哈希"""

    model_config = ConfigDict(frozen=True)

    kind: ResourceKind
    scope: str | None = None

    @model_validator(mode="after")
    def _check_scope(self) -> "CacheKey":
        if self.kind in PROJECT_SCOPED:
            if not self.scope:
                raise ValueError(f"{self.kind.value} key requires a project scope")
            if _SEP in self.scope:
                raise ValueError(f"Cache key scope must not contain {_SEP!r}")
        elif self.scope is not None:
            raise ValueError(f"{self.kind.value} key is not project scoped")
        return self

    def path(self) -> str:
        """对应的 Gateway 资源路径"""
        if self.kind == ResourceKind.PROJECT:
            return f"/api/projects/{self.scope}"
        if self.kind == ResourceKind.MY_FOCUS:
            return "/api/focus/mine"
        if self.kind == ResourceKind.NOTIFICATIONS:
            return "/api/notifications"
        return f"/api/projects/{self.scope}/{self.kind.value}"

    def __str__(self) -> str:
        if self.scope is None:
            return self.kind.value
        return f"{self.kind.value}:{self.scope}"


def tasks_key(project_id: str) -> CacheKey:
    return CacheKey(kind=ResourceKind.TASKS, scope=project_id)


def todays_focus_key(project_id: str) -> CacheKey:
    return CacheKey(kind=ResourceKind.TODAYS_FOCUS, scope=project_id)


def team_focus_key(project_id: str) -> CacheKey:
    return CacheKey(kind=ResourceKind.TEAM_FOCUS, scope=project_id)


def members_key(project_id: str) -> CacheKey:
    return CacheKey(kind=ResourceKind.MEMBERS, scope=project_id)


def project_key(project_id: str) -> CacheKey:
    return CacheKey(kind=ResourceKind.PROJECT, scope=project_id)


MY_FOCUS_KEY = CacheKey(kind=ResourceKind.MY_FOCUS)
NOTIFICATIONS_KEY = CacheKey(kind=ResourceKind.NOTIFICATIONS)


def project_keys(project_id: str) -> tuple[CacheKey, ...]:
    """Sync Poller 负责的项目键集合"""
    return tuple(CacheKey(kind=kind, scope=project_id) for kind in PROJECT_SYNC_KINDS)
