"""ProjectService -- 项目、成员与访问控制

访问规则：
- owner、成员行中的用户、配置的管理员可访问项目
- 只有 owner 或管理员可以添加/移除成员；成员可以自行退出
"""

from datetime import UTC, datetime

import aiosqlite
import structlog
from ulid import ULID

from taskhive.core.config import TITLE_MAX_LENGTH, get_admin_user_ids
from taskhive.core.exceptions import (
    AuthorizationFailure,
    NotFoundFailure,
    ValidationFailure,
)
from taskhive.core.models import (
    DomainEvent,
    DomainEventType,
    MemberAddedPayload,
    MemberRemovedPayload,
    MemberRole,
    Project,
    ProjectMember,
    ProjectParticipants,
)
from taskhive.core.store import (
    StoreGroup,
    add_member_with_event,
    create_project_with_owner,
    remove_member_with_event,
)

from .notification_dispatcher import NotificationDispatcher

log = structlog.get_logger()


def is_admin(user_id: str) -> bool:
    return user_id in get_admin_user_ids()


class ProjectService:
    """项目业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._stores = store_group
        self._dispatcher = dispatcher

    async def create_project(
        self,
        name: str,
        owner_id: str,
        description: str = "",
    ) -> Project:
        """创建项目，创建者即 owner"""
        name = name.strip()
        if not name:
            raise ValidationFailure("Project name must not be empty")
        if len(name) > TITLE_MAX_LENGTH:
            raise ValidationFailure(
                f"Project name must be at most {TITLE_MAX_LENGTH} characters"
            )

        project = Project(
            project_id=str(ULID()),
            name=name,
            description=description,
            user_id=owner_id,
            created_at=datetime.now(UTC),
        )
        await create_project_with_owner(
            self._stores.conn, self._stores.project_store, project
        )
        log.info("project_created", project_id=project.project_id, owner_id=owner_id)
        return project

    async def list_projects(self, user_id: str) -> list[Project]:
        """用户作为 owner 或成员可访问的项目"""
        return await self._stores.project_store.list_accessible_projects(user_id)

    async def require_access(self, project_id: str, user_id: str) -> ProjectParticipants:
        """校验用户可访问项目并返回参与者快照

        Raises:
            NotFoundFailure: 项目不存在
            AuthorizationFailure: 用户既不是 owner/成员也不是管理员
        """
        participants = await self._stores.project_store.get_participants(project_id)
        if participants is None:
            raise NotFoundFailure("Project", project_id)
        if not participants.has_access(user_id) and not is_admin(user_id):
            raise AuthorizationFailure(f"No access to project {project_id}")
        return participants

    async def require_owner(self, project_id: str, user_id: str) -> ProjectParticipants:
        participants = await self.require_access(project_id, user_id)
        if participants.owner_id != user_id and not is_admin(user_id):
            raise AuthorizationFailure(
                f"Only the project owner can manage members of {project_id}"
            )
        return participants

    async def add_member(
        self,
        project_id: str,
        user_id: str,
        actor_id: str,
    ) -> ProjectMember:
        """添加成员并产生 member_added 事件

        Raises:
            ValidationFailure: 用户已是 owner 或成员
        """
        participants = await self.require_owner(project_id, actor_id)
        user_id = user_id.strip()
        if not user_id:
            raise ValidationFailure("user_id must not be empty")
        if participants.has_access(user_id):
            raise ValidationFailure(f"User {user_id} is already part of the project")

        now = datetime.now(UTC)
        member = ProjectMember(
            project_id=project_id,
            user_id=user_id,
            role=MemberRole.MEMBER,
            joined_at=now,
        )
        event = DomainEvent(
            event_id=str(ULID()),
            type=DomainEventType.MEMBER_ADDED,
            actor_id=actor_id,
            project_id=project_id,
            payload=MemberAddedPayload(
                user_id=user_id,
                project_name=participants.project.name,
            ).model_dump(),
            ts=now,
        )
        try:
            await add_member_with_event(
                self._stores.conn,
                self._stores.project_store,
                self._stores.event_store,
                member,
                event,
            )
        except aiosqlite.IntegrityError as e:
            # 并发重复添加
            raise ValidationFailure(
                f"User {user_id} is already part of the project"
            ) from e

        log.info("member_added", project_id=project_id, member_id=user_id)
        self._publish(event)
        return member

    async def remove_member(
        self,
        project_id: str,
        user_id: str,
        actor_id: str,
    ) -> None:
        """移除成员（owner/管理员移除他人，或成员自行退出）"""
        if actor_id == user_id:
            participants = await self.require_access(project_id, actor_id)
        else:
            participants = await self.require_owner(project_id, actor_id)

        if user_id == participants.owner_id:
            raise ValidationFailure("The project owner cannot be removed")
        if user_id not in participants.member_ids:
            raise NotFoundFailure("Member", user_id)

        event = DomainEvent(
            event_id=str(ULID()),
            type=DomainEventType.MEMBER_REMOVED,
            actor_id=actor_id,
            project_id=project_id,
            payload=MemberRemovedPayload(
                user_id=user_id,
                project_name=participants.project.name,
            ).model_dump(),
            ts=datetime.now(UTC),
        )
        removed = await remove_member_with_event(
            self._stores.conn,
            self._stores.project_store,
            self._stores.event_store,
            project_id,
            user_id,
            event,
        )
        if not removed:
            raise NotFoundFailure("Member", user_id)

        log.info("member_removed", project_id=project_id, member_id=user_id)
        self._publish(event)

    def _publish(self, event: DomainEvent) -> None:
        if self._dispatcher is not None:
            self._dispatcher.enqueue(event)
