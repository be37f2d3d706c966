"""NotificationService -- 用户通知的查询、已读与删除

通知只能由其收件人读取和修改；按 ID 的操作对其他用户表现为不存在。
"""

import structlog

from taskhive.core.exceptions import NotFoundFailure
from taskhive.core.models import Notification
from taskhive.core.store import StoreGroup, run_in_transaction

log = structlog.get_logger()


class NotificationService:
    """通知业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def list_for_user(
        self, user_id: str, limit: int = 50
    ) -> tuple[list[Notification], int]:
        """Returns:
        (最新的通知列表, 未读总数)
        """
        store = self._stores.notification_store
        notifications = await store.list_for_user(user_id, limit=limit)
        unread = await store.count_unread(user_id)
        return notifications, unread

    async def mark_read(self, notification_id: str, user_id: str) -> Notification:
        store = self._stores.notification_store
        updated = await run_in_transaction(
            self._stores.conn, lambda: store.mark_read(notification_id, user_id)
        )
        if not updated:
            raise NotFoundFailure("Notification", notification_id)
        notification = await store.get_notification(notification_id, user_id)
        if notification is None:
            raise NotFoundFailure("Notification", notification_id)
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        store = self._stores.notification_store
        count = await run_in_transaction(
            self._stores.conn, lambda: store.mark_all_read(user_id)
        )
        log.info("notifications_marked_read", count=count)
        return count

    async def delete(self, notification_id: str, user_id: str) -> None:
        store = self._stores.notification_store
        deleted = await run_in_transaction(
            self._stores.conn, lambda: store.delete(notification_id, user_id)
        )
        if not deleted:
            raise NotFoundFailure("Notification", notification_id)

    async def delete_all(self, user_id: str) -> int:
        store = self._stores.notification_store
        count = await run_in_transaction(
            self._stores.conn, lambda: store.delete_all(user_id)
        )
        log.info("notifications_deleted", count=count)
        return count
