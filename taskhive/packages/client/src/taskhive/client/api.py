"""TaskHiveClient -- Gateway HTTP API 的异步客户端

- 读接口走 MutationCache（过期惰性重拉），返回 UI 词表的数据
- 写接口走 OptimisticMutator（本地立即生效，失败回滚）
- observe_project 返回该项目共享的 SyncPoller
- HTTP 错误统一映射到 taskhive.core.exceptions 的失败分类
"""

from collections.abc import Awaitable, Callable
from typing import Any, Literal

import httpx
import structlog
from ulid import ULID

from taskhive.core.config import utc_today
from taskhive.core.exceptions import (
    AuthorizationFailure,
    NotFoundFailure,
    TaskHiveError,
    TransientNetworkFailure,
    ValidationFailure,
    VersionConflictFailure,
)
from taskhive.core.status_codec import normalize_incoming, to_ui, triggers_focus_activation

from .cache import MutationCache
from .config import ClientConfig, load_client_config
from .keys import (
    MY_FOCUS_KEY,
    NOTIFICATIONS_KEY,
    CacheKey,
    ResourceKind,
    members_key,
    project_key,
    tasks_key,
    team_focus_key,
    todays_focus_key,
)
from .mutator import OptimisticMutator, keep_projection
from .poller import PollerRegistry, SyncPoller

log = structlog.get_logger()

ALL = "all"

# 乐观创建的临时任务 ID 前缀
_TEMP_ID_PREFIX = "temp-"


def ui_task(task: dict[str, Any]) -> dict[str, Any]:
    """服务端任务 -> UI 形状（status 换成 UI 词表）"""
    shaped = dict(task)
    shaped["status"] = to_ui(normalize_incoming(task.get("status"))).value
    return shaped


def _focused_today(task: dict[str, Any], today: str) -> bool:
    return bool(task.get("focus_today")) and task.get("focus_date") == today


def _ui_tasks(tasks: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [ui_task(t) for t in tasks]


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {}


def raise_for_failure(response: httpx.Response) -> None:
    """把非 2xx 响应映射为 TaskHive 失败类型"""
    status = response.status_code
    if status < 400:
        return
    error = _error_body(response)
    message = error.get("message") or response.reason_phrase or f"HTTP {status}"
    details = error.get("details") or {}
    path = response.request.url.path

    if status in (401, 403):
        raise AuthorizationFailure(message, status_code=status)
    if status == 404:
        raise NotFoundFailure(
            details.get("resource", "resource"),
            details.get("resource_id", path),
            message=message,
        )
    if status == 409:
        raise VersionConflictFailure(
            details.get("task_id", ""),
            int(details.get("expected", 0)),
            int(details.get("actual", 0)),
        )
    if status >= 500:
        raise TransientNetworkFailure(f"{path} returned {status}: {message}")
    raise ValidationFailure(message)


class TaskHiveClient:
    """TaskHive 客户端 SDK

    一个实例拥有一份缓存、一个乐观变更器和一组按项目共享的轮询器。
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        cache: MutationCache | None = None,
    ) -> None:
        """
        Args:
            config: 客户端配置，缺省从环境变量加载
            transport: 自定义 httpx transport（测试时可用 ASGITransport 直连 app）
            cache: 自定义缓存实例（测试时可注入时钟）
        """
        self._config = config or load_client_config()
        headers = {"X-User-Id": self._config.user_id} if self._config.user_id else {}
        self._http = httpx.AsyncClient(
            base_url=self._config.api_base_url,
            timeout=self._config.timeout_s,
            headers=headers,
            transport=transport,
        )
        self.cache = cache or MutationCache(stale_time=self._config.stale_time_s)
        self.mutator = OptimisticMutator(
            self.cache,
            revalidate_delay=self._config.revalidate_delay_s,
        )
        self.pollers = PollerRegistry(self.cache, interval=self._config.poll_interval_s)

    @property
    def user_id(self) -> str:
        return self._config.user_id

    async def aclose(self) -> None:
        await self.pollers.close()
        self.mutator.close()
        await self._http.aclose()

    async def __aenter__(self) -> "TaskHiveClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ---- HTTP ----

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientNetworkFailure(f"{method} {path} timed out", e) from e
        except httpx.TransportError as e:
            raise TransientNetworkFailure(f"{method} {path} failed: {e}", e) from e

        try:
            raise_for_failure(response)
        except TaskHiveError as e:
            log.info(
                "api_request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                code=e.code,
            )
            raise
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ---- 读 ----

    def _loader_for(self, key: CacheKey) -> Callable[[], Awaitable[Any]]:
        async def _load() -> Any:
            body = await self._request("GET", key.path())
            if key.kind in (
                ResourceKind.TASKS,
                ResourceKind.TODAYS_FOCUS,
                ResourceKind.MY_FOCUS,
            ):
                return _ui_tasks(body["tasks"])
            if key.kind == ResourceKind.TEAM_FOCUS:
                return [
                    {"user_id": g["user_id"], "tasks": _ui_tasks(g["tasks"])}
                    for g in body["groups"]
                ]
            return body

        return _load

    async def read(self, key: CacheKey) -> Any:
        """按键读取（缓存未过期直接返回）"""
        return await self.cache.fetch(key, self._loader_for(key))

    async def get_tasks(self, project_id: str) -> list[dict[str, Any]]:
        return await self.read(tasks_key(project_id))

    async def get_focus(
        self,
        project_id: str,
        when: Literal["mine", "team"] = "mine",
    ) -> list[dict[str, Any]]:
        """项目今日 Focus：mine 为当前用户列表，team 为按用户分组的列表"""
        if when == "team":
            return await self.read(team_focus_key(project_id))
        if when == "mine":
            return await self.read(todays_focus_key(project_id))
        raise ValueError(f"Unknown focus view: {when}")

    async def get_my_focus(self) -> list[dict[str, Any]]:
        """跨所有可访问项目的今日 Focus"""
        return await self.read(MY_FOCUS_KEY)

    async def get_notifications(self) -> dict[str, Any]:
        """{"notifications": [...], "unread_count": n}"""
        return await self.read(NOTIFICATIONS_KEY)

    async def get_members(self, project_id: str) -> dict[str, Any]:
        return await self.read(members_key(project_id))

    async def get_project(self, project_id: str) -> dict[str, Any]:
        return await self.read(project_key(project_id))

    def observe_project(self, project_id: str) -> SyncPoller:
        """登记对项目的观察，返回该项目共享（已启动）的 SyncPoller"""
        return self.pollers.acquire(project_id)

    async def release_project(self, project_id: str) -> None:
        await self.pollers.release(project_id)

    # ---- 写 ----

    async def _settle_project_write(
        self, project_id: str, mutation: Awaitable[Any]
    ) -> Any:
        """等待项目内写入结算（确认或回滚），之后让观察中的轮询器强制同步整组键"""
        try:
            return await mutation
        finally:
            poller = self.pollers.get(project_id)
            if poller is not None:
                poller.invalidate_after_mutation()

    def _focus_dependents(self, project_id: str) -> tuple[CacheKey, ...]:
        return (
            todays_focus_key(project_id),
            team_focus_key(project_id),
            MY_FOCUS_KEY,
        )

    async def submit_task_mutation(
        self,
        project_id: str,
        task_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        """修改任务字段（乐观更新任务列表）

        Raises:
            VersionConflictFailure: 携带的 expected_version 已过期
        """
        body = dict(fields)
        if expected_version is not None:
            body["expected_version"] = expected_version
        user_id = self.user_id
        today = utc_today().isoformat()

        def _project(tasks: Any) -> Any:
            if not isinstance(tasks, list):
                return tasks
            updated = []
            for task in tasks:
                if task.get("task_id") != task_id:
                    updated.append(task)
                    continue
                patched = {**task, **fields}
                if "status" in fields:
                    previous = normalize_incoming(task.get("status"))
                    new = normalize_incoming(fields["status"])
                    patched["status"] = to_ui(new).value
                    if triggers_focus_activation(
                        previous, new, _focused_today(task, today)
                    ):
                        patched.update(
                            focus_today=True,
                            focus_user_id=user_id,
                            focus_date=today,
                        )
                updated.append(patched)
            return updated

        async def _call() -> dict[str, Any]:
            return ui_task(await self._request("PATCH", f"/api/tasks/{task_id}", json=body))

        return await self._settle_project_write(
            project_id,
            self.mutator.perform_mutation(
                tasks_key(project_id),
                _project,
                _call,
                dependent_keys=self._focus_dependents(project_id),
            ),
        )

    async def create_task(
        self,
        project_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """创建任务（临时 ID 先插入列表，成功后替换为服务端记录）"""
        temp_id = f"{_TEMP_ID_PREFIX}{ULID()}"
        placeholder = {
            "task_id": temp_id,
            "project_id": project_id,
            "description": "",
            "assigned_to": None,
            "focus_today": False,
            "focus_user_id": None,
            "focus_date": None,
            **fields,
            "status": to_ui(normalize_incoming(fields.get("status"))).value,
        }

        def _project(tasks: Any) -> Any:
            return [*(tasks if isinstance(tasks, list) else []), placeholder]

        def _merge(projected: Any, created: Any) -> Any:
            kept = [t for t in projected if t.get("task_id") != temp_id]
            return [*kept, created]

        async def _call() -> dict[str, Any]:
            return ui_task(
                await self._request(
                    "POST", f"/api/projects/{project_id}/tasks", json=fields
                )
            )

        return await self._settle_project_write(
            project_id,
            self.mutator.perform_mutation(
                tasks_key(project_id),
                _project,
                _call,
                dependent_keys=self._focus_dependents(project_id),
                merge=_merge,
            ),
        )

    async def delete_task(self, project_id: str, task_id: str) -> dict[str, Any]:
        def _project(tasks: Any) -> Any:
            if not isinstance(tasks, list):
                return tasks
            return [t for t in tasks if t.get("task_id") != task_id]

        async def _call() -> dict[str, Any]:
            return await self._request("DELETE", f"/api/tasks/{task_id}")

        return await self._settle_project_write(
            project_id,
            self.mutator.perform_mutation(
                tasks_key(project_id),
                _project,
                _call,
                dependent_keys=self._focus_dependents(project_id),
                merge=keep_projection,
            ),
        )

    async def toggle_focus(self, project_id: str, task_id: str) -> dict[str, Any]:
        user_id = self.user_id
        today = utc_today().isoformat()

        def _project(tasks: Any) -> Any:
            if not isinstance(tasks, list):
                return tasks
            updated = []
            for task in tasks:
                if task.get("task_id") == task_id:
                    if _focused_today(task, today):
                        task = {
                            **task,
                            "focus_today": False,
                            "focus_user_id": None,
                            "focus_date": None,
                        }
                    else:
                        task = {
                            **task,
                            "focus_today": True,
                            "focus_user_id": user_id,
                            "focus_date": today,
                        }
                updated.append(task)
            return updated

        async def _call() -> dict[str, Any]:
            return ui_task(await self._request("POST", f"/api/tasks/{task_id}/focus"))

        return await self._settle_project_write(
            project_id,
            self.mutator.perform_mutation(
                tasks_key(project_id),
                _project,
                _call,
                dependent_keys=self._focus_dependents(project_id),
            ),
        )

    async def mark_notification_read(self, notification_id: str) -> Any:
        """标记单条（或 "all"）通知已读"""

        def _project(value: Any) -> Any:
            if not isinstance(value, dict):
                return value
            items = [
                {**n, "read": True}
                if notification_id == ALL or n.get("notification_id") == notification_id
                else n
                for n in value.get("notifications", [])
            ]
            unread = sum(1 for n in items if not n.get("read"))
            return {**value, "notifications": items, "unread_count": unread}

        if notification_id == ALL:
            path = "/api/notifications/read-all"
        else:
            path = f"/api/notifications/{notification_id}/read"

        async def _call() -> Any:
            return await self._request("PUT", path)

        return await self.mutator.perform_mutation(
            NOTIFICATIONS_KEY,
            _project,
            _call,
            merge=keep_projection,
        )

    async def delete_notification(self, notification_id: str) -> Any:
        """删除单条（或 "all"）通知"""

        def _project(value: Any) -> Any:
            if not isinstance(value, dict):
                return value
            if notification_id == ALL:
                items: list[dict[str, Any]] = []
            else:
                items = [
                    n
                    for n in value.get("notifications", [])
                    if n.get("notification_id") != notification_id
                ]
            unread = sum(1 for n in items if not n.get("read"))
            return {**value, "notifications": items, "unread_count": unread}

        if notification_id == ALL:
            path = "/api/notifications"
        else:
            path = f"/api/notifications/{notification_id}"

        async def _call() -> Any:
            return await self._request("DELETE", path)

        return await self.mutator.perform_mutation(
            NOTIFICATIONS_KEY,
            _project,
            _call,
            merge=keep_projection,
        )

    # ---- 项目（不走乐观更新）----

    async def create_project(self, name: str, description: str = "") -> dict[str, Any]:
        project = await self._request(
            "POST", "/api/projects", json={"name": name, "description": description}
        )
        self.cache.set(project_key(project["project_id"]), project)
        return project

    async def add_member(self, project_id: str, user_id: str) -> dict[str, Any]:
        member = await self._request(
            "POST", f"/api/projects/{project_id}/members", json={"user_id": user_id}
        )
        self.cache.invalidate(members_key(project_id))
        return member

    async def remove_member(self, project_id: str, user_id: str) -> dict[str, Any]:
        result = await self._request(
            "DELETE", f"/api/projects/{project_id}/members/{user_id}"
        )
        self.cache.invalidate(members_key(project_id))
        return result

    async def emit_event(
        self,
        event_type: str,
        project_id: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        """外部协作方上报领域事件（如文件上传）"""
        return await self._request(
            "POST",
            "/api/events",
            json={"type": event_type, "project_id": project_id, "payload": payload},
        )
