"""TaskHive 异常体系

Gateway 与 Client 共用同一套失败分类：
- 校验 / 未找到 / 版本冲突 / 鉴权失败：对调用方可见，不重试
- 瞬时网络失败：允许一次自动重试
- Fan-out 失败：仅记录日志，不影响触发它的写操作
- 过期读失败：无可回退的缓存值时抛出
"""


class TaskHiveError(Exception):
    """TaskHive 基础异常"""

    code: str = "TASKHIVE_ERROR"
    status_code: int = 500

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class ValidationFailure(TaskHiveError):
    """请求 payload 不合法"""

    code = "VALIDATION_FAILED"
    status_code = 422


class NotFoundFailure(TaskHiveError):
    """目标资源不存在"""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str,
        resource_id: str,
        message: str | None = None,
    ) -> None:
        super().__init__(message or f"{resource} with id {resource_id} does not exist")
        self.resource = resource
        self.resource_id = resource_id


class VersionConflictFailure(TaskHiveError):
    """写入时携带的 expected_version 已过期"""

    code = "VERSION_CONFLICT"
    status_code = 409

    def __init__(self, task_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Task {task_id} is at version {actual}, expected {expected}"
        )
        self.task_id = task_id
        self.expected = expected
        self.actual = actual


class AuthorizationFailure(TaskHiveError):
    """操作者对目标项目无权限（永不重试）"""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Access denied", status_code: int = 403) -> None:
        super().__init__(message)
        self.status_code = status_code
        if status_code == 401:
            self.code = "UNAUTHORIZED"


class TransientNetworkFailure(TaskHiveError):
    """请求超时、连接失败或服务端 5xx

    Optimistic Mutator 对此类失败自动重试一次。
    """

    code = "TRANSIENT_NETWORK_FAILURE"
    status_code = 503

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message, recoverable=True)
        self.original_error = original_error


class FanOutFailure(TaskHiveError):
    """收件人计算或通知持久化失败

    只记录日志并标记 outbox 行，永不回滚主写入。
    """

    code = "FANOUT_FAILED"

    def __init__(self, event_id: str, original_error: Exception) -> None:
        super().__init__(
            f"Fan-out failed for event {event_id}: {original_error}",
            recoverable=True,
        )
        self.event_id = event_id
        self.original_error = original_error


class StaleReadFailure(TaskHiveError):
    """拉取失败且缓存中没有可回退的值"""

    code = "STALE_READ"
    status_code = 503

    def __init__(self, resource_path: str, original_error: Exception) -> None:
        super().__init__(
            f"Could not refresh {resource_path}: {original_error}",
            recoverable=True,
        )
        self.resource_path = resource_path
        self.original_error = original_error
