"""TaskHive Client -- 客户端同步 SDK

packages/client 的公开接口导出。
"""

# 核心组件
from .api import TaskHiveClient, raise_for_failure, ui_task
from .cache import EntryState, MutationCache, Subscription

# 配置
from .config import ClientConfig, load_client_config

# 缓存键
from .keys import CacheKey, ResourceKind, project_keys
from .mutator import OptimisticMutator, keep_projection, merge_server_result
from .poller import PollerRegistry, SyncPoller

__all__ = [
    "TaskHiveClient",
    "MutationCache",
    "EntryState",
    "Subscription",
    "OptimisticMutator",
    "SyncPoller",
    "PollerRegistry",
    "CacheKey",
    "ResourceKind",
    "project_keys",
    "merge_server_result",
    "keep_projection",
    "raise_for_failure",
    "ui_task",
    "ClientConfig",
    "load_client_config",
]
