"""Status Codec -- 存储词表与 UI 词表的双向映射

- normalize_incoming: 把任意入站字符串归一化为存储词表（全函数，永不抛异常）
- to_ui / to_db: 两个 4 元素词表之间的双射
- triggers_focus_activation: 进入 active 时自动激活 Focus 的判定
"""

import re
from typing import Any

from .models.enums import STORAGE_TO_UI, UI_TO_STORAGE, StorageStatus, UiStatus

# 归一化时忽略的字符：空白、连字符、下划线
_IGNORED_CHARS = re.compile(r"[\s\-_]+")

# 同义词表（紧凑小写形式），未命中统一落到 todo
STATUS_SYNONYMS: dict[str, StorageStatus] = {
    # wishlist
    "wishlist": StorageStatus.WISHLIST,
    "wish": StorageStatus.WISHLIST,
    "idea": StorageStatus.WISHLIST,
    "someday": StorageStatus.WISHLIST,
    # active
    "active": StorageStatus.ACTIVE,
    "inprocess": StorageStatus.ACTIVE,
    "inprogress": StorageStatus.ACTIVE,
    "doing": StorageStatus.ACTIVE,
    "wip": StorageStatus.ACTIVE,
    "started": StorageStatus.ACTIVE,
    "working": StorageStatus.ACTIVE,
    # done
    "done": StorageStatus.DONE,
    "finished": StorageStatus.DONE,
    "complete": StorageStatus.DONE,
    "completed": StorageStatus.DONE,
    "resolved": StorageStatus.DONE,
    "closed": StorageStatus.DONE,
    # todo
    "todo": StorageStatus.TODO,
    "pending": StorageStatus.TODO,
    "backlog": StorageStatus.TODO,
    "open": StorageStatus.TODO,
    "new": StorageStatus.TODO,
}

DEFAULT_STATUS = StorageStatus.TODO


def compact(raw: str) -> str:
    """小写并去掉空白/连字符/下划线"""
    return _IGNORED_CHARS.sub("", raw.strip().lower())


def normalize_incoming(raw: Any) -> StorageStatus:
    """将入站状态归一化为存储词表

    Args:
        raw: 任意值；None 或未识别的字符串返回 todo

    Returns:
        StorageStatus 四个取值之一
    """
    if raw is None:
        return DEFAULT_STATUS
    if isinstance(raw, StorageStatus):
        return raw
    if isinstance(raw, UiStatus):
        return UI_TO_STORAGE[raw]
    try:
        key = compact(str(raw))
    except Exception:
        return DEFAULT_STATUS
    return STATUS_SYNONYMS.get(key, DEFAULT_STATUS)


def to_ui(storage: StorageStatus | str) -> UiStatus:
    """存储词表 -> UI 词表"""
    return STORAGE_TO_UI[StorageStatus(storage)]


def to_db(ui: UiStatus | str) -> StorageStatus:
    """UI 词表 -> 存储词表"""
    return UI_TO_STORAGE[UiStatus(ui)]


def triggers_focus_activation(
    previous: StorageStatus | None,
    new: StorageStatus,
    focus_today: bool,
) -> bool:
    """判断一次状态流转是否应自动激活 Focus

    只有"从其他状态进入 active 且尚未 Focus"才触发；
    离开 active 永远不会自动取消 Focus。

    Args:
        previous: 流转前状态，新建任务时为 None
        new: 流转后状态
        focus_today: 任务当前是否已 Focus
    """
    if focus_today:
        return False
    return new == StorageStatus.ACTIVE and previous != StorageStatus.ACTIVE
