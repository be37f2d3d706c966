"""Fan-out 收件人规则单元测试

测试内容：
1. 各事件类型的收件人集合
2. 操作者排除、按收件人去重（保留最具体规则）
3. 项目完成通知
4. 文件上传作用域
"""

from datetime import UTC, datetime

import pytest

from taskhive.core.fanout import RecipientSet, compute_notifications
from taskhive.core.models import (
    DomainEvent,
    DomainEventType,
    NotificationType,
)
from taskhive.core.models.enums import FileScope


def _event(type: DomainEventType, actor: str, payload: dict) -> DomainEvent:
    return DomainEvent(
        event_id="E1",
        type=type,
        actor_id=actor,
        project_id="P1",
        payload=payload,
        ts=datetime(2026, 3, 1, 10, 0, tzinfo=UTC),
    )


def _by_user(drafts) -> dict[str, NotificationType]:
    return {d.user_id: d.type for d in drafts}


def _updated(**overrides) -> dict:
    payload = {
        "task_id": "T1",
        "title": "Write launch post",
        "previous_status": "todo",
        "new_status": "todo",
        "previous_assignee": "bob",
        "assigned_to": "bob",
    }
    payload.update(overrides)
    return payload


class TestRecipientSet:
    def test_actor_and_empty_ids_excluded(self):
        rs = RecipientSet("alice")
        rs.offer("alice", 0, NotificationType.TASK_CREATED, "t", "m", {})
        rs.offer(None, 0, NotificationType.TASK_CREATED, "t", "m", {})
        rs.offer("", 0, NotificationType.TASK_CREATED, "t", "m", {})
        assert len(rs) == 0

    def test_more_specific_rule_wins(self):
        rs = RecipientSet("alice")
        rs.offer("bob", 0, NotificationType.TASK_CREATED, "generic", "m", {})
        rs.offer("bob", 1, NotificationType.TASK_ASSIGNED, "assignee", "m", {})
        rs.offer("bob", 0, NotificationType.TASK_CREATED, "generic again", "m", {})
        drafts = rs.drafts()
        assert len(drafts) == 1
        assert drafts[0].type == NotificationType.TASK_ASSIGNED
        assert drafts[0].title == "assignee"

    def test_metadata_copied_per_draft(self):
        meta = {"task_id": "T1"}
        rs = RecipientSet("alice")
        rs.offer("bob", 0, NotificationType.TASK_CREATED, "t", "m", meta)
        rs.drafts()[0].metadata["task_id"] = "changed"
        assert meta == {"task_id": "T1"}


class TestTaskCreated:
    def test_everyone_but_actor_gets_task_created(self, participants):
        event = _event(
            DomainEventType.TASK_CREATED,
            "alice",
            {"task_id": "T1", "title": "Write", "status": "todo", "assigned_to": "bob"},
        )
        drafts = compute_notifications(event, participants)
        assert _by_user(drafts) == {
            "bob": NotificationType.TASK_CREATED,
            "carol": NotificationType.TASK_CREATED,
        }
        titles = {d.user_id: d.title for d in drafts}
        assert titles["bob"] == "New task assigned to you"
        assert drafts[0].metadata["project_id"] == "P1"
        assert drafts[0].metadata["task_id"] == "T1"
        assert drafts[0].metadata["event_id"] == "E1"

    def test_self_assigned_creator_gets_nothing(self, participants):
        event = _event(
            DomainEventType.TASK_CREATED,
            "bob",
            {"task_id": "T1", "title": "Write", "status": "todo", "assigned_to": "bob"},
        )
        assert _by_user(compute_notifications(event, participants)) == {
            "alice": NotificationType.TASK_CREATED,
            "carol": NotificationType.TASK_CREATED,
        }

    def test_actor_name_falls_back_to_actor_id(self, participants):
        event = _event(
            DomainEventType.TASK_CREATED,
            "alice",
            {"task_id": "T1", "title": "Write", "status": "todo"},
        )
        drafts = compute_notifications(event, participants)
        assert all(d.message.startswith("alice ") for d in drafts)

    def test_long_title_is_truncated(self, participants):
        title = "x" * 200
        event = _event(
            DomainEventType.TASK_CREATED,
            "alice",
            {"task_id": "T1", "title": title, "status": "todo", "actor_name": "Alice"},
        )
        draft = compute_notifications(event, participants)[0]
        assert "..." in draft.message
        assert len(draft.message) < len(title)
        assert draft.metadata["task_title"] == title


class TestTaskUpdated:
    def test_completion_reaches_whole_project(self, participants):
        event = _event(
            DomainEventType.TASK_UPDATED,
            "carol",
            _updated(previous_status="active", new_status="done"),
        )
        drafts = compute_notifications(event, participants)
        assert _by_user(drafts) == {
            "alice": NotificationType.TASK_COMPLETED,
            "bob": NotificationType.TASK_COMPLETED,
        }
        bob = next(d for d in drafts if d.user_id == "bob")
        assert bob.title == "Your task was completed"

    def test_last_done_task_completes_project(self, participants):
        event = _event(
            DomainEventType.TASK_UPDATED,
            "carol",
            _updated(previous_status="active", new_status="done", project_all_done=True),
        )
        drafts = compute_notifications(event, participants)
        completed = [d for d in drafts if d.type == NotificationType.PROJECT_COMPLETED]
        assert sorted(d.user_id for d in completed) == ["alice", "bob"]
        assert len(drafts) == 4

    def test_no_project_completion_when_tasks_remain(self, participants):
        event = _event(
            DomainEventType.TASK_UPDATED,
            "carol",
            _updated(previous_status="active", new_status="done"),
        )
        drafts = compute_notifications(event, participants)
        assert NotificationType.PROJECT_COMPLETED not in {d.type for d in drafts}

    def test_all_done_flag_ignored_without_completion(self, participants):
        event = _event(
            DomainEventType.TASK_UPDATED,
            "carol",
            _updated(
                previous_status="done",
                new_status="done",
                project_all_done=True,
                edited_fields=["title"],
            ),
        )
        drafts = compute_notifications(event, participants)
        assert _by_user(drafts) == {"bob": NotificationType.TASK_UPDATED}

    def test_status_change_only_notifies_assignee(self, participants):
        event = _event(
            DomainEventType.TASK_UPDATED,
            "alice",
            _updated(previous_status="todo", new_status="active"),
        )
        drafts = compute_notifications(event, participants)
        assert _by_user(drafts) == {"bob": NotificationType.STATUS_CHANGED}
        assert drafts[0].metadata["new_status"] == "active"

    def test_edit_notifies_assignee(self, participants):
        event = _event(
            DomainEventType.TASK_UPDATED,
            "alice",
            _updated(edited_fields=["title"]),
        )
        drafts = compute_notifications(event, participants)
        assert _by_user(drafts) == {"bob": NotificationType.TASK_UPDATED}
        assert "title" in drafts[0].message

    def test_assignee_editing_own_task_is_silent(self, participants):
        event = _event(
            DomainEventType.TASK_UPDATED,
            "bob",
            _updated(previous_status="todo", new_status="active"),
        )
        assert compute_notifications(event, participants) == []

    def test_reassignment_overrides_status_message(self, participants):
        event = _event(
            DomainEventType.TASK_UPDATED,
            "alice",
            _updated(
                previous_status="todo",
                new_status="active",
                previous_assignee="bob",
                assigned_to="carol",
            ),
        )
        assert _by_user(compute_notifications(event, participants)) == {
            "carol": NotificationType.TASK_ASSIGNED
        }

    def test_reassignment_on_completion_keeps_single_row(self, participants):
        event = _event(
            DomainEventType.TASK_UPDATED,
            "alice",
            _updated(
                previous_status="active",
                new_status="done",
                previous_assignee="bob",
                assigned_to="carol",
            ),
        )
        drafts = compute_notifications(event, participants)
        assert _by_user(drafts) == {
            "bob": NotificationType.TASK_COMPLETED,
            "carol": NotificationType.TASK_ASSIGNED,
        }


class TestTaskDeleted:
    def test_only_assignee(self, participants):
        event = _event(
            DomainEventType.TASK_DELETED,
            "alice",
            {"task_id": "T1", "title": "Write", "assigned_to": "carol"},
        )
        drafts = compute_notifications(event, participants)
        assert _by_user(drafts) == {"carol": NotificationType.TASK_DELETED}
        assert drafts[0].metadata["task_id"] == "T1"

    def test_unassigned_is_silent(self, participants):
        event = _event(
            DomainEventType.TASK_DELETED, "alice", {"task_id": "T1", "title": "Write"}
        )
        assert compute_notifications(event, participants) == []


class TestMembership:
    def test_member_added(self, participants):
        event = _event(DomainEventType.MEMBER_ADDED, "alice", {"user_id": "carol"})
        assert _by_user(compute_notifications(event, participants)) == {
            "carol": NotificationType.PROJECT_INVITE,
            "bob": NotificationType.NEW_MEMBER_JOINED,
        }

    def test_member_removed_by_owner(self, participants):
        event = _event(DomainEventType.MEMBER_REMOVED, "alice", {"user_id": "dave"})
        drafts = compute_notifications(event, participants)
        assert _by_user(drafts) == {"dave": NotificationType.PROJECT_REMOVED}
        assert "Launch" in drafts[0].message

    def test_self_removal_is_silent(self, participants):
        event = _event(DomainEventType.MEMBER_REMOVED, "bob", {"user_id": "bob"})
        assert compute_notifications(event, participants) == []


class TestFileUploaded:
    def test_project_scope(self, participants):
        event = _event(
            DomainEventType.FILE_UPLOADED,
            "bob",
            {"scope": FileScope.PROJECT, "file_name": "spec.pdf", "assigned_to": "carol"},
        )
        drafts = compute_notifications(event, participants)
        assert _by_user(drafts) == {
            "alice": NotificationType.FILE_UPLOADED,
            "carol": NotificationType.FILE_UPLOADED,
        }
        assert all(d.title.startswith("File uploaded in") for d in drafts)
        assert "the project" in drafts[0].message

    def test_task_scope_adds_assignee(self, participants):
        participants.members = participants.members[:1]
        event = _event(
            DomainEventType.FILE_UPLOADED,
            "alice",
            {
                "scope": "task",
                "file_name": "mock.png",
                "task_id": "T1",
                "task_title": "Design",
                "assigned_to": "dave",
                "is_image": True,
            },
        )
        drafts = compute_notifications(event, participants)
        assert sorted(d.user_id for d in drafts) == ["bob", "dave"]
        dave = next(d for d in drafts if d.user_id == "dave")
        assert dave.title == "File uploaded to your task"
        assert dave.metadata["is_image"] is True
        assert dave.metadata["task_id"] == "T1"


def test_invalid_payload_raises(participants):
    from pydantic import ValidationError

    event = _event(DomainEventType.TASK_UPDATED, "alice", {"task_id": "T1"})
    with pytest.raises(ValidationError):
        compute_notifications(event, participants)
