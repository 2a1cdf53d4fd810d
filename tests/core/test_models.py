"""领域模型单元测试

测试内容：
1. ScheduledTask 执行时间戳不变量
2. TaskPatch 只导出显式设置的字段
3. 推送事件解析（格式错误返回 None）
4. 任务类型策略
"""

from datetime import date, time

import pytest
from odara.core.exceptions import UnknownTaskKindError
from odara.core.models import (
    MEAL_POLICY,
    MEASUREMENT_POLICY,
    MEDICATION_POLICY,
    FeedOperation,
    MealType,
    ScheduledTask,
    TaskKind,
    TaskPatch,
    TaskStatus,
    get_policy,
    parse_feed_event,
)
from pydantic import ValidationError


def _row(**overrides) -> dict:
    row = {
        "task_id": 1,
        "kind": "medication",
        "template_id": 10,
        "resident_id": 1,
        "scheduled_date": "2025-03-10",
        "scheduled_time": "08:00:00",
    }
    row.update(overrides)
    return row


class TestScheduledTask:
    def test_pending_without_execution_stamp(self):
        task = ScheduledTask.model_validate(_row())
        assert task.is_pending
        assert task.scheduled_date == date(2025, 3, 10)
        assert task.display_name == ""

    def test_terminal_with_execution_stamp(self):
        task = ScheduledTask.model_validate(
            _row(status="completed", executed_date="2025-03-10", executed_time="08:05")
        )
        assert task.status == TaskStatus.COMPLETED
        assert task.executed_time == time(8, 5)

    def test_pending_with_execution_stamp_rejected(self):
        """PENDING 不能带执行时间"""
        with pytest.raises(ValidationError):
            ScheduledTask.model_validate(_row(executed_date="2025-03-10", executed_time="08:05"))

    def test_terminal_without_execution_stamp_rejected(self):
        with pytest.raises(ValidationError):
            ScheduledTask.model_validate(_row(status="partial"))

    def test_half_stamp_rejected(self):
        """只有执行日期、没有执行时间也不合法"""
        with pytest.raises(ValidationError):
            ScheduledTask.model_validate(_row(status="partial", executed_date="2025-03-10"))


class TestTaskPatch:
    def test_to_row_only_set_fields(self):
        patch = TaskPatch(status=TaskStatus.COMPLETED, annotation=None)
        assert patch.to_row() == {"status": TaskStatus.COMPLETED, "annotation": None}

    def test_to_json_row(self):
        patch = TaskPatch(
            status=TaskStatus.PARTIAL,
            annotation="recusou metade",
            executed_date=date(2025, 3, 10),
            executed_time=time(14, 37),
            staff_id=7,
        )
        assert patch.to_json_row() == {
            "status": "partial",
            "annotation": "recusou metade",
            "executed_date": "2025-03-10",
            "executed_time": "14:37:00",
            "staff_id": 7,
        }


class TestFeedEventParsing:
    def test_parse_valid(self):
        event = parse_feed_event(
            {"kind": "meal", "operation": "update", "row": {"task_id": "5", "annotation": "x"}}
        )
        assert event is not None
        assert event.operation == FeedOperation.UPDATE
        assert event.task_id == 5
        assert event.event_id

    @pytest.mark.parametrize(
        "raw",
        [
            {"kind": "meal", "operation": "upsert", "row": {"task_id": 1}},
            {"kind": "meal", "operation": "update", "row": {"status": "completed"}},
            {"kind": "meal", "operation": "update", "row": {"task_id": "abc"}},
            {"kind": "laundry", "operation": "update", "row": {"task_id": 1}},
            {"operation": "delete"},
        ],
    )
    def test_parse_malformed_returns_none(self, raw: dict):
        assert parse_feed_event(raw) is None


class TestPolicies:
    def test_get_policy(self):
        assert get_policy("medication") is MEDICATION_POLICY
        assert get_policy(TaskKind.MEAL) is MEAL_POLICY

    def test_unknown_kind(self):
        with pytest.raises(UnknownTaskKindError):
            get_policy("laundry")

    def test_medication_labels(self):
        assert MEDICATION_POLICY.label(TaskStatus.COMPLETED) == "administrado"
        assert MEDICATION_POLICY.label(TaskStatus.NOT_COMPLETED) == "não administrado"
        assert MEDICATION_POLICY.requires_annotation(TaskStatus.PARTIAL)
        assert not MEDICATION_POLICY.requires_annotation(TaskStatus.COMPLETED)
        assert not MEDICATION_POLICY.confirm_completed

    def test_meal_confirms_completed(self):
        assert MEAL_POLICY.confirm_completed
        assert MEAL_POLICY.default_status_filter == TaskStatus.PENDING
        assert MEAL_POLICY.label(TaskStatus.NOT_COMPLETED) == "recusou"

    def test_measurement_has_no_partial(self):
        assert not MEASUREMENT_POLICY.offers(TaskStatus.PARTIAL)
        assert MEASUREMENT_POLICY.requires_annotation(TaskStatus.NOT_COMPLETED)
        assert MEASUREMENT_POLICY.label(TaskStatus.NOT_COMPLETED) == "cancelado"

    def test_policy_is_frozen(self):
        with pytest.raises(ValidationError):
            MEDICATION_POLICY.title = "Outro"

    def test_meal_type_label(self):
        assert MealType.BREAKFAST.label == "Café da Manhã"
