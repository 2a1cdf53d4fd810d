"""Odara Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    MEAL_LABELS,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    FeedOperation,
    MealType,
    NotificationLevel,
    TaskKind,
    TaskStatus,
    validate_transition,
)
from .feed import FeedEvent, parse_feed_event
from .policy import (
    MEAL_POLICY,
    MEASUREMENT_POLICY,
    MEDICATION_POLICY,
    POLICIES,
    TaskKindPolicy,
    get_policy,
)
from .task import Resident, ScheduledTask, TaskPatch, TaskTemplate

__all__ = [
    # 枚举
    "TaskStatus",
    "TaskKind",
    "MealType",
    "MEAL_LABELS",
    "FeedOperation",
    "NotificationLevel",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "validate_transition",
    # 任务
    "Resident",
    "TaskTemplate",
    "ScheduledTask",
    "TaskPatch",
    # 推送
    "FeedEvent",
    "parse_feed_event",
    # 策略
    "TaskKindPolicy",
    "MEDICATION_POLICY",
    "MEAL_POLICY",
    "MEASUREMENT_POLICY",
    "POLICIES",
    "get_policy",
]
