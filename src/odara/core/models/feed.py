"""变更推送事件模型

后端存储在每次行级 insert/update/delete 提交后推送一条 FeedEvent。
row 只包含本次出现的字段；消费方按 task_id 合并，未出现的字段保持不变。
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError, model_validator
from ulid import ULID

from .enums import FeedOperation, TaskKind

log = structlog.get_logger()


class FeedEvent(BaseModel):
    """行级变更事件"""

    event_id: str = Field(default_factory=lambda: str(ULID()), description="ULID")
    kind: TaskKind = Field(description="任务类型（对应后端表）")
    operation: FeedOperation = Field(description="insert / update / delete")
    row: dict[str, Any] = Field(description="行数据，至少包含 task_id")
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC), description="事件时间")

    @model_validator(mode="after")
    def _require_task_id(self) -> "FeedEvent":
        task_id = self.row.get("task_id")
        try:
            int(task_id)
        except (TypeError, ValueError):
            raise ValueError(f"row has no integer task_id: {task_id!r}") from None
        return self

    @property
    def task_id(self) -> int:
        return int(self.row["task_id"])


def parse_feed_event(raw: dict[str, Any]) -> FeedEvent | None:
    """解析推送事件，格式错误时记录日志并返回 None

    格式错误包括：未知 operation、缺少 task_id、task_id 非整数、kind 未知。
    """
    try:
        event = FeedEvent.model_validate(raw)
    except ValidationError as e:
        log.warning(
            "feed_event_malformed",
            operation=raw.get("operation") if isinstance(raw, dict) else None,
            error=str(e),
        )
        return None
    return event
