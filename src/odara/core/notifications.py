"""NotificationCenter -- 非阻塞的操作员提示

存储边界的失败与写入成功都转成一条短暂提示，而不是异常。
"""

from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from .config import NOTIFICATION_HISTORY
from .models.enums import NotificationLevel

log = structlog.get_logger()


class Notification(BaseModel):
    """一条提示"""

    notification_id: str = Field(default_factory=lambda: str(ULID()))
    level: NotificationLevel
    message: str
    task_id: int | None = None
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))


NotificationListener = Callable[[Notification], None]


class NotificationCenter:
    """保留最近 N 条提示并通知监听者"""

    def __init__(self, history: int = NOTIFICATION_HISTORY) -> None:
        self._items: deque[Notification] = deque(maxlen=history)
        self._listeners: list[NotificationListener] = []

    def notify(
        self,
        level: NotificationLevel,
        message: str,
        task_id: int | None = None,
    ) -> Notification:
        notification = Notification(level=level, message=message, task_id=task_id)
        self._items.append(notification)
        log.info(
            "operator_notified",
            level=level,
            message=message,
            task_id=task_id,
        )
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                log.exception("notification_listener_failed")
        return notification

    def success(self, message: str, task_id: int | None = None) -> Notification:
        return self.notify(NotificationLevel.SUCCESS, message, task_id)

    def error(self, message: str, task_id: int | None = None) -> Notification:
        return self.notify(NotificationLevel.ERROR, message, task_id)

    def recent(self) -> list[Notification]:
        return list(self._items)

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
