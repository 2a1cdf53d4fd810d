"""页面状态 → JSON

检查清单接口与 SSE 流共用同一份渲染结果。
"""

from typing import Any

from odara.core.dialog import DialogRequest
from odara.core.engine import TransitionResult
from odara.core.models.enums import TaskStatus
from odara.core.models.task import ScheduledTask
from odara.core.notifications import Notification
from odara.core.screen import ChecklistScreen


def render_task(screen: ChecklistScreen, task: ScheduledTask) -> dict[str, Any]:
    data = task.model_dump(mode="json")
    data["status_label"] = screen.policy.label(task.status)
    data["busy"] = screen.engine.is_busy(task.task_id)
    data["divergent"] = task.task_id in screen.cache.divergent_ids
    return data


def render_dialog(request: DialogRequest | None) -> dict[str, Any] | None:
    if request is None:
        return None
    data = request.model_dump(mode="json")
    data["is_edit"] = request.is_edit
    return data


def render_screen(screen: ChecklistScreen) -> dict[str, Any]:
    """完整页面：分组视图、筛选、可选状态、住户列表、对话框"""
    view = screen.view()
    policy = screen.policy
    return {
        "kind": policy.kind.value,
        "title": policy.title,
        "loading": screen.loading,
        "load_error": screen.load_error,
        "filters": screen.filters.model_dump(mode="json"),
        "statuses": [
            {"status": status.value, "label": label}
            for status, label in policy.labels.items()
            if status != TaskStatus.PENDING
        ],
        "residents": [r.model_dump(mode="json") for r in screen.residents()],
        "total": view.total,
        "groups": [
            {
                "date": group.date.isoformat(),
                "expanded": screen.is_expanded(group.date),
                "pending_count": group.pending_count,
                "tasks": [render_task(screen, task) for task in group.tasks],
            }
            for group in view.groups
        ],
        "dialog": render_dialog(screen.dialog.request),
    }


def render_result(result: TransitionResult) -> dict[str, Any]:
    return result.model_dump(mode="json")


def render_notification(notification: Notification) -> dict[str, Any]:
    return notification.model_dump(mode="json")
