"""TaskStatusEngine -- 通用护理任务状态引擎

状态写入流程：
1. 校验流转合法性与任务类型是否提供目标状态
2. 按策略决定是否需要确认对话框（挂起等待操作员输入）
3. 生成 {status, annotation, 执行日期/时间, 员工} patch
4. 先乐观合并到 TaskCache，再写入后端
5. 写入失败：提示操作员，标记不一致，不回滚
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import StrEnum

import structlog
from pydantic import BaseModel

from .cache import TaskCache
from .config import now_local
from .dialog import ConfirmationDialog
from .exceptions import InvalidTransitionError, StoreError, TaskBusyError, TaskNotFoundError
from .models.enums import TERMINAL_STATES, TaskStatus, validate_transition
from .models.policy import TaskKindPolicy
from .models.task import ScheduledTask, TaskPatch
from .notifications import NotificationCenter
from .store.protocols import TaskStoreClient

log = structlog.get_logger()

Clock = Callable[[], datetime]
OperatorIdentity = Callable[[], int]


class TransitionOutcome(StrEnum):
    """一次状态请求的结果"""

    APPLIED = "applied"
    CANCELLED = "cancelled"
    WRITE_FAILED = "write_failed"
    # 等待对话框期间任务被删除或被改成无法写入的状态
    ABORTED = "aborted"


class TransitionResult(BaseModel):
    task_id: int
    outcome: TransitionOutcome
    status: TaskStatus | None = None
    annotation: str | None = None
    task: ScheduledTask | None = None


def _normalize_annotation(text: str | None) -> str | None:
    """空白文本视为没有备注；非空文本保持原样"""
    if text is None or not text.strip():
        return None
    return text


class TaskStatusEngine:
    """按 TaskKindPolicy 参数化的状态引擎，一个检查清单页面一个实例"""

    def __init__(
        self,
        policy: TaskKindPolicy,
        cache: TaskCache,
        store: TaskStoreClient,
        dialog: ConfirmationDialog,
        operator_id: int | OperatorIdentity,
        notifier: NotificationCenter | None = None,
        clock: Clock = now_local,
    ) -> None:
        self._policy = policy
        self._cache = cache
        self._store = store
        self._dialog = dialog
        self._operator_id = operator_id if callable(operator_id) else (lambda: operator_id)
        self._notifier = notifier or NotificationCenter()
        self._clock = clock
        self._in_flight: set[int] = set()

    @property
    def policy(self) -> TaskKindPolicy:
        return self._policy

    def is_busy(self, task_id: int) -> bool:
        """该任务是否有未完成的请求（界面据此禁用按钮）"""
        return task_id in self._in_flight

    def needs_dialog(self, task: ScheduledTask, target: TaskStatus) -> bool:
        """目标状态是否要经过确认对话框"""
        if target != TaskStatus.COMPLETED:
            return True
        if self._policy.confirm_completed:
            return True
        return bool(task.template and task.template.requires_confirmation)

    async def request_transition(
        self, task_id: int, target: TaskStatus | str
    ) -> TransitionResult:
        """请求状态流转

        Raises:
            TaskNotFoundError: 任务不在缓存中
            InvalidTransitionError: 非法流转或该类任务不提供此状态
            TaskBusyError: 同一任务已有未完成请求
            DialogBusyError: 对话框已被其他请求占用
        """
        try:
            target = TaskStatus(target)
        except ValueError as e:
            raise InvalidTransitionError(f"Unknown status: {target}") from e

        task = self._require_task(task_id)
        if not self._policy.offers(target) or not validate_transition(task.status, target):
            raise InvalidTransitionError(
                f"Cannot transition {self._policy.kind} task {task_id} "
                f"from {task.status} to {target}"
            )

        with self._in_flight_guard(task_id):
            if not self.needs_dialog(task, target):
                return await self._commit(task_id, target, None)

            required = self._policy.requires_annotation(target)
            text = await self._dialog.open(
                "",
                task_id=task_id,
                target_status=target,
                required=required,
            )
            annotation = _normalize_annotation(text)

            if annotation is None and target != TaskStatus.COMPLETED:
                # COMPLETED 不强制备注：取消或留空仍然生效
                if required or text is None:
                    log.info(
                        "transition_cancelled",
                        kind=self._policy.kind,
                        task_id=task_id,
                        target_status=target,
                    )
                    return TransitionResult(
                        task_id=task_id,
                        outcome=TransitionOutcome.CANCELLED,
                        task=self._cache.get(task_id),
                    )

            return await self._commit(task_id, target, annotation)

    async def edit_annotation(self, task_id: int) -> TransitionResult:
        """编辑已终态任务的备注：状态不变，重新写入同样的 patch

        Raises:
            TaskNotFoundError: 任务不在缓存中
            InvalidTransitionError: 任务仍为 PENDING
            TaskBusyError: 同一任务已有未完成请求
            DialogBusyError: 对话框已被其他请求占用
        """
        task = self._require_task(task_id)
        if task.status not in TERMINAL_STATES:
            raise InvalidTransitionError(
                f"Task {task_id} is pending; annotations are written with a status"
            )

        with self._in_flight_guard(task_id):
            text = await self._dialog.open(
                task.annotation or "",
                task_id=task_id,
                target_status=task.status,
                required=self._policy.requires_annotation(task.status),
            )
            if text is None:
                return TransitionResult(
                    task_id=task_id,
                    outcome=TransitionOutcome.CANCELLED,
                    task=self._cache.get(task_id),
                )

            # 等待期间状态可能已被推送修改，以最新状态为准
            current = self._cache.get(task_id)
            status = current.status if current else task.status
            if status not in TERMINAL_STATES:
                return self._abort_changed(task_id, status)
            return await self._commit(
                task_id,
                status,
                _normalize_annotation(text),
                success_message="Observação atualizada",
            )

    async def _commit(
        self,
        task_id: int,
        status: TaskStatus,
        annotation: str | None,
        success_message: str | None = None,
    ) -> TransitionResult:
        """乐观合并到缓存并写入后端"""
        if task_id not in self._cache:
            log.warning(
                "transition_aborted_task_removed",
                kind=self._policy.kind,
                task_id=task_id,
            )
            self._notifier.error("Registro não encontrado", task_id)
            return TransitionResult(task_id=task_id, outcome=TransitionOutcome.ABORTED)

        now = self._clock()
        patch = TaskPatch(
            status=status,
            annotation=annotation,
            executed_date=now.date(),
            executed_time=now.time().replace(second=0, microsecond=0),
            staff_id=self._operator_id(),
        )
        updated = self._cache.apply_local_patch(task_id, patch)
        if updated is None:
            # 合并结果不满足行不变量，不写入后端
            return self._abort_changed(task_id, status)

        try:
            await self._store.update_task(self._policy.kind, task_id, patch)
        except StoreError as e:
            log.error(
                "task_write_failed",
                kind=self._policy.kind,
                task_id=task_id,
                status=status,
                error_type=type(e).__name__,
                recoverable=e.recoverable,
            )
            self._cache.mark_divergent(task_id)
            self._notifier.error("Erro ao atualizar status", task_id)
            return TransitionResult(
                task_id=task_id,
                outcome=TransitionOutcome.WRITE_FAILED,
                status=status,
                annotation=annotation,
                task=self._cache.get(task_id),
            )

        log.info(
            "task_status_written",
            kind=self._policy.kind,
            task_id=task_id,
            status=status,
            has_annotation=annotation is not None,
        )
        self._notifier.success(
            success_message
            or f'Status atualizado para "{self._policy.label(status)}"',
            task_id,
        )
        return TransitionResult(
            task_id=task_id,
            outcome=TransitionOutcome.APPLIED,
            status=status,
            annotation=annotation,
            task=updated or self._cache.get(task_id),
        )

    def _abort_changed(self, task_id: int, status: TaskStatus) -> TransitionResult:
        """任务在等待期间被其他终端改成无法写入的状态"""
        log.warning(
            "transition_aborted_task_changed",
            kind=self._policy.kind,
            task_id=task_id,
            status=status,
        )
        self._notifier.error("Registro alterado por outro terminal", task_id)
        return TransitionResult(
            task_id=task_id,
            outcome=TransitionOutcome.ABORTED,
            task=self._cache.get(task_id),
        )

    def _require_task(self, task_id: int) -> ScheduledTask:
        task = self._cache.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    @contextmanager
    def _in_flight_guard(self, task_id: int) -> Iterator[None]:
        if task_id in self._in_flight:
            raise TaskBusyError(task_id)
        self._in_flight.add(task_id)
        try:
            yield
        finally:
            self._in_flight.discard(task_id)
