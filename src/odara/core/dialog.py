"""ConfirmationDialog -- 单飞确认对话框协调器

把一次人工输入变成可 await 的调用：open() 挂起调用方，直到操作员
confirm(text) 或 cancel()。同一时刻最多只有一个未决请求。
"""

import asyncio
from datetime import UTC, datetime
from enum import StrEnum

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from .exceptions import AnnotationRequiredError, DialogBusyError, DialogNotOpenError
from .models.enums import TaskStatus

log = structlog.get_logger()

ANNOTATION_REQUIRED_MESSAGE = "A observação é obrigatória para este status"


class DialogState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"


class DialogRequest(BaseModel):
    """当前打开的对话框内容（供界面渲染）"""

    request_id: str = Field(default_factory=lambda: str(ULID()))
    task_id: int | None = None
    target_status: TaskStatus | None = None
    initial_text: str = ""
    required: bool = False
    validation_error: str | None = None
    opened_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_edit(self) -> bool:
        """预填了已有备注即为编辑"""
        return bool(self.initial_text)


class ConfirmationDialog:
    """单飞对话框：closed → open → closed，每次 open 恰好关闭一次"""

    def __init__(self) -> None:
        self._future: asyncio.Future[str | None] | None = None
        self._request: DialogRequest | None = None
        self._opened = asyncio.Event()

    @property
    def state(self) -> DialogState:
        if self._future is not None and not self._future.done():
            return DialogState.OPEN
        return DialogState.CLOSED

    @property
    def request(self) -> DialogRequest | None:
        """打开中的请求，关闭时为 None"""
        return self._request if self.state == DialogState.OPEN else None

    async def open(
        self,
        initial_text: str = "",
        *,
        task_id: int | None = None,
        target_status: TaskStatus | None = None,
        required: bool = False,
    ) -> str | None:
        """打开对话框并等待操作员响应

        Args:
            initial_text: 预填文本（编辑已有备注时传入）
            task_id: 关联任务，仅用于展示
            target_status: 目标状态，仅用于展示
            required: 为 True 时 confirm 空白文本会被拒绝

        Returns:
            确认时返回输入的文本（原样），取消时返回 None

        Raises:
            DialogBusyError: 已有未决请求
        """
        if self.state == DialogState.OPEN:
            raise DialogBusyError("a confirmation dialog is already open")

        future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
        self._future = future
        self._request = DialogRequest(
            task_id=task_id,
            target_status=target_status,
            initial_text=initial_text,
            required=required,
        )
        self._opened.set()
        log.debug(
            "dialog_opened",
            request_id=self._request.request_id,
            task_id=task_id,
            target_status=target_status,
        )

        try:
            return await future
        finally:
            # 调用方被取消时也要释放槽位
            if self._future is future:
                if not future.done():
                    future.cancel()
                self._release()

    async def wait_until_open(self) -> DialogRequest | None:
        """等待下一次（或当前）打开

        唤醒前请求可能已被确认/取消，此时返回 None。
        """
        await self._opened.wait()
        return self.request

    def confirm(self, text: str) -> None:
        """确认并以输入文本（原样）结束请求

        Raises:
            DialogNotOpenError: 没有打开的对话框
            AnnotationRequiredError: 必填请求收到空白文本（对话框保持打开）
        """
        future = self._pending_future()
        if self._request is None:
            raise DialogNotOpenError("no confirmation dialog is open")
        if self._request.required and not text.strip():
            self._request = self._request.model_copy(
                update={"validation_error": ANNOTATION_REQUIRED_MESSAGE}
            )
            raise AnnotationRequiredError(ANNOTATION_REQUIRED_MESSAGE)
        future.set_result(text)
        self._opened.clear()
        log.debug("dialog_confirmed", request_id=self._request.request_id)

    def cancel(self) -> None:
        """取消并以 None 结束请求

        Raises:
            DialogNotOpenError: 没有打开的对话框
        """
        future = self._pending_future()
        future.set_result(None)
        self._opened.clear()
        log.debug(
            "dialog_cancelled",
            request_id=self._request.request_id if self._request else None,
        )

    def close(self) -> None:
        """关闭即取消；没有打开的对话框时不做任何事（页面卸载时调用）"""
        if self.state == DialogState.OPEN:
            self.cancel()

    def clear_validation_error(self) -> None:
        if self._request is not None and self._request.validation_error:
            self._request = self._request.model_copy(update={"validation_error": None})

    def _pending_future(self) -> asyncio.Future[str | None]:
        if self._future is None or self._future.done():
            raise DialogNotOpenError("no confirmation dialog is open")
        return self._future

    def _release(self) -> None:
        self._future = None
        self._request = None
        self._opened.clear()
