"""Odara 异常体系

存储边界的异常（StoreError 及子类）由引擎/页面捕获并转为操作员提示；
调用方错误（非法流转、对话框占用等）直接抛出，由 gateway 映射为 HTTP 错误码。
"""


class OdaraError(Exception):
    """基础异常"""


class StoreError(OdaraError):
    """后端存储调用失败"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class StoreUnavailableError(StoreError):
    """后端不可达（连接失败、超时、5xx）"""

    def __init__(self, url: str, original_error: Exception) -> None:
        super().__init__(f"Store unreachable: {url} -- {original_error}", recoverable=True)
        self.url = url
        self.original_error = original_error


class RowNotFoundError(StoreError):
    """部分更新的目标行不存在"""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task row {task_id} does not exist", recoverable=False)
        self.task_id = task_id


class TaskNotFoundError(OdaraError):
    """缓存中不存在该任务"""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} is not loaded")
        self.task_id = task_id


class InvalidTransitionError(OdaraError):
    """非法状态流转"""


class TaskBusyError(OdaraError):
    """同一任务已有未完成的写入"""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} already has a write in flight")
        self.task_id = task_id


class DialogBusyError(OdaraError):
    """确认对话框已打开，不允许第二个请求"""


class DialogNotOpenError(OdaraError):
    """没有打开的确认对话框"""


class AnnotationRequiredError(OdaraError):
    """当前状态必须填写备注"""


class FeedOverflowError(OdaraError):
    """订阅者消费过慢，推送队列已满被移除"""


class UnknownTaskKindError(OdaraError):
    """未知任务类型"""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown task kind: {kind}")
        self.kind = kind
