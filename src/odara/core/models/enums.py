"""枚举定义

包含 TaskStatus 状态机、TaskKind、MealType、FeedOperation 枚举，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """护理任务状态机

    各页面使用不同的显示标签（administrado / aceitou / realizado ...），
    但共享同一个四状态生命周期。
    """

    # 初始状态
    PENDING = "pending"

    # 终态（可相互直接切换）
    COMPLETED = "completed"
    PARTIAL = "partial"
    NOT_COMPLETED = "not_completed"


TERMINAL_STATES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.COMPLETED,
        TaskStatus.PARTIAL,
        TaskStatus.NOT_COMPLETED,
    }
)

# 合法状态流转：任何状态都可进入任一终态（含自身，重新盖时间戳），
# 不存在回到 PENDING 的流转
VALID_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: TERMINAL_STATES,
    TaskStatus.COMPLETED: TERMINAL_STATES,
    TaskStatus.PARTIAL: TERMINAL_STATES,
    TaskStatus.NOT_COMPLETED: TERMINAL_STATES,
}


class TaskKind(StrEnum):
    """任务类型 -- 对应三个检查清单页面"""

    MEDICATION = "medication"
    MEAL = "meal"
    MEASUREMENT = "measurement"


class MealType(StrEnum):
    """餐次"""

    BREAKFAST = "cafe-da-manha"
    MORNING_SNACK = "lanche-manha"
    LUNCH = "almoco"
    AFTERNOON_SNACK = "lanche-tarde"
    DINNER = "jantar"
    SUPPER = "ceia"

    @property
    def label(self) -> str:
        return MEAL_LABELS[self]


MEAL_LABELS: dict[MealType, str] = {
    MealType.BREAKFAST: "Café da Manhã",
    MealType.MORNING_SNACK: "Lanche da Manhã",
    MealType.LUNCH: "Almoço",
    MealType.AFTERNOON_SNACK: "Lanche da Tarde",
    MealType.DINNER: "Jantar",
    MealType.SUPPER: "Ceia",
}


class FeedOperation(StrEnum):
    """变更推送的行级操作类型"""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class NotificationLevel(StrEnum):
    """操作员提示级别"""

    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, frozenset())
    return to_status in allowed
