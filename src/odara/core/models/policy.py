"""任务类型策略

三个检查清单页面（药品、餐食、临床测量）共享同一个状态引擎，
差异全部收敛到 TaskKindPolicy：状态标签、哪些状态必须填写备注、
COMPLETED 是否也要经过确认对话框。
"""

from pydantic import BaseModel, Field

from ..exceptions import UnknownTaskKindError
from .enums import TaskKind, TaskStatus


class TaskKindPolicy(BaseModel):
    """某类任务的状态标签与备注规则"""

    model_config = {"frozen": True}

    kind: TaskKind
    table: str = Field(description="后端表名")
    title: str = Field(description="页面标题")
    labels: dict[TaskStatus, str] = Field(description="状态显示标签，未列出的状态不可用")
    annotation_required: frozenset[TaskStatus] = Field(
        default_factory=frozenset,
        description="必须填写非空备注才能提交的状态",
    )
    confirm_completed: bool = Field(
        default=False,
        description="COMPLETED 是否也弹出确认对话框",
    )
    default_status_filter: TaskStatus | None = Field(
        default=None,
        description="页面初始的状态筛选",
    )

    def offers(self, status: TaskStatus) -> bool:
        """该类任务是否提供此状态"""
        return status in self.labels

    def label(self, status: TaskStatus) -> str:
        return self.labels.get(status, status.value)

    def requires_annotation(self, status: TaskStatus) -> bool:
        return status in self.annotation_required


MEDICATION_POLICY = TaskKindPolicy(
    kind=TaskKind.MEDICATION,
    table="administracao_medicamento",
    title="Medicamentos",
    labels={
        TaskStatus.PENDING: "pendente",
        TaskStatus.COMPLETED: "administrado",
        TaskStatus.PARTIAL: "parcial",
        TaskStatus.NOT_COMPLETED: "não administrado",
    },
    annotation_required=frozenset({TaskStatus.PARTIAL, TaskStatus.NOT_COMPLETED}),
)

# 餐食页面所有状态都弹出对话框；取消或留空时 COMPLETED 仍然生效
MEAL_POLICY = TaskKindPolicy(
    kind=TaskKind.MEAL,
    table="registro_alimentar",
    title="Alimentação",
    labels={
        TaskStatus.PENDING: "pendente",
        TaskStatus.COMPLETED: "aceitou",
        TaskStatus.PARTIAL: "parcial",
        TaskStatus.NOT_COMPLETED: "recusou",
    },
    annotation_required=frozenset({TaskStatus.PARTIAL, TaskStatus.NOT_COMPLETED}),
    confirm_completed=True,
    default_status_filter=TaskStatus.PENDING,
)

MEASUREMENT_POLICY = TaskKindPolicy(
    kind=TaskKind.MEASUREMENT,
    table="exame_medico",
    title="Exames",
    labels={
        TaskStatus.PENDING: "pendente",
        TaskStatus.COMPLETED: "realizado",
        TaskStatus.NOT_COMPLETED: "cancelado",
    },
    annotation_required=frozenset({TaskStatus.NOT_COMPLETED}),
)

POLICIES: dict[TaskKind, TaskKindPolicy] = {
    TaskKind.MEDICATION: MEDICATION_POLICY,
    TaskKind.MEAL: MEAL_POLICY,
    TaskKind.MEASUREMENT: MEASUREMENT_POLICY,
}


def get_policy(kind: TaskKind | str) -> TaskKindPolicy:
    """按任务类型获取内置策略

    Raises:
        UnknownTaskKindError: 未知任务类型
    """
    try:
        return POLICIES[TaskKind(kind)]
    except ValueError as e:
        raise UnknownTaskKindError(str(kind)) from e
