"""护理任务领域模型

ScheduledTask 是核心实体：某个 TaskTemplate 在具体日期/时间上的一次执行。
状态只能通过 TaskStatusEngine 修改；执行日期/时间当且仅当状态非 PENDING 时存在。
"""

from datetime import date, time

from pydantic import BaseModel, Field, model_validator

from .enums import MealType, TaskKind, TaskStatus


class Resident(BaseModel):
    """住户（只读引用）"""

    resident_id: int = Field(description="住户 ID")
    name: str = Field(description="姓名")
    room: str | None = Field(default=None, description="房间号")


class TaskTemplate(BaseModel):
    """周期性任务定义（药品剂量、餐次、测量项目）

    在本模块之外创建和编辑，此处只读。
    """

    template_id: int = Field(description="模板 ID")
    kind: TaskKind = Field(description="任务类型")
    resident_id: int = Field(description="所属住户 ID")
    name: str = Field(description="名称：药品名 / 餐次名 / 测量项目")
    recurrence: str = Field(default="", description="周期描述，例如 '8/8h'")
    dosage: str | None = Field(default=None, description="药品规格")
    dose: str | None = Field(default=None, description="单次剂量")
    meal_type: MealType | None = Field(default=None, description="餐次")
    food_description: str | None = Field(default=None, description="食物描述")
    unit: str | None = Field(default=None, description="测量单位")
    requires_confirmation: bool = Field(
        default=False,
        description="为 True 时 COMPLETED 也需要经过确认对话框",
    )


class ScheduledTask(BaseModel):
    """一次具体的护理任务

    不变量：status == PENDING ⇔ executed_date is None ⇔ executed_time is None
    """

    task_id: int = Field(description="唯一标识")
    kind: TaskKind = Field(description="任务类型")
    template_id: int = Field(description="关联的 TaskTemplate ID")
    resident_id: int = Field(description="所属住户 ID（冗余自模板）")
    scheduled_date: date = Field(description="计划日期")
    scheduled_time: time = Field(description="计划时间")
    executed_date: date | None = Field(default=None, description="执行日期")
    executed_time: time | None = Field(default=None, description="执行时间")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")
    staff_id: int | None = Field(default=None, description="最后写入状态的员工 ID")
    annotation: str | None = Field(default=None, description="备注")
    template: TaskTemplate | None = Field(default=None, description="关联模板（join）")
    resident: Resident | None = Field(default=None, description="住户（join）")

    @model_validator(mode="after")
    def _check_execution_stamp(self) -> "ScheduledTask":
        pending = self.status == TaskStatus.PENDING
        if pending != (self.executed_date is None) or pending != (
            self.executed_time is None
        ):
            raise ValueError(
                "executed_date/executed_time must be set if and only if "
                f"status is not pending (status={self.status})"
            )
        return self

    @property
    def is_pending(self) -> bool:
        return self.status == TaskStatus.PENDING

    @property
    def display_name(self) -> str:
        """模板名称，未 join 模板时返回空串"""
        return self.template.name if self.template else ""


class TaskPatch(BaseModel):
    """单行部分更新

    只有显式设置的字段会写入（model_dump(exclude_unset=True)）。
    """

    status: TaskStatus | None = None
    annotation: str | None = None
    executed_date: date | None = None
    executed_time: time | None = None
    staff_id: int | None = None

    def to_row(self) -> dict:
        """转为可直接合并到行数据的字典（日期时间保持 Python 对象）"""
        return self.model_dump(exclude_unset=True)

    def to_json_row(self) -> dict:
        """转为 JSON 兼容字典（用于 REST 写入）"""
        return self.model_dump(mode="json", exclude_unset=True)
