"""分组/筛选视图 -- 纯函数

把缓存中的任务按筛选条件过滤，按 (计划日期, 计划时间) 稳定排序，
再按计划日期分桶。展开/折叠状态不在这里，由页面保存。
"""

from collections.abc import Iterable
from datetime import date

from pydantic import BaseModel, Field

from .models.enums import TaskStatus
from .models.task import ScheduledTask


class TaskFilters(BaseModel):
    """筛选条件，None 表示不限"""

    model_config = {"frozen": True}

    resident_id: int | None = None
    status: TaskStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    search_text: str | None = Field(default=None, description="模板名称/食物描述子串")


class DateGroup(BaseModel):
    date: date
    tasks: list[ScheduledTask]
    pending_count: int


class GroupedView(BaseModel):
    groups: list[DateGroup] = Field(default_factory=list)
    total: int = 0


def matches(task: ScheduledTask, filters: TaskFilters) -> bool:
    """所有启用的条件都满足才通过"""
    if filters.resident_id is not None and task.resident_id != filters.resident_id:
        return False
    if filters.status is not None and task.status != filters.status:
        return False
    if filters.date_from is not None and task.scheduled_date < filters.date_from:
        return False
    if filters.date_to is not None and task.scheduled_date > filters.date_to:
        return False
    if filters.search_text:
        needle = filters.search_text.casefold()
        haystack = [task.display_name]
        if task.template and task.template.food_description:
            haystack.append(task.template.food_description)
        if not any(needle in text.casefold() for text in haystack):
            return False
    return True


def project(tasks: Iterable[ScheduledTask], filters: TaskFilters) -> GroupedView:
    """过滤、排序并按日期分组"""
    selected = [task for task in tasks if matches(task, filters)]
    # sorted 是稳定的：同一时间的任务保持缓存中的顺序
    selected = sorted(selected, key=lambda t: (t.scheduled_date, t.scheduled_time))

    groups: list[DateGroup] = []
    for task in selected:
        if not groups or groups[-1].date != task.scheduled_date:
            groups.append(DateGroup(date=task.scheduled_date, tasks=[], pending_count=0))
        group = groups[-1]
        group.tasks.append(task)
        if task.is_pending:
            group.pending_count += 1

    return GroupedView(groups=groups, total=len(selected))
