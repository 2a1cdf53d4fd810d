"""分组/筛选视图单元测试"""

from datetime import date, time, timedelta

from odara.core.models import TaskKind, TaskStatus
from odara.core.projection import TaskFilters, matches, project

TODAY = date(2025, 3, 10)


class TestProjectGrouping:
    def test_sorted_and_grouped_by_date(self, make_task):
        """B(昨天 22:00) 排在 A(今天 08:00) 之前，分为两个日期组"""
        a = make_task(1, scheduled_date=TODAY, scheduled_time=time(8, 0))
        b = make_task(2, scheduled_date=TODAY - timedelta(days=1), scheduled_time=time(22, 0))

        view = project([a, b], TaskFilters())

        assert view.total == 2
        assert [g.date for g in view.groups] == [TODAY - timedelta(days=1), TODAY]
        assert [g.tasks[0].task_id for g in view.groups] == [2, 1]

    def test_stable_for_equal_times(self, make_task):
        tasks = [make_task(i, scheduled_time=time(8, 0)) for i in (5, 3, 9)]
        view = project(tasks, TaskFilters())
        assert [t.task_id for t in view.groups[0].tasks] == [5, 3, 9]

    def test_pending_count(self, make_task):
        tasks = [
            make_task(1),
            make_task(2, status=TaskStatus.COMPLETED),
            make_task(3, scheduled_time=time(12, 0)),
        ]
        [group] = project(tasks, TaskFilters()).groups
        assert group.pending_count == 2
        assert len(group.tasks) == 3

    def test_empty(self):
        view = project([], TaskFilters())
        assert view.groups == []
        assert view.total == 0


class TestFilters:
    def test_today_pending_scenario(self, make_task):
        """5 条今天、3 条昨天，其中今天 3 条待处理 → 一个组、3 条"""
        tasks = [
            make_task(1),
            make_task(2, scheduled_time=time(9, 0)),
            make_task(3, scheduled_time=time(10, 0)),
            make_task(4, status=TaskStatus.COMPLETED),
            make_task(5, status=TaskStatus.NOT_COMPLETED),
        ] + [
            make_task(10 + i, scheduled_date=TODAY - timedelta(days=1)) for i in range(3)
        ]
        filters = TaskFilters(date_from=TODAY, date_to=TODAY, status=TaskStatus.PENDING)

        view = project(tasks, filters)

        assert len(view.groups) == 1
        assert view.groups[0].date == TODAY
        assert [t.task_id for t in view.groups[0].tasks] == [1, 2, 3]
        assert view.total == 3

    def test_resident_filter(self, make_task):
        tasks = [make_task(1, resident_id=1), make_task(2, resident_id=2)]
        view = project(tasks, TaskFilters(resident_id=2))
        assert [t.task_id for g in view.groups for t in g.tasks] == [2]

    def test_search_is_case_insensitive(self, make_task):
        task = make_task(1, name="Losartana 50mg")
        assert matches(task, TaskFilters(search_text="losart"))
        assert not matches(task, TaskFilters(search_text="dipirona"))

    def test_search_food_description(self, make_task):
        task = make_task(1, TaskKind.MEAL, name="Almoço", food_description="Arroz e feijão")
        assert matches(task, TaskFilters(search_text="FEIJÃO"))

    def test_date_range_inclusive(self, make_task):
        task = make_task(1)
        assert matches(task, TaskFilters(date_from=TODAY, date_to=TODAY))
        assert not matches(task, TaskFilters(date_from=TODAY + timedelta(days=1)))
        assert not matches(task, TaskFilters(date_to=TODAY - timedelta(days=1)))

    def test_empty_search_ignored(self, make_task):
        assert matches(make_task(1), TaskFilters(search_text=""))
