"""Tests for taskboard.core.prioritization: next-task scoring and buckets."""

from datetime import datetime, timedelta

from taskboard.core.prioritization import (
    CategoryKey,
    WeekMode,
    categorize_tasks,
    categorize_week_tasks,
    due_points,
    next_task_candidates,
    score_task,
    week_bounds,
)
from taskboard.data.models import Priority, Task, TaskStatus

NOW = datetime(2024, 3, 15, 10, 0)   # a Friday


def _make_task(id: str, **overrides) -> Task:
    values = dict(
        id=id,
        title=id,
        creator_id="alice",
        start_date=NOW - timedelta(days=1),
        end_date=NOW + timedelta(days=10),
    )
    values.update(overrides)
    return Task(**values)


class TestScoring:
    def test_due_buckets(self):
        assert due_points(NOW - timedelta(days=2), NOW) == 20
        assert due_points(NOW + timedelta(hours=5), NOW) == 15
        assert due_points(NOW + timedelta(days=3), NOW) == 10
        assert due_points(NOW + timedelta(days=6, hours=1), NOW) == 5
        assert due_points(NOW + timedelta(days=8), NOW) == 1

    def test_score_components(self):
        task = _make_task(
            "a", priority=Priority.IMPORTANT, assignee_id="alice",
            status=TaskStatus.IN_PROGRESS, end_date=NOW + timedelta(days=2),
        )
        # 10*3 + 10*2 + 2 + 5
        assert score_task(task, NOW) == 57

    def test_overdue_important_beats_normal_due_in_a_week(self):
        overdue = _make_task(
            "overdue", priority=Priority.IMPORTANT, end_date=NOW - timedelta(days=1),
        )
        later = _make_task("later", priority=Priority.NORMAL, end_date=NOW + timedelta(days=7))
        ranked = next_task_candidates([later, overdue], "alice", NOW)
        assert [s.task.id for s in ranked] == ["overdue", "later"]

    def test_shared_project_bonus(self):
        a = _make_task("a", project_id="p")
        b = _make_task("b", project_id="p")
        c = _make_task("c", project_id="q")
        scores = {s.task.id: s.score for s in next_task_candidates([a, b, c], "alice", NOW)}
        assert scores["a"] == scores["c"] + 4.5

    def test_candidates_filter_and_limit(self):
        tasks = [
            _make_task("done", status=TaskStatus.COMPLETED),
            _make_task("deleted", is_deleted=True),
            _make_task("other", assignee_id="bob"),
            _make_task("mine1"),
            _make_task("mine2", creator_id="bob", assignee_id="alice"),
            _make_task("mine3"),
            _make_task("mine4"),
        ]
        ranked = next_task_candidates(tasks, "alice", NOW)
        assert len(ranked) == 3
        assert {s.task.id for s in ranked} <= {"mine1", "mine2", "mine3", "mine4"}
        # assignee bonus puts mine2 first
        assert ranked[0].task.id == "mine2"

    def test_ties_keep_input_order(self):
        tasks = [_make_task("x"), _make_task("y"), _make_task("z")]
        assert [s.task.id for s in next_task_candidates(tasks, "alice", NOW)] == ["x", "y", "z"]


class TestCategories:
    def test_each_task_lands_in_first_matching_bucket(self):
        today = NOW.replace(hour=0)
        tasks = [
            _make_task("overdue", end_date=NOW - timedelta(days=1), start_date=NOW - timedelta(days=5)),
            _make_task("due", end_date=today.replace(hour=18)),
            _make_task("late", start_date=NOW - timedelta(days=2)),
            _make_task("starting", start_date=today.replace(hour=14)),
            _make_task("running", status=TaskStatus.IN_PROGRESS),
            _make_task("finished", status=TaskStatus.COMPLETED, completed_at=NOW),
            _make_task("old", status=TaskStatus.COMPLETED, completed_at=NOW - timedelta(days=3)),
            _make_task("future", start_date=NOW + timedelta(days=2)),
        ]
        buckets = {c.key: [t.id for t in c.tasks] for c in categorize_tasks(tasks, NOW)}
        assert buckets == {
            CategoryKey.OVERDUE: ["overdue"],
            CategoryKey.DUE: ["due"],
            CategoryKey.UNSTARTED_LATE: ["late"],
            CategoryKey.STARTING: ["starting"],
            CategoryKey.IN_PROGRESS: ["running"],
            CategoryKey.COMPLETED: ["finished"],
        }

    def test_empty_buckets_are_omitted(self):
        assert categorize_tasks([], NOW) == []

    def test_week_bounds(self):
        assert week_bounds(NOW) == (datetime(2024, 3, 11).date(), datetime(2024, 3, 17).date())
        assert week_bounds(NOW, WeekMode.ROLLING) == (NOW.date(), datetime(2024, 3, 21).date())

    def test_week_categories(self):
        due_sunday = _make_task("sunday", end_date=datetime(2024, 3, 17, 12, 0))
        next_week = _make_task("next", start_date=datetime(2024, 3, 19), end_date=datetime(2024, 3, 25))
        calendar = {c.key: [t.id for t in c.tasks] for c in categorize_week_tasks([due_sunday, next_week], NOW)}
        assert calendar == {CategoryKey.DUE: ["sunday"]}

        rolling = {
            c.key: [t.id for t in c.tasks]
            for c in categorize_week_tasks([due_sunday, next_week], NOW, WeekMode.ROLLING)
        }
        assert rolling == {CategoryKey.DUE: ["sunday"], CategoryKey.STARTING: ["next"]}
