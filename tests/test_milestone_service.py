from datetime import date

import pytest

from errors import NotFound, WrongTaskType
from milestone_service import (
    create_milestone,
    delete_milestone,
    get_statistics,
    list_milestones,
    reorder_milestones,
    toggle_milestone,
    update_milestone,
)
from models import MilestoneCreate, MilestoneOrder, MilestoneUpdate, TaskType
from task_service import get_task


@pytest.fixture
def project(make_task):
    return make_task(TaskType.LONG_TERM, title="Write book", target_completion_on=date(2024, 1, 1))


def test_progress_follows_milestones(project):
    a = create_milestone(project.id, MilestoneCreate(title="Outline", order_index=1))
    b = create_milestone(project.id, MilestoneCreate(title="Draft", order_index=2))
    assert get_task(project.id).progress == 0.0

    first = toggle_milestone(a["id"])
    assert first["milestone"]["is_completed"] is True
    assert first["milestone"]["completed_at"] is not None
    assert first["task_progress"] == 0.5
    assert first["task_completed"] is False

    second = toggle_milestone(b["id"])
    assert second["task_progress"] == 1.0
    assert second["task_completed"] is True
    assert get_task(project.id).is_completed is True

    undone = toggle_milestone(b["id"])
    assert undone["milestone"]["completed_at"] is None
    assert undone["task_completed"] is False


def test_adding_milestone_reopens_task(project):
    a = create_milestone(project.id, MilestoneCreate(title="Only"))
    toggle_milestone(a["id"])
    assert get_task(project.id).is_completed is True
    create_milestone(project.id, MilestoneCreate(title="One more"))
    task = get_task(project.id)
    assert task.is_completed is False
    assert task.progress == 0.5


def test_delete_recomputes_progress(project):
    a = create_milestone(project.id, MilestoneCreate(title="Done"))
    b = create_milestone(project.id, MilestoneCreate(title="Open"))
    toggle_milestone(a["id"])
    delete_milestone(b["id"])
    task = get_task(project.id)
    assert task.progress == 1.0
    assert task.is_completed is True
    with pytest.raises(NotFound):
        delete_milestone(b["id"])


def test_update_and_reorder(project):
    a = create_milestone(project.id, MilestoneCreate(title="A", order_index=1))
    b = create_milestone(project.id, MilestoneCreate(title="B", order_index=2))
    renamed = update_milestone(a["id"], MilestoneUpdate(title="A1", description="first"))
    assert renamed["title"] == "A1"
    assert renamed["description"] == "first"

    ordered = reorder_milestones(
        project.id,
        [MilestoneOrder(id=a["id"], order_index=20), MilestoneOrder(id=b["id"], order_index=10)],
    )
    assert [m["id"] for m in ordered] == [b["id"], a["id"]]
    assert [m["id"] for m in list_milestones(project.id)] == [b["id"], a["id"]]


def test_milestones_require_long_term_task(make_task):
    todo = make_task(TaskType.TODO)
    with pytest.raises(WrongTaskType):
        create_milestone(todo.id, MilestoneCreate(title="nope"))
    with pytest.raises(NotFound):
        list_milestones("missing")
    with pytest.raises(NotFound):
        toggle_milestone("missing")


def test_statistics(project):
    a = create_milestone(project.id, MilestoneCreate(title="A"))
    create_milestone(project.id, MilestoneCreate(title="B"))
    toggle_milestone(a["id"])
    stats = get_statistics(project.id, today=date(2024, 1, 11))
    assert stats["total_milestones"] == 2
    assert stats["completed_milestones"] == 1
    assert stats["progress"] == 50.0
    assert stats["is_overdue"] is True
    assert stats["days_to_target"] == -10
    assert [m["title"] for m in stats["milestones_by_status"]["pending"]] == ["B"]

    early = get_statistics(project.id, today=date(2023, 12, 30))
    assert early["is_overdue"] is False
    assert early["days_to_target"] == 2
