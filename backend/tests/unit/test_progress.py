import pytest

from tracker.models.task import TaskStatus
from tracker.services.tasks import compute_progress

done = TaskStatus.completed
pending = TaskStatus.pending
working = TaskStatus.in_progress


@pytest.mark.unit
@pytest.mark.parametrize(
    ("status", "subtasks", "expected"),
    [
        (pending, [], 0),
        (working, [], 0),
        (done, [], 100),
        (pending, [done, pending], 50),
        (pending, [done, pending, pending, pending], 25),
        (pending, [done, pending, pending], 33),
        (pending, [done, done, pending], 67),
        (pending, [done] + [pending] * 7, 13),
        (pending, [done, done, done], 100),
    ],
)
def test_compute_progress(status, subtasks, expected):
    assert compute_progress(status, subtasks) == expected


@pytest.mark.unit
def test_subtasks_override_the_task_own_status():
    # A completed parent with unfinished subtasks reports subtask progress
    assert compute_progress(done, [pending, pending]) == 0


@pytest.mark.unit
def test_half_rounds_up():
    # 1/8 = 12.5% and 3/8 = 37.5%
    assert compute_progress(pending, [done] + [pending] * 7) == 13
    assert compute_progress(pending, [done] * 3 + [pending] * 5) == 38


@pytest.mark.unit
def test_accepts_raw_status_strings():
    assert compute_progress("Pending", ["Completed", "On Hold"]) == 50
    assert compute_progress("Completed", []) == 100
