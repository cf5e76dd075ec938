from types import SimpleNamespace

import pytest

from tracker.core import capabilities
from tracker.services.permissions import Subject, can_edit_task, normalize_permissions


@pytest.mark.unit
@pytest.mark.parametrize("raw", [None, [], [None], (None, None)])
def test_empty_aggregates_normalize_to_empty_set(raw):
    assert normalize_permissions(raw) == frozenset()


@pytest.mark.unit
def test_normalize_drops_nulls_and_duplicates():
    assert normalize_permissions(["ADD_COMMENT", None, "ADD_COMMENT", ""]) == frozenset({"ADD_COMMENT"})


@pytest.mark.unit
def test_subject_membership_checks():
    subject = Subject(id=1, permissions=frozenset({capabilities.ADD_COMMENT}))

    assert subject.has(capabilities.ADD_COMMENT)
    assert not subject.has(capabilities.VIEW_ANY_TASK)
    assert subject.has_any(capabilities.VIEW_ANY_TASK, capabilities.ADD_COMMENT)
    assert not subject.has_any()
    assert not Subject(id=2).has(capabilities.ADD_COMMENT)


@pytest.mark.unit
def test_subject_is_immutable():
    subject = Subject(id=1)
    with pytest.raises(AttributeError):
        subject.permissions = frozenset({capabilities.MANAGE_USERS})  # type: ignore[misc]


def _task(**fields):
    defaults = {"assignee_id": 10, "assigner_id": 20, "department_id": 1}
    return SimpleNamespace(**{**defaults, **fields})


@pytest.mark.unit
def test_edit_any_task_is_limited_to_own_department():
    editor = Subject(id=1, department_id=1, permissions=frozenset({capabilities.EDIT_ANY_TASK}))

    assert can_edit_task(editor, _task())
    assert not can_edit_task(editor, _task(department_id=2))


@pytest.mark.unit
def test_assignee_with_own_status_capability_can_edit():
    assignee = Subject(id=10, department_id=3, permissions=frozenset({capabilities.UPDATE_OWN_TASK_STATUS}))

    assert can_edit_task(assignee, _task())
    assert not can_edit_task(assignee, _task(assignee_id=11))
    assert not can_edit_task(Subject(id=10, department_id=1), _task())
