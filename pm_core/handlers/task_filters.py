"""
Filter/sort post-processing for aggregated task lists.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from pm_core.providers.models import Task, TaskPriority, TaskStatus

SORT_FIELDS = ("due", "priority", "status", "source", "title")

PRIORITY_RANK: Dict[str, int] = {
    TaskPriority.URGENT.value: 0,
    TaskPriority.HIGH.value: 1,
    TaskPriority.MEDIUM.value: 2,
    TaskPriority.LOW.value: 3,
}

STATUS_RANK: Dict[str, int] = {
    TaskStatus.IN_PROGRESS.value: 0,
    TaskStatus.TODO.value: 1,
    TaskStatus.DONE.value: 2,
}

UNKNOWN_RANK = 99


def _value(enum_or_str: Any) -> Optional[str]:
    if enum_or_str is None:
        return None
    return getattr(enum_or_str, "value", enum_or_str)


def _due_key(task: Task) -> Tuple[int, float]:
    # Missing due dates go last
    if task.due_date is None:
        return (1, 0.0)
    return (0, task.due_date.timestamp())


_SORT_KEYS: Dict[str, Callable[[Task], Any]] = {
    "due": _due_key,
    "priority": lambda t: PRIORITY_RANK.get(_value(t.priority), UNKNOWN_RANK),
    "status": lambda t: STATUS_RANK.get(_value(t.status), UNKNOWN_RANK),
    "source": lambda t: (t.source is None, _value(t.source) or ""),
    "title": lambda t: (not t.title, (t.title or "").lower()),
}


def sort_by_due_date(tasks: Iterable[Task]) -> List[Task]:
    """Stable sort by due date ascending, tasks without a due date last"""
    return sorted(tasks, key=_due_key)


def filter_and_sort_tasks(
    tasks: Iterable[Task],
    status: Optional[Union[TaskStatus, str]] = None,
    priorities: Optional[Iterable[Union[TaskPriority, str]]] = None,
    sort: Optional[str] = None,
) -> List[Task]:
    """
    Filter by exact status and by priority-set membership, then sort.

    Sorting is stable; unknown or missing values always sort last.
    """
    result = list(tasks)

    if status is not None:
        wanted_status = _value(status)
        result = [t for t in result if _value(t.status) == wanted_status]

    if priorities:
        wanted = {_value(p) for p in priorities}
        result = [t for t in result if _value(t.priority) in wanted]

    if sort:
        if sort not in _SORT_KEYS:
            raise ValueError(f"Unsupported sort field: {sort} (supported: {', '.join(SORT_FIELDS)})")
        result = sorted(result, key=_SORT_KEYS[sort])

    return result


@dataclass
class TaskSummary:
    total: int = 0
    overdue: int = 0
    due_today: int = 0
    in_progress: int = 0
    done: int = 0


def summarize_tasks(tasks: Iterable[Task], today: Optional[date] = None) -> TaskSummary:
    """Count tasks by due-date bucket and status; done tasks are never overdue"""
    today = today or datetime.now().date()
    summary = TaskSummary()

    for task in tasks:
        summary.total += 1
        status = _value(task.status)

        if status == TaskStatus.DONE.value:
            summary.done += 1
            continue
        if status == TaskStatus.IN_PROGRESS.value:
            summary.in_progress += 1

        if task.due_date is not None:
            due = task.due_date.date()
            if due < today:
                summary.overdue += 1
            elif due == today:
                summary.due_today += 1

    return summary
