"""
Handlers: cross-provider task operations.
"""
from .aggregator import PMAggregator
from .task_filters import (
    SORT_FIELDS,
    TaskSummary,
    filter_and_sort_tasks,
    sort_by_due_date,
    summarize_tasks,
)

__all__ = [
    "PMAggregator",
    "SORT_FIELDS",
    "TaskSummary",
    "filter_and_sort_tasks",
    "sort_by_due_date",
    "summarize_tasks",
]
