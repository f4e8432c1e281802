"""
Task storage: the task models and the lock-guarded in-memory store.
"""

from .models import DeletedCount, Task, TaskCreate, TaskUpdate, demo_tasks
from .task_store import MIN_TITLE_LENGTH, TaskStore, normalize_title

__all__ = [
    "DeletedCount",
    "MIN_TITLE_LENGTH",
    "Task",
    "TaskCreate",
    "TaskStore",
    "TaskUpdate",
    "demo_tasks",
    "normalize_title",
]
