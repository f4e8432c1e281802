"""
In-memory task store.

The store is the only owner of the task list. Every public method takes the
store lock for its whole read-modify-write sequence and hands out copies, so
callers never hold a reference into the collection.
"""

import re
import threading
from typing import Iterable, List, Optional

from shared.errors import Conflict, InvalidArgument, NotFound

from .models import Task

MIN_TITLE_LENGTH = 5
_ID_PATTERN = re.compile(r"[0-9]+")


def normalize_title(raw_title: str) -> str:
    """Trim, lowercase and collapse whitespace runs to a single space."""
    return " ".join(raw_title.split()).lower()


class TaskStore:
    """Task collection with monotonic id allocation."""

    def __init__(self, tasks: Optional[Iterable[Task]] = None):
        self._tasks: List[Task] = [task.model_copy() for task in tasks or []]
        ids = [task.id for task in self._tasks]
        if len(ids) != len(set(ids)):
            raise ValueError("initial tasks contain duplicate ids")
        self._next_id = max(ids, default=0) + 1
        self._lock = threading.Lock()

    def _find(self, task_id: int) -> Optional[Task]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def list(self) -> List[Task]:
        """Current tasks in insertion order."""
        with self._lock:
            return [task.model_copy() for task in self._tasks]

    def count(self) -> int:
        with self._lock:
            return len(self._tasks)

    def get(self, task_id: int) -> Task:
        with self._lock:
            task = self._find(task_id)
            if task is None:
                raise NotFound("Tarea no encontrada", details={"id": task_id})
            return task.model_copy()

    def get_by_id_param(self, id_param: str) -> Task:
        """Resolve a path parameter to a task.

        Malformed and unknown ids both raise ``NotFound``.
        """
        if not _ID_PATTERN.fullmatch(id_param or ""):
            raise NotFound("ID no válido", details={"id": id_param})
        return self.get(int(id_param))

    def create(self, raw_title: Optional[str], completed: bool = False) -> Task:
        title = normalize_title(raw_title or "")
        if len(title) < MIN_TITLE_LENGTH:
            raise InvalidArgument(f"El titulo debe tener al menos {MIN_TITLE_LENGTH} caracteres")

        with self._lock:
            if any(task.title == title for task in self._tasks):
                raise Conflict("Ya existe una tarea con ese título", details={"titulo": title})
            task = Task(id=self._next_id, title=title, completed=completed)
            self._next_id += 1
            self._tasks.append(task)
            return task.model_copy()

    def update(self, task_id: int, title: Optional[str] = None, completed: Optional[bool] = None) -> Task:
        """Replace title and/or completed flag.

        The new title is stored and compared as given, without normalization.
        """
        with self._lock:
            task = self._find(task_id)
            if task is None:
                raise NotFound("Tarea no encontrada", details={"id": task_id})

            if title is not None and title != task.title:
                if any(other.title == title for other in self._tasks):
                    raise Conflict("Ya existe una tarea con ese título", details={"titulo": title})
                task.title = title
            if completed is not None:
                task.completed = completed
            return task.model_copy()

    def delete(self, task_id: int) -> None:
        with self._lock:
            for index, task in enumerate(self._tasks):
                if task.id == task_id:
                    del self._tasks[index]
                    return
            raise NotFound("Tarea no encontrada", details={"id": task_id})

    def delete_completed(self) -> int:
        """Remove every completed task and return how many were removed."""
        with self._lock:
            removed = 0
            # Walk backwards so deletions never shift unvisited indexes.
            for index in range(len(self._tasks) - 1, -1, -1):
                if self._tasks[index].completed:
                    del self._tasks[index]
                    removed += 1
            return removed
