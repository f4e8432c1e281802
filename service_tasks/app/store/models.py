"""
Task models.

Wire names follow the public contract (``titulo``, ``completada``); Python
code uses ``title`` and ``completed``.
"""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool, StrictStr


class Task(BaseModel):
    """Task record."""

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., ge=1, description="Unique task ID")
    title: str = Field(..., alias="titulo", description="Normalized task title")
    completed: bool = Field(default=False, alias="completada", description="Completion flag")


class TaskCreate(BaseModel):
    """Body of POST /tareas."""

    title: Optional[StrictStr] = Field(
        default=None,
        validation_alias=AliasChoices("titulo", "title"),
        description="Raw title, normalized before storing",
    )
    completed: StrictBool = Field(
        default=False,
        validation_alias=AliasChoices("completada", "completed"),
        description="Initial completion flag",
    )


class TaskUpdate(BaseModel):
    """Body of PUT /tareas/{id}. Omitted fields are left untouched."""

    title: Optional[StrictStr] = Field(
        default=None,
        validation_alias=AliasChoices("titulo", "title"),
        description="Replacement title",
    )
    completed: Optional[StrictBool] = Field(
        default=None,
        validation_alias=AliasChoices("completada", "completed"),
        description="Replacement completion flag",
    )


class DeletedCount(BaseModel):
    """Body returned by DELETE /tareas/completed."""

    eliminadas: int = Field(..., ge=0, description="Number of tasks removed")


def demo_tasks() -> List[Task]:
    """Tasks loaded at startup when seeding is enabled."""
    return [
        Task(id=1, title="tarea 1", completed=False),
        Task(id=2, title="tarea 2", completed=True),
        Task(id=3, title="tarea 3", completed=False),
        Task(id=4, title="tarea 4", completed=True),
        Task(id=5, title="tarea 5", completed=True),
    ]
