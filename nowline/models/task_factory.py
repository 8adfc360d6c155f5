"""Task creation factory for nowline.

Centralizes task creation so the API and the planner build tasks with the
same ids, timestamps and duration handling.
"""

import uuid
from datetime import datetime
from typing import Optional

from nowline.models.task import Task, TaskInput
from nowline.models.constants import DEFAULT_DURATION_MINUTES


def effective_duration(task: Task) -> int:
    """Minutes to schedule for a task (tasks without an estimate get the default)."""
    if task.estimated_minutes > 0:
        return task.estimated_minutes
    return DEFAULT_DURATION_MINUTES


def create_task_from_input(
    task_input: TaskInput,
    workspace_id: str,
    task_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Task:
    """Build a new Task from user input.
    
    Args:
        task_input: Title, duration and flags entered by the user
        workspace_id: Owning workspace
        task_id: Optional explicit id (a UUID v4 is generated otherwise)
        now: Creation timestamp (defaults to local now)
        
    Returns:
        New Task instance (not persisted)
    """
    if now is None:
        now = datetime.now()
    return Task(
        id=task_id or str(uuid.uuid4()),
        workspace_id=workspace_id,
        title=task_input.title.strip(),
        planning_memo=task_input.planning_memo or None,
        is_urgent=task_input.is_urgent,
        estimated_minutes=task_input.duration_minutes,
        created_at=now,
        updated_at=now,
    )
