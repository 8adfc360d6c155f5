"""Repository layer for database operations."""

import logging
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import exists

from nowline.models.task import Task
from nowline.database.models import TaskDB, TimeBlockDB
from nowline.database.request_log_repository import RequestLogRepository

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for Task database operations."""

    def __init__(self, db: Session):
        self.db = db
        self.requests = RequestLogRepository(db)

    def create(self, task: Task, request_id: Optional[str] = None) -> bool:
        """Create a new task.

        Returns:
            False if the request was already applied (nothing is written)
        """
        try:
            if self.requests.is_applied(request_id):
                return False
            self.db.add(TaskDB.from_pydantic(task))
            self.requests.record(request_id, "create_task", task.workspace_id)
            self.db.commit()
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, task_id: str) -> Optional[Task]:
        """Get task by ID."""
        task_db = self.db.query(TaskDB).filter(TaskDB.id == task_id).first()
        return task_db.to_pydantic() if task_db else None

    def get_all(self, workspace_id: str) -> List[Task]:
        """Get all tasks for a workspace sorted by creation date (oldest first)."""
        tasks_db = self.db.query(TaskDB).filter(
            TaskDB.workspace_id == workspace_id,
        ).order_by(TaskDB.created_at).all()
        return [task_db.to_pydantic() for task_db in tasks_db]

    def get_inbox(self, workspace_id: str) -> List[Task]:
        """Get tasks with no blocks on any day, oldest first."""
        has_blocks = exists().where(TimeBlockDB.task_id == TaskDB.id)
        tasks_db = self.db.query(TaskDB).filter(
            TaskDB.workspace_id == workspace_id,
            ~has_blocks,
        ).order_by(TaskDB.created_at, TaskDB.id).all()
        return [task_db.to_pydantic() for task_db in tasks_db]

    def delete(self, task_id: str, request_id: Optional[str] = None) -> bool:
        """Delete a task; its blocks go with it.

        Returns:
            False if the request was already applied or the task does not exist
        """
        try:
            if self.requests.is_applied(request_id):
                return False
            task_db = self.db.query(TaskDB).filter(TaskDB.id == task_id).first()
            if task_db is None:
                return False
            workspace_id = task_db.workspace_id
            # Explicit block delete so backends without FK enforcement stay consistent
            self.db.query(TimeBlockDB).filter(TimeBlockDB.task_id == task_id).delete()
            self.db.delete(task_db)
            self.requests.record(request_id, "delete_task", workspace_id)
            self.db.commit()
            logger.debug(f"Deleted task {task_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete task {task_id}: {type(e).__name__}: {str(e)}")
            raise
