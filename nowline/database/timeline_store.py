"""Timeline store for nowline.

The store is the persistence collaborator the planner talks to. It wraps the
repositories around one session, turns database errors into
PersistenceFailure and makes every write idempotent on its request id.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nowline.models.task import Task
from nowline.models.time_block import TimeBlock
from nowline.models.workspace import Workspace, UnpluggedWindow, UnpluggedWindowInput
from nowline.database.repository import TaskRepository
from nowline.database.time_block_repository import TimeBlockRepository
from nowline.database.workspace_repository import WorkspaceRepository
from nowline.engine.errors import NotFound, PersistenceFailure

logger = logging.getLogger(__name__)


class TimelineStore:
    """SQLAlchemy-backed persistence for workspaces, tasks and block ledgers."""

    def __init__(self, db: Session):
        self.db = db
        self.tasks = TaskRepository(db)
        self.blocks = TimeBlockRepository(db)
        self.workspaces = WorkspaceRepository(db)

    def _fail(self, operation: str, e: SQLAlchemyError) -> PersistenceFailure:
        logger.error(f"Store operation {operation} failed: {type(e).__name__}: {str(e)}")
        return PersistenceFailure(f"Failed to {operation}", cause=e)

    # -------------------------------------------------------------------- reads

    def load_workspace(self, workspace_id: str) -> Workspace:
        try:
            workspace = self.workspaces.get(workspace_id)
        except SQLAlchemyError as e:
            raise self._fail("load workspace", e) from e
        if workspace is None:
            raise NotFound(f"Workspace {workspace_id} not found")
        return workspace

    def load_ledger(self, workspace_id: str, day: date) -> List[TimeBlock]:
        try:
            return self.blocks.get_for_day(workspace_id, day)
        except SQLAlchemyError as e:
            raise self._fail("load ledger", e) from e

    def load_inbox(self, workspace_id: str) -> List[Task]:
        try:
            return self.tasks.get_inbox(workspace_id)
        except SQLAlchemyError as e:
            raise self._fail("load inbox", e) from e

    def load_unplugged_windows(self, workspace_id: str) -> List[UnpluggedWindow]:
        try:
            return self.workspaces.get_windows(workspace_id)
        except SQLAlchemyError as e:
            raise self._fail("load unplugged windows", e) from e

    def load_task(self, task_id: str) -> Task:
        try:
            task = self.tasks.get(task_id)
        except SQLAlchemyError as e:
            raise self._fail("load task", e) from e
        if task is None:
            raise NotFound(f"Task {task_id} not found")
        return task

    def load_active_dates(self, workspace_id: str) -> List[date]:
        try:
            return self.blocks.get_active_dates(workspace_id)
        except SQLAlchemyError as e:
            raise self._fail("load active dates", e) from e

    # ------------------------------------------------------------------- writes

    def create_workspace(
        self,
        workspace_id: str,
        name: str,
        core_time_start: Optional[str] = None,
        core_time_end: Optional[str] = None,
        role_intro: Optional[str] = None,
        windows: Optional[List[UnpluggedWindowInput]] = None,
        now: Optional[datetime] = None,
    ) -> Workspace:
        workspace = Workspace(
            id=workspace_id,
            name=name,
            core_time_start=core_time_start,
            core_time_end=core_time_end,
            role_intro=role_intro,
            created_at=now or datetime.now(),
            unplugged_windows=[
                UnpluggedWindow(
                    id=f"{workspace_id}-w{index}",
                    workspace_id=workspace_id,
                    label=window.label,
                    start_time=window.start_time,
                    end_time=window.end_time,
                )
                for index, window in enumerate(windows or [])
            ],
        )
        try:
            return self.workspaces.create(workspace)
        except SQLAlchemyError as e:
            raise self._fail("create workspace", e) from e

    def create_task(self, task: Task, request_id: Optional[str] = None) -> bool:
        try:
            return self.tasks.create(task, request_id=request_id)
        except SQLAlchemyError as e:
            raise self._fail("create task", e) from e

    def delete_task(self, task_id: str, request_id: Optional[str] = None) -> bool:
        try:
            return self.tasks.delete(task_id, request_id=request_id)
        except SQLAlchemyError as e:
            raise self._fail("delete task", e) from e

    def replace_unplugged_windows(
        self,
        workspace_id: str,
        windows: List[UnpluggedWindow],
        request_id: Optional[str] = None,
    ) -> bool:
        try:
            return self.workspaces.replace_windows(workspace_id, windows, request_id=request_id)
        except SQLAlchemyError as e:
            raise self._fail("replace unplugged windows", e) from e

    def persist_ledger(
        self,
        workspace_id: str,
        day: date,
        blocks: List[TimeBlock],
        request_id: Optional[str],
        operation: str = "ledger",
    ) -> bool:
        """Store the full post-mutation ledger of a workspace-day."""
        try:
            return self.blocks.sync(workspace_id, day, blocks, request_id, operation)
        except SQLAlchemyError as e:
            raise self._fail(operation.replace("_", " "), e) from e

    def persist_reorder(
        self,
        workspace_id: str,
        ordered_block_ids: List[str],
        blocks: List[TimeBlock],
        request_id: Optional[str],
        day: Optional[date] = None,
    ) -> bool:
        logger.debug(f"Persisting order {ordered_block_ids} for workspace {workspace_id}")
        day = day or self._day_of(blocks)
        return self.persist_ledger(workspace_id, day, blocks, request_id, operation="reorder")

    def persist_transition(
        self,
        block_id: str,
        action: str,
        blocks: List[TimeBlock],
        extra_minutes: Optional[int],
        review_memo: Optional[str],
        request_id: Optional[str],
        day: Optional[date] = None,
    ) -> bool:
        stored = self._stored_block(block_id)
        logger.debug(
            f"Persisting {action} for block {block_id} (minutes={extra_minutes}, memo={review_memo is not None})"
        )
        return self.persist_ledger(
            stored.workspace_id,
            day or stored.start_time.date(),
            blocks,
            request_id,
            operation="transition",
        )

    def persist_move_to_inbox(
        self,
        block_id: str,
        blocks: List[TimeBlock],
        request_id: Optional[str],
        day: Optional[date] = None,
    ) -> bool:
        if self.request_applied(request_id):
            return False
        stored = self._stored_block(block_id)
        return self.persist_ledger(
            stored.workspace_id,
            day or stored.start_time.date(),
            blocks,
            request_id,
            operation="move_to_inbox",
        )

    def persist_move_to_timeline(
        self,
        task_id: str,
        workspace_id: str,
        blocks: List[TimeBlock],
        request_id: Optional[str],
        day: Optional[date] = None,
    ) -> bool:
        logger.debug(f"Persisting task {task_id} onto the timeline of workspace {workspace_id}")
        day = day or self._day_of([b for b in blocks if b.task_id == task_id] or blocks)
        return self.persist_ledger(workspace_id, day, blocks, request_id, operation="move_to_timeline")

    def persist_move_all_to_timeline(
        self,
        workspace_id: str,
        blocks: List[TimeBlock],
        request_id: Optional[str],
        day: Optional[date] = None,
    ) -> bool:
        day = day or self._day_of(blocks)
        return self.persist_ledger(workspace_id, day, blocks, request_id, operation="move_all_to_timeline")

    def persist_status_change(self, block_id: str, status, request_id: Optional[str] = None) -> bool:
        try:
            return self.blocks.set_status(block_id, status, request_id=request_id)
        except SQLAlchemyError as e:
            raise self._fail("persist status change", e) from e

    # ------------------------------------------------------------------ helpers

    def request_applied(self, request_id: Optional[str]) -> bool:
        try:
            return self.blocks.requests.is_applied(request_id)
        except SQLAlchemyError as e:
            raise self._fail("check request id", e) from e

    def _stored_block(self, block_id: str) -> TimeBlock:
        try:
            stored = self.blocks.get_by_id(block_id)
        except SQLAlchemyError as e:
            raise self._fail("load block", e) from e
        if stored is None:
            raise NotFound(f"Block {block_id} not found", block_id=block_id)
        return stored

    @staticmethod
    def _day_of(blocks: List[TimeBlock]) -> date:
        if not blocks:
            return datetime.now().date()
        return min(b.start_time for b in blocks).date()
