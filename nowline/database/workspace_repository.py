"""Repository for Workspace and UnpluggedWindow database operations."""

import logging
from typing import List, Optional
from sqlalchemy.orm import Session

from nowline.models.workspace import Workspace, UnpluggedWindow
from nowline.database.models import WorkspaceDB, UnpluggedWindowDB
from nowline.database.request_log_repository import RequestLogRepository

logger = logging.getLogger(__name__)


class WorkspaceRepository:
    """Repository for Workspace database operations."""

    def __init__(self, db: Session):
        self.db = db
        self.requests = RequestLogRepository(db)

    def create(self, workspace: Workspace) -> Workspace:
        """Create a workspace together with its unplugged windows."""
        try:
            self.db.add(WorkspaceDB.from_pydantic(workspace))
            for window in workspace.unplugged_windows:
                self.db.add(UnpluggedWindowDB.from_pydantic(window))
            self.db.commit()
            logger.debug(f"Created workspace {workspace.id}: {workspace.name[:50]}")
            return self.get(workspace.id)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create workspace {workspace.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, workspace_id: str) -> Optional[Workspace]:
        """Get workspace by ID, windows included."""
        row = self.db.query(WorkspaceDB).filter(WorkspaceDB.id == workspace_id).first()
        if row is None:
            return None
        return row.to_pydantic(windows=self.get_windows(workspace_id))

    def get_windows(self, workspace_id: str) -> List[UnpluggedWindow]:
        """Get a workspace's unplugged windows ordered by start time."""
        rows = self.db.query(UnpluggedWindowDB).filter(
            UnpluggedWindowDB.workspace_id == workspace_id
        ).order_by(UnpluggedWindowDB.start_time, UnpluggedWindowDB.id).all()
        return [row.to_pydantic() for row in rows]

    def replace_windows(
        self,
        workspace_id: str,
        windows: List[UnpluggedWindow],
        request_id: Optional[str] = None,
    ) -> bool:
        """Replace all of a workspace's unplugged windows.

        Returns:
            False if the request was already applied (nothing is written)
        """
        try:
            if self.requests.is_applied(request_id):
                return False
            self.db.query(UnpluggedWindowDB).filter(
                UnpluggedWindowDB.workspace_id == workspace_id
            ).delete()
            for window in windows:
                self.db.add(UnpluggedWindowDB.from_pydantic(window))
            self.requests.record(request_id, "replace_unplugged_windows", workspace_id)
            self.db.commit()
            logger.debug(f"Replaced unplugged windows for workspace {workspace_id} ({len(windows)} windows)")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Failed to replace unplugged windows for workspace {workspace_id}: {type(e).__name__}: {str(e)}"
            )
            raise
