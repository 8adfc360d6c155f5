"""Repository for applied request ids."""

import logging
from typing import Optional
from sqlalchemy.orm import Session

from nowline.database.models import AppliedRequestDB

logger = logging.getLogger(__name__)


class RequestLogRepository:
    """Tracks which client-issued request ids were already applied.

    ``record`` only stages the row; it is committed together with the write it
    belongs to, so a failed write never marks its request as applied.
    """

    def __init__(self, db: Session):
        self.db = db

    def is_applied(self, request_id: Optional[str]) -> bool:
        if not request_id:
            return False
        row = self.db.query(AppliedRequestDB).filter(
            AppliedRequestDB.request_id == request_id
        ).first()
        if row is not None:
            logger.debug(f"Request {request_id} already applied ({row.operation})")
        return row is not None

    def record(self, request_id: Optional[str], operation: str, workspace_id: Optional[str] = None) -> None:
        if not request_id:
            return
        self.db.add(AppliedRequestDB(request_id=request_id, workspace_id=workspace_id, operation=operation))
