"""Repository for TimeBlock database operations."""

import logging
from datetime import date
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from nowline.models.time_block import TimeBlock, BlockStatus
from nowline.database.models import TimeBlockDB, enum_to_value
from nowline.database.request_log_repository import RequestLogRepository
from nowline.engine.timeutil import day_end, day_start

logger = logging.getLogger(__name__)


class TimeBlockRepository:
    """Repository for TimeBlock database operations."""

    def __init__(self, db: Session):
        self.db = db
        self.requests = RequestLogRepository(db)

    def _day_rows(self, workspace_id: str, day: date) -> List[TimeBlockDB]:
        return (
            self.db.query(TimeBlockDB)
            .filter(
                TimeBlockDB.workspace_id == workspace_id,
                TimeBlockDB.start_time >= day_start(day),
                TimeBlockDB.start_time < day_end(day),
            )
            .order_by(TimeBlockDB.position, TimeBlockDB.start_time)
            .all()
        )

    def get_for_day(self, workspace_id: str, day: date) -> List[TimeBlock]:
        """Get the blocks starting on a day in ledger order."""
        return [row.to_pydantic() for row in self._day_rows(workspace_id, day)]

    def get_by_id(self, block_id: str) -> Optional[TimeBlock]:
        row = self.db.query(TimeBlockDB).filter(TimeBlockDB.id == block_id).first()
        return row.to_pydantic() if row else None

    def get_active_dates(self, workspace_id: str) -> List[date]:
        """Distinct days that have at least one block, ascending."""
        rows = self.db.query(TimeBlockDB.start_time).filter(
            TimeBlockDB.workspace_id == workspace_id
        ).all()
        return sorted({row[0].date() for row in rows})

    def sync(
        self,
        workspace_id: str,
        day: date,
        blocks: List[TimeBlock],
        request_id: Optional[str],
        operation: str,
    ) -> bool:
        """Make the stored day match a ledger in a single commit.

        Blocks are upserted with their sequence position; stored blocks of the
        day that are missing from ``blocks`` are deleted.

        Args:
            workspace_id: Workspace the ledger belongs to
            day: Ledger day
            blocks: Authoritative ledger blocks in sequence order
            request_id: Client-issued request id
            operation: Operation name recorded with the request id

        Returns:
            False if the request was already applied (nothing is written)
        """
        try:
            if self.requests.is_applied(request_id):
                return False
            rows: Dict[str, TimeBlockDB] = {row.id: row for row in self._day_rows(workspace_id, day)}
            ids = [b.id for b in blocks]
            if ids:
                # Blocks pushed past midnight live outside the day range
                for row in self.db.query(TimeBlockDB).filter(TimeBlockDB.id.in_(ids)).all():
                    rows[row.id] = row

            keep = set(ids)
            deleted = 0
            for row_id, row in list(rows.items()):
                if row_id not in keep:
                    self.db.delete(row)
                    deleted += 1

            for position, block in enumerate(blocks):
                if block.status == BlockStatus.UNPLUGGED:
                    continue
                row = rows.get(block.id)
                if row is None:
                    self.db.add(TimeBlockDB.from_pydantic(block, position))
                else:
                    row.update_from_pydantic(block, position)

            self.requests.record(request_id, operation, workspace_id)
            self.db.commit()
            logger.debug(
                f"Synced {len(blocks)} blocks for workspace {workspace_id} on {day} "
                f"({operation}, {deleted} deleted)"
            )
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to sync blocks for workspace {workspace_id}: {type(e).__name__}: {str(e)}")
            raise

    def set_status(self, block_id: str, status, request_id: Optional[str] = None) -> bool:
        """Update one block's status.

        Returns:
            False if the request was already applied or the block does not exist
        """
        try:
            if self.requests.is_applied(request_id):
                return False
            row = self.db.query(TimeBlockDB).filter(TimeBlockDB.id == block_id).first()
            if row is None:
                return False
            row.status = enum_to_value(status)
            if row.status == BlockStatus.PENDING.value:
                row.last_action = None
            self.requests.record(request_id, "status_change", row.workspace_id)
            self.db.commit()
            logger.debug(f"Block {block_id} status -> {row.status}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to set status for block {block_id}: {type(e).__name__}: {str(e)}")
            raise
