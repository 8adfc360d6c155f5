"""TimeBlock data model for nowline."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class BlockStatus(str, Enum):
    """Block status enumeration (mutually exclusive per block)."""
    WILL = "WILL"
    NOW = "NOW"
    DONE = "DONE"
    PENDING = "PENDING"
    UNPLUGGED = "UNPLUGGED"


class SplitPosition(str, Enum):
    """Where a block sits in its task's rendering group."""
    SINGLE = "single"
    FIRST = "first"
    MIDDLE = "middle"
    LAST = "last"


class TimeBlock(BaseModel):
    """A concrete scheduled interval on the timeline."""
    
    id: str = Field(..., description="Unique block identifier")
    task_id: Optional[str] = Field(None, description="Owning task (null for unplugged placeholders)")
    workspace_id: str = Field(..., description="Workspace this block belongs to")
    title: str = Field(..., description="Title (denormalized from the task or window label)")
    start_time: datetime = Field(..., description="Block start time")
    end_time: datetime = Field(..., description="Block end time")
    status: BlockStatus = Field(BlockStatus.WILL, description="Block status")
    review_memo: Optional[str] = Field(None, description="Review memo written on completion")
    is_urgent: bool = Field(False, description="Urgency flag (denormalized from the task)")
    is_continuation: bool = Field(False, description="Residual of an interrupted block")
    split_index: int = Field(0, ge=0, description="Position within the task's blocks")
    split_total: int = Field(1, ge=1, description="Number of blocks the task owns")
    last_action: Optional[str] = Field(None, description="Transition kind that last disposed of this block")
    
    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    @property
    def split_position(self) -> SplitPosition:
        if self.split_total <= 1:
            return SplitPosition.SINGLE
        if self.split_index == 0:
            return SplitPosition.FIRST
        if self.split_index == self.split_total - 1:
            return SplitPosition.LAST
        return SplitPosition.MIDDLE
