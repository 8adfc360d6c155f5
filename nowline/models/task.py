"""Task data model for nowline."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Task(BaseModel):
    """A unit of work. Owns no time until it is scheduled into blocks."""
    
    id: str = Field(..., description="Unique task identifier (UUID v4)")
    workspace_id: str = Field(..., description="Workspace that owns this task")
    title: str = Field(..., description="Task title")
    planning_memo: Optional[str] = Field(None, description="Free-form planning memo")
    is_urgent: bool = Field(False, description="Whether the task interrupts the current block")
    estimated_minutes: int = Field(30, ge=0, description="Estimated duration in minutes")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")
    
    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class TaskInput(BaseModel):
    """User input for creating a task."""

    title: str = Field(..., min_length=1, description="Task title")
    hours: int = Field(0, ge=0, description="Estimated hours")
    minutes: int = Field(0, ge=0, description="Estimated minutes (added to hours)")
    planning_memo: Optional[str] = Field(None, description="Free-form planning memo")
    is_urgent: bool = Field(False, description="Interrupt the current block with this task")
    is_inbox: bool = Field(False, description="Keep the task in the inbox instead of scheduling it")

    @property
    def duration_minutes(self) -> int:
        return self.hours * 60 + self.minutes
