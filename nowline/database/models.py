"""SQLAlchemy database models for nowline."""

from datetime import datetime
from typing import Union, TypeVar, Type
import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey

from nowline.database.database import Base
from nowline.models.time_block import BlockStatus

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.upper())
    except (ValueError, AttributeError):
        return default


class WorkspaceDB(Base):
    """Database model for Workspace."""

    __tablename__ = "workspaces"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    core_time_start = Column(String, nullable=True)
    core_time_end = Column(String, nullable=True)
    role_intro = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    def to_pydantic(self, windows=None):
        """Convert database model to Pydantic model."""
        from nowline.models.workspace import Workspace

        return Workspace(
            id=self.id,
            name=self.name,
            core_time_start=self.core_time_start,
            core_time_end=self.core_time_end,
            role_intro=self.role_intro,
            created_at=self.created_at,
            unplugged_windows=windows or [],
        )

    @classmethod
    def from_pydantic(cls, workspace):
        """Create database model from Pydantic model."""
        return cls(
            id=workspace.id,
            name=workspace.name,
            core_time_start=workspace.core_time_start,
            core_time_end=workspace.core_time_end,
            role_intro=workspace.role_intro,
            created_at=workspace.created_at,
        )


class UnpluggedWindowDB(Base):
    """Database model for UnpluggedWindow."""

    __tablename__ = "unplugged_windows"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    workspace_id = Column(String, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(String, nullable=False)
    # Daily wall-clock bounds, HH:mm
    start_time = Column(String, nullable=False)
    end_time = Column(String, nullable=False)

    def to_pydantic(self):
        from nowline.models.workspace import UnpluggedWindow

        return UnpluggedWindow(
            id=self.id,
            workspace_id=self.workspace_id,
            label=self.label,
            start_time=self.start_time,
            end_time=self.end_time,
        )

    @classmethod
    def from_pydantic(cls, window):
        return cls(
            id=window.id,
            workspace_id=window.workspace_id,
            label=window.label,
            start_time=window.start_time,
            end_time=window.end_time,
        )


class TaskDB(Base):
    """Database model for Task."""

    __tablename__ = "tasks"

    # Primary key
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Workspace association
    workspace_id = Column(String, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)

    # Basic fields
    title = Column(String, nullable=False)
    planning_memo = Column(String, nullable=True)
    is_urgent = Column(Boolean, nullable=False, default=False)
    estimated_minutes = Column(Integer, nullable=False, default=30)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from nowline.models.task import Task

        return Task(
            id=self.id,
            workspace_id=self.workspace_id,
            title=self.title,
            planning_memo=self.planning_memo,
            is_urgent=self.is_urgent,
            estimated_minutes=self.estimated_minutes,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        return cls(
            id=task.id,
            workspace_id=task.workspace_id,
            title=task.title,
            planning_memo=task.planning_memo,
            is_urgent=task.is_urgent,
            estimated_minutes=task.estimated_minutes,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TimeBlockDB(Base):
    """Database model for TimeBlock.

    UNPLUGGED placeholders are derived from the workspace's windows and never stored.
    """

    __tablename__ = "time_blocks"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    workspace_id = Column(String, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String, nullable=False)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=BlockStatus.WILL.value)
    review_memo = Column(String, nullable=True)
    is_urgent = Column(Boolean, nullable=False, default=False)
    is_continuation = Column(Boolean, nullable=False, default=False)
    last_action = Column(String, nullable=True)

    # Sequence position within the workspace-day ledger
    position = Column(Integer, nullable=False, default=0)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from nowline.models.time_block import TimeBlock

        return TimeBlock(
            id=self.id,
            task_id=self.task_id,
            workspace_id=self.workspace_id,
            title=self.title,
            start_time=self.start_time,
            end_time=self.end_time,
            status=value_to_enum(self.status, BlockStatus, BlockStatus.WILL),
            review_memo=self.review_memo,
            is_urgent=self.is_urgent,
            is_continuation=self.is_continuation,
            last_action=self.last_action,
        )

    @classmethod
    def from_pydantic(cls, block, position: int = 0):
        """Create database model from Pydantic model."""
        return cls(
            id=block.id,
            workspace_id=block.workspace_id,
            task_id=block.task_id,
            title=block.title,
            start_time=block.start_time,
            end_time=block.end_time,
            status=enum_to_value(block.status),
            review_memo=block.review_memo,
            is_urgent=block.is_urgent,
            is_continuation=block.is_continuation,
            last_action=block.last_action,
            position=position,
        )

    def update_from_pydantic(self, block, position: int) -> None:
        self.title = block.title
        self.start_time = block.start_time
        self.end_time = block.end_time
        self.status = enum_to_value(block.status)
        self.review_memo = block.review_memo
        self.is_urgent = block.is_urgent
        self.is_continuation = block.is_continuation
        self.last_action = block.last_action
        self.position = position


class AppliedRequestDB(Base):
    """Request ids of writes that were already applied (retries become no-ops)."""

    __tablename__ = "applied_requests"

    request_id = Column(String, primary_key=True)
    workspace_id = Column(String, nullable=True, index=True)
    operation = Column(String, nullable=False)
    applied_at = Column(DateTime, nullable=False, default=datetime.now)
