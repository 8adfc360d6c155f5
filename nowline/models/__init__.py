"""Data models for nowline."""

from nowline.models.task import Task, TaskInput
from nowline.models.time_block import TimeBlock, BlockStatus, SplitPosition
from nowline.models.workspace import Workspace, UnpluggedWindow, UnpluggedWindowInput
from nowline.models.transition import (
    TransitionKind,
    TransitionAction,
    CompleteOnTime,
    CompleteNow,
    CompleteAgo,
    Delay,
    action_from_kind,
)

__all__ = [
    "Task",
    "TaskInput",
    "TimeBlock",
    "BlockStatus",
    "SplitPosition",
    "Workspace",
    "UnpluggedWindow",
    "UnpluggedWindowInput",
    "TransitionKind",
    "TransitionAction",
    "CompleteOnTime",
    "CompleteNow",
    "CompleteAgo",
    "Delay",
    "action_from_kind",
]
