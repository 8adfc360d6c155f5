"""Workspace and UnpluggedWindow data models for nowline."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from nowline.models.constants import HHMM_FORMAT


def _check_hhmm(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    datetime.strptime(value, HHMM_FORMAT)
    return value


class UnpluggedWindow(BaseModel):
    """Daily exclusion interval the scheduler never places task time into."""

    id: str = Field(..., description="Unique window identifier")
    workspace_id: str = Field(..., description="Owning workspace")
    label: str = Field(..., description="Display label (e.g. 'Lunch')")
    start_time: str = Field(..., description="Window start, HH:mm")
    end_time: str = Field(..., description="Window end, HH:mm (earlier than start = runs past midnight)")

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_hhmm(cls, value: str) -> str:
        return _check_hhmm(value)


class UnpluggedWindowInput(BaseModel):
    """Window definition supplied when creating or editing a workspace."""

    label: str
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_hhmm(cls, value: str) -> str:
        return _check_hhmm(value)


class Workspace(BaseModel):
    """Workspace groups tasks and blocks and carries the scheduling config."""

    id: str = Field(..., description="Unique workspace identifier")
    name: str = Field(..., description="Workspace name")
    core_time_start: Optional[str] = Field(None, description="Advisory focus window start, HH:mm")
    core_time_end: Optional[str] = Field(None, description="Advisory focus window end, HH:mm")
    role_intro: Optional[str] = Field(None, description="Short description of the user's role")
    created_at: datetime = Field(..., description="Workspace creation timestamp")
    unplugged_windows: List[UnpluggedWindow] = Field(default_factory=list)

    @field_validator("core_time_start", "core_time_end")
    @classmethod
    def _valid_core_time(cls, value: Optional[str]) -> Optional[str]:
        return _check_hhmm(value)
