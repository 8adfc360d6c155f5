"""Transition actions for nowline.

A transition disposes of the current NOW or PENDING block. The set of actions is
closed: every action is one of the variants below, discriminated by ``kind``.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field


class TransitionKind(str, Enum):
    """Transition kind enumeration."""
    COMPLETE_ON_TIME = "COMPLETE_ON_TIME"
    COMPLETE_NOW = "COMPLETE_NOW"
    COMPLETE_AGO = "COMPLETE_AGO"
    DELAY = "DELAY"


class CompleteOnTime(BaseModel):
    """Finish at the originally scheduled end."""
    kind: Literal["COMPLETE_ON_TIME"] = "COMPLETE_ON_TIME"

    @property
    def extra_minutes(self) -> Optional[int]:
        return None


class CompleteNow(BaseModel):
    """Finish at the current wall-clock time."""
    kind: Literal["COMPLETE_NOW"] = "COMPLETE_NOW"

    @property
    def extra_minutes(self) -> Optional[int]:
        return None


class CompleteAgo(BaseModel):
    """Finish ``minutes`` before the current wall-clock time."""
    kind: Literal["COMPLETE_AGO"] = "COMPLETE_AGO"
    minutes: int = Field(..., description="Minutes before now the work actually ended")

    @property
    def extra_minutes(self) -> Optional[int]:
        return self.minutes


class Delay(BaseModel):
    """Push the block and everything after it ``minutes`` later."""
    kind: Literal["DELAY"] = "DELAY"
    minutes: int = Field(..., description="Minutes to push the block forward")

    @property
    def extra_minutes(self) -> Optional[int]:
        return self.minutes


TransitionAction = Annotated[
    Union[CompleteOnTime, CompleteNow, CompleteAgo, Delay],
    Field(discriminator="kind"),
]


def action_from_kind(kind: str, extra_minutes: Optional[int] = None):
    """Build an action from a kind name and optional minutes (for string-keyed callers).
    
    Raises:
        ValueError: If the kind is unknown or a required minute value is missing
    """
    kind = TransitionKind(kind)
    if kind == TransitionKind.COMPLETE_ON_TIME:
        return CompleteOnTime()
    if kind == TransitionKind.COMPLETE_NOW:
        return CompleteNow()
    if extra_minutes is None:
        raise ValueError(f"{kind.value} requires a minute value")
    if kind == TransitionKind.COMPLETE_AGO:
        return CompleteAgo(minutes=extra_minutes)
    return Delay(minutes=extra_minutes)
