"""Timeline scheduling and transition engine for nowline."""

from nowline.engine.errors import (
    EngineError,
    InvalidState,
    InvalidDuration,
    InvalidReorder,
    AlreadyResolved,
    NotFound,
    InvalidWindow,
    LedgerInvariantError,
    PersistenceFailure,
)
from nowline.engine.clock import Clock, SystemClock, FixedClock
from nowline.engine.ledger import BlockLedger, RemovalResult, unplugged_blocks
from nowline.engine.scheduler import schedule, schedule_minutes, retime
from nowline.engine.monitor import tick, TickResult, PromotionTicker
from nowline.engine.transitions import apply_transition, TransitionOutcome
from nowline.engine.planner import TimelinePlanner, workspace_lock

__all__ = [
    "EngineError",
    "InvalidState",
    "InvalidDuration",
    "InvalidReorder",
    "AlreadyResolved",
    "NotFound",
    "InvalidWindow",
    "LedgerInvariantError",
    "PersistenceFailure",
    "Clock",
    "SystemClock",
    "FixedClock",
    "BlockLedger",
    "RemovalResult",
    "unplugged_blocks",
    "schedule",
    "schedule_minutes",
    "retime",
    "tick",
    "TickResult",
    "PromotionTicker",
    "apply_transition",
    "TransitionOutcome",
    "TimelinePlanner",
    "workspace_lock",
]
