"""Transition state machine for nowline.

Applies one of the closed set of transition actions to the NOW or PENDING
block, cascading time shifts to the WILL blocks that follow it.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from nowline.models.time_block import TimeBlock, BlockStatus
from nowline.models.transition import (
    CompleteAgo,
    CompleteNow,
    CompleteOnTime,
    Delay,
    TransitionKind,
)
from nowline.engine.errors import AlreadyResolved, InvalidDuration, InvalidState
from nowline.engine.ledger import ACTIONABLE_STATUSES, BlockLedger
from nowline.engine.monitor import promote_due

logger = logging.getLogger(__name__)


class TransitionOutcome:
    """Result of applying a transition action."""

    def __init__(
        self,
        block: TimeBlock,
        action,
        shifted_ids: List[str],
        promoted: Optional[TimeBlock] = None,
    ):
        self.block = block
        self.action = action
        self.shifted_ids = shifted_ids
        self.promoted = promoted


def _check_actionable(block: TimeBlock, action) -> None:
    # The DELAY marker stays on the block until the monitor flags it PENDING again
    delayed = block.last_action == TransitionKind.DELAY.value
    if block.status in ACTIONABLE_STATUSES:
        if delayed and isinstance(action, Delay):
            raise AlreadyResolved(f"Block {block.id} was already delayed", block_id=block.id)
        return
    if block.status == BlockStatus.DONE:
        raise AlreadyResolved(f"Block {block.id} is already done", block_id=block.id)
    if block.status == BlockStatus.WILL and delayed:
        raise AlreadyResolved(f"Block {block.id} was already delayed", block_id=block.id)
    raise InvalidState(
        f"Block {block.id} is {block.status}; only NOW or PENDING blocks can transition",
        block_id=block.id,
    )


def _complete(ledger: BlockLedger, block: TimeBlock, end: datetime, kind: TransitionKind) -> List[str]:
    if end <= block.start_time:
        raise InvalidDuration(
            f"Block {block.id} would end at or before its start", block_id=block.id
        )
    scheduled_end = block.end_time
    block.end_time = end
    block.status = BlockStatus.DONE
    block.last_action = kind.value
    # Early finishes pull later blocks in, late ones push them out
    return ledger.shift_following(block.id, end - scheduled_end)


def apply_transition(
    ledger: BlockLedger,
    block_id: str,
    action,
    now: datetime,
    review_memo: Optional[str] = None,
) -> TransitionOutcome:
    """Apply a transition action to a block (mutates the ledger in place).

    Args:
        ledger: Ledger holding the block
        block_id: ID of the NOW or PENDING block to act on
        action: One of CompleteOnTime, CompleteNow, CompleteAgo, Delay
        now: Current wall-clock time
        review_memo: Optional memo stored on the block

    Returns:
        TransitionOutcome with the acted-on block, shifted block ids and any promoted block

    Raises:
        NotFound: If the block is not in the ledger
        AlreadyResolved: If the block was already completed or delayed
        InvalidState: If the block is not NOW or PENDING
        InvalidDuration: If the minute value is out of range
    """
    block = ledger.get(block_id)
    _check_actionable(block, action)

    if isinstance(action, CompleteOnTime):
        block.status = BlockStatus.DONE
        block.last_action = TransitionKind.COMPLETE_ON_TIME.value
        shifted: List[str] = []
    elif isinstance(action, CompleteNow):
        shifted = _complete(ledger, block, now, TransitionKind.COMPLETE_NOW)
    elif isinstance(action, CompleteAgo):
        if action.minutes < 0:
            raise InvalidDuration(f"Cannot complete {action.minutes} minutes ago", block_id=block_id)
        shifted = _complete(
            ledger, block, now - timedelta(minutes=action.minutes), TransitionKind.COMPLETE_AGO
        )
    elif isinstance(action, Delay):
        if action.minutes <= 0:
            raise InvalidDuration(f"Delay must be positive, got {action.minutes}", block_id=block_id)
        ledger.shift_block(block_id, action.minutes)
        block.status = BlockStatus.WILL
        block.last_action = TransitionKind.DELAY.value
        shifted = ledger.shift_following(block_id, action.minutes)
    else:
        raise TypeError(f"Unknown transition action: {action!r}")

    if review_memo is not None:
        block.review_memo = review_memo

    promoted = promote_due(ledger, now)
    ledger.validate()
    logger.info(f"Block {block_id} -> {block.status} via {block.last_action}")
    return TransitionOutcome(block, action, shifted, promoted)
