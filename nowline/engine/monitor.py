"""Promotion monitor for nowline.

Each tick flags a NOW block whose end has passed as PENDING and, when nothing
is NOW or awaiting disposition, promotes the earliest due WILL block to NOW.
The monitor only flips statuses; it never creates or deletes blocks.
"""

import logging
import os
import threading
from datetime import datetime
from typing import Callable, Optional

from dotenv import load_dotenv

from nowline.models.time_block import TimeBlock, BlockStatus
from nowline.models.constants import DEFAULT_TICK_INTERVAL_SECONDS
from nowline.engine.ledger import BlockLedger

load_dotenv()

logger = logging.getLogger(__name__)

TICK_INTERVAL_SECONDS = float(os.getenv("TICK_INTERVAL_SECONDS", str(DEFAULT_TICK_INTERVAL_SECONDS)))


class TickResult:
    """What one monitor tick changed."""

    def __init__(self, flagged: Optional[TimeBlock] = None, promoted: Optional[TimeBlock] = None):
        # NOW block whose end passed; the caller must ask the user to dispose of it
        self.flagged = flagged
        self.promoted = promoted

    @property
    def changed(self) -> bool:
        return self.flagged is not None or self.promoted is not None


def flag_overdue(ledger: BlockLedger, now: datetime) -> Optional[TimeBlock]:
    """Mark the NOW block PENDING once its end has passed.

    Flagging clears any DELAY marker, so the block can be delayed again.
    """
    current = ledger.now_block()
    if current is None or current.end_time > now:
        return None
    ledger.set_status(current.id, BlockStatus.PENDING)
    current.last_action = None
    logger.info(f"Block {current.id} ran past its end; awaiting disposition")
    return current


def promote_due(ledger: BlockLedger, now: datetime) -> Optional[TimeBlock]:
    """Promote the earliest WILL block whose start has arrived.

    Nothing is promoted while a block is NOW or still PENDING.
    """
    if ledger.now_block() is not None or ledger.pending_blocks():
        return None
    due = [b for b in ledger.blocks if b.status == BlockStatus.WILL and b.start_time <= now]
    if not due:
        return None
    block = min(due, key=lambda b: b.start_time)
    ledger.set_status(block.id, BlockStatus.NOW)
    logger.info(f"Promoted block {block.id} to NOW")
    return block


def tick(ledger: BlockLedger, now: datetime) -> TickResult:
    """Run one monitor pass over the ledger (mutates it in place)."""
    flagged = flag_overdue(ledger, now)
    promoted = promote_due(ledger, now)
    return TickResult(flagged=flagged, promoted=promoted)


class PromotionTicker:
    """Background thread calling ``target.tick()`` every interval.

    The target (normally a TimelinePlanner) returns None when it dropped the
    tick because a mutation was in flight; dropped ticks are not retried.
    """

    def __init__(
        self,
        target,
        interval: Optional[float] = None,
        on_tick: Optional[Callable[[TickResult], None]] = None,
    ):
        self.target = target
        self.interval = interval if interval is not None else TICK_INTERVAL_SECONDS
        self.on_tick = on_tick
        self.dropped = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="nowline-ticker", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> Optional[TickResult]:
        """Tick the target once; returns None when the tick was dropped."""
        result = self.target.tick()
        if result is None:
            self.dropped += 1
            logger.debug("Tick dropped: ledger mutation in flight")
            return None
        if result.changed and self.on_tick is not None:
            self.on_tick(result)
        return result

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.run_once()
            except Exception as e:
                # The planner already reloaded its ledger; keep ticking
                logger.error(f"Tick failed: {type(e).__name__}: {str(e)}")
