"""Scheduling algorithm for nowline.

Packs task minutes into WILL blocks after a cursor, carving out the workspace's
unplugged windows. Scheduling never fails for lack of room: it keeps extending
into the future until every minute is placed.
"""

import uuid
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from nowline.models.task import Task
from nowline.models.time_block import TimeBlock, BlockStatus
from nowline.models.constants import MINUTES_PER_DAY
from nowline.engine.errors import InvalidWindow
from nowline.engine.ledger import BlockLedger
from nowline.engine.timeutil import (
    Interval,
    ceil_to_minute,
    coverage_minutes,
    day_end,
    minutes_between,
    subtract_exclusions,
    window_spans,
)


def schedule(task: Task, after_cursor: datetime, windows: Iterable) -> List[TimeBlock]:
    """Schedule one task into WILL blocks.

    Args:
        task: Task to place (its estimated_minutes are placed exactly)
        after_cursor: Earliest time the first block may start
        windows: Unplugged windows to keep free

    Returns:
        Blocks in chronological order whose durations sum to the task's minutes.
        A zero-minute task yields an empty list.
    """
    return schedule_minutes(
        task_id=task.id,
        workspace_id=task.workspace_id,
        title=task.title,
        minutes=task.estimated_minutes,
        after_cursor=after_cursor,
        windows=windows,
        is_urgent=task.is_urgent,
    )


def schedule_minutes(
    task_id: Optional[str],
    workspace_id: str,
    title: str,
    minutes: int,
    after_cursor: datetime,
    windows: Iterable,
    is_urgent: bool = False,
    continuation: bool = False,
) -> List[TimeBlock]:
    """Schedule a raw number of minutes for a task.

    Starting at the cursor (rounded up to the minute), the candidate span is cut
    around every unplugged window it touches; each uncut run becomes one block
    and the leftover minutes resume after the window ends. A cursor inside a
    window is pushed to the window's end.

    Raises:
        InvalidWindow: If the windows cover the whole day (nothing could ever be placed)
    """
    if minutes <= 0:
        return []
    windows = list(windows)
    if windows and coverage_minutes(windows) >= MINUTES_PER_DAY:
        raise InvalidWindow("Unplugged windows cover the whole day")

    pieces: List[Interval] = []
    cursor = ceil_to_minute(after_cursor)
    remaining = minutes
    while remaining > 0:
        candidate_end = cursor + timedelta(minutes=remaining)
        spans = window_spans(windows, cursor.date(), candidate_end.date())
        for piece in subtract_exclusions((cursor, candidate_end), spans):
            remaining -= minutes_between(*piece)
            # Runs that touch across iterations form one block
            if pieces and pieces[-1][1] == piece[0]:
                pieces[-1] = (pieces[-1][0], piece[1])
            else:
                pieces.append(piece)
        cursor = candidate_end

    blocks: List[TimeBlock] = []
    for index, (start, end) in enumerate(pieces):
        blocks.append(
            TimeBlock(
                id=str(uuid.uuid4()),
                task_id=task_id,
                workspace_id=workspace_id,
                title=title,
                start_time=start,
                end_time=end,
                status=BlockStatus.WILL,
                is_urgent=is_urgent,
                is_continuation=continuation or index > 0,
            )
        )
    return blocks


def ledger_cursor(ledger: BlockLedger, now: datetime) -> datetime:
    """Earliest start for a newly scheduled task: after the last block, never before now."""
    last = ledger.last_end()
    if last is not None and last > now:
        return last
    return now


def fits_in_day(blocks: List[TimeBlock], day: date) -> bool:
    """Whether the blocks end by the midnight closing ``day``."""
    if not blocks:
        return True
    return blocks[-1].end_time <= day_end(day)


def retime(ledger: BlockLedger, now: datetime, windows: Iterable) -> List[str]:
    """Re-derive timestamps for the WILL blocks after the anchored prefix.

    Blocks are packed back-to-back in their sequence order, starting from the
    later of now, the end of the anchored/completed blocks and the earliest
    start among the blocks being placed. A block that would overlap an unplugged
    window is split around it; the extra pieces become continuation blocks.

    Args:
        ledger: Ledger to re-time in place
        now: Current wall-clock time
        windows: Unplugged windows to keep free

    Returns:
        IDs of blocks whose times changed or that were created by splitting
    """
    windows = list(windows)
    anchor = set(ledger.anchored_ids(now))
    to_place = [
        b for b in ledger.movable_blocks()
        if b.id not in anchor and b.status == BlockStatus.WILL
    ]
    if not to_place:
        return []

    cursor = max(now, min(b.start_time for b in to_place))
    for block in ledger.blocks:
        if block.id in anchor or block.status == BlockStatus.DONE:
            cursor = max(cursor, block.end_time)

    changed: List[str] = []
    for block in to_place:
        pieces = schedule_minutes(
            task_id=block.task_id,
            workspace_id=block.workspace_id,
            title=block.title,
            minutes=block.duration_minutes,
            after_cursor=cursor,
            windows=windows,
            is_urgent=block.is_urgent,
            continuation=True,
        )
        if not pieces:
            continue
        first = block.model_copy(
            update={"start_time": pieces[0].start_time, "end_time": pieces[0].end_time}
        )
        replacement = [first] + pieces[1:]
        if len(replacement) > 1 or first.start_time != block.start_time or first.end_time != block.end_time:
            ledger.replace(block.id, replacement)
            changed.extend(b.id for b in replacement)
        cursor = replacement[-1].end_time
    return changed
