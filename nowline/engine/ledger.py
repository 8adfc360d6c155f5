"""Block ledger for nowline.

The ledger is the ordered block sequence of one workspace-day. Sequence order
is the order the user sees; for WILL/NOW blocks it matches start-time order
except for the short window between a reorder and the re-time that follows it.
UNPLUGGED blocks are never stored here; they are projected from the
workspace's windows on demand.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from nowline.models.time_block import TimeBlock, BlockStatus
from nowline.models.constants import UNPLUGGED_ID_PREFIX
from nowline.engine.errors import (
    InvalidDuration,
    InvalidReorder,
    InvalidState,
    LedgerInvariantError,
    NotFound,
)
from nowline.engine.timeutil import day_end, day_start, window_bounds

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (BlockStatus.WILL, BlockStatus.NOW)
ACTIONABLE_STATUSES = (BlockStatus.NOW, BlockStatus.PENDING)
IMMOVABLE_STATUSES = (BlockStatus.DONE, BlockStatus.UNPLUGGED)


class RemovalResult:
    """Result of removing a block back to the inbox."""

    def __init__(self, block: Optional[TimeBlock], task_returned: bool):
        # None when a replayed request removed nothing
        self.block = block
        self.task_id = block.task_id if block is not None else None
        # True once the task has no blocks left on the timeline
        self.task_returned = task_returned


def unplugged_blocks(windows: Iterable, workspace_id: str, day: date) -> List[TimeBlock]:
    """Project daily unplugged windows onto a day as read-only UNPLUGGED blocks.

    Overnight windows that started the previous evening show up too.
    """
    windows = list(windows)
    lower = day_start(day)
    upper = day_end(day)
    blocks: List[TimeBlock] = []
    for anchor in (day - timedelta(days=1), day):
        for window in windows:
            bounds = window_bounds(window, anchor)
            if bounds is None:
                continue
            start, end = bounds
            if end <= lower or start >= upper:
                continue
            blocks.append(
                TimeBlock(
                    id=f"{UNPLUGGED_ID_PREFIX}:{window.id}:{anchor.isoformat()}",
                    task_id=None,
                    workspace_id=workspace_id,
                    title=window.label,
                    start_time=start,
                    end_time=end,
                    status=BlockStatus.UNPLUGGED,
                )
            )
    blocks.sort(key=lambda b: b.start_time)
    return blocks


class BlockLedger:
    """Ordered block sequence for one workspace-day."""

    def __init__(self, workspace_id: str, day: date, blocks: Optional[Iterable[TimeBlock]] = None):
        self.workspace_id = workspace_id
        self.day = day
        self._blocks: List[TimeBlock] = [
            b for b in (blocks or []) if b.status != BlockStatus.UNPLUGGED
        ]
        self._renumber()

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[TimeBlock]:
        return iter(list(self._blocks))

    @property
    def blocks(self) -> List[TimeBlock]:
        return list(self._blocks)

    def copy(self) -> "BlockLedger":
        """Independent copy (blocks are copied, so mutations do not leak back)."""
        return BlockLedger(self.workspace_id, self.day, [b.model_copy() for b in self._blocks])

    # ------------------------------------------------------------------ lookups

    def get(self, block_id: str) -> TimeBlock:
        for block in self._blocks:
            if block.id == block_id:
                return block
        raise NotFound(f"Block {block_id} not found", block_id=block_id)

    def index_of(self, block_id: str) -> int:
        for index, block in enumerate(self._blocks):
            if block.id == block_id:
                return index
        raise NotFound(f"Block {block_id} not found", block_id=block_id)

    def now_block(self) -> Optional[TimeBlock]:
        for block in self._blocks:
            if block.status == BlockStatus.NOW:
                return block
        return None

    def pending_blocks(self) -> List[TimeBlock]:
        return [b for b in self._blocks if b.status == BlockStatus.PENDING]

    def blocks_for_task(self, task_id: str) -> List[TimeBlock]:
        return [b for b in self._blocks if b.task_id == task_id]

    def movable_blocks(self) -> List[TimeBlock]:
        """Blocks the user may reorder (everything except DONE), in sequence order."""
        return [b for b in self._blocks if b.status not in IMMOVABLE_STATUSES]

    def anchored_ids(self, now: datetime) -> List[str]:
        """Leading movable blocks that a reorder must leave in place.

        With a NOW block this is the NOW block and everything before it.
        Without one it is the run of blocks that already started (or are
        awaiting disposition) at ``now``.
        """
        movable = self.movable_blocks()
        for index, block in enumerate(movable):
            if block.status == BlockStatus.NOW:
                return [b.id for b in movable[: index + 1]]
        anchor: List[str] = []
        for block in movable:
            if block.status == BlockStatus.PENDING or block.start_time < now:
                anchor.append(block.id)
            else:
                break
        return anchor

    def last_end(self) -> Optional[datetime]:
        if not self._blocks:
            return None
        return max(b.end_time for b in self._blocks)

    def completed_minutes(self) -> int:
        return sum(b.duration_minutes for b in self._blocks if b.status == BlockStatus.DONE)

    def timeline(self, windows: Iterable = ()) -> List[TimeBlock]:
        """Blocks merged with UNPLUGGED placeholders, ordered by start time."""
        merged = self.blocks + unplugged_blocks(windows, self.workspace_id, self.day)
        return sorted(merged, key=lambda b: b.start_time)

    # ---------------------------------------------------------------- mutations

    def insert(self, blocks: Iterable[TimeBlock]) -> None:
        """Insert new WILL blocks at the position matching their start time."""
        for block in sorted(blocks, key=lambda b: b.start_time):
            if block.status != BlockStatus.WILL:
                raise InvalidState(f"Only WILL blocks can be inserted, got {block.status}", block_id=block.id)
            position = len(self._blocks)
            for index, existing in enumerate(self._blocks):
                if existing.status in ACTIVE_STATUSES and existing.start_time > block.start_time:
                    position = index
                    break
            self._blocks.insert(position, block)
        self._renumber()

    def insert_at(self, index: int, blocks: Iterable[TimeBlock]) -> None:
        """Insert blocks at a sequence position, keeping their given order."""
        for offset, block in enumerate(blocks):
            self._blocks.insert(index + offset, block)
        self._renumber()

    def remove_to_inbox(self, block_id: str) -> RemovalResult:
        """Take one block off the timeline.

        The owning task only returns to the inbox once all of its blocks are gone.
        """
        block = self.get(block_id)
        if block.status in IMMOVABLE_STATUSES:
            raise InvalidState(f"Block {block_id} is {block.status} and cannot return to the inbox", block_id=block_id)
        self._blocks.remove(block)
        self._renumber()
        remaining = self.blocks_for_task(block.task_id) if block.task_id else []
        return RemovalResult(block, task_returned=not remaining)

    def remove_task(self, task_id: str) -> List[TimeBlock]:
        removed = self.blocks_for_task(task_id)
        self._blocks = [b for b in self._blocks if b.task_id != task_id]
        self._renumber()
        return removed

    def reorder(self, new_order: List[str], now: datetime) -> None:
        """Apply a full reordering of the movable blocks without re-timing them."""
        movable_ids = [b.id for b in self.movable_blocks()]
        done_ids = {b.id for b in self._blocks if b.status == BlockStatus.DONE}

        for block_id in new_order:
            if block_id in done_ids or block_id.startswith(UNPLUGGED_ID_PREFIX):
                raise InvalidReorder(f"Block {block_id} cannot be moved", block_id=block_id)
        if len(new_order) != len(set(new_order)):
            raise InvalidReorder("Reorder contains duplicate block ids")
        if set(new_order) != set(movable_ids):
            raise InvalidReorder("Reorder must list every movable block exactly once")

        anchor = self.anchored_ids(now)
        if new_order[: len(anchor)] != anchor:
            raise InvalidReorder("Blocks cannot be moved ahead of the current block or into the past")

        by_id: Dict[str, TimeBlock] = {b.id: b for b in self._blocks}
        ordered = iter(new_order)
        self._blocks = [
            b if b.status == BlockStatus.DONE else by_id[next(ordered)]
            for b in self._blocks
        ]
        self._renumber()

    def split_at(
        self,
        block_id: str,
        elapsed_minutes: int,
        prefix_status: BlockStatus = BlockStatus.DONE,
    ) -> Tuple[TimeBlock, TimeBlock]:
        """Split an active block into a prefix and a continuation residual.

        The prefix keeps the block id and ends ``elapsed_minutes`` after the
        start. The residual covers the remaining scheduled minutes as a new WILL
        block placed right after the prefix.
        """
        block = self.get(block_id)
        if block.status not in ACTIONABLE_STATUSES:
            raise InvalidState(f"Block {block_id} is {block.status}; only NOW or PENDING blocks can be split", block_id=block_id)
        total = block.duration_minutes
        if elapsed_minutes < 1 or elapsed_minutes >= total:
            raise InvalidDuration(
                f"Cannot split a {total}-minute block after {elapsed_minutes} minutes", block_id=block_id
            )

        cut = block.start_time + timedelta(minutes=elapsed_minutes)
        residual = TimeBlock(
            id=str(uuid.uuid4()),
            task_id=block.task_id,
            workspace_id=block.workspace_id,
            title=block.title,
            start_time=cut,
            end_time=block.end_time,
            status=BlockStatus.WILL,
            is_urgent=block.is_urgent,
            is_continuation=True,
        )
        block.end_time = cut
        block.status = prefix_status
        self._blocks.insert(self.index_of(block_id) + 1, residual)
        self._renumber()
        logger.debug(f"Split block {block_id} after {elapsed_minutes} min, residual {residual.id}")
        return block, residual

    def replace(self, block_id: str, blocks: List[TimeBlock]) -> None:
        """Replace one block with one or more blocks at the same sequence position."""
        index = self.index_of(block_id)
        self._blocks[index:index + 1] = blocks
        self._renumber()

    def set_status(self, block_id: str, status: BlockStatus) -> TimeBlock:
        block = self.get(block_id)
        if block.status == BlockStatus.UNPLUGGED or status == BlockStatus.UNPLUGGED:
            raise InvalidState("Unplugged blocks never transition", block_id=block_id)
        block.status = status
        return block

    def shift_block(self, block_id: str, minutes: int) -> TimeBlock:
        block = self.get(block_id)
        delta = timedelta(minutes=minutes)
        block.start_time = block.start_time + delta
        block.end_time = block.end_time + delta
        return block

    def shift_following(self, block_id: str, minutes: Union[int, timedelta]) -> List[str]:
        """Shift every WILL block after ``block_id`` in sequence by ``minutes``.

        ``minutes`` may also be a timedelta (completion shifts are not always whole minutes).
        """
        delta = minutes if isinstance(minutes, timedelta) else timedelta(minutes=minutes)
        if not delta:
            return []
        shifted: List[str] = []
        for block in self._blocks[self.index_of(block_id) + 1:]:
            if block.status == BlockStatus.WILL:
                block.start_time = block.start_time + delta
                block.end_time = block.end_time + delta
                shifted.append(block.id)
        return shifted

    def resolve_overlaps(self) -> List[str]:
        """Push WILL blocks forward until none starts before its predecessor ends."""
        shifted: List[str] = []
        prev_end: Optional[datetime] = None
        for block in self._blocks:
            if block.status == BlockStatus.WILL and prev_end is not None and block.start_time < prev_end:
                delta = prev_end - block.start_time
                block.start_time = block.start_time + delta
                block.end_time = block.end_time + delta
                shifted.append(block.id)
            if prev_end is None or block.end_time > prev_end:
                prev_end = block.end_time
        return shifted

    # --------------------------------------------------------------- invariants

    def validate(self) -> None:
        """Check the ledger invariants, raising LedgerInvariantError on the first violation."""
        now_blocks = [b for b in self._blocks if b.status == BlockStatus.NOW]
        if len(now_blocks) > 1:
            raise LedgerInvariantError(f"{len(now_blocks)} blocks are NOW")

        for block in self._blocks:
            if block.end_time <= block.start_time:
                raise LedgerInvariantError(f"Block {block.id} does not end after it starts", block_id=block.id)

        active = [b for b in self._blocks if b.status in ACTIVE_STATUSES]
        for prev, nxt in zip(active, active[1:]):
            if nxt.start_time < prev.end_time:
                raise LedgerInvariantError(
                    f"Block {nxt.id} starts before block {prev.id} ends", block_id=nxt.id
                )

        last_start: Dict[str, datetime] = {}
        for block in self._blocks:
            if block.task_id is None:
                continue
            previous = last_start.get(block.task_id)
            if previous is not None and block.start_time < previous:
                raise LedgerInvariantError(
                    f"Blocks of task {block.task_id} are out of order", block_id=block.id
                )
            last_start[block.task_id] = block.start_time

    def _renumber(self) -> None:
        groups: Dict[str, List[TimeBlock]] = {}
        for block in self._blocks:
            if block.task_id is not None:
                groups.setdefault(block.task_id, []).append(block)
        for group in groups.values():
            for index, block in enumerate(group):
                block.split_index = index
                block.split_total = len(group)
