"""Timeline planner for nowline.

The planner is the command interface over one workspace-day. It holds the
authoritative ledger in memory, applies one mutation at a time under the
workspace lock, hands the resulting ledger to the store for durability and
keeps it only once the store accepted it. Engine errors leave the last
known-good ledger in place; a PersistenceFailure triggers a full reload.
"""

import logging
import threading
import uuid
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from nowline.models.task import Task, TaskInput
from nowline.models.time_block import TimeBlock, BlockStatus
from nowline.models.workspace import UnpluggedWindow, UnpluggedWindowInput
from nowline.models.task_factory import create_task_from_input, effective_duration
from nowline.models.constants import MINUTES_PER_DAY
from nowline.engine.clock import Clock, SystemClock
from nowline.engine.errors import InvalidState, InvalidWindow, NotFound, PersistenceFailure
from nowline.engine.ledger import BlockLedger, RemovalResult
from nowline.engine.monitor import TickResult, promote_due, tick as monitor_tick
from nowline.engine.scheduler import fits_in_day, ledger_cursor, retime, schedule_minutes
from nowline.engine.timeutil import coverage_minutes, day_start, minutes_between
from nowline.engine.transitions import TransitionOutcome, apply_transition

logger = logging.getLogger(__name__)

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def workspace_lock(workspace_id: str) -> threading.Lock:
    """Process-wide single-writer lock for a workspace."""
    with _locks_guard:
        lock = _locks.get(workspace_id)
        if lock is None:
            lock = threading.Lock()
            _locks[workspace_id] = lock
        return lock


def _request_id(request_id: Optional[str]) -> str:
    return request_id or str(uuid.uuid4())


class TimelinePlanner:
    """Command interface for one workspace-day."""

    def __init__(
        self,
        store,
        workspace_id: str,
        clock: Optional[Clock] = None,
        day: Optional[date] = None,
        lock: Optional[threading.Lock] = None,
    ):
        """Load the workspace's ledger.

        Args:
            store: Persistence collaborator (see nowline.database.timeline_store.TimelineStore)
            workspace_id: Workspace to plan
            clock: Time source (system clock by default)
            day: Day to plan; follows the clock's date when omitted
            lock: Writer lock (the process-wide workspace lock by default)

        Raises:
            NotFound: If the workspace does not exist
        """
        self.store = store
        self.workspace_id = workspace_id
        self.clock = clock or SystemClock()
        self._fixed_day = day
        self._lock = lock or workspace_lock(workspace_id)
        self.day: date = day or self.clock.now().date()
        self.ledger = BlockLedger(workspace_id, self.day)
        self.windows: List[UnpluggedWindow] = []
        self.workspace = store.load_workspace(workspace_id)
        self._reload()

    # ------------------------------------------------------------------ loading

    def refresh(self) -> None:
        """Reload the ledger and unplugged windows from the store."""
        with self._lock:
            self._reload()

    def _reload(self) -> None:
        if self._fixed_day is None:
            self.day = self.clock.now().date()
        self.windows = self.store.load_unplugged_windows(self.workspace_id)
        blocks = self.store.load_ledger(self.workspace_id, self.day)
        self.ledger = BlockLedger(self.workspace_id, self.day, blocks)
        logger.debug(f"Loaded {len(self.ledger)} blocks for workspace {self.workspace_id} on {self.day}")

    def _commit(self, ledger: BlockLedger, persist: Callable[[], Any]) -> bool:
        """Persist a mutated ledger copy and adopt it as the authoritative ledger.

        Returns:
            False if the store had already applied the request; the stored
            ledger is reloaded instead of adopting the copy
        """
        ledger.validate()
        if self._persist(persist) is False:
            logger.info(f"Write already applied for workspace {self.workspace_id}; reloading ledger")
            self._reload()
            return False
        self.ledger = ledger
        return True

    def _replayed(self, request_id: str) -> bool:
        """Reload the stored state when a request id was already applied."""
        if not self.store.request_applied(request_id):
            return False
        logger.info(f"Request {request_id} already applied; returning stored state")
        self._reload()
        return True

    def _persist(self, persist: Callable[[], Any]) -> Any:
        try:
            return persist()
        except PersistenceFailure:
            logger.warning(f"Persistence failed for workspace {self.workspace_id}; reloading ledger")
            self._reload()
            raise

    def _now(self) -> datetime:
        return self.clock.now()

    def _cursor(self, ledger: BlockLedger, now: datetime) -> datetime:
        # Planning a future day starts at its midnight, not at the current time
        return ledger_cursor(ledger, max(now, day_start(self.day)))

    # -------------------------------------------------------------------- reads

    def timeline(self) -> List[TimeBlock]:
        """Ledger blocks merged with UNPLUGGED placeholders, sorted by start."""
        return self.ledger.timeline(self.windows)

    def inbox(self) -> List[Task]:
        return self.store.load_inbox(self.workspace_id)

    def completed_minutes(self) -> int:
        return self.ledger.completed_minutes()

    def active_dates(self) -> List[date]:
        return self.store.load_active_dates(self.workspace_id)

    # ----------------------------------------------------------------- commands

    def add_task(self, task_input: TaskInput, request_id: Optional[str] = None) -> Tuple[Task, List[TimeBlock]]:
        """Create a task and place it according to its flags.

        Inbox-only input stays in the inbox, urgent input interrupts the
        current block, anything else is moved to the timeline.

        Returns:
            The created task and the blocks scheduled for it (empty when it stayed in the inbox)
        """
        request_id = _request_id(request_id)
        # A retried request maps onto the same task id
        task_id = str(uuid.uuid5(uuid.NAMESPACE_URL, f"nowline:task:{request_id}"))
        with self._lock:
            task = create_task_from_input(task_input, self.workspace_id, task_id=task_id, now=self._now())
            created = self._persist(lambda: self.store.create_task(task, request_id=f"{request_id}:create"))
            if created:
                logger.info(f"Created task {task.id} in workspace {self.workspace_id}")
            else:
                task = self._load_task(task_id)
                existing = self.ledger.blocks_for_task(task_id)
                if existing:
                    return task, existing
            if task_input.is_inbox:
                return task, []
            if task.is_urgent:
                return task, self._insert_urgent(task, f"{request_id}:urgent")
            return task, self._move_to_timeline(task, f"{request_id}:schedule")

    def move_to_timeline(self, task_id: str, request_id: Optional[str] = None) -> List[TimeBlock]:
        """Schedule an inbox task after the last block.

        Returns:
            The new blocks, or an empty list when the task would run past
            midnight (it then stays in the inbox)

        Raises:
            NotFound: If the task does not exist
            InvalidState: If the task already has blocks on the timeline
        """
        request_id = _request_id(request_id)
        with self._lock:
            return self._move_to_timeline(self._load_task(task_id), request_id)

    def _load_task(self, task_id: str) -> Task:
        task = self.store.load_task(task_id)
        if task.workspace_id != self.workspace_id:
            raise NotFound(f"Task {task_id} not found in workspace {self.workspace_id}")
        return task

    def _move_to_timeline(self, task: Task, request_id: str) -> List[TimeBlock]:
        if self._replayed(request_id):
            return self.ledger.blocks_for_task(task.id)
        if self.ledger.blocks_for_task(task.id):
            raise InvalidState(f"Task {task.id} is already on the timeline")
        now = self._now()
        ledger = self.ledger.copy()
        blocks = self._schedule_task(ledger, task, now)
        if not fits_in_day(blocks, self.day):
            logger.info(f"Task {task.id} would run past midnight; keeping it in the inbox")
            return []
        ledger.insert(blocks)
        promote_due(ledger, now)
        committed = self._commit(
            ledger,
            lambda: self.store.persist_move_to_timeline(
                task.id, self.workspace_id, ledger.blocks, request_id, day=self.day
            ),
        )
        return blocks if committed else self.ledger.blocks_for_task(task.id)

    def move_all_to_timeline(self, request_id: Optional[str] = None) -> List[TimeBlock]:
        """Move inbox tasks to the timeline in inbox order.

        Stops at the first task that would run past midnight; it and every
        task after it stay in the inbox.
        """
        request_id = _request_id(request_id)
        with self._lock:
            if self._replayed(request_id):
                return []
            now = self._now()
            ledger = self.ledger.copy()
            scheduled: List[TimeBlock] = []
            for task in self.store.load_inbox(self.workspace_id):
                blocks = self._schedule_task(ledger, task, now)
                if not fits_in_day(blocks, self.day):
                    logger.info(f"Task {task.id} would run past midnight; stopping")
                    break
                ledger.insert(blocks)
                scheduled.extend(blocks)
            if not scheduled:
                return []
            promote_due(ledger, now)
            committed = self._commit(
                ledger,
                lambda: self.store.persist_move_all_to_timeline(
                    self.workspace_id, ledger.blocks, request_id, day=self.day
                ),
            )
            return scheduled if committed else []

    def _schedule_task(self, ledger: BlockLedger, task: Task, now: datetime) -> List[TimeBlock]:
        return schedule_minutes(
            task_id=task.id,
            workspace_id=self.workspace_id,
            title=task.title,
            minutes=effective_duration(task),
            after_cursor=self._cursor(ledger, now),
            windows=self.windows,
            is_urgent=task.is_urgent,
        )

    def move_to_inbox(self, block_id: str, request_id: Optional[str] = None) -> RemovalResult:
        """Take one block off the timeline (its task returns to the inbox once blockless)."""
        request_id = _request_id(request_id)
        with self._lock:
            if self._replayed(request_id):
                return RemovalResult(None, task_returned=False)
            ledger = self.ledger.copy()
            result = ledger.remove_to_inbox(block_id)
            promote_due(ledger, self._now())
            if not self._commit(
                ledger,
                lambda: self.store.persist_move_to_inbox(block_id, ledger.blocks, request_id, day=self.day),
            ):
                return RemovalResult(None, task_returned=False)
            logger.info(f"Moved block {block_id} to the inbox")
            return result

    def delete_task(self, task_id: str, request_id: Optional[str] = None) -> List[TimeBlock]:
        """Delete a task and all of its blocks.

        Returns:
            The blocks removed from this day's ledger
        """
        request_id = _request_id(request_id)
        with self._lock:
            if self._replayed(f"{request_id}:delete"):
                return []
            self._load_task(task_id)
            ledger = self.ledger.copy()
            removed = ledger.remove_task(task_id)
            promoted = promote_due(ledger, self._now())

            def persist():
                deleted = self.store.delete_task(task_id, request_id=f"{request_id}:delete")
                if deleted and promoted is not None:
                    self.store.persist_status_change(
                        promoted.id, BlockStatus.NOW, request_id=f"{request_id}:promote"
                    )
                return deleted

            if not self._commit(ledger, persist):
                return []
            logger.info(f"Deleted task {task_id} ({len(removed)} blocks)")
            return removed

    def reorder(self, block_ids: List[str], request_id: Optional[str] = None) -> List[TimeBlock]:
        """Apply a new order to the movable blocks and re-time them.

        Raises:
            InvalidReorder: If the order is rejected; the previous order stays in place
        """
        request_id = _request_id(request_id)
        with self._lock:
            if self._replayed(request_id):
                return self.timeline()
            now = self._now()
            ledger = self.ledger.copy()
            ledger.reorder(block_ids, now)
            retime(ledger, now, self.windows)
            promote_due(ledger, now)
            self._commit(
                ledger,
                lambda: self.store.persist_reorder(
                    self.workspace_id, block_ids, ledger.blocks, request_id, day=self.day
                ),
            )
            return self.timeline()

    def transition(
        self,
        block_id: str,
        action,
        review_memo: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> TransitionOutcome:
        """Dispose of the NOW or PENDING block with a transition action."""
        request_id = _request_id(request_id)
        with self._lock:
            if self._replayed(request_id):
                return TransitionOutcome(self.ledger.get(block_id), action, [])
            ledger = self.ledger.copy()
            outcome = apply_transition(ledger, block_id, action, self._now(), review_memo=review_memo)
            committed = self._commit(
                ledger,
                lambda: self.store.persist_transition(
                    block_id,
                    action.kind,
                    ledger.blocks,
                    action.extra_minutes,
                    review_memo,
                    request_id,
                    day=self.day,
                ),
            )
            if not committed:
                return TransitionOutcome(self.ledger.get(block_id), action, [])
            return outcome

    def tick(self, request_id: Optional[str] = None) -> Optional[TickResult]:
        """Run one monitor pass.

        Returns:
            The tick result, or None when the tick was dropped because a
            command holds the workspace lock
        """
        if not self._lock.acquire(blocking=False):
            logger.warning(f"Tick dropped for workspace {self.workspace_id}: mutation in flight")
            return None
        try:
            now = self._now()
            if now.date() != self.day:
                if self._fixed_day is not None:
                    return TickResult()
                self._reload()
            request_id = _request_id(request_id)
            ledger = self.ledger.copy()
            result = monitor_tick(ledger, now)
            if not result.changed:
                return result

            def persist():
                for block in (result.flagged, result.promoted):
                    if block is not None:
                        self.store.persist_status_change(
                            block.id, block.status, request_id=f"{request_id}:{block.id}"
                        )
                return True

            self._commit(ledger, persist)
            return result
        finally:
            self._lock.release()

    def insert_urgent(self, task: Task, request_id: Optional[str] = None) -> List[TimeBlock]:
        """Interrupt the current block with an urgent task.

        A running NOW block is split at now: the elapsed part is done and the
        rest becomes a continuation that follows the urgent task. Later blocks
        are pushed forward until nothing overlaps.

        Returns:
            The urgent task's blocks
        """
        request_id = _request_id(request_id)
        with self._lock:
            return self._insert_urgent(task, request_id)

    def _insert_urgent(self, task: Task, request_id: str) -> List[TimeBlock]:
        if self._replayed(request_id):
            return self.ledger.blocks_for_task(task.id)
        now = self._now()
        ledger = self.ledger.copy()
        residual: Optional[TimeBlock] = None
        insert_index: Optional[int] = None

        current = ledger.now_block()
        if current is not None:
            elapsed = minutes_between(current.start_time, now)
            if elapsed >= current.duration_minutes:
                flagged = ledger.set_status(current.id, BlockStatus.PENDING)
                flagged.last_action = None
                insert_index = ledger.index_of(current.id) + 1
            elif elapsed >= 1:
                _, residual = ledger.split_at(current.id, elapsed)
            else:
                residual = ledger.set_status(current.id, BlockStatus.WILL)

        urgent = schedule_minutes(
            task_id=task.id,
            workspace_id=self.workspace_id,
            title=task.title,
            minutes=effective_duration(task),
            after_cursor=max(now, day_start(self.day)),
            windows=self.windows,
            is_urgent=True,
        )

        if residual is not None:
            pieces = schedule_minutes(
                task_id=residual.task_id,
                workspace_id=residual.workspace_id,
                title=residual.title,
                minutes=residual.duration_minutes,
                after_cursor=urgent[-1].end_time,
                windows=self.windows,
                is_urgent=residual.is_urgent,
                continuation=residual.is_continuation,
            )
            first = residual.model_copy(
                update={"start_time": pieces[0].start_time, "end_time": pieces[0].end_time}
            )
            ledger.replace(residual.id, [first] + pieces[1:])
            insert_index = ledger.index_of(residual.id)
        elif insert_index is None:
            insert_index = len(ledger)
            for index, block in enumerate(ledger.blocks):
                if block.status == BlockStatus.WILL and block.end_time > urgent[0].start_time:
                    insert_index = index
                    break

        ledger.insert_at(insert_index, urgent)
        ledger.resolve_overlaps()
        promote_due(ledger, now)
        if not self._commit(
            ledger,
            lambda: self.store.persist_ledger(self.workspace_id, self.day, ledger.blocks, request_id),
        ):
            return self.ledger.blocks_for_task(task.id)
        logger.info(f"Urgent task {task.id} interrupted the timeline at {now}")
        return urgent

    def replace_unplugged_windows(
        self,
        windows: List[UnpluggedWindowInput],
        request_id: Optional[str] = None,
    ) -> List[UnpluggedWindow]:
        """Replace the workspace's unplugged windows and re-time the ledger.

        Raises:
            InvalidWindow: If the windows would cover the whole day
        """
        request_id = _request_id(request_id)
        new_windows = [
            UnpluggedWindow(
                id=str(uuid.uuid4()),
                workspace_id=self.workspace_id,
                label=window.label,
                start_time=window.start_time,
                end_time=window.end_time,
            )
            for window in windows
        ]
        if new_windows and coverage_minutes(new_windows) >= MINUTES_PER_DAY:
            raise InvalidWindow("Unplugged windows cover the whole day")

        with self._lock:
            if self._replayed(f"{request_id}:windows"):
                return self.windows
            now = self._now()
            ledger = self.ledger.copy()
            retime(ledger, now, new_windows)
            promote_due(ledger, now)

            def persist():
                replaced = self.store.replace_unplugged_windows(
                    self.workspace_id, new_windows, request_id=f"{request_id}:windows"
                )
                self.store.persist_ledger(
                    self.workspace_id, self.day, ledger.blocks, f"{request_id}:ledger"
                )
                return replaced

            if self._commit(ledger, persist):
                self.windows = new_windows
            return self.windows
