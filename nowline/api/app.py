"""FastAPI web application for nowline."""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from nowline.models.task import Task, TaskInput
from nowline.models.time_block import TimeBlock
from nowline.models.transition import TransitionAction
from nowline.models.workspace import Workspace, UnpluggedWindow, UnpluggedWindowInput
from nowline.models.constants import MINUTES_PER_DAY
from nowline.database.database import get_db, init_db
from nowline.database.timeline_store import TimelineStore
from nowline.engine.clock import Clock, SystemClock
from nowline.engine.errors import (
    AlreadyResolved,
    EngineError,
    InvalidDuration,
    InvalidReorder,
    InvalidState,
    InvalidWindow,
    NotFound,
    PersistenceFailure,
)
from nowline.engine.planner import TimelinePlanner
from nowline.engine.timeutil import coverage_minutes

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="nowline API",
    description="Lays tasks out on today's timeline and keeps it honest as the day unfolds",
    version="0.1.0",
    lifespan=lifespan,
)

ERROR_STATUS = {
    NotFound: 404,
    InvalidState: 409,
    AlreadyResolved: 409,
    InvalidDuration: 422,
    InvalidReorder: 422,
    InvalidWindow: 422,
    PersistenceFailure: 503,
}


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    status_code = 500
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__, "block_id": exc.block_id},
    )


def get_clock() -> Clock:
    """Clock dependency (overridden in tests)."""
    return SystemClock()


def get_store(db: Session = Depends(get_db)) -> TimelineStore:
    return TimelineStore(db)


def get_planner(
    workspace_id: str,
    day: Optional[date] = None,
    store: TimelineStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> TimelinePlanner:
    return TimelinePlanner(store, workspace_id, clock=clock, day=day)


# Request / response models
class WorkspaceCreateRequest(BaseModel):
    """Request to create a workspace."""
    name: str = Field(..., min_length=1)
    core_time_start: Optional[str] = None
    core_time_end: Optional[str] = None
    role_intro: Optional[str] = None
    unplugged_windows: List[UnpluggedWindowInput] = Field(default_factory=list)


class UnpluggedWindowsRequest(BaseModel):
    """Replacement set of unplugged windows."""
    windows: List[UnpluggedWindowInput] = Field(default_factory=list)


class UnpluggedWindowsResponse(BaseModel):
    windows: List[UnpluggedWindow]
    blocks: List[TimeBlock]


class TimelineResponse(BaseModel):
    """Response for the timeline view."""
    day: date
    blocks: List[TimeBlock]
    completed_minutes: int


class TaskCreateResponse(BaseModel):
    task: Task
    blocks: List[TimeBlock]


class ScheduleResponse(BaseModel):
    """Blocks created by moving tasks onto the timeline."""
    blocks: List[TimeBlock]
    in_inbox: bool = Field(False, description="True when the task stayed in the inbox (would cross midnight)")


class MoveToInboxResponse(BaseModel):
    task_id: Optional[str]
    task_returned: bool
    blocks: List[TimeBlock]


class ReorderRequest(BaseModel):
    block_ids: List[str]


class TransitionRequest(BaseModel):
    """Disposition of the NOW or PENDING block."""
    action: TransitionAction
    review_memo: Optional[str] = None


class TransitionResponse(BaseModel):
    block: TimeBlock
    shifted_block_ids: List[str]
    promoted: Optional[TimeBlock]
    blocks: List[TimeBlock]


class TickResponse(BaseModel):
    dropped: bool
    flagged: Optional[TimeBlock] = None
    promoted: Optional[TimeBlock] = None


class DeleteTaskResponse(BaseModel):
    deleted_block_ids: List[str]


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.post("/workspaces", response_model=Workspace, status_code=201)
def create_workspace(body: WorkspaceCreateRequest, store: TimelineStore = Depends(get_store)):
    """Create a workspace with its unplugged windows."""
    if body.unplugged_windows and coverage_minutes(body.unplugged_windows) >= MINUTES_PER_DAY:
        raise InvalidWindow("Unplugged windows cover the whole day")
    return store.create_workspace(
        workspace_id=str(uuid.uuid4()),
        name=body.name,
        core_time_start=body.core_time_start,
        core_time_end=body.core_time_end,
        role_intro=body.role_intro,
        windows=body.unplugged_windows,
    )


@app.get("/workspaces/{workspace_id}", response_model=Workspace)
def get_workspace(workspace_id: str, store: TimelineStore = Depends(get_store)):
    return store.load_workspace(workspace_id)


@app.put("/workspaces/{workspace_id}/unplugged", response_model=UnpluggedWindowsResponse)
def replace_unplugged_windows(
    body: UnpluggedWindowsRequest,
    planner: TimelinePlanner = Depends(get_planner),
    x_request_id: Optional[str] = Header(None),
):
    """Replace the unplugged windows and re-time the timeline around them."""
    windows = planner.replace_unplugged_windows(body.windows, request_id=x_request_id)
    return UnpluggedWindowsResponse(windows=windows, blocks=planner.timeline())


@app.get("/workspaces/{workspace_id}/timeline", response_model=TimelineResponse)
def view_timeline(planner: TimelinePlanner = Depends(get_planner)):
    """View the day's blocks (unplugged windows included)."""
    return TimelineResponse(
        day=planner.day,
        blocks=planner.timeline(),
        completed_minutes=planner.completed_minutes(),
    )


@app.get("/workspaces/{workspace_id}/inbox", response_model=List[Task])
def view_inbox(planner: TimelinePlanner = Depends(get_planner)):
    return planner.inbox()


@app.post("/workspaces/{workspace_id}/tasks", response_model=TaskCreateResponse, status_code=201)
def create_task(
    body: TaskInput,
    planner: TimelinePlanner = Depends(get_planner),
    x_request_id: Optional[str] = Header(None),
):
    """Create a task; it lands in the inbox, on the timeline, or interrupts the current block."""
    task, blocks = planner.add_task(body, request_id=x_request_id)
    return TaskCreateResponse(task=task, blocks=blocks)


@app.post("/workspaces/{workspace_id}/tasks/{task_id}/timeline", response_model=ScheduleResponse)
def move_task_to_timeline(
    task_id: str,
    planner: TimelinePlanner = Depends(get_planner),
    x_request_id: Optional[str] = Header(None),
):
    blocks = planner.move_to_timeline(task_id, request_id=x_request_id)
    return ScheduleResponse(blocks=blocks, in_inbox=not blocks)


@app.post("/workspaces/{workspace_id}/timeline/all", response_model=ScheduleResponse)
def move_all_to_timeline(
    planner: TimelinePlanner = Depends(get_planner),
    x_request_id: Optional[str] = Header(None),
):
    """Move inbox tasks onto the timeline until the next one would cross midnight."""
    blocks = planner.move_all_to_timeline(request_id=x_request_id)
    return ScheduleResponse(blocks=blocks, in_inbox=bool(planner.inbox()))


@app.post("/workspaces/{workspace_id}/blocks/{block_id}/inbox", response_model=MoveToInboxResponse)
def move_block_to_inbox(
    block_id: str,
    planner: TimelinePlanner = Depends(get_planner),
    x_request_id: Optional[str] = Header(None),
):
    result = planner.move_to_inbox(block_id, request_id=x_request_id)
    return MoveToInboxResponse(
        task_id=result.task_id,
        task_returned=result.task_returned,
        blocks=planner.timeline(),
    )


@app.put("/workspaces/{workspace_id}/order", response_model=TimelineResponse)
def reorder_blocks(
    body: ReorderRequest,
    planner: TimelinePlanner = Depends(get_planner),
    x_request_id: Optional[str] = Header(None),
):
    """Apply a new block order; blocks are re-timed in that order."""
    blocks = planner.reorder(body.block_ids, request_id=x_request_id)
    return TimelineResponse(day=planner.day, blocks=blocks, completed_minutes=planner.completed_minutes())


@app.post("/workspaces/{workspace_id}/blocks/{block_id}/transition", response_model=TransitionResponse)
def transition_block(
    block_id: str,
    body: TransitionRequest,
    planner: TimelinePlanner = Depends(get_planner),
    x_request_id: Optional[str] = Header(None),
):
    """Complete or delay the NOW or PENDING block."""
    outcome = planner.transition(block_id, body.action, review_memo=body.review_memo, request_id=x_request_id)
    return TransitionResponse(
        block=outcome.block,
        shifted_block_ids=outcome.shifted_ids,
        promoted=outcome.promoted,
        blocks=planner.timeline(),
    )


@app.post("/workspaces/{workspace_id}/tick", response_model=TickResponse)
def tick(planner: TimelinePlanner = Depends(get_planner)):
    """Run one monitor pass (flags overdue blocks and promotes the next one)."""
    result = planner.tick()
    if result is None:
        return TickResponse(dropped=True)
    return TickResponse(dropped=False, flagged=result.flagged, promoted=result.promoted)


@app.delete("/workspaces/{workspace_id}/tasks/{task_id}", response_model=DeleteTaskResponse)
def delete_task(
    task_id: str,
    planner: TimelinePlanner = Depends(get_planner),
    x_request_id: Optional[str] = Header(None),
):
    removed = planner.delete_task(task_id, request_id=x_request_id)
    return DeleteTaskResponse(deleted_block_ids=[b.id for b in removed])


@app.get("/workspaces/{workspace_id}/active-dates", response_model=List[date])
def active_dates(workspace_id: str, store: TimelineStore = Depends(get_store)):
    """Days that have at least one block."""
    store.load_workspace(workspace_id)
    return store.load_active_dates(workspace_id)


@app.get("/workspaces/{workspace_id}/completed-minutes")
def completed_minutes(planner: TimelinePlanner = Depends(get_planner)):
    return {"day": planner.day, "completed_minutes": planner.completed_minutes()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
