from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
import asyncio
import logging

import config
import database
from database import StorageError
from logging_setup import setup_logging
from models import (
    Category,
    CategoryCreate,
    CategoryOrder,
    CategoryRename,
    GeneralTitle,
    ListSection,
    ParityUpdate,
    Task,
    TaskCreate,
    TaskRename,
    ViewState,
    WeekGoto,
    WeekOverview,
    WeekShift,
)
from service import PlannerService

logger = logging.getLogger(__name__)

# Collections a client can follow over /live/{name}
LIVE_COLLECTIONS = (
    "categories",
    "tasks",
    "sections",
    "week",
    "week_parity",
    "general_title",
    "expanded_category_ids",
    "current_week_start",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging(config.LOG_LEVEL)
    database.init_db()
    app.state.planner = PlannerService()
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageError)
async def storage_error_handler(_request: Request, exc: StorageError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": f"Storage unavailable: {exc}"})


def _planner(request: Request) -> PlannerService:
    return request.app.state.planner


def _category_or_404(category_id: int) -> Category:
    category = database.get_category(category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


def _task_or_404(task_id: int) -> Task:
    task = database.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


# Blank names and titles are ignored: those endpoints answer 200 with null.

@app.get("/categories")
def get_categories() -> list[Category]:
    return database.get_categories()


@app.post("/categories")
def create_category(data: CategoryCreate, request: Request) -> Optional[Category]:
    return _planner(request).add_category(data.name)


@app.put("/categories/order")
def reorder_categories(data: CategoryOrder, request: Request) -> list[Category]:
    ordered = [_category_or_404(category_id) for category_id in data.category_ids]
    return _planner(request).reorder_categories(ordered)


@app.patch("/categories/{category_id}")
def rename_category(category_id: int, data: CategoryRename, request: Request) -> Optional[Category]:
    category = _category_or_404(category_id)
    return _planner(request).rename_category(category, data.name)


@app.delete("/categories/{category_id}")
def delete_category(category_id: int, request: Request) -> dict:
    category = _category_or_404(category_id)
    _planner(request).delete_category(category)
    return {"status": "deleted"}


@app.delete("/categories/{category_id}/tasks")
def clear_category_tasks(category_id: int, request: Request) -> dict:
    _category_or_404(category_id)
    return {"deleted": _planner(request).clear_category_tasks(category_id)}


@app.delete("/general/tasks")
def clear_general_tasks(request: Request) -> dict:
    return {"deleted": _planner(request).clear_category_tasks(None)}


@app.get("/general/title")
def get_general_title(request: Request) -> GeneralTitle:
    return GeneralTitle(title=_planner(request).general_title.value)


@app.put("/general/title")
def rename_general_category(data: GeneralTitle, request: Request) -> Optional[GeneralTitle]:
    title = _planner(request).rename_general_category(data.title)
    return GeneralTitle(title=title) if title is not None else None


@app.get("/tasks")
def get_tasks() -> list[Task]:
    return database.get_all_tasks()


@app.post("/tasks")
def create_task(data: TaskCreate, request: Request) -> Optional[Task]:
    if data.category_id is not None:
        _category_or_404(data.category_id)
    return _planner(request).add_task(data.title, data.date, data.category_id, data.is_week_task)


@app.get("/tasks/for-date")
def get_tasks_for_date(date: int, request: Request) -> list[Task]:
    """Single-day tasks of the calendar day containing `date` (epoch millis)."""
    return _planner(request).tasks_for_date(date).value


@app.get("/tasks/week")
def get_week_tasks(request: Request, week_start: Optional[int] = None) -> list[Task]:
    planner = _planner(request)
    if week_start is None:
        week_start = planner.current_week_start.value
    return planner.week_tasks(week_start).value


@app.get("/tasks/{task_id}")
def get_task(task_id: int) -> Task:
    return _task_or_404(task_id)


@app.patch("/tasks/{task_id}")
def rename_task(task_id: int, data: TaskRename, request: Request) -> Optional[Task]:
    task = _task_or_404(task_id)
    return _planner(request).rename_task(task, data.title)


@app.post("/tasks/{task_id}/toggle")
def toggle_task(task_id: int, request: Request) -> Task:
    task = _task_or_404(task_id)
    return _planner(request).toggle_task(task)


@app.delete("/tasks/{task_id}")
def delete_task(task_id: int, request: Request) -> dict:
    task = _task_or_404(task_id)
    _planner(request).delete_task(task)
    return {"status": "deleted"}


@app.get("/sections")
def get_sections(request: Request) -> list[ListSection]:
    return _planner(request).list_sections()


@app.post("/sections/{section_id}/toggle")
def toggle_section(section_id: int, request: Request) -> dict:
    expanded = _planner(request).toggle_category_expand(section_id)
    return {"expanded_category_ids": sorted(expanded)}


@app.get("/week")
def get_week(request: Request, week_start: Optional[int] = None) -> WeekOverview:
    return _planner(request).week_overview(week_start)


@app.post("/week/shift")
def shift_week(data: WeekShift, request: Request) -> WeekOverview:
    planner = _planner(request)
    planner.change_week(data.delta)
    return planner.week_overview()


@app.post("/week/goto")
def goto_week(data: WeekGoto, request: Request) -> WeekOverview:
    planner = _planner(request)
    planner.set_week_to_date(data.date)
    return planner.week_overview()


@app.put("/week/parity")
def set_week_parity(data: ParityUpdate, request: Request) -> WeekOverview:
    planner = _planner(request)
    planner.set_parity_for_current_week(data.parity)
    return planner.week_overview()


@app.get("/state")
def get_state(request: Request) -> ViewState:
    return _planner(request).view_state()


@app.put("/state")
def restore_state(data: ViewState, request: Request) -> ViewState:
    planner = _planner(request)
    planner.restore_view_state(data)
    return planner.view_state()


@app.websocket("/live/{collection}")
async def live_collection(websocket: WebSocket, collection: str):
    """Send the collection's current snapshot, then a new one after every change."""
    if collection not in LIVE_COLLECTIONS:
        await websocket.close(code=4404)
        return
    source = getattr(websocket.app.state.planner, collection)
    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def push(snapshot) -> None:
        # Called from whichever thread performed the write
        loop.call_soon_threadsafe(queue.put_nowait, jsonable_encoder(snapshot))

    async def forward() -> None:
        while True:
            await websocket.send_json(await queue.get())

    subscription = await run_in_threadpool(source.subscribe, push)
    sender = asyncio.create_task(forward())
    logger.debug("Live subscription opened for %s", collection)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        subscription.cancel()
        sender.cancel()
        # A send that failed after the client left has nothing left to report
        with suppress(asyncio.CancelledError, Exception):
            await sender
        logger.debug("Live subscription closed for %s", collection)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
