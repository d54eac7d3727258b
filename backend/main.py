import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse
from starlette.concurrency import run_in_threadpool

import config
import database
from analytics import compute_stats
from auth import get_current_user
from live import TaskFeed
from logging_setup import setup_logging
from models import (
    ALL,
    Category,
    NotificationPreference,
    Priority,
    PrioritySuggestionRequest,
    PushTokenRegistration,
    RoutineBatchRequest,
    RoutineRequest,
    StatusFilter,
    TaskCreate,
    TaskUpdate,
)
from ordering import is_past_due, local_now, task_view
from push import build_push_sender
from reminders import NotificationError, run_reminder_loop, run_reminder_sweep, send_test_notification
from routine import AIServiceError, RoutineFailure, RoutineResult, convert_routine, filter_future_tasks, suggest_priority

logger = logging.getLogger(__name__)

feed = TaskFeed()
push_sender = build_push_sender(config.PUSH_WEBHOOK_URL, timeout=config.PUSH_TIMEOUT_SECONDS)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    database.init_db()
    sweeper = None
    if config.REMINDER_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(run_reminder_loop(
            push_sender,
            interval_seconds=config.REMINDER_SWEEP_INTERVAL_SECONDS,
            lookahead=timedelta(hours=config.REMINDER_LOOKAHEAD_HOURS),
            on_change=_publish,
        ))
        logger.info("Reminder sweep every %ss", config.REMINDER_SWEEP_INTERVAL_SECONDS)
    yield
    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _check_choice(value: str, choices, name: str) -> str:
    allowed = [ALL] + [choice.value for choice in choices]
    if value not in allowed:
        raise HTTPException(status_code=422, detail=f"{name} must be one of: {', '.join(allowed)}")
    return value


async def _publish(user_id: str) -> None:
    """Push the user's current task list to live subscribers, if there are any."""
    if feed.subscriber_count(user_id):
        tasks = await run_in_threadpool(database.get_tasks_for_user, user_id)
        # Queues are not thread-safe; publish from the event loop
        feed.publish(user_id, tasks)


@app.get("/tasks")
def get_tasks(
    status: StatusFilter = StatusFilter.ALL,
    priority: str = ALL,
    category: str = ALL,
    user_id: str = Depends(get_current_user),
) -> list[dict]:
    """The user's tasks, filtered and in display order."""
    _check_choice(priority, Priority, "priority")
    _check_choice(category, Category, "category")
    tasks = database.get_tasks_for_user(user_id)
    return [task.model_dump(mode="json") for task in task_view(tasks, status, priority, category)]


@app.get("/tasks/stream")
async def stream_tasks(
    status: StatusFilter = StatusFilter.ALL,
    priority: str = ALL,
    category: str = ALL,
    user_id: str = Depends(get_current_user),
):
    """Server-sent events: one 'snapshot' event with the full view on every change."""
    _check_choice(priority, Priority, "priority")
    _check_choice(category, Category, "category")
    subscription = feed.subscribe(user_id, await run_in_threadpool(database.get_tasks_for_user, user_id))

    async def event_generator():
        try:
            async for snapshot in subscription:
                view = task_view(snapshot, status, priority, category)
                yield {
                    "event": "snapshot",
                    "data": json.dumps([task.model_dump(mode="json") for task in view]),
                }
        finally:
            subscription.close()

    return EventSourceResponse(event_generator())


@app.post("/tasks", status_code=201)
async def create_task(task_data: TaskCreate, user_id: str = Depends(get_current_user)) -> dict:
    task = await run_in_threadpool(
        database.create_task_db,
        user_id,
        task_data.title,
        task_data.due_date,
        task_data.priority.value,
        task_data.category.value,
        task_data.description,
        task_data.duration_minutes,
    )
    await _publish(user_id)
    return task.model_dump(mode="json")


@app.patch("/tasks/{task_id}")
async def update_task(task_id: str, task_data: TaskUpdate, user_id: str = Depends(get_current_user)) -> dict:
    task = await run_in_threadpool(database.get_task_db, user_id, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    updates = task_data.model_dump(exclude_unset=True)
    if "due_date" in updates and updates["due_date"] != task.due_date:
        # The due date is frozen once a task is done or overdue
        if task.completed or is_past_due(task, local_now()):
            raise HTTPException(
                status_code=409,
                detail="Due date can only be changed for open tasks that are not past due",
            )

    result = await run_in_threadpool(database.update_task_db, user_id, task_id, **updates)
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    await _publish(user_id)
    return result.model_dump(mode="json")


@app.delete("/tasks/{task_id}")
async def delete_task(task_id: str, user_id: str = Depends(get_current_user)) -> dict:
    if not await run_in_threadpool(database.delete_task_db, user_id, task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    await _publish(user_id)
    return {"status": "deleted"}


@app.post("/tasks/suggest-priority")
async def suggest_task_priority(
    request: PrioritySuggestionRequest,
    user_id: str = Depends(get_current_user),
) -> dict:
    try:
        suggestion = await suggest_priority(request.task_description)
    except AIServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return suggestion.model_dump(mode="json", by_alias=True)


# HTTP status for each way routine parsing can fail
ROUTINE_FAILURE_STATUS = {
    RoutineFailure.INVALID_INPUT: 400,
    RoutineFailure.AI_ERROR: 502,
    RoutineFailure.INVALID_RESPONSE: 502,
    RoutineFailure.NO_TASKS: 422,
    RoutineFailure.NO_FUTURE_TASKS: 422,
}


def _routine_response(result: RoutineResult) -> JSONResponse:
    body = {
        "ok": result.ok,
        "tasks": [task.model_dump(mode="json", by_alias=True) for task in result.tasks],
        "discarded": result.discarded,
        "kind": result.kind.value if result.kind else None,
        "message": result.reason,
    }
    status_code = 200 if result.ok else ROUTINE_FAILURE_STATUS[result.kind]
    return JSONResponse(status_code=status_code, content=body)


@app.post("/routine/parse")
async def parse_routine(request: RoutineRequest, user_id: str = Depends(get_current_user)):
    """Preview the tasks the AI derives from a routine. Nothing is stored."""
    result = await convert_routine(request.routine_description)
    if result.discarded:
        logger.info("User %s: %d routine tasks with past due dates were ignored", user_id, result.discarded)
    return _routine_response(result)


@app.post("/routine/tasks", status_code=201)
async def create_routine_tasks(request: RoutineBatchRequest, user_id: str = Depends(get_current_user)):
    """Store previewed routine tasks. Tasks no longer in the future are dropped first."""
    if not request.tasks:
        raise HTTPException(status_code=422, detail="There are no tasks to create.")

    tasks, discarded = filter_future_tasks(request.tasks, datetime.now(timezone.utc))
    if not tasks:
        return _routine_response(RoutineResult.failure(
            RoutineFailure.NO_FUTURE_TASKS,
            "None of the tasks is due in the future.",
            discarded=discarded,
        ))

    created = await run_in_threadpool(database.create_tasks_batch_db, user_id, [
        {
            "title": task.title,
            "description": task.description,
            "due_date": task.due_date,
            "priority": task.priority.value,
            "category": task.category.value,
            "duration_minutes": task.duration or None,
        }
        for task in tasks
    ])
    await _publish(user_id)
    return {
        "created": [task.model_dump(mode="json") for task in created],
        "discarded": discarded,
    }


@app.get("/analytics")
def get_analytics(user_id: str = Depends(get_current_user)) -> dict:
    return compute_stats(database.get_tasks_for_user(user_id)).model_dump(mode="json")


@app.get("/notifications/preference")
def get_notification_preference(user_id: str = Depends(get_current_user)) -> dict:
    return {"enabled": database.get_notification_preference(user_id)}


@app.put("/notifications/preference")
def update_notification_preference(
    preference: NotificationPreference,
    user_id: str = Depends(get_current_user),
) -> dict:
    database.set_notification_preference(user_id, preference.enabled)
    return {"enabled": preference.enabled}


@app.post("/notifications/tokens", status_code=201)
def register_push_token(registration: PushTokenRegistration, user_id: str = Depends(get_current_user)) -> dict:
    database.register_push_token(user_id, registration.token)
    return {"status": "registered"}


@app.delete("/notifications/tokens")
def unregister_push_tokens(user_id: str = Depends(get_current_user)) -> dict:
    return {"deleted": database.unregister_push_tokens(user_id)}


@app.post("/notifications/test")
async def test_notification(user_id: str = Depends(get_current_user)) -> dict:
    try:
        await send_test_notification(user_id, push_sender)
    except NotificationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "sent"}


@app.post("/reminders/sweep")
async def trigger_reminder_sweep(
    cron_secret: Optional[str] = Header(default=None, alias="X-Cron-Secret"),
) -> dict:
    """Run one reminder sweep; meant to be called by an external scheduler."""
    if config.CRON_SECRET and cron_secret != config.CRON_SECRET:
        raise HTTPException(status_code=403, detail="Invalid cron secret")
    report = await run_reminder_sweep(
        push_sender,
        lookahead=timedelta(hours=config.REMINDER_LOOKAHEAD_HOURS),
        on_change=_publish,
    )
    return asdict(report)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
