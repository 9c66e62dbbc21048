import logging
import sys
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import database
from config import get_settings
from database import HabitNotFound, get_db
from schemas import (
    CompletionOut,
    DeleteResult,
    HabitCreate,
    HabitOut,
    HabitUpdate,
    SortOrderUpdate,
    SuccessResponse,
    ToggleCompletionRequest,
)

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)
    database.init_db()
    logger.info("Habits API ready")
    yield


app = FastAPI(title="Habits API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------------
# Errors
# -----------------------------

@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        {"error": f"{field}: {message}" if field else message},
        status_code=400,
    )


@app.exception_handler(SQLAlchemyError)
async def _database_error(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# -----------------------------
# Utilities
# -----------------------------

def current_user_id(request: Request) -> str:
    """Caller identity as resolved by the upstream auth provider."""
    user_id = (request.headers.get(settings.auth_user_header) or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def _require_id(habit_id: Optional[str]) -> str:
    if not habit_id:
        raise HTTPException(status_code=400, detail="Habit ID is required")
    return habit_id


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Habit not found")


# -----------------------------
# Health & Root
# -----------------------------
@app.get("/")
def read_root():
    return {"message": "Habits backend is running"}


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Check that the database answers a trivial query"""
    try:
        db.execute(text("SELECT 1"))
        return {"backend": "ok", "database": "ok"}
    except SQLAlchemyError as e:
        logger.warning("Health check failed: %s", e)
        return JSONResponse({"backend": "ok", "database": "unavailable"}, status_code=503)


# -----------------------------
# Habit Endpoints
# -----------------------------
@app.get("/api/habits", response_model=List[HabitOut])
def list_habits(user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    habits = database.list_habits(db, user_id)
    return [HabitOut.model_validate(h) for h in habits]


@app.post("/api/habits", response_model=HabitOut)
def create_habit(
    payload: HabitCreate,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    habit = database.create_habit(db, user_id, payload.name, payload.emoji, payload.color)
    return HabitOut.model_validate(habit)


@app.put("/api/habits", response_model=HabitOut)
def update_habit(
    payload: HabitUpdate,
    id: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    habit_id = _require_id(id)
    try:
        habit = database.update_habit(db, user_id, habit_id, payload.name, payload.emoji, payload.color)
    except HabitNotFound as e:
        raise _not_found() from e
    return HabitOut.model_validate(habit)


@app.delete("/api/habits", response_model=DeleteResult)
def delete_habit(
    id: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    habit_id = _require_id(id)
    try:
        name, deleted = database.delete_habit(db, user_id, habit_id)
    except HabitNotFound as e:
        raise _not_found() from e
    return DeleteResult(
        message=f'Habit "{name}" and {deleted} completion(s) deleted successfully',
        deleted_completions=deleted,
    )


@app.put("/api/habits/sort-order", response_model=SuccessResponse, response_model_exclude_none=True)
def update_sort_order(
    payload: SortOrderUpdate,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    orders = {item.id: item.sort_order for item in payload.habits}
    try:
        database.update_sort_orders(db, user_id, orders)
    except HabitNotFound as e:
        raise _not_found() from e
    return SuccessResponse()


@app.post("/api/habits/toggle-completion", response_model=CompletionOut)
def toggle_completion(
    payload: ToggleCompletionRequest,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        completion = database.toggle_completion(db, user_id, payload.habit_id, payload.date)
    except HabitNotFound as e:
        raise _not_found() from e
    return CompletionOut.model_validate(completion)


if __name__ == "__main__":
    import uvicorn

    setup_logging(settings.log_level)
    uvicorn.run(app, host=settings.host, port=settings.port)
