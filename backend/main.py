from fastapi import FastAPI, Depends, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.orm import Session
from typing import List
import logging
import os

import uvicorn

from database import get_db, engine, Base
import schemas
import task_mutations
import task_queries
import user_service
from auth.routes import router as auth_router
from auth.dependencies import get_current_user
from errors import (
    ErrorCode,
    InternalError,
    TaskTrackerError,
    UserNotFoundError,
    ValidationError,
    validation_error_from_pydantic,
)
from task_filters import SEARCH_MIN_LENGTH, normalize_task_filters

# Configure logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

CREATE_TABLES = os.environ.get("CREATE_TABLES", "true").lower() in ("1", "true", "yes")
API_PORT = int(os.getenv("API_PORT", "6001"))

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3001",
]
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", ",".join(DEFAULT_CORS_ORIGINS)).split(",")
    if origin.strip()
]

app = FastAPI(
    title="Task Tracker API",
    description="Multi-user task tracking with per-user visibility, filtering and search",
    version="1.0.0"
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register authentication router
app.include_router(auth_router)


@app.on_event("startup")
def create_tables():
    """Create missing tables (development and SQLite deployments)."""
    if not CREATE_TABLES:
        logger.info("CREATE_TABLES disabled, skipping schema creation")
        return
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


# ============== Error envelope ==============

def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = schemas.ErrorResponse(error=schemas.ErrorBody(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(TaskTrackerError)
async def task_tracker_error_handler(request: Request, exc: TaskTrackerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code.value}: {exc.message}")
    else:
        logger.debug(f"{request.method} {request.url.path} rejected: {exc.code.value}: {exc.message}")
    return error_response(exc.status_code, exc.code.value, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    error = validation_error_from_pydantic(exc.errors())
    logger.debug(f"{request.method} {request.url.path} invalid request: {error.message}")
    return error_response(error.status_code, error.code.value, error.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 401:
        code = ErrorCode.UNAUTHORIZED
    elif exc.status_code == 403:
        code = ErrorCode.FORBIDDEN
    elif exc.status_code == 404:
        code = ErrorCode.NOT_FOUND
    elif exc.status_code == 405:
        code = ErrorCode.METHOD_NOT_ALLOWED
    elif exc.status_code >= 500:
        code = ErrorCode.INTERNAL_ERROR
    else:
        code = ErrorCode.VALIDATION_ERROR
    return error_response(exc.status_code, code.value, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = InternalError()
    return error_response(error.status_code, error.code.value, error.message)


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy"}


# ============== Users ==============

@app.get("/api/users", response_model=schemas.ApiResponse[List[schemas.User]])
def list_users(
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List all users (for assignment pickers)."""
    logger.debug(f"User {current_user.id} listing users")
    return schemas.ApiResponse(data=user_service.list_users(db))


@app.put("/api/users/me", response_model=schemas.ApiResponse[schemas.User])
def update_current_user(
    payload: schemas.UserUpdate,
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update the authenticated user's name and/or email."""
    return schemas.ApiResponse(data=user_service.update_user(db, current_user.id, payload))


@app.delete("/api/users/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_current_user(
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete the authenticated user's account, their created tasks with it."""
    user_service.delete_user(db, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/users/{user_id}", response_model=schemas.ApiResponse[schemas.User])
def get_user(
    user_id: str,
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user = user_service.get_user(db, user_id)
    if user is None:
        raise UserNotFoundError()
    return schemas.ApiResponse(data=user)


# ============== Tasks ==============

@app.get("/api/tasks", response_model=schemas.ApiResponse[schemas.TaskList])
def list_tasks(
    request: Request,
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List tasks visible to the current user.

    Query parameters (camelCase or snake_case): status, priority, assigneeId,
    creatorId, dueDateFrom, dueDateTo, search, page, limit, sortBy, sortOrder.
    """
    descriptor = normalize_task_filters(dict(request.query_params))
    return schemas.ApiResponse(data=task_queries.list_tasks(db, current_user.id, descriptor))


@app.get("/api/tasks/search", response_model=schemas.ApiResponse[schemas.TaskSearchResults])
def search_tasks(
    q: str = Query(..., description="Text to match against task title or description"),
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Search visible tasks by title or description, most recently updated first."""
    query = q.strip()
    if len(query) < SEARCH_MIN_LENGTH:
        raise ValidationError("q", f"Search query must be at least {SEARCH_MIN_LENGTH} characters long")

    tasks = task_queries.search_tasks(db, current_user.id, query)
    return schemas.ApiResponse(data=schemas.TaskSearchResults(tasks=tasks, query=query, count=len(tasks)))


@app.get("/api/tasks/{task_id}", response_model=schemas.ApiResponse[schemas.Task])
def get_task(
    task_id: str,
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return schemas.ApiResponse(data=task_queries.get_task(db, task_id, current_user.id))


@app.post("/api/tasks", response_model=schemas.ApiResponse[schemas.Task], status_code=status.HTTP_201_CREATED)
def create_task(
    payload: schemas.TaskCreate,
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a task; the current user becomes its creator."""
    return schemas.ApiResponse(data=task_mutations.create_task(db, current_user.id, payload))


@app.put("/api/tasks/{task_id}", response_model=schemas.ApiResponse[schemas.Task])
def update_task(
    task_id: str,
    payload: schemas.TaskUpdate,
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Partially update a task (creator or assignee)."""
    return schemas.ApiResponse(data=task_mutations.update_task(db, task_id, current_user.id, payload))


@app.patch("/api/tasks/{task_id}/status", response_model=schemas.ApiResponse[schemas.Task])
def update_task_status(
    task_id: str,
    payload: schemas.TaskStatusUpdate,
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change only a task's status (creator or assignee)."""
    return schemas.ApiResponse(
        data=task_mutations.update_task_status(db, task_id, current_user.id, payload.status)
    )


@app.delete("/api/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    current_user: schemas.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a task (creator only)."""
    task_mutations.delete_task(db, task_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


if __name__ == "__main__":
    logger.info(f"Task Tracker API starting on port {API_PORT}")
    uvicorn.run(app, host="0.0.0.0", port=API_PORT)
